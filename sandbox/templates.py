"""
Trusted function sources for category bar charts.

These are written in the same restricted dialect the model is asked to use,
so fallback artifacts and the mock adapter's canned response render through
the exact same synthesize -> execute path as generated code.
"""

from string import Template

_CATEGORY_COUNTS = Template(r'''
def category_counts(companies):
    counts = {}
    for company in companies:
        value = str(company.get($field, "") or "").strip() or "Unknown"
        counts[value] = counts.get(value, 0) + 1
    ranked = sorted(counts.items(), key=lambda item: -item[1])
    return [{"category": name, "count": count} for name, count in ranked[:$limit]]
''')

_BAR_CHART = Template(r'''
def bar_chart(processed_data):
    def esc(text):
        return str(text).replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;").replace('"', "&quot;")

    width = 720
    height = 420
    left = 60
    right = 30
    top = 60
    bottom = 90
    rows = processed_data or []
    title = esc($title)
    peak = max([row["count"] for row in rows] or [1])
    slot = (width - left - right) / max(len(rows), 1)
    colors = ["#FF6384", "#36A2EB", "#FFCE56", "#4BC0C0", "#9966FF", "#FF9F40", "#C9CBCF"]
    parts = [
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{width}" height="{height}" viewBox="0 0 {width} {height}">',
        f'<rect width="{width}" height="{height}" fill="#f8fafc" rx="16"/>',
        f'<text x="{width / 2}" y="34" text-anchor="middle" font-family="system-ui, sans-serif" font-size="20" font-weight="600" fill="#1e293b">{title}</text>',
        f'<line x1="{left}" y1="{height - bottom}" x2="{width - right}" y2="{height - bottom}" stroke="#94a3b8"/>',
    ]
    for index, row in enumerate(rows):
        bar_height = (height - top - bottom) * row["count"] / peak
        x = left + index * slot + slot * 0.1
        y = height - bottom - bar_height
        label = esc(row["category"])
        short_label = esc(str(row["category"])[:14])
        color = colors[index % len(colors)]
        hover = esc(json.dumps(row))
        parts.append(
            f'<rect x="{x:.1f}" y="{y:.1f}" width="{slot * 0.8:.1f}" height="{bar_height:.1f}" rx="4" fill="{color}" data-hover="{hover}"><title>{label}: {row["count"]}</title></rect>'
        )
        parts.append(
            f'<text x="{x + slot * 0.4:.1f}" y="{y - 6:.1f}" text-anchor="middle" font-family="system-ui, sans-serif" font-size="12" fill="#475569">{row["count"]}</text>'
        )
        parts.append(
            f'<text x="{x + slot * 0.4:.1f}" y="{height - bottom + 18}" text-anchor="middle" font-family="system-ui, sans-serif" font-size="11" fill="#475569">{short_label}</text>'
        )
    parts.append("</svg>")
    return "".join(parts)
''')

CATEGORY_TOOLTIP = r'''
def show_tooltip(event):
    surface = event.surface
    if not event.visible:
        surface.clear()
        return
    surface.set_size(220, 70)
    surface.clear()
    surface.set_fill_style("rgba(255, 255, 255, 0.95)")
    surface.fill_rect(0, 0, 220, 70)
    surface.set_fill_style("#1e293b")
    surface.set_font("bold 14px system-ui, sans-serif")
    surface.fill_text(str(event.payload.get("category", "")), 12, 26)
    surface.set_font("12px system-ui, sans-serif")
    surface.fill_text(f"Companies: {event.payload.get('count', 0)}", 12, 50)
'''.strip()


def category_counts_source(field: str = "industry", limit: int = 10) -> str:
    """Data function counting ``field`` values, largest first, ties by first seen."""
    return _CATEGORY_COUNTS.substitute(field=repr(field), limit=int(limit)).strip()


def bar_chart_source(title: str) -> str:
    """SVG function drawing ``[{"category", "count"}]`` rows as bars."""
    return _BAR_CHART.substitute(title=repr(title)).strip()
