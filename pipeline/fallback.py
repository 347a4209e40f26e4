"""Deterministic fallback visualization.

Used whenever the model-driven pipeline fails. Nothing here calls the
completion service: the summary is computed locally and the artifact carries
trusted template sources so it renders through the same sandbox path as a
generated one.
"""

from __future__ import annotations

import uuid
from collections import Counter
from typing import Any, Mapping, Sequence

from pydantic import BaseModel

from app.domain.visualization import CategorySummary, VisualizationArtifact
from sandbox.templates import bar_chart_source, category_counts_source

FALLBACK_TITLE = "Companies by Industry"
UNKNOWN_CATEGORY = "Unknown"


def _field_value(company: Any, field: str) -> str:
    if isinstance(company, BaseModel):
        value = getattr(company, field, "")
    elif isinstance(company, Mapping):
        value = company.get(field, "")
    else:
        raise TypeError(f"Unsupported company record type: {type(company).__name__}")
    return str(value or "").strip() or UNKNOWN_CATEGORY


def summarize_categories(
    companies: Sequence[Any],
    field: str = "industry",
    limit: int = 10,
) -> CategorySummary:
    """Count ``field`` values, largest first.

    Blank values count as "Unknown". Equal counts keep first-seen order.
    """
    # Counter preserves insertion order and most_common() sorts stably
    counts = Counter(_field_value(company, field) for company in companies)
    ranked = counts.most_common(max(limit, 0))
    return CategorySummary(
        field=field,
        categories=[name for name, _ in ranked],
        counts=[count for _, count in ranked],
    )


def build_fallback_artifact(
    prompt: str,
    companies: Sequence[Any],
    reason: str,
    field: str = "industry",
    limit: int = 10,
) -> VisualizationArtifact:
    """Build the locally computed category bar chart artifact.

    Args:
        prompt: The user request the pipeline failed to satisfy.
        companies: Dataset rows.
        reason: Failure code that triggered the fallback.
        field: Categorical field to summarize.
        limit: Maximum number of categories kept.
    """
    summary = summarize_categories(companies, field=field, limit=limit)
    label = field.replace("_", " ")
    title = FALLBACK_TITLE if field == "industry" else f"Companies by {label.title()}"
    return VisualizationArtifact(
        id=uuid.uuid4().hex,
        title=title,
        prompt=prompt,
        methodology=(
            f"Counted companies per {label} across {len(companies)} records "
            f"and kept the {len(summary.categories)} largest groups."
        ),
        concept="Bar chart of company counts per category.",
        data_function_source=category_counts_source(field, limit),
        svg_function_source=bar_chart_source(title),
        hover_callback_source=None,
        is_fallback=True,
        fallback_reason=reason,
        summary=summary,
    )
