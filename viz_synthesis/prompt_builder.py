"""Structured prompt builder for visualization synthesis."""

import json
from typing import Optional, Sequence

from app.domain.company import CompanyRecord
from app.domain.visualization import VisualizationArtifact
from sandbox.validator import SAFE_BUILTINS, SANDBOX_MODULES
from viz_synthesis.schema import (
    CONCEPT,
    DATA_FUNCTION,
    ERROR,
    HOVER_CALLBACK,
    METHODOLOGY,
    SVG_FUNCTION,
)

_SYSTEM_INSTRUCTIONS = """\
You are a creative data visualization expert. You write small, self-contained
Python functions that process SaaS company data and draw a custom SVG chart.

STRICT RULES:
- Return ONLY the sections described under RESPONSE FORMAT, in that order.
- Each marker must start its own line and be spelled exactly as shown.
- Do NOT wrap code in markdown fences.
"""

_RESPONSE_FORMAT = f"""\
Your response must include FIVE parts in this exact order:

{METHODOLOGY} [How you analysed the user's request]
{CONCEPT} [Your visualization approach and design]
{DATA_FUNCTION}
[Python function that processes the raw data]
{SVG_FUNCTION}
[Python function that generates the SVG document]
{HOVER_CALLBACK}
[Python function that draws a tooltip when a data point is hovered]

When the request cannot be visualized with this dataset, respond with:

{METHODOLOGY} [Analysis of the request]
{CONCEPT} [Why a visualization is not possible]
{ERROR} [Clear explanation of why the request cannot be fulfilled]

MESSAGE LENGTH LIMITS:
- Plain sentences only, no styling or formatting.
- {METHODOLOGY} and {CONCEPT} must not exceed 120 characters each.
- {ERROR} must not exceed 200 characters.
"""

_FUNCTION_CONTRACTS = """\
DATA FUNCTION:
1. Takes one parameter: companies (a list of dicts with the fields above).
2. Returns JSON-compatible data (dicts, lists, strings, numbers, booleans).
3. Parse magnitude strings yourself: '$1.5M' = 1500000, '$2B' = 2000000000.
   Treat 'N/A' as missing and skip it. Remove commas from employee counts.

SVG FUNCTION:
1. Takes one parameter: processed_data (the data function's return value).
2. Returns one complete SVG document string: a single <svg> root element with
   xmlns="http://www.w3.org/2000/svg" and a viewBox.
3. Depends on nothing but its argument. Include a title, axis labels or a
   legend, and a <title> tooltip for every data point.
4. For hover support, put a data-hover attribute holding HTML-escaped JSON on
   each interactive element (circle, rect, path).

HOVER CALLBACK:
1. Takes one parameter: event, with event.payload (the parsed data-hover
   JSON), event.position (x, y), event.visible and event.surface.
2. Draws only on event.surface using: clear(), set_size(width, height),
   set_fill_style(color), set_stroke_style(color), set_line_width(width),
   set_font(font), fill_rect(x, y, w, h), stroke_rect(x, y, w, h),
   fill_text(text, x, y).
3. When event.visible is False, call event.surface.clear() and return.
4. Returns nothing.
"""

_SANDBOX_RULES = f"""\
SANDBOX:
- Write each function as a single `def` or a `lambda`. Helpers must be
  nested inside the function.
- No import statements, no file or network access, no dunder attributes,
  no global or nonlocal statements, no classes.
- Build strings with f-strings or concatenation; str.format is blocked.
- Available builtins: {", ".join(sorted(SAFE_BUILTINS))}.
- Pre-loaded modules: {", ".join(sorted(SANDBOX_MODULES))}.
"""

_SECTION_TEMPLATE = """\
## {title}
{body}
"""


class VisualizationPromptBuilder:
    """Builds the outbound prompt for one create or update request.

    The prompt embeds the dataset schema, the response-format contract and
    the user's request, in that order.
    """

    def __init__(self, sample_rows: int = 3) -> None:
        self._sample_rows = max(0, sample_rows)

    def build_prompt(
        self,
        user_prompt: str,
        sample: Optional[Sequence[CompanyRecord]] = None,
    ) -> str:
        """Build the full prompt for a new visualization.

        Args:
            user_prompt: The user's free-text request.
            sample: Optional dataset rows; the first few are embedded as
                examples of real values.

        Returns:
            A fully formatted prompt string ready for the completion service.
        """
        sections = [
            _SYSTEM_INSTRUCTIONS,
            self._section("DATA SCHEMA", self._schema_description()),
        ]
        sample_block = self._sample_description(sample)
        if sample_block:
            sections.append(self._section("SAMPLE DATA", sample_block))
        sections.extend(
            [
                self._section("RESPONSE FORMAT", _RESPONSE_FORMAT),
                self._section("FUNCTION CONTRACTS", _FUNCTION_CONTRACTS),
                self._section("RULES", _SANDBOX_RULES),
                self._section("USER REQUEST", user_prompt.strip()),
            ]
        )
        return "\n".join(sections)

    def build_update_prompt(
        self,
        artifact: VisualizationArtifact,
        user_prompt: str,
        sample: Optional[Sequence[CompanyRecord]] = None,
    ) -> str:
        """Build a prompt that revises an existing visualization.

        The existing artifact is embedded as context ahead of the requested
        change; the response contract is unchanged.
        """
        current = {
            "title": artifact.title,
            "original_request": artifact.prompt,
            "methodology": artifact.methodology,
            "concept": artifact.concept,
            "data_function": artifact.data_function_source,
            "svg_function": artifact.svg_function_source,
        }
        change = (
            "Revise the current visualization below according to this change "
            f"request: {user_prompt.strip()}\n\n"
            f"CURRENT VISUALIZATION:\n{json.dumps(current, indent=2)}"
        )
        return self.build_prompt(change, sample=sample)

    def _schema_description(self) -> str:
        return "Each company has these fields:\n" + "\n".join(CompanyRecord.schema_lines())

    def _sample_description(self, sample: Optional[Sequence[CompanyRecord]]) -> str:
        if not sample or not self._sample_rows:
            return ""
        rows = [record.model_dump() for record in list(sample)[: self._sample_rows]]
        return json.dumps(rows, indent=2, default=str)

    def _section(self, title: str, body: str) -> str:
        return _SECTION_TEMPLATE.format(title=title, body=body.rstrip())
