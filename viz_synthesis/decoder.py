"""Decoder for the section-marker response protocol.

Scans a raw model response line by line. A line whose stripped text starts
with a marker literal switches the active section and seeds it with the rest
of that line; unmarked lines are appended to the active section. Free-text
sections are space-joined, code sections keep their line structure.

A marker that appears more than once replaces the earlier section content
(last occurrence wins).
"""

import logging
import re
import textwrap
from typing import Dict, List, Optional, Tuple

from app.errors import EmptyCompletion, ParseFailure
from viz_synthesis.schema import (
    ALL_MARKERS,
    CODE_MARKERS,
    DATA_FUNCTION,
    ERROR,
    FIELD_BY_MARKER,
    SUCCESS_MARKERS,
    SVG_FUNCTION,
    StructuredCompletion,
)

logger = logging.getLogger(__name__)

_REQUIRED_CODE_MARKERS = (DATA_FUNCTION, SVG_FUNCTION)
_FENCE_OPEN = re.compile(r"^```[A-Za-z0-9_+-]*\s*$")
_NOT_APPLICABLE = re.compile(r"^N/A\b", re.IGNORECASE)


class CompletionDecodeError(ParseFailure):
    """Raised when a completion does not follow the marker protocol.

    Attributes:
        stage: Which decoding step failed ("no_markers" or "missing_field").
        errors: List of human-readable error descriptions.
        raw_response: The original string that failed decoding.
    """

    def __init__(
        self,
        stage: str,
        errors: List[str],
        raw_response: str,
    ) -> None:
        self.errors = errors
        self.raw_response = raw_response
        message = (
            f"Completion decoding failed at stage '{stage}': "
            + "; ".join(errors)
        )
        super().__init__(message, stage=stage)


class MissingFieldError(CompletionDecodeError):
    """Raised when a required code section is absent or blank."""

    code = "missing_field"

    def __init__(self, missing_fields: List[str], raw_response: str) -> None:
        self.missing_fields = list(missing_fields)
        super().__init__(
            stage="missing_field",
            errors=[f"{name} is empty" for name in missing_fields],
            raw_response=raw_response,
        )


def _match_marker(line: str) -> Optional[Tuple[str, str]]:
    """Return (marker, trailing text) when the line opens a section."""
    stripped = line.lstrip()
    for marker in ALL_MARKERS:
        if stripped.startswith(marker):
            return marker, stripped[len(marker):]
    return None


def _strip_markdown_fences(block: str) -> str:
    """Remove an optional markdown fence wrapping a code block.

    Models sometimes wrap code in ```python ... ``` despite instructions.
    """
    lines = block.split("\n")
    if lines and _FENCE_OPEN.match(lines[0].strip()):
        lines = lines[1:]
    if lines and lines[-1].strip() == "```":
        lines = lines[:-1]
    return "\n".join(lines)


def _join_text(fragments: List[str]) -> str:
    return " ".join(part.strip() for part in fragments if part.strip())


def _join_code(fragments: List[str]) -> str:
    # fragments[0] is the text after the marker on the same line; when it is
    # non-empty it sits at column 0 and the continuation keeps its indentation.
    head = fragments[0].strip()
    body = "\n".join(fragment.rstrip() for fragment in fragments[1:])
    if head:
        block = f"{head}\n{body}".strip()
    else:
        block = textwrap.dedent(body).strip()
    if not block:
        return ""
    block = _strip_markdown_fences(block)
    block = textwrap.dedent(block).strip()
    if _NOT_APPLICABLE.match(block):
        return ""
    return block


def _warn_on_out_of_order(seen: List[str]) -> None:
    positions = [SUCCESS_MARKERS.index(m) for m in seen if m in SUCCESS_MARKERS]
    if positions != sorted(positions):
        logger.warning("Completion markers out of protocol order: %s", seen)


def decode_completion(raw_response: str) -> StructuredCompletion:
    """Decode a raw model response into a StructuredCompletion.

    Args:
        raw_response: The raw string returned by the completion adapter.

    Returns:
        A StructuredCompletion. When the ERROR section is present and
        non-empty, ``error_message`` is set and all code fields are None.

    Raises:
        EmptyCompletion: If the response is empty or whitespace only.
        CompletionDecodeError: If no marker is found.
        MissingFieldError: If no ERROR is given and the data or SVG
            function section is blank.
    """
    if not raw_response or not raw_response.strip():
        raise EmptyCompletion("Completion service returned an empty response", stage="decode")

    sections: Dict[str, List[str]] = {}
    seen: List[str] = []
    active: Optional[str] = None
    preamble = 0

    for line in raw_response.replace("\r\n", "\n").split("\n"):
        matched = _match_marker(line)
        if matched is not None:
            marker, rest = matched
            if marker in sections:
                logger.debug("Marker %r repeated; replacing earlier content", marker)
            sections[marker] = [rest]
            seen.append(marker)
            active = marker
            continue
        if active is None:
            preamble += line.strip() != ""
            continue
        sections[active].append(line)

    if not sections:
        raise CompletionDecodeError(
            stage="no_markers",
            errors=["response contains none of the protocol markers"],
            raw_response=raw_response,
        )
    if preamble:
        logger.debug("Ignored %d line(s) before the first marker", preamble)
    _warn_on_out_of_order(seen)

    values: Dict[str, Optional[str]] = {}
    for marker, fragments in sections.items():
        if marker in CODE_MARKERS:
            values[FIELD_BY_MARKER[marker]] = _join_code(fragments)
        else:
            values[FIELD_BY_MARKER[marker]] = _join_text(fragments)

    error_message = values.get(FIELD_BY_MARKER[ERROR]) or None
    if error_message:
        return StructuredCompletion(
            methodology=values.get("methodology") or "",
            concept=values.get("concept") or "",
            error_message=error_message,
        )

    missing = [
        FIELD_BY_MARKER[marker]
        for marker in _REQUIRED_CODE_MARKERS
        if not values.get(FIELD_BY_MARKER[marker])
    ]
    if missing:
        raise MissingFieldError(missing, raw_response)

    return StructuredCompletion(
        methodology=values.get("methodology") or "",
        concept=values.get("concept") or "",
        data_function_source=values["data_function_source"],
        svg_function_source=values["svg_function_source"],
        hover_callback_source=values.get("hover_callback_source") or None,
    )
