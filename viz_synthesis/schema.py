"""Structured completion decoded from one model response."""

from typing import Optional

from pydantic import BaseModel, ConfigDict

# Marker literals of the five-field response protocol, in required order.
METHODOLOGY = "METHODOLOGY:"
CONCEPT = "VISUALIZATION CONCEPT:"
DATA_FUNCTION = "DATA_FUNCTION:"
SVG_FUNCTION = "SVG_FUNCTION:"
HOVER_CALLBACK = "HOVER_CALLBACK:"
ERROR = "ERROR:"

SUCCESS_MARKERS = (METHODOLOGY, CONCEPT, DATA_FUNCTION, SVG_FUNCTION, HOVER_CALLBACK)
ALL_MARKERS = (METHODOLOGY, CONCEPT, ERROR, DATA_FUNCTION, SVG_FUNCTION, HOVER_CALLBACK)

CODE_MARKERS = frozenset({DATA_FUNCTION, SVG_FUNCTION, HOVER_CALLBACK})

FIELD_BY_MARKER = {
    METHODOLOGY: "methodology",
    CONCEPT: "concept",
    DATA_FUNCTION: "data_function_source",
    SVG_FUNCTION: "svg_function_source",
    HOVER_CALLBACK: "hover_callback_source",
    ERROR: "error_message",
}


class StructuredCompletion(BaseModel):
    """Decoded answer. Transient; never persisted."""

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )

    methodology: str = ""
    concept: str = ""
    data_function_source: Optional[str] = None
    svg_function_source: Optional[str] = None
    hover_callback_source: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return bool(self.error_message)
