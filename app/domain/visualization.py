"""
app/domain/visualization.py

Persisted visualization artifacts and the fallback category summary.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator


class CategorySummary(BaseModel):
    """Frequency summary over one categorical field, largest first."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    field: str
    categories: list[str]
    counts: list[int]

    @model_validator(mode="after")
    def _check_lengths(self) -> "CategorySummary":
        if len(self.categories) != len(self.counts):
            raise ValueError("categories and counts must have the same length")
        return self

    @property
    def total(self) -> int:
        return sum(self.counts)


class VisualizationArtifact(BaseModel):
    """A produced visualization record.

    When ``error_message`` is set the model declined the request; the three
    source fields are then always ``None`` and consumers must not try to
    synthesize anything from the artifact.
    """

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        str_strip_whitespace=True,
    )

    id: str = Field(min_length=1)
    title: str
    prompt: str = ""
    methodology: str = ""
    concept: str = ""
    data_function_source: Optional[str] = None
    svg_function_source: Optional[str] = None
    hover_callback_source: Optional[str] = None
    error_message: Optional[str] = None
    is_fallback: bool = False
    fallback_reason: Optional[str] = None
    summary: Optional[CategorySummary] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _drop_sources_on_error(cls, data: object) -> object:
        if isinstance(data, dict) and data.get("error_message"):
            return {
                **data,
                "data_function_source": None,
                "svg_function_source": None,
                "hover_callback_source": None,
            }
        return data

    @property
    def is_error(self) -> bool:
        return bool(self.error_message)

    @property
    def is_renderable(self) -> bool:
        return not self.is_error and bool(self.data_function_source) and bool(
            self.svg_function_source
        )


ArtifactListAdapter = TypeAdapter(list[VisualizationArtifact])
