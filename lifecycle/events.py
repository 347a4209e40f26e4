"""Requests accepted by ``VisualizationManager.dispatch``."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class LoadDatasetRequested:
    pass


@dataclass(frozen=True)
class LoadVisualizationsRequested:
    pass


@dataclass(frozen=True)
class CreateVisualizationRequested:
    prompt: str


@dataclass(frozen=True)
class UpdateVisualizationRequested:
    artifact_id: str
    prompt: str


@dataclass(frozen=True)
class DeleteVisualizationRequested:
    artifact_id: str


VisualizationEvent = Union[
    LoadDatasetRequested,
    LoadVisualizationsRequested,
    CreateVisualizationRequested,
    UpdateVisualizationRequested,
    DeleteVisualizationRequested,
]
