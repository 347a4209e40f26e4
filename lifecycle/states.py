"""State variants for the three lifecycle tracks.

Each track holds exactly one state object at a time and the manager swaps
it out wholesale on every transition. The unions are closed; consumers
match on them exhaustively.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from app.domain.company import CompanyRecord
from app.domain.visualization import VisualizationArtifact


# ---------------------------------------------------------------------------
# Dataset track
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatasetLoading:
    pass


@dataclass(frozen=True)
class DatasetLoaded:
    companies: tuple[CompanyRecord, ...]


@dataclass(frozen=True)
class DatasetError:
    message: str


DatasetState = Union[DatasetLoading, DatasetLoaded, DatasetError]


# ---------------------------------------------------------------------------
# Current visualization track
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VisualizationIdle:
    """Initial state only; nothing transitions back here."""


@dataclass(frozen=True)
class VisualizationCreating:
    pass


@dataclass(frozen=True)
class VisualizationCreated:
    artifact: VisualizationArtifact


@dataclass(frozen=True)
class VisualizationCreateFailed:
    message: str


@dataclass(frozen=True)
class VisualizationUpdating:
    pass


@dataclass(frozen=True)
class VisualizationUpdated:
    artifact: VisualizationArtifact


@dataclass(frozen=True)
class VisualizationUpdateFailed:
    message: str


VisualizationState = Union[
    VisualizationIdle,
    VisualizationCreating,
    VisualizationCreated,
    VisualizationCreateFailed,
    VisualizationUpdating,
    VisualizationUpdated,
    VisualizationUpdateFailed,
]


# ---------------------------------------------------------------------------
# Collection track
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CollectionLoading:
    pass


@dataclass(frozen=True)
class CollectionLoaded:
    artifacts: tuple[VisualizationArtifact, ...]


@dataclass(frozen=True)
class CollectionError:
    message: str


CollectionState = Union[CollectionLoading, CollectionLoaded, CollectionError]
