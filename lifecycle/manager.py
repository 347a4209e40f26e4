"""Lifecycle state machine for the visualization experience.

Three independent tracks are kept:

- dataset: Loading -> Loaded | Error
- visualization (the one being created or updated): Idle -> Creating ->
  Created | CreateFailed, or Updating -> Updated | UpdateFailed
- collection: Loading -> Loaded | Error

Operations are not serialized. Two overlapping creates both run to the end
and publish their own terminal states; whichever finishes last is what the
track shows. Nothing is cancelled.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence, Union

from typing_extensions import assert_never

from app.domain.company import CompanyRecord
from app.errors import VisualizationPipelineError
from app.failure_codes import SURFACED_FAILURES
from app.services.collection_service import VisualizationCollectionService
from app.services.dataset_service import DatasetService
from lifecycle.events import (
    CreateVisualizationRequested,
    DeleteVisualizationRequested,
    LoadDatasetRequested,
    LoadVisualizationsRequested,
    UpdateVisualizationRequested,
    VisualizationEvent,
)
from lifecycle.states import (
    CollectionError,
    CollectionLoaded,
    CollectionLoading,
    CollectionState,
    DatasetError,
    DatasetLoaded,
    DatasetLoading,
    DatasetState,
    VisualizationCreated,
    VisualizationCreateFailed,
    VisualizationCreating,
    VisualizationIdle,
    VisualizationState,
    VisualizationUpdated,
    VisualizationUpdateFailed,
    VisualizationUpdating,
)
from pipeline.orchestrator import VisualizationOrchestrator

logger = logging.getLogger(__name__)

DATASET_TRACK = "dataset"
VISUALIZATION_TRACK = "visualization"
COLLECTION_TRACK = "collection"


def _log_failure(exc: VisualizationPipelineError, message: str, *args: object) -> None:
    """Store and lookup failures log at ERROR, pipeline-stage failures at WARNING."""
    level = logging.ERROR if exc.code in SURFACED_FAILURES else logging.WARNING
    logger.log(level, message, *args, exc)


AnyState = Union[DatasetState, VisualizationState, CollectionState]
StateListener = Callable[[str, AnyState], None]


class VisualizationManager:
    """Owns the three track states and drives them from requests."""

    def __init__(
        self,
        orchestrator: VisualizationOrchestrator,
        dataset_service: DatasetService,
        collection_service: VisualizationCollectionService,
    ) -> None:
        self._orchestrator = orchestrator
        self._dataset_service = dataset_service
        self._collection_service = collection_service
        self._dataset_state: DatasetState = DatasetLoading()
        self._visualization_state: VisualizationState = VisualizationIdle()
        self._collection_state: CollectionState = CollectionLoading()
        self._listeners: list[StateListener] = []

    @property
    def dataset_state(self) -> DatasetState:
        return self._dataset_state

    @property
    def visualization_state(self) -> VisualizationState:
        return self._visualization_state

    @property
    def collection_state(self) -> CollectionState:
        return self._collection_state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener`` for every transition; returns an unsubscribe callable.

        A listener that raises is logged and skipped; the transition and the
        remaining listeners are not affected.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Event entry point
    # ------------------------------------------------------------------

    async def dispatch(self, event: VisualizationEvent) -> None:
        if isinstance(event, LoadDatasetRequested):
            await self.load_dataset()
        elif isinstance(event, LoadVisualizationsRequested):
            await self.load_visualizations()
        elif isinstance(event, CreateVisualizationRequested):
            await self.create_visualization(event.prompt)
        elif isinstance(event, UpdateVisualizationRequested):
            await self.update_visualization(event.artifact_id, event.prompt)
        elif isinstance(event, DeleteVisualizationRequested):
            await self.delete_visualization(event.artifact_id)
        else:
            assert_never(event)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def load_dataset(self) -> None:
        self._set_dataset(DatasetLoading())
        try:
            companies = await self._dataset_service.load_companies()
        except VisualizationPipelineError as exc:
            logger.error("Dataset load failed: %s", exc)
            self._set_dataset(DatasetError(str(exc) or "Failed to load dataset"))
            return
        self._set_dataset(DatasetLoaded(tuple(companies)))

    async def load_visualizations(self) -> None:
        self._set_collection(CollectionLoading())
        try:
            artifacts = await self._collection_service.list_artifacts()
        except VisualizationPipelineError as exc:
            logger.error("Visualization collection load failed: %s", exc)
            self._set_collection(CollectionError(str(exc) or "Failed to load visualizations"))
            return
        self._set_collection(CollectionLoaded(tuple(artifacts)))

    async def create_visualization(self, prompt: str) -> None:
        """Load the dataset, then create a visualization from it.

        The collection is reloaded after a successful create.
        """
        await self.load_dataset()
        companies = self._loaded_companies()
        if companies is None:
            self._set_visualization(
                VisualizationCreateFailed(f"Dataset unavailable: {self._dataset_error()}")
            )
            return

        self._set_visualization(VisualizationCreating())
        try:
            artifact = await self._orchestrator.create_visualization(prompt, companies)
        except VisualizationPipelineError as exc:
            _log_failure(exc, "Create visualization failed: %s")
            self._set_visualization(
                VisualizationCreateFailed(str(exc) or "Failed to create visualization")
            )
            return
        self._set_visualization(VisualizationCreated(artifact))
        await self.load_visualizations()

    async def update_visualization(self, artifact_id: str, prompt: str) -> None:
        """Revise an existing visualization.

        Uses the loaded dataset when there is one, otherwise loads it first.
        """
        self._set_visualization(VisualizationUpdating())
        companies = self._loaded_companies()
        if companies is None:
            await self.load_dataset()
            companies = self._loaded_companies()
        if companies is None:
            self._set_visualization(
                VisualizationUpdateFailed(f"Dataset unavailable: {self._dataset_error()}")
            )
            return

        try:
            artifact = await self._orchestrator.update_visualization(artifact_id, prompt, companies)
        except VisualizationPipelineError as exc:
            _log_failure(exc, "Update visualization failed id=%s: %s", artifact_id)
            self._set_visualization(
                VisualizationUpdateFailed(str(exc) or "Failed to update visualization")
            )
            return
        self._set_visualization(VisualizationUpdated(artifact))
        await self.load_visualizations()

    async def delete_visualization(self, artifact_id: str) -> None:
        """Delete one saved visualization; failures are logged and change no state."""
        try:
            await self._orchestrator.delete_visualization(artifact_id)
        except VisualizationPipelineError as exc:
            _log_failure(exc, "Delete visualization failed id=%s: %s", artifact_id)
            return
        await self.load_visualizations()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _loaded_companies(self) -> Optional[Sequence[CompanyRecord]]:
        state = self._dataset_state
        if isinstance(state, DatasetLoaded):
            return state.companies
        return None

    def _dataset_error(self) -> str:
        state = self._dataset_state
        if isinstance(state, DatasetError):
            return state.message
        if isinstance(state, (DatasetLoading, DatasetLoaded)):
            return "dataset is not loaded"
        assert_never(state)

    def _set_dataset(self, state: DatasetState) -> None:
        self._dataset_state = state
        self._publish(DATASET_TRACK, state)

    def _set_visualization(self, state: VisualizationState) -> None:
        self._visualization_state = state
        self._publish(VISUALIZATION_TRACK, state)

    def _set_collection(self, state: CollectionState) -> None:
        self._collection_state = state
        self._publish(COLLECTION_TRACK, state)

    def _publish(self, track: str, state: AnyState) -> None:
        logger.debug("Transition %s -> %s", track, type(state).__name__)
        for listener in list(self._listeners):
            try:
                listener(track, state)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "State listener %r failed on %s -> %s", listener, track, type(state).__name__
                )
