"""Wires a VisualizationManager from environment settings."""

from __future__ import annotations

from typing import Optional

from app.config import get_llm_settings, get_pipeline_settings, get_storage_settings
from app.services.collection_service import VisualizationCollectionService
from app.services.dataset_service import CSVCompanySource, DatasetService
from db.repositories.kv_repository import KeyValueStore, SqlAlchemyKeyValueStore
from db.session import create_session_factory, create_store_engine
from lifecycle.manager import VisualizationManager
from pipeline.orchestrator import VisualizationOrchestrator
from viz_synthesis.adapter import BaseLLMAdapter, build_adapter


def build_visualization_manager(
    store: Optional[KeyValueStore] = None,
    adapter: Optional[BaseLLMAdapter] = None,
) -> VisualizationManager:
    """Build a manager backed by the configured store, dataset and adapter.

    Args:
        store: Key-value store to use instead of the one at VIZ_STORE_URL.
        adapter: Completion adapter to use instead of the LLM_ADAPTER choice.
    """
    storage = get_storage_settings()
    if store is None:
        engine = create_store_engine(storage.store_url)
        store = SqlAlchemyKeyValueStore(create_session_factory(engine))

    collection = VisualizationCollectionService(store)
    orchestrator = VisualizationOrchestrator(
        adapter or build_adapter(get_llm_settings()),
        collection,
        settings=get_pipeline_settings(),
    )
    dataset = DatasetService(store, CSVCompanySource(storage.dataset_csv_path))
    return VisualizationManager(orchestrator, dataset, collection)
