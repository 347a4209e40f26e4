"""
app/services/collection_service.py

Ordered collection of saved visualization artifacts.

The whole collection is stored as one JSON array under a single key, so
every mutation is a read-modify-write of that key. Concurrent writers can
lose updates; see ``db.repositories.kv_repository``.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from app.domain.visualization import ArtifactListAdapter, VisualizationArtifact
from app.errors import ArtifactNotFoundError, PersistenceFailure
from db.repositories.kv_repository import KeyValueStore

logger = logging.getLogger(__name__)

COLLECTION_KEY = "saas_visualizations"


class VisualizationCollectionService:
    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    async def list_artifacts(self) -> list[VisualizationArtifact]:
        """Return all saved artifacts in insertion order."""

        raw = await self._store.get(COLLECTION_KEY)
        if raw is None:
            return []
        try:
            return ArtifactListAdapter.validate_json(raw)
        except ValidationError as exc:
            raise PersistenceFailure(
                f"Stored visualization collection is corrupt: {exc.error_count()} validation error(s)",
                stage="collection_read",
            ) from exc

    async def get(self, artifact_id: str) -> VisualizationArtifact:
        for artifact in await self.list_artifacts():
            if artifact.id == artifact_id:
                return artifact
        raise ArtifactNotFoundError(artifact_id)

    async def append(self, artifact: VisualizationArtifact) -> None:
        artifacts = await self.list_artifacts()
        artifacts.append(artifact)
        await self._write(artifacts)
        logger.info("Saved visualization id=%s total=%d", artifact.id, len(artifacts))

    async def replace(self, artifact: VisualizationArtifact) -> None:
        """Swap the entry with the same id in place.

        Raises:
            ArtifactNotFoundError: If no entry has ``artifact.id``.
        """

        artifacts = await self.list_artifacts()
        for index, existing in enumerate(artifacts):
            if existing.id == artifact.id:
                artifacts[index] = artifact
                await self._write(artifacts)
                logger.info("Replaced visualization id=%s", artifact.id)
                return
        raise ArtifactNotFoundError(artifact.id)

    async def delete(self, artifact_id: str) -> None:
        """Remove exactly one entry, keeping the order of the rest.

        Raises:
            ArtifactNotFoundError: If no entry has ``artifact_id``.
        """

        artifacts = await self.list_artifacts()
        remaining = [artifact for artifact in artifacts if artifact.id != artifact_id]
        if len(remaining) == len(artifacts):
            raise ArtifactNotFoundError(artifact_id)
        await self._write(remaining)
        logger.info("Deleted visualization id=%s remaining=%d", artifact_id, len(remaining))

    async def _write(self, artifacts: list[VisualizationArtifact]) -> None:
        payload = ArtifactListAdapter.dump_json(artifacts).decode("utf-8")
        await self._store.set(COLLECTION_KEY, payload)
