"""
Key-value stores backing the dataset and visualization caches.

The contract is deliberately small: ``get(key)`` returns the stored text or
None, ``set(key, value)`` overwrites. There are no transactions spanning a
get and a set, so two concurrent read-modify-write cycles on one key lose
an update (last write wins). Callers assume a single writer.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol, runtime_checkable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.errors import PersistenceFailure
from db.models.kv_entry import KeyValueEntry

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...


class InMemoryKeyValueStore:
    """Dict-backed store for tests and single-process use."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value


class SqlAlchemyKeyValueStore:
    """
    Store backed by the ``kv_entries`` table.

    Each call opens its own session and commits before returning. Blocking
    database work runs in a worker thread so the event loop stays free.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    async def get(self, key: str) -> str | None:
        return await asyncio.to_thread(self._get_sync, key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._set_sync, key, value)

    def _get_sync(self, key: str) -> str | None:
        try:
            with self._session_factory() as session:
                entry = session.get(KeyValueEntry, key)
                return entry.value if entry is not None else None
        except SQLAlchemyError as exc:
            logger.exception("Key-value read failed key=%s", key)
            raise PersistenceFailure(f"Failed to read '{key}': {exc}", stage="store_get") from exc

    def _set_sync(self, key: str, value: str) -> None:
        try:
            with self._session_factory() as session:
                entry = session.get(KeyValueEntry, key)
                if entry is None:
                    session.add(KeyValueEntry(key=key, value=value))
                else:
                    entry.value = value
                session.commit()
        except SQLAlchemyError as exc:
            logger.exception("Key-value write failed key=%s", key)
            raise PersistenceFailure(f"Failed to write '{key}': {exc}", stage="store_set") from exc
