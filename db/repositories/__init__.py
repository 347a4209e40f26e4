"""
Repository layer exports.
"""

from db.repositories.kv_repository import (
    InMemoryKeyValueStore,
    KeyValueStore,
    SqlAlchemyKeyValueStore,
)

__all__ = [
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "SqlAlchemyKeyValueStore",
]
