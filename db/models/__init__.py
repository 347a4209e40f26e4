"""
Model package exports.

Import all SQLAlchemy models here so metadata registration works without
extra imports.
"""

from db.models.kv_entry import KeyValueEntry

__all__ = [
    "KeyValueEntry",
]
