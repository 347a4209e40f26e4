"""
db/models/kv_entry.py

One cached value in the key-value store.
"""

from __future__ import annotations

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class KeyValueEntry(Base, TimestampMixin):
    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        comment="Cache key, e.g. saas_visualizations",
    )
    value: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Serialized entity list (JSON)",
    )
