"""
db/session.py

SQLAlchemy engine and session factory for the key-value store.
"""

from __future__ import annotations

import os

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from db.base import Base
from db.config import resolve_store_url


def _get_bool_env(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def create_store_engine(url: str | None = None) -> Engine:
    """
    Create an engine for the store URL and make sure its tables exist.

    In-memory SQLite shares one connection across threads so the store can
    be used from ``asyncio.to_thread`` workers.
    """

    database_url = url or resolve_store_url()
    echo = _get_bool_env("SQL_ECHO", default=False)

    if database_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if database_url in {"sqlite://", "sqlite:///:memory:"}:
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, echo=echo, **kwargs)
    else:
        engine = create_engine(database_url, echo=echo, pool_pre_ping=True)

    # Registers KeyValueEntry on Base.metadata
    import db.models  # noqa: F401, PLC0415

    Base.metadata.create_all(engine)
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        class_=Session,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
