"""
Structured logging helpers for pipeline stage traces.
"""

from __future__ import annotations

import json
import logging
from typing import Any


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line as compact JSON.
    """

    if not logger.isEnabledFor(level):
        return
    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))


def truncate(text: str | None, limit: int) -> str | None:
    """
    Clip long model output so traces stay readable.
    """

    if text is None or len(text) <= limit:
        return text
    return f"{text[:limit]}... [{len(text) - limit} more chars]"
