"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files, resolve_store_url

_ALLOWED_ADAPTERS = {"openai", "mock"}


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def _require_adapter_name() -> str:
    """
    Read and validate LLM_ADAPTER. Unknown adapters raise RuntimeError.
    """

    adapter = _get_str_env("LLM_ADAPTER", "openai").lower()
    if adapter not in _ALLOWED_ADAPTERS:
        raise RuntimeError(
            f"LLM_ADAPTER '{adapter}' is not valid. "
            f"Allowed values: {sorted(_ALLOWED_ADAPTERS)}."
        )
    return adapter


@dataclass(frozen=True)
class LLMSettings:
    """
    Completion service settings.
    """

    adapter: str = "openai"
    model: str = "gpt-4o"
    temperature: float = 0.1
    max_tokens: int = 4000
    api_key: str | None = None
    base_url: str | None = None


@dataclass(frozen=True)
class PipelineSettings:
    """
    Orchestrator and fallback behaviour.
    """

    fallback_field: str = "industry"
    fallback_max_categories: int = 10
    trace_max_chars: int = 2000
    prompt_sample_rows: int = 3
    exec_max_steps: int = 1_000_000
    exec_timeout_seconds: float = 5.0


@dataclass(frozen=True)
class StorageSettings:
    """
    Key-value store and dataset source locations.
    """

    store_url: str = "sqlite:///viz_store.db"
    dataset_csv_path: str = "data/top_100_saas_companies_2025.csv"


@lru_cache(maxsize=1)
def get_llm_settings() -> LLMSettings:
    """
    Return cached completion service settings from environment variables.

    Raises RuntimeError if LLM_ADAPTER names an unknown adapter.
    """

    return LLMSettings(
        adapter=_require_adapter_name(),
        model=_get_str_env("LLM_MODEL", "gpt-4o"),
        temperature=min(2.0, max(0.0, _get_float_env("LLM_TEMPERATURE", 0.1))),
        max_tokens=max(256, _get_int_env("LLM_MAX_TOKENS", 4000)),
        api_key=_get_optional_str_env("LLM_API_KEY") or _get_optional_str_env("OPENAI_API_KEY"),
        base_url=_get_optional_str_env("LLM_BASE_URL"),
    )


@lru_cache(maxsize=1)
def get_pipeline_settings() -> PipelineSettings:
    """
    Return cached pipeline settings from environment variables.
    """

    return PipelineSettings(
        fallback_field=_get_str_env("VIZ_FALLBACK_FIELD", "industry"),
        fallback_max_categories=max(1, _get_int_env("VIZ_FALLBACK_MAX_CATEGORIES", 10)),
        trace_max_chars=max(100, _get_int_env("VIZ_TRACE_MAX_CHARS", 2000)),
        prompt_sample_rows=max(0, _get_int_env("VIZ_PROMPT_SAMPLE_ROWS", 3)),
        exec_max_steps=max(1000, _get_int_env("VIZ_EXEC_MAX_STEPS", 1_000_000)),
        exec_timeout_seconds=max(0.1, _get_float_env("VIZ_EXEC_TIMEOUT_SECONDS", 5.0)),
    )


@lru_cache(maxsize=1)
def get_storage_settings() -> StorageSettings:
    """
    Return cached storage settings from environment variables.
    """

    return StorageSettings(
        store_url=resolve_store_url(),
        dataset_csv_path=_get_str_env(
            "VIZ_DATASET_CSV_PATH", "data/top_100_saas_companies_2025.csv"
        ),
    )
