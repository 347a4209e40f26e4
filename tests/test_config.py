"""
tests/test_config.py

Tests for environment-driven settings and the manager factory.
"""

from __future__ import annotations

import pytest

from app import config
from db.config import DEFAULT_STORE_URL, normalize_store_url, resolve_store_url
from db.repositories.kv_repository import InMemoryKeyValueStore
from lifecycle.factory import build_visualization_manager
from lifecycle.states import DatasetLoading, VisualizationIdle
from viz_synthesis.adapter import MockLLMAdapter, OpenAILLMAdapter, build_adapter


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    config.get_llm_settings.cache_clear()
    config.get_pipeline_settings.cache_clear()
    config.get_storage_settings.cache_clear()
    yield
    config.get_llm_settings.cache_clear()
    config.get_pipeline_settings.cache_clear()
    config.get_storage_settings.cache_clear()


class TestLLMSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("LLM_ADAPTER", "LLM_MODEL", "LLM_TEMPERATURE", "LLM_MAX_TOKENS"):
            monkeypatch.delenv(name, raising=False)

        settings = config.get_llm_settings()

        assert settings.adapter == "openai"
        assert settings.model == "gpt-4o"
        assert settings.temperature == 0.1
        assert settings.max_tokens == 4000

    def test_invalid_numbers_fall_back(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LLM_TEMPERATURE", "warm")
        monkeypatch.setenv("LLM_MAX_TOKENS", "lots")

        settings = config.get_llm_settings()

        assert settings.temperature == 0.1
        assert settings.max_tokens == 4000

    def test_unknown_adapter_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LLM_ADAPTER", "carrier-pigeon")
        with pytest.raises(RuntimeError):
            config.get_llm_settings()

    def test_build_adapter_selects_mock(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LLM_ADAPTER", "mock")
        assert isinstance(build_adapter(config.get_llm_settings()), MockLLMAdapter)

    def test_build_adapter_selects_openai(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LLM_ADAPTER", "openai")
        monkeypatch.setenv("LLM_API_KEY", "sk-test")
        assert isinstance(build_adapter(config.get_llm_settings()), OpenAILLMAdapter)


class TestPipelineSettings:
    def test_bounds_applied(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("VIZ_FALLBACK_MAX_CATEGORIES", "0")
        monkeypatch.setenv("VIZ_PROMPT_SAMPLE_ROWS", "-4")

        settings = config.get_pipeline_settings()

        assert settings.fallback_max_categories == 1
        assert settings.prompt_sample_rows == 0

    def test_execution_budget(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("VIZ_EXEC_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("VIZ_EXEC_MAX_STEPS", "50")

        settings = config.get_pipeline_settings()

        assert settings.exec_timeout_seconds == 2.5
        assert settings.exec_max_steps == 1000

    def test_execution_budget_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("VIZ_EXEC_TIMEOUT_SECONDS", raising=False)
        monkeypatch.setenv("VIZ_EXEC_MAX_STEPS", "many")

        settings = config.get_pipeline_settings()

        assert settings.exec_timeout_seconds == 5.0
        assert settings.exec_max_steps == 1_000_000


class TestStoreUrl:
    def test_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("VIZ_STORE_URL", raising=False)
        monkeypatch.delenv("DATABASE_URL", raising=False)
        assert resolve_store_url() == DEFAULT_STORE_URL

    def test_override_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("VIZ_STORE_URL", "sqlite:///other.db")
        monkeypatch.setenv("DATABASE_URL", "postgres://db/viz")
        assert resolve_store_url() == "sqlite:///other.db"

    def test_postgres_normalized(self) -> None:
        assert normalize_store_url("postgres://db/viz") == "postgresql+psycopg://db/viz"


def test_factory_wires_manager(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("VIZ_DATASET_CSV_PATH", "missing.csv")

    manager = build_visualization_manager(store=InMemoryKeyValueStore(), adapter=MockLLMAdapter())

    assert isinstance(manager.dataset_state, DatasetLoading)
    assert isinstance(manager.visualization_state, VisualizationIdle)
