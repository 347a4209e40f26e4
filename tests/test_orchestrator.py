"""
tests/test_orchestrator.py

Tests for VisualizationOrchestrator.

Coverage
--------
- Happy path: artifact assembled, persisted, sources kept
- ERROR completion: error artifact, synthesizer never called
- Fallback on transport error, empty completion, missing section,
  throwing data function, invalid SVG, sandbox violation
- Invalid hover callback dropped, artifact still produced
- Runaway and deeply nested data functions end in the fallback
- Update keeps id and created_at, replaces in place
- Failed update raises and leaves the saved artifact untouched
- Update of unknown id, delete order preservation
- Persistence failure while saving propagates
- Structured trace events
"""

from __future__ import annotations

import asyncio
import json
import logging

import pytest

from app.config import PipelineSettings
from app.errors import ArtifactNotFoundError, PersistenceFailure, VisualizationPipelineError
from app.services.collection_service import VisualizationCollectionService
from db.repositories.kv_repository import InMemoryKeyValueStore
from pipeline.fallback import FALLBACK_TITLE
from pipeline.orchestrator import VisualizationOrchestrator
from sandbox.synthesizer import FunctionSynthesizer
from viz_synthesis.adapter import BaseLLMAdapter, MockLLMAdapter

from tests.factories import build_response


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FailingAdapter(BaseLLMAdapter):
    def __init__(self) -> None:
        self.calls = 0

    async def generate(self, prompt: str) -> str:
        self.calls += 1
        raise ConnectionError("connection reset by peer")


class SequenceAdapter(BaseLLMAdapter):
    def __init__(self, *responses: str) -> None:
        self._responses = list(responses)
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self._responses.pop(0)


class OneShotAdapter(BaseLLMAdapter):
    """Answers the first request, then the connection drops."""

    def __init__(self, response: str) -> None:
        self._response = response
        self.calls = 0

    async def generate(self, prompt: str) -> str:
        self.calls += 1
        if self.calls > 1:
            raise ConnectionError("connection reset by peer")
        return self._response


class SpySynthesizer(FunctionSynthesizer):
    def __init__(self) -> None:
        super().__init__()
        self.calls: list[str] = []

    def synthesize(self, source, kind):
        self.calls.append(kind.value)
        return super().synthesize(source, kind)


class BrokenStore(InMemoryKeyValueStore):
    async def set(self, key: str, value: str) -> None:
        raise PersistenceFailure("disk full", stage="store_set")


def _orchestrator(adapter: BaseLLMAdapter, store=None, synthesizer=None, settings=None):
    collection = VisualizationCollectionService(store or InMemoryKeyValueStore())
    orchestrator = VisualizationOrchestrator(
        adapter,
        collection,
        synthesizer=synthesizer,
        settings=settings or PipelineSettings(),
    )
    return orchestrator, collection


NESTING_FUNCTION = (
    "def nest(companies):\n"
    "    value = []\n"
    "    for _ in range(100000):\n"
    "        value = [value]\n"
    "    return value"
)

ERROR_RESPONSE = "\n".join(
    [
        "METHODOLOGY: The user wants revenue history.",
        "VISUALIZATION CONCEPT: Cannot be drawn.",
        "ERROR: The dataset has no time series.",
        "DATA_FUNCTION: N/A",
        "SVG_FUNCTION: N/A",
    ]
)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


class TestCreate:
    def test_happy_path_persists_artifact(self, companies) -> None:
        orchestrator, collection = _orchestrator(SequenceAdapter(build_response()))

        artifact = asyncio.run(orchestrator.create_visualization("count the companies", companies))

        assert artifact.is_fallback is False
        assert artifact.title == "Count the companies"
        assert artifact.methodology == "Count every company in the dataset."
        assert artifact.data_function_source == "lambda companies: len(companies)"
        assert len(artifact.id) == 32
        assert asyncio.run(collection.list_artifacts()) == [artifact]

    def test_mock_adapter_response_is_renderable(self, companies) -> None:
        adapter = MockLLMAdapter()
        orchestrator, _ = _orchestrator(adapter)

        artifact = asyncio.run(orchestrator.create_visualization("industries", companies))

        assert artifact.is_fallback is False
        assert artifact.hover_callback_source is not None
        assert "industries" in adapter.prompts[0]

    def test_error_completion_skips_synthesis(self, companies) -> None:
        spy = SpySynthesizer()
        orchestrator, collection = _orchestrator(SequenceAdapter(ERROR_RESPONSE), synthesizer=spy)

        artifact = asyncio.run(orchestrator.create_visualization("revenue over time", companies))

        assert spy.calls == []
        assert artifact.error_message == "The dataset has no time series."
        assert artifact.data_function_source is None
        assert artifact.svg_function_source is None
        assert artifact.is_fallback is False
        assert asyncio.run(collection.list_artifacts())[0].is_error

    def test_invalid_hover_callback_is_dropped(self, companies) -> None:
        response = build_response(hover_callback="lambda event: __import__('os')")
        orchestrator, _ = _orchestrator(SequenceAdapter(response))

        artifact = asyncio.run(orchestrator.create_visualization("x", companies))

        assert artifact.is_fallback is False
        assert artifact.hover_callback_source is None


# ---------------------------------------------------------------------------
# Fallback
# ---------------------------------------------------------------------------


class TestFallback:
    def test_transport_error_falls_back_without_retry(self, companies) -> None:
        adapter = FailingAdapter()
        orchestrator, _ = _orchestrator(adapter)

        artifact = asyncio.run(orchestrator.create_visualization("x", companies))

        assert adapter.calls == 1
        assert artifact.is_fallback is True
        assert artifact.fallback_reason == "network_failure"
        assert artifact.title == FALLBACK_TITLE
        assert artifact.summary.categories == ["SaaS", "FinTech", "HealthTech"]
        assert artifact.summary.counts == [2, 1, 1]

    @pytest.mark.parametrize(
        ("response", "reason"),
        [
            ("", "empty_completion"),
            ("no markers here", "parse_failure"),
            (
                "METHODOLOGY: m\nVISUALIZATION CONCEPT: c\nDATA_FUNCTION: lambda c: len(c)",
                "missing_field",
            ),
            (build_response(data_function="lambda c: c[100]['name']"), "runtime_failure"),
            (build_response(svg_function="lambda n: '<div/>'"), "contract_violation"),
            (build_response(data_function="lambda c: open('x')"), "synthesis_failure"),
            (build_response(data_function="function(c){ return c.length; }"), "synthesis_failure"),
            (build_response(data_function=NESTING_FUNCTION), "contract_violation"),
        ],
    )
    def test_stage_failures_fall_back(self, companies, response: str, reason: str) -> None:
        orchestrator, collection = _orchestrator(SequenceAdapter(response))

        artifact = asyncio.run(orchestrator.create_visualization("x", companies))

        assert artifact.is_fallback is True
        assert artifact.fallback_reason == reason
        assert asyncio.run(collection.list_artifacts()) == [artifact]

    def test_endless_loop_falls_back(self, companies) -> None:
        response = build_response(data_function="def spin(companies):\n    while True:\n        pass")
        orchestrator, collection = _orchestrator(
            SequenceAdapter(response),
            settings=PipelineSettings(exec_max_steps=10_000),
        )

        artifact = asyncio.run(orchestrator.create_visualization("x", companies))

        assert artifact.is_fallback is True
        assert artifact.fallback_reason == "runtime_failure"
        assert asyncio.run(collection.list_artifacts()) == [artifact]

    def test_fallback_is_logged(self, companies, caplog: pytest.LogCaptureFixture) -> None:
        orchestrator, _ = _orchestrator(FailingAdapter())

        with caplog.at_level(logging.WARNING, logger="pipeline.orchestrator"):
            asyncio.run(orchestrator.create_visualization("x", companies))

        events = [json.loads(record.getMessage()) for record in caplog.records]
        assert events[0]["event"] == "pipeline.fallback"
        assert events[0]["reason"] == "network_failure"


# ---------------------------------------------------------------------------
# Update / delete
# ---------------------------------------------------------------------------


class TestUpdateDelete:
    def test_update_keeps_identity_and_position(self, companies) -> None:
        adapter = SequenceAdapter(
            build_response(),
            build_response(),
            build_response(data_function="lambda c: len(c) * 2"),
        )
        orchestrator, collection = _orchestrator(adapter)
        first = asyncio.run(orchestrator.create_visualization("first", companies))
        second = asyncio.run(orchestrator.create_visualization("second", companies))

        updated = asyncio.run(orchestrator.update_visualization(first.id, "double it", companies))

        assert updated.id == first.id
        assert updated.created_at == first.created_at
        assert updated.updated_at is not None
        assert updated.data_function_source == "lambda c: len(c) * 2"
        assert "CURRENT VISUALIZATION" in adapter.prompts[-1]
        assert [a.id for a in asyncio.run(collection.list_artifacts())] == [first.id, second.id]

    @pytest.mark.parametrize(
        ("response", "code"),
        [
            ("", "empty_completion"),
            ("no markers here", "parse_failure"),
            (build_response(data_function="lambda c: c[100]['name']"), "runtime_failure"),
        ],
    )
    def test_failed_update_keeps_saved_artifact(self, companies, response: str, code: str) -> None:
        orchestrator, collection = _orchestrator(SequenceAdapter(build_response(), response))
        first = asyncio.run(orchestrator.create_visualization("first", companies))

        with pytest.raises(VisualizationPipelineError) as exc_info:
            asyncio.run(orchestrator.update_visualization(first.id, "change it", companies))

        assert exc_info.value.code == code
        assert asyncio.run(collection.get(first.id)) == first
        assert asyncio.run(collection.list_artifacts()) == [first]

    def test_update_transport_error_is_not_a_fallback(self, companies) -> None:
        orchestrator, collection = _orchestrator(OneShotAdapter(build_response()))
        first = asyncio.run(orchestrator.create_visualization("first", companies))

        with pytest.raises(VisualizationPipelineError) as exc_info:
            asyncio.run(orchestrator.update_visualization(first.id, "change it", companies))

        assert exc_info.value.code == "network_failure"
        assert asyncio.run(collection.get(first.id)).is_fallback is False

    def test_update_unknown_id(self, companies) -> None:
        orchestrator, _ = _orchestrator(SequenceAdapter(build_response()))
        with pytest.raises(ArtifactNotFoundError):
            asyncio.run(orchestrator.update_visualization("missing", "x", companies))

    def test_delete_preserves_order(self, companies) -> None:
        orchestrator, _ = _orchestrator(
            SequenceAdapter(build_response(), build_response(), build_response())
        )
        ids = [
            asyncio.run(orchestrator.create_visualization(name, companies)).id
            for name in ("a", "b", "c")
        ]

        asyncio.run(orchestrator.delete_visualization(ids[1]))

        remaining = asyncio.run(orchestrator.list_visualizations())
        assert [artifact.id for artifact in remaining] == [ids[0], ids[2]]

    def test_delete_unknown_id(self) -> None:
        orchestrator, _ = _orchestrator(SequenceAdapter())
        with pytest.raises(ArtifactNotFoundError):
            asyncio.run(orchestrator.delete_visualization("missing"))

    def test_persistence_failure_propagates(self, companies) -> None:
        orchestrator, _ = _orchestrator(SequenceAdapter(build_response()), store=BrokenStore())
        with pytest.raises(PersistenceFailure):
            asyncio.run(orchestrator.create_visualization("x", companies))


def test_every_failure_code_is_classified() -> None:
    from app import errors
    from app.failure_codes import RECOVERABLE_FAILURES, SURFACED_FAILURES
    from viz_synthesis.decoder import MissingFieldError

    leaf_errors = [
        errors.NetworkFailure,
        errors.EmptyCompletion,
        errors.ParseFailure,
        MissingFieldError,
        errors.SynthesisFailure,
        errors.RuntimeFailure,
        errors.ContractViolation,
        errors.PersistenceFailure,
        errors.ArtifactNotFoundError,
    ]
    codes = {error.code for error in leaf_errors}

    assert codes == set(RECOVERABLE_FAILURES) | set(SURFACED_FAILURES)
    assert not set(RECOVERABLE_FAILURES) & set(SURFACED_FAILURES)
