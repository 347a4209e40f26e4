"""Pipeline orchestrator: prompt -> completion -> decode -> synthesize -> execute.

Each create or update request runs the full chain once. On create, any
pipeline failure (transport, empty or malformed completion, synthesis,
execution) ends in the deterministic fallback artifact instead of an error;
there is no second completion call. On update the failure propagates and the
saved artifact is left as it was. Persisting the finished artifact is outside
the chain, so store failures propagate to the caller.

Generated code runs in a worker thread under the configured ExecutionBudget,
so a runaway function ends as a RuntimeFailure without blocking the loop.

Concurrent calls are neither de-duplicated nor cancelled: each runs to
completion and the last write to the collection wins.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from app.config import PipelineSettings, get_pipeline_settings
from app.domain.company import CompanyRecord
from app.domain.visualization import VisualizationArtifact
from app.errors import NetworkFailure, SynthesisFailure, VisualizationPipelineError
from app.failure_codes import RECOVERABLE_FAILURES
from app.logging_utils import log_event, truncate
from app.services.collection_service import VisualizationCollectionService
from pipeline.fallback import build_fallback_artifact
from sandbox.executor import RenderedVisualization, run_visualization
from sandbox.limits import ExecutionBudget
from sandbox.synthesizer import FunctionKind, FunctionSynthesizer, SynthesizedFunction
from viz_synthesis.adapter import BaseLLMAdapter
from viz_synthesis.decoder import decode_completion
from viz_synthesis.prompt_builder import VisualizationPromptBuilder
from viz_synthesis.schema import StructuredCompletion

logger = logging.getLogger(__name__)

_TITLE_MAX_CHARS = 80


def _derive_title(prompt: str, concept: str) -> str:
    text = " ".join(prompt.split()) or " ".join(concept.split()) or "Untitled Visualization"
    if len(text) > _TITLE_MAX_CHARS:
        text = text[: _TITLE_MAX_CHARS - 3].rstrip() + "..."
    return text[0].upper() + text[1:]


class VisualizationOrchestrator:
    """Runs visualization requests and keeps the saved collection current."""

    def __init__(
        self,
        adapter: BaseLLMAdapter,
        collection: VisualizationCollectionService,
        prompt_builder: Optional[VisualizationPromptBuilder] = None,
        synthesizer: Optional[FunctionSynthesizer] = None,
        settings: Optional[PipelineSettings] = None,
    ) -> None:
        self._settings = settings or get_pipeline_settings()
        self._adapter = adapter
        self._collection = collection
        self._prompt_builder = prompt_builder or VisualizationPromptBuilder(
            sample_rows=self._settings.prompt_sample_rows
        )
        self._budget = ExecutionBudget(
            max_steps=self._settings.exec_max_steps,
            timeout_seconds=self._settings.exec_timeout_seconds,
        )
        self._synthesizer = synthesizer or FunctionSynthesizer(budget=self._budget)

    async def create_visualization(
        self,
        prompt: str,
        companies: Sequence[CompanyRecord],
    ) -> VisualizationArtifact:
        """Produce a new artifact for ``prompt`` and append it to the collection.

        Returns:
            The generated artifact, an error artifact when the model declined,
            or the fallback artifact when any pipeline stage failed.

        Raises:
            PersistenceFailure: If the collection cannot be written.
        """
        outbound = self._prompt_builder.build_prompt(prompt, sample=companies)
        artifact = await self._produce(prompt, outbound, companies)
        await self._collection.append(artifact)
        return artifact

    async def update_visualization(
        self,
        artifact_id: str,
        prompt: str,
        companies: Sequence[CompanyRecord],
    ) -> VisualizationArtifact:
        """Rerun the pipeline against an existing artifact and replace it in place.

        The id and ``created_at`` of the existing artifact are kept;
        ``updated_at`` is set to now. There is no fallback: when a stage
        fails the stored artifact is not touched.

        Raises:
            ArtifactNotFoundError: If ``artifact_id`` is not in the collection.
            VisualizationPipelineError: If any pipeline stage fails.
            PersistenceFailure: If the collection cannot be read or written.
        """
        existing = await self._collection.get(artifact_id)
        outbound = self._prompt_builder.build_update_prompt(existing, prompt, sample=companies)
        produced = await self._produce(prompt, outbound, companies, allow_fallback=False)
        updated = produced.model_copy(
            update={
                "id": existing.id,
                "created_at": existing.created_at,
                "updated_at": datetime.now(timezone.utc),
            }
        )
        await self._collection.replace(updated)
        return updated

    async def delete_visualization(self, artifact_id: str) -> None:
        await self._collection.delete(artifact_id)

    async def list_visualizations(self) -> list[VisualizationArtifact]:
        return await self._collection.list_artifacts()

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _produce(
        self,
        prompt: str,
        outbound: str,
        companies: Sequence[CompanyRecord],
        allow_fallback: bool = True,
    ) -> VisualizationArtifact:
        try:
            artifact = await self._run_pipeline(prompt, outbound, companies)
        except VisualizationPipelineError as exc:
            if not allow_fallback or exc.code not in RECOVERABLE_FAILURES:
                log_event(
                    logger,
                    logging.WARNING,
                    "pipeline.failed",
                    reason=exc.code,
                    stage=exc.stage,
                    error=str(exc),
                )
                raise
            return self._fallback(prompt, companies, exc)

        log_event(
            logger,
            logging.INFO,
            "pipeline.completed",
            artifact_id=artifact.id,
            is_error=artifact.is_error,
            title=artifact.title,
        )
        return artifact

    async def _run_pipeline(
        self,
        prompt: str,
        outbound: str,
        companies: Sequence[CompanyRecord],
    ) -> VisualizationArtifact:
        raw = await self._complete(outbound)
        log_event(
            logger,
            logging.DEBUG,
            "completion.raw",
            chars=len(raw),
            text=truncate(raw, self._settings.trace_max_chars),
        )

        completion = decode_completion(raw)
        log_event(
            logger,
            logging.DEBUG,
            "completion.decoded",
            **{
                name: truncate(value, self._settings.trace_max_chars)
                for name, value in completion.model_dump().items()
            },
        )

        if completion.is_error:
            logger.info("Model declined the request: %s", completion.error_message)
            return VisualizationArtifact(
                id=uuid.uuid4().hex,
                title=_derive_title(prompt, completion.concept),
                prompt=prompt,
                methodology=completion.methodology,
                concept=completion.concept,
                error_message=completion.error_message,
            )

        data_fn, svg_fn, rendered, hover_source = await asyncio.to_thread(
            self._synthesize_and_run, completion, companies
        )

        log_event(
            logger,
            logging.DEBUG,
            "function.synthesized",
            data_function=data_fn.strategy,
            svg_function=svg_fn.strategy,
            hover_callback=bool(hover_source),
            svg_chars=len(rendered.svg),
            hover_targets=len(rendered.hover_payloads),
        )

        return VisualizationArtifact(
            id=uuid.uuid4().hex,
            title=_derive_title(prompt, completion.concept),
            prompt=prompt,
            methodology=completion.methodology,
            concept=completion.concept,
            data_function_source=completion.data_function_source,
            svg_function_source=completion.svg_function_source,
            hover_callback_source=hover_source,
        )

    async def _complete(self, outbound: str) -> str:
        try:
            return await self._adapter.generate(outbound)
        except VisualizationPipelineError:
            raise
        except Exception as exc:  # noqa: BLE001  (any transport error ends in the fallback)
            raise NetworkFailure(
                f"Completion request failed: {type(exc).__name__}: {exc}",
                stage="generate",
            ) from exc

    def _synthesize_and_run(
        self,
        completion: StructuredCompletion,
        companies: Sequence[CompanyRecord],
    ) -> tuple[SynthesizedFunction, SynthesizedFunction, RenderedVisualization, Optional[str]]:
        data_fn = self._synthesize(completion.data_function_source, FunctionKind.DATA)
        svg_fn = self._synthesize(completion.svg_function_source, FunctionKind.SVG)
        rendered = run_visualization(data_fn, svg_fn, companies, self._budget)
        return data_fn, svg_fn, rendered, self._checked_hover_source(completion)

    def _synthesize(self, source: Optional[str], kind: FunctionKind) -> SynthesizedFunction:
        synthesized = self._synthesizer.synthesize(source, kind)
        logger.debug("Synthesized %s via %s strategy", kind.value, synthesized.strategy)
        return synthesized

    def _checked_hover_source(self, completion: StructuredCompletion) -> Optional[str]:
        source = completion.hover_callback_source
        if not source:
            return None
        try:
            self._synthesize(source, FunctionKind.HOVER)
        except SynthesisFailure as exc:
            logger.warning("Dropping hover callback: %s", exc)
            return None
        return source

    def _fallback(
        self,
        prompt: str,
        companies: Sequence[CompanyRecord],
        exc: VisualizationPipelineError,
    ) -> VisualizationArtifact:
        log_event(
            logger,
            logging.WARNING,
            "pipeline.fallback",
            reason=exc.code,
            stage=exc.stage,
            error=str(exc),
        )
        return build_fallback_artifact(
            prompt,
            companies,
            reason=exc.code,
            field=self._settings.fallback_field,
            limit=self._settings.fallback_max_categories,
        )
