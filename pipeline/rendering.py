"""Display-time rendering of saved artifacts.

Artifacts only store source text. The display collaborator calls
``render_artifact`` to rebuild the functions in the sandbox, produce the SVG
and get a handle for routing pointer events to the hover callback.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from app.domain.visualization import VisualizationArtifact
from app.errors import SynthesisFailure
from sandbox.executor import RenderedVisualization, run_hover_callback, run_visualization
from sandbox.limits import ExecutionBudget
from sandbox.surface import DrawingSurface, HoverEvent
from sandbox.synthesizer import FunctionKind, FunctionSynthesizer, SynthesizedFunction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArtifactDisplay:
    artifact_id: str
    visualization: RenderedVisualization
    hover_callback: Optional[SynthesizedFunction] = None
    budget: Optional[ExecutionBudget] = None

    @property
    def svg(self) -> str:
        return self.visualization.svg

    def hover(
        self,
        position: tuple[float, float],
        payload: Any,
        visible: bool,
        surface: DrawingSurface,
    ) -> None:
        """Route one pointer event to the hover callback, if there is one.

        Raises:
            RuntimeFailure: If the callback raises or overruns its budget.
            ContractViolation: If the callback returns a value.
        """
        if self.hover_callback is None:
            return
        run_hover_callback(
            self.hover_callback,
            HoverEvent(position=position, payload=payload, visible=visible, surface=surface),
            self.budget,
        )


def render_artifact(
    artifact: VisualizationArtifact,
    companies: Sequence[Any],
    synthesizer: Optional[FunctionSynthesizer] = None,
    budget: Optional[ExecutionBudget] = None,
) -> ArtifactDisplay:
    """Synthesize and run an artifact's functions against ``companies``.

    Raises:
        ValueError: If the artifact is an error artifact or has no sources.
        SynthesisFailure: If the data or SVG source no longer compiles.
        ExecutionFailure: If either function fails at its call boundary.
    """
    if artifact.is_error:
        raise ValueError(f"Visualization {artifact.id} is an error result and cannot be rendered")
    if not artifact.is_renderable:
        raise ValueError(f"Visualization {artifact.id} has no function sources")

    synthesizer = synthesizer or FunctionSynthesizer(budget=budget)
    data_fn = synthesizer.synthesize(artifact.data_function_source, FunctionKind.DATA)
    svg_fn = synthesizer.synthesize(artifact.svg_function_source, FunctionKind.SVG)
    visualization = run_visualization(data_fn, svg_fn, companies, budget)

    hover_fn = None
    if artifact.hover_callback_source:
        try:
            hover_fn = synthesizer.synthesize(artifact.hover_callback_source, FunctionKind.HOVER)
        except SynthesisFailure as exc:
            logger.warning("Visualization %s hover callback unavailable: %s", artifact.id, exc)

    return ArtifactDisplay(
        artifact_id=artifact.id,
        visualization=visualization,
        hover_callback=hover_fn,
        budget=budget,
    )
