"""
Exception taxonomy for the visualization pipeline.

Every exception carries a ``code`` (see ``app.failure_codes``) and the
``stage`` at which it was raised so fallback traces can name the cause.
"""

from __future__ import annotations


class VisualizationPipelineError(Exception):
    """Base exception for every pipeline failure."""

    code = "pipeline_failure"

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        self.stage = stage or self.code


class NetworkFailure(VisualizationPipelineError):
    """Raised when the completion service call fails."""

    code = "network_failure"


class EmptyCompletion(VisualizationPipelineError):
    """Raised when the completion service returns no usable text."""

    code = "empty_completion"


class ParseFailure(VisualizationPipelineError):
    """Raised when a completion cannot be decoded against the protocol."""

    code = "parse_failure"


class SynthesisFailure(VisualizationPipelineError):
    """Raised when source text cannot be turned into a callable."""

    code = "synthesis_failure"

    def __init__(
        self,
        message: str,
        *,
        kind: str | None = None,
        violations: list[str] | None = None,
        stage: str | None = None,
    ) -> None:
        super().__init__(message, stage=stage)
        self.kind = kind
        self.violations = list(violations or [])


class ExecutionFailure(VisualizationPipelineError):
    """Raised when a synthesized function fails at its call boundary."""

    code = "execution_failure"

    def __init__(self, message: str, *, kind: str | None = None, stage: str | None = None) -> None:
        super().__init__(message, stage=stage)
        self.kind = kind


class RuntimeFailure(ExecutionFailure):
    """Raised when a synthesized function throws during invocation."""

    code = "runtime_failure"


class ContractViolation(ExecutionFailure):
    """Raised when a synthesized function returns the wrong shape."""

    code = "contract_violation"


class PersistenceFailure(VisualizationPipelineError):
    """Raised when the key-value store cannot be read or written."""

    code = "persistence_failure"


class ArtifactNotFoundError(VisualizationPipelineError):
    """Raised when a visualization id is not in the collection."""

    code = "artifact_not_found"

    def __init__(self, artifact_id: str) -> None:
        super().__init__(f"Visualization not found: {artifact_id}")
        self.artifact_id = artifact_id
