"""Shared failure code constants for pipeline error handling."""

RECOVERABLE_FAILURES = [
    "network_failure",
    "empty_completion",
    "parse_failure",
    "missing_field",
    "synthesis_failure",
    "runtime_failure",
    "contract_violation",
]

SURFACED_FAILURES = [
    "persistence_failure",
    "artifact_not_found",
]
