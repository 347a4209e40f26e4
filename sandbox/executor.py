"""
Call-boundary execution of synthesized functions.

Each runner invokes one function kind, converts exceptions raised by the
generated code into RuntimeFailure and checks the return value against the
kind's contract (ContractViolation). Every call runs under an
ExecutionBudget; overrunning it is a RuntimeFailure. The data -> SVG chain
is strict: when the data stage fails the SVG function is never called.
"""

from __future__ import annotations

import copy
import json
import logging
import math
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from pydantic import BaseModel

from app.errors import ContractViolation, RuntimeFailure
from sandbox.limits import BudgetExceeded, ExecutionBudget, enforce_budget
from sandbox.surface import HoverEvent
from sandbox.synthesizer import FunctionKind, SynthesizedFunction

logger = logging.getLogger(__name__)

_SVG_NAMESPACE = "{http://www.w3.org/2000/svg}"
_HOVER_ATTRIBUTE = "data-hover"


@dataclass(frozen=True)
class RenderedVisualization:
    """Output of one data -> SVG run."""

    processed_data: Any
    svg: str
    hover_payloads: list[Any] = field(default_factory=list)


def _plain_records(companies: Iterable[Any]) -> list[dict]:
    """Deep-copied plain dicts so generated code cannot mutate loaded data."""
    records = []
    for company in companies:
        if isinstance(company, BaseModel):
            records.append(company.model_dump())
        elif isinstance(company, Mapping):
            records.append(copy.deepcopy(dict(company)))
        else:
            raise TypeError(f"Unsupported company record type: {type(company).__name__}")
    return records


def _invoke(fn: SynthesizedFunction, argument: Any, budget: ExecutionBudget | None) -> Any:
    try:
        with enforce_budget(budget or ExecutionBudget()):
            return fn(argument)
    except BudgetExceeded as exc:
        raise RuntimeFailure(f"{fn.kind.value} {exc}", kind=fn.kind.value) from exc
    except Exception as exc:  # noqa: BLE001
        raise RuntimeFailure(
            f"{fn.kind.value} raised {type(exc).__name__}: {exc}",
            kind=fn.kind.value,
        ) from exc


def _expect_kind(fn: SynthesizedFunction, kind: FunctionKind) -> None:
    if fn.kind is not kind:
        raise ValueError(f"Expected a {kind.value}, got {fn.kind.value}")


def _has_non_finite(value: Any) -> bool:
    if isinstance(value, float):
        return math.isnan(value) or math.isinf(value)
    if isinstance(value, Mapping):
        return any(_has_non_finite(item) for item in value.values())
    if isinstance(value, (list, tuple)):
        return any(_has_non_finite(item) for item in value)
    return False


def run_data_function(
    fn: SynthesizedFunction,
    companies: Iterable[Any],
    budget: ExecutionBudget | None = None,
) -> Any:
    """Run the data function over the dataset.

    Returns:
        The function's JSON-compatible result.

    Raises:
        RuntimeFailure: If the generated code raises or overruns ``budget``.
        ContractViolation: If the result is None, not JSON-serialisable,
            nested too deeply to serialise, or contains NaN/Infinity.
    """
    _expect_kind(fn, FunctionKind.DATA)
    result = _invoke(fn, _plain_records(companies), budget)

    if result is None:
        raise ContractViolation("data_function returned nothing", kind=fn.kind.value)
    try:
        json.dumps(result, allow_nan=False)
    except RecursionError as exc:
        raise ContractViolation(
            "data_function result is nested too deeply to serialise",
            kind=fn.kind.value,
        ) from exc
    except (TypeError, ValueError) as exc:
        reason = "NaN or Infinity" if _has_non_finite(result) else str(exc)
        raise ContractViolation(
            f"data_function result is not JSON-compatible: {reason}",
            kind=fn.kind.value,
        ) from exc
    return result


def parse_svg(svg: Any) -> ET.Element:
    """Parse an SVG document string and return its root element.

    Raises:
        ContractViolation: If ``svg`` is not a string holding a well-formed
            document whose root element is ``svg``.
    """
    if not isinstance(svg, str):
        raise ContractViolation(
            f"svg_function must return a string, got {type(svg).__name__}",
            kind=FunctionKind.SVG.value,
        )
    text = svg.strip()
    if not text:
        raise ContractViolation("svg_function returned an empty string", kind=FunctionKind.SVG.value)
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise ContractViolation(
            f"svg_function output is not well-formed XML: {exc}",
            kind=FunctionKind.SVG.value,
        ) from exc

    tag = root.tag[len(_SVG_NAMESPACE):] if root.tag.startswith(_SVG_NAMESPACE) else root.tag
    if tag != "svg":
        raise ContractViolation(
            f"svg_function root element is <{tag}>, expected <svg>",
            kind=FunctionKind.SVG.value,
        )
    return root


def run_svg_function(
    fn: SynthesizedFunction,
    processed_data: Any,
    budget: ExecutionBudget | None = None,
) -> str:
    """Run the SVG function on the data function's output.

    Raises:
        RuntimeFailure: If the generated code raises or overruns ``budget``.
        ContractViolation: If ``processed_data`` is nested too deeply to
            copy, or the output is not a complete SVG document.
    """
    _expect_kind(fn, FunctionKind.SVG)
    # SVG stage gets a copy; processed_data is returned unchanged
    try:
        argument = copy.deepcopy(processed_data)
    except RecursionError as exc:
        raise ContractViolation(
            "data_function result is nested too deeply to copy",
            kind=FunctionKind.DATA.value,
        ) from exc
    svg = _invoke(fn, argument, budget)
    parse_svg(svg)
    return svg.strip()


def run_hover_callback(
    fn: SynthesizedFunction,
    event: HoverEvent,
    budget: ExecutionBudget | None = None,
) -> None:
    """Run the hover callback for one pointer event.

    Raises:
        RuntimeFailure: If the generated code raises or overruns ``budget``.
        ContractViolation: If the callback returns a value.
    """
    _expect_kind(fn, FunctionKind.HOVER)
    result = _invoke(fn, event, budget)
    if result is not None:
        raise ContractViolation(
            f"hover_callback must not return a value, got {type(result).__name__}",
            kind=fn.kind.value,
        )


def extract_hover_payloads(svg: str) -> list[Any]:
    """Collect parsed ``data-hover`` JSON payloads in document order.

    Malformed payloads are skipped.
    """
    root = parse_svg(svg)
    payloads = []
    for element in root.iter():
        raw = element.get(_HOVER_ATTRIBUTE)
        if raw is None:
            continue
        try:
            payloads.append(json.loads(raw))
        except (json.JSONDecodeError, RecursionError):
            logger.debug("Skipping malformed data-hover payload: %.80s", raw)
    return payloads


def run_visualization(
    data_fn: SynthesizedFunction,
    svg_fn: SynthesizedFunction,
    companies: Iterable[Any],
    budget: ExecutionBudget | None = None,
) -> RenderedVisualization:
    """Chain data -> SVG. A data-stage failure prevents the SVG call.

    ``budget`` applies to each call separately.
    """
    processed = run_data_function(data_fn, companies, budget)
    svg = run_svg_function(svg_fn, processed, budget)
    return RenderedVisualization(
        processed_data=processed,
        svg=svg,
        hover_payloads=extract_hover_payloads(svg),
    )
