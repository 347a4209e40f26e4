"""
Turns model-generated source text into invocable functions.

Two strategies are tried in order:

1. ``expression`` - the text is compiled as a single expression (usually a
   ``lambda``) and evaluated against the sandbox globals.
2. ``closure`` - when the text is not an expression (usually a ``def``), it
   is wrapped in a factory function that returns the defined function, and
   the factory is called once.

Either way the only lexical scope visible to the generated code is the
restricted sandbox globals; nothing from the caller leaks in.
"""

from __future__ import annotations

import ast
import inspect
import logging
import textwrap
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from app.errors import SynthesisFailure
from sandbox.limits import BudgetExceeded, ExecutionBudget, enforce_budget, sandbox_filename
from sandbox.validator import build_sandbox_globals, validate_tree

logger = logging.getLogger(__name__)

_FACTORY_NAME = "_synthesized_factory"


class FunctionKind(str, Enum):
    DATA = "data_function"
    SVG = "svg_function"
    HOVER = "hover_callback"


@dataclass(frozen=True)
class SynthesizedFunction:
    """A callable built from source text, with how it was built."""

    kind: FunctionKind
    strategy: str
    name: str
    func: Callable[..., Any]

    def __call__(self, *args: Any) -> Any:
        return self.func(*args)


class FunctionSynthesizer:
    """Compiles single-function source text inside the sandbox.

    Holds no per-run state; one instance can be shared across pipeline runs.
    Evaluating the definition (helper statements included) runs under
    ``budget``.
    """

    def __init__(self, budget: ExecutionBudget | None = None) -> None:
        self._budget = budget or ExecutionBudget()

    def synthesize(self, source: str | None, kind: FunctionKind) -> SynthesizedFunction:
        """Build a one-argument callable from ``source``.

        Args:
            source: Text holding one function, as a lambda expression or a
                ``def`` statement (helper statements may precede it).
            kind: Which pipeline function this is; used in errors and traces.

        Returns:
            The synthesized function.

        Raises:
            SynthesisFailure: If the text is empty, compiles under neither
                strategy, violates the sandbox policy, or does not produce a
                callable accepting one positional argument.
        """
        if not source or not source.strip():
            raise SynthesisFailure(f"{kind.value} source is empty", kind=kind.value)

        text = textwrap.dedent(source).strip()
        try:
            expression = ast.parse(text, mode="eval")
        except SyntaxError:
            logger.debug("%s is not an expression; retrying as closure", kind.value)
            synthesized = self._synthesize_closure(text, kind)
        else:
            synthesized = self._synthesize_expression(text, expression, kind)

        self._check_arity(synthesized)
        return synthesized

    def _synthesize_expression(
        self,
        text: str,
        tree: ast.Expression,
        kind: FunctionKind,
    ) -> SynthesizedFunction:
        self._raise_on_violations(tree, kind)
        code = compile(tree, sandbox_filename(kind.value), "eval")
        try:
            with enforce_budget(self._budget):
                func = eval(code, build_sandbox_globals())  # noqa: S307  (restricted globals)
        except BudgetExceeded as exc:
            raise SynthesisFailure(
                f"{kind.value} expression {exc} while evaluating", kind=kind.value
            ) from exc
        except Exception as exc:  # noqa: BLE001
            raise SynthesisFailure(
                f"{kind.value} expression failed to evaluate: {type(exc).__name__}: {exc}",
                kind=kind.value,
            ) from exc

        if not callable(func):
            raise SynthesisFailure(
                f"{kind.value} expression evaluated to {type(func).__name__}, not a function",
                kind=kind.value,
            )
        name = getattr(func, "__name__", "<lambda>")
        return SynthesizedFunction(kind=kind, strategy="expression", name=name, func=func)

    def _synthesize_closure(self, text: str, kind: FunctionKind) -> SynthesizedFunction:
        try:
            tree = ast.parse(text, mode="exec")
        except SyntaxError as exc:
            raise SynthesisFailure(
                f"{kind.value} does not compile: {exc.msg} (line {exc.lineno})",
                kind=kind.value,
            ) from exc

        self._raise_on_violations(tree, kind)
        # Last top-level def is the entry point; earlier ones are helpers.
        defs = [node for node in tree.body if isinstance(node, ast.FunctionDef)]
        if not defs:
            raise SynthesisFailure(
                f"{kind.value} defines no function", kind=kind.value
            )
        name = defs[-1].name

        wrapped = (
            f"def {_FACTORY_NAME}():\n"
            f"{textwrap.indent(text, '    ')}\n"
            f"    return {name}\n"
        )
        namespace = build_sandbox_globals()
        try:
            exec(compile(wrapped, sandbox_filename(kind.value), "exec"), namespace)  # noqa: S102
            with enforce_budget(self._budget):
                func = namespace[_FACTORY_NAME]()
        except SyntaxError as exc:
            raise SynthesisFailure(
                f"{kind.value} does not compile inside closure: {exc.msg}",
                kind=kind.value,
            ) from exc
        except BudgetExceeded as exc:
            raise SynthesisFailure(
                f"{kind.value} {exc} while defining", kind=kind.value
            ) from exc
        except Exception as exc:  # noqa: BLE001
            raise SynthesisFailure(
                f"{kind.value} failed while defining: {type(exc).__name__}: {exc}",
                kind=kind.value,
            ) from exc

        return SynthesizedFunction(kind=kind, strategy="closure", name=name, func=func)

    def _raise_on_violations(self, tree: ast.AST, kind: FunctionKind) -> None:
        violations = validate_tree(tree)
        if violations:
            raise SynthesisFailure(
                f"{kind.value} violates sandbox policy: " + "; ".join(violations),
                kind=kind.value,
                violations=violations,
            )

    def _check_arity(self, synthesized: SynthesizedFunction) -> None:
        try:
            inspect.signature(synthesized.func).bind(None)
        except TypeError as exc:
            raise SynthesisFailure(
                f"{synthesized.kind.value} must accept exactly one argument: {exc}",
                kind=synthesized.kind.value,
            ) from exc
        except ValueError:
            # Builtins without an introspectable signature; checked at call time
            pass
