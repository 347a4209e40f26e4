"""
tests/test_synthesizer.py

Tests for source validation and function synthesis.

Coverage
--------
- Expression strategy for lambdas
- Closure strategy for defs, including nested and preceding helpers
- Non-Python source fails under both strategies
- Sandbox policy: imports, dangerous builtins, dunder access, str.format,
  bare except and finally
- Restricted scope: no caller locals, math/json available
- Non-callable expressions and wrong arity
- Definition-time statements stop at the execution budget
"""

from __future__ import annotations

import pytest

from app.errors import SynthesisFailure
from sandbox.limits import ExecutionBudget
from sandbox.synthesizer import FunctionKind, FunctionSynthesizer
from sandbox.validator import validate_function_source


@pytest.fixture()
def synthesizer() -> FunctionSynthesizer:
    return FunctionSynthesizer()


THREE_RECORDS = [{"name": "a"}, {"name": "b"}, {"name": "c"}]


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class TestStrategies:
    def test_lambda_uses_expression_strategy(self, synthesizer: FunctionSynthesizer) -> None:
        fn = synthesizer.synthesize("lambda companies: len(companies)", FunctionKind.DATA)

        assert fn.strategy == "expression"
        assert fn.kind is FunctionKind.DATA
        assert fn(THREE_RECORDS) == 3

    def test_def_uses_closure_strategy(self, synthesizer: FunctionSynthesizer) -> None:
        source = "def count(companies):\n    return len(companies)"
        fn = synthesizer.synthesize(source, FunctionKind.DATA)

        assert fn.strategy == "closure"
        assert fn.name == "count"
        assert fn(THREE_RECORDS) == 3

    def test_last_def_is_entry_point(self, synthesizer: FunctionSynthesizer) -> None:
        source = (
            "def double(value):\n"
            "    return value * 2\n"
            "\n"
            "def doubled_count(companies):\n"
            "    return double(len(companies))\n"
        )
        fn = synthesizer.synthesize(source, FunctionKind.DATA)

        assert fn.name == "doubled_count"
        assert fn(THREE_RECORDS) == 6

    def test_nested_helper(self, synthesizer: FunctionSynthesizer) -> None:
        source = (
            "def names(companies):\n"
            "    def pick(row):\n"
            "        return row['name'].upper()\n"
            "    return [pick(row) for row in companies]\n"
        )
        fn = synthesizer.synthesize(source, FunctionKind.DATA)
        assert fn(THREE_RECORDS) == ["A", "B", "C"]

    def test_source_is_dedented(self, synthesizer: FunctionSynthesizer) -> None:
        source = "    def count(companies):\n        return len(companies)"
        assert synthesizer.synthesize(source, FunctionKind.DATA)(THREE_RECORDS) == 3

    def test_javascript_source_fails(self, synthesizer: FunctionSynthesizer) -> None:
        with pytest.raises(SynthesisFailure) as exc_info:
            synthesizer.synthesize(
                "function(companies){ return companies.length; }",
                FunctionKind.DATA,
            )
        assert exc_info.value.kind == "data_function"
        assert exc_info.value.code == "synthesis_failure"

    @pytest.mark.parametrize("source", ["", "   ", None])
    def test_empty_source_fails(self, synthesizer: FunctionSynthesizer, source) -> None:
        with pytest.raises(SynthesisFailure):
            synthesizer.synthesize(source, FunctionKind.SVG)

    def test_statements_without_def_fail(self, synthesizer: FunctionSynthesizer) -> None:
        with pytest.raises(SynthesisFailure, match="defines no function"):
            synthesizer.synthesize("x = 1\ny = 2", FunctionKind.DATA)


# ---------------------------------------------------------------------------
# Sandbox policy
# ---------------------------------------------------------------------------


class TestSandboxPolicy:
    @pytest.mark.parametrize(
        "source",
        [
            "def f(c):\n    import os\n    return os.listdir('.')",
            "lambda c: open('/etc/passwd').read()",
            "lambda c: __import__('os')",
            "lambda c: c.__class__",
            "lambda c: eval('1 + 1')",
            "lambda c: getattr(c, 'x')",
            "lambda c: '{0.__class__}'.format(c)",
            "def f(c):\n    global x\n    return c",
            "def f(c):\n    class Boom:\n        pass\n    return c",
            "def f(c):\n    try:\n        return len(c)\n    except:\n        return 0",
            "def f(c):\n    try:\n        return len(c)\n    finally:\n        pass",
        ],
    )
    def test_policy_violations_rejected(self, synthesizer: FunctionSynthesizer, source: str) -> None:
        with pytest.raises(SynthesisFailure) as exc_info:
            synthesizer.synthesize(source, FunctionKind.DATA)
        assert exc_info.value.violations

    def test_caller_locals_not_visible(self, synthesizer: FunctionSynthesizer) -> None:
        secret = "do not leak"  # noqa: F841
        fn = synthesizer.synthesize("lambda c: secret", FunctionKind.DATA)
        with pytest.raises(NameError):
            fn([])

    def test_math_and_json_available(self, synthesizer: FunctionSynthesizer) -> None:
        fn = synthesizer.synthesize(
            "lambda c: json.dumps({'root': math.sqrt(len(c) + 1)})",
            FunctionKind.DATA,
        )
        assert fn(THREE_RECORDS) == '{"root": 2.0}'

    def test_validate_function_source_reports_syntax(self) -> None:
        violations = validate_function_source("def broken(:")
        assert len(violations) == 1
        assert violations[0].startswith("Syntax error")

    def test_validate_function_source_accepts_safe_code(self) -> None:
        assert validate_function_source("lambda c: sorted(c)") == []


# ---------------------------------------------------------------------------
# Contract checks
# ---------------------------------------------------------------------------


class TestContract:
    def test_non_callable_expression_fails(self, synthesizer: FunctionSynthesizer) -> None:
        with pytest.raises(SynthesisFailure, match="not a function"):
            synthesizer.synthesize("42", FunctionKind.DATA)

    def test_wrong_arity_fails(self, synthesizer: FunctionSynthesizer) -> None:
        with pytest.raises(SynthesisFailure, match="exactly one argument"):
            synthesizer.synthesize("lambda a, b: a", FunctionKind.DATA)

    def test_default_arguments_allowed(self, synthesizer: FunctionSynthesizer) -> None:
        fn = synthesizer.synthesize("lambda c, scale=2: len(c) * scale", FunctionKind.DATA)
        assert fn(THREE_RECORDS) == 6

    def test_runaway_definition_fails(self) -> None:
        synthesizer = FunctionSynthesizer(budget=ExecutionBudget(max_steps=1000))
        source = (
            "ticks = 0\n"
            "while True:\n"
            "    ticks += 1\n"
            "\n"
            "def f(companies):\n"
            "    return ticks\n"
        )

        with pytest.raises(SynthesisFailure, match="exceeded 1000 steps while defining"):
            synthesizer.synthesize(source, FunctionKind.DATA)
