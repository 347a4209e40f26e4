"""
AST safety validation for model-generated functions.

Generated source is parsed and walked before anything is compiled. Imports,
dangerous builtins, dunder access, frame/introspection attributes, string
formatting tricks and scope-escaping statements are rejected. Validated code
later runs against a restricted globals dict holding only SAFE_BUILTINS and
the SANDBOX_MODULES namespaces.
"""

import ast
import builtins
import json
import math
from types import SimpleNamespace

# Builtins that are safe to use in generated functions
SAFE_BUILTINS = frozenset({
    "abs", "all", "any", "bool", "dict", "divmod", "enumerate", "filter",
    "float", "int", "isinstance", "len", "list", "map", "max", "min",
    "range", "reversed", "round", "set", "sorted", "str", "sum", "tuple",
    "zip", "True", "False", "None",
    "Exception", "ValueError", "TypeError", "KeyError", "IndexError",
    "ZeroDivisionError", "AttributeError",
})

# Builtins that are explicitly dangerous
_DANGEROUS_BUILTINS = frozenset({
    "exec", "eval", "compile", "open", "__import__", "getattr", "setattr",
    "delattr", "globals", "locals", "vars", "dir", "breakpoint", "exit",
    "quit", "input", "memoryview", "classmethod", "staticmethod", "super",
    "property", "type", "print", "help", "object", "hasattr", "id",
})

# Blocked on ANY object: frame/generator introspection, string formatting
# that can reach attributes without an Attribute node, file access
_BLOCKED_ATTRS = frozenset({
    "format", "format_map",
    "gi_frame", "gi_code", "cr_frame", "cr_code", "ag_frame", "ag_code",
    "f_globals", "f_locals", "f_builtins", "f_back", "tb_frame", "tb_next",
    "mro", "open", "system", "popen",
})

# ast.TryStar exists from Python 3.11
_TRY_NODES = (ast.Try, getattr(ast, "TryStar", ast.Try))

SANDBOX_MODULES = {
    "math": SimpleNamespace(
        **{name: getattr(math, name) for name in dir(math) if not name.startswith("_")}
    ),
    "json": SimpleNamespace(dumps=json.dumps, loads=json.loads),
}


def build_sandbox_globals() -> dict:
    """Fresh globals dict for one synthesis: safe builtins plus math/json."""
    safe_builtins = {
        name: getattr(builtins, name) for name in SAFE_BUILTINS if hasattr(builtins, name)
    }
    return {"__builtins__": safe_builtins, **SANDBOX_MODULES}


def validate_tree(tree: ast.AST) -> list[str]:
    """Validate a parsed function source for safety.

    Args:
        tree: Module or Expression node produced by ``ast.parse``.

    Returns:
        List of violation descriptions. Empty list means code is safe.
    """
    violations = []

    for node in ast.walk(tree):
        # Block imports
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            violations.append("Imports are not allowed")

        # Block dangerous builtins and dunder names (e.g. __builtins__)
        if isinstance(node, ast.Name):
            if node.id in _DANGEROUS_BUILTINS:
                violations.append(f"Dangerous builtin '{node.id}' is not allowed")
            elif node.id.startswith("__"):
                violations.append(f"Dunder name '{node.id}' is not allowed")

        # Block dunder attribute access (e.g., __class__, __globals__)
        if isinstance(node, ast.Attribute):
            if node.attr.startswith("__"):
                violations.append(f"Dunder attribute access '{node.attr}' is not allowed")
            elif node.attr in _BLOCKED_ATTRS:
                violations.append(f"Attribute '{node.attr}' is not allowed")

        # Block global/nonlocal
        if isinstance(node, (ast.Global, ast.Nonlocal)):
            violations.append("global/nonlocal statements are not allowed")

        # Block async constructs
        if isinstance(node, (ast.AsyncFunctionDef, ast.AsyncFor, ast.AsyncWith, ast.Await)):
            violations.append("Async constructs are not allowed")

        # Block class definitions
        if isinstance(node, ast.ClassDef):
            violations.append("Class definitions are not allowed")

        # Bare except and finally would outlive the execution budget
        if isinstance(node, ast.ExceptHandler) and node.type is None:
            violations.append("Bare except clauses are not allowed")
        if isinstance(node, _TRY_NODES) and node.finalbody:
            violations.append("finally clauses are not allowed")

    # One message per distinct violation keeps traces short
    return list(dict.fromkeys(violations))


def validate_function_source(source: str) -> list[str]:
    """Validate function source text, accepting expression or statement form."""
    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError:
        try:
            tree = ast.parse(source, mode="exec")
        except SyntaxError as e:
            return [f"Syntax error: {e}"]
    return validate_tree(tree)
