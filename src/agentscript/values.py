"""Rendering and JSON conversion of values produced by scripts.

Every Python object a script hands back is classified once into a
ValueKind; rendering and JSON conversion dispatch on that kind.
"""

from __future__ import annotations

import inspect
import math
from collections.abc import Mapping
from enum import Enum
from typing import Any


class ValueKind(Enum):
    NIL = "nil"
    BOOLEAN = "boolean"
    NUMBER = "number"
    STRING = "string"
    TABLE = "table"
    FUNCTION = "function"
    OPAQUE = "opaque"


SEQUENCE_TYPES = (list, tuple, set, frozenset)


def classify(value: Any) -> ValueKind:
    """Map a Python object onto the closed set of script value kinds."""
    if value is None:
        return ValueKind.NIL
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, (Mapping, *SEQUENCE_TYPES)):
        return ValueKind.TABLE
    if inspect.isroutine(value) or inspect.isclass(value):
        return ValueKind.FUNCTION
    return ValueKind.OPAQUE


def _render_number(value: int | float) -> str:
    if isinstance(value, float) and value.is_integer() and math.isfinite(value):
        return str(int(value)) if abs(value) < 1e16 else repr(value)
    return repr(value)


def _render_table(value: Any, seen: set[int]) -> str:
    if id(value) in seen:
        return "<cycle>"
    seen = seen | {id(value)}
    if isinstance(value, Mapping):
        items = (f"{_render(k, seen)}: {_render(v, seen)}" for k, v in value.items())
        return "{" + ", ".join(items) + "}"
    if isinstance(value, (set, frozenset)):
        members = sorted((_render(v, seen) for v in value))
        return "{" + ", ".join(members) + "}"
    return "[" + ", ".join(_render(v, seen) for v in value) + "]"


def _render(value: Any, seen: set[int]) -> str:
    kind = classify(value)
    if kind is ValueKind.NIL:
        return "nil"
    if kind is ValueKind.BOOLEAN:
        return "true" if value else "false"
    if kind is ValueKind.NUMBER:
        return _render_number(value)
    if kind is ValueKind.STRING:
        return value
    if kind is ValueKind.TABLE:
        return _render_table(value, seen)
    if kind is ValueKind.FUNCTION:
        return "<function>"
    return f"<{type(value).__name__}>"


def render_value(value: Any) -> str:
    """Render a script value for display.

    >>> render_value({"a": [1, True, None]})
    '{a: [1, true, nil]}'
    """
    return _render(value, set())


def pretty_value(value: Any, indent: int = 0) -> str:
    """Stable, indented rendering; mapping keys are sorted.

    Strings are quoted, which makes nested text unambiguous.
    """
    kind = classify(value)
    if kind is ValueKind.STRING:
        return repr(value)
    if kind is not ValueKind.TABLE:
        return render_value(value)
    if isinstance(value, Mapping):
        if not value:
            return "{}"
        pad = " " * (indent + 2)
        keys = sorted(value, key=render_value)
        parts = [
            f"{pad}{k if isinstance(k, str) else pretty_value(k)} = {pretty_value(value[k], indent + 2)}"
            for k in keys
        ]
        return "{\n" + ",\n".join(parts) + "\n" + " " * indent + "}"
    members = sorted(value, key=render_value) if isinstance(value, (set, frozenset)) else value
    return "[" + ", ".join(pretty_value(v, indent + 2) for v in members) + "]"


def to_json(value: Any) -> Any:
    """Convert a script value into something ``json.dumps`` accepts.

    Mapping keys become strings, non-finite floats become null, and values
    with no JSON shape (functions, opaque handles) become their rendering.
    """
    kind = classify(value)
    if kind in (ValueKind.NIL, ValueKind.BOOLEAN, ValueKind.STRING):
        return value
    if kind is ValueKind.NUMBER:
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return value
    if kind is ValueKind.TABLE:
        if isinstance(value, Mapping):
            return {render_value(k) if not isinstance(k, str) else k: to_json(v) for k, v in value.items()}
        return [to_json(v) for v in value]
    return render_value(value)
