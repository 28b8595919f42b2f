"""
Structured filter values for the remote collection store.

A Filter is (field, op, value). Rendering quotes and escapes values so that a
scope key coming from user input can never change the shape of the predicate.
"""

from __future__ import annotations

import re
from typing import Any

OPERATORS = ("=", "!=", ">", ">=", "<", "<=", "~")

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")


def _check_field(field: str) -> str:
    if not isinstance(field, str) or not _FIELD_RE.match(field):
        raise ValueError(f"Invalid filter field: {field!r}")
    return field


def render_value(value: Any) -> str:
    """Render a Python value as a filter literal."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    text = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


class Filter:
    """Single comparison predicate on one field."""

    def __init__(self, field: str, op: str, value: Any) -> None:
        if op not in OPERATORS:
            raise ValueError(f"Unsupported filter operator: {op!r}")
        self.field = _check_field(field)
        self.op = op
        self.value = value

    @classmethod
    def eq(cls, field: str, value: Any) -> "Filter":
        return cls(field, "=", value)

    def render(self) -> str:
        return f"{self.field} {self.op} {render_value(self.value)}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Filter):
            return NotImplemented
        return (self.field, self.op, self.value) == (other.field, other.op, other.value)

    def __hash__(self) -> int:
        return hash((self.field, self.op, repr(self.value)))

    def __repr__(self) -> str:
        return f"Filter({self.field!r}, {self.op!r}, {self.value!r})"


class AllOf:
    """Conjunction of filters, rendered with `&&`."""

    def __init__(self, filters: list[Filter]) -> None:
        self.filters = list(filters)

    def render(self) -> str:
        parts = [f.render() for f in self.filters]
        if len(parts) == 1:
            return parts[0]
        return " && ".join(f"({p})" for p in parts)


def all_of(*filters: Filter) -> AllOf:
    return AllOf(list(filters))


def render_filter(flt: Filter | AllOf | None) -> str | None:
    """Render an optional filter value into the store's query syntax."""
    if flt is None:
        return None
    if isinstance(flt, AllOf) and not flt.filters:
        return None
    return flt.render()


def render_sort(sort: list[str] | str | None) -> str | None:
    """
    Render a sort spec. Accepts "field", "-field" or a list of those.

    Raises:
        ValueError: If any field name is invalid.
    """
    if not sort:
        return None
    fields = [sort] if isinstance(sort, str) else list(sort)
    out = []
    for f in fields:
        name = f[1:] if f.startswith(("-", "+")) else f
        _check_field(name)
        out.append(f)
    return ",".join(out)
