"""Builders for NocoDB ``where`` condition strings.

NocoDB expresses filters as ``(Field,op,value)`` terms joined with ``~and``
and ``~or``; a parenthesised group may itself contain joined terms.
"""

from __future__ import annotations

from typing import Iterable


def term(field: str, op: str, value: object) -> str:
    return f"({field},{op},{value})"


def eq(field: str, value: object) -> str:
    return term(field, "eq", value)


def like(field: str, value: str) -> str:
    return term(field, "like", f"%{value}%")


def and_(*conditions: str) -> str:
    return _join("~and", conditions)


def or_(*conditions: str) -> str:
    parts = [condition for condition in conditions if condition]
    if len(parts) > 1:
        return "(" + "~or".join(parts) + ")"
    return parts[0] if parts else ""


def _join(operator: str, conditions: Iterable[str]) -> str:
    return operator.join(condition for condition in conditions if condition)


__all__ = ["and_", "eq", "like", "or_", "term"]
