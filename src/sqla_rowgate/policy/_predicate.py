"""Composable row checks and filter builders for table policies."""

from __future__ import annotations

import inspect
from collections.abc import Callable, Mapping
from typing import Any

from sqlalchemy import ColumnElement

from sqla_rowgate._types import FilterFunction
from sqla_rowgate.exceptions import PolicyConfigurationError

__all__ = ["RowCheck", "allow_all", "deny_all", "row_check", "where"]


class RowCheck:
    """A composable row check.

    Wraps a callable ``(client, row) -> bool`` and supports ``&`` (AND),
    ``|`` (OR), and ``~`` (NOT) composition.  Composition short-circuits
    like the Python operators do.  Composed checks are synchronous; an
    operand returning an awaitable raises ``PolicyConfigurationError``.

    Example::

        owns_row = RowCheck(lambda db, row: row.get("author_id") == ctx)
        not_locked = RowCheck(lambda db, row: not row.get("locked"))

        TablePolicy(insert_check=owns_row & not_locked)
    """

    def __init__(self, fn: Callable[[Any, Mapping[str, Any]], Any], *, name: str = "") -> None:
        self._fn = fn
        self._name = name or getattr(fn, "__name__", "<anonymous>")

    def __call__(self, client: Any, row: Mapping[str, Any]) -> Any:
        return self._fn(client, row)

    def _evaluate(self, client: Any, row: Mapping[str, Any]) -> bool:
        outcome = self(client, row)
        if inspect.isawaitable(outcome):
            if inspect.iscoroutine(outcome):
                outcome.close()
            raise PolicyConfigurationError(
                f"Row check {self._name!r} is asynchronous and cannot be composed"
            )
        return bool(outcome)

    def __and__(self, other: RowCheck) -> RowCheck:
        def _and(client: Any, row: Mapping[str, Any]) -> bool:
            return self._evaluate(client, row) and other._evaluate(client, row)

        return RowCheck(_and, name=f"({self._name} & {other._name})")

    def __or__(self, other: RowCheck) -> RowCheck:
        def _or(client: Any, row: Mapping[str, Any]) -> bool:
            return self._evaluate(client, row) or other._evaluate(client, row)

        return RowCheck(_or, name=f"({self._name} | {other._name})")

    def __invert__(self) -> RowCheck:
        def _not(client: Any, row: Mapping[str, Any]) -> bool:
            return not self._evaluate(client, row)

        return RowCheck(_not, name=f"~{self._name}")

    @property
    def name(self) -> str:
        """The human-readable name of this check."""
        return self._name

    def __repr__(self) -> str:
        return f"RowCheck({self._name!r})"


def row_check(fn: Callable[[Any, Mapping[str, Any]], Any]) -> RowCheck:
    """Decorator/factory that creates a RowCheck from a callable.

    Example::

        @row_check
        def has_title(db, row):
            return bool(row.get("title"))
    """
    return RowCheck(fn, name=getattr(fn, "__name__", "<lambda>"))


def where(criterion: Callable[[Any], ColumnElement[bool]]) -> FilterFunction:
    """Build a filter that adds ``criterion(target)`` to the statement's WHERE.

    Example::

        TablePolicy(select_filter=where(lambda t: t.author_id == ctx))
    """

    def _filter(statement: Any, target: Any) -> Any:
        return statement.where(criterion(target))

    _filter.__name__ = f"where({getattr(criterion, '__name__', '<lambda>')})"
    return _filter


# Built-in checks


def _allow_all(client: Any, row: Mapping[str, Any]) -> bool:
    return True


def _deny_all(client: Any, row: Mapping[str, Any]) -> bool:
    return False


allow_all: RowCheck = RowCheck(_allow_all, name="allow_all")
deny_all: RowCheck = RowCheck(_deny_all, name="deny_all")
