"""Policy table resolution and coverage assertion."""

from __future__ import annotations

import inspect
from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Any

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Mapper
from sqlalchemy.sql.expression import TableClause

from sqla_rowgate._types import PolicyFunction, PolicyTable
from sqla_rowgate.exceptions import PolicyConfigurationError
from sqla_rowgate.policy._base import TablePolicy

__all__ = [
    "assert_policy_coverage",
    "normalize_policy_table",
    "resolve_policy_table",
    "resolve_policy_table_async",
    "table_key",
]


def table_key(key: Any) -> str:
    """Normalize a policy table key to the unaliased table name.

    Accepts table names, ``Table`` objects, and mapped classes.
    """
    if isinstance(key, str):
        return key
    if isinstance(key, TableClause):
        return key.name
    mapper = sa_inspect(key, raiseerr=False)
    if isinstance(mapper, Mapper):
        return mapper.local_table.name  # type: ignore[union-attr]
    raise PolicyConfigurationError(
        f"Policy table keys must be table names, Tables, or mapped classes; got {key!r}"
    )


def normalize_policy_table(raw: Any) -> PolicyTable:
    """Validate a policy function's result and freeze it.

    ``None`` values become an empty ``TablePolicy`` (declared, unrestricted).
    """
    if not isinstance(raw, Mapping):
        raise PolicyConfigurationError(
            f"Policy function must return a mapping of table to TablePolicy, "
            f"got {type(raw).__name__}"
        )
    table: dict[str, TablePolicy] = {}
    for key, entry in raw.items():
        name = table_key(key)
        if entry is None:
            entry = TablePolicy()
        elif not isinstance(entry, TablePolicy):
            raise PolicyConfigurationError(
                f"Policy entry for {name!r} must be a TablePolicy or None, "
                f"got {type(entry).__name__}"
            )
        if name in table:
            raise PolicyConfigurationError(f"Policy table declares {name!r} more than once")
        table[name] = entry
    return MappingProxyType(table)


def assert_policy_coverage(
    policies: PolicyTable,
    table_names: Iterable[str],
    *,
    adapter_name: str = "adapter",
) -> None:
    """Raise when any known table has no policy entry.

    Raises:
        PolicyConfigurationError: Listing every missing table, sorted.
    """
    missing = sorted(set(table_names) - set(policies))
    if missing:
        raise PolicyConfigurationError(
            f"{adapter_name}: policy missing entries for tables: {', '.join(missing)}",
            missing_tables=missing,
        )


def _finish(
    raw: Any,
    table_names: Iterable[str] | None,
    adapter_name: str,
    require_coverage: bool,
) -> PolicyTable:
    policies = normalize_policy_table(raw)
    if require_coverage and table_names is not None:
        assert_policy_coverage(policies, table_names, adapter_name=adapter_name)
    return policies


def resolve_policy_table(
    policy: PolicyFunction,
    context: Any,
    *,
    table_names: Iterable[str] | None = None,
    adapter_name: str = "adapter",
    require_coverage: bool = True,
) -> PolicyTable:
    """Call *policy* for *context* and return the validated policy table.

    Resolution is not cached; every gated session resolves afresh.

    Raises:
        PolicyConfigurationError: If the result is malformed, does not cover
            *table_names*, or the policy function is asynchronous.
    """
    raw = policy(context)
    if inspect.isawaitable(raw):
        if inspect.iscoroutine(raw):
            raw.close()
        raise PolicyConfigurationError(
            "Policy function is asynchronous; use gated_async() instead of gated()"
        )
    return _finish(raw, table_names, adapter_name, require_coverage)


async def resolve_policy_table_async(
    policy: PolicyFunction,
    context: Any,
    *,
    table_names: Iterable[str] | None = None,
    adapter_name: str = "adapter",
    require_coverage: bool = True,
) -> PolicyTable:
    """Async variant of :func:`resolve_policy_table`."""
    raw = policy(context)
    if inspect.isawaitable(raw):
        raw = await raw
    return _finish(raw, table_names, adapter_name, require_coverage)
