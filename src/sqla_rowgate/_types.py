"""Shared type aliases for sqla-rowgate."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any, Literal, Union

if TYPE_CHECKING:
    from sqla_rowgate.policy._base import TablePolicy

__all__ = [
    "CheckFunction",
    "CheckStatus",
    "FilterFunction",
    "OnMissingPolicy",
    "Operation",
    "PolicyFunction",
    "PolicyTable",
]

# The four row-level operations a policy can govern.
Operation = Literal["select", "insert", "update", "delete"]

# Valid values for RowGateConfig.on_missing_policy.
OnMissingPolicy = Literal["deny", "allow", "raise"]

# Lifecycle of a queued row check.
CheckStatus = Literal["pending", "passed", "failed"]

# (statement, target) -> narrowed statement.  ``target`` is the mapped class,
# aliased class, or column collection actually used in the query.
FilterFunction = Callable[[Any, Any], Any]

# (raw client, row values) -> truthy to allow.  May return an awaitable when
# the gated client is an AsyncSession.
CheckFunction = Callable[[Any, Mapping[str, Any]], Union[bool, Awaitable[bool]]]

# Resolved, read-only policy table keyed by unaliased table name.
PolicyTable = Mapping[str, "TablePolicy"]

# context -> mapping of table key to TablePolicy (or None for "no restrictions").
PolicyFunction = Callable[[Any], Any]
