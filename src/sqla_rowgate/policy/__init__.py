"""Policy declaration and resolution."""

from __future__ import annotations

from sqla_rowgate.policy._base import TablePolicy
from sqla_rowgate.policy._helpers import assert_row_matches, find_mismatches, require_values
from sqla_rowgate.policy._predicate import RowCheck, allow_all, deny_all, row_check, where
from sqla_rowgate.policy._resolve import (
    assert_policy_coverage,
    normalize_policy_table,
    resolve_policy_table,
    resolve_policy_table_async,
    table_key,
)

__all__ = [
    "RowCheck",
    "TablePolicy",
    "allow_all",
    "assert_policy_coverage",
    "assert_row_matches",
    "deny_all",
    "find_mismatches",
    "normalize_policy_table",
    "require_values",
    "resolve_policy_table",
    "resolve_policy_table_async",
    "row_check",
    "table_key",
    "where",
]
