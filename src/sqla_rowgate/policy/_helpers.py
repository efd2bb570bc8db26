"""Helpers for writing row checks that report field-level mismatches."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqla_rowgate._types import CheckFunction
from sqla_rowgate.exceptions import PolicyCheckFailedError

__all__ = ["assert_row_matches", "find_mismatches", "require_values"]


def find_mismatches(
    expected: Mapping[str, Any],
    row: Mapping[str, Any],
    *,
    strict: bool = False,
) -> dict[str, dict[str, Any]]:
    """Compare *row* against *expected* field by field.

    Only fields present in *row* with a non-None value are compared unless
    *strict* is set, in which case an absent or None field is a mismatch.

    Returns:
        Mapping of field to ``{"expected": ..., "actual": ...}``.
    """
    mismatches: dict[str, dict[str, Any]] = {}
    for key, want in expected.items():
        actual = row.get(key)
        if actual is None and not strict:
            continue
        if actual != want:
            mismatches[key] = {"expected": want, "actual": actual}
    return mismatches


def assert_row_matches(
    expected: Mapping[str, Any],
    row: Mapping[str, Any],
    *,
    table: str | None = None,
    operation: str | None = None,
    policy_name: str | None = None,
    strict: bool = False,
) -> None:
    """Raise ``PolicyCheckFailedError`` when *row* disagrees with *expected*.

    When called from a queued check, ``table`` and ``operation`` may be left
    out; the gate fills them in from the check being run.

    Example::

        def insert_check(db, row):
            assert_row_matches({"author_id": ctx}, row)
            return True
    """
    mismatches = find_mismatches(expected, row, strict=strict)
    if mismatches:
        raise PolicyCheckFailedError(
            table=table,
            operation=operation,
            mismatches=mismatches,
            policy_name=policy_name,
        )


def require_values(*, strict: bool = False, **expected: Any) -> CheckFunction:
    """Build a check requiring proposed values to equal *expected*.

    Example::

        TablePolicy(insert_check=require_values(author_id=ctx))
    """

    def _check(client: Any, row: Mapping[str, Any]) -> bool:
        assert_row_matches(expected, row, strict=strict)
        return True

    _check.__name__ = "require_values(" + ", ".join(sorted(expected)) + ")"
    return _check
