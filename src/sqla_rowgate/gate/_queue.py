"""Deferred row checks and the queue that holds them until execution."""

from __future__ import annotations

import inspect
from collections import deque
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from sqla_rowgate import _audit
from sqla_rowgate._types import CheckStatus, Operation
from sqla_rowgate.exceptions import PolicyCheckFailedError, PolicyConfigurationError

__all__ = ["PendingCheck", "PendingCheckQueue", "arun_check", "run_check"]


@dataclass(slots=True, eq=False)
class PendingCheck:
    """A row check waiting for the next terminal execution.

    Attributes:
        table: Unaliased table name.
        operation: ``"insert"`` or ``"update"``.
        row: The proposed row values handed to the check.
        run: Zero-argument thunk invoking the policy check.
        status: ``"pending"`` until run, then ``"passed"`` or ``"failed"``.
    """

    table: str
    operation: Operation
    row: Mapping[str, Any]
    run: Callable[[], Any]
    status: CheckStatus = "pending"


def _settle(entry: PendingCheck, outcome: Any, audit: bool) -> None:
    passed = bool(outcome)
    entry.status = "passed" if passed else "failed"
    if audit:
        _audit.log_check_outcome(table=entry.table, operation=entry.operation, passed=passed)
    if not passed:
        raise PolicyCheckFailedError(table=entry.table, operation=entry.operation)


def _fail(entry: PendingCheck, audit: bool) -> None:
    entry.status = "failed"
    if audit:
        _audit.log_check_outcome(table=entry.table, operation=entry.operation, passed=False)


def _attach(entry: PendingCheck, exc: PolicyCheckFailedError) -> PolicyCheckFailedError:
    # Check helpers raise without knowing which table they guard.
    return PolicyCheckFailedError(
        table=entry.table,
        operation=entry.operation,
        mismatches=exc.mismatches,
        policy_name=exc.policy_name,
    )


def run_check(entry: PendingCheck, *, audit: bool = False) -> None:
    """Run *entry* synchronously.

    Raises:
        PolicyCheckFailedError: If the check returns a falsy value.
        PolicyConfigurationError: If the check returns an awaitable.
    """
    try:
        outcome = entry.run()
    except PolicyCheckFailedError as exc:
        _fail(entry, audit)
        if exc.table is None:
            raise _attach(entry, exc) from exc
        raise
    except BaseException:
        entry.status = "failed"
        raise
    if inspect.isawaitable(outcome):
        if inspect.iscoroutine(outcome):
            outcome.close()
        entry.status = "failed"
        raise PolicyConfigurationError(
            f"{entry.operation} check for {entry.table!r} is asynchronous; "
            f"gate an AsyncSession to use it"
        )
    _settle(entry, outcome, audit)


async def arun_check(entry: PendingCheck, *, audit: bool = False) -> None:
    """Run *entry*, awaiting the check when it is asynchronous."""
    try:
        outcome = entry.run()
        if inspect.isawaitable(outcome):
            outcome = await outcome
    except PolicyCheckFailedError as exc:
        _fail(entry, audit)
        if exc.table is None:
            raise _attach(entry, exc) from exc
        raise
    except BaseException:
        entry.status = "failed"
        raise
    _settle(entry, outcome, audit)


class PendingCheckQueue:
    """FIFO of checks shared by every handle at one transactional level.

    Draining runs entries in insertion order.  The first failure
    propagates and leaves later entries queued; a full drain leaves the
    queue empty.
    """

    __slots__ = ("_entries",)

    def __init__(self) -> None:
        self._entries: deque[PendingCheck] = deque()

    def append(self, entry: PendingCheck) -> None:
        self._entries.append(entry)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[PendingCheck]:
        return iter(tuple(self._entries))

    def __repr__(self) -> str:
        return f"PendingCheckQueue({len(self._entries)} pending)"

    def drain(self, *, audit: bool = False) -> None:
        while self._entries:
            run_check(self._entries.popleft(), audit=audit)

    async def adrain(self, *, audit: bool = False) -> None:
        while self._entries:
            await arun_check(self._entries.popleft(), audit=audit)
