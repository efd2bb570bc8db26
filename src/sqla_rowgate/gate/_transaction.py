"""Gated transactions and savepoints.

Opening a transaction drains the current queue level, begins the raw
transaction, and pushes a fresh level for everything executed inside it.
Ending the transaction (commit, rollback, close, or leaving the ``with``
block) releases that level.

A failing check raises from the ``execute`` call that triggered it and does
not itself roll anything back: if the caller catches the error and the block
exits normally, earlier writes commit; if the error escapes the block, the
context manager rolls the transaction back.
"""

from __future__ import annotations

from types import TracebackType
from typing import TYPE_CHECKING, Any

from sqla_rowgate.exceptions import UnsupportedOperationError

if TYPE_CHECKING:
    from sqla_rowgate.gate._proxy import GatedHandle
    from sqla_rowgate.gate._queue import PendingCheckQueue
    from sqla_rowgate.gate._state import GateState

__all__ = ["GatedAsyncTransaction", "GatedTransaction", "open_transaction"]


def _guard(state: GateState) -> None:
    if state.config.guard_unit_of_work:
        state.adapter.guard_pending_changes()


class _TransactionBase:
    __slots__ = ("_state", "_handle", "_nested", "_raw", "_queue")

    def __init__(self, state: GateState, handle: GatedHandle, *, nested: bool) -> None:
        self._state = state
        self._handle = handle
        self._nested = nested
        self._raw: Any = None
        self._queue: PendingCheckQueue | None = None

    @property
    def nested(self) -> bool:
        return self._nested

    @property
    def is_active(self) -> bool:
        return self._raw is not None and bool(self._raw.is_active)

    def _release(self) -> None:
        if self._queue is not None:
            self._state.release_queue(self._queue)
            self._queue = None

    def __getattr__(self, name: str) -> Any:
        # Everything else behaves like the gated session itself.
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self._handle, name)

    def __repr__(self) -> str:
        kind = "savepoint" if self._nested else "transaction"
        return f"<{type(self).__name__} {kind} depth={self._state.depth}>"


class GatedTransaction(_TransactionBase):
    """A gated transaction or savepoint on a synchronous session.

    Example::

        with gdb.begin():
            gdb.execute(gdb.insert(Post).values(id="1", author_id="1"))
    """

    __slots__ = ()

    def _start(self) -> GatedTransaction:
        state = self._state
        state.queue.drain(audit=state.config.log_policy_decisions)
        adapter = state.adapter
        self._raw = adapter.begin(nested=self._nested)
        self._queue = state.push_queue()
        return self

    def commit(self) -> None:
        _guard(self._state)
        self._raw.commit()
        self._release()

    def rollback(self) -> None:
        try:
            self._raw.rollback()
        finally:
            self._release()

    def close(self) -> None:
        try:
            self._raw.close()
        finally:
            self._release()

    def __enter__(self) -> GatedTransaction:
        self._raw.__enter__()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> Any:
        try:
            if exc_type is None:
                try:
                    _guard(self._state)
                except UnsupportedOperationError as err:
                    self._raw.__exit__(type(err), err, err.__traceback__)
                    raise
            return self._raw.__exit__(exc_type, exc, traceback)
        finally:
            self._release()


class GatedAsyncTransaction(_TransactionBase):
    """A gated transaction or savepoint on an ``AsyncSession``.

    Usable as ``async with gdb.begin():`` or ``tx = await gdb.begin()``.
    """

    __slots__ = ()

    async def _start(self, *, context_manager: bool = False) -> GatedAsyncTransaction:
        state = self._state
        await state.queue.adrain(audit=state.config.log_policy_decisions)
        raw = state.adapter.begin(nested=self._nested)
        if context_manager:
            await raw.__aenter__()
        else:
            await raw
        self._raw = raw
        self._queue = state.push_queue()
        return self

    def __await__(self) -> Any:
        return self._start().__await__()

    async def commit(self) -> None:
        _guard(self._state)
        await self._raw.commit()
        self._release()

    async def rollback(self) -> None:
        try:
            await self._raw.rollback()
        finally:
            self._release()

    async def close(self) -> None:
        # AsyncSessionTransaction has no close(); an open one is rolled back.
        try:
            if self._raw.is_active:
                await self._raw.rollback()
        finally:
            self._release()

    async def __aenter__(self) -> GatedAsyncTransaction:
        return await self._start(context_manager=True)

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> Any:
        try:
            if exc_type is None:
                try:
                    _guard(self._state)
                except UnsupportedOperationError as err:
                    await self._raw.__aexit__(type(err), err, err.__traceback__)
                    raise
            return await self._raw.__aexit__(exc_type, exc, traceback)
        finally:
            self._release()


def open_transaction(state: GateState, handle: GatedHandle, *, nested: bool) -> Any:
    """Begin a gated transaction (or savepoint when *nested*).

    Synchronous sessions start immediately; async sessions start when the
    returned object is awaited or entered.
    """
    if state.adapter.is_async:
        return GatedAsyncTransaction(state, handle, nested=nested)
    return GatedTransaction(state, handle, nested=nested)._start()
