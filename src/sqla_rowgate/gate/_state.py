"""State shared by every handle derived from one ``gated()`` call."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqla_rowgate._types import Operation, PolicyTable
from sqla_rowgate.gate._queue import PendingCheck, PendingCheckQueue

if TYPE_CHECKING:
    from sqla_rowgate.adapters._base import Adapter
    from sqla_rowgate.config._config import RowGateConfig

__all__ = ["BuilderScope", "FromKey", "GateState", "TableTarget"]

# (unaliased table name, alias name or None)
FromKey = tuple[str, "str | None"]


@dataclass(frozen=True, slots=True)
class TableTarget:
    """A table named by an operation, resolved through any alias.

    Attributes:
        table: The unaliased table name used to look up the policy.
        runtime: What policy rules receive: the mapped or aliased class for
            ORM targets, the column collection for Core tables and aliases.
        key: Identity of the FROM element within a statement.
    """

    table: str
    runtime: Any
    key: FromKey


@dataclass(frozen=True, slots=True)
class BuilderScope:
    """What the proxy knows about one statement builder.

    Attributes:
        operation: The statement family.
        table: The written table for insert/update/delete builders.
        checked: Whether inserts into ``table`` carry a row check.
        filtered: FROM elements whose select filter is already applied.
        checks: Checks queued by this builder (and its ancestors).
    """

    operation: Operation
    table: str | None = None
    checked: bool = False
    filtered: frozenset[FromKey] = frozenset()
    checks: tuple[PendingCheck, ...] = ()


@dataclass(slots=True, eq=False)
class GateState:
    """Policy, context, and queue stack for one gated session.

    ``queues`` has one level per open transaction or savepoint; terminal
    calls drain only the top level.
    """

    adapter: Adapter
    policies: PolicyTable
    config: RowGateConfig
    context: Any
    token: str
    queues: list[PendingCheckQueue] = field(default_factory=lambda: [PendingCheckQueue()])

    @property
    def queue(self) -> PendingCheckQueue:
        return self.queues[-1]

    @property
    def depth(self) -> int:
        return len(self.queues) - 1

    def push_queue(self) -> PendingCheckQueue:
        queue = PendingCheckQueue()
        self.queues.append(queue)
        return queue

    def release_queue(self, queue: PendingCheckQueue) -> None:
        """Drop *queue* and every level opened above it."""
        for index, level in enumerate(self.queues):
            if level is queue and index > 0:
                del self.queues[index:]
                return
