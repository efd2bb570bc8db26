"""The policy-gating interception engine."""

from __future__ import annotations

from sqla_rowgate.gate._kinds import OperationKind
from sqla_rowgate.gate._proxy import Gated, GatedHandle, GatedStatement, unwrap
from sqla_rowgate.gate._queue import PendingCheck, PendingCheckQueue
from sqla_rowgate.gate._state import BuilderScope, GateState, TableTarget
from sqla_rowgate.gate._transaction import GatedAsyncTransaction, GatedTransaction

__all__ = [
    "BuilderScope",
    "GateState",
    "Gated",
    "GatedAsyncTransaction",
    "GatedHandle",
    "GatedStatement",
    "GatedTransaction",
    "OperationKind",
    "PendingCheck",
    "PendingCheckQueue",
    "TableTarget",
    "unwrap",
]
