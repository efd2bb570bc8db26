"""Operation kinds the gating proxy dispatches on."""

from __future__ import annotations

import enum

__all__ = ["OperationKind"]


class OperationKind(enum.Enum):
    """How an attribute access on a gated object is handled.

    The adapter classifies each access; the proxy owns one transition
    function per kind.
    """

    READ = "read"
    DELETE = "delete"
    INSERT = "insert"
    UPDATE = "update"
    VALUES = "values"
    JOIN = "join"
    LOOKUP = "lookup"
    TERMINAL = "terminal"
    FLUSH = "flush"
    TRANSACTION = "transaction"
    SAVEPOINT = "savepoint"
    UNSUPPORTED = "unsupported"
    PASS_THROUGH = "pass_through"
