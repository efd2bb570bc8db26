"""sqla-rowgate: row-level policy gating for SQLAlchemy 2.0 sessions.

Wraps a session so that every statement built through it is narrowed by
per-table filters, and every proposed write row is checked before the
statement reaches the database.

Example::

    from sqla_rowgate import RowGate, TablePolicy, require_values

    def post_policy(user_id: str):
        return {
            "users": None,
            "posts": TablePolicy(
                select_filter=lambda q, t: q.where(t.c.author_id == user_id),
                insert_check=require_values(author_id=user_id),
            ),
        }

    gate = RowGate(session, policy=post_policy, context=str)
    gdb = gate.gated("1")
    gdb.scalars(gdb.select(Post)).all()   # only author 1's posts
"""

from importlib.metadata import PackageNotFoundError, version

from sqla_rowgate._rowgate import RowGate
from sqla_rowgate.adapters import Adapter, SQLAlchemyAdapter
from sqla_rowgate.config._config import RowGateConfig, configure
from sqla_rowgate.context._validation import ContextIssue, ValidationResult
from sqla_rowgate.exceptions import (
    AdapterError,
    ContextValidationError,
    PolicyCheckFailedError,
    PolicyConfigurationError,
    RowGateError,
    UnsupportedOperationError,
)
from sqla_rowgate.gate._proxy import GatedHandle, GatedStatement
from sqla_rowgate.policy import RowCheck, TablePolicy, assert_row_matches, require_values, where

try:
    __version__ = version("sqla-rowgate")
except PackageNotFoundError:
    __version__ = "dev"

__all__ = [
    "__version__",
    "Adapter",
    "AdapterError",
    "ContextIssue",
    "ContextValidationError",
    "GatedHandle",
    "GatedStatement",
    "PolicyCheckFailedError",
    "PolicyConfigurationError",
    "RowCheck",
    "RowGate",
    "RowGateConfig",
    "RowGateError",
    "SQLAlchemyAdapter",
    "TablePolicy",
    "UnsupportedOperationError",
    "ValidationResult",
    "assert_row_matches",
    "configure",
    "require_values",
    "where",
]
