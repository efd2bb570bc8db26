"""Audit logging for policy decisions and bypasses."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

__all__ = [
    "log_bypass_event",
    "log_check_outcome",
    "log_gate_opened",
    "log_missing_policy",
    "log_rule_applied",
]

logger = logging.getLogger("sqla_rowgate")


def log_gate_opened(*, adapter: str, context: Any, policies: Mapping[str, Any]) -> None:
    """Log that a gated session was opened.

    Logging levels:
    - INFO: Summary (adapter, context, number of table policies)
    - DEBUG: Detailed (which tables carry a policy)

    Example::

        log_gate_opened(adapter="sqlalchemy", context=ctx, policies=table)
    """
    logger.info(
        "Gate opened: adapter=%s context=%r, %d table policy(ies)",
        adapter,
        context,
        len(policies),
    )
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("Tables with policies: %s", sorted(policies))


def log_rule_applied(*, table: str, operation: str, rule: str | None, target: Any) -> None:
    """Log that a filter rule was (or was not) applied to a statement."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    if rule is None:
        logger.debug("%s on %r: no %s rule declared, unrestricted", operation, table, operation)
        return
    logger.debug("%s on %r: applied %s against %r", operation, table, rule, target)


def log_missing_policy(*, table: str, operation: str, outcome: str) -> None:
    """Log an operation on a table that has no policy entry."""
    logger.warning(
        "No policy declared for table %r (%s): %s applied",
        table,
        operation,
        outcome,
    )


def log_check_outcome(*, table: str, operation: str, passed: bool) -> None:
    """Log the result of a deferred row check."""
    logger.debug(
        "Check %s on %r: %s",
        operation,
        table,
        "passed" if passed else "failed",
    )


def log_bypass_event(
    *,
    bypass_type: str,
    adapter: str,
    detail: str = "",
) -> None:
    """Log a bypass event to a type-specific sub-logger.

    Each bypass type gets its own logger under ``sqla_rowgate.bypass.<type>``
    so operators can enable/disable granularly.

    Args:
        bypass_type: Category of bypass (``"ungated"`` or ``"system"``).
        adapter: Name of the adapter whose raw client was handed out.
        detail: Additional detail about the bypass event.
    """
    bypass_logger = logging.getLogger(f"sqla_rowgate.bypass.{bypass_type}")
    bypass_logger.warning(
        "BYPASS:%s adapter=%s %s",
        bypass_type,
        adapter,
        detail,
    )
