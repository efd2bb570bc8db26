"""Framework-neutral mapping of rowgate errors to HTTP responses."""

from __future__ import annotations

from typing import Any

from sqla_rowgate.exceptions import (
    AdapterError,
    ContextValidationError,
    PolicyCheckFailedError,
    PolicyConfigurationError,
    RowGateError,
    UnsupportedOperationError,
)

__all__ = ["ERROR_STATUS", "error_body", "status_for"]

ERROR_STATUS: dict[type[RowGateError], int] = {
    ContextValidationError: 401,
    PolicyCheckFailedError: 403,
    UnsupportedOperationError: 400,
    PolicyConfigurationError: 500,
    AdapterError: 500,
}


def status_for(exc: RowGateError) -> int:
    """HTTP status for *exc*, following its class hierarchy."""
    for klass in type(exc).__mro__:
        if klass in ERROR_STATUS:
            return ERROR_STATUS[klass]  # type: ignore[index]
    return 500


def error_body(exc: RowGateError) -> dict[str, Any]:
    return {"detail": exc.message, "code": exc.code, "meta": dict(exc.meta)}
