"""Exception handlers for FastAPI integration."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from sqla_rowgate.exceptions import RowGateError
from sqla_rowgate.integrations._responses import ERROR_STATUS, error_body, status_for

__all__ = ["install_error_handlers"]


def install_error_handlers(app: FastAPI) -> None:
    """Install exception handlers for sqla-rowgate errors on a FastAPI app.

    - ``ContextValidationError`` -> 401 Unauthorized
    - ``PolicyCheckFailedError`` -> 403 Forbidden
    - ``UnsupportedOperationError`` -> 400 Bad Request
    - ``PolicyConfigurationError`` / ``AdapterError`` -> 500

    Responses carry ``{"detail", "code", "meta"}``.

    Example::

        from fastapi import FastAPI
        from sqla_rowgate.integrations.fastapi import install_error_handlers

        app = FastAPI()
        install_error_handlers(app)
    """

    async def rowgate_error_handler(request: Request, exc: Exception) -> JSONResponse:
        if not isinstance(exc, RowGateError):
            raise exc
        return JSONResponse(status_code=status_for(exc), content=error_body(exc))

    for exc_type in ERROR_STATUS:
        app.add_exception_handler(exc_type, rowgate_error_handler)
