"""Flask extension for sqla-rowgate."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from flask import Flask, Response, current_app, g, jsonify
from sqlalchemy import MetaData

from sqla_rowgate._rowgate import RowGate
from sqla_rowgate._types import PolicyFunction
from sqla_rowgate.config._config import RowGateConfig
from sqla_rowgate.exceptions import RowGateError
from sqla_rowgate.gate._proxy import GatedHandle
from sqla_rowgate.integrations._responses import ERROR_STATUS, error_body, status_for

__all__ = ["RowGateExtension"]

_G_KEY = "_sqla_rowgate_handle"


class RowGateExtension:
    """Flask extension that hands out a gated session per request.

    Registers error handlers mapping rowgate errors to JSON responses and
    provides :meth:`gated`, which wraps the request's session and caches
    the gated handle on ``flask.g``.

    Supports the Flask app-factory pattern via ``init_app()``.

    Args:
        app: Optional Flask application. If provided, calls ``init_app()``
            immediately.
        session_provider: ``() -> Session`` called within request context.
        context_provider: ``() -> context`` called within request context.
        policy: ``(context) -> {table: TablePolicy | None}``.
        context: Context schema (pydantic model, type, or validator).
        config: Optional explicit configuration.
        metadata: ``MetaData`` whose tables must all be covered.

    Example::

        app = Flask(__name__)
        rowgate = RowGateExtension(
            app,
            session_provider=lambda: db_session,
            context_provider=lambda: current_user_id(),
            policy=post_policy,
            context=str,
        )

        @app.get("/posts")
        def list_posts():
            gdb = rowgate.gated()
            return [p.id for p in gdb.scalars(gdb.select(Post))]
    """

    def __init__(
        self,
        app: Flask | None = None,
        *,
        session_provider: Callable[[], Any],
        context_provider: Callable[[], Any],
        policy: PolicyFunction,
        context: Any = None,
        config: RowGateConfig | None = None,
        metadata: MetaData | None = None,
    ) -> None:
        self._session_provider = session_provider
        self._context_provider = context_provider
        self._policy = policy
        self._context = context
        self._config = config
        self._metadata = metadata

        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Initialize the extension with a Flask application.

        Stores the extension on ``app.extensions["sqla_rowgate"]`` and
        registers error handlers for rowgate exceptions.
        """
        app.extensions["sqla_rowgate"] = self

        def handle_rowgate_error(exc: RowGateError) -> tuple[Response, int]:
            return jsonify(error_body(exc)), status_for(exc)

        for exc_type in ERROR_STATUS:
            app.register_error_handler(exc_type, handle_rowgate_error)

    def gated(self) -> GatedHandle:
        """Return the gated session for the current request.

        The first call per request builds the gate and validates the
        context; later calls return the cached handle.
        """
        handle: GatedHandle | None = g.get(_G_KEY)
        if handle is not None:
            return handle
        ext: RowGateExtension = current_app.extensions["sqla_rowgate"]
        gate: RowGate[Any] = RowGate(
            ext._session_provider(),
            policy=ext._policy,
            context=ext._context,
            config=ext._config,
            metadata=ext._metadata,
        )
        handle = gate.gated(ext._context_provider())
        setattr(g, _G_KEY, handle)
        return handle
