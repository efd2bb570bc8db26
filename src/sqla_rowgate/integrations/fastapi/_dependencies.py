"""FastAPI dependencies that hand out gated sessions."""

from __future__ import annotations

from typing import Any

from fastapi import Depends, Request
from sqlalchemy import MetaData

from sqla_rowgate._rowgate import RowGate
from sqla_rowgate._types import PolicyFunction
from sqla_rowgate.config._config import RowGateConfig
from sqla_rowgate.gate._proxy import GatedHandle

__all__ = ["GatedSessionDep", "get_context", "get_session"]


# ---------------------------------------------------------------------------
# Sentinel dependency functions
# ---------------------------------------------------------------------------


def get_session(request: Request) -> Any:
    """Sentinel dependency: override via ``app.dependency_overrides[get_session]``.

    Raises ``NotImplementedError`` if not overridden, so a missing session
    provider fails loudly instead of silently serving ungated data.

    Example::

        from sqla_rowgate.integrations.fastapi import get_session

        app.dependency_overrides[get_session] = my_get_db_session
    """
    raise NotImplementedError(
        "Override get_session via app.dependency_overrides[get_session]."
    )


def get_context(request: Request) -> Any:
    """Sentinel dependency: override via ``app.dependency_overrides[get_context]``.

    The returned value is validated against the gate's context schema.

    Example::

        app.dependency_overrides[get_context] = lambda: current_user_id()
    """
    raise NotImplementedError(
        "Override get_context via app.dependency_overrides[get_context]."
    )


# ---------------------------------------------------------------------------
# Dependency builder
# ---------------------------------------------------------------------------


def GatedSessionDep(
    policy: PolicyFunction,
    *,
    context: Any = None,
    config: RowGateConfig | None = None,
    disable_context_validation: bool | None = None,
    metadata: MetaData | None = None,
) -> Any:
    """FastAPI dependency yielding a gated session for the current request.

    Wraps the session from :func:`get_session` in a :class:`RowGate` and
    opens it with the context from :func:`get_context`.  Validators and
    policy functions may be synchronous or asynchronous.

    Args:
        policy: ``(context) -> {table: TablePolicy | None}``.
        context: Context schema (pydantic model, type, or validator).
        config: Optional explicit configuration.
        disable_context_validation: Per-dependency override.
        metadata: ``MetaData`` whose tables must all be covered.

    Returns:
        A FastAPI ``Depends`` instance.

    Example::

        GatedDB = GatedSessionDep(post_policy, context=str)

        @app.get("/posts")
        def list_posts(gdb=GatedDB) -> list[dict]:
            return [{"id": p.id} for p in gdb.scalars(gdb.select(Post))]
    """

    async def _resolve(
        session: Any = Depends(get_session),
        ctx: Any = Depends(get_context),
    ) -> GatedHandle:
        gate: RowGate[Any] = RowGate(
            session,
            policy=policy,
            context=context,
            config=config,
            disable_context_validation=disable_context_validation,
            metadata=metadata,
        )
        return await gate.gated_async(ctx)

    return Depends(_resolve)
