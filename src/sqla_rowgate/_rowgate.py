"""The gate facade: validate a context, resolve policies, hand out handles."""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from sqlalchemy import MetaData

from sqla_rowgate import _audit
from sqla_rowgate._types import PolicyFunction, PolicyTable
from sqla_rowgate.adapters._base import Adapter
from sqla_rowgate.adapters._sqlalchemy import SQLAlchemyAdapter
from sqla_rowgate.config._config import RowGateConfig, get_global_config
from sqla_rowgate.context._validation import (
    compile_validator,
    validate_context,
    validate_context_async,
)
from sqla_rowgate.gate._proxy import GatedHandle
from sqla_rowgate.policy._resolve import resolve_policy_table, resolve_policy_table_async

__all__ = ["RowGate"]

ClientT = TypeVar("ClientT")


class RowGate(Generic[ClientT]):
    """Row-level authorization gate in front of a SQLAlchemy session.

    Args:
        client: A ``Session``, an ``AsyncSession``, or a ready-made
            :class:`Adapter`.
        policy: ``(context) -> {table: TablePolicy | None}``.  Called on
            every ``gated()``; never cached.
        context: Schema the context is validated against (pydantic model,
            ``TypeAdapter``, type annotation, or validator object).
        config: Explicit configuration.  Defaults to the global config.
        disable_context_validation: Per-gate override of the config flag.
        metadata: ``MetaData`` whose tables must all have a policy entry.

    Raises:
        AdapterError: If *client* cannot be gated.
        PolicyConfigurationError: If no context schema is given while
            validation is enabled.

    Example::

        gate = RowGate(session, policy=post_policy, context=str, metadata=Base.metadata)
        gdb = gate.gated("1")
        gdb.scalars(gdb.select(Post)).all()   # only author 1's posts
    """

    def __init__(
        self,
        client: ClientT | Adapter,
        *,
        policy: PolicyFunction,
        context: Any = None,
        config: RowGateConfig | None = None,
        disable_context_validation: bool | None = None,
        metadata: MetaData | None = None,
    ) -> None:
        if isinstance(client, Adapter):
            self._adapter = client
        else:
            self._adapter = SQLAlchemyAdapter(client, metadata=metadata)
        base = config if config is not None else get_global_config()
        self._config = base.merge(disable_context_validation=disable_context_validation)
        self._policy = policy
        self._validator = (
            None if self._config.disable_context_validation else compile_validator(context)
        )

    @property
    def adapter(self) -> Adapter:
        return self._adapter

    @property
    def config(self) -> RowGateConfig:
        return self._config

    def _open(self, context: Any, policies: PolicyTable) -> GatedHandle:
        if self._config.log_policy_decisions:
            _audit.log_gate_opened(adapter=self._adapter.name, context=context, policies=policies)
        return self._adapter.apply_proxy(policies, context=context, config=self._config)

    def gated(self, context: Any) -> GatedHandle:
        """Return a gated session for *context*.

        Raises:
            ContextValidationError: If *context* fails validation.
            PolicyConfigurationError: If the policy table is malformed or
                incomplete, or the validator/policy is asynchronous.
        """
        if self._validator is not None:
            context = validate_context(self._validator, context)
        policies = resolve_policy_table(
            self._policy,
            context,
            table_names=self._adapter.table_names,
            adapter_name=self._adapter.name,
            require_coverage=self._config.require_policy_coverage,
        )
        return self._open(context, policies)

    async def gated_async(self, context: Any) -> GatedHandle:
        """Async variant of :meth:`gated` for async validators and policies."""
        if self._validator is not None:
            context = await validate_context_async(self._validator, context)
        policies = await resolve_policy_table_async(
            self._policy,
            context,
            table_names=self._adapter.table_names,
            adapter_name=self._adapter.name,
            require_coverage=self._config.require_policy_coverage,
        )
        return self._open(context, policies)

    def ungated(self) -> Any:
        """Return the raw session, bypassing every policy."""
        return self._bypass("ungated")

    def system(self) -> Any:
        """Alias of :meth:`ungated` for system-level code paths."""
        return self._bypass("system")

    def _bypass(self, bypass_type: str) -> Any:
        if self._config.audit_bypasses:
            _audit.log_bypass_event(bypass_type=bypass_type, adapter=self._adapter.name)
        return self._adapter.raw

    def __repr__(self) -> str:
        return f"<RowGate adapter={self._adapter.name}>"
