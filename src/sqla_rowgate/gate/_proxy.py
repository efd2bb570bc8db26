"""Gating proxy: recursive wrappers that enforce a policy table.

Every attribute access on a :class:`Gated` object is classified by the
adapter into an :class:`OperationKind` and handled by the transition
function registered for that kind in ``_TRANSITIONS``.  Results that are
themselves statement builders come back wrapped, so policy enforcement
follows the statement through every chained call.
"""

from __future__ import annotations

import functools
import inspect
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import replace
from typing import Any

from sqla_rowgate import _audit
from sqla_rowgate._types import Operation
from sqla_rowgate.exceptions import PolicyConfigurationError, UnsupportedOperationError
from sqla_rowgate.gate._kinds import OperationKind
from sqla_rowgate.gate._queue import PendingCheck, arun_check, run_check
from sqla_rowgate.gate._state import BuilderScope, GateState, TableTarget
from sqla_rowgate.gate._transaction import open_transaction

__all__ = ["Gated", "GatedHandle", "GatedStatement", "unwrap"]

_FILTER_SLOTS: dict[str, str] = {
    "select": "select_filter",
    "update": "update_filter",
    "delete": "delete_filter",
}
_CHECK_SLOTS: dict[str, str] = {
    "insert": "insert_check",
    "update": "update_check",
}


def unwrap(value: Any) -> Any:
    """Replace gated wrappers in *value* with their raw targets.

    Recurses into lists, plain tuples, and dicts.
    """
    if isinstance(value, Gated):
        return value._target
    if isinstance(value, list):
        return [unwrap(item) for item in value]
    if type(value) is tuple:
        return tuple(unwrap(item) for item in value)
    if isinstance(value, dict):
        return {key: unwrap(item) for key, item in value.items()}
    return value


class Gated:
    """Base for every gated wrapper.

    Holds the raw target, the shared :class:`GateState`, and the
    :class:`BuilderScope` describing the statement (``None`` for sessions
    and non-statement clause elements).  Names starting with an underscore
    are never forwarded.
    """

    __slots__ = ("_target", "_state", "_scope")

    def __init__(self, target: Any, state: GateState, scope: BuilderScope | None = None) -> None:
        self._target = target
        self._state = state
        self._scope = scope

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        kind = self._state.adapter.classify(self._target, name, self._scope)
        return _TRANSITIONS[kind](self, name)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._target!r}>"


class GatedHandle(Gated):
    """A gated session.

    Exposes the wrapped session's API: ``select``/``insert``/``update``/
    ``delete`` build gated statements, ``execute``/``scalar``/``scalars``
    drain pending checks before running them, and ``begin``/``begin_nested``
    open gated transactions.

    Example::

        gdb = gate.gated("1")
        posts = gdb.scalars(gdb.select(Post)).all()
    """

    __slots__ = ()


class GatedStatement(Gated):
    """A gated statement builder or clause element.

    Passes for a clause element anywhere SQLAlchemy coerces one, so a gated
    subquery can be used inside another gated statement.
    """

    __slots__ = ()

    is_clause_element = False

    def __clause_element__(self) -> Any:
        return self._target

    def __str__(self) -> str:
        return str(self._target)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _prepare(
    state: GateState,
    args: Sequence[Any],
    kwargs: Mapping[str, Any],
) -> tuple[tuple[Any, ...], dict[str, Any]]:
    """Resolve callbacks, unwrap gated arguments, and reject raw escapes.

    A plain function argument is a composite callback: it is called with a
    gated handle sharing this state (same policies, same queue stack) and
    its result replaces it.
    """
    handle: GatedHandle | None = None

    def resolve(value: Any) -> Any:
        nonlocal handle
        if inspect.isfunction(value):
            if handle is None:
                handle = GatedHandle(state.adapter.raw, state)
            value = value(handle)
        return unwrap(value)

    resolved_args = tuple(resolve(value) for value in args)
    resolved_kwargs = {key: resolve(value) for key, value in kwargs.items()}
    state.adapter.check_arguments(
        (resolved_args, resolved_kwargs),
        token=state.token,
        allowed=state.config.allowed_raw_fragments,
    )
    return resolved_args, resolved_kwargs


def _rule_name(rule: Any) -> str | None:
    if rule is None:
        return None
    return getattr(rule, "__name__", repr(rule))


def _missing_policy(state: GateState, statement: Any, table: str, operation: str) -> Any:
    mode = state.config.on_missing_policy
    if state.config.log_policy_decisions:
        _audit.log_missing_policy(table=table, operation=operation, outcome=mode)
    if mode == "raise":
        raise PolicyConfigurationError(
            f"No policy declared for table {table!r}",
            missing_tables=(table,),
            meta={"operation": operation},
        )
    if mode == "deny":
        return state.adapter.deny(statement)
    return statement


def _apply_filter(state: GateState, statement: Any, target: TableTarget, operation: str) -> Any:
    policy = state.policies.get(target.table)
    if policy is None:
        return _missing_policy(state, statement, target.table, operation)
    rule = getattr(policy, _FILTER_SLOTS[operation])
    if state.config.log_policy_decisions:
        _audit.log_rule_applied(
            table=target.table,
            operation=operation,
            rule=_rule_name(rule),
            target=target.runtime,
        )
    if rule is None:
        return statement
    narrowed = unwrap(rule(statement, target.runtime))
    if not state.adapter.is_builder(narrowed):
        raise PolicyConfigurationError(
            f"{operation} filter for {target.table!r} must return a statement, "
            f"got {type(narrowed).__name__}"
        )
    return narrowed


def _narrow(
    state: GateState,
    statement: Any,
    scope: BuilderScope,
    targets: Iterable[TableTarget],
) -> tuple[Any, BuilderScope]:
    filtered = set(scope.filtered)
    for target in targets:
        if target.key in filtered:
            continue
        statement = _apply_filter(state, statement, target, "select")
        filtered.add(target.key)
    return statement, replace(scope, filtered=frozenset(filtered))


def _sweep(state: GateState, statement: Any, scope: BuilderScope) -> tuple[Any, BuilderScope]:
    """Filter tables that entered the FROM scope implicitly.

    Tables pulled in by ``where()``, ``add_columns()`` and friends are
    narrowed here.  Tables a policy filter introduces itself are trusted.
    """
    adapter = state.adapter
    pending: dict[Any, TableTarget] = {}
    for target in adapter.referenced_targets(statement):
        if target.key not in scope.filtered:
            pending.setdefault(target.key, target)
    if not pending:
        return statement, scope
    for target in pending.values():
        statement = _apply_filter(state, statement, target, "select")
    filtered = scope.filtered | set(pending)
    filtered |= {target.key for target in adapter.referenced_targets(statement)}
    return statement, replace(scope, filtered=filtered)


def _wrap(state: GateState, result: Any, scope: BuilderScope | None) -> Any:
    if inspect.isawaitable(result):
        return result
    adapter = state.adapter
    if not adapter.is_builder(result):
        return result
    if adapter.is_read_builder(result):
        if scope is None or scope.operation != "select":
            scope = BuilderScope(operation="select")
        result, scope = _sweep(state, result, scope)
        result = adapter.mark(result, state.token)
    return GatedStatement(result, state, scope)


def _restrict_loads(state: GateState, statement: Any) -> Any:
    """Apply select filters to rows loaded through relationships.

    Eager loader options and later lazy loads of the returned objects run
    without the statement's WHERE clause; the filters ride along as loader
    criteria instead.  Undeclared tables load nothing unless
    ``on_missing_policy`` is ``"allow"``.
    """
    adapter = state.adapter
    for target in adapter.loadable_targets(statement):
        policy = state.policies.get(target.table)
        if policy is None:
            if state.config.on_missing_policy != "allow":
                statement = adapter.restrict_loads(statement, target, None)
            continue
        rule = policy.select_filter
        if rule is not None:
            statement = adapter.restrict_loads(
                statement,
                target,
                functools.partial(_narrow_plain_read, rule, target.runtime),
            )
    return statement


def _narrow_plain_read(rule: Any, runtime: Any, statement: Any) -> Any:
    return unwrap(rule(statement, runtime))


def _carried_scope(gated: Gated, result: Any) -> BuilderScope | None:
    scope = gated._scope
    if scope is not None and gated._state.adapter.same_shape(gated._target, result):
        return scope
    return None


def _has_check(state: GateState, table: str, operation: Operation) -> bool:
    policy = state.policies.get(table)
    if policy is not None:
        return getattr(policy, _CHECK_SLOTS[operation]) is not None
    if operation != "insert":
        # Updates on undeclared tables are governed by the filter alone.
        return False
    mode = state.config.on_missing_policy
    if state.config.log_policy_decisions:
        _audit.log_missing_policy(table=table, operation=operation, outcome=mode)
    if mode == "raise":
        raise PolicyConfigurationError(
            f"No policy declared for table {table!r}",
            missing_tables=(table,),
            meta={"operation": operation},
        )
    return mode == "deny"


def _deny_undeclared(client: Any, row: Mapping[str, Any]) -> bool:
    return False


def _queue_checks(
    state: GateState,
    scope: BuilderScope,
    rows: Iterable[Mapping[str, Any]],
) -> tuple[PendingCheck, ...]:
    table = scope.table
    operation = scope.operation
    if table is None or not scope.checked:
        return ()
    policy = state.policies.get(table)
    check = _deny_undeclared if policy is None else getattr(policy, _CHECK_SLOTS[operation])
    client = state.adapter.raw
    entries = tuple(
        PendingCheck(
            table=table,
            operation=operation,
            row=row,
            run=functools.partial(check, client, row),
        )
        for row in rows
    )
    for entry in entries:
        state.queue.append(entry)
    return entries


def _guard(state: GateState) -> None:
    if state.config.guard_unit_of_work:
        state.adapter.guard_pending_changes()


def _single_target(state: GateState, args: Sequence[Any], operation: str) -> TableTarget:
    targets = state.adapter.targets(args[0]) if args else []
    if len(targets) != 1:
        raise UnsupportedOperationError(
            f"{operation}() must target exactly one table, mapped class, or table alias",
            meta={"operation": operation},
        )
    return targets[0]


# ---------------------------------------------------------------------------
# Transitions, one per OperationKind
# ---------------------------------------------------------------------------


def _read(gated: Gated, name: str) -> Callable[..., Any]:
    state = gated._state
    build = state.adapter.build(gated._target, name)
    parent = gated._scope if gated._scope is not None and gated._scope.operation == "select" else None

    def read(*args: Any, **kwargs: Any) -> Any:
        args, kwargs = _prepare(state, args, kwargs)
        statement = build(*args, **kwargs)
        targets = [target for value in args for target in state.adapter.targets(value)]
        statement, scope = _narrow(
            state, statement, parent or BuilderScope(operation="select"), targets
        )
        return _wrap(state, statement, scope)

    return read


def _write_builder(operation: Operation) -> Callable[[Gated, str], Callable[..., Any]]:
    def transition(gated: Gated, name: str) -> Callable[..., Any]:
        state = gated._state
        build = state.adapter.build(gated._target, name)

        def write(*args: Any, **kwargs: Any) -> GatedStatement:
            args, kwargs = _prepare(state, args, kwargs)
            target = _single_target(state, args, operation)
            statement = build(*args, **kwargs)
            if operation in _FILTER_SLOTS:
                statement = _apply_filter(state, statement, target, operation)
            checked = operation in _CHECK_SLOTS and _has_check(state, target.table, operation)
            scope = BuilderScope(operation=operation, table=target.table, checked=checked)
            return GatedStatement(statement, state, scope)

        return write

    return transition


def _values(gated: Gated, name: str) -> Callable[..., GatedStatement]:
    state = gated._state
    scope = gated._scope
    if scope is None:
        raise UnsupportedOperationError(
            f"{name}() is only gated on insert and update builders", meta={"operation": name}
        )
    method = getattr(gated._target, name)

    def values(*args: Any, **kwargs: Any) -> GatedStatement:
        args, kwargs = _prepare(state, args, kwargs)
        statement = method(*args, **kwargs)
        rows = state.adapter.rows(gated._target, name, args, kwargs)
        entries = _queue_checks(state, scope, rows)
        return GatedStatement(statement, state, replace(scope, checks=scope.checks + entries))

    return values


def _join(gated: Gated, name: str) -> Callable[..., Any]:
    state = gated._state
    method = getattr(gated._target, name)

    def join(*args: Any, **kwargs: Any) -> Any:
        args, kwargs = _prepare(state, args, kwargs)
        statement = method(*args, **kwargs)
        targets = state.adapter.join_targets(name, args, kwargs)
        statement, scope = _narrow(
            state, statement, gated._scope or BuilderScope(operation="select"), targets
        )
        return _wrap(state, statement, scope)

    return join


def _lookup(gated: Gated, name: str) -> Callable[..., Any]:
    state = gated._state
    adapter = state.adapter
    handle = GatedHandle(adapter.raw, state)
    required = name.endswith("_one")

    def statement(
        entity: Any,
        ident: Any,
        *,
        options: Sequence[Any] | None = None,
        populate_existing: bool = False,
        with_for_update: bool | Mapping[str, Any] | None = None,
        identity_token: Any = None,
        execution_options: Mapping[str, Any] | None = None,
    ) -> Any:
        if identity_token is not None:
            raise UnsupportedOperationError(
                f"{name}() does not support identity_token on a gated session",
                meta={"operation": name},
            )
        stmt = handle.select(entity).where(*adapter.identity_criteria(entity, ident))
        if options:
            stmt = stmt.options(*options)
        if populate_existing:
            stmt = stmt.execution_options(populate_existing=True)
        if execution_options:
            stmt = stmt.execution_options(**execution_options)
        if with_for_update:
            stmt = stmt.with_for_update(
                **(dict(with_for_update) if isinstance(with_for_update, Mapping) else {})
            )
        return stmt

    def execute_kwargs(bind_arguments: Mapping[str, Any] | None) -> dict[str, Any]:
        return {} if bind_arguments is None else {"bind_arguments": dict(bind_arguments)}

    def finish(instance: Any, entity: Any) -> Any:
        if instance is None and required:
            raise adapter.missing_row_error(entity)
        return instance

    if adapter.is_async:

        async def lookup_async(
            entity: Any,
            ident: Any,
            *,
            bind_arguments: Mapping[str, Any] | None = None,
            **options: Any,
        ) -> Any:
            result = await handle.execute(
                statement(entity, ident, **options), **execute_kwargs(bind_arguments)
            )
            return finish(result.scalars().first(), entity)

        return lookup_async

    def lookup(
        entity: Any,
        ident: Any,
        *,
        bind_arguments: Mapping[str, Any] | None = None,
        **options: Any,
    ) -> Any:
        result = handle.execute(
            statement(entity, ident, **options), **execute_kwargs(bind_arguments)
        )
        return finish(result.scalars().first(), entity)

    return lookup


def _prepare_terminal(
    state: GateState,
    name: str,
    args: Sequence[Any],
    kwargs: dict[str, Any],
) -> tuple[tuple[Any, ...], dict[str, Any], tuple[PendingCheck, ...]]:
    rest = list(args)
    if rest:
        statement = rest.pop(0)
    elif "statement" in kwargs:
        statement = kwargs.pop("statement")
    else:
        raise TypeError(f"{name}() missing required argument: 'statement'")
    if not isinstance(statement, GatedStatement) or statement._state is not state:
        raise UnsupportedOperationError(
            f"{name}() only accepts statements built from this gated session. "
            f"Build the statement with the gated session, or use ungated() for trusted code.",
            meta={"operation": name},
        )
    owned: tuple[PendingCheck, ...] = ()
    scope = statement._scope
    if scope is not None:
        owned = scope.checks
        if scope.operation in _CHECK_SLOTS:
            params = rest[0] if rest else kwargs.get("params")
            if params:
                owned += _queue_checks(state, scope, state.adapter.param_rows(params))
            elif scope.operation == "insert" and not scope.checks:
                # An insert of column defaults is still a proposed row.
                owned += _queue_checks(state, scope, [{}])
    prepared_args, prepared_kwargs = _prepare(state, rest, kwargs)
    target = statement._target
    if state.adapter.is_read_builder(target):
        target = _restrict_loads(state, target)
    return (target, *prepared_args), prepared_kwargs, owned


def _terminal(gated: Gated, name: str) -> Callable[..., Any]:
    state = gated._state
    method = getattr(gated._target, name)
    audit = state.config.log_policy_decisions

    if state.adapter.is_async:

        async def execute_async(*args: Any, **kwargs: Any) -> Any:
            call_args, call_kwargs, owned = _prepare_terminal(state, name, args, kwargs)
            _guard(state)
            await state.queue.adrain(audit=audit)
            for entry in owned:
                if entry.status != "passed":
                    await arun_check(entry, audit=audit)
            return await method(*call_args, **call_kwargs)

        return execute_async

    def execute(*args: Any, **kwargs: Any) -> Any:
        call_args, call_kwargs, owned = _prepare_terminal(state, name, args, kwargs)
        _guard(state)
        state.queue.drain(audit=audit)
        for entry in owned:
            if entry.status != "passed":
                run_check(entry, audit=audit)
        return method(*call_args, **call_kwargs)

    return execute


def _flush(gated: Gated, name: str) -> Callable[..., Any]:
    state = gated._state
    method = getattr(gated._target, name)

    def flush(*args: Any, **kwargs: Any) -> Any:
        _guard(state)
        return method(*args, **kwargs)

    return flush


def _begin(nested: bool) -> Callable[[Gated, str], Callable[[], Any]]:
    def transition(gated: Gated, name: str) -> Callable[[], Any]:
        state = gated._state
        handle = GatedHandle(state.adapter.raw, state)

        def begin() -> Any:
            return open_transaction(state, handle, nested=nested)

        return begin

    return transition


def _unsupported(gated: Gated, name: str) -> Any:
    adapter = gated._state.adapter
    raise UnsupportedOperationError(
        adapter.unsupported_message(name),
        meta={"operation": name, "adapter": adapter.name},
    )


def _pass_through(gated: Gated, name: str) -> Any:
    state = gated._state
    attribute = getattr(gated._target, name)
    if not callable(attribute):
        return _wrap(state, attribute, _carried_scope(gated, attribute))

    def forward(*args: Any, **kwargs: Any) -> Any:
        args, kwargs = _prepare(state, args, kwargs)
        result = attribute(*args, **kwargs)
        return _wrap(state, result, _carried_scope(gated, result))

    return forward


_TRANSITIONS: dict[OperationKind, Callable[[Gated, str], Any]] = {
    OperationKind.READ: _read,
    OperationKind.DELETE: _write_builder("delete"),
    OperationKind.INSERT: _write_builder("insert"),
    OperationKind.UPDATE: _write_builder("update"),
    OperationKind.VALUES: _values,
    OperationKind.JOIN: _join,
    OperationKind.LOOKUP: _lookup,
    OperationKind.TERMINAL: _terminal,
    OperationKind.FLUSH: _flush,
    OperationKind.TRANSACTION: _begin(nested=False),
    OperationKind.SAVEPOINT: _begin(nested=True),
    OperationKind.UNSUPPORTED: _unsupported,
    OperationKind.PASS_THROUGH: _pass_through,
}
