"""Adapter for SQLAlchemy 2.0 ``Session`` and ``AsyncSession``."""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping, Sequence
from typing import Any

from sqlalchemy import MetaData, delete, false, insert, select, update
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import InvalidRequestError, NoResultFound
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import (
    Mapper,
    QueryableAttribute,
    RelationshipProperty,
    Session,
    with_loader_criteria,
)
from sqlalchemy.orm.util import AliasedClass, AliasedInsp
from sqlalchemy.sql.dml import Insert, Update, UpdateBase
from sqlalchemy.sql.elements import ClauseElement, ColumnClause, TextClause
from sqlalchemy.sql.operators import custom_op
from sqlalchemy.sql.selectable import (
    Alias,
    AliasedReturnsRows,
    Join,
    Select,
    SelectBase,
    TableClause,
)

from sqla_rowgate.adapters._base import Adapter
from sqla_rowgate.exceptions import AdapterError, UnsupportedOperationError
from sqla_rowgate.gate._kinds import OperationKind
from sqla_rowgate.gate._state import BuilderScope, TableTarget

__all__ = ["TOKEN_OPTION", "SQLAlchemyAdapter"]

# Execution option carrying the scope token of the gated session that built
# a SELECT.
TOKEN_OPTION = "rowgate_token"

_GUIDANCE = "If you need this, use ungated() instead."

_ROOT_BUILDERS: dict[str, tuple[OperationKind, Callable[..., Any]]] = {
    "select": (OperationKind.READ, select),
    "insert": (OperationKind.INSERT, insert),
    "update": (OperationKind.UPDATE, update),
    "delete": (OperationKind.DELETE, delete),
}

_LOOKUPS = frozenset({"get", "get_one"})
_TERMINALS = frozenset({"execute", "scalar", "scalars", "stream", "stream_scalars"})
_FLUSHES = frozenset({"flush", "commit"})
_JOINS = frozenset({"join", "outerjoin", "join_from", "outerjoin_from"})
_VALUES = frozenset({"values", "ordered_values"})

_UNIT_OF_WORK = "ORM unit-of-work writes are flushed without row checks; use insert()/update()/delete()"
_BULK = "Bulk ORM operations are not gated"

_SESSION_UNSUPPORTED: dict[str, str] = {
    "add": _UNIT_OF_WORK,
    "add_all": _UNIT_OF_WORK,
    "merge": _UNIT_OF_WORK,
    "query": "The legacy Query API is not gated; use select()",
    "connection": "Raw connections are not gated",
    "get_bind": "Raw engine access is not gated",
    "bind": "Raw engine access is not gated",
    "bulk_save_objects": _BULK,
    "bulk_insert_mappings": _BULK,
    "bulk_update_mappings": _BULK,
    "run_sync": "run_sync() hands out the raw synchronous session",
    "sync_session": "The underlying synchronous session is not gated",
}

_RAW_SQL = "Raw SQL fragments are not supported"

_BUILDER_UNSUPPORTED: dict[str, str] = {
    "prefix_with": _RAW_SQL,
    "suffix_with": _RAW_SQL,
    "with_hint": _RAW_SQL,
    "with_statement_hint": _RAW_SQL,
    "from_select": "INSERT ... SELECT cannot be row-checked",
}


def _from_target(element: Any) -> TableTarget | None:
    if isinstance(element, TableClause):
        return TableTarget(table=element.name, runtime=element.c, key=(element.name, None))
    if isinstance(element, Alias) and isinstance(element.element, TableClause):
        base = element.element.name
        return TableTarget(table=base, runtime=element.c, key=(base, element.name))
    return None


def _column_key(key: Any) -> str:
    if isinstance(key, str):
        return key
    return str(getattr(key, "key", key))


def _mapping_row(values: Mapping[Any, Any]) -> dict[str, Any]:
    return {_column_key(key): value for key, value in values.items()}


def _clause_elements(value: Any) -> Iterator[ClauseElement]:
    if isinstance(value, ClauseElement):
        yield value
    elif isinstance(value, AliasedClass):
        yield sa_inspect(value).selectable
    elif not isinstance(value, type) and hasattr(value, "__clause_element__"):
        yield value.__clause_element__()
    elif isinstance(value, (list, tuple, set, frozenset)):
        for item in value:
            yield from _clause_elements(item)
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from _clause_elements(item)


class SQLAlchemyAdapter(Adapter):
    """Gate a SQLAlchemy ``Session`` or ``AsyncSession``.

    Args:
        raw: The session to wrap.
        metadata: Optional ``MetaData`` whose tables must all be covered by
            the policy table.

    Raises:
        AdapterError: If *raw* is not a session.
    """

    name = "sqlalchemy"

    def __init__(self, raw: Any, *, metadata: MetaData | None = None) -> None:
        if not isinstance(raw, (Session, AsyncSession)):
            raise AdapterError(
                f"Cannot gate {type(raw).__name__}; expected a Session or AsyncSession",
                meta={"client": type(raw).__name__},
            )
        super().__init__(raw)
        self._table_names = (
            frozenset(table.name for table in metadata.tables.values())
            if metadata is not None
            else None
        )

    @property
    def table_names(self) -> frozenset[str] | None:
        return self._table_names

    @property
    def is_async(self) -> bool:
        return isinstance(self.raw, AsyncSession)

    # -- classification -----------------------------------------------------

    def classify(self, target: Any, name: str, scope: BuilderScope | None) -> OperationKind:
        if isinstance(target, (Session, AsyncSession)):
            return self._classify_session(name)
        if name in _VALUES and scope is not None and isinstance(target, (Insert, Update)):
            return OperationKind.VALUES
        if name == "from_select":
            if scope is not None and scope.operation == "insert" and scope.checked:
                return OperationKind.UNSUPPORTED
            return OperationKind.PASS_THROUGH
        if name in _BUILDER_UNSUPPORTED:
            return OperationKind.UNSUPPORTED
        if isinstance(target, Select):
            if name in _JOINS:
                return OperationKind.JOIN
            if name == "select_from":
                return OperationKind.READ
        return OperationKind.PASS_THROUGH

    def _classify_session(self, name: str) -> OperationKind:
        if name in _ROOT_BUILDERS:
            return _ROOT_BUILDERS[name][0]
        if name in _TERMINALS:
            return OperationKind.TERMINAL
        if name in _FLUSHES:
            return OperationKind.FLUSH
        if name in _LOOKUPS:
            return OperationKind.LOOKUP
        if name == "begin":
            return OperationKind.TRANSACTION
        if name == "begin_nested":
            return OperationKind.SAVEPOINT
        if name in _SESSION_UNSUPPORTED:
            return OperationKind.UNSUPPORTED
        return OperationKind.PASS_THROUGH

    def unsupported_message(self, name: str) -> str:
        reason = _SESSION_UNSUPPORTED.get(name) or _BUILDER_UNSUPPORTED.get(name)
        if reason is None:
            reason = f"{name}() is not supported on a gated session"
        return f"{reason}. {_GUIDANCE}"

    def build(self, target: Any, name: str) -> Callable[..., Any]:
        if isinstance(target, (Session, AsyncSession)) and name in _ROOT_BUILDERS:
            return _ROOT_BUILDERS[name][1]
        return getattr(target, name)

    def is_builder(self, value: Any) -> bool:
        return isinstance(value, ClauseElement)

    def is_read_builder(self, value: Any) -> bool:
        return isinstance(value, Select)

    def same_shape(self, target: Any, result: Any) -> bool:
        return isinstance(result, ClauseElement) and isinstance(result, type(target))

    # -- table resolution ---------------------------------------------------

    def targets(self, value: Any) -> list[TableTarget]:
        if isinstance(value, QueryableAttribute):
            prop = value.property
            if isinstance(prop, RelationshipProperty):
                # of_type() keeps the requested (possibly aliased) target here.
                of_type = getattr(value, "_of_type", None)
                return self.targets(of_type.entity if of_type is not None else prop.mapper.class_)
            return self.targets(value.parent.entity)
        if isinstance(value, (type, AliasedClass)):
            insp = sa_inspect(value, raiseerr=False)
            if isinstance(insp, AliasedInsp):
                table = insp.mapper.local_table
                return [TableTarget(table=table.name, runtime=value, key=(table.name, insp.selectable.name))]
            if isinstance(insp, Mapper):
                table = insp.local_table
                return [TableTarget(table=table.name, runtime=value, key=(table.name, None))]
            return []
        if isinstance(value, ColumnClause):
            return self.targets(value.table) if value.table is not None else []
        if isinstance(value, Join):
            return self.targets(value.left) + self.targets(value.right)
        target = _from_target(value)
        return [target] if target is not None else []

    def join_targets(
        self, name: str, args: Sequence[Any], kwargs: Mapping[str, Any]
    ) -> list[TableTarget]:
        values = list(args[:2] if name.endswith("_from") else args[:1])
        values.extend(kwargs[key] for key in ("from_", "target") if key in kwargs)
        return [target for value in values for target in self.targets(value)]

    def referenced_targets(self, statement: Any) -> list[TableTarget]:
        found: dict[Any, TableTarget] = {}
        stack: list[Any] = list(statement.get_children())
        while stack:
            element = stack.pop()
            if isinstance(element, SelectBase):
                # Nested selects are gated on their own.
                continue
            if isinstance(element, ColumnClause):
                if element.table is not None:
                    stack.append(element.table)
                continue
            target = _from_target(element)
            if target is not None:
                found.setdefault(target.key, target)
                continue
            if isinstance(element, AliasedReturnsRows):
                continue
            stack.extend(element.get_children())
        return list(found.values())

    # -- rows ---------------------------------------------------------------

    def _positional(self, statement: Any, values: Sequence[Any]) -> dict[str, Any]:
        keys = [column.key for column in statement.table.c]
        return dict(zip(keys, values))

    def rows(
        self, statement: Any, name: str, args: Sequence[Any], kwargs: Mapping[str, Any]
    ) -> list[dict[str, Any]]:
        if name == "ordered_values":
            return [{_column_key(key): value for key, value in args}]
        rows: list[dict[str, Any]] = []
        if kwargs:
            rows.append(_mapping_row(kwargs))
        for arg in args:
            if isinstance(arg, Mapping):
                rows.append(_mapping_row(arg))
            elif isinstance(arg, (list, tuple)):
                if arg and all(isinstance(item, Mapping) for item in arg):
                    rows.extend(_mapping_row(item) for item in arg)
                elif arg and all(isinstance(item, (list, tuple)) for item in arg):
                    rows.extend(self._positional(statement, item) for item in arg)
                else:
                    rows.append(self._positional(statement, arg))
        if not rows:
            rows.append({})
        if isinstance(statement, Update):
            merged: dict[str, Any] = {}
            for row in rows:
                merged.update(row)
            return [merged]
        return rows

    def param_rows(self, params: Any) -> list[dict[str, Any]]:
        if isinstance(params, Mapping):
            return [_mapping_row(params)]
        if isinstance(params, (list, tuple)):
            return [_mapping_row(item) for item in params if isinstance(item, Mapping)]
        return []

    # -- statement surgery --------------------------------------------------

    def deny(self, statement: Any) -> Any:
        return statement.where(false())

    def mark(self, statement: Any, token: str) -> Any:
        return statement.execution_options(**{TOKEN_OPTION: token})

    def loadable_targets(self, statement: Any) -> list[TableTarget]:
        if not isinstance(statement, Select):
            return []
        stack: list[Mapper[Any]] = []
        for description in statement.column_descriptions:
            insp = sa_inspect(description.get("entity"), raiseerr=False)
            mapper = getattr(insp, "mapper", None)
            if isinstance(mapper, Mapper):
                stack.append(mapper)
        seen: dict[Mapper[Any], None] = {}
        while stack:
            mapper = stack.pop()
            if mapper in seen:
                continue
            seen[mapper] = None
            stack.extend(prop.mapper for prop in mapper.relationships)
        return [
            TableTarget(
                table=mapper.local_table.name,
                runtime=mapper.class_,
                key=(mapper.local_table.name, None),
            )
            for mapper in seen
        ]

    def restrict_loads(
        self,
        statement: Any,
        target: TableTarget,
        narrow: Callable[[Any], Any] | None,
    ) -> Any:
        if narrow is None:
            criterion = false()
        else:
            criterion = narrow(select(target.runtime)).whereclause
            if criterion is None:
                return statement
        return statement.options(
            with_loader_criteria(target.runtime, criterion, include_aliases=True)
        )

    def check_arguments(self, values: Any, *, token: str, allowed: frozenset[str]) -> None:
        seen: set[int] = set()
        for root in _clause_elements(values):
            stack: list[Any] = [root]
            while stack:
                element = stack.pop()
                if id(element) in seen:
                    continue
                seen.add(id(element))
                if isinstance(element, UpdateBase):
                    raise UnsupportedOperationError(
                        f"Data-modifying statements cannot be nested in a gated statement. {_GUIDANCE}"
                    )
                if isinstance(element, Select):
                    if element.get_execution_options().get(TOKEN_OPTION) != token:
                        raise UnsupportedOperationError(
                            "Nested SELECT was not built from this gated session; build it with "
                            f"the gated session so its policies apply. {_GUIDANCE}"
                        )
                    continue
                if isinstance(element, TextClause):
                    if element.text.strip() not in allowed:
                        raise UnsupportedOperationError(
                            f"{_RAW_SQL}: {element.text!r}. {_GUIDANCE}",
                            meta={"fragment": element.text},
                        )
                    continue
                if isinstance(element, ColumnClause) and element.is_literal:
                    if element.name.strip() not in allowed:
                        raise UnsupportedOperationError(
                            f"{_RAW_SQL}: {element.name!r}. {_GUIDANCE}",
                            meta={"fragment": element.name},
                        )
                    continue
                if isinstance(element, ColumnClause):
                    # Columns of a subquery or CTE lead back to its SELECT.
                    if element.table is not None:
                        stack.append(element.table)
                    continue
                if isinstance(element, TableClause):
                    continue
                # op() and bool_op() render their operator string verbatim.
                for operator in (getattr(element, "operator", None), getattr(element, "modifier", None)):
                    if isinstance(operator, custom_op) and operator.opstring.strip() not in allowed:
                        raise UnsupportedOperationError(
                            f"{_RAW_SQL}: custom operator {operator.opstring!r}. {_GUIDANCE}",
                            meta={"fragment": operator.opstring},
                        )
                stack.extend(element.get_children())

    def identity_criteria(self, entity: Any, ident: Any) -> list[Any]:
        mapper = sa_inspect(entity, raiseerr=False)
        if not isinstance(mapper, Mapper):
            raise InvalidRequestError(f"get() expects a mapped class, got {entity!r}")
        primary_key = mapper.primary_key
        if isinstance(ident, Mapping):
            try:
                values = [ident[mapper.get_property_by_column(column).key] for column in primary_key]
            except KeyError as exc:
                raise InvalidRequestError(
                    f"Incomplete primary key identifier for {mapper.class_.__name__}: missing {exc}"
                ) from exc
        elif isinstance(ident, (tuple, list)):
            values = list(ident)
        else:
            values = [ident]
        if len(values) != len(primary_key):
            raise InvalidRequestError(
                f"Incorrect number of values in identifier formed from argument {ident!r}; "
                f"primary key for {mapper.class_.__name__} has {len(primary_key)} column(s)"
            )
        return [column == value for column, value in zip(primary_key, values)]

    def missing_row_error(self, entity: Any) -> Exception:
        return NoResultFound("No row was found when one was required")

    # -- session ------------------------------------------------------------

    def begin(self, *, nested: bool) -> Any:
        return self.raw.begin_nested() if nested else self.raw.begin()

    def guard_pending_changes(self) -> None:
        session = self.raw
        new = len(session.new)
        deleted = len(session.deleted)
        modified = sum(1 for instance in session.dirty if session.is_modified(instance))
        if new or deleted or modified:
            raise UnsupportedOperationError(
                "The session holds ORM unit-of-work changes that would be flushed without "
                "row policies; write through insert()/update()/delete() on the gated session. "
                f"{_GUIDANCE}",
                meta={"new": new, "dirty": modified, "deleted": deleted},
            )
