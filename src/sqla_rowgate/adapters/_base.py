"""The contract an adapter fulfils so the engine can gate its client."""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, ClassVar

from sqla_rowgate.gate._kinds import OperationKind
from sqla_rowgate.gate._proxy import GatedHandle
from sqla_rowgate.gate._state import BuilderScope, GateState, TableTarget

if TYPE_CHECKING:
    from sqla_rowgate._types import PolicyTable
    from sqla_rowgate.config._config import RowGateConfig

__all__ = ["Adapter"]


class Adapter(ABC):
    """Capability contract between the gating engine and a data client.

    The engine is client-agnostic: it asks the adapter how to classify each
    attribute access, which tables an argument names, how to narrow a
    statement, and how to begin transactions.

    Attributes:
        name: Short adapter name used in messages and logs.
        raw: The wrapped client.
    """

    name: ClassVar[str] = "adapter"

    def __init__(self, raw: Any) -> None:
        self.raw = raw

    @property
    def table_names(self) -> frozenset[str] | None:
        """Every table the client can reach, when known."""
        return None

    @property
    @abstractmethod
    def is_async(self) -> bool: ...

    # -- classification -----------------------------------------------------

    @abstractmethod
    def classify(self, target: Any, name: str, scope: BuilderScope | None) -> OperationKind:
        """Decide how accessing *name* on *target* is handled."""

    @abstractmethod
    def unsupported_message(self, name: str) -> str: ...

    @abstractmethod
    def build(self, target: Any, name: str) -> Callable[..., Any]:
        """Return the callable implementing *name* on *target*."""

    @abstractmethod
    def is_builder(self, value: Any) -> bool:
        """Whether *value* should be wrapped in a ``GatedStatement``."""

    @abstractmethod
    def is_read_builder(self, value: Any) -> bool: ...

    @abstractmethod
    def same_shape(self, target: Any, result: Any) -> bool:
        """Whether *result* continues the statement *target* (keeps its scope)."""

    # -- table resolution ---------------------------------------------------

    @abstractmethod
    def targets(self, value: Any) -> list[TableTarget]:
        """Tables named by one argument, resolved through aliases."""

    @abstractmethod
    def join_targets(
        self, name: str, args: Sequence[Any], kwargs: Mapping[str, Any]
    ) -> list[TableTarget]: ...

    @abstractmethod
    def referenced_targets(self, statement: Any) -> list[TableTarget]:
        """Tables in the statement's own FROM scope."""

    # -- rows ---------------------------------------------------------------

    @abstractmethod
    def rows(
        self, statement: Any, name: str, args: Sequence[Any], kwargs: Mapping[str, Any]
    ) -> list[dict[str, Any]]:
        """Proposed rows carried by a ``values()``-style call."""

    @abstractmethod
    def param_rows(self, params: Any) -> list[dict[str, Any]]: ...

    # -- statement surgery --------------------------------------------------

    @abstractmethod
    def deny(self, statement: Any) -> Any:
        """Narrow *statement* to no rows."""

    @abstractmethod
    def mark(self, statement: Any, token: str) -> Any:
        """Tag *statement* as built by the gated session owning *token*."""

    @abstractmethod
    def loadable_targets(self, statement: Any) -> list[TableTarget]:
        """Tables whose rows executing *statement* may load through relationships."""

    @abstractmethod
    def restrict_loads(
        self,
        statement: Any,
        target: TableTarget,
        narrow: Callable[[Any], Any] | None,
    ) -> Any:
        """Limit relationship loads of *target* to what *narrow* admits.

        *narrow* maps a plain read of the table to its filtered form;
        ``None`` admits no rows.
        """

    @abstractmethod
    def check_arguments(self, values: Any, *, token: str, allowed: frozenset[str]) -> None:
        """Raise ``UnsupportedOperationError`` for raw escapes inside *values*."""

    @abstractmethod
    def identity_criteria(self, entity: Any, ident: Any) -> list[Any]: ...

    @abstractmethod
    def missing_row_error(self, entity: Any) -> Exception: ...

    # -- session ------------------------------------------------------------

    @abstractmethod
    def begin(self, *, nested: bool) -> Any: ...

    @abstractmethod
    def guard_pending_changes(self) -> None:
        """Raise when the client would flush writes the gate never saw."""

    def apply_proxy(
        self,
        policies: PolicyTable,
        *,
        context: Any,
        config: RowGateConfig,
    ) -> GatedHandle:
        """Wrap the client with *policies* and a fresh, empty queue."""
        state = GateState(
            adapter=self,
            policies=policies,
            config=config,
            context=context,
            token=uuid.uuid4().hex,
        )
        return GatedHandle(self.raw, state)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.raw!r}>"
