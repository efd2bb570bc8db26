"""Exception hierarchy for sqla-rowgate."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sqla_rowgate.context._validation import ContextIssue

__all__ = [
    "AdapterError",
    "ContextValidationError",
    "PolicyCheckFailedError",
    "PolicyConfigurationError",
    "RowGateError",
    "UnsupportedOperationError",
]


class RowGateError(Exception):
    """Base exception for all sqla-rowgate errors.

    Every error carries a stable machine-readable ``code`` and a ``meta``
    mapping with structured details suitable for API responses.

    Attributes:
        code: Machine-readable error code.
        meta: Structured details about the failure.
    """

    code: str = "ROWGATE_ERROR"

    def __init__(self, message: str | None = None, *, meta: Mapping[str, Any] | None = None) -> None:
        self.meta: dict[str, Any] = dict(meta or {})
        super().__init__(message or self.__class__.__doc__ or self.code)

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""


class ContextValidationError(RowGateError):
    """The context passed to ``gated()`` failed schema validation.

    Attributes:
        issues: The individual validation issues.

    Example::

        try:
            gate.gated({"user_id": None})
        except ContextValidationError as exc:
            for issue in exc.issues:
                print(issue.path, issue.message)
    """

    code = "ROWGATE_CONTEXT_ERROR"

    def __init__(self, *, issues: Sequence[ContextIssue]) -> None:
        self.issues = tuple(issues)
        super().__init__(
            "Context schema validation failed",
            meta={
                "issues": [
                    {"path": list(issue.path), "message": issue.message} for issue in self.issues
                ]
            },
        )


class PolicyConfigurationError(RowGateError):
    """The policy table (or the way it is being used) is malformed.

    Raised for missing table coverage, policy functions that return
    something other than a mapping, asynchronous policies or checks used
    from a synchronous gate, and ``on_missing_policy="raise"``.

    Attributes:
        missing_tables: Tables without a policy entry, sorted.
    """

    code = "ROWGATE_POLICY_CONFIGURATION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        missing_tables: Sequence[str] = (),
        meta: Mapping[str, Any] | None = None,
    ) -> None:
        self.missing_tables = tuple(missing_tables)
        details = dict(meta or {})
        if self.missing_tables:
            details.setdefault("missing_tables", list(self.missing_tables))
        super().__init__(message, meta=details)


class PolicyCheckFailedError(RowGateError):
    """A deferred row check rejected a proposed insert or update.

    Attributes:
        table: The unaliased table the check belongs to.
        operation: ``"insert"`` or ``"update"``.
        mismatches: Mapping of column key to ``{"expected", "actual"}``.

    Example::

        try:
            gdb.execute(gdb.insert(Post).values(id="2", author_id="2"))
        except PolicyCheckFailedError as exc:
            print(exc.table, exc.mismatches)
    """

    code = "ROWGATE_POLICY_ERROR"

    def __init__(
        self,
        *,
        table: str | None = None,
        operation: str | None = None,
        mismatches: Mapping[str, Mapping[str, Any]] | None = None,
        policy_name: str | None = None,
        message: str | None = None,
    ) -> None:
        self.table = table
        self.operation = operation
        self.mismatches: dict[str, Mapping[str, Any]] = dict(mismatches or {})
        self.policy_name = policy_name
        if message is None:
            if table is None:
                message = "Policy check failed"
            else:
                message = f'Policy check failed for {(operation or "").upper()} on "{table}".'
        meta: dict[str, Any] = {"table": table, "operation": operation}
        if policy_name is not None:
            meta["policy_name"] = policy_name
        if self.mismatches:
            meta["mismatches"] = self.mismatches
        super().__init__(message, meta=meta)


class UnsupportedOperationError(RowGateError):
    """The operation cannot be gated and was refused.

    Raised for raw SQL fragments, statements not built through the gated
    session, and session APIs that would bypass row policies.  Trusted code
    paths should use ``RowGate.ungated()`` instead.
    """

    code = "ROWGATE_NOT_SUPPORTED_ERROR"


class AdapterError(RowGateError):
    """The client handed to the gate cannot be wrapped."""

    code = "ROWGATE_ADAPTER_ERROR"
