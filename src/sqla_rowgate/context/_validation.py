"""Context validation: turn a schema into a validator for gated() contexts.

A schema can be any of:

- a pydantic ``BaseModel`` subclass (validated with ``model_validate``),
- a pydantic ``TypeAdapter`` instance,
- an object implementing the :class:`ContextValidator` protocol,
- a plain function ``(value) -> ValidationResult``,
- any other type annotation (``str``, ``int``, ``Annotated[...]``,
  ``TypedDict``, dataclasses), wrapped in a ``TypeAdapter``.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol, Union, runtime_checkable

from pydantic import BaseModel, TypeAdapter, ValidationError

from sqla_rowgate.exceptions import ContextValidationError, PolicyConfigurationError

__all__ = [
    "ContextIssue",
    "ContextValidator",
    "ValidationResult",
    "compile_validator",
    "validate_context",
    "validate_context_async",
]


@dataclass(frozen=True, slots=True)
class ContextIssue:
    """A single context validation problem.

    Attributes:
        message: Human-readable description.
        path: Location of the offending value inside the context.
    """

    message: str
    path: tuple[str | int, ...] = ()


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of validating a context value.

    Either ``issues`` is empty and ``value`` is the normalized context, or
    ``issues`` describes why the context was rejected.

    Example::

        def validate(value):
            if not isinstance(value, str):
                return ValidationResult.failure(ContextIssue("expected a user id"))
            return ValidationResult.success(value.strip())
    """

    value: Any = None
    issues: tuple[ContextIssue, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.issues

    @classmethod
    def success(cls, value: Any) -> ValidationResult:
        return cls(value=value)

    @classmethod
    def failure(cls, *issues: ContextIssue) -> ValidationResult:
        if not issues:
            issues = (ContextIssue("invalid context"),)
        return cls(issues=tuple(issues))


@runtime_checkable
class ContextValidator(Protocol):
    """Structural type for custom context validators."""

    def validate(self, value: Any) -> ValidationResult | Awaitable[ValidationResult]: ...


Validator = Callable[[Any], Union[ValidationResult, Awaitable[ValidationResult]]]


def _issues_from(exc: ValidationError) -> tuple[ContextIssue, ...]:
    return tuple(
        ContextIssue(message=str(error.get("msg", "invalid value")), path=tuple(error.get("loc", ())))
        for error in exc.errors()
    )


def _from_type_adapter(adapter: TypeAdapter[Any]) -> Validator:
    def validate(value: Any) -> ValidationResult:
        try:
            return ValidationResult.success(adapter.validate_python(value))
        except ValidationError as exc:
            return ValidationResult(issues=_issues_from(exc))

    return validate


def _from_model(model: type[BaseModel]) -> Validator:
    def validate(value: Any) -> ValidationResult:
        try:
            return ValidationResult.success(model.model_validate(value))
        except ValidationError as exc:
            return ValidationResult(issues=_issues_from(exc))

    return validate


def compile_validator(schema: Any) -> Validator:
    """Build a validator callable from a context schema.

    The result is built once per gate so ``TypeAdapter`` construction is
    not repeated for every ``gated()`` call.

    Raises:
        PolicyConfigurationError: If *schema* is ``None``.
    """
    if schema is None:
        raise PolicyConfigurationError(
            "A context schema is required unless disable_context_validation=True"
        )
    if isinstance(schema, type) and issubclass(schema, BaseModel):
        return _from_model(schema)
    if isinstance(schema, TypeAdapter):
        return _from_type_adapter(schema)
    if not isinstance(schema, type) and isinstance(schema, ContextValidator):
        return schema.validate
    if inspect.isfunction(schema) or inspect.ismethod(schema):
        return schema
    return _from_type_adapter(TypeAdapter(schema))


def _unpack(result: Any) -> Any:
    if not isinstance(result, ValidationResult):
        raise PolicyConfigurationError(
            f"Context validator must return a ValidationResult, got {type(result).__name__}"
        )
    if result.issues:
        raise ContextValidationError(issues=result.issues)
    return result.value


def validate_context(validator: Validator, value: Any) -> Any:
    """Run *validator* synchronously and return the normalized context.

    Raises:
        ContextValidationError: If the context is rejected.
        PolicyConfigurationError: If the validator is asynchronous.
    """
    result = validator(value)
    if inspect.isawaitable(result):
        if inspect.iscoroutine(result):
            result.close()
        raise PolicyConfigurationError(
            "Context validator is asynchronous; use gated_async() instead of gated()"
        )
    return _unpack(result)


async def validate_context_async(validator: Validator, value: Any) -> Any:
    """Run *validator*, awaiting it when asynchronous."""
    result = validator(value)
    if inspect.isawaitable(result):
        result = await result
    return _unpack(result)

