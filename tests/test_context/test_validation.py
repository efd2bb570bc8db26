"""Tests for context schema compilation and validation."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from pydantic import BaseModel, TypeAdapter

from sqla_rowgate.context import (
    ContextIssue,
    ValidationResult,
    compile_validator,
    validate_context,
    validate_context_async,
)
from sqla_rowgate.exceptions import ContextValidationError, PolicyConfigurationError


class Claims(BaseModel):
    user_id: str
    role: str = "member"


class PrefixValidator:
    """Custom validator object following the ContextValidator protocol."""

    def validate(self, value: Any) -> ValidationResult:
        if isinstance(value, str) and value.startswith("u_"):
            return ValidationResult.success(value[2:])
        return ValidationResult.failure(ContextIssue("expected u_<id>"))


# ---------------------------------------------------------------------------
# ValidationResult
# ---------------------------------------------------------------------------


class TestValidationResult:
    def test_success(self) -> None:
        result = ValidationResult.success(5)
        assert result.ok
        assert result.value == 5

    def test_failure_default_issue(self) -> None:
        result = ValidationResult.failure()
        assert not result.ok
        assert result.issues == (ContextIssue("invalid context"),)


# ---------------------------------------------------------------------------
# compile_validator + validate_context
# ---------------------------------------------------------------------------


class TestSchemas:
    """Every supported schema form normalizes or rejects the context."""

    def test_pydantic_model(self) -> None:
        validator = compile_validator(Claims)
        claims = validate_context(validator, {"user_id": "1"})
        assert claims == Claims(user_id="1", role="member")

    def test_pydantic_model_rejects_with_paths(self) -> None:
        validator = compile_validator(Claims)
        with pytest.raises(ContextValidationError) as exc_info:
            validate_context(validator, {"role": "admin"})
        exc = exc_info.value
        assert exc.issues[0].path == ("user_id",)
        assert exc.code == "ROWGATE_CONTEXT_ERROR"
        assert exc.meta["issues"][0]["path"] == ["user_id"]

    def test_type_annotation(self) -> None:
        validator = compile_validator(int)
        assert validate_context(validator, "42") == 42
        with pytest.raises(ContextValidationError):
            validate_context(validator, "not a number")

    def test_type_adapter(self) -> None:
        validator = compile_validator(TypeAdapter(list[int]))
        assert validate_context(validator, ["1", 2]) == [1, 2]

    def test_protocol_object(self) -> None:
        validator = compile_validator(PrefixValidator())
        assert validate_context(validator, "u_7") == "7"
        with pytest.raises(ContextValidationError) as exc_info:
            validate_context(validator, "7")
        assert exc_info.value.issues[0].message == "expected u_<id>"

    def test_plain_function(self) -> None:
        def validator(value: Any) -> ValidationResult:
            return ValidationResult.success(str(value))

        assert validate_context(compile_validator(validator), 3) == "3"

    def test_missing_schema(self) -> None:
        with pytest.raises(PolicyConfigurationError, match="context schema is required"):
            compile_validator(None)

    def test_non_result_refused(self) -> None:
        with pytest.raises(PolicyConfigurationError, match="ValidationResult"):
            validate_context(lambda value: value, "1")


# ---------------------------------------------------------------------------
# Async validators
# ---------------------------------------------------------------------------


async def _async_validator(value: Any) -> ValidationResult:
    return ValidationResult.success(value.upper())


class TestAsyncValidators:
    def test_sync_path_refuses_async_validator(self) -> None:
        with pytest.raises(PolicyConfigurationError, match="gated_async"):
            validate_context(_async_validator, "abc")

    def test_async_path_awaits(self) -> None:
        assert asyncio.run(validate_context_async(_async_validator, "abc")) == "ABC"

    def test_async_path_accepts_sync_validator(self) -> None:
        validator = compile_validator(str)
        assert asyncio.run(validate_context_async(validator, "abc")) == "abc"
