"""Context validation for gated sessions."""

from __future__ import annotations

from sqla_rowgate.context._validation import (
    ContextIssue,
    ContextValidator,
    ValidationResult,
    compile_validator,
    validate_context,
    validate_context_async,
)

__all__ = [
    "ContextIssue",
    "ContextValidator",
    "ValidationResult",
    "compile_validator",
    "validate_context",
    "validate_context_async",
]
