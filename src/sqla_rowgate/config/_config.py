"""Layered configuration for sqla-rowgate."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace

from sqla_rowgate._types import OnMissingPolicy

__all__ = [
    "RowGateConfig",
    "configure",
    "get_global_config",
    "_reset_global_config",
    "_set_global_config",
]

_VALID_POLICIES: set[str] = {"deny", "allow", "raise"}

_DEFAULT_RAW_FRAGMENTS: frozenset[str] = frozenset({"*", "1"})


@dataclass(frozen=True, slots=True)
class RowGateConfig:
    """Layered configuration with merge semantics (global -> gate).

    Attributes:
        on_missing_policy: Behavior for tables with no policy entry.
            ``"deny"`` filters reads/updates/deletes to zero rows and fails
            inserts.  ``"allow"`` leaves the operation unrestricted.
            ``"raise"`` raises ``PolicyConfigurationError``.
        disable_context_validation: Skip context schema validation.
        require_policy_coverage: Require an entry for every known table.
        log_policy_decisions: Emit audit logs for filters and checks.
        audit_bypasses: Log every ``ungated()``/``system()`` call.
        guard_unit_of_work: Refuse to execute while the session holds
            pending ORM unit-of-work changes.
        allowed_raw_fragments: Raw SQL fragments considered safe.

    Example::

        config = RowGateConfig(on_missing_policy="raise")
        merged = config.merge(log_policy_decisions=True)
    """

    on_missing_policy: OnMissingPolicy = "deny"
    disable_context_validation: bool = False
    require_policy_coverage: bool = True
    log_policy_decisions: bool = False
    audit_bypasses: bool = False
    guard_unit_of_work: bool = True
    allowed_raw_fragments: frozenset[str] = field(default=_DEFAULT_RAW_FRAGMENTS)

    def __post_init__(self) -> None:
        if self.on_missing_policy not in _VALID_POLICIES:
            raise ValueError(
                f"on_missing_policy must be one of {_VALID_POLICIES!r}, "
                f"got {self.on_missing_policy!r}"
            )
        if isinstance(self.allowed_raw_fragments, str):
            raise ValueError("allowed_raw_fragments must be a collection of strings, not a string")
        if not isinstance(self.allowed_raw_fragments, frozenset):
            # Use object.__setattr__ because the dataclass is frozen
            object.__setattr__(self, "allowed_raw_fragments", frozenset(self.allowed_raw_fragments))

    def merge(
        self,
        *,
        on_missing_policy: OnMissingPolicy | None = None,
        disable_context_validation: bool | None = None,
        require_policy_coverage: bool | None = None,
        log_policy_decisions: bool | None = None,
        audit_bypasses: bool | None = None,
        guard_unit_of_work: bool | None = None,
        allowed_raw_fragments: Iterable[str] | None = None,
    ) -> RowGateConfig:
        """Return a copy with every non-None keyword applied on top of this config.

        Example::

            base = RowGateConfig()
            strict = base.merge(on_missing_policy="raise")
        """
        overrides = {
            "on_missing_policy": on_missing_policy,
            "disable_context_validation": disable_context_validation,
            "require_policy_coverage": require_policy_coverage,
            "log_policy_decisions": log_policy_decisions,
            "audit_bypasses": audit_bypasses,
            "guard_unit_of_work": guard_unit_of_work,
            "allowed_raw_fragments": allowed_raw_fragments,
        }
        return replace(self, **{key: value for key, value in overrides.items() if value is not None})


# ---------------------------------------------------------------------------
# Global configuration singleton
# ---------------------------------------------------------------------------

_global_config = RowGateConfig()


def get_global_config() -> RowGateConfig:
    """Return the current global configuration.

    Example::

        config = get_global_config()
        print(config.on_missing_policy)  # "deny"
    """
    return _global_config


def configure(
    *,
    on_missing_policy: OnMissingPolicy | None = None,
    disable_context_validation: bool | None = None,
    require_policy_coverage: bool | None = None,
    log_policy_decisions: bool | None = None,
    audit_bypasses: bool | None = None,
    guard_unit_of_work: bool | None = None,
    allowed_raw_fragments: Iterable[str] | None = None,
) -> RowGateConfig:
    """Update the global configuration by merging overrides.

    Only non-None values are applied. Returns the new global config.
    Gates constructed without an explicit ``config`` pick this up.

    Example::

        configure(on_missing_policy="raise")
    """
    global _global_config
    _global_config = _global_config.merge(
        on_missing_policy=on_missing_policy,
        disable_context_validation=disable_context_validation,
        require_policy_coverage=require_policy_coverage,
        log_policy_decisions=log_policy_decisions,
        audit_bypasses=audit_bypasses,
        guard_unit_of_work=guard_unit_of_work,
        allowed_raw_fragments=allowed_raw_fragments,
    )
    return _global_config


def _set_global_config(config: RowGateConfig) -> None:
    """Replace the global configuration wholesale (test helper)."""
    global _global_config
    _global_config = config


def _reset_global_config() -> None:
    """Reset global config to defaults. For testing only."""
    global _global_config
    _global_config = RowGateConfig()
