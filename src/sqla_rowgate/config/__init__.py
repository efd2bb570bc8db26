"""Configuration module for sqla-rowgate."""

from __future__ import annotations

from sqla_rowgate.config._config import RowGateConfig, configure, get_global_config

__all__ = ["RowGateConfig", "configure", "get_global_config"]
