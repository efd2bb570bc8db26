"""Adapters connecting the gating engine to data clients."""

from __future__ import annotations

from sqla_rowgate.adapters._base import Adapter
from sqla_rowgate.adapters._sqlalchemy import TOKEN_OPTION, SQLAlchemyAdapter

__all__ = ["TOKEN_OPTION", "Adapter", "SQLAlchemyAdapter"]
