"""Flask integration for sqla-rowgate."""

from __future__ import annotations

try:
    import flask as _flask_check  # noqa: F401  # pyright: ignore[reportUnusedImport]

    del _flask_check
except ImportError as exc:
    raise ImportError(
        "Flask integration requires flask. Install it with: pip install sqla-rowgate[flask]"
    ) from exc

from sqla_rowgate.integrations.flask._extension import RowGateExtension

__all__ = ["RowGateExtension"]
