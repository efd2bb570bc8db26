"""Import fixtures from sqla_rowgate.testing for test discovery."""

from sqla_rowgate.testing._fixtures import isolated_rowgate_state, rowgate_config

__all__ = ["isolated_rowgate_state", "rowgate_config"]
