"""sqla-rowgate testing utilities: assertions, isolation, and fixtures.

- **Assertion helpers**: ``assert_visible``, ``assert_hidden``,
  ``assert_check_fails``, ``assert_statement_contains``.
- **Isolation**: ``isolated_rowgate`` context manager.
- **Fixtures**: ``rowgate_config``, ``isolated_rowgate_state``.

Example::

    from sqla_rowgate.testing import assert_visible

    def test_author_reads_own_posts(gate):
        gdb = gate.gated("1")
        assert_visible(gdb, lambda q: q.select(Post), expected_count=1)
"""

from sqla_rowgate.testing._assertions import (
    assert_check_fails,
    assert_hidden,
    assert_statement_contains,
    assert_visible,
)
from sqla_rowgate.testing._fixtures import isolated_rowgate_state, rowgate_config
from sqla_rowgate.testing._isolation import isolated_rowgate

__all__ = [
    "assert_check_fails",
    "assert_hidden",
    "assert_statement_contains",
    "assert_visible",
    "isolated_rowgate",
    "isolated_rowgate_state",
    "rowgate_config",
]
