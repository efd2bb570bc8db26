"""Tests for sqla_rowgate.testing._assertions."""

from __future__ import annotations

import pytest
from sqlalchemy.orm import Session

from sqla_rowgate import PolicyCheckFailedError, RowGate
from sqla_rowgate.gate import GatedHandle
from sqla_rowgate.testing import (
    assert_check_fails,
    assert_hidden,
    assert_statement_contains,
    assert_visible,
)
from tests.conftest import Post


@pytest.fixture()
def gdb(gate: RowGate[Session]) -> GatedHandle:
    return gate.gated("1")


class TestAssertVisible:
    def test_passes_and_returns_rows(self, gdb: GatedHandle) -> None:
        rows = assert_visible(gdb, lambda q: q.select(Post))
        assert [post.id for post in rows] == ["p1"]

    def test_accepts_built_statement(self, gdb: GatedHandle) -> None:
        assert assert_visible(gdb, gdb.select(Post.id), expected_count=1) == ["p1"]

    def test_fails_on_no_rows(self, gdb: GatedHandle) -> None:
        with pytest.raises(AssertionError, match="got 0"):
            assert_visible(gdb, lambda q: q.select(Post).where(Post.id == "p2"))

    def test_fails_on_wrong_count(self, gdb: GatedHandle) -> None:
        with pytest.raises(AssertionError, match="expected 2 rows, but got 1"):
            assert_visible(gdb, lambda q: q.select(Post), expected_count=2)


class TestAssertHidden:
    def test_passes_when_filtered(self, gdb: GatedHandle) -> None:
        assert_hidden(gdb, lambda q: q.select(Post).where(Post.id == "p2"))

    def test_fails_when_visible(self, gdb: GatedHandle) -> None:
        with pytest.raises(AssertionError, match="expected zero rows"):
            assert_hidden(gdb, lambda q: q.select(Post).where(Post.id == "p1"))


class TestAssertCheckFails:
    def test_returns_error(self, gdb: GatedHandle) -> None:
        exc = assert_check_fails(
            gdb, lambda q: q.insert(Post).values(id="p3", author_id="2"), table="posts"
        )
        assert isinstance(exc, PolicyCheckFailedError)
        assert exc.operation == "insert"

    def test_fails_when_statement_runs(self, gdb: GatedHandle) -> None:
        with pytest.raises(AssertionError, match="the statement executed"):
            assert_check_fails(gdb, lambda q: q.insert(Post).values(id="p3", author_id="1"))

    def test_fails_on_wrong_table(self, gdb: GatedHandle) -> None:
        with pytest.raises(AssertionError, match="expected check failure on 'users'"):
            assert_check_fails(
                gdb, lambda q: q.insert(Post).values(id="p3", author_id="2"), table="users"
            )


class TestAssertStatementContains:
    def test_filter_is_in_sql(self, gdb: GatedHandle) -> None:
        assert_statement_contains(gdb.select(Post), "posts.author_id = '1'")

    def test_fails_when_absent(self, gdb: GatedHandle) -> None:
        with pytest.raises(AssertionError, match="not found in compiled SQL"):
            assert_statement_contains(gdb.select(Post), "posts.author_id = '2'")
