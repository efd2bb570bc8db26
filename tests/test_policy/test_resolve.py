"""Tests for policy table resolution and coverage."""

from __future__ import annotations

import asyncio
from types import MappingProxyType

import pytest

from sqla_rowgate.exceptions import PolicyConfigurationError
from sqla_rowgate.policy import (
    TablePolicy,
    assert_policy_coverage,
    normalize_policy_table,
    resolve_policy_table,
    resolve_policy_table_async,
    table_key,
)
from tests.conftest import Post


class TestTableKey:
    def test_string(self) -> None:
        assert table_key("posts") == "posts"

    def test_table(self) -> None:
        assert table_key(Post.__table__) == "posts"

    def test_mapped_class(self) -> None:
        assert table_key(Post) == "posts"

    def test_other_rejected(self) -> None:
        with pytest.raises(PolicyConfigurationError, match="Policy table keys"):
            table_key(42)


class TestNormalize:
    def test_none_becomes_empty_policy(self) -> None:
        table = normalize_policy_table({"posts": None})
        assert table["posts"] == TablePolicy()

    def test_result_is_read_only(self) -> None:
        table = normalize_policy_table({Post: TablePolicy()})
        assert isinstance(table, MappingProxyType)
        assert list(table) == ["posts"]

    def test_non_mapping_rejected(self) -> None:
        with pytest.raises(PolicyConfigurationError, match="must return a mapping"):
            normalize_policy_table([("posts", None)])

    def test_wrong_entry_type_rejected(self) -> None:
        with pytest.raises(PolicyConfigurationError, match="TablePolicy or None"):
            normalize_policy_table({"posts": {"select_filter": None}})

    def test_duplicate_after_normalization_rejected(self) -> None:
        with pytest.raises(PolicyConfigurationError, match="more than once"):
            normalize_policy_table({"posts": None, Post: None})


class TestCoverage:
    def test_complete(self) -> None:
        assert_policy_coverage({"posts": TablePolicy()}, ["posts"])

    def test_missing_tables_listed_sorted(self) -> None:
        with pytest.raises(PolicyConfigurationError) as exc_info:
            assert_policy_coverage({}, ["users", "comments"], adapter_name="sqlalchemy")
        exc = exc_info.value
        assert str(exc) == "sqlalchemy: policy missing entries for tables: comments, users"
        assert exc.missing_tables == ("comments", "users")
        assert exc.meta["missing_tables"] == ["comments", "users"]


class TestResolve:
    def test_calls_policy_with_context(self) -> None:
        table = resolve_policy_table(lambda ctx: {ctx: None}, "posts")
        assert set(table) == {"posts"}

    def test_coverage_enforced(self) -> None:
        with pytest.raises(PolicyConfigurationError):
            resolve_policy_table(lambda ctx: {}, "1", table_names=["posts"])

    def test_coverage_can_be_skipped(self) -> None:
        table = resolve_policy_table(
            lambda ctx: {}, "1", table_names=["posts"], require_coverage=False
        )
        assert dict(table) == {}

    def test_async_policy_refused(self) -> None:
        async def policy(ctx: str) -> dict[str, None]:
            return {"posts": None}

        with pytest.raises(PolicyConfigurationError, match="gated_async"):
            resolve_policy_table(policy, "1")

    def test_async_resolution(self) -> None:
        async def policy(ctx: str) -> dict[str, None]:
            return {"posts": None}

        table = asyncio.run(resolve_policy_table_async(policy, "1", table_names=["posts"]))
        assert set(table) == {"posts"}
