"""Tests for TablePolicy."""

from __future__ import annotations

import dataclasses

import pytest

from sqla_rowgate.policy import TablePolicy, require_values, where


class TestTablePolicy:
    def test_all_slots_default_to_none(self) -> None:
        policy = TablePolicy()
        assert policy.select_filter is None
        assert policy.insert_check is None
        assert policy.update_filter is None
        assert policy.update_check is None
        assert policy.delete_filter is None
        assert policy.declared_rules == ()

    def test_declared_rules_in_slot_order(self) -> None:
        policy = TablePolicy(
            delete_filter=where(lambda t: t.author_id == "1"),
            insert_check=require_values(author_id="1"),
        )
        assert policy.declared_rules == ("insert_check", "delete_filter")

    def test_frozen(self) -> None:
        policy = TablePolicy()
        with pytest.raises(dataclasses.FrozenInstanceError):
            policy.select_filter = None  # type: ignore[misc]
