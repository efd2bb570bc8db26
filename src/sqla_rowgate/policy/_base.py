"""Per-table policy declaration."""

from __future__ import annotations

from dataclasses import dataclass, fields

from sqla_rowgate._types import CheckFunction, FilterFunction

__all__ = ["TablePolicy"]


@dataclass(frozen=True, slots=True)
class TablePolicy:
    """Rules governing one table for one context.

    Every slot is optional; an absent slot means that operation is
    unrestricted for the table.

    Attributes:
        select_filter: ``(statement, target) -> statement`` narrowing reads
            and joins.
        insert_check: ``(client, row) -> bool`` run once per inserted row
            before the insert executes.
        update_filter: ``(statement, target) -> statement`` narrowing which
            rows an update may touch.
        update_check: ``(client, values) -> bool`` run against the proposed
            new values before the update executes.
        delete_filter: ``(statement, target) -> statement`` narrowing which
            rows a delete may remove.

    Example::

        TablePolicy(
            select_filter=lambda stmt, t: stmt.where(t.author_id == ctx),
            insert_check=require_values(author_id=ctx),
        )
    """

    select_filter: FilterFunction | None = None
    insert_check: CheckFunction | None = None
    update_filter: FilterFunction | None = None
    update_check: CheckFunction | None = None
    delete_filter: FilterFunction | None = None

    @property
    def declared_rules(self) -> tuple[str, ...]:
        """Names of the slots that carry a rule."""
        return tuple(f.name for f in fields(self) if getattr(self, f.name) is not None)
