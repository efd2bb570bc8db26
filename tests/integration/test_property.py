"""Hypothesis property tests for row-gate invariants."""

from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st
from sqlalchemy import ForeignKey, Integer, String, create_engine, insert, select
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column

from sqla_rowgate import PolicyCheckFailedError, RowGate, TablePolicy, require_values

# ---------------------------------------------------------------------------
# Isolated models for property tests (avoids conftest coupling)
# ---------------------------------------------------------------------------


class PropBase(DeclarativeBase):
    pass


class PropOwner(PropBase):
    __tablename__ = "prop_owners"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)


class PropDoc(PropBase):
    __tablename__ = "prop_docs"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(50), default="")
    owner_id: Mapped[int] = mapped_column(ForeignKey("prop_owners.id"))


def owner_policy(ctx: int) -> dict[str, TablePolicy | None]:
    return {
        "prop_owners": None,
        "prop_docs": TablePolicy(
            select_filter=lambda q, t: q.where(t.owner_id == ctx),
            insert_check=require_values(owner_id=ctx),
            update_filter=lambda q, t: q.where(t.owner_id == ctx),
            delete_filter=lambda q, t: q.where(t.owner_id == ctx),
        ),
    }


OWNERS = st.integers(min_value=1, max_value=4)


def _make_session(owners: list[int]) -> Session:
    """A fresh in-memory database holding one doc per entry in *owners*."""
    engine = create_engine("sqlite://")
    PropBase.metadata.create_all(engine)
    session = Session(engine)
    session.execute(insert(PropOwner), [{"id": owner} for owner in range(1, 5)])
    if owners:
        session.execute(
            insert(PropDoc),
            [{"id": i, "owner_id": owner} for i, owner in enumerate(owners, start=1)],
        )
    session.commit()
    return session


def _gate(session: Session) -> RowGate[Session]:
    return RowGate(session, policy=owner_policy, context=int, metadata=PropBase.metadata)


class TestReadSoundness:
    """Gated reads return exactly the rows the filter admits."""

    @given(owners=st.lists(OWNERS, max_size=12), ctx=OWNERS)
    @settings(max_examples=50, deadline=None)
    def test_select_returns_exactly_owned_rows(self, owners: list[int], ctx: int) -> None:
        session = _make_session(owners)
        try:
            gdb = _gate(session).gated(ctx)
            got = sorted(gdb.scalars(gdb.select(PropDoc.id)).all())
            expected = [i for i, owner in enumerate(owners, start=1) if owner == ctx]
            assert got == expected
        finally:
            session.close()

    @given(owners=st.lists(OWNERS, min_size=1, max_size=12), ctx=OWNERS)
    @settings(max_examples=50, deadline=None)
    def test_delete_removes_only_owned_rows(self, owners: list[int], ctx: int) -> None:
        session = _make_session(owners)
        try:
            gdb = _gate(session).gated(ctx)
            gdb.execute(gdb.delete(PropDoc))
            remaining = sorted(session.scalars(select(PropDoc.owner_id)).all())
            assert remaining == sorted(owner for owner in owners if owner != ctx)
        finally:
            session.close()


class TestWriteChecks:
    """Inserts persist exactly when their row check passes."""

    @given(proposed=st.lists(OWNERS, min_size=1, max_size=6), ctx=OWNERS)
    @settings(max_examples=50, deadline=None)
    def test_insert_persists_only_passing_rows(self, proposed: list[int], ctx: int) -> None:
        session = _make_session([])
        try:
            gdb = _gate(session).gated(ctx)
            for i, owner in enumerate(proposed, start=1):
                try:
                    gdb.execute(gdb.insert(PropDoc).values(id=i, owner_id=owner))
                except PolicyCheckFailedError as exc:
                    assert owner != ctx
                    assert exc.mismatches == {"owner_id": {"expected": ctx, "actual": owner}}
            stored = session.scalars(select(PropDoc.owner_id)).all()
            assert stored == [ctx] * proposed.count(ctx)
        finally:
            session.close()
