"""Shared test fixtures for sqla-rowgate tests."""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

import pytest
from sqlalchemy import ForeignKey, String, create_engine, event, insert, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, relationship
from sqlalchemy.pool import StaticPool

from sqla_rowgate import RowGate, TablePolicy, require_values
from sqla_rowgate.config._config import _reset_global_config

# ---------------------------------------------------------------------------
# Test models
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(20), primary_key=True)
    email: Mapped[str] = mapped_column(String(100))

    posts: Mapped[list[Post]] = relationship("Post", back_populates="author")


class Post(Base):
    __tablename__ = "posts"

    id: Mapped[str] = mapped_column(String(20), primary_key=True)
    title: Mapped[str] = mapped_column(String(200), default="")
    author_id: Mapped[str] = mapped_column(ForeignKey("users.id"))

    author: Mapped[User] = relationship("User", back_populates="posts")
    comments: Mapped[list[Comment]] = relationship("Comment", back_populates="post")


class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[str] = mapped_column(String(20), primary_key=True)
    body: Mapped[str] = mapped_column(String(200), default="")
    post_id: Mapped[str] = mapped_column(ForeignKey("posts.id"))

    post: Mapped[Post] = relationship("Post", back_populates="comments")


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


def author_policy(ctx: str) -> dict[str, TablePolicy | None]:
    """Authors see and write only their own posts, and comments on them."""
    return {
        "users": None,
        "posts": TablePolicy(
            select_filter=lambda q, t: q.where(t.author_id == ctx),
            insert_check=require_values(author_id=ctx),
            update_filter=lambda q, t: q.where(t.author_id == ctx),
            update_check=require_values(author_id=ctx),
            delete_filter=lambda q, t: q.where(t.author_id == ctx),
        ),
        "comments": TablePolicy(
            select_filter=lambda q, t: q.where(
                t.post_id.in_(_post_ids_of(ctx))
            ),
        ),
    }


def _post_ids_of(ctx: str) -> Any:
    return select(Post.id).where(Post.author_id == ctx).scalar_subquery()


# ---------------------------------------------------------------------------
# Engine / session helpers
# ---------------------------------------------------------------------------


def enable_sqlite_savepoints(engine: Engine) -> None:
    """Let pysqlite honour SAVEPOINT by emitting BEGIN ourselves."""

    @event.listens_for(engine, "connect")
    def _connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")


def seed(session: Session) -> None:
    """Two authors with one post each, and a comment on each post."""
    session.execute(insert(User), [{"id": "1", "email": "a@x.io"}, {"id": "2", "email": "b@x.io"}])
    session.execute(
        insert(Post),
        [
            {"id": "p1", "title": "First", "author_id": "1"},
            {"id": "p2", "title": "Second", "author_id": "2"},
        ],
    )
    session.execute(
        insert(Comment),
        [
            {"id": "c1", "body": "on p1", "post_id": "p1"},
            {"id": "c2", "body": "on p2", "post_id": "p2"},
        ],
    )
    session.commit()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_config() -> Generator[None, None, None]:
    _reset_global_config()
    yield
    _reset_global_config()


@pytest.fixture()
def engine() -> Engine:
    """Create an in-memory SQLite engine with all tables."""
    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_savepoints(eng)
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture()
def session(engine: Engine) -> Generator[Session, None, None]:
    sess = Session(engine)
    try:
        yield sess
    finally:
        sess.rollback()
        sess.close()


@pytest.fixture()
def seeded(session: Session) -> Session:
    """A session over seeded data, outside any transaction."""
    seed(session)
    return session


@pytest.fixture()
def gate(seeded: Session) -> RowGate[Session]:
    return RowGate(seeded, policy=author_policy, context=str, metadata=Base.metadata)


def post_ids(session: Session) -> list[str]:
    """Every post id in the database, read without gating."""
    return sorted(session.scalars(select(Post.id)).all())
