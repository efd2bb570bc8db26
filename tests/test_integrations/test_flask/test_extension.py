"""Tests for the Flask extension."""

from __future__ import annotations

from typing import Any

import pytest
from flask import Flask, request
from sqlalchemy import select
from sqlalchemy.orm import Session

from sqla_rowgate.integrations.flask import RowGateExtension
from tests.conftest import Base, Post, author_policy


def _build_app(seeded: Session, **overrides: Any) -> tuple[Flask, RowGateExtension]:
    options: dict[str, Any] = {
        "session_provider": lambda: seeded,
        "context_provider": lambda: request.headers.get("X-User", ""),
        "policy": author_policy,
        "context": str,
        "metadata": Base.metadata,
    }
    options.update(overrides)
    rowgate = RowGateExtension(**options)
    app = Flask(__name__)
    app.config["TESTING"] = True
    rowgate.init_app(app)

    @app.get("/posts")
    def list_posts() -> Any:
        gdb = rowgate.gated()
        return list(gdb.scalars(gdb.select(Post.id)).all())

    @app.post("/posts/<post_id>")
    def create_post(post_id: str) -> Any:
        gdb = rowgate.gated()
        gdb.execute(gdb.insert(Post).values(id=post_id, author_id=request.args["author_id"]))
        return {"id": post_id}

    @app.get("/raw")
    def raw_query() -> Any:
        gdb = rowgate.gated()
        return list(gdb.scalars(select(Post.id)).all())

    @app.get("/same")
    def same_handle() -> Any:
        return {"same": rowgate.gated() is rowgate.gated()}

    return app, rowgate


@pytest.fixture()
def app(seeded: Session) -> Flask:
    app, _ = _build_app(seeded)
    return app


class TestInitApp:
    def test_registers_extension(self, app: Flask) -> None:
        assert isinstance(app.extensions["sqla_rowgate"], RowGateExtension)

    def test_constructor_with_app(self, seeded: Session) -> None:
        app = Flask(__name__)
        ext = RowGateExtension(
            app,
            session_provider=lambda: seeded,
            context_provider=lambda: "1",
            policy=author_policy,
            context=str,
        )
        assert app.extensions["sqla_rowgate"] is ext


class TestGated:
    def test_context_from_request(self, app: Flask) -> None:
        client = app.test_client()
        assert client.get("/posts", headers={"X-User": "1"}).get_json() == ["p1"]
        assert client.get("/posts", headers={"X-User": "2"}).get_json() == ["p2"]

    def test_handle_cached_per_request(self, app: Flask) -> None:
        response = app.test_client().get("/same", headers={"X-User": "1"})
        assert response.get_json() == {"same": True}

    def test_allowed_insert(self, app: Flask, seeded: Session) -> None:
        response = app.test_client().post(
            "/posts/p3", query_string={"author_id": "1"}, headers={"X-User": "1"}
        )
        assert response.status_code == 200
        assert "p3" in seeded.scalars(select(Post.id)).all()


class TestErrorHandlers:
    def test_check_failure_is_403(self, app: Flask, seeded: Session) -> None:
        response = app.test_client().post(
            "/posts/p3", query_string={"author_id": "2"}, headers={"X-User": "1"}
        )
        assert response.status_code == 403
        body = response.get_json()
        assert body["code"] == "ROWGATE_POLICY_ERROR"
        assert body["meta"]["operation"] == "insert"
        assert body["meta"]["mismatches"]["author_id"] == {"expected": "1", "actual": "2"}

    def test_unsupported_is_400(self, app: Flask) -> None:
        response = app.test_client().get("/raw", headers={"X-User": "1"})
        assert response.status_code == 400
        assert response.get_json()["code"] == "ROWGATE_NOT_SUPPORTED_ERROR"

    def test_invalid_context_is_401(self, seeded: Session) -> None:
        app, _ = _build_app(seeded, context=int)
        response = app.test_client().get("/posts", headers={"X-User": "abc"})
        assert response.status_code == 401
        body = response.get_json()
        assert body["code"] == "ROWGATE_CONTEXT_ERROR"
        assert body["meta"]["issues"]
