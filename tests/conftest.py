"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of encore.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from encore.config import EncoreConfig  # noqa: E402
from encore.database.models import (  # noqa: E402
    Base,
    Comment,
    Lounge,
    LoungeManager,
    Post,
    User,
    UserRole,
)

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Encore tables.

    JSONB columns are transparently mapped to TEXT for SQLite compatibility.
    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used by the async vote routes).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def fk_engine(db_engine) -> Engine:
    """``db_engine`` with SQLite foreign-key enforcement switched on.

    StaticPool hands out one connection, so the PRAGMA sticks.
    """
    with db_engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")
    return db_engine


@pytest.fixture
def test_config() -> EncoreConfig:
    return EncoreConfig(platform_name="Encore Test", api_port=8000)


# ---------------------------------------------------------------------------
# Row factories — plain functions so tests can seed inline
# ---------------------------------------------------------------------------
def make_user(engine: Engine, user_id: int, role: UserRole = UserRole.USER,
              nickname: str | None = None) -> int:
    with Session(engine) as session:
        session.add(User(id=user_id, nickname=nickname or f"user{user_id}", role=role.value))
        session.commit()
    return user_id


def make_lounge(engine: Engine, creator_id: int | None = None, slug: str | None = None) -> int:
    with Session(engine) as session:
        lounge = Lounge(name="Lounge", slug=slug or f"lounge-{os.urandom(4).hex()}",
                        creator_id=creator_id)
        session.add(lounge)
        session.commit()
        return lounge.id


def make_manager(engine: Engine, user_id: int, lounge_id: int) -> None:
    with Session(engine) as session:
        session.add(LoungeManager(user_id=user_id, lounge_id=lounge_id))
        session.commit()


def make_post(engine: Engine, lounge_id: int, author_id: int, **kwargs) -> int:
    with Session(engine) as session:
        post = Post(lounge_id=lounge_id, author_id=author_id, title="hello", **kwargs)
        session.add(post)
        session.commit()
        return post.id


def make_comment(engine: Engine, post_id: int, author_id: int, **kwargs) -> int:
    with Session(engine) as session:
        comment = Comment(post_id=post_id, author_id=author_id, **kwargs)
        session.add(comment)
        session.commit()
        return comment.id


# ---------------------------------------------------------------------------
# API helpers
# ---------------------------------------------------------------------------
def make_token(sub: int | str, *, is_admin: bool = False) -> str:
    """Create a user JWT as the platform's auth service would."""
    import jwt

    from encore.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": str(sub), "is_admin": is_admin},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def auth(sub: int | str, *, is_admin: bool = False) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(sub, is_admin=is_admin)}"}


@pytest.fixture
def client(db_engine, test_config):
    """FastAPI TestClient wired to the in-memory engine, raise_server_exceptions=False."""
    from fastapi.testclient import TestClient

    from encore.api.deps import get_config, get_engine
    from encore.api.main import app

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = lambda: test_config
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
