"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import BigInteger, Engine, create_engine
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from craftlink.database.models import Base, PlayerRecord, utcnow
from craftlink.services.config_service import upsert_config

GUILD_ID = 111_111_111_111_111_111
OTHER_GUILD_ID = 222_222_222_222_222_222
SERVER_HOST = "play.example.com"


# ---------------------------------------------------------------------------
# SQLite stand-ins for PostgreSQL column types.
# JSONB renders as TEXT (SQLAlchemy's JSON serializer still applies) and
# BigInteger as INTEGER so autoincrement behaves.
# ---------------------------------------------------------------------------
@compiles(PG_JSONB, "sqlite")
def _compile_jsonb_as_text(type_, compiler, **kw):
    return "TEXT"


@compiles(BigInteger, "sqlite")
def _compile_bigint_as_integer(type_, compiler, **kw):
    return "INTEGER"


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all CraftLink tables.

    StaticPool keeps one shared connection so worker threads (``run_db``)
    and FastAPI's thread pool see the same database.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def guild_config(db_engine):
    """An enabled link config for :data:`GUILD_ID`."""
    return upsert_config(db_engine, GUILD_ID, {"server_host": SERVER_HOST})


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------
def seed_player(engine, guild_id: int = GUILD_ID, username: str = "alice", **fields) -> PlayerRecord:
    """Insert a PlayerRecord directly and return it (detached, loaded)."""
    with Session(engine, expire_on_commit=False) as session:
        record = PlayerRecord(guild_id=guild_id, minecraft_username=username, **fields)
        session.add(record)
        session.commit()
        session.refresh(record)
        return record


def seed_whitelisted(engine, guild_id: int = GUILD_ID, username: str = "alice", **fields) -> PlayerRecord:
    now = utcnow()
    fields.setdefault("discord_id", 5001)
    fields.setdefault("whitelisted_at", now)
    fields.setdefault("linked_at", now)
    return seed_player(engine, guild_id, username, **fields)


def seed_confirmed(
    engine, guild_id: int = GUILD_ID, username: str = "alice", minutes_ago: int = 0, **fields
) -> PlayerRecord:
    """A record whose code was confirmed and now awaits staff approval."""
    now = utcnow()
    fields.setdefault("discord_id", 5001)
    fields.setdefault("auth_code", None)
    return seed_player(
        engine,
        guild_id,
        username,
        confirmed_at=now - timedelta(minutes=minutes_ago),
        **fields,
    )


def reload(engine, record_id: int) -> PlayerRecord:
    with Session(engine, expire_on_commit=False) as session:
        return session.get(PlayerRecord, record_id)


class FakePlatform:
    """In-memory :class:`~craftlink.services.chat_platform.ChatPlatform`."""

    def __init__(self, roles: dict[int, list[str]] | None = None, error: Exception | None = None):
        self.roles = roles or {}
        self.error = error
        self.calls: list[tuple[int, int]] = []

    def get_member_roles(self, guild_id: int, discord_id: int) -> list[str] | None:
        self.calls.append((guild_id, discord_id))
        if self.error is not None:
            raise self.error
        return self.roles.get(discord_id)
