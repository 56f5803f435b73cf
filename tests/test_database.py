"""
tests/test_database.py — Session helper & error translation
============================================================
"""

from __future__ import annotations

import pytest
from conftest import GUILD_ID, seed_player
from sqlalchemy import text

from craftlink.database.engine import attempt, get_session
from craftlink.database.models import PlayerRecord
from craftlink.errors import DuplicateError, NotFoundError, UpstreamError


class TestGetSession:
    def test_commits_on_success(self, db_engine):
        with get_session(db_engine) as session:
            session.add(PlayerRecord(guild_id=GUILD_ID, minecraft_username="alice"))
        with get_session(db_engine) as session:
            assert session.query(PlayerRecord).count() == 1

    def test_integrity_error_becomes_duplicate(self, db_engine):
        seed_player(db_engine, username="alice")
        with pytest.raises(DuplicateError):
            with get_session(db_engine) as session:
                session.add(PlayerRecord(guild_id=GUILD_ID, minecraft_username="alice"))

    def test_other_db_errors_become_upstream(self, db_engine):
        with pytest.raises(UpstreamError) as excinfo:
            with get_session(db_engine) as session:
                session.execute(text("SELECT * FROM no_such_table"))
        assert excinfo.value.message == "Database error."

    def test_rolls_back_on_service_error(self, db_engine):
        with pytest.raises(NotFoundError):
            with get_session(db_engine) as session:
                session.add(PlayerRecord(guild_id=GUILD_ID, minecraft_username="alice"))
                session.flush()
                raise NotFoundError("gone")
        with get_session(db_engine) as session:
            assert session.query(PlayerRecord).count() == 0


class TestAttempt:
    def test_result(self):
        assert attempt(lambda a, b: a + b, 1, b=2) == (3, None)

    def test_error(self):
        def fail():
            raise UpstreamError("Database error.")

        data, error = attempt(fail)
        assert data is None
        assert isinstance(error, UpstreamError)

    def test_unexpected_errors_propagate(self):
        def fail():
            raise RuntimeError("bug")

        with pytest.raises(RuntimeError):
            attempt(fail)
