"""
tests/test_connection_service.py — Connection-Attempt Decisions
================================================================
The login-time state machine: guild resolution, each decision branch,
kick-message templates, role-sync blocks and storage-failure handling.
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import patch

import pytest
from conftest import (
    GUILD_ID,
    SERVER_HOST,
    FakePlatform,
    reload,
    seed_confirmed,
    seed_player,
    seed_whitelisted,
)
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from craftlink.constants import (
    CONFIG_ERROR_MESSAGE,
    DEFAULT_LEAVE_REVOCATION_MESSAGE,
    STORAGE_ERROR_MESSAGE,
)
from craftlink.database.models import PlayerRecord, RevocationReason, RoleSyncLog, utcnow
from craftlink.engine.messages import render
from craftlink.errors import UpstreamError, ValidationError
from craftlink.services import approval_service, auth_codes
from craftlink.services.config_service import upsert_config
from craftlink.services.connection_service import (
    ConnectionAttempt,
    Decision,
    handle_connection_attempt,
    resolve_guild,
)

UUID_1 = "0f8fad5b-d9cb-469f-a165-70867728950e"


def _attempt(username="Alice", uuid=UUID_1, server_ip=SERVER_HOST, groups=None) -> ConnectionAttempt:
    return ConnectionAttempt(
        username=username,
        uuid=uuid,
        ip="203.0.113.7",
        server_ip=server_ip,
        current_groups=groups or [],
    )


class TestValidation:
    @pytest.mark.parametrize("field", ["username", "uuid", "ip"])
    def test_missing_required_field(self, db_engine, field):
        attempt = _attempt()
        setattr(attempt, field, "")
        with pytest.raises(ValidationError) as exc_info:
            handle_connection_attempt(db_engine, attempt)
        assert field in exc_info.value.message


class TestGuildResolution:
    def test_server_ip_wins(self, db_engine, guild_config):
        assert resolve_guild(db_engine, "Play.Example.com:25565", "alice", UUID_1) == GUILD_ID

    def test_pending_code_by_username(self, db_engine):
        seed_player(db_engine, username="alice", auth_code="123456", expires_at=utcnow() + timedelta(minutes=5))
        assert resolve_guild(db_engine, None, "alice", None) == GUILD_ID

    def test_existing_record_by_uuid(self, db_engine):
        seed_player(db_engine, username="oldname", minecraft_uuid=UUID_1)
        assert resolve_guild(db_engine, "unknown.host", "newname", UUID_1) == GUILD_ID

    def test_no_match(self, db_engine):
        assert resolve_guild(db_engine, None, "alice", UUID_1) is None


class TestDecisions:
    def test_unknown_guild_gets_generic_directions(self, db_engine):
        response = handle_connection_attempt(db_engine, _attempt(server_ip="nowhere.example"))
        assert response.decision is Decision.START_LINKING
        assert response.action == "kick_with_message"
        assert "/link-minecraft alice" in response.kick_message
        assert response.should_be_whitelisted is False

    def test_scenario_a_unknown_player_starts_linking(self, db_engine, guild_config):
        response = handle_connection_attempt(db_engine, _attempt())
        assert response.decision is Decision.START_LINKING
        wire = response.to_wire()
        assert wire["decision"] == "start_linking"
        assert wire["shouldBeWhitelisted"] is False
        assert wire["hasAuth"] is False
        assert "roleSync" not in wire

    def test_replayed_attempts_create_one_record(self, db_engine, guild_config):
        for _ in range(4):
            handle_connection_attempt(db_engine, _attempt())
        with Session(db_engine) as session:
            count = session.scalar(select(func.count()).select_from(PlayerRecord))
        assert count == 1

    def test_disabled_config(self, db_engine):
        upsert_config(db_engine, GUILD_ID, {"server_host": SERVER_HOST, "enabled": False})
        seed_player(db_engine, username="alice", minecraft_uuid=UUID_1)
        response = handle_connection_attempt(db_engine, _attempt(server_ip=None))
        assert response.decision is Decision.ERROR
        assert response.kick_message == CONFIG_ERROR_MESSAGE

    def test_whitelisted_player_allowed(self, db_engine, guild_config):
        record = seed_whitelisted(db_engine, username="alice", minecraft_uuid=UUID_1)
        response = handle_connection_attempt(db_engine, _attempt())
        assert response.decision is Decision.ALLOW
        assert response.to_wire()["action"] == "allow"
        assert response.should_be_whitelisted is True
        assert response.has_auth is True
        assert response.kick_message is None
        assert reload(db_engine, record.id).last_connection_attempt is not None

    def test_awaiting_staff_gets_pending_message(self, db_engine, guild_config):
        seed_confirmed(db_engine, username="alice")
        response = handle_connection_attempt(db_engine, _attempt())
        assert response.decision is Decision.PENDING
        assert response.has_auth is True
        assert "waiting for staff approval" in response.kick_message

    def test_active_code_is_shown_and_marked(self, db_engine, guild_config):
        request = auth_codes.start_link(db_engine, GUILD_ID, 5001, "alice")
        code = reload(db_engine, request.record.id).auth_code
        response = handle_connection_attempt(db_engine, _attempt())
        assert response.decision is Decision.SHOW_AUTH_CODE
        assert response.action == "show_auth_code"
        assert code in response.kick_message
        assert reload(db_engine, request.record.id).code_shown_at is not None

    def test_expired_code_is_cleared_first(self, db_engine, guild_config):
        record = seed_player(
            db_engine,
            username="alice",
            auth_code="123456",
            expires_at=utcnow() - timedelta(seconds=5),
        )
        response = handle_connection_attempt(db_engine, _attempt())
        assert response.decision is Decision.START_LINKING
        assert reload(db_engine, record.id).auth_code is None

    def test_rejected_player_sees_reason(self, db_engine, guild_config):
        seed_player(
            db_engine,
            username="alice",
            revoked_at=utcnow(),
            revocation_reason=RevocationReason.STAFF_ACTION,
            rejection_reason="Griefing",
        )
        response = handle_connection_attempt(db_engine, _attempt())
        assert response.decision is Decision.REJECTED
        assert "Griefing" in response.kick_message

    def test_leave_revocation_uses_leave_template(self, db_engine):
        upsert_config(
            db_engine, GUILD_ID, {"server_host": SERVER_HOST, "leave_revocation_enabled": True}
        )
        seed_player(
            db_engine,
            username="alice",
            discord_id=5001,
            revoked_at=utcnow(),
            revoked_by="system",
            revocation_reason=RevocationReason.PLATFORM_LEAVE,
        )
        response = handle_connection_attempt(db_engine, _attempt())
        assert response.decision is Decision.REJECTED
        assert response.kick_message == DEFAULT_LEAVE_REVOCATION_MESSAGE

    def test_leave_template_fills_reason(self, db_engine):
        upsert_config(
            db_engine,
            GUILD_ID,
            {
                "server_host": SERVER_HOST,
                "leave_revocation_enabled": True,
                "leave_revocation_message": "Bye {username} ({reason})",
            },
        )
        seed_player(
            db_engine,
            username="alice",
            discord_id=5001,
            revoked_at=utcnow(),
            revoked_by="system",
            revocation_reason=RevocationReason.PLATFORM_LEAVE,
        )
        response = handle_connection_attempt(db_engine, _attempt())
        assert response.decision is Decision.REJECTED
        assert "{reason}" not in response.kick_message
        assert response.kick_message == "Bye alice (No reason provided)"

    def test_custom_template_with_placeholders(self, db_engine):
        upsert_config(
            db_engine,
            GUILD_ID,
            {
                "server_host": SERVER_HOST,
                "auth_rejection_message": "Hi {username}, link at {serverHost}:{serverPort}",
            },
        )
        response = handle_connection_attempt(db_engine, _attempt())
        assert response.kick_message == f"Hi alice, link at {SERVER_HOST}:25565"


class TestScenarioB:
    def test_link_confirm_approve_then_allow(self, db_engine, guild_config):
        request = auth_codes.start_link(db_engine, GUILD_ID, 5001, "Alice")

        shown = handle_connection_attempt(db_engine, _attempt())
        assert shown.decision is Decision.SHOW_AUTH_CODE
        code = reload(db_engine, request.record.id).auth_code
        assert code in shown.kick_message

        confirmed = auth_codes.confirm(db_engine, code, 5001, guild_id=GUILD_ID)
        assert confirmed.confirmed_at is not None

        pending = handle_connection_attempt(db_engine, _attempt())
        assert pending.decision is Decision.PENDING

        approved = approval_service.approve(db_engine, GUILD_ID, confirmed.id, "staff-1")
        assert approved.whitelisted_at is not None

        allowed = handle_connection_attempt(db_engine, _attempt())
        assert allowed.decision is Decision.ALLOW


class TestRoleSyncBlock:
    @pytest.fixture
    def synced_guild(self, db_engine):
        return upsert_config(
            db_engine,
            GUILD_ID,
            {"server_host": SERVER_HOST, "role_sync_enabled": True},
            role_mappings=[
                {"role_id": 700, "group": "vip"},
                {"role_id": 701, "group": "builder"},
            ],
        )

    def test_allow_carries_target_groups(self, db_engine, synced_guild):
        seed_whitelisted(db_engine, username="alice", minecraft_uuid=UUID_1, discord_id=5001)
        platform = FakePlatform({5001: ["700"]})
        response = handle_connection_attempt(
            db_engine, _attempt(groups=["builder", "default"]), platform
        )
        assert response.decision is Decision.ALLOW
        assert response.role_sync == {
            "enabled": True,
            "targetGroups": ["vip"],
            "managedGroups": ["builder", "vip"],
        }
        with Session(db_engine) as session:
            log = session.scalar(select(RoleSyncLog))
        assert log.groups_added == ["vip"]
        assert log.groups_removed == ["builder"]

    def test_platform_failure_still_allows(self, db_engine, synced_guild):
        seed_whitelisted(db_engine, username="alice", minecraft_uuid=UUID_1, discord_id=5001)
        platform = FakePlatform(error=UpstreamError("Could not reach Discord."))
        response = handle_connection_attempt(db_engine, _attempt(), platform)
        assert response.decision is Decision.ALLOW
        assert response.role_sync["enabled"] is False

    def test_no_block_when_guild_sync_off(self, db_engine, guild_config):
        seed_whitelisted(db_engine, username="alice", minecraft_uuid=UUID_1, discord_id=5001)
        response = handle_connection_attempt(db_engine, _attempt(), FakePlatform({5001: ["700"]}))
        assert response.role_sync is None


class TestStorageFailure:
    def test_generic_message_never_leaks(self, db_engine, guild_config):
        boom = UpstreamError("Database error.")
        with patch("craftlink.services.connection_service.get_or_create_player", side_effect=boom):
            response = handle_connection_attempt(db_engine, _attempt())
        assert response.decision is Decision.ERROR
        assert response.kick_message == STORAGE_ERROR_MESSAGE
        assert response.should_be_whitelisted is False


class TestMessages:
    def test_render_ignores_unknown_braces(self):
        assert render("{code} {unknown} {", code="123456") == "123456 {unknown} {"

    def test_render_none_becomes_empty(self):
        assert render("[{reason}]", reason=None) == "[]"
