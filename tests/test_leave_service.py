"""
tests/test_leave_service.py — Leave Revocation & Rejoin Restore
================================================================
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from conftest import GUILD_ID, reload, seed_confirmed, seed_player, seed_whitelisted

from craftlink.constants import SYSTEM_ACTOR
from craftlink.database.models import RevocationReason, utcnow
from craftlink.errors import UpstreamError
from craftlink.services import leave_service
from craftlink.services.config_service import upsert_config

MEMBER = 5001


@pytest.fixture
def leave_enabled(db_engine):
    return upsert_config(db_engine, GUILD_ID, {"leave_revocation_enabled": True})


class TestMemberLeave:
    def test_scenario_d_leave_then_rejoin(self, db_engine, leave_enabled):
        record = seed_whitelisted(db_engine, username="alice", discord_id=MEMBER)

        summary = leave_service.on_member_leave(db_engine, GUILD_ID, MEMBER)
        assert summary.enabled
        assert summary.processed == ["alice"]
        revoked = reload(db_engine, record.id)
        assert revoked.revoked_at is not None
        assert revoked.revoked_by == SYSTEM_ACTOR
        assert revoked.revocation_reason == RevocationReason.PLATFORM_LEAVE
        assert not revoked.is_whitelisted

        summary = leave_service.on_member_join(db_engine, GUILD_ID, MEMBER)
        assert summary.processed == ["alice"]
        restored = reload(db_engine, record.id)
        assert restored.revoked_at is None
        assert restored.revocation_reason is None
        assert restored.is_whitelisted
        assert "Auto-restored on Discord rejoin" in restored.notes

    def test_disabled_is_noop(self, db_engine):
        upsert_config(db_engine, GUILD_ID, {"leave_revocation_enabled": False})
        record = seed_whitelisted(db_engine, username="alice", discord_id=MEMBER)
        summary = leave_service.on_member_leave(db_engine, GUILD_ID, MEMBER)
        assert summary.enabled is False
        assert summary.count == 0
        assert reload(db_engine, record.id).is_whitelisted

    def test_no_config_is_noop(self, db_engine):
        seed_whitelisted(db_engine, username="alice", discord_id=MEMBER)
        assert leave_service.on_member_leave(db_engine, GUILD_ID, MEMBER).enabled is False

    def test_all_linked_accounts_revoked(self, db_engine, leave_enabled):
        seed_whitelisted(db_engine, username="alice", discord_id=MEMBER)
        seed_whitelisted(db_engine, username="alice_alt", discord_id=MEMBER)
        seed_whitelisted(db_engine, username="bob", discord_id=MEMBER + 1)
        summary = leave_service.on_member_leave(db_engine, GUILD_ID, MEMBER)
        assert sorted(summary.processed) == ["alice", "alice_alt"]

    def test_pending_records_untouched(self, db_engine, leave_enabled):
        record = seed_confirmed(db_engine, username="alice", discord_id=MEMBER)
        summary = leave_service.on_member_leave(db_engine, GUILD_ID, MEMBER)
        assert summary.count == 0
        assert reload(db_engine, record.id).revoked_at is None

    def test_one_failure_does_not_abort_batch(self, db_engine, leave_enabled):
        first = seed_whitelisted(db_engine, username="alice", discord_id=MEMBER)
        seed_whitelisted(db_engine, username="alice_alt", discord_id=MEMBER)
        real_revoke = leave_service.revoke_player

        def flaky(engine, player_id):
            if player_id == first.id:
                raise UpstreamError("Database error.")
            return real_revoke(engine, player_id)

        with patch.object(leave_service, "revoke_player", side_effect=flaky):
            summary = leave_service.on_member_leave(db_engine, GUILD_ID, MEMBER)
        assert summary.failed == ["alice"]
        assert summary.processed == ["alice_alt"]

    def test_lookup_failure_is_logged_not_raised(self, db_engine, leave_enabled):
        with patch.object(leave_service, "find_config", side_effect=UpstreamError("Database error.")):
            summary = leave_service.on_member_leave(db_engine, GUILD_ID, MEMBER)
        assert summary.enabled is False


class TestRevokePlayer:
    def test_revoking_unwhitelisted_is_noop(self, db_engine):
        record = seed_player(db_engine, username="alice", discord_id=MEMBER)
        assert leave_service.revoke_player(db_engine, record.id) is False
        after = reload(db_engine, record.id)
        assert after.revoked_at is None
        assert after.revocation_reason is None

    def test_revoke_twice(self, db_engine):
        record = seed_whitelisted(db_engine, username="alice", discord_id=MEMBER)
        assert leave_service.revoke_player(db_engine, record.id) is True
        first_revoked_at = reload(db_engine, record.id).revoked_at
        assert leave_service.revoke_player(db_engine, record.id) is False
        assert reload(db_engine, record.id).revoked_at == first_revoked_at


class TestMemberJoin:
    def test_staff_rejection_not_restored(self, db_engine, leave_enabled):
        record = seed_player(
            db_engine,
            username="alice",
            discord_id=MEMBER,
            revoked_at=utcnow(),
            revoked_by="staff-1",
            revocation_reason=RevocationReason.STAFF_ACTION,
            rejection_reason="Griefing",
        )
        summary = leave_service.on_member_join(db_engine, GUILD_ID, MEMBER)
        assert summary.count == 0
        assert reload(db_engine, record.id).revoked_at is not None

    def test_manual_revocation_not_restored(self, db_engine, leave_enabled):
        record = seed_player(
            db_engine,
            username="alice",
            discord_id=MEMBER,
            revoked_at=utcnow(),
            revocation_reason=RevocationReason.MANUAL,
        )
        assert leave_service.restore_player(db_engine, record.id) is False

    def test_existing_notes_are_kept(self, db_engine, leave_enabled):
        record = seed_player(
            db_engine,
            username="alice",
            discord_id=MEMBER,
            notes="Founding member",
            revoked_at=utcnow(),
            revoked_by=SYSTEM_ACTOR,
            revocation_reason=RevocationReason.PLATFORM_LEAVE,
        )
        leave_service.on_member_join(db_engine, GUILD_ID, MEMBER)
        notes = reload(db_engine, record.id).notes
        assert notes.startswith("Founding member\n")
