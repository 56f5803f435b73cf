"""
tests/test_player_store.py — Player Resolution
===============================================
Identity matching (uuid first, username fallback), rename reconciliation,
listing filters and dashboard serialization.
"""

from __future__ import annotations

import pytest
from conftest import GUILD_ID, OTHER_GUILD_ID, reload, seed_player, seed_whitelisted
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from craftlink.database.models import PlayerRecord, RevocationReason, utcnow
from craftlink.errors import NotFoundError, ValidationError
from craftlink.services import player_store

UUID_1 = "0f8fad5b-d9cb-469f-a165-70867728950e"
UUID_2 = "7c9e6679-7425-40de-944b-e07fc1f90ae7"


def _count(engine, guild_id: int = GUILD_ID) -> int:
    with Session(engine) as session:
        return session.scalar(
            select(func.count()).select_from(PlayerRecord).where(PlayerRecord.guild_id == guild_id)
        )


class TestNormalize:
    def test_username_lowercased_and_stripped(self):
        assert player_store.normalize_username("  Alice ") == "alice"

    def test_empty_username_rejected(self):
        with pytest.raises(ValidationError):
            player_store.normalize_username("   ")

    def test_uuid_normalization(self):
        assert player_store.normalize_uuid(" ABC ") == "abc"
        assert player_store.normalize_uuid("") is None
        assert player_store.normalize_uuid(None) is None


class TestGetOrCreate:
    def test_creates_once_for_replayed_attempts(self, db_engine):
        first = player_store.get_or_create_player(db_engine, GUILD_ID, "Alice", UUID_1)
        for _ in range(5):
            again = player_store.get_or_create_player(db_engine, GUILD_ID, "alice", UUID_1)
            assert again.id == first.id
        assert _count(db_engine) == 1

    def test_rename_updates_username_on_uuid_match(self, db_engine):
        record = seed_player(db_engine, username="alice", minecraft_uuid=UUID_1)
        found = player_store.get_or_create_player(db_engine, GUILD_ID, "Alicia", UUID_1)
        assert found.id == record.id
        assert reload(db_engine, record.id).minecraft_username == "alicia"
        assert _count(db_engine) == 1

    def test_username_match_gains_uuid(self, db_engine):
        record = seed_player(db_engine, username="bob")
        found = player_store.get_or_create_player(db_engine, GUILD_ID, "bob", UUID_2)
        assert found.id == record.id
        assert reload(db_engine, record.id).minecraft_uuid == UUID_2

    def test_rename_collision_is_skipped(self, db_engine):
        by_uuid = seed_player(db_engine, username="alice", minecraft_uuid=UUID_1)
        seed_player(db_engine, username="carol")
        found = player_store.get_or_create_player(db_engine, GUILD_ID, "carol", UUID_1)
        assert found.id == by_uuid.id
        assert reload(db_engine, by_uuid.id).minecraft_username == "alice"
        assert _count(db_engine) == 2

    def test_guilds_are_isolated(self, db_engine):
        a = player_store.get_or_create_player(db_engine, GUILD_ID, "alice", UUID_1)
        b = player_store.get_or_create_player(db_engine, OTHER_GUILD_ID, "alice", UUID_1)
        assert a.id != b.id


class TestLookups:
    def test_get_player_wrong_guild(self, db_engine):
        record = seed_player(db_engine)
        with pytest.raises(NotFoundError):
            player_store.get_player(db_engine, OTHER_GUILD_ID, record.id)

    def test_players_for_discord(self, db_engine):
        seed_whitelisted(db_engine, username="alice", discord_id=42)
        seed_player(db_engine, username="bob", discord_id=43)
        names = [r.minecraft_username for r in player_store.get_players_for_discord(db_engine, GUILD_ID, 42)]
        assert names == ["alice"]


class TestListPlayers:
    def test_status_filters(self, db_engine):
        seed_whitelisted(db_engine, username="alice", discord_id=1)
        seed_player(db_engine, username="bob")
        seed_player(
            db_engine,
            username="carol",
            revoked_at=utcnow(),
            revocation_reason=RevocationReason.STAFF_ACTION,
        )

        def names(status):
            return {r.minecraft_username for r in player_store.list_players(db_engine, GUILD_ID, status=status)}

        assert names("whitelisted") == {"alice"}
        assert names("pending") == {"bob"}
        assert names("revoked") == {"carol"}
        assert names(None) == {"alice", "bob", "carol"}

    def test_unknown_status(self, db_engine):
        with pytest.raises(ValidationError):
            player_store.list_players(db_engine, GUILD_ID, status="banned")

    def test_search_matches_discord_name(self, db_engine):
        seed_player(db_engine, username="alice", discord_username="AliceDiscord")
        seed_player(db_engine, username="bob")
        found = player_store.list_players(db_engine, GUILD_ID, search="alicedisc")
        assert [r.minecraft_username for r in found] == ["alice"]


class TestSerialization:
    def test_player_to_dict(self, db_engine):
        record = seed_whitelisted(db_engine, username="alice", discord_id=123456789012345678)
        data = player_store.player_to_dict(record)
        assert data["discordId"] == "123456789012345678"
        assert data["guildId"] == str(GUILD_ID)
        assert data["isWhitelisted"] is True
        assert data["whitelistStatus"] == "whitelisted"
        assert data["authStatus"] == "confirmed"
        assert data["lastMinecraftGroups"] == []
        assert data["whitelistedAt"].endswith("+00:00")
