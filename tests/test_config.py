"""
tests/test_config.py — YAML loader and per-guild link config
=============================================================
"""

from __future__ import annotations

import pytest
from conftest import GUILD_ID

from craftlink.config import load_config
from craftlink.engine.messages import DEFAULT_TEMPLATES
from craftlink.errors import ValidationError
from craftlink.services import config_service


class TestLoadConfig:
    def test_loads_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "community_name: Test Realm\nadmin_role_id: '123'\ndefault_code_ttl_seconds: 450\n",
            encoding="utf-8",
        )
        cfg = load_config(path)
        assert cfg.community_name == "Test Realm"
        assert cfg.admin_role_id == 123
        assert cfg.bot_prefix == "!"
        assert cfg.api_port == 8000
        assert cfg.default_code_ttl_seconds == 450

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "nope.yaml")

    def test_missing_required_key(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("community_name: Test Realm\n", encoding="utf-8")
        with pytest.raises(KeyError):
            load_config(path)


class TestHelpers:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Play.Example.com", "play.example.com"),
            ("play.example.com:25565", "play.example.com"),
            ("[2001:db8::1]:25565", "2001:db8::1"),
            ("2001:db8::1", "2001:db8::1"),
            ("", None),
            (None, None),
        ],
    )
    def test_normalize_host(self, raw, expected):
        assert config_service.normalize_host(raw) == expected

    @pytest.mark.parametrize("raw,expected", [(None, 300), (0, 300), (60, 300), (450, 450), (3600, 600)])
    def test_clamp_ttl(self, raw, expected):
        assert config_service.clamp_ttl(raw) == expected


class TestUpsert:
    def test_create_then_update(self, db_engine):
        config = config_service.upsert_config(
            db_engine, GUILD_ID, {"server_host": "Play.Example.com:25565", "server_port": 25566}
        )
        assert config.server_host == "play.example.com"
        assert config.enabled is True
        assert config.role_sync_enabled is False

        config = config_service.upsert_config(db_engine, GUILD_ID, {"role_sync_enabled": True})
        assert config.server_port == 25566
        assert config.role_sync_enabled is True

    def test_role_mappings_replaced(self, db_engine):
        config_service.upsert_config(
            db_engine, GUILD_ID, {}, role_mappings=[{"role_id": "700", "group": "vip"}]
        )
        config = config_service.upsert_config(
            db_engine,
            GUILD_ID,
            {},
            role_mappings=[{"role_id": 701, "group": "builder", "enabled": False}],
        )
        assert [(m.role_id, m.group, m.enabled) for m in config.role_mappings] == [(701, "builder", False)]

    @pytest.mark.parametrize(
        "updates",
        [
            {"unknown_field": 1},
            {"server_port": 70000},
            {"enabled": "yes"},
            {"server_port": "abc"},
            {"enabled": None},
        ],
    )
    def test_invalid_updates(self, db_engine, updates):
        with pytest.raises(ValidationError):
            config_service.upsert_config(db_engine, GUILD_ID, updates)

    def test_bad_mapping(self, db_engine):
        with pytest.raises(ValidationError):
            config_service.upsert_config(db_engine, GUILD_ID, {}, role_mappings=[{"role_id": "x", "group": "vip"}])

    def test_ttl_clamped_on_save(self, db_engine):
        config = config_service.upsert_config(db_engine, GUILD_ID, {"auth_code_ttl_seconds": 30})
        assert config.auth_code_ttl_seconds == 300


class TestSerialization:
    def test_unconfigured_guild(self):
        data = config_service.config_to_dict(None, GUILD_ID)
        assert data["configured"] is False
        assert data["messages"] == DEFAULT_TEMPLATES

    def test_custom_message_overrides_default(self, db_engine):
        config = config_service.upsert_config(
            db_engine,
            GUILD_ID,
            {"auth_pending_message": "Hold tight"},
            role_mappings=[{"role_id": 700, "group": "vip", "role_name": "VIP"}],
        )
        data = config_service.config_to_dict(config)
        assert data["messages"]["auth_pending_message"] == "Hold tight"
        assert data["messages"]["auth_success_message"] == DEFAULT_TEMPLATES["auth_success_message"]
        assert data["roleMappings"][0]["roleId"] == "700"
        assert data["guildId"] == str(GUILD_ID)
