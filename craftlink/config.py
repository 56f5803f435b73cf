"""
craftlink.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for **infrastructure-only** settings (Discord
identity, API port, admin role).  Everything that varies per guild —
server host, kick-message templates, role mappings, leave revocation —
lives in the ``minecraft_configs`` table and is edited through the API.

Usage::

    from craftlink.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.community_name)    # "CraftLink Dev"
    print(cfg.api_port)          # 8000
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from craftlink.constants import DEFAULT_CODE_TTL_SECONDS


# ---------------------------------------------------------------------------
# Typed settings object — infrastructure/identity only.
# Per-guild behaviour lives in the DB ``minecraft_configs`` table.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CraftLinkConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # Discord
    bot_prefix: str
    admin_role_id: int  # Discord role required for admin slash commands

    # HTTP API
    api_port: int

    # Linking defaults (a guild config may override the TTL)
    default_code_ttl_seconds: int = DEFAULT_CODE_TTL_SECONDS


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> CraftLinkConfig:
    """Read *path* and return a :class:`CraftLinkConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return CraftLinkConfig(
        community_name=raw["community_name"],
        bot_prefix=raw.get("bot_prefix", "!"),
        admin_role_id=int(raw["admin_role_id"]),
        api_port=int(raw.get("api_port", 8000)),
        default_code_ttl_seconds=int(
            raw.get("default_code_ttl_seconds", DEFAULT_CODE_TTL_SECONDS)
        ),
    )
