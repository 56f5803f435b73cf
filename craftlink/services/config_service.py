"""
craftlink.services.config_service — Per-Guild Link Configuration
=================================================================

CRUD for ``minecraft_configs`` and its role mappings, plus the lookups the
connection handler needs (server address → guild, clamped code TTL).
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from craftlink.constants import (
    DEFAULT_CODE_TTL_SECONDS,
    MAX_CODE_TTL_SECONDS,
    MIN_CODE_TTL_SECONDS,
)
from craftlink.database.engine import get_session
from craftlink.database.models import GuildLinkConfig, RoleMapping
from craftlink.engine.messages import DEFAULT_TEMPLATES
from craftlink.errors import ValidationError

logger = logging.getLogger(__name__)

# Fields a staff member may change through the API
_SCALAR_FIELDS: dict[str, type] = {
    "enabled": bool,
    "server_host": str,
    "server_port": int,
    "auth_code_ttl_seconds": int,
    "auth_success_message": str,
    "auth_pending_message": str,
    "auth_rejection_message": str,
    "application_rejection_message": str,
    "leave_revocation_message": str,
    "role_sync_enabled": bool,
    "leave_revocation_enabled": bool,
}


def normalize_host(address: str | None) -> str | None:
    """``"Play.Example.com:25565"`` → ``"play.example.com"``."""
    if not address:
        return None
    host = address.strip().lower()
    if host.startswith("[") and "]" in host:
        host = host[1 : host.index("]")]
    elif host.count(":") == 1:
        host = host.split(":", 1)[0]
    return host or None


def clamp_ttl(seconds: int | None) -> int:
    if not seconds:
        return DEFAULT_CODE_TTL_SECONDS
    return max(MIN_CODE_TTL_SECONDS, min(MAX_CODE_TTL_SECONDS, int(seconds)))


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def find_config(session: Session, guild_id: int) -> GuildLinkConfig | None:
    return session.scalar(
        select(GuildLinkConfig).where(GuildLinkConfig.guild_id == guild_id)
    )


def find_config_by_server_ip(session: Session, server_ip: str | None) -> GuildLinkConfig | None:
    """Return the enabled config whose ``server_host`` matches *server_ip*."""
    host = normalize_host(server_ip)
    if host is None:
        return None
    return session.scalar(
        select(GuildLinkConfig)
        .where(
            GuildLinkConfig.enabled.is_(True),
            func.lower(GuildLinkConfig.server_host) == host,
        )
        .order_by(GuildLinkConfig.id)
        .limit(1)
    )


def get_config(engine, guild_id: int) -> GuildLinkConfig | None:
    with get_session(engine) as session:
        return find_config(session, guild_id)


def get_code_ttl(session: Session, guild_id: int, default: int | None = None) -> int:
    config = find_config(session, guild_id)
    if config is not None and config.auth_code_ttl_seconds:
        return clamp_ttl(config.auth_code_ttl_seconds)
    return clamp_ttl(default)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def _coerce(field: str, value: Any) -> Any:
    if value is None:
        if field in {"enabled", "role_sync_enabled", "leave_revocation_enabled", "server_port"}:
            raise ValidationError(f"{field} cannot be null.")
        return None
    expected = _SCALAR_FIELDS[field]
    if expected is bool:
        if not isinstance(value, bool):
            raise ValidationError(f"{field} must be a boolean.")
        return value
    if expected is int:
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{field} must be an integer.") from None
    return str(value)


def upsert_config(
    engine,
    guild_id: int,
    updates: dict[str, Any],
    *,
    role_mappings: list[dict] | None = None,
) -> GuildLinkConfig:
    """Create or update a guild's config.

    *role_mappings*, when given, replaces the guild's mapping list wholesale.
    Each entry needs ``role_id`` and ``group``; ``enabled`` and ``role_name``
    are optional.
    """
    unknown = set(updates) - set(_SCALAR_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown config field(s): {', '.join(sorted(unknown))}")

    values = {k: _coerce(k, v) for k, v in updates.items()}
    if "auth_code_ttl_seconds" in values and values["auth_code_ttl_seconds"] is not None:
        values["auth_code_ttl_seconds"] = clamp_ttl(values["auth_code_ttl_seconds"])
    if "server_port" in values and not 1 <= values["server_port"] <= 65535:
        raise ValidationError("server_port must be between 1 and 65535.")
    if values.get("server_host"):
        values["server_host"] = normalize_host(values["server_host"])

    mappings: list[RoleMapping] | None = None
    if role_mappings is not None:
        mappings = []
        for raw in role_mappings:
            group = str(raw.get("group") or "").strip()
            role_id = raw.get("role_id")
            if not group or role_id in (None, ""):
                raise ValidationError("Each role mapping needs role_id and group.")
            try:
                role_id = int(role_id)
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid role id: {role_id!r}") from None
            mappings.append(
                RoleMapping(
                    role_id=role_id,
                    role_name=raw.get("role_name"),
                    group=group,
                    enabled=bool(raw.get("enabled", True)),
                )
            )

    with get_session(engine) as session:
        config = find_config(session, guild_id)
        if config is None:
            config = GuildLinkConfig(guild_id=guild_id)
            session.add(config)
        for key, value in values.items():
            setattr(config, key, value)
        if mappings is not None:
            config.role_mappings = mappings
        session.flush()
        session.refresh(config)
        logger.info(
            "Updated link config for guild %s (%s)",
            guild_id, ", ".join(sorted(values)) or "mappings",
        )
        return config


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def config_to_dict(config: GuildLinkConfig | None, guild_id: int | None = None) -> dict:
    """Serialize for the dashboard; an unconfigured guild shows defaults."""
    if config is None:
        return {
            "guildId": str(guild_id) if guild_id is not None else None,
            "configured": False,
            "enabled": False,
            "serverHost": None,
            "serverPort": None,
            "authCodeTtlSeconds": DEFAULT_CODE_TTL_SECONDS,
            "roleSyncEnabled": False,
            "leaveRevocationEnabled": False,
            "messages": dict(DEFAULT_TEMPLATES),
            "roleMappings": [],
        }
    return {
        "guildId": str(config.guild_id),
        "configured": True,
        "enabled": config.enabled,
        "serverHost": config.server_host,
        "serverPort": config.server_port,
        "authCodeTtlSeconds": clamp_ttl(config.auth_code_ttl_seconds),
        "roleSyncEnabled": config.role_sync_enabled,
        "leaveRevocationEnabled": config.leave_revocation_enabled,
        "messages": {
            field: getattr(config, field) or default
            for field, default in DEFAULT_TEMPLATES.items()
        },
        "roleMappings": [
            {
                "id": m.id,
                "roleId": str(m.role_id),
                "roleName": m.role_name,
                "group": m.group,
                "enabled": m.enabled,
            }
            for m in config.role_mappings
        ],
    }
