"""
craftlink.services.player_store — PlayerRecord Persistence
===========================================================

Lookups and identity maintenance for ``minecraft_players``.  Usernames are
lower-cased on every write and every lookup, so the per-guild username
uniqueness constraint is case-insensitive in practice.

Session-level helpers (``find_*``, :func:`resolve_player`) take an open
``Session`` so callers can compose them inside one transaction; the
engine-level functions open their own.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from craftlink.database.engine import get_session
from craftlink.database.models import PlayerRecord, PlayerSource, WhitelistStatus, as_utc
from craftlink.errors import DuplicateError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def normalize_username(username: str | None) -> str:
    name = (username or "").strip().lower()
    if not name:
        raise ValidationError("Minecraft username is required.")
    return name


def normalize_uuid(uuid: str | None) -> str | None:
    if uuid is None:
        return None
    value = uuid.strip().lower()
    return value or None


# ---------------------------------------------------------------------------
# Session-level lookups
# ---------------------------------------------------------------------------

def find_by_uuid(session: Session, guild_id: int, uuid: str | None) -> PlayerRecord | None:
    if not uuid:
        return None
    return session.scalar(
        select(PlayerRecord).where(
            PlayerRecord.guild_id == guild_id,
            PlayerRecord.minecraft_uuid == uuid,
        )
    )


def find_by_username(session: Session, guild_id: int, username: str) -> PlayerRecord | None:
    return session.scalar(
        select(PlayerRecord).where(
            PlayerRecord.guild_id == guild_id,
            PlayerRecord.minecraft_username == username,
        )
    )


def find_by_code(session: Session, code: str) -> PlayerRecord | None:
    return session.scalar(select(PlayerRecord).where(PlayerRecord.auth_code == code))


def find_by_discord(session: Session, guild_id: int, discord_id: int) -> list[PlayerRecord]:
    return list(
        session.scalars(
            select(PlayerRecord)
            .where(
                PlayerRecord.guild_id == guild_id,
                PlayerRecord.discord_id == discord_id,
            )
            .order_by(PlayerRecord.id)
        ).all()
    )


def resolve_player(
    session: Session, guild_id: int, username: str, uuid: str | None
) -> PlayerRecord | None:
    """Find the record for a game account, correcting stale identity fields.

    Matches by uuid first, then username.  A uuid hit carrying a different
    username gets the new name (the player renamed); a username hit with a
    missing or different uuid gets the uuid.  A correction that would collide
    with another record in the guild is skipped and logged.
    """
    record = find_by_uuid(session, guild_id, uuid)
    if record is not None:
        if record.minecraft_username != username:
            holder = find_by_username(session, guild_id, username)
            if holder is None:
                logger.info(
                    "Player %s renamed %s → %s (guild %s)",
                    uuid, record.minecraft_username, username, guild_id,
                )
                record.minecraft_username = username
            else:
                logger.warning(
                    "Username %s already held by record %s; not renaming record %s",
                    username, holder.id, record.id,
                )
        return record

    record = find_by_username(session, guild_id, username)
    if record is not None and uuid and record.minecraft_uuid != uuid:
        # uuid holder cannot exist here: the uuid lookup above missed
        logger.info(
            "Attaching uuid %s to player %s (guild %s)", uuid, username, guild_id
        )
        record.minecraft_uuid = uuid
    return record


# ---------------------------------------------------------------------------
# Engine-level operations
# ---------------------------------------------------------------------------

def get_or_create_player(
    engine,
    guild_id: int,
    username: str,
    uuid: str | None = None,
    *,
    source: str = PlayerSource.LINKED,
) -> PlayerRecord:
    """Return the guild's record for this game account, creating a bare one.

    Concurrent creators race on the unique constraints; the loser re-reads
    the winner's row.
    """
    username = normalize_username(username)
    uuid = normalize_uuid(uuid)
    try:
        with get_session(engine) as session:
            record = resolve_player(session, guild_id, username, uuid)
            if record is None:
                record = PlayerRecord(
                    guild_id=guild_id,
                    minecraft_username=username,
                    minecraft_uuid=uuid,
                    source=source,
                )
                session.add(record)
                session.flush()
                session.refresh(record)
                logger.info("Created player record %s for %s (guild %s)", record.id, username, guild_id)
            return record
    except DuplicateError:
        with get_session(engine) as session:
            record = resolve_player(session, guild_id, username, uuid)
            if record is None:
                raise
            return record


def get_player(engine, guild_id: int, player_id: int) -> PlayerRecord:
    with get_session(engine) as session:
        record = session.get(PlayerRecord, player_id)
        if record is None or record.guild_id != guild_id:
            raise NotFoundError(f"Player {player_id} not found.")
        return record


def get_players_for_discord(engine, guild_id: int, discord_id: int) -> list[PlayerRecord]:
    with get_session(engine) as session:
        return find_by_discord(session, guild_id, discord_id)


def list_players(
    engine,
    guild_id: int,
    *,
    status: str | None = None,
    search: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[PlayerRecord]:
    """List a guild's records, optionally filtered by whitelist status or a
    substring of the username / Discord name."""
    stmt = select(PlayerRecord).where(PlayerRecord.guild_id == guild_id)

    if status == WhitelistStatus.WHITELISTED:
        stmt = stmt.where(
            PlayerRecord.whitelisted_at.isnot(None), PlayerRecord.revoked_at.is_(None)
        )
    elif status == WhitelistStatus.REVOKED:
        stmt = stmt.where(PlayerRecord.revoked_at.isnot(None))
    elif status == WhitelistStatus.PENDING:
        stmt = stmt.where(
            PlayerRecord.whitelisted_at.is_(None), PlayerRecord.revoked_at.is_(None)
        )
    elif status:
        raise ValidationError(f"Unknown status filter: {status}")

    if search:
        pattern = f"%{search.strip().lower()}%"
        stmt = stmt.where(
            or_(
                PlayerRecord.minecraft_username.like(pattern),
                PlayerRecord.discord_username.ilike(pattern),
                PlayerRecord.discord_display_name.ilike(pattern),
            )
        )

    stmt = stmt.order_by(PlayerRecord.created_at.desc(), PlayerRecord.id.desc())
    stmt = stmt.limit(limit).offset(offset)
    with get_session(engine) as session:
        return list(session.scalars(stmt).all())


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def to_iso(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value is not None else None


def to_snowflake(value: int | None) -> str | None:
    # Discord ids overflow JavaScript numbers; send them as strings
    return str(value) if value is not None else None


def player_to_dict(record: PlayerRecord) -> dict:
    """Serialize a record for the staff dashboard (camelCase keys)."""
    return {
        "id": record.id,
        "guildId": to_snowflake(record.guild_id),
        "minecraftUsername": record.minecraft_username,
        "minecraftUuid": record.minecraft_uuid,
        "discordId": to_snowflake(record.discord_id),
        "discordUsername": record.discord_username,
        "discordDisplayName": record.discord_display_name,
        "isWhitelisted": record.is_whitelisted,
        "whitelistStatus": str(record.whitelist_status),
        "authStatus": str(record.auth_status()),
        "whitelistedAt": to_iso(record.whitelisted_at),
        "linkedAt": to_iso(record.linked_at),
        "confirmedAt": to_iso(record.confirmed_at),
        "revokedAt": to_iso(record.revoked_at),
        "revokedBy": record.revoked_by,
        "revocationReason": record.revocation_reason,
        "rejectionReason": record.rejection_reason,
        "approvedBy": record.approved_by,
        "source": record.source,
        "notes": record.notes,
        "roleSyncEnabled": record.role_sync_enabled,
        "lastDiscordRoles": record.last_discord_roles or [],
        "lastMinecraftGroups": record.last_minecraft_groups or [],
        "lastRoleSyncAt": to_iso(record.last_role_sync_at),
        "lastConnectionAttempt": to_iso(record.last_connection_attempt),
        "createdAt": to_iso(record.created_at),
    }
