"""
craftlink.services.player_admin_service — Staff Player Management
==================================================================

Dashboard-side edits that bypass the link handshake: creating a record by
hand, correcting identity fields, and whitelisting / unwhitelisting.
Unwhitelisting records ``revocation_reason=manual`` so a later Discord
rejoin never restores it.
"""

from __future__ import annotations

import logging

from sqlalchemy import update

from craftlink.constants import MINECRAFT_USERNAME_PATTERN, MINECRAFT_UUID_PATTERN
from craftlink.database.engine import get_session
from craftlink.database.models import PlayerRecord, PlayerSource, RevocationReason, utcnow
from craftlink.errors import DuplicateError, NotFoundError, StateConflictError, ValidationError
from craftlink.services.player_store import (
    find_by_discord,
    find_by_username,
    find_by_uuid,
    normalize_uuid,
)

logger = logging.getLogger(__name__)


def _check_username(username: str | None) -> str:
    name = (username or "").strip()
    if not MINECRAFT_USERNAME_PATTERN.match(name):
        raise ValidationError("Invalid Minecraft username.")
    return name.lower()


def _check_uuid(uuid: str | None) -> str | None:
    value = normalize_uuid(uuid)
    if value is not None and not MINECRAFT_UUID_PATTERN.match(value):
        raise ValidationError("Invalid UUID format.")
    return value


def _load(session, guild_id: int, player_id: int) -> PlayerRecord:
    record = session.get(PlayerRecord, player_id)
    if record is None or record.guild_id != guild_id:
        raise NotFoundError(f"Player {player_id} not found.")
    return record


def create_manual_player(
    engine,
    guild_id: int,
    *,
    username: str,
    discord_id: int,
    staff_id: str,
    uuid: str | None = None,
    notes: str | None = None,
) -> PlayerRecord:
    """Create a linked, whitelisted record without the code handshake."""
    if not staff_id:
        raise ValidationError("staffMemberId is required.")
    username = _check_username(username)
    uuid = _check_uuid(uuid)

    with get_session(engine) as session:
        if find_by_username(session, guild_id, username) is not None:
            raise DuplicateError(f"Player with username '{username}' already exists.")
        if find_by_uuid(session, guild_id, uuid) is not None:
            raise DuplicateError(f"Player with UUID '{uuid}' already exists.")
        existing = find_by_discord(session, guild_id, discord_id)
        if existing:
            raise DuplicateError(
                f"Discord user is already linked to player: {existing[0].minecraft_username}"
            )
        now = utcnow()
        record = PlayerRecord(
            guild_id=guild_id,
            minecraft_username=username,
            minecraft_uuid=uuid,
            discord_id=discord_id,
            linked_at=now,
            whitelisted_at=now,
            approved_by=str(staff_id),
            source=PlayerSource.MANUAL,
            notes=notes or "Manually created via dashboard",
        )
        session.add(record)
        session.flush()
        session.refresh(record)

    logger.info("Staff %s manually created player %s for Discord %s", staff_id, username, discord_id)
    return record


def update_player(engine, guild_id: int, player_id: int, changes: dict) -> PlayerRecord:
    """Apply staff edits.  Accepted keys: ``minecraft_username``,
    ``minecraft_uuid``, ``discord_id``, ``notes``, ``role_sync_enabled``."""
    allowed = {"minecraft_username", "minecraft_uuid", "discord_id", "notes", "role_sync_enabled"}
    unknown = set(changes) - allowed
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}")

    with get_session(engine) as session:
        record = _load(session, guild_id, player_id)

        if "minecraft_username" in changes:
            username = _check_username(changes["minecraft_username"])
            holder = find_by_username(session, guild_id, username)
            if holder is not None and holder.id != record.id:
                raise DuplicateError(f"Player with username '{username}' already exists.")
            record.minecraft_username = username
        if "minecraft_uuid" in changes:
            uuid = _check_uuid(changes["minecraft_uuid"])
            holder = find_by_uuid(session, guild_id, uuid)
            if holder is not None and holder.id != record.id:
                raise DuplicateError(f"Player with UUID '{uuid}' already exists.")
            record.minecraft_uuid = uuid
        if "discord_id" in changes:
            discord_id = changes["discord_id"]
            record.discord_id = int(discord_id) if discord_id not in (None, "") else None
            if record.discord_id is None:
                record.linked_at = None
            elif record.linked_at is None and record.is_whitelisted:
                record.linked_at = utcnow()
        if "notes" in changes:
            record.notes = changes["notes"]
        if "role_sync_enabled" in changes:
            record.role_sync_enabled = bool(changes["role_sync_enabled"])

    logger.info("Updated player %s (guild %s): %s", player_id, guild_id, ", ".join(sorted(changes)))
    return record


def whitelist_player(
    engine, guild_id: int, player_id: int, staff_id: str, notes: str | None = None
) -> PlayerRecord:
    """Whitelist a record directly, clearing any revocation or rejection."""
    now = utcnow()
    with get_session(engine) as session:
        record = _load(session, guild_id, player_id)
        if record.is_whitelisted:
            raise StateConflictError(f"{record.minecraft_username} is already whitelisted.")
        record.whitelisted_at = now
        record.approved_by = str(staff_id) if staff_id else None
        record.revoked_at = None
        record.revoked_by = None
        record.revocation_reason = None
        record.rejection_reason = None
        record.auth_code = None
        record.expires_at = None
        record.code_shown_at = None
        record.confirmed_at = None
        if record.discord_id is not None and record.linked_at is None:
            record.linked_at = now
        if notes:
            record.notes = notes

    logger.info("Staff %s whitelisted %s (guild %s)", staff_id, record.minecraft_username, guild_id)
    return record


def unwhitelist_player(
    engine,
    guild_id: int,
    player_id: int,
    staff_id: str,
    reason: str | None = None,
    notes: str | None = None,
) -> PlayerRecord:
    """Revoke a whitelisted record by hand.

    A no-op (no error, no state change) unless the record is currently
    whitelisted.  Any pending auth code is dropped with the access.
    """
    with get_session(engine) as session:
        record = _load(session, guild_id, player_id)
        values = {
            "whitelisted_at": None,
            "revoked_at": utcnow(),
            "revoked_by": str(staff_id) if staff_id else None,
            "revocation_reason": RevocationReason.MANUAL,
            "auth_code": None,
            "expires_at": None,
            "code_shown_at": None,
        }
        if notes:
            values["notes"] = notes
        if reason:
            values["rejection_reason"] = reason
        result = session.execute(
            update(PlayerRecord)
            .where(
                PlayerRecord.id == player_id,
                PlayerRecord.whitelisted_at.isnot(None),
                PlayerRecord.revoked_at.is_(None),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        session.refresh(record)

    if result.rowcount == 0:
        logger.debug("Unwhitelist of %s skipped: not whitelisted", record.minecraft_username)
        return record
    logger.info(
        "Staff %s unwhitelisted %s (guild %s): %s",
        staff_id, record.minecraft_username, guild_id, reason or "no reason given",
    )
    return record
