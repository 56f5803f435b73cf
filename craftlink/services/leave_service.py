"""
craftlink.services.leave_service — Leave Revocation & Rejoin Restore
=====================================================================

When a linked member leaves the Discord server (and the guild has leave
revocation on) every whitelisted record they own is revoked with reason
``platform_leave``.  When they come back, exactly those records are
restored; staff rejections and manual revocations are never touched.

Both entry points are called fire-and-forget from the membership cog, so
neither raises: each record is handled independently and every failure is
logged and counted in the returned summary.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import select, update

from craftlink.constants import SYSTEM_ACTOR
from craftlink.database.engine import get_session
from craftlink.database.models import PlayerRecord, RevocationReason, utcnow
from craftlink.errors import CraftLinkError
from craftlink.services.config_service import find_config

logger = logging.getLogger(__name__)


@dataclass
class RevocationSummary:
    guild_id: int
    discord_id: int
    enabled: bool = True
    processed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.processed)


def _ids_for(engine, guild_id: int, discord_id: int, *conditions) -> list[tuple[int, str]]:
    with get_session(engine) as session:
        rows = session.execute(
            select(PlayerRecord.id, PlayerRecord.minecraft_username).where(
                PlayerRecord.guild_id == guild_id,
                PlayerRecord.discord_id == discord_id,
                *conditions,
            )
        ).all()
    return [(row.id, row.minecraft_username) for row in rows]


# ---------------------------------------------------------------------------
# Leave
# ---------------------------------------------------------------------------

def revoke_player(engine, player_id: int) -> bool:
    """Revoke one record for a platform leave.

    Returns ``False`` when the record was not whitelisted (nothing changed).
    """
    with get_session(engine) as session:
        result = session.execute(
            update(PlayerRecord)
            .where(
                PlayerRecord.id == player_id,
                PlayerRecord.whitelisted_at.isnot(None),
                PlayerRecord.revoked_at.is_(None),
            )
            .values(
                whitelisted_at=None,
                revoked_at=utcnow(),
                revoked_by=SYSTEM_ACTOR,
                revocation_reason=RevocationReason.PLATFORM_LEAVE,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0


def on_member_leave(engine, guild_id: int, discord_id: int) -> RevocationSummary:
    summary = RevocationSummary(guild_id=guild_id, discord_id=discord_id)
    try:
        with get_session(engine) as session:
            config = find_config(session, guild_id)
            summary.enabled = bool(config and config.leave_revocation_enabled)
        if not summary.enabled:
            return summary

        players = _ids_for(
            engine, guild_id, discord_id,
            PlayerRecord.whitelisted_at.isnot(None),
            PlayerRecord.revoked_at.is_(None),
        )
    except CraftLinkError as exc:
        logger.error("Leave revocation lookup failed for %s in guild %s: %s", discord_id, guild_id, exc)
        summary.enabled = False
        return summary

    for player_id, username in players:
        try:
            if revoke_player(engine, player_id):
                summary.processed.append(username)
                logger.info("Revoked whitelist for %s: Discord %s left guild %s", username, discord_id, guild_id)
        except CraftLinkError as exc:
            summary.failed.append(username)
            logger.error("Failed to revoke whitelist for %s: %s", username, exc)

    if players:
        logger.info(
            "Leave revocation for %s in guild %s: %d revoked, %d failed",
            discord_id, guild_id, len(summary.processed), len(summary.failed),
        )
    return summary


# ---------------------------------------------------------------------------
# Rejoin
# ---------------------------------------------------------------------------

def restore_player(engine, player_id: int) -> bool:
    """Undo a platform-leave revocation.  Other revocations are left alone."""
    now = utcnow()
    with get_session(engine) as session:
        record = session.get(PlayerRecord, player_id)
        if record is None:
            return False
        note = f"Auto-restored on Discord rejoin at {now.isoformat()}"
        notes = f"{record.notes}\n{note}" if record.notes else note
        result = session.execute(
            update(PlayerRecord)
            .where(
                PlayerRecord.id == player_id,
                PlayerRecord.revoked_at.isnot(None),
                PlayerRecord.revocation_reason == RevocationReason.PLATFORM_LEAVE,
            )
            .values(
                whitelisted_at=now,
                revoked_at=None,
                revoked_by=None,
                revocation_reason=None,
                notes=notes,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0


def on_member_join(engine, guild_id: int, discord_id: int) -> RevocationSummary:
    summary = RevocationSummary(guild_id=guild_id, discord_id=discord_id)
    try:
        players = _ids_for(
            engine, guild_id, discord_id,
            PlayerRecord.revoked_at.isnot(None),
            PlayerRecord.revocation_reason == RevocationReason.PLATFORM_LEAVE,
        )
    except CraftLinkError as exc:
        logger.error("Rejoin restore lookup failed for %s in guild %s: %s", discord_id, guild_id, exc)
        return summary

    for player_id, username in players:
        try:
            if restore_player(engine, player_id):
                summary.processed.append(username)
                logger.info("Restored whitelist for %s: Discord %s rejoined guild %s", username, discord_id, guild_id)
        except CraftLinkError as exc:
            summary.failed.append(username)
            logger.error("Failed to restore whitelist for %s: %s", username, exc)
    return summary
