"""
craftlink.services.auth_codes — Auth-Code Handshake
====================================================

Proves that a Discord member controls a game account:

    1. A code is issued for the game account (on a connection attempt, a
       ``/link-minecraft`` request, or an in-game ``/linkdiscord``).
    2. The game server shows the code on the disconnect screen
       (``code_shown_at``).
    3. The member types ``/confirm-code <code>`` in Discord, which binds
       their Discord id and sets ``confirmed_at``.

Codes are six random digits from :mod:`secrets`.  Uniqueness is checked
before assignment and enforced by the unique index on ``auth_code``; a
collision at commit time is retried, up to ``MAX_CODE_ATTEMPTS`` times.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import select, update

from craftlink.constants import (
    AUTH_CODE_LENGTH,
    AUTH_CODE_PATTERN,
    MAX_CODE_ATTEMPTS,
    MINECRAFT_USERNAME_PATTERN,
)
from craftlink.database.engine import get_session
from craftlink.database.models import PlayerRecord, PlayerSource, as_utc, utcnow
from craftlink.errors import (
    CodeSaturationError,
    DuplicateError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from craftlink.services.config_service import clamp_ttl, find_config, get_code_ttl
from craftlink.services.player_store import (
    find_by_code,
    find_by_discord,
    find_by_username,
    normalize_username,
    normalize_uuid,
    resolve_player,
)

logger = logging.getLogger(__name__)


def generate_code() -> str:
    return f"{secrets.randbelow(10 ** AUTH_CODE_LENGTH):0{AUTH_CODE_LENGTH}d}"


def _clear_code_fields(record: PlayerRecord) -> None:
    record.auth_code = None
    record.expires_at = None
    record.code_shown_at = None


# ---------------------------------------------------------------------------
# Issue
# ---------------------------------------------------------------------------

def issue(
    engine,
    guild_id: int,
    username: str,
    uuid: str | None = None,
    *,
    discord_id: int | None = None,
    discord_username: str | None = None,
    discord_display_name: str | None = None,
    ttl_seconds: int | None = None,
    shown: bool = True,
) -> str:
    """Assign a fresh code to the guild's record for *username*.

    The record is created when absent.  ``confirmed_at`` is cleared so an old
    confirmation never carries over to a new code.

    Raises
    ------
    CodeSaturationError
        No unused code was found within ``MAX_CODE_ATTEMPTS`` tries.
    """
    username = normalize_username(username)
    uuid = normalize_uuid(uuid)

    for attempt_no in range(1, MAX_CODE_ATTEMPTS + 1):
        code = generate_code()
        try:
            with get_session(engine) as session:
                if find_by_code(session, code) is not None:
                    logger.debug("Auth code already in use (attempt %d)", attempt_no)
                    continue

                record = resolve_player(session, guild_id, username, uuid)
                if record is None:
                    record = PlayerRecord(
                        guild_id=guild_id,
                        minecraft_username=username,
                        minecraft_uuid=uuid,
                        source=PlayerSource.LINKED,
                    )
                    session.add(record)

                ttl = clamp_ttl(ttl_seconds) if ttl_seconds else get_code_ttl(session, guild_id)
                now = utcnow()
                record.auth_code = code
                record.expires_at = now + timedelta(seconds=ttl)
                record.code_shown_at = now if shown else None
                record.confirmed_at = None
                if discord_id is not None:
                    record.discord_id = discord_id
                    record.discord_username = discord_username
                    record.discord_display_name = discord_display_name
        except DuplicateError:
            logger.warning(
                "Auth code collision for %s (guild %s), attempt %d",
                username, guild_id, attempt_no,
            )
            continue

        logger.info("Issued auth code for %s (guild %s, ttl=%ss)", username, guild_id, ttl)
        logger.debug("Auth code for %s: %s", username, code)
        return code

    raise CodeSaturationError("Could not generate a unique auth code. Please try again.")


def clear_expired(engine, guild_id: int, username: str) -> int:
    """Drop expired, unconfirmed codes held by *username* in the guild."""
    username = normalize_username(username)
    with get_session(engine) as session:
        result = session.execute(
            update(PlayerRecord)
            .where(
                PlayerRecord.guild_id == guild_id,
                PlayerRecord.minecraft_username == username,
                PlayerRecord.auth_code.isnot(None),
                PlayerRecord.confirmed_at.is_(None),
                PlayerRecord.expires_at <= utcnow(),
            )
            .values(auth_code=None, expires_at=None, code_shown_at=None)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.debug("Cleared %d expired code(s) for %s", result.rowcount, username)
        return result.rowcount


def mark_shown(engine, record_id: int) -> None:
    with get_session(engine) as session:
        session.execute(
            update(PlayerRecord)
            .where(PlayerRecord.id == record_id, PlayerRecord.code_shown_at.is_(None))
            .values(code_shown_at=utcnow())
            .execution_options(synchronize_session=False)
        )


# ---------------------------------------------------------------------------
# Discord-side link request
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class LinkRequest:
    """Outcome of :func:`start_link`."""

    record: PlayerRecord
    created: bool
    renamed: bool = False


def start_link(
    engine,
    guild_id: int,
    discord_id: int,
    username: str,
    *,
    discord_username: str | None = None,
    discord_display_name: str | None = None,
    ttl_seconds: int | None = None,
) -> LinkRequest:
    """Open (or reuse) a link request from ``/link-minecraft``.

    The code is issued hidden; the member sees it on their next connection
    attempt.  An active request for a different username is renamed rather
    than duplicated.

    Raises
    ------
    StateConflictError
        Linking is not enabled for the guild.
    DuplicateError
        The member already has a linked account, or the username is held by
        another Discord account.
    """
    raw_name = (username or "").strip()
    if not MINECRAFT_USERNAME_PATTERN.match(raw_name):
        raise ValidationError(
            "Minecraft usernames must be 1-16 characters: letters, numbers and underscores."
        )
    username = raw_name.lower()
    now = utcnow()

    with get_session(engine) as session:
        config = find_config(session, guild_id)
        if config is None or not config.enabled:
            raise StateConflictError("Minecraft account linking is not enabled on this server.")

        mine = find_by_discord(session, guild_id, discord_id)
        linked = next((r for r in mine if r.linked_at is not None), None)
        if linked is not None:
            raise DuplicateError(
                f"Your Discord account is already linked to {linked.minecraft_username}."
            )

        pending = next((r for r in mine if r.has_active_code(now)), None)
        if pending is not None:
            if pending.minecraft_username == username:
                return LinkRequest(record=pending, created=False)
            if find_by_username(session, guild_id, username) is not None:
                raise DuplicateError(
                    f"The Minecraft username {username} already has a record on this server."
                )
            logger.info(
                "Renaming pending link request %s: %s → %s",
                pending.id, pending.minecraft_username, username,
            )
            pending.minecraft_username = username
            pending.minecraft_uuid = None
            pending.code_shown_at = None
            return LinkRequest(record=pending, created=False, renamed=True)

        holder = find_by_username(session, guild_id, username)
        if holder is not None and holder.discord_id not in (None, discord_id):
            raise DuplicateError(
                f"The Minecraft username {username} is already linked to another Discord account."
            )
        if holder is not None and holder.revoked_at is not None:
            raise StateConflictError(
                f"{username} has been revoked on this server. Please contact staff."
            )
        if holder is not None and holder.awaiting_approval:
            raise StateConflictError(
                f"{username} is already confirmed and waiting for staff approval."
            )

        # Stale abandoned requests must not keep pointing at this member
        for stale in mine:
            if (
                stale.minecraft_username != username
                and stale.confirmed_at is None
                and stale.whitelisted_at is None
                and stale.revoked_at is None
            ):
                stale.discord_id = None
                stale.discord_username = None
                stale.discord_display_name = None
                _clear_code_fields(stale)

        ttl = get_code_ttl(session, guild_id, ttl_seconds)

    issue(
        engine,
        guild_id,
        username,
        discord_id=discord_id,
        discord_username=discord_username,
        discord_display_name=discord_display_name,
        ttl_seconds=ttl,
        shown=False,
    )
    with get_session(engine) as session:
        record = find_by_username(session, guild_id, username)
    return LinkRequest(record=record, created=True)


def request_link_code(engine, username: str, uuid: str | None) -> dict:
    """In-game ``/linkdiscord``: a code for a whitelisted, unlinked account.

    Returns the plugin contract ``{success, authCode?, error?}``.
    """
    try:
        username = normalize_username(username)
    except ValidationError as exc:
        return {"success": False, "error": exc.message}
    uuid = normalize_uuid(uuid)

    with get_session(engine) as session:
        stmt = select(PlayerRecord).where(
            PlayerRecord.whitelisted_at.isnot(None),
            PlayerRecord.revoked_at.is_(None),
        )
        if uuid:
            stmt = stmt.where(PlayerRecord.minecraft_uuid == uuid)
        else:
            stmt = stmt.where(PlayerRecord.minecraft_username == username)
        record = session.scalar(stmt.order_by(PlayerRecord.id).limit(1))
        if record is None and uuid:
            record = session.scalar(
                select(PlayerRecord)
                .where(
                    PlayerRecord.minecraft_username == username,
                    PlayerRecord.whitelisted_at.isnot(None),
                    PlayerRecord.revoked_at.is_(None),
                )
                .order_by(PlayerRecord.id)
                .limit(1)
            )

        if record is None:
            return {"success": False, "error": "You are not whitelisted on this server."}
        if record.discord_id is not None:
            return {"success": False, "error": "Your account is already linked to Discord."}
        if record.has_active_code():
            if record.code_shown_at is None:
                record.code_shown_at = utcnow()
            return {"success": True, "authCode": record.auth_code}
        guild_id = record.guild_id
        stored_username = record.minecraft_username

    code = issue(engine, guild_id, stored_username, uuid, shown=True)
    return {"success": True, "authCode": code}


# ---------------------------------------------------------------------------
# Confirm
# ---------------------------------------------------------------------------

def confirm(
    engine,
    code: str,
    discord_id: int,
    *,
    guild_id: int | None = None,
    discord_username: str | None = None,
    discord_display_name: str | None = None,
) -> PlayerRecord:
    """Bind *discord_id* to the record holding *code*.

    A fresh link moves to "awaiting approval".  An already-whitelisted
    account (in-game ``/linkdiscord``) is linked outright and its code
    fields cleared.

    Raises
    ------
    ValidationError
        *code* is not six digits.
    NotFoundError
        No record holds *code* (or it belongs to another member / guild).
    StateConflictError
        The code expired, was already confirmed, was never shown in game,
        or the record has been revoked.
    DuplicateError
        The member already has a different linked account in the guild.
    """
    code = (code or "").strip()
    if not AUTH_CODE_PATTERN.match(code):
        raise ValidationError("Auth codes are exactly 6 digits.")
    now = utcnow()

    with get_session(engine) as session:
        record = find_by_code(session, code)
        if (
            record is None
            or (guild_id is not None and record.guild_id != guild_id)
            or record.discord_id not in (None, discord_id)
        ):
            raise NotFoundError("No pending authentication found with that code.")
        if record.confirmed_at is not None:
            raise StateConflictError("This code has already been confirmed.")
        if record.revoked_at is not None:
            raise StateConflictError(
                f"{record.minecraft_username} has been revoked on this server. Please contact staff."
            )
        expires = as_utc(record.expires_at)
        if expires is None or expires <= now:
            raise StateConflictError("This code has expired. Join the server again for a new one.")
        if record.code_shown_at is None:
            raise StateConflictError(
                "Join the Minecraft server first to receive your code, then confirm it."
            )

        other = next(
            (
                r for r in find_by_discord(session, record.guild_id, discord_id)
                if r.id != record.id and r.linked_at is not None
            ),
            None,
        )
        if other is not None:
            raise DuplicateError(
                f"Your Discord account is already linked to {other.minecraft_username}."
            )

        legacy = record.is_whitelisted
        values: dict = {
            "discord_id": discord_id,
            "discord_username": discord_username,
            "discord_display_name": discord_display_name,
        }
        if legacy:
            values.update(
                linked_at=now, auth_code=None, expires_at=None,
                code_shown_at=None, confirmed_at=None,
            )
        else:
            values["confirmed_at"] = now

        result = session.execute(
            update(PlayerRecord)
            .where(
                PlayerRecord.id == record.id,
                PlayerRecord.auth_code == code,
                PlayerRecord.confirmed_at.is_(None),
                PlayerRecord.revoked_at.is_(None),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise StateConflictError("This code has already been confirmed.")

        session.refresh(record)
        logger.info(
            "Discord %s confirmed code for %s (guild %s, legacy=%s)",
            discord_id, record.minecraft_username, record.guild_id, legacy,
        )
        return record
