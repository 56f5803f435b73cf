"""
craftlink.services.import_service — Whitelist Import
=====================================================

Seeds a guild from an existing server whitelist, either the server's
``whitelist.json`` (``[{"uuid": ..., "name": ...}]``) or a pasted list of
usernames separated by newlines or commas.  Imported records are
whitelisted immediately and carry no Discord link; their owners link later
with the in-game ``/linkdiscord`` flow.
"""

from __future__ import annotations

import logging
import re

from craftlink.constants import MINECRAFT_USERNAME_PATTERN, MINECRAFT_UUID_PATTERN
from craftlink.database.engine import get_session
from craftlink.database.models import PlayerRecord, PlayerSource, utcnow
from craftlink.errors import CraftLinkError, ValidationError
from craftlink.services.player_store import resolve_player

logger = logging.getLogger(__name__)

_SEPARATORS = re.compile(r"[\n,]+")


def parse_text_usernames(text: str) -> list[str]:
    names = []
    for raw in _SEPARATORS.split(text or ""):
        name = raw.strip()
        if name and MINECRAFT_USERNAME_PATTERN.match(name):
            names.append(name.lower())
    return list(dict.fromkeys(names))


def _import_one(engine, guild_id: int, username: str, uuid: str | None, source: str) -> dict:
    with get_session(engine) as session:
        record = resolve_player(session, guild_id, username, uuid)
        if record is None:
            record = PlayerRecord(
                guild_id=guild_id,
                minecraft_username=username,
                minecraft_uuid=uuid,
                source=source,
                whitelisted_at=utcnow(),
                notes="Imported from server whitelist",
            )
            session.add(record)
            session.flush()
            return {"username": username, "action": "created", "playerId": record.id}

        if record.revoked_at is not None:
            return {"username": username, "action": "skipped", "reason": "revoked"}
        if record.whitelisted_at is not None:
            return {"username": username, "action": "skipped", "reason": "already whitelisted"}
        record.whitelisted_at = utcnow()
        return {"username": username, "action": "updated", "playerId": record.id}


def import_whitelist(
    engine,
    guild_id: int,
    *,
    entries: list[dict] | None = None,
    text: str | None = None,
    staff_id: str | None = None,
) -> dict:
    """Import *entries* (whitelist.json rows) or *text* (username list).

    Each player is imported in its own transaction; one bad row never aborts
    the batch.
    """
    candidates: list[tuple[str, str | None]] = []
    error_details: list[str] = []

    if text is not None:
        source = PlayerSource.MANUAL
        candidates = [(name, None) for name in parse_text_usernames(text)]
        if not candidates:
            raise ValidationError("No valid Minecraft usernames found in the provided text.")
        total = len(candidates)
    elif entries is not None:
        source = PlayerSource.IMPORTED
        total = len(entries)
        for entry in entries:
            name = str(entry.get("name") or "").strip()
            uuid = str(entry.get("uuid") or "").strip().lower()
            if not name or not uuid:
                error_details.append(f"Invalid player entry: missing name or uuid - {entry}")
                continue
            if not MINECRAFT_USERNAME_PATTERN.match(name) or not MINECRAFT_UUID_PATTERN.match(uuid):
                error_details.append(f"Invalid player entry: bad name or uuid - {entry}")
                continue
            candidates.append((name.lower(), uuid))
    else:
        raise ValidationError("Provide either whitelist entries or a text list of usernames.")

    counts = {"created": 0, "updated": 0, "skipped": 0}
    processed: list[dict] = []
    for username, uuid in candidates:
        try:
            outcome = _import_one(engine, guild_id, username, uuid, source)
        except CraftLinkError as exc:
            error_details.append(f"Failed to import {username}: {exc.message}")
            processed.append({"username": username, "action": "error", "error": exc.message})
            continue
        counts[outcome["action"]] += 1
        processed.append(outcome)

    logger.info(
        "Whitelist import for guild %s by %s: %d created, %d updated, %d skipped, %d error(s)",
        guild_id, staff_id or "unknown", counts["created"], counts["updated"],
        counts["skipped"], len(error_details),
    )
    return {
        "totalProcessed": total,
        "imported": counts["created"],
        "updated": counts["updated"],
        "skipped": counts["skipped"],
        "errors": len(error_details),
        "errorDetails": error_details,
        "processedPlayers": processed,
    }
