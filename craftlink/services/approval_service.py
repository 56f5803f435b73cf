"""
craftlink.services.approval_service — Staff Approval Workflow
==============================================================

Once a member confirms their code the record waits for staff.  Approve and
reject are conditional updates guarded on the exact prior state
(``confirmed_at`` set, not yet linked, not revoked), so a second or
concurrent decision on the same record matches zero rows and fails with
:class:`StateConflictError` instead of silently "succeeding" twice.
"""

from __future__ import annotations

import logging

from sqlalchemy import select, update

from craftlink.constants import BULK_APPROVE_MAX, BULK_APPROVE_MIN
from craftlink.database.engine import get_session
from craftlink.database.models import PlayerRecord, RevocationReason, utcnow
from craftlink.errors import (
    CraftLinkError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_CLEARED_AUTH_FIELDS = {
    "auth_code": None,
    "expires_at": None,
    "code_shown_at": None,
    "confirmed_at": None,
}


def _awaiting_approval(guild_id: int, auth_id: int):
    return (
        PlayerRecord.id == auth_id,
        PlayerRecord.guild_id == guild_id,
        PlayerRecord.confirmed_at.isnot(None),
        PlayerRecord.linked_at.is_(None),
        PlayerRecord.revoked_at.is_(None),
    )


def _conflict_or_missing(session, guild_id: int, auth_id: int, verb: str) -> CraftLinkError:
    record = session.get(PlayerRecord, auth_id)
    if record is None or record.guild_id != guild_id:
        return NotFoundError(f"Pending request {auth_id} not found.")
    if record.confirmed_at is None and record.linked_at is None and record.revoked_at is None:
        return StateConflictError(f"Cannot {verb}: the auth code has not been confirmed.")
    return StateConflictError(f"Cannot {verb}: the request was already processed.")


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def list_pending(engine, guild_id: int, limit: int | None = None) -> list[PlayerRecord]:
    """Confirmed, unlinked, unrevoked records, oldest confirmation first."""
    stmt = (
        select(PlayerRecord)
        .where(
            PlayerRecord.guild_id == guild_id,
            PlayerRecord.confirmed_at.isnot(None),
            PlayerRecord.linked_at.is_(None),
            PlayerRecord.revoked_at.is_(None),
        )
        .order_by(PlayerRecord.confirmed_at, PlayerRecord.created_at, PlayerRecord.id)
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    with get_session(engine) as session:
        return list(session.scalars(stmt).all())


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------

def approve(
    engine, guild_id: int, auth_id: int, staff_id: str, notes: str | None = None
) -> PlayerRecord:
    """Whitelist a confirmed request.

    Raises
    ------
    NotFoundError
        No such record in the guild.
    StateConflictError
        The record is not awaiting approval (unconfirmed or already decided).
    """
    if not staff_id:
        raise ValidationError("staffMemberId is required.")
    now = utcnow()
    values = {
        "linked_at": now,
        "whitelisted_at": now,
        "approved_by": str(staff_id),
        **_CLEARED_AUTH_FIELDS,
    }
    if notes:
        values["notes"] = notes

    with get_session(engine) as session:
        result = session.execute(
            update(PlayerRecord)
            .where(*_awaiting_approval(guild_id, auth_id))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise _conflict_or_missing(session, guild_id, auth_id, "approve")
        record = session.get(PlayerRecord, auth_id)
        session.refresh(record)

    logger.info(
        "Staff %s approved %s (guild %s)", staff_id, record.minecraft_username, guild_id
    )
    return record


def reject(
    engine, guild_id: int, auth_id: int, staff_id: str, reason: str
) -> PlayerRecord:
    """Refuse a confirmed request.  The record is kept, marked revoked."""
    if not staff_id:
        raise ValidationError("staffMemberId is required.")
    if not (reason or "").strip():
        raise ValidationError("A rejection reason is required.")

    with get_session(engine) as session:
        result = session.execute(
            update(PlayerRecord)
            .where(*_awaiting_approval(guild_id, auth_id))
            .values(
                revoked_at=utcnow(),
                revoked_by=str(staff_id),
                rejection_reason=reason.strip(),
                revocation_reason=RevocationReason.STAFF_ACTION,
                **_CLEARED_AUTH_FIELDS,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise _conflict_or_missing(session, guild_id, auth_id, "reject")
        record = session.get(PlayerRecord, auth_id)
        session.refresh(record)

    logger.info(
        "Staff %s rejected %s (guild %s): %s",
        staff_id, record.minecraft_username, guild_id, reason,
    )
    return record


def bulk_approve(engine, guild_id: int, count: int, staff_id: str) -> dict:
    """Approve the *count* oldest confirmed requests, each independently.

    Returns the staff-dashboard summary
    ``{approved, totalFound, totalRequested, approvedPlayers, errors}``.
    """
    if not staff_id:
        raise ValidationError("staffMemberId is required.")
    try:
        count = int(count)
    except (TypeError, ValueError):
        raise ValidationError("count must be an integer.") from None
    if not BULK_APPROVE_MIN <= count <= BULK_APPROVE_MAX:
        raise ValidationError(
            f"count must be between {BULK_APPROVE_MIN} and {BULK_APPROVE_MAX}."
        )

    pending = list_pending(engine, guild_id, limit=count)
    approved: list[str] = []
    errors: list[dict] = []
    for record in pending:
        try:
            approve(engine, guild_id, record.id, staff_id, notes="Bulk approved")
        except CraftLinkError as exc:
            logger.warning("Bulk approve skipped %s: %s", record.minecraft_username, exc)
            errors.append({"username": record.minecraft_username, "error": exc.message})
            continue
        approved.append(record.minecraft_username)

    logger.info(
        "Staff %s bulk-approved %d/%d request(s) in guild %s",
        staff_id, len(approved), len(pending), guild_id,
    )
    return {
        "approved": len(approved),
        "totalFound": len(pending),
        "totalRequested": count,
        "approvedPlayers": approved,
        "errors": errors,
    }
