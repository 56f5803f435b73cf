"""
craftlink.api.routes.players — Staff dashboard endpoints
=========================================================

Approval queue, player management, whitelist import and role-sync tools.
All responses use the ``{success, data}`` envelope; failures are rendered
by the :class:`~craftlink.errors.CraftLinkError` handler in ``main``.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from craftlink.api.deps import get_chat_platform, get_engine, require_scope
from craftlink.api.schemas import CamelModel, ok
from craftlink.constants import BULK_APPROVE_DEFAULT, SCOPE_ADMIN, SCOPE_READ, SCOPE_WRITE
from craftlink.errors import UpstreamError, ValidationError
from craftlink.services import (
    approval_service,
    import_service,
    player_admin_service,
    player_store,
    role_sync_service,
)
from craftlink.services.chat_platform import ChatPlatform

router = APIRouter(prefix="/minecraft", tags=["minecraft-staff"])

EngineDep = Annotated[Engine, Depends(get_engine)]


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ApproveBody(CamelModel):
    staff_member_id: str | None = None
    notes: str | None = None


class RejectBody(CamelModel):
    staff_member_id: str | None = None
    reason: str | None = None


class BulkApproveBody(CamelModel):
    count: int = BULK_APPROVE_DEFAULT
    staff_member_id: str | None = None


class ManualPlayerBody(CamelModel):
    minecraft_username: str | None = None
    minecraft_uuid: str | None = None
    discord_id: int | None = None
    staff_member_id: str | None = None
    notes: str | None = None


class PlayerUpdateBody(CamelModel):
    minecraft_username: str | None = None
    minecraft_uuid: str | None = None
    discord_id: int | None = None
    notes: str | None = None
    role_sync_enabled: bool | None = None


class WhitelistBody(CamelModel):
    staff_member_id: str | None = None
    notes: str | None = None
    reason: str | None = None


class WhitelistEntry(CamelModel):
    uuid: str | None = None
    name: str | None = None


class ImportBody(CamelModel):
    method: str = "json"
    players: list[WhitelistEntry] | None = None
    text: str | None = None
    staff_member_id: str | None = None


# ---------------------------------------------------------------------------
# Approval queue
# ---------------------------------------------------------------------------
@router.get("/{guild_id}/pending", dependencies=[Depends(require_scope(SCOPE_READ))])
def list_pending(guild_id: int, engine: EngineDep):
    records = approval_service.list_pending(engine, guild_id)
    return ok([player_store.player_to_dict(r) for r in records])


@router.post(
    "/{guild_id}/approve/{auth_id}", dependencies=[Depends(require_scope(SCOPE_WRITE))]
)
def approve(guild_id: int, auth_id: int, body: ApproveBody, engine: EngineDep):
    record = approval_service.approve(
        engine, guild_id, auth_id, body.staff_member_id or "", body.notes
    )
    return ok(player_store.player_to_dict(record))


@router.post(
    "/{guild_id}/reject/{auth_id}", dependencies=[Depends(require_scope(SCOPE_WRITE))]
)
def reject(guild_id: int, auth_id: int, body: RejectBody, engine: EngineDep):
    record = approval_service.reject(
        engine, guild_id, auth_id, body.staff_member_id or "", body.reason or ""
    )
    return ok(player_store.player_to_dict(record))


@router.post("/{guild_id}/bulk-approve", dependencies=[Depends(require_scope(SCOPE_ADMIN))])
def bulk_approve(guild_id: int, body: BulkApproveBody, engine: EngineDep):
    return ok(
        approval_service.bulk_approve(engine, guild_id, body.count, body.staff_member_id or "")
    )


# ---------------------------------------------------------------------------
# Players
# ---------------------------------------------------------------------------
@router.get("/{guild_id}/players", dependencies=[Depends(require_scope(SCOPE_READ))])
def list_players(
    guild_id: int,
    engine: EngineDep,
    status: str | None = None,
    search: str | None = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    records = player_store.list_players(
        engine, guild_id, status=status, search=search, limit=limit, offset=offset
    )
    return ok([player_store.player_to_dict(r) for r in records])


@router.post("/{guild_id}/players/manual", dependencies=[Depends(require_scope(SCOPE_ADMIN))])
def create_manual_player(guild_id: int, body: ManualPlayerBody, engine: EngineDep):
    if not body.minecraft_username or body.discord_id is None or not body.staff_member_id:
        raise ValidationError("minecraftUsername, discordId and staffMemberId are required.")
    record = player_admin_service.create_manual_player(
        engine,
        guild_id,
        username=body.minecraft_username,
        uuid=body.minecraft_uuid,
        discord_id=body.discord_id,
        staff_id=body.staff_member_id,
        notes=body.notes,
    )
    return ok(player_store.player_to_dict(record))


@router.put("/{guild_id}/players/{player_id}", dependencies=[Depends(require_scope(SCOPE_ADMIN))])
def update_player(guild_id: int, player_id: int, body: PlayerUpdateBody, engine: EngineDep):
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("No changes supplied.")
    record = player_admin_service.update_player(engine, guild_id, player_id, changes)
    return ok(player_store.player_to_dict(record))


@router.post(
    "/{guild_id}/players/{player_id}/whitelist",
    dependencies=[Depends(require_scope(SCOPE_WRITE))],
)
def whitelist_player(guild_id: int, player_id: int, body: WhitelistBody, engine: EngineDep):
    record = player_admin_service.whitelist_player(
        engine, guild_id, player_id, body.staff_member_id or "", body.notes
    )
    return ok(player_store.player_to_dict(record))


@router.post(
    "/{guild_id}/players/{player_id}/unwhitelist",
    dependencies=[Depends(require_scope(SCOPE_WRITE))],
)
def unwhitelist_player(guild_id: int, player_id: int, body: WhitelistBody, engine: EngineDep):
    record = player_admin_service.unwhitelist_player(
        engine, guild_id, player_id, body.staff_member_id or "", body.reason, body.notes
    )
    return ok(player_store.player_to_dict(record))


@router.post("/{guild_id}/import-whitelist", dependencies=[Depends(require_scope(SCOPE_ADMIN))])
def import_whitelist(guild_id: int, body: ImportBody, engine: EngineDep):
    if body.method == "text":
        summary = import_service.import_whitelist(
            engine, guild_id, text=body.text or "", staff_id=body.staff_member_id
        )
    else:
        if body.players is None:
            raise ValidationError(
                "Invalid whitelist format. Expected a players array or method='text'."
            )
        summary = import_service.import_whitelist(
            engine,
            guild_id,
            entries=[p.model_dump() for p in body.players],
            staff_id=body.staff_member_id,
        )
    return ok(summary)


# ---------------------------------------------------------------------------
# Role sync
# ---------------------------------------------------------------------------
@router.post(
    "/{guild_id}/players/{player_id}/role-sync",
    dependencies=[Depends(require_scope(SCOPE_ADMIN))],
)
def trigger_role_sync(
    guild_id: int,
    player_id: int,
    engine: EngineDep,
    platform: Annotated[ChatPlatform | None, Depends(get_chat_platform)],
):
    if platform is None:
        raise UpstreamError("Discord is not configured for role lookups.")
    result = role_sync_service.trigger_manual_sync(engine, platform, guild_id, player_id)
    return ok({
        **result.to_wire(),
        "operation": result.operation.to_dict() if result.operation else None,
    })


@router.get("/{guild_id}/role-sync/logs", dependencies=[Depends(require_scope(SCOPE_READ))])
def role_sync_logs(
    guild_id: int,
    engine: EngineDep,
    limit: int = Query(50, ge=1, le=500),
    player_id: int | None = Query(None, alias="playerId"),
):
    rows = role_sync_service.get_role_sync_logs(engine, guild_id, limit, player_id)
    return ok([role_sync_service.log_to_dict(r) for r in rows])
