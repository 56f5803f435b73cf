"""
craftlink.api.routes.config — Per-guild link configuration
===========================================================
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy import Engine

from craftlink.api.deps import get_engine, require_scope
from craftlink.api.schemas import CamelModel, ok
from craftlink.constants import SCOPE_READ, SCOPE_WRITE
from craftlink.services import config_service

router = APIRouter(prefix="/minecraft", tags=["minecraft-config"])


class RoleMappingBody(CamelModel):
    role_id: int | str
    group: str
    role_name: str | None = None
    enabled: bool = True


class ConfigUpdate(CamelModel):
    enabled: bool | None = None
    server_host: str | None = None
    server_port: int | None = None
    auth_code_ttl_seconds: int | None = None
    auth_success_message: str | None = None
    auth_pending_message: str | None = None
    auth_rejection_message: str | None = None
    application_rejection_message: str | None = None
    leave_revocation_message: str | None = None
    role_sync_enabled: bool | None = None
    leave_revocation_enabled: bool | None = None
    role_mappings: list[RoleMappingBody] | None = None


@router.get("/{guild_id}/config", dependencies=[Depends(require_scope(SCOPE_READ))])
def get_config(guild_id: int, engine: Annotated[Engine, Depends(get_engine)]):
    config = config_service.get_config(engine, guild_id)
    return ok(config_service.config_to_dict(config, guild_id))


@router.put("/{guild_id}/config", dependencies=[Depends(require_scope(SCOPE_WRITE))])
def update_config(
    guild_id: int, body: ConfigUpdate, engine: Annotated[Engine, Depends(get_engine)]
):
    updates = body.model_dump(exclude_unset=True, exclude={"role_mappings"})
    mappings = None
    if body.role_mappings is not None:
        mappings = [m.model_dump() for m in body.role_mappings]
    config = config_service.upsert_config(engine, guild_id, updates, role_mappings=mappings)
    return ok(config_service.config_to_dict(config))
