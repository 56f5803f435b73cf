"""
craftlink.api.routes.connection — Game-server plugin endpoints
===============================================================

Called by the Minecraft plugin on every login and by its in-game
``/linkdiscord`` command.  Responses are the plugin's flat JSON contract,
not the dashboard envelope, and never carry internal error text.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy import Engine

from craftlink.api.deps import get_chat_platform, get_engine, require_scope
from craftlink.api.schemas import CamelModel
from craftlink.constants import SCOPE_CONNECTION
from craftlink.errors import ValidationError
from craftlink.services import auth_codes
from craftlink.services.chat_platform import ChatPlatform
from craftlink.services.connection_service import (
    ConnectionAttempt,
    handle_connection_attempt,
    storage_failure_response,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/minecraft",
    tags=["minecraft"],
    dependencies=[Depends(require_scope(SCOPE_CONNECTION))],
)


class ConnectionAttemptBody(CamelModel):
    username: str | None = None
    uuid: str | None = None
    ip: str | None = None
    server_ip: str | None = None
    currently_whitelisted: bool = False
    current_groups: list[str] = []


class LinkCodeBody(CamelModel):
    username: str | None = None
    uuid: str | None = None


@router.post("/connection-attempt")
def connection_attempt(
    body: ConnectionAttemptBody,
    engine: Annotated[Engine, Depends(get_engine)],
    platform: Annotated[ChatPlatform | None, Depends(get_chat_platform)],
):
    attempt = ConnectionAttempt(
        username=body.username or "",
        uuid=body.uuid or "",
        ip=body.ip or "",
        server_ip=body.server_ip,
        currently_whitelisted=body.currently_whitelisted,
        current_groups=body.current_groups,
    )
    try:
        response = handle_connection_attempt(engine, attempt, platform)
    except ValidationError:
        raise
    except Exception:
        logger.exception("Unhandled error in connection attempt for %s", body.username)
        response = storage_failure_response()
    return response.to_wire()


@router.post("/request-link-code")
def request_link_code(
    body: LinkCodeBody,
    engine: Annotated[Engine, Depends(get_engine)],
):
    if not body.username or not body.uuid:
        raise ValidationError("username and uuid are required.")
    return auth_codes.request_link_code(engine, body.username, body.uuid)
