"""
craftlink.api.deps — FastAPI dependency injection
==================================================

The engine and the Discord REST client are built once per process and
handed to the services explicitly.  Every Minecraft route requires an API
key carrying the route's scope; keys arrive in ``X-API-Key`` or as
``Authorization: Bearer <key>``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import Engine

from craftlink.constants import DISCORD_API_BASE
from craftlink.database.engine import create_db_engine
from craftlink.database.models import ApiKey
from craftlink.services.api_key_service import has_scope, validate_api_key
from craftlink.services.chat_platform import ChatPlatform, DiscordRestPlatform

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_chat_platform() -> ChatPlatform | None:
    """Discord REST client, or ``None`` when no bot token is configured."""
    token = os.getenv("DISCORD_TOKEN", "")
    if not token:
        logger.warning("DISCORD_TOKEN not set; role sync lookups are disabled")
        return None
    api_base = os.getenv("DISCORD_API_BASE", DISCORD_API_BASE).rstrip("/")
    return DiscordRestPlatform(token, api_base=api_base)


def _extract_key(x_api_key: str | None, authorization: str | None) -> str | None:
    if x_api_key:
        return x_api_key.strip()
    if authorization and authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1].strip()
    return None


def get_api_key(
    engine: Annotated[Engine, Depends(get_engine)],
    x_api_key: Annotated[str | None, Header()] = None,
    authorization: Annotated[str | None, Header()] = None,
) -> ApiKey:
    """Validate the caller's API key. Raises 401 if missing or invalid."""
    key = _extract_key(x_api_key, authorization)
    if not key:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing API key")
    record = validate_api_key(engine, key)
    if record is None:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid API key")
    return record


def require_scope(scope: str) -> Callable[..., ApiKey]:
    """Dependency factory: the key must grant *scope* (or ``full``)."""

    def _check(api_key: Annotated[ApiKey, Depends(get_api_key)]) -> ApiKey:
        if not has_scope(api_key.scopes, scope):
            raise HTTPException(status.HTTP_403_FORBIDDEN, f"API key lacks scope: {scope}")
        return api_key

    return _check
