"""
craftlink.services.chat_platform — Discord Member Lookups
==========================================================

Role sync needs a member's *live* Discord roles.  The HTTP API has no
gateway connection, so it asks Discord's REST API with the bot token.

Anything with a ``get_member_roles(guild_id, discord_id)`` method satisfies
:class:`ChatPlatform`; tests pass a ``MagicMock``.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from craftlink.constants import DISCORD_API_BASE
from craftlink.errors import UpstreamError

logger = logging.getLogger(__name__)


class ChatPlatform(Protocol):
    def get_member_roles(self, guild_id: int, discord_id: int) -> list[str] | None:
        """Role ids the member holds, or ``None`` if they are not in the guild."""
        ...


class DiscordRestPlatform:
    """Synchronous Discord REST client authenticated as the bot."""

    def __init__(
        self,
        token: str,
        *,
        api_base: str = DISCORD_API_BASE,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=api_base,
            headers={"Authorization": f"Bot {token}"},
            timeout=timeout,
            transport=transport or httpx.HTTPTransport(retries=1),
        )

    def close(self) -> None:
        self._client.close()

    def get_member_roles(self, guild_id: int, discord_id: int) -> list[str] | None:
        try:
            resp = self._client.get(f"/guilds/{guild_id}/members/{discord_id}")
        except httpx.HTTPError as exc:
            logger.warning("Discord member lookup failed for %s: %s", discord_id, exc)
            raise UpstreamError("Could not reach Discord.") from exc

        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            logger.warning(
                "Discord member lookup for %s returned %s: %s",
                discord_id, resp.status_code, resp.text[:200],
            )
            raise UpstreamError("Discord member lookup failed.")

        # @everyone shares the guild's id and is implicit for every member
        everyone = str(guild_id)
        return [r for r in resp.json().get("roles", []) if str(r) != everyone]
