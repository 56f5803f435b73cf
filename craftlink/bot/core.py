"""
craftlink.bot.core — Bot Instance & Cog Loader
===============================================

Defines :class:`CraftLinkBot`, a ``commands.Bot`` subclass that:

1. Stores the shared config (``bot.cfg``) and DB engine (``bot.engine``)
   so every Cog can reach them via ``self.bot``.
2. Loads the cogs listed in :data:`EXTENSIONS`.
3. Syncs the slash-command tree on startup (guild-scoped when
   ``DEV_GUILD_ID`` is set, global otherwise).
4. Tracks fire-and-forget membership tasks so they are not garbage
   collected mid-flight and can be awaited on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Coroutine
from typing import Any

import discord
from discord.ext import commands
from sqlalchemy import Engine

from craftlink.config import CraftLinkConfig

logger = logging.getLogger(__name__)

EXTENSIONS: list[str] = [
    "craftlink.bot.cogs.membership",
    "craftlink.bot.cogs.linking",
    "craftlink.bot.cogs.admin",
]


class CraftLinkBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        The parsed :class:`CraftLinkConfig` from ``config.yaml``.
    engine:
        A SQLAlchemy :class:`Engine` connected to PostgreSQL.
    """

    def __init__(self, cfg: CraftLinkConfig, engine: Engine) -> None:
        intents = discord.Intents.default()
        intents.members = True      # Privileged: join/leave and role updates
        intents.presences = False

        super().__init__(
            command_prefix=cfg.bot_prefix,
            intents=intents,
            description=f"{cfg.community_name} — Minecraft account linking",
        )

        self.cfg = cfg
        self.engine = engine
        self._background: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task:
        """Schedule *coro* without awaiting it; the task is kept referenced."""
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load all Cog extensions; one broken Cog doesn't stop the rest."""
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        assert self.user is not None
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)

        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))

    async def close(self) -> None:
        logger.info("Bot shutting down…")
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        await super().close()
