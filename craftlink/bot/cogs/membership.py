"""
craftlink.bot.cogs.membership — Leave Revocation & Role Changes
================================================================

Feeds GUILD_MEMBER_REMOVE / GUILD_MEMBER_ADD into the leave-revocation
service and GUILD_MEMBER_UPDATE role changes into role sync.  Requires the
GUILD_MEMBERS privileged intent.

Leave and join handling is fire-and-forget: the gateway handler returns
immediately and the DB work runs as a background task.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from craftlink.database.engine import run_db
from craftlink.services.leave_service import on_member_join, on_member_leave
from craftlink.services.role_sync_service import handle_discord_role_change

if TYPE_CHECKING:
    from craftlink.bot.core import CraftLinkBot

logger = logging.getLogger(__name__)


class Membership(commands.Cog, name="Membership"):
    """Revokes and restores whitelist access as members leave and rejoin."""

    def __init__(self, bot: CraftLinkBot) -> None:
        self.bot = bot

    async def _revoke(self, guild_id: int, member_id: int) -> None:
        try:
            summary = await run_db(on_member_leave, self.bot.engine, guild_id, member_id)
            if summary.count:
                logger.info(
                    "Revoked %d whitelist record(s) for departed member %d",
                    summary.count, member_id,
                )
        except Exception:
            logger.exception("Leave revocation failed for %s", member_id)

    async def _restore(self, guild_id: int, member_id: int) -> None:
        try:
            summary = await run_db(on_member_join, self.bot.engine, guild_id, member_id)
            if summary.count:
                logger.info(
                    "Restored %d whitelist record(s) for returning member %d",
                    summary.count, member_id,
                )
        except Exception:
            logger.exception("Rejoin restore failed for %s", member_id)

    @commands.Cog.listener()
    async def on_member_remove(self, member: discord.Member) -> None:
        if member.bot:
            return
        self.bot.spawn(self._revoke(member.guild.id, member.id), name=f"leave-{member.id}")

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member) -> None:
        if member.bot:
            return
        self.bot.spawn(self._restore(member.guild.id, member.id), name=f"rejoin-{member.id}")

    @commands.Cog.listener()
    async def on_member_update(self, before: discord.Member, after: discord.Member) -> None:
        """Record role changes so the next login sees the new target groups."""
        try:
            if after.bot or {r.id for r in before.roles} == {r.id for r in after.roles}:
                return
            role_ids = [r.id for r in after.roles if r.id != after.guild.id]
            await run_db(
                handle_discord_role_change,
                self.bot.engine,
                after.guild.id,
                after.id,
                role_ids,
            )
        except Exception:
            logger.exception("Error processing role change for %s", after.id)


async def setup(bot: CraftLinkBot) -> None:
    await bot.add_cog(Membership(bot))
