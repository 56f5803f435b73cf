"""
craftlink.bot.cogs.linking — Member Linking Commands
=====================================================

Slash commands members use to link a Minecraft account:
- /link-minecraft — open a link request for a username
- /confirm-code — confirm the 6-digit code shown in game
- /minecraft-status — show this member's linked accounts

Every reply is ephemeral.  Service errors arrive as
:class:`~craftlink.errors.CraftLinkError` and are shown verbatim.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from craftlink.constants import DEFAULT_SERVER_PORT
from craftlink.database.engine import run_db
from craftlink.errors import CraftLinkError
from craftlink.services import auth_codes
from craftlink.services.config_service import get_config
from craftlink.services.player_store import get_players_for_discord

if TYPE_CHECKING:
    from craftlink.bot.core import CraftLinkBot

logger = logging.getLogger(__name__)


class Linking(commands.Cog, name="Linking"):
    """Minecraft ↔ Discord account linking."""

    def __init__(self, bot: CraftLinkBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # /link-minecraft
    # -------------------------------------------------------------------
    @app_commands.command(
        name="link-minecraft", description="Link your Minecraft account to Discord."
    )
    @app_commands.describe(username="Your Minecraft username (case-insensitive)")
    @app_commands.guild_only()
    async def link_minecraft(self, interaction: discord.Interaction, username: str) -> None:
        assert interaction.guild is not None
        user = interaction.user
        try:
            request = await run_db(
                auth_codes.start_link,
                self.bot.engine,
                interaction.guild.id,
                user.id,
                username,
                discord_username=user.name,
                discord_display_name=user.display_name,
                ttl_seconds=self.bot.cfg.default_code_ttl_seconds,
            )
            config = await run_db(get_config, self.bot.engine, interaction.guild.id)
        except CraftLinkError as exc:
            await interaction.response.send_message(f"❌ {exc.message}", ephemeral=True)
            return

        record = request.record
        server = ""
        if config is not None and config.server_host:
            server = f" **{config.server_host}"
            if config.server_port and config.server_port != DEFAULT_SERVER_PORT:
                server += f":{config.server_port}"
            server += "**"

        embed = discord.Embed(
            title="🔗 Link request created" if request.created else "🔗 Link request updated",
            description=(
                f"Join the Minecraft server{server} as **{record.minecraft_username}**.\n"
                "You'll be shown a 6-digit code; confirm it here with `/confirm-code`."
            ),
            color=discord.Color.blurple(),
        )
        if request.renamed:
            embed.set_footer(text="Your previous pending request was moved to this username.")
        await interaction.response.send_message(embed=embed, ephemeral=True)

    # -------------------------------------------------------------------
    # /confirm-code
    # -------------------------------------------------------------------
    @app_commands.command(
        name="confirm-code", description="Confirm the code shown when you joined the server."
    )
    @app_commands.describe(code="The 6-digit code shown in Minecraft")
    @app_commands.guild_only()
    async def confirm_code(self, interaction: discord.Interaction, code: str) -> None:
        assert interaction.guild is not None
        user = interaction.user
        try:
            record = await run_db(
                auth_codes.confirm,
                self.bot.engine,
                code,
                user.id,
                guild_id=interaction.guild.id,
                discord_username=user.name,
                discord_display_name=user.display_name,
            )
        except CraftLinkError as exc:
            await interaction.response.send_message(f"❌ {exc.message}", ephemeral=True)
            return

        if record.is_whitelisted:
            message = (
                f"✅ **{record.minecraft_username}** is now linked to your Discord account."
            )
        else:
            message = (
                f"✅ Code confirmed for **{record.minecraft_username}**.\n"
                "Staff will review your request; you can join once you're approved."
            )
        logger.info("Member %s confirmed code for %s", user.id, record.minecraft_username)
        await interaction.response.send_message(message, ephemeral=True)

    # -------------------------------------------------------------------
    # /minecraft-status
    # -------------------------------------------------------------------
    @app_commands.command(
        name="minecraft-status", description="Show your linked Minecraft accounts."
    )
    @app_commands.guild_only()
    async def minecraft_status(self, interaction: discord.Interaction) -> None:
        assert interaction.guild is not None
        records = await run_db(
            get_players_for_discord, self.bot.engine, interaction.guild.id, interaction.user.id
        )
        if not records:
            await interaction.response.send_message(
                "You have no Minecraft accounts on this server. Use `/link-minecraft` to start.",
                ephemeral=True,
            )
            return

        embed = discord.Embed(title="⛏️ Your Minecraft accounts", color=discord.Color.green())
        for record in records:
            status = record.whitelist_status.value
            if record.awaiting_approval:
                status = "awaiting approval"
            elif record.has_active_code():
                status = "waiting for code confirmation"
            embed.add_field(name=record.minecraft_username, value=status, inline=False)
        await interaction.response.send_message(embed=embed, ephemeral=True)


async def setup(bot: CraftLinkBot) -> None:
    await bot.add_cog(Linking(bot))
