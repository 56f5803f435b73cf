"""
craftlink.bot.cogs.admin — Staff Slash Commands
================================================

Discord slash commands for staff:
- /whitelist pending | approve | reject — work the approval queue
- /api-key create | revoke | list — manage dashboard & plugin API keys

All commands require the configured admin_role_id.  Freshly created API
keys are shown exactly once, ephemerally.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from craftlink.constants import SCOPE_CONNECTION, VALID_SCOPES
from craftlink.database.engine import run_db
from craftlink.errors import CraftLinkError
from craftlink.services import api_key_service, approval_service

if TYPE_CHECKING:
    from craftlink.bot.core import CraftLinkBot

logger = logging.getLogger(__name__)

PENDING_PAGE_SIZE = 15


def is_admin():
    """Decorator that checks if the user has the configured admin role."""
    async def predicate(interaction: discord.Interaction) -> bool:
        bot: CraftLinkBot = interaction.client  # type: ignore[assignment]
        if not interaction.user or not hasattr(interaction.user, "roles"):
            return False
        admin_role_id = bot.cfg.admin_role_id
        return any(role.id == admin_role_id for role in interaction.user.roles)
    return app_commands.check(predicate)


class Admin(commands.Cog, name="Admin"):
    """Approval queue and API key administration."""

    whitelist = app_commands.Group(
        name="whitelist", description="Review Minecraft whitelist requests.", guild_only=True
    )
    api_key = app_commands.Group(
        name="api-key", description="Manage CraftLink API keys.", guild_only=True
    )

    def __init__(self, bot: CraftLinkBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # /whitelist …
    # -------------------------------------------------------------------
    @whitelist.command(name="pending", description="List requests awaiting approval.")
    @is_admin()
    async def whitelist_pending(self, interaction: discord.Interaction) -> None:
        assert interaction.guild is not None
        records = await run_db(
            approval_service.list_pending, self.bot.engine, interaction.guild.id, PENDING_PAGE_SIZE
        )
        if not records:
            await interaction.response.send_message("📭 No pending requests.", ephemeral=True)
            return

        lines = [
            f"`#{r.id}` **{r.minecraft_username}** — <@{r.discord_id}>"
            for r in records
        ]
        embed = discord.Embed(
            title="⏳ Awaiting approval",
            description="\n".join(lines),
            color=discord.Color.orange(),
        )
        embed.set_footer(text="Oldest confirmation first")
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @whitelist.command(name="approve", description="Approve a confirmed link request.")
    @app_commands.describe(request_id="The request number from /whitelist pending", notes="Optional notes")
    @is_admin()
    async def whitelist_approve(
        self, interaction: discord.Interaction, request_id: int, notes: str | None = None
    ) -> None:
        assert interaction.guild is not None
        try:
            record = await run_db(
                approval_service.approve,
                self.bot.engine,
                interaction.guild.id,
                request_id,
                str(interaction.user.id),
                notes,
            )
        except CraftLinkError as exc:
            await interaction.response.send_message(f"❌ {exc.message}", ephemeral=True)
            return
        await interaction.response.send_message(
            f"✅ Approved **{record.minecraft_username}**.", ephemeral=True
        )

    @whitelist.command(name="reject", description="Reject a confirmed link request.")
    @app_commands.describe(request_id="The request number from /whitelist pending", reason="Shown to the player")
    @is_admin()
    async def whitelist_reject(
        self, interaction: discord.Interaction, request_id: int, reason: str
    ) -> None:
        assert interaction.guild is not None
        try:
            record = await run_db(
                approval_service.reject,
                self.bot.engine,
                interaction.guild.id,
                request_id,
                str(interaction.user.id),
                reason,
            )
        except CraftLinkError as exc:
            await interaction.response.send_message(f"❌ {exc.message}", ephemeral=True)
            return
        await interaction.response.send_message(
            f"🚫 Rejected **{record.minecraft_username}**.", ephemeral=True
        )

    # -------------------------------------------------------------------
    # /api-key …
    # -------------------------------------------------------------------
    @api_key.command(name="create", description="Create an API key (shown once).")
    @app_commands.describe(
        name="A label for the key, e.g. 'survival-plugin'",
        scopes=f"Comma-separated scopes (default {SCOPE_CONNECTION})",
        expires_in_days="Optional lifetime in days",
    )
    @is_admin()
    async def api_key_create(
        self,
        interaction: discord.Interaction,
        name: str,
        scopes: str = SCOPE_CONNECTION,
        expires_in_days: int | None = None,
    ) -> None:
        requested = [s.strip() for s in scopes.split(",") if s.strip()]
        try:
            created = await run_db(
                api_key_service.create_api_key,
                self.bot.engine,
                name=name,
                scopes=requested,
                created_by=str(interaction.user.id),
                expires_in_days=expires_in_days,
            )
        except CraftLinkError as exc:
            await interaction.response.send_message(
                f"❌ {exc.message}\nValid scopes: {', '.join(sorted(VALID_SCOPES))}",
                ephemeral=True,
            )
            return

        embed = discord.Embed(
            title="🔑 API key created",
            description=f"```\n{created.key}\n```\nCopy it now; it will not be shown again.",
            color=discord.Color.gold(),
        )
        embed.add_field(name="Key ID", value=created.record.key_id, inline=True)
        embed.add_field(name="Scopes", value=", ".join(created.record.scopes), inline=True)
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @api_key.command(name="revoke", description="Revoke an API key by its key ID.")
    @app_commands.describe(key_id="The key ID shown by /api-key list")
    @is_admin()
    async def api_key_revoke(self, interaction: discord.Interaction, key_id: str) -> None:
        try:
            await run_db(api_key_service.revoke_api_key, self.bot.engine, key_id)
        except CraftLinkError as exc:
            await interaction.response.send_message(f"❌ {exc.message}", ephemeral=True)
            return
        await interaction.response.send_message(f"🗑️ Revoked key `{key_id}`.", ephemeral=True)

    @api_key.command(name="list", description="List API keys.")
    @is_admin()
    async def api_key_list(self, interaction: discord.Interaction) -> None:
        keys = await run_db(api_key_service.list_api_keys, self.bot.engine)
        if not keys:
            await interaction.response.send_message("No API keys yet.", ephemeral=True)
            return
        lines = []
        for key in keys:
            state = "active" if key.is_active else "revoked"
            lines.append(f"`{key.key_id}` **{key.name}** ({', '.join(key.scopes)}) — {state}")
        await interaction.response.send_message("\n".join(lines), ephemeral=True)

    # -------------------------------------------------------------------
    # Error handler for missing admin role
    # -------------------------------------------------------------------
    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        if isinstance(error, app_commands.CheckFailure):
            await interaction.response.send_message(
                "🔒 You need the Admin role to use this command.",
                ephemeral=True,
            )
        else:
            raise error


async def setup(bot: CraftLinkBot) -> None:
    await bot.add_cog(Admin(bot))
