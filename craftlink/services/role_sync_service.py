"""
craftlink.services.role_sync_service — Role Sync Orchestration
===============================================================

Wraps the pure :mod:`craftlink.engine.role_sync` functions with the I/O
they need: the guild's mappings, the player's Discord link, the member's
live roles from the chat platform, and the ``role_sync_logs`` journal.

Role sync is advisory.  The result rides along in the connection-attempt
response and the game-server plugin applies it; nothing is pushed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import select

from craftlink.database.engine import get_session
from craftlink.database.models import PlayerRecord, RoleSyncLog, SyncTrigger, utcnow
from craftlink.engine.role_sync import RoleRule, diff, managed_groups, target_groups
from craftlink.errors import CraftLinkError, NotFoundError, StateConflictError
from craftlink.services.chat_platform import ChatPlatform
from craftlink.services.config_service import find_config
from craftlink.services.player_store import to_iso, to_snowflake

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------
@dataclass
class RoleSyncOperation:
    """A non-empty diff, ready to be journaled."""

    player_id: int
    minecraft_username: str
    discord_id: int | None
    trigger: str
    discord_roles_before: list[str]
    discord_roles_after: list[str]
    groups_before: list[str]
    groups_after: list[str]
    groups_added: list[str]
    groups_removed: list[str]

    def to_dict(self) -> dict:
        return {
            "playerId": self.player_id,
            "minecraftUsername": self.minecraft_username,
            "discordId": to_snowflake(self.discord_id),
            "trigger": self.trigger,
            "discordRolesBefore": self.discord_roles_before,
            "discordRolesAfter": self.discord_roles_after,
            "groupsBefore": self.groups_before,
            "groupsAfter": self.groups_after,
            "groupsAdded": self.groups_added,
            "groupsRemoved": self.groups_removed,
        }


@dataclass
class RoleSyncResult:
    enabled: bool
    target_groups: list[str] = field(default_factory=list)
    managed_groups: list[str] = field(default_factory=list)
    operation: RoleSyncOperation | None = None

    def to_wire(self) -> dict:
        return {
            "enabled": self.enabled,
            "targetGroups": self.target_groups,
            "managedGroups": self.managed_groups,
        }



# ---------------------------------------------------------------------------
# Calculation
# ---------------------------------------------------------------------------

def calculate_role_sync(
    engine,
    platform: ChatPlatform,
    guild_id: int,
    player_id: int,
    current_groups: list[str] | None,
    trigger: str = SyncTrigger.LOGIN,
) -> RoleSyncResult:
    """Work out which groups *player_id* should hold.

    Disabled (no-op) unless the guild and the player both have role sync on
    and the player is linked to a Discord account.  Only groups that some
    enabled mapping manages take part in the diff.

    Raises
    ------
    NotFoundError
        The player does not exist in the guild.
    UpstreamError
        The chat platform could not be queried.
    """
    with get_session(engine) as session:
        config = find_config(session, guild_id)
        if config is None or not config.role_sync_enabled:
            return RoleSyncResult(enabled=False)
        player = session.get(PlayerRecord, player_id)
        if player is None or player.guild_id != guild_id:
            raise NotFoundError(f"Player {player_id} not found.")
        if not player.role_sync_enabled or player.discord_id is None:
            return RoleSyncResult(enabled=False)

        rules = [RoleRule(m.role_id, m.group, m.enabled) for m in config.role_mappings]
        discord_id = player.discord_id
        username = player.minecraft_username
        roles_before = [str(r) for r in (player.last_discord_roles or [])]

    roles = platform.get_member_roles(guild_id, discord_id)
    if roles is None:
        logger.info("Discord member %s not in guild %s; no groups granted", discord_id, guild_id)
        roles = []
    roles = sorted(str(r) for r in roles)

    managed = managed_groups(rules)
    target = target_groups(roles, rules)
    current = set(current_groups or []) & managed
    delta = diff(current, target)

    with get_session(engine) as session:
        player = session.get(PlayerRecord, player_id)
        player.last_discord_roles = roles
        player.last_minecraft_groups = sorted(target)
        player.last_role_sync_at = utcnow()

    operation = None
    if not delta.is_empty:
        operation = RoleSyncOperation(
            player_id=player_id,
            minecraft_username=username,
            discord_id=discord_id,
            trigger=str(trigger),
            discord_roles_before=roles_before,
            discord_roles_after=roles,
            groups_before=sorted(current),
            groups_after=sorted(target),
            groups_added=sorted(delta.to_add),
            groups_removed=sorted(delta.to_remove),
        )
        logger.info(
            "Role sync for %s: +%s -%s",
            username, sorted(delta.to_add), sorted(delta.to_remove),
        )

    return RoleSyncResult(
        enabled=True,
        target_groups=sorted(target),
        managed_groups=sorted(managed),
        operation=operation,
    )


# ---------------------------------------------------------------------------
# Journal
# ---------------------------------------------------------------------------

def log_role_sync(
    engine,
    guild_id: int,
    operation: RoleSyncOperation,
    *,
    success: bool = True,
    error: str | None = None,
) -> RoleSyncLog | None:
    """Append one ``role_sync_logs`` row.  Failures are logged, not raised."""
    try:
        with get_session(engine) as session:
            row = RoleSyncLog(
                guild_id=guild_id,
                player_id=operation.player_id,
                minecraft_username=operation.minecraft_username,
                discord_id=operation.discord_id,
                trigger=operation.trigger,
                discord_roles_before=operation.discord_roles_before,
                discord_roles_after=operation.discord_roles_after,
                groups_before=operation.groups_before,
                groups_after=operation.groups_after,
                groups_added=operation.groups_added,
                groups_removed=operation.groups_removed,
                success=success,
                error=error,
            )
            session.add(row)
            session.flush()
            return row
    except CraftLinkError as exc:
        logger.error("Failed to write role sync log for %s: %s", operation.minecraft_username, exc)
        return None


def get_role_sync_logs(
    engine, guild_id: int, limit: int = 50, player_id: int | None = None
) -> list[RoleSyncLog]:
    limit = max(1, min(int(limit), 500))
    stmt = select(RoleSyncLog).where(RoleSyncLog.guild_id == guild_id)
    if player_id is not None:
        stmt = stmt.where(RoleSyncLog.player_id == player_id)
    stmt = stmt.order_by(RoleSyncLog.timestamp.desc(), RoleSyncLog.id.desc()).limit(limit)
    with get_session(engine) as session:
        return list(session.scalars(stmt).all())


def log_to_dict(row: RoleSyncLog) -> dict:
    return {
        "id": row.id,
        "playerId": row.player_id,
        "minecraftUsername": row.minecraft_username,
        "discordId": to_snowflake(row.discord_id),
        "trigger": row.trigger,
        "discordRolesBefore": row.discord_roles_before or [],
        "discordRolesAfter": row.discord_roles_after or [],
        "groupsBefore": row.groups_before or [],
        "groupsAfter": row.groups_after or [],
        "groupsAdded": row.groups_added or [],
        "groupsRemoved": row.groups_removed or [],
        "success": row.success,
        "error": row.error,
        "timestamp": to_iso(row.timestamp),
    }


# ---------------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------------

def handle_discord_role_change(
    engine, guild_id: int, discord_id: int, role_ids: list[int | str]
) -> int:
    """Record a member's new roles on each of their linked records.

    Returns the number of records whose target groups changed.  The game
    server picks the new groups up on the player's next connection.
    """
    roles = sorted(str(r) for r in role_ids)
    changed = 0
    with get_session(engine) as session:
        config = find_config(session, guild_id)
        if config is None or not config.role_sync_enabled:
            return 0
        rules = [RoleRule(m.role_id, m.group, m.enabled) for m in config.role_mappings]
        target = sorted(target_groups(roles, rules))

        players = session.scalars(
            select(PlayerRecord).where(
                PlayerRecord.guild_id == guild_id,
                PlayerRecord.discord_id == discord_id,
                PlayerRecord.role_sync_enabled.is_(True),
            )
        ).all()
        for player in players:
            before_groups = list(player.last_minecraft_groups or [])
            if sorted(before_groups) != target:
                changed += 1
                delta = diff(before_groups, target)
                session.add(
                    RoleSyncLog(
                        guild_id=guild_id,
                        player_id=player.id,
                        minecraft_username=player.minecraft_username,
                        discord_id=discord_id,
                        trigger=SyncTrigger.DISCORD_ROLE_CHANGE,
                        discord_roles_before=list(player.last_discord_roles or []),
                        discord_roles_after=roles,
                        groups_before=sorted(before_groups),
                        groups_after=target,
                        groups_added=sorted(delta.to_add),
                        groups_removed=sorted(delta.to_remove),
                    )
                )
            player.last_discord_roles = roles
            player.last_minecraft_groups = target
            player.last_role_sync_at = utcnow()

    if changed:
        logger.info(
            "Discord role change for %s updated %d player(s) in guild %s",
            discord_id, changed, guild_id,
        )
    return changed


def trigger_manual_sync(
    engine, platform: ChatPlatform, guild_id: int, player_id: int
) -> RoleSyncResult:
    """Staff-initiated sync from the dashboard.

    Uses the player's last known in-game groups as the current state.
    """
    with get_session(engine) as session:
        player = session.get(PlayerRecord, player_id)
        if player is None or player.guild_id != guild_id:
            raise NotFoundError(f"Player {player_id} not found.")
        if player.discord_id is None:
            raise StateConflictError("Player is not linked to a Discord account.")
        config = find_config(session, guild_id)
        if config is None or not config.role_sync_enabled:
            raise StateConflictError("Role sync is not enabled for this server.")
        if not player.role_sync_enabled:
            raise StateConflictError("Role sync is disabled for this player.")
        current = list(player.last_minecraft_groups or [])

    result = calculate_role_sync(
        engine, platform, guild_id, player_id, current, trigger=SyncTrigger.MANUAL
    )
    if result.operation is not None:
        log_role_sync(engine, guild_id, result.operation)
    return result
