"""
craftlink.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- minecraft_players       — One record per (guild, game account): identity,
                            Discord link, whitelist state, auth-code sub-state
- role_sync_logs          — Append-only journal of role → group diffs
- minecraft_configs       — Per-guild linking behaviour and kick templates
- minecraft_role_mappings — Discord role → in-game group mappings
- api_keys                — Hashed, scoped keys for the game-server plugin
                            and the staff dashboard
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from craftlink.constants import DEFAULT_CODE_TTL_SECONDS, DEFAULT_SERVER_PORT


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------
def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops the offset on read)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all CraftLink ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class RevocationReason(enum.StrEnum):
    """Why a record lost (or never got) whitelist access.

    Only ``PLATFORM_LEAVE`` is eligible for automatic restoration on rejoin.
    """
    PLATFORM_LEAVE = "platform_leave"
    STAFF_ACTION = "staff_action"
    MANUAL = "manual"


class PlayerSource(enum.StrEnum):
    """How a player record entered the system."""
    IMPORTED = "imported"
    LINKED = "linked"
    MANUAL = "manual"


class SyncTrigger(enum.StrEnum):
    """What caused a role-sync calculation."""
    LOGIN = "login"
    DISCORD_ROLE_CHANGE = "discord_role_change"
    MANUAL = "manual"


class WhitelistStatus(enum.StrEnum):
    PENDING = "pending"
    WHITELISTED = "whitelisted"
    REVOKED = "revoked"


class AuthStatus(enum.StrEnum):
    NONE = "none"
    PENDING = "pending"
    EXPIRED = "expired"
    CONFIRMED = "confirmed"
    REVOKED = "revoked"


# ---------------------------------------------------------------------------
# PlayerRecord — one row per (guild, game account)
# ---------------------------------------------------------------------------
class PlayerRecord(Base):
    __tablename__ = "minecraft_players"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Game identity (uuid is absent for text-only imports)
    minecraft_uuid: Mapped[str | None] = mapped_column(String(36), nullable=True)
    minecraft_username: Mapped[str] = mapped_column(String(16), nullable=False)

    # Discord link, captured at link time
    discord_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    discord_username: Mapped[str | None] = mapped_column(String(100), nullable=True)
    discord_display_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Whitelist state
    whitelisted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    linked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    revoked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    revoked_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    revocation_reason: Mapped[str | None] = mapped_column(String(20), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Auth-code sub-state (transient)
    auth_code: Mapped[str | None] = mapped_column(String(6), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    code_shown_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Audit
    approved_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    source: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PlayerSource.LINKED
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_connection_attempt: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Role-sync tracking
    last_discord_roles: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    last_minecraft_groups: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    last_role_sync_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    role_sync_enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "guild_id", "minecraft_username", name="uq_minecraft_players_guild_username"
        ),
        # Partial unique index: text-only imports carry no uuid
        Index(
            "ix_minecraft_players_guild_uuid",
            "guild_id",
            "minecraft_uuid",
            unique=True,
            postgresql_where=minecraft_uuid.isnot(None),
        ),
        Index("ix_minecraft_players_auth_code", "auth_code", unique=True),
        Index("ix_minecraft_players_guild_discord", "guild_id", "discord_id"),
        Index("ix_minecraft_players_guild_confirmed", "guild_id", "confirmed_at"),
    )

    # -- Derived predicates --------------------------------------------------
    @property
    def is_whitelisted(self) -> bool:
        return self.whitelisted_at is not None and self.revoked_at is None

    def has_active_code(self, now: datetime | None = None) -> bool:
        """True while an unconfirmed, unexpired code is held."""
        if self.auth_code is None or self.confirmed_at is not None:
            return False
        expires = as_utc(self.expires_at)
        return expires is not None and expires > (now or utcnow())

    @property
    def awaiting_approval(self) -> bool:
        return (
            self.confirmed_at is not None
            and self.linked_at is None
            and self.revoked_at is None
        )

    @property
    def whitelist_status(self) -> WhitelistStatus:
        if self.revoked_at is not None:
            return WhitelistStatus.REVOKED
        if self.whitelisted_at is not None:
            return WhitelistStatus.WHITELISTED
        return WhitelistStatus.PENDING

    def auth_status(self, now: datetime | None = None) -> AuthStatus:
        if self.revoked_at is not None:
            return AuthStatus.REVOKED
        if self.confirmed_at is not None or self.linked_at is not None:
            return AuthStatus.CONFIRMED
        if self.auth_code is not None:
            return AuthStatus.PENDING if self.has_active_code(now) else AuthStatus.EXPIRED
        return AuthStatus.NONE

    def __repr__(self) -> str:
        return (
            f"<PlayerRecord id={self.id} guild={self.guild_id} "
            f"user={self.minecraft_username!r} status={self.whitelist_status}>"
        )


# ---------------------------------------------------------------------------
# RoleSyncLog — append-only journal of role → group diffs
# ---------------------------------------------------------------------------
class RoleSyncLog(Base):
    __tablename__ = "role_sync_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    player_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("minecraft_players.id", ondelete="CASCADE"), nullable=False
    )
    minecraft_username: Mapped[str] = mapped_column(String(16), nullable=False)
    discord_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    trigger: Mapped[str] = mapped_column(String(30), nullable=False)
    discord_roles_before: Mapped[list | None] = mapped_column(JSONB, default=list)
    discord_roles_after: Mapped[list | None] = mapped_column(JSONB, default=list)
    groups_before: Mapped[list | None] = mapped_column(JSONB, default=list)
    groups_after: Mapped[list | None] = mapped_column(JSONB, default=list)
    groups_added: Mapped[list | None] = mapped_column(JSONB, default=list)
    groups_removed: Mapped[list | None] = mapped_column(JSONB, default=list)
    success: Mapped[bool] = mapped_column(Boolean, default=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_role_sync_logs_guild_time", "guild_id", "timestamp"),
        Index("ix_role_sync_logs_player_time", "player_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return (
            f"<RoleSyncLog id={self.id} player={self.player_id} "
            f"trigger={self.trigger} +{self.groups_added} -{self.groups_removed}>"
        )


# ---------------------------------------------------------------------------
# GuildLinkConfig — per-guild linking behaviour
# ---------------------------------------------------------------------------
class GuildLinkConfig(Base):
    __tablename__ = "minecraft_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    server_host: Mapped[str | None] = mapped_column(String(255), nullable=True)
    server_port: Mapped[int] = mapped_column(Integer, default=DEFAULT_SERVER_PORT)
    auth_code_ttl_seconds: Mapped[int] = mapped_column(
        Integer, default=DEFAULT_CODE_TTL_SECONDS
    )

    # Kick-message templates; NULL means "use the built-in default"
    auth_success_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    auth_pending_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    auth_rejection_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    application_rejection_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    leave_revocation_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    role_sync_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    leave_revocation_enabled: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    role_mappings: Mapped[list[RoleMapping]] = relationship(
        back_populates="config",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="RoleMapping.id",
    )

    def __repr__(self) -> str:
        return (
            f"<GuildLinkConfig guild={self.guild_id} host={self.server_host!r} "
            f"enabled={self.enabled}>"
        )


class RoleMapping(Base):
    __tablename__ = "minecraft_role_mappings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    config_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("minecraft_configs.id", ondelete="CASCADE"), nullable=False
    )
    role_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    role_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    group: Mapped[str] = mapped_column("minecraft_group", String(64), nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    config: Mapped[GuildLinkConfig] = relationship(back_populates="role_mappings")

    __table_args__ = (
        UniqueConstraint(
            "config_id", "role_id", "minecraft_group", name="uq_role_mappings_role_group"
        ),
    )

    def __repr__(self) -> str:
        return f"<RoleMapping role={self.role_id} → {self.group!r} enabled={self.enabled}>"


# ---------------------------------------------------------------------------
# ApiKey — hashed, scoped credentials
# ---------------------------------------------------------------------------
class ApiKey(Base):
    __tablename__ = "api_keys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    hashed_key: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    scopes: Mapped[list] = mapped_column(JSONB, default=list)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<ApiKey key_id={self.key_id} name={self.name!r} active={self.is_active}>"
