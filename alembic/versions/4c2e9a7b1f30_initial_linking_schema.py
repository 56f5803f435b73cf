"""Initial linking schema

Player records with their auth-code sub-state, role-sync journal,
per-guild link config with role mappings, and hashed API keys.

Revision ID: 4c2e9a7b1f30
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "4c2e9a7b1f30"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # --- minecraft_players ---
    op.create_table(
        "minecraft_players",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("guild_id", sa.BigInteger(), nullable=False),
        sa.Column("minecraft_uuid", sa.String(36), nullable=True),
        sa.Column("minecraft_username", sa.String(16), nullable=False),
        sa.Column("discord_id", sa.BigInteger(), nullable=True),
        sa.Column("discord_username", sa.String(100), nullable=True),
        sa.Column("discord_display_name", sa.String(100), nullable=True),
        sa.Column("whitelisted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("linked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_by", sa.String(64), nullable=True),
        sa.Column("revocation_reason", sa.String(20), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("auth_code", sa.String(6), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("code_shown_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", sa.String(64), nullable=True),
        sa.Column("source", sa.String(20), nullable=False, server_default="linked"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("last_connection_attempt", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_discord_roles", postgresql.JSONB(), nullable=True),
        sa.Column("last_minecraft_groups", postgresql.JSONB(), nullable=True),
        sa.Column("last_role_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("role_sync_enabled", sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint(
            "guild_id", "minecraft_username", name="uq_minecraft_players_guild_username"
        ),
    )
    op.create_index(
        "ix_minecraft_players_guild_uuid",
        "minecraft_players",
        ["guild_id", "minecraft_uuid"],
        unique=True,
        postgresql_where=sa.text("minecraft_uuid IS NOT NULL"),
    )
    op.create_index(
        "ix_minecraft_players_auth_code", "minecraft_players", ["auth_code"], unique=True
    )
    op.create_index(
        "ix_minecraft_players_guild_discord", "minecraft_players", ["guild_id", "discord_id"]
    )
    op.create_index(
        "ix_minecraft_players_guild_confirmed", "minecraft_players", ["guild_id", "confirmed_at"]
    )

    # --- role_sync_logs ---
    op.create_table(
        "role_sync_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("guild_id", sa.BigInteger(), nullable=False),
        sa.Column(
            "player_id",
            sa.Integer(),
            sa.ForeignKey("minecraft_players.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("minecraft_username", sa.String(16), nullable=False),
        sa.Column("discord_id", sa.BigInteger(), nullable=True),
        sa.Column("trigger", sa.String(30), nullable=False),
        sa.Column("discord_roles_before", postgresql.JSONB(), nullable=True),
        sa.Column("discord_roles_after", postgresql.JSONB(), nullable=True),
        sa.Column("groups_before", postgresql.JSONB(), nullable=True),
        sa.Column("groups_after", postgresql.JSONB(), nullable=True),
        sa.Column("groups_added", postgresql.JSONB(), nullable=True),
        sa.Column("groups_removed", postgresql.JSONB(), nullable=True),
        sa.Column("success", sa.Boolean(), server_default=sa.true()),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_role_sync_logs_guild_time", "role_sync_logs", ["guild_id", "timestamp"])
    op.create_index("ix_role_sync_logs_player_time", "role_sync_logs", ["player_id", "timestamp"])

    # --- minecraft_configs ---
    op.create_table(
        "minecraft_configs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("guild_id", sa.BigInteger(), nullable=False, unique=True),
        sa.Column("enabled", sa.Boolean(), server_default=sa.true()),
        sa.Column("server_host", sa.String(255), nullable=True),
        sa.Column("server_port", sa.Integer(), server_default="25565"),
        sa.Column("auth_code_ttl_seconds", sa.Integer(), server_default="300"),
        sa.Column("auth_success_message", sa.Text(), nullable=True),
        sa.Column("auth_pending_message", sa.Text(), nullable=True),
        sa.Column("auth_rejection_message", sa.Text(), nullable=True),
        sa.Column("application_rejection_message", sa.Text(), nullable=True),
        sa.Column("leave_revocation_message", sa.Text(), nullable=True),
        sa.Column("role_sync_enabled", sa.Boolean(), server_default=sa.false()),
        sa.Column("leave_revocation_enabled", sa.Boolean(), server_default=sa.false()),
        *_timestamps(),
    )

    # --- minecraft_role_mappings ---
    op.create_table(
        "minecraft_role_mappings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "config_id",
            sa.Integer(),
            sa.ForeignKey("minecraft_configs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role_id", sa.BigInteger(), nullable=False),
        sa.Column("role_name", sa.String(100), nullable=True),
        sa.Column("minecraft_group", sa.String(64), nullable=False),
        sa.Column("enabled", sa.Boolean(), server_default=sa.true()),
        sa.UniqueConstraint(
            "config_id", "role_id", "minecraft_group", name="uq_role_mappings_role_group"
        ),
    )

    # --- api_keys ---
    op.create_table(
        "api_keys",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("key_id", sa.String(32), nullable=False, unique=True),
        sa.Column("hashed_key", sa.String(64), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("scopes", postgresql.JSONB(), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
    )


def downgrade() -> None:
    op.drop_table("api_keys")
    op.drop_table("minecraft_role_mappings")
    op.drop_table("minecraft_configs")
    op.drop_index("ix_role_sync_logs_player_time", table_name="role_sync_logs")
    op.drop_index("ix_role_sync_logs_guild_time", table_name="role_sync_logs")
    op.drop_table("role_sync_logs")
    op.drop_index("ix_minecraft_players_guild_confirmed", table_name="minecraft_players")
    op.drop_index("ix_minecraft_players_guild_discord", table_name="minecraft_players")
    op.drop_index("ix_minecraft_players_auth_code", table_name="minecraft_players")
    op.drop_index("ix_minecraft_players_guild_uuid", table_name="minecraft_players")
    op.drop_table("minecraft_players")
