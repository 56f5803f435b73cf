"""
CraftLink — Minecraft Account Linking & Whitelist Core for Discord
===================================================================
Links Minecraft accounts to Discord members through a short-lived code
handshake, gates the whitelist behind staff approval, derives in-game
permission groups from Discord roles, and revokes (or restores) access
as members leave and rejoin the community.

Package layout::

    craftlink/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Code length, TTLs, default kick templates
    ├── errors.py          # Error taxonomy (→ HTTP status)
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine, sessions, async bridge
    │   └── models.py      # PlayerRecord, GuildLinkConfig, RoleSyncLog, ApiKey
    ├── engine/
    │   ├── role_sync.py   # Pure role → group mapping and set diff
    │   └── messages.py    # Kick-message template rendering
    ├── services/
    │   ├── player_store.py        # Player lookup, creation and serialization
    │   ├── auth_codes.py          # Link-code issue and confirmation
    │   ├── connection_service.py  # Login-time allow/kick decisions
    │   ├── approval_service.py    # Staff approval queue
    │   ├── role_sync_service.py   # Role → group sync and its journal
    │   ├── leave_service.py       # Revoke on leave, restore on rejoin
    │   ├── config_service.py      # Per-guild link configuration
    │   ├── player_admin_service.py # Staff-side player management
    │   ├── import_service.py      # Whitelist imports
    │   ├── api_key_service.py     # Scoped API keys
    │   └── chat_platform.py       # Discord member/role lookups (httpx)
    ├── bot/
    │   ├── core.py        # Bot subclass, cog loader
    │   └── cogs/
    │       ├── membership.py  # join/leave/role-change → core services
    │       ├── linking.py     # /link-minecraft, /confirm-code, /minecraft-status
    │       └── admin.py       # /whitelist queue, /api-key management
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Engine, Discord client, API-key scope guards
        └── routes/        # Minecraft plugin + staff REST endpoints
"""

__version__ = "0.1.0"
