"""
craftlink.constants — Shared Constants
=======================================

Single source of truth for the linking handshake limits, API scopes and
the default kick-message templates.  Templates use ``§`` colour codes
because the game server renders them verbatim on the disconnect screen.
"""

from __future__ import annotations

import re

# ---------------------------------------------------------------------------
# Auth-code handshake
# ---------------------------------------------------------------------------
AUTH_CODE_LENGTH = 6
MAX_CODE_ATTEMPTS = 10

DEFAULT_CODE_TTL_SECONDS = 300
MIN_CODE_TTL_SECONDS = 300
MAX_CODE_TTL_SECONDS = 600

AUTH_CODE_PATTERN = re.compile(r"^\d{6}$")
MINECRAFT_USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]{1,16}$")
MINECRAFT_UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)

DEFAULT_SERVER_PORT = 25565

# ---------------------------------------------------------------------------
# Staff workflow
# ---------------------------------------------------------------------------
BULK_APPROVE_MIN = 1
BULK_APPROVE_MAX = 50
BULK_APPROVE_DEFAULT = 10

SYSTEM_ACTOR = "system"

# ---------------------------------------------------------------------------
# Discord REST
# ---------------------------------------------------------------------------
DISCORD_API_BASE = "https://discord.com/api/v10"

# ---------------------------------------------------------------------------
# API key scopes
# ---------------------------------------------------------------------------
SCOPE_CONNECTION = "minecraft:connection"
SCOPE_READ = "minecraft:read"
SCOPE_WRITE = "minecraft:write"
SCOPE_ADMIN = "minecraft:admin"
SCOPE_FULL = "full"

VALID_SCOPES: frozenset[str] = frozenset({
    SCOPE_CONNECTION,
    SCOPE_READ,
    SCOPE_WRITE,
    SCOPE_ADMIN,
    SCOPE_FULL,
})

API_KEY_PREFIX = "ckl"

# ---------------------------------------------------------------------------
# Kick-message templates
# Placeholders: {code} {username} {reason} {serverHost} {serverPort}
# ---------------------------------------------------------------------------
DEFAULT_AUTH_SUCCESS_MESSAGE = (
    "§aYour auth code: §f{code}\n§7Go to Discord and type: §f/confirm-code {code}"
)
DEFAULT_AUTH_PENDING_MESSAGE = (
    "§eYour account is linked and waiting for staff approval.\n"
    "§7Please be patient while staff review your request.\n"
    "§7You will be whitelisted automatically once approved."
)
DEFAULT_AUTH_REJECTION_MESSAGE = (
    "§cTo join this server:\n§7• Join the Discord server\n"
    "§7• Use §f/link-minecraft {username}\n"
    "§7• Follow the instructions to link your account"
)
DEFAULT_APPLICATION_REJECTION_MESSAGE = (
    "§cYour whitelist application has been rejected.\n§7Reason: §f{reason}\n"
    "§7Please contact staff for more information."
)
DEFAULT_LEAVE_REVOCATION_MESSAGE = (
    "§cYour whitelist has been revoked because you left the Discord server.\n"
    "§7Rejoin Discord to restore access."
)

# Returned to the untrusted game server; never carries internal detail.
GENERIC_LINK_MESSAGE = DEFAULT_AUTH_REJECTION_MESSAGE
CONFIG_ERROR_MESSAGE = "§cServer configuration error.\n§7Please contact an administrator."
STORAGE_ERROR_MESSAGE = "§cDatabase error.\n§7Please try again later."
