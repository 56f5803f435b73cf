"""
craftlink.engine.messages — Kick-Message Templates
===================================================

Renders the per-guild disconnect messages shown by the game server.  A
guild that never customised a template gets the built-in default.
"""

from __future__ import annotations

from craftlink.constants import (
    DEFAULT_APPLICATION_REJECTION_MESSAGE,
    DEFAULT_AUTH_PENDING_MESSAGE,
    DEFAULT_AUTH_REJECTION_MESSAGE,
    DEFAULT_AUTH_SUCCESS_MESSAGE,
    DEFAULT_LEAVE_REVOCATION_MESSAGE,
    DEFAULT_SERVER_PORT,
)

DEFAULT_TEMPLATES: dict[str, str] = {
    "auth_success_message": DEFAULT_AUTH_SUCCESS_MESSAGE,
    "auth_pending_message": DEFAULT_AUTH_PENDING_MESSAGE,
    "auth_rejection_message": DEFAULT_AUTH_REJECTION_MESSAGE,
    "application_rejection_message": DEFAULT_APPLICATION_REJECTION_MESSAGE,
    "leave_revocation_message": DEFAULT_LEAVE_REVOCATION_MESSAGE,
}


def render(template: str, **values: object) -> str:
    """Substitute ``{name}`` placeholders.

    Plain replacement rather than ``str.format`` so staff-written templates
    containing stray braces never raise.
    """
    out = template
    for key, value in values.items():
        out = out.replace("{" + key + "}", "" if value is None else str(value))
    return out


def template_for(config, field: str) -> str:
    """Return the guild's template for *field*, or the built-in default."""
    custom = getattr(config, field, None) if config is not None else None
    return custom or DEFAULT_TEMPLATES[field]


def render_for(config, field: str, **values: object) -> str:
    """Render *field* with the guild's server host/port filled in."""
    host = getattr(config, "server_host", None) or ""
    port = getattr(config, "server_port", None) or DEFAULT_SERVER_PORT
    return render(
        template_for(config, field),
        serverHost=host,
        serverPort=port,
        **values,
    )
