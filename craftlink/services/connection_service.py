"""
craftlink.services.connection_service — Connection-Attempt Decisions
=====================================================================

The game-server plugin calls this for every player login.  The plugin is
untrusted and polls; it only learns whether to let the player in, and
otherwise which message to show on the disconnect screen.

Pipeline::

    attempt ─► resolve guild ─► load config ─► clear expired code
            ─► resolve/create record ─► decide ─► (role sync) ─► response

Decision order (first match wins):

    1. whitelisted                       → allow (+ roleSync block)
    2. confirmed, awaiting staff         → pending message
    3. active unconfirmed code           → show the code
    4. revoked / rejected                → rejection (or leave) message
    5. anything else                     → "link your account" directions
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field

from sqlalchemy import select, update

from craftlink.constants import CONFIG_ERROR_MESSAGE, GENERIC_LINK_MESSAGE, STORAGE_ERROR_MESSAGE
from craftlink.database.engine import attempt, get_session
from craftlink.database.models import PlayerRecord, RevocationReason, SyncTrigger, utcnow
from craftlink.engine.messages import render, render_for
from craftlink.errors import UpstreamError, ValidationError
from craftlink.services import auth_codes
from craftlink.services.chat_platform import ChatPlatform
from craftlink.services.config_service import find_config, find_config_by_server_ip
from craftlink.services.player_store import (
    get_or_create_player,
    normalize_username,
    normalize_uuid,
)
from craftlink.services.role_sync_service import calculate_role_sync, log_role_sync

logger = logging.getLogger(__name__)


class Decision(enum.StrEnum):
    ALLOW = "allow"
    PENDING = "pending"
    SHOW_AUTH_CODE = "show_auth_code"
    REJECTED = "rejected"
    START_LINKING = "start_linking"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Request / response
# ---------------------------------------------------------------------------
@dataclass
class ConnectionAttempt:
    username: str
    uuid: str
    ip: str
    server_ip: str | None = None
    currently_whitelisted: bool = False
    current_groups: list[str] = field(default_factory=list)

    def validate(self) -> None:
        missing = [
            name for name in ("username", "uuid", "ip")
            if not (getattr(self, name) or "").strip()
        ]
        if missing:
            raise ValidationError(f"Missing required field(s): {', '.join(missing)}")


@dataclass
class ConnectionResponse:
    should_be_whitelisted: bool
    has_auth: bool
    decision: Decision
    kick_message: str | None = None
    role_sync: dict | None = None

    @property
    def action(self) -> str:
        if self.decision is Decision.ALLOW:
            return "allow"
        if self.decision is Decision.SHOW_AUTH_CODE:
            return "show_auth_code"
        return "kick_with_message"

    def to_wire(self) -> dict:
        body = {
            "shouldBeWhitelisted": self.should_be_whitelisted,
            "hasAuth": self.has_auth,
            "action": self.action,
            "decision": str(self.decision),
            "kickMessage": self.kick_message,
        }
        if self.role_sync is not None:
            body["roleSync"] = self.role_sync
        return body


def _kick(message: str, decision: Decision, *, has_auth: bool = False) -> ConnectionResponse:
    return ConnectionResponse(
        should_be_whitelisted=False,
        has_auth=has_auth,
        decision=decision,
        kick_message=message,
    )


def storage_failure_response() -> ConnectionResponse:
    return _kick(STORAGE_ERROR_MESSAGE, Decision.ERROR)


# ---------------------------------------------------------------------------
# Guild resolution
# ---------------------------------------------------------------------------

def resolve_guild(engine, server_ip: str | None, username: str, uuid: str | None) -> int | None:
    """Find which guild a connection belongs to.

    Precedence: the server address the player dialled, then a pending code
    held by the username (then uuid), then any record for the uuid (then
    username).
    """
    with get_session(engine) as session:
        config = find_config_by_server_ip(session, server_ip)
        if config is not None:
            return config.guild_id

        now = utcnow()
        identities = [PlayerRecord.minecraft_username == username]
        if uuid:
            identities.append(PlayerRecord.minecraft_uuid == uuid)

        for identity in identities:
            guild_id = session.scalar(
                select(PlayerRecord.guild_id)
                .where(
                    identity,
                    PlayerRecord.auth_code.isnot(None),
                    PlayerRecord.confirmed_at.is_(None),
                    PlayerRecord.expires_at > now,
                )
                .order_by(PlayerRecord.expires_at.desc())
                .limit(1)
            )
            if guild_id is not None:
                return guild_id

        for identity in reversed(identities):
            guild_id = session.scalar(
                select(PlayerRecord.guild_id)
                .where(identity)
                .order_by(PlayerRecord.id)
                .limit(1)
            )
            if guild_id is not None:
                return guild_id
    return None


def _touch(engine, record_id: int) -> None:
    with get_session(engine) as session:
        session.execute(
            update(PlayerRecord)
            .where(PlayerRecord.id == record_id)
            .values(last_connection_attempt=utcnow())
            .execution_options(synchronize_session=False)
        )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def handle_connection_attempt(
    engine,
    request: ConnectionAttempt,
    platform: ChatPlatform | None = None,
) -> ConnectionResponse:
    """Decide what the game server should do with a connecting player.

    Raises
    ------
    ValidationError
        username, uuid or ip is missing.

    Storage failures never raise; they produce a generic kick message.
    """
    request.validate()
    response, error = attempt(_decide, engine, request, platform)
    if error is not None:
        logger.error(
            "Connection attempt for %s failed: %s", request.username, error, exc_info=error
        )
        return storage_failure_response()
    return response


def _decide(engine, request: ConnectionAttempt, platform: ChatPlatform | None) -> ConnectionResponse:
    username = normalize_username(request.username)
    uuid = normalize_uuid(request.uuid)

    guild_id = resolve_guild(engine, request.server_ip, username, uuid)
    if guild_id is None:
        logger.info("No guild for %s (server %s)", username, request.server_ip)
        return _kick(render(GENERIC_LINK_MESSAGE, username=username), Decision.START_LINKING)

    with get_session(engine) as session:
        config = find_config(session, guild_id)
    if config is None or not config.enabled:
        logger.warning("Guild %s has no enabled link config", guild_id)
        return _kick(CONFIG_ERROR_MESSAGE, Decision.ERROR)

    auth_codes.clear_expired(engine, guild_id, username)
    record = get_or_create_player(engine, guild_id, username, uuid)
    _touch(engine, record.id)
    now = utcnow()

    # 1. Whitelisted
    if record.is_whitelisted:
        role_sync = None
        if config.role_sync_enabled and platform is not None:
            role_sync = _role_sync_block(engine, platform, guild_id, record, request.current_groups)
        logger.info("Allowing %s (guild %s)", username, guild_id)
        return ConnectionResponse(
            should_be_whitelisted=True,
            has_auth=record.discord_id is not None,
            decision=Decision.ALLOW,
            role_sync=role_sync,
        )

    # 2. Confirmed, awaiting staff
    if record.awaiting_approval:
        return _kick(
            render_for(config, "auth_pending_message", username=username),
            Decision.PENDING,
            has_auth=True,
        )

    # 3. Code waiting to be shown / confirmed
    if record.revoked_at is None and record.has_active_code(now):
        if record.code_shown_at is None:
            auth_codes.mark_shown(engine, record.id)
        logger.info("Showing auth code to %s (guild %s)", username, guild_id)
        return _kick(
            render_for(config, "auth_success_message", code=record.auth_code, username=username),
            Decision.SHOW_AUTH_CODE,
        )

    # 4. Revoked or rejected
    if record.revoked_at is not None or record.rejection_reason:
        if (
            record.revocation_reason == RevocationReason.PLATFORM_LEAVE
            and config.leave_revocation_enabled
        ):
            template = "leave_revocation_message"
        else:
            template = "application_rejection_message"
        message = render_for(
            config,
            template,
            username=username,
            reason=record.rejection_reason or "No reason provided",
        )
        return _kick(message, Decision.REJECTED)

    # 5. Not linked yet
    return _kick(
        render_for(config, "auth_rejection_message", username=username),
        Decision.START_LINKING,
    )


def _role_sync_block(
    engine, platform: ChatPlatform, guild_id: int, record: PlayerRecord, current_groups: list[str]
) -> dict | None:
    try:
        result = calculate_role_sync(
            engine, platform, guild_id, record.id, current_groups, trigger=SyncTrigger.LOGIN
        )
    except UpstreamError as exc:
        logger.warning("Role sync skipped for %s: %s", record.minecraft_username, exc)
        return {"enabled": False, "targetGroups": [], "managedGroups": []}

    if result.operation is not None:
        log_role_sync(engine, guild_id, result.operation)
    return result.to_wire() if result.enabled else None
