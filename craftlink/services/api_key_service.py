"""
craftlink.services.api_key_service — Scoped API Keys
=====================================================

Keys look like ``ckl_<key_id>_<secret>``.  Only the SHA-256 of the whole key
is stored; the plaintext is returned once, at creation.  The ``key_id``
segment makes lookup a single indexed read.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select

from craftlink.constants import API_KEY_PREFIX, SCOPE_FULL, VALID_SCOPES
from craftlink.database.engine import get_session
from craftlink.database.models import ApiKey, as_utc, utcnow
from craftlink.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def hash_key(key: str) -> str:
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def generate_api_key() -> tuple[str, str]:
    """Return ``(key_id, full_key)``."""
    key_id = secrets.token_hex(8)
    return key_id, f"{API_KEY_PREFIX}_{key_id}_{secrets.token_urlsafe(32)}"


def parse_key_id(key: str) -> str | None:
    parts = key.split("_", 2)
    if len(parts) != 3 or parts[0] != API_KEY_PREFIX or not parts[1]:
        return None
    return parts[1]


def has_scope(scopes: list[str] | None, required: str) -> bool:
    granted = set(scopes or [])
    return SCOPE_FULL in granted or required in granted


@dataclass(frozen=True, slots=True)
class CreatedKey:
    key: str
    record: ApiKey


def create_api_key(
    engine,
    *,
    name: str,
    scopes: list[str],
    created_by: str,
    expires_in_days: int | None = None,
) -> CreatedKey:
    name = (name or "").strip()
    if not name:
        raise ValidationError("API key name is required.")
    if not scopes:
        raise ValidationError("At least one scope is required.")
    unknown = set(scopes) - VALID_SCOPES
    if unknown:
        raise ValidationError(f"Unknown scope(s): {', '.join(sorted(unknown))}")

    expires_at: datetime | None = None
    if expires_in_days is not None:
        if expires_in_days <= 0:
            raise ValidationError("expires_in_days must be positive.")
        expires_at = utcnow() + timedelta(days=expires_in_days)

    key_id, key = generate_api_key()
    with get_session(engine) as session:
        record = ApiKey(
            key_id=key_id,
            hashed_key=hash_key(key),
            name=name,
            scopes=sorted(set(scopes)),
            created_by=str(created_by),
            expires_at=expires_at,
            is_active=True,
        )
        session.add(record)
        session.flush()

    logger.info("API key %s (%s) created by %s with scopes %s", key_id, name, created_by, record.scopes)
    return CreatedKey(key=key, record=record)


def validate_api_key(engine, key: str | None) -> ApiKey | None:
    """Return the active, unexpired key matching *key*, touching ``last_used_at``."""
    if not key:
        return None
    key_id = parse_key_id(key.strip())
    if key_id is None:
        return None

    with get_session(engine) as session:
        record = session.scalar(select(ApiKey).where(ApiKey.key_id == key_id))
        if record is None or not record.is_active:
            return None
        if not hmac.compare_digest(record.hashed_key, hash_key(key.strip())):
            logger.warning("API key %s presented with a bad secret", key_id)
            return None
        expires = as_utc(record.expires_at)
        if expires is not None and expires <= utcnow():
            return None
        record.last_used_at = utcnow()
        return record


def revoke_api_key(engine, key_id: str) -> ApiKey:
    with get_session(engine) as session:
        record = session.scalar(select(ApiKey).where(ApiKey.key_id == key_id))
        if record is None:
            raise NotFoundError(f"API key {key_id} not found.")
        record.is_active = False
    logger.info("API key %s revoked", key_id)
    return record


def list_api_keys(engine) -> list[ApiKey]:
    with get_session(engine) as session:
        return list(session.scalars(select(ApiKey).order_by(ApiKey.created_at.desc())).all())
