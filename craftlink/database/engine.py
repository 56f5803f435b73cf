"""
craftlink.database.engine — Database Connection & Async Helper
===============================================================

Discord event handlers run on an ``asyncio`` event loop while SQLAlchemy +
psycopg2 is **synchronous**.  Every service in :mod:`craftlink.services`
is therefore a plain function taking an ``Engine``; the bot ships it to a
worker thread with :func:`run_db`, and FastAPI runs sync route handlers on
its own thread pool.

:func:`get_session` is also where storage failures are translated into the
error taxonomy: ``IntegrityError`` → :class:`DuplicateError`, any other
``SQLAlchemyError`` → :class:`UpstreamError` with a generic message (the
original exception is logged and chained).

Usage::

    from craftlink.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    # Inside an async Cog method:
    summary = await run_db(on_member_leave, engine, guild_id, member_id)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from craftlink.database.models import Base
from craftlink.errors import CraftLinkError, DuplicateError, UpstreamError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine() -> Engine:
    """Build a SQLAlchemy :class:`Engine` from the ``DATABASE_URL`` env var.

    Raises
    ------
    RuntimeError
        If ``DATABASE_URL`` is not set.
    """
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    engine = create_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_timeout=10,
        pool_recycle=3600,
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`craftlink.database.models`.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is kept for dev/test environments.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """Yield a :class:`Session` that commits on success and rolls back on
    exception.

    Objects stay loaded after commit (``expire_on_commit=False``) so services
    can hand detached records back to callers.
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        logger.debug("Integrity violation: %s", exc.orig)
        raise DuplicateError("A record with the same identity already exists.") from exc
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Database error: %s", exc)
        raise UpstreamError("Database error.") from exc
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** database function on a background thread.

    Every DB call in a Cog goes through this wrapper::

        result = await run_db(my_sync_db_function, engine, member_id)

    Parameters
    ----------
    func:
        Any sync callable (typically a service function).
    *args, **kwargs:
        Forwarded to *func*.
    """
    return await asyncio.to_thread(func, *args, **kwargs)


# ---------------------------------------------------------------------------
# Result-or-error wrapper
# ---------------------------------------------------------------------------
def attempt(
    func: Callable[P, T], *args: P.args, **kwargs: P.kwargs
) -> tuple[T | None, CraftLinkError | None]:
    """Call *func* and return ``(result, None)`` or ``(None, error)``.

    Only :class:`CraftLinkError` is captured; :func:`get_session` has
    already turned storage failures into one.  Used where a caller must
    always produce a response, e.g. the connection-attempt endpoint.
    """
    try:
        return func(*args, **kwargs), None
    except CraftLinkError as exc:
        return None, exc
