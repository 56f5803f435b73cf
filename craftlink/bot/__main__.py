"""
craftlink.bot.__main__ — Entry point for ``python -m craftlink.bot``
====================================================================

Wiring:
1. Load .env (token, database URL, optional ``LOG_LEVEL``).
2. Load the YAML config (``CRAFTLINK_CONFIG``, default ``config.yaml``).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Warn when no guild has linking configured yet.
5. Start the bot (blocking — runs the asyncio event loop).
"""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv
from sqlalchemy import func, select

from craftlink.bot.core import CraftLinkBot
from craftlink.config import load_config
from craftlink.database.engine import create_db_engine, get_session, init_db
from craftlink.database.models import GuildLinkConfig

logger = logging.getLogger("craftlink")


def _setup_logging() -> None:
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    )
    # Gateway heartbeat chatter
    logging.getLogger("discord.gateway").setLevel(logging.WARNING)


def _count_enabled_guilds(engine) -> int:
    with get_session(engine) as session:
        return session.scalar(
            select(func.count()).select_from(GuildLinkConfig).where(GuildLinkConfig.enabled.is_(True))
        ) or 0


def main() -> None:
    """Bootstrap and run the CraftLink bot."""
    load_dotenv()
    _setup_logging()

    token = os.getenv("DISCORD_TOKEN")
    if not token or token == "your-discord-bot-token-here":
        logger.critical(
            "DISCORD_TOKEN is not set.  "
            "Copy .env.example → .env and paste your bot token."
        )
        sys.exit(1)

    cfg = load_config(os.getenv("CRAFTLINK_CONFIG", "config.yaml"))
    logger.info("Config loaded — Community: %s", cfg.community_name)

    engine = create_db_engine()
    init_db(engine)

    if not _count_enabled_guilds(engine):
        logger.warning(
            "No guild has Minecraft linking enabled; "
            "PUT /api/minecraft/{guild_id}/config to set one up."
        )

    bot = CraftLinkBot(cfg=cfg, engine=engine)
    logger.info("Starting CraftLink bot…")
    try:
        bot.run(token, log_handler=None)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()
