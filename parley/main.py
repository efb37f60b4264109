"""Parley: Main entry point."""

import asyncio
import logging
import signal
from typing import Optional

from .config import ParleySettings, load_settings, require_relay_settings
from .channels.telegram import TelegramChannel
from .db.connection import close_db, ensure_schema, init_db
from .db.models import PgBanRegistry, PgMappingStore
from .ratelimit import RateLimiter

_log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("parley")


def setup_logging(settings: ParleySettings, debug: bool = False):
    """Configure root logging: stderr, plus a file if configured."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_file:
        handlers.append(logging.FileHandler(settings.log_file, encoding="utf-8"))
    logging.basicConfig(level=logging.INFO, format=_log_format, handlers=handlers)
    # python-telegram-bot's httpx client logs every poll at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    if debug:
        logging.getLogger("parley").setLevel(logging.DEBUG)


async def run(settings: Optional[ParleySettings] = None):
    """Main run loop."""
    settings = settings or load_settings()
    require_relay_settings(settings)

    pool = await init_db(settings.database_url)
    limiter = RateLimiter.from_settings(settings)
    channel = None
    try:
        # Schema failure is fatal; nothing can be relayed without the tables.
        await ensure_schema(pool)

        channel = TelegramChannel(
            settings,
            mappings=PgMappingStore(pool),
            bans=PgBanRegistry(pool),
            limiter=limiter,
        )
        await channel.start()

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop.set)
            except NotImplementedError:
                pass  # Windows

        logger.info("Parley is running. Press Ctrl+C to stop.")
        await stop.wait()
        logger.info(f"Shutting down... ({len(limiter)} users seen by the rate limiter)")

    except Exception as e:
        logger.critical(f"Fatal error: {type(e).__name__}: {e}", exc_info=True)
        raise
    finally:
        if channel:
            await channel.stop()
        await close_db(pool)


def main():
    """Entry point."""
    settings = load_settings()
    setup_logging(settings)
    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
