"""Long-running entry point: initialize an engine and keep it polling."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import TYPE_CHECKING

from modsync.engine import SyncEngine

if TYPE_CHECKING:
    from modsync.config import Settings

logger = logging.getLogger(__name__)


def configure_logging(debug: bool) -> None:
    """Configure application logging."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.INFO if debug else logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.INFO if debug else logging.WARNING)


async def run_poller(engine: SyncEngine, stop: asyncio.Event | None = None) -> None:
    """Initialize ``engine`` and poll until ``stop`` is set (or forever)."""
    await engine.initialize()
    engine.poller.enable()
    try:
        await (stop or asyncio.Event()).wait()
    finally:
        await engine.poller.disable()


async def serve(settings: Settings) -> None:
    """Build an engine from settings and keep it in sync until cancelled."""
    configure_logging(settings.debug)
    logger.info("Starting modsync (game_id=%d, debug=%s)", settings.game_id, settings.debug)
    async with SyncEngine.from_settings(settings) as engine:
        await run_poller(engine)
