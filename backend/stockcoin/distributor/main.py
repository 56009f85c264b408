"""Distributor lifecycle: interval loop with graceful shutdown."""

from __future__ import annotations

import asyncio
import contextlib
import signal

from stockcoin.core.chain.client import Web3ChainClient
from stockcoin.core.config import get_settings
from stockcoin.core.logging import configure_logging, get_logger
from stockcoin.db.session import close_db, get_session_factory, init_db
from stockcoin.distributor.runner import build_runner

logger = get_logger(__name__)

_shutdown: asyncio.Event | None = None


def _handle_signal() -> None:
    """Signal handler that triggers graceful shutdown."""
    logger.info("distributor_shutdown_signal")
    if _shutdown is not None:
        _shutdown.set()


async def run_distributor(*, max_cycles: int = 0) -> None:
    """Run distribution cycles every ``airdrop_cycle_interval_seconds``.

    Args:
        max_cycles: If >0, exit after this many cycles (``--once`` passes 1).
                    If 0, run until a shutdown signal.
    """
    global _shutdown  # noqa: PLW0603

    configure_logging()
    settings = get_settings()

    if not settings.airdrop_distributor_enabled:
        logger.info("distributor_disabled")
        return

    await init_db()
    chain = Web3ChainClient(settings.chain_rpc_url, timeout=settings.chain_timeout_seconds)

    _shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, _handle_signal)

    interval = settings.airdrop_cycle_interval_seconds
    cycle = 0
    try:
        runner = build_runner(settings, get_session_factory(), chain)
        logger.info("distributor_started", interval_seconds=interval)

        while not _shutdown.is_set():
            cycle += 1
            try:
                await runner.trigger(cancel=_shutdown)
            except Exception:
                logger.exception("airdrop_cycle_error", cycle=cycle)

            if max_cycles > 0 and cycle >= max_cycles:
                break

            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(_shutdown.wait(), timeout=interval)
    finally:
        await chain.close()
        await close_db()
        logger.info("distributor_stopped", cycles=cycle)
