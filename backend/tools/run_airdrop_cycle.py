"""Run one airdrop distribution cycle on demand (for cron/CronJob execution)."""

from __future__ import annotations

import argparse
import asyncio

from stockcoin.core.chain.client import Web3ChainClient
from stockcoin.core.config import get_settings
from stockcoin.core.logging import configure_logging, get_logger
from stockcoin.db.session import close_db, get_session_factory, init_db
from stockcoin.distributor.runner import build_runner
from stockcoin.modules.airdrop.aggregator import TaskResultStatus

logger = get_logger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Recompute proofs for every active airdrop task and publish their roots."
    )
    parser.add_argument(
        "--max-parallel-tasks",
        type=int,
        default=None,
        help="Override airdrop_max_parallel_tasks for this run.",
    )
    return parser.parse_args(argv)


async def _main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging()
    settings = get_settings()
    if args.max_parallel_tasks is not None:
        settings = settings.model_copy(
            update={"airdrop_max_parallel_tasks": args.max_parallel_tasks}
        )

    await init_db()
    chain = Web3ChainClient(settings.chain_rpc_url, timeout=settings.chain_timeout_seconds)
    try:
        runner = build_runner(settings, get_session_factory(), chain)
        report = await runner.trigger()
        if report is None:
            # the running distributor covers this cycle
            logger.info("airdrop_cycle_not_run", reason="another cycle holds the lock")
            return 0
        print(report.to_summary().model_dump_json(indent=2))
        failed = any(result.status is TaskResultStatus.FAILED for result in report.results)
        return 1 if failed or report.publish_error else 0
    finally:
        await chain.close()
        await close_db()


if __name__ == "__main__":
    raise SystemExit(asyncio.run(_main()))
