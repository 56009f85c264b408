"""Entry point: python -m stockcoin.distributor [--once]"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import sys

from stockcoin.distributor.main import run_distributor


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Airdrop Merkle proof distributor.")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single distribution cycle and exit.",
    )
    args = parser.parse_args(argv)

    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(run_distributor(max_cycles=1 if args.once else 0))
    sys.exit(0)


if __name__ == "__main__":
    main()
