"""Entry point for the ship-radar pipeline: runs one full pass and exits."""

import argparse
import asyncio
import sys

from loguru import logger

from src.pipeline.orchestrator import run_pipeline
from src.pipeline.run_state import RunStatus
from src.utils.logger import setup_logger


async def main(mode: str, limit: int | None, init_db: bool) -> int:
    setup_logger(level="INFO")
    logger.info(f"Starting ship-radar pipeline (mode={mode})...")

    if init_db:
        from src.db.database import init_db as create_tables

        await create_tables()

    result = await run_pipeline(trigger_type="manual", mode=mode, project_limit=limit)
    for error in result.errors:
        logger.warning(f"[PIPELINE] {error}")
    logger.info(f"Run {result.run_id} finished: {result.status.value} counts={result.counts}")
    return 0 if result.status == RunStatus.COMPLETED else 1


def cli() -> None:
    parser = argparse.ArgumentParser(description="BNB Chain project survival pipeline")
    parser.add_argument("--mode", choices=["full", "incremental"], default="full")
    parser.add_argument("--limit", type=int, default=None, help="top-N projects by market cap")
    parser.add_argument("--init-db", action="store_true", help="create tables before running")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.mode, args.limit, args.init_db)))


if __name__ == "__main__":
    cli()
