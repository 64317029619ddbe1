"""Orphan reconciler entry point.

Usage:
    sigp-reconciler                  # sweep every RECONCILE_INTERVAL_SECONDS
    sigp-reconciler --once           # single sweep, then exit
    sigp-reconciler --interval 60    # override the sweep interval
"""

import argparse
import asyncio
import logging

from sigp_storage.config import get_settings
from sigp_storage.redis import get_async_redis
from sigp_storage.storage.factory import create_reconciler

logger = logging.getLogger(__name__)


async def _run(once: bool, interval: int | None) -> None:
    settings = get_settings()
    if interval is not None:
        settings = settings.model_copy(update={"reconcile_interval_seconds": interval})

    redis = get_async_redis()
    try:
        reconciler = create_reconciler(redis, settings)
        if once:
            report = await reconciler.tick()
            if report is None:
                logger.info("Sweep skipped")
            return
        await reconciler.run_forever()
    finally:
        await redis.aclose()


def main():
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    parser = argparse.ArgumentParser(description="sigp-storage orphan reconciler")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single sweep and exit",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between sweeps (default: from settings)",
    )
    args = parser.parse_args()

    try:
        asyncio.run(_run(args.once, args.interval))
    except KeyboardInterrupt:
        logger.info("Reconciler interrupted")


if __name__ == "__main__":
    main()
