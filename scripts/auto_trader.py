"""Run the AI-gated auto trader on a fixed interval."""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import replace
import logging
from pathlib import Path
import sys

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from ai_trader.config import settings
from ai_trader.errors import InsufficientDataError, RetrainInProgressError
from ai_trader.models.strategy import PRESETS
from ai_trader.service import TradingService


logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the auto trading scheduler.")
    parser.add_argument(
        "--strategy",
        choices=sorted(PRESETS),
        default=settings.default_strategy,
        help="Strategy preset.",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=settings.scheduler_interval_s,
        help="Seconds between evaluations (default: 30).",
    )
    parser.add_argument(
        "--retrain-hours",
        type=float,
        default=24.0,
        help="Retrain the models every N hours (0 disables).",
    )
    parser.add_argument(
        "--trade",
        action="store_true",
        help="Actually submit transactions (requires TRADING_ENABLED=true).",
    )
    return parser.parse_args()


async def retrain_periodically(service: TradingService, hours: float) -> None:
    while True:
        await asyncio.sleep(hours * 3600)
        try:
            report = await service.retrain()
            logger.info("Retrained on %d samples", report.sample_count)
        except (RetrainInProgressError, InsufficientDataError) as exc:
            logger.warning("Retrain skipped: %s", exc)
        except Exception as exc:
            logger.exception("Retrain failed: %s", exc)


async def run(args: argparse.Namespace) -> None:
    trading_enabled = args.trade and settings.trading_enabled
    if args.trade and not settings.trading_enabled:
        logger.warning("--trade given but TRADING_ENABLED is false; running dry.")
    config = replace(
        settings,
        scheduler_interval_s=args.interval,
        trading_enabled=trading_enabled,
    )
    service = TradingService.from_settings(config)
    await service.initialize()
    logger.info("System state: %s", service.get_system_state().to_dict())

    retrainer = None
    if args.retrain_hours > 0:
        retrainer = asyncio.create_task(retrain_periodically(service, args.retrain_hours))
    service.start(args.strategy)
    try:
        await service.scheduler.join()
    finally:
        if retrainer is not None:
            retrainer.cancel()
        await service.shutdown()


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    args = parse_args()
    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted; auto trading stopped.")


if __name__ == "__main__":
    main()
