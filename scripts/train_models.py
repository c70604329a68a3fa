"""Collect a price window, train both models and save them."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
import sys

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from ai_trader.ai import EnsemblePredictor, PolicyConfig, SequenceModel, SequenceModelConfig, TabularPolicyAgent
from ai_trader.config import settings
from ai_trader.data import MarketDataCollector


logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Train the LSTM and Q-learning models.")
    parser.add_argument(
        "--hours",
        type=int,
        default=settings.training_window_hours,
        help="Hours of history to collect (default: 168).",
    )
    parser.add_argument(
        "--sources",
        default=",".join(settings.data_sources),
        help="Comma separated sources (coingecko, exchange).",
    )
    parser.add_argument(
        "--episodes",
        type=int,
        default=settings.policy_initial_episodes,
        help="Q-learning episodes.",
    )
    parser.add_argument(
        "--epochs",
        type=int,
        default=settings.sequence_epochs,
        help="Maximum LSTM epochs.",
    )
    parser.add_argument(
        "--model-dir",
        default=settings.model_dir,
        help="Where to save the trained models.",
    )
    return parser.parse_args()


async def run(args: argparse.Namespace) -> None:
    sources = [item.strip() for item in args.sources.split(",") if item.strip()]
    collector = MarketDataCollector()
    series = await collector.collect(sources, {"hours": args.hours})
    logger.info("Collected %d prices from %s", len(series), ", ".join(sources))

    ensemble = EnsemblePredictor(
        sequence_model=SequenceModel(
            SequenceModelConfig(sequence_length=settings.sequence_length, epochs=args.epochs)
        ),
        policy_agent=TabularPolicyAgent(PolicyConfig()),
        model_dir=args.model_dir,
    )
    report = await ensemble.train(series, episodes=args.episodes)
    ensemble.save_models()
    logger.info(
        "Training done: %d samples, %d episodes, last reward %.2f; saved to %s",
        report.sample_count,
        report.episodes,
        report.final_reward,
        args.model_dir,
    )
    prediction = await ensemble.predict(series)
    logger.info("Latest prediction: %s", prediction.to_dict())


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    args = parse_args()
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
