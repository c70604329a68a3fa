"""Apply database migrations."""

import argparse
import logging
from pathlib import Path
import sys

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from ai_trader.config import settings
from ai_trader.db.migrate import migrate


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Apply sqlite migrations.")
    parser.add_argument(
        "--database-url",
        default=settings.database_url,
        help="sqlite URL, e.g. sqlite:///data/ai_trader.db",
    )
    return parser.parse_args()


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    args = parse_args()
    applied = migrate(args.database_url)
    print(f"Database migrations applied ({len(applied)} new).")


if __name__ == "__main__":
    main()
