"""
Utility script to write a trip's confirmed itinerary into the public export
root.

Usage:
    python -m scripts.publish_itinerary <trip_id> [--db data/tripblocks.db] [--target exports/public]

The database path falls back to TRIPBLOCKS_DB_PATH, then the configured
storage path.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from dotenv import load_dotenv

from shared.config.planner import load_planner_config
from shared.public_exports import PublicExportPublisher, publish_itinerary
from shared.storage.paths import resolve_db_path
from shared.storage.planner import PlannerStore


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Publish a confirmed itinerary as JSON")
    parser.add_argument("trip_id", help="Trip to export")
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Planner database (default: configured storage.db_path)",
    )
    parser.add_argument(
        "--target",
        type=Path,
        default=None,
        help="Export root (default: exports/public)",
    )
    return parser.parse_args()


def main() -> int:
    load_dotenv()
    args = parse_args()

    db_path = args.db or resolve_db_path(load_planner_config().storage.db_path)
    store = PlannerStore(db_path)

    written = publish_itinerary(
        store,
        args.trip_id,
        PublicExportPublisher(base_dir=args.target),
    )
    if written is None:
        print(f"Trip {args.trip_id} not found in {db_path}", file=sys.stderr)
        return 1

    print(f"Itinerary written to {written}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
