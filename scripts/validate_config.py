"""
Configuration validation script.

Validates shared/config/planner.json (or a path given on the command line)
against schemas/planner.schema.json.

Design rules:
- No side effects on import
- No runtime startup
- Validation only (no mutation)
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from core.config_loader import ConfigLoader


def _error(msg: str) -> None:
    print(f"[CONFIG ERROR] {msg}", file=sys.stderr)


def validate_planner_config(path: Optional[Path] = None) -> bool:
    loader = ConfigLoader(config_path=path)
    target = path or ConfigLoader.CONFIG_PATH

    if target.exists():
        try:
            payload = json.loads(target.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            _error(f"{target.name}: invalid JSON ({e})")
            return False
        if not isinstance(payload, dict):
            _error(f"{target.name}: root JSON value must be an object")
            return False
    else:
        payload = {}

    messages: List[str] = loader.validate(payload)
    for message in messages:
        _error(message)
    return not messages


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Validate the TripBlocks planner config")
    parser.add_argument("config", nargs="?", type=Path, help="path to planner.json")
    args = parser.parse_args(argv)

    if not validate_planner_config(args.config):
        print("Configuration validation failed.", file=sys.stderr)
        return 1

    print("Configuration validation passed.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
