"""
Shared storage path utilities.

This module defines canonical filesystem locations for the planner database
and exported itinerary snapshots.

Design goals:
- Single source of truth for storage paths
- Repo-relative resolution
- Zero side effects beyond directory creation
"""

from __future__ import annotations

from pathlib import Path

# ----------------------------------------------------------------------
# BASE DIRECTORIES
# ----------------------------------------------------------------------

# Repo root is assumed to be the current working directory
# when TripBlocks is launched (consistent with core.app)
BASE_DIR = Path.cwd()

DATA_DIR = BASE_DIR / "data"
EXPORTS_DIR = BASE_DIR / "exports" / "public"


# ----------------------------------------------------------------------
# PATH HELPERS
# ----------------------------------------------------------------------

def resolve_db_path(db_path: Path | str) -> Path:
    """
    Resolve a configured database path against the repo root.

    Absolute paths are returned untouched. The parent directory is created.
    """

    path = Path(db_path)
    if not path.is_absolute():
        path = BASE_DIR / path
    path.parent.mkdir(parents=True, exist_ok=True)
    return path

