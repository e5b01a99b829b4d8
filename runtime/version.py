"""Version identifiers for TripBlocks.

Import-safe: the API server reports these on ``GET /api/version`` and the
itinerary export stamps ``EXPORT_SCHEMA_VERSION`` into every document.
"""

from __future__ import annotations

PROJECT_NAME = "TripBlocks Planner"
VERSION = "v0.3.0"
BUILD = "2026.10"

# Bump when the itinerary document shape changes
EXPORT_SCHEMA_VERSION = "v1"

__all__ = [
    "PROJECT_NAME",
    "VERSION",
    "BUILD",
    "EXPORT_SCHEMA_VERSION",
    "as_dict",
    "as_string",
]


def as_dict() -> dict[str, str]:
    return {
        "project": PROJECT_NAME,
        "version": VERSION,
        "build": BUILD,
        "export_schema": EXPORT_SCHEMA_VERSION,
    }


def as_string() -> str:
    return f"{PROJECT_NAME} {VERSION} (build {BUILD})"
