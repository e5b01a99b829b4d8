"""
JSON publisher for read-only itinerary exports.

Documents land below a single export root (``exports/public/`` by default).
Each write goes to a sibling temp file first, so readers never observe a
half-written itinerary.
"""
from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from shared.logging.logger import get_logger
from shared.storage.paths import EXPORTS_DIR

log = get_logger("shared.public_exports.publisher")


class PublicExportPublisher:
    DEFAULT_BASE_DIR = EXPORTS_DIR
    TEMP_SUFFIX = ".tmp"

    def __init__(self, *, base_dir: Path | str | None = None) -> None:
        self._base_dir = Path(base_dir) if base_dir else self.DEFAULT_BASE_DIR
        self._base_dir.mkdir(parents=True, exist_ok=True)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def resolve(self, relative_path: Path | str) -> Path:
        """Map an export-relative path to its location under the export root."""
        rel = Path(relative_path)
        if rel.is_absolute() or ".." in rel.parts:
            raise ValueError(f"Export path must stay inside the export root: {rel}")
        return self._base_dir / rel

    def publish(self, relative_path: Path | str, payload: Any) -> Path:
        target = self.resolve(relative_path)
        target.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_name = tempfile.mkstemp(dir=target.parent, suffix=self.TEMP_SUFFIX)
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
                handle.write("\n")
                handle.flush()
                os.fsync(handle.fileno())
            temp_path.replace(target)
        except Exception as exc:
            temp_path.unlink(missing_ok=True)
            log.error(f"Failed to write public export {target}: {exc}")
            raise

        log.info(f"Public export written: {target}")
        return target
