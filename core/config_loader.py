"""
Configuration loader with schema validation.

This module centralizes ingestion of the planner config document and applies
JSON Schema validation. Failures are treated as warnings so the runtime can
continue booting with best-effort defaults; callers that need a hard gate
(scripts/validate_config.py) inspect the returned messages.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from jsonschema import Draft7Validator

from shared.config.planner import PlannerConfig, load_planner_config
from shared.logging.logger import get_logger

log = get_logger("core.config_loader")

ROOT = Path(__file__).resolve().parents[1]


class ConfigLoader:
    """
    Loads and validates the planner configuration document.

    Files:
      - shared/config/planner.json

    Validation:
      - schemas/planner.schema.json (Draft 7). Violations are logged as
        warnings and returned, never raised.
    """

    CONFIG_PATH = ROOT / "shared" / "config" / "planner.json"
    SCHEMA_DIR = ROOT / "schemas"

    def __init__(
        self,
        *,
        config_path: Optional[Path | str] = None,
        schema_dir: Optional[Path | str] = None,
    ) -> None:
        self._config_path = Path(config_path) if config_path else self.CONFIG_PATH
        schema_root = Path(schema_dir) if schema_dir else self.SCHEMA_DIR
        self._schema_path = schema_root / "planner.schema.json"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load_json(self, path: Path, name: str) -> Dict[str, Any]:
        if not path.exists():
            log.warning(f"{name} config not found at {path}; using defaults")
            return {}

        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
                if isinstance(data, dict):
                    return data
                log.warning(f"{name} config root is not an object; ignoring")
        except Exception as e:  # pragma: no cover
            log.warning(f"Failed to load {name} config ({e}); using defaults")

        return {}

    def _validate(self, payload: Dict[str, Any], schema_path: Path, name: str) -> List[str]:
        if not schema_path.exists():
            log.debug(f"Schema for {name} not found at {schema_path}; skipping")
            return []

        try:
            schema = json.loads(schema_path.read_text(encoding="utf-8"))
        except Exception as e:  # pragma: no cover
            log.warning(f"Failed to load {name} schema ({e}); skipping validation")
            return []

        validator = Draft7Validator(schema)
        errors = sorted(validator.iter_errors(payload), key=lambda e: list(e.path))

        messages: List[str] = []
        for err in errors:
            loc = "/".join(str(p) for p in err.path)
            message = f"{name} config validation warning at '{loc}': {err.message}"
            log.warning(message)
            messages.append(message)
        return messages

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def validate(self, payload: Optional[Dict[str, Any]] = None) -> List[str]:
        """
        Validate a raw planner document (or the file on disk) and return the
        list of violation messages.
        """
        data = payload if payload is not None else self._load_json(self._config_path, "planner")
        return self._validate(data, self._schema_path, "planner")

    def load(self) -> Tuple[PlannerConfig, List[str]]:
        """
        Load planner.json, validate it, and build the typed configuration.

        Returns the config together with any validation warnings.
        """
        data = self._load_json(self._config_path, "planner")
        warnings = self._validate(data, self._schema_path, "planner")
        return load_planner_config(data), warnings
