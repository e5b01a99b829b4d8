from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from shared.logging.logger import get_logger
from shared.trips.models import DUPLICATE_POLICIES

log = get_logger("shared.config.planner")

_CONFIG_PATH = Path(__file__).parent / "planner.json"


@dataclass
class StorageConfig:
    db_path: str = "data/tripblocks.db"
    busy_timeout_seconds: float = 5.0


@dataclass
class ApiConfig:
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8310
    allow_origins: List[str] = field(default_factory=lambda: ["*"])


@dataclass
class VotingConfig:
    default_duplicate_policy: str = "soft_block"
    allow_proxy_votes: bool = True


@dataclass
class LoggingConfig:
    log_dir: str = "logs"


@dataclass
class PlannerConfig:
    storage: StorageConfig = field(default_factory=StorageConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    voting: VotingConfig = field(default_factory=VotingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _load_json(path: Path) -> Dict[str, Any]:
    if not path.exists():
        log.warning(f"planner.json not found at {path}; using defaults")
        return {}

    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
            return data if isinstance(data, dict) else {}
    except Exception as e:  # pragma: no cover
        log.warning(f"Failed to load planner.json ({e}); using defaults")
        return {}


def _load_storage(raw: Optional[Dict[str, Any]]) -> StorageConfig:
    if not isinstance(raw, dict):
        return StorageConfig()

    db_path = raw.get("db_path", StorageConfig.db_path)
    timeout = raw.get("busy_timeout_seconds", StorageConfig.busy_timeout_seconds)
    try:
        timeout_float = float(timeout)
    except Exception:
        log.warning("storage.busy_timeout_seconds must be numeric; using default")
        timeout_float = StorageConfig.busy_timeout_seconds
    return StorageConfig(db_path=str(db_path), busy_timeout_seconds=timeout_float)


def _load_api(raw: Optional[Dict[str, Any]]) -> ApiConfig:
    if not isinstance(raw, dict):
        return ApiConfig()

    enabled = raw.get("enabled", ApiConfig.enabled)
    if not isinstance(enabled, bool):
        log.warning("api.enabled must be boolean; defaulting to true")
        enabled = ApiConfig.enabled

    port = raw.get("port", ApiConfig.port)
    try:
        port_int = int(port)
    except Exception:
        log.warning("api.port must be an integer; using default")
        port_int = ApiConfig.port

    origins = raw.get("allow_origins")
    if isinstance(origins, list):
        allow_origins = [str(o) for o in origins]
    else:
        allow_origins = ["*"]

    return ApiConfig(
        enabled=enabled,
        host=str(raw.get("host", ApiConfig.host)),
        port=port_int,
        allow_origins=allow_origins,
    )


def _load_voting(raw: Optional[Dict[str, Any]]) -> VotingConfig:
    if not isinstance(raw, dict):
        return VotingConfig()

    policy = raw.get("default_duplicate_policy", VotingConfig.default_duplicate_policy)
    if policy not in DUPLICATE_POLICIES:
        log.warning(f"Unknown default_duplicate_policy {policy!r}; using soft_block")
        policy = VotingConfig.default_duplicate_policy

    proxy = raw.get("allow_proxy_votes", VotingConfig.allow_proxy_votes)
    if not isinstance(proxy, bool):
        log.warning("voting.allow_proxy_votes must be boolean; defaulting to true")
        proxy = VotingConfig.allow_proxy_votes

    return VotingConfig(default_duplicate_policy=policy, allow_proxy_votes=proxy)


def _load_logging(raw: Optional[Dict[str, Any]]) -> LoggingConfig:
    if not isinstance(raw, dict):
        return LoggingConfig()
    return LoggingConfig(log_dir=str(raw.get("log_dir", LoggingConfig.log_dir)))


def _apply_env_overrides(config: PlannerConfig) -> PlannerConfig:
    db_path = os.getenv("TRIPBLOCKS_DB_PATH")
    if db_path:
        config.storage.db_path = db_path

    host = os.getenv("TRIPBLOCKS_API_HOST")
    if host:
        config.api.host = host

    port = os.getenv("TRIPBLOCKS_API_PORT")
    if port:
        try:
            config.api.port = int(port)
        except ValueError:
            log.warning(f"TRIPBLOCKS_API_PORT={port!r} is not an integer; ignoring")

    log_dir = os.getenv("TRIPBLOCKS_LOG_DIR")
    if log_dir:
        config.logging.log_dir = log_dir

    return config


def load_planner_config(raw: Optional[Dict[str, Any]] = None) -> PlannerConfig:
    """
    Build the runtime configuration.

    An explicit ``raw`` mapping skips the file read. Environment overrides
    are applied last in both cases.
    """
    raw = raw if raw is not None else _load_json(_CONFIG_PATH)
    if not isinstance(raw, dict):
        raw = {}

    config = PlannerConfig(
        storage=_load_storage(raw.get("storage")),
        api=_load_api(raw.get("api")),
        voting=_load_voting(raw.get("voting")),
        logging=_load_logging(raw.get("logging")),
    )
    return _apply_env_overrides(config)
