import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

_LOGGERS = {}
_LOG_DIR_OVERRIDE: Optional[Path] = None

_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _log_dir() -> Path:
    # Resolved per logger so TRIPBLOCKS_LOG_DIR set by load_dotenv() is honoured
    path = _LOG_DIR_OVERRIDE or Path(os.getenv("TRIPBLOCKS_LOG_DIR", "logs"))
    path.mkdir(parents=True, exist_ok=True)
    return path


def _file_handler(runtime: str, formatter: logging.Formatter) -> logging.FileHandler:
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    logfile = _log_dir() / f"{runtime}-{timestamp}.log"

    handler = logging.FileHandler(logfile, encoding="utf-8")
    handler.setFormatter(formatter)
    return handler


def get_logger(
    name: str,
    *,
    runtime: str = "tripblocks",
) -> logging.Logger:
    """
    Create or retrieve a named logger.

    Parameters:
    - name: logger namespace (e.g. core.commitment.resolver, services.planner_api)
    - runtime: log file prefix (tripblocks | api | future runtimes)
    """
    cache_key = f"{runtime}:{name}"
    if cache_key in _LOGGERS:
        return _LOGGERS[cache_key]

    logger = logging.getLogger(cache_key)
    logger.setLevel(logging.DEBUG)

    formatter = logging.Formatter(_FORMAT)

    # ------------------------------
    # Console handler
    # ------------------------------
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    # ------------------------------
    # File handler (one per run)
    # ------------------------------
    logger.addHandler(_file_handler(runtime, formatter))

    logger.propagate = False
    _LOGGERS[cache_key] = logger

    return logger


def set_log_dir(path: Path | str) -> Path:
    """
    Point file logging at ``path``.

    Loggers created at import time are moved to a fresh file in the new
    directory; later loggers write there directly.
    """
    global _LOG_DIR_OVERRIDE
    _LOG_DIR_OVERRIDE = Path(path)

    for cache_key, logger in _LOGGERS.items():
        runtime = cache_key.split(":", 1)[0]
        for handler in list(logger.handlers):
            if isinstance(handler, logging.FileHandler):
                logger.removeHandler(handler)
                handler.close()
        logger.addHandler(_file_handler(runtime, logging.Formatter(_FORMAT)))

    return _log_dir()
