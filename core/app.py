import signal
import sys
import threading

from dotenv import load_dotenv

from core.config_loader import ConfigLoader
from runtime.version import as_string
from services.planner_api import PlannerApiServer
from shared.logging.logger import get_logger, set_log_dir
from shared.storage.paths import resolve_db_path
from shared.storage.planner import PlannerStore

log = get_logger("core.app")


def main(stop_event: threading.Event) -> int:
    # --------------------------------------------------
    # ENV
    # --------------------------------------------------
    load_dotenv()
    log.info("Environment variables loaded")
    log.info(f"{as_string()} booting")

    # --------------------------------------------------
    # CONFIG
    # --------------------------------------------------
    config, warnings = ConfigLoader().load()
    set_log_dir(config.logging.log_dir)
    if warnings:
        log.warning(f"Planner config loaded with {len(warnings)} validation warning(s)")

    # --------------------------------------------------
    # STORAGE
    # --------------------------------------------------
    db_path = resolve_db_path(config.storage.db_path)
    store = PlannerStore(db_path, busy_timeout=config.storage.busy_timeout_seconds)
    log.info(f"Planner store ready at {store.path}")

    # --------------------------------------------------
    # API
    # --------------------------------------------------
    api = PlannerApiServer(config, store)
    api.start()

    # --------------------------------------------------
    # BLOCK UNTIL SHUTDOWN SIGNAL
    # --------------------------------------------------
    stop_event.wait()

    log.info("Shutdown initiated")
    api.stop()
    log.info("TripBlocks stopped")
    return 0


# ----------------------------------------------------------------------
# SIGNAL HANDLING
# ----------------------------------------------------------------------

def _install_signal_handlers(stop_event: threading.Event) -> None:
    def _handler(signum, frame):
        log.info(f"Signal {signum} received")
        stop_event.set()

    try:
        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
    except ValueError:
        # Only the main thread may install handlers
        log.debug("Signal handlers not installed outside the main thread")


# ----------------------------------------------------------------------
# ENTRYPOINT
# ----------------------------------------------------------------------

def run() -> int:
    stop_event = threading.Event()
    _install_signal_handlers(stop_event)

    try:
        return main(stop_event)
    except KeyboardInterrupt:
        log.info("KeyboardInterrupt received; shutdown initiated")
        stop_event.set()
        return 0


if __name__ == "__main__":
    sys.exit(run())
