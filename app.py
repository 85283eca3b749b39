"""
app.py
──────
Gauge Status Monitor: application entry point.

Startup sequence:
  1. Configure logging from LOG_LEVEL
  2. Initialize the SQLite store and, on an empty database, seed demo data
  3. Load the machine status reset schedule and start its timer thread
  4. Run until interrupted
"""
import logging
import threading

from config.settings import settings
from src.data.seed import seed_demo_data
from src.data.store import get_store
from src.services.scheduler import MachineStatusScheduler

logger = logging.getLogger("gauge_monitor")


def main() -> None:
    # ── 1. Logging ────────────────────────────────────────────────────────────
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # ── 2. Store ──────────────────────────────────────────────────────────────
    logger.info("Initializing database at %s", settings.DATABASE_URL)
    store = get_store()
    if settings.SEED_DEMO_DATA:
        seed_demo_data(store)
    logger.info("Database ready.")

    # ── 3. Scheduler ──────────────────────────────────────────────────────────
    scheduler = MachineStatusScheduler(store=store)
    scheduler.initialize()
    scheduler.start()

    # ── 4. Run ────────────────────────────────────────────────────────────────
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        scheduler.stop()
        store.close()


if __name__ == "__main__":
    main()
