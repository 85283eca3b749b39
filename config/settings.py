"""
config/settings.py
──────────────────
Application configuration loaded from environment variables.
"""
import os
from dataclasses import dataclass


@dataclass
class Settings:
    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Database (SQLite path, ":memory:" for tests)
    DATABASE_URL: str = os.getenv("DATABASE_URL", "gauge_monitor.db")

    # Photo evidence attached to readings
    UPLOADS_DIR: str = os.getenv("UPLOADS_DIR", "public/uploads")
    UPLOADS_URL_PREFIX: str = os.getenv("UPLOADS_URL_PREFIX", "/uploads/")
    MAX_IMAGE_BYTES: int = int(os.getenv("MAX_IMAGE_BYTES", str(2 * 1024 * 1024)))

    # Wall clock used by the daily machine status reset
    TIMEZONE: str = os.getenv("TIMEZONE", "America/New_York")

    # Initial reset schedule, used only when the database holds none
    MACHINE_RESET_ENABLED: bool = os.getenv("MACHINE_RESET_ENABLED", "false").lower() == "true"
    MACHINE_RESET_TIME: str = os.getenv("MACHINE_RESET_TIME", "06:00")

    # Dashboards flag a station as stale past this window
    FRESHNESS_WINDOW_HOURS: int = int(os.getenv("FRESHNESS_WINDOW_HOURS", "24"))

    # Demo data
    SEED_DEMO_DATA: bool = os.getenv("SEED_DEMO_DATA", "true").lower() == "true"
    SIMULATION_SEED: int = int(os.getenv("SIMULATION_SEED", "42"))
    HISTORY_DAYS: int = int(os.getenv("HISTORY_DAYS", "7"))


settings = Settings()
