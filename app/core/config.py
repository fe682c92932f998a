# app/core/config.py
"""Environment driven settings for the database pool, report retries and logging."""

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./agency_reports.db")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
REPORT_POOL_RETRY_ATTEMPTS = int(os.getenv("REPORT_POOL_RETRY_ATTEMPTS", "3"))

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@dataclass(frozen=True)
class PoolSettings:
    """Connection pool and timeout policy shared by every gateway engine."""

    pool_size: int = 20
    max_overflow: int = 0
    pool_timeout: float = 2.0
    pool_recycle: int = 1800
    statement_timeout_ms: int = 30000
    retry_after: float = 0.5

    @classmethod
    def from_env(cls) -> "PoolSettings":
        return cls(
            pool_size=int(os.getenv("DB_POOL_SIZE", "20")),
            max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "0")),
            pool_timeout=float(os.getenv("DB_POOL_TIMEOUT_SECONDS", "2.0")),
            pool_recycle=int(os.getenv("DB_POOL_RECYCLE_SECONDS", "1800")),
            statement_timeout_ms=int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "30000")),
            retry_after=float(os.getenv("POOL_RETRY_AFTER_SECONDS", "0.5")),
        )


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Install the application log format once; repeated calls are no-ops."""
    root = logging.getLogger()
    if root.handlers:
        return
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
