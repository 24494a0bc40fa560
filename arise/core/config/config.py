"""
Static process settings for ARISE, read from the environment.

Only things fixed at startup live here: the database URL and pool sizing,
the environment name and logging switches. Game balance (curve, bonuses,
debuff) is tunable at runtime and lives in `ConfigManager`.

A `.env` file in the working directory is honored through python-dotenv.
`Config.load()` runs on import; tests call it again after changing
`os.environ`.

Environment Variables
---------------------
DATABASE_URL                    sqlite+aiosqlite:///./arise.db
DATABASE_POOL_SIZE              10 (1..200)
DATABASE_MAX_OVERFLOW           10 (0..200)
DATABASE_POOL_RECYCLE           1800 s
DATABASE_POOL_TIMEOUT           30 s
DATABASE_STATEMENT_TIMEOUT_MS   30000 (PostgreSQL only)
DATABASE_ECHO                   false
ENVIRONMENT                     development | testing | staging | production
DEBUG, LOG_LEVEL, LOG_JSON, LOG_TO_FILE, LOGS_DIR
"""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

load_dotenv()

_TRUE = frozenset({"true", "yes", "1", "on"})
_FALSE = frozenset({"false", "no", "0", "off"})

ASYNC_DRIVERS = ("postgresql+asyncpg://", "sqlite+aiosqlite://")


class Environment(Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def from_string(cls, value: str) -> "Environment":
        """Unknown names fall back to development."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            # structured logging is not set up this early
            logging.warning(f"Unknown ENVIRONMENT '{value}', using development")
            return cls.DEVELOPMENT


class Config:
    """Class-level settings; never instantiated."""

    DATABASE_URL: str = "sqlite+aiosqlite:///./arise.db"
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_POOL_RECYCLE: int = 1800
    DATABASE_POOL_TIMEOUT: int = 30
    DATABASE_STATEMENT_TIMEOUT_MS: int = 30_000
    DATABASE_ECHO: bool = False

    ENVIRONMENT: str = Environment.DEVELOPMENT.value
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: Optional[bool] = None  # None: JSON only in production
    LOG_TO_FILE: bool = True

    PROJECT_ROOT = Path(__file__).resolve().parents[3]
    LOGS_DIR = PROJECT_ROOT / "logs"
    CONFIG_DIR = PROJECT_ROOT / "config"

    # -------------------------------------------------------------------------
    # Parsing helpers
    # -------------------------------------------------------------------------

    @classmethod
    def _safe_int(
        cls,
        key: str,
        default: int,
        min_val: Optional[int] = None,
        max_val: Optional[int] = None,
    ) -> int:
        """Integer from the environment; malformed or out-of-range values use the default."""
        raw = os.getenv(key)
        if raw is None:
            return default
        try:
            value = int(raw)
        except ValueError:
            logging.warning(f"{key}='{raw}' is not an integer, using {default}")
            return default
        if (min_val is not None and value < min_val) or (
            max_val is not None and value > max_val
        ):
            logging.warning(f"{key}={value} is out of range, using {default}")
            return default
        return value

    @classmethod
    def _safe_bool(cls, key: str, default: Optional[bool]) -> Optional[bool]:
        raw = os.getenv(key)
        if raw is None:
            return default
        normalized = raw.strip().lower()
        if normalized in _TRUE:
            return True
        if normalized in _FALSE:
            return False
        logging.warning(f"{key}='{raw}' is not a boolean, using {default}")
        return default

    @classmethod
    def _safe_str(cls, key: str, default: str) -> str:
        value = os.getenv(key)
        return value if value else default

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    @classmethod
    def load(cls) -> None:
        cls.DATABASE_URL = cls._safe_str("DATABASE_URL", "sqlite+aiosqlite:///./arise.db")
        cls.DATABASE_POOL_SIZE = cls._safe_int("DATABASE_POOL_SIZE", 10, 1, 200)
        cls.DATABASE_MAX_OVERFLOW = cls._safe_int("DATABASE_MAX_OVERFLOW", 10, 0, 200)
        cls.DATABASE_POOL_RECYCLE = cls._safe_int("DATABASE_POOL_RECYCLE", 1800, 60)
        cls.DATABASE_POOL_TIMEOUT = cls._safe_int("DATABASE_POOL_TIMEOUT", 30, 1, 600)
        cls.DATABASE_STATEMENT_TIMEOUT_MS = cls._safe_int(
            "DATABASE_STATEMENT_TIMEOUT_MS", 30_000, 100
        )
        cls.DATABASE_ECHO = cls._safe_bool("DATABASE_ECHO", False)

        cls.ENVIRONMENT = Environment.from_string(
            cls._safe_str("ENVIRONMENT", Environment.DEVELOPMENT.value)
        ).value
        cls.DEBUG = cls._safe_bool("DEBUG", False)
        cls.LOG_LEVEL = cls._safe_str("LOG_LEVEL", "INFO").upper()
        cls.LOG_JSON = cls._safe_bool("LOG_JSON", None)
        cls.LOG_TO_FILE = cls._safe_bool("LOG_TO_FILE", True)
        cls.LOGS_DIR = Path(cls._safe_str("LOGS_DIR", str(cls.PROJECT_ROOT / "logs")))

    @classmethod
    def validate(cls) -> None:
        """
        Raises:
            ConfigurationError: DATABASE_URL does not name an async driver
        """
        from arise.core.exceptions import ConfigurationError

        if not cls.DATABASE_URL.startswith(ASYNC_DRIVERS):
            raise ConfigurationError(
                "DATABASE_URL",
                f"must start with one of {', '.join(ASYNC_DRIVERS)}",
            )
        if cls.is_production() and cls.DATABASE_URL.startswith("sqlite"):
            logging.warning("SQLite configured in production; XP amounts are stored as text")

    @classmethod
    def is_production(cls) -> bool:
        return cls.ENVIRONMENT == Environment.PRODUCTION.value

    @classmethod
    def is_testing(cls) -> bool:
        return cls.ENVIRONMENT == Environment.TESTING.value

    @classmethod
    def get_config_summary(cls) -> Dict[str, Any]:
        """Settings that are safe to log (no credentials)."""
        return {
            "environment": cls.ENVIRONMENT,
            "debug": cls.DEBUG,
            "log_level": cls.LOG_LEVEL,
            "database_scheme": cls.DATABASE_URL.split(":", 1)[0],
            "database_pool_size": cls.DATABASE_POOL_SIZE,
        }


Config.load()
