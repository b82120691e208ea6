"""dnsprices configuration management.

Loads configuration from environment variables with sensible defaults.
The command line may override the store location and the city identifier.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()


@dataclass
class DBConfig:
    """Database connection configuration."""

    url: str | None = None
    echo: bool = False  # SQL logging


@dataclass
class AppConfig:
    """Root application configuration."""

    db: DBConfig = field(default_factory=DBConfig)
    city_id: int | None = None  # Externally supplied city identifier
    log_level: str = "INFO"
    log_format: str = "console"  # console or json

    @classmethod
    def from_env(cls) -> AppConfig:
        """Load configuration from environment variables.

        Optional (with defaults):
        - DATABASE_URL: store location, path or SQLAlchemy URL (default: unset)
        - DB_ECHO: echo SQL statements (default: "false")
        - CITY_ID: identifier to use for the run's city (default: assigned by store)
        - LOG_LEVEL: logging verbosity (default: "INFO")
        - LOG_FORMAT: "console" or "json" (default: "console")

        Raises:
            ValueError: If CITY_ID is not an integer
        """
        city_id = os.getenv("CITY_ID")
        try:
            city_id_value = int(city_id) if city_id else None
        except ValueError:
            raise ValueError(f"CITY_ID must be an integer, got '{city_id}'") from None

        return cls(
            db=DBConfig(
                url=os.getenv("DATABASE_URL") or None,
                echo=os.getenv("DB_ECHO", "false").lower() == "true",
            ),
            city_id=city_id_value,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_format=os.getenv("LOG_FORMAT", "console").lower(),
        )


def resolve_database_url(location: str) -> str:
    """Turn a store location into an async SQLAlchemy URL.

    A plain filesystem path becomes a SQLite file served by aiosqlite;
    anything that already looks like a URL is returned unchanged.
    """
    if "://" in location:
        return location
    return f"sqlite+aiosqlite:///{location}"


# Singleton instance (lazy-loaded)
_config: AppConfig | None = None


def get_config() -> AppConfig:
    """Get or create singleton AppConfig instance from environment."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def reset_config() -> None:
    """Forget the cached configuration so the next call re-reads the environment."""
    global _config
    _config = None
