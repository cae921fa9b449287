"""
Configuration for the Mobile Sebaa API.

Values come from environment variables.  A ``.env`` file in the working
directory is loaded first so local development does not need exported
variables; real environment variables always win.
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import quote_plus

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    """Typed view of environment variables."""

    port: int
    db_user: str
    db_password: str
    db_host: str
    db_name: str
    db_app_name: str
    mongodb_uri: str
    page_size: int
    users_sort_field: str
    log_level: str
    cors_origins: tuple

    @property
    def database_uri(self) -> str:
        if self.mongodb_uri:
            return self.mongodb_uri
        return (
            f"mongodb+srv://{quote_plus(self.db_user)}:{quote_plus(self.db_password)}"
            f"@{self.db_host}/?retryWrites=true&w=majority&appName={self.db_app_name}"
        )


def _int(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@lru_cache
def get_settings() -> Settings:
    """Read the current environment and build a Settings instance."""
    load_dotenv(override=False)

    origins = os.getenv("CORS_ORIGINS", "*")
    return Settings(
        port=_int(os.getenv("PORT"), 5000),
        db_user=os.getenv("DB_USER", ""),
        db_password=os.getenv("DB_PASSWORD", ""),
        db_host=os.getenv("DB_HOST", "cluster0.sq2afw1.mongodb.net"),
        db_name=os.getenv("DB_NAME", "mobile-sebaa"),
        db_app_name=os.getenv("DB_APP_NAME", "Cluster0"),
        mongodb_uri=os.getenv("MONGODB_URI", ""),
        page_size=max(_int(os.getenv("PAGE_SIZE"), 10), 1),
        users_sort_field=os.getenv("USERS_SORT_FIELD") or "id",
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()) or ("*",),
    )
