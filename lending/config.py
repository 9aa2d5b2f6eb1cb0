import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_key: str = os.getenv("API_KEY", "super-secret-key")

    # Database settings
    database_file: str = os.getenv("LIBRARY_DB_FILE", "library.db")

    # Paging and suggestions
    default_page_size: int = int(os.getenv("DEFAULT_PAGE_SIZE", "10"))
    max_page_size: int = int(os.getenv("MAX_PAGE_SIZE", "100"))
    suggestion_limit: int = int(os.getenv("SUGGESTION_LIMIT", "20"))

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Lending Library")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    debug: bool = _env_bool("DEBUG")


settings = Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for the API and CLI entry points."""
    level_name = (level or settings.log_level or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )
