"""
Configuration for the X-Ray SDK

Read from the environment (a .env file is loaded if present):

    XRAY_STORE               memory | sql (default: sql)
    XRAY_DATABASE_URL        default: sqlite+aiosqlite:///./xray.db
    XRAY_LOG_LEVEL           default: INFO
    XRAY_COLLECTOR_URL       if set, completed executions are exported there
    XRAY_COLLECTOR_API_KEY   bearer token for the collector
    XRAY_COLLECTOR_TIMEOUT   seconds (default: 5.0)
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from .errors import ValidationError
from .store import EventStore, InMemoryStore, SQLStore

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./xray.db"
STORE_BACKENDS = ("memory", "sql")


@dataclass
class XRayConfig:
    store: str = "sql"
    database_url: str = DEFAULT_DATABASE_URL
    log_level: str = "INFO"
    collector_url: Optional[str] = None
    collector_api_key: Optional[str] = None
    collector_timeout: float = 5.0

    def __post_init__(self):
        if self.store not in STORE_BACKENDS:
            raise ValidationError(
                f"XRAY_STORE must be one of {', '.join(STORE_BACKENDS)}, got {self.store!r}"
            )


def load_config(environ: Optional[Mapping[str, str]] = None) -> XRayConfig:
    """
    Build an XRayConfig from `environ` (os.environ after loading .env by default).
    """
    if environ is None:
        load_dotenv()  # Load .env file if present
        environ = os.environ

    timeout = environ.get("XRAY_COLLECTOR_TIMEOUT", "5.0")
    try:
        collector_timeout = float(timeout)
    except ValueError as exc:
        raise ValidationError(f"XRAY_COLLECTOR_TIMEOUT must be a number, got {timeout!r}") from exc

    return XRayConfig(
        store=environ.get("XRAY_STORE", "sql").strip().lower(),
        database_url=environ.get("XRAY_DATABASE_URL") or DEFAULT_DATABASE_URL,
        log_level=environ.get("XRAY_LOG_LEVEL", "INFO"),
        collector_url=environ.get("XRAY_COLLECTOR_URL") or None,
        collector_api_key=environ.get("XRAY_COLLECTOR_API_KEY") or None,
        collector_timeout=collector_timeout,
    )


def create_store(config: XRayConfig) -> EventStore:
    """A new store for the configured backend"""
    if config.store == "memory":
        return InMemoryStore()
    return SQLStore(config.database_url)
