import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv


BACKEND_MEMORY = "memory"
BACKEND_MONGO = "mongo"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def _get_env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:

    backend: str = BACKEND_MEMORY
    mongo_url: str = "mongodb://localhost:27017"
    mongo_db_name: str = "chatstore"
    mongo_collection: str = "nodes"
    redis_url: Optional[str] = None
    # seconds, applied to every single store call
    store_timeout: float = 10.0
    retry_attempts: int = 3
    retry_base_delay: float = 0.1
    retry_max_delay: float = 2.0
    serialize_writes: bool = True
    log_level: str = "INFO"


def load_settings() -> Settings:
    load_dotenv()
    backend = os.getenv("CHATSTORE_BACKEND", BACKEND_MEMORY).strip().lower()
    if backend not in {BACKEND_MEMORY, BACKEND_MONGO}:
        raise RuntimeError(f"Unknown CHATSTORE_BACKEND: {backend}")
    return Settings(
        backend=backend,
        mongo_url=os.getenv("MONGO_URL", "mongodb://localhost:27017"),
        mongo_db_name=os.getenv("MONGO_DB_NAME", "chatstore"),
        mongo_collection=os.getenv("MONGO_COLLECTION", "nodes"),
        redis_url=os.getenv("REDIS_URL") or None,
        store_timeout=_get_env_float("CHATSTORE_STORE_TIMEOUT", 10.0),
        retry_attempts=max(1, _get_env_int("CHATSTORE_RETRY_ATTEMPTS", 3)),
        retry_base_delay=_get_env_float("CHATSTORE_RETRY_BASE_DELAY", 0.1),
        retry_max_delay=_get_env_float("CHATSTORE_RETRY_MAX_DELAY", 2.0),
        serialize_writes=_get_env_bool("CHATSTORE_SERIALIZE_WRITES", True),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Set up root logging for applications embedding the store."""

    logging.basicConfig(
        level=level or get_settings().log_level,
        format=LOG_FORMAT,
        force=True,
    )
