# ==============================================
# Configuration Management
# ==============================================
#
# PURPOSE:
#   Load and validate all configuration from environment
#   variables / .env file. Provides typed config objects
#   to all other modules.
#
# CLASSES:
# --------
# - StorageConfig (dataclass)
#     backend: str       (default "mongo"; "memory" for tests/demos)
#
# - MongoConfig (dataclass)
#     host: str          (default "localhost")
#     port: int          (default 27017)
#     user: str | None   (default None)
#     password: str | None (default None)
#     uri: str | None    (default None; overrides host/port/user/password)
#     server_selection_timeout_ms: int (default 5000)
#
# - InferenceConfig (dataclass)
#     sample_size: int               (default 100)
#     max_depth: int                 (default 5)
#     sampling_strategy: str         (default "natural")
#     detect_string_timestamps: bool (default True)
#     schema_ttl_seconds: float | None (default None = never expires)
#
# - AllocatorConfig (dataclass)
#     reject_duplicates: bool    (default False)
#     name_prefix: str           (default "db")
#
# - ServerConfig (dataclass)
#     host, port, cors_origins, request_timeout_seconds,
#     page_size, max_page_size, log_level
#
# - AppConfig (dataclass)
#     storage / mongo / inference / allocator / server
#
# FUNCTION:
# ---------
# - get_config() -> AppConfig
#     Load .env using python-dotenv, construct AppConfig.
#     Returns the same singleton on repeated calls.
#
# - reset_config() -> None
#     Drop the singleton so the next get_config() re-reads the env.
#
# USAGE:
# ------
#   from schemagate.config import get_config
#   config = get_config()
#   print(config.mongo.host)
#   print(config.inference.sample_size)
#
# ==============================================

import os
from dataclasses import dataclass, field
from typing import List, Optional
from pathlib import Path

from dotenv import load_dotenv


SAMPLING_STRATEGIES = ("natural", "recent", "random")

DEFAULT_CORS_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:3000",
    "http://localhost:8081",
]


@dataclass
class StorageConfig:
    """Which storage driver backs the gateway."""
    backend: str = "mongo"


@dataclass
class MongoConfig:
    """MongoDB connection configuration."""
    host: str = "localhost"
    port: int = 27017
    user: Optional[str] = None
    password: Optional[str] = None
    uri: Optional[str] = None
    server_selection_timeout_ms: int = 5000


@dataclass
class InferenceConfig:
    """Bounds for schema inference by sampling."""
    sample_size: int = 100
    max_depth: int = 5
    sampling_strategy: str = "natural"
    detect_string_timestamps: bool = True
    schema_ttl_seconds: Optional[float] = None


@dataclass
class AllocatorConfig:
    """Database allocation policy."""
    reject_duplicates: bool = False
    name_prefix: str = "db"


@dataclass
class ServerConfig:
    """HTTP surface configuration."""
    host: str = "0.0.0.0"
    port: int = 9081
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    request_timeout_seconds: float = 5.0
    page_size: int = 50
    max_page_size: int = 1000
    log_level: str = "INFO"


@dataclass
class AppConfig:
    """Main application configuration."""
    storage: StorageConfig = field(default_factory=StorageConfig)
    mongo: MongoConfig = field(default_factory=MongoConfig)
    inference: InferenceConfig = field(default_factory=InferenceConfig)
    allocator: AllocatorConfig = field(default_factory=AllocatorConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


# Singleton instance
_config_instance: Optional[AppConfig] = None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def get_config() -> AppConfig:
    """
    Load configuration from environment variables / .env file.
    Returns the same singleton instance on repeated calls.

    Returns:
        AppConfig: Application configuration

    Raises:
        ValueError: If SAMPLING_STRATEGY or STORAGE_BACKEND is unknown.
    """
    global _config_instance

    if _config_instance is not None:
        return _config_instance

    # Load .env file from project root
    env_path = Path(__file__).parent.parent / ".env"
    load_dotenv(dotenv_path=env_path)

    storage_config = StorageConfig(
        backend=os.getenv("STORAGE_BACKEND", "mongo").strip().lower()
    )
    if storage_config.backend not in ("mongo", "memory"):
        raise ValueError(f"Unknown STORAGE_BACKEND: {storage_config.backend!r}")

    # Build MongoDB configuration
    mongo_config = MongoConfig(
        host=os.getenv("MONGO_HOST", "localhost"),
        port=int(os.getenv("MONGO_PORT", "27017")),
        user=os.getenv("MONGO_USER") or None,
        password=os.getenv("MONGO_PASSWORD") or None,
        uri=os.getenv("MONGO_URI") or None,
        server_selection_timeout_ms=int(os.getenv("MONGO_SERVER_SELECTION_TIMEOUT_MS", "5000"))
    )

    ttl = os.getenv("SCHEMA_TTL_SECONDS")
    inference_config = InferenceConfig(
        sample_size=int(os.getenv("SCHEMA_SAMPLE_SIZE", "100")),
        max_depth=int(os.getenv("SCHEMA_MAX_DEPTH", "5")),
        sampling_strategy=os.getenv("SAMPLING_STRATEGY", "natural").strip().lower(),
        detect_string_timestamps=_env_bool("DETECT_STRING_TIMESTAMPS", True),
        schema_ttl_seconds=float(ttl) if ttl else None
    )
    if inference_config.sampling_strategy not in SAMPLING_STRATEGIES:
        raise ValueError(
            f"Unknown SAMPLING_STRATEGY: {inference_config.sampling_strategy!r}"
        )

    allocator_config = AllocatorConfig(
        reject_duplicates=_env_bool("REJECT_DUPLICATE_DATABASES", False),
        name_prefix=os.getenv("DATABASE_NAME_PREFIX", "db")
    )

    server_config = ServerConfig(
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "9081")),
        cors_origins=_env_list("CORS_ORIGINS", DEFAULT_CORS_ORIGINS),
        request_timeout_seconds=float(os.getenv("REQUEST_TIMEOUT_SECONDS", "5.0")),
        page_size=int(os.getenv("PAGE_SIZE", "50")),
        max_page_size=int(os.getenv("MAX_PAGE_SIZE", "1000")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper()
    )

    # Build main application configuration
    _config_instance = AppConfig(
        storage=storage_config,
        mongo=mongo_config,
        inference=inference_config,
        allocator=allocator_config,
        server=server_config
    )

    return _config_instance


def reset_config() -> None:
    """Forget the cached configuration (used by tests)."""
    global _config_instance
    _config_instance = None
