"""Configuration management for the frame shop order service."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator

_config_logger = logging.getLogger(__name__)


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Python logging level name")
    file: str | None = Field(default=None, description="Optional log file path")


class StorageSettings(BaseModel):
    sqlite_path: str = Field(default="./data/frameshop.sqlite")
    sqlite_wal: bool = Field(default=True)
    query_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        le=120,
        description="Upper bound for the duplicate-detection lookback queries.",
    )


class OrderingSettings(BaseModel):
    override_code: SecretStr | None = Field(
        default=None,
        description="Management override secret. When unset every override is denied.",
    )
    duplicate_window_hours: int = Field(default=24, ge=1, le=24 * 14)
    max_daily_orders_per_vendor: int = Field(default=5, ge=1, le=1000)
    similarity_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    catalog_path: str | None = Field(
        default=None,
        description="Optional YAML material pattern catalog; built-in patterns when unset.",
    )

    @field_validator("override_code", mode="before")
    @classmethod
    def _blank_override_is_unset(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class WorkflowSettings(BaseModel):
    enforce_transitions: bool = Field(
        default=False,
        description="Reject status changes that are not in the allowed-transition table.",
    )


class NotificationSettings(BaseModel):
    queue_size: int = Field(default=100, ge=1, le=10_000)
    max_retries: int = Field(default=2, ge=0, le=10)
    retry_delay_seconds: float = Field(default=0.5, ge=0.0, le=60.0)
    webhook_url: str | None = Field(default=None)
    timeout_seconds: float = Field(default=10.0, gt=0, le=120)

    @field_validator("webhook_url")
    @classmethod
    def _validate_webhook_url(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if not value:
            return None
        if not value.lower().startswith(("http://", "https://")):
            raise ValueError("webhook_url must be an http(s) URL")
        return value


class ServerSettings(BaseModel):
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000, ge=1024, le=65535)
    http_enable_cors: bool = Field(default=False)
    http_allowed_origins: tuple[str, ...] = Field(default=())


class Settings(BaseModel):
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    ordering: OrderingSettings = Field(default_factory=OrderingSettings)
    workflow: WorkflowSettings = Field(default_factory=WorkflowSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)


ENV_KEYS = {
    "host": "FRAMESHOP_HOST",
    "port": "FRAMESHOP_PORT",
    "log_level": "LOG_LEVEL",
    "log_file": "LOG_FILE",
    "sqlite_path": "SQLITE_PATH",
    "sqlite_wal": "SQLITE_WAL",
    "query_timeout": "STORE_QUERY_TIMEOUT_SECONDS",
    "override_code": "FRAMESHOP_OVERRIDE_CODE",
    "window_hours": "DUPLICATE_WINDOW_HOURS",
    "vendor_cap": "MAX_DAILY_ORDERS_PER_VENDOR",
    "similarity": "MATERIAL_SIMILARITY_THRESHOLD",
    "catalog_path": "MATERIAL_CATALOG_PATH",
    "enforce_transitions": "WORKFLOW_ENFORCE_TRANSITIONS",
    "notify_queue_size": "NOTIFY_QUEUE_SIZE",
    "notify_max_retries": "NOTIFY_MAX_RETRIES",
    "notify_retry_delay": "NOTIFY_RETRY_DELAY_SECONDS",
    "notify_webhook_url": "NOTIFY_WEBHOOK_URL",
    "notify_timeout": "NOTIFY_TIMEOUT_SECONDS",
}

_TRUE_VALUES = frozenset({"1", "true", "yes"})


def _split_csv_preserve_case(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _resolve_path(path: str) -> str:
    candidate = Path(path)
    root = _project_root().resolve()
    if candidate.is_absolute():
        resolved = candidate.resolve()
    else:
        resolved = (root / candidate).resolve()
    if not resolved.is_relative_to(root):
        raise ValueError(f"Path traversal detected: '{path}' resolves outside project root")
    return str(resolved)


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        _config_logger.warning(
            "Invalid integer value for %s: %r, using default %d", key, value, default
        )
        return default


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        _config_logger.warning(
            "Invalid float value for %s: %r, using default %s", key, value, default
        )
        return default


def load_settings() -> Settings:
    """Load configuration and cache the result."""

    return _load_settings_cached()


@lru_cache(maxsize=1)
def _load_settings_cached() -> Settings:
    load_dotenv(dotenv_path=_project_root() / ".env")
    log_file_env = os.getenv(ENV_KEYS["log_file"])
    catalog_path_env = os.getenv(ENV_KEYS["catalog_path"])

    settings_data: dict[str, object] = {
        "server": {
            "host": os.getenv(ENV_KEYS["host"], ServerSettings().host),
            "port": _env_int(ENV_KEYS["port"], ServerSettings().port),
            "http_enable_cors": _env_bool(
                "HTTP_ENABLE_CORS",
                ServerSettings().http_enable_cors,
            ),
            "http_allowed_origins": tuple(
                _split_csv_preserve_case(os.getenv("HTTP_ALLOWED_ORIGINS"))
            ),
        },
        "logging": {
            "level": os.getenv(ENV_KEYS["log_level"], LoggingSettings().level),
            "file": _resolve_path(log_file_env) if log_file_env else None,
        },
        "storage": {
            "sqlite_path": _resolve_path(
                os.getenv(ENV_KEYS["sqlite_path"], StorageSettings().sqlite_path)
            ),
            "sqlite_wal": _env_bool(ENV_KEYS["sqlite_wal"], StorageSettings().sqlite_wal),
            "query_timeout_seconds": _env_float(
                ENV_KEYS["query_timeout"],
                StorageSettings().query_timeout_seconds,
            ),
        },
        "ordering": {
            "override_code": os.getenv(ENV_KEYS["override_code"]),
            "duplicate_window_hours": _env_int(
                ENV_KEYS["window_hours"],
                OrderingSettings().duplicate_window_hours,
            ),
            "max_daily_orders_per_vendor": _env_int(
                ENV_KEYS["vendor_cap"],
                OrderingSettings().max_daily_orders_per_vendor,
            ),
            "similarity_threshold": _env_float(
                ENV_KEYS["similarity"],
                OrderingSettings().similarity_threshold,
            ),
            "catalog_path": _resolve_path(catalog_path_env) if catalog_path_env else None,
        },
        "workflow": {
            "enforce_transitions": _env_bool(
                ENV_KEYS["enforce_transitions"],
                WorkflowSettings().enforce_transitions,
            ),
        },
        "notifications": {
            "queue_size": _env_int(
                ENV_KEYS["notify_queue_size"],
                NotificationSettings().queue_size,
            ),
            "max_retries": _env_int(
                ENV_KEYS["notify_max_retries"],
                NotificationSettings().max_retries,
            ),
            "retry_delay_seconds": _env_float(
                ENV_KEYS["notify_retry_delay"],
                NotificationSettings().retry_delay_seconds,
            ),
            "webhook_url": os.getenv(ENV_KEYS["notify_webhook_url"]),
            "timeout_seconds": _env_float(
                ENV_KEYS["notify_timeout"],
                NotificationSettings().timeout_seconds,
            ),
        },
    }

    try:
        settings = Settings.model_validate(settings_data)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc

    if settings.ordering.override_code is None:
        _config_logger.warning(
            "%s is not set; management overrides will be denied",
            ENV_KEYS["override_code"],
        )

    Path(settings.storage.sqlite_path).parent.mkdir(parents=True, exist_ok=True)

    return settings
