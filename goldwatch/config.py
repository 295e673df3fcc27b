"""
Configuration loading and validation.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

KNOWN_SOURCES = ("emasku", "pegadaian", "metals")


class ConfigValidationError(Exception):
    """Raised when configuration is invalid."""

    pass


@dataclass
class DatabaseConfig:
    """Database configuration."""

    path: str = "data/goldwatch.db"


@dataclass
class SourceUrlsConfig:
    """Upstream endpoints."""

    emasku: str = "https://emasku.co.id/Harga_emas"
    pegadaian: str = "https://www.pegadaian.co.id/harga-emas"
    metals: str = "https://api.metals.live/v1/spot"


@dataclass
class SourcesConfig:
    """Price source configuration."""

    order: list[str] = field(default_factory=lambda: list(KNOWN_SOURCES))
    timeout_seconds: float = 15.0
    cache_ttl_minutes: float = 15.0
    stale_after_hours: float = 3.0
    usd_to_idr: float = 15500.0
    troy_ounce_grams: float = 31.1034768
    spread_pct: float = 3.0
    urls: SourceUrlsConfig = field(default_factory=SourceUrlsConfig)


@dataclass
class ScheduleConfig:
    """Schedule configuration."""

    timezone: str = "Asia/Jakarta"
    price_refresh: str = "0 * * * *"
    daily_check: str = "5 * * * *"
    whatsapp_sync_seconds: int = 60
    refresh_on_startup: bool = True


@dataclass
class TelegramNotificationConfig:
    """Telegram bot settings."""

    bot_token: str = ""
    api_base: str = "https://api.telegram.org"


@dataclass
class WhatsAppNotificationConfig:
    """WhatsApp gateway settings."""

    gateway_url: str = "http://localhost:3000"
    session: str = "default"
    api_key: str = ""


@dataclass
class NotificationsConfig:
    """Notifications configuration."""

    telegram: TelegramNotificationConfig = field(
        default_factory=TelegramNotificationConfig
    )
    whatsapp: WhatsAppNotificationConfig = field(
        default_factory=WhatsAppNotificationConfig
    )


@dataclass
class ApiConfig:
    """HTTP server configuration."""

    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass
class AdvancedConfig:
    """Advanced configuration."""

    log_level: str = "INFO"
    alert_cooldown_hours: float = 24
    daily_cooldown_hours: float = 1

    def default_frequency(self, alert_type: str) -> float:
        """Default re-trigger spacing for a new alert of this type."""
        if getattr(alert_type, "value", alert_type) == "daily":
            return self.daily_cooldown_hours
        return self.alert_cooldown_hours


@dataclass
class AppConfig:
    """Main application configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    sources: SourcesConfig = field(default_factory=SourcesConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    advanced: AdvancedConfig = field(default_factory=AdvancedConfig)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.schedule.timezone)


def _substitute_env_vars(value: Any) -> Any:
    """Substitute environment variables in string values."""
    if isinstance(value, str):
        # Match ${VAR_NAME} pattern
        pattern = r"\$\{([^}]+)\}"
        matches = re.findall(pattern, value)
        for var_name in matches:
            env_value = os.environ.get(var_name, "")
            value = value.replace(f"${{{var_name}}}", env_value)
        return value
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _validate_timezone(timezone: str) -> None:
    """Validate timezone string."""
    if not timezone:
        raise ConfigValidationError("Timezone cannot be empty")
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigValidationError(f"Unknown timezone: {timezone}")


def _validate_sources(sources: dict[str, Any]) -> None:
    """Validate source ordering and numeric constants."""
    order = sources.get("order", list(KNOWN_SOURCES))
    if not order:
        raise ConfigValidationError("At least one price source is required")
    unknown = [name for name in order if name not in KNOWN_SOURCES]
    if unknown:
        raise ConfigValidationError(f"Unknown price sources: {', '.join(unknown)}")
    if len(set(order)) != len(order):
        raise ConfigValidationError("Price sources may only be listed once")

    for key in ("timeout_seconds", "cache_ttl_minutes", "usd_to_idr", "troy_ounce_grams"):
        if key in sources and float(sources[key]) <= 0:
            raise ConfigValidationError(f"sources.{key} must be positive")
    if "spread_pct" in sources and not 0 <= float(sources["spread_pct"]) < 100:
        raise ConfigValidationError("sources.spread_pct must be between 0 and 100")


def _validate_config(config_dict: dict[str, Any]) -> None:
    """Validate configuration values."""
    # Check database path is provided
    db_config = config_dict.get("database") or {}
    db_path = db_config.get("path", DatabaseConfig.path)
    if not db_path:
        raise ConfigValidationError("Database path is required")

    if db_path != ":memory:":
        parent = Path(db_path).parent
        if parent.exists() and not os.access(parent, os.W_OK):
            raise ConfigValidationError(f"Database path not writable: {parent}")

    schedule = config_dict.get("schedule") or {}
    _validate_timezone(schedule.get("timezone", ScheduleConfig.timezone))
    if schedule.get("whatsapp_sync_seconds", ScheduleConfig.whatsapp_sync_seconds) <= 0:
        raise ConfigValidationError("schedule.whatsapp_sync_seconds must be positive")

    _validate_sources(config_dict.get("sources") or {})


def build_config(config_dict: Optional[dict[str, Any]] = None) -> AppConfig:
    """
    Build AppConfig from a plain dictionary.

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    config_dict = _substitute_env_vars(config_dict or {})
    _validate_config(config_dict)

    database = DatabaseConfig(**(config_dict.get("database") or {}))

    # Sources
    src_dict = dict(config_dict.get("sources") or {})
    urls = SourceUrlsConfig(**(src_dict.pop("urls", None) or {}))
    sources = SourcesConfig(urls=urls, **src_dict)

    schedule = ScheduleConfig(**(config_dict.get("schedule") or {}))

    # Notifications
    notif_dict = config_dict.get("notifications") or {}
    notifications = NotificationsConfig(
        telegram=TelegramNotificationConfig(**(notif_dict.get("telegram") or {})),
        whatsapp=WhatsAppNotificationConfig(**(notif_dict.get("whatsapp") or {})),
    )

    api = ApiConfig(**(config_dict.get("api") or {}))
    advanced = AdvancedConfig(**(config_dict.get("advanced") or {}))

    return AppConfig(
        database=database,
        sources=sources,
        schedule=schedule,
        notifications=notifications,
        api=api,
        advanced=advanced,
    )


def load_config(config_path: str) -> AppConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        AppConfig instance

    Raises:
        ConfigValidationError: If configuration is invalid
        FileNotFoundError: If config file doesn't exist
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(path) as f:
        raw_config = yaml.safe_load(f) or {}

    return build_config(raw_config)
