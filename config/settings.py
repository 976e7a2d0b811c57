"""
Domain Health Monitor settings.

One pydantic-settings model per concern, each reading its own env
prefix (DB_, MONITOR_, WHOIS_, SMTP_, MSG91_, LOG_) from the process
environment or a .env file. ``get_settings()`` returns the shared,
cached instance; tests build ``Settings(...)`` directly instead.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional
from enum import Enum

from pydantic import (
    AliasChoices,
    Field,
    SecretStr,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from config.constants import Defaults


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


_ENV_FILE = dict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


class BaseSettingsConfig(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=False, validate_default=True, **_ENV_FILE)


# ============================================================================
# STORE
# ============================================================================

class DatabaseSettings(BaseSettingsConfig):
    """
    Record store location (DB_*).

    Any async SQLAlchemy URL is accepted; the default is a local
    aiosqlite file. Pool knobs only apply to server databases.
    """

    model_config = SettingsConfigDict(env_prefix="DB_", **_ENV_FILE)

    url: str = Field(default="sqlite+aiosqlite:///data/domain_monitor.db")

    pool_size: int = Field(default=10, ge=1, le=100)
    max_overflow: int = Field(default=20, ge=0, le=100)
    pool_timeout: int = Field(default=30, ge=1, le=300, description="Seconds to wait for a pooled connection")
    pool_recycle: int = Field(default=1800, ge=60, le=7200, description="Seconds before a connection is replaced")

    echo: bool = Field(default=False, description="Log every SQL statement")
    create_tables: bool = Field(default=True, description="Run create_all() at startup")

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def sqlite_path(self) -> Optional[Path]:
        """Database file for file-backed aiosqlite URLs, None otherwise."""
        prefix = "sqlite+aiosqlite:///"
        if not self.url.startswith(prefix):
            return None
        path = self.url[len(prefix):]
        if path in ("", ":memory:"):
            return None
        return Path(path)


# ============================================================================
# PROBES
# ============================================================================

class MonitoringSettings(BaseSettingsConfig):
    """Probe timeouts, batch concurrency and the run guard (MONITOR_*)."""

    model_config = SettingsConfigDict(env_prefix="MONITOR_", **_ENV_FILE)

    request_timeout: float = Field(default=Defaults.REQUEST_TIMEOUT, gt=0, le=120)
    head_fallback_to_get: bool = Field(
        default=True,
        description="Repeat an uptime probe with GET when HEAD answers 405 or 501"
    )
    user_agent: str = Field(default="DomainHealthMonitor/1.0")

    max_concurrent_domains: int = Field(default=Defaults.MAX_CONCURRENT_DOMAINS, ge=1, le=100)
    rate_limit_seconds: int = Field(
        default=Defaults.RATE_LIMIT_SECONDS,
        ge=0,
        description="Batch runs started closer together than this are refused"
    )
    sweep_interval: int = Field(
        default=Defaults.SWEEP_INTERVAL,
        ge=0,
        description="In-process sweep period in seconds; 0 leaves scheduling to the cron endpoint"
    )

    ip_tags: Dict[str, str] = Field(
        default_factory=dict,
        description="Additional IP -> infrastructure tag entries"
    )

    @field_validator("ip_tags", mode="before")
    @classmethod
    def parse_ip_tags(cls, v: Any) -> Dict[str, str]:
        # MONITOR_IP_TAGS='{"203.0.113.5": "Edge"}'
        if v is None or v == "":
            return {}
        if isinstance(v, str):
            v = json.loads(v)
        return {str(k): str(val) for k, val in dict(v).items()}


class WhoisSettings(BaseSettingsConfig):
    """
    WHOIS and SSL-info HTTP APIs (WHOIS_*).

    The key is read from WHOIS_API_KEY, then API_LAYER_KEY, then
    NEXT_PUBLIC_API_LAYER_KEY.
    """

    model_config = SettingsConfigDict(env_prefix="WHOIS_", populate_by_name=True, **_ENV_FILE)

    api_url: str = Field(default="https://api.apilayer.com/whois/query")
    api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices(
            "api_key",
            "WHOIS_API_KEY",
            "API_LAYER_KEY",
            "NEXT_PUBLIC_API_LAYER_KEY",
        ),
    )
    ssl_info_api_url: str = Field(
        default="https://api.ssl-checker.io/ssl",
        description="Used when the direct TLS handshake fails"
    )


# ============================================================================
# NOTIFICATION CHANNELS
# ============================================================================

class EmailSettings(BaseSettingsConfig):
    """SMTP relay (SMTP_*). Email is disabled while ``host`` is unset."""

    model_config = SettingsConfigDict(env_prefix="SMTP_", **_ENV_FILE)

    host: Optional[str] = None
    port: int = Field(default=587, ge=1, le=65535)
    secure: bool = Field(default=False, description="Implicit TLS, usually port 465")
    start_tls: bool = Field(default=True, description="STARTTLS upgrade when secure is off")
    user: Optional[str] = None
    password: SecretStr = Field(default=SecretStr(""))
    from_address: str = Field(
        default="alerts@example.com",
        validation_alias=AliasChoices("from_address", "SMTP_FROM"),
    )
    timeout: float = Field(default=15.0, gt=0)

    @property
    def is_configured(self) -> bool:
        return bool(self.host)


class SmsSettings(BaseSettingsConfig):
    """MSG91 flow API (MSG91_*). SMS needs both the auth key and a template."""

    model_config = SettingsConfigDict(env_prefix="MSG91_", **_ENV_FILE)

    auth_key: Optional[SecretStr] = None
    template_id: Optional[str] = None
    api_url: str = Field(default="https://control.msg91.com/api/v5/flow")
    timeout: float = Field(default=10.0, gt=0, description="Seconds per recipient request")

    @property
    def is_configured(self) -> bool:
        return bool(self.auth_key and self.auth_key.get_secret_value() and self.template_id)


# ============================================================================
# SERVER / LOGGING
# ============================================================================

class ServerSettings(BaseSettingsConfig):
    """aiohttp listener and the two bearer credentials it checks."""

    web_host: str = "0.0.0.0"
    web_port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        validation_alias=AliasChoices("web_port", "PORT", "WEB_PORT"),
    )
    cron_secret: Optional[SecretStr] = Field(default=None, description="Bearer for /api/cron/* and expiry alerts")
    admin_api_token: Optional[SecretStr] = Field(default=None, description="Bearer for the admin endpoints")


class LoggingSettings(BaseSettingsConfig):
    """loguru sinks (LOG_*)."""

    model_config = SettingsConfigDict(env_prefix="LOG_", **_ENV_FILE)

    level: LogLevel = LogLevel.INFO
    console_enabled: bool = True
    console_colored: bool = True
    file_enabled: bool = False
    file_path: Path = Path("logs/domain_monitor.log")
    file_rotation: str = "10 MB"
    file_retention: str = "14 days"
    json_enabled: bool = Field(default=False, description="serialize=True on the file sink")
    error_file_path: Optional[Path] = Field(default=None, description="Extra sink receiving ERROR and above")


class Settings(BaseSettingsConfig):
    """Top-level settings; every section is built from its own environment prefix."""

    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False
    app_name: str = "Domain Health Monitor"
    app_version: str = "1.0.0"
    timezone: str = Field(
        default="UTC",
        description="IANA zone for expiry day counts and alert timestamps"
    )

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    whois: WhoisSettings = Field(default_factory=WhoisSettings)
    email: EmailSettings = Field(default_factory=EmailSettings)
    sms: SmsSettings = Field(default_factory=SmsSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        return self.environment == Environment.DEVELOPMENT

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @model_validator(mode="after")
    def apply_environment(self) -> "Settings":
        if self.is_production:
            self.debug = False
            self.database.echo = False
        elif self.is_development and self.debug:
            self.logging.level = LogLevel.DEBUG
        return self

    def to_dict(self, *, exclude_secrets: bool = True) -> Dict[str, Any]:
        """
        JSON-friendly dump for the startup debug line.

        With ``exclude_secrets`` any key mentioning a password, secret,
        token or key is dropped at every level.
        """
        data = self.model_dump(mode="json")
        if not exclude_secrets:
            return data

        def scrub(obj: Any) -> Any:
            if isinstance(obj, dict):
                return {
                    k: scrub(v) for k, v in obj.items()
                    if not any(word in k.lower() for word in _SECRET_WORDS)
                }
            if isinstance(obj, list):
                return [scrub(item) for item in obj]
            return obj

        return scrub(data)


_SECRET_WORDS = ("password", "secret", "token", "key")


@lru_cache()
def get_settings() -> Settings:
    return Settings()
