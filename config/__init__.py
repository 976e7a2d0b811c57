"""
Configuration Package for Domain Health Monitor

This package contains all configuration-related modules including:
- Settings management with environment variable support
- Constants and enums used throughout the application
"""

from config.settings import (
    Settings,
    DatabaseSettings,
    MonitoringSettings,
    WhoisSettings,
    EmailSettings,
    SmsSettings,
    ServerSettings,
    LoggingSettings,
    get_settings,
)

from config.constants import (
    CheckType,
    Tables,
    SslStrategy,
    BatchState,
    Thresholds,
    Defaults,
    AlertStyle,
    MessageTemplates,
    Patterns,
    EXPIRY_ALERT_THRESHOLD_DAYS,
    KNOWN_IP_TAGS,
    MULTI_LABEL_SUFFIXES,
)

__all__ = [
    # Settings
    "Settings",
    "DatabaseSettings",
    "MonitoringSettings",
    "WhoisSettings",
    "EmailSettings",
    "SmsSettings",
    "ServerSettings",
    "LoggingSettings",
    "get_settings",

    # Constants
    "CheckType",
    "Tables",
    "SslStrategy",
    "BatchState",
    "Thresholds",
    "Defaults",
    "AlertStyle",
    "MessageTemplates",
    "Patterns",
    "EXPIRY_ALERT_THRESHOLD_DAYS",
    "KNOWN_IP_TAGS",
    "MULTI_LABEL_SUFFIXES",
]
