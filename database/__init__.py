"""
Database Package for Domain Health Monitor

Provides database connectivity, ORM models and the record store
used by the monitoring core, built on SQLAlchemy's async support.
"""

from database.manager import (
    DatabaseManager,
    MonitorStore,
    TABLE_MODELS
)

from database.models import (
    Base,
    Domain,
    UptimeRecord,
    SslRecord,
    DomainExpiryRecord,
    IpRecord,
    NotificationSettings,
    NotificationEmail,
    NotificationPhone,
    AlertLogEntry,
    MonitorRun
)

__all__ = [
    # Manager
    "DatabaseManager",
    "MonitorStore",
    "TABLE_MODELS",

    # Models
    "Base",
    "Domain",
    "UptimeRecord",
    "SslRecord",
    "DomainExpiryRecord",
    "IpRecord",
    "NotificationSettings",
    "NotificationEmail",
    "NotificationPhone",
    "AlertLogEntry",
    "MonitorRun"
]
