"""
============================================================================
DOMAIN HEALTH MONITOR - DATABASE MODELS
============================================================================
SQLAlchemy ORM models for tracked domains, the append-only check logs,
notification configuration, the alert audit trail and batch-run state.

Every log table carries a (domain_id, checked_at) index so that
"latest record per domain" stays an index scan.
============================================================================
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Index, Integer, JSON, String, Text
)
from sqlalchemy.orm import declarative_base, declared_attr

from utils.helpers import ensure_aware, utc_now


# ============================================================================
# BASE MODEL CONFIGURATION
# ============================================================================

Base = declarative_base()


def _iso(value: Optional[datetime]) -> Optional[str]:
    return ensure_aware(value).isoformat() if value else None


class TimestampMixin:
    """created_at / updated_at columns."""
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now
    )


class CheckLogMixin:
    """
    Columns shared by the append-only check logs.

    Rows are inserted once and never updated.
    """

    id = Column(Integer, primary_key=True, autoincrement=True)

    @declared_attr
    def domain_id(cls):
        return Column(
            Integer,
            ForeignKey("domains.id", ondelete="CASCADE"),
            nullable=False
        )

    error_message = Column(Text, nullable=True)
    checked_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    @declared_attr
    def __table_args__(cls):
        return (
            Index(f"idx_{cls.__tablename__}_domain_checked", "domain_id", "checked_at"),
        )

    def _base_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "domain_id": self.domain_id,
            "error_message": self.error_message,
            "checked_at": _iso(self.checked_at),
        }


# ============================================================================
# DOMAIN MODEL
# ============================================================================

class Domain(Base, TimestampMixin):
    """
    A tracked website/domain.

    ``domain_name`` is the bare host used for TLS, WHOIS and DNS;
    ``uptime_url`` is the absolute URL used for HTTP checks.
    """
    __tablename__ = "domains"

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain_name = Column(String(255), nullable=False, index=True)
    uptime_url = Column(Text, nullable=False)
    display_name = Column(String(255), nullable=True)
    tag = Column(String(255), nullable=True)

    notify_on_downtime = Column(Boolean, nullable=False, default=True)
    notify_on_expiry = Column(Boolean, nullable=False, default=True)

    @property
    def label(self) -> str:
        """Name used in alerts."""
        return self.display_name or self.domain_name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "domain_name": self.domain_name,
            "uptime_url": self.uptime_url,
            "display_name": self.display_name,
            "tag": self.tag,
            "notify_on_downtime": self.notify_on_downtime,
            "notify_on_expiry": self.notify_on_expiry,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<Domain(id={self.id}, domain_name={self.domain_name!r})>"


# ============================================================================
# CHECK LOG MODELS
# ============================================================================

class UptimeRecord(Base, CheckLogMixin):
    """One HTTP availability check."""
    __tablename__ = "uptime_logs"

    status = Column(Boolean, nullable=False)
    response_time = Column(Integer, nullable=True)

    def to_dict(self) -> Dict[str, Any]:
        data = self._base_dict()
        data.update(status=self.status, response_time=self.response_time)
        return data


class SslRecord(Base, CheckLogMixin):
    """One TLS certificate check. Failed checks keep null expiry fields."""
    __tablename__ = "ssl_info"

    expiry_date = Column(DateTime(timezone=True), nullable=True)
    days_remaining = Column(Integer, nullable=True)
    issuer = Column(String(500), nullable=True)
    source = Column(String(50), nullable=True)

    def to_dict(self) -> Dict[str, Any]:
        data = self._base_dict()
        data.update(
            expiry_date=_iso(self.expiry_date),
            days_remaining=self.days_remaining,
            issuer=self.issuer,
            source=self.source,
        )
        return data


class DomainExpiryRecord(Base, CheckLogMixin):
    """One WHOIS registration-expiry check."""
    __tablename__ = "domain_expiry"

    expiry_date = Column(DateTime(timezone=True), nullable=True)
    days_remaining = Column(Integer, nullable=True)
    registrar = Column(String(500), nullable=True)

    def to_dict(self) -> Dict[str, Any]:
        data = self._base_dict()
        data.update(
            expiry_date=_iso(self.expiry_date),
            days_remaining=self.days_remaining,
            registrar=self.registrar,
        )
        return data


class IpRecord(Base, CheckLogMixin):
    """One DNS resolution (A, MX, NS)."""
    __tablename__ = "ip_records"

    primary_ip = Column(String(45), nullable=True)
    all_ips = Column(JSON, nullable=False, default=list)
    mx_records = Column(JSON, nullable=False, default=list)
    nameservers = Column(JSON, nullable=False, default=list)

    def to_dict(self) -> Dict[str, Any]:
        data = self._base_dict()
        data.update(
            primary_ip=self.primary_ip,
            all_ips=list(self.all_ips or []),
            mx_records=list(self.mx_records or []),
            nameservers=list(self.nameservers or []),
        )
        return data


# ============================================================================
# NOTIFICATION MODELS
# ============================================================================

class NotificationSettings(Base):
    """Singleton row holding the global per-channel switches."""
    __tablename__ = "notification_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email_enabled = Column(Boolean, nullable=False, default=True)
    sms_enabled = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email_enabled": self.email_enabled,
            "sms_enabled": self.sms_enabled,
            "updated_at": _iso(self.updated_at),
        }


class NotificationEmail(Base):
    __tablename__ = "notification_emails"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(320), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)


class NotificationPhone(Base):
    __tablename__ = "notification_phones"

    id = Column(Integer, primary_key=True, autoincrement=True)
    phone_number = Column(String(32), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)


# ============================================================================
# AUDIT / RUN STATE MODELS
# ============================================================================

class AlertLogEntry(Base):
    """
    Alert audit trail.

    Written before dispatch with the resolved recipient snapshot,
    so it records intent rather than outcome.
    """
    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String(32), nullable=False, index=True)
    domain = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    sent_to = Column(JSON, nullable=False, default=dict)
    checked_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "domain": self.domain,
            "message": self.message,
            "sent_to": self.sent_to,
            "checked_at": _iso(self.checked_at),
        }


class MonitorRun(Base):
    """Last start time of a named batch job, used by the rate guard."""
    __tablename__ = "monitor_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(64), nullable=False, unique=True)
    last_run_at = Column(DateTime(timezone=True), nullable=False)
    trigger = Column(String(32), nullable=True)
