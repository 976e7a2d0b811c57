"""
Constants Module for Domain Health Monitor

Contains all constant values, enumerations, templates, and
static configuration used throughout the application.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Final, List, Tuple


class CheckType(str, Enum):
    """
    Check Type Enumeration

    One value per check orchestrator. The value doubles as the
    alert type written to the audit log.
    """

    DOWNTIME = "downtime"
    SSL_EXPIRY = "ssl-expiry"
    DOMAIN_EXPIRY = "domain-expiry"
    IP_CHANGE = "ip-change"

    @classmethod
    def batch_order(cls) -> List["CheckType"]:
        """Order in which a batch run executes the checks for one domain."""
        return [cls.DOWNTIME, cls.SSL_EXPIRY, cls.DOMAIN_EXPIRY, cls.IP_CHANGE]

    @classmethod
    def from_endpoint(cls, name: str) -> "CheckType":
        """Map a single-check endpoint name (uptime/ssl/whois/ip) to a check type."""
        mapping = {
            "uptime": cls.DOWNTIME,
            "ssl": cls.SSL_EXPIRY,
            "whois": cls.DOMAIN_EXPIRY,
            "domain": cls.DOMAIN_EXPIRY,
            "ip": cls.IP_CHANGE,
        }
        try:
            return mapping[name.lower()]
        except KeyError:
            raise ValueError(f"Unknown check: {name}") from None

    @property
    def summary_key(self) -> str:
        """Key used for this check type in run summaries."""
        return {
            CheckType.DOWNTIME: "uptime",
            CheckType.SSL_EXPIRY: "ssl",
            CheckType.DOMAIN_EXPIRY: "domain",
            CheckType.IP_CHANGE: "ip",
        }[self]

    @property
    def label(self) -> str:
        """Human readable alert-type label."""
        return AlertStyle.LABELS[self]

    @property
    def table(self) -> str:
        """Log table written by this check type."""
        return Tables.FOR_CHECK[self]


class Tables:
    """Table names used by the record store."""

    DOMAINS: Final[str] = "domains"
    UPTIME_LOGS: Final[str] = "uptime_logs"
    SSL_INFO: Final[str] = "ssl_info"
    DOMAIN_EXPIRY: Final[str] = "domain_expiry"
    IP_RECORDS: Final[str] = "ip_records"
    NOTIFICATION_SETTINGS: Final[str] = "notification_settings"
    NOTIFICATION_EMAILS: Final[str] = "notification_emails"
    NOTIFICATION_PHONES: Final[str] = "notification_phones"
    ALERTS: Final[str] = "alerts"
    MONITOR_RUNS: Final[str] = "monitor_runs"

    FOR_CHECK: Final[Dict[CheckType, str]] = {
        CheckType.DOWNTIME: UPTIME_LOGS,
        CheckType.SSL_EXPIRY: SSL_INFO,
        CheckType.DOMAIN_EXPIRY: DOMAIN_EXPIRY,
        CheckType.IP_CHANGE: IP_RECORDS,
    }


class SslStrategy(str, Enum):
    """Named strategies for reading a TLS certificate, in evaluation order."""

    TLS_HANDSHAKE = "tls-handshake"
    SSL_INFO_API = "ssl-info-api"


class BatchState(str, Enum):
    """Batch runner state."""

    IDLE = "idle"
    RUNNING = "running"


class Thresholds:
    """
    Alerting Thresholds

    Expiry alerts fire at or below this many days remaining. Results
    above the threshold are still persisted.
    """

    EXPIRY_ALERT_THRESHOLD_DAYS: Final[int] = 7


EXPIRY_ALERT_THRESHOLD_DAYS: Final[int] = Thresholds.EXPIRY_ALERT_THRESHOLD_DAYS


class Defaults:
    """Default values for configuration and runtime behaviour."""

    REQUEST_TIMEOUT: Final[float] = 10.0
    TLS_PORT: Final[int] = 443
    MAX_CONCURRENT_DOMAINS: Final[int] = 10
    RATE_LIMIT_SECONDS: Final[int] = 300
    SWEEP_INTERVAL: Final[int] = 3600

    UNKNOWN_ISSUER: Final[str] = "Unknown"
    UNKNOWN_REGISTRAR: Final[str] = "Unknown"

    TEST_DAYS_REMAINING: Final[int] = 30

    DATETIME_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S %Z"
    DATE_FORMAT: Final[str] = "%Y-%m-%d"
    TIMEZONE: Final[str] = "UTC"

    HEAD_FALLBACK_STATUSES: Final[Tuple[int, ...]] = (405, 501)


# Multi-label public suffixes kept intact when collapsing a host to its apex
MULTI_LABEL_SUFFIXES: Final[Tuple[str, ...]] = (
    "co.uk", "org.uk", "me.uk",
    "com.au", "net.au", "org.au",
    "co.nz", "net.nz", "org.nz",
    "co.za", "com.br", "com.mx",
)


# Known hosting infrastructure, primary IP -> tag written back onto the domain
KNOWN_IP_TAGS: Final[Dict[str, str]] = {
    "91.204.209.205": "uranium Direct Admin",
    "91.204.209.204": "iridium Direct Admin",
    "109.70.148.64": "cPanel draftforclients.com",
    "91.204.209.29": "cPanel webuildtrades.com",
    "91.204.209.39": "cPanel webuildtrades.io",
    "35.214.4.69": "SiteGround",
    "165.22.127.156": "Cloudways",
    "64.227.39.249": "Digitalocean",
}


class AlertStyle:
    """
    Alert Presentation

    Subjects, labels and colours per alert type.
    """

    LABELS: Final[Dict[CheckType, str]] = {
        CheckType.DOWNTIME: "Downtime Alert",
        CheckType.SSL_EXPIRY: "SSL Certificate Expiration",
        CheckType.DOMAIN_EXPIRY: "Domain Expiration",
        CheckType.IP_CHANGE: "IP Address Change",
    }

    SUBJECTS: Final[Dict[CheckType, str]] = {
        CheckType.DOWNTIME: "🔴 ALERT: {label} is DOWN",
        CheckType.SSL_EXPIRY: "⚠️ SSL Certificate Expiring: {label}",
        CheckType.DOMAIN_EXPIRY: "⚠️ Domain Expiring: {label}",
        CheckType.IP_CHANGE: "ℹ️ IP Change Detected: {label}",
    }

    COLORS: Final[Dict[CheckType, str]] = {
        CheckType.DOWNTIME: "#dc2626",
        CheckType.SSL_EXPIRY: "#f59e0b",
        CheckType.DOMAIN_EXPIRY: "#f59e0b",
        CheckType.IP_CHANGE: "#3b82f6",
    }

    DEFAULT_COLOR: Final[str] = "#374151"


class MessageTemplates:
    """
    Message Templates

    Plain-text and HTML bodies for alert notifications, and the
    default messages used by test notifications.
    """

    TEST_MESSAGES: Final[Dict[CheckType, str]] = {
        CheckType.DOWNTIME: "{name} is currently DOWN. This is a test notification.",
        CheckType.SSL_EXPIRY: (
            "SSL certificate for {name} is expiring in {days} days. "
            "This is a test notification."
        ),
        CheckType.DOMAIN_EXPIRY: (
            "Domain {name} is expiring in {days} days. This is a test notification."
        ),
        CheckType.IP_CHANGE: (
            "IP address change detected for {name}. This is a test notification."
        ),
    }

    DOWNTIME: Final[str] = "{label} ({url}) is currently DOWN."
    SSL_EXPIRY: Final[str] = (
        "SSL certificate for {label} is expiring in {days} days ({expiry})."
    )
    DOMAIN_EXPIRY: Final[str] = (
        "Domain {label} is expiring in {days} days ({expiry})."
    )
    IP_CHANGE: Final[str] = (
        "IP address for {label} changed from {previous_ip} to {current_ip}."
    )

    TEXT_BODY: Final[str] = """{subject}

{message}

Domain: {label}
URL: {url}
Alert Type: {alert_label}
Time: {timestamp}
{extra}
This is an automated message from your Uptime Monitor service.
"""

    HTML_BODY: Final[str] = """<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: {color};">{subject}</h2>
  <p>{message}</p>
  <table style="width: 100%; border-collapse: collapse;">
    <tr><td style="padding: 8px; font-weight: bold;">Domain:</td><td style="padding: 8px;">{label}</td></tr>
    <tr><td style="padding: 8px; font-weight: bold;">URL:</td><td style="padding: 8px;">{url}</td></tr>
    <tr><td style="padding: 8px; font-weight: bold;">Alert Type:</td><td style="padding: 8px;">{alert_label}</td></tr>
    <tr><td style="padding: 8px; font-weight: bold;">Time:</td><td style="padding: 8px;">{timestamp}</td></tr>
{extra_rows}  </table>
  <p style="color: #6b7280; font-size: 12px; margin-top: 24px;">This is an automated message from your Uptime Monitor service.</p>
</div>
"""

    HTML_ROW: Final[str] = (
        '    <tr><td style="padding: 8px; font-weight: bold;">{name}:</td>'
        '<td style="padding: 8px;">{value}</td></tr>\n'
    )

    TEST_SMS: Final[str] = "This is a test SMS from your Uptime Monitor service."


class Patterns:
    """Regular expression patterns."""

    URL: Final[str] = (
        r"^https?://"
        r"(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)*"
        r"[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
        r"(?::\d{1,5})?(?:[/?#][^\s]*)?$"
    )

    DOMAIN: Final[str] = (
        r"^(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)+"
        r"[a-zA-Z]{2,}$"
    )

    IP_ADDRESS: Final[str] = (
        r"^(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}"
        r"(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)$"
    )

    E164_PHONE: Final[str] = r"^\+[1-9]\d{1,14}$"

    WHOIS_EXPIRY: Final[str] = r"expir(?:y|ation)[\s_-]*date:?\s*([^\n\r]+)"
    WHOIS_REGISTRAR: Final[str] = r"registrar:\s*([^\n\r]+)"
