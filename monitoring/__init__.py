"""
============================================================================
DOMAIN HEALTH MONITOR - MONITORING PACKAGE
============================================================================
Runtime monitoring core:
    • Probes / *Checker   - HTTP, TLS certificate, DNS and WHOIS probes
    • CheckRunner         - one orchestrator per check type
    • AlertPolicy         - pure alert decision and message rendering
    • AlertManager        - audit log + dispatch
    • Notifiers           - SMTP email and MSG91 SMS
    • BatchRunner         - all checks across all domains
    • Scheduler           - periodic monitor_sweep job
    • MonitorServer       - aiohttp trigger surface

monitoring/
├── monitor.py           ← probe layer
├── whois.py             ← WHOIS-over-HTTP probe
├── checks.py            ← check orchestrators
├── alerts.py            ← AlertPolicy + AlertManager
├── notifiers.py         ← email / SMS dispatch
├── scheduler.py         ← RunGuard + BatchRunner + Scheduler
└── server.py            ← MonitorServer
============================================================================
"""

from monitoring.monitor import (
    Probes,
    HTTPChecker,
    SSLChecker,
    DNSChecker,
    UptimeProbe,
    CertificateInfo,
    DnsRecords
)
from monitoring.whois import WhoisChecker, WhoisInfo
from monitoring.checks import (
    CheckRunner,
    CheckOutcome,
    UptimeResult,
    SslResult,
    ExpiryResult,
    IpResult
)
from monitoring.notifiers import (
    EmailNotifier,
    SmsNotifier,
    NotificationDispatcher,
    DispatchReport,
    ComposedMessage,
    Recipients
)
from monitoring.alerts import AlertManager, AlertPolicy, Alert, AlertDelivery
from monitoring.scheduler import BatchRunner, RunGuard, RunSummary, Scheduler, ScheduledJob
from monitoring.server import MonitorServer

__all__ = [
    # Probes
    "Probes",
    "HTTPChecker",
    "SSLChecker",
    "DNSChecker",
    "WhoisChecker",
    "UptimeProbe",
    "CertificateInfo",
    "DnsRecords",
    "WhoisInfo",

    # Checks
    "CheckRunner",
    "CheckOutcome",
    "UptimeResult",
    "SslResult",
    "ExpiryResult",
    "IpResult",

    # Notifications
    "EmailNotifier",
    "SmsNotifier",
    "NotificationDispatcher",
    "DispatchReport",
    "ComposedMessage",
    "Recipients",

    # Alerts
    "AlertManager",
    "AlertPolicy",
    "Alert",
    "AlertDelivery",

    # Scheduling
    "BatchRunner",
    "RunGuard",
    "RunSummary",
    "Scheduler",
    "ScheduledJob",

    # Server
    "MonitorServer",
]
