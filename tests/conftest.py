"""
Shared fixtures: settings pointing at a temporary SQLite file, a frozen
clock, scripted probes and a recording dispatcher.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, List, Tuple

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from config.settings import (
    DatabaseSettings,
    EmailSettings,
    LoggingSettings,
    MonitoringSettings,
    ServerSettings,
    Settings,
    SmsSettings,
    WhoisSettings
)
from database.manager import DatabaseManager, MonitorStore
from database.models import AlertLogEntry
from monitoring.alerts import AlertManager, AlertPolicy
from monitoring.checks import CheckRunner
from monitoring.monitor import CertificateInfo, DnsRecords, UptimeProbe
from monitoring.notifiers import ComposedMessage, DispatchReport, Recipients
from monitoring.whois import WhoisInfo
from utils.helpers import local_midnight


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeProbes:
    """
    Scripted stand-in for monitoring.monitor.Probes.

    Each answer may be a value, an exception instance (raised), or a
    callable taking the target and returning either.
    """

    def __init__(self, now: datetime = NOW):
        midnight = local_midnight(now, "UTC")
        self.uptime: Any = UptimeProbe(up=True, response_time_ms=42, status_code=200)
        self.certificate: Any = CertificateInfo(
            valid_to=midnight + timedelta(days=90),
            issuer="Test CA",
            source="tls-handshake",
        )
        self.dns: Any = DnsRecords(
            ipv4=["203.0.113.10", "203.0.113.11"],
            mx=[{"priority": 10, "host": "mail.example.com"}],
            ns=["ns1.example.com", "ns2.example.com"],
        )
        self.whois: Any = WhoisInfo(
            domain="example.com",
            expiry_date=midnight + timedelta(days=200),
            registrar="Test Registrar",
        )
        self.calls: List[Tuple[str, str]] = []

    @staticmethod
    def _answer(value: Any, target: str) -> Any:
        if callable(value) and not isinstance(value, BaseException):
            value = value(target)
        if isinstance(value, BaseException):
            raise value
        return value

    async def check_uptime(self, url: str) -> UptimeProbe:
        self.calls.append(("uptime", url))
        return self._answer(self.uptime, url)

    async def check_certificate(self, host: str) -> CertificateInfo:
        self.calls.append(("ssl", host))
        return self._answer(self.certificate, host)

    async def resolve_dns(self, host: str) -> DnsRecords:
        self.calls.append(("dns", host))
        return self._answer(self.dns, host)

    async def lookup_whois(self, domain: str) -> WhoisInfo:
        self.calls.append(("whois", domain))
        return self._answer(self.whois, domain)

    async def aclose(self) -> None:
        return None


class RecordingDispatcher:
    """
    Records every send_alert call together with the number of audit
    rows present at that moment.
    """

    def __init__(self, db: DatabaseManager, fail: bool = False):
        self.db = db
        self.fail = fail
        self.sent: List[Tuple[ComposedMessage, Recipients]] = []
        self.audit_rows_at_send: List[int] = []

    async def send_alert(self, message: ComposedMessage, recipients: Recipients) -> DispatchReport:
        async with self.db.session() as session:
            count = await session.scalar(select(func.count(AlertLogEntry.id)))
        self.audit_rows_at_send.append(count)
        self.sent.append((message, recipients))
        if self.fail:
            return DispatchReport()
        return DispatchReport(email=bool(recipients.emails), sms=bool(recipients.phones))

    async def aclose(self) -> None:
        return None


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        environment="testing",
        timezone="UTC",
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'monitor.db'}"),
        monitoring=MonitoringSettings(
            request_timeout=5,
            max_concurrent_domains=3,
            rate_limit_seconds=300,
            sweep_interval=0,
        ),
        whois=WhoisSettings(api_key="whois-test-key"),
        email=EmailSettings(host="smtp.test", from_address="alerts@monitor.test"),
        sms=SmsSettings(auth_key="msg91-auth-key", template_id="template-1"),
        server=ServerSettings(cron_secret="cron-secret", admin_api_token="admin-token"),
        logging=LoggingSettings(console_enabled=False),
    )


@pytest_asyncio.fixture
async def db(settings):
    manager = DatabaseManager(settings)
    await manager.initialize()
    yield manager
    await manager.close()


@pytest_asyncio.fixture
async def store(db) -> MonitorStore:
    return MonitorStore(db)


@pytest_asyncio.fixture
async def domain(store):
    return await store.add_domain(
        "example.com",
        "https://example.com",
        display_name="Example Site",
    )


@pytest_asyncio.fixture
async def recipients(store):
    await store.add_email_recipient("ops@example.com")
    await store.add_phone_recipient("+919876543210")


@pytest.fixture
def probes() -> FakeProbes:
    return FakeProbes()


@pytest.fixture
def dispatcher(db) -> RecordingDispatcher:
    return RecordingDispatcher(db)


@pytest.fixture
def checks(store, probes, settings, clock) -> CheckRunner:
    return CheckRunner(store, probes, settings, clock=clock)


@pytest.fixture
def alert_manager(store, dispatcher, settings, clock) -> AlertManager:
    return AlertManager(store, dispatcher, AlertPolicy(timezone="UTC"), settings, clock=clock)
