"""
============================================================================
DOMAIN HEALTH MONITOR - CHECK ORCHESTRATORS
============================================================================
One orchestrator per check type. Each one:

  1. invokes its probe(s)
  2. derives state (days remaining, IP change, infrastructure tag)
  3. appends exactly one record to its log table
  4. returns a CheckOutcome for the alert policy

Probe failures are recorded as failed results. ConfigurationError is
not recorded and propagates; store failures propagate as
PersistenceError.
============================================================================
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Union

from config.constants import KNOWN_IP_TAGS, CheckType, Tables
from config.settings import Settings, get_settings
from database.manager import MonitorStore
from database.models import Domain
from exceptions import ProbeError
from monitoring.monitor import Probes
from utils.helpers import days_remaining, utc_now
from utils.logger import get_logger, log_execution_time

if TYPE_CHECKING:
    from monitoring.alerts import AlertManager


logger = get_logger("CheckRunner")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ============================================================================
# TAGGED RESULT TYPES
# ============================================================================

@dataclass(frozen=True)
class UptimeResult:
    url: str
    up: bool
    response_time_ms: Optional[int] = None
    status_code: Optional[int] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "status": self.up,
            "response_time": self.response_time_ms,
            "status_code": self.status_code,
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class SslResult:
    host: str
    expiry_date: Optional[datetime] = None
    days_remaining: Optional[int] = None
    issuer: Optional[str] = None
    source: Optional[str] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "expiry_date": _iso(self.expiry_date),
            "days_remaining": self.days_remaining,
            "issuer": self.issuer,
            "source": self.source,
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class ExpiryResult:
    domain: str
    expiry_date: Optional[datetime] = None
    days_remaining: Optional[int] = None
    registrar: Optional[str] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "expiry_date": _iso(self.expiry_date),
            "days_remaining": self.days_remaining,
            "registrar": self.registrar,
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class IpResult:
    host: str
    primary_ip: Optional[str] = None
    all_ips: List[str] = field(default_factory=list)
    mx_records: List[Dict[str, Any]] = field(default_factory=list)
    nameservers: List[str] = field(default_factory=list)
    tag: Optional[str] = None
    ip_changed: bool = False
    previous_ip: Optional[str] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "primary_ip": self.primary_ip,
            "all_ips": list(self.all_ips),
            "mx_records": list(self.mx_records),
            "nameservers": list(self.nameservers),
            "tag": self.tag,
            "ip_changed": self.ip_changed,
            "previous_ip": self.previous_ip,
            "error_message": self.error_message,
        }


CheckResult = Union[UptimeResult, SslResult, ExpiryResult, IpResult]


@dataclass
class CheckOutcome:
    """
    Uniform wrapper handed to the alert policy.

    ``succeeded`` is False when the probe failed and a failed record was
    written. A down site is still a successful uptime check.
    ``should_alert`` and ``alert_sent`` are filled in by AlertManager.
    """

    check_type: CheckType
    domain: Domain
    result: CheckResult
    succeeded: bool
    checked_at: datetime
    error: Optional[str] = None
    record_id: Optional[int] = None
    should_alert: bool = False
    alert_sent: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = {"success": self.succeeded, "check_type": self.check_type.value}
        data.update(self.result.to_dict())
        data.update(
            domain_id=self.domain.id,
            error=self.error,
            alert_sent=self.alert_sent,
            checked_at=self.checked_at.isoformat(),
        )
        return data


# ============================================================================
# CHECK RUNNER
# ============================================================================

class CheckRunner:
    """
    Runs single checks against a domain and persists their results.
    """

    def __init__(
        self,
        store: MonitorStore,
        probes: Probes,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.store = store
        self.probes = probes
        self.settings = settings or get_settings()
        self.clock = clock
        self.timezone = self.settings.timezone
        self.ip_tags: Dict[str, str] = {**KNOWN_IP_TAGS, **self.settings.monitoring.ip_tags}

        # Serializes the IP read-before-write per domain
        self._ip_locks: Dict[int, asyncio.Lock] = {}

        self._dispatch = {
            CheckType.DOWNTIME: self.check_uptime,
            CheckType.SSL_EXPIRY: self.check_ssl,
            CheckType.DOMAIN_EXPIRY: self.check_domain_expiry,
            CheckType.IP_CHANGE: self.check_ip_records,
        }

    def _ip_lock(self, domain_id: int) -> asyncio.Lock:
        lock = self._ip_locks.get(domain_id)
        if lock is None:
            lock = self._ip_locks[domain_id] = asyncio.Lock()
        return lock

    # ------------------------------------------------------------------ #
    # Uptime
    # ------------------------------------------------------------------ #

    async def check_uptime(self, domain: Domain, url: Optional[str] = None) -> CheckOutcome:
        url = url or domain.uptime_url
        probe = await self.probes.check_uptime(url)
        checked_at = self.clock()

        record = await self.store.insert(Tables.UPTIME_LOGS, {
            "domain_id": domain.id,
            "status": probe.up,
            "response_time": probe.response_time_ms,
            "error_message": probe.error,
            "checked_at": checked_at,
        })

        if probe.up:
            logger.info(f"[Uptime] {domain.label} is UP ({probe.response_time_ms}ms)")
        else:
            logger.warning(f"[Uptime] {domain.label} is DOWN: {probe.error}")

        return CheckOutcome(
            check_type=CheckType.DOWNTIME,
            domain=domain,
            result=UptimeResult(
                url=url,
                up=probe.up,
                response_time_ms=probe.response_time_ms,
                status_code=probe.status_code,
                error_message=probe.error,
            ),
            succeeded=True,
            checked_at=checked_at,
            error=probe.error,
            record_id=record.id,
        )

    # ------------------------------------------------------------------ #
    # SSL
    # ------------------------------------------------------------------ #

    async def check_ssl(self, domain: Domain, host: Optional[str] = None) -> CheckOutcome:
        host = host or domain.domain_name
        try:
            info = await self.probes.check_certificate(host)
        except ProbeError as e:
            checked_at = self.clock()
            logger.warning(f"[SSL] {domain.label} check failed: {e.message}")
            record = await self.store.insert(Tables.SSL_INFO, {
                "domain_id": domain.id,
                "error_message": e.message,
                "checked_at": checked_at,
            })
            return CheckOutcome(
                check_type=CheckType.SSL_EXPIRY,
                domain=domain,
                result=SslResult(host=host, error_message=e.message),
                succeeded=False,
                checked_at=checked_at,
                error=e.message,
                record_id=record.id,
            )

        checked_at = self.clock()
        remaining = days_remaining(info.valid_to, checked_at, self.timezone)

        record = await self.store.insert(Tables.SSL_INFO, {
            "domain_id": domain.id,
            "expiry_date": info.valid_to,
            "days_remaining": remaining,
            "issuer": info.issuer,
            "source": info.source,
            "checked_at": checked_at,
        })

        logger.info(f"[SSL] {domain.label} certificate expires in {remaining} days ({info.issuer})")

        return CheckOutcome(
            check_type=CheckType.SSL_EXPIRY,
            domain=domain,
            result=SslResult(
                host=host,
                expiry_date=info.valid_to,
                days_remaining=remaining,
                issuer=info.issuer,
                source=info.source,
            ),
            succeeded=True,
            checked_at=checked_at,
            record_id=record.id,
        )

    # ------------------------------------------------------------------ #
    # Domain expiry (WHOIS)
    # ------------------------------------------------------------------ #

    async def check_domain_expiry(self, domain: Domain, name: Optional[str] = None) -> CheckOutcome:
        name = name or domain.domain_name
        try:
            # ConfigurationError (missing API key) propagates unrecorded
            info = await self.probes.lookup_whois(name)
        except ProbeError as e:
            checked_at = self.clock()
            logger.warning(f"[WHOIS] {domain.label} lookup failed: {e.message}")
            record = await self.store.insert(Tables.DOMAIN_EXPIRY, {
                "domain_id": domain.id,
                "error_message": e.message,
                "checked_at": checked_at,
            })
            return CheckOutcome(
                check_type=CheckType.DOMAIN_EXPIRY,
                domain=domain,
                result=ExpiryResult(domain=name, error_message=e.message),
                succeeded=False,
                checked_at=checked_at,
                error=e.message,
                record_id=record.id,
            )

        checked_at = self.clock()
        remaining = days_remaining(info.expiry_date, checked_at, self.timezone)

        record = await self.store.insert(Tables.DOMAIN_EXPIRY, {
            "domain_id": domain.id,
            "expiry_date": info.expiry_date,
            "days_remaining": remaining,
            "registrar": info.registrar,
            "checked_at": checked_at,
        })

        logger.info(f"[WHOIS] {info.domain} expires in {remaining} days ({info.registrar})")

        return CheckOutcome(
            check_type=CheckType.DOMAIN_EXPIRY,
            domain=domain,
            result=ExpiryResult(
                domain=info.domain,
                expiry_date=info.expiry_date,
                days_remaining=remaining,
                registrar=info.registrar,
            ),
            succeeded=True,
            checked_at=checked_at,
            record_id=record.id,
        )

    # ------------------------------------------------------------------ #
    # IP records (DNS)
    # ------------------------------------------------------------------ #

    async def check_ip_records(self, domain: Domain, host: Optional[str] = None) -> CheckOutcome:
        host = host or domain.domain_name

        async with self._ip_lock(domain.id):
            # Failed checks leave primary_ip NULL and are skipped
            previous_primary = await self.store.query_latest_ip(domain.id)

            try:
                records = await self.probes.resolve_dns(host)
            except ProbeError as e:
                checked_at = self.clock()
                logger.warning(f"[DNS] {domain.label} resolution failed: {e.message}")
                record = await self.store.insert(Tables.IP_RECORDS, {
                    "domain_id": domain.id,
                    "error_message": e.message,
                    "checked_at": checked_at,
                })
                return CheckOutcome(
                    check_type=CheckType.IP_CHANGE,
                    domain=domain,
                    result=IpResult(host=host, error_message=e.message),
                    succeeded=False,
                    checked_at=checked_at,
                    error=e.message,
                    record_id=record.id,
                )

            primary = records.primary_ip
            ip_changed = bool(previous_primary and primary and previous_primary != primary)

            tag = self.ip_tags.get(primary) if primary else None
            if tag:
                await self.store.update_domain_tag(domain.id, tag)

            checked_at = self.clock()
            record = await self.store.insert(Tables.IP_RECORDS, {
                "domain_id": domain.id,
                "primary_ip": primary,
                "all_ips": list(records.ipv4),
                "mx_records": list(records.mx),
                "nameservers": list(records.ns),
                "checked_at": checked_at,
            })

        if ip_changed:
            logger.warning(f"[DNS] IP change for {domain.label}: {previous_primary} -> {primary}")
        else:
            logger.info(f"[DNS] {domain.label} resolves to {primary}")

        return CheckOutcome(
            check_type=CheckType.IP_CHANGE,
            domain=domain,
            result=IpResult(
                host=host,
                primary_ip=primary,
                all_ips=list(records.ipv4),
                mx_records=list(records.mx),
                nameservers=list(records.ns),
                tag=tag,
                ip_changed=ip_changed,
                previous_ip=previous_primary if ip_changed else None,
            ),
            succeeded=True,
            checked_at=checked_at,
            record_id=record.id,
        )

    # ------------------------------------------------------------------ #
    # PUBLIC API
    # ------------------------------------------------------------------ #

    @log_execution_time
    async def run(
        self,
        check_type: CheckType,
        domain: Domain,
        target: Optional[str] = None
    ) -> CheckOutcome:
        """Run one orchestrator; ``target`` overrides the URL/host on the domain."""
        return await self._dispatch[check_type](domain, target)

    async def run_and_alert(
        self,
        check_type: CheckType,
        domain: Domain,
        alert_manager: "AlertManager",
        target: Optional[str] = None
    ) -> CheckOutcome:
        """
        Run one orchestrator and evaluate alert policy on its outcome
        straight away.
        """
        outcome = await self.run(check_type, domain, target)
        await alert_manager.handle(outcome)
        return outcome
