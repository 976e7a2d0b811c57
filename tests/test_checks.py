from datetime import timedelta

import pytest
from sqlalchemy import func, select

from config.constants import CheckType, Tables
from database.models import DomainExpiryRecord, IpRecord, SslRecord, UptimeRecord
from exceptions import ConfigurationError, ProbeError
from monitoring.monitor import CertificateInfo, DnsRecords, UptimeProbe
from utils.helpers import local_midnight

from conftest import NOW


async def count_rows(db, model) -> int:
    async with db.session() as session:
        return await session.scalar(select(func.count(model.id)))


@pytest.mark.asyncio
async def test_uptime_down_records_status_code(checks, probes, domain, db):
    probes.uptime = UptimeProbe(up=False, response_time_ms=80, status_code=503, error="Status code: 503")

    outcome = await checks.check_uptime(domain)

    assert outcome.succeeded is True
    assert outcome.result.up is False
    assert outcome.result.to_dict()["status"] is False
    assert outcome.result.error_message == "Status code: 503"
    assert await count_rows(db, UptimeRecord) == 1

    row = await checks.store.query_latest_by_domain(Tables.UPTIME_LOGS, domain.id)
    assert row.status is False
    assert row.error_message == "Status code: 503"
    assert row.response_time == 80


@pytest.mark.asyncio
async def test_uptime_uses_target_override(checks, probes, domain):
    await checks.run(CheckType.DOWNTIME, domain, "https://status.example.com")
    assert probes.calls == [("uptime", "https://status.example.com")]


@pytest.mark.asyncio
async def test_ssl_days_remaining(checks, probes, domain):
    probes.certificate = CertificateInfo(
        valid_to=local_midnight(NOW) + timedelta(days=5),
        issuer="Test CA",
        source="tls-handshake",
    )

    outcome = await checks.check_ssl(domain)

    assert outcome.succeeded is True
    assert outcome.result.days_remaining == 5
    row = await checks.store.query_latest_by_domain(Tables.SSL_INFO, domain.id)
    assert row.days_remaining == 5
    assert row.issuer == "Test CA"
    assert row.source == "tls-handshake"


@pytest.mark.asyncio
async def test_ssl_probe_failure_is_recorded(checks, probes, domain, db):
    probes.certificate = ProbeError(
        "Connection timeout",
        probe="ssl",
        target="example.com",
        strategy_errors=[("tls-handshake", "Connection timeout")],
    )

    outcome = await checks.check_ssl(domain)

    assert outcome.succeeded is False
    assert outcome.error == "Connection timeout"
    assert outcome.result.days_remaining is None
    assert await count_rows(db, SslRecord) == 1
    row = await checks.store.query_latest_by_domain(Tables.SSL_INFO, domain.id)
    assert row.error_message == "Connection timeout"
    assert row.expiry_date is None


@pytest.mark.asyncio
async def test_whois_success(checks, domain):
    outcome = await checks.check_domain_expiry(domain)

    assert outcome.succeeded is True
    assert outcome.result.registrar == "Test Registrar"
    assert outcome.result.days_remaining == 200


@pytest.mark.asyncio
async def test_whois_configuration_error_propagates_unrecorded(checks, probes, domain, db):
    probes.whois = ConfigurationError("WHOIS API key is not set", config_key="WHOIS_API_KEY")

    with pytest.raises(ConfigurationError):
        await checks.check_domain_expiry(domain)

    assert await count_rows(db, DomainExpiryRecord) == 0


@pytest.mark.asyncio
async def test_first_ip_check_is_not_a_change(checks, domain):
    outcome = await checks.check_ip_records(domain)

    assert outcome.result.ip_changed is False
    assert outcome.result.previous_ip is None
    assert outcome.result.primary_ip == "203.0.113.10"
    assert outcome.result.mx_records == [{"priority": 10, "host": "mail.example.com"}]


@pytest.mark.asyncio
async def test_same_ip_twice_is_not_a_change(checks, domain, db):
    await checks.check_ip_records(domain)
    second = await checks.check_ip_records(domain)

    assert second.result.ip_changed is False
    assert await count_rows(db, IpRecord) == 2


@pytest.mark.asyncio
async def test_ip_change_detected(checks, probes, domain):
    await checks.check_ip_records(domain)
    probes.dns = DnsRecords(ipv4=["198.51.100.7"])

    outcome = await checks.check_ip_records(domain)

    assert outcome.result.ip_changed is True
    assert outcome.result.previous_ip == "203.0.113.10"
    assert outcome.result.primary_ip == "198.51.100.7"


@pytest.mark.asyncio
async def test_failed_dns_check_does_not_count_as_change(checks, probes, domain):
    await checks.check_ip_records(domain)
    probes.dns = ProbeError("Domain example.com does not exist (NXDOMAIN)", probe="dns")
    failed = await checks.check_ip_records(domain)
    assert failed.succeeded is False

    probes.dns = DnsRecords(ipv4=["203.0.113.10"])
    after = await checks.check_ip_records(domain)
    assert after.result.ip_changed is False


@pytest.mark.asyncio
async def test_change_across_failed_dns_check_is_detected(checks, probes, domain):
    await checks.check_ip_records(domain)
    probes.dns = ProbeError("DNS resolution for example.com timed out", probe="dns")
    await checks.check_ip_records(domain)

    probes.dns = DnsRecords(ipv4=["198.51.100.7"])
    after = await checks.check_ip_records(domain)

    assert after.result.ip_changed is True
    assert after.result.previous_ip == "203.0.113.10"


@pytest.mark.asyncio
async def test_known_infrastructure_ip_tags_domain(checks, probes, domain):
    probes.dns = DnsRecords(ipv4=["35.214.4.69"])

    outcome = await checks.check_ip_records(domain)

    assert outcome.result.tag == "SiteGround"
    assert (await checks.store.get_domain(domain.id)).tag == "SiteGround"


@pytest.mark.asyncio
async def test_ip_tags_can_be_extended_from_settings(store, probes, settings, clock, domain):
    from monitoring.checks import CheckRunner

    settings.monitoring.ip_tags = {"198.51.100.7": "Staging"}
    runner = CheckRunner(store, probes, settings, clock=clock)
    probes.dns = DnsRecords(ipv4=["198.51.100.7"])

    outcome = await runner.check_ip_records(domain)
    assert outcome.result.tag == "Staging"


@pytest.mark.asyncio
async def test_outcome_to_dict(checks, domain):
    outcome = await checks.check_uptime(domain)
    data = outcome.to_dict()

    assert data["success"] is True
    assert data["check_type"] == "downtime"
    assert data["status"] is True
    assert data["response_time"] == 42
    assert data["domain_id"] == domain.id
    assert data["checked_at"] == NOW.isoformat()
