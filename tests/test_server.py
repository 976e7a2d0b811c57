import httpx
import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer

from config.constants import Tables
from monitoring.monitor import UptimeProbe
from monitoring.notifiers import SmsNotifier
from monitoring.scheduler import BatchRunner, RunGuard
from monitoring.server import MonitorServer


ADMIN = {"Authorization": "Bearer admin-token"}
CRON = {"Authorization": "Bearer cron-secret"}


@pytest_asyncio.fixture
async def sms(settings):
    sent = []

    def handler(request):
        sent.append(request)
        return httpx.Response(200, json={"type": "success"})

    notifier = SmsNotifier(settings, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    notifier.sent = sent
    yield notifier
    await notifier.aclose()
    await notifier.client.aclose()


@pytest_asyncio.fixture
async def client(store, checks, alert_manager, settings, clock, sms):
    guard = RunGuard(store, min_interval=300, clock=clock)
    batch = BatchRunner(store, checks, alert_manager, settings, clock=clock)
    server = MonitorServer(store, checks, alert_manager, batch, guard, sms, settings)

    async with TestClient(TestServer(server.app)) as test_client:
        yield test_client


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status == 200
    body = await response.json()
    assert body["status"] == "healthy"
    assert body["database"] == "connected"
    assert body["batch_state"] == "idle"


# ============================================================================
# CRON
# ============================================================================

@pytest.mark.asyncio
async def test_cron_requires_secret(client):
    response = await client.get("/api/cron/monitor")
    assert response.status == 401
    assert await response.json() == {"error": "Unauthorized"}

    response = await client.get("/api/cron/monitor", headers={"Authorization": "Bearer wrong"})
    assert response.status == 401


@pytest.mark.asyncio
async def test_cron_without_domains(client):
    response = await client.get("/api/cron/monitor", headers=CRON)
    assert response.status == 200
    assert await response.json() == {"message": "No domains to monitor"}


@pytest.mark.asyncio
async def test_cron_runs_batch_then_rate_limits(client, domain):
    response = await client.get("/api/cron/monitor", headers=CRON)
    assert response.status == 200
    body = await response.json()
    assert body["message"] == "Monitoring completed"
    assert body["domains_processed"] == 1
    assert body["results"]["uptime"] == {"success": 1, "failed": 0, "skipped": 0}
    assert body["results"]["alerts"] == {"sent": 0, "failed": 0}

    response = await client.get("/api/cron/monitor", headers=CRON)
    assert response.status == 429
    assert await response.json() == {"error": "Rate limit exceeded. Try again later."}


@pytest.mark.asyncio
async def test_expiry_alerts_endpoint(client, domain):
    response = await client.get("/api/check/expiry-alerts", headers=CRON)
    assert response.status == 200
    body = await response.json()
    assert body["success"] is True
    assert body["message"] == "Expiry alerts check completed"
    assert body["results"] == {"checked": 0, "sent": 0, "failed": 0}


# ============================================================================
# SINGLE CHECKS
# ============================================================================

@pytest.mark.asyncio
async def test_check_requires_admin_token(client, domain):
    payload = {"domainId": domain.id, "url": "https://example.com"}

    response = await client.post("/api/check/uptime", json=payload)
    assert response.status == 401

    response = await client.post(
        "/api/check/uptime", json=payload, headers={"Authorization": "Bearer nope"}
    )
    assert response.status == 403
    assert await response.json() == {"error": "Admin access required"}


@pytest.mark.asyncio
async def test_check_missing_fields(client, domain):
    response = await client.post("/api/check/uptime", json={"domainId": domain.id}, headers=ADMIN)
    assert response.status == 400
    assert await response.json() == {"error": "Domain ID and URL are required"}

    response = await client.post("/api/check/ssl", json={"domain": "example.com"}, headers=ADMIN)
    assert response.status == 400
    assert await response.json() == {"error": "Domain ID and domain name are required"}


@pytest.mark.asyncio
async def test_uptime_check_rejects_malformed_url(client, probes, domain, store):
    response = await client.post(
        "/api/check/uptime", json={"domainId": domain.id, "url": "example.com/health"}, headers=ADMIN
    )
    assert response.status == 400
    assert await response.json() == {"error": "URL must start with http:// or https://"}

    response = await client.post(
        "/api/check/uptime", json={"domainId": domain.id, "url": "https://"}, headers=ADMIN
    )
    assert response.status == 400

    assert probes.calls == []
    assert await store.query_latest_by_domain(Tables.UPTIME_LOGS, domain.id) is None


@pytest.mark.asyncio
async def test_check_unknown_domain(client):
    response = await client.post(
        "/api/check/whois", json={"domainId": 999, "domain": "example.com"}, headers=ADMIN
    )
    assert response.status == 404


@pytest.mark.asyncio
async def test_uptime_check_with_alert(client, probes, domain, recipients, dispatcher):
    probes.uptime = UptimeProbe(up=False, response_time_ms=30, status_code=502, error="Status code: 502")

    response = await client.post(
        "/api/check/uptime",
        json={"domainId": domain.id, "url": "https://example.com/health"},
        headers=ADMIN,
    )

    assert response.status == 200
    body = await response.json()
    assert body["success"] is True
    assert body["status"] is False
    assert body["url"] == "https://example.com/health"
    assert body["alert_sent"] is True
    assert probes.calls == [("uptime", "https://example.com/health")]
    assert len(dispatcher.sent) == 1


@pytest.mark.asyncio
async def test_ip_check(client, domain):
    response = await client.post(
        "/api/check/ip", json={"domainId": str(domain.id), "domain": "example.com"}, headers=ADMIN
    )

    assert response.status == 200
    body = await response.json()
    assert body["primary_ip"] == "203.0.113.10"
    assert body["ip_changed"] is False


# ============================================================================
# NOTIFICATIONS
# ============================================================================

@pytest.mark.asyncio
async def test_test_notifications_validation(client):
    response = await client.post("/api/test-notifications", json={"type": "downtime"}, headers=ADMIN)
    assert response.status == 400
    assert await response.json() == {"error": "Required parameters missing. Need type and domain."}

    response = await client.post(
        "/api/test-notifications", json={"type": "outage", "domain": "example.com"}, headers=ADMIN
    )
    assert response.status == 400
    assert (await response.json())["error"] == (
        "Invalid notification type. Must be one of: downtime, ssl-expiry, domain-expiry, ip-change"
    )


@pytest.mark.asyncio
async def test_test_notifications_sends(client, domain, recipients, dispatcher):
    response = await client.post(
        "/api/test-notifications",
        json={"type": "domain-expiry", "domain": "example.com", "daysRemaining": 5},
        headers=ADMIN,
    )

    assert response.status == 200
    body = await response.json()
    assert body["success"] is True
    assert body["message"] == "Test notification sent"
    assert body["alert"]["displayName"] == "Example Site"
    assert body["alert"]["daysRemaining"] == 5
    assert body["recipients"] == {"emails": ["ops@example.com"], "phones": ["+919876543210"]}
    assert len(dispatcher.sent) == 1


@pytest.mark.asyncio
async def test_check_sms(client, recipients):
    response = await client.get("/api/check-sms", headers=ADMIN)

    assert response.status == 200
    body = await response.json()
    assert body["config"]["configured"] is True
    assert body["recipients"] == ["+919876543210"]


@pytest.mark.asyncio
async def test_test_sms(client, sms):
    response = await client.post("/api/test-sms", json={}, headers=ADMIN)
    assert response.status == 400
    assert await response.json() == {"error": "Phone number is required"}

    response = await client.post("/api/test-sms", json={"phoneNumber": "12345"}, headers=ADMIN)
    assert response.status == 400

    response = await client.post("/api/test-sms", json={"phoneNumber": "+919876543210"}, headers=ADMIN)
    assert response.status == 200
    assert (await response.json())["message"] == "Test SMS sent successfully"
    assert len(sms.sent) == 1


@pytest.mark.asyncio
async def test_notification_preferences(client):
    response = await client.get("/api/notification-preferences", headers=ADMIN)
    assert (await response.json())["email_enabled"] is True

    response = await client.post(
        "/api/notification-preferences", json={"email_enabled": "no"}, headers=ADMIN
    )
    assert response.status == 400

    response = await client.post(
        "/api/notification-preferences", json={"email_enabled": False}, headers=ADMIN
    )
    body = await response.json()
    assert body["success"] is True
    assert body["settings"]["email_enabled"] is False
    assert body["settings"]["sms_enabled"] is True


@pytest.mark.asyncio
async def test_invalid_json_body(client):
    response = await client.post("/api/test-notifications", data="not json", headers=ADMIN)
    assert response.status == 400
