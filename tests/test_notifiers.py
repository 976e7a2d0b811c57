import json

import aiosmtplib
import httpx
import pytest
from loguru import logger

from config.settings import EmailSettings, SmsSettings
from monitoring.notifiers import (
    ComposedMessage,
    EmailNotifier,
    NotificationDispatcher,
    Recipients,
    SmsNotifier
)


MESSAGE = ComposedMessage(
    subject="ALERT: Example Site is DOWN",
    text="Example Site is currently DOWN.",
    html="<p>Example Site is currently DOWN.</p>",
    sms_vars={"ALERT_TYPE": "downtime", "DOMAIN_NAME": "Example Site"},
)


def sms_notifier(settings, handler) -> SmsNotifier:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SmsNotifier(settings, client=client)


# ============================================================================
# SMS
# ============================================================================

@pytest.mark.asyncio
async def test_sms_payload_and_headers(settings):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"type": "success"})

    notifier = sms_notifier(settings, handler)
    assert await notifier.send(MESSAGE, ["+919876543210"]) is True
    await notifier.client.aclose()

    request = seen[0]
    assert request.headers["authkey"] == "msg91-auth-key"
    body = json.loads(request.content)
    assert body["template_id"] == "template-1"
    assert body["short_url"] == "0"
    assert body["recipients"] == [{
        "mobiles": "919876543210",
        "##ALERT_TYPE##": "downtime",
        "##DOMAIN_NAME##": "Example Site",
    }]


@pytest.mark.asyncio
async def test_sms_partial_failure_still_succeeds(settings):
    def handler(request):
        mobiles = json.loads(request.content)["recipients"][0]["mobiles"]
        return httpx.Response(200 if mobiles == "919876543210" else 400, text="bad number")

    notifier = sms_notifier(settings, handler)
    assert await notifier.send(MESSAGE, ["+919876543210", "+15550000000"]) is True
    await notifier.client.aclose()


@pytest.mark.asyncio
async def test_sms_all_failed(settings):
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    notifier = sms_notifier(settings, handler)
    assert await notifier.send(MESSAGE, ["+919876543210", "+15550000000"]) is False
    await notifier.client.aclose()


@pytest.mark.asyncio
async def test_sms_malformed_api_url_is_a_failed_send(settings):
    settings.sms.api_url = "https://control.msg91.com:v5/api/flow"
    notifier = sms_notifier(settings, lambda request: httpx.Response(200))
    dispatcher = NotificationDispatcher(EmailNotifier(settings), notifier)

    report = await dispatcher.send_alert(MESSAGE, Recipients([], ["+919876543210"]))
    await notifier.client.aclose()

    assert report.sms is False
    assert report.success is False


@pytest.mark.asyncio
async def test_sms_empty_recipients(settings):
    calls = []
    notifier = sms_notifier(settings, lambda request: calls.append(request) or httpx.Response(200))
    assert await notifier.send(MESSAGE, []) is False
    assert calls == []
    await notifier.client.aclose()


@pytest.mark.asyncio
async def test_sms_unconfigured_sends_nothing(settings):
    calls = []
    unconfigured = settings.model_copy(update={"sms": SmsSettings(auth_key="msg91-auth-key", template_id=None)})
    notifier = sms_notifier(unconfigured, lambda request: calls.append(request) or httpx.Response(200))

    assert await notifier.send(MESSAGE, ["+919876543210"]) is False
    assert calls == []
    assert notifier.config_status()["error"] == "MSG91_TEMPLATE_ID is not set"
    await notifier.client.aclose()


@pytest.mark.asyncio
async def test_sms_config_status_masks_key(settings):
    notifier = SmsNotifier(settings)
    status = notifier.config_status()
    await notifier.aclose()

    assert status["configured"] is True
    assert status["error"] is None
    assert status["template_id"] == "template-1"
    assert status["auth_key"] != "msg91-auth-key"
    assert status["auth_key"].startswith("msg9")
    assert "auth" not in status["auth_key"]


@pytest.mark.asyncio
async def test_send_test_sms(settings):
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200)

    notifier = sms_notifier(settings, handler)
    assert await notifier.send_test_sms("+919876543210") is True
    await notifier.client.aclose()

    assert seen[0]["recipients"][0]["##ALERT_TYPE##"] == "test"


# ============================================================================
# EMAIL
# ============================================================================

@pytest.mark.asyncio
async def test_email_builds_multipart_message(settings, monkeypatch):
    sent = []

    async def fake_send(message, **kwargs):
        sent.append((message, kwargs))
        return {}, "OK"

    monkeypatch.setattr(aiosmtplib, "send", fake_send)

    assert await EmailNotifier(settings).send(MESSAGE, ["ops@example.com", "dev@example.com"]) is True

    message, kwargs = sent[0]
    assert message["Subject"] == MESSAGE.subject
    assert message["From"] == "alerts@monitor.test"
    assert message["To"] == "ops@example.com, dev@example.com"
    assert message.is_multipart()
    assert message.get_body(preferencelist=("html",)).get_content().strip() == MESSAGE.html
    assert kwargs["hostname"] == "smtp.test"
    assert kwargs["username"] is None


@pytest.mark.asyncio
async def test_email_failure_returns_false(settings, monkeypatch):
    async def broken_send(message, **kwargs):
        raise aiosmtplib.SMTPConnectError("connection refused")

    monkeypatch.setattr(aiosmtplib, "send", broken_send)

    assert await EmailNotifier(settings).send(MESSAGE, ["ops@example.com"]) is False


@pytest.mark.asyncio
async def test_dispatch_failures_log_channel_and_recipient(settings, monkeypatch):
    async def broken_send(message, **kwargs):
        raise aiosmtplib.SMTPConnectError("connection refused")

    monkeypatch.setattr(aiosmtplib, "send", broken_send)
    lines = []
    sink_id = logger.add(lines.append, level="ERROR", format="{message}")
    try:
        await EmailNotifier(settings).send(MESSAGE, ["ops@example.com"])
        notifier = sms_notifier(settings, lambda request: httpx.Response(400, text="bad template"))
        await notifier.send(MESSAGE, ["+919876543210"])
        await notifier.client.aclose()
    finally:
        logger.remove(sink_id)

    assert any("DispatchError[4200]" in line and "'channel': 'email'" in line for line in lines)
    assert any("'recipient': '+919876543210'" in line and "bad template" in line for line in lines)


@pytest.mark.asyncio
async def test_email_skips_without_recipients_or_host(settings, monkeypatch):
    calls = []

    async def fake_send(message, **kwargs):
        calls.append(message)

    monkeypatch.setattr(aiosmtplib, "send", fake_send)

    assert await EmailNotifier(settings).send(MESSAGE, []) is False

    no_host = settings.model_copy(update={"email": EmailSettings(host="")})
    assert await EmailNotifier(no_host).send(MESSAGE, ["ops@example.com"]) is False
    assert calls == []


# ============================================================================
# DISPATCHER
# ============================================================================

@pytest.mark.asyncio
async def test_dispatcher_reports_per_channel(settings, monkeypatch):
    async def fake_send(message, **kwargs):
        return {}, "OK"

    monkeypatch.setattr(aiosmtplib, "send", fake_send)
    sms = sms_notifier(settings, lambda request: httpx.Response(500))
    dispatcher = NotificationDispatcher(EmailNotifier(settings), sms)

    report = await dispatcher.send_alert(MESSAGE, Recipients(["ops@example.com"], ["+919876543210"]))
    await sms.client.aclose()

    assert report.email is True
    assert report.sms is False
    assert report.success is True
    assert report.to_dict() == {"email": True, "sms": False, "success": True}
