"""
============================================================================
DOMAIN HEALTH MONITOR - TRIGGER SURFACE
============================================================================
A small aiohttp server that exposes the monitoring core over HTTP.

Routes
------
GET  /health                          liveness JSON
GET  /api/cron/monitor                full batch run (Bearer CRON_SECRET)
GET  /api/check/expiry-alerts         re-alert on stored expiry results
                                      (Bearer CRON_SECRET)
POST /api/check/{uptime|ssl|whois|ip} one check + alert policy
POST /api/test-notifications          synthetic alert through both channels
GET  /api/check-sms                   SMS configuration status
POST /api/test-sms                    one test SMS to a given number
GET  /api/notification-preferences    channel switches
POST /api/notification-preferences    update channel switches

Every /api route except the cron ones takes Bearer ADMIN_API_TOKEN.
Errors derived from MonitorError become {"error": message} with
the exception's http_status.
============================================================================
"""

import time
from typing import Any, Dict, Optional

from aiohttp import web
from pydantic import SecretStr

from config.constants import CheckType
from config.settings import Settings, get_settings
from database.manager import MonitorStore
from exceptions import (
    AuthenticationError,
    ConfigurationError,
    MissingFieldError,
    MonitorError,
    ValidationException
)
from monitoring.alerts import AlertManager
from monitoring.checks import CheckRunner
from monitoring.notifiers import SmsNotifier
from monitoring.scheduler import BatchRunner, RunGuard
from utils.helpers import seconds_to_human_readable, utc_now
from utils.logger import get_logger
from utils.validators import require_phone, require_url


logger = get_logger("Server")


# Required body field for the target of each single-check endpoint
CHECK_TARGET_FIELDS = {
    "uptime": ("url", "Domain ID and URL are required"),
    "ssl": ("domain", "Domain ID and domain name are required"),
    "whois": ("domain", "Domain ID and domain name are required"),
    "ip": ("domain", "Domain ID and domain name are required"),
}


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except MonitorError as e:
        if e.http_status >= 500:
            logger.error(f"[Server] {request.method} {request.path}: {e.log_format()}")
        else:
            logger.info(f"[Server] {request.method} {request.path} → {e.http_status}: {e.message}")
        return web.json_response({"error": e.user_message()}, status=e.http_status)
    except Exception as e:
        logger.exception(f"[Server] Unhandled error on {request.method} {request.path}")
        return web.json_response({"error": str(e) or "Internal server error"}, status=500)


def _secret(value: Optional[SecretStr]) -> str:
    return value.get_secret_value() if value else ""


async def _json_body(request: web.Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        raise ValidationException("Request body must be valid JSON") from None
    if not isinstance(body, dict):
        raise ValidationException("Request body must be a JSON object")
    return body


class MonitorServer:
    """
    aiohttp application wrapping the monitoring core.

    ``app`` can be handed to aiohttp's TestServer directly; ``start``
    and ``stop`` bind and release the configured host and port.
    """

    def __init__(
        self,
        store: MonitorStore,
        checks: CheckRunner,
        alerts: AlertManager,
        batch_runner: BatchRunner,
        guard: RunGuard,
        sms: SmsNotifier,
        settings: Optional[Settings] = None
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.checks = checks
        self.alerts = alerts
        self.batch_runner = batch_runner
        self.guard = guard
        self.sms = sms

        self._host = self.settings.server.web_host
        self._port = self.settings.server.web_port
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._start_time: float = time.time()
        self._request_count: int = 0

        self.app = web.Application(middlewares=[error_middleware])
        self.app.router.add_get("/health", self._handle_health)
        self.app.router.add_get("/api/cron/monitor", self._handle_cron_monitor)
        self.app.router.add_get("/api/check/expiry-alerts", self._handle_expiry_alerts)
        self.app.router.add_post("/api/check/{check:uptime|ssl|whois|ip}", self._handle_check)
        self.app.router.add_post("/api/test-notifications", self._handle_test_notifications)
        self.app.router.add_get("/api/check-sms", self._handle_check_sms)
        self.app.router.add_post("/api/test-sms", self._handle_test_sms)
        self.app.router.add_get("/api/notification-preferences", self._handle_get_preferences)
        self.app.router.add_post("/api/notification-preferences", self._handle_update_preferences)

    async def start(self) -> None:
        """Bind and start serving."""
        self._start_time = time.time()
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        logger.info(f"✓ Server listening on {self._host}:{self._port}")

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
        logger.info("✓ Server stopped")

    # ------------------------------------------------------------------
    # AUTH
    # ------------------------------------------------------------------

    def _require_cron_secret(self, request: web.Request) -> None:
        secret = _secret(self.settings.server.cron_secret)
        if not secret:
            logger.warning("[Server] CRON_SECRET is not set, skipping authentication")
            return

        if request.headers.get("Authorization", "") != f"Bearer {secret}":
            raise AuthenticationError("Unauthorized")

    def _require_admin(self, request: web.Request) -> None:
        token = _secret(self.settings.server.admin_api_token)
        if not token:
            logger.warning("[Server] ADMIN_API_TOKEN is not set, skipping authentication")
            return

        header = request.headers.get("Authorization", "")
        if not header.startswith("Bearer ") or not header[len("Bearer "):].strip():
            raise AuthenticationError("Unauthorized")
        if header[len("Bearer "):].strip() != token:
            raise AuthenticationError("Admin access required", forbidden=True)

    # ------------------------------------------------------------------
    # ROUTE HANDLERS
    # ------------------------------------------------------------------

    async def _handle_health(self, request: web.Request) -> web.Response:
        """GET /health: liveness JSON."""
        self._request_count += 1
        uptime_seconds = time.time() - self._start_time
        db_ok = await self.store.db.check_connection()

        return web.json_response({
            "status": "healthy" if db_ok else "degraded",
            "database": "connected" if db_ok else "unreachable",
            "uptime_seconds": round(uptime_seconds, 1),
            "uptime_human": seconds_to_human_readable(uptime_seconds),
            "requests_served": self._request_count,
            "batch_state": self.batch_runner.state.value,
            "timestamp": utc_now().isoformat(),
            "app_name": self.settings.app_name,
            "app_version": self.settings.app_version,
        })

    async def _handle_cron_monitor(self, request: web.Request) -> web.Response:
        """GET /api/cron/monitor: run every check for every domain."""
        self._request_count += 1
        self._require_cron_secret(request)

        if not await self.guard.try_acquire("cron"):
            return web.json_response(
                {"error": "Rate limit exceeded. Try again later."}, status=429
            )

        domains = await self.store.list_domains()
        if not domains:
            return web.json_response({"message": "No domains to monitor"})

        summary = await self.batch_runner.run("cron")
        return web.json_response(summary.to_response())

    async def _handle_expiry_alerts(self, request: web.Request) -> web.Response:
        self._request_count += 1
        self._require_cron_secret(request)

        counts = await self.alerts.sweep_expiry_alerts()
        return web.json_response({
            "success": True,
            "message": "Expiry alerts check completed",
            "results": counts,
        })

    async def _handle_check(self, request: web.Request) -> web.Response:
        """POST /api/check/{check}: run one check for one domain."""
        self._request_count += 1
        self._require_admin(request)

        name = request.match_info["check"]
        field, missing_message = CHECK_TARGET_FIELDS[name]

        body = await _json_body(request)
        domain_id = body.get("domainId")
        target = body.get(field)
        if domain_id in (None, "") or not target:
            raise MissingFieldError(missing_message, field=field)

        try:
            domain_id = int(domain_id)
        except (TypeError, ValueError):
            raise ValidationException("domainId must be an integer", field="domainId") from None

        target = str(target)
        if field == "url":
            target = require_url(target)

        domain = await self.store.require_domain(domain_id)
        outcome = await self.checks.run_and_alert(
            CheckType.from_endpoint(name), domain, self.alerts, target=target
        )
        return web.json_response(outcome.to_dict())

    async def _handle_test_notifications(self, request: web.Request) -> web.Response:
        self._request_count += 1
        self._require_admin(request)

        body = await _json_body(request)
        alert_type = body.get("type")
        domain_name = body.get("domain")
        if not alert_type or not domain_name:
            raise MissingFieldError("Required parameters missing. Need type and domain.")

        try:
            check_type = CheckType(alert_type)
        except ValueError:
            raise ValidationException(
                "Invalid notification type. Must be one of: "
                + ", ".join(t.value for t in CheckType),
                field="type",
                value=alert_type,
            ) from None

        days_remaining = body.get("daysRemaining")
        if days_remaining is not None:
            try:
                days_remaining = int(days_remaining)
            except (TypeError, ValueError):
                raise ValidationException(
                    "daysRemaining must be a number", field="daysRemaining"
                ) from None

        delivery = await self.alerts.send_test(
            check_type, str(domain_name), body.get("message"), days_remaining
        )

        return web.json_response({
            "success": delivery.success,
            "message": "Test notification sent",
            "alert": delivery.alert.to_dict(),
            "recipients": delivery.recipients.to_snapshot(),
        })

    async def _handle_check_sms(self, request: web.Request) -> web.Response:
        self._request_count += 1
        self._require_admin(request)

        return web.json_response({
            "message": "SMS configuration status",
            "config": self.sms.config_status(),
            "recipients": await self.store.list_phone_recipients(),
        })

    async def _handle_test_sms(self, request: web.Request) -> web.Response:
        self._request_count += 1
        self._require_admin(request)

        body = await _json_body(request)
        phone = body.get("phoneNumber")
        if not phone:
            raise MissingFieldError("Phone number is required", field="phoneNumber")
        phone = require_phone(str(phone))

        status = self.sms.config_status()
        if not status["configured"]:
            raise ConfigurationError(
                "SMS configuration is incomplete. Please check your environment "
                "variables (MSG91_AUTH_KEY and MSG91_TEMPLATE_ID).",
                config_key="MSG91_AUTH_KEY" if not self.settings.sms.auth_key else "MSG91_TEMPLATE_ID",
            )

        if not await self.sms.send_test_sms(phone):
            return web.json_response({"error": "Failed to send SMS"}, status=500)

        return web.json_response({
            "success": True,
            "message": "Test SMS sent successfully",
            "config": status,
        })

    async def _handle_get_preferences(self, request: web.Request) -> web.Response:
        self._request_count += 1
        self._require_admin(request)

        row = await self.store.get_notification_settings()
        return web.json_response(row.to_dict())

    async def _handle_update_preferences(self, request: web.Request) -> web.Response:
        self._request_count += 1
        self._require_admin(request)

        body = await _json_body(request)
        updates: Dict[str, bool] = {}
        for key in ("email_enabled", "sms_enabled"):
            if key not in body:
                continue
            if not isinstance(body[key], bool):
                raise ValidationException(f"{key} must be a boolean", field=key, value=body[key])
            updates[key] = body[key]

        row = await self.store.update_notification_settings(**updates)
        logger.info(f"[Server] Notification preferences updated: {updates}")
        return web.json_response({"success": True, "settings": row.to_dict()})
