"""
============================================================================
DOMAIN HEALTH MONITOR - NOTIFICATION DISPATCH
============================================================================
Delivery of composed alert messages over email and SMS.

Channels
--------
EmailNotifier   one SMTP message (text + HTML) addressed to every recipient
SmsNotifier     one MSG91 flow API call per phone number

Both channels report a boolean and never raise: a failing provider is
logged and the other channel still runs. NotificationDispatcher combines
the two into a DispatchReport.
============================================================================
"""

import asyncio
from dataclasses import dataclass, field
from email.message import EmailMessage
from typing import Any, Dict, List, Optional

import aiosmtplib
import httpx

from config.constants import MessageTemplates
from config.settings import Settings, get_settings
from exceptions import DispatchError
from utils.helpers import format_timestamp, mask_secret, utc_now
from utils.logger import get_logger


logger = get_logger("Notifier")


# ============================================================================
# MESSAGE OBJECTS
# ============================================================================

@dataclass(frozen=True)
class Recipients:
    """Resolved recipient lists; a disabled channel has an empty list."""

    emails: List[str] = field(default_factory=list)
    phones: List[str] = field(default_factory=list)

    def to_snapshot(self) -> Dict[str, List[str]]:
        return {"emails": list(self.emails), "phones": list(self.phones)}


@dataclass(frozen=True)
class ComposedMessage:
    """
    Channel-ready rendering of one alert.

    ``sms_vars`` maps MSG91 template variable names (without the ``##``
    markers) to their values.
    """

    subject: str
    text: str
    html: str
    sms_vars: Dict[str, str] = field(default_factory=dict)


@dataclass
class DispatchReport:
    email: bool = False
    sms: bool = False

    @property
    def success(self) -> bool:
        return self.email or self.sms

    def to_dict(self) -> Dict[str, bool]:
        return {"email": self.email, "sms": self.sms, "success": self.success}


# ============================================================================
# EMAIL
# ============================================================================

class EmailNotifier:
    """Sends alert email through an SMTP relay with aiosmtplib."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.config = self.settings.email

    def build_message(self, message: ComposedMessage, recipients: List[str]) -> EmailMessage:
        email = EmailMessage()
        email["From"] = self.config.from_address
        email["To"] = ", ".join(recipients)
        email["Subject"] = message.subject
        email.set_content(message.text)
        email.add_alternative(message.html, subtype="html")
        return email

    async def send(self, message: ComposedMessage, recipients: List[str]) -> bool:
        if not recipients:
            logger.info("[Email] No email recipients, skipping")
            return False

        if not self.config.is_configured:
            logger.warning("[Email] SMTP host is not configured, skipping")
            return False

        password = self.config.password.get_secret_value() if self.config.password else ""

        try:
            await aiosmtplib.send(
                self.build_message(message, recipients),
                hostname=self.config.host,
                port=self.config.port,
                username=self.config.user or None,
                password=password or None,
                use_tls=self.config.secure,
                start_tls=self.config.start_tls and not self.config.secure,
                timeout=self.config.timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            error = DispatchError(
                f"Failed to send email: {e}",
                channel="email",
                recipient=", ".join(recipients),
                cause=e,
            )
            logger.error(f"[Email] {error.log_format()}")
            return False

        logger.info(f"[Email] Sent '{message.subject}' to {len(recipients)} recipient(s)")
        return True


# ============================================================================
# SMS (MSG91 flow API)
# ============================================================================

class SmsNotifier:
    """
    Sends alert SMS through the MSG91 flow API.

    Each phone number gets its own request; a failure for one number
    does not affect the others.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.settings = settings or get_settings()
        self.config = self.settings.sms
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.timeout),
        )

    def _auth_key(self) -> str:
        key = self.config.auth_key
        return key.get_secret_value() if key else ""

    def config_status(self) -> Dict[str, Any]:
        """Masked view of the SMS configuration, for diagnostics."""
        auth_key = self._auth_key()
        template_id = self.config.template_id or ""

        error = None
        if not auth_key:
            error = "MSG91_AUTH_KEY is not set"
        elif not template_id:
            error = "MSG91_TEMPLATE_ID is not set"

        return {
            "auth_key": mask_secret(auth_key) if auth_key else "not set",
            "template_id": template_id or "not set",
            "configured": error is None,
            "error": error,
        }

    def _payload(self, phone: str, variables: Dict[str, str]) -> Dict[str, Any]:
        recipient = {"mobiles": phone.lstrip("+")}
        recipient.update({f"##{name}##": value for name, value in variables.items()})
        return {
            "template_id": self.config.template_id,
            "short_url": "0",
            "recipients": [recipient],
        }

    async def _send_one(self, phone: str, variables: Dict[str, str]) -> bool:
        headers = {
            "Content-Type": "application/json",
            "accept": "application/json",
            "authkey": self._auth_key(),
        }

        try:
            response = await self.client.post(
                self.config.api_url,
                json=self._payload(phone, variables),
                headers=headers,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            error = DispatchError(
                f"Request failed: {e.__class__.__name__}: {e}",
                channel="sms",
                recipient=phone,
                cause=e,
            )
            logger.error(f"[SMS] {error.log_format()}")
            return False

        if not response.is_success:
            error = DispatchError(
                f"MSG91 returned status {response.status_code}",
                channel="sms",
                recipient=phone,
                response=response.text,
            )
            logger.error(f"[SMS] {error.log_format()}")
            return False

        logger.debug(f"[SMS] Sent to {phone}")
        return True

    async def send_vars(self, variables: Dict[str, str], recipients: List[str]) -> bool:
        if not recipients:
            logger.info("[SMS] No phone recipients, skipping")
            return False

        status = self.config_status()
        if not status["configured"]:
            logger.warning(f"[SMS] Not configured: {status['error']}")
            return False

        results = await asyncio.gather(
            *(self._send_one(phone, variables) for phone in recipients)
        )
        sent = sum(1 for ok in results if ok)

        logger.info(f"[SMS] Delivered to {sent}/{len(recipients)} recipient(s)")
        return sent > 0

    async def send(self, message: ComposedMessage, recipients: List[str]) -> bool:
        return await self.send_vars(message.sms_vars, recipients)

    async def send_test_sms(self, phone: str) -> bool:
        """Send a fixed test message to a single number."""
        variables = {
            "ALERT_TYPE": "test",
            "ALERT_SUBJECT": "Test SMS",
            "MESSAGE": MessageTemplates.TEST_SMS,
            "DOMAIN_NAME": "Test",
            "DOMAIN_URL": "",
            "DAYS_REMAINING": "",
            "DATE_TIME": format_timestamp(utc_now(), self.settings.timezone),
        }
        return await self.send_vars(variables, [phone])

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()


# ============================================================================
# DISPATCHER
# ============================================================================

class NotificationDispatcher:
    """Fans one composed message out to both channels."""

    def __init__(self, email: EmailNotifier, sms: SmsNotifier):
        self.email = email
        self.sms = sms

    async def send_alert(
        self,
        message: ComposedMessage,
        recipients: Recipients
    ) -> DispatchReport:
        report = DispatchReport()
        report.email = await self.email.send(message, list(recipients.emails))
        report.sms = await self.sms.send(message, list(recipients.phones))
        return report

    async def aclose(self) -> None:
        await self.sms.aclose()
