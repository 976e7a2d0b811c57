"""
============================================================================
DOMAIN HEALTH MONITOR - ALERT POLICY & ALERT MANAGER
============================================================================
Decides whether a check outcome deserves an alert, renders the alert for
each channel, records it in the audit log and hands it to the dispatcher.

Policy
------
downtime        site is not up                   gated by notify_on_downtime
ssl-expiry      days_remaining <= threshold      gated by notify_on_expiry
domain-expiry   days_remaining <= threshold      gated by notify_on_expiry
ip-change       primary IP differs from previous gated by notify_on_downtime

Expiry results above the threshold are persisted but never alert. Failed
expiry checks carry no days_remaining and never alert.

Pipeline
--------
handle(outcome)
  └── should_alert? ──no──▶ None
        │yes
        ▼
  build_alert → resolve recipients → compose → audit log → dispatch

The audit entry is written before dispatch and records the recipient
snapshot, so it reflects intent rather than delivery.
============================================================================
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from config.constants import (
    EXPIRY_ALERT_THRESHOLD_DAYS,
    AlertStyle,
    CheckType,
    Defaults,
    MessageTemplates,
    Tables
)
from config.settings import Settings, get_settings
from database.manager import MonitorStore
from database.models import Domain, NotificationSettings
from monitoring.checks import CheckOutcome, ExpiryResult, IpResult, SslResult, UptimeResult
from monitoring.notifiers import (
    ComposedMessage,
    DispatchReport,
    NotificationDispatcher,
    Recipients
)
from utils.helpers import add_days, days_remaining, format_timestamp, utc_now
from utils.logger import get_logger


logger = get_logger("AlertManager")


# ============================================================================
# ALERT OBJECTS
# ============================================================================

@dataclass(frozen=True)
class Alert:
    """A decided alert, before rendering."""

    check_type: CheckType
    domain_name: str
    label: str
    message: str
    days_remaining: Optional[int] = None
    expiry_date: Optional[datetime] = None
    domain_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.check_type.value,
            "domain": self.domain_name,
            "displayName": self.label,
            "message": self.message,
        }
        if self.days_remaining is not None:
            data["daysRemaining"] = self.days_remaining
        return data


@dataclass
class AlertDelivery:
    """What happened to one alert: recipients, audit row and channel results."""

    alert: Alert
    recipients: Recipients
    report: DispatchReport
    log_id: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.report.success

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert": self.alert.to_dict(),
            "recipients": self.recipients.to_snapshot(),
            "delivery": self.report.to_dict(),
            "log_id": self.log_id,
        }


# ============================================================================
# ALERT POLICY
# ============================================================================

class AlertPolicy:
    """
    Pure decision and rendering rules. No I/O.
    """

    def __init__(
        self,
        threshold_days: int = EXPIRY_ALERT_THRESHOLD_DAYS,
        timezone: str = Defaults.TIMEZONE
    ):
        self.threshold_days = threshold_days
        self.timezone = timezone

    def is_expiring(self, days_remaining: Optional[int]) -> bool:
        return days_remaining is not None and days_remaining <= self.threshold_days

    def should_alert(self, check_type: CheckType, result: Any, domain: Domain) -> bool:
        if check_type is CheckType.DOWNTIME:
            return bool(domain.notify_on_downtime) and not result.up

        if check_type in (CheckType.SSL_EXPIRY, CheckType.DOMAIN_EXPIRY):
            if result.error_message:
                return False
            return bool(domain.notify_on_expiry) and self.is_expiring(result.days_remaining)

        if check_type is CheckType.IP_CHANGE:
            # IP changes ride on the downtime switch
            return bool(domain.notify_on_downtime) and result.ip_changed

        return False

    @staticmethod
    def resolve_recipients(
        settings_row: Optional[NotificationSettings],
        emails: Iterable[str],
        phones: Iterable[str]
    ) -> Recipients:
        email_enabled = settings_row.email_enabled if settings_row is not None else True
        sms_enabled = settings_row.sms_enabled if settings_row is not None else True

        return Recipients(
            emails=list(emails) if email_enabled else [],
            phones=list(phones) if sms_enabled else [],
        )

    def _format_date(self, value: datetime) -> str:
        return format_timestamp(value, self.timezone, Defaults.DATE_FORMAT)

    def build_alert(self, outcome: CheckOutcome) -> Alert:
        domain = outcome.domain
        result = outcome.result
        label = domain.label

        if isinstance(result, UptimeResult):
            message = MessageTemplates.DOWNTIME.format(label=label, url=result.url)
            return Alert(CheckType.DOWNTIME, domain.domain_name, label, message, domain_id=domain.id)

        if isinstance(result, SslResult):
            message = MessageTemplates.SSL_EXPIRY.format(
                label=label,
                days=result.days_remaining,
                expiry=self._format_date(result.expiry_date),
            )
            return Alert(
                CheckType.SSL_EXPIRY,
                domain.domain_name,
                label,
                message,
                days_remaining=result.days_remaining,
                expiry_date=result.expiry_date,
                domain_id=domain.id,
            )

        if isinstance(result, ExpiryResult):
            message = MessageTemplates.DOMAIN_EXPIRY.format(
                label=label,
                days=result.days_remaining,
                expiry=self._format_date(result.expiry_date),
            )
            return Alert(
                CheckType.DOMAIN_EXPIRY,
                domain.domain_name,
                label,
                message,
                days_remaining=result.days_remaining,
                expiry_date=result.expiry_date,
                domain_id=domain.id,
            )

        if isinstance(result, IpResult):
            message = MessageTemplates.IP_CHANGE.format(
                label=label,
                previous_ip=result.previous_ip,
                current_ip=result.primary_ip,
            )
            return Alert(CheckType.IP_CHANGE, domain.domain_name, label, message, domain_id=domain.id)

        raise TypeError(f"Unsupported result type: {type(result).__name__}")

    def compose_message(self, alert: Alert, now: datetime) -> ComposedMessage:
        """
        Render subject, text, HTML and SMS variables for ``alert``.

        The expiry date comes from the alert itself; it is derived from
        ``now + days_remaining`` only when absent (test notifications).
        """
        subject = AlertStyle.SUBJECTS[alert.check_type].format(label=alert.label)
        timestamp = format_timestamp(now, self.timezone, Defaults.DATETIME_FORMAT)

        extra: List[tuple] = []
        if alert.days_remaining is not None:
            expiry = alert.expiry_date or add_days(now, alert.days_remaining)
            extra.append(("Days Remaining", str(alert.days_remaining)))
            extra.append(("Expiry Date", self._format_date(expiry)))

        common = {
            "subject": subject,
            "message": alert.message,
            "label": alert.label,
            "url": alert.domain_name,
            "alert_label": alert.check_type.label,
            "timestamp": timestamp,
        }

        text = MessageTemplates.TEXT_BODY.format(
            extra="".join(f"{name}: {value}\n" for name, value in extra),
            **common,
        )
        html = MessageTemplates.HTML_BODY.format(
            color=AlertStyle.COLORS.get(alert.check_type, AlertStyle.DEFAULT_COLOR),
            extra_rows="".join(
                MessageTemplates.HTML_ROW.format(name=name, value=value) for name, value in extra
            ),
            **common,
        )

        sms_vars = {
            "ALERT_TYPE": alert.check_type.value,
            "ALERT_SUBJECT": subject,
            "MESSAGE": alert.message,
            "DOMAIN_NAME": alert.label,
            "DOMAIN_URL": alert.domain_name,
            "DAYS_REMAINING": "" if alert.days_remaining is None else str(alert.days_remaining),
            "DATE_TIME": timestamp,
        }

        return ComposedMessage(subject=subject, text=text, html=html, sms_vars=sms_vars)


# ============================================================================
# ALERT MANAGER
# ============================================================================

class AlertManager:
    """
    Applies the policy to check outcomes and drives delivery.

    Parameters
    ----------
    store : MonitorStore
        Source of recipients and notification switches; audit log sink.
    dispatcher : NotificationDispatcher
        Email + SMS delivery.
    """

    def __init__(
        self,
        store: MonitorStore,
        dispatcher: NotificationDispatcher,
        policy: Optional[AlertPolicy] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.dispatcher = dispatcher
        self.policy = policy or AlertPolicy(timezone=self.settings.timezone)
        self.clock = clock

    async def recipients(self) -> Recipients:
        settings_row = await self.store.get_notification_settings()
        emails = await self.store.list_email_recipients()
        phones = await self.store.list_phone_recipients()
        return self.policy.resolve_recipients(settings_row, emails, phones)

    async def handle(self, outcome: CheckOutcome) -> Optional[AlertDelivery]:
        """Evaluate policy for ``outcome`` and deliver an alert if it applies."""
        if not self.policy.should_alert(outcome.check_type, outcome.result, outcome.domain):
            return None

        outcome.should_alert = True
        delivery = await self.deliver(self.policy.build_alert(outcome))
        outcome.alert_sent = delivery.success
        return delivery

    async def deliver(self, alert: Alert) -> AlertDelivery:
        recipients = await self.recipients()
        now = self.clock()
        message = self.policy.compose_message(alert, now)

        entry = await self.store.insert(Tables.ALERTS, {
            "type": alert.check_type.value,
            "domain": alert.domain_name,
            "message": alert.message,
            "sent_to": recipients.to_snapshot(),
            "checked_at": now,
        })

        report = await self.dispatcher.send_alert(message, recipients)

        if report.success:
            logger.info(
                f"[AlertManager] {alert.check_type.value} alert for {alert.label} "
                f"delivered (email={report.email}, sms={report.sms})"
            )
        else:
            logger.error(
                f"[AlertManager] {alert.check_type.value} alert for {alert.label} "
                f"was not delivered on any channel"
            )

        return AlertDelivery(alert=alert, recipients=recipients, report=report, log_id=entry.id)

    async def send_test(
        self,
        check_type: CheckType,
        domain_name: str,
        message: Optional[str] = None,
        days_remaining: Optional[int] = None
    ) -> AlertDelivery:
        """Send a synthetic alert through the normal audit + dispatch path."""
        domain = await self.store.find_domain_by_name(domain_name)
        label = (domain.display_name if domain else None) or domain_name

        if not message:
            message = MessageTemplates.TEST_MESSAGES[check_type].format(
                name=label,
                days=days_remaining or Defaults.TEST_DAYS_REMAINING,
            )

        alert = Alert(
            check_type=check_type,
            domain_name=domain_name,
            label=label,
            message=message,
            days_remaining=days_remaining,
            domain_id=domain.id if domain else None,
        )

        logger.info(f"[AlertManager] Sending test {check_type.value} notification for {label}")
        return await self.deliver(alert)

    async def sweep_expiry_alerts(self) -> Dict[str, int]:
        """
        Re-alert on stored expiry results without probing again.

        Uses the latest ssl_info and domain_expiry row of every domain
        with expiry notifications on.
        """
        domains = {d.id: d for d in await self.store.list_domains() if d.notify_on_expiry}
        counts = {"checked": 0, "sent": 0, "failed": 0}
        if not domains:
            return counts

        now = self.clock()
        for check_type in (CheckType.SSL_EXPIRY, CheckType.DOMAIN_EXPIRY):
            rows = await self.store.query_all_latest_by_domain_set(check_type.table, domains.keys())

            for row in rows:
                counts["checked"] += 1
                if row.error_message or row.expiry_date is None:
                    continue
                # Stored counts go stale; recount from today
                days = days_remaining(row.expiry_date, now, self.policy.timezone)
                if not self.policy.is_expiring(days):
                    continue

                domain = domains[row.domain_id]
                if check_type is CheckType.SSL_EXPIRY:
                    result = SslResult(
                        host=domain.domain_name,
                        expiry_date=row.expiry_date,
                        days_remaining=days,
                        issuer=row.issuer,
                    )
                else:
                    result = ExpiryResult(
                        domain=domain.domain_name,
                        expiry_date=row.expiry_date,
                        days_remaining=days,
                        registrar=row.registrar,
                    )

                outcome = CheckOutcome(
                    check_type=check_type,
                    domain=domain,
                    result=result,
                    succeeded=True,
                    checked_at=row.checked_at,
                    record_id=row.id,
                )
                delivery = await self.handle(outcome)
                if delivery is None:
                    continue
                counts["sent" if delivery.success else "failed"] += 1

        logger.info(
            f"[AlertManager] Expiry sweep: {counts['checked']} record(s), "
            f"{counts['sent']} alert(s) sent, {counts['failed']} failed"
        )
        return counts
