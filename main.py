"""
============================================================================
DOMAIN HEALTH MONITOR - MAIN APPLICATION
============================================================================
Wires every layer together and provides the command line entry point.

    Layer 1 - Core & Database
        • Settings (pydantic-settings)
        • SQLAlchemy async engine + MonitorStore
        • Logging, validators, helpers

    Layer 2 - Monitoring
        • Probes          - HTTP / TLS / DNS / WHOIS
        • CheckRunner     - one orchestrator per check type
        • AlertManager    - policy, audit log, email + SMS dispatch
        • BatchRunner     - all checks across all domains
        • Scheduler       - periodic monitor_sweep job

    Layer 3 - Trigger surface
        • MonitorServer   - aiohttp cron / check / notification endpoints

Commands
--------
    serve           start the server and the scheduler (default)
    run-once        one batch run, print the summary, exit
    add-domain      register a domain to monitor
    add-recipient   register an alert email address or phone number

Shutdown Order (reverse of startup)
-----------------------------------
    stop scheduler → stop server → close probes/notifiers → close DB
============================================================================
"""

import argparse
import asyncio
import json
import signal
import sys
from typing import List, Optional

from config.settings import Settings, get_settings
from database.manager import DatabaseManager, MonitorStore
from exceptions import MonitorError
from monitoring.alerts import AlertManager, AlertPolicy
from monitoring.checks import CheckRunner
from monitoring.monitor import Probes
from monitoring.notifiers import EmailNotifier, NotificationDispatcher, SmsNotifier
from monitoring.scheduler import BatchRunner, RunGuard, Scheduler
from monitoring.server import MonitorServer
from utils.logger import get_logger, setup_logging
from utils.validators import URLValidator, require_domain, require_email, require_phone, require_url


logger = get_logger("Main")


# ============================================================================
# APPLICATION CLASS
# ============================================================================

class MonitorApplication:
    """
    Top-level application orchestrator.

    Owns every subsystem and is the single place that knows the startup
    and shutdown order.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

        self.db_manager: Optional[DatabaseManager] = None
        self.store: Optional[MonitorStore] = None
        self.probes: Optional[Probes] = None
        self.sms: Optional[SmsNotifier] = None
        self.dispatcher: Optional[NotificationDispatcher] = None
        self.alert_manager: Optional[AlertManager] = None
        self.checks: Optional[CheckRunner] = None
        self.guard: Optional[RunGuard] = None
        self.batch_runner: Optional[BatchRunner] = None
        self.scheduler: Optional[Scheduler] = None
        self.server: Optional[MonitorServer] = None

        self._shutdown_event = asyncio.Event()

    # ==================================================================
    # WIRING
    # ==================================================================

    async def init_core(self) -> None:
        """Database, probes, notifiers, checks and batch runner."""
        logger.info("── Database ──────────────────────────────────────")
        self.db_manager = DatabaseManager(self.settings)
        await self.db_manager.initialize()
        self.store = MonitorStore(self.db_manager)

        logger.info("── Monitoring ────────────────────────────────────")
        self.probes = Probes(self.settings)
        self.sms = SmsNotifier(self.settings)
        self.dispatcher = NotificationDispatcher(EmailNotifier(self.settings), self.sms)
        self.alert_manager = AlertManager(
            self.store,
            self.dispatcher,
            AlertPolicy(timezone=self.settings.timezone),
            self.settings,
        )
        self.checks = CheckRunner(self.store, self.probes, self.settings)
        self.guard = RunGuard(self.store, self.settings.monitoring.rate_limit_seconds)
        self.batch_runner = BatchRunner(
            self.store, self.checks, self.alert_manager, self.settings
        )

        logger.info(
            f"  ✓ Monitoring ready: {self.settings.monitoring.max_concurrent_domains} "
            f"concurrent domains, rate limit {self.settings.monitoring.rate_limit_seconds}s"
        )

    async def startup(self) -> None:
        logger.info("=" * 74)
        logger.info(f"  STARTING {self.settings.app_name} v{self.settings.app_version}")
        logger.info("=" * 74)

        logger.debug(f"Effective settings: {self.settings.to_dict()}")
        await self.init_core()

        self.scheduler = Scheduler(self.batch_runner, self.guard, self.settings)
        self.server = MonitorServer(
            self.store,
            self.checks,
            self.alert_manager,
            self.batch_runner,
            self.guard,
            self.sms,
            self.settings,
        )

        await self.server.start()
        await self.scheduler.start()

        logger.info("  ✓ ALL SYSTEMS OPERATIONAL")

    async def shutdown(self) -> None:
        """
        Stop subsystems in reverse order. A failure in one step is logged
        and does not prevent the others from cleaning up.
        """
        logger.info("  SHUTTING DOWN …")

        steps = [
            ("Scheduler", self.scheduler.stop if self.scheduler else None),
            ("Server", self.server.stop if self.server else None),
            ("Probes", self.probes.aclose if self.probes else None),
            ("Notifiers", self.dispatcher.aclose if self.dispatcher else None),
            ("Database", self.db_manager.close if self.db_manager else None),
        ]
        for name, stop in steps:
            if stop is None:
                continue
            try:
                await stop()
            except Exception as e:
                logger.opt(exception=e).error(f"  ✗ {name} stop error: {e}")

        logger.info("  ✓ SHUTDOWN COMPLETE")

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def run_forever(self) -> None:
        await self._shutdown_event.wait()


# ============================================================================
# COMMANDS
# ============================================================================

def _install_signal_handlers(app: MonitorApplication) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, app.request_shutdown)
        except (NotImplementedError, RuntimeError):
            # Not supported on Windows; Ctrl+C still raises KeyboardInterrupt
            logger.debug(f"Signal handler for {sig.name} not installed")


async def serve(settings: Settings) -> int:
    app = MonitorApplication(settings)
    _install_signal_handlers(app)
    try:
        await app.startup()
        await app.run_forever()
    finally:
        await app.shutdown()
    return 0


async def run_once(settings: Settings, trigger: str = "manual") -> int:
    app = MonitorApplication(settings)
    try:
        await app.init_core()
        summary = await app.batch_runner.run(trigger)
        print(json.dumps(summary.to_dict(), indent=2))
    finally:
        await app.shutdown()
    return 0


async def add_domain(settings: Settings, args: argparse.Namespace) -> int:
    url = args.url
    host = args.domain
    if "://" in host:
        # A full URL was given: monitor it as-is and use its host
        url = url or host
        host = URLValidator.hostname(host) or host

    domain_name = require_domain(host)
    uptime_url = require_url(url or f"https://{domain_name}")

    app = MonitorApplication(settings)
    try:
        await app.init_core()
        domain = await app.store.add_domain(
            domain_name,
            uptime_url,
            display_name=args.name,
            notify_on_downtime=not args.no_downtime_alerts,
            notify_on_expiry=not args.no_expiry_alerts,
        )
        print(json.dumps(domain.to_dict(), indent=2))
    finally:
        await app.shutdown()
    return 0


async def add_recipient(settings: Settings, args: argparse.Namespace) -> int:
    app = MonitorApplication(settings)
    try:
        await app.init_core()
        if args.email:
            added = await app.store.add_email_recipient(require_email(args.email))
            target = args.email
        else:
            added = await app.store.add_phone_recipient(require_phone(args.phone))
            target = args.phone
    finally:
        await app.shutdown()

    print(f"{target} {'added' if added else 'already registered'}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="domain-monitor",
        description="Uptime, TLS, WHOIS and DNS monitoring with email/SMS alerts",
    )
    commands = parser.add_subparsers(dest="command")

    commands.add_parser("serve", help="Run the HTTP server and scheduler")

    run_parser = commands.add_parser("run-once", help="Run every check once and exit")
    run_parser.add_argument("--trigger", default="manual")

    domain_parser = commands.add_parser("add-domain", help="Register a domain")
    domain_parser.add_argument("domain", help="Host name or URL, e.g. example.com")
    domain_parser.add_argument("--url", help="Uptime URL (default https://<domain>)")
    domain_parser.add_argument("--name", help="Display name")
    domain_parser.add_argument("--no-downtime-alerts", action="store_true")
    domain_parser.add_argument("--no-expiry-alerts", action="store_true")

    recipient_parser = commands.add_parser("add-recipient", help="Register an alert recipient")
    group = recipient_parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--email")
    group.add_argument("--phone", help="E.164 number, e.g. +919876543210")

    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(settings)

    command = args.command or "serve"
    try:
        if command == "serve":
            return await serve(settings)
        if command == "run-once":
            return await run_once(settings, args.trigger)
        if command == "add-domain":
            return await add_domain(settings, args)
        return await add_recipient(settings, args)
    except MonitorError as e:
        logger.error(e.log_format())
        return 1


def cli() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    cli()
