"""
============================================================================
DOMAIN HEALTH MONITOR - DATABASE MANAGER
============================================================================
Async engine/session management (DatabaseManager) and the narrow record
store used by the monitoring core (MonitorStore).

The core only relies on:
    insert(table, record)
    query_latest_by_domain(table, domain_id)
    query_all_latest_by_domain_set(table, domain_ids)
plus a handful of reads/writes for domains, recipients, notification
switches and the batch-run timestamp. SQLAlchemy errors raised inside
any of them surface as PersistenceError.
============================================================================
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncGenerator, Dict, Iterable, List, Optional, Type

from sqlalchemy import func, make_url, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine
)
from sqlalchemy.pool import NullPool

from config.constants import Tables
from config.settings import Settings, get_settings
from database.models import (
    AlertLogEntry,
    Base,
    Domain,
    DomainExpiryRecord,
    IpRecord,
    MonitorRun,
    NotificationEmail,
    NotificationPhone,
    NotificationSettings,
    SslRecord,
    UptimeRecord
)
from exceptions import DatabaseConnectionError, DatabaseNotFoundError, PersistenceError
from utils.helpers import ensure_aware, utc_now
from utils.logger import get_logger


logger = get_logger("Database")


TABLE_MODELS: Dict[str, Type[Base]] = {
    Tables.DOMAINS: Domain,
    Tables.UPTIME_LOGS: UptimeRecord,
    Tables.SSL_INFO: SslRecord,
    Tables.DOMAIN_EXPIRY: DomainExpiryRecord,
    Tables.IP_RECORDS: IpRecord,
    Tables.NOTIFICATION_SETTINGS: NotificationSettings,
    Tables.NOTIFICATION_EMAILS: NotificationEmail,
    Tables.NOTIFICATION_PHONES: NotificationPhone,
    Tables.ALERTS: AlertLogEntry,
    Tables.MONITOR_RUNS: MonitorRun,
}


# ============================================================================
# DATABASE MANAGER CLASS
# ============================================================================

class DatabaseManager:
    """
    Engine and session factory for the record store.

    ``initialize()`` is idempotent and is also called lazily by the
    first ``session()``; schema creation runs once, guarded by a lock.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.db_settings = self.settings.database
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None
        self._is_initialized = False
        self._lock = asyncio.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    @property
    def safe_url(self) -> str:
        """Database URL with the password hidden, for log lines."""
        return make_url(self.db_settings.url).render_as_string(hide_password=True)

    def _engine_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {"echo": self.db_settings.echo}

        if self.db_settings.is_sqlite:
            # aiosqlite connections are cheap and must not be shared across loops
            options["poolclass"] = NullPool
        else:
            options.update(
                pool_size=self.db_settings.pool_size,
                max_overflow=self.db_settings.max_overflow,
                pool_timeout=self.db_settings.pool_timeout,
                pool_recycle=self.db_settings.pool_recycle,
                pool_pre_ping=True,
            )

        return options

    async def initialize(self) -> None:
        async with self._lock:
            if self._is_initialized:
                return

            url = self.db_settings.url
            sqlite_path = self.db_settings.sqlite_path
            if sqlite_path is not None:
                sqlite_path.parent.mkdir(parents=True, exist_ok=True)

            try:
                self.engine = create_async_engine(url, **self._engine_options())

                self.session_factory = async_sessionmaker(
                    self.engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autoflush=False
                )

                if self.db_settings.create_tables:
                    await self.create_tables()

            except (SQLAlchemyError, OSError) as e:
                logger.exception(f"Failed to initialize database: {e}")
                raise DatabaseConnectionError(
                    f"Failed to initialize database: {e}", url=url, cause=e
                ) from e

            self._is_initialized = True
            logger.info(f"Database initialized: {self.safe_url}")

    async def create_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.debug("Schema up to date")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Commit on clean exit, roll back on any exception."""
        if not self._is_initialized:
            await self.initialize()

        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except BaseException:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def check_connection(self) -> bool:
        """Return True if a trivial query succeeds."""
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database connection check failed: {e}")
            return False

    async def close(self) -> None:
        """Dispose of the engine."""
        if self.engine:
            await self.engine.dispose()
            self._is_initialized = False
            logger.info("Database engine disposed")


# ============================================================================
# MONITOR STORE
# ============================================================================

class MonitorStore:
    """
    Record store consumed by the monitoring core.

    Returned ORM instances are detached (``expire_on_commit=False``)
    and safe to read after the session closes.
    """

    BATCH_JOB = "monitor"

    def __init__(self, db: DatabaseManager):
        self.db = db

    @asynccontextmanager
    async def _operation(self, operation: str, table: Optional[str] = None):
        """Session scope that turns SQLAlchemy errors into PersistenceError."""
        try:
            async with self.db.session() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"[Store] {operation} failed on {table or '-'}: {e}")
            raise PersistenceError(
                f"{operation} failed: {e}",
                operation=operation,
                table=table,
                cause=e
            ) from e

    @staticmethod
    def _model(table: str) -> Type[Base]:
        try:
            return TABLE_MODELS[table]
        except KeyError:
            raise PersistenceError(f"Unknown table: {table}", table=table) from None

    # ------------------------------------------------------------------ #
    # Generic record access
    # ------------------------------------------------------------------ #

    async def insert(self, table: str, record: Dict[str, Any]) -> Any:
        """Append one row to ``table`` and return it."""
        model = self._model(table)
        async with self._operation("insert", table) as session:
            instance = model(**record)
            session.add(instance)
            await session.flush()
            await session.refresh(instance)
            return instance

    async def query_latest_by_domain(self, table: str, domain_id: int) -> Optional[Any]:
        """Most recent row for a domain: checked_at desc, then id desc."""
        model = self._model(table)
        async with self._operation("query_latest_by_domain", table) as session:
            result = await session.execute(
                select(model)
                .where(model.domain_id == domain_id)
                .order_by(model.checked_at.desc(), model.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def query_latest_ip(self, domain_id: int) -> Optional[str]:
        """Primary IP of the most recent successful DNS check, if any."""
        async with self._operation("query_latest_ip", Tables.IP_RECORDS) as session:
            result = await session.execute(
                select(IpRecord.primary_ip)
                .where(IpRecord.domain_id == domain_id, IpRecord.primary_ip.is_not(None))
                .order_by(IpRecord.checked_at.desc(), IpRecord.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def query_all_latest_by_domain_set(
        self,
        table: str,
        domain_ids: Iterable[int]
    ) -> List[Any]:
        """Latest row per domain for every domain in ``domain_ids``."""
        ids = list(domain_ids)
        if not ids:
            return []

        model = self._model(table)
        ranked = (
            select(
                model.id.label("row_id"),
                func.row_number().over(
                    partition_by=model.domain_id,
                    order_by=(model.checked_at.desc(), model.id.desc())
                ).label("rank")
            )
            .where(model.domain_id.in_(ids))
            .subquery()
        )

        async with self._operation("query_all_latest_by_domain_set", table) as session:
            result = await session.execute(
                select(model)
                .join(ranked, ranked.c.row_id == model.id)
                .where(ranked.c.rank == 1)
                .order_by(model.domain_id)
            )
            return list(result.scalars().all())

    # ------------------------------------------------------------------ #
    # Domains
    # ------------------------------------------------------------------ #

    async def list_domains(self) -> List[Domain]:
        async with self._operation("list_domains", Tables.DOMAINS) as session:
            result = await session.execute(select(Domain).order_by(Domain.id))
            return list(result.scalars().all())

    async def get_domain(self, domain_id: int) -> Optional[Domain]:
        async with self._operation("get_domain", Tables.DOMAINS) as session:
            return await session.get(Domain, domain_id)

    async def require_domain(self, domain_id: int) -> Domain:
        domain = await self.get_domain(domain_id)
        if domain is None:
            raise DatabaseNotFoundError(
                "Domain not found", entity_type="Domain", entity_id=domain_id
            )
        return domain

    async def find_domain_by_name(self, domain_name: str) -> Optional[Domain]:
        async with self._operation("find_domain_by_name", Tables.DOMAINS) as session:
            result = await session.execute(
                select(Domain)
                .where(func.lower(Domain.domain_name) == domain_name.lower())
                .order_by(Domain.id)
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def add_domain(
        self,
        domain_name: str,
        uptime_url: str,
        display_name: Optional[str] = None,
        notify_on_downtime: bool = True,
        notify_on_expiry: bool = True
    ) -> Domain:
        return await self.insert(Tables.DOMAINS, {
            "domain_name": domain_name,
            "uptime_url": uptime_url,
            "display_name": display_name,
            "notify_on_downtime": notify_on_downtime,
            "notify_on_expiry": notify_on_expiry,
        })

    async def update_domain_tag(self, domain_id: int, tag: str) -> None:
        """The only write a check makes outside its own log table."""
        async with self._operation("update_domain_tag", Tables.DOMAINS) as session:
            domain = await session.get(Domain, domain_id)
            if domain is not None and domain.tag != tag:
                domain.tag = tag

    # ------------------------------------------------------------------ #
    # Notification configuration
    # ------------------------------------------------------------------ #

    async def get_notification_settings(self) -> NotificationSettings:
        """Return the singleton row, creating it (both channels on) if absent."""
        async with self._operation("get_notification_settings", Tables.NOTIFICATION_SETTINGS) as session:
            result = await session.execute(
                select(NotificationSettings).order_by(NotificationSettings.id).limit(1)
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = NotificationSettings(email_enabled=True, sms_enabled=True)
                session.add(row)
                await session.flush()
                await session.refresh(row)
            return row

    async def update_notification_settings(
        self,
        email_enabled: Optional[bool] = None,
        sms_enabled: Optional[bool] = None
    ) -> NotificationSettings:
        current = await self.get_notification_settings()
        async with self._operation("update_notification_settings", Tables.NOTIFICATION_SETTINGS) as session:
            row = await session.get(NotificationSettings, current.id)
            if email_enabled is not None:
                row.email_enabled = email_enabled
            if sms_enabled is not None:
                row.sms_enabled = sms_enabled
            await session.flush()
            await session.refresh(row)
            return row

    async def list_email_recipients(self) -> List[str]:
        async with self._operation("list_email_recipients", Tables.NOTIFICATION_EMAILS) as session:
            result = await session.execute(
                select(NotificationEmail.email).order_by(NotificationEmail.id)
            )
            return list(result.scalars().all())

    async def list_phone_recipients(self) -> List[str]:
        async with self._operation("list_phone_recipients", Tables.NOTIFICATION_PHONES) as session:
            result = await session.execute(
                select(NotificationPhone.phone_number).order_by(NotificationPhone.id)
            )
            return list(result.scalars().all())

    async def add_email_recipient(self, email: str) -> bool:
        """Return False if the address is already registered."""
        try:
            await self.insert(Tables.NOTIFICATION_EMAILS, {"email": email})
        except PersistenceError as e:
            if isinstance(e.cause, IntegrityError):
                return False
            raise
        return True

    async def add_phone_recipient(self, phone_number: str) -> bool:
        """Return False if the number is already registered."""
        try:
            await self.insert(Tables.NOTIFICATION_PHONES, {"phone_number": phone_number})
        except PersistenceError as e:
            if isinstance(e.cause, IntegrityError):
                return False
            raise
        return True

    # ------------------------------------------------------------------ #
    # Batch run state
    # ------------------------------------------------------------------ #

    async def get_last_run(self, name: str = BATCH_JOB) -> Optional[datetime]:
        async with self._operation("get_last_run", Tables.MONITOR_RUNS) as session:
            result = await session.execute(
                select(MonitorRun.last_run_at).where(MonitorRun.name == name)
            )
            value = result.scalar_one_or_none()
            return ensure_aware(value) if value else None

    async def set_last_run(
        self,
        at: Optional[datetime] = None,
        trigger: Optional[str] = None,
        name: str = BATCH_JOB
    ) -> None:
        at = at or utc_now()
        async with self._operation("set_last_run", Tables.MONITOR_RUNS) as session:
            result = await session.execute(
                select(MonitorRun).where(MonitorRun.name == name)
            )
            row = result.scalar_one_or_none()
            if row is None:
                session.add(MonitorRun(name=name, last_run_at=at, trigger=trigger))
            else:
                row.last_run_at = at
                row.trigger = trigger
