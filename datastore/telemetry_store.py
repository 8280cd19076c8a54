from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Callable, Iterator, Optional

from sqlalchemy import create_engine, delete, func, select, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from datastore.tables import AccountRow, Base, ReadingRow
from models.records import NewReading, Reading
from settings import get_settings

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class StoreUnavailableError(RuntimeError):
    """The backing database could not complete an operation."""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_db_time(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db_time(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def create_store_engine(url: str, timeout: float = 10.0, pool_size: int = 5) -> Engine:
    """Build a pooled engine; SQLite gets a busy timeout, servers a checkout timeout."""
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        database = parsed.database
        connect_args = {"check_same_thread": False, "timeout": timeout}
        if not database or database == ":memory:":
            return create_engine(url, connect_args=connect_args, poolclass=StaticPool)
        Path(database).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(url, connect_args=connect_args, pool_pre_ping=True)

    connect_args = {}
    if parsed.get_driver_name() == "pymysql":
        connect_args = {"connect_timeout": max(1, int(timeout))}
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=pool_size,
        pool_timeout=timeout,
        connect_args=connect_args,
    )


class TelemetryStore:
    """Append-only table of readings plus bulk delete-by-age.

    Every public method runs in its own session and commits before
    returning. Database failures surface as :class:`StoreUnavailableError`.
    """

    def __init__(self, engine: Engine, clock: Clock = utc_now) -> None:
        self.engine = engine
        self.clock = clock
        self._sessionmaker = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        self._schema_lock = Lock()
        self._schema_ready = False
        try:
            self._ensure_schema()
        except StoreUnavailableError:
            # Retried lazily on first use.
            pass

    def append(self, reading: NewReading, recorded_at: Optional[datetime] = None) -> Reading:
        stamp = _to_db_time(recorded_at or self.clock())
        row = ReadingRow(
            owner_id=reading.owner_id,
            device_serial=reading.device_serial,
            location_label=reading.location_label,
            sensor_kind=reading.sensor_kind,
            value=reading.value,
            recorded_at=stamp,
        )
        with self._session("append") as session:
            session.add(row)
            session.flush()
            return self._to_reading(row)

    def list_for_owner(
        self,
        owner_id: str,
        location_label: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> list[Reading]:
        """Return the owner's readings, most recent first."""
        query = select(ReadingRow).where(ReadingRow.owner_id == owner_id)
        if location_label is not None:
            query = query.where(ReadingRow.location_label == location_label)
        if since is not None:
            query = query.where(ReadingRow.recorded_at >= _to_db_time(since))
        query = query.order_by(ReadingRow.recorded_at.desc(), ReadingRow.id.desc())
        with self._session("list") as session:
            return [self._to_reading(row) for row in session.scalars(query)]

    def count(self) -> int:
        with self._session("count") as session:
            return int(session.scalar(select(func.count()).select_from(ReadingRow)) or 0)

    def purge_readings_older_than(self, cutoff: datetime) -> int:
        with self._session("purge_readings") as session:
            result = session.execute(
                delete(ReadingRow).where(ReadingRow.recorded_at < _to_db_time(cutoff))
            )
            return int(result.rowcount or 0)

    def add_account(
        self,
        owner_id: str,
        email: str,
        is_verified: bool = False,
        created_at: Optional[datetime] = None,
    ) -> None:
        stamp = _to_db_time(created_at or self.clock())
        with self._session("add_account") as session:
            session.add(
                AccountRow(owner_id=owner_id, email=email, is_verified=is_verified, created_at=stamp)
            )

    def purge_unverified_accounts_older_than(self, cutoff: datetime) -> int:
        with self._session("purge_accounts") as session:
            result = session.execute(
                delete(AccountRow)
                .where(AccountRow.is_verified.is_(False))
                .where(AccountRow.created_at < _to_db_time(cutoff))
            )
            return int(result.rowcount or 0)

    def ping(self) -> tuple[bool, str]:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(text("SELECT 1")).scalar()
        except SQLAlchemyError as exc:
            return False, str(exc)
        return True, "reachable" if row == 1 else "unexpected"

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        self._ensure_schema()
        session = self._sessionmaker()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error(
                "Telemetry store operation failed",
                extra={"task": operation, "reason": str(exc)},
            )
            raise StoreUnavailableError(f"Telemetry store failed during {operation}.") from exc
        finally:
            session.close()

    def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        with self._schema_lock:
            if self._schema_ready:
                return
            try:
                Base.metadata.create_all(self.engine)
            except SQLAlchemyError as exc:
                logger.error(
                    "Could not prepare telemetry schema",
                    extra={"task": "create_schema", "reason": str(exc)},
                )
                raise StoreUnavailableError("Telemetry store schema is unavailable.") from exc
            self._schema_ready = True

    @staticmethod
    def _to_reading(row: ReadingRow) -> Reading:
        return Reading(
            id=row.id,
            owner_id=row.owner_id,
            device_serial=row.device_serial,
            location_label=row.location_label,
            sensor_kind=row.sensor_kind,
            value=row.value,
            recorded_at=_from_db_time(row.recorded_at),
        )


@lru_cache
def build_default_store(url: Optional[str] = None) -> TelemetryStore:
    settings = get_settings()
    engine = create_store_engine(
        url or settings.database_url,
        timeout=settings.store_timeout,
        pool_size=settings.store_pool_size,
    )
    return TelemetryStore(engine=engine)
