"""Scheduled purges bounding how long data stays in the store."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import timedelta
from functools import lru_cache
from threading import Event, Lock, Thread
from typing import Callable, Dict, Optional

from datastore.telemetry_store import Clock, TelemetryStore, build_default_store, utc_now
from settings import get_settings

logger = logging.getLogger(__name__)

TELEMETRY_PURGE = "telemetry_purge"
ACCOUNT_PURGE = "unverified_account_purge"


class PeriodicTask:
    """Runs ``action`` every ``interval`` seconds, skipping a tick while the previous run is active.

    ``action`` returns the number of affected rows. Failures are logged and
    the task simply waits for its next tick.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        action: Callable[[], int],
        executor: ThreadPoolExecutor,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive.")
        self.name = name
        self.interval = interval
        self.action = action
        self.executor = executor
        self.completed_runs = 0
        self.failed_runs = 0
        self.skipped_runs = 0
        self._running = Lock()
        self._stop = Event()
        self._thread: Optional[Thread] = None

    @property
    def is_running(self) -> bool:
        return self._running.locked()

    def run_once(self) -> Optional[int]:
        if not self._running.acquire(blocking=False):
            self.skipped_runs += 1
            logger.warning(
                "Previous run still active, skipping tick",
                extra={"task": self.name, "reason": "overlap"},
            )
            return None

        start = time.perf_counter()
        try:
            affected = self.action()
        except Exception as exc:  # noqa: BLE001 - a failed run waits for the next tick
            self.failed_runs += 1
            logger.error(
                "Scheduled run failed",
                extra={
                    "task": self.name,
                    "reason": str(exc),
                    "duration_ms": int((time.perf_counter() - start) * 1000),
                },
            )
            return None
        finally:
            self._running.release()

        self.completed_runs += 1
        logger.info(
            "Scheduled run finished",
            extra={
                "task": self.name,
                "deleted_count": affected,
                "duration_ms": int((time.perf_counter() - start) * 1000),
            },
        )
        return affected

    def trigger(self) -> Future[Optional[int]]:
        return self.executor.submit(self.run_once)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = Thread(target=self._loop, name=f"periodic-{self.name}", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.trigger()
            except RuntimeError as exc:
                logger.error(
                    "Executor closed, periodic task stopped",
                    extra={"task": self.name, "reason": str(exc)},
                )
                return


class RetentionScheduler:
    """Two independent purges sharing one executor: telemetry by age and stale unverified accounts."""

    def __init__(
        self,
        store: TelemetryStore,
        telemetry_horizon: timedelta,
        account_horizon: timedelta,
        telemetry_interval: float = 86400.0,
        account_interval: float = 60.0,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.telemetry_horizon = telemetry_horizon
        self.account_horizon = account_horizon
        self.clock = clock
        self.executor = self._new_executor()
        self._executor_closed = False
        self.tasks: Dict[str, PeriodicTask] = {
            TELEMETRY_PURGE: PeriodicTask(
                TELEMETRY_PURGE, telemetry_interval, self.purge_telemetry, self.executor
            ),
            ACCOUNT_PURGE: PeriodicTask(
                ACCOUNT_PURGE, account_interval, self.purge_accounts, self.executor
            ),
        }
        self._started = False

    def purge_telemetry(self) -> int:
        cutoff = self.clock() - self.telemetry_horizon
        logger.info(
            "Purging readings", extra={"task": TELEMETRY_PURGE, "cutoff": cutoff.isoformat()}
        )
        return self.store.purge_readings_older_than(cutoff)

    def purge_accounts(self) -> int:
        cutoff = self.clock() - self.account_horizon
        return self.store.purge_unverified_accounts_older_than(cutoff)

    def start(self) -> None:
        if self._started:
            return
        if self._executor_closed:
            self.executor = self._new_executor()
            self._executor_closed = False
        for task in self.tasks.values():
            task.executor = self.executor
            task.start()
        self._started = True
        logger.info("Retention scheduler started")

    def shutdown(self) -> None:
        for task in self.tasks.values():
            task.stop(timeout=1.0)
        self.executor.shutdown(wait=False, cancel_futures=True)
        self._executor_closed = True
        self._started = False

    @staticmethod
    def _new_executor() -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=4, thread_name_prefix="retention")


@lru_cache
def build_default_scheduler() -> RetentionScheduler:
    settings = get_settings()
    return RetentionScheduler(
        store=build_default_store(),
        telemetry_horizon=timedelta(days=settings.telemetry_retention_days),
        account_horizon=timedelta(minutes=settings.account_retention_minutes),
        telemetry_interval=settings.telemetry_purge_interval,
        account_interval=settings.account_purge_interval,
    )
