from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from datastore.telemetry_store import StoreUnavailableError, TelemetryStore, create_store_engine
from models.records import NewReading
from services.retention import (
    ACCOUNT_PURGE,
    TELEMETRY_PURGE,
    PeriodicTask,
    RetentionScheduler,
)

NOW = datetime(2024, 6, 1, 0, 0, tzinfo=timezone.utc)


def _reading(value: int) -> NewReading:
    return NewReading(
        owner_id="owner-1",
        device_serial="esp32-01",
        location_label="Qwave",
        sensor_kind="water_level",
        value=value,
    )


@pytest.fixture
def store(tmp_path) -> TelemetryStore:
    engine = create_store_engine(f"sqlite:///{tmp_path / 'retention.db'}")
    store = TelemetryStore(engine=engine, clock=lambda: NOW)
    yield store
    store.dispose()


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=2)
    yield pool
    pool.shutdown(wait=True)


def _scheduler(store: TelemetryStore, **kwargs) -> RetentionScheduler:
    options = {
        "telemetry_horizon": timedelta(hours=24),
        "account_horizon": timedelta(minutes=1),
        "clock": lambda: NOW,
    }
    options.update(kwargs)
    return RetentionScheduler(store=store, **options)


def test_telemetry_purge_keeps_recent_rows(store: TelemetryStore) -> None:
    store.append(_reading(1), recorded_at=NOW - timedelta(hours=25))
    store.append(_reading(2), recorded_at=NOW - timedelta(hours=1))
    scheduler = _scheduler(store)

    try:
        deleted = scheduler.tasks[TELEMETRY_PURGE].run_once()
    finally:
        scheduler.shutdown()

    assert deleted == 1
    assert [reading.value for reading in store.list_for_owner("owner-1")] == [2]


def test_account_purge_is_independent_of_telemetry(store: TelemetryStore) -> None:
    store.append(_reading(1), recorded_at=NOW - timedelta(hours=25))
    store.add_account("stale", "stale@example.com", created_at=NOW - timedelta(minutes=2))
    scheduler = _scheduler(store)

    try:
        deleted = scheduler.tasks[ACCOUNT_PURGE].run_once()
    finally:
        scheduler.shutdown()

    assert deleted == 1
    assert store.count() == 1


def test_failed_run_is_logged_and_not_raised(executor) -> None:
    def failing() -> int:
        raise StoreUnavailableError("down")

    task = PeriodicTask("failing", 60, failing, executor)

    assert task.run_once() is None
    assert task.failed_runs == 1
    assert task.is_running is False


def test_overlapping_tick_is_skipped(executor) -> None:
    started = threading.Event()
    release = threading.Event()

    def slow() -> int:
        started.set()
        release.wait(5)
        return 3

    task = PeriodicTask("slow", 60, slow, executor)
    first = task.trigger()
    assert started.wait(5)

    assert task.run_once() is None
    assert task.skipped_runs == 1

    release.set()
    assert first.result(timeout=5) == 3
    assert task.completed_runs == 1


def test_one_task_failure_does_not_block_the_other(store: TelemetryStore) -> None:
    store.append(_reading(1), recorded_at=NOW - timedelta(hours=30))
    scheduler = _scheduler(store)

    def broken() -> int:
        raise StoreUnavailableError("accounts table gone")

    scheduler.tasks[ACCOUNT_PURGE].action = broken
    try:
        assert scheduler.tasks[ACCOUNT_PURGE].run_once() is None
        assert scheduler.tasks[TELEMETRY_PURGE].run_once() == 1
    finally:
        scheduler.shutdown()


def test_started_task_runs_on_its_interval(executor) -> None:
    calls: list[int] = []
    done = threading.Event()

    def action() -> int:
        calls.append(1)
        if len(calls) >= 2:
            done.set()
        return 0

    task = PeriodicTask("fast", 0.01, action, executor)
    task.start()
    try:
        assert done.wait(5)
    finally:
        task.stop(timeout=1)

    assert task.completed_runs >= 2


def test_scheduler_start_and_shutdown(store: TelemetryStore) -> None:
    scheduler = _scheduler(store, telemetry_interval=3600, account_interval=3600)

    scheduler.start()
    scheduler.start()
    time.sleep(0.01)
    scheduler.shutdown()

    assert all(task._thread is None for task in scheduler.tasks.values())


def test_interval_must_be_positive(executor) -> None:
    with pytest.raises(ValueError):
        PeriodicTask("bad", 0, lambda: 0, executor)


def test_scheduler_restarts_after_shutdown(store: TelemetryStore) -> None:
    store.append(_reading(1), recorded_at=NOW - timedelta(hours=30))
    scheduler = _scheduler(store, telemetry_interval=0.01, account_interval=3600)
    task = scheduler.tasks[TELEMETRY_PURGE]

    scheduler.start()
    scheduler.shutdown()
    runs_before_restart = task.completed_runs + task.failed_runs
    scheduler.start()
    try:
        deadline = time.monotonic() + 5
        while task.completed_runs + task.failed_runs <= runs_before_restart:
            assert time.monotonic() < deadline, "no run after restart"
            time.sleep(0.01)
    finally:
        scheduler.shutdown()

    assert task.completed_runs > 0
    assert task.executor is scheduler.executor


def test_loop_logs_when_executor_is_closed(caplog) -> None:
    closed = ThreadPoolExecutor(max_workers=1)
    closed.shutdown()
    task = PeriodicTask("orphan", 0.01, lambda: 0, closed)

    with caplog.at_level(logging.ERROR, logger="services.retention"):
        task.start()
        assert task._thread is not None
        task._thread.join(5)

    assert "Executor closed" in caplog.text
    assert task.completed_runs == 0
