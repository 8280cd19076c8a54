from __future__ import annotations

import logging

from logging_config import ContextualFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("telemetry", logging.INFO, __file__, 1, "Scheduled run finished", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_appends_known_extras() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")

    line = formatter.format(_record(task="telemetry_purge", deleted_count=3, ignored="x"))

    assert line == "Scheduled run finished | task=telemetry_purge deleted_count=3"


def test_formatter_skips_none_values() -> None:
    formatter = ContextualFormatter(fmt="%(message)s", extra_keys=["owner_id"])

    assert formatter.format(_record(owner_id=None)) == "Scheduled run finished"
