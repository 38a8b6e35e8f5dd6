import json
import logging

import pytest

from sqlcraft.execution.observability import (
    ExecutionEvent,
    StatementMetrics,
    TaggedLoggerAdapter,
    compose_event_observers,
    execution_event_to_dict,
    make_json_event_logger,
    tagged_logger,
)


def _event(**kwargs) -> ExecutionEvent:
    values = {
        "timestamp": "2024-01-01T00:00:00+00:00",
        "event": "statement.end",
        "dialect": "sqlite",
        "connection": "main",
        "success": True,
        "operation": "READ",
        "duration_ms": 1.5,
    }
    values.update(kwargs)
    return ExecutionEvent(**values)


def test_execution_event_to_dict_is_json_safe() -> None:
    payload = execution_event_to_dict(_event(metadata={"app": "x"}, row_count=3))
    assert payload["event"] == "statement.end"
    assert payload["row_count"] == 3
    assert payload["metadata"] == {"app": "x"}
    json.dumps(payload)


def test_json_event_logger_emits_one_line(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="sqlcraft.tests.events")
    observer = make_json_event_logger(logger=logging.getLogger("sqlcraft.tests.events"))

    observer(_event())

    assert len(caplog.records) == 1
    assert json.loads(caplog.records[0].getMessage())["connection"] == "main"


def test_compose_event_observers_calls_each() -> None:
    first: list[ExecutionEvent] = []
    second: list[ExecutionEvent] = []
    observer = compose_event_observers(first.append, second.append)

    event = _event()
    observer(event)

    assert first == [event]
    assert second == [event]


def test_statement_metrics_totals_per_statement() -> None:
    metrics = StatementMetrics()
    metrics(_event(event="statement.start", path="db/main/read.users.sql", pending=0))
    metrics(_event(path="db/main/read.users.sql", row_count=3, pending=0))
    metrics(_event(path="db/main/read.users.sql", row_count=2, duration_ms=2.5, pending=0))
    metrics(
        _event(
            path="db/main/create.user.sql",
            operation="CREATE",
            success=False,
            error_type="IntegrityError",
            duration_ms=1.0,
            pending=4,
        )
    )

    users = metrics.statement("main", "db/main/read.users.sql")
    assert users.calls == 2
    assert users.rows == 5
    assert users.failures == 0
    assert users.average_ms == 2.0

    create = metrics.statement("main", "db/main/create.user.sql")
    assert create.failures == 1
    assert create.last_error == "IntegrityError"
    assert metrics.pending("main") == 4
    assert list(metrics.snapshot()["main"]) == ["db/main/create.user.sql", "db/main/read.users.sql"]


def test_statement_metrics_counts_successful_lifecycle_runs() -> None:
    metrics = StatementMetrics()
    metrics(_event(event="lifecycle.commit", operation="commit", pending=2))
    metrics(_event(event="lifecycle.commit", operation="commit", success=False))

    assert metrics.lifecycle_count("main", "commit") == 1
    assert metrics.lifecycle_count("main", "rollback") == 0
    assert metrics.pending("main") == 2
    assert metrics.statement("other", "missing.sql").calls == 0


def test_tagged_logger_prefixes_messages(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="sqlcraft.tests.tags")
    logger = tagged_logger("sqlcraft.tests.tags", ["db", "main", "", "sqlite"])

    assert isinstance(logger, TaggedLoggerAdapter)
    logger.info("prepared %d statement(s)", 3)

    record = caplog.records[0]
    assert record.getMessage() == "[db,main,sqlite] prepared 3 statement(s)"
    assert record.tags == ("db", "main", "sqlite")
