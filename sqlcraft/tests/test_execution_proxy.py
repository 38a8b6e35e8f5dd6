from datetime import date, datetime, time, timedelta, timezone
import logging
from pathlib import Path
import sqlite3

import pytest

from sqlcraft.config import ConnectionOptions, ConnectionProfile, Credentials
from sqlcraft.errors import ResolutionError, StatementTypeError
from sqlcraft.execution import (
    Dialect,
    DialectOptions,
    ExecOptions,
    ExecutionEvent,
    ObservabilitySettings,
    tagged_logger,
)
from sqlcraft.execution.proxy import ExecutionProxy, format_bind_value
from sqlcraft.statements import StatementHandle, StaticStatementSource


class _RecordingDialect(Dialect):
    def __init__(self, rows=None, error=None) -> None:
        super().__init__(Credentials(), ConnectionOptions(dialect="sqlite"))
        self.rows = rows if rows is not None else []
        self.error = error
        self.calls = []

    async def init(self, options):
        self.calls.append(("init", options))
        self.last_connection_count = 1
        self.last_connection_in_use_count = 0
        return {"connections": 1, "num_of_prepared": options.num_of_prepared}

    async def execute(self, sql, options, fragments=None):
        self.calls.append(("execute", sql, options, fragments))
        if self.error is not None:
            raise self.error
        return self.rows if options.type == "READ" else None

    async def commit(self, options):
        self.calls.append(("commit", options))

    async def rollback(self, options):
        self.calls.append(("rollback", options))

    async def close(self, options):
        self.calls.append(("close", options))


def _profile(**kwargs) -> ConnectionProfile:
    return ConnectionProfile(id="conn1", name="main", options=ConnectionOptions(dialect="sqlite"), **kwargs)


def _handle(proxy: ExecutionProxy, sql: str, crud: str | None = "READ", name: str = "read.users.sql") -> StatementHandle:
    return StatementHandle(
        name=f"sqlite_main_{name.rsplit('.', 1)[0].replace('.', '_')}",
        path=Path(name),
        extension="sql",
        crud=crud,
        source=StaticStatementSource(sql),
        proxy=proxy,
    )


# ==================================================
# Bind Values
# ==================================================

def test_format_bind_value_converts_dates() -> None:
    aware = datetime(2024, 1, 2, 5, 4, 5, 123456, tzinfo=timezone(timedelta(hours=2)))
    assert format_bind_value(aware) == "2024-01-02T03:04:05.123Z"
    assert format_bind_value(datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02T03:04:05.000"
    assert format_bind_value(date(2024, 1, 2)) == "2024-01-02"
    assert format_bind_value(42) == 42
    assert format_bind_value("text") == "text"


def test_format_bind_value_converts_times_and_collection_items() -> None:
    assert format_bind_value(time(9, 30)) == "09:30:00"
    assert format_bind_value([date(2024, 1, 2), 3]) == ["2024-01-02", 3]
    assert format_bind_value((datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),)) == ("2024-01-02T03:04:05.000Z",)


def test_merge_binds_prefers_call_values() -> None:
    proxy = ExecutionProxy(_profile(binds={"tenant": 7, "limit": 10}), _RecordingDialect())
    merged = proxy.merge_binds({"limit": 5, "day": date(2024, 3, 1)})
    assert merged == {"tenant": 7, "limit": 5, "day": "2024-03-01"}


@pytest.mark.asyncio
async def test_dates_inside_list_binds_are_formatted_before_expansion() -> None:
    dialect = _RecordingDialect(rows=[])
    proxy = ExecutionProxy(_profile(), dialect)
    handle = _handle(proxy, "SELECT * FROM events WHERE day IN (:days)")

    await handle(ExecOptions(binds={"days": [date(2024, 3, 1), date(2024, 3, 2)]}))

    _, sql, options, _ = dialect.calls[0]
    assert sql == "SELECT * FROM events WHERE day IN (:days, :days1)"
    assert options.binds == {"days": "2024-03-01", "days1": "2024-03-02"}


# ==================================================
# Statement Type
# ==================================================

@pytest.mark.asyncio
async def test_statement_without_type_is_rejected() -> None:
    dialect = _RecordingDialect()
    proxy = ExecutionProxy(_profile(), dialect)
    handle = _handle(proxy, "SELECT 1", crud=None, name="users.sql")

    with pytest.raises(StatementTypeError, match='must include "type" set to one of CREATE,READ,UPDATE,DELETE'):
        await handle()
    assert dialect.calls == []


@pytest.mark.asyncio
async def test_invalid_type_is_rejected() -> None:
    proxy = ExecutionProxy(_profile(), _RecordingDialect())
    handle = _handle(proxy, "SELECT 1", crud=None, name="users.sql")

    with pytest.raises(ResolutionError, match='"MERGE" is not a valid statement type'):
        await handle(ExecOptions(type="MERGE"))


@pytest.mark.asyncio
async def test_explicit_type_is_used_when_name_has_no_prefix() -> None:
    dialect = _RecordingDialect(rows=[{"id": 1}])
    proxy = ExecutionProxy(_profile(), dialect)
    handle = _handle(proxy, "SELECT 1", crud=None, name="users.sql")

    rows = await handle(ExecOptions(type="read"))

    assert rows == [{"id": 1}]
    assert dialect.calls[0][2].type == "READ"


@pytest.mark.asyncio
async def test_explicit_type_overrides_prefix() -> None:
    dialect = _RecordingDialect()
    proxy = ExecutionProxy(_profile(), dialect)
    handle = _handle(proxy, "DELETE FROM users", crud="READ")

    assert await handle(ExecOptions(type="DELETE")) is None
    assert dialect.calls[0][2].type == "DELETE"


# ==================================================
# Execution
# ==================================================

@pytest.mark.asyncio
async def test_call_resolves_template_and_binds() -> None:
    dialect = _RecordingDialect(rows=[{"id": 1}, {"id": 2}])
    proxy = ExecutionProxy(_profile(binds={"tenant": 3}), dialect)
    handle = _handle(
        proxy,
        "SELECT * FROM users WHERE id IN (:ids)\n[[? tenant]]\nAND tenant = :tenant\n[[?]]\nORDER BY id",
    )

    rows = await handle(ExecOptions(binds={"ids": [1, 2]}, num_of_iterations=4), ["tenant"])

    assert rows == [{"id": 1}, {"id": 2}]
    _, sql, options, fragments = dialect.calls[0]
    assert sql == "SELECT * FROM users WHERE id IN (:ids, :ids1)\nAND tenant = :tenant\nORDER BY id"
    assert options.binds == {"tenant": 3, "ids": 1, "ids1": 2}
    assert options.num_of_iterations == 4
    assert fragments == ["tenant"]


@pytest.mark.asyncio
async def test_json_content_is_handed_over_untouched() -> None:
    dialect = _RecordingDialect(rows=[])
    proxy = ExecutionProxy(_profile(), dialect)
    handle = StatementHandle(
        name="sqlite_main_read_users",
        path=Path("read.users.json"),
        extension="json",
        crud="READ",
        source=StaticStatementSource({"find": "users"}),
        proxy=proxy,
    )

    await handle()
    assert dialect.calls[0][1] == {"find": "users"}


@pytest.mark.asyncio
async def test_pending_counter_counts_non_read_statements() -> None:
    dialect = _RecordingDialect()
    proxy = ExecutionProxy(_profile(), dialect)
    read = _handle(proxy, "SELECT 1", crud="READ")
    update = _handle(proxy, "UPDATE t SET a = 1", crud="UPDATE", name="update.t.sql")

    await read()
    assert proxy.pending == 0
    await update()
    await update()
    assert proxy.pending == 2
    assert dialect.calls[-1][2].tx.pending == 2

    await proxy.commit()
    assert proxy.pending == 2
    assert dialect.calls[-1][1].tx.pending == 2


@pytest.mark.asyncio
async def test_driver_error_is_raised_unchanged() -> None:
    original = sqlite3.IntegrityError("UNIQUE constraint failed: users.id")
    proxy = ExecutionProxy(_profile(), _RecordingDialect(error=original))
    handle = _handle(proxy, "INSERT INTO users (id) VALUES (:id)", crud="CREATE", name="create.user.sql")

    with pytest.raises(sqlite3.IntegrityError) as excinfo:
        await handle(ExecOptions(binds={"id": 1}))

    assert excinfo.value is original


@pytest.mark.asyncio
async def test_driver_error_is_returned_when_requested() -> None:
    original = sqlite3.IntegrityError("UNIQUE constraint failed: users.id")
    proxy = ExecutionProxy(_profile(), _RecordingDialect(error=original))
    handle = _handle(proxy, "INSERT INTO users (id) VALUES (:id)", crud="CREATE", name="create.user.sql")

    result = await handle(ExecOptions(binds={"id": 1}, return_errors=True))

    assert result is original
    assert proxy.pending == 1



# ==================================================
# Logging
# ==================================================

@pytest.mark.asyncio
async def test_success_is_logged_with_tags(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="sqlcraft.tests.proxy")
    logger = tagged_logger("sqlcraft.tests.proxy", ["db", "main", "sqlite"])
    dialect = _RecordingDialect(rows=[{"id": 1}, {"id": 2}])
    await dialect.init(DialectOptions())
    proxy = ExecutionProxy(_profile(), dialect, logger=logger)

    await _handle(proxy, "SELECT 1")()

    messages = [record.getMessage() for record in caplog.records]
    assert any(message.startswith("[db,main,sqlite] Executing SQL read.users.sql") for message in messages)
    assert any(
        "SQL read.users.sql returned with 2 records" in message and "connections: 1, in use: 0" in message
        for message in messages
    )


@pytest.mark.asyncio
async def test_failure_is_logged_with_unknown_counts(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.ERROR, logger="sqlcraft.tests.proxy.errors")
    error_logger = tagged_logger("sqlcraft.tests.proxy.errors", ["error"])
    proxy = ExecutionProxy(_profile(), _RecordingDialect(error=RuntimeError("boom")), error_logger=error_logger)

    await _handle(proxy, "SELECT 1")(ExecOptions(return_errors=True))

    assert len(caplog.records) == 1
    message = caplog.records[0].getMessage()
    assert message.startswith("[error] SQL read.users.sql failed boom")
    assert "connections: N/A, in use: N/A" in message
    assert caplog.records[0].tags == ("error",)


# ==================================================
# Events
# ==================================================

@pytest.mark.asyncio
async def test_statement_and_lifecycle_events_are_emitted() -> None:
    events: list[ExecutionEvent] = []
    profile = _profile(observability=ObservabilitySettings(event_observer=events.append, metadata={"app": "test"}))
    dialect = _RecordingDialect(rows=[{"id": 1}])
    proxy = ExecutionProxy(profile, dialect)

    await proxy.initialize(num_of_prepared=3)
    await _handle(proxy, "SELECT 1")()

    assert [event.event for event in events] == ["lifecycle.init", "statement.start", "statement.end"]
    end = events[-1]
    assert end.success is True
    assert end.connection == "main"
    assert end.statement == "sqlite_main_read_users"
    assert end.row_count == 1
    assert end.metadata == {"app": "test"}
    assert end.duration_ms is not None and end.duration_ms >= 0


@pytest.mark.asyncio
async def test_failed_statement_event_carries_error() -> None:
    events: list[ExecutionEvent] = []
    profile = _profile(observability=ObservabilitySettings(event_observer=events.append))
    proxy = ExecutionProxy(profile, _RecordingDialect(error=RuntimeError("database is locked")))

    await _handle(proxy, "SELECT 1")(ExecOptions(return_errors=True))

    end = events[-1]
    assert end.success is False
    assert end.error_type == "RuntimeError"
    assert end.error_message == "database is locked"


@pytest.mark.asyncio
async def test_initialize_returns_dialect_pool_info() -> None:
    dialect = _RecordingDialect()
    proxy = ExecutionProxy(_profile(), dialect)

    info = await proxy.initialize(num_of_prepared=5)

    assert info == {"connections": 1, "num_of_prepared": 5}
    assert dialect.calls[0][0] == "init"
