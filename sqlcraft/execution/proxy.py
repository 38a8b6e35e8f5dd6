from __future__ import annotations

from datetime import date, datetime, time as dt_time, timezone
import json
import logging
import time
from typing import TYPE_CHECKING, Any, Mapping, Sequence

from sqlcraft.compiler.template_resolver import TemplateResolver
from sqlcraft.errors import StatementTypeError
from sqlcraft.execution.base import CRUD_TYPES, Dialect, DialectOptions, ExecOptions, TransactionContext
from sqlcraft.execution.observability import ExecutionEvent

if TYPE_CHECKING:
    from sqlcraft.config import ConnectionProfile
    from sqlcraft.statements.models import StatementHandle


def format_bind_value(value: Any) -> Any:
    """
    Converts date and time bind values to ISO-8601 text, including the elements of
    list and tuple binds. Aware datetimes are shifted to UTC and rendered with
    millisecond precision and a `Z` suffix.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
            return value.isoformat(timespec="milliseconds") + "Z"
        return value.isoformat(timespec="milliseconds")
    if isinstance(value, (date, dt_time)):
        return value.isoformat()
    if isinstance(value, list):
        return [format_bind_value(item) for item in value]
    if isinstance(value, tuple):
        return tuple(format_bind_value(item) for item in value)
    return value


def _describe(options: DialectOptions) -> str:
    payload = {"type": options.type, "binds": options.binds}
    if options.num_of_iterations is not None:
        payload["num_of_iterations"] = options.num_of_iterations
    if options.return_errors:
        payload["return_errors"] = True
    return json.dumps(payload, default=str, sort_keys=True)


# ==================================================
# Execution Proxy
# ==================================================


class ExecutionProxy:
    """
    Bridges statement handles of one connection to its Dialect.

    Every call merges connection default binds with call binds, resolves the
    statement template and hands the result to the dialect. Driver failures are
    logged and then either returned as a value or re-raised unchanged.
    """

    def __init__(
        self,
        profile: ConnectionProfile,
        dialect: Dialect,
        logger: logging.LoggerAdapter | logging.Logger | None = None,
        error_logger: logging.LoggerAdapter | logging.Logger | None = None,
    ) -> None:
        self.profile = profile
        self.dialect = dialect
        self.resolver = TemplateResolver(profile.dialect, profile.version)
        # Never decremented: counts every non-READ statement submitted on this connection.
        self.pending = 0
        self._logger = logger
        self._error_logger = error_logger

    # ==================================================
    # Statement Calls
    # ==================================================

    def resolve_type(self, handle: StatementHandle, options: ExecOptions | None) -> str:
        given = options.type if options is not None else None
        crud = (given or handle.crud or "").upper()
        if crud not in CRUD_TYPES:
            raise StatementTypeError(str(handle.path), CRUD_TYPES, given)
        return crud

    def merge_binds(self, binds: Mapping[str, Any] | None) -> dict[str, Any]:
        merged = dict(self.profile.binds)
        merged.update(binds or {})
        return {key: format_bind_value(value) for key, value in merged.items()}

    async def call(
        self,
        handle: StatementHandle,
        options: ExecOptions | None = None,
        fragments: Sequence[str] | None = None,
    ) -> Any:
        crud = self.resolve_type(handle, options)
        options = options or ExecOptions()
        binds = self.merge_binds(options.binds)
        sql = await handle.source.read()
        compiled = self.resolver.compile(sql, binds, fragments)
        return await self.execute(
            handle,
            compiled.sql,
            DialectOptions(
                type=crud,
                binds=compiled.binds,
                num_of_iterations=options.num_of_iterations,
                return_errors=options.return_errors,
            ),
            fragments,
        )

    async def execute(
        self,
        handle: StatementHandle,
        sql: Any,
        options: DialectOptions,
        fragments: Sequence[str] | None,
    ) -> Any:
        path = str(handle.path)
        if self._logger is not None:
            self._logger.debug(
                "Executing SQL %s with options %s%s",
                path,
                _describe(options),
                f" fragments used {json.dumps(list(fragments))}" if fragments else "",
            )
        if options.type != "READ":
            self.pending += 1
        options.tx = TransactionContext(pending=self.pending)

        self._emit_event("statement.start", success=True, handle=handle, options=options)
        started = time.perf_counter()
        try:
            rows = await self.dialect.execute(sql, options, fragments)
        except Exception as exc:
            duration_ms = (time.perf_counter() - started) * 1000
            if self._error_logger is not None:
                self._error_logger.error(
                    "SQL %s failed %s (options: %s, connections: %s, in use: %s)",
                    path,
                    exc,
                    _describe(options),
                    self._diagnostic(self.dialect.last_connection_count),
                    self._diagnostic(self.dialect.last_connection_in_use_count),
                )
            self._emit_event(
                "statement.end",
                success=False,
                handle=handle,
                options=options,
                duration_ms=duration_ms,
                error=exc,
            )
            if options.return_errors:
                return exc
            raise

        duration_ms = (time.perf_counter() - started) * 1000
        row_count = len(rows) if isinstance(rows, (list, tuple)) else None
        if self._logger is not None:
            self._logger.info(
                "SQL %s returned with %s records (options: %s, connections: %s, in use: %s)",
                path,
                row_count or 0,
                _describe(options),
                self._diagnostic(self.dialect.last_connection_count),
                self._diagnostic(self.dialect.last_connection_in_use_count),
            )
        self._emit_event(
            "statement.end",
            success=True,
            handle=handle,
            options=options,
            duration_ms=duration_ms,
            row_count=row_count,
        )
        return rows

    # ==================================================
    # Lifecycle Controls
    # ==================================================

    def _lifecycle_options(self, **kwargs: Any) -> DialectOptions:
        return DialectOptions(tx=TransactionContext(pending=self.pending), **kwargs)

    async def _lifecycle(self, operation: str, options: DialectOptions) -> Any:
        started = time.perf_counter()
        try:
            result = await getattr(self.dialect, operation)(options)
        except Exception as exc:
            self._emit_event(
                f"lifecycle.{operation}",
                success=False,
                operation=operation,
                duration_ms=(time.perf_counter() - started) * 1000,
                error=exc,
            )
            raise
        self._emit_event(
            f"lifecycle.{operation}",
            success=True,
            operation=operation,
            duration_ms=(time.perf_counter() - started) * 1000,
        )
        return result

    async def initialize(self, num_of_prepared: int = 0) -> Any:
        return await self._lifecycle("init", self._lifecycle_options(num_of_prepared=num_of_prepared))

    async def commit(self) -> Any:
        return await self._lifecycle("commit", self._lifecycle_options())

    async def rollback(self) -> Any:
        return await self._lifecycle("rollback", self._lifecycle_options())

    async def close(self) -> Any:
        return await self._lifecycle("close", self._lifecycle_options())

    # ==================================================
    # Observability Helpers
    # ==================================================

    @staticmethod
    def _diagnostic(value: int | None) -> Any:
        return "N/A" if value is None else value

    def _emit_event(
        self,
        event: str,
        *,
        success: bool,
        handle: StatementHandle | None = None,
        options: DialectOptions | None = None,
        operation: str | None = None,
        duration_ms: float | None = None,
        row_count: int | None = None,
        error: BaseException | None = None,
    ) -> None:
        settings = self.profile.observability
        if settings is None or settings.event_observer is None:
            return
        settings.event_observer(
            ExecutionEvent(
                timestamp=datetime.now(timezone.utc).isoformat(),
                event=event,
                dialect=self.profile.dialect,
                connection=self.profile.name,
                success=success,
                metadata=dict(settings.metadata),
                operation=operation or (options.type if options is not None else None),
                statement=handle.name if handle is not None else None,
                path=str(handle.path) if handle is not None else None,
                duration_ms=duration_ms,
                pending=options.tx.pending if options is not None else self.pending,
                row_count=row_count,
                connection_count=self.dialect.last_connection_count,
                connection_in_use_count=self.dialect.last_connection_in_use_count,
                error_type=type(error).__name__ if error is not None else None,
                error_message=str(error) if error is not None else None,
            )
        )
