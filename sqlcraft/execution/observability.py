from dataclasses import asdict, dataclass, field
import json
import logging
from typing import Any, Callable, Mapping, MutableMapping, Sequence

# ==================================================
# Observability Types
# ==================================================

EventObserveHook = Callable[["ExecutionEvent"], None]


@dataclass(frozen=True)
class ObservabilitySettings:
    """
    Per-connection observability settings.
    """

    event_observer: EventObserveHook | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ExecutionEvent:
    """
    Structured statement/lifecycle event payload.
    """

    timestamp: str
    event: str
    dialect: str
    connection: str
    success: bool
    metadata: Mapping[str, Any] = field(default_factory=dict)
    operation: str | None = None
    statement: str | None = None
    path: str | None = None
    duration_ms: float | None = None
    pending: int | None = None
    row_count: int | None = None
    connection_count: int | None = None
    connection_in_use_count: int | None = None
    error_type: str | None = None
    error_message: str | None = None


def execution_event_to_dict(event: ExecutionEvent) -> dict[str, Any]:
    """
    Converts an ExecutionEvent into a plain dictionary; metadata is copied.
    """
    payload = asdict(event)
    payload["metadata"] = dict(event.metadata)
    return payload


def make_json_event_logger(
    *,
    logger: logging.Logger,
    level: int = logging.INFO,
) -> EventObserveHook:
    """
    Builds an EventObserveHook that emits one JSON log line per ExecutionEvent.
    """

    def _log_event(event: ExecutionEvent) -> None:
        payload = execution_event_to_dict(event)
        logger.log(level, json.dumps(payload, separators=(",", ":"), sort_keys=True, default=str))

    return _log_event


def compose_event_observers(*observers: EventObserveHook) -> EventObserveHook:
    """
    Composes multiple event observers into a single observer.
    """

    def _composed(event: ExecutionEvent) -> None:
        for observer in observers:
            observer(event)

    return _composed


# ==================================================
# Tagged Loggers
# ==================================================


class TaggedLoggerAdapter(logging.LoggerAdapter):
    """
    Prefixes every message with `[tag1,tag2,...]` and exposes the tags as `extra`.
    """

    def __init__(self, logger: logging.Logger, tags: Sequence[str]) -> None:
        self.tags = tuple(str(tag) for tag in tags if tag is not None and tag != "")
        super().__init__(logger, {"tags": self.tags})

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("tags", self.tags)
        kwargs["extra"] = extra
        return f"[{','.join(self.tags)}] {msg}", kwargs


def tagged_logger(logger: logging.Logger | str, tags: Sequence[str]) -> TaggedLoggerAdapter:
    if isinstance(logger, str):
        logger = logging.getLogger(logger)
    return TaggedLoggerAdapter(logger, tags)


# ==================================================
# Statement Metrics
# ==================================================


@dataclass
class StatementStats:
    """
    Running totals for one statement file of one connection.
    """

    calls: int = 0
    failures: int = 0
    rows: int = 0
    total_ms: float = 0.0
    last_error: str | None = None

    @property
    def average_ms(self) -> float:
        return self.total_ms / self.calls if self.calls else 0.0


class StatementMetrics:
    """
    Event observer keeping per-statement totals, the latest pending write count
    of each connection and successful lifecycle runs. Attach an instance as
    `ObservabilitySettings.event_observer`.
    """

    def __init__(self) -> None:
        self._statements: dict[tuple[str, str], StatementStats] = {}
        self._pending: dict[str, int] = {}
        self._lifecycle: dict[tuple[str, str], int] = {}

    def __call__(self, event: ExecutionEvent) -> None:
        if event.pending is not None:
            self._pending[event.connection] = event.pending

        if event.event == "statement.end":
            key = (event.connection, event.path or event.statement or "")
            stats = self._statements.setdefault(key, StatementStats())
            stats.calls += 1
            stats.rows += event.row_count or 0
            if event.duration_ms is not None:
                stats.total_ms += event.duration_ms
            if not event.success:
                stats.failures += 1
                stats.last_error = event.error_type
            return

        if event.event.startswith("lifecycle.") and event.success:
            key = (event.connection, event.operation or event.event.partition(".")[2])
            self._lifecycle[key] = self._lifecycle.get(key, 0) + 1

    def statement(self, connection: str, path: str) -> StatementStats:
        return self._statements.get((connection, path), StatementStats())

    def pending(self, connection: str) -> int:
        return self._pending.get(connection, 0)

    def lifecycle_count(self, connection: str, operation: str) -> int:
        return self._lifecycle.get((connection, operation), 0)

    def snapshot(self) -> dict[str, dict[str, StatementStats]]:
        """
        Groups statement totals by connection name, then by statement path.
        """
        grouped: dict[str, dict[str, StatementStats]] = {}
        for (connection, path), stats in sorted(self._statements.items()):
            grouped.setdefault(connection, {})[path] = stats
        return grouped
