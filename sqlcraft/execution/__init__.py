from sqlcraft.execution.base import (
    CRUD_TYPES,
    Dialect,
    DialectOptions,
    ExecOptions,
    TransactionContext,
)
from sqlcraft.execution.sqlite import SqliteDialect
from sqlcraft.execution.postgres import PostgresDialect
from sqlcraft.execution.proxy import ExecutionProxy, format_bind_value
from sqlcraft.execution.observability import (
    ExecutionEvent,
    ObservabilitySettings,
    StatementMetrics,
    StatementStats,
    TaggedLoggerAdapter,
    compose_event_observers,
    execution_event_to_dict,
    make_json_event_logger,
    tagged_logger,
)

__all__ = [
    "CRUD_TYPES",
    "Dialect",
    "DialectOptions",
    "ExecOptions",
    "TransactionContext",
    "SqliteDialect",
    "PostgresDialect",
    "ExecutionProxy",
    "format_bind_value",
    "ObservabilitySettings",
    "ExecutionEvent",
    "StatementMetrics",
    "StatementStats",
    "TaggedLoggerAdapter",
    "compose_event_observers",
    "execution_event_to_dict",
    "make_json_event_logger",
    "tagged_logger",
]
