from sqlcraft.cache import Cache, CachedItem, InMemoryCache
from sqlcraft.compiler import CompiledStatement, TemplateResolver
from sqlcraft.config import (
    ConnectionOptions,
    ConnectionProfile,
    Credentials,
    ManagerConfig,
    PoolOptions,
    load_credentials_from_env,
)
from sqlcraft.errors import (
    AlreadyInitializedError,
    ConfigurationError,
    DuplicateStatementError,
    OrchestrationError,
    ResolutionError,
    SqlcraftError,
    StatementTypeError,
    UnknownDialectError,
    UnknownOperationError,
)
from sqlcraft.execution import (
    CRUD_TYPES,
    Dialect,
    DialectOptions,
    ExecOptions,
    ExecutionEvent,
    ExecutionProxy,
    ObservabilitySettings,
    PostgresDialect,
    SqliteDialect,
    StatementMetrics,
    TransactionContext,
    make_json_event_logger,
)
from sqlcraft.manager import ConnectionLifecycleOptions, LifecycleOptions, Manager
from sqlcraft.statements import StatementContainer, StatementHandle, StatementStore

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "Manager",
    "LifecycleOptions",
    "ConnectionLifecycleOptions",
    "ManagerConfig",
    "ConnectionProfile",
    "ConnectionOptions",
    "Credentials",
    "PoolOptions",
    "load_credentials_from_env",
    "Cache",
    "CachedItem",
    "InMemoryCache",
    "TemplateResolver",
    "CompiledStatement",
    "StatementStore",
    "StatementContainer",
    "StatementHandle",
    "CRUD_TYPES",
    "Dialect",
    "DialectOptions",
    "ExecOptions",
    "TransactionContext",
    "ExecutionProxy",
    "SqliteDialect",
    "PostgresDialect",
    "ObservabilitySettings",
    "ExecutionEvent",
    "StatementMetrics",
    "make_json_event_logger",
    "SqlcraftError",
    "ConfigurationError",
    "UnknownDialectError",
    "DuplicateStatementError",
    "ResolutionError",
    "StatementTypeError",
    "OrchestrationError",
    "AlreadyInitializedError",
    "UnknownOperationError",
]
