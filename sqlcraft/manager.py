from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import importlib
import logging
from typing import Any, Awaitable, Callable, Mapping, Sequence

from sqlcraft.cache import Cache
from sqlcraft.config import ConnectionProfile, ManagerConfig
from sqlcraft.errors import (
    AlreadyInitializedError,
    ConfigurationError,
    OrchestrationError,
    UnknownDialectError,
    UnknownOperationError,
)
from sqlcraft.execution.base import CRUD_TYPES, Dialect
from sqlcraft.execution.observability import TaggedLoggerAdapter, tagged_logger
from sqlcraft.execution.postgres import PostgresDialect
from sqlcraft.execution.proxy import ExecutionProxy
from sqlcraft.execution.sqlite import SqliteDialect
from sqlcraft.statements.models import StatementContainer, StatementHandle
from sqlcraft.statements.store import StatementStore

DEFAULT_DIALECTS: Mapping[str, type[Dialect]] = {
    "sqlite": SqliteDialect,
    "postgres": PostgresDialect,
    "postgresql": PostgresDialect,
}

LIFECYCLE_OPERATIONS: Mapping[str, str] = {
    "init": "initialize",
    "commit": "commit",
    "rollback": "rollback",
    "close": "close",
}

# ==================================================
# Lifecycle Options
# ==================================================


@dataclass(frozen=True)
class ConnectionLifecycleOptions:
    execute_in_series: bool | None = None


@dataclass(frozen=True)
class LifecycleOptions:
    """
    Scheduling for a lifecycle batch. `execute_in_series` is the batch default;
    an entry in `connections` overrides it for that connection name.
    """

    execute_in_series: bool = False
    connections: Mapping[str, ConnectionLifecycleOptions] = field(default_factory=dict)

    def in_series(self, name: str) -> bool:
        override = self.connections.get(name)
        if override is not None and override.execute_in_series is not None:
            return override.execute_in_series
        return self.execute_in_series


def resolve_dialect_class(name: str, table: Mapping[str, Any]) -> type[Dialect]:
    """
    Looks a dialect up by name. Values may be Dialect subclasses or
    `"package.module:ClassName"` import paths.
    """
    impl = table.get(name)
    if impl is None:
        impl = DEFAULT_DIALECTS.get(name)
    if impl is None:
        raise UnknownDialectError(
            f"Database configuration dialects do not contain an implementation for {name}"
        )
    if isinstance(impl, str):
        module_name, _, attr = impl.partition(":")
        try:
            module = importlib.import_module(module_name)
            impl = getattr(module, attr) if attr else getattr(module, "Dialect")
        except (ImportError, AttributeError) as exc:
            raise UnknownDialectError(f"Unable to load dialect {name} from {table.get(name)!r}: {exc}") from exc
    if not (isinstance(impl, type) and issubclass(impl, Dialect)):
        raise UnknownDialectError(f"Dialect implementation for {name} must be a subclass of Dialect")
    return impl


# ==================================================
# Manager
# ==================================================


class Manager:
    """
    Entry point that turns directories of SQL files into awaitable statement
    handles for any number of connections and coordinates their lifecycle.

    Statements are reachable after `await manager.init()` as
    `manager.db.<connection>.<segment>...`::

        rows = await manager.db.reports.read.sales.by_region(ExecOptions(binds={"region": "EU"}))
    """

    OPERATION_TYPES = CRUD_TYPES

    def __init__(
        self,
        config: ManagerConfig,
        cache: Cache | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if config is None:
            raise ConfigurationError("Database configuration is required")
        self.config = config
        self.cache = cache
        self._logger = logger or logging.getLogger("sqlcraft.manager")
        self.db = StatementContainer(name="")
        self.handle_count = 0
        self.connection_counts: dict[str, int] = {}
        self._initialized = False
        self._stores: list[StatementStore] = []
        track: dict[str, Any] = {}

        for index, profile in enumerate(config.connections):
            self._stores.append(self._build_store(index, profile, track))

    def _build_store(self, index: int, profile: ConnectionProfile, track: dict[str, Any]) -> StatementStore:
        if not profile.id:
            raise ConfigurationError(f'Connection at index {index} must have an "id"')
        credentials = self.config.credentials.get(profile.id)
        if credentials is None:
            raise ConfigurationError(f'Connection at index {index} has invalid "id": {profile.id}')
        if not profile.name:
            raise ConfigurationError(f"Connection {profile.id} must have a name")
        if profile.name in self.db:
            raise ConfigurationError(
                f"Database connection ID {profile.id} cannot have a duplicate name for {profile.name}"
            )
        try:
            dialect_class = resolve_dialect_class(profile.dialect, self.config.dialects)
        except UnknownDialectError as exc:
            raise UnknownDialectError(
                f"{exc} at connection index {index}/ID {profile.id} for host "
                f"{profile.options.host or credentials.host}"
            ) from exc

        info_logger = self._connection_logger(profile, profile.options.log_tags, profile.options.logging_enabled)
        error_logger = self._connection_logger(
            profile, profile.options.error_log_tags, profile.options.error_logging_enabled
        )
        dialect = dialect_class(
            credentials,
            profile.options,
            service=profile.service,
            sid=profile.sid,
            private_path=self.config.private_path,
            track=track,
            error_logger=error_logger,
            logger=info_logger,
            debug=self.config.debug,
        )
        proxy = ExecutionProxy(profile, dialect, logger=info_logger, error_logger=error_logger)
        store = StatementStore(
            profile,
            self.config.main_path / profile.directory_name,
            proxy,
            cache=self.cache,
            logger=info_logger,
            error_logger=error_logger,
        )
        self.db.add(profile.name, store.root)
        return store

    def _connection_logger(
        self,
        profile: ConnectionProfile,
        tags: Sequence[str],
        enabled: bool,
    ) -> TaggedLoggerAdapter | None:
        if not enabled:
            return None
        return tagged_logger(self._logger.getChild("db"), profile.log_tags(tags))

    # ==================================================
    # Accessors
    # ==================================================

    @property
    def connection_names(self) -> list[str]:
        return [store.connection_name for store in self._stores]

    @property
    def initialized(self) -> bool:
        return self._initialized

    def store(self, name: str) -> StatementStore:
        for store in self._stores:
            if store.connection_name == name:
                return store
        raise KeyError(name)

    def statements(self, *names: str) -> list[StatementHandle]:
        handles: list[StatementHandle] = []
        for store in self._stores:
            if names and store.connection_name not in names:
                continue
            handles.extend(store.handles())
        return handles

    # ==================================================
    # Lifecycle Controls
    # ==================================================

    async def init(self) -> dict[str, int]:
        """
        Prepares every connection concurrently. Returns the number of statements
        prepared per connection name.
        """
        if self._initialized:
            raise AlreadyInitializedError(len(self._stores))
        self._initialized = True
        try:
            if self.cache is not None:
                await self.cache.start()
            counts = await self.run_lifecycle("init")
        except BaseException:
            self._initialized = False
            raise
        self.connection_counts = dict(counts)
        self.handle_count = sum(counts.values())
        self._logger.info(
            "%d database(s) are ready for use with %d prepared statement(s)",
            len(counts),
            self.handle_count,
        )
        return counts

    async def commit(self, options: LifecycleOptions | None = None, *names: str) -> dict[str, Any]:
        """
        Commits pending transactions on all (or the named) connections.
        """
        return await self.run_lifecycle("commit", options, *names)

    async def rollback(self, options: LifecycleOptions | None = None, *names: str) -> dict[str, Any]:
        """
        Rolls back pending transactions on all (or the named) connections.
        """
        return await self.run_lifecycle("rollback", options, *names)

    async def close(self, options: LifecycleOptions | None = None, *names: str) -> dict[str, Any]:
        """
        Closes connection pools. The cache is stopped once every connection is closed.
        """
        results = await self.run_lifecycle("close", options, *names)
        if self.cache is not None and len(results) == len(self._stores):
            await self.cache.stop()
        return results

    async def run_lifecycle(
        self,
        operation: str,
        options: LifecycleOptions | None = None,
        *names: str,
    ) -> dict[str, Any]:
        """
        Runs one lifecycle operation on the selected connections.

        Connections scheduled in series run one after another in registration
        order (stopping at the first failure); the rest run concurrently with each
        other and with the series chain. All work is awaited before the result is
        produced; if anything failed an OrchestrationError carrying every failure
        and the successful results is raised.
        """
        method = LIFECYCLE_OPERATIONS.get(operation)
        if method is None:
            raise UnknownOperationError(operation, tuple(LIFECYCLE_OPERATIONS))
        options = options or LifecycleOptions()

        selected = [store for store in self._stores if not names or store.connection_name in names]
        series = [store for store in selected if options.in_series(store.connection_name)]
        parallel = [store for store in selected if not options.in_series(store.connection_name)]

        results: dict[str, Any] = {}
        failures: dict[str, BaseException] = {}

        async def _run(store: StatementStore) -> None:
            call: Callable[[], Awaitable[Any]] = getattr(store, method)
            try:
                results[store.connection_name] = await call()
            except Exception as exc:
                failures[store.connection_name] = exc
                raise

        async def _run_series() -> None:
            for store in series:
                await _run(store)

        jobs = [asyncio.ensure_future(_run(store)) for store in parallel]
        if series:
            jobs.append(asyncio.ensure_future(_run_series()))
        await asyncio.gather(*jobs, return_exceptions=True)

        if failures:
            ordered = {
                store.connection_name: failures[store.connection_name]
                for store in selected
                if store.connection_name in failures
            }
            first = next(iter(ordered.values()))
            self._logger.error(
                'Lifecycle operation "%s" failed for %s: %s', operation, ", ".join(ordered), first
            )
            raise OrchestrationError(operation, ordered, results) from first

        return {
            store.connection_name: results[store.connection_name]
            for store in selected
            if store.connection_name in results
        }
