from pathlib import Path
from typing import Any, Sequence

import aiosqlite

from sqlcraft.execution.base import Dialect, DialectOptions

# ==================================================
# SQLite Dialect
# ==================================================


class SqliteDialect(Dialect):
    """
    A dialect for SQLite built on 'aiosqlite'.

    One connection is opened by init() and every statement runs on it.
    READ statements return rows as dictionaries. Driver errors are the
    standard 'sqlite3' exceptions re-exported by aiosqlite.
    """

    def database_path(self) -> str:
        """
        Resolves the database file. Relative paths are placed under the private path.
        """
        database = self.options.database or self.options.host or ":memory:"
        if database == ":memory:" or database.startswith("file:"):
            return database
        path = Path(database)
        if not path.is_absolute() and self.private_path is not None:
            path = Path(self.private_path) / path
        return str(path)

    async def init(self, options: DialectOptions) -> Any:
        if self.connection is None:
            conn = await aiosqlite.connect(self.database_path(), **dict(self.options.dialect_options))
            conn.row_factory = aiosqlite.Row
            self.connection = conn
        self.last_connection_count = 1
        self.last_connection_in_use_count = 0
        self.track.setdefault("sqlite", set()).add(self.database_path())
        if self.logger is not None:
            self.logger.info("SQLite connection opened for %s", self.database_path())
        return self._pool_info(options)

    async def execute(
        self,
        sql: Any,
        options: DialectOptions,
        fragments: Sequence[str] | None = None,
    ) -> list[dict[str, Any]] | None:
        conn = self._require_connection()
        self.last_connection_in_use_count = 1
        try:
            async with conn.execute(sql, options.binds) as cur:
                if options.type == "READ":
                    return [dict(row) for row in await cur.fetchall()]
                return None
        finally:
            self.last_connection_in_use_count = 0

    async def commit(self, options: DialectOptions) -> None:
        await self._require_connection().commit()

    async def rollback(self, options: DialectOptions) -> None:
        await self._require_connection().rollback()

    async def close(self, options: DialectOptions) -> None:
        if self.connection is None:
            return None
        conn = self.connection
        self.connection = None
        await conn.close()
        self.last_connection_count = 0
        self.last_connection_in_use_count = 0
        if self.logger is not None:
            self.logger.info("SQLite connection closed for %s", self.database_path())
        return None
