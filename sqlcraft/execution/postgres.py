import asyncio
import re
from typing import Any, Mapping, Sequence

from sqlcraft.execution.base import Dialect, DialectOptions

_NAMED_BIND = re.compile(r"(?<![:\w]):([A-Za-z_]\w*)")

# ==================================================
# PostgreSQL Dialect
# ==================================================


def to_pyformat(sql: str, binds: Mapping[str, Any]) -> tuple[str, dict[str, Any]]:
    """
    Rewrites `:name` tokens into psycopg `%(name)s` placeholders. Only names present
    in `binds` are rewritten (so `::type` casts survive), literal `%` is escaped.
    """
    params: dict[str, Any] = {}

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in binds:
            return match.group(0)
        params[name] = binds[name]
        return f"%({name})s"

    return _NAMED_BIND.sub(_replace, sql.replace("%", "%%")), params


class PostgresDialect(Dialect):
    """
    A dialect for PostgreSQL using the 'psycopg' library (async connection).
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._psycopg: Any = None
        self._lock = asyncio.Lock()

    def _get_psycopg(self) -> Any:
        """
        Lazily imports psycopg and returns the module.
        """
        if self._psycopg is None:
            try:
                import psycopg
                self._psycopg = psycopg
            except ImportError:
                raise ImportError(
                    "The 'psycopg' library is required for PostgresDialect. "
                    "Install it with 'pip install sqlcraft[postgres]'."
                )
        return self._psycopg

    def connection_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "host": self.options.host or self.credentials.host,
            "user": self.credentials.username,
            "password": self.credentials.password,
            "dbname": self.options.database or self.service,
        }
        kwargs.update(self.options.dialect_options)
        return {key: value for key, value in kwargs.items() if value is not None}

    async def init(self, options: DialectOptions) -> Any:
        if self.connection is None:
            psycopg = self._get_psycopg()
            self.connection = await psycopg.AsyncConnection.connect(**self.connection_kwargs())
        self.last_connection_count = 1
        self.last_connection_in_use_count = 0
        return self._pool_info(options)

    async def execute(
        self,
        sql: Any,
        options: DialectOptions,
        fragments: Sequence[str] | None = None,
    ) -> list[dict[str, Any]] | None:
        conn = self._require_connection()
        query, params = to_pyformat(sql, options.binds)
        async with self._lock:
            self.last_connection_in_use_count = 1
            try:
                async with conn.cursor() as cur:
                    await cur.execute(query, params)
                    if options.type != "READ":
                        return None
                    columns = [column.name for column in cur.description or []]
                    rows = await cur.fetchall()
                    return [dict(zip(columns, row)) for row in rows]
            finally:
                self.last_connection_in_use_count = 0

    async def commit(self, options: DialectOptions) -> None:
        conn = self._require_connection()
        async with self._lock:
            await conn.commit()

    async def rollback(self, options: DialectOptions) -> None:
        conn = self._require_connection()
        async with self._lock:
            await conn.rollback()

    async def close(self, options: DialectOptions) -> None:
        if self.connection is None:
            return None
        conn = self.connection
        async with self._lock:
            self.connection = None
            await conn.close()
        self.last_connection_count = 0
        self.last_connection_in_use_count = 0
        return None
