from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Any, Iterable, Mapping

from dotenv import load_dotenv

from sqlcraft.errors import ConfigurationError
from sqlcraft.execution.observability import ObservabilitySettings

# ==================================================
# Connection Configuration
# ==================================================


@dataclass(frozen=True)
class Credentials:
    """
    Host and login for one connection id, kept outside of the application config.
    """

    username: str | None = None
    password: str | None = None
    host: str | None = None


@dataclass(frozen=True)
class PoolOptions:
    max: int | None = None
    min: int | None = None
    idle: int | None = None


@dataclass(frozen=True)
class ConnectionOptions:
    """
    Driver-facing connection options (everything except username/password).
    """

    dialect: str
    host: str | None = None
    database: str | None = None
    dialect_options: Mapping[str, Any] = field(default_factory=dict)
    pool: PoolOptions | None = None
    log_tags: tuple[str, ...] = ()
    error_log_tags: tuple[str, ...] = ()
    logging_enabled: bool = True
    error_logging_enabled: bool = True


@dataclass(frozen=True)
class ConnectionProfile:
    """
    Immutable description of one configured connection.
    """

    id: str
    name: str
    options: ConnectionOptions
    dir: str | None = None
    version: float = 0.0
    service: str | None = None
    sid: str | None = None
    binds: Mapping[str, Any] = field(default_factory=dict)
    substitutes: Mapping[str, str] = field(default_factory=dict)
    observability: ObservabilitySettings | None = None

    @property
    def dialect(self) -> str:
        return self.options.dialect.lower()

    @property
    def directory_name(self) -> str:
        return self.dir or self.name

    def log_tags(self, extra: Iterable[str] = ()) -> list[str]:
        return [
            *extra,
            "db",
            self.name,
            self.dialect,
            self.service or "",
            self.id,
            f"v{self.version or 0}",
        ]


@dataclass(frozen=True)
class ManagerConfig:
    """
    Everything a Manager needs: connections, external credentials keyed by
    connection id and the dialect lookup table.
    """

    connections: tuple[ConnectionProfile, ...]
    credentials: Mapping[str, Credentials] = field(default_factory=dict)
    dialects: Mapping[str, Any] = field(default_factory=dict)
    main_path: Path = field(default_factory=Path.cwd)
    private_path: Path = field(default_factory=Path.cwd)
    debug: bool = False

    @classmethod
    def from_dict(cls, conf: Mapping[str, Any]) -> "ManagerConfig":
        """
        Builds a config from a plain mapping shaped like::

            {
                "main_path": "...",
                "univ": {"db": {"<id>": {"host": ..., "username": ..., "password": ...}}},
                "db": {
                    "dialects": {"sqlite": "sqlcraft.execution.sqlite:SqliteDialect"},
                    "connections": [{"id": ..., "name": ..., "sql": {"dialect": ...}}],
                },
            }
        """
        if not conf:
            raise ConfigurationError("Database configuration is required")
        db = conf.get("db")
        if not isinstance(db, Mapping):
            raise ConfigurationError('Database configuration "db" section is required')
        if "dialects" not in db:
            raise ConfigurationError("Database configuration.dialects are required")

        univ = conf.get("univ") or {}
        credentials = {
            str(conn_id): _credentials_from_dict(conn_id, value)
            for conn_id, value in (univ.get("db") or {}).items()
        }
        connections = tuple(
            _profile_from_dict(index, raw) for index, raw in enumerate(db.get("connections") or [])
        )
        main_path = Path(conf["main_path"]) if conf.get("main_path") else Path.cwd()
        private_path = Path(conf["private_path"]) if conf.get("private_path") else Path.cwd()
        return cls(
            connections=connections,
            credentials=credentials,
            dialects={str(name).lower(): impl for name, impl in (db.get("dialects") or {}).items()},
            main_path=main_path,
            private_path=private_path,
            debug=bool(conf.get("debug", False)),
        )


def _credentials_from_dict(conn_id: Any, value: Any) -> Credentials:
    if isinstance(value, Credentials):
        return value
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"Credentials for connection ID {conn_id} must be a mapping")
    return Credentials(
        username=value.get("username"),
        password=value.get("password"),
        host=value.get("host"),
    )


def _tags(value: Any) -> tuple[tuple[str, ...], bool]:
    if value is False:
        return (), False
    if value is None or value is True:
        return (), True
    if isinstance(value, str):
        return (value,), True
    return tuple(str(tag) for tag in value), True


def _profile_from_dict(index: int, raw: Mapping[str, Any]) -> ConnectionProfile:
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"Connection at index {index} must be a mapping")
    conn_id = raw.get("id")
    if not conn_id:
        raise ConfigurationError(f'Connection at index {index} must have an "id"')
    sql = raw.get("sql") or {}
    dialect = sql.get("dialect")
    if not dialect:
        raise ConfigurationError(f'Connection at index {index}/ID {conn_id} must define "sql.dialect"')

    pool = sql.get("pool")
    log_tags, logging_enabled = _tags(sql.get("log"))
    error_log_tags, error_logging_enabled = _tags(sql.get("log_error"))
    try:
        version = float(raw.get("version") or 0)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(
            f"Connection at index {index}/ID {conn_id} has a non-numeric version: {raw.get('version')!r}"
        ) from exc

    return ConnectionProfile(
        id=str(conn_id),
        name=raw.get("name") or "",
        dir=raw.get("dir"),
        version=version,
        service=raw.get("service"),
        sid=raw.get("sid"),
        binds=dict(raw.get("binds") or {}),
        substitutes=dict((raw.get("prepared_sql") or {}).get("substitutes") or raw.get("substitutes") or {}),
        options=ConnectionOptions(
            dialect=str(dialect).lower(),
            host=sql.get("host"),
            database=sql.get("database"),
            dialect_options=dict(sql.get("dialect_options") or {}),
            pool=PoolOptions(**pool) if isinstance(pool, Mapping) else None,
            log_tags=log_tags,
            error_log_tags=error_log_tags,
            logging_enabled=logging_enabled,
            error_logging_enabled=error_logging_enabled,
        ),
    )


# ==================================================
# Environment Credentials
# ==================================================


def load_credentials_from_env(
    ids: Iterable[str],
    *,
    prefix: str = "SQLCRAFT",
    dotenv_path: str | os.PathLike[str] | None = None,
) -> dict[str, Credentials]:
    """
    Reads `{PREFIX}_{ID}_HOST`, `{PREFIX}_{ID}_USERNAME` and `{PREFIX}_{ID}_PASSWORD`
    for every connection id, loading a `.env` file first when one is present.
    Ids without any of the three variables are skipped.
    """
    load_dotenv(dotenv_path=dotenv_path, override=False)
    credentials: dict[str, Credentials] = {}
    for conn_id in ids:
        key = "".join(ch if ch.isalnum() else "_" for ch in str(conn_id)).upper()
        host = os.getenv(f"{prefix}_{key}_HOST")
        username = os.getenv(f"{prefix}_{key}_USERNAME")
        password = os.getenv(f"{prefix}_{key}_PASSWORD")
        if host is None and username is None and password is None:
            continue
        credentials[str(conn_id)] = Credentials(username=username, password=password, host=host)
    return credentials
