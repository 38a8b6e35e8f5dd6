from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping, Sequence

if TYPE_CHECKING:
    from sqlcraft.config import ConnectionOptions, Credentials

CRUD_TYPES: tuple[str, ...] = ("CREATE", "READ", "UPDATE", "DELETE")

# ==================================================
# Call Options
# ==================================================


@dataclass
class ExecOptions:
    """
    Options accepted by a statement handle call.

    `type` is only mandatory when the statement file name is not prefixed with
    one of the CRUD types. `num_of_iterations` is handed to the dialect untouched.
    """

    type: str | None = None
    binds: Mapping[str, Any] = field(default_factory=dict)
    num_of_iterations: int | None = None
    return_errors: bool = False


@dataclass(frozen=True)
class TransactionContext:
    pending: int = 0


@dataclass
class DialectOptions:
    """
    Options handed to a Dialect for execute and lifecycle calls.
    """

    type: str | None = None
    binds: dict[str, Any] = field(default_factory=dict)
    num_of_iterations: int | None = None
    return_errors: bool = False
    num_of_prepared: int | None = None
    tx: TransactionContext = field(default_factory=TransactionContext)


# ==================================================
# Base Dialect
# ==================================================

class Dialect(ABC):
    """
    Abstract base class for a database technology driver.

    Implementations own pooling, execution and transactions; sqlcraft only
    hands them resolved SQL, binds and lifecycle requests.
    """

    def __init__(
        self,
        credentials: Credentials,
        options: ConnectionOptions,
        *,
        service: str | None = None,
        sid: str | None = None,
        private_path: Path | None = None,
        track: dict[str, Any] | None = None,
        error_logger: logging.LoggerAdapter | logging.Logger | None = None,
        logger: logging.LoggerAdapter | logging.Logger | None = None,
        debug: bool = False,
    ) -> None:
        self.credentials = credentials
        self.options = options
        self.service = service
        self.sid = sid
        self.private_path = private_path
        self.track = track if track is not None else {}
        self.error_logger = error_logger
        self.logger = logger
        self.debug = debug
        self.last_connection_count: int | None = None
        self.last_connection_in_use_count: int | None = None
        self.connection: Any | None = None

    @abstractmethod
    async def init(self, options: DialectOptions) -> Any:
        """
        Opens connections/pools. Returns driver specific pool information.
        """

    @abstractmethod
    async def execute(
        self,
        sql: Any,
        options: DialectOptions,
        fragments: Sequence[str] | None = None,
    ) -> list[Any] | None:
        """
        Executes resolved SQL. Returns rows for READ statements, otherwise None.
        """

    @abstractmethod
    async def commit(self, options: DialectOptions) -> Any:
        pass

    @abstractmethod
    async def rollback(self, options: DialectOptions) -> Any:
        pass

    @abstractmethod
    async def close(self, options: DialectOptions) -> Any:
        pass

    # ==================================================
    # Shared Helpers
    # ==================================================

    def _require_connection(self) -> Any:
        if self.connection is None:
            raise RuntimeError(f"{self.__class__.__name__} is not initialized. Call init() first.")
        return self.connection

    def _pool_info(self, options: DialectOptions) -> dict[str, Any]:
        return {
            "dialect": self.options.dialect,
            "connections": self.last_connection_count,
            "in_use": self.last_connection_in_use_count,
            "num_of_prepared": options.num_of_prepared,
        }
