from __future__ import annotations

import asyncio
from functools import partial
import logging
from pathlib import Path
import re
from typing import TYPE_CHECKING, Any

import aiofiles.os

from sqlcraft.cache import Cache
from sqlcraft.errors import ConfigurationError
from sqlcraft.execution.base import CRUD_TYPES
from sqlcraft.statements.models import StatementContainer, StatementHandle
from sqlcraft.statements.sources import (
    CachedStatementSource,
    StatementSource,
    StaticStatementSource,
    read_statement_file,
)
from sqlcraft.traversal.visitor_pattern import HandleCollector

if TYPE_CHECKING:
    from sqlcraft.config import ConnectionProfile
    from sqlcraft.execution.proxy import ExecutionProxy

_DIRECTORY_CHARS = re.compile(r"[^0-9a-zA-Z]")
_FILE_CHARS = re.compile(r"[^0-9a-zA-Z.]")

# ==================================================
# Statement Store
# ==================================================


class StatementStore:
    """
    Builds and owns the statement namespace of one connection.

    Every file under the connection directory becomes a StatementHandle. Names
    are split on periods, so `read.user.details.sql` becomes
    `root.read.user.details`, and subdirectories become nested containers.
    """

    def __init__(
        self,
        profile: ConnectionProfile,
        base_path: Path,
        proxy: ExecutionProxy,
        cache: Cache | None = None,
        logger: logging.LoggerAdapter | logging.Logger | None = None,
        error_logger: logging.LoggerAdapter | logging.Logger | None = None,
    ) -> None:
        if not profile.name:
            raise ConfigurationError(f"Connection {profile.id} must have a name")
        self.profile = profile
        self.base_path = Path(base_path)
        self.proxy = proxy
        self.cache = cache
        self.root = StatementContainer(name=profile.name)
        self.num_of_prepared = 0
        self.pool_info: Any = None
        self._logger = logger
        self._error_logger = error_logger
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def connection_name(self) -> str:
        return self.profile.name

    @property
    def pending_cache_writes(self) -> tuple[asyncio.Task[Any], ...]:
        return tuple(self._background)

    def handles(self) -> list[StatementHandle]:
        return HandleCollector().visit(self.root)

    # ==================================================
    # Preparation
    # ==================================================

    async def initialize(self) -> int:
        """
        Walks the connection directory, prepares every statement and initializes
        the dialect. Returns the number of prepared statements.
        """
        self.root.children.clear()
        self.num_of_prepared = 0
        await self._prepare_directory(self.root, self.base_path, "")
        self.pool_info = await self.proxy.initialize(num_of_prepared=self.num_of_prepared)
        if self._logger is not None:
            self._logger.info(
                "Prepared %d statement(s) from %s", self.num_of_prepared, self.base_path
            )
        return self.num_of_prepared

    async def _prepare_directory(self, container: StatementContainer, directory: Path, prefix: str) -> None:
        nested: list[tuple[StatementContainer, Path, str]] = []
        path = directory
        try:
            entries = sorted(await aiofiles.os.listdir(directory))
            for entry in entries:
                if entry.startswith("."):
                    continue
                path = (directory / entry).resolve()
                if await aiofiles.os.path.isdir(path):
                    key = _DIRECTORY_CHARS.sub("_", entry)
                    child = container.add(key, StatementContainer(name=f"{container.name}.{key}"))
                    nested.append((child, path, f"{prefix}{key}_"))
                    continue

                segments = _FILE_CHARS.sub("_", entry).split(".")
                extension = segments.pop() if len(segments) > 1 else ""
                name = f"{self.profile.dialect}_{self.profile.name}_{prefix}{'_'.join(segments)}"
                parent = container
                for segment in segments[:-1]:
                    parent = parent.container(segment)
                parent.add(segments[-1], await self.prepare(name, path, extension))
        except Exception as exc:
            if self._error_logger is not None:
                self._error_logger.error(
                    "Failed to build SQL statements from files in directory %s: %s", path, exc
                )
            raise
        if nested:
            await self._prepare_subdirectories(nested)

    async def _prepare_subdirectories(self, nested: list[tuple[StatementContainer, Path, str]]) -> None:
        # Sibling walks stop as soon as one of them fails.
        tasks = [
            asyncio.ensure_future(self._prepare_directory(child, path, prefix)) for child, path, prefix in nested
        ]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def prepare(self, name: str, path: Path, extension: str) -> StatementHandle:
        """
        Builds the handle for one statement file. With a cache the file is re-read
        whenever its cache entry expires, otherwise it is read once here.
        """
        crud: str | None = path.name.split(".")[0].upper()
        if crud not in CRUD_TYPES:
            crud = None
        if self._logger is not None:
            self._logger.debug(
                "Generating prepared statement for %s at name %s%s",
                path,
                name,
                ""
                if crud
                else f' (execution must include "type" set to one of {",".join(CRUD_TYPES)} '
                "since the SQL file path is not prefixed with the type)",
            )

        loader = partial(read_statement_file, path, extension, self.profile.substitutes)
        source: StatementSource
        if self.cache is not None:
            source = CachedStatementSource(
                f"sqlcraft:db:{name}{f':{extension}' if extension else ''}",
                self.cache,
                loader,
                path=path,
                background=self._background,
                logger=self._logger,
                error_logger=self._error_logger,
            )
        else:
            if self._logger is not None:
                self._logger.debug("Setting static %s at %s", path, name)
            source = StaticStatementSource(await loader())

        self.num_of_prepared += 1
        return StatementHandle(
            name=name,
            path=path,
            extension=extension,
            crud=crud,
            source=source,
            proxy=self.proxy,
        )

    # ==================================================
    # Lifecycle Controls
    # ==================================================

    async def commit(self) -> Any:
        return await self.proxy.commit()

    async def rollback(self) -> Any:
        return await self.proxy.rollback()

    async def close(self) -> Any:
        return await self.proxy.close()
