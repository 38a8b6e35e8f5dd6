from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping

import aiofiles

from sqlcraft.cache import Cache

STRUCTURED_EXTENSION = "json"

StatementLoader = Callable[[], Awaitable[Any]]


async def read_statement_file(
    path: Path,
    extension: str,
    substitutes: Mapping[str, str] | None = None,
) -> Any:
    """
    Reads a statement file, applies literal substitutions and parses structured
    (`.json`) content.
    """
    async with aiofiles.open(path, mode="r", encoding="utf-8") as fh:
        data = await fh.read()
    for pattern, replacement in (substitutes or {}).items():
        data = data.replace(pattern, str(replacement))
    if extension.lower() == STRUCTURED_EXTENSION:
        return json.loads(data.lstrip("\ufeff"))
    return data


# ==================================================
# Statement Sources
# ==================================================

class StatementSource(ABC):
    """
    Provides the current body of a statement.
    """

    @abstractmethod
    async def read(self) -> Any:
        pass


class StaticStatementSource(StatementSource):
    """
    Holds a statement body read once at preparation time.
    """

    def __init__(self, content: Any) -> None:
        self.content = content

    async def read(self) -> Any:
        return self.content


class CachedStatementSource(StatementSource):
    """
    Reads through a Cache; a miss reloads the file and stores the result in the
    background without delaying the caller.
    """

    def __init__(
        self,
        key: str,
        cache: Cache,
        loader: StatementLoader,
        *,
        path: Path,
        background: set[asyncio.Task[Any]],
        logger: logging.LoggerAdapter | logging.Logger | None = None,
        error_logger: logging.LoggerAdapter | logging.Logger | None = None,
    ) -> None:
        self.key = key
        self.cache = cache
        self.loader = loader
        self.path = path
        self._background = background
        self._logger = logger
        self._error_logger = error_logger

    async def read(self) -> Any:
        cached = await self.cache.get(self.key)
        if cached is not None and cached.item:
            return cached.item
        if self._logger is not None:
            self._logger.info("Refreshing cached %s at ID %s", self.path, self.key)
        content = await self.loader()
        task = asyncio.create_task(self.cache.set(self.key, content))
        self._background.add(task)
        task.add_done_callback(self._on_stored)
        return content

    def _on_stored(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None and self._error_logger is not None:
            self._error_logger.error(
                "Failed to cache %s at ID %s: %s", self.path, self.key, exc, exc_info=exc
            )
