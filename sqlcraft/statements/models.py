from __future__ import annotations

from abc import ABC
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator, Sequence

from sqlcraft.errors import DuplicateStatementError

if TYPE_CHECKING:
    from sqlcraft.execution.base import ExecOptions
    from sqlcraft.execution.proxy import ExecutionProxy
    from sqlcraft.statements.sources import StatementSource

# ==================================================
# Base classes
# ==================================================

@dataclass
class StatementNode(ABC):
    """
    A position in a connection's statement namespace.
    """
    name: str


# ==================================================
# Containers
# ==================================================

@dataclass
class StatementContainer(StatementNode):
    """
    Maps sanitized names to child nodes. Children are reachable as attributes
    (`container.users.by_id`) or items (`container["users"]`). Children named
    `name`, `children`, `add` or `container` are shadowed by the members of the
    same name and are only reachable as items (`db["add"]`).
    """
    children: dict[str, StatementNode] = field(default_factory=dict)

    def __getattr__(self, key: str) -> StatementNode:
        if key.startswith("_") or key in ("name", "children"):
            raise AttributeError(key)
        try:
            return self.children[key]
        except KeyError:
            raise AttributeError(f"{self.name or 'namespace'!s} has no statement or container named {key!r}") from None

    def __getitem__(self, key: str) -> StatementNode:
        return self.children[key]

    def __contains__(self, key: object) -> bool:
        return key in self.children

    def __iter__(self) -> Iterator[str]:
        return iter(self.children)

    def __len__(self) -> int:
        return len(self.children)

    def add(self, key: str, node: StatementNode) -> StatementNode:
        if key in self.children:
            raise DuplicateStatementError(
                f"{self.name or 'namespace'} already contains {key!r} (cannot add {node.name})"
            )
        self.children[key] = node
        return node

    def container(self, key: str) -> "StatementContainer":
        """
        Returns the nested container at `key`, creating it when missing.
        """
        existing = self.children.get(key)
        if existing is None:
            return self.add(key, StatementContainer(name=f"{self.name}.{key}" if self.name else key))  # type: ignore[return-value]
        if not isinstance(existing, StatementContainer):
            raise DuplicateStatementError(
                f"{self.name or 'namespace'}.{key} is a statement and cannot also be a container"
            )
        return existing


# ==================================================
# Leaves
# ==================================================

@dataclass
class StatementHandle(StatementNode):
    """
    Callable statement built from exactly one source file.

    `name` is the handle identity: `<dialect>_<connection>_<path segments>`.
    """
    path: Path
    extension: str
    crud: str | None
    source: StatementSource
    proxy: ExecutionProxy = field(repr=False)

    async def __call__(
        self,
        options: ExecOptions | None = None,
        fragments: Sequence[str] | None = None,
    ) -> Any:
        return await self.proxy.call(self, options, fragments)
