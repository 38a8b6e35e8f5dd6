from sqlcraft.statements.models import StatementContainer, StatementHandle, StatementNode
from sqlcraft.statements.sources import (
    CachedStatementSource,
    StatementSource,
    StaticStatementSource,
    read_statement_file,
)
from sqlcraft.statements.store import StatementStore

__all__ = [
    "StatementNode",
    "StatementContainer",
    "StatementHandle",
    "StatementSource",
    "StaticStatementSource",
    "CachedStatementSource",
    "read_statement_file",
    "StatementStore",
]
