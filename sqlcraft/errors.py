from __future__ import annotations

from typing import Any, Mapping, Sequence

# ==================================================
# Base Error
# ==================================================


class SqlcraftError(Exception):
    """
    Base type for every error raised by sqlcraft.
    """


# ==================================================
# Configuration Errors
# ==================================================


class ConfigurationError(SqlcraftError):
    """
    Raised when a manager or connection configuration is invalid.
    """


class UnknownDialectError(ConfigurationError):
    pass


class DuplicateStatementError(ConfigurationError):
    """
    Raised when two statement files or directories resolve to the same name.
    """


# ==================================================
# Resolution Errors
# ==================================================


class ResolutionError(SqlcraftError):
    """
    Raised when a statement call cannot be resolved into something executable.
    """


class StatementTypeError(ResolutionError):
    def __init__(self, path: str, allowed: Sequence[str], given: str | None = None) -> None:
        self.path = path
        self.allowed = tuple(allowed)
        self.given = given
        if given:
            reason = f'"{given}" is not a valid statement type'
        else:
            reason = "the SQL file path was not prefixed with the type"
        super().__init__(
            f'Statement execution for {path} must include "type" set to one of '
            f"{','.join(self.allowed)} ({reason})"
        )


# ==================================================
# Orchestration Errors
# ==================================================


class OrchestrationError(SqlcraftError):
    """
    Raised when a lifecycle batch across connections fails.

    `failures` maps connection names to the errors they raised, `results` holds the
    values of the connections that completed.
    """

    def __init__(
        self,
        operation: str,
        failures: Mapping[str, BaseException] | None = None,
        results: Mapping[str, Any] | None = None,
        message: str | None = None,
    ) -> None:
        self.operation = operation
        self.failures = dict(failures or {})
        self.results = dict(results or {})
        if message is None:
            names = ", ".join(self.failures)
            message = f'Lifecycle operation "{operation}" failed for connection(s): {names}'
        super().__init__(message)


class AlreadyInitializedError(OrchestrationError):
    def __init__(self, count: int) -> None:
        super().__init__("init", message=f"{count} database(s) already initialized")


class UnknownOperationError(OrchestrationError):
    def __init__(self, operation: str, allowed: Sequence[str]) -> None:
        super().__init__(
            operation,
            message=f'Unknown lifecycle operation "{operation}" (expected one of {", ".join(allowed)})',
        )
