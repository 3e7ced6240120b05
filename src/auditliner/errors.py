"""
Exception types raised by AuditLiner.
All fatal conditions derive from AuditLinerError so the CLI can report them uniformly.
"""

from typing import Optional


class AuditLinerError(Exception):
    """Base class for all AuditLiner errors."""


class ConfigError(AuditLinerError):
    """Configuration file or value is invalid."""


class StoreConnectionError(AuditLinerError):
    """The database could not be opened, created or initialised."""


class StatementPrepareError(AuditLinerError):
    """A generated INSERT statement could not be compiled."""


class ExecuteError(AuditLinerError):
    """Binding or executing a row failed."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        super().__init__(message)
        self.line_number = line_number

    def __str__(self):
        message = super().__str__()
        if self.line_number is not None:
            return f"line {self.line_number}: {message}"
        return message


class WriterStateError(AuditLinerError):
    """BatchWriter was used outside of its IDLE state."""
