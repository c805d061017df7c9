"""Excepciones del pastillero."""

from __future__ import annotations


class PastilleroError(Exception):
    """Base class for errors surfaced to the user as transient messages."""


class ValidationError(PastilleroError, ValueError):
    """Input rejected before any mutation.

    Attributes:
        field: Name of the offending field (``name``, ``times``, ...).
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


class PersistenceError(PastilleroError, OSError):
    """The durable store could not be read or written."""
