"""Typed errors raised by the document analysis and persistence core.

Callers (an HTTP layer, the CLI) map these to transport-specific codes using
``category``: ``"client"`` errors are caused by the request, ``"server"``
errors by a failing collaborator or store.
"""

from typing import ClassVar


class HistdocsError(Exception):
    """Base class for all errors raised by histdocs services."""

    category: ClassVar[str] = "server"

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        return self.message


class ValidationFailed(HistdocsError):
    """Payload violated one or more rules. All violations are listed."""

    category = "client"

    def __init__(self, errors: list[str]) -> None:
        super().__init__(f"Validation failed: {', '.join(errors)}")
        self.errors = list(errors)


class NotFound(HistdocsError):
    category = "client"


class InvalidTransition(HistdocsError):
    category = "client"


class ConversionFailed(HistdocsError):
    pass


class AnalysisParseFailed(HistdocsError):
    pass


class AnalysisFailed(HistdocsError):
    pass


class PersistenceFailed(HistdocsError):
    pass


class OperationCancelled(HistdocsError):
    """Raised at a checkpoint when the surrounding job was cancelled."""

    category = "client"


def describe(error: BaseException) -> str:
    """Return the message of an error, falling back to its type name."""
    message = str(error)
    return message or type(error).__name__


__all__ = [
    "HistdocsError",
    "ValidationFailed",
    "NotFound",
    "InvalidTransition",
    "ConversionFailed",
    "AnalysisParseFailed",
    "AnalysisFailed",
    "PersistenceFailed",
    "OperationCancelled",
    "describe",
]
