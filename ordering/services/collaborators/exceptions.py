"""Errors raised by collaborator clients."""

from typing import Any, Optional


class CollaboratorError(Exception):
    """Base exception for collaborator call failures."""

    def __init__(
        self,
        message: str,
        service: str,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        super().__init__(message)
        self.service = service
        self.status_code = status_code
        self.context = context


class CollaboratorUnavailableError(CollaboratorError):
    """Transport failure, timeout or 5xx response."""


class CollaboratorRejectedError(CollaboratorError):
    """The collaborator answered with a 4xx business rejection."""
