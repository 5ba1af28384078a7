"""Error taxonomy shared by the relay services."""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class ErrorInfo:
    """Structured error information carried by every service error."""
    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


class ChatServiceError(Exception):
    """Base class for errors raised by the relay services."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.error = ErrorInfo(code=self.code, message=message, details=details or {})
        super().__init__(message)


class InvalidInputError(ChatServiceError):
    """Malformed or empty request data."""
    code = "INVALID_INPUT"


class NotFoundError(ChatServiceError):
    """Referenced conversation does not exist."""
    code = "NOT_FOUND"


class ProviderUnavailableError(ChatServiceError):
    """The completion provider could not be reached."""
    code = "PROVIDER_UNAVAILABLE"


class ProviderRejectedError(ChatServiceError):
    """The completion provider answered with an error status."""
    code = "PROVIDER_REJECTED"


class StoreError(ChatServiceError):
    """Persistence failure."""
    code = "STORE_ERROR"


class ConflictError(StoreError):
    """A save was based on a stale version of the conversation."""
    code = "CONFLICT"
