"""Call orchestration errors."""
from typing import Optional


class CallError(Exception):
    """Base class for call orchestration errors."""


class ValidationError(CallError):
    """Request input was missing or empty."""


class NotFoundError(CallError):
    """No call record exists for the given id."""


class UpstreamError(CallError):
    """The voice provider rejected or failed a request."""

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.details = details or message


class TransientError(UpstreamError):
    """Network or provider-side failure that may succeed on retry."""
