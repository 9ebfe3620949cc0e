"""
Typed error taxonomy for listing generation.

Providers raise these instead of generic exceptions so the orchestrator can
pick RETRY, SWITCH or FAIL from the error kind alone.
"""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Failure categories understood by the orchestrator."""
    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    VALIDATION = "validation"
    TRANSIENT = "transient"
    TIMEOUT = "timeout"
    CONFIGURATION = "configuration"


class ListingError(Exception):
    """Base exception for listing generation errors."""
    kind: ErrorKind = ErrorKind.TRANSIENT


class ConfigurationError(ListingError):
    """Raised at startup for unusable configuration."""
    kind = ErrorKind.CONFIGURATION


class ProviderError(ListingError):
    """Raised by a provider when a generation call fails."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class AuthenticationFailure(ProviderError):
    """Backend rejected the credential. Never retried."""
    kind = ErrorKind.AUTHENTICATION


class RateLimitExceeded(ProviderError):
    """Backend signalled throttling."""
    kind = ErrorKind.RATE_LIMIT


class ResponseFormatError(ProviderError):
    """Backend answered, but not with a usable listing structure."""
    kind = ErrorKind.VALIDATION


class TransientNetworkError(ProviderError):
    """Connection failure or 5xx from the backend."""
    kind = ErrorKind.TRANSIENT


class ProviderTimeout(TransientNetworkError):
    """Call exceeded its timeout."""
    kind = ErrorKind.TIMEOUT


class ValidationFailure(ListingError):
    """Generated listing failed hard validation rules."""
    kind = ErrorKind.VALIDATION

    def __init__(self, errors: list[str], provider: Optional[str] = None):
        super().__init__(f"Validation failed: {', '.join(errors)}")
        self.errors = list(errors)
        self.provider = provider


class GenerationFailedError(ListingError):
    """Aggregate failure after retry and switch budgets are spent."""

    def __init__(
        self,
        attempts: int,
        switches: int,
        last_error: Optional[BaseException],
        providers_tried: Optional[list[str]] = None,
    ):
        self.attempts = attempts
        self.switches = switches
        self.last_error = last_error
        self.providers_tried = list(providers_tried or [])
        cause = str(last_error) if last_error else "Unknown error"
        super().__init__(
            f"Failed after {attempts} attempt(s) and {switches} provider switch(es): {cause}"
        )

    @property
    def kind(self) -> ErrorKind:
        return getattr(self.last_error, "kind", ErrorKind.TRANSIENT)
