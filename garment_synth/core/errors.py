"""Error taxonomy shared by the orchestrators and the HTTP layer."""

from typing import Any, Optional


class GarmentSynthError(Exception):
    """Base error carrying a stable kind and the HTTP status it maps to."""

    kind = "error"
    status_code = 500
    public_message = "Failed to process the request"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message
        self.details = details


class ValidationError(GarmentSynthError):
    kind = "validation_error"
    status_code = 400
    public_message = "Invalid request"


class ConfigurationError(GarmentSynthError):
    kind = "configuration_error"
    status_code = 500
    public_message = "API configuration error: check environment variables"


class RateLimitExceeded(GarmentSynthError):
    """Raised when this service's own limiter rejects a caller."""

    kind = "rate_limit_exceeded"
    status_code = 429
    public_message = "Rate limit exceeded. Please try again later."

    def __init__(self, message: Optional[str] = None, retry_after: int = 0):
        super().__init__(message)
        self.retry_after = max(0, int(retry_after))


class BatchNotFound(GarmentSynthError):
    kind = "batch_not_found"
    status_code = 404
    public_message = "Batch not found"


# -------------------------
# Provider errors
# -------------------------
class ProviderError(GarmentSynthError):
    """Failure raised at the provider boundary, already classified."""

    kind = "provider_error"
    public_message = "Failed to process the request"

    def __init__(
        self,
        message: Optional[str] = None,
        provider: Optional[str] = None,
        details: Any = None,
    ):
        super().__init__(message, details=details)
        self.provider = provider


class ProviderAuthError(ProviderError):
    kind = "provider_auth_error"
    public_message = "Upstream provider rejected the configured credentials"


class ProviderNotFound(ProviderError):
    kind = "provider_not_found"
    public_message = "Upstream provider endpoint not found"


class ProviderRateLimited(ProviderError):
    """Upstream throttling, distinct from RateLimitExceeded."""

    kind = "provider_rate_limited"
    status_code = 429
    public_message = "Upstream provider rate limit exceeded"


class InsufficientCredit(ProviderError):
    kind = "insufficient_credit"
    status_code = 402
    public_message = "Insufficient provider credit"


class ProviderTimeout(ProviderError):
    kind = "provider_timeout"
    public_message = "Timed out waiting for the provider result"


class ProviderFailure(ProviderError):
    kind = "provider_failure"
    public_message = "Image synthesis failed"


def public_message_for(exc: GarmentSynthError) -> str:
    """Message safe to return to callers.

    Validation and local rate-limit messages describe the caller's own input,
    so they are returned verbatim. Provider failures surface the upstream
    message when one was reported.
    """
    if isinstance(exc, (ValidationError, RateLimitExceeded, BatchNotFound)):
        return exc.message
    if isinstance(exc, ProviderFailure) and exc.message != exc.public_message:
        return f"{exc.public_message}: {exc.message}"
    return exc.public_message


__all__ = [
    "GarmentSynthError",
    "ValidationError",
    "ConfigurationError",
    "RateLimitExceeded",
    "BatchNotFound",
    "ProviderError",
    "ProviderAuthError",
    "ProviderNotFound",
    "ProviderRateLimited",
    "InsufficientCredit",
    "ProviderTimeout",
    "ProviderFailure",
    "public_message_for",
]
