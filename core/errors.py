# core/errors.py
"""Exception hierarchy shared by provider clients, failover and the API."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorType(str, Enum):
    """Error categories reported to API callers in the ``type`` field."""

    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    INVALID_REQUEST = "INVALID_REQUEST"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    SAFETY_FILTER = "SAFETY_FILTER"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    AUTH_ERROR = "AUTH_ERROR"
    ALL_KEYS_FAILED = "ALL_KEYS_FAILED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"


ERROR_STATUS: dict[ErrorType, int] = {
    ErrorType.TIMEOUT_ERROR: 408,
    ErrorType.QUOTA_EXCEEDED: 429,
    ErrorType.INVALID_REQUEST: 400,
    ErrorType.PAYLOAD_TOO_LARGE: 413,
    ErrorType.SAFETY_FILTER: 400,
    ErrorType.SERVICE_UNAVAILABLE: 503,
    ErrorType.AUTH_ERROR: 401,
    ErrorType.ALL_KEYS_FAILED: 500,
    ErrorType.UNKNOWN_ERROR: 500,
    ErrorType.METHOD_NOT_ALLOWED: 405,
}


class FineFormatError(Exception):
    """Base class for every error raised by the pipeline."""

    error_type: ErrorType = ErrorType.UNKNOWN_ERROR
    status_code: int | None = None

    def __init__(self, message: str, *, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    @property
    def http_status(self) -> int:
        if self.status_code is not None:
            return self.status_code
        return ERROR_STATUS[self.error_type]

    def to_envelope(self) -> dict[str, Any]:
        envelope: dict[str, Any] = {
            "error": self.message,
            "type": self.error_type.value,
        }
        if self.details:
            envelope["details"] = self.details
        return envelope


class ConfigurationError(FineFormatError):
    """No usable credential or an invalid setting; never retried."""

    error_type = ErrorType.SERVICE_UNAVAILABLE
    status_code = 500


class InvalidRequest(FineFormatError):
    error_type = ErrorType.INVALID_REQUEST


class PayloadTooLarge(FineFormatError):
    error_type = ErrorType.PAYLOAD_TOO_LARGE

    def __init__(self, size_bytes: int, limit_bytes: int) -> None:
        super().__init__(
            "Payload too large",
            details=(
                f"Binary content is ~{size_bytes / (1024 * 1024):.2f}MB, "
                f"limit is {limit_bytes / (1024 * 1024):.2f}MB"
            ),
        )
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes


class TransportError(FineFormatError):
    """A provider call failed before a usable reply was received."""

    error_type = ErrorType.SERVICE_UNAVAILABLE


class ProviderTimeout(TransportError):
    error_type = ErrorType.TIMEOUT_ERROR

    def __init__(self, provider: str, timeout_seconds: float) -> None:
        super().__init__(
            f"{provider} request timed out after {timeout_seconds:g}s",
        )
        self.provider = provider
        self.timeout_seconds = timeout_seconds


class HttpStatusError(TransportError):
    """Non-success HTTP status (or an error body) returned by a provider."""

    def __init__(
        self,
        status: int,
        message: str,
        *,
        body: str | None = None,
        provider_code: str | None = None,
    ) -> None:
        super().__init__(message, details=body[:500] if body else None)
        self.status = status
        self.body = body
        self.provider_code = provider_code


class MalformedResponse(FineFormatError):
    """The provider answered but without the expected content field."""

    error_type = ErrorType.SERVICE_UNAVAILABLE
    status_code = 502


class SafetyFilterError(FineFormatError):
    error_type = ErrorType.SAFETY_FILTER


class ParseFailure(FineFormatError):
    """Every sanitizer recovery stage failed to yield a record."""

    def __init__(self, original_length: int, cleaned_length: int) -> None:
        super().__init__(
            "Could not recover structured data from model response",
            details=(
                f"original length {original_length}, cleaned length {cleaned_length}"
            ),
        )
        self.original_length = original_length
        self.cleaned_length = cleaned_length


class AllAttemptsFailed(FineFormatError):
    """The failover executor ran out of credentials and attempts."""

    error_type = ErrorType.ALL_KEYS_FAILED

    def __init__(
        self,
        attempts: int,
        credential_count: int,
        last_classification: Any,
        last_error: BaseException | None = None,
    ) -> None:
        super().__init__(
            f"All {credential_count} credentials failed after {attempts} attempts",
            details=str(last_error) if last_error else None,
        )
        self.attempts = attempts
        self.credential_count = credential_count
        self.last_classification = last_classification
        self.last_error = last_error

    def to_envelope(self) -> dict[str, Any]:
        envelope = super().to_envelope()
        envelope["keysAttempted"] = self.attempts
        return envelope


class NoGapsProvided(FineFormatError, ValueError):
    error_type = ErrorType.INVALID_REQUEST

    def __init__(self) -> None:
        super().__init__("At least one knowledge gap is required")


class AllGapsFailed(FineFormatError):
    """Every gap failed and no record was produced."""

    def __init__(self, failed_gap_ids: list[str]) -> None:
        super().__init__(
            f"Synthetic generation failed for all {len(failed_gap_ids)} gaps",
            details=", ".join(failed_gap_ids),
        )
        self.failed_gap_ids = list(failed_gap_ids)


class RateLimited(FineFormatError):
    """A caller exceeded the per-client request budget."""

    error_type = ErrorType.QUOTA_EXCEEDED

    def __init__(self, retry_after: float) -> None:
        super().__init__(
            "Rate limit exceeded",
            details=f"Retry after {retry_after:.0f} seconds",
        )
        self.retry_after = retry_after
