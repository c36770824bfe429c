# core/error_classifier.py
"""Classify provider failures so the failover executor can pick a transition."""

from __future__ import annotations

import asyncio
import re
from enum import Enum

import httpx

from core.errors import (
    AllAttemptsFailed,
    ErrorType,
    FineFormatError,
    HttpStatusError,
    InvalidRequest,
    MalformedResponse,
    PayloadTooLarge,
    ProviderTimeout,
    SafetyFilterError,
)


class ErrorClass(str, Enum):
    QUOTA = "quota"
    TIMEOUT = "timeout"
    AUTH = "auth"
    TRANSIENT = "transient"
    SAFETY = "safety"
    INVALID = "invalid"
    OTHER = "other"


# Gemini reports google.rpc status names; OpenRouter mirrors HTTP codes.
_PROVIDER_CODES: dict[str, ErrorClass] = {
    "RESOURCE_EXHAUSTED": ErrorClass.QUOTA,
    "RATE_LIMIT_EXCEEDED": ErrorClass.QUOTA,
    "DEADLINE_EXCEEDED": ErrorClass.TIMEOUT,
    "UNAUTHENTICATED": ErrorClass.AUTH,
    "PERMISSION_DENIED": ErrorClass.AUTH,
    "UNAVAILABLE": ErrorClass.TRANSIENT,
    "INVALID_ARGUMENT": ErrorClass.INVALID,
    "FAILED_PRECONDITION": ErrorClass.INVALID,
    "429": ErrorClass.QUOTA,
    "401": ErrorClass.AUTH,
    "403": ErrorClass.AUTH,
    "402": ErrorClass.QUOTA,
    "408": ErrorClass.TIMEOUT,
    "502": ErrorClass.TRANSIENT,
    "503": ErrorClass.TRANSIENT,
}

_STATUS_CLASSES: dict[int, ErrorClass] = {
    429: ErrorClass.QUOTA,
    401: ErrorClass.AUTH,
    403: ErrorClass.AUTH,
    408: ErrorClass.TIMEOUT,
    504: ErrorClass.TIMEOUT,
    502: ErrorClass.TRANSIENT,
    503: ErrorClass.TRANSIENT,
    400: ErrorClass.INVALID,
}

_MESSAGE_PATTERNS: list[tuple[re.Pattern[str], ErrorClass]] = [
    (
        re.compile(r"quota|rate[ _-]?limit|\blimit\b|resource[ _]exhausted|\b429\b", re.I),
        ErrorClass.QUOTA,
    ),
    (re.compile(r"time(?:d)?[ _-]?out|etimedout|deadline", re.I), ErrorClass.TIMEOUT),
    (
        re.compile(
            r"unauthori[sz]ed|forbidden|api key not valid|invalid api key|\b40[13]\b",
            re.I,
        ),
        ErrorClass.AUTH,
    ),
    (re.compile(r"unavailable|overloaded|bad gateway|\b50[23]\b", re.I), ErrorClass.TRANSIENT),
    (re.compile(r"safety|blocked", re.I), ErrorClass.SAFETY),
]


def classify_message(message: str) -> ErrorClass:
    """Substring fallback for providers that send no structured code."""
    for pattern, error_class in _MESSAGE_PATTERNS:
        if pattern.search(message or ""):
            return error_class
    return ErrorClass.OTHER


def classify_error(exc: BaseException) -> ErrorClass:
    """Inspect typed fields first, then fall back to the message text."""
    if isinstance(exc, (ProviderTimeout, asyncio.TimeoutError, httpx.TimeoutException)):
        return ErrorClass.TIMEOUT
    if isinstance(exc, SafetyFilterError):
        return ErrorClass.SAFETY
    if isinstance(exc, (InvalidRequest, PayloadTooLarge)):
        return ErrorClass.INVALID
    if isinstance(exc, MalformedResponse):
        return ErrorClass.TRANSIENT

    status: int | None = None
    provider_code: str | None = None
    if isinstance(exc, HttpStatusError):
        status = exc.status
        provider_code = exc.provider_code
    elif isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code

    if provider_code and provider_code.upper() in _PROVIDER_CODES:
        return _PROVIDER_CODES[provider_code.upper()]
    if status is not None and status in _STATUS_CLASSES:
        found = _STATUS_CLASSES[status]
        # Some providers answer 400 for exhausted free-tier quotas.
        if found is ErrorClass.INVALID and classify_message(str(exc)) is ErrorClass.QUOTA:
            return ErrorClass.QUOTA
        return found
    return classify_message(str(exc))


_CLASS_ERROR_TYPES: dict[ErrorClass, ErrorType] = {
    ErrorClass.QUOTA: ErrorType.QUOTA_EXCEEDED,
    ErrorClass.TIMEOUT: ErrorType.TIMEOUT_ERROR,
    ErrorClass.AUTH: ErrorType.AUTH_ERROR,
    ErrorClass.TRANSIENT: ErrorType.SERVICE_UNAVAILABLE,
    ErrorClass.SAFETY: ErrorType.SAFETY_FILTER,
    ErrorClass.INVALID: ErrorType.INVALID_REQUEST,
    ErrorClass.OTHER: ErrorType.ALL_KEYS_FAILED,
}


def error_type_for(exc: BaseException) -> ErrorType:
    """Map an exception to the API taxonomy."""
    if isinstance(exc, AllAttemptsFailed):
        last = exc.last_classification
        if isinstance(last, ErrorClass):
            return _CLASS_ERROR_TYPES[last]
        return ErrorType.ALL_KEYS_FAILED
    if isinstance(exc, FineFormatError):
        return exc.error_type
    return ErrorType.UNKNOWN_ERROR
