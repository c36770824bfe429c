# tests/test_error_classifier.py
import asyncio

import httpx
import pytest
from core.error_classifier import (
    ErrorClass,
    classify_error,
    classify_message,
    error_type_for,
)
from core.errors import (
    AllAttemptsFailed,
    ErrorType,
    HttpStatusError,
    MalformedResponse,
    PayloadTooLarge,
    ProviderTimeout,
    SafetyFilterError,
)


@pytest.mark.parametrize(
    "status, expected",
    [
        (429, ErrorClass.QUOTA),
        (401, ErrorClass.AUTH),
        (403, ErrorClass.AUTH),
        (408, ErrorClass.TIMEOUT),
        (502, ErrorClass.TRANSIENT),
        (503, ErrorClass.TRANSIENT),
        (400, ErrorClass.INVALID),
    ],
)
def test_status_codes(status, expected):
    assert classify_error(HttpStatusError(status, "provider error")) is expected


def test_provider_code_beats_status():
    exc = HttpStatusError(400, "bad", provider_code="RESOURCE_EXHAUSTED")
    assert classify_error(exc) is ErrorClass.QUOTA


def test_quota_message_on_400_is_quota():
    exc = HttpStatusError(400, "Free tier quota exceeded for this model")
    assert classify_error(exc) is ErrorClass.QUOTA


def test_plain_500_falls_back_to_message():
    assert classify_error(HttpStatusError(500, "Internal server error")) is ErrorClass.OTHER
    assert classify_error(HttpStatusError(500, "model overloaded")) is ErrorClass.TRANSIENT


def test_internal_provider_code_is_not_retried_as_transient():
    exc = HttpStatusError(500, "An internal error has occurred", provider_code="INTERNAL")
    assert classify_error(exc) is ErrorClass.OTHER


def test_typed_exceptions():
    assert classify_error(ProviderTimeout("gemini", 30)) is ErrorClass.TIMEOUT
    assert classify_error(asyncio.TimeoutError()) is ErrorClass.TIMEOUT
    assert classify_error(httpx.ReadTimeout("slow")) is ErrorClass.TIMEOUT
    assert classify_error(SafetyFilterError("blocked")) is ErrorClass.SAFETY
    assert classify_error(PayloadTooLarge(20, 10)) is ErrorClass.INVALID
    assert classify_error(MalformedResponse("no content")) is ErrorClass.TRANSIENT


@pytest.mark.parametrize(
    "message, expected",
    [
        ("Rate limit reached for requests", ErrorClass.QUOTA),
        ("Request timed out", ErrorClass.TIMEOUT),
        ("API key not valid. Please pass a valid API key.", ErrorClass.AUTH),
        ("The model is overloaded", ErrorClass.TRANSIENT),
        ("Response blocked by safety settings", ErrorClass.SAFETY),
        ("something odd", ErrorClass.OTHER),
    ],
)
def test_message_fallback(message, expected):
    assert classify_message(message) is expected


def test_error_type_for_all_attempts_failed_uses_last_class():
    quota = AllAttemptsFailed(6, 3, ErrorClass.QUOTA)
    other = AllAttemptsFailed(2, 1, ErrorClass.OTHER)
    assert error_type_for(quota) is ErrorType.QUOTA_EXCEEDED
    assert error_type_for(other) is ErrorType.ALL_KEYS_FAILED
    assert error_type_for(RuntimeError("x")) is ErrorType.UNKNOWN_ERROR


def test_envelope_carries_keys_attempted():
    exc = AllAttemptsFailed(6, 3, ErrorClass.QUOTA, HttpStatusError(429, "quota"))
    envelope = exc.to_envelope()
    assert envelope["keysAttempted"] == 6
    assert envelope["type"] == "ALL_KEYS_FAILED"
    assert envelope["details"] == "quota"
