# tests/test_server_routes.py
import config
import httpx
import pytest
from core.error_classifier import ErrorClass
from core.errors import AllAttemptsFailed, SafetyFilterError
from core.llm_interface import LLMCallResult, LLMService
from core.rate_limit import InMemoryRateLimitStore
from core.usage import TokenUsage
from fastapi.testclient import TestClient
from server.app import create_app

CHAT_BODY = {"messages": [{"role": "user", "content": "Hello"}]}
CLEANED = "Cleaned text that is comfortably longer than the fifty character minimum."


class FakeService:
    def __init__(self, result=None, error=None) -> None:
        self.result = result
        self.error = error
        self.calls: list[tuple[str, object, dict]] = []

    async def async_call_llm(self, provider, prompt, **kwargs):
        self.calls.append((provider, prompt, kwargs))
        error = self.error(prompt) if callable(self.error) else self.error
        if error:
            raise error
        return self.result


def _ok(text: str = "Hi there", key_used: int = 1) -> LLMCallResult:
    return LLMCallResult(
        text=text,
        model="m",
        key_used=key_used,
        attempts=key_used,
        finish_reason="STOP",
        usage=TokenUsage(3, 2, 5),
    )


def _client(service, store=None) -> TestClient:
    return TestClient(create_app(service, store or InMemoryRateLimitStore()))


def test_chat_success_shape():
    service = FakeService(result=_ok(key_used=2))
    response = _client(service).post("/chat/gemini", json=CHAT_BODY)

    assert response.status_code == 200
    body = response.json()
    assert body["content"] == "Hi there"
    assert body["keyUsed"] == 2
    assert body["finishReason"] == "STOP"
    assert body["usage"]["total_tokens"] == 5
    assert response.headers["access-control-allow-origin"] == "*"
    provider, messages, kwargs = service.calls[0]
    assert provider == "gemini"
    assert messages == CHAT_BODY["messages"]
    assert kwargs["temperature"] == 0.7
    assert kwargs["max_tokens"] == 4096


def test_api_prefix_routes_to_same_handler():
    service = FakeService(result=_ok())
    response = _client(service).post("/api/chat/openrouter", json=CHAT_BODY)
    assert response.status_code == 200
    assert service.calls[0][0] == "openrouter"


def test_preflight_returns_cors_headers():
    response = _client(FakeService()).options("/chat/openrouter")
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
    assert "POST" in response.headers["access-control-allow-methods"]


def test_get_is_method_not_allowed():
    response = _client(FakeService()).get("/chat/gemini")
    assert response.status_code == 405
    assert response.json() == {"error": "Method not allowed", "type": "METHOD_NOT_ALLOWED"}


def test_invalid_json_body():
    response = _client(FakeService()).post(
        "/chat/gemini", content=b"{not json", headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 400
    assert response.json()["type"] == "INVALID_REQUEST"
    assert response.json()["error"] == "Invalid JSON in request body"


def test_empty_messages_rejected():
    response = _client(FakeService()).post("/chat/gemini", json={"messages": []})
    assert response.status_code == 400
    assert "Messages array is required" in response.json()["error"]


def test_missing_keys_is_service_unavailable():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={}))
    service = LLMService(http_client=httpx.AsyncClient(transport=transport))

    response = _client(service).post("/chat/gemini", json=CHAT_BODY)

    assert response.status_code == 500
    assert response.json()["type"] == "SERVICE_UNAVAILABLE"


def test_exhausted_quota_maps_to_429_with_attempt_count():
    service = FakeService(error=AllAttemptsFailed(6, 3, ErrorClass.QUOTA))
    response = _client(service).post("/chat/openrouter", json=CHAT_BODY)

    assert response.status_code == 429
    body = response.json()
    assert body["type"] == "QUOTA_EXCEEDED"
    assert body["keysAttempted"] == 6


def test_unclassified_exhaustion_is_all_keys_failed():
    service = FakeService(error=AllAttemptsFailed(2, 1, ErrorClass.OTHER))
    response = _client(service).post("/chat/openrouter", json=CHAT_BODY)
    assert response.status_code == 500
    assert response.json()["type"] == "ALL_KEYS_FAILED"


def test_safety_filter_is_bad_request():
    service = FakeService(error=SafetyFilterError("Content blocked by safety filters"))
    response = _client(service).post("/chat/gemini", json=CHAT_BODY)
    assert response.status_code == 400
    assert response.json()["type"] == "SAFETY_FILTER"


def test_client_rate_limit(monkeypatch):
    monkeypatch.setattr(config.settings, "RATE_LIMIT_REQUESTS", 2)
    client = _client(FakeService(result=_ok()))

    statuses = [
        client.post("/chat/gemini", json=CHAT_BODY, headers={"X-Forwarded-For": "1.2.3.4"}).status_code
        for _ in range(3)
    ]
    other = client.post("/chat/gemini", json=CHAT_BODY, headers={"X-Forwarded-For": "5.6.7.8"})
    limited = client.post("/chat/gemini", json=CHAT_BODY, headers={"X-Forwarded-For": "1.2.3.4"})

    assert statuses == [200, 200, 429]
    assert other.status_code == 200
    assert limited.json()["type"] == "QUOTA_EXCEEDED"
    assert int(limited.headers["retry-after"]) >= 1


def _source(content: str, name: str = "notes.txt", binary: bool = False) -> dict:
    return {
        "type": "file",
        "content": content,
        "metadata": {"name": name, "mimeType": "application/pdf" if binary else "text/plain", "isBinary": binary},
    }


def test_preprocess_cleans_each_source():
    service = FakeService(result=_ok(CLEANED, key_used=3))
    response = _client(service).post(
        "/preprocess",
        json={"sources": [_source("raw one"), _source("QUJD", "doc.pdf", binary=True)]},
    )

    assert response.status_code == 200
    assert response.json() == {
        "cleanedTexts": [CLEANED, CLEANED],
        "sourcesProcessed": 2,
        "keyUsed": 3,
    }
    binary_messages = service.calls[1][1]
    assert binary_messages[0]["parts"][0]["inlineData"]["data"] == "QUJD"


def test_preprocess_skips_failing_and_short_sources():
    def fail_first(prompt):
        if isinstance(prompt, str) and "bad.txt" in prompt:
            return SafetyFilterError("blocked")
        return None

    service = FakeService(result=_ok(CLEANED), error=fail_first)
    response = _client(service).post(
        "/preprocess", json={"sources": [_source("x", "bad.txt"), _source("y", "good.txt")]}
    )

    assert response.status_code == 200
    assert response.json()["cleanedTexts"] == [CLEANED]
    assert response.json()["sourcesProcessed"] == 2


def test_preprocess_with_no_usable_text_fails():
    service = FakeService(result=_ok("too short"))
    response = _client(service).post("/preprocess", json={"sources": [_source("x")]})
    assert response.status_code == 500
    assert response.json()["error"] == "No valid cleaned text produced from sources"


def test_preprocess_rejects_large_binary(monkeypatch):
    monkeypatch.setattr(config.settings, "PREPROCESS_MAX_BINARY_BYTES", 10)
    service = FakeService(result=_ok(CLEANED))

    response = _client(service).post(
        "/preprocess", json={"sources": [_source("A" * 100, "big.pdf", binary=True)]}
    )

    assert response.status_code == 413
    assert response.json()["type"] == "PAYLOAD_TOO_LARGE"
    assert service.calls == []


@pytest.mark.parametrize("body", [{"sources": []}, {"sources": [{"type": "ftp", "content": "x", "metadata": {"name": "a"}}]}])
def test_preprocess_validates_body(body):
    response = _client(FakeService()).post("/preprocess", json=body)
    assert response.status_code == 400
    assert response.json()["type"] == "INVALID_REQUEST"
