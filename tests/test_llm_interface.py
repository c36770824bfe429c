# tests/test_llm_interface.py
import httpx
import pytest
from core.credentials import CredentialSet
from core.errors import AllAttemptsFailed, ConfigurationError
from core.failover import FailoverExecutor
from core.llm_interface import LLMService, as_messages


async def _no_sleep(delay: float) -> None:
    return None


def _service(handler) -> LLMService:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    executor = FailoverExecutor(
        tries_per_target=2,
        max_backoff_rounds=3,
        backoff_cap_seconds=5,
        quota_cooldown_seconds=0,
        sleep=_no_sleep,
    )
    return LLMService(http_client=http, executor=executor)


def test_as_messages_prepends_system_prompt():
    messages = as_messages("hi", system_prompt="rules")
    assert messages == [
        {"role": "system", "content": "rules"},
        {"role": "user", "content": "hi"},
    ]


@pytest.mark.asyncio
async def test_quota_on_first_key_fails_over_to_second(gemini_keys):
    seen_keys: list[str] = []

    def handler(request):
        key = request.headers["x-goog-api-key"]
        seen_keys.append(key)
        if key == gemini_keys[0]:
            return httpx.Response(
                429, json={"error": {"status": "RESOURCE_EXHAUSTED", "message": "quota"}}
            )
        return httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"text": "answer"}]}, "finishReason": "STOP"}]},
        )

    service = _service(handler)
    result = await service.async_call_llm(
        "gemini",
        "question",
        model_name="gemini-test",
        credentials=CredentialSet("gemini", gemini_keys),
    )
    await service.aclose()

    assert seen_keys == gemini_keys[:2]
    assert result.text == "answer"
    assert result.key_used == 2
    assert result.attempts == 2
    assert service.request_count == 2


@pytest.mark.asyncio
async def test_every_key_exhausted_reports_attempts(openrouter_keys):
    def handler(request):
        return httpx.Response(429, json={"error": {"code": 429, "message": "Rate limit exceeded"}})

    service = _service(handler)
    with pytest.raises(AllAttemptsFailed) as excinfo:
        await service.async_call_llm(
            "openrouter",
            "question",
            model_name="m",
            credentials=CredentialSet("openrouter", openrouter_keys),
        )
    await service.aclose()

    assert excinfo.value.attempts == 6
    assert excinfo.value.to_envelope()["keysAttempted"] == 6


@pytest.mark.asyncio
async def test_missing_keys_fail_without_network():
    calls = 0

    def handler(request):
        nonlocal calls
        calls += 1
        return httpx.Response(200, json={})

    service = _service(handler)
    with pytest.raises(ConfigurationError):
        await service.async_call_llm("gemini", "question")
    await service.aclose()

    assert calls == 0


@pytest.mark.asyncio
async def test_records_call_sanitizes_reply(openrouter_keys):
    def handler(request):
        content = '```json\n[{"question": "Q?", "answer": "A.", "isCorrect": true}]\n```'
        return httpx.Response(200, json={"choices": [{"message": {"content": content}, "finish_reason": "stop"}]})

    service = _service(handler)
    records, result = await service.async_call_llm_records(
        "openrouter",
        "generate",
        model_name="m",
        credentials=CredentialSet("openrouter", openrouter_keys),
    )
    await service.aclose()

    assert records == [{"question": "Q?", "answer": "A.", "isCorrect": True}]
    assert result.key_used == 1


def test_fallback_targets_are_credential_major(monkeypatch, openrouter_keys):
    import config

    monkeypatch.setattr(config.settings, "OPENROUTER_MODEL", "primary")
    monkeypatch.setattr(config.settings, "OPENROUTER_FALLBACK_MODELS", ["backup"])
    service = LLMService(http_client=httpx.AsyncClient())

    targets = service.fallback_targets(
        "openrouter", credentials=CredentialSet("openrouter", openrouter_keys[:2])
    )

    assert [t.label for t in targets] == [
        "openrouter#1/primary",
        "openrouter#2/primary",
        "openrouter#1/backup",
        "openrouter#2/backup",
    ]
