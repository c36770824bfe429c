# tests/test_failover.py
import pytest
from core.credentials import Credential
from core.error_classifier import ErrorClass
from core.errors import (
    AllAttemptsFailed,
    ConfigurationError,
    HttpStatusError,
    PayloadTooLarge,
)
from core.failover import FailoverExecutor, FailoverState, FallbackTarget
from core.rate_limit import InMemoryRateLimitStore


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _targets(count: int, model: str = "m1") -> list[FallbackTarget]:
    return [
        FallbackTarget(Credential("gemini", i, f"key-{i}"), model) for i in range(count)
    ]


def _executor(**overrides) -> tuple[FailoverExecutor, RecordingSleep]:
    sleep = RecordingSleep()
    options = dict(
        tries_per_target=2,
        max_backoff_rounds=3,
        backoff_cap_seconds=5,
        quota_cooldown_seconds=60,
        sleep=sleep,
    )
    options.update(overrides)
    return FailoverExecutor(**options), sleep


@pytest.mark.asyncio
async def test_quota_on_every_key_spends_exact_budget():
    executor, sleep = _executor()
    calls: list[str] = []

    async def op(target):
        calls.append(target.credential.label)
        raise HttpStatusError(429, "Resource exhausted", provider_code="RESOURCE_EXHAUSTED")

    with pytest.raises(AllAttemptsFailed) as excinfo:
        await executor.run(_targets(3), op)

    assert calls == ["gemini#1", "gemini#2", "gemini#3"] * 2
    assert excinfo.value.attempts == 6
    assert excinfo.value.credential_count == 3
    assert excinfo.value.last_classification is ErrorClass.QUOTA
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_second_key_succeeds_after_quota():
    executor, _ = _executor()

    async def op(target):
        if target.credential.index == 0:
            raise HttpStatusError(429, "quota")
        return "ok"

    result = await executor.run(_targets(3), op)

    assert result.value == "ok"
    assert result.key_used == 2
    assert result.attempt == 2
    assert result.attempts[0].error_class is ErrorClass.QUOTA
    assert result.states[-1] is FailoverState.SUCCESS
    assert FailoverState.NEXT_CREDENTIAL in result.states


@pytest.mark.asyncio
async def test_transient_errors_back_off_exponentially():
    executor, sleep = _executor(tries_per_target=4)
    calls = 0

    async def op(target):
        nonlocal calls
        calls += 1
        raise HttpStatusError(503, "Service unavailable")

    with pytest.raises(AllAttemptsFailed) as excinfo:
        await executor.run(_targets(1), op)

    assert sleep.delays == [1.0, 2.0, 4.0]
    assert calls == 4
    assert excinfo.value.last_classification is ErrorClass.TRANSIENT


@pytest.mark.asyncio
async def test_no_backoff_once_target_has_no_tries_left():
    executor, sleep = _executor(tries_per_target=2)
    calls = 0

    async def op(target):
        nonlocal calls
        calls += 1
        raise HttpStatusError(503, "Service unavailable")

    with pytest.raises(AllAttemptsFailed):
        await executor.run(_targets(1), op)

    assert calls == 2
    assert sleep.delays == [1.0]


@pytest.mark.asyncio
async def test_backoff_delay_is_capped():
    executor, sleep = _executor(tries_per_target=4, backoff_cap_seconds=3)

    async def op(target):
        raise HttpStatusError(502, "Bad gateway")

    with pytest.raises(AllAttemptsFailed):
        await executor.run(_targets(1), op)

    assert sleep.delays == [1.0, 2.0, 3.0]


@pytest.mark.asyncio
async def test_auth_failure_disables_credential():
    executor, _ = _executor()
    calls: list[str] = []

    async def op(target):
        calls.append(target.credential.label)
        if target.credential.index == 0:
            raise HttpStatusError(401, "API key not valid")
        raise HttpStatusError(429, "quota")

    with pytest.raises(AllAttemptsFailed) as excinfo:
        await executor.run(_targets(2), op)

    assert calls == ["gemini#1", "gemini#2", "gemini#2"]
    assert excinfo.value.attempts == 3


@pytest.mark.asyncio
async def test_fatal_errors_are_not_retried():
    executor, _ = _executor()
    calls = 0

    async def op(target):
        nonlocal calls
        calls += 1
        raise PayloadTooLarge(20 * 1024 * 1024, 10 * 1024 * 1024)

    with pytest.raises(PayloadTooLarge):
        await executor.run(_targets(3), op)
    assert calls == 1


@pytest.mark.asyncio
async def test_empty_targets_is_configuration_error():
    executor, _ = _executor()

    async def op(target):
        return "never"

    with pytest.raises(ConfigurationError):
        await executor.run([], op)


@pytest.mark.asyncio
async def test_model_fallback_targets_are_walked_in_order():
    executor, _ = _executor(tries_per_target=1)
    creds = [Credential("openrouter", i, f"k{i}") for i in range(2)]
    targets = [FallbackTarget(c, m) for m in ("primary", "backup") for c in creds]
    seen: list[str] = []

    async def op(target):
        seen.append(target.label)
        if target.model == "primary":
            raise HttpStatusError(404, "No endpoints found for model")
        return target.model

    result = await executor.run(targets, op)

    assert seen == ["openrouter#1/primary", "openrouter#2/primary", "openrouter#1/backup"]
    assert result.value == "backup"
    assert result.key_used == 1


@pytest.mark.asyncio
async def test_exhausted_credentials_are_skipped_while_cooling_down():
    store = InMemoryRateLimitStore()
    executor, _ = _executor(rate_limit_store=store)
    targets = _targets(2)
    store.mark_exhausted("credential:gemini#1", 60)
    seen: list[str] = []

    async def op(target):
        seen.append(target.credential.label)
        return "ok"

    result = await executor.run(targets, op)

    assert seen == ["gemini#2"]
    assert result.key_used == 2


@pytest.mark.asyncio
async def test_quota_failure_marks_credential_in_store():
    store = InMemoryRateLimitStore()
    executor, _ = _executor(rate_limit_store=store)

    async def op(target):
        if target.credential.index == 0:
            raise HttpStatusError(429, "quota")
        return "ok"

    await executor.run(_targets(2), op)

    assert store.is_exhausted("credential:gemini#1")
    assert not store.is_exhausted("credential:gemini#2")
