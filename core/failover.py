# core/failover.py
"""Run one logical request across an ordered list of fallback targets.

A target pairs a credential with a model (and optional request config),
so switching keys and switching models are the same transition. Each
failure is classified and mapped to one of three moves: try the next
target now, back off and retry, or give up once the attempt budget of
``tries_per_target * len(targets)`` is spent.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

import structlog
from config import settings

from core.credentials import Credential
from core.error_classifier import ErrorClass, classify_error
from core.errors import (
    AllAttemptsFailed,
    ConfigurationError,
    InvalidRequest,
    PayloadTooLarge,
)
from core.rate_limit import RateLimitStore

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Failures that no other key or model can fix.
FATAL_ERRORS: tuple[type[BaseException], ...] = (
    ConfigurationError,
    PayloadTooLarge,
    InvalidRequest,
)


class FailoverState(str, Enum):
    PENDING = "pending"
    ATTEMPTING = "attempting"
    SUCCESS = "success"
    NEXT_CREDENTIAL = "next_credential"
    BACKOFF = "backoff"
    ALL_FAILED = "all_failed"


_TRANSITIONS: dict[ErrorClass, FailoverState] = {
    ErrorClass.QUOTA: FailoverState.NEXT_CREDENTIAL,
    ErrorClass.TIMEOUT: FailoverState.NEXT_CREDENTIAL,
    ErrorClass.AUTH: FailoverState.NEXT_CREDENTIAL,
    ErrorClass.TRANSIENT: FailoverState.BACKOFF,
    ErrorClass.SAFETY: FailoverState.NEXT_CREDENTIAL,
    ErrorClass.INVALID: FailoverState.NEXT_CREDENTIAL,
    ErrorClass.OTHER: FailoverState.NEXT_CREDENTIAL,
}


def transition_for(error_class: ErrorClass) -> FailoverState:
    return _TRANSITIONS.get(error_class, FailoverState.NEXT_CREDENTIAL)


@dataclass(frozen=True)
class FallbackTarget:
    credential: Credential
    model: str
    config: dict[str, Any] | None = None

    @property
    def label(self) -> str:
        return f"{self.credential.label}/{self.model}"


@dataclass
class AttemptRecord:
    attempt: int
    target_index: int
    error_class: ErrorClass
    message: str


@dataclass
class FailoverResult(Generic[T]):
    value: T
    target: FallbackTarget
    target_index: int
    attempt: int
    attempts: list[AttemptRecord] = field(default_factory=list)
    states: list[FailoverState] = field(default_factory=list)

    @property
    def key_used(self) -> int:
        """1-based position of the credential that succeeded."""
        return self.target.credential.index + 1


class FailoverExecutor:
    """Classifying retry loop shared by every provider call."""

    def __init__(
        self,
        tries_per_target: int = settings.FAILOVER_TRIES_PER_TARGET,
        max_backoff_rounds: int = settings.FAILOVER_MAX_BACKOFF_ROUNDS,
        backoff_cap_seconds: float = settings.FAILOVER_BACKOFF_CAP_SECONDS,
        quota_cooldown_seconds: float = settings.QUOTA_COOLDOWN_SECONDS,
        rate_limit_store: RateLimitStore | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        classifier: Callable[[BaseException], ErrorClass] = classify_error,
    ) -> None:
        self.tries_per_target = tries_per_target
        self.max_backoff_rounds = max_backoff_rounds
        self.backoff_cap_seconds = backoff_cap_seconds
        self.quota_cooldown_seconds = quota_cooldown_seconds
        self.rate_limit_store = rate_limit_store
        self._sleep = sleep
        self._classify = classifier

    def backoff_delay(self, round_number: int) -> float:
        return float(min(2**round_number, self.backoff_cap_seconds))

    def _store_key(self, target: FallbackTarget) -> str:
        return f"credential:{target.credential.label}"

    def _next_index(
        self,
        start: int,
        targets: Sequence[FallbackTarget],
        tries: list[int],
        disabled: set[Credential],
    ) -> int | None:
        """First target at or after ``start`` (wrapping) that may still run.

        Credentials in quota cooldown are passed over while any other
        candidate remains.
        """
        total = len(targets)
        candidates = [
            (start + offset) % total
            for offset in range(total)
            if tries[(start + offset) % total] < self.tries_per_target
            and targets[(start + offset) % total].credential not in disabled
        ]
        if not candidates:
            return None
        if self.rate_limit_store is not None:
            for index in candidates:
                if not self.rate_limit_store.is_exhausted(self._store_key(targets[index])):
                    return index
        return candidates[0]

    async def run(
        self,
        targets: Sequence[FallbackTarget],
        operation: Callable[[FallbackTarget], Awaitable[T]],
        label: str = "request",
    ) -> FailoverResult[T]:
        if not targets:
            raise ConfigurationError(f"No credentials available for {label}")

        credential_count = len({t.credential for t in targets})
        max_attempts = self.tries_per_target * len(targets)
        tries = [0] * len(targets)
        disabled: set[Credential] = set()
        history: list[AttemptRecord] = []
        states: list[FailoverState] = [FailoverState.PENDING]
        backoff_rounds = 0
        attempts = 0
        index = 0
        last_error: BaseException | None = None
        last_class: ErrorClass | None = None

        while attempts < max_attempts:
            next_index = self._next_index(index, targets, tries, disabled)
            if next_index is None:
                break
            index = next_index
            target = targets[index]
            attempts += 1
            tries[index] += 1
            states.append(FailoverState.ATTEMPTING)
            try:
                value = await operation(target)
            except FATAL_ERRORS:
                raise
            except Exception as exc:
                last_error = exc
                last_class = self._classify(exc)
                history.append(AttemptRecord(attempts, index, last_class, str(exc)))
                logger.warning(
                    "%s attempt %d/%d with %s failed (%s): %s",
                    label,
                    attempts,
                    max_attempts,
                    target.label,
                    last_class.value,
                    exc,
                )
                state = transition_for(last_class)
                if last_class is ErrorClass.AUTH:
                    disabled.add(target.credential)
                if last_class is ErrorClass.QUOTA and self.rate_limit_store is not None:
                    self.rate_limit_store.mark_exhausted(
                        self._store_key(target), self.quota_cooldown_seconds
                    )
                if (
                    state is FailoverState.BACKOFF
                    and backoff_rounds < self.max_backoff_rounds
                    and tries[index] < self.tries_per_target
                    and attempts < max_attempts
                ):
                    delay = self.backoff_delay(backoff_rounds)
                    backoff_rounds += 1
                    states.append(FailoverState.BACKOFF)
                    logger.info(
                        "%s backing off %.1fs before retrying %s.",
                        label,
                        delay,
                        target.label,
                    )
                    await self._sleep(delay)
                    continue
                states.append(FailoverState.NEXT_CREDENTIAL)
                index = (index + 1) % len(targets)
                continue

            states.append(FailoverState.SUCCESS)
            if attempts > 1:
                logger.info(
                    "%s succeeded with %s on attempt %d.", label, target.label, attempts
                )
            return FailoverResult(
                value=value,
                target=target,
                target_index=index,
                attempt=attempts,
                attempts=history,
                states=states,
            )

        states.append(FailoverState.ALL_FAILED)
        logger.error(
            "%s failed on every target.",
            label,
            attempts=attempts,
            credentials=credential_count,
            last_classification=last_class.value if last_class else None,
        )
        raise AllAttemptsFailed(attempts, credential_count, last_class, last_error)
