# core/credentials.py
"""Ordered provider API keys with format validation."""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from config import settings

from core.errors import ConfigurationError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Credential:
    provider: str
    index: int
    value: str

    @property
    def label(self) -> str:
        return f"{self.provider}#{self.index + 1}"

    def __repr__(self) -> str:
        return f"Credential({self.label})"


def is_valid_key(provider: str, value: str) -> bool:
    """Provider-specific prefix and length checks."""
    if provider == "gemini":
        return value.startswith("AIza") and len(value) == 39
    if provider == "openrouter":
        return value.startswith("sk-or-v1-") and len(value) > 20
    return bool(value)


class CredentialSet:
    """Keys for one provider; declaration order is trial order."""

    def __init__(self, provider: str, keys: list[str]) -> None:
        self.provider = provider
        self.credentials: list[Credential] = []
        for position, raw in enumerate(keys):
            value = (raw or "").strip()
            if not value:
                continue
            if not is_valid_key(provider, value):
                logger.warning(
                    "Ignoring %s key %d: unexpected format.", provider, position + 1
                )
                continue
            self.credentials.append(Credential(provider, position, value))
        logger.debug(
            "Credential set ready.", provider=provider, usable=len(self.credentials)
        )

    @classmethod
    def from_settings(cls, provider: str) -> CredentialSet:
        return cls(provider, settings.provider_keys(provider))

    def __len__(self) -> int:
        return len(self.credentials)

    def __iter__(self):
        return iter(self.credentials)

    def __bool__(self) -> bool:
        return bool(self.credentials)

    def require(self) -> list[Credential]:
        """Return the usable credentials or fail before any network call."""
        if not self.credentials:
            raise ConfigurationError(
                f"No valid {self.provider} API keys configured",
                details=(
                    f"Set {self.provider.upper()}_API_KEY "
                    f"(optionally _2 and _3) in the environment"
                ),
            )
        return list(self.credentials)
