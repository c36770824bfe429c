# tests/test_config_validators.py

import config
import pytest
from config import FineFormatSettings


@pytest.mark.parametrize("ratio", [0.0, 1.0, -0.1, 1.5])
def test_incorrect_ratio_out_of_range_raises(ratio):
    with pytest.raises(ValueError):
        FineFormatSettings(INCORRECT_ANSWER_RATIO=ratio)


def test_non_positive_gap_cap_raises():
    with pytest.raises(ValueError):
        FineFormatSettings(MAX_PAIRS_PER_GAP=0)


def test_negative_rate_limit_warns_and_disables(monkeypatch):
    warnings: list[str] = []

    def fake_warning(msg: str, **_kw: object) -> None:
        warnings.append(msg)

    monkeypatch.setattr(config.logger, "warning", fake_warning)
    settings = FineFormatSettings(RATE_LIMIT_REQUESTS=-5)
    assert settings.RATE_LIMIT_REQUESTS == 0
    assert any("RATE_LIMIT_REQUESTS" in msg for msg in warnings)


def test_provider_keys_skip_blank_slots():
    settings = FineFormatSettings(
        GEMINI_API_KEY=" first ", GEMINI_API_KEY_2="", GEMINI_API_KEY_3="third"
    )
    assert settings.provider_keys("gemini") == ["first", "third"]
    assert settings.provider_keys("openrouter") == []


def test_provider_keys_unknown_provider():
    with pytest.raises(ValueError):
        FineFormatSettings().provider_keys("anthropic")


def test_provider_models_deduplicate_chain():
    settings = FineFormatSettings(
        OPENROUTER_MODEL="a", OPENROUTER_FALLBACK_MODELS=["b", "a", "c"]
    )
    assert settings.provider_models("openrouter") == ["a", "b", "c"]


def test_log_level_alias(monkeypatch):
    monkeypatch.setenv("FINE_FORMAT_LOG_LEVEL", "DEBUG")
    assert FineFormatSettings().LOG_LEVEL_STR == "DEBUG"
