# tests/conftest.py
import os
import sys

# Ensure repository root is on PYTHONPATH for tests
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)

# Real keys from a developer .env must never reach a test
for _name in (
    "GEMINI_API_KEY",
    "GEMINI_API_KEY_2",
    "GEMINI_API_KEY_3",
    "OPENROUTER_API_KEY",
    "OPENROUTER_API_KEY_2",
    "OPENROUTER_API_KEY_3",
):
    os.environ[_name] = ""
os.environ.setdefault("ENABLE_RICH_PROGRESS", "false")
os.environ.setdefault("INTER_GAP_DELAY_SECONDS", "0")

import pytest  # noqa: E402


@pytest.fixture
def gemini_keys() -> list[str]:
    return ["AIza" + c * 35 for c in "ABC"]


@pytest.fixture
def openrouter_keys() -> list[str]:
    return ["sk-or-v1-" + c * 64 for c in "abc"]
