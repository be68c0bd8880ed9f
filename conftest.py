import shutil
from pathlib import Path

import pytest

TEST_DATA_DIR = Path("data-tests")

_SETTINGS_ENV = (
    "DATA_DIR",
    "LLM_PROVIDER_URL",
    "LLM_API_KEY",
    "LLM_FORMAT",
    "LLM_MODEL",
    "LLM_TEMPERATURE",
    "LLM_TIMEOUT",
    "SAVE_SLOT",
    "SAVE_DEBOUNCE_SECONDS",
    "DEFAULT_LANGUAGE",
)


@pytest.fixture(autouse=True)
def clean_test_data(monkeypatch):
    """Wipe and re-create data-tests/ and hide settings env vars before every test."""
    for name in _SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)
    if TEST_DATA_DIR.exists():
        shutil.rmtree(TEST_DATA_DIR)
    TEST_DATA_DIR.mkdir(parents=True)
    yield TEST_DATA_DIR
    # leave data-tests around after tests for inspection; CI can ignore it


class StubLLM:
    """Return canned responses in order and record every call.

    A response that is an Exception instance is raised instead of returned,
    to simulate transport failures. Once the list runs out, the last
    response repeats.
    """

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []  # list of (stage, prompt, system) tuples

    async def __call__(self, stage, prompt, system=""):
        self.calls.append((stage, prompt, system))
        idx = min(len(self.calls), len(self.responses)) - 1
        response = self.responses[idx]
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def call_count(self):
        return len(self.calls)

    def prompt(self, index):
        return self.calls[index][1]

    def system(self, index):
        return self.calls[index][2]


@pytest.fixture
def make_llm():
    """Factory: make_llm([json_str_or_exception, ...]) -> StubLLM."""
    return StubLLM
