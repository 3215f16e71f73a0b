import os

import httpx
import pytest

# Settings are read at import time; keep the tests on the mock provider.
os.environ.setdefault("LLM_PROVIDER", "mock")
os.environ.pop("IMAGE_PROVIDER", None)

from charactergen.config import DEFAULT_PROMPTS_DIR, ProviderConfig  # noqa: E402
from charactergen.prompts import TemplateStore  # noqa: E402


@pytest.fixture
def character():
    return {
        "name": "Thalia Stormwind",
        "class": "Bard",
        "race": "Half-Elf",
        "alignment": "Chaotic Good",
        "level": 3,
    }


@pytest.fixture
def sleeps():
    """Records backoff sleeps instead of waiting."""
    return []


@pytest.fixture
def templates():
    return TemplateStore(DEFAULT_PROMPTS_DIR, "test")


@pytest.fixture
def live_config():
    return ProviderConfig(api_key="test-key", model="test-model", max_tokens=512, temperature=0.5)


class Recorder:
    """
    httpx.MockTransport handler that replays a scripted list of responses
    (or exceptions) and keeps every request it saw.
    """

    def __init__(self, *script):
        self.script = list(script)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(step, Exception):
            raise step
        # A response object can only be sent once; replay a copy.
        return httpx.Response(step.status_code, headers=step.headers, content=step.read())

    @property
    def calls(self):
        return len(self.requests)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self))


@pytest.fixture
def recorder():
    return Recorder
