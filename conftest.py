import json
import random
from typing import Any

import pytest

from infinite_chronicles.llm import LLMError
from infinite_chronicles.session import GameSession
from infinite_chronicles.storage import SaveStore

TEST_KEY = "test-key"


class StubLLM:
    """Returns queued responses for structured stages, a fixed text for summaries.

    Queued items that are exceptions are raised instead of returned.
    Every call is recorded as (stage, prompt, schema).
    """

    def __init__(self, responses: list[Any] | None = None, summary: Any = "A summary.") -> None:
        self.responses = list(responses or [])
        self.summary = summary
        self.calls: list[tuple[str, str, dict | None]] = []

    def stages(self) -> list[str]:
        return [stage for stage, _, _ in self.calls]

    def prompts(self, stage: str) -> list[str]:
        return [prompt for s, prompt, _ in self.calls if s == stage]

    async def __call__(self, stage: str, prompt: str, schema: dict | None = None) -> str:
        self.calls.append((stage, prompt, schema))
        if stage == "summary":
            if isinstance(self.summary, Exception):
                raise self.summary
            return self.summary
        if not self.responses:
            raise LLMError("StubLLM has no responses left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def payload(**overrides: Any) -> dict[str, Any]:
    """A valid turn payload in wire format."""
    data: dict[str, Any] = {
        "title": "Chapter",
        "content": "The story continues.",
        "currentLocation": "Tavern",
        "choices": [
            {"id": "c1", "text": "Look around"},
            {"id": "c2", "text": "Force the door", "skillCheck": {"stat": "STR", "difficulty": 15}},
        ],
        "inventory": ["Torch"],
        "status": "Healthy",
        "isGameOver": False,
    }
    data.update(overrides)
    return data


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep real credentials and provider settings out of tests."""
    for name in ("API_KEY", "GEMINI_API_KEY", "LLM_PROVIDER_URL",
                 "LLM_PROVIDER_FORMAT", "LLM_MODEL", "LLM_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_payload():
    return payload


@pytest.fixture
def payload_json():
    def _dump(**overrides: Any) -> str:
        return json.dumps(payload(**overrides))
    return _dump


@pytest.fixture
def store(tmp_path) -> SaveStore:
    return SaveStore(tmp_path)


@pytest.fixture
def make_session(store):
    """Build (session, llm) with the given queued responses."""
    def _make(responses: list[Any] | None = None, summary: Any = "A summary.",
              config: dict | None = None, with_store: bool = True,
              rng: random.Random | None = None) -> tuple[GameSession, StubLLM]:
        llm = StubLLM(responses, summary)
        session = GameSession(
            llm_factory=lambda key: llm,
            store=store if with_store else None,
            config=config,
            rng=rng,
        )
        return session, llm
    return _make
