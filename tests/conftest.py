"""Shared fixtures: an isolated environment, fake agents, local storage."""

from typing import Optional, Sequence

import pytest

from astra_ledger.config import AppSettings, get_settings
from astra_ledger.models.conversation import ImageAttachment
from astra_ledger.models.transaction import ExtractedTransaction, Transaction
from astra_ledger.services.storage import LocalJsonTransactionStorage


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """No real keys and no .env file leak into tests."""
    for name in (
        "GEMINI_API_KEY",
        "FIREBASE_API_KEY",
        "FIREBASE_PROJECT_ID",
        "FIREBASE_CREDENTIALS_PATH",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LOCAL_DATA_DIR", str(tmp_path / "ledger"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings()


@pytest.fixture
def storage(tmp_path) -> LocalJsonTransactionStorage:
    return LocalJsonTransactionStorage(data_dir=tmp_path / "ledger", app_id="test-app")


@pytest.fixture
def receipt_image() -> ImageAttachment:
    return ImageAttachment(data=b"\xff\xd8\xff\xe0fake-jpeg", mime_type="image/jpeg")


class FakeParsingAgent:
    """Returns canned candidates and records what it was asked."""

    def __init__(self, results: Sequence[ExtractedTransaction] = ()):
        self.results = list(results)
        self.calls: list[tuple[str, str]] = []

    async def extract(self, text: str, memory_context: str) -> list[ExtractedTransaction]:
        self.calls.append((text, memory_context))
        return list(self.results)


class FakeVisionAgent:
    def __init__(self, results: Sequence[ExtractedTransaction] = ()):
        self.results = list(results)
        self.calls: list[ImageAttachment] = []

    async def extract(self, image: ImageAttachment) -> list[ExtractedTransaction]:
        self.calls.append(image)
        return list(self.results)


class FakeSummaryAgent:
    def __init__(self, answer: str = "You spent **₹500** on food."):
        self.answer_text = answer
        self.calls: list[tuple[str, int]] = []

    async def answer(self, question: str, transactions: Sequence[Transaction]) -> str:
        self.calls.append((question, len(transactions)))
        return self.answer_text


class FakeAdvisorAgent:
    def __init__(self, tip: Optional[str] = "Coffee is a third of your spend."):
        self.tip = tip
        self.calls = 0

    async def advise(self, transactions: Sequence[Transaction]) -> str:
        self.calls += 1
        return self.tip


@pytest.fixture
def fake_parsing_agent():
    return FakeParsingAgent()


@pytest.fixture
def fake_vision_agent():
    return FakeVisionAgent()


@pytest.fixture
def fake_summary_agent():
    return FakeSummaryAgent()
