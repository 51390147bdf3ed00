"""Pytest configuration and fixtures."""

import json
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from src.config import Settings
from src.db.turso import TursoClient
from src.prep.prompts import (
    BRIEF_SYSTEM,
    EMAIL_EXTRACTION_SYSTEM,
    EMAIL_THREAD_SYSTEM,
    MEETING_EXTRACTION_SYSTEM,
    MEETING_THREAD_SYSTEM,
)
from src.prep.schemas import CandidateItem, CandidateKind, TargetMeeting
from src.services.llm_client import (
    CompletionChunk,
    CompletionRequest,
    CompletionResponse,
    TokenUsage,
)

MEETING_JSON = {
    "keyDecisions": ["Ship the portal in March"],
    "actionItems": [{"owner": "Dana", "task": "Draft rollout plan", "deadline": "Friday"}],
    "metrics": ["1,247 claims processed"],
    "nextSteps": ["Review rollout plan"],
    "fullSummary": "The team agreed to ship the portal in March.",
}

EMAIL_JSON = {
    "keyPoints": ["Budget approved"],
    "actionItems": ["Send signed contract"],
    "sentiment": "positive",
    "summary": "Finance approved the Q2 budget.",
}

BRIEF_TEXT = "## Context\nThe portal ships in March.\n\n## Recommended Focus\n- Budget"
THREAD_TEXT = "Across these meetings the team converged on a March launch."
CONDENSED_TEXT = "Earlier the team discussed launch dates and staffing."


def default_responder(request: CompletionRequest) -> str:
    """Answer each pipeline prompt with a plausible canned response."""
    system = request.system_prompt
    if system == MEETING_EXTRACTION_SYSTEM:
        return json.dumps(MEETING_JSON)
    if system == EMAIL_EXTRACTION_SYSTEM:
        return json.dumps(EMAIL_JSON)
    if system in (MEETING_THREAD_SYSTEM, EMAIL_THREAD_SYSTEM):
        return THREAD_TEXT
    if system == BRIEF_SYSTEM:
        return BRIEF_TEXT
    if system.startswith("Summarize the key points"):
        return CONDENSED_TEXT
    raise AssertionError(f"Unexpected prompt: {system[:60]}")


class FakeCompletionClient:
    """Scripted completion client recording every request.

    The responder returns response text, a CompletionResponse, or an
    exception instance to raise.
    """

    def __init__(
        self,
        responder: Callable[[CompletionRequest], object] | None = None,
        stream_chunks: list[str] | None = None,
        stream_error: Exception | None = None,
    ):
        self.model = "fake-model"
        self.requests: list[CompletionRequest] = []
        self._responder = responder or default_responder
        self._stream_chunks = stream_chunks or []
        self._stream_error = stream_error

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        self.requests.append(request)
        result = self._responder(request)
        if isinstance(result, Exception):
            raise result
        if isinstance(result, CompletionResponse):
            return result
        return CompletionResponse(
            text=result,
            usage=TokenUsage(prompt_tokens=100, completion_tokens=20, total_tokens=120),
            model=self.model,
        )

    async def stream(self, request: CompletionRequest):
        self.requests.append(request)
        for delta in self._stream_chunks:
            yield CompletionChunk(delta=delta)
        if self._stream_error is not None:
            raise self._stream_error
        yield CompletionChunk(
            usage=TokenUsage(prompt_tokens=80, completion_tokens=40, total_tokens=120)
        )

    def calls_with(self, system_prompt: str) -> list[CompletionRequest]:
        """Requests sent with the given system prompt."""
        return [r for r in self.requests if r.system_prompt == system_prompt]


@pytest.fixture
def fake_llm() -> FakeCompletionClient:
    """Fake completion client with canned pipeline responses."""
    return FakeCompletionClient()


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the environment."""
    return Settings(
        anthropic_api_key=None,
        turso_database_url=None,
        input_cost_per_1m=2.20,
        output_cost_per_1m=8.80,
    )


@pytest.fixture
async def db_client(tmp_path: Path):
    """Create a temp file database client for testing."""
    db_path = tmp_path / "test_summary_cache.db"
    client = TursoClient(url=f"file:{db_path}")
    await client.connect()
    yield client
    await client.close()


BASE_TIME = datetime(2026, 3, 2, 15, 0, tzinfo=UTC)


def make_meeting(
    item_id: str,
    title: str = "Portal launch sync",
    transcript: str | None = "Dana: We ship in March. Lee: Agreed.",
    days_ago: int = 1,
) -> CandidateItem:
    """Build a related meeting candidate."""
    start = BASE_TIME - timedelta(days=days_ago)
    return CandidateItem(
        id=item_id,
        kind=CandidateKind.MEETING,
        title=title,
        timestamp=start,
        end_time=start + timedelta(minutes=30),
        raw_text=transcript,
        participant_or_sender="dana@example.com",
    )


def make_email(
    item_id: str,
    subject: str = "Q2 budget",
    sender: str = "finance@example.com",
    body: str | None = "The Q2 budget has been approved.",
    days_ago: int = 1,
) -> CandidateItem:
    """Build a related email candidate."""
    return CandidateItem(
        id=item_id,
        kind=CandidateKind.EMAIL,
        title=subject,
        timestamp=BASE_TIME - timedelta(days=days_ago),
        raw_text=body,
        participant_or_sender=sender,
    )


@pytest.fixture
def target_meeting() -> TargetMeeting:
    """The upcoming meeting being prepared for."""
    return TargetMeeting(
        id="target-1",
        subject="Portal launch readiness",
        start=BASE_TIME + timedelta(days=2),
        attendees=["Dana Reyes", "Lee Park"],
    )


@pytest.fixture
def meeting_factory() -> Callable[..., CandidateItem]:
    return make_meeting


@pytest.fixture
def email_factory() -> Callable[..., CandidateItem]:
    return make_email


@pytest.fixture
def llm_factory() -> Callable[..., FakeCompletionClient]:
    """Build fake clients with a custom responder or stream script."""
    return FakeCompletionClient


@pytest.fixture
def canned_responder() -> Callable[[CompletionRequest], str]:
    """The default responder, for wrapping in custom scripts."""
    return default_responder
