"""Integration tests for summary cache API endpoints."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from src.api.cache import router
from src.db.turso import TursoClient
from src.prep.schemas import (
    CandidateKind,
    EmailSummary,
    MeetingSummary,
    SummaryRecord,
)
from src.repositories.summary_cache import CacheError, TTLSummaryCache
from src.repositories.summary_repo import SummaryRepository


def meeting_record(item_id: str) -> SummaryRecord:
    return SummaryRecord(
        item_id=item_id,
        kind=CandidateKind.MEETING,
        payload=MeetingSummary(full_summary="Agreed on March."),
    )


def email_record(item_id: str) -> SummaryRecord:
    return SummaryRecord(
        item_id=item_id,
        kind=CandidateKind.EMAIL,
        payload=EmailSummary(summary="Approved."),
    )


@pytest.fixture
async def summary_repo(db_client: TursoClient) -> SummaryRepository:
    repo = SummaryRepository(db_client)
    await repo.initialize()
    return repo


@pytest.fixture
def summary_cache(summary_repo: SummaryRepository) -> TTLSummaryCache:
    return TTLSummaryCache(summary_repo)


@pytest.fixture
def app(summary_repo: SummaryRepository, summary_cache: TTLSummaryCache) -> FastAPI:
    """Create a test FastAPI application with a real summary store."""
    test_app = FastAPI()
    test_app.state.summary_repo = summary_repo
    test_app.state.summary_cache = summary_cache
    test_app.include_router(router)
    return test_app


@pytest.fixture
async def client(app: FastAPI) -> AsyncClient:
    """Create an async test client."""
    transport = ASGITransport(app=app)  # type: ignore[arg-type]
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class TestCacheStats:
    """Tests for GET /cache/stats endpoint."""

    async def test_empty_store(self, client: AsyncClient):
        response = await client.get("/cache/stats")

        assert response.status_code == 200
        assert response.json() == {"meeting_summaries": 0, "email_summaries": 0}

    async def test_counts_per_kind(self, client: AsyncClient, summary_cache):
        await summary_cache.put("m1", meeting_record("m1"))
        await summary_cache.put("m2", meeting_record("m2"))
        await summary_cache.put("e1", email_record("e1"))

        response = await client.get("/cache/stats")

        assert response.json() == {"meeting_summaries": 2, "email_summaries": 1}

    async def test_store_failure_returns_500(self):
        repo = MagicMock()
        repo.stats = AsyncMock(side_effect=CacheError("database is locked"))
        test_app = FastAPI()
        test_app.state.summary_repo = repo
        test_app.include_router(router)
        transport = ASGITransport(app=test_app)  # type: ignore[arg-type]

        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            response = await ac.get("/cache/stats")

        assert response.status_code == 500
        assert "locked" in response.json()["detail"]


class TestRecentSummaries:
    """Tests for GET /cache/recent endpoint."""

    async def test_newest_first(self, client: AsyncClient, summary_cache):
        older = meeting_record("m1").model_copy(
            update={"generated_at": datetime(2026, 3, 1, tzinfo=UTC)}
        )
        newer = email_record("e1").model_copy(
            update={"generated_at": datetime(2026, 3, 2, tzinfo=UTC)}
        )
        await summary_cache.put("m1", older)
        await summary_cache.put("e1", newer)

        response = await client.get("/cache/recent")

        assert response.status_code == 200
        body = response.json()
        assert [r["item_id"] for r in body] == ["e1", "m1"]
        assert body[0]["payload"]["summary"] == "Approved."
        assert body[1]["payload"]["fullSummary"] == "Agreed on March."

    async def test_filter_by_kind_and_limit(self, client: AsyncClient, summary_cache):
        await summary_cache.put("m1", meeting_record("m1"))
        await summary_cache.put("m2", meeting_record("m2"))
        await summary_cache.put("e1", email_record("e1"))

        response = await client.get("/cache/recent", params={"kind": "meeting", "limit": 1})

        body = response.json()
        assert len(body) == 1
        assert body[0]["kind"] == "meeting"

    async def test_limit_out_of_range_returns_422(self, client: AsyncClient):
        response = await client.get("/cache/recent", params={"limit": 0})
        assert response.status_code == 422


class TestDeleteSummary:
    """Tests for DELETE /cache/{item_id} endpoint."""

    async def test_deletes_from_layer_and_store(
        self, client: AsyncClient, summary_cache, summary_repo
    ):
        await summary_cache.put("m1", meeting_record("m1"))

        response = await client.delete("/cache/m1")

        assert response.status_code == 204
        assert await summary_repo.get("m1") is None
        assert await summary_cache.get("m1") is None

    async def test_unknown_item_is_no_op(self, client: AsyncClient):
        response = await client.delete("/cache/unknown")
        assert response.status_code == 204


class TestClearCache:
    """Tests for DELETE /cache endpoint."""

    async def test_clear_one_kind(self, client: AsyncClient, summary_cache, summary_repo):
        await summary_cache.put("m1", meeting_record("m1"))
        await summary_cache.put("e1", email_record("e1"))

        response = await client.delete("/cache", params={"kind": "meeting"})

        assert response.status_code == 200
        assert response.json() == {"deleted": 1, "kind": "meeting"}
        assert await summary_cache.get("m1") is None
        assert await summary_repo.get("e1") is not None

    async def test_clear_all_invalidates_layer(self, client: AsyncClient, summary_cache):
        await summary_cache.put("m1", meeting_record("m1"))
        await summary_cache.put("e1", email_record("e1"))

        response = await client.delete("/cache")

        assert response.json() == {"deleted": 2, "kind": None}
        assert len(summary_cache) == 0

    async def test_invalid_kind_returns_422(self, client: AsyncClient):
        response = await client.delete("/cache", params={"kind": "channel"})
        assert response.status_code == 422


async def test_returns_503_without_store():
    test_app = FastAPI()
    test_app.include_router(router)
    transport = ASGITransport(app=test_app)  # type: ignore[arg-type]

    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.get("/cache/stats")

    assert response.status_code == 503
