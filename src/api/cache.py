"""API endpoints for summary cache maintenance."""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from src.prep.schemas import CandidateKind, SummaryRecord
from src.repositories.summary_cache import CacheError, SummaryCache, TTLSummaryCache
from src.repositories.summary_repo import SummaryRepository

router = APIRouter(prefix="/cache", tags=["cache"])


class CacheStatsResponse(BaseModel):
    meeting_summaries: int
    email_summaries: int


class CacheClearResponse(BaseModel):
    deleted: int
    kind: CandidateKind | None = None


def get_summary_repo(request: Request) -> SummaryRepository:
    """Dependency to get SummaryRepository from app state."""
    repo = getattr(request.app.state, "summary_repo", None)
    if repo is None:
        raise HTTPException(status_code=503, detail="Summary cache not initialized")
    return repo


def get_summary_cache(request: Request) -> SummaryCache:
    """Dependency to get the summary cache used by the pipeline."""
    cache = getattr(request.app.state, "summary_cache", None)
    if cache is None:
        raise HTTPException(status_code=503, detail="Summary cache not initialized")
    return cache


@router.get("/stats", response_model=CacheStatsResponse)
async def cache_stats(
    repo: SummaryRepository = Depends(get_summary_repo),
) -> CacheStatsResponse:
    """Count cached summaries per kind."""
    try:
        counts = await repo.stats()
    except CacheError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return CacheStatsResponse(**counts)


@router.get("/recent", response_model=list[SummaryRecord])
async def recent_summaries(
    kind: CandidateKind | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    repo: SummaryRepository = Depends(get_summary_repo),
) -> list[SummaryRecord]:
    """List the most recently generated summaries, newest first."""
    try:
        return await repo.list_recent(kind, limit)
    except CacheError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/{item_id}", status_code=204)
async def delete_cached_summary(
    item_id: str,
    cache: SummaryCache = Depends(get_summary_cache),
) -> None:
    """Drop the cached summary for one item so it is regenerated."""
    try:
        await cache.delete(item_id)
    except CacheError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("", response_model=CacheClearResponse)
async def clear_cache(
    kind: CandidateKind | None = None,
    repo: SummaryRepository = Depends(get_summary_repo),
    cache: SummaryCache = Depends(get_summary_cache),
) -> CacheClearResponse:
    """Delete cached summaries, optionally only one kind."""
    try:
        deleted = await repo.clear(kind)
    except CacheError as e:
        raise HTTPException(status_code=500, detail=str(e))
    if isinstance(cache, TTLSummaryCache):
        cache.invalidate()
    return CacheClearResponse(deleted=deleted, kind=kind)
