"""API endpoints for summarization usage and cost tracking."""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from src.config import Settings, get_settings
from src.prep.schemas import UsageRecord, UsageStats
from src.repositories.usage_repo import UsageRepository, UsageStoreError

router = APIRouter(prefix="/usage", tags=["usage"])


class Pricing(BaseModel):
    model: str
    input_cost_per_1m: float
    output_cost_per_1m: float


class UsageStatsResponse(BaseModel):
    stats: UsageStats
    pricing: Pricing


class UsageClearResponse(BaseModel):
    deleted: int


def get_usage_repo(request: Request) -> UsageRepository:
    """Dependency to get UsageRepository from app state."""
    repo = getattr(request.app.state, "usage_repo", None)
    if repo is None:
        raise HTTPException(status_code=503, detail="Usage store not initialized")
    return repo


@router.get("/stats", response_model=UsageStatsResponse)
async def usage_stats(
    repo: UsageRepository = Depends(get_usage_repo),
    settings: Settings = Depends(get_settings),
) -> UsageStatsResponse:
    """Aggregate usage across every recorded summary, with current pricing."""
    try:
        stats = await repo.stats()
    except UsageStoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return UsageStatsResponse(
        stats=stats,
        pricing=Pricing(
            model=settings.anthropic_model,
            input_cost_per_1m=settings.input_cost_per_1m,
            output_cost_per_1m=settings.output_cost_per_1m,
        ),
    )


@router.get("", response_model=list[UsageRecord])
async def list_usage(
    limit: int = Query(default=100, ge=1, le=1000),
    repo: UsageRepository = Depends(get_usage_repo),
) -> list[UsageRecord]:
    """List usage records, newest first."""
    try:
        return await repo.list_records(limit)
    except UsageStoreError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/{record_id}", status_code=204)
async def delete_usage_record(
    record_id: int,
    repo: UsageRepository = Depends(get_usage_repo),
) -> None:
    try:
        deleted = await repo.delete(record_id)
    except UsageStoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Usage record {record_id} not found")


@router.delete("", response_model=UsageClearResponse)
async def clear_usage(
    repo: UsageRepository = Depends(get_usage_repo),
) -> UsageClearResponse:
    """Delete every usage record."""
    try:
        deleted = await repo.clear()
    except UsageStoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return UsageClearResponse(deleted=deleted)
