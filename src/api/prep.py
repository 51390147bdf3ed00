"""API endpoints for meeting preparation.

Provides endpoints to generate a preparation brief, score candidate
relevance, and stream a single meeting summary.
"""

from collections.abc import AsyncIterator
from datetime import datetime

import structlog
from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from src.prep.prep_service import PrepService, PreparationCancelled
from src.prep.relevance import SourceKind
from src.prep.schemas import (
    CandidateItem,
    PrepConfig,
    PreparationContext,
    PreparationResult,
    RelevanceCandidate,
    RelevanceScore,
)
from src.prep.synthesizer import BriefSynthesisError

logger = structlog.get_logger()

router = APIRouter(prefix="/prep", tags=["prep"])


class GeneratePrepRequest(PreparationContext):
    """Preparation context plus run options."""

    requester: str | None = None
    multi_stage: bool = False


class RelevanceRequest(BaseModel):
    """Candidates to score against a target meeting.

    Full candidate items may be sent instead of, or as well as, prepared
    candidates; they are scored after the prepared ones.
    """

    target_title: str = Field(min_length=1)
    candidates: list[RelevanceCandidate] = Field(default_factory=list)
    items: list[CandidateItem] = Field(default_factory=list)
    source_kind: SourceKind = "meetings"
    keywords: str | None = None


class RelevanceResponse(BaseModel):
    scores: list[RelevanceScore]


class StreamSummaryRequest(BaseModel):
    """A transcript to summarize as a stream of events."""

    transcript: str = Field(min_length=1)
    subject: str = "Untitled Meeting"
    start: datetime | None = None
    end: datetime | None = None
    requester: str | None = None


def _get_prep_service() -> PrepService:
    try:
        return PrepService.get_instance()
    except RuntimeError:
        raise HTTPException(
            status_code=503,
            detail="PrepService not initialized",
        )


@router.post("/generate", response_model=PreparationResult)
async def generate_preparation(request: GeneratePrepRequest) -> PreparationResult:
    """Generate a preparation brief for an upcoming meeting.

    Args:
        request: Target meeting, related items and run options

    Returns:
        PreparationResult with brief, per-item summaries and stats
    """
    prep_service = _get_prep_service()
    context = PreparationContext.model_validate(
        request.model_dump(exclude={"requester", "multi_stage"})
    )

    try:
        return await prep_service.generate_preparation(
            context,
            requester=request.requester,
            multi_stage=request.multi_stage,
        )
    except BriefSynthesisError as e:
        logger.error("preparation failed", meeting_id=context.meeting.id, error=str(e))
        raise HTTPException(status_code=502, detail=str(e))
    except PreparationCancelled as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/relevance", response_model=RelevanceResponse)
async def classify_relevance(request: RelevanceRequest) -> RelevanceResponse:
    """Score candidate items for relevance to a target meeting.

    Args:
        request: Target title, candidates or items, source kind and keywords

    Returns:
        One score per candidate, then one per item, in input order
    """
    prep_service = _get_prep_service()
    scores = []
    if request.candidates:
        scores += await prep_service.classify_relevance(
            request.target_title,
            request.candidates,
            source_kind=request.source_kind,
            keywords=request.keywords,
        )
    if request.items:
        scores += await prep_service.rank_items(
            request.target_title,
            request.items,
            source_kind=request.source_kind,
            keywords=request.keywords,
        )
    return RelevanceResponse(scores=scores)


@router.post("/summarize/stream")
async def stream_summary(request: StreamSummaryRequest) -> StreamingResponse:
    """Stream a meeting summary as newline-delimited JSON events."""
    prep_service = _get_prep_service()
    logger.info("streaming summary requested", subject=request.subject)
    events = prep_service.stream_summary(
        request.transcript,
        request.subject,
        start=request.start,
        end=request.end,
        requester=request.requester,
    )

    async def ndjson() -> AsyncIterator[str]:
        async for event in events:
            yield event.model_dump_json() + "\n"

    return StreamingResponse(ndjson(), media_type="application/x-ndjson")


@router.get("/config")
async def get_config() -> PrepConfig:
    """Get current pipeline configuration."""
    return _get_prep_service().config
