"""Streaming meeting summarization.

Produces a narrative summary as it is generated, followed by the
structured fields parsed from the fenced JSON block the backend appends.
The event sequence always ends in exactly one done or error event.
"""

import re
import time
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Protocol

import structlog
from pydantic import ValidationError

from src.prep.parsing import FENCE_PATTERN, Parsed, extract_json
from src.prep.prompts import (
    MAX_TOKENS_SUMMARIZE,
    MEETING_EXTRACTION_USER,
    STREAMING_SUMMARY_SYSTEM,
    STREAMING_TEMPLATE_SUFFIX,
    TEMPERATURE_SUMMARIZE,
    render_user_template,
)
from src.prep.schemas import (
    DoneEvent,
    ErrorEvent,
    MeetingSummary,
    MetricsEvent,
    PromptTemplate,
    StatusEvent,
    StreamEvent,
    StructuredResultEvent,
    SummarizationMetrics,
    TextDeltaEvent,
)
from src.prep.summarizer import count_words, meeting_duration_minutes
from src.services.llm_client import CompletionChunk, CompletionRequest, TokenUsage

logger = structlog.get_logger()

_TRAILING_OBJECT = re.compile(r'\{[\s\S]*"keyDecisions"[\s\S]*\}\s*$')


class StreamingClient(Protocol):
    """Anything that can stream a completion."""

    model: str

    def stream(self, request: CompletionRequest) -> AsyncIterator[CompletionChunk]: ...


def split_streamed_summary(content: str) -> MeetingSummary:
    """Split accumulated output into narrative and structured fields.

    The narrative is everything outside the JSON block. Missing or
    malformed JSON leaves the structured fields empty.

    Args:
        content: Full streamed output

    Returns:
        MeetingSummary with full_summary set to the narrative
    """
    fields: dict = {}
    result = extract_json(content)
    if isinstance(result, Parsed) and isinstance(result.value, dict):
        fields = result.value

    narrative = FENCE_PATTERN.sub("", content, count=1).strip()
    narrative = _TRAILING_OBJECT.sub("", narrative).strip()

    try:
        summary = MeetingSummary.model_validate(fields)
    except ValidationError:
        summary = MeetingSummary()
    return summary.model_copy(update={"full_summary": narrative or content.strip()})


async def stream_meeting_summary(
    client: StreamingClient,
    transcript: str,
    subject: str,
    start: datetime | None = None,
    end: datetime | None = None,
    requested_by: str | None = None,
    prompt_template: PromptTemplate | None = None,
) -> AsyncIterator[StreamEvent]:
    """Stream a meeting summary as tagged events.

    Yields status, then text deltas, then the structured result and
    metrics, then done. Any failure yields a single error event instead
    and ends the stream.

    Args:
        client: Streaming completion client
        transcript: Raw transcript text
        subject: Meeting subject
        start: Meeting start time
        end: Meeting end time
        requested_by: Identity of the requester
        prompt_template: Requester's stored prompt; its system prompt is
            extended with the narrative-then-JSON instruction

    Yields:
        StreamEvent instances
    """
    started = time.monotonic()
    yield StatusEvent(stage="generating")

    date = start.isoformat() if start else "Unknown"
    if prompt_template is not None:
        system_prompt = prompt_template.system_prompt + STREAMING_TEMPLATE_SUFFIX
        user_prompt = render_user_template(
            prompt_template.user_prompt_template, subject, date, transcript
        )
    else:
        system_prompt = STREAMING_SUMMARY_SYSTEM
        user_prompt = MEETING_EXTRACTION_USER.format(
            subject=subject, date=date, text=transcript
        )

    request = CompletionRequest(
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        temperature=TEMPERATURE_SUMMARIZE,
        max_output_tokens=MAX_TOKENS_SUMMARIZE,
    )

    content: list[str] = []
    usage = TokenUsage()
    try:
        async for chunk in client.stream(request):
            if chunk.delta:
                content.append(chunk.delta)
                yield TextDeltaEvent(delta=chunk.delta)
            if chunk.usage is not None:
                usage = chunk.usage
    except Exception as e:
        logger.error("streaming summarization failed", subject=subject, error=str(e))
        yield ErrorEvent(message=str(e) or "Failed to generate summary")
        return

    full_text = "".join(content)
    if not full_text.strip():
        yield ErrorEvent(message="No response from Anthropic")
        return

    yield StructuredResultEvent(data=split_streamed_summary(full_text))

    metrics = SummarizationMetrics(
        subject=subject,
        item_date=start,
        duration_minutes=meeting_duration_minutes(start, end),
        source_length=len(transcript),
        source_word_count=count_words(transcript),
        token_usage=usage,
        processing_time_ms=round((time.monotonic() - started) * 1000),
        model=client.model,
        requested_by=requested_by,
    )
    logger.info(
        "streaming summarization complete",
        subject=subject,
        total_tokens=usage.total_tokens,
        processing_time_ms=metrics.processing_time_ms,
    )
    yield MetricsEvent(data=metrics)
    yield DoneEvent()
