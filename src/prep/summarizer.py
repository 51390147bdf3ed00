"""Chunked summarizer (Map step).

Turns one long document, a meeting transcript or an email body, into one
structured summary. Documents longer than the chunk size are processed as
overlapping windows: every window but the last is condensed into a rolling
context that is carried into the next window, and the last window is
summarized together with that context.
"""

import time
from dataclasses import dataclass, replace
from datetime import datetime

import structlog

from src.config import Settings, get_settings
from src.prep.parsing import ParseFailed, accept_summary, parse_summary
from src.prep.prompts import (
    CHUNK_CONDENSE_SYSTEM,
    CHUNK_CONTINUATION_USER,
    CHUNK_FINAL_WRAPPER,
    CHUNK_FIRST_USER,
    EMAIL_EXTRACTION_SYSTEM,
    EMAIL_EXTRACTION_USER,
    MAX_TOKENS_CONDENSE,
    MAX_TOKENS_EMAIL,
    MAX_TOKENS_SUMMARIZE,
    MEETING_EXTRACTION_SYSTEM,
    MEETING_EXTRACTION_USER,
    TEMPERATURE_SUMMARIZE,
    render_user_template,
)
from src.prep.schemas import (
    EmailSummary,
    MeetingSummary,
    PrepConfig,
    PromptTemplate,
    SummarizationMetrics,
    SummarizationResult,
)
from src.services.llm_client import (
    CompletionClient,
    CompletionRequest,
    TokenUsage,
    calculate_cost,
)

logger = structlog.get_logger()


def chunk_spans(length: int, chunk_size: int, overlap: int) -> list[tuple[int, int]]:
    """Compute overlapping window boundaries over a text of given length.

    Consecutive windows share exactly `overlap` characters and the last
    window always ends at `length`.

    Args:
        length: Length of the text
        chunk_size: Maximum characters per window
        overlap: Characters shared by consecutive windows

    Returns:
        List of (start, end) spans, end exclusive
    """
    if overlap >= chunk_size:
        raise ValueError("overlap must be smaller than chunk_size")
    if length <= chunk_size:
        return [(0, length)]

    spans = []
    start = 0
    while True:
        end = min(start + chunk_size, length)
        spans.append((start, end))
        if end == length:
            break
        start = end - overlap
    return spans


def count_words(text: str) -> int:
    return len(text.split())


def meeting_duration_minutes(start: datetime | None, end: datetime | None) -> int | None:
    """Duration in whole minutes, or None when either bound is missing."""
    if start is None or end is None:
        return None
    return round((end - start).total_seconds() / 60)


@dataclass(frozen=True)
class _Variant:
    """Prompts and limits for one kind of source document."""

    model: type[MeetingSummary] | type[EmailSummary]
    system_prompt: str
    max_tokens: int
    source: str
    source_title: str


MEETING_VARIANT = _Variant(
    model=MeetingSummary,
    system_prompt=MEETING_EXTRACTION_SYSTEM,
    max_tokens=MAX_TOKENS_SUMMARIZE,
    source="meeting transcript",
    source_title="Meeting transcript",
)

EMAIL_VARIANT = _Variant(
    model=EmailSummary,
    system_prompt=EMAIL_EXTRACTION_SYSTEM,
    max_tokens=MAX_TOKENS_EMAIL,
    source="email",
    source_title="Email",
)


class ChunkedSummarizer:
    """Summarizes transcripts and email bodies into structured summaries.

    Short documents take one structured extraction call. Long documents
    take one condensation call per non-final window plus one extraction
    call. Any backend failure propagates; nothing partial is returned.
    """

    def __init__(
        self,
        llm_client: CompletionClient,
        config: PrepConfig | None = None,
        settings: Settings | None = None,
    ):
        """Initialize summarizer.

        Args:
            llm_client: Completion client used for every call
            config: Pipeline configuration (defaults used if None)
            settings: Application settings, used for cost estimates
        """
        self._llm = llm_client
        self._config = config or PrepConfig()
        self._settings = settings or get_settings()

    async def summarize_meeting(
        self,
        transcript: str,
        *,
        subject: str,
        start: datetime | None = None,
        end: datetime | None = None,
        requested_by: str | None = None,
        prompt_template: PromptTemplate | None = None,
    ) -> SummarizationResult:
        """Summarize a meeting transcript.

        Args:
            transcript: Raw transcript text (must not be blank)
            subject: Meeting subject
            start: Meeting start time
            end: Meeting end time, used for the duration metric
            requested_by: Identity of the requester
            prompt_template: Requester's stored prompt, replacing the
                built-in extraction prompts for the final call

        Returns:
            SummarizationResult with a MeetingSummary
        """
        date = start.isoformat() if start else "Unknown"
        variant = MEETING_VARIANT
        if prompt_template is not None:
            variant = replace(variant, system_prompt=prompt_template.system_prompt)

        def user_prompt(text: str) -> str:
            if prompt_template is not None:
                return render_user_template(
                    prompt_template.user_prompt_template, subject, date, text
                )
            return MEETING_EXTRACTION_USER.format(subject=subject, date=date, text=text)

        return await self._summarize(
            transcript,
            variant,
            user_prompt,
            subject=subject,
            item_date=start,
            duration=meeting_duration_minutes(start, end),
            requested_by=requested_by,
        )

    async def summarize_email(
        self,
        body: str,
        *,
        subject: str,
        sender: str,
        received: datetime | None = None,
        requested_by: str | None = None,
    ) -> SummarizationResult:
        """Summarize an email body.

        Args:
            body: Full email body (must not be blank)
            subject: Email subject
            sender: Sender name or address
            received: Received time
            requested_by: Identity of the requester

        Returns:
            SummarizationResult with an EmailSummary
        """

        def user_prompt(text: str) -> str:
            return EMAIL_EXTRACTION_USER.format(
                subject=subject,
                sender=sender or "Unknown",
                date=received.isoformat() if received else "Unknown",
                text=text,
            )

        return await self._summarize(
            body,
            EMAIL_VARIANT,
            user_prompt,
            subject=subject,
            item_date=received,
            duration=None,
            requested_by=requested_by,
        )

    async def _summarize(
        self,
        text: str,
        variant: _Variant,
        user_prompt,
        *,
        subject: str,
        item_date: datetime | None,
        duration: int | None,
        requested_by: str | None,
    ) -> SummarizationResult:
        if not text or not text.strip():
            raise ValueError("Cannot summarize empty text")

        started = time.monotonic()
        spans = chunk_spans(len(text), self._config.chunk_size, self._config.chunk_overlap)
        usage = TokenUsage()

        if len(spans) > 1:
            logger.info(
                "long document split into chunks",
                subject=subject,
                length=len(text),
                chunks=len(spans),
            )

        rolling_context = ""
        for index, (start, end) in enumerate(spans[:-1]):
            part = index + 1
            chunk = text[start:end]
            if rolling_context:
                prompt = CHUNK_CONTINUATION_USER.format(
                    context=rolling_context, part=part, total=len(spans), text=chunk
                )
            else:
                prompt = CHUNK_FIRST_USER.format(
                    source_title=variant.source_title,
                    part=part,
                    total=len(spans),
                    text=chunk,
                )

            response = await self._llm.complete(
                CompletionRequest(
                    system_prompt=CHUNK_CONDENSE_SYSTEM.format(source=variant.source),
                    user_prompt=prompt,
                    temperature=TEMPERATURE_SUMMARIZE,
                    max_output_tokens=MAX_TOKENS_CONDENSE,
                )
            )
            usage += response.usage
            rolling_context = response.text.strip() or rolling_context
            logger.debug("chunk condensed", subject=subject, part=part, total=len(spans))

        final_text = text[spans[-1][0] :]
        if rolling_context:
            final_text = CHUNK_FINAL_WRAPPER.format(
                source=variant.source, context=rolling_context, text=final_text
            )

        response = await self._llm.complete(
            CompletionRequest(
                system_prompt=variant.system_prompt,
                user_prompt=user_prompt(final_text),
                temperature=TEMPERATURE_SUMMARIZE,
                max_output_tokens=variant.max_tokens,
                response_model=variant.model,
            )
        )
        usage += response.usage

        if isinstance(response.parsed, variant.model):
            result = accept_summary(response.parsed, response.text)
        else:
            result = parse_summary(response.text, variant.model)
        if isinstance(result, ParseFailed):
            logger.warning(
                "summary output could not be parsed",
                subject=subject,
                reason=result.reason,
            )
            summary = variant.model()
            parsed = False
        else:
            summary = result.value
            parsed = True

        metrics = SummarizationMetrics(
            subject=subject,
            item_date=item_date,
            duration_minutes=duration,
            source_length=len(text),
            source_word_count=count_words(text),
            chunk_count=len(spans),
            token_usage=usage,
            processing_time_ms=round((time.monotonic() - started) * 1000),
            model=response.model or self._llm.model,
            requested_by=requested_by,
        )

        cost = calculate_cost(
            usage,
            self._settings.input_cost_per_1m,
            self._settings.output_cost_per_1m,
        )
        logger.info(
            "summarization metrics",
            subject=subject,
            chunks=metrics.chunk_count,
            total_tokens=usage.total_tokens,
            estimated_cost=round(cost.total_cost, 6),
            processing_time_ms=metrics.processing_time_ms,
            parsed=parsed,
        )

        return SummarizationResult(summary=summary, metrics=metrics, parsed=parsed)
