"""PrepService orchestrates meeting preparation.

Runs the fixed pipeline: per-item summarization through the summary
cache (Map), conditional thread aggregation (Reduce), channel context
gathering, and brief synthesis.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Sequence
from datetime import datetime

import structlog

from src.config import Settings, get_settings
from src.prep.aggregator import ReduceResult, ThreadAggregator
from src.prep.relevance import RelevanceClassifier, SourceKind
from src.prep.schemas import (
    CandidateItem,
    CandidateKind,
    CategoryStats,
    ItemSummary,
    MetricsEvent,
    PipelineStats,
    PrepConfig,
    PreparationContext,
    PreparationResult,
    PromptTemplate,
    RelevanceCandidate,
    RelevanceScore,
    StreamEvent,
    SummarizationMetrics,
    SummarizationResult,
    SummaryRecord,
)
from src.prep.streaming import stream_meeting_summary
from src.prep.summarizer import ChunkedSummarizer
from src.prep.synthesizer import BriefInput, BriefSynthesizer, build_channel_context
from src.repositories.prompt_repo import PromptStoreError, PromptTemplateSource
from src.repositories.summary_cache import CacheError, SummaryCache
from src.repositories.usage_repo import UsageRecorder, UsageStoreError
from src.services.llm_client import CompletionClient, TokenUsage, calculate_cost

logger = structlog.get_logger()


class PreparationCancelled(Exception):
    """Raised when a preparation run is cancelled by the caller."""


def _check_cancelled(cancel_event: asyncio.Event | None, stage: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        logger.info("preparation cancelled", stage=stage)
        raise PreparationCancelled(f"Preparation cancelled before {stage}")


class PrepService:
    """Orchestrates preparation brief generation.

    Singleton pattern with class-level instance for API access.
    """

    _instance: "PrepService | None" = None

    def __init__(
        self,
        llm_client: CompletionClient,
        cache: SummaryCache,
        config: PrepConfig | None = None,
        settings: Settings | None = None,
        prompt_source: PromptTemplateSource | None = None,
        usage_recorder: UsageRecorder | None = None,
    ):
        """Initialize PrepService with dependencies.

        Args:
            llm_client: Completion client shared by every pipeline stage
            cache: Per-item summary cache
            config: Pipeline configuration (defaults used if None)
            settings: Application settings, used for cost estimates
            prompt_source: Lookup for each requester's default prompt template
            usage_recorder: Store for per-summary usage records
        """
        self._llm = llm_client
        self._cache = cache
        self._prompt_source = prompt_source
        self._usage_recorder = usage_recorder
        self._config = config or PrepConfig()
        self._settings = settings or get_settings()
        self._summarizer = ChunkedSummarizer(llm_client, self._config, self._settings)
        self._aggregator = ThreadAggregator(llm_client, self._config)
        self._synthesizer = BriefSynthesizer(llm_client, self._config)
        self._classifier = RelevanceClassifier(llm_client, self._config)

    @classmethod
    def get_instance(cls) -> "PrepService":
        """Get the singleton instance.

        Raises:
            RuntimeError: If PrepService not initialized
        """
        if cls._instance is None:
            raise RuntimeError("PrepService not initialized")
        return cls._instance

    @classmethod
    def set_instance(cls, instance: "PrepService") -> None:
        """Set the singleton instance.

        Args:
            instance: PrepService instance to set as singleton
        """
        cls._instance = instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance (for testing)."""
        cls._instance = None

    @property
    def config(self) -> PrepConfig:
        return self._config

    @property
    def cache(self) -> SummaryCache:
        return self._cache

    async def generate_preparation(
        self,
        context: PreparationContext,
        requester: str | None = None,
        multi_stage: bool = False,
        cancel_event: asyncio.Event | None = None,
    ) -> PreparationResult:
        """Generate a preparation brief for the target meeting.

        Args:
            context: Target meeting plus related meetings, emails and
                channel messages
            requester: Identity recorded on newly cached summaries; their
                default prompt template drives meeting summaries
            multi_stage: Allow multi-stage synthesis for large inputs
            cancel_event: Set to stop the run before the next item or stage

        Returns:
            PreparationResult with brief, per-item summaries and stats

        Raises:
            BriefSynthesisError: If the brief cannot be synthesized
            PreparationCancelled: If cancel_event is set during the run
        """
        started = time.monotonic()
        stats = PipelineStats()
        usage = TokenUsage()

        logger.info(
            "preparation started",
            meeting_id=context.meeting.id,
            meetings=len(context.related_meetings),
            emails=len(context.related_emails),
            channel_messages=len(context.channel_messages),
        )

        template = await self._resolve_template(requester)
        meeting_summaries, meeting_usage = await self._map(
            context.related_meetings, stats.meetings, requester, cancel_event, template
        )
        email_summaries, email_usage = await self._map(
            context.related_emails, stats.emails, requester, cancel_event
        )
        usage += meeting_usage + email_usage

        _check_cancelled(cancel_event, "reduce")
        meeting_threads = ReduceResult()
        if self._aggregator.should_reduce_meetings(len(meeting_summaries)):
            meeting_threads = await self._aggregator.reduce_meetings(meeting_summaries)
        email_threads = ReduceResult()
        if self._aggregator.should_reduce_emails(len(email_summaries)):
            email_threads = await self._aggregator.reduce_emails(email_summaries)
        stats.reduced_meeting_threads = len(meeting_threads.briefs)
        stats.reduced_email_threads = len(email_threads.briefs)
        usage += meeting_threads.token_usage + email_threads.token_usage

        channel_context = build_channel_context(
            context.channel_messages,
            max_messages=self._config.max_channel_messages,
            max_chars=self._config.channel_message_chars,
        )

        _check_cancelled(cancel_event, "synthesis")
        outcome = await self._synthesizer.synthesize(
            BriefInput(
                meeting=context.meeting,
                meeting_summaries=meeting_summaries,
                email_summaries=email_summaries,
                meeting_thread_briefs=meeting_threads.briefs,
                email_thread_briefs=email_threads.briefs,
                channel_context=channel_context,
            ),
            multi_stage=multi_stage,
        )
        usage += outcome.brief.token_usage

        stats.brief_token_usage = outcome.brief.token_usage
        stats.total_token_usage = usage
        stats.approach = outcome.approach
        stats.layers = outcome.layers
        stats.estimated_cost = calculate_cost(
            usage,
            self._settings.input_cost_per_1m,
            self._settings.output_cost_per_1m,
        )
        stats.processing_time_ms = round((time.monotonic() - started) * 1000)

        logger.info(
            "preparation complete",
            meeting_id=context.meeting.id,
            cached=stats.meetings.cached + stats.emails.cached,
            generated=stats.meetings.generated + stats.emails.generated,
            failed=stats.meetings.failed + stats.emails.failed,
            approach=stats.approach,
            total_tokens=usage.total_tokens,
            processing_time_ms=stats.processing_time_ms,
        )

        return PreparationResult(
            brief=outcome.brief,
            meeting_summaries=meeting_summaries,
            email_summaries=email_summaries,
            stats=stats,
        )

    async def classify_relevance(
        self,
        target_title: str,
        candidates: Sequence[RelevanceCandidate],
        source_kind: SourceKind = "meetings",
        keywords: str | None = None,
    ) -> list[RelevanceScore]:
        """Score candidates for relevance to the target meeting."""
        return await self._classifier.classify(
            target_title, candidates, source_kind, keywords
        )

    async def rank_items(
        self,
        target_title: str,
        items: Sequence[CandidateItem],
        source_kind: SourceKind = "meetings",
        keywords: str | None = None,
    ) -> list[RelevanceScore]:
        """Score candidate items, describing each by date and participant."""
        candidates = [RelevanceCandidate.from_item(item) for item in items]
        return await self.classify_relevance(
            target_title, candidates, source_kind, keywords
        )

    async def stream_summary(
        self,
        transcript: str,
        subject: str,
        start: datetime | None = None,
        end: datetime | None = None,
        requester: str | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream a meeting summary as tagged events.

        Uses the requester's default prompt template when one is stored,
        and records usage once the metrics event is produced. Requires a
        completion client that supports streaming.
        """
        template = await self._resolve_template(requester)
        async for event in stream_meeting_summary(
            self._llm,
            transcript,
            subject,
            start=start,
            end=end,
            requested_by=requester,
            prompt_template=template,
        ):
            if isinstance(event, MetricsEvent):
                await self._record_usage(event.data)
            yield event

    async def _resolve_template(self, requester: str | None) -> PromptTemplate | None:
        if self._prompt_source is None or not requester:
            return None
        try:
            template = await self._prompt_source.get_default(requester)
        except PromptStoreError as e:
            logger.warning("prompt template lookup failed", requester=requester, error=str(e))
            return None
        if template is not None:
            logger.info("using stored prompt template", requester=requester, template_id=template.id)
        return template

    async def _record_usage(self, metrics: SummarizationMetrics) -> None:
        if self._usage_recorder is None:
            return
        cost = calculate_cost(
            metrics.token_usage,
            self._settings.input_cost_per_1m,
            self._settings.output_cost_per_1m,
        )
        try:
            await self._usage_recorder.record(metrics, cost)
        except UsageStoreError as e:
            logger.warning("usage record failed", subject=metrics.subject, error=str(e))

    async def _map(
        self,
        items: Sequence[CandidateItem],
        stats: CategoryStats,
        requester: str | None,
        cancel_event: asyncio.Event | None,
        template: PromptTemplate | None = None,
    ) -> tuple[list[ItemSummary], TokenUsage]:
        """Summarize items through the cache with bounded concurrency.

        Results keep input order; skipped and failed items are omitted.
        """
        stats.total = len(items)
        semaphore = asyncio.Semaphore(self._config.map_concurrency)

        async def run(item: CandidateItem):
            async with semaphore:
                _check_cancelled(cancel_event, f"item {item.id}")
                return await self._summarize_item(item, stats, requester, template)

        tasks = [asyncio.ensure_future(run(item)) for item in items]
        try:
            outcomes = await asyncio.gather(*tasks)
        except PreparationCancelled:
            for task in tasks:
                task.cancel()
            raise

        summaries: list[ItemSummary] = []
        usage = TokenUsage()
        for outcome in outcomes:
            if outcome is None:
                continue
            summary, item_usage = outcome
            summaries.append(summary)
            usage += item_usage
        return summaries, usage

    async def _summarize_item(
        self,
        item: CandidateItem,
        stats: CategoryStats,
        requester: str | None,
        template: PromptTemplate | None,
    ) -> tuple[ItemSummary, TokenUsage] | None:
        record = await self._read_cache(item.id)
        if record is not None:
            stats.cached += 1
            return self._item_summary(item, record.payload, cached=True), TokenUsage()

        if not item.has_text:
            stats.skipped += 1
            logger.info("skipping item without content", item_id=item.id, kind=item.kind.value)
            return None

        try:
            result = await self._summarize(item, requester, template)
        except Exception as e:
            stats.failed += 1
            logger.warning(
                "item summarization failed",
                item_id=item.id,
                kind=item.kind.value,
                error=str(e),
            )
            return None

        stats.generated += 1
        await self._record_usage(result.metrics)
        if result.parsed:
            await self._write_cache(
                SummaryRecord(
                    item_id=item.id,
                    kind=item.kind,
                    payload=result.summary,
                    model=result.metrics.model,
                    generated_by=requester,
                    subject=item.title,
                    item_date=item.timestamp,
                    source_length=result.metrics.source_length,
                )
            )

        summary = self._item_summary(item, result.summary, cached=False)
        return summary, result.metrics.token_usage

    async def _summarize(
        self,
        item: CandidateItem,
        requester: str | None,
        template: PromptTemplate | None = None,
    ) -> SummarizationResult:
        if item.kind == CandidateKind.MEETING:
            return await self._summarizer.summarize_meeting(
                item.raw_text or "",
                subject=item.title or "Untitled Meeting",
                start=item.timestamp,
                end=item.end_time,
                requested_by=requester,
                prompt_template=template,
            )
        if item.kind == CandidateKind.EMAIL:
            return await self._summarizer.summarize_email(
                item.raw_text or "",
                subject=item.title or "No Subject",
                sender=item.participant_or_sender,
                received=item.timestamp,
                requested_by=requester,
            )
        raise ValueError(f"Cannot summarize {item.kind.value} items")

    @staticmethod
    def _item_summary(item: CandidateItem, payload, cached: bool) -> ItemSummary:
        sender = None
        if item.kind == CandidateKind.EMAIL:
            sender = item.participant_or_sender or None
        return ItemSummary(
            item_id=item.id,
            kind=item.kind,
            subject=item.title or "Untitled",
            date=item.timestamp,
            sender=sender,
            summary=payload,
            cached=cached,
        )

    async def _read_cache(self, item_id: str) -> SummaryRecord | None:
        try:
            return await self._cache.get(item_id)
        except CacheError as e:
            logger.warning("summary cache read failed", item_id=item_id, error=str(e))
            return None

    async def _write_cache(self, record: SummaryRecord) -> None:
        try:
            await self._cache.put(record.item_id, record)
        except CacheError as e:
            logger.warning(
                "summary cache write failed", item_id=record.item_id, error=str(e)
            )
