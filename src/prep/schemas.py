"""Schemas for meeting preparation.

Defines candidate items, structured summaries, cache records,
relevance scores, pipeline configuration, and preparation results.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from src.services.llm_client import CostEstimate, TokenUsage


class CandidateKind(str, Enum):
    """Kind of source item offered as preparation context."""

    MEETING = "meeting"
    EMAIL = "email"
    CHANNEL_MESSAGE = "channel_message"


class CandidateItem(BaseModel):
    """A source item supplied by the candidate source.

    Identity is assigned externally and never changed by the pipeline.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Stable external identifier")
    kind: CandidateKind
    title: str = Field(default="", description="Meeting subject or email subject")
    timestamp: datetime = Field(description="Meeting start or email received time")
    end_time: datetime | None = Field(default=None, description="Meeting end time")
    raw_text: str | None = Field(
        default=None,
        description="Transcript, email body or channel message content",
    )
    participant_or_sender: str = Field(
        default="",
        description="Organizer for meetings, sender address for emails",
    )
    precomputed_relevance: float | None = Field(default=None, ge=0, le=100)

    @property
    def has_text(self) -> bool:
        """Whether the item carries non-blank text worth summarizing."""
        return bool(self.raw_text and self.raw_text.strip())


class TargetMeeting(BaseModel):
    """The upcoming meeting being prepared for."""

    id: str
    subject: str = Field(default="Untitled Meeting")
    start: datetime
    end: datetime | None = None
    attendees: list[str] = Field(
        default_factory=list,
        description="Attendee display names",
    )


class PreparationContext(BaseModel):
    """Everything the candidate source gathered for one preparation."""

    meeting: TargetMeeting
    related_meetings: list[CandidateItem] = Field(default_factory=list)
    related_emails: list[CandidateItem] = Field(default_factory=list)
    channel_messages: list[CandidateItem] = Field(default_factory=list)


# Structured summaries use camelCase on the wire to match backend JSON


def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, list):
        return [str(value)]
    return [str(v) for v in value if v is not None and str(v).strip()]


class SummaryModel(BaseModel):
    """Base for backend-produced summaries."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ActionItem(SummaryModel):
    """An action item captured in a meeting summary."""

    owner: str = ""
    task: str = ""
    deadline: str | None = None

    @field_validator("owner", "task", mode="before")
    @classmethod
    def _none_to_blank(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("deadline", mode="before")
    @classmethod
    def _stringify_deadline(cls, value: Any) -> str | None:
        if value is None or value == "":
            return None
        return str(value)


class MeetingSummary(SummaryModel):
    """Structured summary of one meeting transcript."""

    key_decisions: list[str] = Field(default_factory=list)
    action_items: list[ActionItem] = Field(default_factory=list)
    metrics: list[str] = Field(default_factory=list)
    next_steps: list[str] = Field(default_factory=list)
    full_summary: str = ""

    @field_validator("key_decisions", "metrics", "next_steps", mode="before")
    @classmethod
    def _coerce_str_list(cls, value: Any) -> list[str]:
        return _as_str_list(value)

    @field_validator("action_items", mode="before")
    @classmethod
    def _coerce_action_items(cls, value: Any) -> list:
        if value is None:
            return []
        if not isinstance(value, list):
            value = [value]
        # Bare strings become owner-less tasks
        return [{"task": v} if isinstance(v, str) else v for v in value if v]

    @field_validator("full_summary", mode="before")
    @classmethod
    def _none_to_blank(cls, value: Any) -> str:
        return "" if value is None else str(value)


Sentiment = Literal["positive", "neutral", "negative", "urgent"]


class EmailSummary(SummaryModel):
    """Structured summary of one email body."""

    key_points: list[str] = Field(default_factory=list)
    action_items: list[str] = Field(default_factory=list)
    sentiment: Sentiment = "neutral"
    summary: str = ""

    @field_validator("key_points", "action_items", mode="before")
    @classmethod
    def _coerce_str_list(cls, value: Any) -> list[str]:
        return _as_str_list(value)

    @field_validator("sentiment", mode="before")
    @classmethod
    def _normalize_sentiment(cls, value: Any) -> str:
        normalized = str(value or "").strip().lower()
        if normalized in ("positive", "neutral", "negative", "urgent"):
            return normalized
        return "neutral"

    @field_validator("summary", mode="before")
    @classmethod
    def _none_to_blank(cls, value: Any) -> str:
        return "" if value is None else str(value)


StructuredSummary = MeetingSummary | EmailSummary


def summary_model_for(kind: CandidateKind) -> type[MeetingSummary] | type[EmailSummary]:
    """Return the summary variant used for a candidate kind."""
    if kind == CandidateKind.MEETING:
        return MeetingSummary
    if kind == CandidateKind.EMAIL:
        return EmailSummary
    raise ValueError(f"No structured summary for {kind.value} items")


class SummaryRecord(BaseModel):
    """A cached per-item summary. One live record per item_id."""

    item_id: str
    kind: CandidateKind
    payload: StructuredSummary
    model: str | None = None
    generated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    generated_by: str | None = None
    subject: str | None = None
    item_date: datetime | None = None
    source_length: int | None = None

    @model_validator(mode="before")
    @classmethod
    def _payload_by_kind(cls, data: Any) -> Any:
        # Both variants accept {} so the kind decides which one to build
        if isinstance(data, dict) and isinstance(data.get("payload"), dict):
            kind = CandidateKind(data.get("kind"))
            data = {
                **data,
                "payload": summary_model_for(kind).model_validate(data["payload"]),
            }
        return data


class SummarizationMetrics(BaseModel):
    """Per-item metrics recorded by the Map step."""

    subject: str
    item_date: datetime | None = None
    duration_minutes: int | None = None
    source_length: int
    source_word_count: int
    chunk_count: int = 1
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    processing_time_ms: int = 0
    model: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    requested_by: str | None = None


class SummarizationResult(BaseModel):
    """Output of the Map step for one item."""

    summary: StructuredSummary
    metrics: SummarizationMetrics
    parsed: bool = Field(
        default=True,
        description="False when backend output could not be parsed",
    )


class RelevanceCandidate(BaseModel):
    """An item offered to the relevance classifier."""

    id: str
    title: str
    metadata: str | None = None

    @classmethod
    def from_item(cls, item: CandidateItem) -> "RelevanceCandidate":
        """Build a candidate with date and sender metadata."""
        parts = [item.timestamp.strftime("%Y-%m-%d")]
        if item.participant_or_sender:
            label = "from" if item.kind == CandidateKind.EMAIL else "by"
            parts.append(f"{label} {item.participant_or_sender}")
        return cls(id=item.id, title=item.title or "Untitled", metadata=", ".join(parts))


class RelevanceScore(BaseModel):
    """Relevance of one candidate to the target meeting."""

    id: str
    score: int = Field(ge=0, le=100)
    reasoning: str = ""


class PreparationBrief(BaseModel):
    """The synthesized preparation brief."""

    text: str
    token_usage: TokenUsage = Field(default_factory=TokenUsage)


class ItemSummary(BaseModel):
    """A per-item summary as returned to the caller."""

    item_id: str
    kind: CandidateKind
    subject: str
    date: datetime | None = None
    sender: str | None = None
    summary: StructuredSummary
    cached: bool = False

    @model_validator(mode="before")
    @classmethod
    def _summary_by_kind(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("summary"), dict):
            kind = CandidateKind(data.get("kind"))
            data = {
                **data,
                "summary": summary_model_for(kind).model_validate(data["summary"]),
            }
        return data


class CategoryStats(BaseModel):
    """Map-step bookkeeping for one category of items."""

    total: int = 0
    cached: int = 0
    generated: int = 0
    skipped: int = 0
    failed: int = 0


SynthesisApproach = Literal["single-stage", "multi-stage"]


class PipelineStats(BaseModel):
    """Statistics for one preparation run."""

    meetings: CategoryStats = Field(default_factory=CategoryStats)
    emails: CategoryStats = Field(default_factory=CategoryStats)
    processing_time_ms: int = 0
    reduced_meeting_threads: int = 0
    reduced_email_threads: int = 0
    brief_token_usage: TokenUsage = Field(default_factory=TokenUsage)
    total_token_usage: TokenUsage = Field(
        default_factory=TokenUsage,
        description="Tokens spent by every generative call in the run",
    )
    approach: SynthesisApproach = "single-stage"
    layers: int = 1
    estimated_cost: CostEstimate = Field(default_factory=CostEstimate)


class PreparationResult(BaseModel):
    """Everything generate_preparation returns."""

    brief: PreparationBrief
    meeting_summaries: list[ItemSummary] = Field(default_factory=list)
    email_summaries: list[ItemSummary] = Field(default_factory=list)
    stats: PipelineStats = Field(default_factory=PipelineStats)


class PrepConfig(BaseModel):
    """Tunables for the preparation pipeline."""

    chunk_size: int = Field(
        default=10_000,
        description="Characters per summarization window",
        ge=500,
    )
    chunk_overlap: int = Field(
        default=600,
        description="Characters carried over between consecutive windows",
        ge=0,
    )
    meeting_reduce_threshold: int = Field(
        default=3,
        description="Reduce meetings only when there are more than this many",
        ge=1,
    )
    email_reduce_threshold: int = Field(
        default=5,
        description="Reduce emails only when there are more than this many",
        ge=1,
    )
    similarity_threshold: float = Field(
        default=0.2,
        description="Minimum subject similarity for meetings to share a thread",
        ge=0.0,
        le=1.0,
    )
    reduce_batch_size: int = Field(
        default=4,
        description="Thread groups reduced concurrently per batch",
        ge=1,
    )
    relevance_batch_size: int = Field(
        default=50,
        description="Candidates scored per classification call",
        ge=1,
    )
    token_budget: int = Field(
        default=100_000,
        description="Estimated input tokens above which multi-stage synthesis runs",
        ge=1,
    )
    multi_stage_batch_size: int = Field(
        default=10,
        description="Per-item summaries per intermediate brief",
        ge=1,
    )
    map_concurrency: int = Field(
        default=1,
        description="Items summarized concurrently; 1 keeps the Map step sequential",
        ge=1,
        le=16,
    )
    max_channel_messages: int = Field(default=10, ge=0)
    channel_message_chars: int = Field(default=300, ge=1)

    @model_validator(mode="after")
    def _overlap_below_chunk(self) -> "PrepConfig":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        return self


# Streaming events


class StatusEvent(BaseModel):
    type: Literal["status"] = "status"
    stage: str


class TextDeltaEvent(BaseModel):
    type: Literal["text_delta"] = "text_delta"
    delta: str


class StructuredResultEvent(BaseModel):
    type: Literal["structured_result"] = "structured_result"
    data: MeetingSummary


class MetricsEvent(BaseModel):
    type: Literal["metrics"] = "metrics"
    data: SummarizationMetrics


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str


class DoneEvent(BaseModel):
    type: Literal["done"] = "done"


StreamEvent = (
    StatusEvent
    | TextDeltaEvent
    | StructuredResultEvent
    | MetricsEvent
    | ErrorEvent
    | DoneEvent
)


# Prompt templates


class PromptTemplate(BaseModel):
    """A stored meeting summarization prompt owned by one user."""

    id: int
    name: str
    description: str | None = None
    system_prompt: str
    user_prompt_template: str = Field(
        description="User prompt with {{meetingSubject}}, {{meetingDate}} "
        "and {{transcript}} placeholders",
    )
    is_default: bool = False
    created_by: str
    created_at: datetime
    updated_at: datetime


class PromptTemplateCreate(BaseModel):
    """Fields for a new user-owned prompt template."""

    name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    system_prompt: str = Field(min_length=1)
    user_prompt_template: str = Field(min_length=1)
    is_default: bool = False


class PromptTemplateUpdate(BaseModel):
    """Partial update of a user-owned prompt template."""

    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    system_prompt: str | None = Field(default=None, min_length=1)
    user_prompt_template: str | None = Field(default=None, min_length=1)
    is_default: bool | None = None


# Usage accounting


class UsageRecord(BaseModel):
    """Stored metrics and cost of one summarization."""

    id: int
    subject: str
    item_date: datetime | None = None
    duration_minutes: int | None = None
    source_length: int
    source_word_count: int
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    processing_time_ms: int
    model: str
    input_cost: float
    output_cost: float
    total_cost: float
    created_at: datetime
    requested_by: str | None = None


class UsageStats(BaseModel):
    """Totals and averages over all usage records."""

    total_records: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    avg_tokens_per_summary: float = 0.0
    avg_cost_per_summary: float = 0.0
    avg_processing_time_ms: float = 0.0
