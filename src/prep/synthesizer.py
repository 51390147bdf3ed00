"""Brief synthesizer.

Produces the final preparation brief from per-item summaries or thread
briefs. Large inputs can optionally be synthesized in two layers: batches
of summaries into intermediate briefs, then one meta-brief over those.
"""

import html
import re
from collections.abc import Sequence

import structlog
from pydantic import BaseModel, Field

from src.prep.prompts import BRIEF_SYSTEM, BRIEF_USER, MAX_TOKENS_PREP, TEMPERATURE_PREP
from src.prep.schemas import (
    CandidateItem,
    CandidateKind,
    ItemSummary,
    PrepConfig,
    PreparationBrief,
    SynthesisApproach,
    TargetMeeting,
)
from src.services.llm_client import CompletionClient, CompletionRequest, TokenUsage

logger = structlog.get_logger()

_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")


class BriefSynthesisError(Exception):
    """Raised when the preparation brief cannot be produced."""


class BriefInput(BaseModel):
    """Everything the synthesizer renders into the brief prompt."""

    meeting: TargetMeeting
    meeting_summaries: list[ItemSummary] = Field(default_factory=list)
    email_summaries: list[ItemSummary] = Field(default_factory=list)
    meeting_thread_briefs: list[str] = Field(default_factory=list)
    email_thread_briefs: list[str] = Field(default_factory=list)
    intermediate_briefs: list[str] = Field(default_factory=list)
    channel_context: str | None = None


class SynthesisOutcome(BaseModel):
    """Brief plus how it was produced."""

    brief: PreparationBrief
    approach: SynthesisApproach = "single-stage"
    layers: int = 1


def strip_markup(text: str) -> str:
    """Remove HTML tags and entities and collapse whitespace."""
    return _WHITESPACE.sub(" ", html.unescape(_TAG.sub(" ", text))).strip()


def build_channel_context(
    messages: Sequence[CandidateItem],
    max_messages: int = 10,
    max_chars: int = 300,
) -> str | None:
    """Render channel messages as a bullet list for the brief prompt.

    Args:
        messages: Channel messages in the order they should appear
        max_messages: Maximum number of messages kept
        max_chars: Maximum characters kept per message

    Returns:
        Bullet list, or None when no message has content
    """
    lines = []
    for message in messages:
        if len(lines) >= max_messages:
            break
        text = strip_markup(message.raw_text or "")
        if not text:
            continue
        if len(text) > max_chars:
            text = text[:max_chars].rstrip() + "..."
        sender = message.participant_or_sender or "Unknown"
        lines.append(f"- {sender} ({message.timestamp:%Y-%m-%d}): {text}")
    return "\n".join(lines) or None


def _date_label(item: ItemSummary) -> str:
    return item.date.strftime("%Y-%m-%d") if item.date else "unknown date"


def _threads(briefs: Sequence[str]) -> str:
    return "\n\n".join(f"Thread {i}:\n{brief}" for i, brief in enumerate(briefs, start=1))


def format_meeting_context(summaries: Sequence[ItemSummary]) -> str:
    blocks = []
    for idx, item in enumerate(summaries, start=1):
        summary = item.summary
        decisions = "; ".join(summary.key_decisions[:3]) or "None"
        actions = (
            "; ".join(f"{a.owner}: {a.task}" for a in summary.action_items[:3]) or "None"
        )
        blocks.append(
            f"Meeting {idx}: {item.subject} ({_date_label(item)})\n"
            f"- Key Decisions: {decisions}\n"
            f"- Action Items: {actions}\n"
            f"- Summary: {summary.full_summary or 'No summary available'}"
        )
    return "\n\n".join(blocks)


def format_email_context(summaries: Sequence[ItemSummary]) -> str:
    blocks = []
    for idx, item in enumerate(summaries, start=1):
        summary = item.summary
        blocks.append(
            f"Email {idx}: {item.subject} from {item.sender or 'Unknown'} "
            f"({_date_label(item)})\n"
            f"- Sentiment: {summary.sentiment}\n"
            f"- Key Points: {'; '.join(summary.key_points[:3]) or 'None'}\n"
            f"- Action Items: {'; '.join(summary.action_items) or 'None'}\n"
            f"- Summary: {summary.summary}"
        )
    return "\n\n".join(blocks)


def render_brief_prompt(brief_input: BriefInput) -> str:
    """Render the user prompt for one synthesis call.

    Thread briefs take precedence over raw summaries for their category.
    """
    meeting = brief_input.meeting

    if brief_input.meeting_thread_briefs:
        meeting_context = _threads(brief_input.meeting_thread_briefs)
    else:
        meeting_context = format_meeting_context(brief_input.meeting_summaries)

    if brief_input.email_thread_briefs:
        email_context = _threads(brief_input.email_thread_briefs)
    else:
        email_context = format_email_context(brief_input.email_summaries)

    extra_sections = ""
    if brief_input.intermediate_briefs:
        extra_sections += "\n\n**Intermediate Briefs**\n" + "\n\n".join(
            f"Brief {i}:\n{text}"
            for i, text in enumerate(brief_input.intermediate_briefs, start=1)
        )
    if brief_input.channel_context:
        extra_sections += f"\n\n**Channel Context**\n{brief_input.channel_context}"

    return BRIEF_USER.format(
        subject=meeting.subject,
        date=meeting.start.strftime("%Y-%m-%d %H:%M"),
        attendees=", ".join(meeting.attendees) or "Not specified",
        meeting_context=meeting_context or "No related meetings found",
        email_context=email_context or "No related emails found",
        extra_sections=extra_sections,
    )


def estimate_tokens(brief_input: BriefInput) -> int:
    """Approximate input tokens as serialized characters divided by four."""
    raw = brief_input.model_copy(
        update={"meeting_thread_briefs": [], "email_thread_briefs": []}
    )
    return len(render_brief_prompt(raw)) // 4


class BriefSynthesizer:
    """Synthesizes preparation briefs."""

    def __init__(self, llm_client: CompletionClient, config: PrepConfig | None = None):
        """Initialize synthesizer.

        Args:
            llm_client: Completion client for synthesis calls
            config: Pipeline configuration (defaults used if None)
        """
        self._llm = llm_client
        self._config = config or PrepConfig()

    async def synthesize(
        self,
        brief_input: BriefInput,
        multi_stage: bool = False,
    ) -> SynthesisOutcome:
        """Produce the preparation brief.

        Multi-stage synthesis runs only when requested and the estimated
        input exceeds the token budget.

        Args:
            brief_input: Target meeting and its context
            multi_stage: Whether the caller allows multi-stage synthesis

        Returns:
            SynthesisOutcome with the brief, approach and layer count

        Raises:
            BriefSynthesisError: If any synthesis call fails
        """
        if multi_stage:
            estimated = estimate_tokens(brief_input)
            if estimated > self._config.token_budget:
                logger.info(
                    "input exceeds token budget, using multi-stage synthesis",
                    estimated_tokens=estimated,
                    token_budget=self._config.token_budget,
                )
                return await self._synthesize_multi_stage(brief_input)

        brief = await self.synthesize_single(brief_input)
        return SynthesisOutcome(brief=brief)

    async def synthesize_single(self, brief_input: BriefInput) -> PreparationBrief:
        """One synthesis call over the rendered input.

        Raises:
            BriefSynthesisError: If the call fails
        """
        request = CompletionRequest(
            system_prompt=BRIEF_SYSTEM,
            user_prompt=render_brief_prompt(brief_input),
            temperature=TEMPERATURE_PREP,
            max_output_tokens=MAX_TOKENS_PREP,
        )
        try:
            response = await self._llm.complete(request)
        except Exception as e:
            logger.error(
                "brief synthesis failed",
                meeting=brief_input.meeting.subject,
                error=str(e),
            )
            raise BriefSynthesisError(f"Failed to generate preparation brief: {e}") from e

        logger.info(
            "preparation brief generated",
            meeting=brief_input.meeting.subject,
            total_tokens=response.usage.total_tokens,
            related_meetings=len(brief_input.meeting_summaries),
            related_emails=len(brief_input.email_summaries),
            reduced_meeting_threads=len(brief_input.meeting_thread_briefs),
            reduced_email_threads=len(brief_input.email_thread_briefs),
        )
        return PreparationBrief(text=response.text, token_usage=response.usage)

    async def _synthesize_multi_stage(self, brief_input: BriefInput) -> SynthesisOutcome:
        items = [*brief_input.meeting_summaries, *brief_input.email_summaries]
        size = self._config.multi_stage_batch_size
        batches = [items[i : i + size] for i in range(0, len(items), size)] or [[]]
        single_batch = len(batches) == 1

        usage = TokenUsage()
        intermediates: list[str] = []
        for batch in batches:
            batch_input = BriefInput(
                meeting=brief_input.meeting,
                meeting_summaries=[s for s in batch if s.kind == CandidateKind.MEETING],
                email_summaries=[s for s in batch if s.kind == CandidateKind.EMAIL],
                channel_context=brief_input.channel_context if single_batch else None,
            )
            intermediate = await self.synthesize_single(batch_input)
            usage += intermediate.token_usage
            intermediates.append(intermediate.text)

        if single_batch:
            brief = PreparationBrief(text=intermediates[0], token_usage=usage)
            return SynthesisOutcome(brief=brief, approach="multi-stage", layers=1)

        meta_input = BriefInput(
            meeting=brief_input.meeting,
            meeting_thread_briefs=brief_input.meeting_thread_briefs,
            email_thread_briefs=brief_input.email_thread_briefs,
            intermediate_briefs=intermediates,
            channel_context=brief_input.channel_context,
        )
        meta = await self.synthesize_single(meta_input)
        usage += meta.token_usage

        logger.info(
            "multi-stage synthesis complete",
            intermediate_briefs=len(intermediates),
            total_tokens=usage.total_tokens,
        )
        brief = PreparationBrief(text=meta.text, token_usage=usage)
        return SynthesisOutcome(brief=brief, approach="multi-stage", layers=2)
