"""Thread aggregator (Reduce step).

Groups related per-item summaries into threads and collapses each thread
into one short narrative. Meetings are clustered by subject keywords,
emails by sender.
"""

import asyncio
import re
from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from src.prep.prompts import (
    EMAIL_THREAD_SYSTEM,
    MAX_TOKENS_THREAD,
    MEETING_THREAD_SYSTEM,
    TEMPERATURE_PREP,
)
from src.prep.schemas import EmailSummary, ItemSummary, MeetingSummary, PrepConfig
from src.services.llm_client import CompletionClient, CompletionRequest, TokenUsage

logger = structlog.get_logger()

STOP_WORDS = frozenset(
    {
        "meeting", "call", "sync", "discussion", "session", "review", "update",
        "weekly", "daily", "monthly", "standup", "check", "in", "the", "a", "an",
        "and", "or", "but", "for", "with", "on", "at", "to", "from", "of", "by",
        "q1", "q2", "q3", "q4",
    }
)

_NON_WORD = re.compile(r"[^\w\s]")


def extract_keywords(text: str) -> set[str]:
    """Lower-cased subject keywords without punctuation or stop words.

    Args:
        text: Meeting subject

    Returns:
        Set of words longer than two characters
    """
    words = _NON_WORD.sub(" ", text.lower()).split()
    return {word for word in words if len(word) > 2 and word not in STOP_WORDS}


def subject_similarity(first: str, second: str) -> float:
    """Jaccard similarity of two subjects' keyword sets."""
    a = extract_keywords(first)
    b = extract_keywords(second)
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def cluster_meetings(
    meetings: Sequence[ItemSummary],
    threshold: float,
) -> list[list[ItemSummary]]:
    """Greedy single-pass clustering of meetings by subject.

    Each meeting joins the first cluster whose seed subject is at least
    `threshold` similar, otherwise it seeds a new cluster.

    Args:
        meetings: Meeting summaries in input order
        threshold: Minimum Jaccard similarity to join a cluster

    Returns:
        Clusters in seed order, members in input order
    """
    clusters: list[list[ItemSummary]] = []
    for meeting in meetings:
        for cluster in clusters:
            if subject_similarity(cluster[0].subject, meeting.subject) >= threshold:
                cluster.append(meeting)
                break
        else:
            clusters.append([meeting])
    return clusters


def group_emails_by_sender(emails: Sequence[ItemSummary]) -> list[list[ItemSummary]]:
    """Group emails by sender address, case-insensitive, in first-seen order."""
    groups: dict[str, list[ItemSummary]] = {}
    for email in emails:
        key = (email.sender or "").strip().lower()
        groups.setdefault(key, []).append(email)
    return list(groups.values())


def _date_label(item: ItemSummary) -> str:
    return item.date.strftime("%Y-%m-%d") if item.date else "unknown date"


def meeting_one_liner(item: ItemSummary) -> str:
    summary = item.summary
    narrative = summary.full_summary if isinstance(summary, MeetingSummary) else ""
    return f"{item.subject}: {narrative}"


def email_one_liner(item: ItemSummary) -> str:
    summary = item.summary
    narrative = summary.summary if isinstance(summary, EmailSummary) else ""
    return f"{item.subject} from {item.sender or 'Unknown'}: {narrative}"


def _meeting_thread_context(group: Sequence[ItemSummary]) -> str:
    blocks = []
    for idx, item in enumerate(group, start=1):
        summary = item.summary
        decisions = "; ".join(summary.key_decisions) or "none"
        actions = (
            "; ".join(f"{a.owner}: {a.task}" for a in summary.action_items) or "none"
        )
        blocks.append(
            f"Meeting {idx}: {item.subject} ({_date_label(item)})\n"
            f"Decisions: {decisions}\n"
            f"Actions: {actions}\n"
            f"Summary: {summary.full_summary}"
        )
    return "\n\n".join(blocks)


def _email_thread_context(group: Sequence[ItemSummary]) -> str:
    blocks = []
    for idx, item in enumerate(group, start=1):
        summary = item.summary
        blocks.append(
            f'Email {idx}: "{item.subject}" from {item.sender or "Unknown"} '
            f"({_date_label(item)})\n"
            f"Sentiment: {summary.sentiment}\n"
            f"Key points: {'; '.join(summary.key_points) or 'none'}\n"
            f"Actions: {'; '.join(summary.action_items) or 'none'}\n"
            f"Summary: {summary.summary}"
        )
    return "\n\n".join(blocks)


@dataclass
class ReduceResult:
    """Thread briefs for one category and the tokens spent producing them."""

    briefs: list[str] = field(default_factory=list)
    token_usage: TokenUsage = field(default_factory=TokenUsage)


class ThreadAggregator:
    """Collapses groups of related summaries into thread briefs."""

    def __init__(self, llm_client: CompletionClient, config: PrepConfig | None = None):
        """Initialize aggregator.

        Args:
            llm_client: Completion client for condensation calls
            config: Pipeline configuration (defaults used if None)
        """
        self._llm = llm_client
        self._config = config or PrepConfig()

    def should_reduce_meetings(self, count: int) -> bool:
        return count > self._config.meeting_reduce_threshold

    def should_reduce_emails(self, count: int) -> bool:
        return count > self._config.email_reduce_threshold

    async def reduce_meetings(self, meetings: Sequence[ItemSummary]) -> ReduceResult:
        """Cluster meetings by subject and produce one brief per cluster."""
        clusters = cluster_meetings(meetings, self._config.similarity_threshold)
        logger.info(
            "meeting threads clustered",
            meetings=len(meetings),
            threads=len(clusters),
        )
        return await self._reduce_groups(
            clusters, MEETING_THREAD_SYSTEM, _meeting_thread_context, meeting_one_liner
        )

    async def reduce_emails(self, emails: Sequence[ItemSummary]) -> ReduceResult:
        """Group emails by sender and produce one brief per group."""
        groups = group_emails_by_sender(emails)
        logger.info("email threads grouped", emails=len(emails), threads=len(groups))
        return await self._reduce_groups(
            groups, EMAIL_THREAD_SYSTEM, _email_thread_context, email_one_liner
        )

    async def _reduce_groups(
        self,
        groups: list[list[ItemSummary]],
        system_prompt: str,
        build_context,
        one_liner,
    ) -> ReduceResult:
        result = ReduceResult()
        batch_size = self._config.reduce_batch_size
        for offset in range(0, len(groups), batch_size):
            batch = groups[offset : offset + batch_size]
            outcomes = await asyncio.gather(
                *(
                    self._reduce_group(group, system_prompt, build_context, one_liner)
                    for group in batch
                )
            )
            for brief, usage in outcomes:
                result.briefs.append(brief)
                result.token_usage += usage
        return result

    async def _reduce_group(
        self,
        group: list[ItemSummary],
        system_prompt: str,
        build_context,
        one_liner,
    ) -> tuple[str, TokenUsage]:
        if len(group) == 1:
            return one_liner(group[0]), TokenUsage()

        try:
            response = await self._llm.complete(
                CompletionRequest(
                    system_prompt=system_prompt,
                    user_prompt=build_context(group),
                    temperature=TEMPERATURE_PREP,
                    max_output_tokens=MAX_TOKENS_THREAD,
                )
            )
        except Exception as e:
            logger.warning(
                "thread reduce failed, using item summaries",
                items=[item.item_id for item in group],
                error=str(e),
            )
            return "\n".join(one_liner(item) for item in group), TokenUsage()

        return response.text.strip(), response.usage
