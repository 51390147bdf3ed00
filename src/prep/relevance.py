"""Relevance classifier for preparation candidates.

Scores candidate items 0-100 against the target meeting title in
sequential batches. Never raises: unparseable output or a failed call
degrades to a neutral score for every item in the batch.
"""

import math
from collections.abc import Sequence
from typing import Literal

import structlog

from src.prep.parsing import ParseFailed, parse_score_list
from src.prep.prompts import (
    MAX_TOKENS_RELEVANCE,
    RELEVANCE_KEYWORDS_INSTRUCTION,
    RELEVANCE_SYSTEM,
    RELEVANCE_USER,
    TEMPERATURE_RELEVANCE,
)
from src.prep.schemas import PrepConfig, RelevanceCandidate, RelevanceScore
from src.services.llm_client import CompletionClient, CompletionRequest

logger = structlog.get_logger()

SourceKind = Literal["meetings", "emails", "teams", "files"]

NEUTRAL_SCORE = 50
UNMATCHED_REASONING = "No reasoning provided"
PARSE_FAILURE_REASONING = "Error parsing AI response"
CALL_FAILURE_REASONING = "Error during classification"


def clamp_score(value) -> int:
    """Coerce a backend score into the 0-100 range."""
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0
    if math.isnan(number):
        return 0
    # Clamp before rounding so infinities stay in range
    return round(max(0.0, min(100.0, number)))


def format_candidate_list(batch: Sequence[RelevanceCandidate]) -> str:
    """Number candidates 1..N with optional metadata in parentheses."""
    lines = []
    for idx, candidate in enumerate(batch, start=1):
        line = f'{idx}. "{candidate.title}"'
        if candidate.metadata:
            line += f" ({candidate.metadata})"
        lines.append(line)
    return "\n".join(lines)


def match_scores(
    batch: Sequence[RelevanceCandidate],
    entries: list[dict],
) -> list[RelevanceScore]:
    """Align parsed score entries with the batch, in batch order.

    An entry matches a candidate by exact id first, then by its 1-based
    position, then by its 0-based position.

    Args:
        batch: Candidates sent in one classification call
        entries: Parsed score dicts from the backend

    Returns:
        One RelevanceScore per candidate
    """
    scores = []
    for idx, candidate in enumerate(batch):
        entry = next((e for e in entries if str(e.get("id")) == candidate.id), None)
        if entry is None:
            entry = next((e for e in entries if str(e.get("id")) == str(idx + 1)), None)
        if entry is None:
            entry = next((e for e in entries if str(e.get("id")) == str(idx)), None)

        if entry is None:
            scores.append(
                RelevanceScore(id=candidate.id, score=0, reasoning=UNMATCHED_REASONING)
            )
            continue

        scores.append(
            RelevanceScore(
                id=candidate.id,
                score=clamp_score(entry.get("score")),
                reasoning=str(entry.get("reasoning") or UNMATCHED_REASONING),
            )
        )
    return scores


def _neutral(batch: Sequence[RelevanceCandidate], reasoning: str) -> list[RelevanceScore]:
    return [
        RelevanceScore(id=candidate.id, score=NEUTRAL_SCORE, reasoning=reasoning)
        for candidate in batch
    ]


class RelevanceClassifier:
    """Scores candidate items for relevance to a target meeting."""

    def __init__(self, llm_client: CompletionClient, config: PrepConfig | None = None):
        self._llm = llm_client
        self._config = config or PrepConfig()

    async def classify(
        self,
        target_title: str,
        candidates: Sequence[RelevanceCandidate],
        source_kind: SourceKind = "meetings",
        keywords: str | None = None,
    ) -> list[RelevanceScore]:
        """Score every candidate against the target meeting.

        Args:
            target_title: Subject of the upcoming meeting
            candidates: Items to score
            source_kind: What the candidates are, used in the prompt
            keywords: Optional comma-separated keywords that boost scores

        Returns:
            One RelevanceScore per candidate, in input order
        """
        if not candidates:
            return []

        batch_size = self._config.relevance_batch_size
        scores: list[RelevanceScore] = []
        for offset in range(0, len(candidates), batch_size):
            batch = list(candidates[offset : offset + batch_size])
            scores.extend(
                await self._classify_batch(target_title, batch, source_kind, keywords)
            )

        logger.info(
            "relevance classified",
            source_kind=source_kind,
            candidates=len(candidates),
            batches=-(-len(candidates) // batch_size),
        )
        return scores

    async def _classify_batch(
        self,
        target_title: str,
        batch: list[RelevanceCandidate],
        source_kind: str,
        keywords: str | None,
    ) -> list[RelevanceScore]:
        keywords_instruction = (
            RELEVANCE_KEYWORDS_INSTRUCTION.format(keywords=keywords) if keywords else ""
        )
        request = CompletionRequest(
            system_prompt=RELEVANCE_SYSTEM.format(
                source_kind=source_kind,
                keywords_instruction=keywords_instruction,
            ),
            user_prompt=RELEVANCE_USER.format(
                target=target_title,
                keywords_line=f"\nFilter Keywords: {keywords}" if keywords else "",
                source_kind=source_kind,
                candidate_list=format_candidate_list(batch),
            ),
            temperature=TEMPERATURE_RELEVANCE,
            max_output_tokens=MAX_TOKENS_RELEVANCE,
        )

        try:
            response = await self._llm.complete(request)
        except Exception as e:
            logger.warning(
                "relevance batch failed",
                source_kind=source_kind,
                batch_size=len(batch),
                error=str(e),
            )
            return _neutral(batch, CALL_FAILURE_REASONING)

        try:
            result = parse_score_list(response.text)
            if isinstance(result, ParseFailed):
                reason = result.reason
            else:
                return match_scores(batch, result.value)
        except Exception as e:
            reason = f"{type(e).__name__}: {e}"

        logger.warning(
            "relevance output could not be parsed",
            source_kind=source_kind,
            reason=reason,
        )
        return _neutral(batch, PARSE_FAILURE_REASONING)
