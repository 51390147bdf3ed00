"""Parsing of generative backend output.

Backend text is turned into a tagged result: Parsed(value) when one of an
ordered chain of extraction strategies yields JSON of the expected shape,
ParseFailed(raw_text, reason) otherwise. Callers decide how to degrade.
"""

import json
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from src.prep.schemas import EmailSummary, MeetingSummary

T = TypeVar("T")
S = TypeVar("S", MeetingSummary, EmailSummary)

FENCE_PATTERN = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)\n?\s*```", re.DOTALL)


@dataclass(frozen=True)
class Parsed(Generic[T]):
    """Successful parse."""

    value: T


@dataclass(frozen=True)
class ParseFailed:
    """Backend output that no strategy could turn into the expected shape."""

    raw_text: str
    reason: str


Strategy = Callable[[str], Any]


def _direct(text: str) -> Any:
    return json.loads(text.strip())


def _fenced_block(text: str) -> Any:
    match = FENCE_PATTERN.search(text)
    if not match:
        return None
    return json.loads(match.group(1).strip())


def _between(text: str, opening: str, closing: str) -> Any:
    start = text.find(opening)
    end = text.rfind(closing)
    if start == -1 or end <= start:
        return None
    return json.loads(text[start : end + 1])


def _loose_object(text: str) -> Any:
    return _between(text, "{", "}")


def _loose_array(text: str) -> Any:
    return _between(text, "[", "]")


OBJECT_STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("direct", _direct),
    ("fenced", _fenced_block),
    ("loose-object", _loose_object),
)

ARRAY_STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("direct", _direct),
    ("fenced", _fenced_block),
    ("loose-array", _loose_array),
    ("loose-object", _loose_object),
)


def extract_json(
    text: str,
    strategies: Sequence[tuple[str, Strategy]] = OBJECT_STRATEGIES,
) -> Parsed[Any] | ParseFailed:
    """Try each strategy in order and return the first JSON value found.

    Args:
        text: Raw backend output
        strategies: Ordered (name, strategy) pairs

    Returns:
        Parsed JSON value, or ParseFailed when every strategy fails
    """
    if not text or not text.strip():
        return ParseFailed(raw_text=text or "", reason="empty output")

    for _name, strategy in strategies:
        try:
            value = strategy(text)
        except (ValueError, RecursionError):
            # Malformed or pathologically nested JSON
            continue
        if value is not None:
            return Parsed(value)

    return ParseFailed(raw_text=text, reason="no JSON found in output")


def _narrative(summary: MeetingSummary | EmailSummary) -> str:
    if isinstance(summary, MeetingSummary):
        return summary.full_summary
    return summary.summary


def parse_summary(text: str, model: type[S]) -> Parsed[S] | ParseFailed:
    """Parse backend output into a structured summary variant.

    A summary without a narrative is treated as a failed parse.

    Args:
        text: Raw backend output
        model: MeetingSummary or EmailSummary

    Returns:
        Parsed summary or ParseFailed
    """
    result = extract_json(text, OBJECT_STRATEGIES)
    if isinstance(result, ParseFailed):
        return result
    if not isinstance(result.value, dict):
        return ParseFailed(raw_text=text, reason="expected a JSON object")

    try:
        summary = model.model_validate(result.value)
    except ValidationError as e:
        return ParseFailed(raw_text=text, reason=f"unexpected shape: {e.error_count()} errors")

    return accept_summary(summary, text)


def accept_summary(summary: S, raw_text: str) -> Parsed[S] | ParseFailed:
    """Accept an already-typed summary unless its narrative is blank."""
    if not _narrative(summary).strip():
        return ParseFailed(raw_text=raw_text, reason="missing narrative summary")
    return Parsed(summary)


def parse_score_list(text: str) -> Parsed[list[dict]] | ParseFailed:
    """Parse relevance output into a list of score dicts.

    Accepts a bare array, an object with a 'scores' or 'results' key,
    or any object whose first array-valued key holds the scores.

    Args:
        text: Raw backend output

    Returns:
        Parsed list of dicts or ParseFailed
    """
    result = extract_json(text, ARRAY_STRATEGIES)
    if isinstance(result, ParseFailed):
        return result

    value = result.value
    if isinstance(value, dict):
        if isinstance(value.get("scores"), list):
            value = value["scores"]
        elif isinstance(value.get("results"), list):
            value = value["results"]
        else:
            value = next((v for v in value.values() if isinstance(v, list)), None)

    if not isinstance(value, list):
        return ParseFailed(raw_text=text, reason="no score array in output")

    return Parsed([entry for entry in value if isinstance(entry, dict)])
