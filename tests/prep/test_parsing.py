"""Tests for backend output parsing."""

import json

from src.prep.parsing import (
    ARRAY_STRATEGIES,
    Parsed,
    ParseFailed,
    accept_summary,
    extract_json,
    parse_score_list,
    parse_summary,
)
from src.prep.schemas import EmailSummary, MeetingSummary

MEETING = {
    "keyDecisions": ["Adopt vendor B"],
    "actionItems": [{"owner": "Ana", "task": "Sign contract"}],
    "metrics": [],
    "nextSteps": ["Kickoff"],
    "fullSummary": "Vendor B was selected.",
}


class TestExtractJson:
    def test_direct_json(self):
        result = extract_json('{"a": 1}')
        assert result == Parsed({"a": 1})

    def test_fenced_block(self):
        text = 'Here you go:\n```json\n{"a": 2}\n```\nThanks'
        assert extract_json(text) == Parsed({"a": 2})

    def test_fence_without_language(self):
        assert extract_json('```\n{"a": 3}\n```') == Parsed({"a": 3})

    def test_loose_braces(self):
        text = 'Sure! The result is {"a": 4} as requested.'
        assert extract_json(text) == Parsed({"a": 4})

    def test_garbage_fails(self):
        result = extract_json("I could not produce JSON today.")
        assert isinstance(result, ParseFailed)
        assert result.raw_text == "I could not produce JSON today."

    def test_empty_output_fails(self):
        result = extract_json("   ")
        assert isinstance(result, ParseFailed)
        assert result.reason == "empty output"

    def test_deeply_nested_json_fails(self):
        result = extract_json("[" * 100_000 + "]" * 100_000, ARRAY_STRATEGIES)
        assert isinstance(result, ParseFailed)


class TestParseSummary:
    def test_meeting_summary(self):
        result = parse_summary(json.dumps(MEETING), MeetingSummary)

        assert isinstance(result, Parsed)
        assert result.value.key_decisions == ["Adopt vendor B"]
        assert result.value.action_items[0].owner == "Ana"
        assert result.value.action_items[0].deadline is None
        assert result.value.full_summary == "Vendor B was selected."

    def test_nulls_become_empty_lists(self):
        payload = {
            "keyDecisions": None,
            "actionItems": None,
            "metrics": None,
            "nextSteps": None,
            "fullSummary": "Short call.",
        }

        result = parse_summary(json.dumps(payload), MeetingSummary)

        assert isinstance(result, Parsed)
        assert result.value.key_decisions == []
        assert result.value.action_items == []
        assert result.value.metrics == []
        assert result.value.next_steps == []

    def test_string_action_items_become_tasks(self):
        payload = {**MEETING, "actionItems": ["Book the room"]}

        result = parse_summary(json.dumps(payload), MeetingSummary)

        assert result.value.action_items[0].task == "Book the room"
        assert result.value.action_items[0].owner == ""

    def test_missing_narrative_fails(self):
        payload = {**MEETING, "fullSummary": ""}

        result = parse_summary(json.dumps(payload), MeetingSummary)

        assert isinstance(result, ParseFailed)
        assert "narrative" in result.reason

    def test_accept_summary_checks_narrative(self):
        assert accept_summary(MeetingSummary(full_summary="Done."), "raw") == Parsed(
            MeetingSummary(full_summary="Done.")
        )
        result = accept_summary(EmailSummary(key_points=["x"]), "raw")
        assert isinstance(result, ParseFailed)
        assert result.raw_text == "raw"

    def test_array_is_not_a_summary(self):
        result = parse_summary("[1, 2, 3]", MeetingSummary)
        assert isinstance(result, ParseFailed)

    def test_email_summary_normalizes_sentiment(self):
        payload = {
            "keyPoints": ["Deadline moved"],
            "actionItems": [],
            "sentiment": "URGENT",
            "summary": "The deadline moved up a week.",
        }

        result = parse_summary(f"```json\n{json.dumps(payload)}\n```", EmailSummary)

        assert isinstance(result, Parsed)
        assert result.value.sentiment == "urgent"

    def test_unknown_sentiment_falls_back_to_neutral(self):
        payload = {"summary": "FYI.", "sentiment": "mixed"}

        result = parse_summary(json.dumps(payload), EmailSummary)

        assert result.value.sentiment == "neutral"


class TestParseScoreList:
    def test_bare_array(self):
        result = parse_score_list('[{"id": "1", "score": 80}]')
        assert result == Parsed([{"id": "1", "score": 80}])

    def test_results_key(self):
        result = parse_score_list('{"results": [{"id": "a", "score": 10}]}')
        assert result == Parsed([{"id": "a", "score": 10}])

    def test_scores_key(self):
        result = parse_score_list('{"scores": [{"id": "a", "score": 10}]}')
        assert result == Parsed([{"id": "a", "score": 10}])

    def test_first_array_valued_key(self):
        result = parse_score_list('{"model": "x", "items": [{"id": "a", "score": 5}]}')
        assert result == Parsed([{"id": "a", "score": 5}])

    def test_array_in_prose(self):
        text = 'Scores below.\n[{"id": "a", "score": 90, "reasoning": "Same project"}]\nDone.'
        result = parse_score_list(text)
        assert isinstance(result, Parsed)
        assert result.value[0]["reasoning"] == "Same project"

    def test_object_without_array_fails(self):
        assert isinstance(parse_score_list('{"ok": true}'), ParseFailed)

    def test_garbage_fails(self):
        assert isinstance(parse_score_list("no scores here"), ParseFailed)
