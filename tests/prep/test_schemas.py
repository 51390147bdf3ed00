"""Tests for prep schemas."""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from src.prep.schemas import (
    CandidateItem,
    CandidateKind,
    EmailSummary,
    ItemSummary,
    MeetingSummary,
    PrepConfig,
    RelevanceCandidate,
    RelevanceScore,
    SummaryRecord,
    summary_model_for,
)

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


class TestPrepConfig:
    """Tests for PrepConfig model."""

    def test_default_values(self):
        """PrepConfig has the pipeline defaults."""
        config = PrepConfig()
        assert config.chunk_size == 10_000
        assert config.chunk_overlap == 600
        assert config.meeting_reduce_threshold == 3
        assert config.email_reduce_threshold == 5
        assert config.similarity_threshold == 0.2
        assert config.relevance_batch_size == 50
        assert config.token_budget == 100_000
        assert config.map_concurrency == 1

    def test_overlap_must_be_below_chunk_size(self):
        """PrepConfig rejects an overlap that would never advance."""
        with pytest.raises(ValidationError):
            PrepConfig(chunk_size=1_000, chunk_overlap=1_000)

    def test_similarity_bounds(self):
        with pytest.raises(ValidationError):
            PrepConfig(similarity_threshold=1.5)

    def test_concurrency_bounds(self):
        PrepConfig(map_concurrency=16)
        with pytest.raises(ValidationError):
            PrepConfig(map_concurrency=0)


class TestCandidateItem:
    def test_has_text(self):
        item = CandidateItem(
            id="m1", kind=CandidateKind.MEETING, timestamp=NOW, raw_text="Hello"
        )
        assert item.has_text

    def test_blank_text_is_not_content(self):
        item = CandidateItem(
            id="m1", kind=CandidateKind.MEETING, timestamp=NOW, raw_text=" \n "
        )
        assert not item.has_text

    def test_id_required(self):
        with pytest.raises(ValidationError):
            CandidateItem(id="", kind=CandidateKind.EMAIL, timestamp=NOW)

    def test_items_are_immutable(self):
        item = CandidateItem(id="e1", kind=CandidateKind.EMAIL, timestamp=NOW)
        with pytest.raises(ValidationError):
            item.id = "e2"


class TestSummaries:
    def test_meeting_summary_camel_case_round_trip(self):
        summary = MeetingSummary.model_validate(
            {"keyDecisions": ["Go"], "fullSummary": "Decided to go."}
        )

        dumped = summary.model_dump(by_alias=True)

        assert dumped["keyDecisions"] == ["Go"]
        assert dumped["fullSummary"] == "Decided to go."
        assert dumped["actionItems"] == []

    def test_populate_by_field_name(self):
        assert MeetingSummary(full_summary="x").full_summary == "x"

    def test_email_action_items_coerced_to_strings(self):
        summary = EmailSummary.model_validate({"actionItems": "Reply today"})
        assert summary.action_items == ["Reply today"]

    def test_summary_model_for(self):
        assert summary_model_for(CandidateKind.MEETING) is MeetingSummary
        assert summary_model_for(CandidateKind.EMAIL) is EmailSummary
        with pytest.raises(ValueError):
            summary_model_for(CandidateKind.CHANNEL_MESSAGE)


class TestSummaryRecord:
    def test_payload_variant_follows_kind(self):
        record = SummaryRecord.model_validate(
            {"item_id": "e1", "kind": "email", "payload": {"summary": "Approved."}}
        )

        assert isinstance(record.payload, EmailSummary)
        assert record.payload.summary == "Approved."

    def test_empty_payload_uses_kind(self):
        record = SummaryRecord.model_validate(
            {"item_id": "m1", "kind": "meeting", "payload": {}}
        )

        assert isinstance(record.payload, MeetingSummary)

    def test_generated_at_defaults_to_now(self):
        record = SummaryRecord(
            item_id="m1", kind=CandidateKind.MEETING, payload=MeetingSummary()
        )
        assert record.generated_at.tzinfo is not None


class TestItemSummary:
    def test_summary_variant_follows_kind(self):
        item = ItemSummary.model_validate(
            {
                "item_id": "e1",
                "kind": "email",
                "subject": "Budget",
                "summary": {"summary": "Approved.", "sentiment": "positive"},
            }
        )

        assert isinstance(item.summary, EmailSummary)
        assert item.summary.sentiment == "positive"

    def test_empty_summary_uses_kind(self):
        email = ItemSummary.model_validate(
            {"item_id": "e1", "kind": "email", "subject": "Budget", "summary": {}}
        )
        meeting = ItemSummary.model_validate(
            {"item_id": "m1", "kind": "meeting", "subject": "Sync", "summary": {}}
        )

        assert isinstance(email.summary, EmailSummary)
        assert isinstance(meeting.summary, MeetingSummary)


class TestRelevance:
    def test_candidate_from_email(self):
        item = CandidateItem(
            id="e1",
            kind=CandidateKind.EMAIL,
            title="Budget",
            timestamp=NOW,
            participant_or_sender="cfo@example.com",
        )

        candidate = RelevanceCandidate.from_item(item)

        assert candidate.metadata == "2026-03-01, from cfo@example.com"

    def test_candidate_without_title(self):
        item = CandidateItem(id="m1", kind=CandidateKind.MEETING, timestamp=NOW)
        assert RelevanceCandidate.from_item(item).title == "Untitled"

    def test_score_bounds(self):
        with pytest.raises(ValidationError):
            RelevanceScore(id="x", score=101)
