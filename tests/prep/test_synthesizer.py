"""Tests for brief synthesis."""

from datetime import UTC, datetime, timedelta

import pytest

from src.prep.prompts import BRIEF_SYSTEM, MAX_TOKENS_PREP
from src.prep.schemas import (
    CandidateItem,
    CandidateKind,
    EmailSummary,
    ItemSummary,
    MeetingSummary,
    PrepConfig,
    TargetMeeting,
)
from src.prep.synthesizer import (
    BriefInput,
    BriefSynthesisError,
    BriefSynthesizer,
    build_channel_context,
    estimate_tokens,
    render_brief_prompt,
    strip_markup,
)

DATE = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


def meeting_summary(idx: int) -> ItemSummary:
    return ItemSummary(
        item_id=f"m{idx}",
        kind=CandidateKind.MEETING,
        subject=f"Launch sync {idx}",
        date=DATE,
        summary=MeetingSummary(full_summary=f"Meeting narrative {idx}"),
    )


def email_summary(idx: int) -> ItemSummary:
    return ItemSummary(
        item_id=f"e{idx}",
        kind=CandidateKind.EMAIL,
        subject=f"Budget {idx}",
        date=DATE,
        sender="cfo@example.com",
        summary=EmailSummary(summary=f"Email narrative {idx}"),
    )


def channel_message(text: str, sender: str = "Lee", minutes: int = 0) -> CandidateItem:
    return CandidateItem(
        id=f"c-{minutes}",
        kind=CandidateKind.CHANNEL_MESSAGE,
        timestamp=DATE + timedelta(minutes=minutes),
        raw_text=text,
        participant_or_sender=sender,
    )


@pytest.fixture
def meeting():
    return TargetMeeting(
        id="t1",
        subject="Launch readiness",
        start=datetime(2026, 3, 4, 14, 30, tzinfo=UTC),
        attendees=["Dana", "Lee"],
    )


class TestChannelContext:
    def test_strip_markup(self):
        assert strip_markup("<p>Ship&nbsp;it <b>now</b></p>") == "Ship it now"

    def test_formats_bullets(self):
        context = build_channel_context([channel_message("<div>Ready to go</div>")])
        assert context == "- Lee (2026-03-01): Ready to go"

    def test_truncates_long_messages(self):
        context = build_channel_context([channel_message("x" * 400)], max_chars=300)
        assert context.endswith("x" * 300 + "...")

    def test_caps_message_count_and_skips_blank(self):
        messages = [channel_message("<p> </p>", minutes=0)] + [
            channel_message(f"msg {i}", minutes=i + 1) for i in range(12)
        ]

        context = build_channel_context(messages, max_messages=10)

        lines = context.splitlines()
        assert len(lines) == 10
        assert lines[0].endswith("msg 0")

    def test_none_when_empty(self):
        assert build_channel_context([]) is None
        assert build_channel_context([channel_message("")]) is None


class TestRenderPrompt:
    def test_raw_summaries_rendered(self, meeting):
        prompt = render_brief_prompt(
            BriefInput(
                meeting=meeting,
                meeting_summaries=[meeting_summary(1)],
                email_summaries=[email_summary(1)],
            )
        )

        assert "Subject: Launch readiness" in prompt
        assert "Date: 2026-03-04 14:30" in prompt
        assert "Attendees: Dana, Lee" in prompt
        assert "Meeting 1: Launch sync 1 (2026-03-01)" in prompt
        assert "Email 1: Budget 1 from cfo@example.com" in prompt

    def test_thread_briefs_replace_raw_summaries(self, meeting):
        prompt = render_brief_prompt(
            BriefInput(
                meeting=meeting,
                meeting_summaries=[meeting_summary(1)],
                meeting_thread_briefs=["Launch thread narrative"],
            )
        )

        assert "Thread 1:\nLaunch thread narrative" in prompt
        assert "Meeting narrative 1" not in prompt
        assert "No related emails found" in prompt

    def test_empty_context_placeholders(self, meeting):
        no_attendees = meeting.model_copy(update={"attendees": []})
        prompt = render_brief_prompt(BriefInput(meeting=no_attendees))

        assert "No related meetings found" in prompt
        assert "Attendees: Not specified" in prompt
        assert "**Channel Context**" not in prompt

    def test_channel_and_intermediate_sections(self, meeting):
        prompt = render_brief_prompt(
            BriefInput(
                meeting=meeting,
                intermediate_briefs=["First half", "Second half"],
                channel_context="- Lee (2026-03-01): Ready",
            )
        )

        assert "**Intermediate Briefs**\nBrief 1:\nFirst half" in prompt
        assert "**Channel Context**\n- Lee (2026-03-01): Ready" in prompt


def test_estimate_ignores_thread_briefs(meeting):
    base = BriefInput(meeting=meeting, meeting_summaries=[meeting_summary(1)])
    threaded = base.model_copy(update={"meeting_thread_briefs": ["x" * 4_000]})

    assert estimate_tokens(base) == estimate_tokens(threaded)
    assert estimate_tokens(base) == len(render_brief_prompt(base)) // 4


class TestSynthesize:
    async def test_single_stage_by_default(self, fake_llm, meeting):
        synthesizer = BriefSynthesizer(fake_llm, PrepConfig(token_budget=1))

        outcome = await synthesizer.synthesize(
            BriefInput(meeting=meeting, meeting_summaries=[meeting_summary(1)])
        )

        assert outcome.approach == "single-stage"
        assert outcome.layers == 1
        assert outcome.brief.text.startswith("## Context")
        request = fake_llm.requests[0]
        assert request.system_prompt == BRIEF_SYSTEM
        assert request.temperature == 0.4
        assert request.max_output_tokens == MAX_TOKENS_PREP

    async def test_multi_stage_below_budget_is_single_call(self, fake_llm, meeting):
        synthesizer = BriefSynthesizer(fake_llm, PrepConfig())

        outcome = await synthesizer.synthesize(
            BriefInput(meeting=meeting, meeting_summaries=[meeting_summary(1)]),
            multi_stage=True,
        )

        assert outcome.approach == "single-stage"
        assert len(fake_llm.requests) == 1

    async def test_multi_stage_over_budget_two_layers(self, fake_llm, meeting):
        config = PrepConfig(token_budget=1, multi_stage_batch_size=2)
        synthesizer = BriefSynthesizer(fake_llm, config)

        outcome = await synthesizer.synthesize(
            BriefInput(
                meeting=meeting,
                meeting_summaries=[meeting_summary(1), meeting_summary(2)],
                email_summaries=[email_summary(1)],
                channel_context="- Lee (2026-03-01): Ready",
            ),
            multi_stage=True,
        )

        assert outcome.approach == "multi-stage"
        assert outcome.layers == 2
        assert len(fake_llm.requests) == 3
        first, second, meta = (r.user_prompt for r in fake_llm.requests)
        assert "Meeting narrative 2" in first and "Email narrative 1" not in first
        assert "Email narrative 1" in second
        assert "**Channel Context**" not in first
        assert "**Intermediate Briefs**" in meta
        assert "**Channel Context**" in meta
        assert outcome.brief.token_usage.total_tokens == 360

    async def test_multi_stage_single_batch_is_one_layer(self, fake_llm, meeting):
        config = PrepConfig(token_budget=1, multi_stage_batch_size=10)
        synthesizer = BriefSynthesizer(fake_llm, config)

        outcome = await synthesizer.synthesize(
            BriefInput(
                meeting=meeting,
                meeting_summaries=[meeting_summary(1)],
                channel_context="- Lee (2026-03-01): Ready",
            ),
            multi_stage=True,
        )

        assert outcome.approach == "multi-stage"
        assert outcome.layers == 1
        assert len(fake_llm.requests) == 1
        assert "**Channel Context**" in fake_llm.requests[0].user_prompt

    async def test_failure_raises_synthesis_error(self, llm_factory, meeting):
        llm = llm_factory(responder=lambda request: ConnectionError("down"))
        synthesizer = BriefSynthesizer(llm, PrepConfig())

        with pytest.raises(BriefSynthesisError, match="down"):
            await synthesizer.synthesize(BriefInput(meeting=meeting))
