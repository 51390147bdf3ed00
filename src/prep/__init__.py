"""Meeting prep module.

Provides the preparation pipeline: chunked per-item summarization,
relevance scoring, thread aggregation, and brief synthesis.
"""

from src.prep.aggregator import ThreadAggregator
from src.prep.prep_service import PrepService, PreparationCancelled
from src.prep.relevance import RelevanceClassifier
from src.prep.schemas import (
    CandidateItem,
    CandidateKind,
    PrepConfig,
    PreparationContext,
    PreparationResult,
    SummaryRecord,
    TargetMeeting,
)
from src.prep.streaming import stream_meeting_summary
from src.prep.summarizer import ChunkedSummarizer
from src.prep.synthesizer import BriefSynthesisError, BriefSynthesizer

__all__ = [
    "BriefSynthesisError",
    "BriefSynthesizer",
    "CandidateItem",
    "CandidateKind",
    "ChunkedSummarizer",
    "PrepConfig",
    "PrepService",
    "PreparationCancelled",
    "PreparationContext",
    "PreparationResult",
    "RelevanceClassifier",
    "SummaryRecord",
    "TargetMeeting",
    "ThreadAggregator",
    "stream_meeting_summary",
]
