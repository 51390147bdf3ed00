"""Repository layer for the preparation pipeline.

Provides the SummaryCache contract, in-memory implementations, the
durable libSQL-backed summary repository, and the prompt template and
usage stores.
"""

from src.repositories.summary_cache import (
    CacheError,
    InMemorySummaryCache,
    SummaryCache,
    TTLSummaryCache,
)
from src.repositories.summary_repo import SummaryRepository
from src.repositories.prompt_repo import (
    PromptStoreError,
    PromptTemplateRepository,
    PromptTemplateSource,
)
from src.repositories.usage_repo import UsageRecorder, UsageRepository, UsageStoreError

__all__ = [
    "CacheError",
    "InMemorySummaryCache",
    "PromptStoreError",
    "PromptTemplateRepository",
    "PromptTemplateSource",
    "SummaryCache",
    "SummaryRepository",
    "TTLSummaryCache",
    "UsageRecorder",
    "UsageRepository",
    "UsageStoreError",
]
