"""Summarization usage ledger on libSQL / SQLite.

One row per generated summary, holding its metrics and estimated cost.
"""

from datetime import UTC, datetime
from typing import Any, Protocol

from pydantic import ValidationError

from src.db.turso import TursoClient
from src.prep.schemas import SummarizationMetrics, UsageRecord, UsageStats
from src.services.llm_client import CostEstimate

_COLUMNS = (
    "id, subject, item_date, duration_minutes, source_length, source_word_count, "
    "prompt_tokens, completion_tokens, total_tokens, processing_time_ms, model, "
    "input_cost, output_cost, total_cost, created_at, requested_by"
)


class UsageStoreError(Exception):
    """Raised when the usage store cannot be read or written."""


class UsageRecorder(Protocol):
    """Anything that can persist the usage of one summarization."""

    async def record(
        self, metrics: SummarizationMetrics, cost: CostEstimate
    ) -> UsageRecord: ...


class UsageRepository:
    """Repository for per-summary usage records."""

    def __init__(self, db_client: TursoClient):
        """Initialize repository with database client.

        Args:
            db_client: TursoClient instance for database operations
        """
        self._db = db_client

    async def initialize(self) -> None:
        """Create the usage table if it does not exist."""
        await self._db.execute_batch(
            [
                """
            CREATE TABLE IF NOT EXISTS usage (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                subject TEXT NOT NULL,
                item_date TEXT,
                duration_minutes INTEGER,
                source_length INTEGER NOT NULL,
                source_word_count INTEGER NOT NULL,
                prompt_tokens INTEGER NOT NULL,
                completion_tokens INTEGER NOT NULL,
                total_tokens INTEGER NOT NULL,
                processing_time_ms INTEGER NOT NULL,
                model TEXT NOT NULL,
                input_cost REAL NOT NULL,
                output_cost REAL NOT NULL,
                total_cost REAL NOT NULL,
                created_at TEXT NOT NULL,
                requested_by TEXT
            )
            """,
                """
            CREATE INDEX IF NOT EXISTS idx_usage_created_at
            ON usage(created_at)
            """,
            ]
        )

    async def _execute(self, sql: str, params: list[Any] | None = None):
        try:
            return await self._db.execute(sql, params)
        except Exception as e:
            raise UsageStoreError(f"Usage query failed: {e}") from e

    @staticmethod
    def _row_to_record(row) -> UsageRecord:
        try:
            return UsageRecord(**dict(zip(_COLUMNS.split(", "), row, strict=True)))
        except ValidationError as e:
            raise UsageStoreError(f"Corrupt usage row {row[0]}: {e}") from e

    async def record(
        self, metrics: SummarizationMetrics, cost: CostEstimate
    ) -> UsageRecord:
        """Store the metrics and cost of one summarization.

        Args:
            metrics: Metrics reported by the summarizer
            cost: Estimated cost of the metrics' token usage

        Returns:
            The stored UsageRecord
        """
        usage = metrics.token_usage
        values = {
            "subject": metrics.subject,
            "item_date": metrics.item_date.isoformat() if metrics.item_date else None,
            "duration_minutes": metrics.duration_minutes,
            "source_length": metrics.source_length,
            "source_word_count": metrics.source_word_count,
            "prompt_tokens": usage.prompt_tokens,
            "completion_tokens": usage.completion_tokens,
            "total_tokens": usage.total_tokens,
            "processing_time_ms": metrics.processing_time_ms,
            "model": metrics.model,
            "input_cost": cost.input_cost,
            "output_cost": cost.output_cost,
            "total_cost": cost.total_cost,
            "created_at": datetime.now(UTC).isoformat(),
            "requested_by": metrics.requested_by,
        }
        result = await self._execute(
            f"""
            INSERT INTO usage ({", ".join(values)})
            VALUES ({", ".join("?" for _ in values)})
            """,
            list(values.values()),
        )
        return UsageRecord(id=result.last_insert_rowid, **values)

    async def stats(self) -> UsageStats:
        """Aggregate totals and averages over every record."""
        result = await self._execute(
            """
            SELECT
                COUNT(*),
                COALESCE(SUM(total_tokens), 0),
                COALESCE(SUM(total_cost), 0),
                COALESCE(AVG(total_tokens), 0),
                COALESCE(AVG(total_cost), 0),
                COALESCE(AVG(processing_time_ms), 0)
            FROM usage
            """
        )
        row = result.rows[0]
        return UsageStats(
            total_records=row[0],
            total_tokens=row[1],
            total_cost=row[2],
            avg_tokens_per_summary=row[3],
            avg_cost_per_summary=row[4],
            avg_processing_time_ms=row[5],
        )

    async def list_records(self, limit: int = 100) -> list[UsageRecord]:
        """List records, newest first."""
        result = await self._execute(
            f"SELECT {_COLUMNS} FROM usage ORDER BY created_at DESC, id DESC LIMIT ?",
            [limit],
        )
        return [self._row_to_record(row) for row in result.rows]

    async def delete(self, record_id: int) -> bool:
        """Delete one record.

        Returns:
            True if a record was deleted
        """
        result = await self._execute("DELETE FROM usage WHERE id = ?", [record_id])
        return result.rows_affected > 0

    async def clear(self) -> int:
        """Delete every record.

        Returns:
            Number of records deleted
        """
        result = await self._execute("DELETE FROM usage")
        return result.rows_affected
