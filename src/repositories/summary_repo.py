"""Durable summary cache on libSQL / SQLite.

One row per item_id; writing a record for an existing item_id replaces it.
"""

import json
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from src.db.turso import TursoClient
from src.prep.schemas import CandidateKind, SummaryRecord
from src.repositories.summary_cache import CacheError

_COLUMNS = (
    "item_id, kind, subject, item_date, payload, source_length, "
    "model, generated_at, generated_by"
)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class SummaryRepository:
    """Repository for cached per-item summaries.

    Implements the SummaryCache contract plus maintenance operations
    used by the cache endpoints.
    """

    def __init__(self, db_client: TursoClient):
        """Initialize repository with database client.

        Args:
            db_client: TursoClient instance for database operations
        """
        self._db = db_client

    async def initialize(self) -> None:
        """Create the summary_cache table if it does not exist."""
        await self._db.execute_batch(
            [
                """
            CREATE TABLE IF NOT EXISTS summary_cache (
                item_id TEXT PRIMARY KEY,
                kind TEXT NOT NULL,
                subject TEXT,
                item_date TEXT,
                payload TEXT NOT NULL,
                source_length INTEGER,
                model TEXT,
                generated_at TEXT NOT NULL,
                generated_by TEXT
            )
            """,
                """
            CREATE INDEX IF NOT EXISTS idx_summary_cache_kind
            ON summary_cache(kind, generated_at)
            """,
            ]
        )

    async def _execute(self, sql: str, params: list[Any] | None = None):
        try:
            return await self._db.execute(sql, params)
        except Exception as e:
            raise CacheError(f"Summary cache query failed: {e}") from e

    @staticmethod
    def _row_to_record(row) -> SummaryRecord:
        try:
            return SummaryRecord(
                item_id=row[0],
                kind=row[1],
                subject=row[2],
                item_date=row[3],
                payload=json.loads(row[4]),
                source_length=row[5],
                model=row[6],
                generated_at=row[7],
                generated_by=row[8],
            )
        except (ValueError, ValidationError) as e:
            raise CacheError(f"Corrupt summary cache row for {row[0]}: {e}") from e

    async def get(self, item_id: str) -> SummaryRecord | None:
        """Get the cached summary for an item.

        Args:
            item_id: External item identifier

        Returns:
            SummaryRecord or None if not cached

        Raises:
            CacheError: If the store cannot be read or the row is corrupt
        """
        result = await self._execute(
            f"SELECT {_COLUMNS} FROM summary_cache WHERE item_id = ?",
            [item_id],
        )
        if not result.rows:
            return None
        return self._row_to_record(result.rows[0])

    async def put(self, item_id: str, record: SummaryRecord) -> None:
        """Save a summary (upsert, last write wins).

        Args:
            item_id: External item identifier
            record: Summary record to store
        """
        await self._execute(
            f"""
            INSERT INTO summary_cache ({_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(item_id)
            DO UPDATE SET
                kind = excluded.kind,
                subject = excluded.subject,
                item_date = excluded.item_date,
                payload = excluded.payload,
                source_length = excluded.source_length,
                model = excluded.model,
                generated_at = excluded.generated_at,
                generated_by = excluded.generated_by
            """,
            [
                item_id,
                record.kind.value,
                record.subject,
                _iso(record.item_date),
                record.payload.model_dump_json(by_alias=True),
                record.source_length,
                record.model,
                _iso(record.generated_at),
                record.generated_by,
            ],
        )

    async def delete(self, item_id: str) -> None:
        """Delete the cached summary for an item, if any."""
        await self._execute("DELETE FROM summary_cache WHERE item_id = ?", [item_id])

    async def stats(self) -> dict[str, int]:
        """Count cached summaries per kind.

        Returns:
            Dict with meeting_summaries and email_summaries counts
        """
        result = await self._execute(
            "SELECT kind, COUNT(*) FROM summary_cache GROUP BY kind"
        )
        counts = {row[0]: row[1] for row in result.rows}
        return {
            "meeting_summaries": counts.get(CandidateKind.MEETING.value, 0),
            "email_summaries": counts.get(CandidateKind.EMAIL.value, 0),
        }

    async def clear(self, kind: CandidateKind | None = None) -> int:
        """Delete cached summaries.

        Args:
            kind: Only delete summaries of this kind (all kinds if None)

        Returns:
            Number of deleted rows
        """
        if kind is None:
            result = await self._execute("DELETE FROM summary_cache")
        else:
            result = await self._execute(
                "DELETE FROM summary_cache WHERE kind = ?",
                [kind.value],
            )
        return result.rows_affected

    async def list_recent(
        self,
        kind: CandidateKind | None = None,
        limit: int = 50,
    ) -> list[SummaryRecord]:
        """List the most recently generated summaries.

        Args:
            kind: Only list summaries of this kind (all kinds if None)
            limit: Maximum number of records

        Returns:
            Records ordered newest first
        """
        if kind is None:
            result = await self._execute(
                f"SELECT {_COLUMNS} FROM summary_cache "
                "ORDER BY generated_at DESC LIMIT ?",
                [limit],
            )
        else:
            result = await self._execute(
                f"SELECT {_COLUMNS} FROM summary_cache WHERE kind = ? "
                "ORDER BY generated_at DESC LIMIT ?",
                [kind.value, limit],
            )
        return [self._row_to_record(row) for row in result.rows]
