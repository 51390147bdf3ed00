"""libSQL database client wrapper for the summary cache store."""

import logging
from typing import Any

from libsql_client import Client, ResultSet, create_client

from src.config import Settings, get_settings

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "file:summary_cache.db"


class TursoClient:
    """Thin async wrapper around the libSQL client.

    Works against a hosted Turso database (libsql:// URL plus auth token)
    or a local SQLite file (file: URL).
    """

    def __init__(
        self,
        url: str | None = None,
        auth_token: str | None = None,
        settings: Settings | None = None,
    ):
        """Initialize client with connection parameters.

        Args:
            url: Database URL. Falls back to settings, then a local file.
            auth_token: Auth token for hosted databases. Falls back to settings.
            settings: Application settings (cached settings if None)
        """
        settings = settings or get_settings()
        self.url = url or settings.turso_database_url or DEFAULT_DATABASE_URL
        self.auth_token = auth_token or settings.turso_auth_token
        self._client: Client | None = None

    @property
    def is_remote(self) -> bool:
        return self.url.startswith(("libsql://", "https://", "wss://"))

    async def connect(self) -> None:
        """Open the connection. Calling it twice is a no-op."""
        if self._client is not None:
            return

        if self.is_remote and self.auth_token:
            self._client = create_client(url=self.url, auth_token=self.auth_token)
        else:
            self._client = create_client(url=self.url)

        logger.info("Connected to summary cache store: %s", self.url)

    def _require_client(self) -> Client:
        if self._client is None:
            msg = "Not connected. Call connect() first."
            raise RuntimeError(msg)
        return self._client

    async def execute(self, sql: str, params: list[Any] | None = None) -> ResultSet:
        """Execute one SQL statement.

        Args:
            sql: SQL with ? placeholders
            params: Positional parameters

        Returns:
            ResultSet with rows, columns and rows_affected
        """
        return await self._require_client().execute(sql, params or [])

    async def execute_batch(self, statements: list[str]) -> None:
        """Execute several parameterless statements in one batch."""
        await self._require_client().batch(statements)

    async def close(self) -> None:
        """Close the connection if open."""
        if self._client is not None:
            await self._client.close()
            self._client = None
            logger.info("Summary cache store connection closed")

    async def is_healthy(self) -> bool:
        """Run a trivial query to check the connection."""
        if self._client is None:
            return False
        try:
            result = await self._client.execute("SELECT 1")
        except Exception as e:
            logger.warning("Database health check failed: %s", e)
            return False
        return len(result.rows) == 1
