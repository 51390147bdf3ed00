"""Stored meeting summarization prompts on libSQL / SQLite.

Templates belong to the user who created them. At most one template per
user is marked default; it replaces the built-in extraction prompts for
that user's meeting summaries.
"""

from datetime import UTC, datetime
from typing import Any, Protocol

from pydantic import ValidationError

from src.db.turso import TursoClient
from src.prep.schemas import PromptTemplate, PromptTemplateCreate, PromptTemplateUpdate

_COLUMNS = (
    "id, name, description, system_prompt, user_prompt_template, "
    "is_default, created_by, created_at, updated_at"
)


class PromptStoreError(Exception):
    """Raised when the prompt template store cannot be read or written."""


class PromptTemplateSource(Protocol):
    """Anything that can look up a user's default prompt template."""

    async def get_default(self, user: str) -> PromptTemplate | None: ...


def _now() -> str:
    return datetime.now(UTC).isoformat()


class PromptTemplateRepository:
    """Repository for user-owned prompt templates."""

    def __init__(self, db_client: TursoClient):
        """Initialize repository with database client.

        Args:
            db_client: TursoClient instance for database operations
        """
        self._db = db_client

    async def initialize(self) -> None:
        """Create the prompt_templates table if it does not exist."""
        await self._db.execute_batch(
            [
                """
            CREATE TABLE IF NOT EXISTS prompt_templates (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                description TEXT,
                system_prompt TEXT NOT NULL,
                user_prompt_template TEXT NOT NULL,
                is_default INTEGER NOT NULL DEFAULT 0,
                created_by TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """,
                """
            CREATE INDEX IF NOT EXISTS idx_prompt_templates_owner
            ON prompt_templates(created_by, is_default)
            """,
            ]
        )

    async def _execute(self, sql: str, params: list[Any] | None = None):
        try:
            return await self._db.execute(sql, params)
        except Exception as e:
            raise PromptStoreError(f"Prompt template query failed: {e}") from e

    @staticmethod
    def _row_to_template(row) -> PromptTemplate:
        try:
            return PromptTemplate(
                id=row[0],
                name=row[1],
                description=row[2],
                system_prompt=row[3],
                user_prompt_template=row[4],
                is_default=bool(row[5]),
                created_by=row[6],
                created_at=row[7],
                updated_at=row[8],
            )
        except ValidationError as e:
            raise PromptStoreError(f"Corrupt prompt template row {row[0]}: {e}") from e

    async def _clear_defaults(self, user: str) -> None:
        await self._execute(
            "UPDATE prompt_templates SET is_default = 0 WHERE created_by = ?",
            [user],
        )

    async def list_for_user(self, user: str) -> list[PromptTemplate]:
        """List a user's templates, default first, then by name."""
        result = await self._execute(
            f"SELECT {_COLUMNS} FROM prompt_templates WHERE created_by = ? "
            "ORDER BY is_default DESC, name ASC",
            [user],
        )
        return [self._row_to_template(row) for row in result.rows]

    async def get(self, template_id: int, user: str) -> PromptTemplate | None:
        """Get one of the user's templates by id.

        Returns:
            PromptTemplate or None if it does not exist or belongs to
            another user
        """
        result = await self._execute(
            f"SELECT {_COLUMNS} FROM prompt_templates WHERE id = ? AND created_by = ?",
            [template_id, user],
        )
        if not result.rows:
            return None
        return self._row_to_template(result.rows[0])

    async def get_default(self, user: str) -> PromptTemplate | None:
        """Get the user's default template, if one is set."""
        result = await self._execute(
            f"SELECT {_COLUMNS} FROM prompt_templates "
            "WHERE created_by = ? AND is_default = 1 LIMIT 1",
            [user],
        )
        if not result.rows:
            return None
        return self._row_to_template(result.rows[0])

    async def create(self, user: str, data: PromptTemplateCreate) -> PromptTemplate:
        """Create a template owned by the user.

        Creating a default template clears the user's previous default.

        Args:
            user: Owner identity
            data: Template fields

        Returns:
            The stored PromptTemplate
        """
        if data.is_default:
            await self._clear_defaults(user)

        now = _now()
        result = await self._execute(
            f"""
            INSERT INTO prompt_templates ({_COLUMNS})
            VALUES (NULL, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                data.name,
                data.description,
                data.system_prompt,
                data.user_prompt_template,
                int(data.is_default),
                user,
                now,
                now,
            ],
        )
        return PromptTemplate(
            id=result.last_insert_rowid,
            created_by=user,
            created_at=now,
            updated_at=now,
            **data.model_dump(),
        )

    async def update(
        self,
        template_id: int,
        user: str,
        data: PromptTemplateUpdate,
    ) -> PromptTemplate | None:
        """Apply a partial update to one of the user's templates.

        Returns:
            The updated template, or None if the user does not own it
        """
        if await self.get(template_id, user) is None:
            return None

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if changes.get("is_default"):
            await self._clear_defaults(user)
        if "is_default" in changes:
            changes["is_default"] = int(bool(changes["is_default"]))

        # Column names are the model field names
        assignments = ["updated_at = ?", *(f"{column} = ?" for column in changes)]
        await self._execute(
            f"UPDATE prompt_templates SET {', '.join(assignments)} WHERE id = ?",
            [_now(), *changes.values(), template_id],
        )
        return await self.get(template_id, user)

    async def delete(self, template_id: int, user: str) -> bool:
        """Delete one of the user's templates.

        Returns:
            True if a template was deleted
        """
        result = await self._execute(
            "DELETE FROM prompt_templates WHERE id = ? AND created_by = ?",
            [template_id, user],
        )
        return result.rows_affected > 0

    async def set_default(self, template_id: int, user: str) -> bool:
        """Make one of the user's templates their default.

        Returns:
            False if the user does not own the template
        """
        if await self.get(template_id, user) is None:
            return False

        await self._clear_defaults(user)
        await self._execute(
            "UPDATE prompt_templates SET is_default = 1, updated_at = ? WHERE id = ?",
            [_now(), template_id],
        )
        return True
