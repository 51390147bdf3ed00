"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from src.api.router import api_router
from src.config import settings
from src.db.turso import TursoClient
from src.prep.prep_service import PrepService
from src.prep.schemas import PrepConfig
from src.repositories.prompt_repo import PromptTemplateRepository
from src.repositories.summary_cache import TTLSummaryCache
from src.repositories.summary_repo import SummaryRepository
from src.repositories.usage_repo import UsageRepository
from src.services.llm_client import LLMClient

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def _initialize_prep_service(app: FastAPI, db: TursoClient) -> None:
    """Initialize the summary cache, prompt and usage stores, and PrepService.

    The durable repository sits behind a bounded TTL layer; the same
    layer is exposed to the cache endpoints so deletes stay consistent.
    """
    summary_repo = SummaryRepository(db)
    await summary_repo.initialize()
    app.state.summary_repo = summary_repo

    summary_cache = TTLSummaryCache(
        summary_repo,
        ttl_seconds=settings.summary_cache_ttl_seconds,
        max_entries=settings.summary_cache_max_entries,
    )
    app.state.summary_cache = summary_cache
    logger.info("Summary cache initialized")

    prompt_repo = PromptTemplateRepository(db)
    await prompt_repo.initialize()
    app.state.prompt_repo = prompt_repo

    usage_repo = UsageRepository(db)
    await usage_repo.initialize()
    app.state.usage_repo = usage_repo
    logger.info("Prompt template and usage stores initialized")

    llm_client = LLMClient(settings=settings)
    prep_service = PrepService(
        llm_client=llm_client,
        cache=summary_cache,
        config=PrepConfig(),
        settings=settings,
        prompt_source=prompt_repo,
        usage_recorder=usage_repo,
    )
    PrepService.set_instance(prep_service)
    app.state.prep_service = prep_service
    logger.info("PrepService initialized (model: %s)", llm_client.model)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan management.

    Startup:
    - Initialize database connection
    - Initialize summary cache, prompt and usage stores, and PrepService

    Shutdown:
    - Reset PrepService
    - Close database connection
    """
    logger.info("Starting %s...", settings.app_name)

    db = TursoClient(settings=settings)
    await db.connect()
    app.state.db = db

    await _initialize_prep_service(app, db)

    yield

    logger.info("Shutting down %s...", settings.app_name)
    PrepService.reset_instance()
    await db.close()


app = FastAPI(
    title=settings.app_name,
    description="Meeting preparation briefs from related meetings, emails and messages",
    version=settings.app_version,
    lifespan=lifespan,
)

app.include_router(api_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
