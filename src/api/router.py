"""API router aggregation."""

from fastapi import APIRouter

from src.api.cache import router as cache_router
from src.api.health import router as health_router
from src.api.prep import router as prep_router
from src.api.prompts import router as prompts_router
from src.api.usage import router as usage_router

api_router = APIRouter()
api_router.include_router(health_router)
# Meeting preparation endpoints
api_router.include_router(prep_router)
# Summary cache maintenance
api_router.include_router(cache_router)
# Per-user prompt templates
api_router.include_router(prompts_router)
# Usage and cost tracking
api_router.include_router(usage_router)
