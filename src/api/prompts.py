"""API endpoints for stored prompt templates.

Templates are scoped to the user named by the ``user`` query parameter.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from src.prep.schemas import PromptTemplate, PromptTemplateCreate, PromptTemplateUpdate
from src.repositories.prompt_repo import PromptStoreError, PromptTemplateRepository

router = APIRouter(prefix="/prompts", tags=["prompts"])


def get_prompt_repo(request: Request) -> PromptTemplateRepository:
    """Dependency to get PromptTemplateRepository from app state."""
    repo = getattr(request.app.state, "prompt_repo", None)
    if repo is None:
        raise HTTPException(status_code=503, detail="Prompt store not initialized")
    return repo


def _not_found(template_id: int) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Prompt template {template_id} not found")


@router.get("", response_model=list[PromptTemplate])
async def list_templates(
    user: str = Query(min_length=1),
    repo: PromptTemplateRepository = Depends(get_prompt_repo),
) -> list[PromptTemplate]:
    """List the user's templates, default first."""
    try:
        return await repo.list_for_user(user)
    except PromptStoreError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.post("", response_model=PromptTemplate, status_code=201)
async def create_template(
    data: PromptTemplateCreate,
    user: str = Query(min_length=1),
    repo: PromptTemplateRepository = Depends(get_prompt_repo),
) -> PromptTemplate:
    """Create a template owned by the user."""
    try:
        return await repo.create(user, data)
    except PromptStoreError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{template_id}", response_model=PromptTemplate)
async def get_template(
    template_id: int,
    user: str = Query(min_length=1),
    repo: PromptTemplateRepository = Depends(get_prompt_repo),
) -> PromptTemplate:
    try:
        template = await repo.get(template_id, user)
    except PromptStoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
    if template is None:
        raise _not_found(template_id)
    return template


@router.put("/{template_id}", response_model=PromptTemplate)
async def update_template(
    template_id: int,
    data: PromptTemplateUpdate,
    user: str = Query(min_length=1),
    repo: PromptTemplateRepository = Depends(get_prompt_repo),
) -> PromptTemplate:
    """Update fields of one of the user's templates."""
    try:
        template = await repo.update(template_id, user, data)
    except PromptStoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
    if template is None:
        raise _not_found(template_id)
    return template


@router.delete("/{template_id}", status_code=204)
async def delete_template(
    template_id: int,
    user: str = Query(min_length=1),
    repo: PromptTemplateRepository = Depends(get_prompt_repo),
) -> None:
    try:
        deleted = await repo.delete(template_id, user)
    except PromptStoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
    if not deleted:
        raise _not_found(template_id)


@router.post("/{template_id}/set-default", response_model=PromptTemplate)
async def set_default_template(
    template_id: int,
    user: str = Query(min_length=1),
    repo: PromptTemplateRepository = Depends(get_prompt_repo),
) -> PromptTemplate:
    """Make one of the user's templates their default for meeting summaries."""
    try:
        if not await repo.set_default(template_id, user):
            raise _not_found(template_id)
        return await repo.get(template_id, user)
    except PromptStoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
