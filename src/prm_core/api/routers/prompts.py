"""Agent prompts API endpoints."""
import logging
from math import ceil
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from prm_core import models, schemas
from prm_core.database import get_db
from prm_core.services import prompts as prompt_service

from ..dependencies import get_current_user

logger = logging.getLogger("prm-api.prompts")

router = APIRouter(tags=["prompts"])


@router.post("/", response_model=schemas.PromptResponse, status_code=201)
def create_prompt(
    prompt: schemas.PromptCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create a prompt (administrators only). New prompts are inactive.

    - **name**: Unique name
    - **content**: Prompt text
    - **role**: user or assistant (default: assistant)
    """
    return prompt_service.create_prompt(db, prompt, current_user)


@router.get("/", response_model=schemas.PromptListResponse)
def list_prompts(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    is_active: Optional[bool] = Query(None, description="Filter by active flag"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    skip = (page - 1) * page_size
    items, total = prompt_service.list_prompts(db, skip=skip, limit=page_size, is_active=is_active)

    return schemas.PromptListResponse(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=ceil(total / page_size) if total > 0 else 0,
    )


@router.get("/active", response_model=schemas.PromptResponse)
def get_active_prompt(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get the active prompt. Returns 404 when none is active."""
    return prompt_service.get_active_prompt(db)


@router.get("/{prompt_id}", response_model=schemas.PromptResponse)
def get_prompt(
    prompt_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get a prompt by UUID or reference ID (PROMPT-n)."""
    return prompt_service.get_prompt(db, prompt_id)


@router.put("/{prompt_id}", response_model=schemas.PromptResponse)
def update_prompt(
    prompt_id: str,
    prompt_update: schemas.PromptUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return prompt_service.update_prompt(db, prompt_id, prompt_update, current_user)


@router.delete("/{prompt_id}", status_code=204)
def delete_prompt(
    prompt_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    prompt_service.delete_prompt(db, prompt_id, current_user)


@router.post("/{prompt_id}/activate", response_model=schemas.PromptResponse)
def activate_prompt(
    prompt_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Make this prompt the only active prompt. Every other prompt is
    deactivated in the same transaction.
    """
    return prompt_service.activate_prompt(db, prompt_id, current_user)
