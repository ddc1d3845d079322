"""Hierarchy navigation endpoints."""
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from prm_core import models, schemas
from prm_core.database import get_db
from prm_core.services import navigation as navigation_service

from ..dependencies import get_current_user

logger = logging.getLogger("prm-api.navigation")

router = APIRouter(tags=["navigation"])

EXPAND_DESCRIPTION = "Comma-separated: user_stories, acceptance_criteria, requirements, relationships"


@router.get("/", response_model=schemas.NavigationTreeResponse)
def get_hierarchy(
    expand: Optional[str] = Query(None, description=EXPAND_DESCRIPTION),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Epics per page"),
    status: Optional[str] = Query(None, description="Filter epics by status"),
    priority: Optional[int] = Query(None, ge=1, le=4, description="Filter epics by priority"),
    creator_id: Optional[UUID] = Query(None, description="Filter epics by creator"),
    assignee_id: Optional[UUID] = Query(None, description="Filter epics by assignee"),
    order_by: Optional[str] = Query(None, description="e.g. 'priority asc' or 'created_at desc'"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Browse the product tree from the epics down.

    - **expand**: Levels to include below each epic; nothing below the
      epics is loaded unless asked for
    - **page** / **page_size**: Paginate the epics
    """
    return navigation_service.get_hierarchy(
        db,
        expand=expand,
        skip=(page - 1) * page_size,
        limit=page_size,
        status=status,
        priority=priority,
        creator_id=creator_id,
        assignee_id=assignee_id,
        order_by=order_by,
    )


@router.get("/epics/{epic_id}", response_model=schemas.NavigationEpic)
def get_epic_tree(
    epic_id: str,
    expand: Optional[str] = Query(None, description=EXPAND_DESCRIPTION),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return navigation_service.get_epic_tree(db, epic_id, expand)


@router.get("/user-stories/{user_story_id}", response_model=schemas.NavigationUserStory)
def get_user_story_tree(
    user_story_id: str,
    expand: Optional[str] = Query(None, description=EXPAND_DESCRIPTION),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get a user story with its acceptance criteria, requirements and relationships as requested."""
    return navigation_service.get_user_story_tree(db, user_story_id, expand)


@router.get("/path/{entity_type}/{entity_id}", response_model=schemas.EntityPathResponse)
def get_entity_path(
    entity_type: str,
    entity_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Get the breadcrumb path to an entity.

    - **entity_type**: epic, user_story, acceptance_criteria or requirement
    - **entity_id**: UUID or reference ID

    The path starts at the epic and ends with the entity itself.
    """
    return navigation_service.get_entity_path(db, entity_type, entity_id)
