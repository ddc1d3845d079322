"""User stories API endpoints."""
import logging
from math import ceil
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from prm_core import deletion, models, schemas
from prm_core.database import get_db
from prm_core.errors import PRMError
from prm_core.models import EntityType
from prm_core.services import user_stories as user_story_service

from ..dependencies import get_current_user

logger = logging.getLogger("prm-api.user_stories")

router = APIRouter(tags=["user-stories"])


@router.post("/", response_model=schemas.UserStoryResponse, status_code=201)
def create_user_story(
    user_story: schemas.UserStoryCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create a user story under an epic.

    - **epic_id**: Parent epic UUID or reference ID (EP-n)
    - **title**: Story title (max 500 characters)
    - **priority**: 1=Critical, 2=High, 3=Medium, 4=Low
    - **assignee_id**: Optional user UUID
    """
    try:
        return user_story_service.create_user_story(db, user_story, current_user)
    except PRMError as e:
        logger.warning(f"Error creating user story: {e}")
        raise
    except Exception as e:
        logger.error(f"Error creating user story: {e}", exc_info=True)
        raise


@router.get("/", response_model=schemas.UserStoryListResponse)
def list_user_stories(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    epic_id: Optional[str] = Query(None, description="Filter by epic (UUID or EP-n)"),
    status: Optional[str] = Query(None, description="Filter by status"),
    priority: Optional[int] = Query(None, ge=1, le=4, description="Filter by priority"),
    creator_id: Optional[UUID] = Query(None, description="Filter by creator"),
    assignee_id: Optional[UUID] = Query(None, description="Filter by assignee"),
    order_by: Optional[str] = Query(None, description="e.g. 'priority asc'"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    List user stories with optional filtering and pagination.
    """
    skip = (page - 1) * page_size
    items, total = user_story_service.list_user_stories(
        db,
        skip=skip,
        limit=page_size,
        epic_id=epic_id,
        status=status,
        priority=priority,
        creator_id=creator_id,
        assignee_id=assignee_id,
        order_by=order_by,
    )

    return schemas.UserStoryListResponse(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=ceil(total / page_size) if total > 0 else 0,
    )


@router.get("/{user_story_id}", response_model=schemas.UserStoryResponse)
def get_user_story(
    user_story_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get a user story by UUID or reference ID (US-n)."""
    return user_story_service.get_user_story(db, user_story_id)


@router.put("/{user_story_id}", response_model=schemas.UserStoryResponse)
def update_user_story(
    user_story_id: str,
    user_story_update: schemas.UserStoryUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Update a user story.

    - **title**, **description**, **priority**: New values (optional)
    - **status**: Must be reachable from the current status
    - **assignee_id**: User UUID; an empty string unassigns
    """
    try:
        return user_story_service.update_user_story(db, user_story_id, user_story_update, current_user)
    except PRMError as e:
        logger.warning(f"Error updating user story {user_story_id}: {e}")
        raise
    except Exception as e:
        logger.error(f"Error updating user story {user_story_id}: {e}", exc_info=True)
        raise


@router.patch("/{user_story_id}/status", response_model=schemas.UserStoryResponse)
def change_user_story_status(
    user_story_id: str,
    request: schemas.StatusChange,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Move a user story to a new status."""
    return user_story_service.change_user_story_status(db, user_story_id, request.status, current_user)


@router.patch("/{user_story_id}/assign", response_model=schemas.UserStoryResponse)
def assign_user_story(
    user_story_id: str,
    request: schemas.AssigneeChange,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return user_story_service.assign_user_story(db, user_story_id, request.assignee_id, current_user)


@router.get("/{user_story_id}/children", response_model=schemas.HierarchyUserStory)
def get_user_story_with_children(
    user_story_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get a user story with its acceptance criteria and requirements."""
    return user_story_service.get_user_story_with_children(db, user_story_id)


@router.get("/{user_story_id}/validate-deletion", response_model=schemas.DependencyReport)
def validate_user_story_deletion(
    user_story_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return deletion.validate_deletion(db, EntityType.USER_STORY, user_story_id)


@router.delete("/{user_story_id}", response_model=schemas.DeletionResult)
def delete_user_story(
    user_story_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Delete a user story without acceptance criteria or requirements.
    """
    return deletion.delete(db, EntityType.USER_STORY, user_story_id, force=False, user=current_user)


@router.delete("/{user_story_id}/delete", response_model=schemas.DeletionResult)
def force_delete_user_story(
    user_story_id: str,
    force: bool = Query(True, description="Delete dependents as well"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Delete a user story with its acceptance criteria, requirements and comments.
    """
    result = deletion.delete(db, EntityType.USER_STORY, user_story_id, force=force, user=current_user)
    logger.info(f"Deleted user story {result.reference_id}: {result.deleted} ({result.transaction_id})")
    return result
