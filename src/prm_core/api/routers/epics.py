"""Epics API endpoints."""
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
from prm_core.services import epics as epic_service
from prm_core.services import steering_documents as steering_service

from ..dependencies import get_current_user

logger = logging.getLogger("prm-api.epics")

router = APIRouter(tags=["epics"])


@router.post("/", response_model=schemas.EpicResponse, status_code=201)
def create_epic(
    epic: schemas.EpicCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create a new epic.

    - **title**: Epic title (max 500 characters)
    - **description**: Optional description
    - **priority**: 1=Critical, 2=High, 3=Medium, 4=Low
    - **status**: Optional; must be the initial status (Backlog)
    - **assignee_id**: Optional user UUID

    The creator is always the caller.
    """
    try:
        return epic_service.create_epic(db, epic, current_user)
    except PRMError as e:
        logger.warning(f"Error creating epic: {e}")
        raise
    except Exception as e:
        logger.error(f"Error creating epic: {e}", exc_info=True)
        raise


@router.get("/", response_model=schemas.EpicListResponse)
def list_epics(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    status: Optional[str] = Query(None, description="Filter by status"),
    priority: Optional[int] = Query(None, ge=1, le=4, description="Filter by priority"),
    creator_id: Optional[UUID] = Query(None, description="Filter by creator"),
    assignee_id: Optional[UUID] = Query(None, description="Filter by assignee"),
    order_by: Optional[str] = Query(None, description="e.g. 'priority asc' or 'created_at desc'"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    List epics with optional filtering and pagination.

    - **page**: Page number (starts at 1)
    - **page_size**: Number of items per page (1-100)
    - **status**: Filter by status (case-insensitive)
    - **priority**: Filter by priority
    - **order_by**: Column and optional direction
    """
    skip = (page - 1) * page_size
    items, total = epic_service.list_epics(
        db,
        skip=skip,
        limit=page_size,
        status=status,
        priority=priority,
        creator_id=creator_id,
        assignee_id=assignee_id,
        order_by=order_by,
    )

    return schemas.EpicListResponse(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=ceil(total / page_size) if total > 0 else 0,
    )


@router.get("/{epic_id}", response_model=schemas.EpicResponse)
def get_epic(
    epic_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Get an epic by UUID or reference ID (e.g. EP-1, case-insensitive).
    """
    return epic_service.get_epic(db, epic_id)


@router.put("/{epic_id}", response_model=schemas.EpicResponse)
def update_epic(
    epic_id: str,
    epic_update: schemas.EpicUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Update an epic.

    - **title**, **description**, **priority**: New values (optional)
    - **status**: Must be reachable from the current status
    - **assignee_id**: User UUID; an empty string unassigns
    """
    try:
        return epic_service.update_epic(db, epic_id, epic_update, current_user)
    except PRMError as e:
        logger.warning(f"Error updating epic {epic_id}: {e}")
        raise
    except Exception as e:
        logger.error(f"Error updating epic {epic_id}: {e}", exc_info=True)
        raise


@router.patch("/{epic_id}/status", response_model=schemas.EpicResponse)
def change_epic_status(
    epic_id: str,
    request: schemas.StatusChange,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Move an epic to a new status.

    An invalid transition returns 400 with the reachable statuses in
    `details.valid_values`.
    """
    return epic_service.change_epic_status(db, epic_id, request.status, current_user)


@router.patch("/{epic_id}/assign", response_model=schemas.EpicResponse)
def assign_epic(
    epic_id: str,
    request: schemas.AssigneeChange,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Set the assignee; null or an empty string unassigns."""
    return epic_service.assign_epic(db, epic_id, request.assignee_id, current_user)


@router.get("/{epic_id}/user-stories", response_model=schemas.UserStoryListResponse)
def list_epic_user_stories(
    epic_id: str,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    List the user stories of an epic.
    """
    skip = (page - 1) * page_size
    items, total = epic_service.list_epic_user_stories(db, epic_id, skip=skip, limit=page_size)

    return schemas.UserStoryListResponse(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=ceil(total / page_size) if total > 0 else 0,
    )


@router.get("/{epic_id}/hierarchy", response_model=schemas.EpicHierarchyResponse)
def get_epic_hierarchy(
    epic_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Get an epic with its steering documents, user stories, acceptance
    criteria and requirements in one response.
    """
    return epic_service.get_epic_hierarchy(db, epic_id)


@router.get("/{epic_id}/steering-documents", response_model=list[schemas.SteeringDocumentResponse])
def list_epic_steering_documents(
    epic_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List the steering documents linked to an epic."""
    return steering_service.list_epic_steering_documents(db, epic_id)


@router.get("/{epic_id}/validate-deletion", response_model=schemas.DependencyReport)
def validate_epic_deletion(
    epic_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Report the direct dependents that would block deleting this epic, and
    everything a forced delete would remove.
    """
    return deletion.validate_deletion(db, EntityType.EPIC, epic_id)


@router.delete("/{epic_id}", response_model=schemas.DeletionResult)
def delete_epic(
    epic_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Delete an epic without dependents.

    Returns 409 listing the dependents when the epic still has user stories.
    """
    return deletion.delete(db, EntityType.EPIC, epic_id, force=False, user=current_user)


@router.delete("/{epic_id}/delete", response_model=schemas.DeletionResult)
def force_delete_epic(
    epic_id: str,
    force: bool = Query(True, description="Delete dependents as well"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Delete an epic and its whole subtree in one transaction.

    Use with caution!
    """
    result = deletion.delete(db, EntityType.EPIC, epic_id, force=force, user=current_user)
    logger.info(f"Deleted epic {result.reference_id}: {result.deleted} ({result.transaction_id})")
    return result
