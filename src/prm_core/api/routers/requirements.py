"""Requirements and requirement relationships API endpoints."""
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
from prm_core.services import requirements as requirement_service

from ..dependencies import get_current_user

logger = logging.getLogger("prm-api.requirements")

router = APIRouter(tags=["requirements"])


# Relationship endpoints

@router.post("/relationships", response_model=schemas.RelationshipResponse, status_code=201)
def create_relationship(
    relationship: schemas.RelationshipCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Relate two requirements.

    - **source_requirement_id** / **target_requirement_id**: UUID or REQ-n, must differ
    - **relationship_type_id**: Type UUID or name (e.g. "depends_on")

    The same (source, target, type) triple can exist only once.
    """
    try:
        return requirement_service.create_relationship(db, relationship, current_user)
    except PRMError as e:
        logger.warning(f"Error creating relationship: {e}")
        raise
    except Exception as e:
        logger.error(f"Error creating relationship: {e}", exc_info=True)
        raise


@router.get("/relationships/{relationship_id}", response_model=schemas.RelationshipResponse)
def get_relationship(
    relationship_id: UUID,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return requirement_service.get_relationship(db, relationship_id)


@router.delete("/relationships/{relationship_id}", status_code=204)
def delete_relationship(
    relationship_id: UUID,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Remove a relationship between two requirements."""
    requirement_service.delete_relationship(db, relationship_id, current_user)


# Requirement endpoints

@router.post("/", response_model=schemas.RequirementResponse, status_code=201)
def create_requirement(
    requirement: schemas.RequirementCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create a requirement under a user story.

    - **user_story_id**: UUID or reference ID (US-n)
    - **acceptance_criteria_id**: Optional criterion UUID or AC-n
    - **type_id**: Requirement type UUID or name (e.g. "Functional")
    - **title**: Requirement title (max 500 characters)
    - **priority**: 1=Critical, 2=High, 3=Medium, 4=Low
    """
    try:
        return requirement_service.create_requirement(db, requirement, current_user)
    except PRMError as e:
        logger.warning(f"Error creating requirement: {e}")
        raise
    except Exception as e:
        logger.error(f"Error creating requirement: {e}", exc_info=True)
        raise


@router.get("/", response_model=schemas.RequirementListResponse)
def list_requirements(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    user_story_id: Optional[str] = Query(None, description="Filter by user story (UUID or US-n)"),
    acceptance_criteria_id: Optional[str] = Query(None, description="Filter by criterion (UUID or AC-n)"),
    type_id: Optional[str] = Query(None, description="Filter by type (UUID or name)"),
    status: Optional[str] = Query(None, description="Filter by status"),
    priority: Optional[int] = Query(None, ge=1, le=4, description="Filter by priority"),
    creator_id: Optional[UUID] = Query(None, description="Filter by creator"),
    assignee_id: Optional[UUID] = Query(None, description="Filter by assignee"),
    order_by: Optional[str] = Query(None, description="e.g. 'priority asc'"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    List requirements with optional filtering and pagination.

    - **page**: Page number (starts at 1)
    - **page_size**: Number of items per page (1-100)
    - **type_id**: Requirement type UUID or name
    - **status**: Draft, Active or Obsolete (case-insensitive)
    """
    skip = (page - 1) * page_size
    items, total = requirement_service.list_requirements(
        db,
        skip=skip,
        limit=page_size,
        user_story_id=user_story_id,
        acceptance_criteria_id=acceptance_criteria_id,
        type_id=type_id,
        status=status,
        priority=priority,
        creator_id=creator_id,
        assignee_id=assignee_id,
        order_by=order_by,
    )

    return schemas.RequirementListResponse(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=ceil(total / page_size) if total > 0 else 0,
    )


@router.get("/{requirement_id}", response_model=schemas.RequirementResponse)
def get_requirement(
    requirement_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get a requirement by UUID or reference ID (REQ-n)."""
    return requirement_service.get_requirement(db, requirement_id)


@router.put("/{requirement_id}", response_model=schemas.RequirementResponse)
def update_requirement(
    requirement_id: str,
    requirement_update: schemas.RequirementUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Update a requirement.

    - **status**: Must be reachable from the current status
    - **assignee_id**: User UUID; an empty string unassigns
    - **acceptance_criteria_id**: Criterion UUID or AC-n; an empty string unlinks
    - **type_id**: Type UUID or name
    """
    try:
        return requirement_service.update_requirement(db, requirement_id, requirement_update, current_user)
    except PRMError as e:
        logger.warning(f"Error updating requirement {requirement_id}: {e}")
        raise
    except Exception as e:
        logger.error(f"Error updating requirement {requirement_id}: {e}", exc_info=True)
        raise


@router.patch("/{requirement_id}/status", response_model=schemas.RequirementResponse)
def change_requirement_status(
    requirement_id: str,
    request: schemas.StatusChange,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Move a requirement to a new status.

    Draft → Active, Active → Obsolete, Obsolete → Active. Anything else
    returns 400 with `details.valid_values`.
    """
    return requirement_service.change_requirement_status(db, requirement_id, request.status, current_user)


@router.patch("/{requirement_id}/assign", response_model=schemas.RequirementResponse)
def assign_requirement(
    requirement_id: str,
    request: schemas.AssigneeChange,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return requirement_service.assign_requirement(db, requirement_id, request.assignee_id, current_user)


@router.get("/{requirement_id}/relationships", response_model=list[schemas.RelationshipResponse])
def list_requirement_relationships(
    requirement_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List relationships where the requirement is the source or the target."""
    return requirement_service.list_relationships(db, requirement_id)


@router.get("/{requirement_id}/with-relationships", response_model=schemas.RequirementWithRelationshipsResponse)
def get_requirement_with_relationships(
    requirement_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return requirement_service.get_requirement_with_relationships(db, requirement_id)


@router.get("/{requirement_id}/validate-deletion", response_model=schemas.DependencyReport)
def validate_requirement_deletion(
    requirement_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return deletion.validate_deletion(db, EntityType.REQUIREMENT, requirement_id)


@router.delete("/{requirement_id}", response_model=schemas.DeletionResult)
def delete_requirement(
    requirement_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete a requirement that takes part in no relationships."""
    return deletion.delete(db, EntityType.REQUIREMENT, requirement_id, force=False, user=current_user)


@router.delete("/{requirement_id}/delete", response_model=schemas.DeletionResult)
def force_delete_requirement(
    requirement_id: str,
    force: bool = Query(True, description="Delete its relationships as well"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return deletion.delete(db, EntityType.REQUIREMENT, requirement_id, force=force, user=current_user)
