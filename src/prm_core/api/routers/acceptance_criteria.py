"""Acceptance criteria API endpoints."""
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
from prm_core.services import acceptance_criteria as criteria_service

from ..dependencies import get_current_user

logger = logging.getLogger("prm-api.acceptance_criteria")

router = APIRouter(tags=["acceptance-criteria"])


@router.post("/", response_model=schemas.AcceptanceCriteriaResponse, status_code=201)
def create_acceptance_criteria(
    criteria: schemas.AcceptanceCriteriaCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Add an acceptance criterion to a user story.

    - **user_story_id**: UUID or reference ID (US-n)
    - **description**: Criterion text, ideally EARS phrased ("WHEN ... THE SYSTEM SHALL ...")
    """
    try:
        return criteria_service.create_acceptance_criteria(db, criteria, current_user)
    except PRMError as e:
        logger.warning(f"Error creating acceptance criteria: {e}")
        raise
    except Exception as e:
        logger.error(f"Error creating acceptance criteria: {e}", exc_info=True)
        raise


@router.get("/", response_model=schemas.AcceptanceCriteriaListResponse)
def list_acceptance_criteria(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    user_story_id: Optional[str] = Query(None, description="Filter by user story (UUID or US-n)"),
    author_id: Optional[UUID] = Query(None, description="Filter by author"),
    order_by: Optional[str] = Query(None, description="e.g. 'created_at asc'"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    skip = (page - 1) * page_size
    items, total = criteria_service.list_acceptance_criteria(
        db,
        skip=skip,
        limit=page_size,
        user_story_id=user_story_id,
        author_id=author_id,
        order_by=order_by,
    )

    return schemas.AcceptanceCriteriaListResponse(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=ceil(total / page_size) if total > 0 else 0,
    )


@router.get("/{criteria_id}", response_model=schemas.AcceptanceCriteriaResponse)
def get_acceptance_criteria(
    criteria_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get an acceptance criterion by UUID or reference ID (AC-n)."""
    return criteria_service.get_acceptance_criteria(db, criteria_id)


@router.put("/{criteria_id}", response_model=schemas.AcceptanceCriteriaResponse)
def update_acceptance_criteria(
    criteria_id: str,
    criteria_update: schemas.AcceptanceCriteriaUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Update the description of an acceptance criterion."""
    return criteria_service.update_acceptance_criteria(db, criteria_id, criteria_update, current_user)


@router.get("/{criteria_id}/validate-deletion", response_model=schemas.DependencyReport)
def validate_acceptance_criteria_deletion(
    criteria_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Report linked requirements. Deleting the criterion unlinks them rather
    than deleting them.
    """
    return deletion.validate_deletion(db, EntityType.ACCEPTANCE_CRITERIA, criteria_id)


@router.delete("/{criteria_id}", response_model=schemas.DeletionResult)
def delete_acceptance_criteria(
    criteria_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return deletion.delete(db, EntityType.ACCEPTANCE_CRITERIA, criteria_id, force=False, user=current_user)


@router.delete("/{criteria_id}/delete", response_model=schemas.DeletionResult)
def force_delete_acceptance_criteria(
    criteria_id: str,
    force: bool = Query(True, description="Unlink dependent requirements"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete an acceptance criterion; linked requirements keep existing with no criterion."""
    return deletion.delete(db, EntityType.ACCEPTANCE_CRITERIA, criteria_id, force=force, user=current_user)
