"""Steering documents API endpoints."""
import logging
from math import ceil
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from prm_core import models, schemas
from prm_core.database import get_db
from prm_core.errors import PRMError
from prm_core.services import steering_documents as steering_service

from ..dependencies import get_current_user

logger = logging.getLogger("prm-api.steering_documents")

router = APIRouter(tags=["steering-documents"])


@router.post("/", response_model=schemas.SteeringDocumentResponse, status_code=201)
def create_steering_document(
    document: schemas.SteeringDocumentCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create a steering document.

    - **title**: Document title (max 500 characters)
    - **description**: Guidance text (coding standards, architecture notes, ...)
    """
    try:
        return steering_service.create_steering_document(db, document, current_user)
    except PRMError as e:
        logger.warning(f"Error creating steering document: {e}")
        raise
    except Exception as e:
        logger.error(f"Error creating steering document: {e}", exc_info=True)
        raise


@router.get("/", response_model=schemas.SteeringDocumentListResponse)
def list_steering_documents(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    creator_id: Optional[UUID] = Query(None, description="Filter by creator"),
    order_by: Optional[str] = Query(None, description="e.g. 'title asc'"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    skip = (page - 1) * page_size
    items, total = steering_service.list_steering_documents(
        db, skip=skip, limit=page_size, creator_id=creator_id, order_by=order_by
    )

    return schemas.SteeringDocumentListResponse(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=ceil(total / page_size) if total > 0 else 0,
    )


@router.get("/{document_id}", response_model=schemas.SteeringDocumentResponse)
def get_steering_document(
    document_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get a steering document by UUID or reference ID (STD-n)."""
    return steering_service.get_steering_document(db, document_id)


@router.put("/{document_id}", response_model=schemas.SteeringDocumentResponse)
def update_steering_document(
    document_id: str,
    document_update: schemas.SteeringDocumentUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Update a steering document. Only its creator or an administrator may."""
    return steering_service.update_steering_document(db, document_id, document_update, current_user)


@router.delete("/{document_id}", status_code=204)
def delete_steering_document(
    document_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete a steering document and its epic links."""
    steering_service.delete_steering_document(db, document_id, current_user)


@router.post("/{document_id}/epics/{epic_id}", response_model=schemas.SteeringLinkResponse, status_code=201)
def link_steering_document(
    document_id: str,
    epic_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Link a steering document to an epic.

    Returns 409 when the pair is already linked.
    """
    return steering_service.link_to_epic(db, document_id, epic_id, current_user)


@router.delete("/{document_id}/epics/{epic_id}", response_model=schemas.SteeringLinkResponse)
def unlink_steering_document(
    document_id: str,
    epic_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Unlink a steering document from an epic.

    Returns 404 when the pair is not linked.
    """
    return steering_service.unlink_from_epic(db, document_id, epic_id, current_user)
