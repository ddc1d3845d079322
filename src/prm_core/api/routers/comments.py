"""Comments API endpoints.

Comments attach to an entity addressed as /{entity_type}/{entity_id}, where
entity_type is epic, user_story, acceptance_criteria or requirement and
entity_id is a UUID or reference ID. Single comments are addressed by UUID.
"""
import logging
from math import ceil
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from prm_core import models, schemas
from prm_core.database import get_db
from prm_core.errors import PRMError
from prm_core.services import comments as comment_service

from ..dependencies import get_current_user

logger = logging.getLogger("prm-api.comments")

router = APIRouter(tags=["comments"])


# Single comment endpoints (declared first so /{comment_id}/replies wins)

@router.get("/{comment_id}/replies", response_model=schemas.CommentListResponse)
def list_replies(
    comment_id: UUID,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List direct replies to a comment, oldest first."""
    skip = (page - 1) * page_size
    items, total = comment_service.list_replies(db, comment_id, skip=skip, limit=page_size)

    return schemas.CommentListResponse(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=ceil(total / page_size) if total > 0 else 0,
    )


@router.get("/{comment_id}", response_model=schemas.CommentResponse)
def get_comment(
    comment_id: UUID,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return comment_service.get_comment(db, comment_id)


@router.put("/{comment_id}", response_model=schemas.CommentResponse)
def update_comment(
    comment_id: UUID,
    comment_update: schemas.CommentUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Edit a comment. Only the author or an administrator may edit."""
    return comment_service.update_comment(db, comment_id, comment_update, current_user)


@router.delete("/{comment_id}", status_code=204)
def delete_comment(
    comment_id: UUID,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Delete a comment. Only the author or an administrator may delete.

    Returns 409 while the comment has replies.
    """
    comment_service.delete_comment(db, comment_id, current_user)


@router.patch("/{comment_id}/resolve", response_model=schemas.CommentResponse)
def resolve_comment(
    comment_id: UUID,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Mark a root comment resolved. Replies cannot be resolved on their own."""
    return comment_service.set_resolved(db, comment_id, True, current_user)


@router.patch("/{comment_id}/unresolve", response_model=schemas.CommentResponse)
def unresolve_comment(
    comment_id: UUID,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return comment_service.set_resolved(db, comment_id, False, current_user)


# Entity-scoped endpoints

@router.post("/{entity_type}/{entity_id}", response_model=schemas.CommentResponse, status_code=201)
def create_comment(
    entity_type: str,
    entity_id: str,
    comment: schemas.CommentCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Comment on an entity.

    - **content**: Comment text
    - **parent_comment_id**: Reply to this comment (same entity)
    - **linked_text**, **text_position_start**, **text_position_end**: Inline
      anchor; the range must select linked_text from the entity description
    """
    try:
        return comment_service.create_comment(db, entity_type, entity_id, comment, current_user)
    except PRMError as e:
        logger.warning(f"Error creating comment on {entity_type} {entity_id}: {e}")
        raise
    except Exception as e:
        logger.error(f"Error creating comment on {entity_type} {entity_id}: {e}", exc_info=True)
        raise


@router.get("/{entity_type}/{entity_id}", response_model=schemas.CommentListResponse)
def list_comments(
    entity_type: str,
    entity_id: str,
    is_resolved: Optional[bool] = Query(None, description="Filter by resolution state"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    List root comments of an entity. Replies are listed per comment.
    """
    skip = (page - 1) * page_size
    items, total = comment_service.list_comments(
        db, entity_type, entity_id, is_resolved=is_resolved, skip=skip, limit=page_size
    )

    return schemas.CommentListResponse(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=ceil(total / page_size) if total > 0 else 0,
    )


@router.get("/{entity_type}/{entity_id}/inline", response_model=list[schemas.CommentResponse])
def list_inline_comments(
    entity_type: str,
    entity_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List inline comments of an entity ordered by anchor position."""
    return comment_service.list_inline_comments(db, entity_type, entity_id)


@router.get("/{entity_type}/{entity_id}/inline/validate", response_model=schemas.InlineValidationResponse)
def validate_inline_comments(
    entity_type: str,
    entity_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Check every inline anchor against the current description.

    A comment is stale when its range no longer selects its linked text.
    """
    return comment_service.validate_inline_comments(db, entity_type, entity_id)
