"""User administration API endpoints."""
import logging
from math import ceil
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from prm_core import models, schemas
from prm_core.database import get_db
from prm_core.permissions import require_admin
from prm_core.services import users as user_service

from ..dependencies import get_current_user

logger = logging.getLogger("prm-api.users")

router = APIRouter(tags=["users"])


@router.post("/", response_model=schemas.UserResponse, status_code=201)
def create_user(
    user: schemas.UserCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create a user (administrators only).

    - **username**: 3-50 characters, unique
    - **email**: Unique email address
    - **password**: At least 8 characters
    - **role**: Administrator, User or Commenter (default: User)
    """
    return user_service.create_user(db, user, current_user)


@router.get("/", response_model=schemas.UserListResponse)
def list_users(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    role: Optional[models.UserRole] = Query(None, description="Filter by role"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List users (administrators only)."""
    require_admin(current_user, "list users")
    skip = (page - 1) * page_size
    items, total = user_service.list_users(db, skip=skip, limit=page_size, role=role)

    return schemas.UserListResponse(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=ceil(total / page_size) if total > 0 else 0,
    )


@router.get("/{user_id}", response_model=schemas.UserResponse)
def get_user(
    user_id: UUID,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get a user. Any authenticated caller may look up a user by ID."""
    return user_service.get_user(db, user_id)


@router.put("/{user_id}", response_model=schemas.UserResponse)
def update_user(
    user_id: UUID,
    user_update: schemas.UserUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Change a user's email or role (administrators only)."""
    return user_service.update_user(db, user_id, user_update, current_user)


@router.delete("/{user_id}", status_code=204)
def delete_user(
    user_id: UUID,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Delete a user (administrators only).

    Returns 409 while the user is a creator, assignee or author of anything.
    """
    user_service.delete_user(db, user_id, current_user)
