"""Personal access token API endpoints. Callers manage only their own tokens."""
import logging
from math import ceil
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from prm_core import models, pat, schemas
from prm_core.database import get_db

from ..dependencies import get_current_user

logger = logging.getLogger("prm-api.pats")

router = APIRouter(tags=["personal-access-tokens"])


@router.post("/", response_model=schemas.PATCreateResponse, status_code=201)
def create_pat(
    request: schemas.PATCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create a personal access token.

    - **name**: Unique among the caller's tokens
    - **scopes**: Default ["full_access"]
    - **expires_at**: Optional expiry in the future

    The plaintext token is returned only in this response.
    """
    token, created = pat.create_pat(
        db,
        current_user,
        name=request.name,
        scopes=request.scopes,
        expires_at=request.expires_at,
    )
    return schemas.PATCreateResponse(token=token, pat=created)


@router.get("/", response_model=schemas.PATListResponse)
def list_pats(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    skip = (page - 1) * page_size
    items, total = pat.list_pats(db, current_user, skip=skip, limit=page_size)

    return schemas.PATListResponse(
        items=items,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=ceil(total / page_size) if total > 0 else 0,
    )


@router.get("/{pat_id}", response_model=schemas.PATResponse)
def get_pat(
    pat_id: UUID,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return pat.get_pat(db, current_user, pat_id)


@router.delete("/{pat_id}", status_code=204)
def revoke_pat(
    pat_id: UUID,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Revoke a token. Requests using it fail with 401 afterwards."""
    pat.revoke_pat(db, current_user, pat_id)
