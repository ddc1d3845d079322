"""Global search endpoint."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from prm_core import models, schemas
from prm_core.database import get_db
from prm_core.services import search as search_service

from ..dependencies import get_current_user

logger = logging.getLogger("prm-api.search")

router = APIRouter(tags=["search"])


@router.get("/", response_model=schemas.SearchResponse)
def search(
    q: str = Query(..., min_length=1, description="Search text or a reference ID"),
    entity_types: Optional[list[str]] = Query(
        None, description="Subset of epic, user_story, acceptance_criteria, requirement"
    ),
    limit: int = Query(50, ge=1, le=100, description="Maximum results"),
    offset: int = Query(0, ge=0, description="Results to skip"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Search epics, user stories, acceptance criteria and requirements.

    - **q**: Text to find in titles, descriptions and reference IDs
    - **entity_types**: Repeat the parameter to search several types (default: all)
    - **limit**: 1-100
    - **offset**: Pagination offset

    Results are ordered by relevance. A query that is a reference ID
    (e.g. US-1) returns that entity first.
    """
    return search_service.search(db, q, entity_types=entity_types, limit=limit, offset=offset)
