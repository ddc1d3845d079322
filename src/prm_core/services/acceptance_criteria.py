"""Acceptance criteria operations.

Criteria belong to one user story and carry only a description and an
author. EARS phrasing ("WHEN <trigger> THE SYSTEM SHALL <response>") is
encouraged but not enforced.
"""
import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, schemas
from ..permissions import require_writer
from ..repository import Repositories
from .common import resolve_optional

logger = logging.getLogger("prm-core.acceptance_criteria")


def create_acceptance_criteria(
    db: Session,
    data: schemas.AcceptanceCriteriaCreate,
    user: models.User,
) -> models.AcceptanceCriteria:
    require_writer(user, "create acceptance criteria")
    repos = Repositories(db)
    story = repos.user_stories.resolve(data.user_story_id)
    criteria = repos.acceptance_criteria.create(models.AcceptanceCriteria(
        user_story_id=story.id,
        description=data.description,
        author_id=user.id,
    ))
    logger.info(f"Created acceptance criteria {criteria.reference_id} on {story.reference_id}")
    return criteria


def get_acceptance_criteria(db: Session, identifier: Any) -> models.AcceptanceCriteria:
    return Repositories(db).acceptance_criteria.resolve(identifier)


def list_acceptance_criteria(
    db: Session,
    skip: int = 0,
    limit: int = 50,
    user_story_id: Optional[str] = None,
    author_id: Optional[UUID] = None,
    order_by: Optional[str] = None,
) -> tuple[list[models.AcceptanceCriteria], int]:
    repos = Repositories(db)
    story = resolve_optional(repos.user_stories, user_story_id)
    filters = {"user_story_id": story.id if story else None, "author_id": author_id}
    items = repos.acceptance_criteria.list_all(filters=filters, order_by=order_by, limit=limit, offset=skip)
    return items, repos.acceptance_criteria.count(filters=filters)


def update_acceptance_criteria(
    db: Session,
    identifier: Any,
    data: schemas.AcceptanceCriteriaUpdate,
    user: models.User,
) -> models.AcceptanceCriteria:
    """Only the description can change; the story and author are fixed."""
    require_writer(user, "update acceptance criteria")
    repos = Repositories(db)
    criteria = repos.acceptance_criteria.resolve(identifier)
    if data.description is None:
        return criteria
    return repos.acceptance_criteria.update(criteria, {"description": data.description})
