"""User story operations."""
import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, schemas
from ..models import EntityType
from ..permissions import require_writer
from ..repository import Repositories
from ..state_machine import resolve_initial_status
from .common import changed_fields, filter_status, next_status, resolve_assignee, resolve_optional

logger = logging.getLogger("prm-core.user_stories")

UPDATABLE_FIELDS = ("title", "description", "priority", "status", "assignee_id")


def create_user_story(db: Session, data: schemas.UserStoryCreate, user: models.User) -> models.UserStory:
    """
    Create a user story under an epic.

    Args:
        db: Database session
        data: Payload; epic_id accepts a UUID or EP-n
        user: Caller, recorded as creator

    Raises:
        NotFoundError: If the epic or assignee does not exist
        StatusValidationError: If an explicit status is not the initial one
    """
    require_writer(user, "create user stories")
    repos = Repositories(db)
    epic = repos.epics.resolve(data.epic_id)
    story = repos.user_stories.create(models.UserStory(
        epic_id=epic.id,
        title=data.title,
        description=data.description,
        priority=data.priority,
        status=resolve_initial_status(db, EntityType.USER_STORY, data.status),
        creator_id=user.id,
        assignee_id=resolve_assignee(repos, data.assignee_id),
    ))
    logger.info(f"Created user story {story.reference_id} under {epic.reference_id}")
    return story


def get_user_story(db: Session, identifier: Any) -> models.UserStory:
    return Repositories(db).user_stories.resolve(identifier)


def list_user_stories(
    db: Session,
    skip: int = 0,
    limit: int = 50,
    epic_id: Optional[str] = None,
    status: Optional[str] = None,
    priority: Optional[int] = None,
    creator_id: Optional[UUID] = None,
    assignee_id: Optional[UUID] = None,
    order_by: Optional[str] = None,
) -> tuple[list[models.UserStory], int]:
    repos = Repositories(db)
    epic = resolve_optional(repos.epics, epic_id)
    filters = {
        "epic_id": epic.id if epic else None,
        "status": filter_status(EntityType.USER_STORY, status),
        "priority": priority,
        "creator_id": creator_id,
        "assignee_id": assignee_id,
    }
    items = repos.user_stories.list_all(filters=filters, order_by=order_by, limit=limit, offset=skip)
    return items, repos.user_stories.count(filters=filters)


def update_user_story(
    db: Session,
    identifier: Any,
    data: schemas.UserStoryUpdate,
    user: models.User,
) -> models.UserStory:
    """Update whitelisted fields; the parent epic cannot be changed."""
    require_writer(user, "update user stories")
    repos = Repositories(db)
    story = repos.user_stories.resolve(identifier)
    changes = changed_fields(data, UPDATABLE_FIELDS)

    if "status" in changes:
        changes["status"] = next_status(db, EntityType.USER_STORY, story.status, changes["status"])
    if "assignee_id" in changes:
        changes["assignee_id"] = resolve_assignee(repos, changes["assignee_id"])

    story = repos.user_stories.update(story, changes)
    logger.info(f"Updated user story {story.reference_id}: {sorted(changes)}")
    return story


def change_user_story_status(db: Session, identifier: Any, status: str, user: models.User) -> models.UserStory:
    require_writer(user, "change user story status")
    repos = Repositories(db)
    story = repos.user_stories.resolve(identifier)
    new_status = next_status(db, EntityType.USER_STORY, story.status, status)
    if new_status == story.status:
        return story
    previous = story.status
    story = repos.user_stories.update(story, {"status": new_status})
    logger.info(f"User story {story.reference_id} status: {previous} → {new_status}")
    return story


def assign_user_story(
    db: Session,
    identifier: Any,
    assignee_id: Optional[str],
    user: models.User,
) -> models.UserStory:
    require_writer(user, "assign user stories")
    repos = Repositories(db)
    story = repos.user_stories.resolve(identifier)
    return repos.user_stories.update(story, {"assignee_id": resolve_assignee(repos, assignee_id)})


def get_user_story_with_children(db: Session, identifier: Any) -> models.UserStory:
    """User story with its epic, acceptance criteria and requirements loaded."""
    repos = Repositories(db)
    story = repos.user_stories.resolve(identifier)
    return repos.user_stories.get_by_id_with_preloads(story.id)
