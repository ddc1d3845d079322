"""Epic operations."""
import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, schemas
from ..models import EntityType
from ..permissions import require_writer
from ..repository import Repositories
from ..state_machine import resolve_initial_status
from .common import changed_fields, filter_status, next_status, resolve_assignee

logger = logging.getLogger("prm-core.epics")

UPDATABLE_FIELDS = ("title", "description", "priority", "status", "assignee_id")


def create_epic(db: Session, data: schemas.EpicCreate, user: models.User) -> models.Epic:
    """
    Create an epic owned by the caller.

    The status defaults to the initial status of the epic workflow.

    Raises:
        ForbiddenError: If the caller cannot write domain entities
        StatusValidationError: If an explicit status is not the initial one
        NotFoundError: If the assignee does not exist
    """
    require_writer(user, "create epics")
    repos = Repositories(db)
    epic = models.Epic(
        title=data.title,
        description=data.description,
        priority=data.priority,
        status=resolve_initial_status(db, EntityType.EPIC, data.status),
        creator_id=user.id,
        assignee_id=resolve_assignee(repos, data.assignee_id),
    )
    epic = repos.epics.create(epic)
    logger.info(f"Created epic {epic.reference_id}: {epic.title}")
    return epic


def get_epic(db: Session, identifier: Any) -> models.Epic:
    """Get an epic by UUID or reference ID (EP-n, any case)."""
    return Repositories(db).epics.resolve(identifier)


def list_epics(
    db: Session,
    skip: int = 0,
    limit: int = 50,
    status: Optional[str] = None,
    priority: Optional[int] = None,
    creator_id: Optional[UUID] = None,
    assignee_id: Optional[UUID] = None,
    order_by: Optional[str] = None,
) -> tuple[list[models.Epic], int]:
    """
    List epics with filters and pagination.

    Returns:
        (items, total matching)
    """
    filters = {
        "status": filter_status(EntityType.EPIC, status),
        "priority": priority,
        "creator_id": creator_id,
        "assignee_id": assignee_id,
    }
    repository = Repositories(db).epics
    items = repository.list_all(filters=filters, order_by=order_by, limit=limit, offset=skip)
    return items, repository.count(filters=filters)


def update_epic(db: Session, identifier: Any, data: schemas.EpicUpdate, user: models.User) -> models.Epic:
    """
    Update whitelisted epic fields.

    Omitted fields are unchanged; an empty assignee_id unassigns. A status
    change must follow the epic workflow.
    """
    require_writer(user, "update epics")
    repos = Repositories(db)
    epic = repos.epics.resolve(identifier)
    changes = changed_fields(data, UPDATABLE_FIELDS)

    if "status" in changes:
        changes["status"] = next_status(db, EntityType.EPIC, epic.status, changes["status"])
    if "assignee_id" in changes:
        changes["assignee_id"] = resolve_assignee(repos, changes["assignee_id"])

    epic = repos.epics.update(epic, changes)
    logger.info(f"Updated epic {epic.reference_id}: {sorted(changes)}")
    return epic


def change_epic_status(db: Session, identifier: Any, status: str, user: models.User) -> models.Epic:
    """Move an epic to another status of its workflow."""
    require_writer(user, "change epic status")
    repos = Repositories(db)
    epic = repos.epics.resolve(identifier)
    new_status = next_status(db, EntityType.EPIC, epic.status, status)
    if new_status == epic.status:
        return epic
    previous = epic.status
    epic = repos.epics.update(epic, {"status": new_status})
    logger.info(f"Epic {epic.reference_id} status: {previous} → {new_status}")
    return epic


def assign_epic(db: Session, identifier: Any, assignee_id: Optional[str], user: models.User) -> models.Epic:
    """Set or clear (None / "") the epic's assignee."""
    require_writer(user, "assign epics")
    repos = Repositories(db)
    epic = repos.epics.resolve(identifier)
    return repos.epics.update(epic, {"assignee_id": resolve_assignee(repos, assignee_id)})


def get_epic_hierarchy(db: Session, identifier: Any) -> models.Epic:
    """Epic with steering documents, user stories, criteria and requirements."""
    repos = Repositories(db)
    epic = repos.epics.resolve(identifier)
    return repos.epics.get_complete_hierarchy(epic.id)


def get_epic_with_user_stories(db: Session, identifier: Any) -> models.Epic:
    repos = Repositories(db)
    epic = repos.epics.resolve(identifier)
    return repos.epics.get_by_id_with_preloads(epic.id)


def list_epic_user_stories(
    db: Session,
    identifier: Any,
    skip: int = 0,
    limit: int = 50,
) -> tuple[list[models.UserStory], int]:
    """User stories of an epic, oldest first."""
    repos = Repositories(db)
    epic = repos.epics.resolve(identifier)
    items = repos.user_stories.get_by_epic(epic.id, limit=limit, offset=skip)
    return items, repos.user_stories.count_by_epic(epic.id)
