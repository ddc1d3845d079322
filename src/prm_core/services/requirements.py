"""Requirement and requirement relationship operations."""
import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, schemas
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import EntityType
from ..permissions import require_writer
from ..reference_ids import parse_uuid
from ..repository import Repositories
from ..state_machine import resolve_initial_status
from .common import changed_fields, filter_status, next_status, resolve_assignee, resolve_optional

logger = logging.getLogger("prm-core.requirements")

UPDATABLE_FIELDS = (
    "title",
    "description",
    "priority",
    "status",
    "assignee_id",
    "acceptance_criteria_id",
    "type_id",
)


def resolve_requirement_type(repos: Repositories, value: Any) -> models.RequirementType:
    """Requirement type by UUID or by name (case-insensitive)."""
    type_id = parse_uuid(value)
    if type_id is not None:
        return repos.requirement_types.get_by_id(type_id)
    requirement_type = repos.requirement_types.get_by_name(str(value).strip())
    if requirement_type is None:
        names = [t.name for t in repos.requirement_types.list_all(order_by="name asc")]
        raise NotFoundError(f"Requirement type '{value}' not found", details={"valid_values": names})
    return requirement_type


def resolve_relationship_type(repos: Repositories, value: Any) -> models.RelationshipType:
    """Relationship type by UUID or by name (case-insensitive)."""
    type_id = parse_uuid(value)
    if type_id is not None:
        return repos.relationship_types.get_by_id(type_id)
    relationship_type = repos.relationship_types.get_by_name(str(value).strip())
    if relationship_type is None:
        names = [t.name for t in repos.relationship_types.list_all(order_by="name asc")]
        raise NotFoundError(f"Relationship type '{value}' not found", details={"valid_values": names})
    return relationship_type


def create_requirement(db: Session, data: schemas.RequirementCreate, user: models.User) -> models.Requirement:
    """
    Create a requirement under a user story.

    The optional acceptance criterion may belong to any story.

    Raises:
        NotFoundError: If the story, criterion, type or assignee does not exist
        StatusValidationError: If an explicit status is not the initial one
    """
    require_writer(user, "create requirements")
    repos = Repositories(db)
    story = repos.user_stories.resolve(data.user_story_id)
    criteria = resolve_optional(repos.acceptance_criteria, data.acceptance_criteria_id)
    requirement_type = resolve_requirement_type(repos, data.type_id)

    requirement = repos.requirements.create(models.Requirement(
        user_story_id=story.id,
        acceptance_criteria_id=criteria.id if criteria else None,
        type_id=requirement_type.id,
        title=data.title,
        description=data.description,
        priority=data.priority,
        status=resolve_initial_status(db, EntityType.REQUIREMENT, data.status),
        creator_id=user.id,
        assignee_id=resolve_assignee(repos, data.assignee_id),
    ))
    logger.info(f"Created requirement {requirement.reference_id} ({requirement_type.name}) on {story.reference_id}")
    return requirement


def get_requirement(db: Session, identifier: Any) -> models.Requirement:
    return Repositories(db).requirements.resolve(identifier)


def list_requirements(
    db: Session,
    skip: int = 0,
    limit: int = 50,
    user_story_id: Optional[str] = None,
    acceptance_criteria_id: Optional[str] = None,
    type_id: Optional[str] = None,
    status: Optional[str] = None,
    priority: Optional[int] = None,
    creator_id: Optional[UUID] = None,
    assignee_id: Optional[UUID] = None,
    order_by: Optional[str] = None,
) -> tuple[list[models.Requirement], int]:
    repos = Repositories(db)
    story = resolve_optional(repos.user_stories, user_story_id)
    criteria = resolve_optional(repos.acceptance_criteria, acceptance_criteria_id)
    requirement_type = resolve_requirement_type(repos, type_id) if type_id else None
    filters = {
        "user_story_id": story.id if story else None,
        "acceptance_criteria_id": criteria.id if criteria else None,
        "type_id": requirement_type.id if requirement_type else None,
        "status": filter_status(EntityType.REQUIREMENT, status),
        "priority": priority,
        "creator_id": creator_id,
        "assignee_id": assignee_id,
    }
    items = repos.requirements.list_all(filters=filters, order_by=order_by, limit=limit, offset=skip)
    return items, repos.requirements.count(filters=filters)


def update_requirement(
    db: Session,
    identifier: Any,
    data: schemas.RequirementUpdate,
    user: models.User,
) -> models.Requirement:
    """
    Update whitelisted requirement fields.

    An empty assignee_id unassigns; an empty acceptance_criteria_id unlinks
    the criterion. type_id accepts a UUID or a type name.
    """
    require_writer(user, "update requirements")
    repos = Repositories(db)
    requirement = repos.requirements.resolve(identifier)
    changes = changed_fields(data, UPDATABLE_FIELDS)

    if "status" in changes:
        changes["status"] = next_status(db, EntityType.REQUIREMENT, requirement.status, changes["status"])
    if "assignee_id" in changes:
        changes["assignee_id"] = resolve_assignee(repos, changes["assignee_id"])
    if "acceptance_criteria_id" in changes:
        criteria = resolve_optional(repos.acceptance_criteria, changes["acceptance_criteria_id"])
        changes["acceptance_criteria_id"] = criteria.id if criteria else None
    if "type_id" in changes:
        changes["type_id"] = resolve_requirement_type(repos, changes["type_id"]).id

    requirement = repos.requirements.update(requirement, changes)
    logger.info(f"Updated requirement {requirement.reference_id}: {sorted(changes)}")
    return requirement


def change_requirement_status(db: Session, identifier: Any, status: str, user: models.User) -> models.Requirement:
    """
    Move a requirement along its workflow (Draft → Active → Obsolete ⇄ Active).

    Raises:
        StatusValidationError: valid_values lists the statuses reachable
            from the current one
    """
    require_writer(user, "change requirement status")
    repos = Repositories(db)
    requirement = repos.requirements.resolve(identifier)
    new_status = next_status(db, EntityType.REQUIREMENT, requirement.status, status)
    if new_status == requirement.status:
        return requirement
    previous = requirement.status
    requirement = repos.requirements.update(requirement, {"status": new_status})
    logger.info(f"Requirement {requirement.reference_id} status: {previous} → {new_status}")
    return requirement


def assign_requirement(
    db: Session,
    identifier: Any,
    assignee_id: Optional[str],
    user: models.User,
) -> models.Requirement:
    require_writer(user, "assign requirements")
    repos = Repositories(db)
    requirement = repos.requirements.resolve(identifier)
    return repos.requirements.update(requirement, {"assignee_id": resolve_assignee(repos, assignee_id)})


def get_requirement_with_relationships(db: Session, identifier: Any) -> schemas.RequirementWithRelationshipsResponse:
    """Requirement plus every relationship in which it is source or target."""
    repos = Repositories(db)
    requirement = repos.requirements.resolve(identifier)
    relationships = repos.relationships.get_by_requirement(requirement.id)
    response = schemas.RequirementWithRelationshipsResponse.model_validate(requirement)
    response.relationships = [schemas.RelationshipResponse.model_validate(r) for r in relationships]
    return response


# ============================================================================
# Relationships
# ============================================================================

def create_relationship(
    db: Session,
    data: schemas.RelationshipCreate,
    user: models.User,
) -> models.RequirementRelationship:
    """
    Create a typed, directed relationship between two requirements.

    Cycles are allowed.

    Raises:
        NotFoundError: If either requirement or the type does not exist
        ValidationError: If source and target are the same requirement
        ConflictError: If the same (source, target, type) already exists
    """
    require_writer(user, "create relationships")
    repos = Repositories(db)
    source = repos.requirements.resolve(data.source_requirement_id)
    target = repos.requirements.resolve(data.target_requirement_id)
    if source.id == target.id:
        raise ValidationError("A requirement cannot have a relationship with itself")
    relationship_type = resolve_relationship_type(repos, data.relationship_type_id)

    if repos.relationships.exists_triple(source.id, target.id, relationship_type.id):
        raise ConflictError(
            f"Relationship {source.reference_id} {relationship_type.name} {target.reference_id} already exists"
        )

    relationship = repos.relationships.create(models.RequirementRelationship(
        source_requirement_id=source.id,
        target_requirement_id=target.id,
        relationship_type_id=relationship_type.id,
        created_by=user.id,
    ))
    logger.info(f"Created relationship {source.reference_id} -[{relationship_type.name}]-> {target.reference_id}")
    return relationship


def list_relationships(db: Session, identifier: Any) -> list[models.RequirementRelationship]:
    """Inbound and outbound relationships of a requirement."""
    repos = Repositories(db)
    requirement = repos.requirements.resolve(identifier)
    return repos.relationships.get_by_requirement(requirement.id)


def get_relationship(db: Session, relationship_id: UUID) -> models.RequirementRelationship:
    return Repositories(db).relationships.get_by_id(relationship_id)


def delete_relationship(db: Session, relationship_id: UUID, user: models.User) -> None:
    require_writer(user, "delete relationships")
    repos = Repositories(db)
    relationship = repos.relationships.get_by_id(relationship_id)
    repos.relationships.delete(relationship)
    logger.info(f"Deleted relationship {relationship_id}")
