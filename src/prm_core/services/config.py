"""Configuration entities: requirement types, relationship types, status models.

Reads are open to every authenticated user; writes require an administrator.
"""
import logging
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, schemas
from ..errors import ConflictError, DuplicateKeyError
from ..permissions import require_admin
from ..repository import Repositories
from ..state_machine import get_allowed_transitions, normalize_status
from .common import changed_fields, parse_entity_type

logger = logging.getLogger("prm-core.config")


# ============================================================================
# Requirement types
# ============================================================================

def list_requirement_types(db: Session) -> list[models.RequirementType]:
    return Repositories(db).requirement_types.list_all(order_by="name asc")


def get_requirement_type(db: Session, type_id: UUID) -> models.RequirementType:
    return Repositories(db).requirement_types.get_by_id(type_id)


def create_requirement_type(db: Session, data: schemas.RequirementTypeCreate, user: models.User) -> models.RequirementType:
    require_admin(user, "manage requirement types")
    repos = Repositories(db)
    if repos.requirement_types.get_by_name(data.name) is not None:
        raise DuplicateKeyError(f"Requirement type '{data.name}' already exists")
    created = repos.requirement_types.create(models.RequirementType(name=data.name, description=data.description))
    logger.info(f"Created requirement type '{created.name}'")
    return created


def update_requirement_type(
    db: Session,
    type_id: UUID,
    data: schemas.RequirementTypeUpdate,
    user: models.User,
) -> models.RequirementType:
    require_admin(user, "manage requirement types")
    repos = Repositories(db)
    requirement_type = repos.requirement_types.get_by_id(type_id)
    changes = changed_fields(data, ("name", "description"))
    if "name" in changes:
        existing = repos.requirement_types.get_by_name(changes["name"])
        if existing is not None and existing.id != requirement_type.id:
            raise DuplicateKeyError(f"Requirement type '{changes['name']}' already exists")
    return repos.requirement_types.update(requirement_type, changes)


def delete_requirement_type(db: Session, type_id: UUID, user: models.User) -> None:
    """
    Raises:
        ConflictError: If requirements still use the type
    """
    require_admin(user, "manage requirement types")
    repos = Repositories(db)
    requirement_type = repos.requirement_types.get_by_id(type_id)
    in_use = repos.requirements.count(filters={"type_id": requirement_type.id})
    if in_use:
        raise ConflictError(
            f"Requirement type '{requirement_type.name}' is used by {in_use} requirements",
            details={"dependencies": {"requirements": in_use}},
        )
    repos.requirement_types.delete(requirement_type)


# ============================================================================
# Relationship types
# ============================================================================

def list_relationship_types(db: Session) -> list[models.RelationshipType]:
    return Repositories(db).relationship_types.list_all(order_by="name asc")


def get_relationship_type(db: Session, type_id: UUID) -> models.RelationshipType:
    return Repositories(db).relationship_types.get_by_id(type_id)


def create_relationship_type(
    db: Session,
    data: schemas.RelationshipTypeCreate,
    user: models.User,
) -> models.RelationshipType:
    """
    Raises:
        DuplicateKeyError: If a type with the same name in any case exists
    """
    require_admin(user, "manage relationship types")
    repos = Repositories(db)
    if repos.relationship_types.get_by_name(data.name) is not None:
        raise DuplicateKeyError(f"Relationship type '{data.name}' already exists")
    created = repos.relationship_types.create(models.RelationshipType(name=data.name, description=data.description))
    logger.info(f"Created relationship type '{created.name}'")
    return created


def update_relationship_type(
    db: Session,
    type_id: UUID,
    data: schemas.RelationshipTypeUpdate,
    user: models.User,
) -> models.RelationshipType:
    require_admin(user, "manage relationship types")
    repos = Repositories(db)
    relationship_type = repos.relationship_types.get_by_id(type_id)
    changes = changed_fields(data, ("name", "description"))
    if "name" in changes:
        existing = repos.relationship_types.get_by_name(changes["name"])
        if existing is not None and existing.id != relationship_type.id:
            raise DuplicateKeyError(f"Relationship type '{changes['name']}' already exists")
    return repos.relationship_types.update(relationship_type, changes)


def delete_relationship_type(db: Session, type_id: UUID, user: models.User) -> None:
    require_admin(user, "manage relationship types")
    repos = Repositories(db)
    relationship_type = repos.relationship_types.get_by_id(type_id)
    in_use = repos.relationships.count(filters={"relationship_type_id": relationship_type.id})
    if in_use:
        raise ConflictError(
            f"Relationship type '{relationship_type.name}' is used by {in_use} relationships",
            details={"dependencies": {"relationships": in_use}},
        )
    repos.relationship_types.delete(relationship_type)


# ============================================================================
# Status models (read-only)
# ============================================================================

def list_status_models(db: Session) -> list[models.StatusModel]:
    return Repositories(db).status_models.list_all(order_by="name asc")


def get_status_model(db: Session, model_id: UUID) -> models.StatusModel:
    return Repositories(db).status_models.get_with_statuses(model_id)


def get_default_status_model(db: Session, entity_type: Any) -> models.StatusModel:
    return Repositories(db).status_models.get_default(parse_entity_type(entity_type))


def allowed_transitions(db: Session, entity_type: Any, current_status: str) -> schemas.AllowedTransitionsResponse:
    """Statuses reachable from ``current_status`` in the default model."""
    entity_type = parse_entity_type(entity_type)
    current = normalize_status(entity_type, current_status)
    return schemas.AllowedTransitionsResponse(
        entity_type=entity_type,
        current_status=current,
        allowed_transitions=get_allowed_transitions(db, entity_type, current),
    )
