"""Helpers shared by the domain services."""
import logging
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..deletion import parse_entity_type
from ..errors import NotFoundError, ValidationError
from ..models import EntityType
from ..reference_ids import parse_uuid
from ..repository import Repositories
from ..state_machine import normalize_status, validate_transition

logger = logging.getLogger("prm-core.services")


def resolve_assignee(repos: Repositories, value: Optional[Any]) -> Optional[UUID]:
    """
    Resolve an assignee field.

    None and the empty string mean "no assignee".

    Raises:
        ValidationError: If the value is not a UUID
        NotFoundError: If no user has this ID
    """
    if value is None or value == "":
        return None
    user_id = parse_uuid(value)
    if user_id is None:
        raise ValidationError(f"assignee_id '{value}' is not a valid user ID")
    if not repos.users.exists(user_id):
        raise NotFoundError(f"User {value} not found")
    return user_id


def changed_fields(data: BaseModel, allowed: tuple[str, ...]) -> dict[str, Any]:
    """
    Fields explicitly set on an update payload, restricted to ``allowed``.

    Explicit nulls are dropped (omitted and null both mean "unchanged"),
    except for the empty string, which the caller interprets.
    """
    return {
        key: value
        for key, value in data.model_dump(exclude_unset=True).items()
        if key in allowed and value is not None
    }


def next_status(db: Session, entity_type: EntityType, current: str, requested: str) -> str:
    """Normalize a requested status and check it is reachable from ``current``."""
    status = normalize_status(entity_type, requested, db=db, current_status=current)
    validate_transition(db, entity_type, current, status)
    return status


def resolve_optional(repository, identifier: Optional[Any]) -> Optional[Any]:
    """Resolve an optional UUID/reference filter; None passes through."""
    if identifier is None or identifier == "":
        return None
    return repository.resolve(identifier)


def filter_status(entity_type: EntityType, status: Optional[str]) -> Optional[str]:
    """Normalize a status list filter; empty means no filter."""
    if not status:
        return None
    return normalize_status(entity_type, status)
