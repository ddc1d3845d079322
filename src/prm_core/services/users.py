"""User administration."""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import hash_password
from ..errors import ConflictError, DuplicateKeyError, ValidationError
from ..models import UserRole
from ..permissions import require_admin
from ..repository import Repositories

logger = logging.getLogger("prm-core.users")


def create_user(db: Session, data: schemas.UserCreate, user: models.User) -> models.User:
    """
    Create an account (administrators only).

    Raises:
        DuplicateKeyError: If the username or email is taken
    """
    require_admin(user, "manage users")
    repos = Repositories(db)
    if repos.users.get_by_username(data.username) is not None:
        raise DuplicateKeyError(f"Username '{data.username}' is already taken")
    if repos.users.get_by_email(data.email) is not None:
        raise DuplicateKeyError(f"Email '{data.email}' is already registered")
    created = repos.users.create(models.User(
        username=data.username,
        email=data.email,
        password_hash=hash_password(data.password),
        role=data.role,
    ))
    logger.info(f"User {user.username} created user '{created.username}' ({created.role.value})")
    return created


def get_user(db: Session, user_id: UUID) -> models.User:
    return Repositories(db).users.get_by_id(user_id)


def list_users(
    db: Session,
    skip: int = 0,
    limit: int = 50,
    role: Optional[UserRole] = None,
) -> tuple[list[models.User], int]:
    repository = Repositories(db).users
    filters = {"role": role}
    items = repository.list_all(filters=filters, order_by="created_at asc", limit=limit, offset=skip)
    return items, repository.count(filters=filters)


def update_user(db: Session, user_id: UUID, data: schemas.UserUpdate, user: models.User) -> models.User:
    """
    Change a user's email or role.

    Raises:
        DuplicateKeyError: If the new email is taken
        ValidationError: If an administrator would demote themselves
    """
    require_admin(user, "manage users")
    repos = Repositories(db)
    target = repos.users.get_by_id(user_id)
    changes = {}
    if data.email is not None and data.email != target.email:
        existing = repos.users.get_by_email(data.email)
        if existing is not None and existing.id != target.id:
            raise DuplicateKeyError(f"Email '{data.email}' is already registered")
        changes["email"] = data.email
    if data.role is not None and data.role != target.role:
        if target.id == user.id:
            raise ValidationError("Administrators cannot change their own role")
        changes["role"] = data.role
    return repos.users.update(target, changes)


def delete_user(db: Session, user_id: UUID, user: models.User) -> None:
    """
    Delete an account.

    Raises:
        ConflictError: If the user created, is assigned to or authored
            anything, or is the caller
    """
    require_admin(user, "manage users")
    repos = Repositories(db)
    target = repos.users.get_by_id(user_id)
    if target.id == user.id:
        raise ConflictError("You cannot delete your own account")
    references = repos.users.reference_counts(target.id)
    if references:
        raise ConflictError(
            f"User '{target.username}' is still referenced and cannot be deleted",
            details={"dependencies": references},
        )
    repos.users.delete(target)
    logger.info(f"User {user.username} deleted user '{target.username}'")
