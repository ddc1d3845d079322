"""Role gating at the service boundary.

Roles are ordered: Commenter < User < Administrator.
- Administrator: manage users, configuration and prompts (and everything below)
- User: create and mutate domain entities
- Commenter: comment only
"""
import logging
from uuid import UUID

from .errors import ForbiddenError
from .models import User, UserRole

logger = logging.getLogger("prm-core.permissions")

ROLE_RANK: dict[UserRole, int] = {
    UserRole.COMMENTER: 1,
    UserRole.USER: 2,
    UserRole.ADMINISTRATOR: 3,
}


def has_role(user: User, minimum: UserRole) -> bool:
    """Check whether the user's role is at least ``minimum``."""
    return ROLE_RANK.get(UserRole(user.role), 0) >= ROLE_RANK[minimum]


def require_role(user: User, minimum: UserRole, action: str = "perform this action") -> None:
    """
    Raise unless the user's role is at least ``minimum``.

    Raises:
        ForbiddenError: If the role is insufficient
    """
    if not has_role(user, minimum):
        logger.warning(f"Forbidden: user {user.username} ({UserRole(user.role).value}) tried to {action}")
        raise ForbiddenError(
            f"{minimum.value} role required to {action}",
            details={"required_role": minimum.value, "role": UserRole(user.role).value},
        )


def require_admin(user: User, action: str = "manage this resource") -> None:
    require_role(user, UserRole.ADMINISTRATOR, action)


def require_writer(user: User, action: str = "modify domain entities") -> None:
    require_role(user, UserRole.USER, action)


def require_commenter(user: User, action: str = "comment") -> None:
    require_role(user, UserRole.COMMENTER, action)


def require_owner_or_admin(user: User, owner_id: UUID, action: str = "modify this resource") -> None:
    """Allow the owner of a resource or an administrator."""
    if user.id == owner_id or has_role(user, UserRole.ADMINISTRATOR):
        return
    logger.warning(f"Forbidden: user {user.username} is not the owner and tried to {action}")
    raise ForbiddenError(f"Only the owner or an administrator may {action}")
