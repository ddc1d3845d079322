"""Startup seeding of default configuration rows.

Idempotent: safe to run on every start. Creates the default status models,
requirement types, relationship types and (when DEFAULT_ADMIN_PASSWORD is
set) the bootstrap administrator.
"""
import logging

from sqlalchemy.orm import Session

from .auth import hash_password
from .config import get_settings
from .models import RelationshipType, RequirementType, User, UserRole
from .repository import Repositories
from .state_machine import seed_default_status_models

logger = logging.getLogger("prm-core.bootstrap")

DEFAULT_REQUIREMENT_TYPES = [
    ("Functional", "Behaviour the system must provide"),
    ("Non-Functional", "Quality attribute such as performance, security or usability"),
    ("Business Rule", "Policy or constraint imposed by the business"),
    ("Interface", "Contract with an external system or user interface"),
    ("Data", "Data structure, retention or integrity requirement"),
]

DEFAULT_RELATIONSHIP_TYPES = [
    ("depends_on", "Source cannot be completed before the target"),
    ("blocks", "Source prevents progress on the target"),
    ("relates_to", "Source and target are related"),
    ("conflicts_with", "Source and target cannot both be satisfied"),
    ("derives_from", "Source was derived from the target"),
]


def seed_requirement_types(db: Session) -> int:
    repos = Repositories(db)
    created = 0
    for name, description in DEFAULT_REQUIREMENT_TYPES:
        if repos.requirement_types.get_by_name(name) is None:
            repos.requirement_types.create(RequirementType(name=name, description=description))
            created += 1
    return created


def seed_relationship_types(db: Session) -> int:
    repos = Repositories(db)
    created = 0
    for name, description in DEFAULT_RELATIONSHIP_TYPES:
        if repos.relationship_types.get_by_name(name) is None:
            repos.relationship_types.create(RelationshipType(name=name, description=description))
            created += 1
    return created


def seed_default_admin(db: Session) -> bool:
    """Create the bootstrap administrator if configured and missing."""
    settings = get_settings()
    if not settings.default_admin_password:
        return False
    repos = Repositories(db)
    if repos.users.get_by_username(settings.default_admin_username) is not None:
        return False
    repos.users.create(User(
        username=settings.default_admin_username,
        email=settings.default_admin_email,
        password_hash=hash_password(settings.default_admin_password),
        role=UserRole.ADMINISTRATOR,
    ))
    logger.info(f"Created bootstrap administrator '{settings.default_admin_username}'")
    return True


def seed_defaults(db: Session) -> dict[str, int]:
    """
    Seed every default configuration row.

    Returns:
        Number of rows created per kind
    """
    summary = {
        "status_models": seed_default_status_models(db),
        "requirement_types": seed_requirement_types(db),
        "relationship_types": seed_relationship_types(db),
        "admin_users": int(seed_default_admin(db)),
    }
    logger.info(f"Seeded defaults: {summary}")
    return summary
