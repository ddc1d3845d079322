"""
Shared pytest fixtures for all tests.

Every test gets its own in-memory SQLite database with the default status
models, requirement types and relationship types seeded.
"""
import os

# Settings are read once; pin them before any prm_core import
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["JWT_SECRET"] = "test-secret"
os.environ.pop("DEFAULT_ADMIN_PASSWORD", None)
os.environ.pop("PRM_PAT", None)

from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from prm_core import models, schemas
from prm_core.auth import create_access_token, hash_password
from prm_core.bootstrap import seed_defaults
from prm_core.config import clear_settings_cache
from prm_core.database import build_engine, get_db
from prm_core.models import Base, UserRole
from prm_core.services import acceptance_criteria as criteria_service
from prm_core.services import epics as epic_service
from prm_core.services import requirements as requirement_service
from prm_core.services import user_stories as story_service

clear_settings_cache()

TEST_PASSWORD = "correct-horse-battery"


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture
def engine():
    """In-memory SQLite engine; StaticPool keeps the single connection alive."""
    test_engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def db(engine) -> Generator[Session, None, None]:
    """Seeded session shared by the test and (through get_db) the API."""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    seed_defaults(session)
    try:
        yield session
    finally:
        session.close()


# =============================================================================
# USER FIXTURES
# =============================================================================

def make_user(db: Session, username: str, role: UserRole) -> models.User:
    user = models.User(
        username=username,
        email=f"{username}@example.com",
        password_hash=hash_password(TEST_PASSWORD),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def password() -> str:
    return TEST_PASSWORD


@pytest.fixture
def admin(db) -> models.User:
    return make_user(db, "admin", UserRole.ADMINISTRATOR)


@pytest.fixture
def writer(db) -> models.User:
    return make_user(db, "writer", UserRole.USER)


@pytest.fixture
def commenter(db) -> models.User:
    return make_user(db, "commenter", UserRole.COMMENTER)


# =============================================================================
# DOMAIN FIXTURES
# =============================================================================

@pytest.fixture
def epic(db, writer) -> models.Epic:
    return epic_service.create_epic(
        db,
        schemas.EpicCreate(title="Checkout", description="Everything about paying for an order", priority=2),
        writer,
    )


@pytest.fixture
def story(db, writer, epic) -> models.UserStory:
    return story_service.create_user_story(
        db,
        schemas.UserStoryCreate(
            epic_id=epic.reference_id,
            title="Pay by card",
            description="As a shopper I want to pay by card",
            priority=2,
        ),
        writer,
    )


@pytest.fixture
def criteria(db, writer, story) -> models.AcceptanceCriteria:
    return criteria_service.create_acceptance_criteria(
        db,
        schemas.AcceptanceCriteriaCreate(
            user_story_id=story.reference_id,
            description="When the card is declined, the system shall show the reason",
        ),
        writer,
    )


@pytest.fixture
def requirement(db, writer, story, criteria) -> models.Requirement:
    return requirement_service.create_requirement(
        db,
        schemas.RequirementCreate(
            user_story_id=story.reference_id,
            acceptance_criteria_id=criteria.reference_id,
            type_id="Functional",
            title="Show decline reason",
            description="The payment page shows the decline reason returned by the gateway",
            priority=1,
        ),
        writer,
    )


# =============================================================================
# API FIXTURES
# =============================================================================

@pytest.fixture
def auth_headers():
    """Build session-token headers for a user."""
    def _headers(user: models.User) -> dict[str, str]:
        token, _ = create_access_token(user)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def client(db) -> Generator[TestClient, None, None]:
    """
    API client bound to the test session.

    Not used as a context manager, so the startup seeding against the
    module-level engine never runs.
    """
    from prm_core.api.main import app

    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
