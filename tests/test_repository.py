"""Tests for the repository layer: reference IDs, lookups and transactions."""
import re
from concurrent.futures import ThreadPoolExecutor
from uuid import uuid4

import pytest
from sqlalchemy.orm import sessionmaker

from prm_core import models, schemas
from prm_core.bootstrap import seed_defaults
from prm_core.database import build_engine
from prm_core.errors import DuplicateKeyError, NotFoundError, ValidationError
from prm_core.models import RequirementType
from prm_core.repository import MAX_REFERENCE_ATTEMPTS, Repositories, RequirementRepository
from prm_core.services import epics as epic_service
from prm_core.services import requirements as requirement_service
from prm_core.services import user_stories as story_service


def _requirement(story, requirement_type, user, title="Requirement") -> models.Requirement:
    return models.Requirement(
        user_story_id=story.id,
        type_id=requirement_type.id,
        title=title,
        priority=3,
        status="Draft",
        creator_id=user.id,
    )


class TestReferenceIds:
    """Test reference ID allocation without the database trigger."""

    def test_sequential_per_prefix(self, db, writer):
        """Test that each prefix counts independently from 1."""
        repos = Repositories(db)
        first = repos.epics.create(models.Epic(title="A", priority=1, creator_id=writer.id))
        second = repos.epics.create(models.Epic(title="B", priority=1, creator_id=writer.id))
        document = repos.steering_documents.create(models.SteeringDocument(title="Guide", creator_id=writer.id))

        assert first.reference_id == "EP-1"
        assert second.reference_id == "EP-2"
        assert document.reference_id == "STD-1"

    def test_numbers_not_padded(self, db, writer):
        repos = Repositories(db)
        for index in range(10):
            epic = repos.epics.create(models.Epic(title=f"Epic {index}", priority=2, creator_id=writer.id))
        assert epic.reference_id == "EP-10"

    def test_deleted_numbers_not_reused(self, db, writer):
        """Test that deleting the newest epic does not free its number."""
        repos = Repositories(db)
        repos.epics.create(models.Epic(title="A", priority=1, creator_id=writer.id))
        newest = repos.epics.create(models.Epic(title="B", priority=1, creator_id=writer.id))
        assert newest.reference_id == "EP-2"

        repos.epics.delete(newest)
        replacement = repos.epics.create(models.Epic(title="C", priority=1, creator_id=writer.id))

        assert replacement.reference_id == "EP-3"

    def test_explicit_reference_ids_skipped(self, db, writer):
        """Test that numbers taken by rows inserted with a reference ID are skipped."""
        repos = Repositories(db)
        repos.epics.create(models.Epic(reference_id="EP-7", title="Imported", priority=1, creator_id=writer.id))

        created = repos.epics.create(models.Epic(title="New", priority=1, creator_id=writer.id))

        assert created.reference_id == "EP-8"

    def test_requirement_retries_taken_ids(self, db, writer, story, monkeypatch):
        """Test that a stale counter and maximum are skipped past with one attempt per taken ID."""
        repos = Repositories(db)
        requirement_type = repos.requirement_types.get_by_name("Functional")
        for index in range(3):
            taken = _requirement(story, requirement_type, writer, f"R{index}")
            taken.reference_id = f"REQ-{index + 1}"
            repos.requirements.create(taken)

        monkeypatch.setattr(RequirementRepository, "max_reference_number", lambda self: 0)
        requirement = repos.requirements.create(_requirement(story, requirement_type, writer, "Fourth"))

        assert requirement.reference_id == "REQ-4"

    def test_requirement_falls_back_after_retries(self, db, writer, story, monkeypatch):
        """Test the random-suffix fallback once every attempt collided."""
        repos = Repositories(db)
        requirement_type = repos.requirement_types.get_by_name("Functional")
        for index in range(MAX_REFERENCE_ATTEMPTS):
            taken = _requirement(story, requirement_type, writer, f"R{index}")
            taken.reference_id = f"REQ-{index + 1}"
            repos.requirements.create(taken)

        monkeypatch.setattr(RequirementRepository, "max_reference_number", lambda self: 0)
        requirement = repos.requirements.create(_requirement(story, requirement_type, writer, "Overflow"))

        assert re.match(r"^REQ-[0-9A-F]{8}$", requirement.reference_id)
        assert repos.requirements.count() == MAX_REFERENCE_ATTEMPTS + 1


class TestConcurrentCreates:
    """Test reference ID allocation with several writers on one database file."""

    WRITERS = 8

    @pytest.fixture
    def file_sessions(self, tmp_path):
        file_engine = build_engine(f"sqlite:///{tmp_path / 'prm.db'}")
        models.Base.metadata.create_all(bind=file_engine)
        yield sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
        file_engine.dispose()

    def test_parallel_requirement_creates_get_distinct_ids(self, file_sessions):
        """Test that parallel creates all succeed with distinct REQ numbers."""
        with file_sessions() as session:
            seed_defaults(session)
            user = models.User(
                username="writer", email="writer@example.com", password_hash="unused", role=models.UserRole.USER,
            )
            session.add(user)
            session.commit()
            epic = epic_service.create_epic(session, schemas.EpicCreate(title="Checkout", priority=2), user)
            story_service.create_user_story(
                session, schemas.UserStoryCreate(epic_id=epic.reference_id, title="Pay by card", priority=2), user,
            )
            user_id = user.id

        def _create(index: int) -> str:
            with file_sessions() as session:
                author = session.get(models.User, user_id)
                requirement = requirement_service.create_requirement(
                    session,
                    schemas.RequirementCreate(
                        user_story_id="US-1", type_id="Functional", title=f"Parallel {index}", priority=3,
                    ),
                    author,
                )
                return requirement.reference_id

        with ThreadPoolExecutor(max_workers=self.WRITERS) as pool:
            references = list(pool.map(_create, range(self.WRITERS)))

        assert len(set(references)) == self.WRITERS
        assert all(re.match(r"^REQ-(\d+|[0-9A-F]{8})$", reference) for reference in references)


class TestLookups:
    """Test lookups by UUID and reference ID."""

    def test_resolve_by_uuid_and_reference(self, db, epic):
        repos = Repositories(db)
        assert repos.epics.resolve(epic.id).id == epic.id
        assert repos.epics.resolve(str(epic.id)).id == epic.id
        assert repos.epics.resolve("EP-1").id == epic.id

    def test_resolve_is_case_insensitive(self, db, epic):
        """Test that ep-1 finds EP-1."""
        assert Repositories(db).epics.resolve("ep-1").id == epic.id

    def test_resolve_rejects_wrong_prefix(self, db, epic):
        with pytest.raises(ValidationError):
            Repositories(db).epics.resolve("US-1")

    def test_resolve_missing(self, db):
        with pytest.raises(NotFoundError):
            Repositories(db).epics.resolve("EP-99")
        with pytest.raises(NotFoundError):
            Repositories(db).epics.resolve(uuid4())

    def test_invalid_order_by_lists_valid_fields(self, db):
        with pytest.raises(ValidationError) as exc_info:
            Repositories(db).epics.list_all(order_by="password desc")

        assert "priority" in exc_info.value.valid_values

    def test_unknown_filter_field(self, db):
        with pytest.raises(ValidationError):
            Repositories(db).epics.list_all(filters={"nonexistent": 1})

    def test_unknown_include_tokens_ignored(self, db, story):
        stories = Repositories(db).user_stories.list_with_includes(includes=["epic", "password_hash"])
        assert stories[0].epic.reference_id == "EP-1"


class TestErrors:
    """Test database error classification."""

    def test_unique_violation_is_duplicate_key(self, db):
        repos = Repositories(db)
        with pytest.raises(DuplicateKeyError):
            repos.requirement_types.create(RequirementType(name="Functional"))

    def test_session_usable_after_failed_write(self, db):
        """Test that a failed write rolls back so the session keeps working."""
        repos = Repositories(db)
        with pytest.raises(DuplicateKeyError):
            repos.requirement_types.create(RequirementType(name="Functional"))

        created = repos.requirement_types.create(RequirementType(name="Security"))
        assert created.id is not None


class TestTransactions:
    """Test transaction scoping."""

    def test_commit_on_success(self, db, writer):
        repos = Repositories(db)
        epic = repos.with_transaction(
            lambda tx: tx.epics.create(models.Epic(title="In tx", priority=2, creator_id=writer.id))
        )
        db.expire_all()
        assert repos.epics.get_by_id(epic.id).title == "In tx"

    def test_rollback_on_error(self, db, writer):
        """Test that nothing written inside a failing transaction survives."""
        repos = Repositories(db)

        def _create_then_fail(tx: Repositories):
            tx.epics.create(models.Epic(title="Doomed", priority=2, creator_id=writer.id))
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            repos.with_transaction(_create_then_fail)

        assert repos.epics.count() == 0

    def test_scoped_repositories_closed_after_commit(self, db):
        """Test that repositories leaked out of a transaction refuse further use."""
        repos = Repositories(db)
        leaked = repos.with_transaction(lambda tx: tx)

        with pytest.raises(RuntimeError):
            leaked.epics.list_all()
