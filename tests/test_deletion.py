"""Tests for dependency-aware deletion."""
import pytest

from prm_core import deletion, models, schemas
from prm_core.errors import ConflictError, ForbiddenError, NotFoundError
from prm_core.models import EntityType
from prm_core.repository import Repositories
from prm_core.services import comments as comment_service
from prm_core.services import requirements as requirement_service
from prm_core.services import steering_documents as steering_service


@pytest.fixture
def other_requirement(db, writer, story):
    return requirement_service.create_requirement(
        db,
        schemas.RequirementCreate(
            user_story_id=story.reference_id,
            type_id="Non-Functional",
            title="Respond within 2 seconds",
            priority=2,
        ),
        writer,
    )


@pytest.fixture
def relationship(db, writer, requirement, other_requirement):
    return requirement_service.create_relationship(
        db,
        schemas.RelationshipCreate(
            source_requirement_id=requirement.reference_id,
            target_requirement_id=other_requirement.reference_id,
            relationship_type_id="depends_on",
        ),
        writer,
    )


class TestValidateDeletion:
    """Test dependency reports."""

    def test_leaf_requirement_can_be_deleted(self, db, requirement):
        report = deletion.validate_deletion(db, EntityType.REQUIREMENT, requirement.reference_id)

        assert report.can_delete is True
        assert report.dependencies == {}
        assert report.requires_confirmation is False

    def test_epic_reports_user_stories(self, db, epic, story, requirement):
        """Test that only direct dependents block, while the cascade lists everything."""
        report = deletion.validate_deletion(db, "epic", "ep-1")

        assert report.can_delete is False
        assert list(report.dependencies) == ["user_stories"]
        assert report.dependencies["user_stories"][0].reference_id == story.reference_id
        # Story, criterion and requirement
        assert report.cascade_delete_count == 3

    def test_requirement_reports_relationships(self, db, requirement, relationship):
        report = deletion.validate_deletion(db, EntityType.REQUIREMENT, requirement.id)

        assert report.can_delete is False
        assert len(report.dependencies["relationships"]) == 1

    def test_missing_entity(self, db):
        with pytest.raises(NotFoundError):
            deletion.validate_deletion(db, EntityType.EPIC, "EP-42")


class TestDelete:
    """Test non-forced and forced deletion."""

    def test_refuses_with_dependents(self, db, writer, epic, story):
        """Test that a non-forced delete of a parent returns the dependent counts."""
        with pytest.raises(ConflictError) as exc_info:
            deletion.delete(db, EntityType.EPIC, epic.reference_id, force=False, user=writer)

        assert exc_info.value.details == {"dependencies": {"user_stories": 1}}
        assert Repositories(db).epics.exists(epic.id)

    def test_force_removes_subtree(self, db, writer, epic, story, criteria, requirement, other_requirement, relationship):
        """Test that a forced epic delete removes the whole subtree and reports counts."""
        comment_service.create_comment(
            db, "epic", epic.id, schemas.CommentCreate(content="Looks good"), writer,
        )
        comment_service.create_comment(
            db, "requirement", requirement.reference_id, schemas.CommentCreate(content="Clarify"), writer,
        )

        result = deletion.delete(db, EntityType.EPIC, epic.reference_id, force=True, user=writer)

        assert result.deleted == {
            "relationships": 1,
            "comments": 2,
            "requirements": 2,
            "acceptance_criteria": 1,
            "user_stories": 1,
            "epics": 1,
        }
        assert result.reference_id == "EP-1"
        assert result.deleted_by == writer.id
        assert result.transaction_id.startswith("del_")

        repos = Repositories(db)
        assert repos.epics.count() == 0
        assert repos.requirements.count() == 0
        assert repos.comments.count() == 0

    def test_leaf_delete_without_force(self, db, writer, other_requirement):
        result = deletion.delete(db, EntityType.REQUIREMENT, other_requirement.reference_id, force=False, user=writer)
        assert result.deleted == {"requirements": 1}

    def test_criteria_delete_keeps_linked_requirement(self, db, writer, criteria, requirement):
        """Test that a requirement outside the subtree survives with its criterion link nulled."""
        result = deletion.delete(db, EntityType.ACCEPTANCE_CRITERIA, criteria.reference_id, force=True, user=writer)

        assert result.deleted == {"acceptance_criteria": 1}
        db.expire_all()
        survivor = Repositories(db).requirements.get_by_id(requirement.id)
        assert survivor.acceptance_criteria_id is None

    def test_epic_delete_unlinks_steering_documents(self, db, writer, epic):
        """Test that steering documents outlive the epics they were linked to."""
        document = steering_service.create_steering_document(
            db, schemas.SteeringDocumentCreate(title="Style guide"), writer,
        )
        steering_service.link_to_epic(db, document.reference_id, epic.reference_id, writer)

        deletion.delete(db, EntityType.EPIC, epic.reference_id, force=False, user=writer)

        assert Repositories(db).steering_documents.exists(document.id)

    def test_second_delete_is_not_found(self, db, writer, other_requirement):
        deletion.delete(db, EntityType.REQUIREMENT, other_requirement.reference_id, force=True, user=writer)

        with pytest.raises(NotFoundError):
            deletion.delete(db, EntityType.REQUIREMENT, other_requirement.reference_id, force=True, user=writer)

    def test_commenter_cannot_delete(self, db, commenter, epic):
        with pytest.raises(ForbiddenError):
            deletion.delete(db, EntityType.EPIC, epic.reference_id, force=True, user=commenter)
