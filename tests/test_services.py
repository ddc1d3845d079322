"""Tests for the domain services."""
from uuid import uuid4

import pytest

from prm_core import schemas
from prm_core.errors import (
    ConflictError,
    DuplicateKeyError,
    ForbiddenError,
    NotFoundError,
    StatusValidationError,
    ValidationError,
)
from prm_core.models import PromptRole, UserRole
from prm_core.services import comments as comment_service
from prm_core.services import config as config_service
from prm_core.services import epics as epic_service
from prm_core.services import navigation as navigation_service
from prm_core.services import prompts as prompt_service
from prm_core.services import requirements as requirement_service
from prm_core.services import search as search_service
from prm_core.services import steering_documents as steering_service
from prm_core.services import user_stories as story_service
from prm_core.services import users as user_service


class TestEpics:
    """Test epic operations."""

    def test_create_starts_in_backlog(self, db, epic, writer):
        assert epic.reference_id == "EP-1"
        assert epic.status == "Backlog"
        assert epic.creator_id == writer.id

    def test_commenter_cannot_create(self, db, commenter):
        with pytest.raises(ForbiddenError):
            epic_service.create_epic(db, schemas.EpicCreate(title="Nope", priority=1), commenter)

    def test_update_null_leaves_fields_unchanged(self, db, epic, writer):
        """Test that omitted and null fields keep their values."""
        updated = epic_service.update_epic(
            db, epic.reference_id, schemas.EpicUpdate(title="Checkout v2", description=None), writer,
        )
        assert updated.title == "Checkout v2"
        assert updated.description == "Everything about paying for an order"

    def test_assign_and_unassign(self, db, epic, writer, admin):
        assigned = epic_service.assign_epic(db, epic.id, str(admin.id), writer)
        assert assigned.assignee_id == admin.id

        updated = epic_service.update_epic(db, epic.id, schemas.EpicUpdate(assignee_id=""), writer)
        assert updated.assignee_id is None

    def test_assign_unknown_user(self, db, epic, writer):
        with pytest.raises(NotFoundError):
            epic_service.assign_epic(db, epic.id, str(uuid4()), writer)

    def test_status_change_follows_workflow(self, db, epic, writer):
        in_progress = epic_service.change_epic_status(db, epic.id, "in_progress", writer)
        assert in_progress.status == "In Progress"

        with pytest.raises(StatusValidationError) as exc_info:
            epic_service.change_epic_status(db, epic.id, "Backlog", writer)
        assert exc_info.value.valid_values == ["Done", "Cancelled"]

    def test_list_filters_and_total(self, db, writer):
        for priority in (1, 2, 2):
            epic_service.create_epic(db, schemas.EpicCreate(title=f"P{priority}", priority=priority), writer)

        items, total = epic_service.list_epics(db, priority=2, limit=1)

        assert total == 2
        assert len(items) == 1

    def test_hierarchy(self, db, epic, story, criteria, requirement):
        hierarchy = schemas.EpicHierarchyResponse.model_validate(epic_service.get_epic_hierarchy(db, "EP-1"))

        assert hierarchy.user_stories[0].reference_id == story.reference_id
        assert hierarchy.user_stories[0].acceptance_criteria[0].reference_id == criteria.reference_id
        assert hierarchy.user_stories[0].requirements[0].type.name == "Functional"


class TestUserStories:
    """Test user story operations."""

    def test_create_under_missing_epic(self, db, writer):
        with pytest.raises(NotFoundError):
            story_service.create_user_story(
                db, schemas.UserStoryCreate(epic_id="EP-9", title="Orphan", priority=3), writer,
            )

    def test_cannot_create_in_later_status(self, db, epic, writer):
        with pytest.raises(StatusValidationError):
            story_service.create_user_story(
                db,
                schemas.UserStoryCreate(epic_id=epic.reference_id, title="Done already", priority=3, status="Done"),
                writer,
            )


class TestRequirements:
    """Test requirement and relationship operations."""

    def test_type_by_name_and_default_status(self, db, requirement):
        assert requirement.reference_id == "REQ-1"
        assert requirement.status == "Draft"

    def test_unknown_type_lists_valid_names(self, db, story, writer):
        with pytest.raises(NotFoundError) as exc_info:
            requirement_service.create_requirement(
                db,
                schemas.RequirementCreate(user_story_id=str(story.id), type_id="Magic", title="X", priority=3),
                writer,
            )
        assert "Functional" in exc_info.value.details["valid_values"]

    def test_draft_cannot_become_obsolete(self, db, requirement, writer):
        """Test that a draft is only offered Active."""
        with pytest.raises(StatusValidationError) as exc_info:
            requirement_service.change_requirement_status(db, requirement.reference_id, "Obsolete", writer)
        assert exc_info.value.valid_values == ["Active"]

    def test_empty_criteria_unlinks(self, db, requirement, writer):
        updated = requirement_service.update_requirement(
            db, requirement.id, schemas.RequirementUpdate(acceptance_criteria_id=""), writer,
        )
        assert updated.acceptance_criteria_id is None

    def test_relationships(self, db, requirement, story, writer):
        other = requirement_service.create_requirement(
            db, schemas.RequirementCreate(user_story_id=story.reference_id, type_id="Data", title="Y", priority=4), writer,
        )
        forward = requirement_service.create_relationship(
            db,
            schemas.RelationshipCreate(
                source_requirement_id="req-1", target_requirement_id=other.reference_id, relationship_type_id="blocks",
            ),
            writer,
        )
        # Cycles are allowed
        requirement_service.create_relationship(
            db,
            schemas.RelationshipCreate(
                source_requirement_id=other.reference_id, target_requirement_id="REQ-1", relationship_type_id="blocks",
            ),
            writer,
        )

        with pytest.raises(ConflictError):
            requirement_service.create_relationship(
                db,
                schemas.RelationshipCreate(
                    source_requirement_id="REQ-1", target_requirement_id=other.reference_id, relationship_type_id="blocks",
                ),
                writer,
            )
        assert len(requirement_service.list_relationships(db, "REQ-1")) == 2

        detailed = requirement_service.get_requirement_with_relationships(db, "REQ-1")
        assert forward.id in {relationship.id for relationship in detailed.relationships}

    def test_self_relationship_rejected(self, db, requirement, writer):
        with pytest.raises(ValidationError):
            requirement_service.create_relationship(
                db,
                schemas.RelationshipCreate(
                    source_requirement_id="REQ-1", target_requirement_id="REQ-1", relationship_type_id="relates_to",
                ),
                writer,
            )


class TestComments:
    """Test threaded and inline comments."""

    def test_reply_must_share_entity(self, db, epic, story, writer):
        root = comment_service.create_comment(db, "epic", epic.id, schemas.CommentCreate(content="Root"), writer)

        with pytest.raises(ValidationError):
            comment_service.create_comment(
                db, "user_story", story.id, schemas.CommentCreate(content="Reply", parent_comment_id=root.id), writer,
            )

    def test_commenter_may_comment(self, db, epic, commenter):
        comment = comment_service.create_comment(db, "epic", "EP-1", schemas.CommentCreate(content="Hi"), commenter)
        assert comment.author_id == commenter.id

    def test_inline_anchor_must_match(self, db, epic, writer):
        """Test that the range must select linked_text from the description."""
        comment = comment_service.create_comment(
            db,
            "epic",
            epic.id,
            schemas.CommentCreate(content="Which order?", linked_text="order", text_position_start=31, text_position_end=36),
            writer,
        )
        assert comment.is_inline

        with pytest.raises(ValidationError):
            comment_service.create_comment(
                db,
                "epic",
                epic.id,
                schemas.CommentCreate(content="Bad", linked_text="order", text_position_start=0, text_position_end=5),
                writer,
            )

    def test_anchor_beyond_text(self):
        assert "beyond" in comment_service.check_anchor("short", "short!", 0, 6)

    def test_inline_anchor_goes_stale(self, db, epic, writer):
        comment_service.create_comment(
            db,
            "epic",
            epic.id,
            schemas.CommentCreate(content="Which order?", linked_text="order", text_position_start=31, text_position_end=36),
            writer,
        )
        epic_service.update_epic(db, epic.id, schemas.EpicUpdate(description="Rewritten"), writer)

        report = comment_service.validate_inline_comments(db, "epic", epic.id)

        assert report.valid_count == 0
        assert report.stale_count == 1

    def test_only_author_or_admin_edits(self, db, epic, writer, commenter, admin):
        comment = comment_service.create_comment(db, "epic", epic.id, schemas.CommentCreate(content="Mine"), writer)

        with pytest.raises(ForbiddenError):
            comment_service.update_comment(db, comment.id, schemas.CommentUpdate(content="Yours"), commenter)
        edited = comment_service.update_comment(db, comment.id, schemas.CommentUpdate(content="Admin"), admin)
        assert edited.content == "Admin"

    def test_comment_with_replies_cannot_be_deleted(self, db, epic, writer):
        root = comment_service.create_comment(db, "epic", epic.id, schemas.CommentCreate(content="Root"), writer)
        comment_service.create_comment(
            db, "epic", epic.id, schemas.CommentCreate(content="Reply", parent_comment_id=root.id), writer,
        )

        with pytest.raises(ConflictError) as exc_info:
            comment_service.delete_comment(db, root.id, writer)
        assert exc_info.value.details == {"dependencies": {"replies": 1}}

    def test_resolve_root_only(self, db, epic, writer):
        root = comment_service.create_comment(db, "epic", epic.id, schemas.CommentCreate(content="Root"), writer)
        reply = comment_service.create_comment(
            db, "epic", epic.id, schemas.CommentCreate(content="Reply", parent_comment_id=root.id), writer,
        )

        assert comment_service.set_resolved(db, root.id, True, writer).is_resolved is True
        with pytest.raises(ValidationError):
            comment_service.set_resolved(db, reply.id, True, writer)

        unresolved, total = comment_service.list_comments(db, "epic", epic.id, is_resolved=False)
        assert total == 0

    def test_root_comments_paginated(self, db, epic, writer):
        """Test that pages hold root comments only, oldest first, with the full root count."""
        roots = [
            comment_service.create_comment(db, "epic", epic.id, schemas.CommentCreate(content=f"Root {index}"), writer)
            for index in range(3)
        ]
        comment_service.create_comment(
            db, "epic", epic.id, schemas.CommentCreate(content="Reply", parent_comment_id=roots[0].id), writer,
        )

        page, total = comment_service.list_comments(db, "epic", epic.id, skip=1, limit=1)

        assert total == 3
        assert [comment.content for comment in page] == ["Root 1"]

    def test_unknown_entity_type(self, db, writer):
        with pytest.raises(ValidationError) as exc_info:
            comment_service.create_comment(db, "project", uuid4(), schemas.CommentCreate(content="?"), writer)
        assert "requirement" in exc_info.value.valid_values


class TestNavigation:
    """Test hierarchy expansion and entity paths."""

    def test_requirement_path(self, db, requirement):
        path = navigation_service.get_entity_path(db, "requirement", "req-1").path

        assert [(step.entity_type, step.reference_id) for step in path] == [
            ("epic", "EP-1"), ("user_story", "US-1"), ("requirement", "REQ-1"),
        ]
        assert path[0].title == "Checkout"

    def test_criteria_path_title_is_shortened(self, db, criteria):
        """Test that acceptance criteria show the start of their description."""
        step = navigation_service.get_entity_path(db, "acceptance_criteria", criteria.id).path[-1]

        assert step.title == criteria.description[:50] + "..."

    def test_epic_path_is_the_epic(self, db, epic):
        assert [step.reference_id for step in navigation_service.get_entity_path(db, "epic", "EP-1").path] == ["EP-1"]

    def test_unknown_entity_type(self, db):
        with pytest.raises(ValidationError):
            navigation_service.get_entity_path(db, "project", "EP-1")

    def test_hierarchy_expands_only_requested_levels(self, db, requirement):
        bare = navigation_service.get_hierarchy(db)
        assert bare.total == 1
        assert bare.epics[0].user_stories == []

        expanded = navigation_service.get_hierarchy(db, expand="user_stories, requirements")
        story = expanded.epics[0].user_stories[0]
        assert [r.reference_id for r in story.requirements] == ["REQ-1"]
        assert story.acceptance_criteria == []

    def test_user_story_tree_with_relationships(self, db, requirement, story, writer):
        other = requirement_service.create_requirement(
            db, schemas.RequirementCreate(user_story_id="US-1", type_id="Data", title="Store reason", priority=3), writer,
        )
        requirement_service.create_relationship(
            db,
            schemas.RelationshipCreate(
                source_requirement_id="REQ-1", target_requirement_id=other.reference_id, relationship_type_id="depends_on",
            ),
            writer,
        )

        tree = navigation_service.get_user_story_tree(db, "US-1", "acceptance_criteria,requirements,relationships")

        assert [c.reference_id for c in tree.acceptance_criteria] == ["AC-1"]
        assert {r.reference_id: len(r.relationships) for r in tree.requirements} == {"REQ-1": 1, "REQ-2": 1}

    def test_unknown_expand_lists_valid_values(self, db, epic):
        with pytest.raises(ValidationError) as exc_info:
            navigation_service.get_epic_tree(db, "EP-1", expand="comments")
        assert "relationships" in exc_info.value.valid_values


class TestSteeringDocuments:
    """Test steering documents and epic links."""

    def test_link_and_unlink(self, db, epic, writer):
        document = steering_service.create_steering_document(
            db, schemas.SteeringDocumentCreate(title="Tone of voice"), writer,
        )
        steering_service.link_to_epic(db, "std-1", "ep-1", writer)

        with pytest.raises(ConflictError):
            steering_service.link_to_epic(db, document.id, epic.id, writer)
        assert [d.id for d in steering_service.list_epic_steering_documents(db, "EP-1")] == [document.id]

        assert steering_service.unlink_from_epic(db, document.id, epic.id, writer).linked is False
        with pytest.raises(NotFoundError):
            steering_service.unlink_from_epic(db, document.id, epic.id, writer)

    def test_only_creator_or_admin_edits(self, db, writer, admin):
        document = steering_service.create_steering_document(
            db, schemas.SteeringDocumentCreate(title="Glossary"), admin,
        )

        with pytest.raises(ForbiddenError):
            steering_service.update_steering_document(
                db, document.id, schemas.SteeringDocumentUpdate(title="Mine now"), writer,
            )


class TestPrompts:
    """Test prompt management."""

    def _create(self, db, admin, name):
        return prompt_service.create_prompt(
            db, schemas.PromptCreate(name=name, title=name.title(), content=f"You are {name}."), admin,
        )

    def test_admin_only(self, db, writer):
        with pytest.raises(ForbiddenError):
            self._create(db, writer, "planner")

    def test_new_prompt_is_inactive(self, db, admin):
        prompt = self._create(db, admin, "planner")
        assert prompt.is_active is False
        assert prompt.role == PromptRole.ASSISTANT
        assert prompt.reference_id == "PROMPT-1"

    def test_duplicate_name(self, db, admin):
        self._create(db, admin, "planner")
        with pytest.raises(DuplicateKeyError):
            self._create(db, admin, "planner")

    def test_single_active_prompt(self, db, admin):
        """Test that activating one prompt deactivates every other."""
        first = self._create(db, admin, "planner")
        second = self._create(db, admin, "reviewer")

        prompt_service.activate_prompt(db, first.id, admin)
        prompt_service.activate_prompt(db, "PROMPT-2", admin)

        active, total = prompt_service.list_prompts(db, is_active=True)
        assert total == 1
        assert active[0].id == second.id
        assert prompt_service.get_active_prompt(db).id == second.id

    def test_no_active_prompt(self, db):
        with pytest.raises(NotFoundError):
            prompt_service.get_active_prompt(db)


class TestUsers:
    """Test account administration."""

    def test_create_user(self, db, admin):
        created = user_service.create_user(
            db, schemas.UserCreate(username="newbie", email="newbie@example.com", password="long-enough"), admin,
        )
        assert created.role == UserRole.USER

    def test_duplicate_username(self, db, admin, writer):
        with pytest.raises(DuplicateKeyError):
            user_service.create_user(
                db, schemas.UserCreate(username="writer", email="other@example.com", password="long-enough"), admin,
            )

    def test_writer_cannot_manage_users(self, db, writer):
        with pytest.raises(ForbiddenError):
            user_service.create_user(
                db, schemas.UserCreate(username="sneaky", email="sneaky@example.com", password="long-enough"), writer,
            )

    def test_admin_cannot_demote_self(self, db, admin):
        with pytest.raises(ValidationError):
            user_service.update_user(db, admin.id, schemas.UserUpdate(role=UserRole.USER), admin)

    def test_referenced_user_cannot_be_deleted(self, db, admin, writer, epic):
        with pytest.raises(ConflictError) as exc_info:
            user_service.delete_user(db, writer.id, admin)
        assert exc_info.value.details["dependencies"] == {"epics": 1}

    def test_cannot_delete_self(self, db, admin):
        with pytest.raises(ConflictError):
            user_service.delete_user(db, admin.id, admin)


class TestConfig:
    """Test configuration entities."""

    def test_defaults_seeded(self, db):
        names = [t.name for t in config_service.list_requirement_types(db)]
        assert "Functional" in names
        assert "depends_on" in [t.name for t in config_service.list_relationship_types(db)]

    def test_type_in_use_cannot_be_deleted(self, db, admin, requirement):
        with pytest.raises(ConflictError) as exc_info:
            config_service.delete_requirement_type(db, requirement.type_id, admin)
        assert exc_info.value.details == {"dependencies": {"requirements": 1}}

    def test_allowed_transitions(self, db):
        response = config_service.allowed_transitions(db, "requirement", "draft")

        assert response.current_status == "Draft"
        assert response.allowed_transitions == ["Active"]


class TestSearch:
    """Test global search on the substring backend."""

    def test_finds_by_text(self, db, epic, story, requirement):
        response = search_service.search(db, "decline")

        assert response.total == 2  # Acceptance criterion and requirement
        assert {r.entity_type for r in response.results} == {"acceptance_criteria", "requirement"}

    def test_reference_id_first(self, db, epic, story, requirement):
        response = search_service.search(db, "us-1")

        assert response.results[0].reference_id == "US-1"
        assert response.results[0].relevance == 1.0

    def test_restrict_entity_types(self, db, epic, story, requirement):
        response = search_service.search(db, "card", entity_types=["user_story"])
        assert [r.reference_id for r in response.results] == ["US-1"]

    def test_title_match_outranks_description_match(self, db, writer):
        """Test that relevance decides the order before recency, and pages slice that order."""
        epic_service.create_epic(db, schemas.EpicCreate(title="Refund flow", priority=2), writer)
        epic_service.create_epic(
            db, schemas.EpicCreate(title="Billing", description="Handles refund requests", priority=2), writer,
        )
        epic_service.create_epic(db, schemas.EpicCreate(title="Shipping", priority=2), writer)

        response = search_service.search(db, "REFUND", entity_types=["epic"])
        assert [(r.reference_id, r.relevance) for r in response.results] == [("EP-1", 0.75), ("EP-2", 0.5)]

        page = search_service.search(db, "refund", entity_types=["epic"], limit=1, offset=1)
        assert [r.reference_id for r in page.results] == ["EP-2"]
        assert page.total == 2

    @pytest.mark.parametrize("kwargs", [{"query": "  "}, {"query": "x", "limit": 0}, {"query": "x", "offset": -1}])
    def test_invalid_arguments(self, db, kwargs):
        with pytest.raises(ValidationError):
            search_service.search(db, **kwargs)
