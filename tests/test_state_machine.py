"""Tests for the configurable status engine."""
import pytest

from prm_core.errors import StatusValidationError
from prm_core.models import EntityType, StatusModel
from prm_core.state_machine import (
    canonical_statuses,
    get_allowed_transitions,
    get_initial_status,
    is_transition_valid,
    normalize_status,
    resolve_initial_status,
    seed_default_status_models,
    validate_transition,
)


class TestNormalizeStatus:
    """Test mapping of user input to canonical status names."""

    @pytest.mark.parametrize("raw", ["In Progress", "in progress", "inprogress", "in_progress", "IN-PROGRESS"])
    def test_in_progress_spellings(self, raw):
        """Test that every accepted spelling of In Progress normalizes."""
        assert normalize_status(EntityType.EPIC, raw) == "In Progress"

    @pytest.mark.parametrize("raw", ["canceled", "Cancelled", "CANCELLED"])
    def test_cancelled_spellings(self, raw):
        """Test that both spellings of Cancelled normalize to the canonical one."""
        assert normalize_status(EntityType.USER_STORY, raw) == "Cancelled"

    def test_requirement_status_case_insensitive(self):
        assert normalize_status(EntityType.REQUIREMENT, "active") == "Active"

    def test_unknown_status_lists_all_statuses(self):
        """Test that an unknown value without a current status lists every status."""
        with pytest.raises(StatusValidationError) as exc_info:
            normalize_status(EntityType.REQUIREMENT, "Approved")

        assert exc_info.value.valid_values == ["Draft", "Active", "Obsolete"]
        assert exc_info.value.details["requested_status"] == "Approved"

    def test_unknown_status_lists_reachable_statuses(self, db):
        """Test that with a current status only the reachable statuses are offered."""
        with pytest.raises(StatusValidationError) as exc_info:
            normalize_status(EntityType.REQUIREMENT, "Approved", db=db, current_status="Draft")

        assert exc_info.value.valid_values == ["Active"]

    def test_epic_status_is_not_a_requirement_status(self):
        with pytest.raises(StatusValidationError):
            normalize_status(EntityType.REQUIREMENT, "In Progress")


class TestTransitions:
    """Test transition validation against the seeded default models."""

    def test_requirement_workflow(self, db):
        """Test the Draft → Active → Obsolete → Active workflow."""
        assert is_transition_valid(db, EntityType.REQUIREMENT, "Draft", "Active")
        assert is_transition_valid(db, EntityType.REQUIREMENT, "Active", "Obsolete")
        assert is_transition_valid(db, EntityType.REQUIREMENT, "Obsolete", "Active")

    def test_draft_requirement_cannot_become_obsolete(self, db):
        """Test that a draft must be activated before it can be retired."""
        with pytest.raises(StatusValidationError) as exc_info:
            validate_transition(db, EntityType.REQUIREMENT, "Draft", "Obsolete")

        assert exc_info.value.valid_values == ["Active"]
        assert exc_info.value.current_status == "Draft"
        assert exc_info.value.requested_status == "Obsolete"

    def test_no_op_transition_is_allowed(self, db):
        validate_transition(db, EntityType.EPIC, "Done", "Done")  # Should not raise

    def test_epic_allowed_transitions_in_display_order(self, db):
        assert get_allowed_transitions(db, EntityType.EPIC, "Backlog") == ["Draft", "In Progress", "Cancelled"]
        assert get_allowed_transitions(db, EntityType.EPIC, "In Progress") == ["Done", "Cancelled"]

    def test_done_epic_can_only_reopen(self, db):
        with pytest.raises(StatusValidationError) as exc_info:
            validate_transition(db, EntityType.EPIC, "Done", "Backlog")

        assert exc_info.value.valid_values == ["In Progress"]

    def test_user_story_shares_epic_workflow(self, db):
        assert get_allowed_transitions(db, EntityType.USER_STORY, "Cancelled") == ["Backlog"]


class TestInitialStatus:
    """Test the status assigned to new entities."""

    def test_initial_statuses(self, db):
        assert get_initial_status(db, EntityType.EPIC) == "Backlog"
        assert get_initial_status(db, EntityType.USER_STORY) == "Backlog"
        assert get_initial_status(db, EntityType.REQUIREMENT) == "Draft"

    def test_omitted_status_uses_initial(self, db):
        assert resolve_initial_status(db, EntityType.REQUIREMENT, None) == "Draft"
        assert resolve_initial_status(db, EntityType.EPIC, "") == "Backlog"

    def test_explicit_initial_status_is_accepted(self, db):
        assert resolve_initial_status(db, EntityType.EPIC, "backlog") == "Backlog"

    def test_non_initial_status_is_rejected(self, db):
        """Test that an entity cannot be created directly in a later status."""
        with pytest.raises(StatusValidationError) as exc_info:
            resolve_initial_status(db, EntityType.REQUIREMENT, "Active")

        assert exc_info.value.valid_values == ["Draft"]


class TestSeeding:
    """Test default status model seeding."""

    def test_seeding_is_idempotent(self, db):
        """Test that a second seeding run creates nothing."""
        assert seed_default_status_models(db) == 0
        assert db.query(StatusModel).filter(StatusModel.is_default.is_(True)).count() == 3

    def test_canonical_statuses(self):
        assert canonical_statuses(EntityType.EPIC) == ["Backlog", "Draft", "In Progress", "Done", "Cancelled"]
        assert canonical_statuses(EntityType.ACCEPTANCE_CRITERIA) == []
