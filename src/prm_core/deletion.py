"""Dependency-aware deletion of epics, user stories, acceptance criteria and requirements.

Two operations:
- validate_deletion: report the direct dependents of an entity, grouped by kind
- delete: refuse when dependents exist, or (force) remove the whole subtree
  in one transaction and report per-kind counts

Forced deletes run in reverse hierarchy order: relationships, comments,
requirements, acceptance criteria, user stories, epic. Requirements outside
the subtree that point at a deleted acceptance criterion keep existing with
the link nulled.
"""
import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from . import models
from .errors import ConflictError, ValidationError
from .models import EntityType, utcnow
from .permissions import require_writer
from .repository import Repositories
from .schemas import DeletionResult, DependencyItem, DependencyReport

logger = logging.getLogger("prm-core.deletion")


@dataclass
class _DeletionPlan:
    """Everything a forced delete of one root would touch."""

    root: Any
    epics: list = field(default_factory=list)
    user_stories: list = field(default_factory=list)
    acceptance_criteria: list = field(default_factory=list)
    requirements: list = field(default_factory=list)
    relationships: list = field(default_factory=list)
    # Requirements outside the subtree linked to a criterion inside it
    detached_requirements: list = field(default_factory=list)


def parse_entity_type(entity_type) -> EntityType:
    try:
        return EntityType(entity_type)
    except ValueError:
        raise ValidationError(
            f"Unsupported entity type '{entity_type}'",
            valid_values=[e.value for e in EntityType],
        )


def repository_for(repos: Repositories, entity_type: EntityType):
    return {
        EntityType.EPIC: repos.epics,
        EntityType.USER_STORY: repos.user_stories,
        EntityType.ACCEPTANCE_CRITERIA: repos.acceptance_criteria,
        EntityType.REQUIREMENT: repos.requirements,
    }[entity_type]


def _build_plan(repos: Repositories, entity_type: EntityType, root) -> _DeletionPlan:
    plan = _DeletionPlan(root=root)

    if entity_type == EntityType.EPIC:
        plan.epics = [root]
        plan.user_stories = repos.user_stories.get_by_epic(root.id)
    elif entity_type == EntityType.USER_STORY:
        plan.user_stories = [root]
    elif entity_type == EntityType.ACCEPTANCE_CRITERIA:
        plan.acceptance_criteria = [root]
        plan.detached_requirements = repos.requirements.get_by_acceptance_criteria([root.id])
        return plan
    else:
        plan.requirements = [root]
        plan.relationships = repos.relationships.get_by_requirement(root.id)
        return plan

    story_ids = [story.id for story in plan.user_stories]
    plan.acceptance_criteria = repos.acceptance_criteria.get_by_user_stories(story_ids)
    plan.requirements = repos.requirements.get_by_user_stories(story_ids)
    plan.relationships = repos.relationships.get_by_requirements([r.id for r in plan.requirements])

    requirement_ids = {r.id for r in plan.requirements}
    linked = repos.requirements.get_by_acceptance_criteria([ac.id for ac in plan.acceptance_criteria])
    plan.detached_requirements = [r for r in linked if r.id not in requirement_ids]
    return plan


def _item(entity_type: str, entity) -> DependencyItem:
    title = getattr(entity, "title", None)
    if title is None and hasattr(entity, "description") and entity_type == "acceptance_criteria":
        title = (entity.description or "")[:100]
    return DependencyItem(
        entity_type=entity_type,
        entity_id=entity.id,
        reference_id=getattr(entity, "reference_id", None),
        title=title,
    )


def _relationship_item(relationship: models.RequirementRelationship) -> DependencyItem:
    return DependencyItem(
        entity_type="relationship",
        entity_id=relationship.id,
        title=f"{relationship.source_requirement_id} -> {relationship.target_requirement_id}",
    )


def _direct_dependencies(entity_type: EntityType, plan: _DeletionPlan) -> dict[str, list[DependencyItem]]:
    if entity_type == EntityType.EPIC:
        groups = {"user_stories": [_item("user_story", s) for s in plan.user_stories]}
    elif entity_type == EntityType.USER_STORY:
        groups = {
            "acceptance_criteria": [_item("acceptance_criteria", ac) for ac in plan.acceptance_criteria],
            "requirements": [_item("requirement", r) for r in plan.requirements],
            "relationships": [_relationship_item(rel) for rel in plan.relationships],
        }
    elif entity_type == EntityType.ACCEPTANCE_CRITERIA:
        groups = {"requirements": [_item("requirement", r) for r in plan.detached_requirements]}
    else:
        groups = {"relationships": [_relationship_item(rel) for rel in plan.relationships]}
    return {kind: items for kind, items in groups.items() if items}


def _cascade_preview(entity_type: EntityType, plan: _DeletionPlan) -> list[DependencyItem]:
    """Entities removed besides the root itself."""
    preview = []
    if entity_type == EntityType.EPIC:
        preview.extend(_item("user_story", s) for s in plan.user_stories)
    if entity_type in (EntityType.EPIC, EntityType.USER_STORY):
        preview.extend(_item("acceptance_criteria", ac) for ac in plan.acceptance_criteria)
        preview.extend(_item("requirement", r) for r in plan.requirements)
    preview.extend(_relationship_item(rel) for rel in plan.relationships)
    return preview


def validate_deletion(db: Session, entity_type, identifier) -> DependencyReport:
    """
    Report what deleting an entity would affect.

    Args:
        db: Database session
        entity_type: epic, user_story, acceptance_criteria or requirement
        identifier: UUID or reference ID of the entity

    Returns:
        DependencyReport with direct dependents grouped by kind. can_delete
        is True when there are none.

    Raises:
        NotFoundError: If the entity does not exist
    """
    entity_type = parse_entity_type(entity_type)
    repos = Repositories(db)
    root = repository_for(repos, entity_type).resolve(identifier)
    plan = _build_plan(repos, entity_type, root)

    dependencies = _direct_dependencies(entity_type, plan)
    cascade = _cascade_preview(entity_type, plan)
    return DependencyReport(
        entity_type=entity_type.value,
        entity_id=root.id,
        reference_id=getattr(root, "reference_id", None),
        can_delete=not dependencies,
        dependencies=dependencies,
        cascade_delete_count=len(cascade),
        cascade_delete_entities=cascade,
        requires_confirmation=bool(dependencies),
    )


def _new_transaction_id() -> str:
    return f"del_{int(time.time())}_{secrets.token_hex(4)}"


def delete(db: Session, entity_type, identifier, force: bool, user: models.User) -> DeletionResult:
    """
    Delete an entity, cascading to its subtree when forced.

    Args:
        db: Database session
        entity_type: epic, user_story, acceptance_criteria or requirement
        identifier: UUID or reference ID of the root
        force: Remove dependents instead of refusing
        user: Caller (must hold the User or Administrator role)

    Returns:
        DeletionResult with per-kind counts of removed rows (kinds with no
        removed rows are omitted)

    Raises:
        NotFoundError: If the entity does not exist (including already deleted)
        ConflictError: If dependents exist and force is False
        ForbiddenError: If the caller may not delete domain entities
    """
    require_writer(user)
    entity_type = parse_entity_type(entity_type)
    transaction_id = _new_transaction_id()

    def _delete(tx: Repositories) -> DeletionResult:
        root = repository_for(tx, entity_type).resolve(identifier)
        plan = _build_plan(tx, entity_type, root)
        dependencies = _direct_dependencies(entity_type, plan)

        if dependencies and not force:
            counts = {kind: len(items) for kind, items in dependencies.items()}
            logger.info(f"[{transaction_id}] Refused delete of {entity_type.value} {root.id}: dependents {counts}")
            raise ConflictError(
                f"{entity_type.value.replace('_', ' ').capitalize()} {getattr(root, 'reference_id', root.id)} "
                "cannot be deleted due to dependencies. Use force=true to override.",
                details={"dependencies": counts},
            )

        reference_id = getattr(root, "reference_id", None)
        root_id = root.id
        logger.info(
            f"[{transaction_id}] Deleting {entity_type.value} {reference_id or root_id} "
            f"(force={force}) by user {user.id}"
        )

        deleted: dict[str, int] = {}

        deleted["relationships"] = tx.relationships.delete_many([rel.id for rel in plan.relationships])
        logger.info(f"[{transaction_id}] Deleted {deleted['relationships']} relationships")

        comment_targets = [
            (EntityType.REQUIREMENT, plan.requirements),
            (EntityType.ACCEPTANCE_CRITERIA, plan.acceptance_criteria),
            (EntityType.USER_STORY, plan.user_stories),
            (EntityType.EPIC, plan.epics),
        ]
        deleted["comments"] = 0
        for comment_type, entities in comment_targets:
            deleted["comments"] += tx.comments.delete_for_entities(comment_type, [e.id for e in entities])
        logger.info(f"[{transaction_id}] Deleted {deleted['comments']} comments")

        deleted["requirements"] = tx.requirements.delete_many([r.id for r in plan.requirements])
        logger.info(f"[{transaction_id}] Deleted {deleted['requirements']} requirements")

        detached = tx.requirements.clear_acceptance_criteria([ac.id for ac in plan.acceptance_criteria])
        if detached:
            logger.info(f"[{transaction_id}] Unlinked {detached} requirements from deleted acceptance criteria")

        deleted["acceptance_criteria"] = tx.acceptance_criteria.delete_many([ac.id for ac in plan.acceptance_criteria])
        logger.info(f"[{transaction_id}] Deleted {deleted['acceptance_criteria']} acceptance criteria")

        deleted["user_stories"] = tx.user_stories.delete_many([s.id for s in plan.user_stories])
        logger.info(f"[{transaction_id}] Deleted {deleted['user_stories']} user stories")

        for epic in plan.epics:
            for document in list(epic.steering_documents):
                tx.steering_documents.unlink(epic.id, document.id)
        deleted["epics"] = tx.epics.delete_many([e.id for e in plan.epics])
        logger.info(f"[{transaction_id}] Deleted {deleted['epics']} epics")

        return DeletionResult(
            entity_type=entity_type.value,
            entity_id=root_id,
            reference_id=reference_id,
            deleted={kind: count for kind, count in deleted.items() if count},
            deleted_at=utcnow(),
            deleted_by=user.id,
            transaction_id=transaction_id,
        )

    try:
        result = Repositories(db).with_transaction(_delete)
    except Exception:
        logger.warning(f"[{transaction_id}] Deletion of {entity_type.value} {identifier} rolled back")
        raise
    logger.info(f"[{transaction_id}] Deletion committed: {result.deleted}")
    return result
