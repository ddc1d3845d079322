"""Repository layer: typed CRUD over the ORM models.

Organized by entity:
- Base repository (generic CRUD, reference lookup, includes, ordering)
- Hierarchy repositories (epics, user stories, acceptance criteria, requirements)
- Relationship, comment, steering document and prompt repositories
- User and credential repositories
- Status model repository
- ``Repositories`` aggregate with transaction scoping

Repositories obtained from a root ``Repositories`` commit after each write.
Repositories handed to a ``with_transaction`` callback only flush; the
callback's transaction commits or rolls back as a whole, after which those
repositories refuse further use.
"""
import logging
import secrets
from datetime import datetime
from typing import Any, Callable, Generic, Optional, TypeVar
from uuid import UUID, uuid4

from sqlalchemy import Integer, cast, func, or_
from sqlalchemy.exc import IntegrityError, NoResultFound, SQLAlchemyError
from sqlalchemy.orm import Query, RelationshipProperty, Session, selectinload

from . import models
from .database import is_postgresql
from .errors import (
    DuplicateKeyError,
    ForeignKeyError,
    InternalError,
    NotFoundError,
    PRMError,
    ValidationError,
)
from .reference_ids import canonicalize, format_reference_id, is_reference_id, parse_uuid

logger = logging.getLogger("prm-core.repository")

ModelT = TypeVar("ModelT")
T = TypeVar("T")

# Requirement reference ID allocation without a database trigger
MAX_REFERENCE_ATTEMPTS = 10

# Relationship names that may be eager-loaded through list_with_includes
INCLUDE_WHITELIST = frozenset({
    "creator",
    "assignee",
    "user_stories",
    "acceptance_criteria",
    "requirements",
    "comments",
    "type",
    "epic",
})

ORDER_WHITELIST = frozenset({
    "created_at",
    "updated_at",
    "priority",
    "title",
    "reference_id",
    "status",
    "name",
})


# ============================================================================
# Error classification
# ============================================================================

def classify_db_error(error: Exception, entity: str = "record") -> PRMError:
    """
    Map a raw database error to the domain taxonomy.

    This is the only place that interprets driver error codes and messages.

    Args:
        error: Exception raised by SQLAlchemy or the driver
        entity: Human-readable entity name for the message

    Returns:
        NotFoundError, DuplicateKeyError, ForeignKeyError, ValidationError
        (check constraint) or InternalError
    """
    if isinstance(error, PRMError):
        return error
    if isinstance(error, NoResultFound):
        return NotFoundError(f"{entity} not found")
    if isinstance(error, IntegrityError):
        orig = error.orig
        pgcode = getattr(orig, "pgcode", None)
        message = str(orig)
        if pgcode == "23505" or "UNIQUE constraint failed" in message:
            return DuplicateKeyError(f"{entity} already exists", details={"constraint": message})
        if pgcode == "23503" or "FOREIGN KEY constraint failed" in message:
            return ForeignKeyError(f"{entity} references a missing record", details={"constraint": message})
        if pgcode == "23514" or "CHECK constraint failed" in message:
            return ValidationError(f"{entity} violates a constraint", details={"constraint": message})
        if pgcode == "23502" or "NOT NULL constraint failed" in message:
            return ValidationError(f"{entity} is missing a required field", details={"constraint": message})
    return InternalError(f"Database error on {entity}")


def _is_reference_id_conflict(error: IntegrityError) -> bool:
    return isinstance(classify_db_error(error), DuplicateKeyError) and "reference_id" in str(error.orig)


# ============================================================================
# Base repository
# ============================================================================

class BaseRepository(Generic[ModelT]):
    """Generic CRUD for one model class."""

    model: type = None
    entity_name: str = "record"

    def __init__(self, db: Session, owner: Optional["Repositories"] = None):
        self.db = db
        self.owner = owner

    # --- plumbing ---------------------------------------------------------

    def _check_open(self) -> None:
        if self.owner is not None and self.owner.closed:
            raise RuntimeError("Repository used after its transaction was committed or rolled back")

    @property
    def _autocommit(self) -> bool:
        return self.owner is None or self.owner.autocommit

    def _save(self) -> None:
        if self._autocommit:
            self.db.commit()
        else:
            self.db.flush()

    def _fail(self, error: SQLAlchemyError) -> PRMError:
        if self._autocommit:
            self.db.rollback()
        classified = classify_db_error(error, self.entity_name)
        if isinstance(classified, InternalError):
            logger.error(f"Unclassified database error on {self.entity_name}: {error}", exc_info=True)
        return classified

    def query(self) -> Query:
        self._check_open()
        return self.db.query(self.model)

    def _apply_filters(self, query: Query, filters: Optional[dict[str, Any]]) -> Query:
        for key, value in (filters or {}).items():
            if value is None:
                continue
            column = getattr(self.model, key, None)
            if column is None or not hasattr(column, "property"):
                raise ValidationError(f"Unknown filter field '{key}' for {self.entity_name}")
            if isinstance(value, (list, tuple, set)):
                query = query.filter(column.in_(list(value)))
            else:
                query = query.filter(column == value)
        return query

    def _apply_order(self, query: Query, order_by: Optional[str]) -> Query:
        if not order_by:
            if hasattr(self.model, "created_at"):
                return query.order_by(self.model.created_at.desc())
            return query
        field, _, direction = order_by.strip().partition(" ")
        direction = direction.strip().lower() or "asc"
        valid = sorted(name for name in ORDER_WHITELIST if hasattr(self.model, name))
        if field not in valid or direction not in ("asc", "desc"):
            raise ValidationError(
                f"Invalid order_by '{order_by}'",
                valid_values=valid,
            )
        column = getattr(self.model, field)
        return query.order_by(column.desc() if direction == "desc" else column.asc())

    def _include_options(self, includes: Optional[list[str]]) -> list:
        options = []
        for token in includes or []:
            if token not in INCLUDE_WHITELIST:
                continue
            attribute = getattr(self.model, token, None)
            if attribute is None or not hasattr(attribute, "property"):
                continue
            if not isinstance(attribute.property, RelationshipProperty):
                continue
            options.append(selectinload(attribute))
        return options

    # --- CRUD -------------------------------------------------------------

    def create(self, entity: ModelT) -> ModelT:
        """Insert an entity, allocating a reference ID when the model has one."""
        self._check_open()
        try:
            if self._needs_reference_id(entity):
                entity.reference_id = self.next_reference_id()
            self.db.add(entity)
            self._save()
            self.db.refresh(entity)
            return entity
        except SQLAlchemyError as e:
            raise self._fail(e) from e

    def get_by_id(self, entity_id: UUID) -> ModelT:
        """
        Get entity by primary key.

        Raises:
            NotFoundError: If no row has this ID
        """
        self._check_open()
        entity = self.db.get(self.model, entity_id)
        if entity is None:
            raise NotFoundError(f"{self.entity_name} {entity_id} not found")
        return entity

    def get_by_reference_id(self, reference_id: str) -> ModelT:
        """Exact (case-sensitive) reference ID lookup."""
        entity = self.query().filter(self.model.reference_id == reference_id).one_or_none()
        if entity is None:
            raise NotFoundError(f"{self.entity_name} {reference_id} not found")
        return entity

    def get_by_reference_id_case_insensitive(self, reference_id: str) -> ModelT:
        """
        Case-insensitive reference ID lookup.

        Uses ILIKE on PostgreSQL and LOWER() comparison elsewhere.

        Raises:
            NotFoundError: Unless exactly one row matches
        """
        column = self.model.reference_id
        if is_postgresql(self.db):
            escaped = reference_id.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            condition = column.ilike(escaped, escape="\\")
        else:
            condition = func.lower(column) == func.lower(reference_id)
        rows = self.query().filter(condition).limit(2).all()
        if len(rows) != 1:
            raise NotFoundError(f"{self.entity_name} {reference_id} not found")
        return rows[0]

    def update(self, entity: ModelT, changes: Optional[dict[str, Any]] = None) -> ModelT:
        """Apply attribute changes (if any) and persist."""
        self._check_open()
        try:
            for key, value in (changes or {}).items():
                setattr(entity, key, value)
            self._save()
            self.db.refresh(entity)
            return entity
        except SQLAlchemyError as e:
            raise self._fail(e) from e

    def delete(self, entity: ModelT) -> None:
        self._check_open()
        try:
            self.db.delete(entity)
            self._save()
        except SQLAlchemyError as e:
            raise self._fail(e) from e

    def delete_many(self, entity_ids: list[UUID]) -> int:
        """Bulk delete by primary key. Returns the number of rows removed."""
        self._check_open()
        if not entity_ids:
            return 0
        try:
            deleted = (
                self.db.query(self.model)
                .filter(self.model.id.in_(entity_ids))
                .delete(synchronize_session="fetch")
            )
            self._save()
            return deleted
        except SQLAlchemyError as e:
            raise self._fail(e) from e

    def resolve(self, identifier: Any) -> ModelT:
        """
        Get an entity by UUID or reference ID.

        Reference IDs are tried case-sensitively first, then
        case-insensitively.

        Raises:
            NotFoundError: If nothing matches
            ValidationError: If the identifier is neither a UUID nor a reference ID
        """
        entity_id = parse_uuid(identifier)
        if entity_id is not None:
            return self.get_by_id(entity_id)
        prefix = getattr(self.model, "reference_prefix", None)
        if prefix is None or not is_reference_id(str(identifier), prefix):
            raise ValidationError(
                f"'{identifier}' is not a valid {self.entity_name.lower()} ID or reference ID"
            )
        try:
            return self.get_by_reference_id(str(identifier).strip())
        except NotFoundError:
            return self.get_by_reference_id_case_insensitive(str(identifier).strip())

    def list_all(
        self,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[ModelT]:
        query = self._apply_order(self._apply_filters(self.query(), filters), order_by)
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def list_with_includes(
        self,
        includes: Optional[list[str]] = None,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[ModelT]:
        """List with eager-loaded relations. Unknown include tokens are ignored."""
        query = self._apply_filters(self.query(), filters).options(*self._include_options(includes))
        query = self._apply_order(query, order_by)
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def get_by_id_with_includes(self, entity_id: UUID, includes: Optional[list[str]] = None) -> ModelT:
        entity = (
            self.query()
            .options(*self._include_options(includes))
            .filter(self.model.id == entity_id)
            .one_or_none()
        )
        if entity is None:
            raise NotFoundError(f"{self.entity_name} {entity_id} not found")
        return entity

    def count(self, filters: Optional[dict[str, Any]] = None) -> int:
        return self._apply_filters(self.query(), filters).order_by(None).count()

    def exists(self, entity_id: UUID) -> bool:
        self._check_open()
        return self.db.query(self.model.id).filter(self.model.id == entity_id).first() is not None

    def exists_by_reference_id(self, reference_id: str) -> bool:
        self._check_open()
        return (
            self.db.query(self.model.id)
            .filter(self.model.reference_id == canonicalize(reference_id))
            .first()
            is not None
        )

    # --- reference IDs ----------------------------------------------------

    def _needs_reference_id(self, entity: ModelT) -> bool:
        if not hasattr(self.model, "reference_prefix"):
            return False
        if getattr(entity, "reference_id", None):
            return False
        # PostgreSQL fills reference_id from the insert trigger
        return not is_postgresql(self.db)

    def max_reference_number(self) -> int:
        """Highest numeric suffix currently stored for this model's prefix."""
        self._check_open()
        prefix = self.model.reference_prefix
        column = self.model.reference_id
        suffix = func.substr(column, len(prefix) + 2)
        query = self.db.query(func.max(cast(suffix, Integer))).filter(column.like(f"{prefix}-%"))
        if is_postgresql(self.db):
            query = query.filter(column.op("~")(f"^{prefix}-[0-9]+$"))
        else:
            query = query.filter(suffix.op("NOT GLOB")("*[^0-9]*"))
        return query.scalar() or 0

    def next_reference_id(self, attempt: int = 0) -> str:
        """
        Take the next reference ID for this model's prefix.

        Advances the ``reference_id_counters`` row inside the caller's
        transaction, the same counter the PostgreSQL trigger uses, so a
        deleted entity's number is never handed out again. The number is
        at least ``MAX + 1 + attempt``; rows inserted with an explicit
        reference ID are skipped past.
        """
        self._check_open()
        prefix = self.model.reference_prefix
        counter = self.db.get(
            models.ReferenceIDCounter, prefix, with_for_update=True, populate_existing=True
        )
        if counter is None:
            counter = models.ReferenceIDCounter(prefix=prefix, next_number=1)
            self.db.add(counter)
        number = max(counter.next_number, self.max_reference_number() + 1 + attempt)
        counter.next_number = number + 1
        self.db.flush()
        return format_reference_id(prefix, number)


# ============================================================================
# Hierarchy repositories
# ============================================================================

class EpicRepository(BaseRepository[models.Epic]):
    model = models.Epic
    entity_name = "Epic"

    def get_by_creator(self, creator_id: UUID) -> list[models.Epic]:
        return self.list_all(filters={"creator_id": creator_id})

    def get_by_assignee(self, assignee_id: UUID) -> list[models.Epic]:
        return self.list_all(filters={"assignee_id": assignee_id})

    def get_by_id_with_preloads(self, epic_id: UUID) -> models.Epic:
        return self.get_by_id_with_includes(epic_id, ["creator", "assignee", "user_stories"])

    def get_complete_hierarchy(self, epic_id: UUID) -> models.Epic:
        """
        Load an epic with its steering documents and user stories, and for
        each story its requirements (with type) and acceptance criteria.

        The shape is fixed to bound query depth.
        """
        epic = (
            self.query()
            .options(
                selectinload(models.Epic.steering_documents),
                selectinload(models.Epic.user_stories)
                .selectinload(models.UserStory.requirements)
                .selectinload(models.Requirement.type),
                selectinload(models.Epic.user_stories)
                .selectinload(models.UserStory.acceptance_criteria),
            )
            .filter(models.Epic.id == epic_id)
            .one_or_none()
        )
        if epic is None:
            raise NotFoundError(f"Epic {epic_id} not found")
        return epic


class UserStoryRepository(BaseRepository[models.UserStory]):
    model = models.UserStory
    entity_name = "User story"

    def get_by_epic(self, epic_id: UUID, limit: Optional[int] = None, offset: int = 0) -> list[models.UserStory]:
        return self.list_all(filters={"epic_id": epic_id}, order_by="created_at asc", limit=limit, offset=offset)

    def count_by_epic(self, epic_id: UUID) -> int:
        return self.count(filters={"epic_id": epic_id})

    def get_by_id_with_preloads(self, story_id: UUID) -> models.UserStory:
        return self.get_by_id_with_includes(
            story_id, ["epic", "creator", "assignee", "acceptance_criteria", "requirements"]
        )


class AcceptanceCriteriaRepository(BaseRepository[models.AcceptanceCriteria]):
    model = models.AcceptanceCriteria
    entity_name = "Acceptance criteria"

    def get_by_user_story(self, user_story_id: UUID) -> list[models.AcceptanceCriteria]:
        return self.list_all(filters={"user_story_id": user_story_id}, order_by="created_at asc")

    def get_by_author(self, author_id: UUID) -> list[models.AcceptanceCriteria]:
        return self.list_all(filters={"author_id": author_id})

    def get_by_user_stories(self, user_story_ids: list[UUID]) -> list[models.AcceptanceCriteria]:
        if not user_story_ids:
            return []
        return self.list_all(filters={"user_story_id": user_story_ids}, order_by="created_at asc")


class RequirementRepository(BaseRepository[models.Requirement]):
    model = models.Requirement
    entity_name = "Requirement"

    def create(self, requirement: models.Requirement) -> models.Requirement:
        """
        Insert a requirement.

        Without the database trigger, reference IDs are allocated here:
        each attempt advances the counter inside a savepoint, with
        ``MAX + 1 + attempt`` as the floor, and retries on a reference_id
        unique violation. After ``MAX_REFERENCE_ATTEMPTS`` attempts a random
        8-hex-digit suffix is used so the insert always makes progress.
        """
        if not self._needs_reference_id(requirement):
            return super().create(requirement)

        self._check_open()
        try:
            for attempt in range(MAX_REFERENCE_ATTEMPTS):
                try:
                    with self.db.begin_nested():
                        requirement.reference_id = self.next_reference_id(attempt)
                        self.db.add(requirement)
                    break
                except IntegrityError as e:
                    if not _is_reference_id_conflict(e):
                        raise
                    logger.warning(
                        f"Reference ID {requirement.reference_id} taken (attempt {attempt + 1}/"
                        f"{MAX_REFERENCE_ATTEMPTS}), retrying"
                    )
            else:
                requirement.reference_id = format_reference_id(
                    models.Requirement.reference_prefix, secrets.token_hex(4).upper()
                )
                logger.warning(f"Reference ID retries exhausted, using fallback {requirement.reference_id}")
                with self.db.begin_nested():
                    self.db.add(requirement)
            self._save()
            self.db.refresh(requirement)
            return requirement
        except SQLAlchemyError as e:
            raise self._fail(e) from e

    def get_by_user_story(self, user_story_id: UUID) -> list[models.Requirement]:
        return self.list_all(filters={"user_story_id": user_story_id}, order_by="created_at asc")

    def get_by_user_stories(self, user_story_ids: list[UUID]) -> list[models.Requirement]:
        if not user_story_ids:
            return []
        return self.list_all(filters={"user_story_id": user_story_ids}, order_by="created_at asc")

    def get_by_acceptance_criteria(self, acceptance_criteria_ids: list[UUID]) -> list[models.Requirement]:
        if not acceptance_criteria_ids:
            return []
        return self.list_all(filters={"acceptance_criteria_id": acceptance_criteria_ids}, order_by="created_at asc")

    def get_by_type(self, type_id: UUID) -> list[models.Requirement]:
        return self.list_all(filters={"type_id": type_id})

    def clear_acceptance_criteria(self, acceptance_criteria_ids: list[UUID]) -> int:
        """Null out acceptance_criteria_id on requirements pointing at the given criteria."""
        self._check_open()
        if not acceptance_criteria_ids:
            return 0
        try:
            updated = (
                self.db.query(models.Requirement)
                .filter(models.Requirement.acceptance_criteria_id.in_(acceptance_criteria_ids))
                .update({models.Requirement.acceptance_criteria_id: None}, synchronize_session="fetch")
            )
            self._save()
            return updated
        except SQLAlchemyError as e:
            raise self._fail(e) from e

    def get_with_relationships(self, requirement_id: UUID) -> models.Requirement:
        requirement = (
            self.query()
            .options(
                selectinload(models.Requirement.type),
                selectinload(models.Requirement.source_relationships)
                .selectinload(models.RequirementRelationship.relationship_type),
                selectinload(models.Requirement.target_relationships)
                .selectinload(models.RequirementRelationship.relationship_type),
            )
            .filter(models.Requirement.id == requirement_id)
            .one_or_none()
        )
        if requirement is None:
            raise NotFoundError(f"Requirement {requirement_id} not found")
        return requirement


# ============================================================================
# Relationships, comments, steering documents, prompts
# ============================================================================

class RelationshipRepository(BaseRepository[models.RequirementRelationship]):
    model = models.RequirementRelationship
    entity_name = "Relationship"

    def get_by_requirement(self, requirement_id: UUID) -> list[models.RequirementRelationship]:
        """Inbound and outbound relationships of one requirement."""
        return self.get_by_requirements([requirement_id])

    def get_by_requirements(self, requirement_ids: list[UUID]) -> list[models.RequirementRelationship]:
        if not requirement_ids:
            return []
        return (
            self.query()
            .filter(or_(
                models.RequirementRelationship.source_requirement_id.in_(requirement_ids),
                models.RequirementRelationship.target_requirement_id.in_(requirement_ids),
            ))
            .order_by(models.RequirementRelationship.created_at)
            .all()
        )

    def get_by_source(self, requirement_id: UUID) -> list[models.RequirementRelationship]:
        return self.list_all(filters={"source_requirement_id": requirement_id}, order_by="created_at asc")

    def get_by_target(self, requirement_id: UUID) -> list[models.RequirementRelationship]:
        return self.list_all(filters={"target_requirement_id": requirement_id}, order_by="created_at asc")

    def exists_triple(self, source_id: UUID, target_id: UUID, type_id: UUID) -> bool:
        return (
            self.query()
            .filter(
                models.RequirementRelationship.source_requirement_id == source_id,
                models.RequirementRelationship.target_requirement_id == target_id,
                models.RequirementRelationship.relationship_type_id == type_id,
            )
            .first()
            is not None
        )


class CommentRepository(BaseRepository[models.Comment]):
    model = models.Comment
    entity_name = "Comment"

    def _entity_query(
        self,
        entity_type: models.EntityType,
        entity_id: UUID,
        is_resolved: Optional[bool] = None,
        roots_only: bool = False,
    ) -> Query:
        query = self.query().filter(
            models.Comment.entity_type == entity_type,
            models.Comment.entity_id == entity_id,
        )
        if is_resolved is not None:
            query = query.filter(models.Comment.is_resolved == is_resolved)
        if roots_only:
            query = query.filter(models.Comment.parent_comment_id.is_(None))
        return query

    def get_by_entity(
        self,
        entity_type: models.EntityType,
        entity_id: UUID,
        is_resolved: Optional[bool] = None,
        roots_only: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[models.Comment]:
        query = self._entity_query(entity_type, entity_id, is_resolved, roots_only)
        query = query.order_by(models.Comment.created_at).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def count_by_entity(
        self,
        entity_type: models.EntityType,
        entity_id: UUID,
        is_resolved: Optional[bool] = None,
        roots_only: bool = False,
    ) -> int:
        return self._entity_query(entity_type, entity_id, is_resolved, roots_only).count()

    def get_inline_by_entity(self, entity_type: models.EntityType, entity_id: UUID) -> list[models.Comment]:
        return (
            self.query()
            .filter(
                models.Comment.entity_type == entity_type,
                models.Comment.entity_id == entity_id,
                models.Comment.linked_text.isnot(None),
            )
            .order_by(models.Comment.text_position_start)
            .all()
        )

    def get_by_parent(self, parent_id: UUID, limit: Optional[int] = None, offset: int = 0) -> list[models.Comment]:
        return self.list_all(filters={"parent_comment_id": parent_id}, order_by="created_at asc", limit=limit, offset=offset)

    def count_replies(self, parent_id: UUID) -> int:
        return self.count(filters={"parent_comment_id": parent_id})

    def get_by_author(self, author_id: UUID) -> list[models.Comment]:
        return self.list_all(filters={"author_id": author_id})

    def delete_for_entities(self, entity_type: models.EntityType, entity_ids: list[UUID]) -> int:
        """Delete every comment (and reply) on the given entities."""
        self._check_open()
        if not entity_ids:
            return 0
        try:
            condition = (
                (models.Comment.entity_type == entity_type)
                & models.Comment.entity_id.in_(entity_ids)
            )
            # Replies first so the self-referencing FK never dangles
            replies = (
                self.db.query(models.Comment)
                .filter(condition, models.Comment.parent_comment_id.isnot(None))
                .delete(synchronize_session="fetch")
            )
            roots = self.db.query(models.Comment).filter(condition).delete(synchronize_session="fetch")
            self._save()
            return replies + roots
        except SQLAlchemyError as e:
            raise self._fail(e) from e


class SteeringDocumentRepository(BaseRepository[models.SteeringDocument]):
    model = models.SteeringDocument
    entity_name = "Steering document"

    def get_by_epic(self, epic_id: UUID) -> list[models.SteeringDocument]:
        return (
            self.query()
            .join(models.epic_steering_documents,
                  models.epic_steering_documents.c.steering_document_id == models.SteeringDocument.id)
            .filter(models.epic_steering_documents.c.epic_id == epic_id)
            .order_by(models.SteeringDocument.created_at)
            .all()
        )

    def get_by_creator(self, creator_id: UUID) -> list[models.SteeringDocument]:
        return self.list_all(filters={"creator_id": creator_id})

    def is_linked(self, epic_id: UUID, document_id: UUID) -> bool:
        self._check_open()
        table = models.epic_steering_documents
        return (
            self.db.query(table.c.id)
            .filter(table.c.epic_id == epic_id, table.c.steering_document_id == document_id)
            .first()
            is not None
        )

    def link(self, epic_id: UUID, document_id: UUID) -> None:
        self._check_open()
        try:
            self.db.execute(
                models.epic_steering_documents.insert().values(
                    id=uuid4(),
                    epic_id=epic_id,
                    steering_document_id=document_id,
                    created_at=models.utcnow(),
                )
            )
            self._save()
        except SQLAlchemyError as e:
            raise self._fail(e) from e

    def unlink(self, epic_id: UUID, document_id: UUID) -> int:
        self._check_open()
        table = models.epic_steering_documents
        try:
            result = self.db.execute(
                table.delete().where(table.c.epic_id == epic_id, table.c.steering_document_id == document_id)
            )
            self._save()
            return result.rowcount
        except SQLAlchemyError as e:
            raise self._fail(e) from e


class PromptRepository(BaseRepository[models.Prompt]):
    model = models.Prompt
    entity_name = "Prompt"

    def get_by_name(self, name: str) -> Optional[models.Prompt]:
        return self.query().filter(models.Prompt.name == name).one_or_none()

    def get_active(self) -> models.Prompt:
        prompt = self.query().filter(models.Prompt.is_active.is_(True)).first()
        if prompt is None:
            raise NotFoundError("No active prompt")
        return prompt

    def deactivate_all(self, except_id: Optional[UUID] = None) -> int:
        self._check_open()
        try:
            query = self.db.query(models.Prompt).filter(models.Prompt.is_active.is_(True))
            if except_id is not None:
                query = query.filter(models.Prompt.id != except_id)
            updated = query.update({models.Prompt.is_active: False}, synchronize_session="fetch")
            self._save()
            return updated
        except SQLAlchemyError as e:
            raise self._fail(e) from e


class RequirementTypeRepository(BaseRepository[models.RequirementType]):
    model = models.RequirementType
    entity_name = "Requirement type"

    def get_by_name(self, name: str) -> Optional[models.RequirementType]:
        return self.query().filter(func.lower(models.RequirementType.name) == name.lower()).one_or_none()


class RelationshipTypeRepository(BaseRepository[models.RelationshipType]):
    model = models.RelationshipType
    entity_name = "Relationship type"

    def get_by_name(self, name: str) -> Optional[models.RelationshipType]:
        """Relationship type names are unique ignoring case."""
        return self.query().filter(func.lower(models.RelationshipType.name) == name.lower()).one_or_none()


# ============================================================================
# Users and credentials
# ============================================================================

class UserRepository(BaseRepository[models.User]):
    model = models.User
    entity_name = "User"

    def get_by_username(self, username: str) -> Optional[models.User]:
        return self.query().filter(models.User.username == username).one_or_none()

    def get_by_email(self, email: str) -> Optional[models.User]:
        return self.query().filter(func.lower(models.User.email) == email.lower()).one_or_none()

    def reference_counts(self, user_id: UUID) -> dict[str, int]:
        """Count rows that reference the user as creator, assignee or author."""
        self._check_open()
        checks = {
            "epics": or_(models.Epic.creator_id == user_id, models.Epic.assignee_id == user_id),
            "user_stories": or_(models.UserStory.creator_id == user_id, models.UserStory.assignee_id == user_id),
            "acceptance_criteria": models.AcceptanceCriteria.author_id == user_id,
            "requirements": or_(models.Requirement.creator_id == user_id, models.Requirement.assignee_id == user_id),
            "relationships": models.RequirementRelationship.created_by == user_id,
            "comments": models.Comment.author_id == user_id,
            "steering_documents": models.SteeringDocument.creator_id == user_id,
            "prompts": models.Prompt.creator_id == user_id,
        }
        entities = {
            "epics": models.Epic,
            "user_stories": models.UserStory,
            "acceptance_criteria": models.AcceptanceCriteria,
            "requirements": models.Requirement,
            "relationships": models.RequirementRelationship,
            "comments": models.Comment,
            "steering_documents": models.SteeringDocument,
            "prompts": models.Prompt,
        }
        counts = {}
        for kind, condition in checks.items():
            count = self.db.query(func.count(entities[kind].id)).filter(condition).scalar()
            if count:
                counts[kind] = count
        return counts


class PersonalAccessTokenRepository(BaseRepository[models.PersonalAccessToken]):
    model = models.PersonalAccessToken
    entity_name = "Personal access token"

    def get_by_prefix(self, prefix: str) -> list[models.PersonalAccessToken]:
        """All tokens carrying a scheme prefix (indexed; bounded by prefix cardinality)."""
        return self.query().filter(models.PersonalAccessToken.prefix == prefix).all()

    def get_by_user(self, user_id: UUID, limit: Optional[int] = None, offset: int = 0) -> list[models.PersonalAccessToken]:
        return self.list_all(filters={"user_id": user_id}, limit=limit, offset=offset)

    def get_by_user_and_name(self, user_id: UUID, name: str) -> Optional[models.PersonalAccessToken]:
        return (
            self.query()
            .filter(models.PersonalAccessToken.user_id == user_id, models.PersonalAccessToken.name == name)
            .one_or_none()
        )

    def delete_expired(self, now: datetime) -> int:
        self._check_open()
        try:
            deleted = (
                self.db.query(models.PersonalAccessToken)
                .filter(models.PersonalAccessToken.expires_at.isnot(None),
                        models.PersonalAccessToken.expires_at <= now)
                .delete(synchronize_session="fetch")
            )
            self._save()
            return deleted
        except SQLAlchemyError as e:
            raise self._fail(e) from e


class RefreshTokenRepository(BaseRepository[models.RefreshToken]):
    model = models.RefreshToken
    entity_name = "Refresh token"

    def get_by_hash(self, token_hash: str) -> Optional[models.RefreshToken]:
        return self.query().filter(models.RefreshToken.token_hash == token_hash).one_or_none()

    def delete_by_user_id(self, user_id: UUID) -> int:
        self._check_open()
        try:
            deleted = (
                self.db.query(models.RefreshToken)
                .filter(models.RefreshToken.user_id == user_id)
                .delete(synchronize_session="fetch")
            )
            self._save()
            return deleted
        except SQLAlchemyError as e:
            raise self._fail(e) from e

    def delete_expired(self, now: datetime) -> int:
        self._check_open()
        try:
            deleted = (
                self.db.query(models.RefreshToken)
                .filter(models.RefreshToken.expires_at <= now)
                .delete(synchronize_session="fetch")
            )
            self._save()
            return deleted
        except SQLAlchemyError as e:
            raise self._fail(e) from e


# ============================================================================
# Status models
# ============================================================================

class StatusModelRepository(BaseRepository[models.StatusModel]):
    model = models.StatusModel
    entity_name = "Status model"

    def get_default(self, entity_type: models.EntityType) -> models.StatusModel:
        status_model = (
            self.query()
            .options(
                selectinload(models.StatusModel.statuses),
                selectinload(models.StatusModel.transitions).selectinload(models.StatusTransition.from_status),
                selectinload(models.StatusModel.transitions).selectinload(models.StatusTransition.to_status),
            )
            .filter(models.StatusModel.entity_type == entity_type, models.StatusModel.is_default.is_(True))
            .one_or_none()
        )
        if status_model is None:
            raise NotFoundError(f"No default status model for {entity_type.value}")
        return status_model

    def get_with_statuses(self, model_id: UUID) -> models.StatusModel:
        status_model = (
            self.query()
            .options(
                selectinload(models.StatusModel.statuses),
                selectinload(models.StatusModel.transitions),
            )
            .filter(models.StatusModel.id == model_id)
            .one_or_none()
        )
        if status_model is None:
            raise NotFoundError(f"Status model {model_id} not found")
        return status_model


# ============================================================================
# Aggregate
# ============================================================================

class Repositories:
    """
    Every repository bound to one session.

    Example:
        repos = Repositories(db)
        epic = repos.with_transaction(lambda tx: _create_epic_and_story(tx, ...))
    """

    def __init__(self, db: Session, autocommit: bool = True):
        self.db = db
        self.autocommit = autocommit
        self.closed = False

        self.epics = EpicRepository(db, self)
        self.user_stories = UserStoryRepository(db, self)
        self.acceptance_criteria = AcceptanceCriteriaRepository(db, self)
        self.requirements = RequirementRepository(db, self)
        self.relationships = RelationshipRepository(db, self)
        self.comments = CommentRepository(db, self)
        self.steering_documents = SteeringDocumentRepository(db, self)
        self.prompts = PromptRepository(db, self)
        self.requirement_types = RequirementTypeRepository(db, self)
        self.relationship_types = RelationshipTypeRepository(db, self)
        self.users = UserRepository(db, self)
        self.personal_access_tokens = PersonalAccessTokenRepository(db, self)
        self.refresh_tokens = RefreshTokenRepository(db, self)
        self.status_models = StatusModelRepository(db, self)

    def with_transaction(self, fn: Callable[["Repositories"], T]) -> T:
        """
        Run ``fn`` with transaction-scoped repositories.

        Commits when ``fn`` returns; rolls back on any exception, including
        KeyboardInterrupt and other BaseException subclasses. The scoped
        repositories are unusable afterwards.
        """
        if self.closed:
            raise RuntimeError("Repositories used after their transaction was committed or rolled back")
        scoped = Repositories(self.db, autocommit=False)
        try:
            result = fn(scoped)
            if self.autocommit:
                self.db.commit()
            else:
                self.db.flush()
            return result
        except SQLAlchemyError as e:
            if self.autocommit:
                self.db.rollback()
            raise classify_db_error(e) from e
        except BaseException:
            if self.autocommit:
                self.db.rollback()
            raise
        finally:
            scoped.closed = True
