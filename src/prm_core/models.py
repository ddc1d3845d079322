"""SQLAlchemy database models."""
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4
import enum

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    DateTime,
    ForeignKey,
    Enum,
    CheckConstraint,
    Boolean,
    UniqueConstraint,
    Table,
    Index,
    Uuid,
    JSON,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship, declarative_base
from sqlalchemy.schema import FetchedValue

# Base class for all models
Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns below."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


# JSON on SQLite, JSONB on PostgreSQL
JSONType = JSON().with_variant(JSONB(), "postgresql")


# Association table for steering documents linked to epics (many-to-many)
epic_steering_documents = Table(
    'epic_steering_documents',
    Base.metadata,
    Column('id', Uuid, primary_key=True, default=uuid4),
    Column('epic_id', Uuid, ForeignKey('epics.id', ondelete='CASCADE'), nullable=False, index=True),
    Column('steering_document_id', Uuid, ForeignKey('steering_documents.id', ondelete='CASCADE'), nullable=False, index=True),
    Column('created_at', DateTime, nullable=False, default=utcnow),
    UniqueConstraint('epic_id', 'steering_document_id', name='uq_epic_steering_document'),
)


class UserRole(str, enum.Enum):
    """User role enum. Governs write and admin capability."""

    ADMINISTRATOR = "Administrator"
    USER = "User"
    COMMENTER = "Commenter"


class EntityType(str, enum.Enum):
    """Entity types that carry comments and status models."""

    EPIC = "epic"
    USER_STORY = "user_story"
    ACCEPTANCE_CRITERIA = "acceptance_criteria"
    REQUIREMENT = "requirement"


class Priority(int, enum.Enum):
    """Closed ordinal priority set."""

    CRITICAL = 1
    HIGH = 2
    MEDIUM = 3
    LOW = 4


class EpicStatus(str, enum.Enum):
    """Canonical status strings for epics and user stories."""

    BACKLOG = "Backlog"
    DRAFT = "Draft"
    IN_PROGRESS = "In Progress"
    DONE = "Done"
    CANCELLED = "Cancelled"


# User stories share the epic lifecycle
UserStoryStatus = EpicStatus


class RequirementStatus(str, enum.Enum):
    """Canonical status strings for requirements."""

    DRAFT = "Draft"
    ACTIVE = "Active"
    OBSOLETE = "Obsolete"


class PromptRole(str, enum.Enum):
    """Conversation role a prompt is written for."""

    USER = "user"
    ASSISTANT = "assistant"


def _status_check(values: type[enum.Enum], name: str) -> CheckConstraint:
    allowed = ", ".join(f"'{v.value}'" for v in values)
    return CheckConstraint(f"status IN ({allowed})", name=name)


# =============================================================================
# Users and credentials
# =============================================================================


class User(Base):
    """
    User account.

    Passwords are stored as bcrypt hashes. Role governs what the user may
    change: administrators manage users, config and prompts; users write
    domain entities; commenters may only comment.
    """

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid4)
    username = Column(String(50), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(
        Enum(UserRole, values_callable=lambda obj: [e.value for e in obj], name="user_role"),
        nullable=False,
        default=UserRole.USER,
        index=True,
    )

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    access_tokens = relationship("PersonalAccessToken", back_populates="user", cascade="all, delete-orphan")
    refresh_tokens = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<User {self.username} ({self.role.value if self.role else None})>"


class PersonalAccessToken(Base):
    """
    Personal Access Token for API/MCP authentication.

    The plaintext token is ``{prefix}{secret}``; only a bcrypt hash of the
    secret is stored. Lookup goes through the indexed prefix column, never
    through the hash.
    """

    __tablename__ = "personal_access_tokens"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    token_hash = Column(String(255), nullable=False)
    prefix = Column(String(20), nullable=False, index=True)
    scopes = Column(JSONType, nullable=False, default=lambda: ["full_access"])
    expires_at = Column(DateTime, nullable=True)
    last_used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    user = relationship("User", back_populates="access_tokens")

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_pat_user_name"),
    )

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and self.expires_at <= utcnow()

    def __repr__(self) -> str:
        return f"<PersonalAccessToken {self.name} for user_id={self.user_id}>"


class RefreshToken(Base):
    """Refresh token issued at login. Only the SHA-256 hash is persisted."""

    __tablename__ = "refresh_tokens"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    last_used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User", back_populates="refresh_tokens")

    def __repr__(self) -> str:
        return f"<RefreshToken user_id={self.user_id} expires_at={self.expires_at}>"


# =============================================================================
# Reference IDs
# =============================================================================


class ReferenceIDCounter(Base):
    """
    Tracks the next available number for human-readable IDs per prefix.

    Advanced by the PostgreSQL insert trigger that fills reference_id
    (EP-1, US-7, REQ-42, ...), and by the repositories on other databases.
    Never decremented, so numbers are not reused.
    """

    __tablename__ = "reference_id_counters"

    prefix = Column(String(10), primary_key=True)
    next_number = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("next_number > 0", name="chk_next_number_positive"),
    )

    def __repr__(self) -> str:
        return f"<ReferenceIDCounter {self.prefix} next={self.next_number}>"


# =============================================================================
# Requirement hierarchy
# =============================================================================


class Epic(Base):
    """Top-level planning artifact. Owns user stories."""

    __tablename__ = "epics"
    reference_prefix = "EP"

    id = Column(Uuid, primary_key=True, default=uuid4)
    reference_id = Column(String(20), nullable=False, unique=True, index=True, server_default=FetchedValue())
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(Integer, nullable=False, index=True)
    status = Column(String(50), nullable=False, default=EpicStatus.BACKLOG.value, index=True)
    creator_id = Column(Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    assignee_id = Column(Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=True, index=True)

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    creator = relationship("User", foreign_keys=[creator_id])
    assignee = relationship("User", foreign_keys=[assignee_id])
    user_stories = relationship(
        "UserStory",
        back_populates="epic",
        order_by="UserStory.created_at",
        passive_deletes=True,
    )
    steering_documents = relationship(
        "SteeringDocument",
        secondary=epic_steering_documents,
        back_populates="epics",
        order_by="SteeringDocument.created_at",
    )

    __table_args__ = (
        CheckConstraint("priority BETWEEN 1 AND 4", name="chk_epic_priority"),
        _status_check(EpicStatus, "chk_epic_status"),
    )

    def __repr__(self) -> str:
        return f"<Epic {self.reference_id}: {self.title}>"


class UserStory(Base):
    """User story. Belongs to exactly one epic."""

    __tablename__ = "user_stories"
    reference_prefix = "US"

    id = Column(Uuid, primary_key=True, default=uuid4)
    reference_id = Column(String(20), nullable=False, unique=True, index=True, server_default=FetchedValue())
    epic_id = Column(Uuid, ForeignKey("epics.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(Integer, nullable=False, index=True)
    status = Column(String(50), nullable=False, default=UserStoryStatus.BACKLOG.value, index=True)
    creator_id = Column(Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    assignee_id = Column(Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=True, index=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    epic = relationship("Epic", back_populates="user_stories")
    creator = relationship("User", foreign_keys=[creator_id])
    assignee = relationship("User", foreign_keys=[assignee_id])
    acceptance_criteria = relationship(
        "AcceptanceCriteria",
        back_populates="user_story",
        order_by="AcceptanceCriteria.created_at",
        passive_deletes=True,
    )
    requirements = relationship(
        "Requirement",
        back_populates="user_story",
        order_by="Requirement.created_at",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("priority BETWEEN 1 AND 4", name="chk_user_story_priority"),
        _status_check(UserStoryStatus, "chk_user_story_status"),
    )

    def __repr__(self) -> str:
        return f"<UserStory {self.reference_id}: {self.title}>"


class AcceptanceCriteria(Base):
    """Acceptance criterion of a user story (EARS phrasing encouraged)."""

    __tablename__ = "acceptance_criteria"
    reference_prefix = "AC"

    id = Column(Uuid, primary_key=True, default=uuid4)
    reference_id = Column(String(20), nullable=False, unique=True, index=True, server_default=FetchedValue())
    user_story_id = Column(Uuid, ForeignKey("user_stories.id", ondelete="CASCADE"), nullable=False, index=True)
    description = Column(Text, nullable=False)
    author_id = Column(Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    user_story = relationship("UserStory", back_populates="acceptance_criteria")
    author = relationship("User", foreign_keys=[author_id])
    requirements = relationship("Requirement", back_populates="acceptance_criteria", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("length(description) >= 1", name="chk_acceptance_criteria_description"),
    )

    def __repr__(self) -> str:
        return f"<AcceptanceCriteria {self.reference_id}>"


class RequirementType(Base):
    """Configurable requirement classification (Functional, Non-Functional, ...)."""

    __tablename__ = "requirement_types"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<RequirementType {self.name}>"


class RelationshipType(Base):
    """Configurable relationship kind between requirements (depends_on, blocks, ...)."""

    __tablename__ = "relationship_types"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<RelationshipType {self.name}>"


class Requirement(Base):
    """
    Requirement of a user story.

    May optionally point at one acceptance criterion of any story; that link
    is nulled by the database when the criterion is deleted.
    """

    __tablename__ = "requirements"
    reference_prefix = "REQ"

    id = Column(Uuid, primary_key=True, default=uuid4)
    reference_id = Column(String(20), nullable=False, unique=True, index=True, server_default=FetchedValue())
    user_story_id = Column(Uuid, ForeignKey("user_stories.id", ondelete="CASCADE"), nullable=False, index=True)
    acceptance_criteria_id = Column(
        Uuid,
        ForeignKey("acceptance_criteria.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    type_id = Column(Uuid, ForeignKey("requirement_types.id", ondelete="RESTRICT"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(Integer, nullable=False, index=True)
    status = Column(String(50), nullable=False, default=RequirementStatus.DRAFT.value, index=True)
    creator_id = Column(Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    assignee_id = Column(Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=True, index=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    user_story = relationship("UserStory", back_populates="requirements")
    acceptance_criteria = relationship("AcceptanceCriteria", back_populates="requirements")
    type = relationship("RequirementType")
    creator = relationship("User", foreign_keys=[creator_id])
    assignee = relationship("User", foreign_keys=[assignee_id])
    source_relationships = relationship(
        "RequirementRelationship",
        foreign_keys="RequirementRelationship.source_requirement_id",
        back_populates="source_requirement",
        passive_deletes=True,
    )
    target_relationships = relationship(
        "RequirementRelationship",
        foreign_keys="RequirementRelationship.target_requirement_id",
        back_populates="target_requirement",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("priority BETWEEN 1 AND 4", name="chk_requirement_priority"),
        _status_check(RequirementStatus, "chk_requirement_status"),
    )

    def __repr__(self) -> str:
        return f"<Requirement {self.reference_id}: {self.title}>"


class RequirementRelationship(Base):
    """Directed, typed edge between two requirements. Cycles are allowed."""

    __tablename__ = "requirement_relationships"

    id = Column(Uuid, primary_key=True, default=uuid4)
    source_requirement_id = Column(Uuid, ForeignKey("requirements.id", ondelete="CASCADE"), nullable=False, index=True)
    target_requirement_id = Column(Uuid, ForeignKey("requirements.id", ondelete="CASCADE"), nullable=False, index=True)
    relationship_type_id = Column(Uuid, ForeignKey("relationship_types.id", ondelete="RESTRICT"), nullable=False, index=True)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    # Relationships
    source_requirement = relationship("Requirement", foreign_keys=[source_requirement_id], back_populates="source_relationships")
    target_requirement = relationship("Requirement", foreign_keys=[target_requirement_id], back_populates="target_relationships")
    relationship_type = relationship("RelationshipType")
    creator = relationship("User", foreign_keys=[created_by])

    __table_args__ = (
        UniqueConstraint(
            "source_requirement_id", "target_requirement_id", "relationship_type_id",
            name="uq_requirement_relationship",
        ),
        CheckConstraint("source_requirement_id != target_requirement_id", name="no_self_relationship"),
    )

    def __repr__(self) -> str:
        return f"<RequirementRelationship {self.source_requirement_id} -> {self.target_requirement_id}>"


# =============================================================================
# Comments
# =============================================================================


class Comment(Base):
    """
    Polymorphic comment on an epic, user story, acceptance criterion or
    requirement.

    There is no foreign key to the parent entity; the comment service checks
    that it exists on create and the deletion engine removes comments along
    with their entity. Inline comments anchor to a substring of the entity
    description via (linked_text, text_position_start, text_position_end).
    """

    __tablename__ = "comments"

    id = Column(Uuid, primary_key=True, default=uuid4)
    entity_type = Column(
        Enum(EntityType, values_callable=lambda obj: [e.value for e in obj], name="entity_type"),
        nullable=False,
    )
    entity_id = Column(Uuid, nullable=False)
    author_id = Column(Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    parent_comment_id = Column(Uuid, ForeignKey("comments.id", ondelete="CASCADE"), nullable=True, index=True)
    is_resolved = Column(Boolean, nullable=False, default=False, index=True)

    # Inline anchor (all three set or none)
    linked_text = Column(Text, nullable=True)
    text_position_start = Column(Integer, nullable=True)
    text_position_end = Column(Integer, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    author = relationship("User", foreign_keys=[author_id])
    parent = relationship("Comment", remote_side=[id], back_populates="replies")
    replies = relationship("Comment", back_populates="parent", order_by="Comment.created_at", passive_deletes=True)

    __table_args__ = (
        Index("idx_comments_entity", "entity_type", "entity_id"),
        CheckConstraint(
            "(linked_text IS NULL AND text_position_start IS NULL AND text_position_end IS NULL) OR "
            "(linked_text IS NOT NULL AND text_position_start IS NOT NULL AND text_position_end IS NOT NULL "
            "AND text_position_start >= 0 AND text_position_end > text_position_start)",
            name="chk_comment_inline_anchor",
        ),
    )

    @property
    def is_inline(self) -> bool:
        return self.linked_text is not None

    def __repr__(self) -> str:
        return f"<Comment {self.id} on {self.entity_type.value if self.entity_type else None}:{self.entity_id}>"


# =============================================================================
# Steering documents and prompts
# =============================================================================


class SteeringDocument(Base):
    """Free-form guidance linked to any number of epics."""

    __tablename__ = "steering_documents"
    reference_prefix = "STD"

    id = Column(Uuid, primary_key=True, default=uuid4)
    reference_id = Column(String(20), nullable=False, unique=True, index=True, server_default=FetchedValue())
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    creator_id = Column(Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    creator = relationship("User", foreign_keys=[creator_id])
    epics = relationship(
        "Epic",
        secondary=epic_steering_documents,
        back_populates="steering_documents",
    )

    def __repr__(self) -> str:
        return f"<SteeringDocument {self.reference_id}: {self.title}>"


class Prompt(Base):
    """System prompt for agents. At most one prompt is active at a time."""

    __tablename__ = "prompts"
    reference_prefix = "PROMPT"

    id = Column(Uuid, primary_key=True, default=uuid4)
    reference_id = Column(String(20), nullable=False, unique=True, index=True, server_default=FetchedValue())
    name = Column(String(255), nullable=False, unique=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    content = Column(Text, nullable=False)
    role = Column(
        Enum(PromptRole, values_callable=lambda obj: [e.value for e in obj], name="prompt_role"),
        nullable=False,
        default=PromptRole.ASSISTANT,
    )
    is_active = Column(Boolean, nullable=False, default=False, index=True)
    creator_id = Column(Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    creator = relationship("User", foreign_keys=[creator_id])

    def __repr__(self) -> str:
        return f"<Prompt {self.reference_id}: {self.name}{' (active)' if self.is_active else ''}>"


# =============================================================================
# Status models
# =============================================================================


class StatusModel(Base):
    """Named state machine for one entity type. One default per entity type."""

    __tablename__ = "status_models"

    id = Column(Uuid, primary_key=True, default=uuid4)
    entity_type = Column(
        Enum(EntityType, values_callable=lambda obj: [e.value for e in obj], name="entity_type"),
        nullable=False,
        index=True,
    )
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    statuses = relationship(
        "Status",
        back_populates="status_model",
        order_by="Status.order",
        cascade="all, delete-orphan",
    )
    transitions = relationship(
        "StatusTransition",
        back_populates="status_model",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("entity_type", "name", name="uq_status_model_entity_name"),
    )

    def __repr__(self) -> str:
        return f"<StatusModel {self.entity_type.value if self.entity_type else None}:{self.name}>"


class Status(Base):
    """One state of a status model."""

    __tablename__ = "statuses"

    id = Column(Uuid, primary_key=True, default=uuid4)
    status_model_id = Column(Uuid, ForeignKey("status_models.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    color = Column(String(7), nullable=True)
    order = Column(Integer, nullable=False, default=0)
    is_initial = Column(Boolean, nullable=False, default=False)
    is_final = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    status_model = relationship("StatusModel", back_populates="statuses")

    __table_args__ = (
        UniqueConstraint("status_model_id", "name", name="uq_status_model_status_name"),
        CheckConstraint("color IS NULL OR length(color) = 7", name="chk_status_color"),
    )

    def __repr__(self) -> str:
        return f"<Status {self.name}>"


class StatusTransition(Base):
    """Directed edge between two statuses of the same model."""

    __tablename__ = "status_transitions"

    id = Column(Uuid, primary_key=True, default=uuid4)
    status_model_id = Column(Uuid, ForeignKey("status_models.id", ondelete="CASCADE"), nullable=False, index=True)
    from_status_id = Column(Uuid, ForeignKey("statuses.id", ondelete="CASCADE"), nullable=False)
    to_status_id = Column(Uuid, ForeignKey("statuses.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    status_model = relationship("StatusModel", back_populates="transitions")
    from_status = relationship("Status", foreign_keys=[from_status_id])
    to_status = relationship("Status", foreign_keys=[to_status_id])

    __table_args__ = (
        UniqueConstraint("status_model_id", "from_status_id", "to_status_id", name="uq_status_transition"),
        CheckConstraint("from_status_id != to_status_id", name="no_self_transition"),
    )

    def __repr__(self) -> str:
        return f"<StatusTransition {self.from_status_id} -> {self.to_status_id}>"


# Models that carry a reference_id, keyed by prefix
REFERENCE_MODELS: dict[str, type] = {
    Epic.reference_prefix: Epic,
    UserStory.reference_prefix: UserStory,
    AcceptanceCriteria.reference_prefix: AcceptanceCriteria,
    Requirement.reference_prefix: Requirement,
    SteeringDocument.reference_prefix: SteeringDocument,
    Prompt.reference_prefix: Prompt,
}

# Domain models keyed by commentable entity type
ENTITY_MODELS: dict[EntityType, type] = {
    EntityType.EPIC: Epic,
    EntityType.USER_STORY: UserStory,
    EntityType.ACCEPTANCE_CRITERIA: AcceptanceCriteria,
    EntityType.REQUIREMENT: Requirement,
}
