"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from .models import EntityType, PromptRole, UserRole

TITLE_MAX = 500
DESCRIPTION_MAX = 50000
VALID_PAT_SCOPES = ("full_access",)


class ErrorResponse(BaseModel):
    """Uniform error body."""

    code: str
    message: str
    details: Optional[dict[str, Any]] = None


# ============================================================================
# Users and authentication
# ============================================================================

class UserCreate(BaseModel):
    """Schema for creating a user (administrators only)."""

    username: str = Field(..., min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    email: str = Field(..., max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=8, max_length=128)
    role: UserRole = UserRole.USER


class UserUpdate(BaseModel):
    """Schema for updating a user. Omitted fields are unchanged."""

    email: Optional[str] = Field(None, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    role: Optional[UserRole] = None


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8, max_length=128)


class UserResponse(BaseModel):
    id: UUID
    username: str
    email: str
    role: UserRole
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class UserListResponse(BaseModel):
    """Schema for paginated user list."""

    items: list[UserResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    """Session token pair issued at login and on refresh."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token lifetime in seconds")
    user: UserResponse


# ============================================================================
# Personal access tokens
# ============================================================================

class PATCreate(BaseModel):
    """Schema for creating a personal access token."""

    name: str = Field(..., min_length=1, max_length=100)
    scopes: list[str] = Field(default_factory=lambda: ["full_access"])
    expires_at: Optional[datetime] = None

    @field_validator("scopes")
    @classmethod
    def validate_scopes(cls, value: list[str]) -> list[str]:
        if not value:
            return ["full_access"]
        invalid = [scope for scope in value if scope not in VALID_PAT_SCOPES]
        if invalid:
            raise ValueError(f"Invalid scopes: {', '.join(invalid)}. Valid scopes: {', '.join(VALID_PAT_SCOPES)}")
        return value


class PATResponse(BaseModel):
    """Token metadata. Never includes the secret."""

    id: UUID
    user_id: UUID
    name: str
    prefix: str
    scopes: list[str]
    expires_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PATCreateResponse(BaseModel):
    """Creation response: the only time the plaintext token is returned."""

    token: str
    pat: PATResponse


class PATListResponse(BaseModel):
    items: list[PATResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


# ============================================================================
# Epics
# ============================================================================

class EpicCreate(BaseModel):
    """
    Schema for creating an epic.

    The creator is always the authenticated caller.
    """

    title: str = Field(..., min_length=1, max_length=TITLE_MAX)
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX)
    priority: int = Field(..., ge=1, le=4)
    status: Optional[str] = None
    assignee_id: Optional[str] = None


class EpicUpdate(BaseModel):
    """Whitelisted epic fields. An empty assignee_id unassigns."""

    title: Optional[str] = Field(None, min_length=1, max_length=TITLE_MAX)
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX)
    priority: Optional[int] = Field(None, ge=1, le=4)
    status: Optional[str] = None
    assignee_id: Optional[str] = None


class StatusChange(BaseModel):
    status: str = Field(..., min_length=1)


class AssigneeChange(BaseModel):
    """Set or clear (null or empty string) the assignee."""

    assignee_id: Optional[str] = None


class EpicResponse(BaseModel):
    id: UUID
    reference_id: str
    title: str
    description: Optional[str] = None
    priority: int
    status: str
    creator_id: UUID
    assignee_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class EpicListResponse(BaseModel):
    """Schema for paginated epic list."""

    items: list[EpicResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


# ============================================================================
# User stories
# ============================================================================

class UserStoryCreate(BaseModel):
    """Schema for creating a user story. epic_id accepts a UUID or EP-n."""

    epic_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=TITLE_MAX)
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX)
    priority: int = Field(..., ge=1, le=4)
    status: Optional[str] = None
    assignee_id: Optional[str] = None


class UserStoryUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=TITLE_MAX)
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX)
    priority: Optional[int] = Field(None, ge=1, le=4)
    status: Optional[str] = None
    assignee_id: Optional[str] = None


class UserStoryResponse(BaseModel):
    id: UUID
    reference_id: str
    epic_id: UUID
    title: str
    description: Optional[str] = None
    priority: int
    status: str
    creator_id: UUID
    assignee_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserStoryListResponse(BaseModel):
    items: list[UserStoryResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


# ============================================================================
# Acceptance criteria
# ============================================================================

class AcceptanceCriteriaCreate(BaseModel):
    """user_story_id accepts a UUID or US-n. EARS phrasing is encouraged."""

    user_story_id: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1, max_length=DESCRIPTION_MAX)


class AcceptanceCriteriaUpdate(BaseModel):
    description: Optional[str] = Field(None, min_length=1, max_length=DESCRIPTION_MAX)


class AcceptanceCriteriaResponse(BaseModel):
    id: UUID
    reference_id: str
    user_story_id: UUID
    description: str
    author_id: UUID
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AcceptanceCriteriaListResponse(BaseModel):
    items: list[AcceptanceCriteriaResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


# ============================================================================
# Requirements and relationships
# ============================================================================

class RequirementCreate(BaseModel):
    """
    Schema for creating a requirement.

    - **user_story_id**: UUID or US-n
    - **acceptance_criteria_id**: optional UUID or AC-n
    - **type_id**: requirement type UUID or name (e.g. "Functional")
    """

    user_story_id: str = Field(..., min_length=1)
    acceptance_criteria_id: Optional[str] = None
    type_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=TITLE_MAX)
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX)
    priority: int = Field(..., ge=1, le=4)
    status: Optional[str] = None
    assignee_id: Optional[str] = None


class RequirementUpdate(BaseModel):
    """Whitelisted requirement fields. Empty assignee_id / acceptance_criteria_id clear the link."""

    title: Optional[str] = Field(None, min_length=1, max_length=TITLE_MAX)
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX)
    priority: Optional[int] = Field(None, ge=1, le=4)
    status: Optional[str] = None
    assignee_id: Optional[str] = None
    acceptance_criteria_id: Optional[str] = None
    type_id: Optional[str] = None


class RequirementResponse(BaseModel):
    id: UUID
    reference_id: str
    user_story_id: UUID
    acceptance_criteria_id: Optional[UUID] = None
    type_id: UUID
    title: str
    description: Optional[str] = None
    priority: int
    status: str
    creator_id: UUID
    assignee_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RequirementListResponse(BaseModel):
    items: list[RequirementResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class RelationshipCreate(BaseModel):
    """Endpoints accept UUID or REQ-n; relationship_type_id accepts a UUID or type name."""

    source_requirement_id: str = Field(..., min_length=1)
    target_requirement_id: str = Field(..., min_length=1)
    relationship_type_id: str = Field(..., min_length=1)


class RelationshipResponse(BaseModel):
    id: UUID
    source_requirement_id: UUID
    target_requirement_id: UUID
    relationship_type_id: UUID
    created_by: UUID
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RequirementWithRelationshipsResponse(RequirementResponse):
    relationships: list[RelationshipResponse] = Field(default_factory=list)


# ============================================================================
# Hierarchy
# ============================================================================

class RequirementTypeResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class HierarchyRequirement(RequirementResponse):
    type: Optional[RequirementTypeResponse] = None


class HierarchyUserStory(UserStoryResponse):
    acceptance_criteria: list[AcceptanceCriteriaResponse] = Field(default_factory=list)
    requirements: list[HierarchyRequirement] = Field(default_factory=list)


class SteeringDocumentResponse(BaseModel):
    id: UUID
    reference_id: str
    title: str
    description: Optional[str] = None
    creator_id: UUID
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class EpicHierarchyResponse(EpicResponse):
    """Epic with steering documents, stories, criteria and requirements."""

    steering_documents: list[SteeringDocumentResponse] = Field(default_factory=list)
    user_stories: list[HierarchyUserStory] = Field(default_factory=list)


# ============================================================================
# Navigation
# ============================================================================

class NavigationRequirement(RequirementResponse):
    relationships: list[RelationshipResponse] = Field(default_factory=list)


class NavigationUserStory(UserStoryResponse):
    acceptance_criteria: list[AcceptanceCriteriaResponse] = Field(default_factory=list)
    requirements: list[NavigationRequirement] = Field(default_factory=list)


class NavigationEpic(EpicResponse):
    user_stories: list[NavigationUserStory] = Field(default_factory=list)


class NavigationTreeResponse(BaseModel):
    """Epics with the requested levels below them expanded."""

    epics: list[NavigationEpic]
    total: int
    count: int


class PathElement(BaseModel):
    """One step of the path from an epic down to an entity."""

    id: UUID
    reference_id: str
    entity_type: EntityType
    title: str

    model_config = ConfigDict(use_enum_values=True)


class EntityPathResponse(BaseModel):
    path: list[PathElement]


# ============================================================================
# Comments
# ============================================================================

class CommentCreate(BaseModel):
    """
    Schema for creating a comment.

    Inline comments set linked_text, text_position_start and
    text_position_end together; the range must select linked_text from the
    entity's description.
    """

    content: str = Field(..., min_length=1, max_length=DESCRIPTION_MAX)
    parent_comment_id: Optional[UUID] = None
    linked_text: Optional[str] = Field(None, min_length=1)
    text_position_start: Optional[int] = Field(None, ge=0)
    text_position_end: Optional[int] = Field(None, ge=0)

    @model_validator(mode="after")
    def validate_inline_fields(self) -> "CommentCreate":
        inline = (self.linked_text, self.text_position_start, self.text_position_end)
        provided = [value is not None for value in inline]
        if any(provided) and not all(provided):
            raise ValueError("linked_text, text_position_start and text_position_end must be provided together")
        return self


class CommentUpdate(BaseModel):
    content: str = Field(..., min_length=1, max_length=DESCRIPTION_MAX)


class CommentResponse(BaseModel):
    id: UUID
    entity_type: EntityType
    entity_id: UUID
    author_id: UUID
    content: str
    parent_comment_id: Optional[UUID] = None
    is_resolved: bool
    linked_text: Optional[str] = None
    text_position_start: Optional[int] = None
    text_position_end: Optional[int] = None
    is_inline: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class CommentListResponse(BaseModel):
    items: list[CommentResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class InlineCommentValidation(BaseModel):
    comment_id: UUID
    is_valid: bool
    reason: Optional[str] = None


class InlineValidationResponse(BaseModel):
    """Per-comment anchor check against the entity's current description."""

    entity_type: EntityType
    entity_id: UUID
    results: list[InlineCommentValidation]
    valid_count: int
    stale_count: int

    model_config = ConfigDict(use_enum_values=True)


# ============================================================================
# Steering documents
# ============================================================================

class SteeringDocumentCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=TITLE_MAX)
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX)


class SteeringDocumentUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=TITLE_MAX)
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX)


class SteeringDocumentListResponse(BaseModel):
    items: list[SteeringDocumentResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class SteeringLinkResponse(BaseModel):
    epic_id: UUID
    steering_document_id: UUID
    linked: bool


# ============================================================================
# Prompts
# ============================================================================

class PromptCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    title: str = Field(..., min_length=1, max_length=TITLE_MAX)
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX)
    content: str = Field(..., min_length=1)
    role: PromptRole = PromptRole.ASSISTANT


class PromptUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=TITLE_MAX)
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX)
    content: Optional[str] = Field(None, min_length=1)
    role: Optional[PromptRole] = None


class PromptResponse(BaseModel):
    id: UUID
    reference_id: str
    name: str
    title: str
    description: Optional[str] = None
    content: str
    role: PromptRole
    is_active: bool
    creator_id: UUID
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class PromptListResponse(BaseModel):
    items: list[PromptResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


# ============================================================================
# Search
# ============================================================================

class SearchResult(BaseModel):
    entity_type: EntityType
    id: UUID
    reference_id: str
    title: str
    description: Optional[str] = None
    status: Optional[str] = None
    relevance: float = 0.0

    model_config = ConfigDict(use_enum_values=True)


class SearchResponse(BaseModel):
    query: str
    entity_types: list[EntityType]
    results: list[SearchResult]
    total: int
    limit: int
    offset: int

    model_config = ConfigDict(use_enum_values=True)


# ============================================================================
# Deletion
# ============================================================================

class DependencyItem(BaseModel):
    entity_type: str
    entity_id: UUID
    reference_id: Optional[str] = None
    title: Optional[str] = None


class DependencyReport(BaseModel):
    """Direct dependents of an entity, grouped by kind."""

    entity_type: str
    entity_id: UUID
    reference_id: Optional[str] = None
    can_delete: bool
    dependencies: dict[str, list[DependencyItem]] = Field(default_factory=dict)
    cascade_delete_count: int = 0
    cascade_delete_entities: list[DependencyItem] = Field(default_factory=list)
    requires_confirmation: bool = False


class DeletionResult(BaseModel):
    entity_type: str
    entity_id: UUID
    reference_id: Optional[str] = None
    deleted: dict[str, int]
    deleted_at: datetime
    deleted_by: UUID
    transaction_id: str


# ============================================================================
# Configuration
# ============================================================================

class RequirementTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class RequirementTypeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None


class RelationshipTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class RelationshipTypeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None


class RelationshipTypeResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StatusResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    order: int
    is_initial: bool
    is_final: bool

    model_config = ConfigDict(from_attributes=True)


class StatusTransitionResponse(BaseModel):
    id: UUID
    from_status_id: UUID
    to_status_id: UUID
    name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class StatusModelResponse(BaseModel):
    id: UUID
    entity_type: EntityType
    name: str
    description: Optional[str] = None
    is_default: bool
    statuses: list[StatusResponse] = Field(default_factory=list)
    transitions: list[StatusTransitionResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class AllowedTransitionsResponse(BaseModel):
    entity_type: EntityType
    current_status: str
    allowed_transitions: list[str]

    model_config = ConfigDict(use_enum_values=True)
