"""MCP tool definitions for product requirements management.

Every tool the server exposes is declared here with its JSON-Schema input.
Handlers live in handlers.py under the same names.
"""

from mcp.types import Tool

from prm_core.errors import NotFoundError
from prm_core.models import EntityType, EpicStatus, RequirementStatus, PromptRole
from prm_core.reference_ids import reference_pattern
from prm_core.schemas import DESCRIPTION_MAX, TITLE_MAX

UUID_PATTERN = "^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"

EPIC_STATUSES = [status.value for status in EpicStatus]
REQUIREMENT_STATUSES = [status.value for status in RequirementStatus]
SEARCHABLE_TYPES = [entity_type.value for entity_type in EntityType]


def _identifier(prefix: str, description: str) -> dict:
    """A string that is either a UUID or a reference ID with the given prefix."""
    return {
        "type": "string",
        "description": description,
        "anyOf": [
            {"format": "uuid", "pattern": UUID_PATTERN},
            {"pattern": reference_pattern(prefix)},
        ],
    }


def _uuid(description: str) -> dict:
    return {"type": "string", "format": "uuid", "pattern": UUID_PATTERN, "description": description}


def _title(description: str = "Title (max 500 characters)") -> dict:
    return {"type": "string", "minLength": 1, "maxLength": TITLE_MAX, "description": description}


def _description(description: str = "Description (max 50000 characters)") -> dict:
    return {"type": "string", "maxLength": DESCRIPTION_MAX, "description": description}


PRIORITY = {
    "type": "integer",
    "minimum": 1,
    "maximum": 4,
    "description": "Priority: 1=Critical, 2=High, 3=Medium, 4=Low",
}

ASSIGNEE = {
    "type": "string",
    "description": "Assignee user UUID; an empty string unassigns",
    "anyOf": [{"format": "uuid", "pattern": UUID_PATTERN}, {"maxLength": 0}],
}

PAGE = {"type": "integer", "minimum": 1, "description": "Page number (default: 1)"}
PAGE_SIZE = {"type": "integer", "minimum": 1, "maximum": 100, "description": "Items per page (default: 50, max: 100)"}


def get_tools() -> list[Tool]:
    """Get the list of all MCP tools."""
    return [
        # ============================================================================
        # Epic Tools
        # ============================================================================
        Tool(
            name="create_epic",
            title="Create Epic",
            description="Create an epic, the top level of the Epic → User Story → Requirement hierarchy. "
                        "Returns the new epic with its reference ID (e.g. EP-1). New epics start in Backlog.",
            inputSchema={
                "type": "object",
                "properties": {
                    "title": _title(),
                    "description": _description(),
                    "priority": PRIORITY,
                    "status": {"type": "string", "enum": EPIC_STATUSES, "description": "Initial status (Backlog)"},
                    "assignee_id": ASSIGNEE,
                },
                "required": ["title", "priority"],
            },
        ),
        Tool(
            name="update_epic",
            title="Update Epic",
            description="Update an epic. Omitted fields are unchanged. "
                        "Status changes must follow the epic status model; an invalid transition "
                        "returns the reachable statuses.",
            inputSchema={
                "type": "object",
                "properties": {
                    "epic_id": _identifier("EP", "Epic UUID or reference ID (EP-n)"),
                    "title": _title(),
                    "description": _description(),
                    "priority": PRIORITY,
                    "status": {"type": "string", "enum": EPIC_STATUSES, "description": "New status"},
                    "assignee_id": ASSIGNEE,
                },
                "required": ["epic_id"],
            },
        ),
        # ============================================================================
        # User Story Tools
        # ============================================================================
        Tool(
            name="create_user_story",
            title="Create User Story",
            description="Create a user story under an epic. Returns the story with its reference ID (e.g. US-1).",
            inputSchema={
                "type": "object",
                "properties": {
                    "epic_id": _identifier("EP", "Parent epic UUID or reference ID (EP-n)"),
                    "title": _title(),
                    "description": _description(),
                    "priority": PRIORITY,
                    "status": {"type": "string", "enum": EPIC_STATUSES, "description": "Initial status (Backlog)"},
                    "assignee_id": ASSIGNEE,
                },
                "required": ["epic_id", "title", "priority"],
            },
        ),
        Tool(
            name="update_user_story",
            title="Update User Story",
            description="Update a user story. Omitted fields are unchanged.",
            inputSchema={
                "type": "object",
                "properties": {
                    "user_story_id": _identifier("US", "User story UUID or reference ID (US-n)"),
                    "title": _title(),
                    "description": _description(),
                    "priority": PRIORITY,
                    "status": {"type": "string", "enum": EPIC_STATUSES, "description": "New status"},
                    "assignee_id": ASSIGNEE,
                },
                "required": ["user_story_id"],
            },
        ),
        # ============================================================================
        # Acceptance Criteria Tools
        # ============================================================================
        Tool(
            name="create_acceptance_criteria",
            title="Create Acceptance Criteria",
            description="Add an acceptance criterion to a user story. "
                        "Prefer EARS phrasing: 'WHEN <trigger> THE SYSTEM SHALL <response>'.",
            inputSchema={
                "type": "object",
                "properties": {
                    "user_story_id": _identifier("US", "User story UUID or reference ID (US-n)"),
                    "description": {
                        "type": "string",
                        "minLength": 1,
                        "maxLength": DESCRIPTION_MAX,
                        "description": "Criterion text (max 50000 characters)",
                    },
                },
                "required": ["user_story_id", "description"],
            },
        ),
        # ============================================================================
        # Requirement Tools
        # ============================================================================
        Tool(
            name="create_requirement",
            title="Create Requirement",
            description="Create a requirement under a user story, optionally tied to one of its acceptance criteria. "
                        "New requirements start in Draft.",
            inputSchema={
                "type": "object",
                "properties": {
                    "user_story_id": _identifier("US", "User story UUID or reference ID (US-n)"),
                    "acceptance_criteria_id": _identifier("AC", "Acceptance criterion UUID or reference ID (AC-n)"),
                    "type_id": {
                        "type": "string",
                        "description": "Requirement type UUID or name (Functional, Non-Functional, "
                                       "Business Rule, Interface, Data)",
                    },
                    "title": _title(),
                    "description": _description(),
                    "priority": PRIORITY,
                    "status": {"type": "string", "enum": REQUIREMENT_STATUSES, "description": "Initial status (Draft)"},
                    "assignee_id": ASSIGNEE,
                },
                "required": ["user_story_id", "type_id", "title", "priority"],
            },
        ),
        Tool(
            name="update_requirement",
            title="Update Requirement",
            description="Update a requirement. Omitted fields are unchanged. "
                        "Status flow: Draft → Active → Obsolete → Active. "
                        "An empty acceptance_criteria_id unlinks the criterion.",
            inputSchema={
                "type": "object",
                "properties": {
                    "requirement_id": _identifier("REQ", "Requirement UUID or reference ID (REQ-n)"),
                    "title": _title(),
                    "description": _description(),
                    "priority": PRIORITY,
                    "status": {"type": "string", "enum": REQUIREMENT_STATUSES, "description": "New status"},
                    "assignee_id": ASSIGNEE,
                    "acceptance_criteria_id": {
                        "type": "string",
                        "description": "Acceptance criterion UUID or AC-n; an empty string unlinks",
                    },
                    "type_id": {"type": "string", "description": "Requirement type UUID or name"},
                },
                "required": ["requirement_id"],
            },
        ),
        Tool(
            name="create_relationship",
            title="Create Requirement Relationship",
            description="Relate two different requirements. The (source, target, type) triple must be new. "
                        "Default types: depends_on, blocks, relates_to, conflicts_with, derives_from.",
            inputSchema={
                "type": "object",
                "properties": {
                    "source_requirement_id": _identifier("REQ", "Source requirement UUID or REQ-n"),
                    "target_requirement_id": _identifier("REQ", "Target requirement UUID or REQ-n"),
                    "relationship_type_id": {"type": "string", "description": "Relationship type UUID or name"},
                },
                "required": ["source_requirement_id", "target_requirement_id", "relationship_type_id"],
            },
        ),
        # ============================================================================
        # Search Tools
        # ============================================================================
        Tool(
            name="search_global",
            title="Search",
            description="Full-text search across epics, user stories, acceptance criteria and requirements, "
                        "ordered by relevance. A reference ID query (e.g. US-1) returns that entity first.",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "minLength": 1, "description": "Search text"},
                    "entity_types": {
                        "type": "array",
                        "items": {"type": "string", "enum": SEARCHABLE_TYPES},
                        "description": "Restrict to these entity types (default: all)",
                    },
                    "limit": {"type": "integer", "minimum": 1, "maximum": 100, "description": "Max results (default: 50)"},
                    "offset": {"type": "integer", "minimum": 0, "description": "Results to skip (default: 0)"},
                },
                "required": ["query"],
            },
        ),
        Tool(
            name="search_requirements",
            title="Search Requirements",
            description="Full-text search restricted to requirements.",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "minLength": 1, "description": "Search text"},
                    "limit": {"type": "integer", "minimum": 1, "maximum": 100, "description": "Max results (default: 50)"},
                    "offset": {"type": "integer", "minimum": 0, "description": "Results to skip (default: 0)"},
                },
                "required": ["query"],
            },
        ),
        # ============================================================================
        # Steering Document Tools
        # ============================================================================
        Tool(
            name="list_steering_documents",
            title="List Steering Documents",
            description="List steering documents (standards and guidance that apply to epics).",
            inputSchema={
                "type": "object",
                "properties": {"page": PAGE, "page_size": PAGE_SIZE},
            },
        ),
        Tool(
            name="create_steering_document",
            title="Create Steering Document",
            description="Create a steering document. Link it to epics with link_steering_to_epic.",
            inputSchema={
                "type": "object",
                "properties": {
                    "title": _title(),
                    "description": _description("Guidance text (max 50000 characters)"),
                },
                "required": ["title"],
            },
        ),
        Tool(
            name="get_steering_document",
            title="Get Steering Document",
            description="Get a steering document by UUID or reference ID (STD-n).",
            inputSchema={
                "type": "object",
                "properties": {
                    "steering_document_id": _identifier("STD", "Steering document UUID or STD-n"),
                },
                "required": ["steering_document_id"],
            },
        ),
        Tool(
            name="update_steering_document",
            title="Update Steering Document",
            description="Update a steering document. Only its creator or an administrator may.",
            inputSchema={
                "type": "object",
                "properties": {
                    "steering_document_id": _identifier("STD", "Steering document UUID or STD-n"),
                    "title": _title(),
                    "description": _description(),
                },
                "required": ["steering_document_id"],
            },
        ),
        Tool(
            name="link_steering_to_epic",
            title="Link Steering Document to Epic",
            description="Link a steering document to an epic. Fails if they are already linked.",
            inputSchema={
                "type": "object",
                "properties": {
                    "steering_document_id": _identifier("STD", "Steering document UUID or STD-n"),
                    "epic_id": _identifier("EP", "Epic UUID or EP-n"),
                },
                "required": ["steering_document_id", "epic_id"],
            },
        ),
        Tool(
            name="unlink_steering_from_epic",
            title="Unlink Steering Document from Epic",
            description="Remove the link between a steering document and an epic. Fails if they are not linked.",
            inputSchema={
                "type": "object",
                "properties": {
                    "steering_document_id": _identifier("STD", "Steering document UUID or STD-n"),
                    "epic_id": _identifier("EP", "Epic UUID or EP-n"),
                },
                "required": ["steering_document_id", "epic_id"],
            },
        ),
        Tool(
            name="get_epic_steering_documents",
            title="Get Epic Steering Documents",
            description="List the steering documents linked to an epic.",
            inputSchema={
                "type": "object",
                "properties": {
                    "epic_id": _identifier("EP", "Epic UUID or EP-n"),
                },
                "required": ["epic_id"],
            },
        ),
        # ============================================================================
        # Prompt Tools (administrators)
        # ============================================================================
        Tool(
            name="create_prompt",
            title="Create Prompt",
            description="Create an agent prompt (administrators only). New prompts are inactive.",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "minLength": 1, "maxLength": 255, "description": "Unique name"},
                    "title": _title(),
                    "description": _description(),
                    "content": {"type": "string", "minLength": 1, "description": "Prompt text"},
                    "role": {
                        "type": "string",
                        "enum": [role.value for role in PromptRole],
                        "description": "Conversation role (default: assistant)",
                    },
                },
                "required": ["name", "title", "content"],
            },
        ),
        Tool(
            name="update_prompt",
            title="Update Prompt",
            description="Update a prompt (administrators only). Omitted fields are unchanged.",
            inputSchema={
                "type": "object",
                "properties": {
                    "prompt_id": _identifier("PROMPT", "Prompt UUID or PROMPT-n"),
                    "title": _title(),
                    "description": _description(),
                    "content": {"type": "string", "minLength": 1, "description": "Prompt text"},
                    "role": {"type": "string", "enum": [role.value for role in PromptRole]},
                },
                "required": ["prompt_id"],
            },
        ),
        Tool(
            name="delete_prompt",
            title="Delete Prompt",
            description="Delete a prompt (administrators only).",
            inputSchema={
                "type": "object",
                "properties": {
                    "prompt_id": _identifier("PROMPT", "Prompt UUID or PROMPT-n"),
                },
                "required": ["prompt_id"],
            },
        ),
        Tool(
            name="activate_prompt",
            title="Activate Prompt",
            description="Make a prompt the single active prompt; all others are deactivated atomically.",
            inputSchema={
                "type": "object",
                "properties": {
                    "prompt_id": _identifier("PROMPT", "Prompt UUID or PROMPT-n"),
                },
                "required": ["prompt_id"],
            },
        ),
        Tool(
            name="list_prompts",
            title="List Prompts",
            description="List prompts, optionally only the active or inactive ones.",
            inputSchema={
                "type": "object",
                "properties": {
                    "is_active": {"type": "boolean", "description": "Filter by active flag"},
                    "page": PAGE,
                    "page_size": PAGE_SIZE,
                },
            },
        ),
        Tool(
            name="get_active_prompt",
            title="Get Active Prompt",
            description="Get the active prompt. Errors: 404 when no prompt is active.",
            inputSchema={"type": "object", "properties": {}},
        ),
    ]


def get_tool_by_name(name: str) -> Tool:
    """
    Look up a tool definition.

    Raises:
        NotFoundError: If no tool has this name
    """
    for tool in get_tools():
        if tool.name == name:
            return tool
    raise NotFoundError(f"Unknown tool: {name}", details={"tool": name})
