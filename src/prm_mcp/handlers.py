"""MCP tool handlers.

Each handler takes the tool arguments and an httpx.AsyncClient bound to the
API base URL (``.../api/v1``), calls the HTTP API, raises on error statuses
and returns formatted TextContent. Transport concerns (credentials, error
rendering) belong to the caller.
"""
import logging
from typing import Awaitable, Callable

import httpx
from mcp.types import TextContent

from . import formatters

logger = logging.getLogger("prm-mcp.handlers")

Handler = Callable[[dict, httpx.AsyncClient], Awaitable[list[TextContent]]]


def _text(text: str) -> list[TextContent]:
    return [TextContent(type="text", text=text)]


def _payload(arguments: dict, *exclude: str) -> dict:
    """Drop path arguments and unset values; empty strings pass through (they unassign)."""
    return {k: v for k, v in arguments.items() if k not in exclude and v is not None}


# ============================================================================
# Epic Handlers
# ============================================================================

async def handle_create_epic(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """Create an epic; the API pins the creator to the token owner."""
    response = await client.post("/epics/", json=_payload(arguments))
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully created epic {result['reference_id']}")

    return _text(f"Created epic {result['reference_id']}\n\n{formatters.format_epic(result)}")


async def handle_update_epic(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    epic_id = arguments["epic_id"]
    response = await client.put(f"/epics/{epic_id}", json=_payload(arguments, "epic_id"))
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully updated epic {result['reference_id']}")

    return _text(f"Updated epic {result['reference_id']}\n\n{formatters.format_epic(result)}")


# ============================================================================
# User Story Handlers
# ============================================================================

async def handle_create_user_story(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    response = await client.post("/user-stories/", json=_payload(arguments))
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully created user story {result['reference_id']}")

    return _text(f"Created user story {result['reference_id']}\n\n{formatters.format_user_story(result)}")


async def handle_update_user_story(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    story_id = arguments["user_story_id"]
    response = await client.put(f"/user-stories/{story_id}", json=_payload(arguments, "user_story_id"))
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully updated user story {result['reference_id']}")

    return _text(f"Updated user story {result['reference_id']}\n\n{formatters.format_user_story(result)}")


# ============================================================================
# Acceptance Criteria Handlers
# ============================================================================

async def handle_create_acceptance_criteria(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    response = await client.post("/acceptance-criteria/", json=_payload(arguments))
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully created acceptance criteria {result['reference_id']}")

    return _text(
        f"Created acceptance criteria {result['reference_id']}\n\n{formatters.format_acceptance_criteria(result)}"
    )


# ============================================================================
# Requirement Handlers
# ============================================================================

async def handle_create_requirement(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """Create a requirement. type_id may be a type name such as 'Functional'."""
    response = await client.post("/requirements/", json=_payload(arguments))
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully created requirement {result['reference_id']}")

    return _text(f"Created requirement {result['reference_id']}\n\n{formatters.format_requirement(result)}")


async def handle_update_requirement(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    requirement_id = arguments["requirement_id"]
    response = await client.put(f"/requirements/{requirement_id}", json=_payload(arguments, "requirement_id"))
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully updated requirement {result['reference_id']}")

    return _text(f"Updated requirement {result['reference_id']}\n\n{formatters.format_requirement(result)}")


async def handle_create_relationship(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    response = await client.post("/requirements/relationships", json=_payload(arguments))
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully created relationship {result['id']}")

    return _text(f"Created relationship\n\n{formatters.format_relationship(result)}")


# ============================================================================
# Search Handlers
# ============================================================================

async def _search(client: httpx.AsyncClient, query: str, entity_types, limit, offset) -> dict:
    params = {"q": query}
    if entity_types:
        params["entity_types"] = list(entity_types)
    if limit is not None:
        params["limit"] = limit
    if offset is not None:
        params["offset"] = offset
    response = await client.get("/search/", params=params)
    response.raise_for_status()
    return response.json()


async def handle_search_global(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """Search all entity types, or the subset in entity_types."""
    result = await _search(
        client,
        arguments["query"],
        arguments.get("entity_types"),
        arguments.get("limit"),
        arguments.get("offset"),
    )
    logger.info(f"Search '{arguments['query']}' returned {result['total']} matches")

    return _text(formatters.format_search_response(result))


async def handle_search_requirements(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    result = await _search(
        client,
        arguments["query"],
        ["requirement"],
        arguments.get("limit"),
        arguments.get("offset"),
    )
    logger.info(f"Requirement search '{arguments['query']}' returned {result['total']} matches")

    return _text(formatters.format_search_response(result))


# ============================================================================
# Steering Document Handlers
# ============================================================================

async def handle_list_steering_documents(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    response = await client.get("/steering-documents/", params=_payload(arguments))
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully listed {result['total']} steering documents")

    items_text = "\n\n".join(formatters.format_steering_document(item) for item in result['items'])
    summary = f"Found {result['total']} steering documents (page {result['page']} of {result['total_pages']})"
    return _text(f"{summary}\n\n{items_text}" if items_text else summary)


async def handle_create_steering_document(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    response = await client.post("/steering-documents/", json=_payload(arguments))
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully created steering document {result['reference_id']}")

    return _text(f"Created steering document {result['reference_id']}\n\n{formatters.format_steering_document(result)}")


async def handle_get_steering_document(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    document_id = arguments["steering_document_id"]
    response = await client.get(f"/steering-documents/{document_id}")
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully retrieved steering document {result['reference_id']}")

    return _text(formatters.format_steering_document(result))


async def handle_update_steering_document(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    document_id = arguments["steering_document_id"]
    response = await client.put(
        f"/steering-documents/{document_id}",
        json=_payload(arguments, "steering_document_id"),
    )
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully updated steering document {result['reference_id']}")

    return _text(f"Updated steering document {result['reference_id']}\n\n{formatters.format_steering_document(result)}")


async def handle_link_steering_to_epic(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    document_id = arguments["steering_document_id"]
    epic_id = arguments["epic_id"]
    response = await client.post(f"/steering-documents/{document_id}/epics/{epic_id}")
    response.raise_for_status()
    logger.info(f"Linked steering document {document_id} to epic {epic_id}")

    return _text(f"Linked steering document {document_id} to epic {epic_id}")


async def handle_unlink_steering_from_epic(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    document_id = arguments["steering_document_id"]
    epic_id = arguments["epic_id"]
    response = await client.delete(f"/steering-documents/{document_id}/epics/{epic_id}")
    response.raise_for_status()
    logger.info(f"Unlinked steering document {document_id} from epic {epic_id}")

    return _text(f"Unlinked steering document {document_id} from epic {epic_id}")


async def handle_get_epic_steering_documents(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    epic_id = arguments["epic_id"]
    response = await client.get(f"/epics/{epic_id}/steering-documents")
    response.raise_for_status()
    result = response.json()
    logger.info(f"Epic {epic_id} has {len(result)} steering documents")

    if not result:
        return _text(f"No steering documents are linked to epic {epic_id}")
    items_text = "\n\n".join(formatters.format_steering_document(item) for item in result)
    return _text(f"{len(result)} steering documents linked to epic {epic_id}\n\n{items_text}")


# ============================================================================
# Prompt Handlers
# ============================================================================

async def handle_create_prompt(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    response = await client.post("/prompts/", json=_payload(arguments))
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully created prompt {result['reference_id']}")

    return _text(f"Created prompt {result['reference_id']}\n\n{formatters.format_prompt(result)}")


async def handle_update_prompt(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    prompt_id = arguments["prompt_id"]
    response = await client.put(f"/prompts/{prompt_id}", json=_payload(arguments, "prompt_id"))
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully updated prompt {result['reference_id']}")

    return _text(f"Updated prompt {result['reference_id']}\n\n{formatters.format_prompt(result)}")


async def handle_delete_prompt(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    prompt_id = arguments["prompt_id"]
    response = await client.delete(f"/prompts/{prompt_id}")
    response.raise_for_status()
    logger.info(f"Successfully deleted prompt {prompt_id}")

    return _text(f"Deleted prompt {prompt_id}")


async def handle_activate_prompt(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    prompt_id = arguments["prompt_id"]
    response = await client.post(f"/prompts/{prompt_id}/activate")
    response.raise_for_status()
    result = response.json()
    logger.info(f"Activated prompt {result['reference_id']}")

    return _text(f"Activated prompt {result['reference_id']}; all other prompts are inactive")


async def handle_list_prompts(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    params = _payload(arguments)
    if "is_active" in params:
        params["is_active"] = str(params["is_active"]).lower()
    response = await client.get("/prompts/", params=params)
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully listed {result['total']} prompts")

    items_text = "\n".join(
        f"- {item['reference_id']}: {item['name']}{' [ACTIVE]' if item['is_active'] else ''} ({item['title']})"
        for item in result['items']
    )
    summary = f"Found {result['total']} prompts (page {result['page']} of {result['total_pages']})"
    return _text(f"{summary}\n\n{items_text}" if items_text else summary)


async def handle_get_active_prompt(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    response = await client.get("/prompts/active")
    response.raise_for_status()
    result = response.json()
    logger.info(f"Active prompt is {result['reference_id']}")

    return _text(formatters.format_prompt(result))


HANDLERS: dict[str, Handler] = {
    "create_epic": handle_create_epic,
    "update_epic": handle_update_epic,
    "create_user_story": handle_create_user_story,
    "update_user_story": handle_update_user_story,
    "create_acceptance_criteria": handle_create_acceptance_criteria,
    "create_requirement": handle_create_requirement,
    "update_requirement": handle_update_requirement,
    "create_relationship": handle_create_relationship,
    "search_global": handle_search_global,
    "search_requirements": handle_search_requirements,
    "list_steering_documents": handle_list_steering_documents,
    "create_steering_document": handle_create_steering_document,
    "get_steering_document": handle_get_steering_document,
    "update_steering_document": handle_update_steering_document,
    "link_steering_to_epic": handle_link_steering_to_epic,
    "unlink_steering_from_epic": handle_unlink_steering_from_epic,
    "get_epic_steering_documents": handle_get_epic_steering_documents,
    "create_prompt": handle_create_prompt,
    "update_prompt": handle_update_prompt,
    "delete_prompt": handle_delete_prompt,
    "activate_prompt": handle_activate_prompt,
    "list_prompts": handle_list_prompts,
    "get_active_prompt": handle_get_active_prompt,
}
