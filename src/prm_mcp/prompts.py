"""MCP prompts backed by the stored Prompt entities.

Every stored prompt is offered through prompts/list under its unique name;
prompts/get returns its content as one message in the prompt's role. The
active prompt also becomes the server instructions sent at initialization.
"""
import logging
from typing import Optional

import httpx
from mcp.types import GetPromptResult, Prompt, PromptMessage, TextContent

from prm_core.errors import NotFoundError

logger = logging.getLogger("prm-mcp.prompts")

PAGE_SIZE = 100


async def fetch_all_prompts(client: httpx.AsyncClient) -> list[dict]:
    """Every stored prompt, following the API's pagination."""
    prompts: list[dict] = []
    page = 1
    while True:
        response = await client.get("/prompts/", params={"page": page, "page_size": PAGE_SIZE})
        response.raise_for_status()
        body = response.json()
        prompts.extend(body["items"])
        if page >= body["total_pages"]:
            return prompts
        page += 1


def instructions_text(prompt: dict) -> str:
    """Description (when set) followed by the prompt content."""
    if prompt.get("description"):
        return f"{prompt['description']}\n\n{prompt['content']}"
    return prompt["content"]


async def list_prompts(client: httpx.AsyncClient) -> list[Prompt]:
    prompts = await fetch_all_prompts(client)
    logger.info(f"Listing {len(prompts)} prompts")
    return [Prompt(name=prompt["name"], description=prompt.get("description") or prompt["title"]) for prompt in prompts]


async def get_prompt(name: str, client: httpx.AsyncClient) -> GetPromptResult:
    """
    Render a stored prompt by name.

    Raises:
        NotFoundError: If no prompt has this name
    """
    for prompt in await fetch_all_prompts(client):
        if prompt["name"] == name:
            return GetPromptResult(
                description=prompt.get("description") or prompt["title"],
                messages=[
                    PromptMessage(role=prompt["role"], content=TextContent(type="text", text=prompt["content"])),
                ],
            )
    raise NotFoundError(f"Prompt '{name}' not found")


async def load_instructions(client: httpx.AsyncClient) -> Optional[str]:
    """
    Server instructions from the active prompt.

    Returns None when no prompt is active or the API cannot be reached, so
    the server still starts.
    """
    try:
        response = await client.get("/prompts/active")
        if response.status_code == 404:
            logger.info("No active prompt; starting without instructions")
            return None
        response.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning(f"Could not load the active prompt: {type(e).__name__}: {e}")
        return None
    prompt = response.json()
    logger.info(f"Using active prompt {prompt['reference_id']} as server instructions")
    return instructions_text(prompt)
