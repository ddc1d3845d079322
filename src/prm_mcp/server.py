"""PRM MCP Server - expose product requirements management to AI assistants over stdio."""
import asyncio
import logging
import sys
from typing import Any, Optional

import httpx
from mcp.server import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.stdio import stdio_server
from mcp.types import GetPromptResult, Prompt, Resource, TextContent, Tool
from pydantic import AnyUrl

from prm_core.config import get_settings

from . import formatters
from . import handlers
from . import prompts
from . import resources
from . import tools

# Configure logging to stderr; stdout carries the protocol
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stderr,
    force=True
)
logger = logging.getLogger("prm-mcp")

settings = get_settings()

# API Configuration
API_BASE_URL = settings.mcp_api_base_url.rstrip("/") + "/api/v1"
PRM_PAT = settings.mcp_pat

logger.info(f"MCP Server starting with API_BASE_URL: {API_BASE_URL}")
if not PRM_PAT:
    logger.warning("PRM_PAT is not set; every tool call will be rejected by the API")


# MCP Server instance
app = Server("prm-mcp")


def build_client(transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """HTTP client for the API, authenticated with the personal access token."""
    headers = {"X-API-Key": PRM_PAT} if PRM_PAT else {}
    return httpx.AsyncClient(base_url=API_BASE_URL, timeout=30.0, headers=headers, transport=transport)


async def dispatch(name: str, arguments: Any, client: httpx.AsyncClient) -> list[TextContent]:
    """Run one tool call and render any failure as text content."""
    handler = handlers.HANDLERS.get(name)
    if handler is None:
        logger.warning(f"Unknown tool requested: {name}")
        return [TextContent(type="text", text=f"Unknown tool: {name}")]

    try:
        return await handler(dict(arguments or {}), client)

    except httpx.HTTPStatusError as e:
        logger.error(f"HTTP error during {name} call: {e.response.status_code} {e.request.method} {e.request.url}")
        try:
            body = e.response.json()
        except ValueError:
            body = e.response.text or str(e)
        logger.error(f"  Response body: {body}")
        return [TextContent(type="text", text=formatters.format_error(e.response.status_code, body))]

    except httpx.RequestError as e:
        logger.error(f"Request error during {name} call: {type(e).__name__}: {e}")
        return [TextContent(type="text", text=f"Error: Connection failed - {e}")]

    except Exception as e:
        logger.error(f"Unexpected error during {name} call with arguments {arguments}: {e}", exc_info=True)
        return [TextContent(type="text", text=f"Error: {type(e).__name__}: {e}")]


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available MCP tools."""
    return tools.get_tools()


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle MCP tool calls by delegating to the handlers."""
    logger.info(f"Tool call: {name} with arguments: {arguments}")
    async with build_client() as client:
        return await dispatch(name, arguments, client)


@app.list_prompts()
async def list_prompts() -> list[Prompt]:
    """List stored prompts by name."""
    async with build_client() as client:
        return await prompts.list_prompts(client)


@app.get_prompt()
async def get_prompt(name: str, arguments: Optional[dict[str, str]] = None) -> GetPromptResult:
    logger.info(f"Prompt requested: {name}")
    async with build_client() as client:
        return await prompts.get_prompt(name, client)


@app.list_resources()
async def list_resources() -> list[Resource]:
    """List readable collections and entities."""
    async with build_client() as client:
        return await resources.list_resources(client)


@app.read_resource()
async def read_resource(uri: AnyUrl) -> list[ReadResourceContents]:
    logger.info(f"Resource read: {uri}")
    async with build_client() as client:
        text = await resources.read_resource(str(uri), client)
    return [ReadResourceContents(content=text, mime_type=resources.MIME_TYPE)]


async def main():
    """Run the MCP server with the active prompt as its instructions."""
    async with build_client() as client:
        app.instructions = await prompts.load_instructions(client)
    async with stdio_server() as (read_stream, write_stream):
        await app.run(read_stream, write_stream, app.create_initialization_options())


def run() -> None:
    """Console entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
