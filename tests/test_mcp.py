"""Tests for the MCP server: tools, formatting, handlers, dispatch, prompts and resources."""
import json

import httpx
import pytest
import respx
from mcp import types

from prm_core.errors import NotFoundError, ValidationError
from prm_mcp import formatters, handlers, prompts, resources, server, tools

EPIC = {
    "id": "0b7c1a52-7a9d-4a8b-9c1e-2f3a4b5c6d7e",
    "reference_id": "EP-1",
    "title": "Checkout",
    "description": "Everything about paying for an order",
    "priority": 2,
    "status": "Backlog",
    "creator_id": "5d2f8c1e-1111-4222-8333-944455556666",
    "assignee_id": None,
    "created_at": "2026-01-01T10:00:00",
    "updated_at": "2026-01-01T10:00:00",
}


@pytest.fixture
def api_client():
    """Tool-server HTTP client pointed at a mocked API."""
    return httpx.AsyncClient(base_url="http://test/api/v1")


class TestTools:
    """Test tool definitions."""

    def test_every_tool_has_a_handler(self):
        names = [tool.name for tool in tools.get_tools()]

        assert len(names) == 23
        assert len(set(names)) == len(names)
        assert set(names) == set(handlers.HANDLERS)

    def test_schemas_are_objects(self):
        for tool in tools.get_tools():
            assert tool.inputSchema["type"] == "object"

    def test_get_tool_by_name(self):
        assert tools.get_tool_by_name("search_global").name == "search_global"

        with pytest.raises(NotFoundError):
            tools.get_tool_by_name("drop_database")


class TestFormatters:
    """Test markdown rendering of API responses."""

    def test_format_epic(self):
        text = formatters.format_epic(EPIC)

        assert text.startswith("**EP-1: Checkout**")
        assert "Priority: 2 (High)" in text
        assert "Assignee" not in text
        assert text.endswith("Everything about paying for an order")

    def test_format_prompt_marks_active(self):
        text = formatters.format_prompt({
            "reference_id": "PROMPT-1",
            "name": "planner",
            "title": "Planner",
            "id": "p",
            "role": "assistant",
            "is_active": True,
            "content": "You plan.",
        })

        assert "[ACTIVE]" in text
        assert text.endswith("--- Content ---\nYou plan.")

    def test_format_empty_search(self):
        text = formatters.format_search_response({"query": "nothing", "results": [], "total": 0, "offset": 0})
        assert text == "Found 0 matches for 'nothing' (showing 0-0)"

    def test_format_error_with_valid_values(self):
        body = {
            "code": "VALIDATION",
            "message": "Cannot move from Draft to Obsolete",
            "details": {"valid_values": ["Active"]},
        }

        text = formatters.format_error(400, body)

        assert text == "Error (400 VALIDATION): Cannot move from Draft to Obsolete\nValid values: Active"

    def test_format_error_plain_text(self):
        assert formatters.format_error(502, "Bad gateway") == "Error (502): Bad gateway"


class TestHandlers:
    """Test handlers against a mocked API."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_create_epic(self, api_client):
        route = respx.post("http://test/api/v1/epics/").respond(201, json=EPIC)

        result = await handlers.handle_create_epic({"title": "Checkout", "priority": 2, "description": None}, api_client)

        assert json.loads(route.calls.last.request.content) == {"title": "Checkout", "priority": 2}
        assert result[0].text.startswith("Created epic EP-1")

    @pytest.mark.asyncio
    @respx.mock
    async def test_update_keeps_empty_assignee(self, api_client):
        """Test that an empty assignee is forwarded so the API unassigns."""
        route = respx.put("http://test/api/v1/epics/EP-1").respond(200, json=EPIC)

        await handlers.handle_update_epic({"epic_id": "EP-1", "assignee_id": ""}, api_client)

        assert json.loads(route.calls.last.request.content) == {"assignee_id": ""}

    @pytest.mark.asyncio
    @respx.mock
    async def test_search_requirements_restricts_type(self, api_client):
        route = respx.get(host="test", path="/api/v1/search/").respond(200, json={
            "query": "decline",
            "entity_types": ["requirement"],
            "results": [{
                "entity_type": "requirement",
                "id": "r",
                "reference_id": "REQ-1",
                "title": "Show decline reason",
                "status": "Draft",
                "relevance": 0.75,
            }],
            "total": 1,
            "limit": 50,
            "offset": 0,
        })

        result = await handlers.handle_search_requirements({"query": "decline"}, api_client)

        assert route.calls.last.request.url.params.get_list("entity_types") == ["requirement"]
        assert "- REQ-1 (requirement) [Draft]: Show decline reason (relevance 0.75)" in result[0].text


class TestDispatch:
    """Test error rendering in the dispatcher."""

    @pytest.mark.asyncio
    async def test_unknown_tool(self, api_client):
        result = await server.dispatch("drop_database", {}, api_client)
        assert result[0].text == "Unknown tool: drop_database"

    @pytest.mark.asyncio
    @respx.mock
    async def test_api_error_is_formatted(self, api_client):
        respx.post("http://test/api/v1/steering-documents/STD-1/epics/EP-1").respond(409, json={
            "code": "CONFLICT",
            "message": "Steering document is already linked to this epic",
        })

        result = await server.dispatch(
            "link_steering_to_epic", {"steering_document_id": "STD-1", "epic_id": "EP-1"}, api_client,
        )

        assert result[0].text == "Error (409 CONFLICT): Steering document is already linked to this epic"

    @pytest.mark.asyncio
    @respx.mock
    async def test_connection_error(self, api_client):
        respx.get("http://test/api/v1/prompts/active").mock(side_effect=httpx.ConnectError("connection refused"))

        result = await server.dispatch("get_active_prompt", None, api_client)

        assert result[0].text.startswith("Error: Connection failed")


PLANNER = {
    "id": "9f1e2d3c-4b5a-4697-8877-665544332211",
    "reference_id": "PROMPT-1",
    "name": "planner",
    "title": "Planner",
    "description": "Plans product work",
    "content": "Break epics into user stories.",
    "role": "assistant",
    "is_active": True,
}


def _page(items: list[dict]) -> dict:
    return {"items": items, "total": len(items), "page": 1, "page_size": 100, "total_pages": 1 if items else 0}


class TestPrompts:
    """Test prompts served over MCP."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_list_prompts(self, api_client):
        respx.get(host="test", path="/api/v1/prompts/").respond(200, json=_page([PLANNER]))

        listed = await prompts.list_prompts(api_client)

        assert [(prompt.name, prompt.description) for prompt in listed] == [("planner", "Plans product work")]

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_prompt_by_name(self, api_client):
        respx.get(host="test", path="/api/v1/prompts/").respond(200, json=_page([PLANNER]))

        result = await prompts.get_prompt("planner", api_client)

        assert result.messages[0].role == "assistant"
        assert result.messages[0].content.text == "Break epics into user stories."

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_unknown_prompt(self, api_client):
        respx.get(host="test", path="/api/v1/prompts/").respond(200, json=_page([]))

        with pytest.raises(NotFoundError):
            await prompts.get_prompt("planner", api_client)

    @pytest.mark.asyncio
    @respx.mock
    async def test_active_prompt_becomes_instructions(self, api_client):
        respx.get("http://test/api/v1/prompts/active").respond(200, json=PLANNER)

        instructions = await prompts.load_instructions(api_client)

        assert instructions == "Plans product work\n\nBreak epics into user stories."

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_active_prompt(self, api_client):
        respx.get("http://test/api/v1/prompts/active").respond(404, json={"code": "NOT_FOUND", "message": "No active prompt"})
        assert await prompts.load_instructions(api_client) is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_unreachable_api_starts_without_instructions(self, api_client):
        respx.get("http://test/api/v1/prompts/active").mock(side_effect=httpx.ConnectError("connection refused"))
        assert await prompts.load_instructions(api_client) is None


class TestResources:
    """Test entity resources."""

    @pytest.mark.parametrize("uri, expected", [
        ("requirements://epics", ("epics", None, None)),
        ("requirements://epics/EP-1", ("epics", "EP-1", None)),
        ("requirements://epics/EP-1/hierarchy", ("epics", "EP-1", "hierarchy")),
        ("requirements://requirements/REQ-3/relationships", ("requirements", "REQ-3", "relationships")),
    ])
    def test_parse_uri(self, uri, expected):
        assert resources.parse_resource_uri(uri) == expected

    @pytest.mark.parametrize("uri", [
        "epic://EP-1",
        "requirements://projects/1",
        "requirements://epics/EP-1/comments",
        "requirements://",
    ])
    def test_reject_uri(self, uri):
        with pytest.raises(ValidationError):
            resources.parse_resource_uri(uri)

    @pytest.mark.asyncio
    @respx.mock
    async def test_read_view(self, api_client):
        route = respx.get("http://test/api/v1/epics/EP-1/hierarchy").respond(200, json={**EPIC, "user_stories": []})

        text = await resources.read_resource("requirements://epics/EP-1/hierarchy", api_client)

        assert route.called
        assert json.loads(text)["reference_id"] == "EP-1"

    @pytest.mark.asyncio
    @respx.mock
    async def test_read_missing_entity(self, api_client):
        respx.get("http://test/api/v1/epics/EP-9").respond(404, json={"code": "NOT_FOUND", "message": "Epic EP-9 not found"})

        with pytest.raises(httpx.HTTPStatusError):
            await resources.read_resource("requirements://epics/EP-9", api_client)

    @pytest.mark.asyncio
    @respx.mock
    async def test_list_resources(self, api_client):
        respx.get(host="test", path="/api/v1/epics/").respond(200, json=_page([EPIC]))
        respx.get(host="test", path="/api/v1/user-stories/").respond(200, json=_page([]))
        respx.get(host="test", path="/api/v1/requirements/").respond(200, json=_page([]))

        listed = await resources.list_resources(api_client)

        uris = [str(resource.uri).rstrip("/") for resource in listed]
        assert "requirements://epics/EP-1" in uris
        assert "requirements://prompts" in uris
        assert len(uris) == len(resources.COLLECTIONS) + 1
        assert uris == sorted(uris)


def test_server_registers_prompt_and_resource_handlers():
    for request_type in (
        types.ListToolsRequest,
        types.CallToolRequest,
        types.ListPromptsRequest,
        types.GetPromptRequest,
        types.ListResourcesRequest,
        types.ReadResourceRequest,
    ):
        assert request_type in server.app.request_handlers
