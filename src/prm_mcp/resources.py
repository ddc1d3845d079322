"""MCP resources: product entities readable by URI.

URIs have the form ``requirements://{collection}[/{id}[/{view}]]``:

- ``requirements://epics`` lists a collection (first page of 100)
- ``requirements://epics/EP-1`` reads one entity by UUID or reference ID
- ``requirements://epics/EP-1/hierarchy`` reads a related view

Resource bodies are the API's JSON responses.
"""
import json
import logging
from typing import Optional

import httpx
from mcp.types import Resource

from prm_core.errors import ValidationError

logger = logging.getLogger("prm-mcp.resources")

SCHEME = "requirements"
MIME_TYPE = "application/json"
PAGE_SIZE = 100

# Collection -> views readable below one entity, mapped to API sub-paths
COLLECTIONS: dict[str, dict[str, str]] = {
    "epics": {
        "hierarchy": "/hierarchy",
        "user-stories": "/user-stories",
        "steering-documents": "/steering-documents",
    },
    "user-stories": {"children": "/children"},
    "acceptance-criteria": {},
    "requirements": {"relationships": "/with-relationships"},
    "steering-documents": {},
    "prompts": {},
}

# Collections whose entities are listed one by one
LISTED_COLLECTIONS = ("epics", "user-stories", "requirements")


def parse_resource_uri(uri: str) -> tuple[str, Optional[str], Optional[str]]:
    """
    Split a resource URI into (collection, identifier, view).

    Raises:
        ValidationError: On another scheme, an unknown collection or an
            unknown view
    """
    scheme, separator, rest = str(uri).partition("://")
    parts = [part for part in rest.split("/") if part]
    if not separator or scheme != SCHEME or not parts or len(parts) > 3 or parts[0] not in COLLECTIONS:
        raise ValidationError(
            f"Unsupported resource URI '{uri}'",
            valid_values=[f"{SCHEME}://{collection}" for collection in COLLECTIONS],
        )
    collection = parts[0]
    identifier = parts[1] if len(parts) > 1 else None
    view = parts[2] if len(parts) > 2 else None
    if view is not None and view not in COLLECTIONS[collection]:
        raise ValidationError(
            f"Unsupported view '{view}' for {collection}",
            valid_values=sorted(COLLECTIONS[collection]),
        )
    return collection, identifier, view


def api_path(collection: str, identifier: Optional[str], view: Optional[str]) -> str:
    if identifier is None:
        return f"/{collection}/"
    return f"/{collection}/{identifier}" + (COLLECTIONS[collection][view] if view else "")


async def read_resource(uri: str, client: httpx.AsyncClient) -> str:
    collection, identifier, view = parse_resource_uri(uri)
    params = {"page_size": PAGE_SIZE} if identifier is None else None
    response = await client.get(api_path(collection, identifier, view), params=params)
    response.raise_for_status()
    logger.info(f"Read resource {uri}")
    return json.dumps(response.json(), indent=2)


async def list_resources(client: httpx.AsyncClient) -> list[Resource]:
    """One resource per collection plus one per epic, user story and requirement, ordered by URI."""
    resources = [
        Resource(
            uri=f"{SCHEME}://{collection}",
            name=f"All {collection.replace('-', ' ')}",
            description=f"First {PAGE_SIZE} {collection.replace('-', ' ')}",
            mimeType=MIME_TYPE,
        )
        for collection in COLLECTIONS
    ]
    for collection in LISTED_COLLECTIONS:
        response = await client.get(f"/{collection}/", params={"page_size": PAGE_SIZE})
        response.raise_for_status()
        for item in response.json()["items"]:
            resources.append(Resource(
                uri=f"{SCHEME}://{collection}/{item['reference_id']}",
                name=f"{item['reference_id']}: {item['title']}",
                description=item.get("description"),
                mimeType=MIME_TYPE,
            ))
    logger.info(f"Listing {len(resources)} resources")
    return sorted(resources, key=lambda resource: str(resource.uri))
