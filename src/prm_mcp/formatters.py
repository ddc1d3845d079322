"""Formatting of API responses for MCP tool output."""

PRIORITY_LABELS = {1: "Critical", 2: "High", 3: "Medium", 4: "Low"}


def _priority(value) -> str:
    label = PRIORITY_LABELS.get(value)
    return f"{value} ({label})" if label else str(value)


def _assignee(item: dict) -> str:
    return f"\nAssignee: {item['assignee_id']}" if item.get('assignee_id') else ""


def _description(item: dict) -> str:
    return f"\n\n{item['description']}" if item.get('description') else ""


def format_epic(epic: dict) -> str:
    """Format an epic for display."""
    return f"""**{epic['reference_id']}: {epic['title']}**
ID: {epic['id']}
Status: {epic['status']}
Priority: {_priority(epic['priority'])}
Creator: {epic['creator_id']}{_assignee(epic)}
Created: {epic['created_at']}
Updated: {epic['updated_at']}{_description(epic)}"""


def format_user_story(story: dict) -> str:
    """Format a user story for display."""
    return f"""**{story['reference_id']}: {story['title']}**
ID: {story['id']}
Epic: {story['epic_id']}
Status: {story['status']}
Priority: {_priority(story['priority'])}
Creator: {story['creator_id']}{_assignee(story)}
Created: {story['created_at']}
Updated: {story['updated_at']}{_description(story)}"""


def format_acceptance_criteria(criteria: dict) -> str:
    return f"""**{criteria['reference_id']}**
ID: {criteria['id']}
User story: {criteria['user_story_id']}
Author: {criteria['author_id']}

{criteria['description']}"""


def format_requirement(req: dict) -> str:
    """Format a requirement for display."""
    criteria_info = f"\nAcceptance criterion: {req['acceptance_criteria_id']}" if req.get('acceptance_criteria_id') else ""

    return f"""**{req['reference_id']}: {req['title']}**
ID: {req['id']}
User story: {req['user_story_id']}{criteria_info}
Type: {req['type_id']}
Status: {req['status']}
Priority: {_priority(req['priority'])}
Creator: {req['creator_id']}{_assignee(req)}
Created: {req['created_at']}
Updated: {req['updated_at']}{_description(req)}"""


def format_relationship(rel: dict) -> str:
    return (f"Relationship {rel['id']}: {rel['source_requirement_id']} "
            f"-[{rel['relationship_type_id']}]-> {rel['target_requirement_id']}")


def format_steering_document(doc: dict) -> str:
    """Format a steering document for display."""
    return f"""**{doc['reference_id']}: {doc['title']}**
ID: {doc['id']}
Creator: {doc['creator_id']}
Updated: {doc['updated_at']}{_description(doc)}"""


def format_prompt(prompt: dict) -> str:
    """Format a prompt for display, including its full content."""
    active = " [ACTIVE]" if prompt.get('is_active') else ""
    return f"""**{prompt['reference_id']}: {prompt['name']}**{active}
Title: {prompt['title']}
ID: {prompt['id']}
Role: {prompt['role']}{_description(prompt)}

--- Content ---
{prompt['content']}"""


def format_search_result(result: dict) -> str:
    status_info = f" [{result['status']}]" if result.get('status') else ""
    return (f"- {result['reference_id']} ({result['entity_type']}){status_info}: {result['title']} "
            f"(relevance {result['relevance']:.2f})")


def format_search_response(response: dict) -> str:
    """Format a search response with a summary line."""
    start = response['offset'] + 1 if response['results'] else 0
    end = response['offset'] + len(response['results'])
    header = f"Found {response['total']} matches for '{response['query']}' (showing {start}-{end})"
    if not response['results']:
        return header
    lines = "\n".join(format_search_result(result) for result in response['results'])
    return f"{header}\n\n{lines}"


def format_error(status_code: int, body) -> str:
    """Format an API ErrorResponse body (or raw text) as a tool error message."""
    if not isinstance(body, dict):
        return f"Error ({status_code}): {body}"
    message = body.get('message') or body.get('detail') or "Request failed"
    text = f"Error ({status_code} {body.get('code', 'ERROR')}): {message}"
    details = body.get('details') or {}
    if details.get('valid_values'):
        text += f"\nValid values: {', '.join(str(v) for v in details['valid_values'])}"
    if details.get('dependencies'):
        text += f"\nDependencies: {details['dependencies']}"
    return text
