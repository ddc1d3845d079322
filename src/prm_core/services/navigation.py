"""Navigation through the product tree.

Hierarchy reads expand only the levels a caller asks for through a
comma-separated ``expand`` list (``user_stories``, ``acceptance_criteria``,
``requirements``, ``relationships``). Entity paths list the chain of
ancestors from the epic down to the entity, for breadcrumbs.
"""
import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, schemas
from ..deletion import parse_entity_type, repository_for
from ..errors import ValidationError
from ..models import EntityType
from ..repository import Repositories
from .common import filter_status

logger = logging.getLogger("prm-core.navigation")

EXPAND_TOKENS = ("user_stories", "acceptance_criteria", "requirements", "relationships")

# Acceptance criteria have no title; the path shows this much of the description
PATH_TITLE_LENGTH = 50


def parse_expand(expand: Optional[str]) -> set[str]:
    """
    Parse a comma-separated expand list.

    Raises:
        ValidationError: On a token outside EXPAND_TOKENS
    """
    tokens = {token.strip() for token in (expand or "").split(",") if token.strip()}
    unknown = tokens - set(EXPAND_TOKENS)
    if unknown:
        raise ValidationError(
            f"Unknown expand value(s): {', '.join(sorted(unknown))}",
            valid_values=list(EXPAND_TOKENS),
        )
    return tokens


def _requirement_node(repos: Repositories, requirement: models.Requirement, expand: set[str]) -> schemas.NavigationRequirement:
    node = schemas.NavigationRequirement.model_validate(
        schemas.RequirementResponse.model_validate(requirement).model_dump()
    )
    if "relationships" in expand:
        node.relationships = [
            schemas.RelationshipResponse.model_validate(r)
            for r in repos.relationships.get_by_requirement(requirement.id)
        ]
    return node


def _user_story_node(repos: Repositories, story: models.UserStory, expand: set[str]) -> schemas.NavigationUserStory:
    node = schemas.NavigationUserStory.model_validate(schemas.UserStoryResponse.model_validate(story).model_dump())
    if "acceptance_criteria" in expand:
        node.acceptance_criteria = [
            schemas.AcceptanceCriteriaResponse.model_validate(c)
            for c in repos.acceptance_criteria.get_by_user_story(story.id)
        ]
    if "requirements" in expand:
        node.requirements = [
            _requirement_node(repos, requirement, expand)
            for requirement in repos.requirements.get_by_user_story(story.id)
        ]
    return node


def _epic_node(repos: Repositories, epic: models.Epic, expand: set[str]) -> schemas.NavigationEpic:
    node = schemas.NavigationEpic.model_validate(schemas.EpicResponse.model_validate(epic).model_dump())
    if "user_stories" in expand:
        node.user_stories = [_user_story_node(repos, story, expand) for story in repos.user_stories.get_by_epic(epic.id)]
    return node


def get_hierarchy(
    db: Session,
    expand: Optional[str] = None,
    skip: int = 0,
    limit: int = 50,
    status: Optional[str] = None,
    priority: Optional[int] = None,
    creator_id: Optional[UUID] = None,
    assignee_id: Optional[UUID] = None,
    order_by: Optional[str] = None,
) -> schemas.NavigationTreeResponse:
    """
    Epics matching the filters, each expanded to the requested depth.

    Args:
        db: Database session
        expand: Comma-separated levels to load below each epic
        skip: Epics to skip
        limit: Page size
        status, priority, creator_id, assignee_id: Epic filters
        order_by: Epic ordering, e.g. 'priority asc'

    Returns:
        NavigationTreeResponse with ``total`` counting every matching epic
        and ``count`` the epics in this page
    """
    tokens = parse_expand(expand)
    repos = Repositories(db)
    filters = {
        "status": filter_status(EntityType.EPIC, status),
        "priority": priority,
        "creator_id": creator_id,
        "assignee_id": assignee_id,
    }
    epics = repos.epics.list_all(filters=filters, order_by=order_by, limit=limit, offset=skip)
    nodes = [_epic_node(repos, epic, tokens) for epic in epics]
    return schemas.NavigationTreeResponse(epics=nodes, total=repos.epics.count(filters=filters), count=len(nodes))


def get_epic_tree(db: Session, identifier: Any, expand: Optional[str] = None) -> schemas.NavigationEpic:
    tokens = parse_expand(expand)
    repos = Repositories(db)
    return _epic_node(repos, repos.epics.resolve(identifier), tokens)


def get_user_story_tree(db: Session, identifier: Any, expand: Optional[str] = None) -> schemas.NavigationUserStory:
    """A user story with its criteria, requirements and relationships as requested."""
    tokens = parse_expand(expand)
    repos = Repositories(db)
    return _user_story_node(repos, repos.user_stories.resolve(identifier), tokens)


def _path_element(entity_type: EntityType, entity) -> schemas.PathElement:
    title = getattr(entity, "title", None)
    if title is None:
        description = entity.description or ""
        title = description[:PATH_TITLE_LENGTH] + ("..." if len(description) > PATH_TITLE_LENGTH else "")
    return schemas.PathElement(id=entity.id, reference_id=entity.reference_id, entity_type=entity_type, title=title)


def get_entity_path(db: Session, entity_type: Any, identifier: Any) -> schemas.EntityPathResponse:
    """
    Ancestors of an entity, epic first, ending with the entity itself.

    Raises:
        ValidationError: On an unknown entity type
        NotFoundError: If the entity does not exist
    """
    entity_type = parse_entity_type(entity_type)
    repos = Repositories(db)
    entity = repository_for(repos, entity_type).resolve(identifier)

    path = [_path_element(entity_type, entity)]
    if entity_type in (EntityType.REQUIREMENT, EntityType.ACCEPTANCE_CRITERIA):
        entity = repos.user_stories.get_by_id(entity.user_story_id)
        path.insert(0, _path_element(EntityType.USER_STORY, entity))
        entity_type = EntityType.USER_STORY
    if entity_type == EntityType.USER_STORY:
        epic = repos.epics.get_by_id(entity.epic_id)
        path.insert(0, _path_element(EntityType.EPIC, epic))
    return schemas.EntityPathResponse(path=path)
