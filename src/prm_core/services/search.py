"""Global search across epics, user stories, acceptance criteria and requirements.

PostgreSQL: full-text match on title and description ranked with ts_rank
(prefix matching per term), plus reference ID substring hits.
Other databases: case-insensitive substring match on title, description
and reference ID with a fixed relevance per matched field.

A query that is itself a reference ID returns that entity first with
relevance 1.0.
"""
import logging
import re
from typing import Any, Optional

from sqlalchemy import String, case, cast, func, literal, or_
from sqlalchemy.orm import Session

from .. import schemas
from ..errors import NotFoundError, ValidationError
from ..database import is_postgresql
from ..deletion import repository_for
from ..models import ENTITY_MODELS, EntityType
from ..reference_ids import REFERENCE_ID_PATTERN, canonicalize
from ..repository import Repositories
from .common import parse_entity_type

logger = logging.getLogger("prm-core.search")

DEFAULT_LIMIT = 50
MAX_LIMIT = 100

# Substring relevance by matched field
REFERENCE_RELEVANCE = 0.9
TITLE_RELEVANCE = 0.75
DESCRIPTION_RELEVANCE = 0.5

_PREFIX_TO_ENTITY = {model.reference_prefix: entity_type for entity_type, model in ENTITY_MODELS.items()}


def _parse_entity_types(entity_types: Optional[list[Any]]) -> list[EntityType]:
    if not entity_types:
        return list(EntityType)
    parsed = []
    for value in entity_types:
        entity_type = parse_entity_type(value)
        if entity_type not in parsed:
            parsed.append(entity_type)
    return parsed


def _title_column(model):
    # Acceptance criteria have no title; their description stands in
    return getattr(model, "title", model.description)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _tsquery_text(query: str) -> Optional[str]:
    terms = re.findall(r"\w+", query)
    if not terms:
        return None
    return " & ".join(f"{term}:*" for term in terms)


def _to_result(entity_type: EntityType, entity, relevance: float) -> schemas.SearchResult:
    title = getattr(entity, "title", None) or (entity.description or "")[:100]
    return schemas.SearchResult(
        entity_type=entity_type,
        id=entity.id,
        reference_id=entity.reference_id,
        title=title,
        description=entity.description,
        status=getattr(entity, "status", None),
        relevance=round(float(relevance), 4),
    )


def _exact_reference_hit(repos: Repositories, query: str, entity_types: list[EntityType]):
    match = REFERENCE_ID_PATTERN.match(query.strip())
    if not match:
        return None
    entity_type = _PREFIX_TO_ENTITY.get(match.group(1).upper())
    if entity_type is None or entity_type not in entity_types:
        return None
    try:
        return entity_type, repository_for(repos, entity_type).get_by_reference_id(canonicalize(query))
    except NotFoundError:
        return None


def _search_postgres(db: Session, model, query: str, fetch: int) -> tuple[list[tuple[Any, float]], int]:
    title = _title_column(model)
    document = func.to_tsvector(
        "english",
        func.coalesce(cast(title, String), "") + literal(" ") + func.coalesce(model.description, ""),
    )
    reference_match = model.reference_id.ilike(f"%{_escape_like(query)}%", escape="\\")
    tsquery_text = _tsquery_text(query)
    if tsquery_text is None:
        condition = reference_match
        rank = literal(REFERENCE_RELEVANCE)
    else:
        tsquery = func.to_tsquery("english", tsquery_text)
        condition = or_(document.op("@@")(tsquery), reference_match)
        rank = func.ts_rank(document, tsquery)

    total = db.query(func.count(model.id)).filter(condition).scalar() or 0
    rows = (
        db.query(model, rank.label("rank"))
        .filter(condition)
        .order_by(rank.desc(), model.created_at.desc())
        .limit(fetch)
        .all()
    )
    return [(entity, rank_value or 0.0) for entity, rank_value in rows], total


def _search_substring(db: Session, model, query: str, fetch: int) -> tuple[list[tuple[Any, float]], int]:
    pattern = f"%{_escape_like(query.lower())}%"
    title = _title_column(model)
    matches = [
        (func.lower(model.reference_id).like(pattern, escape="\\"), REFERENCE_RELEVANCE),
        (func.lower(title).like(pattern, escape="\\"), TITLE_RELEVANCE),
        (func.lower(model.description).like(pattern, escape="\\"), DESCRIPTION_RELEVANCE),
    ]
    condition = or_(*(match for match, _ in matches))
    # Best matching field wins; the whens are ordered by descending relevance
    relevance = case(*matches, else_=literal(0.0))

    total = db.query(func.count(model.id)).filter(condition).scalar() or 0
    rows = (
        db.query(model, relevance.label("relevance"))
        .filter(condition)
        .order_by(relevance.desc(), model.created_at.desc())
        .limit(fetch)
        .all()
    )
    return [(entity, score or 0.0) for entity, score in rows], total


def search(
    db: Session,
    query: str,
    entity_types: Optional[list[Any]] = None,
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
) -> schemas.SearchResponse:
    """
    Search entities by text.

    Args:
        db: Database session
        query: Search text (a reference ID is matched exactly first)
        entity_types: Subset of epic, user_story, acceptance_criteria,
            requirement (default: all four)
        limit: Page size, 1..100
        offset: Results to skip

    Returns:
        SearchResponse ordered by relevance

    Raises:
        ValidationError: On an empty query, bad limit/offset or unknown type
    """
    query = (query or "").strip()
    if not query:
        raise ValidationError("Search query must not be empty")
    if limit < 1 or limit > MAX_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_LIMIT}")
    if offset < 0:
        raise ValidationError("offset must be >= 0")
    types = _parse_entity_types(entity_types)

    repos = Repositories(db)
    fetch = offset + limit
    backend = _search_postgres if is_postgresql(db) else _search_substring

    scored: list[tuple[EntityType, Any, float]] = []
    total = 0
    for entity_type in types:
        rows, count = backend(db, ENTITY_MODELS[entity_type], query, fetch)
        total += count
        scored.extend((entity_type, entity, relevance) for entity, relevance in rows)
    scored.sort(key=lambda item: item[2], reverse=True)

    exact = _exact_reference_hit(repos, query, types)
    if exact is not None:
        exact_type, exact_entity = exact
        # Already counted: the reference ID also matches as a substring
        scored = [item for item in scored if item[1].id != exact_entity.id]
        scored.insert(0, (exact_type, exact_entity, 1.0))

    page = scored[offset:offset + limit]
    logger.info(f"Search '{query}' over {[t.value for t in types]}: {total} matches")
    return schemas.SearchResponse(
        query=query,
        entity_types=types,
        results=[_to_result(entity_type, entity, relevance) for entity_type, entity, relevance in page],
        total=total,
        limit=limit,
        offset=offset,
    )
