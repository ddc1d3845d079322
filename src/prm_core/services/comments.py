"""Threaded and inline comments on epics, user stories, criteria and requirements.

Comments reference their entity by (entity_type, entity_id) without a
foreign key, so the entity is checked here on create. Inline comments
anchor to ``description[start:end]`` of the entity at creation time; later
description edits are not re-anchored, validate_inline_comments reports
which anchors went stale.
"""
import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, schemas
from ..errors import ConflictError, ValidationError
from ..deletion import repository_for
from ..models import EntityType
from ..permissions import require_commenter, require_owner_or_admin
from ..repository import Repositories
from .common import parse_entity_type

logger = logging.getLogger("prm-core.comments")


def resolve_entity(repos: Repositories, entity_type: Any, entity_id: Any) -> tuple[EntityType, Any]:
    """Parse the entity type and load the commented entity (UUID or reference ID)."""
    entity_type = parse_entity_type(entity_type)
    return entity_type, repository_for(repos, entity_type).resolve(entity_id)


def check_anchor(text: Optional[str], linked_text: str, start: int, end: int) -> Optional[str]:
    """
    Check an inline anchor against the entity text.

    Returns:
        None when ``0 <= start < end <= len(text)`` and the range selects
        linked_text, otherwise the reason it does not
    """
    text = text or ""
    if start < 0 or end <= start:
        return "text_position_start must be >= 0 and less than text_position_end"
    if end > len(text):
        return f"text_position_end {end} is beyond the end of the text (length {len(text)})"
    if text[start:end] != linked_text:
        return "linked_text does not match the text at the given positions"
    return None


def create_comment(
    db: Session,
    entity_type: Any,
    entity_id: Any,
    data: schemas.CommentCreate,
    user: models.User,
) -> models.Comment:
    """
    Comment on an entity, optionally replying to a comment or anchoring inline.

    Raises:
        NotFoundError: If the entity or parent comment does not exist
        ValidationError: If the parent is on another entity or the inline
            anchor does not select linked_text from the description
    """
    require_commenter(user)
    repos = Repositories(db)
    entity_type, entity = resolve_entity(repos, entity_type, entity_id)

    if data.parent_comment_id is not None:
        parent = repos.comments.get_by_id(data.parent_comment_id)
        if parent.entity_type != entity_type or parent.entity_id != entity.id:
            raise ValidationError("Parent comment belongs to a different entity")

    if data.linked_text is not None:
        reason = check_anchor(entity.description, data.linked_text, data.text_position_start, data.text_position_end)
        if reason:
            raise ValidationError(f"Invalid inline comment anchor: {reason}")

    comment = repos.comments.create(models.Comment(
        entity_type=entity_type,
        entity_id=entity.id,
        author_id=user.id,
        content=data.content,
        parent_comment_id=data.parent_comment_id,
        linked_text=data.linked_text,
        text_position_start=data.text_position_start,
        text_position_end=data.text_position_end,
    ))
    logger.info(f"User {user.username} commented on {entity_type.value} {entity.reference_id}")
    return comment


def get_comment(db: Session, comment_id: UUID) -> models.Comment:
    return Repositories(db).comments.get_by_id(comment_id)


def list_comments(
    db: Session,
    entity_type: Any,
    entity_id: Any,
    is_resolved: Optional[bool] = None,
    skip: int = 0,
    limit: int = 50,
) -> tuple[list[models.Comment], int]:
    """Root comments of an entity, oldest first. Replies are listed per parent."""
    repos = Repositories(db)
    entity_type, entity = resolve_entity(repos, entity_type, entity_id)
    roots = repos.comments.get_by_entity(
        entity_type, entity.id, is_resolved=is_resolved, roots_only=True, limit=limit, offset=skip,
    )
    total = repos.comments.count_by_entity(entity_type, entity.id, is_resolved=is_resolved, roots_only=True)
    return roots, total


def list_inline_comments(db: Session, entity_type: Any, entity_id: Any) -> list[models.Comment]:
    repos = Repositories(db)
    entity_type, entity = resolve_entity(repos, entity_type, entity_id)
    return repos.comments.get_inline_by_entity(entity_type, entity.id)


def list_replies(db: Session, comment_id: UUID, skip: int = 0, limit: int = 50) -> tuple[list[models.Comment], int]:
    repos = Repositories(db)
    parent = repos.comments.get_by_id(comment_id)
    return repos.comments.get_by_parent(parent.id, limit=limit, offset=skip), repos.comments.count_replies(parent.id)


def update_comment(db: Session, comment_id: UUID, data: schemas.CommentUpdate, user: models.User) -> models.Comment:
    """Edit the content of a comment (author or administrator)."""
    require_commenter(user)
    repos = Repositories(db)
    comment = repos.comments.get_by_id(comment_id)
    require_owner_or_admin(user, comment.author_id, "edit this comment")
    return repos.comments.update(comment, {"content": data.content})


def delete_comment(db: Session, comment_id: UUID, user: models.User) -> None:
    """
    Delete a comment (author or administrator).

    Raises:
        ConflictError: If the comment has replies
    """
    require_commenter(user)
    repos = Repositories(db)
    comment = repos.comments.get_by_id(comment_id)
    require_owner_or_admin(user, comment.author_id, "delete this comment")
    replies = repos.comments.count_replies(comment.id)
    if replies:
        raise ConflictError(
            "Comment cannot be deleted while it has replies",
            details={"dependencies": {"replies": replies}},
        )
    repos.comments.delete(comment)
    logger.info(f"Deleted comment {comment_id}")


def set_resolved(db: Session, comment_id: UUID, resolved: bool, user: models.User) -> models.Comment:
    """
    Resolve or unresolve a root comment.

    Raises:
        ValidationError: If the comment is a reply
    """
    require_commenter(user)
    repos = Repositories(db)
    comment = repos.comments.get_by_id(comment_id)
    if comment.parent_comment_id is not None:
        raise ValidationError("Only root comments can be resolved; replies follow their thread")
    return repos.comments.update(comment, {"is_resolved": resolved})


def validate_inline_comments(db: Session, entity_type: Any, entity_id: Any) -> schemas.InlineValidationResponse:
    """Report each inline comment of an entity as still valid or stale."""
    repos = Repositories(db)
    entity_type, entity = resolve_entity(repos, entity_type, entity_id)
    results = []
    for comment in repos.comments.get_inline_by_entity(entity_type, entity.id):
        reason = check_anchor(
            entity.description,
            comment.linked_text,
            comment.text_position_start,
            comment.text_position_end,
        )
        results.append(schemas.InlineCommentValidation(comment_id=comment.id, is_valid=reason is None, reason=reason))

    valid = sum(1 for r in results if r.is_valid)
    return schemas.InlineValidationResponse(
        entity_type=entity_type,
        entity_id=entity.id,
        results=results,
        valid_count=valid,
        stale_count=len(results) - valid,
    )
