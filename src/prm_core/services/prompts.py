"""Agent prompts. Administrators manage them; at most one is active."""
import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from .. import models, schemas
from ..errors import DuplicateKeyError
from ..permissions import require_admin
from ..repository import Repositories
from .common import changed_fields

logger = logging.getLogger("prm-core.prompts")


def create_prompt(db: Session, data: schemas.PromptCreate, user: models.User) -> models.Prompt:
    """
    Create an inactive prompt.

    Raises:
        ForbiddenError: If the caller is not an administrator
        DuplicateKeyError: If the name is taken
    """
    require_admin(user, "manage prompts")
    repos = Repositories(db)
    if repos.prompts.get_by_name(data.name) is not None:
        raise DuplicateKeyError(f"A prompt named '{data.name}' already exists")
    prompt = repos.prompts.create(models.Prompt(
        name=data.name,
        title=data.title,
        description=data.description,
        content=data.content,
        role=data.role,
        is_active=False,
        creator_id=user.id,
    ))
    logger.info(f"Created prompt {prompt.reference_id} '{prompt.name}'")
    return prompt


def get_prompt(db: Session, identifier: Any) -> models.Prompt:
    return Repositories(db).prompts.resolve(identifier)


def list_prompts(
    db: Session,
    skip: int = 0,
    limit: int = 50,
    is_active: Optional[bool] = None,
) -> tuple[list[models.Prompt], int]:
    repository = Repositories(db).prompts
    filters = {"is_active": is_active}
    items = repository.list_all(filters=filters, order_by="name asc", limit=limit, offset=skip)
    return items, repository.count(filters=filters)


def update_prompt(db: Session, identifier: Any, data: schemas.PromptUpdate, user: models.User) -> models.Prompt:
    require_admin(user, "manage prompts")
    repos = Repositories(db)
    prompt = repos.prompts.resolve(identifier)
    return repos.prompts.update(prompt, changed_fields(data, ("title", "description", "content", "role")))


def delete_prompt(db: Session, identifier: Any, user: models.User) -> None:
    require_admin(user, "manage prompts")
    repos = Repositories(db)
    prompt = repos.prompts.resolve(identifier)
    reference_id = prompt.reference_id
    repos.prompts.delete(prompt)
    logger.info(f"Deleted prompt {reference_id}")


def activate_prompt(db: Session, identifier: Any, user: models.User) -> models.Prompt:
    """
    Make one prompt the active prompt.

    Every other prompt is deactivated in the same transaction, so at most
    one prompt is active at any commit.
    """
    require_admin(user, "manage prompts")

    def _activate(tx: Repositories) -> models.Prompt:
        prompt = tx.prompts.resolve(identifier)
        deactivated = tx.prompts.deactivate_all(except_id=prompt.id)
        tx.prompts.update(prompt, {"is_active": True})
        logger.info(f"Activated prompt {prompt.reference_id} (deactivated {deactivated})")
        return prompt

    prompt = Repositories(db).with_transaction(_activate)
    db.refresh(prompt)
    return prompt


def get_active_prompt(db: Session) -> models.Prompt:
    """
    Raises:
        NotFoundError: If no prompt is active
    """
    return Repositories(db).prompts.get_active()
