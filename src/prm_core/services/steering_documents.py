"""Steering documents and their links to epics."""
import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, schemas
from ..errors import ConflictError, NotFoundError
from ..permissions import require_owner_or_admin, require_writer
from ..repository import Repositories
from .common import changed_fields

logger = logging.getLogger("prm-core.steering_documents")


def create_steering_document(
    db: Session,
    data: schemas.SteeringDocumentCreate,
    user: models.User,
) -> models.SteeringDocument:
    require_writer(user, "create steering documents")
    document = Repositories(db).steering_documents.create(models.SteeringDocument(
        title=data.title,
        description=data.description,
        creator_id=user.id,
    ))
    logger.info(f"Created steering document {document.reference_id}: {document.title}")
    return document


def get_steering_document(db: Session, identifier: Any) -> models.SteeringDocument:
    return Repositories(db).steering_documents.resolve(identifier)


def list_steering_documents(
    db: Session,
    skip: int = 0,
    limit: int = 50,
    creator_id: Optional[UUID] = None,
    order_by: Optional[str] = None,
) -> tuple[list[models.SteeringDocument], int]:
    repository = Repositories(db).steering_documents
    filters = {"creator_id": creator_id}
    items = repository.list_all(filters=filters, order_by=order_by, limit=limit, offset=skip)
    return items, repository.count(filters=filters)


def update_steering_document(
    db: Session,
    identifier: Any,
    data: schemas.SteeringDocumentUpdate,
    user: models.User,
) -> models.SteeringDocument:
    """Only the creator or an administrator may edit a steering document."""
    require_writer(user, "update steering documents")
    repos = Repositories(db)
    document = repos.steering_documents.resolve(identifier)
    require_owner_or_admin(user, document.creator_id, "update this steering document")
    return repos.steering_documents.update(document, changed_fields(data, ("title", "description")))


def delete_steering_document(db: Session, identifier: Any, user: models.User) -> None:
    """Delete a steering document; its epic links go with it."""
    require_writer(user, "delete steering documents")
    repos = Repositories(db)
    document = repos.steering_documents.resolve(identifier)
    require_owner_or_admin(user, document.creator_id, "delete this steering document")
    reference_id = document.reference_id
    repos.steering_documents.delete(document)
    logger.info(f"Deleted steering document {reference_id}")


def link_to_epic(db: Session, document_identifier: Any, epic_identifier: Any, user: models.User) -> schemas.SteeringLinkResponse:
    """
    Link a steering document to an epic.

    Raises:
        ConflictError: If the pair is already linked
    """
    require_writer(user, "link steering documents")
    repos = Repositories(db)
    document = repos.steering_documents.resolve(document_identifier)
    epic = repos.epics.resolve(epic_identifier)
    if repos.steering_documents.is_linked(epic.id, document.id):
        raise ConflictError(f"Steering document {document.reference_id} is already linked to {epic.reference_id}")
    repos.steering_documents.link(epic.id, document.id)
    logger.info(f"Linked steering document {document.reference_id} to {epic.reference_id}")
    return schemas.SteeringLinkResponse(epic_id=epic.id, steering_document_id=document.id, linked=True)


def unlink_from_epic(db: Session, document_identifier: Any, epic_identifier: Any, user: models.User) -> schemas.SteeringLinkResponse:
    """
    Remove the link between a steering document and an epic.

    Raises:
        NotFoundError: If the pair is not linked
    """
    require_writer(user, "unlink steering documents")
    repos = Repositories(db)
    document = repos.steering_documents.resolve(document_identifier)
    epic = repos.epics.resolve(epic_identifier)
    if not repos.steering_documents.unlink(epic.id, document.id):
        raise NotFoundError(f"Steering document {document.reference_id} is not linked to {epic.reference_id}")
    logger.info(f"Unlinked steering document {document.reference_id} from {epic.reference_id}")
    return schemas.SteeringLinkResponse(epic_id=epic.id, steering_document_id=document.id, linked=False)


def list_epic_steering_documents(db: Session, epic_identifier: Any) -> list[models.SteeringDocument]:
    repos = Repositories(db)
    epic = repos.epics.resolve(epic_identifier)
    return repos.steering_documents.get_by_epic(epic.id)
