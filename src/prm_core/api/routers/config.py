"""Configuration API endpoints: requirement types, relationship types, status models."""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from prm_core import models, schemas
from prm_core.database import get_db
from prm_core.services import config as config_service

from ..dependencies import get_current_user

logger = logging.getLogger("prm-api.config")

router = APIRouter(tags=["config"])


# Requirement types

@router.get("/requirement-types", response_model=list[schemas.RequirementTypeResponse])
def list_requirement_types(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return config_service.list_requirement_types(db)


@router.post("/requirement-types", response_model=schemas.RequirementTypeResponse, status_code=201)
def create_requirement_type(
    requirement_type: schemas.RequirementTypeCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a requirement type (administrators only)."""
    return config_service.create_requirement_type(db, requirement_type, current_user)


@router.get("/requirement-types/{type_id}", response_model=schemas.RequirementTypeResponse)
def get_requirement_type(
    type_id: UUID,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return config_service.get_requirement_type(db, type_id)


@router.put("/requirement-types/{type_id}", response_model=schemas.RequirementTypeResponse)
def update_requirement_type(
    type_id: UUID,
    requirement_type: schemas.RequirementTypeUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return config_service.update_requirement_type(db, type_id, requirement_type, current_user)


@router.delete("/requirement-types/{type_id}", status_code=204)
def delete_requirement_type(
    type_id: UUID,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete a requirement type. Returns 409 while requirements use it."""
    config_service.delete_requirement_type(db, type_id, current_user)


# Relationship types

@router.get("/relationship-types", response_model=list[schemas.RelationshipTypeResponse])
def list_relationship_types(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return config_service.list_relationship_types(db)


@router.post("/relationship-types", response_model=schemas.RelationshipTypeResponse, status_code=201)
def create_relationship_type(
    relationship_type: schemas.RelationshipTypeCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create a relationship type (administrators only).

    Names are unique regardless of case.
    """
    return config_service.create_relationship_type(db, relationship_type, current_user)


@router.get("/relationship-types/{type_id}", response_model=schemas.RelationshipTypeResponse)
def get_relationship_type(
    type_id: UUID,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return config_service.get_relationship_type(db, type_id)


@router.put("/relationship-types/{type_id}", response_model=schemas.RelationshipTypeResponse)
def update_relationship_type(
    type_id: UUID,
    relationship_type: schemas.RelationshipTypeUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return config_service.update_relationship_type(db, type_id, relationship_type, current_user)


@router.delete("/relationship-types/{type_id}", status_code=204)
def delete_relationship_type(
    type_id: UUID,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete a relationship type. Returns 409 while relationships use it."""
    config_service.delete_relationship_type(db, type_id, current_user)


# Status models (read-only)

@router.get("/status-models", response_model=list[schemas.StatusModelResponse])
def list_status_models(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return config_service.list_status_models(db)


@router.get("/status-models/default/{entity_type}", response_model=schemas.StatusModelResponse)
def get_default_status_model(
    entity_type: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get the default status model of an entity type with its statuses and transitions."""
    return config_service.get_default_status_model(db, entity_type)


@router.get("/status-models/{model_id}", response_model=schemas.StatusModelResponse)
def get_status_model(
    model_id: UUID,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return config_service.get_status_model(db, model_id)


@router.get("/transitions/{entity_type}", response_model=schemas.AllowedTransitionsResponse)
def get_allowed_transitions(
    entity_type: str,
    current_status: str = Query(..., description="Current status (case-insensitive)"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List the statuses an entity can move to from `current_status`."""
    return config_service.allowed_transitions(db, entity_type, current_status)
