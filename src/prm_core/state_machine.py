"""Status engine: configurable per-entity-type state machines.

Each entity type has exactly one default StatusModel whose statuses and
transitions live in the database. Entities store the canonical status name
as a plain string for fast reads; this module is consulted only to:
- Normalize user input to a canonical status name
- Validate a proposed transition against the default model
- Advertise the statuses reachable from the current one
- Seed the default models at startup so the stored strings and the
  engine stay in sync
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from .errors import StatusValidationError
from .models import EntityType, EpicStatus, RequirementStatus, Status, StatusModel, StatusTransition
from .repository import StatusModelRepository

logger = logging.getLogger("prm-core.state_machine")


# Default workflow per entity type: statuses in display order, then edges.
# Status tuple: (name, description, color, is_initial, is_final)
_EPIC_LIKE_STATUSES = [
    (EpicStatus.BACKLOG.value, "in the backlog", "#6c757d", True, False),
    (EpicStatus.DRAFT.value, "being drafted", "#ffc107", False, False),
    (EpicStatus.IN_PROGRESS.value, "in progress", "#007bff", False, False),
    (EpicStatus.DONE.value, "completed", "#28a745", False, True),
    (EpicStatus.CANCELLED.value, "cancelled", "#dc3545", False, True),
]

_EPIC_LIKE_TRANSITIONS = [
    (EpicStatus.BACKLOG, EpicStatus.DRAFT, "Start Draft"),
    (EpicStatus.BACKLOG, EpicStatus.IN_PROGRESS, "Start Work"),
    (EpicStatus.BACKLOG, EpicStatus.CANCELLED, "Cancel"),
    (EpicStatus.DRAFT, EpicStatus.BACKLOG, "Return to Backlog"),
    (EpicStatus.DRAFT, EpicStatus.IN_PROGRESS, "Start Work"),
    (EpicStatus.DRAFT, EpicStatus.CANCELLED, "Cancel"),
    (EpicStatus.IN_PROGRESS, EpicStatus.DONE, "Complete"),
    (EpicStatus.IN_PROGRESS, EpicStatus.CANCELLED, "Cancel"),
    (EpicStatus.DONE, EpicStatus.IN_PROGRESS, "Reopen"),
    (EpicStatus.CANCELLED, EpicStatus.BACKLOG, "Reactivate"),
]

DEFAULT_STATUS_MODELS: dict[EntityType, dict] = {
    EntityType.EPIC: {
        "name": "Default Epic Workflow",
        "label": "Epic",
        "statuses": _EPIC_LIKE_STATUSES,
        "transitions": _EPIC_LIKE_TRANSITIONS,
    },
    EntityType.USER_STORY: {
        "name": "Default User Story Workflow",
        "label": "User story",
        "statuses": _EPIC_LIKE_STATUSES,
        "transitions": _EPIC_LIKE_TRANSITIONS,
    },
    EntityType.REQUIREMENT: {
        "name": "Default Requirement Workflow",
        "label": "Requirement",
        "statuses": [
            (RequirementStatus.DRAFT.value, "being drafted", "#ffc107", True, False),
            (RequirementStatus.ACTIVE.value, "active", "#28a745", False, False),
            (RequirementStatus.OBSOLETE.value, "obsolete", "#6c757d", False, True),
        ],
        # Drafts are activated before they can be retired
        "transitions": [
            (RequirementStatus.DRAFT, RequirementStatus.ACTIVE, "Activate"),
            (RequirementStatus.ACTIVE, RequirementStatus.OBSOLETE, "Mark Obsolete"),
            (RequirementStatus.OBSOLETE, RequirementStatus.ACTIVE, "Reactivate"),
        ],
    },
}

# Accepted spellings (lowercase, separators stripped) → canonical name
_STATUS_ALIASES = {
    "inprogress": EpicStatus.IN_PROGRESS.value,
    "canceled": EpicStatus.CANCELLED.value,
}


def canonical_statuses(entity_type: EntityType) -> list[str]:
    """Canonical status names for an entity type, in display order."""
    definition = DEFAULT_STATUS_MODELS.get(entity_type)
    if definition is None:
        return []
    return [name for name, *_ in definition["statuses"]]


def _status_key(raw: str) -> str:
    return raw.strip().lower().replace("_", "").replace(" ", "").replace("-", "")


def get_allowed_transitions(db: Session, entity_type: EntityType, current_status: str) -> list[str]:
    """
    Get statuses reachable from the current status in the default model.

    Args:
        db: Database session
        entity_type: Entity type whose default model applies
        current_status: Canonical current status name

    Returns:
        Target status names of the outgoing edges, in status display order
    """
    status_model = StatusModelRepository(db).get_default(entity_type)
    order = {status.name: status.order for status in status_model.statuses}
    targets = {
        transition.to_status.name
        for transition in status_model.transitions
        if transition.from_status.name == current_status
    }
    return sorted(targets, key=lambda name: order.get(name, 0))


def normalize_status(
    entity_type: EntityType,
    raw: str,
    db: Optional[Session] = None,
    current_status: Optional[str] = None,
) -> str:
    """
    Normalize user input to a canonical status name.

    Matching ignores case and accepts ``in progress | inprogress |
    in_progress`` and ``canceled | cancelled``.

    Args:
        entity_type: Entity type the status belongs to
        raw: Status as supplied by the caller
        db: Session used to list allowed transitions when current_status is set
        current_status: Current status of the entity, if it exists

    Returns:
        Canonical status name

    Raises:
        StatusValidationError: If the input matches no status. valid_values
            lists the statuses reachable from current_status, or every
            status when there is no current status.
    """
    names = canonical_statuses(entity_type)
    key = _status_key(raw or "")
    key = _status_key(_STATUS_ALIASES.get(key, key))
    for name in names:
        if _status_key(name) == key:
            return name

    if current_status is not None and db is not None:
        valid_values = get_allowed_transitions(db, entity_type, current_status)
    else:
        valid_values = names
    message = f"Invalid status '{raw}' for {entity_type.value}. Valid values: {', '.join(valid_values)}"
    logger.warning(message)
    raise StatusValidationError(
        message,
        current_status=current_status,
        requested_status=raw,
        valid_values=valid_values,
    )


def is_transition_valid(db: Session, entity_type: EntityType, current_status: str, new_status: str) -> bool:
    """
    Check if a status transition is valid.

    Returns:
        True if the default model has an edge current → new (or the status
        is unchanged), False otherwise
    """
    if current_status == new_status:
        return True
    return new_status in get_allowed_transitions(db, entity_type, current_status)


def validate_transition(db: Session, entity_type: EntityType, current_status: str, new_status: str) -> None:
    """
    Validate a status transition and raise exception if invalid.

    Args:
        db: Database session
        entity_type: Entity type whose default model applies
        current_status: Canonical current status name
        new_status: Canonical requested status name

    Raises:
        StatusValidationError: If the transition is not an edge of the model.
            valid_values holds the targets of the outgoing edges.
    """
    # No-op transitions are always allowed (setting same status)
    if current_status == new_status:
        logger.debug(f"No-op transition: {current_status} → {new_status}")
        return

    allowed = get_allowed_transitions(db, entity_type, current_status)
    if new_status not in allowed:
        error_msg = (
            f"Invalid status transition: {current_status} → {new_status}. "
            f"From {current_status}, you can only transition to: {', '.join(allowed) or 'nothing'}."
        )
        logger.warning(f"Blocked transition: {error_msg}")
        raise StatusValidationError(
            error_msg,
            current_status=current_status,
            requested_status=new_status,
            valid_values=allowed,
        )

    logger.debug(f"Valid transition: {current_status} → {new_status}")


def get_initial_status(db: Session, entity_type: EntityType) -> str:
    """Name of the default model's initial status."""
    status_model = StatusModelRepository(db).get_default(entity_type)
    for status in status_model.statuses:
        if status.is_initial:
            return status.name
    raise StatusValidationError(
        f"Status model for {entity_type.value} has no initial status",
        current_status=None,
        requested_status="",
        valid_values=[s.name for s in status_model.statuses],
    )


def resolve_initial_status(db: Session, entity_type: EntityType, raw: Optional[str]) -> str:
    """
    Status for a newly created entity.

    Defaults to the initial status; an explicit value must normalize to it.
    """
    initial = get_initial_status(db, entity_type)
    if raw is None or raw == "":
        return initial
    status = normalize_status(entity_type, raw)
    if status != initial:
        raise StatusValidationError(
            f"New {entity_type.value} must start in status '{initial}'",
            current_status=None,
            requested_status=raw,
            valid_values=[initial],
        )
    return status


def seed_default_status_models(db: Session) -> int:
    """
    Create the default status model for each entity type that lacks one.

    Idempotent. Run at startup so stored status strings and the engine agree.

    Returns:
        Number of status models created
    """
    created = 0
    for entity_type, definition in DEFAULT_STATUS_MODELS.items():
        existing = (
            db.query(StatusModel)
            .filter(StatusModel.entity_type == entity_type, StatusModel.is_default.is_(True))
            .first()
        )
        if existing:
            continue

        status_model = StatusModel(
            entity_type=entity_type,
            name=definition["name"],
            description=f"Default status workflow for {entity_type.value.replace('_', ' ')}s",
            is_default=True,
        )
        by_name: dict[str, Status] = {}
        for order, (name, description, color, is_initial, is_final) in enumerate(definition["statuses"], start=1):
            status = Status(
                name=name,
                description=f"{definition['label']} is {description}",
                color=color,
                order=order,
                is_initial=is_initial,
                is_final=is_final,
            )
            status_model.statuses.append(status)
            by_name[name] = status
        for from_status, to_status, label in definition["transitions"]:
            status_model.transitions.append(StatusTransition(
                from_status=by_name[from_status.value],
                to_status=by_name[to_status.value],
                name=label,
            ))
        db.add(status_model)
        created += 1
        logger.info(f"Seeded default status model for {entity_type.value}")

    if created:
        db.commit()
    return created
