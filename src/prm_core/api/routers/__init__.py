"""API routers for the PRM API."""

from . import (
    acceptance_criteria,
    auth,
    comments,
    config,
    epics,
    navigation,
    pats,
    prompts,
    requirements,
    search,
    steering_documents,
    user_stories,
    users,
)

__all__ = [
    "acceptance_criteria",
    "auth",
    "comments",
    "config",
    "epics",
    "navigation",
    "pats",
    "prompts",
    "requirements",
    "search",
    "steering_documents",
    "user_stories",
    "users",
]
