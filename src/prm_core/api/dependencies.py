"""Request dependencies shared by the routers."""
import logging
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from prm_core import models
from prm_core.auth import authenticate_bearer
from prm_core.config import get_settings
from prm_core.database import get_db
from prm_core.errors import UnauthorizedError
from prm_core.pat import authenticate_pat

logger = logging.getLogger("prm-api.dependencies")


def get_current_user(
    authorization: Optional[str] = Header(None, description="Bearer session token or personal access token"),
    x_api_key: Optional[str] = Header(None, description="Personal access token"),
    db: Session = Depends(get_db),
) -> models.User:
    """
    Resolve the caller from request credentials.

    Accepted forms:
    - **Authorization: Bearer <jwt>**: session token issued at login
    - **Authorization: Bearer <pat>**: personal access token
    - **X-API-Key: <pat>**: personal access token (tool clients)
    """
    if x_api_key:
        return authenticate_pat(db, x_api_key)

    if not authorization:
        raise UnauthorizedError()
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError("Authorization header must use the Bearer scheme")
    token = token.strip()
    if token.startswith(get_settings().pat_prefix):
        return authenticate_pat(db, token)
    return authenticate_bearer(db, token)
