"""Session authentication endpoints."""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from prm_core import auth, models, schemas
from prm_core.database import get_db

from ..dependencies import get_current_user

logger = logging.getLogger("prm-api.auth")

router = APIRouter(tags=["auth"])


@router.post("/login", response_model=schemas.TokenResponse)
def login(
    credentials: schemas.LoginRequest,
    db: Session = Depends(get_db),
):
    """
    Exchange a username and password for a session token pair.

    - **access_token**: short-lived JWT, sent as `Authorization: Bearer <token>`
    - **refresh_token**: single-use token for `/auth/refresh`
    """
    return auth.login(db, credentials.username, credentials.password)


@router.post("/refresh", response_model=schemas.TokenResponse)
def refresh(
    request: schemas.RefreshRequest,
    db: Session = Depends(get_db),
):
    """
    Rotate a refresh token. The presented token stops working.
    """
    return auth.refresh(db, request.refresh_token)


@router.post("/logout", status_code=204)
def logout(
    request: schemas.RefreshRequest,
    db: Session = Depends(get_db),
):
    """Revoke a refresh token. Unknown tokens are ignored."""
    auth.logout(db, request.refresh_token)


@router.get("/profile", response_model=schemas.UserResponse)
def get_profile(
    current_user: models.User = Depends(get_current_user),
):
    """Get the authenticated caller."""
    return current_user


@router.post("/change-password", status_code=204)
def change_password(
    request: schemas.PasswordChange,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Change the caller's password. All of the caller's refresh tokens are revoked.
    """
    auth.change_password(db, current_user, request.current_password, request.new_password)
