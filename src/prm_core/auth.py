"""Password credentials, session tokens and refresh-token rotation.

- Passwords are hashed with bcrypt (cost from BCRYPT_ROUNDS)
- Login issues a short-lived HS256 JWT plus a refresh token
- Refresh tokens are random secrets persisted only as SHA-256 hashes; each
  use rotates the token (the presented one is deleted)
"""
import hashlib
import hmac
import logging
import secrets
import time
from datetime import timedelta
from typing import Any, Optional
from uuid import UUID

import bcrypt
import jwt
from sqlalchemy.orm import Session

from .config import get_settings
from .errors import UnauthorizedError, ValidationError
from .models import RefreshToken, User, utcnow
from .repository import Repositories
from .schemas import TokenResponse, UserResponse

logger = logging.getLogger("prm-core.auth")

# Compared against when the username is unknown so both paths pay the KDF cost
_DUMMY_HASH = bcrypt.hashpw(b"dummy-password", bcrypt.gensalt(rounds=4)).decode()


# ============================================================================
# Passwords
# ============================================================================

def hash_password(password: str) -> str:
    """Hash a password with bcrypt at the configured cost."""
    rounds = get_settings().bcrypt_rounds
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time bcrypt comparison. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


# ============================================================================
# Session tokens
# ============================================================================

def create_access_token(user: User) -> tuple[str, int]:
    """
    Mint a session JWT for the user.

    Returns:
        (token, lifetime in seconds)
    """
    settings = get_settings()
    now = int(time.time())
    lifetime = settings.session_ttl_minutes * 60
    payload = {
        "sub": str(user.id),
        "user_id": str(user.id),
        "username": user.username,
        "role": user.role.value if hasattr(user.role, "value") else user.role,
        "iat": now,
        "nbf": now,
        "exp": now + lifetime,
    }
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return token, lifetime


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Verify a session JWT and return its claims.

    Raises:
        UnauthorizedError: If the token is expired, malformed or badly signed
    """
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "iat", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Session token has expired")
    except jwt.InvalidTokenError as e:
        logger.warning(f"Rejected session token: {e}")
        raise UnauthorizedError("Invalid session token")


def get_user_from_access_token(db: Session, token: str) -> User:
    """Resolve the user named by a valid session JWT."""
    claims = decode_access_token(token)
    try:
        user_id = UUID(claims["sub"])
    except (KeyError, ValueError):
        raise UnauthorizedError("Invalid session token")
    user = db.get(User, user_id)
    if user is None:
        raise UnauthorizedError("User no longer exists")
    return user


# ============================================================================
# Refresh tokens
# ============================================================================

def _hash_refresh_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _issue_refresh_token(repos: Repositories, user: User) -> str:
    token = secrets.token_urlsafe(48)
    repos.refresh_tokens.create(RefreshToken(
        user_id=user.id,
        token_hash=_hash_refresh_token(token),
        expires_at=utcnow() + timedelta(days=get_settings().refresh_ttl_days),
    ))
    return token


def _token_pair(repos: Repositories, user: User) -> TokenResponse:
    access_token, lifetime = create_access_token(user)
    refresh_token = _issue_refresh_token(repos, user)
    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=lifetime,
        user=UserResponse.model_validate(user),
    )


def login(db: Session, username: str, password: str) -> TokenResponse:
    """
    Authenticate with username and password.

    Returns:
        TokenResponse with a session JWT and a new refresh token

    Raises:
        UnauthorizedError: On unknown user or wrong password (same message)
    """
    repos = Repositories(db)
    user = repos.users.get_by_username(username)
    if user is None:
        verify_password(password, _DUMMY_HASH)
        logger.warning(f"Failed login for unknown user '{username}'")
        raise UnauthorizedError("Invalid username or password")
    if not verify_password(password, user.password_hash):
        logger.warning(f"Failed login for user '{username}'")
        raise UnauthorizedError("Invalid username or password")

    pair = repos.with_transaction(lambda tx: _token_pair(tx, user))
    logger.info(f"User '{username}' logged in")
    return pair


def refresh(db: Session, refresh_token: str) -> TokenResponse:
    """
    Exchange a refresh token for a new token pair.

    The presented token is invalidated (rotation).

    Raises:
        UnauthorizedError: If the token is unknown or expired
    """
    token_hash = _hash_refresh_token(refresh_token)

    def _rotate(tx: Repositories) -> TokenResponse:
        stored = tx.refresh_tokens.get_by_hash(token_hash)
        if stored is None or not hmac.compare_digest(stored.token_hash, token_hash):
            raise UnauthorizedError("Invalid refresh token")
        if stored.expires_at <= utcnow():
            raise UnauthorizedError("Refresh token has expired")
        user = stored.user
        tx.refresh_tokens.delete(stored)
        return _token_pair(tx, user)

    try:
        return Repositories(db).with_transaction(_rotate)
    except UnauthorizedError:
        # The rotation rolled back; an expired token is still removed
        _delete_refresh_token(db, token_hash, only_expired=True)
        raise


def _delete_refresh_token(db: Session, token_hash: str, only_expired: bool = False) -> bool:
    repos = Repositories(db)
    stored = repos.refresh_tokens.get_by_hash(token_hash)
    if stored is None:
        return False
    if only_expired and stored.expires_at > utcnow():
        return False
    repos.refresh_tokens.delete(stored)
    return True


def logout(db: Session, refresh_token: str) -> bool:
    """Revoke one refresh token. Returns False when it was already gone."""
    return _delete_refresh_token(db, _hash_refresh_token(refresh_token))


def revoke_user_refresh_tokens(db: Session, user_id: UUID) -> int:
    """Revoke every refresh token of a user."""
    count = Repositories(db).refresh_tokens.delete_by_user_id(user_id)
    logger.info(f"Revoked {count} refresh tokens for user {user_id}")
    return count


def cleanup_expired_refresh_tokens(db: Session) -> int:
    """Periodic sweep. Returns the number of expired refresh tokens deleted."""
    count = Repositories(db).refresh_tokens.delete_expired(utcnow())
    if count:
        logger.info(f"Deleted {count} expired refresh tokens")
    return count


def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    """
    Change the caller's own password and revoke their refresh tokens.

    Raises:
        UnauthorizedError: If current_password is wrong
        ValidationError: If the new password equals the current one
    """
    if not verify_password(current_password, user.password_hash):
        raise UnauthorizedError("Current password is incorrect")
    if current_password == new_password:
        raise ValidationError("New password must differ from the current password")

    def _change(tx: Repositories) -> None:
        tx.users.update(user, {"password_hash": hash_password(new_password)})
        tx.refresh_tokens.delete_by_user_id(user.id)

    Repositories(db).with_transaction(_change)
    logger.info(f"Password changed for user '{user.username}'")


def authenticate_bearer(db: Session, token: Optional[str]) -> User:
    """Resolve a session JWT; PATs are handled by prm_core.pat."""
    if not token:
        raise UnauthorizedError()
    return get_user_from_access_token(db, token)
