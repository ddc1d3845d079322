"""Personal access tokens for API and tool-server clients.

A token is ``{prefix}{secret}`` (e.g. ``mcp_pat_…``). Only a bcrypt hash of
the secret is stored next to the prefix. Authentication fetches every token
carrying the presented prefix through the prefix index and compares each
hash in constant time, so the secret never has to be indexed.
"""
import logging
import secrets
from datetime import datetime
from typing import Optional
from uuid import UUID

import bcrypt
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import get_settings
from .errors import DuplicateKeyError, NotFoundError, UnauthorizedError, ValidationError
from .models import PersonalAccessToken, User, to_naive_utc, utcnow
from .repository import Repositories
from .schemas import VALID_PAT_SCOPES

logger = logging.getLogger("prm-core.pat")


def generate_token() -> tuple[str, str]:
    """
    Generate a new token.

    Returns:
        (plaintext token, secret part)
    """
    settings = get_settings()
    secret = secrets.token_urlsafe(settings.pat_secret_bytes)
    return f"{settings.pat_prefix}{secret}", secret


def _hash_secret(secret: str) -> str:
    rounds = get_settings().bcrypt_rounds
    return bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def create_pat(
    db: Session,
    user: User,
    name: str,
    scopes: Optional[list[str]] = None,
    expires_at: Optional[datetime] = None,
) -> tuple[str, PersonalAccessToken]:
    """
    Create a personal access token for the user.

    Args:
        db: Database session
        user: Token owner
        name: Name unique among the user's tokens
        scopes: Granted scopes (default ["full_access"])
        expires_at: Optional expiry (naive UTC), must be in the future

    Returns:
        (plaintext token, stored token). The plaintext is not retrievable later.

    Raises:
        DuplicateKeyError: If the user already has a token with this name
        ValidationError: If scopes are unknown or expires_at is in the past
    """
    scopes = scopes or ["full_access"]
    invalid = [scope for scope in scopes if scope not in VALID_PAT_SCOPES]
    if invalid:
        raise ValidationError(f"Invalid scopes: {', '.join(invalid)}", valid_values=list(VALID_PAT_SCOPES))
    expires_at = to_naive_utc(expires_at)
    if expires_at is not None:
        if expires_at <= utcnow():
            raise ValidationError("expires_at must be in the future")

    repos = Repositories(db)
    if repos.personal_access_tokens.get_by_user_and_name(user.id, name):
        raise DuplicateKeyError(f"A token named '{name}' already exists")

    token, secret = generate_token()
    pat = repos.personal_access_tokens.create(PersonalAccessToken(
        user_id=user.id,
        name=name,
        token_hash=_hash_secret(secret),
        prefix=get_settings().pat_prefix,
        scopes=scopes,
        expires_at=expires_at,
    ))
    logger.info(f"Created personal access token '{name}' for user {user.username}")
    return token, pat


def list_pats(db: Session, user: User, skip: int = 0, limit: int = 50) -> tuple[list[PersonalAccessToken], int]:
    """List the user's tokens, newest first. Returns (items, total)."""
    repository = Repositories(db).personal_access_tokens
    items = repository.get_by_user(user.id, limit=limit, offset=skip)
    return items, repository.count(filters={"user_id": user.id})


def get_pat(db: Session, user: User, pat_id: UUID) -> PersonalAccessToken:
    """
    Get one of the user's tokens.

    Raises:
        NotFoundError: If the token does not exist or belongs to someone else
    """
    repository = Repositories(db).personal_access_tokens
    try:
        pat = repository.get_by_id(pat_id)
    except NotFoundError:
        raise NotFoundError("Personal access token not found")
    if pat.user_id != user.id:
        raise NotFoundError("Personal access token not found")
    return pat


def revoke_pat(db: Session, user: User, pat_id: UUID) -> None:
    """Delete one of the user's tokens; later use of it fails."""
    pat = get_pat(db, user, pat_id)
    Repositories(db).personal_access_tokens.delete(pat)
    logger.info(f"Revoked personal access token '{pat.name}' for user {user.username}")


def authenticate_pat(db: Session, token: str) -> User:
    """
    Resolve the user owning a personal access token.

    Args:
        db: Database session
        token: Full ``{prefix}{secret}`` token

    Returns:
        The token owner

    Raises:
        UnauthorizedError: If the token is malformed, unknown or expired
    """
    prefix = get_settings().pat_prefix
    if not token or not token.startswith(prefix) or len(token) == len(prefix):
        raise UnauthorizedError("Invalid personal access token")
    secret = token[len(prefix):].encode("utf-8")

    repository = Repositories(db).personal_access_tokens
    now = utcnow()
    for candidate in repository.get_by_prefix(prefix):
        if candidate.expires_at is not None and candidate.expires_at <= now:
            continue
        try:
            matched = bcrypt.checkpw(secret, candidate.token_hash.encode("utf-8"))
        except ValueError:
            logger.warning(f"Malformed hash on personal access token {candidate.id}")
            continue
        if matched:
            _touch(db, candidate, now)
            return candidate.user

    logger.warning("Rejected personal access token")
    raise UnauthorizedError("Invalid personal access token")


def _touch(db: Session, pat: PersonalAccessToken, now: datetime) -> None:
    # Best effort: a failed last_used_at write does not fail the request
    try:
        pat.last_used_at = now
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(f"Could not update last_used_at for token {pat.id}: {e}")


def cleanup_expired_tokens(db: Session) -> int:
    """Delete expired personal access tokens. Returns the number removed."""
    count = Repositories(db).personal_access_tokens.delete_expired(utcnow())
    if count:
        logger.info(f"Deleted {count} expired personal access tokens")
    return count
