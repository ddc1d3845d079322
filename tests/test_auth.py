"""Tests for passwords, session tokens and refresh-token rotation."""
from datetime import timedelta

import jwt
import pytest

from prm_core import auth
from prm_core.config import get_settings
from prm_core.errors import UnauthorizedError, ValidationError
from prm_core.models import RefreshToken, utcnow


class TestPasswords:
    """Test bcrypt hashing."""

    def test_hash_and_verify(self):
        password_hash = auth.hash_password("s3cret-pass")
        assert password_hash != "s3cret-pass"
        assert auth.verify_password("s3cret-pass", password_hash)
        assert not auth.verify_password("wrong", password_hash)

    def test_malformed_hash_never_matches(self):
        assert auth.verify_password("anything", "not-a-bcrypt-hash") is False


class TestSessionTokens:
    """Test session JWTs."""

    def test_round_trip_claims(self, db, writer):
        token, lifetime = auth.create_access_token(writer)
        claims = auth.decode_access_token(token)

        assert claims["sub"] == str(writer.id)
        assert claims["username"] == "writer"
        assert claims["role"] == "User"
        assert lifetime == get_settings().session_ttl_minutes * 60
        assert auth.get_user_from_access_token(db, token).id == writer.id

    def test_expired_token_rejected(self, writer):
        settings = get_settings()
        token = jwt.encode(
            {"sub": str(writer.id), "iat": 0, "exp": 1},
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )
        with pytest.raises(UnauthorizedError) as exc_info:
            auth.decode_access_token(token)

        assert "expired" in exc_info.value.message

    def test_bad_signature_rejected(self, writer):
        token = jwt.encode({"sub": str(writer.id), "iat": 0, "exp": 9999999999}, "other-secret", algorithm="HS256")
        with pytest.raises(UnauthorizedError):
            auth.decode_access_token(token)

    def test_missing_token(self, db):
        with pytest.raises(UnauthorizedError):
            auth.authenticate_bearer(db, None)


class TestLogin:
    """Test login, refresh and logout."""

    def test_login_returns_token_pair(self, db, writer, password):
        tokens = auth.login(db, "writer", password)

        assert tokens.token_type == "bearer"
        assert tokens.user.username == "writer"
        assert auth.decode_access_token(tokens.access_token)["sub"] == str(writer.id)
        assert db.query(RefreshToken).count() == 1

    def test_wrong_password_and_unknown_user_look_the_same(self, db, writer):
        """Test that a login failure never reveals whether the username exists."""
        with pytest.raises(UnauthorizedError) as wrong_password:
            auth.login(db, "writer", "not-the-password")
        with pytest.raises(UnauthorizedError) as unknown_user:
            auth.login(db, "nobody", "not-the-password")

        assert wrong_password.value.message == unknown_user.value.message

    def test_refresh_rotates_token(self, db, writer, password):
        """Test that a refresh token works exactly once."""
        tokens = auth.login(db, "writer", password)
        rotated = auth.refresh(db, tokens.refresh_token)

        assert rotated.refresh_token != tokens.refresh_token
        with pytest.raises(UnauthorizedError):
            auth.refresh(db, tokens.refresh_token)
        assert auth.refresh(db, rotated.refresh_token).user.id == writer.id

    def test_expired_refresh_token_is_removed(self, db, writer, password):
        tokens = auth.login(db, "writer", password)
        stored = db.query(RefreshToken).one()
        stored.expires_at = utcnow() - timedelta(minutes=1)
        db.commit()

        with pytest.raises(UnauthorizedError) as exc_info:
            auth.refresh(db, tokens.refresh_token)

        assert "expired" in exc_info.value.message
        assert db.query(RefreshToken).count() == 0

    def test_logout_revokes_refresh_token(self, db, writer, password):
        tokens = auth.login(db, "writer", password)

        assert auth.logout(db, tokens.refresh_token) is True
        assert auth.logout(db, tokens.refresh_token) is False
        with pytest.raises(UnauthorizedError):
            auth.refresh(db, tokens.refresh_token)

    def test_cleanup_expired_refresh_tokens(self, db, writer, password):
        auth.login(db, "writer", password)
        auth.login(db, "writer", password)
        stale = db.query(RefreshToken).first()
        stale.expires_at = utcnow() - timedelta(days=1)
        db.commit()

        assert auth.cleanup_expired_refresh_tokens(db) == 1
        assert db.query(RefreshToken).count() == 1


class TestChangePassword:
    """Test password changes."""

    def test_change_password_revokes_sessions(self, db, writer, password):
        tokens = auth.login(db, "writer", password)
        auth.change_password(db, writer, password, "a-brand-new-password")

        with pytest.raises(UnauthorizedError):
            auth.refresh(db, tokens.refresh_token)
        assert auth.login(db, "writer", "a-brand-new-password").user.id == writer.id

    def test_wrong_current_password(self, db, writer):
        with pytest.raises(UnauthorizedError):
            auth.change_password(db, writer, "wrong-password", "a-brand-new-password")

    def test_new_password_must_differ(self, db, writer, password):
        with pytest.raises(ValidationError):
            auth.change_password(db, writer, password, password)
