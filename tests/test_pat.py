"""Tests for personal access tokens."""
from datetime import datetime, timedelta, timezone

import pytest

from prm_core import pat
from prm_core.config import get_settings
from prm_core.errors import DuplicateKeyError, NotFoundError, UnauthorizedError, ValidationError
from prm_core.models import PersonalAccessToken, utcnow


class TestCreate:
    """Test token creation."""

    def test_token_format(self, db, writer):
        """Test that the plaintext carries the prefix and only a hash is stored."""
        token, stored = pat.create_pat(db, writer, "laptop")

        assert token.startswith(get_settings().pat_prefix)
        assert stored.prefix == get_settings().pat_prefix
        assert stored.scopes == ["full_access"]
        assert token[len(stored.prefix):] not in stored.token_hash

    def test_duplicate_name(self, db, writer):
        pat.create_pat(db, writer, "laptop")
        with pytest.raises(DuplicateKeyError):
            pat.create_pat(db, writer, "laptop")

    def test_same_name_for_different_users(self, db, writer, admin):
        pat.create_pat(db, writer, "ci")
        pat.create_pat(db, admin, "ci")  # Should not raise

    def test_unknown_scope(self, db, writer):
        with pytest.raises(ValidationError) as exc_info:
            pat.create_pat(db, writer, "laptop", scopes=["root"])

        assert "full_access" in exc_info.value.valid_values

    def test_expiry_in_the_past(self, db, writer):
        with pytest.raises(ValidationError):
            pat.create_pat(db, writer, "laptop", expires_at=utcnow() - timedelta(hours=1))

    def test_aware_expiry_is_stored_as_utc(self, db, writer):
        expires_at = datetime.now(timezone(timedelta(hours=2))) + timedelta(days=1)
        _, stored = pat.create_pat(db, writer, "laptop", expires_at=expires_at)

        assert stored.expires_at.tzinfo is None
        assert stored.expires_at == expires_at.astimezone(timezone.utc).replace(tzinfo=None)


class TestAuthenticate:
    """Test token authentication."""

    def test_valid_token(self, db, writer):
        token, stored = pat.create_pat(db, writer, "laptop")

        assert pat.authenticate_pat(db, token).id == writer.id
        db.refresh(stored)
        assert stored.last_used_at is not None

    def test_wrong_secret(self, db, writer):
        pat.create_pat(db, writer, "laptop")
        with pytest.raises(UnauthorizedError):
            pat.authenticate_pat(db, get_settings().pat_prefix + "not-the-secret")

    @pytest.mark.parametrize("token", ["", "mcp_pat_", "Bearer something", "eyJhbGciOiJIUzI1NiJ9.e30.x"])
    def test_malformed_token(self, db, token):
        with pytest.raises(UnauthorizedError):
            pat.authenticate_pat(db, token)

    def test_expired_token(self, db, writer):
        token, stored = pat.create_pat(db, writer, "laptop")
        stored.expires_at = utcnow() - timedelta(seconds=1)
        db.commit()

        with pytest.raises(UnauthorizedError):
            pat.authenticate_pat(db, token)

    def test_revoked_token(self, db, writer):
        token, stored = pat.create_pat(db, writer, "laptop")
        pat.revoke_pat(db, writer, stored.id)

        with pytest.raises(UnauthorizedError):
            pat.authenticate_pat(db, token)


class TestManage:
    """Test listing, lookup and cleanup."""

    def test_list_only_own_tokens(self, db, writer, admin):
        pat.create_pat(db, writer, "one")
        pat.create_pat(db, writer, "two")
        pat.create_pat(db, admin, "admin-token")

        items, total = pat.list_pats(db, writer)

        assert total == 2
        assert {item.name for item in items} == {"one", "two"}

    def test_other_users_token_is_not_found(self, db, writer, admin):
        _, stored = pat.create_pat(db, admin, "admin-token")

        with pytest.raises(NotFoundError):
            pat.get_pat(db, writer, stored.id)
        with pytest.raises(NotFoundError):
            pat.revoke_pat(db, writer, stored.id)

    def test_cleanup_expired_tokens(self, db, writer):
        _, stale = pat.create_pat(db, writer, "stale")
        pat.create_pat(db, writer, "fresh")
        stale.expires_at = utcnow() - timedelta(days=1)
        db.commit()

        assert pat.cleanup_expired_tokens(db) == 1
        assert db.query(PersonalAccessToken).count() == 1
