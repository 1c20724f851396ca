"""
Authentication and session tests.

Verifies:
- Password strength validation and bcrypt verification
- Session tokens are stored hashed and honour idle/absolute timeouts
- Revoked sessions and deactivated users are rejected
"""

from datetime import timedelta

import pytest

from aquastock.errors import ValidationError
from aquastock.models import SessionToken, User
from aquastock.services import auth_service, session_service
from aquastock.services.auth_service import PasswordValidationError
from aquastock.time_utils import utcnow


class TestPasswords:

    @pytest.mark.parametrize("password", ["short1!", "alllowercase1!", "ALLUPPERCASE1!", "NoDigits!!", "NoSpecial123"])
    def test_weak_passwords(self, password):
        with pytest.raises(PasswordValidationError):
            auth_service.validate_password_strength(password)

    def test_hash_and_verify(self):
        hashed = auth_service.hash_password("Password123!")
        assert hashed.startswith("$2")
        assert auth_service.verify_password("Password123!", hashed)
        assert not auth_service.verify_password("Password123?", hashed)

    def test_malformed_hash_never_matches(self):
        assert not auth_service.verify_password("Password123!", "not-a-bcrypt-hash")


class TestUsers:

    def test_create_and_authenticate(self, db_session):
        user = auth_service.create_user("Clerk@AquaStock.test", "Password123!", full_name="Clerk", role="clerk")

        assert user.email == "clerk@aquastock.test"
        assert auth_service.authenticate("clerk@aquastock.test", "Password123!").id == user.id
        assert auth_service.authenticate("clerk@aquastock.test", "wrong") is None
        assert db_session.get(User, user.id).last_login_at is not None

    def test_duplicate_email(self, db_session, admin):
        with pytest.raises(ValidationError):
            auth_service.create_user(admin.email, "Password123!")

    def test_unknown_role(self, db_session):
        with pytest.raises(ValidationError):
            auth_service.create_user("x@aquastock.test", "Password123!", role="owner")

    def test_inactive_user_cannot_authenticate(self, db_session, admin):
        admin.is_active = False
        db_session.commit()
        assert auth_service.authenticate(admin.email, "Password123!") is None


class TestSessions:

    def test_token_is_stored_hashed(self, db_session, admin):
        session, token = session_service.create_session(admin.id)

        assert len(token) == 64
        assert session.token_hash == session_service.hash_token(token)
        assert db_session.query(SessionToken).filter_by(token_hash=token).count() == 0
        assert session_service.validate_session(token).id == admin.id

    def test_unknown_token(self, db_session):
        assert session_service.validate_session("deadbeef") is None

    def test_idle_timeout_revokes(self, db_session, admin):
        session, token = session_service.create_session(admin.id)
        session.last_used_at = utcnow() - session_service.SESSION_IDLE_TIMEOUT - timedelta(minutes=1)
        db_session.commit()

        assert session_service.validate_session(token) is None
        assert db_session.get(SessionToken, session.id).is_revoked

    def test_absolute_timeout(self, db_session, admin):
        session, token = session_service.create_session(admin.id)
        session.expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()

        assert session_service.validate_session(token) is None

    def test_revoke(self, db_session, admin):
        _, token = session_service.create_session(admin.id)

        assert session_service.revoke_session(token) is True
        assert session_service.validate_session(token) is None
        assert session_service.revoke_session(token) is False

    def test_deactivated_user(self, db_session, admin):
        _, token = session_service.create_session(admin.id)
        admin.is_active = False
        db_session.commit()

        assert session_service.validate_session(token) is None
