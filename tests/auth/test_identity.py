"""Tests for registration, sign-in and actor resolution."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import jwt
import pytest

from faremarket.config import settings
from faremarket.models.user import AdminPermission, UserType
from faremarket.services.auth_service import AuthError, AuthService
from faremarket.services.errors import ValidationError

TEST_EMAIL = "riley@example.com"
TEST_PASSWORD = "s3cret!"


class TestRegistration:
    """Test class for account registration."""

    def test_register_rider(self, market):
        result = market.auth.register(TEST_EMAIL, TEST_PASSWORD, "Riley", "Rider")

        user = result["user"]
        assert user["user_type"] == "rider"
        assert "password" not in user
        stored = market.store.get("users", user["id"])
        assert stored["password"] != TEST_PASSWORD
        assert AuthService._verify_password(TEST_PASSWORD, stored["password"])
        assert market.store.query("driver_applications") == []

    def test_register_driver_creates_pending_application(self, market):
        user = market.auth.register("dana@example.com", TEST_PASSWORD, "Dana", "Driver", user_type="driver")["user"]

        applications = market.store.query("driver_applications", driver_id=user["id"])
        assert [a["status"] for a in applications] == ["pending"]

    def test_register_admin_keeps_permissions(self, market):
        user = market.auth.register("ada@example.com", TEST_PASSWORD, "Ada", "Admin", user_type="admin",
                                    permissions=["view_rides"],
                                    admin_code=settings.ADMIN_REGISTRATION_CODE)["user"]
        actor = market.auth.actor_for_user(user)
        assert actor.has_permission(AdminPermission.VIEW_RIDES)
        assert not actor.has_permission(AdminPermission.MANAGE_RIDES)

    def test_admin_needs_registration_code(self, market):
        with pytest.raises(AuthError):
            market.auth.register("ada@example.com", TEST_PASSWORD, "Ada", "Admin", user_type="admin",
                                 admin_code="guess")
        assert market.store.query("users") == []

    def test_rider_permissions_are_dropped(self, market):
        user = market.auth.register(TEST_EMAIL, TEST_PASSWORD, "Riley", "Rider", permissions=["view_rides"])["user"]
        assert user["admin_permissions"] == []

    def test_duplicate_email(self, market):
        market.auth.register(TEST_EMAIL, TEST_PASSWORD, "Riley", "Rider")
        with pytest.raises(AuthError):
            market.auth.register(TEST_EMAIL, TEST_PASSWORD, "Riley", "Again")

    @pytest.mark.parametrize("email,password,user_type", [
        ("", TEST_PASSWORD, "rider"),
        (TEST_EMAIL, "", "rider"),
        (TEST_EMAIL, TEST_PASSWORD, "passenger"),
    ])
    def test_invalid_registration(self, market, email, password, user_type):
        with pytest.raises(ValidationError):
            market.auth.register(email, password, "Riley", "Rider", user_type=user_type)


class TestSignIn:
    """Test class for sign-in and token handling."""

    def test_sign_in_and_resolve_actor(self, market):
        market.auth.register(TEST_EMAIL, TEST_PASSWORD, "Riley", "Rider")

        result = market.auth.sign_in(TEST_EMAIL, TEST_PASSWORD)
        actor = market.auth.resolve_actor(result["token"])

        assert actor.user_type == UserType.RIDER
        assert actor.id == result["user"]["id"]
        assert actor.name == "Riley Rider"

    def test_wrong_password(self, market):
        market.auth.register(TEST_EMAIL, TEST_PASSWORD, "Riley", "Rider")
        with pytest.raises(AuthError):
            market.auth.sign_in(TEST_EMAIL, "nope")

    def test_unknown_email(self, market):
        with pytest.raises(AuthError):
            market.auth.sign_in("ghost@example.com", TEST_PASSWORD)

    def test_expired_token(self, market):
        user = market.auth.register(TEST_EMAIL, TEST_PASSWORD, "Riley", "Rider")["user"]
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        token = jwt.encode({"user_id": user["id"], "user_type": "rider", "exp": past, "iat": past},
                           settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

        with pytest.raises(AuthError):
            market.auth.resolve_actor(token)

    def test_token_for_deleted_user(self, market):
        token = AuthService._generate_jwt("ghost", "rider")
        with pytest.raises(AuthError):
            market.auth.verify_token(token)

    @patch("faremarket.services.auth_service.bcrypt.checkpw", side_effect=ValueError("Invalid salt"))
    def test_corrupt_hash_fails_closed(self, mock_checkpw):
        assert AuthService._verify_password(TEST_PASSWORD, "not-a-hash") is False
        mock_checkpw.assert_called_once()

    def test_driver_actor_carries_verification(self, market, admin):
        result = market.auth.register("dana@example.com", TEST_PASSWORD, "Dana", "Driver", user_type="driver")
        assert market.auth.resolve_actor(result["token"]).verification_status == "pending"

        market.auth.set_verification_status(admin, result["user"]["id"], "approved")

        assert market.auth.resolve_actor(result["token"]).verification_status == "approved"
