"""Identity and authorization collaborator for FareMarket."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional, List
from uuid import uuid4

import bcrypt
import jwt

from faremarket.config import settings
from faremarket.models.driver import DriverApplication, VerificationStatus
from faremarket.models.user import Actor, AdminPermission, UserType
from faremarket.services.errors import (
    FareMarketError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from faremarket.services.store import StoreClient

logger = logging.getLogger(__name__)


class AuthError(FareMarketError):
    """Custom exception for authentication errors."""
    pass


class AuthService:
    """Resolves who the caller is and what they may do."""

    def __init__(self, store: Optional[StoreClient] = None):
        self.store = store or StoreClient()

    @staticmethod
    def _hash_password(password: str) -> str:
        """
        Hash a password using bcrypt.

        Args:
            password: Plain text password

        Returns:
            str: Hashed password
        """
        return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')

    @staticmethod
    def _verify_password(plain_password: str, hashed_password: str) -> bool:
        if not hashed_password:
            return False
        try:
            return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))
        except ValueError as e:
            logger.error(f"Password verification error: {str(e)}")
            return False

    @staticmethod
    def _generate_jwt(user_id: str, user_type: str) -> str:
        payload = {
            "user_id": user_id,
            "user_type": user_type,
            "exp": datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRATION_HOURS),
            "iat": datetime.now(timezone.utc)
        }
        return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

    @staticmethod
    def _verify_jwt(token: str) -> Dict[str, Any]:
        """
        Verify a JWT token and return its payload.

        Raises:
            AuthError: If token is invalid or expired
        """
        try:
            return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        except jwt.PyJWTError as e:
            raise AuthError(f"Invalid token: {str(e)}")

    def register(self, email: str, password: str, first_name: str, last_name: str,
                 user_type: str = UserType.RIDER.value,
                 permissions: Optional[List[str]] = None,
                 admin_code: Optional[str] = None) -> Dict[str, Any]:
        """
        Register a new user. Drivers also get a pending verification application.

        Admin accounts need the admin registration code.

        Returns:
            Dict: User data (without password) and token

        Raises:
            ValidationError: If input is missing or the user type is unknown
            AuthError: If the email is already registered or the admin code is wrong
        """
        if not email or not password:
            raise ValidationError("Email and password are required.")
        try:
            user_type = UserType(user_type).value
        except ValueError:
            raise ValidationError(f"Unknown user type '{user_type}'.")
        if user_type == UserType.ADMIN.value and admin_code != settings.ADMIN_REGISTRATION_CODE:
            raise AuthError("Invalid admin registration code")

        if self.store.query("users", email=email):
            raise AuthError(f"User with email {email} already exists")

        now = datetime.now().isoformat()
        new_user = {
            "id": str(uuid4()),
            "email": email,
            "password": self._hash_password(password),
            "first_name": first_name,
            "last_name": last_name,
            "user_type": user_type,
            "admin_permissions": list(permissions or []) if user_type == UserType.ADMIN.value else [],
            "created_at": now,
            "updated_at": now,
        }
        logger.info(f"Creating new {user_type} user: {email}")
        user = self.store.create("users", new_user)

        if user_type == UserType.DRIVER.value:
            self.store.create("driver_applications", DriverApplication(driver_id=user["id"]).to_dict())

        user.pop("password", None)
        return {"user": user, "token": self._generate_jwt(user["id"], user_type)}

    def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        """
        Authenticate with email and password.

        Raises:
            AuthError: If the credentials do not match
        """
        users = self.store.query("users", email=email)
        if not users or not self._verify_password(password, users[0].get("password")):
            raise AuthError("Invalid email or password")

        user = dict(users[0])
        user.pop("password", None)
        return {"user": user, "token": self._generate_jwt(user["id"], user["user_type"])}

    def verify_token(self, token: str) -> Dict[str, Any]:
        """
        Verify a token and return the associated user.

        Raises:
            AuthError: If token verification fails
        """
        payload = self._verify_jwt(token)
        user_id = payload.get('user_id')
        if not user_id:
            raise AuthError("Invalid token payload")

        try:
            user = self.store.get("users", user_id)
        except NotFoundError:
            raise AuthError(f"User with ID {user_id} not found")
        user.pop("password", None)
        return user

    def resolve_actor(self, token: str) -> Actor:
        """Turn a session token into the explicit Actor passed to every operation."""
        return self.actor_for_user(self.verify_token(token))

    def actor_for_user(self, user: Dict[str, Any]) -> Actor:
        user_type = UserType(user["user_type"])
        verification_status = None
        if user_type == UserType.DRIVER:
            verification_status = self.get_verification_status(user["id"])
        return Actor(
            id=user["id"],
            user_type=user_type,
            verification_status=verification_status,
            permissions=list(user.get("admin_permissions") or []),
            name=f"{user.get('first_name', '')} {user.get('last_name', '')}".strip(),
        )

    def get_verification_status(self, driver_id: str) -> str:
        applications = self.store.query("driver_applications", driver_id=driver_id)
        if not applications:
            return VerificationStatus.PENDING.value
        applications.sort(key=lambda a: a.get("updated_at", ""), reverse=True)
        return applications[0].get("status", VerificationStatus.PENDING.value)

    @staticmethod
    def check_admin_permission(actor: Actor, permission: AdminPermission) -> bool:
        """Opaque admin permission check."""
        return actor is not None and actor.has_permission(permission)

    @staticmethod
    def require_admin_permission(actor: Actor, permission: AdminPermission) -> Actor:
        """
        Raises:
            ForbiddenError: If the actor is not an admin holding the permission
        """
        if not AuthService.check_admin_permission(actor, permission):
            raise ForbiddenError(f"Admin permission '{permission.value}' is required.")
        return actor

    def set_verification_status(self, actor: Actor, driver_id: str, status: str) -> Dict[str, Any]:
        """
        Record a driver's verification outcome (admin only).

        Returns:
            Dict: Updated driver application
        """
        self.require_admin_permission(actor, AdminPermission.MANAGE_DRIVERS)
        try:
            status = VerificationStatus(status).value
        except ValueError:
            raise ValidationError(f"Unknown verification status '{status}'.")

        driver = self.store.get("users", driver_id)
        if driver.get("user_type") != UserType.DRIVER.value:
            raise ValidationError(f"User {driver_id} is not a driver.")

        fields = {"status": status, "updated_at": datetime.now().isoformat(), "reviewed_by": actor.id}
        applications = self.store.query("driver_applications", driver_id=driver_id)
        if applications:
            application = self.store.update("driver_applications", applications[0]["id"], fields)
        else:
            record = DriverApplication(driver_id=driver_id, status=VerificationStatus(status)).to_dict()
            record["reviewed_by"] = actor.id
            application = self.store.create("driver_applications", record)

        logger.info(f"Driver {driver_id} verification set to {status} by {actor.id}")
        return application
