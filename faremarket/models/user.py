"""User entity for the FareMarket application."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class UserType(Enum):
    """Types of users in the system."""
    RIDER = "rider"
    DRIVER = "driver"
    ADMIN = "admin"


class AdminPermission(Enum):
    """Named admin capabilities checked by the identity collaborator."""
    VIEW_RIDES = "view_rides"
    MANAGE_RIDES = "manage_rides"
    MANAGE_DRIVERS = "manage_drivers"


@dataclass
class Actor:
    """
    The resolved caller of an operation.

    Every service operation takes the actor explicitly instead of reading
    a session, so the core runs without a live auth context.

    Attributes:
        id: User ID
        user_type: Rider, driver or admin
        verification_status: Driver verification status (drivers only)
        permissions: Admin permission names (admins only)
        name: Display name
    """
    id: str
    user_type: UserType
    verification_status: Optional[str] = None
    permissions: List[str] = field(default_factory=list)
    name: str = ""

    @property
    def is_rider(self) -> bool:
        return self.user_type == UserType.RIDER

    @property
    def is_driver(self) -> bool:
        return self.user_type == UserType.DRIVER

    @property
    def is_admin(self) -> bool:
        return self.user_type == UserType.ADMIN

    def has_permission(self, permission: AdminPermission) -> bool:
        """Check whether an admin actor holds the given permission."""
        return self.is_admin and permission.value in self.permissions
