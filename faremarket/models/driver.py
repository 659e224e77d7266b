"""Driver verification entity for the FareMarket application."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4


class VerificationStatus(Enum):
    """Status of a driver's application. Only APPROVED may act as a driver."""
    PENDING = "pending"
    DOCUMENTS_SUBMITTED = "documents_submitted"
    BACKGROUND_CHECK_INITIATED = "background_check_initiated"
    BACKGROUND_CHECK_COMPLETE = "background_check_complete"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class DriverApplication:
    """
    A driver's verification record, owned by the onboarding flow.

    Attributes:
        driver_id: ID of the driver user
        status: Current verification status
        id: Unique identifier for the application
        updated_at: When the status last changed
    """
    driver_id: str
    status: VerificationStatus = VerificationStatus.PENDING
    id: Optional[str] = None
    updated_at: Optional[str] = None

    def __post_init__(self):
        """Initialize default values."""
        if self.id is None:
            self.id = str(uuid4())
        if self.updated_at is None:
            self.updated_at = datetime.now().isoformat()

    def to_dict(self):
        return {
            "id": self.id,
            "driver_id": self.driver_id,
            "status": self.status.value,
            "updated_at": self.updated_at,
        }
