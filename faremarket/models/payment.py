"""Payment enums for the FareMarket application."""

from enum import Enum


class PaymentMethod(Enum):
    """How the rider intends to pay."""
    CARD = "card"
    CASH = "cash"


class PaymentStatus(Enum):
    """Settlement state of a ride's payment."""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
