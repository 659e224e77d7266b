"""Driver availability gate: only approved drivers may act as drivers."""

from typing import Any, Dict, Union

from faremarket.models.driver import VerificationStatus
from faremarket.models.user import Actor
from faremarket.services.errors import ForbiddenError


def can_act(driver_profile: Union[Actor, Dict[str, Any], None]) -> bool:
    """True iff the driver's verification status is approved."""
    if driver_profile is None:
        return False
    if isinstance(driver_profile, Actor):
        status = driver_profile.verification_status
    else:
        status = driver_profile.get("verification_status")
    return status == VerificationStatus.APPROVED.value


def require_driver(actor: Actor) -> Actor:
    """
    Check that the actor is a driver cleared to act.

    Raises:
        ForbiddenError: If the actor is not a driver or is not approved
    """
    if actor is None or not actor.is_driver:
        raise ForbiddenError("Only drivers can perform this action.")
    if not can_act(actor):
        status = actor.verification_status or VerificationStatus.PENDING.value
        raise ForbiddenError(
            f"Your driver verification is '{status}'. You must be approved to view or act on rides.")
    return actor
