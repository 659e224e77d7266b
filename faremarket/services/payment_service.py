"""Payment collaborator boundary: settlement events for rides."""

import logging
from typing import Dict, Any, Optional

from faremarket.services.ride_service import RideService

logger = logging.getLogger(__name__)


class PaymentService:
    """Receives "payment succeeded/failed for ride X with amount Y" events."""

    def __init__(self, ride_service: Optional[RideService] = None):
        self.ride_service = ride_service or RideService()

    def handle_settlement(self, ride_id: str, amount, succeeded: bool = True,
                          reference: Optional[str] = None) -> Dict[str, Any]:
        """
        Apply a settlement report to its ride.

        Args:
            ride_id: Ride the payment was captured for
            amount: Settled amount
            succeeded: Whether the capture succeeded
            reference: Processor reference, logged only

        Returns:
            Dict: Updated ride data
        """
        logger.info(f"Settlement for ride {ride_id}: amount={amount} succeeded={succeeded} ref={reference}")
        if not succeeded:
            return self.ride_service.record_payment_failure(ride_id)
        return self.ride_service.confirm_payment(ride_id, amount)
