"""Pickup slot reservation."""

import logging
from datetime import datetime

from .dantec_client import DantecClient
from .models import ReservationRequest, TimeSlot

logger = logging.getLogger(__name__)


class ReservationScheduler:
    """Books one of the server-provided pickup slots for a placed order."""

    def __init__(self, client: DantecClient) -> None:
        self.client = client

    async def list_available_slots(self) -> list[TimeSlot]:
        """
        Slots of the current scheduling window, as the server returns them.

        Expired slots are not filtered out here; that is up to the server.
        """
        slots = await self.client.get_time_slots()
        logger.info(f"Retrieved {len(slots)} time slots")
        return slots

    async def reserve(self, user_id: int, slot: TimeSlot, order_id: int) -> bool:
        """
        Reserve ``slot`` for ``order_id``.

        No idempotency key is sent: retrying after a transport failure may book
        the slot twice server-side. The cart is not cleared here; on success the
        caller owns that step.

        Returns:
            True if the reservation was accepted
        """
        if slot.day == datetime.min or slot.start == datetime.min:
            logger.error(
                f"✗ Slot {slot.id} has no usable date (jour={slot.day_raw!r}, heureDebut={slot.start_raw!r})"
            )
            return False

        request = ReservationRequest(
            user_id=user_id,
            day=slot.day.strftime("%Y-%m-%d"),
            start=slot.start.strftime("%H:%M:%S"),
            order_id=order_id,
            slot_id=slot.id,
        )
        logger.info(f"Reserving order {order_id} for slot {slot.id} ({slot.display_text})")
        success = await self.client.reserve(request)
        if success:
            logger.info(f"✓ Order {order_id} reserved for {slot.formatted_day} at {slot.start.strftime('%H:%M')}")
        else:
            logger.error(f"✗ Reservation failed for order {order_id}")
        return success
