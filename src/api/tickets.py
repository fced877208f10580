"""
Ticket Service

Ticket creation and the signed-in user's booking history.
"""

import re
from typing import Any, Dict, List

from src.api.client import AuthenticatedClient
from src.api.exceptions import NotFoundError, ServerError, ValidationError
from src.domain.booking import BookingConfirmation, BookingRequest
from src.utils.logger import get_logger, mask_phone

logger = get_logger(__name__)

TICKETS_PATH = "/tickets"
MY_BOOKINGS_PATH = "/tickets/my-bookings"

# Searched in order when a booking record lacks ``fare``
FARE_FIELDS = ("fare", "amount", "totalFare", "totalAmount", "price", "ticketPrice", "bookingAmount")


def normalize_phone(phone: str) -> str:
    """Keep digits and ``+`` only."""
    return re.sub(r"[^\d+]", "", phone or "")


def _mirror_fares(booking: Dict[str, Any]) -> Dict[str, Any]:
    booking = dict(booking)
    if not booking.get("fare"):
        for name in FARE_FIELDS:
            if booking.get(name) is not None:
                booking["fare"] = booking[name]
                break
    if not booking.get("totalFare") and booking.get("fare"):
        booking["totalFare"] = booking["fare"]
    elif not booking.get("fare") and booking.get("totalFare"):
        booking["fare"] = booking["totalFare"]
    return booking


def _as_list(data: Any) -> List[Dict[str, Any]]:
    if data is None:
        return []
    if isinstance(data, list):
        return [item for item in data if isinstance(item, dict)]
    if isinstance(data, dict):
        return [data]
    return []


class TicketService:
    """Ticket endpoints of the booking backend."""

    def __init__(self, client: AuthenticatedClient):
        self.client = client

    def create_ticket(self, request: BookingRequest) -> BookingConfirmation:
        """
        Submit a booking.

        Returns:
            BookingConfirmation carrying the first present of bookingId, id, ticketId

        Raises:
            ServerError: Success response without any identifier
            BookingClientError: Any transport or status failure from the client
        """
        context = {
            "bus_number": request.bus_number,
            "seats": request.seat_numbers,
            "phone_masked": mask_phone(request.profile_user_phone),
        }
        response = self.client.post(TICKETS_PATH, json=request.to_payload())

        data = response.unwrap()
        confirmation = BookingConfirmation.from_payload(data) if isinstance(data, dict) else None
        if confirmation is None:
            logger.error("Ticket response carried no identifier", operation="create_ticket", context=context)
            raise ServerError("Malformed booking confirmation", status_code=response.status_code)

        logger.info(
            "Ticket created",
            operation="create_ticket",
            context={**context, "booking_id": confirmation.booking_id},
        )
        return confirmation

    def get_user_bookings(self, phone_number: str) -> List[Dict[str, Any]]:
        """Bookings made with ``phone_number``. No bookings (404) yields []."""
        if not phone_number:
            raise ValidationError("Phone number is required")

        try:
            response = self.client.get(MY_BOOKINGS_PATH, params={"phoneNumber": normalize_phone(phone_number)})
        except NotFoundError:
            return []

        bookings = [_mirror_fares(b) for b in _as_list(response.unwrap())]
        logger.info(
            f"Fetched {len(bookings)} bookings",
            operation="get_user_bookings",
            context={"phone_masked": mask_phone(phone_number)},
        )
        return bookings

    def cancel_booking(self, booking_id: Any) -> Dict[str, Any]:
        """
        Cancel a booking by id (non-digits are stripped).

        Raises:
            ValidationError: Missing or non-numeric id
        """
        if booking_id in (None, ""):
            raise ValidationError("Booking ID is required")
        clean_id = re.sub(r"\D", "", str(booking_id))
        if not clean_id:
            raise ValidationError("Invalid booking ID after cleaning")

        response = self.client.delete(f"{TICKETS_PATH}/{clean_id}")
        logger.info("Booking cancelled", operation="cancel_booking", context={"booking_id": clean_id})
        if not response.payload:
            return {"success": True, "message": "Booking cancelled successfully"}
        return response.payload

    def get_ticket(self, ticket_id: Any) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: Unknown ticket
        """
        try:
            return self.client.get(f"{TICKETS_PATH}/{ticket_id}").unwrap()
        except NotFoundError as e:
            raise NotFoundError("Ticket not found", status_code=404, payload=e.payload) from e

    def get_tickets_by_bus_number(self, bus_number: str) -> List[Dict[str, Any]]:
        try:
            response = self.client.get(f"{TICKETS_PATH}/bus/{bus_number}")
        except NotFoundError:
            return []
        return _as_list(response.unwrap())
