"""
Booking Orchestrator

Owns the seat-selection workflow for one user: routes, bus search, bus and
seat selection, and the final ticket submission. Selection is optimistic
client state; nothing holds a seat on the server until the ticket exists.
"""

import threading
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from src.api.catalog import CatalogService
from src.api.exceptions import (
    BookingClientError,
    BookingSubmissionError,
    ValidationError,
    user_message_for,
)
from src.api.tickets import TicketService
from src.auth.session_store import SessionStore
from src.booking.validation import build_passengers, seat_number_of
from src.domain.booking import Bus, BookingConfirmation, BookingRequest, Seat, SeatSummary
from src.utils.dates import to_iso_date, today_iso
from src.utils.logger import get_logger, log_operation, mask_phone

logger = get_logger(__name__)

MISSING_PHONE_MESSAGE = "User phone number not found. Please log in again."
SUBMISSION_IN_PROGRESS_MESSAGE = "A booking is already being submitted"


class BookingState(Enum):
    """Workflow position of a BookingOrchestrator."""

    IDLE = "idle"
    ROUTES_LOADED = "routes_loaded"
    BUSES_LISTED = "buses_listed"
    BUS_SELECTED = "bus_selected"
    SEATS_LOADED = "seats_loaded"
    SEATS_SELECTED = "seats_selected"
    SUBMITTING = "submitting"


class BookingOrchestrator:
    """
    Seat-selection state plus booking submission.

    A successful booking stores its confirmation and clears the selected
    seats and bus. A failed one leaves the selection untouched so the user
    can retry, and raises BookingSubmissionError carrying the user-facing
    message.
    """

    def __init__(
        self,
        catalog: CatalogService,
        tickets: TicketService,
        session_store: SessionStore,
    ):
        self.catalog = catalog
        self.tickets = tickets
        self.session_store = session_store

        self.state = BookingState.IDLE
        self.routes: Dict[str, List[str]] = {"sources": [], "destinations": []}
        self.available_buses: List[Bus] = []
        self.selected_bus: Optional[Bus] = None
        self.seat_details: Optional[SeatSummary] = None
        self._selected: Dict[str, Seat] = {}
        self.booking_details: Optional[BookingConfirmation] = None
        self.last_error: Optional[str] = None
        self.last_search_date: Optional[str] = None

        self._submit_lock = threading.Lock()

    @property
    def selected_seats(self) -> List[Seat]:
        """Selected seats in selection order."""
        return list(self._selected.values())

    def is_selected(self, seat: Any) -> bool:
        return seat_number_of(seat) in self._selected

    # ------------------------------------------------------------------
    # Catalog steps
    # ------------------------------------------------------------------

    def load_routes(self, force_refresh: bool = False) -> Dict[str, List[str]]:
        self.routes = self.catalog.get_available_routes(force_refresh=force_refresh)
        self.state = BookingState.ROUTES_LOADED
        return self.routes

    def search_buses(self, source: str, destination: str, journey_date: Any) -> List[Bus]:
        """
        Search and list buses. A new search drops the previous bus and seat selection.

        Raises:
            ValidationError: Bad route or date (state unchanged)
        """
        try:
            buses = self.catalog.search_buses(source, destination, journey_date)
        except BookingClientError as e:
            self.last_error = user_message_for(e, "Failed to search for buses")
            raise

        self.available_buses = buses
        self.last_search_date = to_iso_date(journey_date)
        self.selected_bus = None
        self.seat_details = None
        self._selected.clear()
        self.last_error = None
        self.state = BookingState.BUSES_LISTED
        return buses

    def select_bus(self, bus: Any) -> Bus:
        """Make ``bus`` (a Bus, bus dict, or bus number) the active bus."""
        if isinstance(bus, Bus):
            selected = bus
        elif isinstance(bus, Mapping):
            selected = Bus.from_dict(dict(bus))
        else:
            number = str(bus or "").strip()
            selected = next((b for b in self.available_buses if b.bus_number == number), None)
            if selected is None:
                selected = Bus(bus_number=number)

        if not selected.bus_number:
            raise ValidationError("Bus number is required")

        self.selected_bus = selected
        self.seat_details = None
        self._selected.clear()
        self.state = BookingState.BUS_SELECTED
        return selected

    def load_seat_details(self, bus_number: Optional[str] = None) -> SeatSummary:
        """
        Fetch the seat map of ``bus_number`` (default: the selected bus).

        Loading a seat map resets the seat selection. A failed lookup is
        returned as a summary with ``error`` set and recorded in ``last_error``.
        """
        number = bus_number or (self.selected_bus.bus_number if self.selected_bus else None)
        if not number:
            raise ValidationError("Bus number is required")

        if self.selected_bus is None or self.selected_bus.bus_number != number:
            self.select_bus(number)

        summary = self.catalog.get_seat_details(number)
        self._selected.clear()
        if not summary.ok:
            self.last_error = summary.error
            self.seat_details = None
            return summary

        self.seat_details = summary
        self.last_error = None
        self.state = BookingState.SEATS_LOADED
        return summary

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def toggle_seat_selection(self, seat: Any) -> bool:
        """
        Add ``seat`` to the selection, or remove it if already selected.

        Returns:
            True if the seat is selected after the call
        """
        number = seat_number_of(seat)
        if not number:
            raise ValidationError("Seat number is required")

        if number in self._selected:
            del self._selected[number]
            selected = False
        else:
            self._selected[number] = seat if isinstance(seat, Seat) else Seat.from_dict(seat)
            selected = True

        if self._selected:
            self.state = BookingState.SEATS_SELECTED
        elif self.state is BookingState.SEATS_SELECTED:
            self.state = BookingState.SEATS_LOADED if self.seat_details else BookingState.BUS_SELECTED
        return selected

    def clear_selections(self) -> None:
        """Reset selected seats, bus and seat map regardless of booking outcome."""
        self._selected.clear()
        self.selected_bus = None
        self.seat_details = None
        self.state = BookingState.BUSES_LISTED if self.available_buses else BookingState.IDLE

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def _account_phone(self) -> str:
        session = self.session_store.current
        phone = session.user.phone_number if session else None
        if not phone:
            raise ValidationError(MISSING_PHONE_MESSAGE)
        return phone

    def build_booking_request(self, form_data: Optional[Mapping[str, Any]] = None) -> BookingRequest:
        """
        Assemble the ticket request from the selection and form data.

        Raises:
            ValidationError: Missing phone, bad passengers or seats, no bus
        """
        form = dict(form_data or {})
        phone = self._account_phone()
        seats = self.selected_seats
        passengers = build_passengers(form.get("passengers"), seats, phone)

        bus_number = self.selected_bus.bus_number if self.selected_bus else ""
        bus_number = bus_number or str(form.get("busNumber") or "").strip()
        if not bus_number:
            raise ValidationError("Bus number is required")

        if form.get("journeyDate"):
            journey_date = to_iso_date(form["journeyDate"])
        else:
            journey_date = self.last_search_date or today_iso()

        source = form.get("source") or (self.selected_bus.source if self.selected_bus else "")
        destination = form.get("destination") or (
            self.selected_bus.destination if self.selected_bus else ""
        )

        return BookingRequest(
            profile_user_phone=phone,
            bus_number=bus_number,
            journey_date=journey_date,
            source=str(source).strip(),
            destination=str(destination).strip(),
            passengers=tuple(passengers),
        )

    @log_operation("book_selected_seats")
    def book_selected_seats(self, form_data: Optional[Mapping[str, Any]] = None) -> BookingConfirmation:
        """
        Validate, assemble and submit the booking for the selected seats.

        Raises:
            ValidationError: Rejected before any network call
            BookingSubmissionError: The ticket call failed; ``message`` is user-facing
        """
        if not self._submit_lock.acquire(blocking=False):
            raise ValidationError(SUBMISSION_IN_PROGRESS_MESSAGE)

        try:
            try:
                request = self.build_booking_request(form_data)
            except ValidationError as e:
                self.last_error = e.message
                raise

            previous_state = self.state
            self.state = BookingState.SUBMITTING
            logger.info(
                "Submitting booking",
                operation="book_selected_seats",
                context={
                    "bus_number": request.bus_number,
                    "seats": request.seat_numbers,
                    "phone_masked": mask_phone(request.profile_user_phone),
                },
            )

            try:
                confirmation = self.tickets.create_ticket(request)
            except BookingClientError as e:
                message = user_message_for(e)
                self.last_error = message
                self.state = BookingState.SEATS_SELECTED if self._selected else previous_state
                logger.error(
                    "Booking failed",
                    operation="book_selected_seats",
                    context={"bus_number": request.bus_number, "status": e.status_code},
                    error=str(e),
                )
                raise BookingSubmissionError(message, status_code=e.status_code, cause=e) from e

            self.booking_details = confirmation
            self.last_error = None
            self._selected.clear()
            self.selected_bus = None
            self.state = BookingState.IDLE
            logger.info(
                "Booking confirmed",
                operation="book_selected_seats",
                context={"booking_id": confirmation.booking_id},
            )
            return confirmation
        finally:
            self._submit_lock.release()

    def fetch_my_bookings(self) -> List[Dict[str, Any]]:
        """Bookings made with the signed-in user's phone number."""
        return self.tickets.get_user_bookings(self._account_phone())

    def clear_error(self) -> None:
        self.last_error = None
