"""
Booking domain models.

Buses and seats as returned by the catalog endpoints, passengers built from
form input, and the immutable booking request sent to the ticket endpoint.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

DEFAULT_TOTAL_SEATS = 40
DEFAULT_PASSENGER_AGE = 25


class SeatStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    BOOKED = "BOOKED"
    PAYMENT_DONE = "PAYMENT_DONE"
    PAYMENT_PENDING = "PAYMENT_PENDING"
    PAID = "PAID"
    UNKNOWN = "UNKNOWN"


BOOKED_STATUSES = frozenset(
    {SeatStatus.BOOKED, SeatStatus.PAYMENT_DONE, SeatStatus.PAYMENT_PENDING, SeatStatus.PAID}
)


class Gender(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class Bus:
    """
    Bus listing with derived seat availability.

    ``available_seats`` is the backend value when it sends one, otherwise
    ``total_seats - booked_seats`` with ``total_seats`` defaulting to 40.
    """

    bus_number: str
    source: str = ""
    destination: str = ""
    departure_time: Optional[str] = None
    total_seats: int = DEFAULT_TOTAL_SEATS
    booked_seats: int = 0
    available_seats: int = DEFAULT_TOTAL_SEATS
    extra_fields: Dict[str, Any] = field(default_factory=dict, compare=False)

    _CORE_FIELDS = frozenset(
        {
            "busNumber",
            "source",
            "destination",
            "departureTime",
            "totalSeats",
            "bookedSeats",
            "availableSeats",
        }
    )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bus":
        total = _as_int(data.get("totalSeats"))
        if not total:
            total = DEFAULT_TOTAL_SEATS
        booked = _as_int(data.get("bookedSeats")) or 0

        available = data.get("availableSeats")
        if isinstance(available, (int, float)) and not isinstance(available, bool):
            available = int(available)
        else:
            available = total - booked

        return cls(
            bus_number=str(data.get("busNumber") or ""),
            source=data.get("source") or "",
            destination=data.get("destination") or "",
            departure_time=data.get("departureTime"),
            total_seats=total,
            booked_seats=booked,
            available_seats=available,
            extra_fields={k: v for k, v in data.items() if k not in cls._CORE_FIELDS},
        )

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra_fields)
        data.update(
            {
                "busNumber": self.bus_number,
                "source": self.source,
                "destination": self.destination,
                "departureTime": self.departure_time,
                "totalSeats": self.total_seats,
                "bookedSeats": self.booked_seats,
                "availableSeats": self.available_seats,
            }
        )
        return data

    def has_available_seats(self) -> bool:
        return self.available_seats > 0

    def available_seats_percentage(self) -> int:
        if self.total_seats <= 0:
            return 0
        return round(self.available_seats / self.total_seats * 100)

    def route_description(self) -> str:
        return f"{self.source} → {self.destination}"


@dataclass(frozen=True)
class Seat:
    """
    A seat on a bus. ``status`` is kept upper-cased as sent by the backend.

    A record without a status decodes as UNKNOWN, which counts as neither
    available nor booked.
    """

    seat_number: str
    status: str = SeatStatus.AVAILABLE.value

    @classmethod
    def from_dict(cls, data: Any) -> "Seat":
        if isinstance(data, Seat):
            return data
        if not isinstance(data, dict):
            return cls(seat_number=str(data).strip(), status=SeatStatus.UNKNOWN.value)
        number = data.get("seatNumber", data.get("number", data.get("id", "")))
        status = str(data.get("status") or SeatStatus.UNKNOWN.value).upper()
        return cls(seat_number=str(number).strip(), status=status)

    @property
    def is_available(self) -> bool:
        return self.status == SeatStatus.AVAILABLE.value

    @property
    def is_booked(self) -> bool:
        return self.status in {s.value for s in BOOKED_STATUSES}

    def to_dict(self) -> Dict[str, Any]:
        return {"seatNumber": self.seat_number, "status": self.status}


@dataclass(frozen=True)
class SeatSummary:
    """
    Seat map of one bus with availability counts.

    A failed lookup yields a zeroed summary with ``error`` set instead of
    raising, so one bad bus never fails a batched fetch.
    """

    bus_number: str
    seats: Tuple[Seat, ...] = ()
    total_seats: int = 0
    available_seats: int = 0
    booked_seats: int = 0
    error: Optional[str] = None

    @classmethod
    def from_seats(cls, bus_number: str, seats: List[Seat]) -> "SeatSummary":
        return cls(
            bus_number=bus_number,
            seats=tuple(seats),
            total_seats=len(seats),
            available_seats=sum(1 for seat in seats if seat.is_available),
            booked_seats=sum(1 for seat in seats if seat.is_booked),
        )

    @classmethod
    def failed(cls, bus_number: str, message: str) -> "SeatSummary":
        return cls(bus_number=bus_number, error=message)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "busNumber": self.bus_number,
            "seats": [seat.to_dict() for seat in self.seats],
            "totalSeats": self.total_seats,
            "availableSeats": self.available_seats,
            "bookedSeats": self.booked_seats,
        }
        if self.error:
            data["error"] = {"message": self.error}
        return data


@dataclass(frozen=True)
class Passenger:
    name: str
    seat_number: str
    age: int = DEFAULT_PASSENGER_AGE
    gender: Gender = Gender.MALE
    phone_number: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "age": self.age,
            "gender": self.gender.value,
            "phoneNumber": self.phone_number,
            "seatNumber": self.seat_number,
        }


@dataclass(frozen=True)
class BookingRequest:
    """
    Ticket submission payload.

    Built once at submission time and never mutated afterwards.
    """

    profile_user_phone: str
    bus_number: str
    journey_date: str
    source: str
    destination: str
    passengers: Tuple[Passenger, ...]

    def __post_init__(self):
        if not self.passengers:
            raise ValueError("BookingRequest requires at least one passenger")

    @property
    def seat_numbers(self) -> List[str]:
        return [p.seat_number for p in self.passengers]

    def to_payload(self) -> Dict[str, Any]:
        return {
            "profileUserPhone": self.profile_user_phone,
            "busNumber": self.bus_number,
            "journeyDate": self.journey_date,
            "source": self.source,
            "destination": self.destination,
            "passengers": [p.to_dict() for p in self.passengers],
        }


@dataclass(frozen=True)
class BookingConfirmation:
    """Result of a successful ticket submission."""

    booking_id: str
    payload: Dict[str, Any] = field(default_factory=dict)

    # First present wins
    ID_FIELDS = ("bookingId", "id", "ticketId")

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> Optional["BookingConfirmation"]:
        for id_field in cls.ID_FIELDS:
            value = payload.get(id_field)
            if value not in (None, ""):
                return cls(booking_id=str(value), payload=dict(payload))
        return None
