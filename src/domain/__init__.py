"""Domain models - core booking and session entities."""

from .booking import (
    Bus,
    Seat,
    SeatStatus,
    SeatSummary,
    Gender,
    Passenger,
    BookingRequest,
    BookingConfirmation,
)
from .session import Session, UserIdentity, BasicToken, BearerPair, NoCredential

__all__ = [
    "Bus",
    "Seat",
    "SeatStatus",
    "SeatSummary",
    "Gender",
    "Passenger",
    "BookingRequest",
    "BookingConfirmation",
    "Session",
    "UserIdentity",
    "BasicToken",
    "BearerPair",
    "NoCredential",
]
