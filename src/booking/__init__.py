"""Booking module - seat selection workflow and submission checks"""

from .orchestrator import BookingOrchestrator, BookingState
from .validation import build_passengers, validate_booking_data

__all__ = ["BookingOrchestrator", "BookingState", "build_passengers", "validate_booking_data"]
