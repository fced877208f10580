"""
Booking submission checks and passenger assembly.

Both functions are pure: they look only at the form passengers and the
selected seats, so a rejected booking never reaches the network.
"""

from typing import Any, List, Mapping, Optional, Sequence

from src.api.exceptions import ValidationError
from src.domain.booking import DEFAULT_PASSENGER_AGE, Gender, Passenger, Seat

MIN_AGE = 1
MAX_AGE = 120
VALID_GENDERS = {g.value for g in Gender}


def seat_number_of(seat: Any) -> str:
    """Seat number of a Seat, a seat dict, or a bare value."""
    if isinstance(seat, Seat):
        return seat.seat_number
    if isinstance(seat, Mapping):
        return str(seat.get("seatNumber") or seat.get("number") or seat.get("id") or "").strip()
    return str(seat if seat is not None else "").strip()


def _parse_age(value: Any, index: int) -> Optional[int]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        age = int(str(value).strip())
    except ValueError:
        raise ValidationError(f"Passenger {index}: Age must be between {MIN_AGE} and {MAX_AGE}") from None
    if age < MIN_AGE or age > MAX_AGE:
        raise ValidationError(f"Passenger {index}: Age must be between {MIN_AGE} and {MAX_AGE}")
    return age


def _parse_gender(value: Any, index: int) -> Optional[Gender]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    gender = str(value).strip().upper()
    if gender not in VALID_GENDERS:
        raise ValidationError(f"Passenger {index}: Invalid gender")
    return Gender(gender)


def validate_booking_data(
    passengers: Optional[Sequence[Optional[Mapping[str, Any]]]],
    selected_seats: Sequence[Any],
) -> None:
    """
    Check a booking before it is assembled.

    Rules:
        - at least one seat is selected
        - explicit form passengers, when given, match the seat count one to one
        - an explicit passenger has a non-blank name, an age within 1..120 if
          given, and a gender of MALE/FEMALE/OTHER if given
        - a ``None`` entry stands for "use the defaults for this seat"

    Raises:
        ValidationError: On the first rule that fails
    """
    if not selected_seats:
        raise ValidationError("At least one seat must be selected")

    if any(not seat_number_of(seat) for seat in selected_seats):
        raise ValidationError("Every selected seat needs a seat number")

    if not passengers:
        return

    if len(passengers) != len(selected_seats):
        raise ValidationError("Number of passengers must match number of selected seats")

    for index, passenger in enumerate(passengers, start=1):
        if passenger is None:
            continue
        if not isinstance(passenger, Mapping):
            raise ValidationError(f"Passenger {index}: Invalid passenger details")
        name = passenger.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValidationError(f"Passenger {index}: Name is required")
        _parse_age(passenger.get("age"), index)
        _parse_gender(passenger.get("gender"), index)


def build_passengers(
    passengers: Optional[Sequence[Optional[Mapping[str, Any]]]],
    selected_seats: Sequence[Any],
    account_phone: str,
) -> List[Passenger]:
    """
    Pair every selected seat with a passenger.

    Seat ``i`` takes form passenger ``i`` when one is given, otherwise a
    generated default ("Passenger N", age 25, MALE, account phone). The seat
    number always comes from the selected seat.
    """
    validate_booking_data(passengers, selected_seats)

    result: List[Passenger] = []
    for index, seat in enumerate(selected_seats, start=1):
        form = passengers[index - 1] if passengers else None
        form = form or {}

        name = (form.get("name") or "").strip() or f"Passenger {index}"
        age = _parse_age(form.get("age"), index) or DEFAULT_PASSENGER_AGE
        gender = _parse_gender(form.get("gender"), index) or Gender.MALE
        phone = str(form.get("phoneNumber") or "").strip() or account_phone

        result.append(
            Passenger(
                name=name,
                seat_number=seat_number_of(seat),
                age=age,
                gender=gender,
                phone_number=phone,
            )
        )
    return result
