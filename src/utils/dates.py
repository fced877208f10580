"""
Journey date helpers.

The search endpoint expects ``dd-mm-yyyy`` while booking submissions carry an
ISO ``yyyy-mm-dd`` date. User input arrives in either order with ``-`` or ``/``
separators, as an ISO datetime, or as a ``date``/``datetime`` object.
"""

import re
from datetime import date, datetime
from typing import Optional, Union

from src.api.exceptions import ValidationError

DateInput = Union[str, date, datetime]

SEARCH_DATE_FORMAT = "%d-%m-%Y"
ISO_DATE_FORMAT = "%Y-%m-%d"

_YEAR_FIRST = re.compile(r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})$")
_DAY_FIRST = re.compile(r"^(\d{1,2})[-/](\d{1,2})[-/](\d{4})$")


def parse_journey_date(value: Optional[DateInput]) -> date:
    """
    Parse a journey date in any accepted shape.

    Raises:
        ValidationError: If the value is missing or not a real calendar date
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError("Journey date is required")

    # datetime is a subclass of date, check it first
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"Unsupported journey date type: {type(value).__name__}")

    text = value.strip()
    match = _YEAR_FIRST.match(text)
    if match:
        year, month, day = match.groups()
    else:
        match = _DAY_FIRST.match(text)
        if match:
            day, month, year = match.groups()
        elif "T" in text:
            try:
                return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
            except ValueError:
                raise ValidationError(
                    "Invalid date format. Expected format: dd-MM-yyyy"
                ) from None
        else:
            raise ValidationError("Invalid date format. Expected format: dd-MM-yyyy")

    try:
        return date(int(year), int(month), int(day))
    except ValueError as exc:
        raise ValidationError(f"Invalid journey date '{text}': {exc}") from exc


def to_search_date(value: Optional[DateInput]) -> str:
    """Normalize to the ``dd-mm-yyyy`` form the search endpoint expects."""
    return parse_journey_date(value).strftime(SEARCH_DATE_FORMAT)


def to_iso_date(value: Optional[DateInput]) -> str:
    """Normalize to an ISO ``yyyy-mm-dd`` string."""
    return parse_journey_date(value).strftime(ISO_DATE_FORMAT)


def today_iso() -> str:
    """Current local date as ISO string."""
    return date.today().strftime(ISO_DATE_FORMAT)
