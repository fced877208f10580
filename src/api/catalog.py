"""
Catalog Service

Read-only queries for routes, buses and seat maps. Route lists and seat
summaries are kept in freshness caches; batched seat lookups run
concurrently on a thread pool and come back in the caller's order.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from src.api.cache import FreshnessCache
from src.api.client import AuthenticatedClient
from src.api.exceptions import (
    AuthenticationError,
    BookingClientError,
    NotFoundError,
    ServerError,
    ValidationError,
    user_message_for,
)
from src.domain.booking import Bus, Seat, SeatSummary
from src.utils.dates import to_search_date
from src.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_SOURCES = ("Raipur", "Bhilai", "Durg", "Bilaspur", "Jagdalpur")
DEFAULT_DESTINATIONS = ("Puri", "Bhubaneswar", "Cuttack", "Sambalpur", "Rourkela")

ROUTES_PATH = "/routes"
BUSES_PATH = "/buses"
SEARCH_PATH = "/buses/search"
FIND_BY_ROUTE_PATH = "/buses/findBySourceAndDestination"
SEAT_DETAILS_PATH = "/buses/seatDetails/{bus_number}"

SEAT_FETCH_FAILED_MESSAGE = "Failed to fetch seat details"
_ROUTES_KEY = "routes"


def _count(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def decode_seat_payload(bus_number: str, payload: Any) -> SeatSummary:
    """
    Normalize a seat-detail response into a SeatSummary.

    Shapes are tried in a fixed priority order:

    1. ``{"data": ...}`` wrapper, unwrapped once and decoded recursively
    2. bare seat list
    3. ``{"seats": [...]}`` (counts derived from the seat statuses)
    4. flat ``{"availableSeats", "bookedSeats", "totalSeats"?, "seats"?}``
       (backend counts trusted as sent)

    Raises:
        ServerError: If no shape matches
    """
    if isinstance(payload, dict) and payload.get("data") is not None:
        return decode_seat_payload(bus_number, payload["data"])

    if isinstance(payload, list):
        return SeatSummary.from_seats(bus_number, [Seat.from_dict(s) for s in payload if s])

    if isinstance(payload, dict):
        number = str(payload.get("busNumber") or bus_number)

        if isinstance(payload.get("seats"), list):
            seats = [Seat.from_dict(s) for s in payload["seats"] if s]
            return SeatSummary.from_seats(number, seats)

        if "availableSeats" in payload or "bookedSeats" in payload:
            return SeatSummary(
                bus_number=number,
                seats=(),
                total_seats=_count(payload.get("totalSeats")),
                available_seats=_count(payload.get("availableSeats")),
                booked_seats=_count(payload.get("bookedSeats")),
            )

    raise ServerError(f"Invalid seat data format for bus {bus_number}")


class CatalogService:
    """
    Route, bus and seat-map queries against the booking backend.

    Seat summaries are cached per bus number for ``seat_cache.ttl_seconds``.
    Booking a seat does not purge the cache; callers that need a fresh map
    must call ``invalidate_seat_details``.
    """

    def __init__(
        self,
        client: AuthenticatedClient,
        seat_cache: Optional[FreshnessCache] = None,
        routes_cache: Optional[FreshnessCache] = None,
        max_workers: int = 8,
        default_sources: Optional[Iterable[str]] = None,
        default_destinations: Optional[Iterable[str]] = None,
    ):
        """
        Initialize CatalogService.

        Args:
            client: AuthenticatedClient used for every call
            seat_cache: Cache for seat summaries (default: 60 second window)
            routes_cache: Cache for the route catalog (default: 300 second window)
            max_workers: Upper bound on concurrent seat lookups
            default_sources: Fallback sources when the backend has none
            default_destinations: Fallback destinations when the backend has none
        """
        self.client = client
        self.seat_cache = seat_cache or FreshnessCache(ttl_seconds=60)
        self.routes_cache = routes_cache or FreshnessCache(ttl_seconds=300)
        self.max_workers = max(1, max_workers)
        self.default_sources = list(default_sources or DEFAULT_SOURCES)
        self.default_destinations = list(default_destinations or DEFAULT_DESTINATIONS)

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    def _default_routes(self) -> Dict[str, List[str]]:
        return {
            "sources": sorted(set(self.default_sources)),
            "destinations": sorted(set(self.default_destinations)),
        }

    def get_available_routes(self, force_refresh: bool = False) -> Dict[str, List[str]]:
        """
        Return ``{"sources": [...], "destinations": [...]}``, deduplicated and sorted.

        Falls back to the default route set when the backend returns an empty
        list or cannot be reached. Authentication failures propagate.
        """
        if not force_refresh:
            cached = self.routes_cache.get_fresh(_ROUTES_KEY)
            if cached is not None:
                return cached

        try:
            data = self.client.get(ROUTES_PATH).unwrap()
        except AuthenticationError:
            raise
        except BookingClientError as e:
            logger.warning(
                "Route lookup failed; using default routes",
                operation="get_available_routes",
                error=str(e),
            )
            return self._default_routes()

        sources: List[str] = []
        destinations: List[str] = []
        if isinstance(data, dict):
            sources = [s.strip() for s in data.get("sources") or [] if isinstance(s, str) and s.strip()]
            destinations = [
                d.strip() for d in data.get("destinations") or [] if isinstance(d, str) and d.strip()
            ]

        if not sources or not destinations:
            logger.warning("No routes found in the system, using default routes", operation="get_available_routes")
            return self._default_routes()

        routes = {"sources": sorted(set(sources)), "destinations": sorted(set(destinations))}
        self.routes_cache.put(_ROUTES_KEY, routes)
        logger.info(
            "Routes loaded",
            operation="get_available_routes",
            context={"sources": len(routes["sources"]), "destinations": len(routes["destinations"])},
        )
        return routes

    # ------------------------------------------------------------------
    # Buses
    # ------------------------------------------------------------------

    def search_buses(self, source: str, destination: str, journey_date: Any) -> List[Bus]:
        """
        Search buses for a route and day.

        Args:
            source: Departure city
            destination: Arrival city
            journey_date: Any accepted date shape, sent as dd-mm-yyyy

        Raises:
            ValidationError: Missing route or unparseable date (no call is made)
        """
        source = (source or "").strip()
        destination = (destination or "").strip()
        if not source or not destination:
            raise ValidationError("Source and destination are required")

        body = {"source": source, "destination": destination, "journeyDate": to_search_date(journey_date)}

        start_time = time.time()
        try:
            data = self.client.post(SEARCH_PATH, json=body).unwrap()
        except NotFoundError:
            logger.info("No buses found", operation="search_buses", context=body)
            return []

        if not isinstance(data, list):
            data = []
        buses = [Bus.from_dict(item) for item in data if isinstance(item, dict)]
        logger.info(
            f"Found {len(buses)} buses",
            operation="search_buses",
            context=body,
            duration_ms=(time.time() - start_time) * 1000,
        )
        return buses

    def list_buses(self) -> List[Bus]:
        """Every bus known to the backend."""
        response = self.client.get(
            BUSES_PATH,
            headers={"Cache-Control": "no-cache", "Pragma": "no-cache"},
        )
        data = response.unwrap()
        if not isinstance(data, list):
            raise ServerError("Invalid response from server: No data received", status_code=response.status_code)
        return [Bus.from_dict(item) for item in data if isinstance(item, dict)]

    def find_buses_by_route(self, source: str, destination: str) -> List[Bus]:
        source = (source or "").strip()
        destination = (destination or "").strip()
        if not source or not destination:
            logger.warning("Source and destination must be non-empty strings", operation="find_buses_by_route")
            return []

        try:
            data = self.client.get(
                FIND_BY_ROUTE_PATH, params={"source": source, "destination": destination}
            ).unwrap()
        except NotFoundError:
            logger.info(
                "No buses found for the given source and destination",
                operation="find_buses_by_route",
                context={"source": source, "destination": destination},
            )
            return []

        if not isinstance(data, list):
            return []
        return [Bus.from_dict(item) for item in data if isinstance(item, dict)]

    def get_available_dates(self, source: str, destination: str) -> List[str]:
        """
        Distinct ISO dates (UTC) on which a bus departs for the given route.

        Route matching is case-insensitive.
        """
        if not source or not destination:
            return []

        try:
            buses = self.list_buses()
        except AuthenticationError:
            raise
        except BookingClientError as e:
            logger.error("Error getting available dates", operation="get_available_dates", error=str(e))
            return []

        dates = set()
        for bus in buses:
            if bus.source.lower() != source.lower() or bus.destination.lower() != destination.lower():
                continue
            if not bus.departure_time:
                continue
            try:
                departure = datetime.fromisoformat(str(bus.departure_time).replace("Z", "+00:00"))
            except ValueError:
                logger.warning(
                    "Skipping unparseable departure time",
                    operation="get_available_dates",
                    context={"bus_number": bus.bus_number, "departure_time": bus.departure_time},
                )
                continue
            if departure.tzinfo is not None:
                departure = departure.astimezone(timezone.utc)
            dates.add(departure.date().isoformat())

        return sorted(dates)

    # ------------------------------------------------------------------
    # Seats
    # ------------------------------------------------------------------

    def get_seat_details(self, bus_number: str) -> SeatSummary:
        """Seat summary for one bus (served from cache while fresh)."""
        return self.get_multiple_seat_details([bus_number])[0]

    def get_multiple_seat_details(self, bus_numbers: Sequence[str]) -> List[SeatSummary]:
        """
        Seat summaries for several buses, in the order requested.

        Bus numbers with a fresh cache entry are served from the cache; the
        rest are fetched concurrently, once per distinct number. A failed
        lookup yields ``SeatSummary.failed`` for that bus only and is not cached.
        """
        if not bus_numbers:
            return []

        requested = [str(number or "").strip() for number in bus_numbers]
        results: Dict[str, SeatSummary] = {}
        pending: List[str] = []

        for number in requested:
            if number in results or number in pending:
                continue
            if not number:
                results[number] = SeatSummary.failed(number, "Bus number is required")
                continue
            cached = self.seat_cache.get_fresh(number)
            if cached is not None:
                results[number] = cached
            else:
                pending.append(number)

        if pending:
            start_time = time.time()
            workers = min(self.max_workers, len(pending))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="seat-fetch") as executor:
                fetched = list(executor.map(self._fetch_seat_summary, pending))

            for number, summary in zip(pending, fetched):
                if summary.ok:
                    self.seat_cache.put(number, summary)
                results[number] = summary

            logger.info(
                "Seat details fetched",
                operation="get_multiple_seat_details",
                context={
                    "requested": len(requested),
                    "fetched": len(pending),
                    "failed": sum(1 for s in fetched if not s.ok),
                },
                duration_ms=(time.time() - start_time) * 1000,
            )

        return [results[number] for number in requested]

    def _fetch_seat_summary(self, bus_number: str) -> SeatSummary:
        try:
            response = self.client.get(SEAT_DETAILS_PATH.format(bus_number=bus_number))
            return decode_seat_payload(bus_number, response.payload)
        except BookingClientError as e:
            logger.warning(
                "Seat detail lookup failed",
                operation="get_seat_details",
                context={"bus_number": bus_number, "status": e.status_code},
                error=str(e),
            )
            return SeatSummary.failed(bus_number, user_message_for(e, SEAT_FETCH_FAILED_MESSAGE))

    def invalidate_seat_details(self, bus_number: Optional[str] = None) -> None:
        """Drop the cached summary for one bus, or for every bus."""
        if bus_number is None:
            self.seat_cache.clear()
        else:
            self.seat_cache.invalidate(str(bus_number).strip())
