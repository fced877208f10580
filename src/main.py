"""
Command-line entry point for the bus booking client.

Builds the service graph from Settings and exposes read-only catalog
commands (routes, search, seats) that print JSON.
"""

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from typing import Any, List, Optional

import requests

from src.api.cache import FreshnessCache
from src.api.catalog import CatalogService
from src.api.client import AuthenticatedClient
from src.api.exceptions import BookingClientError, user_message_for
from src.api.tickets import TicketService
from src.auth.auth_service import AuthService
from src.auth.session_store import SessionStore
from src.booking.orchestrator import BookingOrchestrator
from src.config.settings import ConfigurationError, Settings, setup_logging_redaction
from src.database.dynamodb_client import DynamoDBSessionSlot
from src.database.exceptions import SessionStorageError
from src.database.memory_slot import InMemorySessionSlot
from src.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Services:
    """Wired service graph sharing one SessionStore and one client."""

    settings: Settings
    session_store: SessionStore
    client: AuthenticatedClient
    auth: AuthService
    catalog: CatalogService
    tickets: TicketService
    orchestrator: BookingOrchestrator


def build_session_slot(settings: Settings):
    if settings.session_backend == "dynamodb":
        return DynamoDBSessionSlot(
            table_name=settings.session_table_name,
            region_name=settings.aws_region,
        )
    return InMemorySessionSlot()


def build_services(
    settings: Optional[Settings] = None,
    http_session: Optional[requests.Session] = None,
    slot=None,
) -> Services:
    """
    Wire every service from configuration.

    Args:
        settings: Resolved settings (default: Settings.load())
        http_session: requests.Session to share (default: creates new)
        slot: Session slot override (default: chosen by settings.session_backend)
    """
    settings = settings or Settings.load()
    session_store = SessionStore(slot or build_session_slot(settings), key=settings.session_key)
    client = AuthenticatedClient(
        settings.base_url,
        session_store,
        http_session=http_session,
        timeout=settings.request_timeout,
    )
    catalog = CatalogService(
        client,
        seat_cache=FreshnessCache(ttl_seconds=settings.seat_cache_ttl_seconds),
        routes_cache=FreshnessCache(ttl_seconds=settings.routes_cache_ttl_seconds),
        max_workers=settings.seat_fetch_max_workers,
        default_sources=settings.default_sources,
        default_destinations=settings.default_destinations,
    )
    tickets = TicketService(client)
    return Services(
        settings=settings,
        session_store=session_store,
        client=client,
        auth=AuthService(client, session_store),
        catalog=catalog,
        tickets=tickets,
        orchestrator=BookingOrchestrator(catalog, tickets, session_store),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bus-booking", description="Bus booking catalog client")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    routes = commands.add_parser("routes", help="List available sources and destinations")
    routes.add_argument("--refresh", action="store_true", help="Bypass the route cache")

    search = commands.add_parser("search", help="Search buses for a route and date")
    search.add_argument("source")
    search.add_argument("destination")
    search.add_argument("journey_date", help="dd-mm-yyyy or yyyy-mm-dd")

    seats = commands.add_parser("seats", help="Show seat availability for one or more buses")
    seats.add_argument("bus_numbers", nargs="+")

    return parser


def run_command(services: Services, args: argparse.Namespace) -> Any:
    if args.command == "routes":
        return services.catalog.get_available_routes(force_refresh=args.refresh)
    if args.command == "search":
        buses = services.catalog.search_buses(args.source, args.destination, args.journey_date)
        return [bus.to_dict() for bus in buses]
    if args.command == "seats":
        return [s.to_dict() for s in services.catalog.get_multiple_seat_details(args.bus_numbers)]
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
    )
    setup_logging_redaction()

    try:
        services = build_services(Settings.load(config_path=args.config))
        result = run_command(services, args)
    except ConfigurationError as e:
        print(json.dumps({"error": f"Configuration error: {e}"}), file=sys.stderr)
        return 2
    except SessionStorageError as e:
        print(json.dumps({"error": f"Session storage error: {e}"}), file=sys.stderr)
        return 1
    except BookingClientError as e:
        logger.error("Command failed", operation=args.command, error=str(e))
        print(json.dumps({"error": user_message_for(e, e.message)}), file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
