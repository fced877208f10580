"""Database module - session slot persistence backends."""

from .dynamodb_client import DynamoDBSessionSlot
from .memory_slot import InMemorySessionSlot
from .exceptions import (
    SessionStorageError,
    StorageUnavailableError,
    StoragePermissionError,
)

__all__ = [
    "DynamoDBSessionSlot",
    "InMemorySessionSlot",
    "SessionStorageError",
    "StorageUnavailableError",
    "StoragePermissionError",
]
