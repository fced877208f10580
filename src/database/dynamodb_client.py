"""
DynamoDB-backed session slot.

Persists the serialized session record under a single key so that several
processes (or a restarted one) share the same signed-in state.

Table Schema:
    Partition Key: id (the slot key, "user" by default)
    Attribute: payload (JSON string of the session record)
"""

import time
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from src.utils.logger import get_logger
from .exceptions import (
    SessionStorageError,
    StoragePermissionError,
    StorageUnavailableError,
)

logger = get_logger(__name__)


class DynamoDBSessionSlot:
    """
    Keyed session slot stored in a DynamoDB table.

    Last write wins; there is no conditional-write protection against
    concurrent writers.
    """

    def __init__(
        self,
        table_name: str = "session",
        dynamodb_resource: Optional[Any] = None,
        region_name: str = "ap-northeast-2",
        max_retries: int = 3,
    ):
        """
        Initialize DynamoDBSessionSlot.

        Args:
            table_name: DynamoDB table name (default: "session")
            dynamodb_resource: boto3 DynamoDB resource (default: creates new)
            region_name: AWS region used when creating the resource
            max_retries: Attempts for throttled writes
        """
        self.table_name = table_name
        self.dynamodb = dynamodb_resource or boto3.resource("dynamodb", region_name=region_name)
        self.table = self.dynamodb.Table(table_name)
        self.max_retries = max_retries

    def read(self, key: str) -> Optional[str]:
        """
        Return the stored payload for ``key``, or None if absent.

        Raises:
            StoragePermissionError: If IAM permissions are insufficient
            StorageUnavailableError: If DynamoDB cannot be reached
            SessionStorageError: For any other DynamoDB error
        """
        context = {"table": self.table_name, "key": key}
        try:
            start_time = time.time()
            response = self.table.get_item(Key={"id": key})
            duration_ms = (time.time() - start_time) * 1000
        except (ClientError, BotoCoreError, OSError) as e:
            raise self._translate(e, "read_session", context) from e

        item = response.get("Item")
        if item is None:
            logger.debug("Session slot empty", operation="read_session", context=context)
            return None

        logger.info(
            "Session retrieved",
            operation="read_session",
            context=context,
            duration_ms=duration_ms,
        )
        payload = item.get("payload")
        return payload if isinstance(payload, str) else None

    def write(self, key: str, value: str) -> None:
        """
        Overwrite the payload stored under ``key`` (put_item upsert).

        Throttled writes are retried with exponential backoff.
        """
        context = {"table": self.table_name, "key": key, "payload_length": len(value)}

        for attempt in range(self.max_retries):
            try:
                self.table.put_item(Item={"id": key, "payload": value})
                logger.info("Session saved", operation="write_session", context=context)
                return
            except ClientError as e:
                code = e.response.get("Error", {}).get("Code", "Unknown")
                if (
                    code == "ProvisionedThroughputExceededException"
                    and attempt < self.max_retries - 1
                ):
                    wait_time = 0.5 * (2**attempt)
                    logger.warning(
                        f"Throttled, retrying after {wait_time}s",
                        operation="write_session",
                        context=context,
                        error=code,
                    )
                    time.sleep(wait_time)
                    continue
                raise self._translate(e, "write_session", context) from e
            except (BotoCoreError, OSError) as e:
                raise self._translate(e, "write_session", context) from e

    def delete(self, key: str) -> None:
        """Remove the payload under ``key``. Deleting a missing key is not an error."""
        context = {"table": self.table_name, "key": key}
        try:
            self.table.delete_item(Key={"id": key})
        except (ClientError, BotoCoreError, OSError) as e:
            raise self._translate(e, "delete_session", context) from e
        logger.info("Session deleted", operation="delete_session", context=context)

    def _translate(self, exc: Exception, operation: str, context: dict) -> SessionStorageError:
        """Map a boto error to the storage exception hierarchy and log it."""
        if isinstance(exc, ClientError):
            code = exc.response.get("Error", {}).get("Code", "Unknown")
            if code in ("AccessDeniedException", "UnauthorizedOperation"):
                logger.error("Permission denied", operation=operation, context=context, error=code)
                return StoragePermissionError(f"Insufficient IAM permissions: {code}")
            logger.error("DynamoDB error", operation=operation, context=context, error=str(exc))
            return SessionStorageError(f"DynamoDB error: {exc}")

        logger.error("Network error", operation=operation, context=context, error=str(exc))
        return StorageUnavailableError(f"Network error: {exc}")
