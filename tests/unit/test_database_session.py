"""
Unit tests for DynamoDBSessionSlot.

Uses moto to mock DynamoDB for isolated testing without AWS credentials.
"""

import json
from unittest.mock import patch

import boto3
import pytest
from botocore.exceptions import ClientError, EndpointConnectionError
from moto import mock_aws

from src.auth.session_store import SessionStore
from src.database.dynamodb_client import DynamoDBSessionSlot
from src.database.exceptions import (
    SessionStorageError,
    StoragePermissionError,
    StorageUnavailableError,
)


@pytest.fixture
def dynamodb_slot(aws_credentials):
    """Create DynamoDBSessionSlot with a mocked session table."""
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="ap-northeast-2")
        dynamodb.create_table(
            TableName="session",
            KeySchema=[
                {"AttributeName": "id", "KeyType": "HASH"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "id", "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )

        yield DynamoDBSessionSlot(dynamodb_resource=dynamodb)


def _client_error(code, operation="PutItem"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class TestDynamoDBSessionSlotRead:
    def test_read_missing_returns_none(self, dynamodb_slot):
        assert dynamodb_slot.read("user") is None

    def test_read_existing_payload(self, dynamodb_slot):
        # Arrange
        dynamodb_slot.table.put_item(Item={"id": "user", "payload": '{"a": 1}'})

        # Act
        result = dynamodb_slot.read("user")

        # Assert
        assert result == '{"a": 1}'

    def test_read_permission_denied(self, dynamodb_slot):
        with patch.object(dynamodb_slot.table, "get_item", side_effect=_client_error("AccessDeniedException", "GetItem")):
            with pytest.raises(StoragePermissionError):
                dynamodb_slot.read("user")

    def test_read_network_failure(self, dynamodb_slot):
        error = EndpointConnectionError(endpoint_url="https://dynamodb.ap-northeast-2.amazonaws.com")
        with patch.object(dynamodb_slot.table, "get_item", side_effect=error):
            with pytest.raises(StorageUnavailableError):
                dynamodb_slot.read("user")


class TestDynamoDBSessionSlotWrite:
    def test_write_overwrites_existing(self, dynamodb_slot):
        dynamodb_slot.write("user", "first")
        dynamodb_slot.write("user", "second")

        stored = dynamodb_slot.table.get_item(Key={"id": "user"})
        assert stored["Item"]["payload"] == "second"

    def test_write_retries_throttling(self, dynamodb_slot):
        """Throttled writes back off and succeed on a later attempt."""
        real_put = dynamodb_slot.table.put_item
        attempts = {"count": 0}

        def flaky_put(**kwargs):
            attempts["count"] += 1
            if attempts["count"] == 1:
                raise _client_error("ProvisionedThroughputExceededException")
            return real_put(**kwargs)

        with patch.object(dynamodb_slot.table, "put_item", side_effect=flaky_put), patch(
            "src.database.dynamodb_client.time.sleep"
        ) as sleep:
            dynamodb_slot.write("user", "payload")

        assert attempts["count"] == 2
        sleep.assert_called_once_with(0.5)
        assert dynamodb_slot.read("user") == "payload"

    def test_write_generic_client_error(self, dynamodb_slot):
        with patch.object(dynamodb_slot.table, "put_item", side_effect=_client_error("ValidationException")):
            with pytest.raises(SessionStorageError):
                dynamodb_slot.write("user", "payload")


class TestDynamoDBSessionSlotDelete:
    def test_delete_removes_item(self, dynamodb_slot):
        dynamodb_slot.write("user", "payload")

        dynamodb_slot.delete("user")

        assert dynamodb_slot.read("user") is None

    def test_delete_missing_is_noop(self, dynamodb_slot):
        dynamodb_slot.delete("user")


class TestSessionStoreOnDynamoDB:
    def test_session_round_trip(self, dynamodb_slot, bearer_session):
        SessionStore(dynamodb_slot).save(bearer_session)

        assert SessionStore(dynamodb_slot).load() == bearer_session

    def test_malformed_record_is_deleted(self, dynamodb_slot):
        dynamodb_slot.write("user", json.dumps({"user": {"id": "1"}}))

        assert SessionStore(dynamodb_slot).load() is None
        assert dynamodb_slot.read("user") is None
