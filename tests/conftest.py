"""
Shared fixtures for unit and integration tests.

HTTP is never real: tests drive a Mock(spec=requests.Session) whose
``request`` side effects are built with ``make_response``.
"""

import json
import os
from unittest.mock import Mock

import pytest
import requests

from src.api.client import AuthenticatedClient
from src.auth.session_store import SessionStore
from src.database.memory_slot import InMemorySessionSlot
from src.domain.session import BearerPair, BasicToken, Session, UserIdentity

BASE_URL = "http://booking.test"
ACCOUNT_PHONE = "+919999999992"


def build_response(status=200, payload=None, raw=None, headers=None):
    """Fake requests.Response with a JSON (or raw text) body."""
    response = Mock()
    response.status_code = status
    response.headers = headers or {}
    if raw is not None:
        response.content = raw.encode("utf-8")
        response.text = raw
        response.json.side_effect = ValueError("Expecting value")
    elif payload is None:
        response.content = b""
        response.text = ""
    else:
        body = json.dumps(payload)
        response.content = body.encode("utf-8")
        response.text = body
        response.json.return_value = payload
    return response


@pytest.fixture
def make_response():
    return build_response


@pytest.fixture
def aws_credentials():
    """Dummy AWS credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "ap-northeast-2"


@pytest.fixture
def user():
    return UserIdentity(
        id="7",
        email="asha@example.com",
        role="USER",
        name="Asha",
        phone_number=ACCOUNT_PHONE,
    )


@pytest.fixture
def bearer_session(user):
    return Session(user=user, credential=BearerPair(access_token="access-1", refresh_token="refresh-1"))


@pytest.fixture
def basic_session(user):
    return Session(user=user, credential=BasicToken(token="legacy-token"))


@pytest.fixture
def slot():
    """Private in-memory slot so tests never share state."""
    return InMemorySessionSlot(storage={})


@pytest.fixture
def session_store(slot):
    return SessionStore(slot)


@pytest.fixture
def signed_in_store(session_store, bearer_session):
    session_store.save(bearer_session)
    return session_store


@pytest.fixture
def http_session():
    return Mock(spec=requests.Session)


@pytest.fixture
def client(http_session, signed_in_store):
    return AuthenticatedClient(BASE_URL, signed_in_store, http_session=http_session, timeout=5)
