"""
Unit tests for AuthenticatedClient.

Covers credential injection, public-endpoint bypass, the 401
refresh-and-retry protocol and error classification.
"""

import base64
import json
import logging
import threading
from unittest.mock import Mock

import pytest
import requests

from src.api.client import (
    ApiRequest,
    ApiResponse,
    AuthenticatedClient,
    REFRESH_PATH,
    RetryState,
    basic_authorization,
)
from src.domain.session import BearerPair, Session
from src.api.exceptions import (
    ApiError,
    AuthenticationError,
    NetworkError,
    NotFoundError,
    ServerError,
)

BASE_URL = "http://booking.test"


def _calls(http_session):
    return http_session.request.call_args_list


def _auth_header(call):
    return call.kwargs["headers"].get("Authorization")


class TestCredentialInjection:
    """Authorization header selection."""

    def test_bearer_pair_sends_bearer_header(self, client, http_session, make_response):
        """Should attach the access token as a bearer credential."""
        # Arrange
        http_session.request.return_value = make_response(200, {"data": []})

        # Act
        client.get("/buses")

        # Assert
        call = _calls(http_session)[0]
        assert call.args == ("GET", f"{BASE_URL}/buses")
        assert _auth_header(call) == "Bearer access-1"
        assert call.kwargs["timeout"] == 5

    def test_basic_token_sends_basic_header(self, session_store, basic_session, http_session, make_response):
        """Should encode the legacy token as base64(token:)."""
        # Arrange
        session_store.save(basic_session)
        client = AuthenticatedClient(BASE_URL, session_store, http_session=http_session)
        http_session.request.return_value = make_response(200, [])

        # Act
        client.get("/buses")

        # Assert
        expected = base64.b64encode(b"legacy-token:").decode("ascii")
        assert _auth_header(_calls(http_session)[0]) == f"Basic {expected}"

    def test_no_session_sends_no_header(self, session_store, http_session, make_response):
        """Should go out unauthenticated when nobody is signed in."""
        client = AuthenticatedClient(BASE_URL, session_store, http_session=http_session)
        http_session.request.return_value = make_response(200, [])

        client.get("/buses")

        assert _auth_header(_calls(http_session)[0]) is None

    def test_public_endpoint_never_carries_credential(self, client, http_session, make_response):
        """Login is public: no Authorization header even when signed in."""
        http_session.request.return_value = make_response(200, {"accessToken": "x"})

        client.post("/auth/login", json={"email": "a@b.c", "password": "pw"})

        assert _auth_header(_calls(http_session)[0]) is None

    def test_skip_auth_flag_marks_request_public(self, client, http_session, make_response):
        http_session.request.return_value = make_response(200, {})

        client.send(ApiRequest("POST", "/auth/token", json={"token": "t"}, skip_auth=True))

        assert _auth_header(_calls(http_session)[0]) is None

    def test_basic_authorization_helper(self):
        assert basic_authorization("abc") == "Basic " + base64.b64encode(b"abc:").decode()


class TestEndpointClassification:
    @pytest.mark.parametrize(
        "path",
        ["/auth/login", "/auth/register", "/users/verifyByEmail", REFRESH_PATH],
    )
    def test_allow_listed_paths_are_public(self, client, path):
        assert client.is_public(ApiRequest("POST", path)) is True

    @pytest.mark.parametrize("path", ["/buses/search", "/tickets", "/users/me", "/auth/logout"])
    def test_other_paths_are_private(self, client, path):
        assert client.is_public(ApiRequest("POST", path)) is False


class TestRefreshAndRetry:
    """401 handling on private endpoints."""

    def test_expired_token_refreshes_once_and_retries_once(
        self, client, http_session, signed_in_store, make_response
    ):
        """Exactly one refresh and one retried original call with the new token."""
        # Arrange
        http_session.request.side_effect = [
            make_response(401, {"message": "expired"}),
            make_response(200, {"accessToken": "access-2"}),
            make_response(200, {"data": [{"busNumber": "CG-01"}]}),
        ]

        # Act
        response = client.get("/buses")

        # Assert
        calls = _calls(http_session)
        assert len(calls) == 3
        refresh_call = calls[1]
        assert refresh_call.args == ("POST", f"{BASE_URL}{REFRESH_PATH}")
        assert refresh_call.kwargs["json"] == {"refreshToken": "refresh-1"}
        assert _auth_header(refresh_call) is None
        assert calls[2].args == calls[0].args
        assert _auth_header(calls[2]) == "Bearer access-2"
        assert response.unwrap() == [{"busNumber": "CG-01"}]
        assert signed_in_store.access_token == "access-2"
        assert signed_in_store.refresh_token == "refresh-1"

    def test_rotated_refresh_token_is_persisted(self, client, http_session, signed_in_store, make_response):
        http_session.request.side_effect = [
            make_response(401),
            make_response(200, {"accessToken": "access-2", "refreshToken": "refresh-2"}),
            make_response(200, []),
        ]

        client.get("/buses")

        reloaded = signed_in_store.load()
        assert reloaded.access_token == "access-2"
        assert reloaded.refresh_token == "refresh-2"

    def test_refresh_response_jwt_field_is_accepted(self, client, http_session, signed_in_store, make_response):
        http_session.request.side_effect = [
            make_response(401),
            make_response(200, {"jwt": "access-jwt"}),
            make_response(200, []),
        ]

        client.get("/buses")

        assert signed_in_store.access_token == "access-jwt"

    def test_no_refresh_token_clears_session(self, session_store, user, http_session, make_response):
        """Without a refresh token the 401 is terminal and the session is gone."""
        # Arrange
        session_store.save(Session(user=user, credential=BearerPair(access_token="access-1")))
        client = AuthenticatedClient(BASE_URL, session_store, http_session=http_session)
        http_session.request.return_value = make_response(401)

        # Act / Assert
        with pytest.raises(AuthenticationError):
            client.get("/tickets/my-bookings")

        assert len(_calls(http_session)) == 1
        assert session_store.current is None
        assert session_store.load() is None

    def test_failed_refresh_clears_session(self, client, http_session, signed_in_store, make_response):
        """A rejected refresh call ends the session without retrying the original."""
        http_session.request.side_effect = [
            make_response(401),
            make_response(401, {"message": "refresh token revoked"}),
        ]

        with pytest.raises(AuthenticationError) as exc_info:
            client.get("/buses")

        assert exc_info.value.status_code == 401
        assert len(_calls(http_session)) == 2
        assert signed_in_store.load() is None

    def test_refresh_network_failure_clears_session(self, client, http_session, signed_in_store, make_response):
        http_session.request.side_effect = [
            make_response(401),
            requests.ConnectionError("down"),
        ]

        with pytest.raises(AuthenticationError):
            client.get("/buses")

        assert signed_in_store.current is None

    def test_refresh_without_access_token_counts_as_failure(
        self, client, http_session, signed_in_store, make_response
    ):
        http_session.request.side_effect = [
            make_response(401),
            make_response(200, {"message": "ok"}),
        ]

        with pytest.raises(AuthenticationError):
            client.get("/buses")

        assert signed_in_store.current is None

    def test_retried_request_rejected_again_is_exhausted(
        self, client, http_session, signed_in_store, make_response
    ):
        """A second 401 after refreshing never triggers another refresh."""
        http_session.request.side_effect = [
            make_response(401),
            make_response(200, {"accessToken": "access-2"}),
            make_response(401),
        ]

        with pytest.raises(AuthenticationError):
            client.get("/buses")

        assert len(_calls(http_session)) == 3
        assert signed_in_store.current is None

    def test_retried_state_does_not_refresh(self, client, http_session, signed_in_store, make_response):
        http_session.request.return_value = make_response(401)

        with pytest.raises(AuthenticationError):
            client.send(ApiRequest("GET", "/buses"), RetryState.RETRIED)

        assert len(_calls(http_session)) == 1

    def test_public_401_does_not_refresh_or_clear(self, client, http_session, signed_in_store, make_response):
        """Bad login credentials are not a session expiry."""
        http_session.request.return_value = make_response(401, {"message": "Bad credentials"})

        with pytest.raises(AuthenticationError) as exc_info:
            client.post("/auth/login", json={"email": "a@b.c", "password": "x"})

        assert exc_info.value.message == "Bad credentials"
        assert len(_calls(http_session)) == 1
        assert signed_in_store.current is not None

    def test_request_object_is_not_mutated(self, client, http_session, make_response):
        http_session.request.side_effect = [
            make_response(401),
            make_response(200, {"accessToken": "access-2"}),
            make_response(200, []),
        ]
        request = ApiRequest("GET", "/buses")

        client.send(request)

        assert request == ApiRequest("GET", "/buses")

    def test_concurrent_401s_share_one_refresh(self, signed_in_store, make_response):
        """A caller whose token was already renewed retries without refreshing."""
        # Arrange
        http_session = Mock(spec=requests.Session)
        refresh_calls = []
        first_requests = threading.Barrier(2)

        def fake_request(method, url, **kwargs):
            auth = kwargs["headers"].get("Authorization")
            if url.endswith(REFRESH_PATH):
                refresh_calls.append(kwargs["json"])
                return make_response(200, {"accessToken": "access-2"})
            if auth == "Bearer access-1":
                first_requests.wait(timeout=5)
                return make_response(401)
            return make_response(200, [])

        http_session.request.side_effect = fake_request
        client = AuthenticatedClient(BASE_URL, signed_in_store, http_session=http_session)
        errors = []

        def worker():
            try:
                client.get("/buses")
            except Exception as e:  # pragma: no cover - surfaced by the assertion below
                errors.append(e)

        # Act
        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        # Assert
        assert errors == []
        assert len(refresh_calls) == 1
        assert signed_in_store.access_token == "access-2"


class TestErrorClassification:
    def test_connection_error_is_network_error(self, client, http_session):
        http_session.request.side_effect = requests.ConnectionError("refused")

        with pytest.raises(NetworkError):
            client.get("/buses")

    def test_timeout_is_network_error(self, client, http_session):
        http_session.request.side_effect = requests.Timeout("slow")

        with pytest.raises(NetworkError):
            client.get("/buses")

    def test_5xx_is_server_error_without_retry(self, client, http_session, make_response):
        http_session.request.return_value = make_response(503, {"message": "maintenance"})

        with pytest.raises(ServerError) as exc_info:
            client.get("/buses")

        assert exc_info.value.status_code == 503
        assert len(_calls(http_session)) == 1

    def test_404_is_not_found(self, client, http_session, make_response):
        http_session.request.return_value = make_response(404, {"message": "missing"})

        with pytest.raises(NotFoundError):
            client.get("/tickets/1")

    def test_409_is_api_error_with_backend_message(self, client, http_session, make_response):
        http_session.request.return_value = make_response(409, {"message": "Seat 4 taken"})

        with pytest.raises(ApiError) as exc_info:
            client.post("/tickets", json={})

        assert exc_info.value.status_code == 409
        assert exc_info.value.backend_message == "Seat 4 taken"

    def test_malformed_success_body_is_server_error(self, client, http_session, make_response):
        http_session.request.return_value = make_response(200, raw="<html>oops</html>")

        with pytest.raises(ServerError):
            client.get("/buses")

    def test_empty_success_body_decodes_to_none(self, client, http_session, make_response):
        http_session.request.return_value = make_response(204)

        response = client.delete("/tickets/5")

        assert response.payload is None


class TestApiResponse:
    def test_unwrap_data_wrapper(self):
        assert ApiResponse(200, {"data": [1, 2]}).unwrap() == [1, 2]

    def test_unwrap_bare_payload(self):
        assert ApiResponse(200, [1, 2]).unwrap() == [1, 2]
        assert ApiResponse(200, {"seats": []}).unwrap() == {"seats": []}


class TestCredentialRedaction:
    def test_logs_never_contain_tokens(self, client, http_session, make_response, caplog):
        """Authorization values and sensitive bodies are redacted in diagnostics."""
        http_session.request.side_effect = [
            make_response(401),
            make_response(200, {"accessToken": "access-2"}),
            make_response(200, {"id": 1}),
        ]

        with caplog.at_level(logging.DEBUG):
            client.post("/tickets", json={"profileUserPhone": "+919999999992"})

        text = "\n".join(record.getMessage() for record in caplog.records)
        assert "access-1" not in text
        assert "access-2" not in text
        assert "refresh-1" not in text
        assert "+919999999992" not in text
        assert "[REDACTED - SENSITIVE]" in text

    def test_non_sensitive_body_is_logged(self, client, http_session, make_response, caplog):
        http_session.request.return_value = make_response(200, {"data": []})

        with caplog.at_level(logging.DEBUG):
            client.post("/buses/search", json={"source": "Raipur"})

        entries = [json.loads(r.getMessage()) for r in caplog.records if r.name == "src.api.client"]
        request_logs = [e for e in entries if e.get("operation") == "api_request"]
        assert request_logs[0]["context"]["body"] == {"source": "Raipur"}
        assert request_logs[0]["context"]["headers"]["Authorization"] == "[REDACTED]"
