"""
Authenticated Booking API Client

Wraps every outbound call to the ticketing backend: attaches the active
credential, classifies endpoints as public or private, and runs the
refresh-and-retry protocol when a private call comes back 401.
"""

import base64
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import requests

from src.api.exceptions import (
    ApiError,
    AuthenticationError,
    BookingClientError,
    NetworkError,
    NotFoundError,
    ServerError,
    NETWORK_FAILURE_MESSAGE,
    SESSION_EXPIRED_MESSAGE,
)
from src.utils.logger import (
    REDACTED_SENSITIVE,
    get_logger,
    is_sensitive_path,
    redact_headers,
    summarize_payload,
)

logger = get_logger(__name__)

REFRESH_PATH = "/auth/refresh-token"

# Reachable without credentials; a 401 here never triggers a refresh
PUBLIC_ENDPOINTS = (
    "/auth/login",
    "/auth/register",
    "/users/verifyByEmail",
    REFRESH_PATH,
)

# Request bodies to these paths never reach the logs
SENSITIVE_ENDPOINTS = ("/auth", "/users", "/profile", "/tickets")


class RetryState(Enum):
    """Position of a request in the refresh-and-retry protocol."""

    FRESH = "fresh"
    RETRIED = "retried"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class ApiRequest:
    """
    One outbound call.

    Attributes:
        method: HTTP method
        path: Path relative to the API base URL (e.g. "/buses/search")
        json: JSON body
        params: Query parameters
        headers: Extra headers merged over the defaults
        skip_auth: Treat the call as public regardless of its path
    """

    method: str
    path: str
    json: Any = None
    params: Optional[Dict[str, Any]] = None
    headers: Optional[Dict[str, str]] = None
    skip_auth: bool = False


@dataclass(frozen=True)
class ApiResponse:
    """Decoded backend response."""

    status_code: int
    payload: Any
    headers: Dict[str, str] = field(default_factory=dict)

    def unwrap(self) -> Any:
        """Return the ``data`` member of a wrapped payload, else the payload itself."""
        if isinstance(self.payload, dict) and "data" in self.payload:
            return self.payload["data"]
        return self.payload


def basic_authorization(token: str) -> str:
    """Legacy header value: ``Basic base64(token:)``."""
    encoded = base64.b64encode(f"{token}:".encode("utf-8")).decode("ascii")
    return f"Basic {encoded}"


class AuthenticatedClient:
    """
    Credentialed transport for the booking backend.

    Requires a SessionStore holding the active credential. A private call
    answered with 401 is retried at most once, after a successful token
    refresh; concurrent callers share a single refresh.
    """

    def __init__(
        self,
        base_url: str,
        session_store,
        http_session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ):
        """
        Initialize AuthenticatedClient.

        Args:
            base_url: Backend base URL (e.g. "http://localhost:8080")
            session_store: SessionStore owning the credential
            http_session: requests.Session to reuse (default: creates new)
            timeout: Per-request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.session_store = session_store
        self.http = http_session or requests.Session()
        self.timeout = timeout
        self._refresh_lock = threading.Lock()

    def is_public(self, request: ApiRequest) -> bool:
        if request.skip_auth:
            return True
        return any(endpoint in request.path for endpoint in PUBLIC_ENDPOINTS)

    def _authorization(self) -> Tuple[Optional[str], Optional[str]]:
        """
        Build the Authorization header from the current session.

        Returns:
            Tuple of (header value or None, bearer access token sent or None)
        """
        session = self.session_store.current
        if session is None:
            return None, None
        if session.access_token:
            return f"Bearer {session.access_token}", session.access_token
        token = getattr(session.credential, "token", None)
        if token:
            return basic_authorization(token), None
        return None, None

    def send(self, request: ApiRequest, retry_state: RetryState = RetryState.FRESH) -> ApiResponse:
        """
        Execute ``request`` and return the decoded response.

        Raises:
            AuthenticationError: 401 that could not be recovered by a refresh
            NetworkError: No response was received
            ServerError: 5xx or undecodable success body
            NotFoundError: 404
            ApiError: Any other non-success status
        """
        public = self.is_public(request)
        headers = {"Accept": "application/json"}
        sent_token = None
        if not public:
            authorization, sent_token = self._authorization()
            if authorization:
                headers["Authorization"] = authorization
        if request.headers:
            headers.update(request.headers)

        response = self._transmit(request, headers)
        payload, decoded = self._decode(response)

        if response.status_code == 401:
            if public:
                raise AuthenticationError(
                    self._error_message(payload, "Authentication failed"),
                    status_code=401,
                    payload=payload,
                )
            return self._recover_unauthorized(request, retry_state, sent_token, payload)

        return self._classify(request, response, payload, decoded)

    def _transmit(self, request: ApiRequest, headers: Dict[str, str]) -> requests.Response:
        url = f"{self.base_url}{request.path}"
        sensitive = is_sensitive_path(request.path, SENSITIVE_ENDPOINTS)
        logger.debug(
            f"{request.method} {request.path}",
            operation="api_request",
            context={
                "headers": redact_headers(headers),
                "params": request.params,
                "body": REDACTED_SENSITIVE if sensitive else request.json,
            },
        )

        start_time = time.time()
        try:
            response = self.http.request(
                request.method,
                url,
                json=request.json,
                params=request.params,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(
                "No response from backend",
                operation="api_request",
                context={"method": request.method, "path": request.path},
                error=str(e),
                duration_ms=(time.time() - start_time) * 1000,
            )
            raise NetworkError(NETWORK_FAILURE_MESSAGE) from e

        return response

    @staticmethod
    def _decode(response: requests.Response) -> Tuple[Any, bool]:
        """Return (payload, decoded_ok). An empty body decodes to None."""
        if not response.content:
            return None, True
        try:
            return response.json(), True
        except ValueError:
            return response.text, False

    @staticmethod
    def _error_message(payload: Any, default: str) -> str:
        if isinstance(payload, dict):
            message = payload.get("message") or payload.get("error")
            if isinstance(message, str) and message.strip():
                return message
        return default

    def _classify(
        self,
        request: ApiRequest,
        response: requests.Response,
        payload: Any,
        decoded: bool,
    ) -> ApiResponse:
        status = response.status_code
        context = {"method": request.method, "path": request.path, "status": status}

        if 200 <= status < 300:
            if not decoded:
                logger.error("Malformed response body", operation="api_response", context=context)
                raise ServerError("Malformed response from server", status_code=status)
            logger.debug(
                f"{request.method} {request.path} -> {status}",
                operation="api_response",
                context={**context, "body": summarize_payload(payload)},
            )
            return ApiResponse(status_code=status, payload=payload, headers=dict(response.headers))

        message = self._error_message(payload, f"Request failed with status {status}")
        logger.warning("Backend rejected request", operation="api_response", context=context, error=message)

        if status == 404:
            raise NotFoundError(message, status_code=status, payload=payload)
        if status >= 500:
            raise ServerError(message, status_code=status, payload=payload)
        raise ApiError(message, status_code=status, payload=payload)

    def _recover_unauthorized(
        self,
        request: ApiRequest,
        retry_state: RetryState,
        sent_token: Optional[str],
        payload: Any,
    ) -> ApiResponse:
        """Refresh once and re-issue ``request``, or end the session."""
        context = {"method": request.method, "path": request.path, "retry_state": retry_state.value}

        if retry_state is not RetryState.FRESH:
            logger.warning(
                "Retried request rejected again; ending session",
                operation="refresh_and_retry",
                context={**context, "retry_state": RetryState.EXHAUSTED.value},
            )
            self.session_store.clear()
            raise AuthenticationError(SESSION_EXPIRED_MESSAGE, status_code=401, payload=payload)

        with self._refresh_lock:
            current_token = self.session_store.access_token
            if current_token and current_token != sent_token:
                logger.debug(
                    "Access token already renewed by another caller",
                    operation="refresh_and_retry",
                    context=context,
                )
            elif not self.session_store.refresh_token:
                logger.warning(
                    "No refresh token available; ending session",
                    operation="refresh_and_retry",
                    context=context,
                )
                self.session_store.clear()
                raise AuthenticationError(SESSION_EXPIRED_MESSAGE, status_code=401, payload=payload)
            else:
                self.refresh_credentials()

        logger.info("Retrying request with renewed credential", operation="refresh_and_retry", context=context)
        return self.send(request, RetryState.RETRIED)

    def refresh_credentials(self) -> str:
        """
        Exchange the stored refresh token for a new access token.

        Persists the new access token (and the rotated refresh token, when the
        backend returns one).

        Returns:
            The new access token

        Raises:
            AuthenticationError: No refresh token, or the refresh call failed.
                The session has been cleared in both cases.
        """
        refresh_token = self.session_store.refresh_token
        if not refresh_token:
            self.session_store.clear()
            raise AuthenticationError(SESSION_EXPIRED_MESSAGE, status_code=401)

        start_time = time.time()
        try:
            response = self.send(
                ApiRequest("POST", REFRESH_PATH, json={"refreshToken": refresh_token}, skip_auth=True)
            )
        except BookingClientError as e:
            logger.error(
                "Token refresh failed",
                operation="refresh_token",
                error=str(e),
                duration_ms=(time.time() - start_time) * 1000,
            )
            self.session_store.clear()
            raise AuthenticationError(
                SESSION_EXPIRED_MESSAGE, status_code=e.status_code, payload=e.payload
            ) from e

        data = response.unwrap()
        access_token = None
        if isinstance(data, dict):
            access_token = data.get("accessToken") or data.get("jwt")
        if not access_token:
            logger.error("Refresh response carried no access token", operation="refresh_token")
            self.session_store.clear()
            raise AuthenticationError(SESSION_EXPIRED_MESSAGE, status_code=response.status_code)

        self.session_store.update_tokens(access_token, data.get("refreshToken"))
        logger.info(
            "Access token refreshed",
            operation="refresh_token",
            context={"rotated": bool(data.get("refreshToken"))},
            duration_ms=(time.time() - start_time) * 1000,
        )
        return access_token

    def get(self, path: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> ApiResponse:
        return self.send(ApiRequest("GET", path, params=params, **kwargs))

    def post(self, path: str, json: Any = None, **kwargs) -> ApiResponse:
        return self.send(ApiRequest("POST", path, json=json, **kwargs))

    def put(self, path: str, json: Any = None, **kwargs) -> ApiResponse:
        return self.send(ApiRequest("PUT", path, json=json, **kwargs))

    def delete(self, path: str, **kwargs) -> ApiResponse:
        return self.send(ApiRequest("DELETE", path, **kwargs))
