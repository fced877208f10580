"""
Authentication service.

Login (bearer or legacy token), logout, explicit refresh, and the user
account calls that sit next to them. Every session mutation goes through
the SessionStore.
"""

import re
import time
from typing import Any, Dict, Optional

from src.api.client import ApiRequest, AuthenticatedClient
from src.api.exceptions import (
    AuthenticationError,
    BookingClientError,
    NotFoundError,
    ServerError,
    ValidationError,
)
from src.auth.session_store import SessionStore
from src.domain.session import BasicToken, BearerPair, Session, UserIdentity
from src.utils.logger import get_logger, log_operation

logger = get_logger(__name__)

LOGIN_PATH = "/auth/login"
TOKEN_LOGIN_PATH = "/auth/token"
LOGOUT_PATH = "/auth/logout"
REGISTER_PATH = "/auth/register"
CURRENT_USER_PATH = "/users/me"
PHONE_LOOKUP_PATH = "/users/phone/{digits}"


def _user_from_payload(payload: Any) -> UserIdentity:
    """
    Raises:
        ServerError: If the response has no usable user record
    """
    if not isinstance(payload, dict):
        raise ServerError("Invalid user data received from server")
    try:
        return UserIdentity.from_dict(payload)
    except ValueError as e:
        raise ServerError(f"Invalid user data received from server: {e}") from e


class AuthService:
    """Account and session lifecycle operations."""

    def __init__(self, client: AuthenticatedClient, session_store: SessionStore):
        self.client = client
        self.session_store = session_store

    @log_operation("login")
    def login(self, email: str, password: str) -> Session:
        """
        Sign in with email and password, creating a bearer session.

        Raises:
            ValidationError: Blank email or password (no call is made)
            AuthenticationError: Credentials rejected
            ServerError: Response without tokens or user record
        """
        if not email or not password:
            raise ValidationError("Email and password are required")

        self.session_store.clear()
        try:
            response = self.client.post(LOGIN_PATH, json={"email": email, "password": password})
        except AuthenticationError as e:
            raise AuthenticationError("Invalid email or password", status_code=401, payload=e.payload) from e

        data = response.unwrap()
        if not isinstance(data, dict) or not data.get("accessToken"):
            raise ServerError("Login response did not include an access token")

        user = _user_from_payload(data.get("user"))
        session = Session(
            user=user,
            credential=BearerPair(
                access_token=data["accessToken"],
                refresh_token=data.get("refreshToken") or None,
            ),
        )
        self.session_store.save(session)
        logger.info("User logged in", operation="login", context={"user_id": user.id, "role": user.role})
        return session

    def login_with_token(self, token: str) -> Session:
        """Sign in with a legacy opaque token, creating a basic-token session."""
        if not token:
            raise ValidationError("Token is required")

        self.session_store.clear()
        response = self.client.send(
            ApiRequest("POST", TOKEN_LOGIN_PATH, json={"token": token}, skip_auth=True)
        )
        data = response.unwrap()
        user = _user_from_payload(data.get("user") if isinstance(data, dict) else None)

        session = Session(user=user, credential=BasicToken(token=token))
        self.session_store.save(session)
        logger.info("User logged in with token", operation="login_with_token", context={"user_id": user.id})
        return session

    def logout(self) -> None:
        """
        End the session.

        The backend is told about it when a refresh token exists, but a
        failed notification never keeps the local session alive.
        """
        session = self.session_store.current
        try:
            if session is not None and session.access_token:
                self.client.post(LOGOUT_PATH, json={"refreshToken": session.refresh_token})
        except BookingClientError as e:
            logger.warning("Logout API call failed", operation="logout", error=str(e))
        finally:
            self.session_store.clear()

    def refresh_session(self) -> Session:
        """
        Renew the access token now instead of waiting for a 401.

        Raises:
            AuthenticationError: Refresh failed; the session has been cleared
        """
        self.client.refresh_credentials()
        session = self.session_store.current
        if session is None:
            raise AuthenticationError("Session expired. Please log in again.", status_code=401)
        return session

    def verify_user(self) -> UserIdentity:
        """Fetch the signed-in user's record and store it on the session."""
        user = _user_from_payload(self.client.get(CURRENT_USER_PATH).unwrap())
        self.session_store.update_user(user)
        return user

    def register(self, user_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create an account. Does not sign the new user in.

        Raises:
            ValidationError: Missing email or password
        """
        if not user_data.get("email") or not user_data.get("password"):
            raise ValidationError("Email and password are required")

        payload = dict(user_data)
        phone = payload.pop("phone", None)
        if phone and not payload.get("phoneNumber"):
            payload["phoneNumber"] = phone

        start_time = time.time()
        data = self.client.post(REGISTER_PATH, json=payload).unwrap()
        logger.info(
            "User registered",
            operation="register",
            duration_ms=(time.time() - start_time) * 1000,
        )
        return data if isinstance(data, dict) else {}

    def check_phone_number(self, phone_number: Optional[str]) -> bool:
        """True when an account already uses ``phone_number``."""
        digits = re.sub(r"\D", "", phone_number or "")
        if not digits:
            return False
        try:
            response = self.client.get(PHONE_LOOKUP_PATH.format(digits=digits))
        except NotFoundError:
            return False
        return bool(response.payload)

    @property
    def current_user(self) -> Optional[UserIdentity]:
        session = self.session_store.current
        return session.user if session else None
