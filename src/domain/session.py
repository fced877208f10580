"""
Session domain model.

A session pairs the active credential with the signed-in user's identity.
Exactly one credential kind is active at a time: none, a legacy basic token,
or a bearer access/refresh pair.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Union

import jsonschema

CREDENTIAL_NONE = "none"
CREDENTIAL_BASIC = "basic"
CREDENTIAL_BEARER = "bearer"

# Structural contract of the persisted session record
SESSION_RECORD_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["user"],
    "properties": {
        "credential": {
            "type": "object",
            "required": ["type"],
            "properties": {
                "type": {"enum": [CREDENTIAL_NONE, CREDENTIAL_BASIC, CREDENTIAL_BEARER]},
                "token": {"type": "string"},
                "accessToken": {"type": "string"},
                "refreshToken": {"type": ["string", "null"]},
            },
        },
        "user": {
            "type": "object",
            "required": ["id", "email"],
            "properties": {
                "id": {"type": ["string", "integer"], "minLength": 1},
                "email": {"type": "string", "minLength": 1},
                "role": {"type": ["string", "null"]},
                "name": {"type": ["string", "null"]},
                "phoneNumber": {"type": ["string", "null"]},
            },
        },
    },
}


@dataclass(frozen=True)
class NoCredential:
    """Placeholder credential: requests go out unauthenticated."""

    kind: str = field(default=CREDENTIAL_NONE, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": CREDENTIAL_NONE}


@dataclass(frozen=True)
class BasicToken:
    """Legacy opaque token sent as ``Basic base64(token:)``."""

    token: str
    kind: str = field(default=CREDENTIAL_BASIC, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": CREDENTIAL_BASIC, "token": self.token}

    def __repr__(self) -> str:
        return "BasicToken(token=***)"


@dataclass(frozen=True)
class BearerPair:
    """JWT access token plus the refresh token used to renew it."""

    access_token: str
    refresh_token: Optional[str] = None
    kind: str = field(default=CREDENTIAL_BEARER, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": CREDENTIAL_BEARER,
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
        }

    def __repr__(self) -> str:
        refresh = "***" if self.refresh_token else None
        return f"BearerPair(access_token=***, refresh_token={refresh})"


Credential = Union[NoCredential, BasicToken, BearerPair]


def credential_from_dict(data: Optional[Dict[str, Any]]) -> Credential:
    """Rebuild a credential from its persisted dict form."""
    if not data:
        return NoCredential()

    kind = data.get("type", CREDENTIAL_NONE)
    if kind == CREDENTIAL_BEARER and data.get("accessToken"):
        return BearerPair(
            access_token=data["accessToken"],
            refresh_token=data.get("refreshToken") or None,
        )
    if kind == CREDENTIAL_BASIC and data.get("token"):
        return BasicToken(token=data["token"])
    return NoCredential()


@dataclass(frozen=True)
class UserIdentity:
    """
    Signed-in user's identity record.

    Attributes:
        id: Backend user id
        email: Account email (required)
        role: Upper-cased role, ``USER`` unless the backend says otherwise
        name: Display name, defaults to the email's local part
        phone_number: Account phone, used as ``profileUserPhone`` on bookings
    """

    id: str
    email: str
    role: str = "USER"
    name: str = ""
    phone_number: Optional[str] = None

    # Backends disagree on where the role lives
    ROLE_FIELDS = ("role", "userType", "type", "user_role")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserIdentity":
        """
        Create identity from a backend or persisted user record.

        Raises:
            ValueError: If ``id`` or ``email`` is missing
        """
        user_id = data.get("id")
        email = data.get("email")
        if user_id in (None, "") or not email:
            raise ValueError("User record requires 'id' and 'email'")

        role = "USER"
        for role_field in cls.ROLE_FIELDS:
            value = data.get(role_field)
            if isinstance(value, str) and value.strip():
                role = value.strip().upper()
                break

        name = data.get("name") or str(email).split("@")[0]
        phone = data.get("phoneNumber") or data.get("phone")

        return cls(
            id=str(user_id),
            email=str(email),
            role=role,
            name=name,
            phone_number=str(phone) if phone else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "name": self.name,
            "phoneNumber": self.phone_number,
        }


@dataclass(frozen=True)
class Session:
    """
    Session domain model: active credential plus user identity.

    Created on login, replaced on refresh, destroyed on logout or when the
    persisted record turns out to be malformed.
    """

    user: UserIdentity
    credential: Credential = field(default_factory=NoCredential)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        """
        Create Session from its persisted record.

        Raises:
            ValueError: If the record does not match SESSION_RECORD_SCHEMA
        """
        try:
            jsonschema.validate(instance=data, schema=SESSION_RECORD_SCHEMA)
        except jsonschema.ValidationError as e:
            raise ValueError(f"Malformed session record: {e.message}") from e

        return cls(
            user=UserIdentity.from_dict(data["user"]),
            credential=credential_from_dict(data.get("credential")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"credential": self.credential.to_dict(), "user": self.user.to_dict()}

    @property
    def access_token(self) -> Optional[str]:
        if isinstance(self.credential, BearerPair):
            return self.credential.access_token
        return None

    @property
    def refresh_token(self) -> Optional[str]:
        if isinstance(self.credential, BearerPair):
            return self.credential.refresh_token
        return None

    def with_tokens(self, access_token: str, refresh_token: Optional[str] = None) -> "Session":
        """
        Return a copy carrying a renewed bearer pair.

        The previous refresh token is kept unless the backend rotated it.
        """
        return replace(
            self,
            credential=BearerPair(
                access_token=access_token,
                refresh_token=refresh_token or self.refresh_token,
            ),
        )

    def with_user(self, user: UserIdentity) -> "Session":
        return replace(self, user=user)
