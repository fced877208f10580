"""
Session Store - single owner of the active credential and user identity.

Reads and writes the persisted session slot and keeps an in-memory mirror.
Every other component reads the session through this store and never touches
the slot directly.
"""

import json
import threading
from typing import Optional

from src.domain.session import Session, UserIdentity
from src.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_SESSION_KEY = "user"


class SessionStore:
    """
    Manages the persisted session record.

    The slot is any keyed string store exposing ``read(key)``,
    ``write(key, value)`` and ``delete(key)`` (see src.database).
    Loading fails closed: a malformed record is discarded and reported as
    "no active session" instead of raising.
    """

    def __init__(self, slot, key: str = DEFAULT_SESSION_KEY):
        """
        Initialize SessionStore.

        Args:
            slot: Session slot backend (InMemorySessionSlot, DynamoDBSessionSlot, ...)
            key: Key of the session record inside the slot
        """
        self.slot = slot
        self.key = key
        self._session: Optional[Session] = None
        self._loaded = False
        self._lock = threading.RLock()

    def load(self) -> Optional[Session]:
        """
        Read the persisted session into memory.

        Returns:
            Session if a structurally valid record exists, otherwise None
        """
        with self._lock:
            raw = self.slot.read(self.key)
            self._loaded = True

            if raw is None:
                self._session = None
                return None

            try:
                session = Session.from_dict(json.loads(raw))
            except (ValueError, TypeError) as e:
                # json.JSONDecodeError is a ValueError
                logger.warning(
                    "Discarding malformed persisted session",
                    operation="load_session",
                    context={"key": self.key},
                    error=str(e),
                )
                self.slot.delete(self.key)
                self._session = None
                return None

            self._session = session
            logger.debug(
                "Session loaded",
                operation="load_session",
                context={"credential": session.credential.kind, "role": session.user.role},
            )
            return session

    def save(self, session: Session) -> None:
        """Overwrite the persisted session and the in-memory mirror."""
        with self._lock:
            self.slot.write(self.key, json.dumps(session.to_dict()))
            self._session = session
            self._loaded = True
            logger.info(
                "Session saved",
                operation="save_session",
                context={"credential": session.credential.kind},
            )

    def clear(self) -> None:
        """Remove the persisted session and reset in-memory state."""
        with self._lock:
            self.slot.delete(self.key)
            self._session = None
            self._loaded = True
            logger.info("Session cleared", operation="clear_session")

    @property
    def current(self) -> Optional[Session]:
        """Active session, loading it from the slot on first access."""
        with self._lock:
            if not self._loaded:
                return self.load()
            return self._session

    @property
    def access_token(self) -> Optional[str]:
        session = self.current
        return session.access_token if session else None

    @property
    def refresh_token(self) -> Optional[str]:
        session = self.current
        return session.refresh_token if session else None

    def is_authenticated(self) -> bool:
        return self.current is not None

    def update_tokens(self, access_token: str, refresh_token: Optional[str] = None) -> Session:
        """
        Persist a renewed bearer pair on the current session.

        Raises:
            RuntimeError: If there is no active session to update
        """
        with self._lock:
            session = self.current
            if session is None:
                raise RuntimeError("No active session to update")
            renewed = session.with_tokens(access_token, refresh_token)
            self.save(renewed)
            return renewed

    def update_user(self, user: UserIdentity) -> Session:
        """Replace the stored user identity, keeping the credential."""
        with self._lock:
            session = self.current
            if session is None:
                raise RuntimeError("No active session to update")
            updated = session.with_user(user)
            self.save(updated)
            return updated
