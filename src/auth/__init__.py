"""Auth module - session ownership and account lifecycle"""

from .session_store import SessionStore
from .auth_service import AuthService

__all__ = ["SessionStore", "AuthService"]
