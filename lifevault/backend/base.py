"""
lifevault/backend/base.py
Abstract base class for backend platform adapters.
To add a new platform: subclass BackendAdapter and implement the table,
storage and auth operations below.

Every table operation takes explicit equality filters. Services always pass
the authenticated user_id, so rows are owner-scoped on every call.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from lifevault.models.record import AuthSession, AuthUser


class BackendAdapter(ABC):
    """
    Relational tables, object storage and authentication behind one interface.
    Services call these methods and never know which platform is running.
    All failures raise lifevault.errors.BackendError (or AuthError for
    rejected credentials).
    """

    # ── TABLES ───────────────────────────────────────────────

    @abstractmethod
    def select(
        self,
        table:      str,
        filters:    Optional[Dict[str, Any]] = None,
        order_by:   Optional[str]            = None,
        descending: bool                     = False,
        limit:      Optional[int]            = None,
    ) -> List[Dict[str, Any]]:
        """Rows matching every filter (equality), optionally ordered and limited."""
        ...

    @abstractmethod
    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """Insert one row. Returns the stored row including id and timestamps."""
        ...

    @abstractmethod
    def update(
        self,
        table:   str,
        values:  Dict[str, Any],
        filters: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        """Partial update of matching rows. Returns the updated rows."""
        ...

    @abstractmethod
    def delete(self, table: str, filters: Dict[str, Any]) -> int:
        """Delete matching rows. Returns the number of rows removed."""
        ...

    # ── STORAGE ──────────────────────────────────────────────

    @abstractmethod
    def upload(
        self,
        bucket:       str,
        path:         str,
        content:      bytes,
        content_type: Optional[str] = None,
    ) -> str:
        """Store an object. Returns its path. Existing paths are not overwritten."""
        ...

    @abstractmethod
    def download(self, bucket: str, path: str) -> bytes:
        ...

    @abstractmethod
    def remove(self, bucket: str, paths: List[str]) -> None:
        ...

    # ── AUTH ─────────────────────────────────────────────────

    @abstractmethod
    def sign_up(
        self,
        email:        str,
        password:     str,
        redirect_to:  Optional[str] = None,
    ) -> Optional[AuthSession]:
        """
        Register a user. Returns a session when the platform signs the user in
        immediately, None when email confirmation is pending.
        """
        ...

    @abstractmethod
    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        ...

    @abstractmethod
    def sign_in_with_otp(self, phone: str, create_user: bool = True) -> None:
        """Send a one-time code by SMS."""
        ...

    @abstractmethod
    def verify_otp(self, phone: str, token: str) -> AuthSession:
        ...

    @abstractmethod
    def oauth_authorize_url(self, provider: str, redirect_to: Optional[str] = None) -> str:
        ...

    @abstractmethod
    def reset_password_for_email(self, email: str, redirect_to: Optional[str] = None) -> None:
        ...

    @abstractmethod
    def get_user(self, access_token: str) -> AuthUser:
        """Resolve a bearer token. Raises AuthError when invalid or expired."""
        ...

    @abstractmethod
    def update_user(
        self,
        access_token: str,
        password:     Optional[str]            = None,
        data:         Optional[Dict[str, Any]] = None,
    ) -> AuthUser:
        """Change password and/or merge keys into user_metadata."""
        ...

    @abstractmethod
    def sign_out(self, access_token: str) -> None:
        ...

    def for_session(self, access_token: str) -> "BackendAdapter":
        """
        Adapter that acts on behalf of one signed-in user.
        Platforms with row-level rules need the user's token on every call;
        adapters that scope by user_id alone return themselves.
        """
        return self

    def is_available(self) -> bool:
        """
        Returns True if the platform is reachable.
        Used by /health; adapters with a cheap ping override this.
        """
        return True
