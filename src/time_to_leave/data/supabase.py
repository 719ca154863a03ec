from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from supabase import Client, create_client

from ..config.settings import SupabaseSettings
from ..errors import TimeToLeaveError


class SupabaseNotInitializedError(TimeToLeaveError):
    """Raised when accessing the Supabase client before it is configured."""


class SupabaseSessionMissingError(TimeToLeaveError):
    """Raised when a session-specific action is attempted without a session."""


@dataclass
class SupabaseGateway:
    """Thin wrapper around the Supabase Python client with session awareness."""

    settings: SupabaseSettings
    _client: Optional[Client] = None
    _session: Optional[Any] = None

    def ensure_client(self) -> Client:
        if self._client is not None:
            return self._client
        if not self.settings.is_configured:
            missing = ", ".join(self.settings.missing_env_vars)
            raise SupabaseNotInitializedError(f"Supabase settings are incomplete: {missing}")
        self._client = create_client(self.settings.url, self.settings.anon_key)
        return self._client

    def set_session(self, session: Any) -> None:
        self._session = session

    def clear_session(self) -> None:
        self._session = None

    def session(self) -> Any:
        if self._session is None:
            raise SupabaseSessionMissingError("Supabase session is not available.")
        return self._session

    def current_user_id(self) -> str:
        session = self.session()
        user = getattr(session, "user", None)
        identifier = getattr(user, "id", None)
        if not identifier:
            raise SupabaseSessionMissingError("Supabase session has no user id.")
        return identifier

    def is_ready(self) -> bool:
        return self._client is not None and self._session is not None

    def sign_in_with_password(self, email: str, password: str) -> Any:
        response = self.ensure_client().auth.sign_in_with_password({"email": email, "password": password})
        session = getattr(response, "session", None)
        if session:
            self.set_session(session)
        return session

    def sign_out(self) -> None:
        try:
            if self._client is not None:
                self._client.auth.sign_out()
        finally:
            self.clear_session()
