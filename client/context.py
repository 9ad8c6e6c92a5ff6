"""
Process-wide authentication state for the app.

One `SessionContext` is created at startup, handed to whatever needs to know
who is signed in, and torn down on sign-out. Public methods never raise;
sign-in/sign-up report `AuthResult` so callers can show the message inline.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Optional

from .api import AuthApi, LinksApi
from .session import SessionClient
from .storage import FileCredentialStore, FilePendingLinkStore, PendingLinkStore
from .transport import make_transport

logger = logging.getLogger(__name__)

WHO_AM_I_TIMEOUT_SEC = 10.0

DASHBOARD_ROUTE = "/dashboard"
LOGIN_ROUTE = "/login"


@dataclass(frozen=True)
class AuthState:
    user: Optional[Dict[str, Any]] = None
    is_authenticated: bool = False
    is_loading: bool = True
    error: Optional[str] = None


@dataclass(frozen=True)
class AuthResult:
    success: bool
    message: Optional[str] = None


class SessionContext:
    def __init__(
        self,
        session: SessionClient,
        pending_links: PendingLinkStore,
        navigate: Optional[Callable[[str], None]] = None,
        who_am_i_timeout: float = WHO_AM_I_TIMEOUT_SEC,
    ):
        self.session = session
        self.auth = AuthApi(session)
        self.links = LinksApi(session)
        self.pending_links = pending_links
        self._navigate = navigate
        self.who_am_i_timeout = who_am_i_timeout
        self.state = AuthState()
        session.set_on_session_expired(self._on_session_expired)

    # -- state helpers ---------------------------------------------------------
    def _set(self, **changes) -> None:
        self.state = replace(self.state, **changes)

    def _signed_out_state(self) -> AuthState:
        return AuthState(user=None, is_authenticated=False, is_loading=False, error=None)

    def navigate(self, route: str) -> None:
        if self._navigate:
            self._navigate(route)

    def _on_session_expired(self) -> None:
        self.state = self._signed_out_state()
        self.navigate(LOGIN_ROUTE)

    # -- lifecycle -------------------------------------------------------------
    async def start(self) -> Optional[Dict[str, Any]]:
        return await self.fetch_user_status()

    async def close(self) -> None:
        await self.session.aclose()

    async def fetch_user_status(self) -> Optional[Dict[str, Any]]:
        """
        "Who am I" with a hard timeout. Any failure just means signed out:
        not being logged in yet is a normal state, so no error is recorded.
        """
        self._set(is_loading=True, error=None)
        try:
            body = await asyncio.wait_for(self.auth.me(), timeout=self.who_am_i_timeout)
            user = (body.get("data") or {}).get("user")
        except Exception as e:
            logger.debug(f"auth check failed: {e!r}")
            self.state = self._signed_out_state()
            return None
        self.state = AuthState(user=user, is_authenticated=bool(user), is_loading=False, error=None)
        return user

    async def _after_auth(self) -> None:
        user = await self.fetch_user_status()
        if not user:
            return
        pending = self.pending_links.get()
        if pending:
            try:
                await self.links.create(pending)
                self.pending_links.clear()
            except Exception as e:
                # keep it for the next sign-in rather than failing this one
                logger.warning(f"saving pending link failed: {e!r}")
        self.navigate(DASHBOARD_ROUTE)

    async def _sign_in_with(self, call) -> AuthResult:
        self._set(is_loading=True, error=None)
        try:
            body = await call
            await self._after_auth()
            return AuthResult(True, body.get("message"))
        except Exception as e:
            message = getattr(e, "message", None) or str(e) or "Sign in failed"
            self.state = AuthState(user=None, is_authenticated=False, is_loading=False, error=message)
            return AuthResult(False, message)

    async def sign_in(self, email: str, password: str) -> AuthResult:
        return await self._sign_in_with(self.auth.login(email, password))

    async def sign_in_with_google(self, id_token: str) -> AuthResult:
        return await self._sign_in_with(self.auth.google_sign_in(id_token))

    async def sign_up(self, name: str, email: str, password: str) -> AuthResult:
        self._set(is_loading=True, error=None)
        try:
            body = await self.auth.register(name, email, password)
            await self._after_auth()
            self._set(is_loading=False)
            return AuthResult(True, body.get("message"))
        except Exception as e:
            message = getattr(e, "message", None) or str(e) or "Sign up failed"
            self._set(is_loading=False, error=message)
            return AuthResult(False, message)

    async def sign_out(self) -> None:
        self._set(is_loading=True)
        try:
            await self.auth.logout()
        except Exception:
            logger.exception("logout failed")
        self.state = self._signed_out_state()
        self.navigate(LOGIN_ROUTE)

    def update_user_profile(self, **changes) -> None:
        """Local patch only; the caller already got the server's ok."""
        if self.state.user is not None:
            self._set(user={**self.state.user, **changes})

    def clear_error(self) -> None:
        self._set(error=None)

    async def receive_shared_link(self, url: str) -> bool:
        """
        A URL shared into the app. Saved right away when signed in, otherwise
        parked until the next successful sign-in. Returns True if saved now.
        """
        if not self.state.is_authenticated:
            self.pending_links.set(url)
            return False
        try:
            await self.links.create(url)
            return True
        except Exception as e:
            logger.warning(f"saving shared link failed: {e!r}")
            self.pending_links.set(url)
            return False


def build_session_context(
    base_url: str,
    storage_dir: str,
    auth_transport: str = "cookie",
    navigate: Optional[Callable[[str], None]] = None,
) -> SessionContext:
    session = SessionClient(
        base_url,
        FileCredentialStore(os.path.join(storage_dir, "credentials.json")),
        make_transport(auth_transport),
    )
    return SessionContext(session, FilePendingLinkStore(os.path.join(storage_dir, "pending_link.json")), navigate=navigate)
