import logging
from typing import Callable, Optional

import httpx

from . import endpoints
from .errors import ApiError, RefreshFailed, SessionExpired
from .refresh import RefreshCoordinator
from .storage import CredentialStore, Credentials
from .transport import CredentialTransport

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SEC = 15.0


def error_message(response: httpx.Response, default: str = "An unexpected error occurred") -> str:
    """Envelope message, else the first per-field error, else `default`."""
    try:
        body = response.json()
    except ValueError:
        return default
    if not isinstance(body, dict):
        return default
    if body.get("message"):
        return str(body["message"])
    errors = body.get("errors") or {}
    if isinstance(errors, dict):
        for msgs in errors.values():
            if isinstance(msgs, list) and msgs:
                return str(msgs[0])
    return default


class SessionClient:
    """
    Outbound HTTP for the app. Authenticated calls carry the stored
    credential and survive exactly one expired-token event per call:

    401 -> shared refresh -> replay once with the new credential.

    A replayed call that fails again is returned as is. If the refresh
    itself fails the store is cleared and `SessionExpired` is raised with the
    original 401's message.
    """

    def __init__(
        self,
        base_url: str,
        store: CredentialStore,
        transport: CredentialTransport,
        on_session_expired: Optional[Callable[[], None]] = None,
        timeout: float = DEFAULT_TIMEOUT_SEC,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store = store
        self.transport = transport
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=http_transport)
        self.coordinator = RefreshCoordinator(store, self._refresh_call, on_session_expired)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    def set_on_session_expired(self, callback: Optional[Callable[[], None]]) -> None:
        self.coordinator.on_session_expired = callback

    async def _send(self, method: str, url: str, credentials: Optional[Credentials], **kwargs) -> httpx.Response:
        request = self._client.build_request(method, url, **kwargs)
        self.transport.attach_credential(request, credentials)
        return await self._client.send(request)

    async def request(self, method: str, url: str, authenticated: bool = True, **kwargs) -> httpx.Response:
        if not authenticated:
            return await self._client.request(method, url, **kwargs)

        sent_with = self.store.get()
        response = await self._send(method, url, sent_with, **kwargs)
        if response.status_code != 401 or sent_with is None:
            # nothing to refresh without a stored session
            return response

        current = self.store.get()
        if current is None:
            # a refresh already failed while this call was in flight
            self.transport.clear_credential(self._client)
            raise SessionExpired(error_message(response, "Session expired"), status_code=401)
        if current.access_token != sent_with.access_token:
            # someone else refreshed while this call was in flight
            fresh = current
        else:
            try:
                fresh = await self.coordinator.refresh()
            except RefreshFailed:
                self.transport.clear_credential(self._client)
                raise SessionExpired(error_message(response, "Session expired"), status_code=401)

        # replayed exactly once; a second 401 goes back to the caller
        return await self._send(method, url, fresh, **kwargs)

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def _refresh_call(self, credentials: Credentials) -> Credentials:
        response = await self._client.post(
            endpoints.AUTH_TOKEN_REFRESH,
            **self.transport.refresh_request_kwargs(credentials),
        )
        if response.status_code >= 400:
            raise ApiError(error_message(response), status_code=response.status_code)
        fresh = self.transport.extract_credential_from_response(response)
        if not fresh:
            raise ApiError("refresh response carried no credentials", status_code=response.status_code)
        return fresh

    def save_credentials_from(self, response: httpx.Response) -> bool:
        creds = self.transport.extract_credential_from_response(response)
        if creds:
            self.store.set(creds)
        return creds is not None

    def clear_credentials(self) -> None:
        self.store.clear()
        self.transport.clear_credential(self._client)
