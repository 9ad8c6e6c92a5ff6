"""
How credentials travel between client and server.

Deployments have used both HTTP-only cookies and bearer tokens in the response
body, so the session client talks to a small capability interface and the
mode is picked once at startup.
"""

from typing import Optional

import httpx

from .storage import Credentials

ACCESS_TOKEN_COOKIE = "access_token"
REFRESH_TOKEN_COOKIE = "refresh_token"


class CredentialTransport:
    name = ""

    def attach_credential(self, request: httpx.Request, credentials: Optional[Credentials]) -> None:
        raise NotImplementedError

    def extract_credential_from_response(self, response: httpx.Response) -> Optional[Credentials]:
        raise NotImplementedError

    def clear_credential(self, client: httpx.AsyncClient) -> None:
        raise NotImplementedError

    def refresh_request_kwargs(self, credentials: Credentials) -> dict:
        """Extra arguments for the token refresh call carrying the refresh token."""
        raise NotImplementedError


class BearerTransport(CredentialTransport):
    name = "bearer"

    def attach_credential(self, request, credentials):
        if credentials:
            request.headers["Authorization"] = f"Bearer {credentials.access_token}"
        else:
            request.headers.pop("Authorization", None)

    def extract_credential_from_response(self, response):
        try:
            body = response.json()
        except ValueError:
            return None
        tokens = ((body or {}).get("data") or {}).get("tokens") or {}
        access, refresh = tokens.get("accessToken"), tokens.get("refreshToken")
        if access and refresh:
            return Credentials(access_token=access, refresh_token=refresh)
        return None

    def clear_credential(self, client):
        client.headers.pop("Authorization", None)

    def refresh_request_kwargs(self, credentials):
        return {"json": {"refreshToken": credentials.refresh_token}}


class CookieTransport(CredentialTransport):
    """
    Tokens arrive as Set-Cookie headers. They are lifted into the credential
    store and sent back as an explicit Cookie header, so the store (not the
    client's cookie jar) stays the single source of truth.
    """
    name = "cookie"

    def attach_credential(self, request, credentials):
        if credentials:
            request.headers["Cookie"] = f"{ACCESS_TOKEN_COOKIE}={credentials.access_token}"
        else:
            request.headers.pop("Cookie", None)

    @staticmethod
    def _cookie(response: httpx.Response, name: str) -> Optional[str]:
        # a cleared cookie expires on arrival or comes back as name=""
        value = (response.cookies.get(name) or "").strip('"')
        return value or None

    def extract_credential_from_response(self, response):
        access = self._cookie(response, ACCESS_TOKEN_COOKIE)
        refresh = self._cookie(response, REFRESH_TOKEN_COOKIE)
        if access and refresh:
            return Credentials(access_token=access, refresh_token=refresh)
        return None

    def clear_credential(self, client):
        client.cookies.clear()

    def refresh_request_kwargs(self, credentials):
        return {"headers": {"Cookie": f"{REFRESH_TOKEN_COOKIE}={credentials.refresh_token}"}}


def make_transport(mode: str) -> CredentialTransport:
    mode = (mode or "").strip().lower()
    if mode == "cookie":
        return CookieTransport()
    if mode == "bearer":
        return BearerTransport()
    raise ValueError(f"unknown auth transport: {mode!r}")
