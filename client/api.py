from typing import Any, Dict, List, Optional

import httpx

from . import endpoints
from .errors import ApiError
from .session import SessionClient, error_message


def read_envelope(response: httpx.Response) -> Dict[str, Any]:
    """Return the envelope of a successful call, raise `ApiError` otherwise."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if response.status_code >= 400 or not isinstance(body, dict) or not body.get("success"):
        errors = body.get("errors") if isinstance(body, dict) else None
        raise ApiError(error_message(response), status_code=response.status_code, errors=errors)
    return body


class AuthApi:
    def __init__(self, session: SessionClient):
        self.session = session

    async def _issue(self, path: str, payload: dict) -> Dict[str, Any]:
        response = await self.session.post(path, json=payload, authenticated=False)
        body = read_envelope(response)
        self.session.save_credentials_from(response)
        return body

    async def register(self, name: str, email: str, password: str) -> Dict[str, Any]:
        return await self._issue(endpoints.AUTH_SIGNUP, {"name": name, "email": email, "password": password})

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        return await self._issue(endpoints.AUTH_LOGIN, {"email": email, "password": password})

    async def google_sign_in(self, id_token: str) -> Dict[str, Any]:
        """Exchange an ID token from the platform's Google sign-in for a session."""
        return await self._issue(endpoints.AUTH_GOOGLE, {"idToken": id_token})

    async def logout(self) -> None:
        """Best effort server call; local credentials are cleared no matter what."""
        try:
            if self.session.store.get():
                await self.session.post(endpoints.AUTH_LOGOUT)
        except (ApiError, httpx.HTTPError):
            pass
        finally:
            self.session.clear_credentials()

    async def me(self) -> Dict[str, Any]:
        return read_envelope(await self.session.get(endpoints.AUTH_ME))

    async def refresh(self) -> None:
        """Explicit refresh; normally the session client does this on its own."""
        await self.session.coordinator.refresh()

    async def update_profile(self, name: Optional[str] = None, avatar: Optional[str] = None) -> Dict[str, Any]:
        payload = {k: v for k, v in (("name", name), ("avatar", avatar)) if v is not None}
        return read_envelope(await self.session.put(endpoints.AUTH_PROFILE, json=payload))

    async def update_password(self, current_password: str, new_password: str) -> Dict[str, Any]:
        payload = {"currentPassword": current_password, "newPassword": new_password}
        return read_envelope(await self.session.put(endpoints.AUTH_PASSWORD, json=payload))


class LinksApi:
    def __init__(self, session: SessionClient):
        self.session = session

    async def create(self, url: str, source: Optional[str] = None, title: Optional[str] = None,
                     category: Optional[str] = None, thumbnail_url: Optional[str] = None) -> Dict[str, Any]:
        payload = {"url": url, "source": source, "title": title, "category": category, "thumbnailUrl": thumbnail_url}
        payload = {k: v for k, v in payload.items() if v is not None}
        return read_envelope(await self.session.post(endpoints.LINKS, json=payload))["data"]

    async def list(self, search: Optional[str] = None, source: Optional[str] = None,
                   category: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {k: v for k, v in (("search", search), ("source", source), ("category", category)) if v}
        body = read_envelope(await self.session.get(endpoints.LINKS, params=params))
        if not isinstance(body.get("data"), list):
            raise ApiError(body.get("message") or "Failed to fetch links")
        return body["data"]
