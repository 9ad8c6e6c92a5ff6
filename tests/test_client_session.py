import asyncio
import json

import httpx
import pytest

from client import endpoints
from client.api import AuthApi, LinksApi
from client.errors import ApiError, SessionExpired
from client.session import SessionClient, error_message
from client.storage import Credentials, MemoryCredentialStore
from client.transport import BearerTransport, CookieTransport, make_transport
from helpers import STRONG_PASSWORD


class FakeAuthServer:
    """Bearer-mode server: one protected route and a refresh route with a bit of latency."""

    def __init__(self, access="a1", refresh="r1", refresh_ok=True, always_401=False):
        self.access = access
        self.refresh = refresh
        self.refresh_ok = refresh_ok
        self.always_401 = always_401
        self.refresh_calls = 0
        self.protected_calls = 0

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == endpoints.AUTH_TOKEN_REFRESH:
            self.refresh_calls += 1
            await asyncio.sleep(0.05)
            sent = json.loads(request.content or b"{}").get("refreshToken")
            if not self.refresh_ok or sent != self.refresh:
                return httpx.Response(401, json={"success": False, "message": "Invalid or expired refresh token"})
            n = self.refresh_calls + 1
            self.access, self.refresh = f"a{n}", f"r{n}"
            tokens = {"accessToken": self.access, "refreshToken": self.refresh}
            return httpx.Response(200, json={"success": True, "message": "Token refreshed successfully", "data": {"tokens": tokens}})

        self.protected_calls += 1
        if request.url.path.endswith("/slow"):
            await asyncio.sleep(0.2)
        if self.always_401 or request.headers.get("Authorization") != f"Bearer {self.access}":
            return httpx.Response(401, json={"success": False, "message": "Invalid or expired access token"})
        return httpx.Response(200, json={"success": True, "message": "ok", "data": {"user": {"id": "u1"}}})


def make_session(server, credentials, on_expired=None, transport=None):
    return SessionClient(
        "http://api.test",
        MemoryCredentialStore(credentials),
        transport or BearerTransport(),
        on_session_expired=on_expired,
        http_transport=httpx.MockTransport(server.handler),
    )


@pytest.mark.asyncio
async def test_valid_token_needs_no_refresh():
    server = FakeAuthServer()
    async with make_session(server, Credentials("a1", "r1")) as session:
        response = await session.get(endpoints.AUTH_ME)
    assert response.status_code == 200
    assert server.refresh_calls == 0


@pytest.mark.asyncio
async def test_concurrent_401s_share_one_refresh():
    server = FakeAuthServer()
    async with make_session(server, Credentials("stale", "r1")) as session:
        responses = await asyncio.gather(*(session.get(endpoints.AUTH_ME) for _ in range(5)))
        assert [r.status_code for r in responses] == [200] * 5
        assert server.refresh_calls == 1
        assert session.coordinator.refresh_count == 1
        assert not session.coordinator.in_flight
        assert session.store.get() == Credentials(server.access, server.refresh)


@pytest.mark.asyncio
async def test_refresh_failure_ends_the_session():
    server = FakeAuthServer(refresh_ok=False)
    expired = []
    async with make_session(server, Credentials("stale", "r1"), on_expired=lambda: expired.append(True)) as session:
        results = await asyncio.gather(
            *(session.get(endpoints.AUTH_ME) for _ in range(3)), return_exceptions=True
        )
        assert all(isinstance(r, SessionExpired) for r in results)
        assert results[0].message == "Invalid or expired access token"
        assert results[0].status_code == 401
        assert session.store.get() is None
    assert server.refresh_calls == 1
    assert expired == [True]


@pytest.mark.asyncio
async def test_late_401_after_failed_refresh_does_not_expire_twice():
    server = FakeAuthServer(refresh_ok=False)
    expired = []
    async with make_session(server, Credentials("stale", "r1"), on_expired=lambda: expired.append(True)) as session:
        # the slow call gets its 401 only after the refresh has already failed
        results = await asyncio.gather(
            session.get(endpoints.AUTH_ME),
            session.get(endpoints.AUTH_ME + "/slow"),
            return_exceptions=True,
        )
        assert all(isinstance(r, SessionExpired) for r in results)
        assert results[1].message == "Invalid or expired access token"
    assert server.refresh_calls == 1
    assert expired == [True]


@pytest.mark.asyncio
async def test_next_401_after_failure_starts_a_new_refresh():
    server = FakeAuthServer(refresh_ok=False)
    async with make_session(server, Credentials("stale", "r1")) as session:
        with pytest.raises(SessionExpired):
            await session.get(endpoints.AUTH_ME)
        server.refresh_ok = True
        session.store.set(Credentials("stale", "r1"))
        response = await session.get(endpoints.AUTH_ME)
    assert response.status_code == 200
    assert server.refresh_calls == 2


@pytest.mark.asyncio
async def test_replay_happens_at_most_once():
    server = FakeAuthServer(always_401=True)
    async with make_session(server, Credentials("a1", "r1")) as session:
        response = await session.get(endpoints.AUTH_ME)
    assert response.status_code == 401
    assert server.protected_calls == 2
    assert server.refresh_calls == 1


@pytest.mark.asyncio
async def test_no_stored_session_means_no_refresh():
    server = FakeAuthServer()
    async with make_session(server, None) as session:
        response = await session.get(endpoints.AUTH_ME)
    assert response.status_code == 401
    assert server.refresh_calls == 0


def test_error_message_fallbacks():
    assert error_message(httpx.Response(400, json={"message": "Bad input"})) == "Bad input"
    assert error_message(httpx.Response(400, json={"errors": {"url": ["Please provide a valid URL"]}})) == "Please provide a valid URL"
    assert error_message(httpx.Response(500, text="<html>oops</html>"), "fallback") == "fallback"


# ------------------------------------------------------------------------------
# transports
# ------------------------------------------------------------------------------
LOGIN_REQUEST = httpx.Request("POST", "http://api.test/v1/api/auth/login")


def test_cookie_transport_reads_set_cookie_headers():
    response = httpx.Response(
        200,
        headers=[
            ("set-cookie", "access_token=abc.def.ghi; HttpOnly; Max-Age=3600; Path=/; SameSite=lax"),
            ("set-cookie", "refresh_token=jkl.mno.pqr; HttpOnly; Max-Age=604800; Path=/; SameSite=lax"),
        ],
        json={"success": True, "message": "Login successful"},
        request=LOGIN_REQUEST,
    )
    creds = CookieTransport().extract_credential_from_response(response)
    assert creds == Credentials("abc.def.ghi", "jkl.mno.pqr")


def test_cookie_transport_ignores_cleared_cookies():
    response = httpx.Response(200, request=LOGIN_REQUEST, headers=[
        ("set-cookie", 'access_token=""; Max-Age=0; Path=/'),
        ("set-cookie", 'refresh_token=""; Max-Age=0; Path=/'),
    ])
    assert CookieTransport().extract_credential_from_response(response) is None


def test_cookie_transport_attaches_cookie_headers():
    transport = CookieTransport()
    request = httpx.Request("GET", "http://api.test/v1/api/auth/me")
    transport.attach_credential(request, Credentials("acc", "ref"))
    assert request.headers["Cookie"] == "access_token=acc"
    assert transport.refresh_request_kwargs(Credentials("acc", "ref")) == {"headers": {"Cookie": "refresh_token=ref"}}


def test_bearer_transport():
    transport = BearerTransport()
    request = httpx.Request("GET", "http://api.test/v1/api/auth/me")
    transport.attach_credential(request, Credentials("acc", "ref"))
    assert request.headers["Authorization"] == "Bearer acc"
    body = {"success": True, "data": {"tokens": {"accessToken": "x", "refreshToken": "y"}}}
    assert transport.extract_credential_from_response(httpx.Response(200, json=body)) == Credentials("x", "y")
    assert transport.extract_credential_from_response(httpx.Response(200, json={"success": True})) is None


def test_make_transport():
    assert isinstance(make_transport("Cookie"), CookieTransport)
    assert isinstance(make_transport("bearer"), BearerTransport)
    with pytest.raises(ValueError):
        make_transport("carrier-pigeon")


# ------------------------------------------------------------------------------
# against the real app
# ------------------------------------------------------------------------------
def _app_session(api_app, transport):
    return SessionClient(
        "http://testserver",
        MemoryCredentialStore(),
        transport,
        http_transport=httpx.ASGITransport(app=api_app),
    )


@pytest.mark.asyncio
async def test_bearer_session_end_to_end(api_app, upstream):
    upstream.add("https://www.youtube.com/watch", html="<html><head></head></html>")
    async with _app_session(api_app, BearerTransport()) as session:
        auth = AuthApi(session)
        await auth.register("Ada Lovelace", "ada@example.com", STRONG_PASSWORD)
        issued = session.store.get()
        assert issued is not None

        # simulate an expired access token; the refresh token is still good
        session.store.set(Credentials("expired", issued.refresh_token))
        me = await auth.me()
        assert me["data"]["user"]["email"] == "ada@example.com"
        assert session.coordinator.refresh_count == 1
        assert session.store.get().refresh_token != issued.refresh_token

        links = LinksApi(session)
        saved = await links.create("https://www.youtube.com/watch?v=dQw4w9WgXcQ", category="music")
        assert saved["source"] == "youtube"
        assert saved["thumbnailUrl"] == "https://img.youtube.com/vi/dQw4w9WgXcQ/hqdefault.jpg"
        assert [l["id"] for l in await links.list(category="music")] == [saved["id"]]

        await auth.logout()
        assert session.store.get() is None
        with pytest.raises(ApiError) as exc:
            await auth.me()
        assert exc.value.status_code == 401


@pytest.mark.asyncio
async def test_cookie_session_end_to_end(api_app, monkeypatch):
    from backend import config
    monkeypatch.setattr(config, "AUTH_TRANSPORT", "cookie")
    async with _app_session(api_app, CookieTransport()) as session:
        auth = AuthApi(session)
        await auth.register("Ada Lovelace", "ada@example.com", STRONG_PASSWORD)
        issued = session.store.get()
        assert issued is not None

        session.store.set(Credentials("expired", issued.refresh_token))
        me = await auth.me()
        assert me["data"]["user"]["name"] == "Ada Lovelace"
        assert session.store.get().access_token != "expired"


@pytest.mark.asyncio
async def test_stale_refresh_token_ends_session(api_app):
    expired = []
    async with _app_session(api_app, BearerTransport()) as session:
        session.set_on_session_expired(lambda: expired.append(True))
        auth = AuthApi(session)
        await auth.register("Ada Lovelace", "ada@example.com", STRONG_PASSWORD)
        first = session.store.get()
        await auth.refresh()
        assert session.store.get().refresh_token != first.refresh_token

        # replaying the rotated-out refresh token is refused
        session.store.set(Credentials("expired", first.refresh_token))
        with pytest.raises(SessionExpired):
            await auth.me()
        assert session.store.get() is None
    assert expired == [True]


def test_cookie_transport_needs_both_cookies():
    response = httpx.Response(200, request=LOGIN_REQUEST, headers=[
        ("set-cookie", "access_token=abc; HttpOnly; Path=/"),
    ])
    assert CookieTransport().extract_credential_from_response(response) is None
