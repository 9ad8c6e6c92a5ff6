import asyncio
from typing import Optional

import httpx

from backend.metadata import MetadataResolver

STRONG_PASSWORD = "SecurePass123!"


class FakeUpstream:
    """Stand-in for the sites the metadata resolver talks to, keyed by host + path."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, url: str, html: Optional[str] = None, json=None, status: int = 200, delay: float = 0.0):
        u = httpx.URL(url)
        self.routes[f"{u.host}{u.path}"] = (html, json, status, delay)

    def calls_to(self, fragment: str) -> int:
        return sum(1 for c in self.calls if fragment in c)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(str(request.url))
        route = self.routes.get(f"{request.url.host}{request.url.path}")
        if route is None:
            return httpx.Response(404, text="not found")
        html, json, status, delay = route
        if delay:
            await asyncio.sleep(delay)
        if json is not None:
            return httpx.Response(status, json=json)
        return httpx.Response(status, text=html or "", headers={"content-type": "text/html; charset=utf-8"})

    def resolver(self, **kwargs) -> MetadataResolver:
        return MetadataResolver(transport=httpx.MockTransport(self.handler), block_private_hosts=False, **kwargs)


def og_page(title: Optional[str] = None, image: Optional[str] = None, extra: str = "") -> str:
    tags = []
    if title:
        tags.append(f'<meta property="og:title" content="{title}">')
    if image:
        tags.append(f'<meta content="{image}" property="og:image" />')
    return f"<html><head>{''.join(tags)}{extra}</head><body></body></html>"


def register(client, email="ada@example.com", password=STRONG_PASSWORD, name="Ada Lovelace"):
    return client.post("/v1/api/auth/signup", json={"name": name, "email": email, "password": password})


def bearer(body) -> dict:
    return {"Authorization": f"Bearer {body['data']['tokens']['accessToken']}"}
