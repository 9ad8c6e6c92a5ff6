"""
Best-effort link metadata (title + thumbnail) discovery.

Strategies run in a fixed order and each one only fills what the previous
ones left empty:

1. generic Open Graph fetch of the page itself
2. YouTube thumbnail derived from the video id (no network)
3. Instagram oEmbed, then a wider meta tag sweep of the page
4. Facebook meta tag sweep (includes og:video:thumbnail)
5. LinkedIn meta tag sweep

Every network call has its own deadline and is isolated: any failure turns
into ``None`` for that step. Nothing in here raises to the caller.
"""

import asyncio
import html as html_lib
import ipaddress
import re
import socket
from dataclasses import dataclass
from typing import Optional, Sequence
from urllib.parse import urlsplit

import httpx
from bs4 import BeautifulSoup

from . import config
from .errors import UpstreamFetchError
from .logging_config import get_logger

logger = get_logger(__name__)

UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 13_4) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/125.0 Safari/537.36"
)
HTML_HEADERS = {
    "User-Agent": UA,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

TITLE_MAX = 500

OG_IMAGE_KEYS = ("og:image",)
OG_TITLE_KEYS = ("og:title",)
INSTAGRAM_IMAGE_KEYS = ("og:image", "twitter:image", "og:image:secure_url")
FACEBOOK_IMAGE_KEYS = ("og:image", "og:video:thumbnail", "twitter:image", "og:image:secure_url")
LINKEDIN_IMAGE_KEYS = ("og:image", "twitter:image", "og:image:secure_url")

INSTAGRAM_OEMBED_URL = "https://api.instagram.com/oembed/"

YOUTUBE_VIDEO_ID_RE = re.compile(
    r"(?:youtube\.com/watch\?(?:[^#\s]*&)?v=|youtube\.com/shorts/|youtu\.be/)([A-Za-z0-9_-]{11})",
    re.I,
)
INSTAGRAM_RE = re.compile(r"instagram\.com|instagr\.am", re.I)
FACEBOOK_RE = re.compile(r"facebook\.com|fb\.watch|fb\.com", re.I)
LINKEDIN_RE = re.compile(r"linkedin\.com", re.I)

PRIVATE_NETS = [ipaddress.ip_network(n) for n in [
    "10.0.0.0/8","172.16.0.0/12","192.168.0.0/16","127.0.0.0/8","169.254.0.0/16","::1/128","fc00::/7","fe80::/10"
]]


@dataclass
class Metadata:
    title: Optional[str] = None
    thumbnail_url: Optional[str] = None

    @property
    def complete(self) -> bool:
        return bool(self.title and self.thumbnail_url)


# ------------------------------------------------------------------------------
# Meta tag parsing
# ------------------------------------------------------------------------------
class MetaParser:
    """Finds the content of the first `<meta property|name=key>` tag among `keys`."""

    def find(self, html: str, keys: Sequence[str]) -> Optional[str]:
        raise NotImplementedError


class RegexMetaParser(MetaParser):
    """Tolerant regex scan; attribute order inside the tag does not matter."""

    _TAG = re.compile(r"<meta\b[^>]*>", re.I)
    _ATTR = re.compile(r"""([a-zA-Z_:][-\w:.]*)\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>/]+))""")

    def _tags(self, html: str):
        for m in self._TAG.finditer(html):
            attrs = {}
            for a in self._ATTR.finditer(m.group(0)):
                value = next((g for g in a.groups()[1:] if g is not None), "")
                attrs[a.group(1).lower()] = value
            yield attrs

    def find(self, html: str, keys: Sequence[str]) -> Optional[str]:
        if not html:
            return None
        found = {}
        for attrs in self._tags(html):
            key = (attrs.get("property") or attrs.get("name") or "").strip().lower()
            content = (attrs.get("content") or "").strip()
            if key and content and key not in found:
                found[key] = html_lib.unescape(content)
        for k in keys:
            if found.get(k):
                return found[k]
        return None


class SoupMetaParser(MetaParser):
    def find(self, html: str, keys: Sequence[str]) -> Optional[str]:
        if not html:
            return None
        soup = BeautifulSoup(html, "html.parser")
        for k in keys:
            for attr in ("property", "name"):
                tag = soup.find("meta", attrs={attr: re.compile(rf"^\s*{re.escape(k)}\s*$", re.I)})
                if tag and (tag.get("content") or "").strip():
                    return tag["content"].strip()
        return None


def get_meta_parser(kind: str = "") -> MetaParser:
    kind = (kind or config.META_PARSER).lower()
    return RegexMetaParser() if kind == "regex" else SoupMetaParser()


# ------------------------------------------------------------------------------
# URL helpers
# ------------------------------------------------------------------------------
def normalize_image_url(href: Optional[str]) -> Optional[str]:
    href = (href or "").strip()
    if href.startswith(("http://", "https://")):
        return href
    if href.startswith("//"):
        return f"https:{href}"
    return None


def get_youtube_video_id(url: str) -> Optional[str]:
    m = YOUTUBE_VIDEO_ID_RE.search(url or "")
    return m.group(1) if m else None


def get_youtube_thumbnail_url(url: str) -> Optional[str]:
    video_id = get_youtube_video_id(url)
    if not video_id:
        return None
    return f"https://img.youtube.com/vi/{video_id}/hqdefault.jpg"


def is_instagram_url(url: str) -> bool:
    return bool(INSTAGRAM_RE.search(url or ""))


def is_facebook_url(url: str) -> bool:
    return bool(FACEBOOK_RE.search(url or ""))


def is_linkedin_url(url: str) -> bool:
    return bool(LINKEDIN_RE.search(url or ""))


def is_private_host(host: str) -> bool:
    try:
        infos = socket.getaddrinfo(host, None)
        for _,_,_,_,addr in infos:
            ip = ipaddress.ip_address(addr[0])
            if any(ip in net for net in PRIVATE_NETS):
                return True
        return False
    except Exception:
        return True


# ------------------------------------------------------------------------------
# Resolver
# ------------------------------------------------------------------------------
class MetadataResolver:
    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        parser: Optional[MetaParser] = None,
        block_private_hosts: Optional[bool] = None,
        og_timeout: float = config.OG_FETCH_TIMEOUT_SEC,
        oembed_timeout: float = config.OEMBED_TIMEOUT_SEC,
        platform_timeout: float = config.PLATFORM_FETCH_TIMEOUT_SEC,
    ):
        self.transport = transport
        self.parser = parser or get_meta_parser()
        self.block_private_hosts = config.BLOCK_PRIVATE_HOSTS if block_private_hosts is None else block_private_hosts
        self.og_timeout = og_timeout
        self.oembed_timeout = oembed_timeout
        self.platform_timeout = platform_timeout

    async def _get(self, url: str, timeout: float, params: Optional[dict] = None, headers: Optional[dict] = None) -> httpx.Response:
        if not url.startswith(("http://", "https://")):
            raise UpstreamFetchError("invalid scheme")
        host = urlsplit(url).hostname or ""

        async def _do():
            # the DNS lookup counts against the same deadline as the fetch
            if self.block_private_hosts and await asyncio.to_thread(is_private_host, host):
                raise UpstreamFetchError("blocked host")
            async with httpx.AsyncClient(
                timeout=timeout,
                follow_redirects=True,
                headers=headers or HTML_HEADERS,
                transport=self.transport,
            ) as client:
                r = await client.get(url, params=params)
                r.raise_for_status()
                return r

        try:
            # hard deadline for the whole call, httpx timeouts are per phase
            return await asyncio.wait_for(_do(), timeout=timeout)
        except asyncio.TimeoutError:
            raise UpstreamFetchError(f"timed out after {timeout}s")
        except httpx.HTTPError as e:
            raise UpstreamFetchError(str(e) or e.__class__.__name__)

    async def fetch_html(self, url: str, timeout: float) -> Optional[str]:
        try:
            r = await self._get(url, timeout)
            ct = r.headers.get("content-type", "")
            text = r.text or ""
            if "html" not in ct and "<html" not in text[:4096].lower():
                return None
            return text[:config.MAX_HTML_BYTES]
        except UpstreamFetchError as e:
            logger.debug(f"html fetch failed for {url}: {e}")
            return None
        except Exception as e:
            # undecodable body and the like
            logger.debug(f"html fetch failed for {url}: {e!r}")
            return None

    async def fetch_og_metadata(self, url: str) -> Metadata:
        html = await self.fetch_html(url, self.og_timeout)
        if not html:
            return Metadata()
        thumb = normalize_image_url(self.parser.find(html, OG_IMAGE_KEYS))
        title = (self.parser.find(html, OG_TITLE_KEYS) or "").strip()[:TITLE_MAX] or None
        return Metadata(title=title, thumbnail_url=thumb)

    async def _meta_image(self, url: str, keys: Sequence[str]) -> Optional[str]:
        html = await self.fetch_html(url, self.platform_timeout)
        if not html:
            return None
        return normalize_image_url(self.parser.find(html, keys))

    async def instagram_thumbnail(self, url: str) -> Optional[str]:
        try:
            r = await self._get(
                INSTAGRAM_OEMBED_URL,
                self.oembed_timeout,
                params={"url": url},
                headers={"User-Agent": UA, "Accept": "application/json"},
            )
            thumb = normalize_image_url(r.json().get("thumbnail_url"))
            if thumb:
                return thumb
        except UpstreamFetchError as e:
            logger.debug(f"instagram oembed failed for {url}: {e}")
        except (ValueError, AttributeError) as e:
            logger.debug(f"instagram oembed returned a bad body for {url}: {e!r}")
        return await self._meta_image(url, INSTAGRAM_IMAGE_KEYS)

    async def facebook_thumbnail(self, url: str) -> Optional[str]:
        return await self._meta_image(url, FACEBOOK_IMAGE_KEYS)

    async def linkedin_thumbnail(self, url: str) -> Optional[str]:
        return await self._meta_image(url, LINKEDIN_IMAGE_KEYS)

    async def resolve_thumbnail(self, url: str) -> Optional[str]:
        """Platform fallback chain only; used for backfill."""
        thumb = get_youtube_thumbnail_url(url)
        if thumb:
            return thumb
        if is_instagram_url(url):
            return await self.instagram_thumbnail(url)
        if is_facebook_url(url):
            return await self.facebook_thumbnail(url)
        if is_linkedin_url(url):
            return await self.linkedin_thumbnail(url)
        return None

    async def resolve(self, url: str, title: Optional[str] = None, thumbnail_url: Optional[str] = None) -> Metadata:
        """Fill in whatever of title/thumbnail_url is missing. Caller values always win."""
        meta = Metadata(title=title or None, thumbnail_url=thumbnail_url or None)
        try:
            if not meta.complete:
                og = await self.fetch_og_metadata(url)
                meta.title = meta.title or og.title
                meta.thumbnail_url = meta.thumbnail_url or og.thumbnail_url
            if not meta.thumbnail_url:
                meta.thumbnail_url = await self.resolve_thumbnail(url)
        except Exception:
            logger.exception(f"metadata resolution crashed for {url}")
        return meta
