from typing import List, Optional

from sqlalchemy import select, or_
from sqlalchemy.orm import Session

from .logging_config import get_logger
from .metadata import MetadataResolver
from .models import Link, LINK_SOURCES

logger = get_logger(__name__)

# first match wins, checked in this order against the lowercased url
SOURCE_PATTERNS = (
    ("instagram", ("instagram.com", "instagr.am")),
    ("facebook", ("facebook.com", "fb.com", "fb.me", "fb.watch")),
    ("twitter", ("twitter.com", "x.com")),
    ("tiktok", ("tiktok.com",)),
    ("youtube", ("youtube.com", "youtu.be")),
    ("linkedin", ("linkedin.com",)),
)


def infer_source(url: str) -> str:
    u = (url or "").lower()
    for source, needles in SOURCE_PATTERNS:
        if any(n in u for n in needles):
            return source
    return "other"


def _escape_like(term: str) -> str:
    # search is a plain substring match, so LIKE wildcards are literal
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def link_to_dict(link: Link) -> dict:
    return {
        "id": link.id,
        "url": link.url,
        "source": link.source,
        "title": link.title,
        "category": link.category,
        "thumbnailUrl": link.thumbnail_url,
        "createdAt": link.created_at.isoformat() if link.created_at else None,
    }


class LinksService:
    def __init__(self, db: Session, resolver: MetadataResolver):
        self.db = db
        self.resolver = resolver

    async def create(
        self,
        user_id: str,
        url: str,
        source: Optional[str] = None,
        title: Optional[str] = None,
        category: Optional[str] = None,
        thumbnail_url: Optional[str] = None,
    ) -> Link:
        url = (url or "").strip()
        if source not in LINK_SOURCES:
            source = infer_source(url)

        if not title or not thumbnail_url:
            meta = await self.resolver.resolve(url, title=title, thumbnail_url=thumbnail_url)
            title, thumbnail_url = meta.title, meta.thumbnail_url

        link = Link(
            user_id=user_id,
            url=url,
            source=source,
            title=title or None,
            category=category or None,
            thumbnail_url=thumbnail_url or None,
        )
        self.db.add(link)
        self.db.commit()
        self.db.refresh(link)
        logger.info(f"saved link {link.id} ({link.source}) for user {user_id}, thumbnail={'yes' if link.thumbnail_url else 'no'}")
        return link

    async def list(
        self,
        user_id: str,
        search: Optional[str] = None,
        source: Optional[str] = None,
        category: Optional[str] = None,
    ) -> List[Link]:
        stmt = select(Link).where(Link.user_id == user_id)
        if source:
            stmt = stmt.where(Link.source == source)
        if category and category.strip():
            stmt = stmt.where(Link.category == category.strip())
        if search and search.strip():
            like = f"%{_escape_like(search.strip())}%"
            stmt = stmt.where(or_(Link.url.ilike(like, escape="\\"), Link.title.ilike(like, escape="\\")))
        stmt = stmt.order_by(Link.created_at.desc())
        links: List[Link] = self.db.execute(stmt).scalars().all()

        await self.backfill(links)
        return links

    async def backfill(self, links: List[Link]) -> int:
        """
        Resolve thumbnails that are still missing and persist them, so the
        next read serves them from the row instead of the network.
        """
        filled = 0
        for link in links:
            if link.thumbnail_url:
                continue
            thumb = await self.resolver.resolve_thumbnail(link.url)
            if thumb:
                link.thumbnail_url = thumb
                filled += 1
        if filled:
            self.db.commit()
            logger.info(f"backfilled {filled} thumbnail(s)")
        return filled
