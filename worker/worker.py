import argparse
import asyncio
from typing import Optional, Set

from sqlalchemy import select

from backend import config
from backend.db import SessionLocal, init_db
from backend.links_service import LinksService
from backend.logging_config import configure_logging, get_logger
from backend.metadata import MetadataResolver
from backend.models import Link

logger = get_logger("worker")


async def backfill_pass(resolver: MetadataResolver, seen: Set[str], batch_size: int = config.WORKER_BATCH_SIZE, session_factory=SessionLocal) -> int:
    """
    Resolve thumbnails for links still missing one. `seen` holds ids already
    attempted by this process so unresolvable links are not hammered every pass.
    """
    with session_factory() as s:
        stmt = select(Link).where(Link.thumbnail_url.is_(None))
        if seen:
            stmt = stmt.where(Link.id.notin_(list(seen)))
        stmt = stmt.order_by(Link.created_at.desc()).limit(batch_size)
        links = s.execute(stmt).scalars().all()
        if not links:
            return 0
        seen.update(l.id for l in links)
        return await LinksService(s, resolver).backfill(links)


async def run(interval: float, once: bool = False, resolver: Optional[MetadataResolver] = None):
    resolver = resolver or MetadataResolver()
    seen: Set[str] = set()
    logger.info("backfill loop starting")
    while True:
        try:
            filled = await backfill_pass(resolver, seen)
            if filled:
                logger.info(f"pass filled {filled} thumbnail(s)")
        except Exception:
            logger.exception("backfill pass failed")
        if once:
            return
        await asyncio.sleep(interval)


def main():
    parser = argparse.ArgumentParser(description="Backfill missing link thumbnails")
    parser.add_argument("--once", action="store_true", help="run a single pass and exit")
    parser.add_argument("--interval", type=float, default=config.WORKER_INTERVAL_SEC)
    args = parser.parse_args()

    configure_logging()
    init_db()
    asyncio.run(run(args.interval, once=args.once))


if __name__ == "__main__":
    main()
