import pytest

from backend.models import Link, User
from worker.worker import backfill_pass, run


def _add_links(session, *urls):
    user = User(name="Ada", email="ada@example.com")
    session.add(user)
    session.flush()
    links = [Link(user_id=user.id, url=u, source="other") for u in urls]
    session.add_all(links)
    session.commit()
    return [l.id for l in links]


@pytest.mark.asyncio
async def test_backfill_pass_fills_and_remembers_attempts(session, session_factory, upstream):
    yt, ig = _add_links(session, "https://youtu.be/dQw4w9WgXcQ", "https://www.instagram.com/p/gone/")
    seen = set()
    resolver = upstream.resolver()

    assert await backfill_pass(resolver, seen, session_factory=session_factory) == 1
    assert seen == {yt, ig}
    oembed_calls = upstream.calls_to("api.instagram.com/oembed")

    # the unresolvable instagram link is not retried by this process
    assert await backfill_pass(resolver, seen, session_factory=session_factory) == 0
    assert upstream.calls_to("api.instagram.com/oembed") == oembed_calls

    session.expire_all()
    assert session.get(Link, yt).thumbnail_url == "https://img.youtube.com/vi/dQw4w9WgXcQ/hqdefault.jpg"
    assert session.get(Link, ig).thumbnail_url is None


@pytest.mark.asyncio
async def test_backfill_pass_respects_batch_size(session, session_factory, upstream):
    _add_links(session, *(f"https://youtu.be/{c * 11}" for c in "abc"))
    seen = set()
    resolver = upstream.resolver()
    assert await backfill_pass(resolver, seen, batch_size=2, session_factory=session_factory) == 2
    assert await backfill_pass(resolver, seen, batch_size=2, session_factory=session_factory) == 1
    assert await backfill_pass(resolver, seen, batch_size=2, session_factory=session_factory) == 0


@pytest.mark.asyncio
async def test_run_once_survives_a_failing_pass(monkeypatch, upstream):
    calls = []

    async def broken(resolver, seen, **kwargs):
        calls.append(resolver)
        raise RuntimeError("db down")

    monkeypatch.setattr("worker.worker.backfill_pass", broken)
    resolver = upstream.resolver()
    await run(0, once=True, resolver=resolver)
    assert calls == [resolver]
