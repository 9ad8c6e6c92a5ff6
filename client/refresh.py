import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .errors import RefreshFailed
from .storage import CredentialStore, Credentials

logger = logging.getLogger(__name__)


class RefreshCoordinator:
    """
    Single-flight token refresh.

    Concurrent callers that hit a 401 at about the same time all await the
    same in-flight refresh. The in-flight task is forgotten as soon as it
    finishes (success or failure), so the next 401 starts a fresh one.
    Failure is terminal: the store is cleared and `on_session_expired` fires.
    """

    def __init__(
        self,
        store: CredentialStore,
        refresh_call: Callable[[Credentials], Awaitable[Credentials]],
        on_session_expired: Optional[Callable[[], None]] = None,
    ):
        self.store = store
        self._refresh_call = refresh_call
        self.on_session_expired = on_session_expired
        self._task: Optional[asyncio.Task] = None
        self.refresh_count = 0

    @property
    def in_flight(self) -> bool:
        return self._task is not None

    async def refresh(self) -> Credentials:
        if self._task is None:
            self._task = asyncio.ensure_future(self._run())
        # shield: one cancelled waiter must not cancel the refresh for the others
        return await asyncio.shield(self._task)

    async def _run(self) -> Credentials:
        try:
            self.refresh_count += 1
            current = self.store.get()
            if not current or not current.refresh_token:
                raise RefreshFailed("no refresh token")
            try:
                fresh = await self._refresh_call(current)
            except Exception as e:
                raise RefreshFailed(str(e) or e.__class__.__name__) from e
            # both tokens in one write
            self.store.set(fresh)
            logger.debug("access token refreshed")
            return fresh
        except RefreshFailed as e:
            logger.info(f"token refresh failed, ending session: {e}")
            self.store.clear()
            if self.on_session_expired:
                try:
                    self.on_session_expired()
                except Exception:
                    logger.exception("on_session_expired callback failed")
            raise
        finally:
            self._task = None
