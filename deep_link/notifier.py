"""
Session change notifier: a safety net telling the auth state holder that a session
now exists, for platforms where the identity client's own change events arrive late
(observed on tablets while multitasking).
"""
import asyncio
import logging
from typing import Protocol

from deep_link.config import NOTIFY_DELAY_SECONDS
from identity_client.client import IdentityClient

logger = logging.getLogger(__name__)


class AuthStateSink(Protocol):
    def refresh_session(self) -> None: ...


class SessionChangeNotifier:
    def __init__(
        self,
        identity: IdentityClient,
        holder: AuthStateSink | None = None,
        *,
        delay: float = NOTIFY_DELAY_SECONDS,
    ) -> None:
        self._identity = identity
        self._holder = holder
        self._delay = delay

    def register(self, holder: AuthStateSink | None) -> None:
        self._holder = holder

    def notify(self) -> asyncio.TimerHandle | None:
        """
        Schedule a refresh after the fixed delay and return its handle. Fire-and-forget:
        the router never cancels it. Must be called from inside the running event loop.
        """
        if self._holder is None:
            logger.debug("No auth state holder registered; session notify skipped")
            return None
        loop = asyncio.get_running_loop()
        return loop.call_later(self._delay, self._refresh)

    def _refresh(self) -> None:
        holder = self._holder
        if holder is None:
            return
        if self._identity.current_session is None:
            logger.debug("Session notify fired but no session is present")
            return
        try:
            holder.refresh_session()
        except Exception:
            logger.exception("Auth state refresh failed")
