"""
Session cookie sync bridge: after a client obtains a session (either grant type),
push the token pair to POST /api/auth/session so server-rendered pages see it.
A failed sync never undoes or blocks the client-side sign-in.
"""
import logging

import httpx

from identity_client.session_store import Session
from web_app.config import SITE_URL

logger = logging.getLogger(__name__)

SESSION_SYNC_ENDPOINT = "/api/auth/session"


class SessionSyncError(Exception):
    """str(error) is the server-reported error, 'no-session' or 'session-sync-failed'."""


class SessionCookieSync:
    def __init__(
        self,
        base_url: str = SITE_URL,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def sync(self, session: Session | None) -> None:
        if session is None or not session.access_token or not session.refresh_token:
            raise SessionSyncError("no-session")
        try:
            r = await self._http.post(
                SESSION_SYNC_ENDPOINT,
                json={"access_token": session.access_token, "refresh_token": session.refresh_token},
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as e:
            raise SessionSyncError("session-sync-failed") from e
        if r.is_success:
            return
        try:
            error = r.json().get("error")
        except (ValueError, AttributeError):
            error = None
        raise SessionSyncError(error if isinstance(error, str) and error else "session-sync-failed")


async def sync_after_sign_in(bridge: SessionCookieSync, session: Session | None) -> bool:
    """Sync and report; a failure is only a diagnostic, sign-in stays successful."""
    try:
        await bridge.sync(session)
    except SessionSyncError as e:
        logger.warning("Session cookie sync failed: %s (sign-in unaffected)", e)
        return False
    return True
