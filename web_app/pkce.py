"""
PKCE secret store for the browser path.

Keeps the code_verifier in an HttpOnly cookie named pkce_<state> so a magic link
opened in another tab of the same browser can still finish the exchange. The
verifier never reaches script-readable storage. Expiry is enforced by the
browser through Max-Age; read() does not re-check it.
"""
import logging
import re
import secrets
import time
from dataclasses import dataclass, field

from fastapi import Request, Response

from identity_client.pkce import code_challenge_s256
from web_app.config import IS_PRODUCTION, PKCE_COOKIE_PREFIX, PKCE_TTL_SECONDS

logger = logging.getLogger(__name__)

STATE_BYTES = 32
VERIFIER_BYTES = 64
_STATE_RE = re.compile(r"^[0-9a-f]{%d}$" % (STATE_BYTES * 2))


@dataclass(frozen=True)
class PkceSession:
    state: str
    code_verifier: str = field(repr=False)
    code_challenge: str
    created_at: float
    ttl: int = PKCE_TTL_SECONDS


class PkceSecretStore:
    def __init__(
        self,
        *,
        secure: bool = IS_PRODUCTION,
        ttl: int = PKCE_TTL_SECONDS,
        prefix: str = PKCE_COOKIE_PREFIX,
    ) -> None:
        self.secure = secure
        self.ttl = ttl
        self.prefix = prefix

    def cookie_name(self, state: str) -> str:
        return f"{self.prefix}{state}"

    def create(self, response: Response) -> PkceSession:
        """New state/verifier pair; the verifier cookie is attached to response."""
        state = secrets.token_hex(STATE_BYTES)
        code_verifier = secrets.token_hex(VERIFIER_BYTES)
        pkce = PkceSession(
            state=state,
            code_verifier=code_verifier,
            code_challenge=code_challenge_s256(code_verifier),
            created_at=time.time(),
            ttl=self.ttl,
        )
        response.set_cookie(
            key=self.cookie_name(state),
            value=code_verifier,
            max_age=self.ttl,
            path="/",
            secure=self.secure,
            httponly=True,
            samesite="lax",
        )
        logger.info("PKCE session created state=%s****", state[:6])
        return pkce

    def read(self, request: Request, state: str) -> str | None:
        """Verifier for exactly this state, or None if absent/expired/malformed."""
        if not state or not _STATE_RE.match(state):
            logger.info("PKCE read rejected malformed state")
            return None
        value = request.cookies.get(self.cookie_name(state)) or None
        logger.info("PKCE verifier read state=%s**** found=%s", state[:6], value is not None)
        return value

    def delete(self, response: Response, state: str) -> None:
        response.delete_cookie(
            key=self.cookie_name(state),
            path="/",
            secure=self.secure,
            httponly=True,
            samesite="lax",
        )
        logger.info("PKCE session deleted state=%s****", state[:6])

    def cleanup_expired(self, request: Request, response: Response) -> int:
        """
        Invalidate every pkce_* cookie the browser still sends. Optional: Max-Age
        already expires them.
        """
        cleaned = 0
        for name in request.cookies:
            if name.startswith(self.prefix):
                self.delete(response, name[len(self.prefix):])
                cleaned += 1
        if cleaned:
            logger.info("PKCE sessions cleaned: %s", cleaned)
        return cleaned
