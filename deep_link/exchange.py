"""
Session exchange: turns AuthParams into a SessionResult through the identity authority.
Every remote failure is caught here and classified; callers always get a SessionResult.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum

from deep_link.extractor import AuthParams, CallbackError, ImplicitGrant, NotAuthCallback, PkceGrant
from identity_client.client import IdentityClient
from identity_client.errors import AuthApiError, AuthPkceVerifierMissingError
from identity_client.session_store import Session

logger = logging.getLogger(__name__)

VERIFIER_MISSING_MESSAGE = "Login link expired or was opened incorrectly. Please request a new magic link."
GENERIC_FAILURE_MESSAGE = "Failed to complete sign in. Please try again."
NO_AUTH_PARAMS_MESSAGE = "This sign-in link is incomplete. Please request a new magic link."


class ErrorKind(str, Enum):
    VERIFIER_MISSING = "verifier_missing"
    CALLBACK_ERROR = "callback_error"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class SessionResult:
    success: bool
    error_kind: ErrorKind | None = None
    message: str | None = None
    session: Session | None = field(default=None, repr=False)

    @classmethod
    def ok(cls, session: Session) -> "SessionResult":
        return cls(success=True, session=session)

    @classmethod
    def failed(cls, error_kind: ErrorKind, message: str) -> "SessionResult":
        return cls(success=False, error_kind=error_kind, message=message)


class SessionExchangeEngine:
    def __init__(self, identity: IdentityClient) -> None:
        self._identity = identity

    async def exchange(self, params: AuthParams) -> SessionResult:
        if isinstance(params, PkceGrant):
            return await self.exchange_pkce(params.code)
        if isinstance(params, ImplicitGrant):
            return await self.exchange_implicit(params.refresh_token)
        if isinstance(params, CallbackError):
            return self.exchange_error(params.error, params.error_description)
        if isinstance(params, NotAuthCallback):
            return SessionResult.failed(ErrorKind.UNKNOWN, NO_AUTH_PARAMS_MESSAGE)
        raise TypeError(f"unsupported auth params: {type(params).__name__}")

    async def exchange_pkce(self, code: str) -> SessionResult:
        try:
            session = await self._identity.exchange_code_for_session(code)
        except (AuthPkceVerifierMissingError, AuthApiError) as e:
            # Usually the verifier was lost: app restarted or user signed out before opening the link
            logger.warning("PKCE exchange rejected (%s); verifier missing or invalid", type(e).__name__)
            return SessionResult.failed(ErrorKind.VERIFIER_MISSING, VERIFIER_MISSING_MESSAGE)
        except Exception as e:
            logger.warning("PKCE exchange failed: %s", type(e).__name__)
            return SessionResult.failed(ErrorKind.UNKNOWN, GENERIC_FAILURE_MESSAGE)
        self._verify_session_stored()
        return SessionResult.ok(session)

    async def exchange_implicit(self, refresh_token: str) -> SessionResult:
        try:
            session = await self._identity.set_session(refresh_token)
        except Exception as e:
            logger.warning("Implicit session set failed: %s", type(e).__name__)
            return SessionResult.failed(ErrorKind.UNKNOWN, GENERIC_FAILURE_MESSAGE)
        self._verify_session_stored()
        return SessionResult.ok(session)

    def exchange_error(self, error: str, description: str | None = None) -> SessionResult:
        """No remote call; the link itself carried the failure."""
        message = description or error or GENERIC_FAILURE_MESSAGE
        logger.info("Auth error carried by callback link: %s", error)
        return SessionResult.failed(ErrorKind.CALLBACK_ERROR, message)

    def _verify_session_stored(self) -> None:
        if self._identity.current_session is None:
            logger.warning("Exchange succeeded but the identity client holds no session")
