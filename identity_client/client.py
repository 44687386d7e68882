"""
Async client for the identity authority (GoTrue-compatible /auth/v1 API).
Requests magic links, exchanges PKCE codes and refresh tokens for sessions,
and keeps the resulting session in its own storage. Emits auth change events
(SIGNED_IN, TOKEN_REFRESHED, SIGNED_OUT) to registered listeners.
"""
import logging
import time
from typing import Callable, Protocol

import httpx
import jwt

from identity_client.config import (
    IDENTITY_API_KEY,
    IDENTITY_STORAGE_KEY,
    IDENTITY_TIMEOUT_SECONDS,
    IDENTITY_URL,
)
from identity_client.errors import (
    AuthApiError,
    AuthPkceVerifierMissingError,
    AuthRetryableError,
)
from identity_client.pkce import code_challenge_s256, generate_code_verifier
from identity_client.session_store import MemoryStorage, Session

logger = logging.getLogger(__name__)

EVENT_SIGNED_IN = "SIGNED_IN"
EVENT_TOKEN_REFRESHED = "TOKEN_REFRESHED"
EVENT_SIGNED_OUT = "SIGNED_OUT"

OTP_TYPES = ("magiclink", "email")

AuthChangeListener = Callable[[str, Session | None], None]


class Storage(Protocol):
    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


def _read_claims(access_token: str) -> dict:
    """Unverified claims of the access token (sub, email, exp). The authority already validated it."""
    try:
        return jwt.decode(access_token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return {}


def _parse_session(data: dict) -> Session:
    access_token = data.get("access_token")
    refresh_token = data.get("refresh_token")
    if not access_token or not refresh_token:
        raise AuthApiError("Token response missing access_token or refresh_token")
    claims = _read_claims(access_token)
    user = data.get("user") or {}
    expires_at = data.get("expires_at") or claims.get("exp")
    if not expires_at and data.get("expires_in"):
        expires_at = int(time.time()) + int(data["expires_in"])
    return Session(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=int(expires_at) if expires_at else None,
        user_id=user.get("id") or claims.get("sub"),
        email=user.get("email") or claims.get("email"),
    )


def _error_details(r: httpx.Response) -> tuple[str, str | None]:
    """(message, error_code) from an authority error body; falls back to the status line."""
    try:
        body = r.json()
    except ValueError:
        return f"Identity authority returned {r.status_code}", None
    if not isinstance(body, dict):
        return f"Identity authority returned {r.status_code}", None
    message = (
        body.get("msg")
        or body.get("error_description")
        or body.get("message")
        or body.get("error")
        or f"Identity authority returned {r.status_code}"
    )
    code = body.get("error_code") or body.get("code") or body.get("error")
    return str(message), str(code) if code is not None else None


class IdentityClient:
    """One instance per process; the native path and the web app each construct their own."""

    def __init__(
        self,
        url: str = IDENTITY_URL,
        api_key: str = IDENTITY_API_KEY,
        *,
        flow_type: str = "pkce",
        storage: Storage | None = None,
        storage_key: str = IDENTITY_STORAGE_KEY,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = IDENTITY_TIMEOUT_SECONDS,
    ) -> None:
        if flow_type not in ("pkce", "implicit"):
            raise ValueError("flow_type must be 'pkce' or 'implicit'")
        self._flow_type = flow_type
        self._storage = storage or MemoryStorage()
        self._storage_key = storage_key
        self._listeners: list[AuthChangeListener] = []
        self._http = httpx.AsyncClient(
            base_url=f"{url.rstrip('/')}/auth/v1",
            headers={"apikey": api_key, "Accept": "application/json"},
            transport=transport,
            timeout=timeout,
        )

    @property
    def _verifier_key(self) -> str:
        return f"{self._storage_key}-code-verifier"

    async def aclose(self) -> None:
        await self._http.aclose()

    # --- session state ---

    @property
    def current_session(self) -> Session | None:
        raw = self._storage.get_item(self._storage_key)
        if raw is None:
            return None
        return Session.from_json(raw)

    def on_auth_state_change(self, listener: AuthChangeListener) -> Callable[[], None]:
        """Register listener(event, session). Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify_all(self, event: str, session: Session | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception:
                logger.exception("Auth change listener failed for event=%s", event)

    def _save_session(self, session: Session, event: str) -> None:
        self._storage.set_item(self._storage_key, session.to_json())
        self._notify_all(event, session)

    # --- remote calls ---

    async def _request(
        self,
        path: str,
        *,
        params: dict | None = None,
        body: dict | None = None,
        headers: dict | None = None,
    ) -> dict:
        try:
            r = await self._http.post(path, params=params, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise AuthRetryableError(f"Identity authority unreachable ({type(e).__name__})") from e
        if r.status_code >= 400:
            message, code = _error_details(r)
            error_cls = AuthRetryableError if r.status_code >= 500 else AuthApiError
            raise error_cls(message, status=r.status_code, code=code)
        if not r.content:
            return {}
        try:
            data = r.json()
        except ValueError as e:
            raise AuthRetryableError("Identity authority returned a non-JSON body", status=r.status_code) from e
        return data if isinstance(data, dict) else {}

    async def sign_in_with_otp(
        self,
        email: str,
        *,
        redirect_to: str,
        code_challenge: str | None = None,
        create_user: bool = True,
    ) -> None:
        """
        Ask the authority to email a magic link that lands on redirect_to.
        PKCE flow without an explicit challenge stores a fresh verifier on this device;
        callers that keep the verifier themselves (browser path) pass code_challenge.
        """
        body: dict = {"email": email, "create_user": create_user}
        if self._flow_type == "pkce":
            if code_challenge is None:
                verifier = generate_code_verifier()
                self._storage.set_item(self._verifier_key, verifier)
                code_challenge = code_challenge_s256(verifier)
            body["code_challenge"] = code_challenge
            body["code_challenge_method"] = "s256"
        await self._request("otp", params={"redirect_to": redirect_to}, body=body)
        logger.info("Magic link requested (flow_type=%s)", self._flow_type)

    async def exchange_code_for_session(self, code: str, *, code_verifier: str | None = None) -> Session:
        """
        Exchange a PKCE authorization code. The verifier is the explicit argument or the one
        stored on this device; with neither, fail before any network call.
        """
        verifier = code_verifier or self._storage.get_item(self._verifier_key)
        if not verifier:
            raise AuthPkceVerifierMissingError()
        data = await self._request(
            "token",
            params={"grant_type": "pkce"},
            body={"auth_code": code, "code_verifier": verifier},
        )
        session = _parse_session(data)
        if code_verifier is None:
            self._storage.remove_item(self._verifier_key)
        self._save_session(session, EVENT_SIGNED_IN)
        logger.info("PKCE code exchanged (user_id present=%s)", session.user_id is not None)
        return session

    async def verify_otp(self, token_hash: str, *, type: str = "email") -> Session:
        """Verify a token-hash magic link ('magiclink' or 'email') and sign in."""
        if type not in OTP_TYPES:
            raise ValueError(f"type must be one of {', '.join(OTP_TYPES)}")
        data = await self._request("verify", body={"token_hash": token_hash, "type": type})
        session = _parse_session(data)
        self._save_session(session, EVENT_SIGNED_IN)
        logger.info("Magic link token verified (type=%s)", type)
        return session

    async def set_session(self, refresh_token: str) -> Session:
        """Establish a session from an implicit-flow refresh token."""
        data = await self._request(
            "token",
            params={"grant_type": "refresh_token"},
            body={"refresh_token": refresh_token},
        )
        session = _parse_session(data)
        self._save_session(session, EVENT_TOKEN_REFRESHED)
        logger.info("Session set from refresh token (user_id present=%s)", session.user_id is not None)
        return session

    async def sign_out(self) -> None:
        """Revoke remotely when possible; always clears the local session and pending verifier."""
        session = self.current_session
        try:
            if session is not None:
                await self._request("logout", headers={"Authorization": f"Bearer {session.access_token}"})
        except (AuthApiError, AuthRetryableError) as e:
            logger.warning("Remote sign out failed (%s); clearing local session anyway", type(e).__name__)
        finally:
            self._storage.remove_item(self._storage_key)
            self._storage.remove_item(self._verifier_key)
            self._notify_all(EVENT_SIGNED_OUT, None)
