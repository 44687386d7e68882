"""
Process-wide auth state holder. Mirrors the identity client's session, follows its
change events, and can be force-refreshed by the session change notifier.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable

from deep_link import auth_log
from identity_client.client import EVENT_SIGNED_OUT, IdentityClient
from identity_client.session_store import Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppAuthState:
    session: Session | None = field(default=None, repr=False)

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None


class AuthStateHolder:
    def __init__(self, identity: IdentityClient) -> None:
        self._identity = identity
        self._listeners: list[Callable[[AppAuthState], None]] = []
        self.state = AppAuthState(session=identity.current_session)
        self._unsubscribe = identity.on_auth_state_change(self._on_auth_change)

    def subscribe(self, listener: Callable[[AppAuthState], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _set(self, state: AppAuthState) -> None:
        self.state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Auth state listener failed")

    def _on_auth_change(self, event: str, session: Session | None) -> None:
        auth_log.auth_state_updated(is_authenticated=session is not None, trigger=f"onAuthStateChange:{event}")
        if event == EVENT_SIGNED_OUT:
            self._set(AppAuthState())
        elif session is not None:
            self._set(AppAuthState(session=session))

    def refresh_session(self) -> None:
        """Re-read the identity client's session; publish only when presence or token changed."""
        current = self._identity.current_session
        held = self.state.session
        presence_changed = (current is None) != (held is None)
        token_changed = (current.access_token if current else None) != (held.access_token if held else None)
        if presence_changed or token_changed:
            auth_log.auth_state_updated(is_authenticated=current is not None, trigger="refreshSession")
            self._set(AppAuthState(session=current))
        else:
            auth_log.provider_refresh(has_session=current is not None)

    def close(self) -> None:
        self._unsubscribe()
