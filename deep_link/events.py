"""
Auth outcome events for the rest of the app. Any number of listeners may subscribe;
each processed callback link publishes exactly one AuthSucceeded or AuthFailed.
"""
import logging
from dataclasses import dataclass
from typing import Callable

from deep_link.exchange import ErrorKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthSucceeded:
    """No payload; listeners re-read the session from the identity client."""


@dataclass(frozen=True)
class AuthFailed:
    message: str
    error_kind: ErrorKind | None = None


AuthEvent = AuthSucceeded | AuthFailed
AuthListener = Callable[[AuthEvent], None]


class AuthEventBus:
    def __init__(self) -> None:
        self._listeners: list[AuthListener] = []

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, event: AuthEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Auth event listener failed for %s", type(event).__name__)
