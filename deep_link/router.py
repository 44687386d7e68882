"""
Deep link router: owns the single subscription to incoming links (cold start,
background resume, already running), classifies each URI, and drives
extraction -> exchange -> notify for auth callbacks.

Construct one per process with create_router() and pass it to whatever needs
to subscribe to auth events.
"""
import asyncio
import logging
from enum import Enum

from deep_link import auth_log
from deep_link.auth_state import AuthStateHolder
from deep_link.channel import LinkChannel, LinkChannelError
from deep_link.config import APP_SCHEME, CALLBACK_HOST, STREAM_RESUBSCRIBE_SECONDS
from deep_link.events import AuthEventBus, AuthFailed, AuthSucceeded
from deep_link.exchange import GENERIC_FAILURE_MESSAGE, SessionExchangeEngine
from deep_link.extractor import NotAuthCallback, extract_auth_params, param_presence
from deep_link.links import IncomingLink, LinkSource
from deep_link.notifier import SessionChangeNotifier
from identity_client.client import IdentityClient

logger = logging.getLogger(__name__)


class RouterState(str, Enum):
    IDLE = "idle"
    LINK_RECEIVED = "link_received"
    CLASSIFYING = "classifying"
    DISPATCHED = "dispatched"
    IGNORED = "ignored"


class DeepLinkRouter:
    """
    Concurrent links are processed independently: no queueing, no coalescing.
    They share only the event bus and the notifier, both fixed at construction.
    """

    def __init__(
        self,
        channel: LinkChannel,
        engine: SessionExchangeEngine,
        notifier: SessionChangeNotifier,
        events: AuthEventBus | None = None,
        *,
        app_scheme: str = APP_SCHEME,
        callback_host: str = CALLBACK_HOST,
        resubscribe_delay: float = STREAM_RESUBSCRIBE_SECONDS,
    ) -> None:
        self._channel = channel
        self._engine = engine
        self._notifier = notifier
        self.events = events or AuthEventBus()
        self._app_scheme = app_scheme.lower()
        self._callback_host = callback_host.lower()
        self._resubscribe_delay = resubscribe_delay
        self.state = RouterState.IDLE
        self._started = False
        self._stream_task: asyncio.Task | None = None
        self._in_flight: set[asyncio.Task] = set()

    def _transition(self, state: RouterState) -> None:
        logger.debug("router %s -> %s", self.state.value, state.value)
        self.state = state

    def is_auth_callback(self, link: IncomingLink) -> bool:
        if link.scheme != self._app_scheme:
            return False
        if link.host == self._callback_host:
            return True
        return link.has_query_param("code") or "access_token" in link.fragment

    async def start(self) -> None:
        """Open the link channel, dispatch the launch link, then follow the runtime stream."""
        if self._started:
            return
        try:
            await self._channel.open()
        except Exception as e:
            auth_log.error(step="open_link_channel", message=type(e).__name__)
            raise LinkChannelError("could not open the platform link channel") from e
        self._started = True
        logger.info("Deep link router listening (scheme=%s)", self._app_scheme)

        try:
            initial = await self._channel.initial_link()
        except Exception as e:
            auth_log.error(step="initial_link", message=type(e).__name__)
            initial = None
        if initial:
            self.handle_uri(initial, LinkSource.COLD_START)

        self._stream_task = asyncio.create_task(self._consume_stream())

    async def _consume_stream(self) -> None:
        """Follow the runtime stream until it ends; resubscribe after a failure."""
        while True:
            try:
                async for uri, source in self._channel:
                    self.handle_uri(uri, source)
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                auth_log.error(step="link_stream", message=type(e).__name__)
            logger.info("Link stream failed; resubscribing in %ss", self._resubscribe_delay)
            await asyncio.sleep(self._resubscribe_delay)

    def handle_uri(self, uri: str, source: LinkSource | str = LinkSource.FOREGROUND) -> asyncio.Task | None:
        """
        Classify synchronously. Returns the processing task for auth callbacks,
        None for ignored links. The router is back in IDLE when this returns.
        """
        self._transition(RouterState.LINK_RECEIVED)
        try:
            link = IncomingLink.parse(uri, source)
        except ValueError:
            logger.debug("Unparseable link ignored")
            self._transition(RouterState.IGNORED)
            self._transition(RouterState.IDLE)
            return None
        auth_log.link_received(source=link.source.value, scheme=link.scheme, host=link.host)

        self._transition(RouterState.CLASSIFYING)
        if not self.is_auth_callback(link):
            logger.debug("Not an auth callback, ignoring")
            self._transition(RouterState.IGNORED)
            self._transition(RouterState.IDLE)
            return None

        self._transition(RouterState.DISPATCHED)
        task = asyncio.create_task(self._process(link))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        self._transition(RouterState.IDLE)
        return task

    async def _process(self, link: IncomingLink) -> None:
        try:
            params = extract_auth_params(link)
            has_code, has_access_token = param_presence(link)
            auth_log.params_extracted(has_code=has_code, has_access_token=has_access_token)
            if isinstance(params, NotAuthCallback):
                auth_log.error(step="params_extraction", message="No code or token found")

            result = await self._engine.exchange(params)
        except Exception as e:
            # Only a defect in extraction can land here; the engine converts remote faults itself
            logger.exception("Auth callback processing failed")
            auth_log.session_exchange(success=False, error_type=type(e).__name__)
            self.events.publish(AuthFailed(message=GENERIC_FAILURE_MESSAGE))
            return

        auth_log.session_exchange(
            success=result.success,
            error_type=result.error_kind.value if result.error_kind else None,
        )
        if result.success:
            self._notifier.notify()
            self.events.publish(AuthSucceeded())
        else:
            self.events.publish(AuthFailed(message=result.message or GENERIC_FAILURE_MESSAGE, error_kind=result.error_kind))

    async def wait_idle(self) -> None:
        """Wait until every dispatched callback link has finished processing."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    async def stop(self) -> None:
        tasks = list(self._in_flight)
        if self._stream_task is not None:
            tasks.append(self._stream_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._stream_task = None
        self._started = False
        logger.info("Deep link router stopped")


def create_router(
    identity: IdentityClient,
    channel: LinkChannel,
    holder: AuthStateHolder | None = None,
    *,
    app_scheme: str = APP_SCHEME,
) -> DeepLinkRouter:
    """Wire the native auth pipeline once at process start."""
    engine = SessionExchangeEngine(identity)
    notifier = SessionChangeNotifier(identity, holder)
    return DeepLinkRouter(channel, engine, notifier, app_scheme=app_scheme)
