"""Relay transport abstraction for the correlator.

Enables the SDK to talk to real relays over WebSocket or to an in-memory
mock in tests without changing correlator code.

Architecture:
- RelayPool is the PROTOCOL (interface) the correlator consumes
- WebSocketRelayPool speaks the NIP-01 relay protocol, one connection per relay
- MockRelayPool records published events and replays scripted responses

Relay wire format (JSON arrays):
- Client -> relay: ["EVENT", event], ["REQ", sub_id, filter...], ["CLOSE", sub_id]
- Relay -> client: ["OK", id, ok, msg], ["EVENT", sub_id, event], ["EOSE", sub_id],
  ["CLOSED", sub_id, msg], ["NOTICE", msg]
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable

import websockets
from pydantic import ValidationError

from ..protocol.events import Filter, SignedEvent

logger = logging.getLogger(__name__)

EventCallback = Callable[[SignedEvent], None]
EoseCallback = Callable[[], None]
Verifier = Callable[[SignedEvent], bool]


class TransportState(str, Enum):
    """Connection state machine."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


@dataclass
class RelayPoolConfig:
    """Configuration for relay pools."""

    publish_timeout: float = 10.0
    connect_timeout: float = 10.0
    ping_interval: float | None = 30.0
    ping_timeout: float | None = 10.0


@dataclass(frozen=True)
class PublishResult:
    """One relay's answer to a published event."""

    relay: str
    ok: bool
    message: str = ""


class Subscription:
    """Closeable handle for a multi-relay subscription.

    ``close()`` is idempotent; ``close_calls`` counts every invocation so
    callers that must close exactly once can be checked.
    """

    def __init__(self, sub_id: str, on_close: Callable[[], None] | None = None):
        self.id = sub_id
        self._on_close = on_close
        self._closed = False
        self.close_calls = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self.close_calls += 1
        if self._closed:
            return
        self._closed = True
        if self._on_close:
            self._on_close()


@runtime_checkable
class RelayPool(Protocol):
    """Protocol for the relay transport used by the correlator."""

    async def publish(self, relays: Sequence[str], event: SignedEvent) -> dict[str, PublishResult]:
        """Publish *event* to every relay and return each relay's answer.

        Raises:
            ConnectionError: The transport could not attempt delivery at all.
        """
        ...

    async def subscribe_many(
        self,
        relays: Sequence[str],
        filters: Sequence[Filter],
        on_event: EventCallback,
        on_eose: EoseCallback | None = None,
    ) -> Subscription:
        """Open one subscription across *relays*.

        Raises:
            ConnectionError: No relay could be subscribed to.
        """
        ...


# =============================================================================
# WebSocket relay pool
# =============================================================================


class _PoolSubscription:
    """Fan-in of one subscription id across several relays."""

    def __init__(
        self,
        sub_id: str,
        filters: Sequence[Filter],
        on_event: EventCallback,
        on_eose: EoseCallback | None,
        relay_count: int,
    ):
        self.sub_id = sub_id
        self.filters = list(filters)
        self.on_event = on_event
        self.on_eose = on_eose
        self.relay_count = relay_count
        self._seen: set[str] = set()
        self._eose_from: set[str] = set()

    def deliver(self, relay: str, event: SignedEvent) -> None:
        if event.id in self._seen:
            return
        if not any(f.matches(event) for f in self.filters):
            logger.debug(f"Dropping event {event.id} from {relay}: does not match filters")
            return
        self._seen.add(event.id)
        try:
            self.on_event(event)
        except Exception:
            logger.exception(f"Error in event callback for subscription {self.sub_id}")

    def eose(self, relay: str) -> None:
        self._eose_from.add(relay)
        if len(self._eose_from) == self.relay_count and self.on_eose:
            self.on_eose()


class _RelayConnection:
    """A single relay websocket with its background reader."""

    def __init__(self, url: str, config: RelayPoolConfig, verifier: Verifier | None):
        self.url = url
        self.config = config
        self.verifier = verifier
        self.state = TransportState.DISCONNECTED
        self._ws: Any = None  # websockets ClientConnection
        self._reader_task: asyncio.Task[None] | None = None
        self._subscriptions: dict[str, _PoolSubscription] = {}
        self._pending_oks: dict[str, asyncio.Future[PublishResult]] = {}
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self.state == TransportState.CONNECTED

    async def connect(self) -> None:
        async with self._lock:
            if self.is_connected:
                return
            self.state = TransportState.CONNECTING
            try:
                self._ws = await websockets.connect(
                    self.url,
                    open_timeout=self.config.connect_timeout,
                    ping_interval=self.config.ping_interval,
                    ping_timeout=self.config.ping_timeout,
                )
            except Exception as e:
                self.state = TransportState.DISCONNECTED
                raise ConnectionError(f"Failed to connect to {self.url}: {e}") from e
            self.state = TransportState.CONNECTED
            self._reader_task = asyncio.create_task(self._read_loop())
            logger.info(f"Relay connected: {self.url}")

    async def close(self) -> None:
        self.state = TransportState.CLOSED
        if self._reader_task:
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task
            self._reader_task = None
        if self._ws:
            await self._ws.close()
            self._ws = None
        self._fail_pending("connection closed")
        self._subscriptions.clear()
        logger.info(f"Relay disconnected: {self.url}")

    async def _send(self, message: list[Any]) -> None:
        if not self._ws or not self.is_connected:
            raise ConnectionError(f"Relay not connected: {self.url}")
        await self._ws.send(json.dumps(message))

    async def publish(self, event: SignedEvent) -> PublishResult:
        future: asyncio.Future[PublishResult] = asyncio.get_running_loop().create_future()
        self._pending_oks[event.id] = future
        try:
            await self._send(["EVENT", event.model_dump()])
            return await asyncio.wait_for(future, timeout=self.config.publish_timeout)
        except TimeoutError:
            return PublishResult(self.url, False, "publish timed out")
        except ConnectionError as e:
            return PublishResult(self.url, False, str(e))
        finally:
            self._pending_oks.pop(event.id, None)

    async def subscribe(self, subscription: _PoolSubscription) -> None:
        self._subscriptions[subscription.sub_id] = subscription
        filters = [f.to_wire() for f in subscription.filters]
        try:
            await self._send(["REQ", subscription.sub_id, *filters])
        except Exception:
            self._subscriptions.pop(subscription.sub_id, None)
            raise

    async def unsubscribe(self, sub_id: str) -> None:
        if self._subscriptions.pop(sub_id, None) is None:
            return
        if self.is_connected:
            try:
                await self._send(["CLOSE", sub_id])
            except Exception as e:
                logger.debug(f"Failed to send CLOSE for {sub_id} to {self.url}: {e}")

    def _fail_pending(self, reason: str) -> None:
        for future in self._pending_oks.values():
            if not future.done():
                future.set_result(PublishResult(self.url, False, reason))
        self._pending_oks.clear()

    async def _read_loop(self) -> None:
        try:
            async for data in self._ws:
                self._handle_message(data)
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Relay read loop error ({self.url}): {e}")
        finally:
            if self.state != TransportState.CLOSED:
                self.state = TransportState.DISCONNECTED
            self._fail_pending("connection lost")

    def _handle_message(self, data: str | bytes) -> None:
        try:
            msg = json.loads(data)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid relay message from {self.url}: {e}")
            return
        if not isinstance(msg, list) or not msg:
            logger.warning(f"Unexpected relay message from {self.url}: {str(msg)[:80]}")
            return

        msg_type = msg[0]
        if msg_type == "EVENT" and len(msg) >= 3:
            self._handle_event(msg[1], msg[2])
        elif msg_type == "OK" and len(msg) >= 3:
            future = self._pending_oks.get(msg[1])
            if future and not future.done():
                message = msg[3] if len(msg) > 3 else ""
                future.set_result(PublishResult(self.url, bool(msg[2]), message))
        elif msg_type == "EOSE" and len(msg) >= 2:
            subscription = self._subscriptions.get(msg[1])
            if subscription:
                subscription.eose(self.url)
        elif msg_type == "CLOSED" and len(msg) >= 2:
            reason = msg[2] if len(msg) > 2 else ""
            logger.warning(f"Relay {self.url} closed subscription {msg[1]}: {reason}")
            self._subscriptions.pop(msg[1], None)
        elif msg_type == "NOTICE":
            logger.info(f"Relay notice from {self.url}: {msg[1] if len(msg) > 1 else ''}")
        else:
            logger.debug(f"Ignoring relay message type {msg_type!r} from {self.url}")

    def _handle_event(self, sub_id: str, raw: Any) -> None:
        subscription = self._subscriptions.get(sub_id)
        if subscription is None:
            return
        try:
            event = SignedEvent.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Malformed event from {self.url}: {e}")
            return
        if self.verifier and not self.verifier(event):
            logger.warning(f"Dropping event {event.id} from {self.url}: bad signature")
            return
        subscription.deliver(self.url, event)


class WebSocketRelayPool:
    """Relay pool over NIP-01 websockets.

    Connections are opened lazily on first use and reused across requests.
    There is no reconnection; a dropped relay fails its pending publishes.
    """

    def __init__(self, config: RelayPoolConfig | None = None, verifier: Verifier | None = None):
        self.config = config or RelayPoolConfig()
        self.verifier = verifier
        self._connections: dict[str, _RelayConnection] = {}
        self._background: set[asyncio.Task[None]] = set()

    async def _connection(self, url: str) -> _RelayConnection:
        conn = self._connections.get(url)
        if conn is None:
            conn = _RelayConnection(url, self.config, self.verifier)
            self._connections[url] = conn
        await conn.connect()
        return conn

    async def _publish_one(self, url: str, event: SignedEvent) -> PublishResult:
        try:
            conn = await self._connection(url)
        except ConnectionError as e:
            return PublishResult(url, False, str(e))
        return await conn.publish(event)

    async def publish(self, relays: Sequence[str], event: SignedEvent) -> dict[str, PublishResult]:
        results = await asyncio.gather(*(self._publish_one(url, event) for url in relays))
        return {result.relay: result for result in results}

    async def subscribe_many(
        self,
        relays: Sequence[str],
        filters: Sequence[Filter],
        on_event: EventCallback,
        on_eose: EoseCallback | None = None,
    ) -> Subscription:
        sub_id = uuid.uuid4().hex[:16]
        fan_in = _PoolSubscription(sub_id, filters, on_event, on_eose, len(relays))
        subscribed: list[_RelayConnection] = []
        for url in relays:
            try:
                conn = await self._connection(url)
                await conn.subscribe(fan_in)
            except asyncio.CancelledError:
                self._unsubscribe_later(subscribed, sub_id)
                raise
            except Exception as e:
                logger.warning(f"Could not subscribe on {url}: {e}")
                fan_in.relay_count -= 1
                continue
            subscribed.append(conn)

        if not subscribed:
            raise ConnectionError(f"No relay reachable for subscription ({', '.join(relays)})")

        return Subscription(sub_id, on_close=lambda: self._unsubscribe_later(subscribed, sub_id))

    def _unsubscribe_later(self, connections: list[_RelayConnection], sub_id: str) -> None:
        for conn in connections:
            task = asyncio.get_running_loop().create_task(conn.unsubscribe(sub_id))
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    async def aclose(self) -> None:
        """Close every relay connection."""
        for conn in list(self._connections.values()):
            await conn.close()
        self._connections.clear()

    async def __aenter__(self) -> WebSocketRelayPool:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()


# =============================================================================
# Mock relay pool
# =============================================================================


Responder = Callable[[SignedEvent], list[SignedEvent]]


class MockRelayPool:
    """In-memory relay pool for testing.

    Records published events and hands scripted responses to matching
    subscriptions. Duplicates are delivered as-is, with no deduplication.

    Usage:
        pool = MockRelayPool()
        pool.on_publish(lambda request: [make_response(request)])

        response = await correlator.send(...)

        assert pool.published[0].kind == 21001
    """

    def __init__(self) -> None:
        self._published: list[SignedEvent] = []
        self._responders: list[Responder] = []
        self.subscriptions: list[MockSubscription] = []
        self.publish_error: Exception | None = None
        self.reject_publish = False

    @property
    def published(self) -> list[SignedEvent]:
        """Get all events published through this pool."""
        return self._published.copy()

    def on_publish(self, responder: Responder) -> None:
        """Register a responder called with each published event.

        The events it returns are delivered to open subscriptions right away.
        """
        self._responders.append(responder)

    def deliver(self, event: SignedEvent) -> None:
        """Deliver *event* to every open subscription whose filters match."""
        for subscription in list(self.subscriptions):
            if subscription.closed:
                continue
            if any(f.matches(event) for f in subscription.filters):
                subscription.on_event(event)

    async def publish(self, relays: Sequence[str], event: SignedEvent) -> dict[str, PublishResult]:
        if self.publish_error is not None:
            raise self.publish_error
        self._published.append(event)
        if self.reject_publish:
            return {url: PublishResult(url, False, "blocked: mock rejection") for url in relays}
        for responder in self._responders:
            for response in responder(event):
                self.deliver(response)
        return {url: PublishResult(url, True) for url in relays}

    async def subscribe_many(
        self,
        relays: Sequence[str],
        filters: Sequence[Filter],
        on_event: EventCallback,
        on_eose: EoseCallback | None = None,
    ) -> Subscription:
        subscription = MockSubscription(uuid.uuid4().hex[:16], list(filters), on_event)
        self.subscriptions.append(subscription)
        if on_eose:
            on_eose()
        return subscription


class MockSubscription(Subscription):
    """Subscription handle kept by ``MockRelayPool``."""

    def __init__(self, sub_id: str, filters: list[Filter], on_event: EventCallback):
        super().__init__(sub_id)
        self.filters = filters
        self.on_event = on_event


# Factory functions


def create_websocket_pool(
    publish_timeout: float = 10.0,
    verifier: Verifier | None = None,
) -> WebSocketRelayPool:
    """Create a websocket relay pool.

    Args:
        publish_timeout: Seconds to wait for each relay's OK
        verifier: Optional signature check applied to inbound events
    """
    return WebSocketRelayPool(RelayPoolConfig(publish_timeout=publish_timeout), verifier)


def create_mock_pool() -> MockRelayPool:
    """Create a mock relay pool for testing."""
    return MockRelayPool()
