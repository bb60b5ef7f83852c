"""Request correlator: one encrypted request in, one correlated response out.

Lifecycle of a ``send`` call:

    PENDING --first valid response--> RESOLVED
    PENDING --deadline elapsed------> TIMED_OUT
    PENDING --publish not accepted--> PUBLISH_FAILED
    PENDING --caller cancelled------> CANCELLED

The subscription is opened before the request is published so that a fast
relay cannot deliver the response before anyone is listening. Inbound events
are pushed into a per-request queue; the correlator takes the first one that
decrypts and parses, and forwards later ones to the secondary callback.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel

from ..errors import DecryptFailed, MalformedPayload, PublishFailed, RequestTimeout
from ..protocol.events import SignedEvent, new_request_event, new_response_filter
from ..protocol.kinds import RequestFamily
from ..protocol.payloads import FamilySpec, dump_request, family_spec, load_response, load_secondary
from .crypto import CryptoProvider, KeyPair, Nip44Crypto
from .transport import RelayPool, Subscription

logger = logging.getLogger(__name__)

SecondaryCallback = Callable[[Any], None]


class RequestState(str, Enum):
    """States of a pending request."""

    PENDING = "pending"
    RESOLVED = "resolved"
    TIMED_OUT = "timed_out"
    PUBLISH_FAILED = "publish_failed"
    CANCELLED = "cancelled"


@dataclass
class PendingRequest:
    """State owned by a single ``send`` call."""

    request_id: str
    spec: FamilySpec
    key_pair: KeyPair
    counterparty: str
    conversation_key: bytes
    deadline: float | None = None
    state: RequestState = RequestState.PENDING
    subscription: Subscription | None = None
    inbox: asyncio.Queue[SignedEvent] = field(default_factory=asyncio.Queue)
    _torn_down: bool = False

    @property
    def expected_kind(self) -> int:
        return int(self.spec.kind)

    def transition(self, state: RequestState) -> bool:
        """Leave PENDING for *state*. Only the first transition wins."""
        if self.state != RequestState.PENDING:
            return False
        self.state = state
        return True

    def teardown(self) -> None:
        """Close the subscription. Safe to call any number of times."""
        self.transition(RequestState.CANCELLED)
        if self._torn_down:
            return
        self._torn_down = True
        if self.subscription is not None:
            self.subscription.close()
        logger.debug(f"Request {self.request_id[:12]} torn down ({self.state.value})")


class RequestCorrelator:
    """Issues requests over a relay pool and correlates their responses.

    Concurrent ``send`` calls share only the pool; every call owns its own
    queue, subscription and deadline.
    """

    def __init__(self, pool: RelayPool, crypto: CryptoProvider | None = None):
        self.pool = pool
        self.crypto = crypto or Nip44Crypto()
        self._listeners: dict[asyncio.Task[None], PendingRequest] = {}

    async def send(
        self,
        key_pair: KeyPair,
        relays: Sequence[str],
        counterparty: str,
        request: BaseModel,
        family: RequestFamily | str,
        timeout_seconds: float | None = None,
        on_secondary: SecondaryCallback | None = None,
        linger_seconds: float | None = None,
    ) -> Any:
        """Send *request* to *counterparty* and wait for its response.

        Args:
            key_pair: Sender keys; responses are filtered on its public key
            relays: Relays to publish to and listen on (non-empty)
            counterparty: Recipient public key (hex)
            request: Request body, already validated for *family*
            family: Request family; fixes the event kind and response shape
            timeout_seconds: Deadline for the first response; None or 0 waits forever
            on_secondary: Receives responses after the first one
            linger_seconds: How long to keep listening for secondary responses;
                None keeps listening until ``aclose()``

        Returns:
            The family's parsed response model (success or failure variant)

        Raises:
            PublishFailed: A relay rejected the request, or publishing failed outright
            RequestTimeout: No valid response before the deadline
        """
        if not relays:
            raise ValueError("at least one relay is required")
        spec = family_spec(family)

        conversation_key = self.crypto.conversation_key(key_pair.private_key, counterparty)
        content = self.crypto.encrypt(dump_request(request), conversation_key)
        unsigned = new_request_event(content, key_pair.public_key, counterparty, spec.kind)
        signed = self.crypto.sign(unsigned, key_pair.private_key)

        pending = PendingRequest(
            request_id=signed.id,
            spec=spec,
            key_pair=key_pair,
            counterparty=counterparty,
            conversation_key=conversation_key,
        )
        response_filter = new_response_filter(key_pair.public_key, signed.id, spec.kind)

        try:
            pending.subscription = await self.pool.subscribe_many(
                relays, [response_filter], pending.inbox.put_nowait
            )
        except Exception as e:
            pending.transition(RequestState.PUBLISH_FAILED)
            raise PublishFailed(f"could not subscribe for {spec.family.value} response: {e}") from e

        lingering = False
        try:
            await self._publish(pending, relays, signed)

            if timeout_seconds:
                pending.deadline = asyncio.get_running_loop().time() + timeout_seconds
            try:
                response = await asyncio.wait_for(
                    self._next_response(pending), timeout=timeout_seconds or None
                )
            except TimeoutError as e:
                pending.transition(RequestState.TIMED_OUT)
                raise RequestTimeout(
                    f"failed to get {spec.family.value} response in {timeout_seconds}s"
                ) from e

            pending.transition(RequestState.RESOLVED)
            logger.debug(f"Request {signed.id[:12]} resolved")

            if on_secondary is not None:
                self._drain_secondary(pending, on_secondary)
                lingering = self._linger(pending, on_secondary, linger_seconds)
            return response
        finally:
            if not lingering:
                pending.teardown()

    async def _publish(self, pending: PendingRequest, relays: Sequence[str], event: SignedEvent) -> None:
        try:
            results = await self.pool.publish(relays, event)
        except Exception as e:
            pending.transition(RequestState.PUBLISH_FAILED)
            raise PublishFailed(f"publish failed: {e}") from e

        rejected = [r for r in results.values() if not r.ok]
        for result in rejected:
            logger.warning(f"Relay {result.relay} rejected {event.id[:12]}: {result.message}")
        if rejected or not results:
            pending.transition(RequestState.PUBLISH_FAILED)
            relays_text = ", ".join(r.relay for r in rejected) or "no relay answered"
            raise PublishFailed(f"request not accepted by every relay ({relays_text})", results)

    def _open(self, pending: PendingRequest, event: SignedEvent, secondary: bool = False) -> Any | None:
        """Decrypt and parse *event*. Returns None for events to skip."""
        if event.kind != pending.expected_kind or pending.request_id not in event.tag_values("e"):
            logger.debug(f"Ignoring uncorrelated event {event.id[:12]}")
            return None
        try:
            plaintext = self.crypto.decrypt(event.content, pending.conversation_key)
            loader = load_secondary if secondary else load_response
            return loader(pending.spec.family, plaintext)
        except DecryptFailed as e:
            logger.warning(f"Skipping event {event.id[:12]}: decrypt failed: {e}")
        except MalformedPayload as e:
            logger.warning(f"Skipping event {event.id[:12]}: malformed payload: {e}")
        return None

    async def _next_response(self, pending: PendingRequest) -> Any:
        while True:
            event = await pending.inbox.get()
            response = self._open(pending, event)
            if response is not None:
                return response

    def _forward(self, pending: PendingRequest, event: SignedEvent, callback: SecondaryCallback) -> None:
        secondary = self._open(pending, event, secondary=True)
        if secondary is None:
            return
        try:
            callback(secondary)
        except Exception:
            logger.exception(f"Error in secondary callback for {pending.request_id[:12]}")

    def _drain_secondary(self, pending: PendingRequest, callback: SecondaryCallback) -> None:
        """Forward events that queued up behind the primary response."""
        while not pending.inbox.empty():
            self._forward(pending, pending.inbox.get_nowait(), callback)

    def _linger(
        self, pending: PendingRequest, callback: SecondaryCallback, linger_seconds: float | None
    ) -> bool:
        if linger_seconds is not None and linger_seconds <= 0:
            return False
        task = asyncio.get_running_loop().create_task(
            self._listen_secondary(pending, callback, linger_seconds)
        )
        self._listeners[task] = pending
        task.add_done_callback(self._listener_done)
        return True

    def _listener_done(self, task: asyncio.Task[None]) -> None:
        pending = self._listeners.pop(task, None)
        if pending is not None:
            pending.teardown()

    async def _listen_secondary(
        self, pending: PendingRequest, callback: SecondaryCallback, linger_seconds: float | None
    ) -> None:
        async def forward_all() -> None:
            while True:
                self._forward(pending, await pending.inbox.get(), callback)

        try:
            await asyncio.wait_for(forward_all(), timeout=linger_seconds)
        except TimeoutError:
            pass
        finally:
            pending.teardown()

    @property
    def listening(self) -> int:
        """Number of resolved requests still listening for secondary responses."""
        return len(self._listeners)

    async def aclose(self) -> None:
        """Stop every secondary listener and close its subscription."""
        listeners = dict(self._listeners)
        for task in listeners:
            task.cancel()
        for task, pending in listeners.items():
            try:
                await task
            except asyncio.CancelledError:
                pass
            # A task cancelled before its first step never reaches its finally block.
            pending.teardown()
        self._listeners.clear()
