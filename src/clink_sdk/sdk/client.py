"""CLINK SDK client.

Thin facade over ``RequestCorrelator`` that fixes the event kind and
response shape per request family and validates request bodies before
anything touches the network.

Usage:
    settings = ClinkSettings.from_env()
    async with create_client(settings) as client:
        response = await client.offer({"offer": "coffee", "amount_sats": 1000})
        if isinstance(response, OfferSuccess):
            print(response.bolt11)

        offers = await client.offers.list()
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from ..protocol.kinds import RequestFamily
from ..protocol.payloads import (
    OfferData,
    coerce_request,
    create_offer_request,
    delete_offer_request,
    family_spec,
    get_offer_request,
    list_offers_request,
    update_offer_request,
)
from ..settings import ClinkSettings
from .correlator import RequestCorrelator
from .crypto import CryptoProvider, KeyPair, Nip44Crypto
from .transport import MockRelayPool, RelayPool, WebSocketRelayPool, create_mock_pool, create_websocket_pool

RequestBody = BaseModel | dict[str, Any]


@dataclass
class OfferManagementAPI:
    """Offer management operations (manage family)."""

    _client: ClinkSDK

    async def create(
        self,
        label: str,
        price_sats: int = 0,
        callback_url: str = "",
        payer_data: list[str] | None = None,
        pointer: str | None = None,
        timeout_seconds: float | None = None,
    ) -> Any:
        """Create an offer on the managing service."""
        request = create_offer_request(label, price_sats, callback_url, payer_data, pointer)
        return await self._client.manage(request, timeout_seconds)

    async def update(self, offer: OfferData, timeout_seconds: float | None = None) -> Any:
        return await self._client.manage(update_offer_request(offer), timeout_seconds)

    async def delete(self, offer_id: str, timeout_seconds: float | None = None) -> Any:
        return await self._client.manage(delete_offer_request(offer_id), timeout_seconds)

    async def get(self, offer_id: str, timeout_seconds: float | None = None) -> Any:
        return await self._client.manage(get_offer_request(offer_id), timeout_seconds)

    async def list(self, pointer: str | None = None, timeout_seconds: float | None = None) -> Any:
        """List offers, optionally scoped to a manage pointer."""
        return await self._client.manage(list_offers_request(pointer), timeout_seconds)


@dataclass
class ClinkSDK:
    """CLINK client bound to one key pair, relay set and counterparty.

    Works with any RelayPool implementation:
    - WebSocketRelayPool: real relays
    - MockRelayPool: for testing
    """

    settings: ClinkSettings
    pool: RelayPool
    crypto: CryptoProvider = field(default_factory=Nip44Crypto)
    _owns_pool: bool = field(default=True)
    _correlator: RequestCorrelator = field(init=False)
    _key_pair: KeyPair = field(init=False)

    def __post_init__(self) -> None:
        self._key_pair = KeyPair.from_private(self.settings.private_key)
        self._correlator = RequestCorrelator(self.pool, self.crypto)

    @property
    def public_key(self) -> str:
        return self._key_pair.public_key

    @property
    def correlator(self) -> RequestCorrelator:
        return self._correlator

    @property
    def offers(self) -> OfferManagementAPI:
        """Offer management operations."""
        return OfferManagementAPI(_client=self)

    def _timeout(self, family: RequestFamily, timeout_seconds: float | None) -> float | None:
        if timeout_seconds is not None:
            return timeout_seconds
        if self.settings.default_timeout_seconds is not None:
            return self.settings.default_timeout_seconds
        return family_spec(family).default_timeout_seconds

    async def request(
        self,
        family: RequestFamily | str,
        data: RequestBody,
        timeout_seconds: float | None = None,
        on_secondary: Callable[[Any], None] | None = None,
        to_pubkey: str | None = None,
        relays: Sequence[str] | None = None,
    ) -> Any:
        """Validate *data* for *family* and send it.

        Raises:
            RequestValidationError: Before any network activity
            PublishFailed, RequestTimeout: From the correlator
        """
        family = RequestFamily(family)
        request = coerce_request(family, data)
        counterparty = to_pubkey or self.settings.to_pubkey
        if not counterparty:
            raise ValueError("no counterparty public key configured")
        timeout = self._timeout(family, timeout_seconds)
        return await self._correlator.send(
            self._key_pair,
            list(relays or self.settings.relays),
            counterparty,
            request,
            family,
            timeout_seconds=timeout,
            on_secondary=on_secondary,
            linger_seconds=timeout if on_secondary else None,
        )

    async def offer(
        self,
        data: RequestBody,
        timeout_seconds: float | None = None,
        on_receipt: Callable[[Any], None] | None = None,
    ) -> Any:
        """Request an invoice for an offer.

        *on_receipt* gets every later response for the request (the payment
        receipt, or a redelivered invoice) for up to the request timeout.
        """
        return await self.request(RequestFamily.OFFER, data, timeout_seconds, on_receipt)

    async def debit(self, data: RequestBody, timeout_seconds: float | None = None) -> Any:
        """Request a payment, budget or access grant from a wallet."""
        return await self.request(RequestFamily.DEBIT, data, timeout_seconds)

    async def manage(self, data: RequestBody, timeout_seconds: float | None = None) -> Any:
        """Send an offer management request."""
        return await self.request(RequestFamily.MANAGE, data, timeout_seconds)

    async def aclose(self) -> None:
        """Stop receipt listeners and close the pool if this client created it."""
        await self._correlator.aclose()
        if self._owns_pool and isinstance(self.pool, WebSocketRelayPool):
            await self.pool.aclose()

    async def __aenter__(self) -> ClinkSDK:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()


# =============================================================================
# One-shot helpers
# =============================================================================


async def _send_once(
    family: RequestFamily,
    pool: RelayPool,
    private_key: bytes | str,
    relays: Sequence[str],
    to_pubkey: str,
    data: RequestBody,
    timeout_seconds: float | None,
    on_secondary: Callable[[Any], None] | None = None,
    crypto: CryptoProvider | None = None,
) -> Any:
    request = coerce_request(family, data)
    correlator = RequestCorrelator(pool, crypto)
    return await correlator.send(
        KeyPair.from_private(private_key),
        relays,
        to_pubkey,
        request,
        family,
        timeout_seconds=timeout_seconds,
        on_secondary=on_secondary,
        linger_seconds=timeout_seconds if on_secondary else None,
    )


async def send_offer_request(
    pool: RelayPool,
    private_key: bytes | str,
    relays: Sequence[str],
    to_pubkey: str,
    data: RequestBody,
    timeout_seconds: float | None = 30.0,
    on_receipt: Callable[[Any], None] | None = None,
    crypto: CryptoProvider | None = None,
) -> Any:
    """Send one offer request without a long-lived client.

    Receipts are only listened for until *timeout_seconds* after the
    invoice arrives.
    """
    return await _send_once(
        RequestFamily.OFFER, pool, private_key, relays, to_pubkey, data, timeout_seconds, on_receipt, crypto
    )


async def send_debit_request(
    pool: RelayPool,
    private_key: bytes | str,
    relays: Sequence[str],
    to_pubkey: str,
    data: RequestBody,
    timeout_seconds: float | None = None,
    crypto: CryptoProvider | None = None,
) -> Any:
    return await _send_once(
        RequestFamily.DEBIT, pool, private_key, relays, to_pubkey, data, timeout_seconds, crypto=crypto
    )


async def send_manage_request(
    pool: RelayPool,
    private_key: bytes | str,
    relays: Sequence[str],
    to_pubkey: str,
    data: RequestBody,
    timeout_seconds: float | None = None,
    crypto: CryptoProvider | None = None,
) -> Any:
    return await _send_once(
        RequestFamily.MANAGE, pool, private_key, relays, to_pubkey, data, timeout_seconds, crypto=crypto
    )


# Factory functions


def create_client(settings: ClinkSettings) -> ClinkSDK:
    """Create a client that talks to real relays.

    Inbound events are signature-checked before they reach the correlator.
    """
    crypto = Nip44Crypto()
    pool = create_websocket_pool(settings.publish_timeout_seconds, verifier=crypto.verify)
    return ClinkSDK(settings=settings, pool=pool, crypto=crypto)


def create_test_client(
    settings: ClinkSettings,
    pool: MockRelayPool | None = None,
    crypto: CryptoProvider | None = None,
) -> ClinkSDK:
    """Create a client for testing.

    Args:
        settings: Client settings
        pool: Pre-configured mock pool (creates new if None)
        crypto: Crypto provider (NIP-44 if None)
    """
    return ClinkSDK(
        settings=settings,
        pool=pool or create_mock_pool(),
        crypto=crypto or Nip44Crypto(),
        _owns_pool=pool is None,
    )
