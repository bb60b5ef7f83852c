"""CLINK SDK - client for encrypted request/response exchanges over relays.

Provides:
- ClinkSDK: facade with offer/debit/manage operations
- RequestCorrelator: publish one request, correlate its response
- Relay pools: websocket (real relays) and mock (testing)
- Nip44Crypto: NIP-44 v2 encryption and Schnorr signing
"""

from .client import (
    ClinkSDK,
    OfferManagementAPI,
    create_client,
    create_test_client,
    send_debit_request,
    send_manage_request,
    send_offer_request,
)
from .correlator import PendingRequest, RequestCorrelator, RequestState
from .crypto import CryptoProvider, KeyPair, Nip44Crypto, derive_public_key
from .transport import (
    MockRelayPool,
    PublishResult,
    RelayPool,
    RelayPoolConfig,
    Subscription,
    TransportState,
    WebSocketRelayPool,
    create_mock_pool,
    create_websocket_pool,
)

__all__ = [
    # Client
    "ClinkSDK",
    "OfferManagementAPI",
    "create_client",
    "create_test_client",
    "send_offer_request",
    "send_debit_request",
    "send_manage_request",
    # Correlator
    "RequestCorrelator",
    "PendingRequest",
    "RequestState",
    # Crypto
    "CryptoProvider",
    "KeyPair",
    "Nip44Crypto",
    "derive_public_key",
    # Transport Protocol & Implementations
    "RelayPool",
    "RelayPoolConfig",
    "PublishResult",
    "Subscription",
    "TransportState",
    "WebSocketRelayPool",
    "MockRelayPool",
    "create_websocket_pool",
    "create_mock_pool",
]
