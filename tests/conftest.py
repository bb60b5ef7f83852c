"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import hashlib
import json
from typing import Any

import pytest

from clink_sdk.errors import DecryptFailed
from clink_sdk.protocol.events import SignedEvent, UnsignedEvent, now_seconds
from clink_sdk.sdk.crypto import KeyPair, derive_public_key
from clink_sdk.sdk.transport import MockRelayPool

RELAYS = ["wss://relay.one.example", "wss://relay.two.example"]


def fake_key_pair(seed: str) -> KeyPair:
    return KeyPair.from_private(hashlib.sha256(seed.encode()).digest())


class FakeCrypto:
    """Deterministic stand-in for the crypto collaborator.

    The "ciphertext" is the plaintext prefixed with a short tag of the
    conversation key, so decrypting with the wrong key fails.
    """

    def public_key(self, private_key: bytes) -> str:
        return derive_public_key(private_key)

    def conversation_key(self, private_key: bytes, public_key: str) -> bytes:
        pair = sorted([self.public_key(private_key), public_key])
        return hashlib.sha256("".join(pair).encode()).digest()

    def encrypt(self, plaintext: str, conversation_key: bytes) -> str:
        return f"{conversation_key.hex()[:16]}:{plaintext}"

    def decrypt(self, payload: str, conversation_key: bytes) -> str:
        tag, sep, plaintext = payload.partition(":")
        if not sep or tag != conversation_key.hex()[:16]:
            raise DecryptFailed("wrong conversation key")
        return plaintext

    def sign(self, event: UnsignedEvent, private_key: bytes) -> SignedEvent:
        fields = event.model_dump(include={"pubkey", "created_at", "kind", "tags", "content"})
        return SignedEvent(**fields, id=event.compute_id(), sig="00" * 64)

    def verify(self, event: SignedEvent) -> bool:
        return event.id == event.compute_id()


def make_response(
    crypto: FakeCrypto,
    service: KeyPair,
    request: SignedEvent,
    payload: dict[str, Any] | str,
    content: str | None = None,
) -> SignedEvent:
    """Build the service's signed response to *request*."""
    if content is None:
        body = payload if isinstance(payload, str) else json.dumps(payload)
        key = crypto.conversation_key(service.private_key, request.pubkey)
        content = crypto.encrypt(body, key)
    unsigned = UnsignedEvent(
        pubkey=service.public_key,
        created_at=now_seconds(),
        kind=request.kind,
        tags=[["p", request.pubkey], ["e", request.id]],
        content=content,
    )
    return crypto.sign(unsigned, service.private_key)


@pytest.fixture
def crypto() -> FakeCrypto:
    return FakeCrypto()


@pytest.fixture
def client_keys() -> KeyPair:
    return fake_key_pair("client")


@pytest.fixture
def service_keys() -> KeyPair:
    return fake_key_pair("service")


@pytest.fixture
def pool() -> MockRelayPool:
    return MockRelayPool()


@pytest.fixture
def relays() -> list[str]:
    return list(RELAYS)


@pytest.fixture
def respond(crypto: FakeCrypto, service_keys: KeyPair):
    """Build a service response: ``respond(request, payload)``."""

    def _respond(
        request: SignedEvent, payload: dict[str, Any] | str, content: str | None = None
    ) -> SignedEvent:
        return make_response(crypto, service_keys, request, payload, content)

    return _respond
