"""Crypto collaborator: key handling, NIP-44 v2 encryption and event signing.

The correlator depends only on the ``CryptoProvider`` protocol. ``Nip44Crypto``
is the production implementation:

- Conversation key: HKDF-extract(salt="nip44-v2", ikm=ECDH shared x coordinate)
- Message keys: HKDF-expand(conversation key, info=nonce, 76 bytes)
  split into ChaCha20 key (32), ChaCha20 nonce (12) and HMAC key (32)
- Payload: base64(0x02 | nonce | ChaCha20(padded plaintext) | HMAC-SHA256)
- Signatures: BIP-340 Schnorr over the event id
"""

from __future__ import annotations

import base64
import hmac as _hmac
import math
import os
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from coincurve import PrivateKey, PublicKey, PublicKeyXOnly
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms
from cryptography.hazmat.primitives.hmac import HMAC
from cryptography.hazmat.primitives.kdf.hkdf import HKDFExpand

from ..errors import DecryptFailed
from ..protocol.events import SignedEvent, UnsignedEvent

NIP44_VERSION = 2
NIP44_SALT = b"nip44-v2"
MIN_PLAINTEXT_SIZE = 1
MAX_PLAINTEXT_SIZE = 65535


@dataclass(frozen=True)
class KeyPair:
    """A secp256k1 private key and its x-only public key (hex)."""

    private_key: bytes
    public_key: str

    @classmethod
    def from_private(cls, private_key: bytes | str) -> KeyPair:
        secret = bytes.fromhex(private_key) if isinstance(private_key, str) else private_key
        if len(secret) != 32:
            raise ValueError(f"private key must be 32 bytes, got {len(secret)}")
        return cls(private_key=secret, public_key=derive_public_key(secret))

    @classmethod
    def generate(cls) -> KeyPair:
        return cls.from_private(PrivateKey().secret)


def derive_public_key(private_key: bytes) -> str:
    """x-only public key for *private_key*, as lowercase hex."""
    return PrivateKey(private_key).public_key.format(compressed=True)[1:].hex()


@runtime_checkable
class CryptoProvider(Protocol):
    """Protocol for the crypto collaborator used by the correlator."""

    def public_key(self, private_key: bytes) -> str:
        ...

    def conversation_key(self, private_key: bytes, public_key: str) -> bytes:
        ...

    def encrypt(self, plaintext: str, conversation_key: bytes) -> str:
        ...

    def decrypt(self, payload: str, conversation_key: bytes) -> str:
        """Raises DecryptFailed for malformed or foreign ciphertext."""
        ...

    def sign(self, event: UnsignedEvent, private_key: bytes) -> SignedEvent:
        ...

    def verify(self, event: SignedEvent) -> bool:
        ...


# =============================================================================
# NIP-44 helpers
# =============================================================================


def calc_padded_len(unpadded_len: int) -> int:
    if unpadded_len <= 32:
        return 32
    next_power = 1 << (math.floor(math.log2(unpadded_len - 1)) + 1)
    chunk = 32 if next_power <= 256 else next_power // 8
    return chunk * ((unpadded_len - 1) // chunk + 1)


def pad(plaintext: str) -> bytes:
    raw = plaintext.encode("utf-8")
    if not MIN_PLAINTEXT_SIZE <= len(raw) <= MAX_PLAINTEXT_SIZE:
        raise ValueError(f"plaintext size {len(raw)} outside {MIN_PLAINTEXT_SIZE}..{MAX_PLAINTEXT_SIZE}")
    return len(raw).to_bytes(2, "big") + raw + bytes(calc_padded_len(len(raw)) - len(raw))


def unpad(padded: bytes) -> str:
    length = int.from_bytes(padded[:2], "big")
    raw = padded[2 : 2 + length]
    if length == 0 or len(raw) != length or len(padded) != 2 + calc_padded_len(length):
        raise DecryptFailed("invalid padding")
    return raw.decode("utf-8")


def _hmac_sha256(key: bytes, data: bytes) -> bytes:
    mac = HMAC(key, hashes.SHA256())
    mac.update(data)
    return mac.finalize()


def _message_keys(conversation_key: bytes, nonce: bytes) -> tuple[bytes, bytes, bytes]:
    keys = HKDFExpand(algorithm=hashes.SHA256(), length=76, info=nonce).derive(conversation_key)
    return keys[:32], keys[32:44], keys[44:76]


def _chacha20(key: bytes, nonce: bytes, data: bytes) -> bytes:
    # cryptography takes a 16 byte nonce: 4 byte little-endian counter + 12 byte nonce.
    cipher = Cipher(algorithms.ChaCha20(key, bytes(4) + nonce), mode=None)
    return cipher.encryptor().update(data)


class Nip44Crypto:
    """NIP-44 v2 encryption and BIP-340 signing over secp256k1."""

    def public_key(self, private_key: bytes) -> str:
        return derive_public_key(private_key)

    def conversation_key(self, private_key: bytes, public_key: str) -> bytes:
        point = PublicKey(b"\x02" + bytes.fromhex(public_key))
        shared_x = point.multiply(private_key).format(compressed=True)[1:]
        return _hmac_sha256(NIP44_SALT, shared_x)

    def encrypt(self, plaintext: str, conversation_key: bytes, nonce: bytes | None = None) -> str:
        nonce = nonce or os.urandom(32)
        chacha_key, chacha_nonce, hmac_key = _message_keys(conversation_key, nonce)
        ciphertext = _chacha20(chacha_key, chacha_nonce, pad(plaintext))
        mac = _hmac_sha256(hmac_key, nonce + ciphertext)
        return base64.b64encode(bytes([NIP44_VERSION]) + nonce + ciphertext + mac).decode("ascii")

    def decrypt(self, payload: str, conversation_key: bytes) -> str:
        if not payload or payload[0] == "#":
            raise DecryptFailed("unknown encryption version")
        if not 132 <= len(payload) <= 87472:
            raise DecryptFailed(f"invalid payload length: {len(payload)}")
        try:
            raw = base64.b64decode(payload, validate=True)
        except ValueError as e:
            raise DecryptFailed(f"invalid base64: {e}") from e
        if raw[0] != NIP44_VERSION:
            raise DecryptFailed(f"unknown encryption version {raw[0]}")

        nonce, ciphertext, mac = raw[1:33], raw[33:-32], raw[-32:]
        chacha_key, chacha_nonce, hmac_key = _message_keys(conversation_key, nonce)
        verifier = HMAC(hmac_key, hashes.SHA256())
        verifier.update(nonce + ciphertext)
        try:
            verifier.verify(mac)
        except InvalidSignature as e:
            raise DecryptFailed("invalid MAC") from e
        try:
            return unpad(_chacha20(chacha_key, chacha_nonce, ciphertext))
        except UnicodeDecodeError as e:
            raise DecryptFailed("plaintext is not UTF-8") from e

    def sign(self, event: UnsignedEvent, private_key: bytes) -> SignedEvent:
        event_id = event.compute_id()
        sig = PrivateKey(private_key).sign_schnorr(bytes.fromhex(event_id), os.urandom(32))
        fields = event.model_dump(include={"pubkey", "created_at", "kind", "tags", "content"})
        return SignedEvent(**fields, id=event_id, sig=sig.hex())

    def verify(self, event: SignedEvent) -> bool:
        event_id = event.compute_id()
        if not _hmac.compare_digest(event_id, event.id):
            return False
        try:
            key = PublicKeyXOnly(bytes.fromhex(event.pubkey))
            return key.verify(bytes.fromhex(event.sig), bytes.fromhex(event_id))
        except ValueError:
            return False
