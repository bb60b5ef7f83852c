"""Pointer codec: typed offer/debit/manage pointers <-> bech32 text.

Tag layout shared by all variants:

    0  public key, 32 bytes (required)
    1  relay URL, UTF-8 (required)
    2  offer id (noffer, required) / pointer string (ndebit, nmanage, optional)
    3  price type, 1 byte (noffer, required)
    4  price, 4-byte big-endian unsigned (noffer, optional)

Only the first value of a repeated tag is used.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..errors import InvalidFieldLength, InvalidFieldValue, MissingField, UnknownVariant
from . import bech32
from .tlv import TLV, encode_tlv, parse_tlv

POINTER_MAX_LENGTH = 5000

TAG_PUBKEY = 0
TAG_RELAY = 1
TAG_POINTER = 2
TAG_PRICE_TYPE = 3
TAG_PRICE = 4

OFFER_PREFIX = "noffer"
DEBIT_PREFIX = "ndebit"
MANAGE_PREFIX = "nmanage"


class OfferPriceType(IntEnum):
    """How the offer amount is determined."""

    FIXED = 0
    VARIABLE = 1
    SPONTANEOUS = 2


class _Pointer(BaseModel):
    model_config = ConfigDict(frozen=True)

    pubkey: str
    relay: str

    @field_validator("pubkey")
    @classmethod
    def _check_pubkey(cls, value: str) -> str:
        try:
            raw = bytes.fromhex(value)
        except ValueError as e:
            raise ValueError(f"pubkey is not hex: {e}") from e
        if len(raw) != 32:
            raise ValueError(f"pubkey must be 32 bytes, got {len(raw)}")
        return raw.hex()


class OfferPointer(_Pointer):
    """Points at an offer a counterparty will turn into an invoice."""

    type: Literal["noffer"] = "noffer"
    offer: str
    price_type: OfferPriceType
    price: int | None = Field(default=None, ge=0, le=0xFFFFFFFF)


class DebitPointer(_Pointer):
    """Points at a debit endpoint, optionally scoped by a pointer string."""

    type: Literal["ndebit"] = "ndebit"
    pointer: str | None = None


class ManagePointer(_Pointer):
    """Points at an offer-management endpoint."""

    type: Literal["nmanage"] = "nmanage"
    pointer: str | None = None


Pointer = OfferPointer | DebitPointer | ManagePointer


# =============================================================================
# Encoding
# =============================================================================


def _to_text(prefix: str, tlv: TLV) -> str:
    data = encode_tlv(tlv)
    return bech32.encode(prefix, bech32.to_words(data), POINTER_MAX_LENGTH)


def _base_tlv(pointer: _Pointer) -> TLV:
    return {
        TAG_PUBKEY: [bytes.fromhex(pointer.pubkey)],
        TAG_RELAY: [pointer.relay.encode("utf-8")],
    }


def encode_offer(offer: OfferPointer) -> str:
    tlv = _base_tlv(offer)
    tlv[TAG_POINTER] = [offer.offer.encode("utf-8")]
    tlv[TAG_PRICE_TYPE] = [bytes([int(offer.price_type)])]
    if offer.price is not None:
        tlv[TAG_PRICE] = [offer.price.to_bytes(4, "big")]
    return _to_text(OFFER_PREFIX, tlv)


def encode_debit(debit: DebitPointer) -> str:
    tlv = _base_tlv(debit)
    if debit.pointer is not None:
        tlv[TAG_POINTER] = [debit.pointer.encode("utf-8")]
    return _to_text(DEBIT_PREFIX, tlv)


def encode_manage(manage: ManagePointer) -> str:
    tlv = _base_tlv(manage)
    if manage.pointer is not None:
        tlv[TAG_POINTER] = [manage.pointer.encode("utf-8")]
    return _to_text(MANAGE_PREFIX, tlv)


def encode(pointer: Pointer) -> str:
    """Encode any pointer variant to its bech32 text form."""
    if isinstance(pointer, OfferPointer):
        return encode_offer(pointer)
    if isinstance(pointer, DebitPointer):
        return encode_debit(pointer)
    if isinstance(pointer, ManagePointer):
        return encode_manage(pointer)
    raise TypeError(f"not a pointer: {type(pointer).__name__}")


# =============================================================================
# Decoding
# =============================================================================


def _first(tlv: TLV, tag: int) -> bytes | None:
    values = tlv.get(tag)
    return values[0] if values else None


def _require(tlv: TLV, tag: int, variant: str) -> bytes:
    value = _first(tlv, tag)
    if value is None:
        raise MissingField(tag, variant)
    return value


def _utf8(value: bytes, tag: int) -> str:
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidFieldValue(f"TLV {tag} is not valid UTF-8") from e


def _decode_base(tlv: TLV, variant: str) -> tuple[str, str]:
    pubkey = _require(tlv, TAG_PUBKEY, variant)
    if len(pubkey) != 32:
        raise InvalidFieldLength(f"TLV 0 should be 32 bytes, got {len(pubkey)}")
    relay = _require(tlv, TAG_RELAY, variant)
    return pubkey.hex(), _utf8(relay, TAG_RELAY)


def _decode_offer(tlv: TLV) -> OfferPointer:
    pubkey, relay = _decode_base(tlv, OFFER_PREFIX)
    offer = _utf8(_require(tlv, TAG_POINTER, OFFER_PREFIX), TAG_POINTER)
    raw_type = _require(tlv, TAG_PRICE_TYPE, OFFER_PREFIX)
    if len(raw_type) != 1:
        raise InvalidFieldLength(f"TLV 3 should be 1 byte, got {len(raw_type)}")
    try:
        price_type = OfferPriceType(raw_type[0])
    except ValueError as e:
        raise InvalidFieldValue(f"unknown price type {raw_type[0]}") from e

    price = None
    raw_price = _first(tlv, TAG_PRICE)
    if raw_price is not None:
        if len(raw_price) != 4:
            raise InvalidFieldLength(f"TLV 4 should be 4 bytes, got {len(raw_price)}")
        price = int.from_bytes(raw_price, "big")

    return OfferPointer(
        pubkey=pubkey, relay=relay, offer=offer, price_type=price_type, price=price
    )


def _decode_optional_pointer(tlv: TLV) -> str | None:
    raw = _first(tlv, TAG_POINTER)
    return _utf8(raw, TAG_POINTER) if raw is not None else None


def decode(text: str) -> Pointer:
    """Decode a ``noffer1``/``ndebit1``/``nmanage1`` string.

    The checksum is verified before the TLV payload is looked at.

    Raises:
        InvalidEncoding / InvalidChecksum: The text is not valid bech32.
        UnknownVariant: The prefix is not a pointer prefix.
        TruncatedTlv, MissingField, InvalidFieldLength, InvalidFieldValue:
            The payload does not describe a valid pointer.
    """
    prefix, words = bech32.decode(text.strip(), POINTER_MAX_LENGTH)
    if prefix not in (OFFER_PREFIX, DEBIT_PREFIX, MANAGE_PREFIX):
        raise UnknownVariant(prefix)

    tlv = parse_tlv(bech32.from_words(words))

    if prefix == OFFER_PREFIX:
        return _decode_offer(tlv)
    pubkey, relay = _decode_base(tlv, prefix)
    pointer = _decode_optional_pointer(tlv)
    if prefix == DEBIT_PREFIX:
        return DebitPointer(pubkey=pubkey, relay=relay, pointer=pointer)
    return ManagePointer(pubkey=pubkey, relay=relay, pointer=pointer)
