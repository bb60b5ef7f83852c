"""Pointer identifiers exchanged out of band (``noffer1…``, ``ndebit1…``, ``nmanage1…``)."""

from .codec import (
    POINTER_MAX_LENGTH,
    DebitPointer,
    ManagePointer,
    OfferPointer,
    OfferPriceType,
    Pointer,
    decode,
    encode,
    encode_debit,
    encode_manage,
    encode_offer,
)
from .tlv import encode_tlv, parse_tlv

__all__ = [
    "POINTER_MAX_LENGTH",
    "Pointer",
    "OfferPointer",
    "DebitPointer",
    "ManagePointer",
    "OfferPriceType",
    "encode",
    "decode",
    "encode_offer",
    "encode_debit",
    "encode_manage",
    "encode_tlv",
    "parse_tlv",
]
