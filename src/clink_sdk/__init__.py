"""CLINK - encrypted, correlated requests over Nostr relays, plus pointer codecs."""

from .errors import (
    ClinkError,
    PointerError,
    PublishFailed,
    RequestTimeout,
    RequestValidationError,
)
from .pointers import DebitPointer, ManagePointer, OfferPointer, OfferPriceType
from .pointers import decode as decode_pointer
from .pointers import encode as encode_pointer
from .sdk import ClinkSDK, create_client
from .settings import ClinkSettings

__version__ = "0.1.0"

__all__ = [
    "ClinkSDK",
    "ClinkSettings",
    "create_client",
    "OfferPointer",
    "DebitPointer",
    "ManagePointer",
    "OfferPriceType",
    "encode_pointer",
    "decode_pointer",
    "ClinkError",
    "PointerError",
    "PublishFailed",
    "RequestTimeout",
    "RequestValidationError",
]
