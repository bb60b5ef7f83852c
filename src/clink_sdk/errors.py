"""Error taxonomy for the CLINK protocol layer.

Codec and validation errors are raised synchronously by the call that hit
them. Network and timing errors terminate a pending request. Decrypt and
payload errors on inbound events are logged and skipped by the correlator.
"""

from __future__ import annotations

from typing import Any


class ClinkError(Exception):
    """Base class for all CLINK errors."""


# =============================================================================
# Request errors
# =============================================================================


class RequestValidationError(ClinkError, ValueError):
    """A request body violates a family constraint. Raised before any network activity."""


class PublishFailed(ClinkError):
    """The transport rejected the request or could not deliver it to any relay."""

    def __init__(self, message: str, results: dict[str, Any] | None = None):
        super().__init__(message)
        self.results = results or {}


class RequestTimeout(ClinkError, TimeoutError):
    """No correlated response arrived before the caller's deadline."""


class DecryptFailed(ClinkError):
    """An event matched the subscription but its content could not be decrypted."""


class MalformedPayload(ClinkError):
    """Decrypted content is not valid JSON or does not match the expected shape."""


# =============================================================================
# Pointer codec errors
# =============================================================================


class PointerError(ClinkError, ValueError):
    """Base class for pointer encode/decode failures."""


class InvalidEncoding(PointerError):
    """The text is not bech32 of an acceptable length. Base for checksum failures."""


class InvalidChecksum(InvalidEncoding):
    """The bech32 checksum does not verify, or the text is damaged so that it cannot."""


class UnknownVariant(PointerError):
    """The human-readable prefix does not name a known pointer variant."""

    def __init__(self, prefix: str):
        super().__init__(f"unknown prefix {prefix}")
        self.prefix = prefix


class TruncatedTlv(PointerError):
    """Fewer bytes remain than a TLV entry declares."""


class MissingField(PointerError):
    """A required TLV tag is absent."""

    def __init__(self, tag: int, variant: str):
        super().__init__(f"missing TLV {tag} for {variant}")
        self.tag = tag
        self.variant = variant


class InvalidFieldLength(PointerError):
    """A TLV value has the wrong length for its field."""


class InvalidFieldValue(PointerError):
    """A TLV value has the right length but an unusable value."""
