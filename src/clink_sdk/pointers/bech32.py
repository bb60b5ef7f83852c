"""Bech32 text encoding (BIP-173 checksum) with a caller-chosen length limit.

Pointers routinely exceed the 90 character limit of BIP-173 addresses, so
the limit is a parameter here rather than a constant.
"""

from __future__ import annotations

from ..errors import InvalidChecksum, InvalidEncoding

CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_CHARSET_INDEX = {c: i for i, c in enumerate(CHARSET)}
_GENERATOR = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)

DEFAULT_LIMIT = 90


def _polymod(values: list[int]) -> int:
    chk = 1
    for value in values:
        top = chk >> 25
        chk = (chk & 0x1FFFFFF) << 5 ^ value
        for i in range(5):
            chk ^= _GENERATOR[i] if ((top >> i) & 1) else 0
    return chk


def _hrp_expand(hrp: str) -> list[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _create_checksum(hrp: str, words: list[int]) -> list[int]:
    polymod = _polymod(_hrp_expand(hrp) + words + [0] * 6) ^ 1
    return [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]


def convert_bits(data: bytes | list[int], from_bits: int, to_bits: int, pad: bool) -> list[int]:
    """Regroup a sequence of *from_bits* integers into *to_bits* integers."""
    acc = 0
    bits = 0
    result: list[int] = []
    maxv = (1 << to_bits) - 1
    for value in data:
        if value < 0 or value >> from_bits:
            raise InvalidEncoding(f"invalid {from_bits}-bit value: {value}")
        acc = (acc << from_bits) | value
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            result.append((acc >> bits) & maxv)
    if pad:
        if bits:
            result.append((acc << (to_bits - bits)) & maxv)
    elif bits >= from_bits or ((acc << (to_bits - bits)) & maxv):
        raise InvalidEncoding("non-zero padding in bech32 data")
    return result


def to_words(data: bytes) -> list[int]:
    return convert_bits(data, 8, 5, True)


def from_words(words: list[int]) -> bytes:
    return bytes(convert_bits(words, 5, 8, False))


def encode(hrp: str, words: list[int], limit: int = DEFAULT_LIMIT) -> str:
    """Encode 5-bit *words* under the human-readable prefix *hrp*."""
    hrp = hrp.lower()
    result = hrp + "1" + "".join(CHARSET[w] for w in words + _create_checksum(hrp, words))
    if len(result) > limit:
        raise InvalidEncoding(f"bech32 string length {len(result)} exceeds limit {limit}")
    return result


def decode(text: str, limit: int = DEFAULT_LIMIT) -> tuple[str, list[int]]:
    """Decode *text* into ``(hrp, words)``, verifying the checksum.

    Only the length limits are reported as plain ``InvalidEncoding``. Any
    other damage to a string (mixed case, missing separator, characters
    outside the alphabet) means it cannot carry a valid checksum, so a
    single corrupted character always surfaces as ``InvalidChecksum``.

    Raises:
        InvalidEncoding: Too short or over *limit*.
        InvalidChecksum: Malformed text, or a checksum that does not verify.
    """
    if len(text) < 8:
        raise InvalidEncoding(f"bech32 string too short: {len(text)}")
    if len(text) > limit:
        raise InvalidEncoding(f"bech32 string length {len(text)} exceeds limit {limit}")
    if text.lower() != text and text.upper() != text:
        raise InvalidChecksum("bech32 string mixes upper and lower case")
    text = text.lower()

    sep = text.rfind("1")
    if sep < 1:
        raise InvalidChecksum("bech32 separator '1' missing or at start")
    if len(text) - sep - 1 < 6:
        raise InvalidChecksum("bech32 data part shorter than the checksum")

    hrp = text[:sep]
    if any(ord(c) < 33 or ord(c) > 126 for c in hrp):
        raise InvalidChecksum("bech32 prefix has characters outside US-ASCII")

    words: list[int] = []
    for c in text[sep + 1 :]:
        if c not in _CHARSET_INDEX:
            raise InvalidChecksum(f"invalid bech32 character {c!r}")
        words.append(_CHARSET_INDEX[c])

    if _polymod(_hrp_expand(hrp) + words) != 1:
        raise InvalidChecksum(f"invalid checksum in {text[:sep + 8]}...")
    return hrp, words[:-6]
