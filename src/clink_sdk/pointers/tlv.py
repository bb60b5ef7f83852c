"""Generic tag/length/value container used inside pointers.

Each entry is ``tag (1 byte) | length (1 byte) | value (length bytes)``.
A tag may repeat; values are kept in the order they appear.
"""

from __future__ import annotations

from ..errors import InvalidFieldLength, TruncatedTlv

TLV = dict[int, list[bytes]]

MAX_VALUE_LENGTH = 255


def parse_tlv(data: bytes) -> TLV:
    """Scan *data* left to right into a tag -> values mapping.

    Raises:
        TruncatedTlv: A header or value is cut short.
    """
    result: TLV = {}
    offset = 0
    while offset < len(data):
        if len(data) - offset < 2:
            raise TruncatedTlv(f"not enough data to read TLV header at offset {offset}")
        tag = data[offset]
        length = data[offset + 1]
        value = data[offset + 2 : offset + 2 + length]
        if len(value) < length:
            raise TruncatedTlv(f"not enough data to read on TLV {tag}")
        result.setdefault(tag, []).append(value)
        offset += 2 + length
    return result


def encode_tlv(tlv: TLV) -> bytes:
    """Serialize *tlv* with tags in descending order.

    Existing decoders expect this order; do not sort ascending.
    """
    out = bytearray()
    for tag in sorted(tlv, reverse=True):
        for value in tlv[tag]:
            if len(value) > MAX_VALUE_LENGTH:
                raise InvalidFieldLength(
                    f"TLV {tag} value is {len(value)} bytes, limit is {MAX_VALUE_LENGTH}"
                )
            out.append(tag)
            out.append(len(value))
            out.extend(value)
    return bytes(out)
