"""Unit tests for the TLV container."""

from __future__ import annotations

import pytest

from clink_sdk.errors import InvalidFieldLength, TruncatedTlv
from clink_sdk.pointers.tlv import encode_tlv, parse_tlv


class TestEncode:
    """Entries are emitted in descending tag order."""

    def test_descending_tag_order(self) -> None:
        data = encode_tlv({0: [b"\xaa"], 1: [b"\xbb"], 3: [b"\xcc"]})
        assert data == bytes([3, 1, 0xCC, 1, 1, 0xBB, 0, 1, 0xAA])

    def test_insertion_order_does_not_matter(self) -> None:
        a = encode_tlv({0: [b"x"], 2: [b"y"], 1: [b"z"]})
        b = encode_tlv({2: [b"y"], 1: [b"z"], 0: [b"x"]})
        assert a == b
        assert a[0] == 2

    def test_repeated_values_keep_order(self) -> None:
        data = encode_tlv({1: [b"a", b"b"]})
        assert data == bytes([1, 1]) + b"a" + bytes([1, 1]) + b"b"

    def test_empty_value(self) -> None:
        assert encode_tlv({2: [b""]}) == bytes([2, 0])

    def test_value_too_long(self) -> None:
        with pytest.raises(InvalidFieldLength):
            encode_tlv({1: [bytes(256)]})

    def test_max_value_length(self) -> None:
        data = encode_tlv({1: [bytes(255)]})
        assert data[1] == 255
        assert len(data) == 257


class TestParse:
    """Parsing scans left to right and keeps repeated tags."""

    def test_parse_entries(self) -> None:
        tlv = parse_tlv(bytes([3, 1, 0xCC, 0, 2, 0xAA, 0xBB]))
        assert tlv == {3: [b"\xcc"], 0: [b"\xaa\xbb"]}

    def test_repeated_tags_are_not_overwritten(self) -> None:
        tlv = parse_tlv(bytes([2, 1]) + b"a" + bytes([2, 1]) + b"b")
        assert tlv[2] == [b"a", b"b"]

    def test_empty_input(self) -> None:
        assert parse_tlv(b"") == {}

    def test_truncated_value(self) -> None:
        with pytest.raises(TruncatedTlv):
            parse_tlv(bytes([1, 5]) + b"abc")

    def test_header_without_length(self) -> None:
        with pytest.raises(TruncatedTlv):
            parse_tlv(bytes([1, 1]) + b"a" + bytes([2]))

    def test_every_cut_inside_an_entry_is_truncated(self) -> None:
        """Prefixes that end inside an entry never parse."""
        data = encode_tlv({0: [bytes(32)], 1: [b"wss://r.example"], 2: [b"abc"]})
        boundaries = set()
        offset = 0
        while offset < len(data):
            boundaries.add(offset)
            offset += 2 + data[offset + 1]

        for cut in range(1, len(data)):
            if cut in boundaries:
                continue
            with pytest.raises(TruncatedTlv):
                parse_tlv(data[:cut])

    def test_encode_parse_roundtrip(self) -> None:
        tlv = {0: [bytes(32)], 1: [b"wss://r.example"], 4: [b"\x00\x00\x01\x00"]}
        assert parse_tlv(encode_tlv(tlv)) == tlv
