"""Unit tests for the bech32 text codec."""

from __future__ import annotations

import pytest

from clink_sdk.errors import InvalidChecksum, InvalidEncoding
from clink_sdk.pointers import bech32


class TestValidStrings:
    """BIP-173 valid test vectors decode."""

    @pytest.mark.parametrize(
        "text",
        [
            "A12UEL5L",
            "a12uel5l",
            "abcdef1qpzry9x8gf2tvdw0s3jn54khce6mua7lmqqqxw",
            "split1checkupstagehandshakeupstreamerranterredcaperred2y9e3w",
        ],
    )
    def test_decodes(self, text: str) -> None:
        """Valid strings decode and re-encode to the lowercase form."""
        hrp, words = bech32.decode(text)
        assert bech32.encode(hrp, words) == text.lower()

    def test_data_words_in_charset_order(self) -> None:
        """Every charset character maps to its index."""
        hrp, words = bech32.decode("abcdef1qpzry9x8gf2tvdw0s3jn54khce6mua7lmqqqxw")
        assert hrp == "abcdef"
        assert words == list(range(32))

    def test_bytes_roundtrip(self) -> None:
        """to_words/from_words are inverse for byte payloads."""
        data = bytes(range(40))
        text = bech32.encode("test", bech32.to_words(data))
        hrp, words = bech32.decode(text)
        assert hrp == "test"
        assert bech32.from_words(words) == data


class TestInvalidStrings:
    """Malformed strings are rejected with the right error."""

    def test_bad_checksum(self) -> None:
        with pytest.raises(InvalidChecksum):
            bech32.decode("A1G7SGD8")

    def test_no_separator(self) -> None:
        with pytest.raises(InvalidEncoding):
            bech32.decode("pzry9x0s0muk")

    def test_empty_hrp(self) -> None:
        with pytest.raises(InvalidEncoding):
            bech32.decode("1pzry9x0s0muk")

    def test_invalid_data_character(self) -> None:
        with pytest.raises(InvalidEncoding):
            bech32.decode("x1b4n0q5v")

    def test_mixed_case(self) -> None:
        with pytest.raises(InvalidEncoding):
            bech32.decode("A12uEL5L")

    def test_checksum_error_is_encoding_error(self) -> None:
        """Callers catching InvalidEncoding also see checksum failures."""
        assert issubclass(InvalidChecksum, InvalidEncoding)


class TestLengthLimit:
    """The length limit is caller-controlled."""

    def test_default_limit_rejects_long_strings(self) -> None:
        text = bech32.encode("test", bech32.to_words(bytes(100)), limit=5000)
        with pytest.raises(InvalidEncoding):
            bech32.decode(text)

    def test_raised_limit_accepts_long_strings(self) -> None:
        data = bytes(range(100))
        text = bech32.encode("test", bech32.to_words(data), limit=5000)
        _, words = bech32.decode(text, limit=5000)
        assert bech32.from_words(words) == data

    def test_encode_over_limit(self) -> None:
        with pytest.raises(InvalidEncoding):
            bech32.encode("test", bech32.to_words(bytes(100)))
