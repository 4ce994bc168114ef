"""
Tokenbound Call-Data Codec Tests

Selectors, head/tail encoding and strict decoding.

Run with: pytest tests/test_tokenbound_abi.py -v

Copyright (c) 2026 Momentum. All rights reserved.
"""

import hashlib

import pytest

from tokenbound.abi import (
    WORD_SIZE,
    AbiError,
    Word,
    decode,
    decode_call,
    encode,
    encode_call,
    function_selector,
    interface_id,
    parse_signature,
)
from tokenbound.hardening import Revert, ValidationError


ADDR = "0x" + "ab" * 20


class TestSignatures:
    """Signature parsing and selectors."""

    def test_selector_is_hash_prefix_of_canonical_signature(self):
        expected = hashlib.sha3_256(b"transfer(address,uint256)").digest()[:4]
        assert function_selector("transfer(address,uint256)") == expected

    def test_selector_ignores_whitespace(self):
        assert function_selector("transfer(address, uint256)") == function_selector("transfer(address,uint256)")

    def test_overloads_have_distinct_selectors(self):
        three = function_selector("safeTransferFrom(address,address,uint256)")
        four = function_selector("safeTransferFrom(address,address,uint256,bytes)")
        assert three != four

    def test_parse_signature(self):
        assert parse_signature("create(uint256,address,uint256,uint256,bytes)") == (
            "create", ["uint256", "address", "uint256", "uint256", "bytes"]
        )
        assert parse_signature("owner()") == ("owner", [])

    @pytest.mark.parametrize("signature", ["owner", "f(int256)", "f(uint7)", "f(bytes33)", "1f()"])
    def test_malformed_signatures_rejected(self, signature):
        with pytest.raises(ValueError):
            parse_signature(signature)

    def test_interface_id_is_xor_of_selectors(self):
        a = function_selector("owner()")
        b = function_selector("nonce()")
        expected = bytes(x ^ y for x, y in zip(a, b))
        assert interface_id(["owner()", "nonce()"]) == expected


class TestEncoding:
    """Head/tail layout."""

    def test_static_word(self):
        assert encode(["uint256"], [1]) == (1).to_bytes(32, "big")
        assert encode(["address"], [ADDR]) == bytes(12) + bytes.fromhex("ab" * 20)
        assert encode(["bool"], [True]) == Word.from_int(1).data

    def test_fixed_bytes_are_right_padded(self):
        assert encode(["bytes4"], [b"\x01\x02\x03\x04"]) == b"\x01\x02\x03\x04" + bytes(28)

    def test_dynamic_bytes_layout(self):
        data = encode(["bytes"], [b"\x01\x02"])
        assert data[:WORD_SIZE] == Word.from_int(32).data
        assert data[WORD_SIZE:2 * WORD_SIZE] == Word.from_int(2).data
        assert data[2 * WORD_SIZE:] == b"\x01\x02" + bytes(30)

    def test_mixed_static_and_dynamic_decode(self):
        types = ["address", "bytes", "uint256[]", "string"]
        values = (ADDR, b"payload", [1, 2, 3], "héllo")
        assert decode(types, encode(types, values)) == values

    def test_encode_call_prefixes_selector(self):
        data = encode_call("ownerOf(uint256)", 7)
        assert data[:4] == function_selector("ownerOf(uint256)")
        assert decode_call("ownerOf(uint256)", data) == (7,)

    def test_addresses_normalized_to_lowercase(self):
        upper = "0x" + "AB" * 20
        assert decode(["address"], encode(["address"], [upper])) == (ADDR,)

    def test_hex_string_accepted_for_bytes(self):
        assert encode(["bytes"], ["0x0102"]) == encode(["bytes"], [b"\x01\x02"])

    def test_value_count_mismatch(self):
        with pytest.raises(ValueError):
            encode(["uint256", "uint256"], [1])

    def test_uint_out_of_range(self):
        with pytest.raises(ValidationError):
            encode(["uint8"], [256])
        with pytest.raises(ValidationError):
            encode(["uint256"], [-1])

    def test_bool_requires_bool(self):
        with pytest.raises(ValueError):
            encode(["bool"], [1])

    def test_invalid_address(self):
        with pytest.raises(ValidationError):
            encode(["address"], ["0x1234"])


class TestDecoding:
    """Strict decoding of untrusted call data."""

    def test_dirty_address_padding_rejected(self):
        with pytest.raises(AbiError):
            decode(["address"], b"\x01" + bytes(31))

    def test_invalid_bool_rejected(self):
        with pytest.raises(AbiError):
            decode(["bool"], Word.from_int(2).data)

    def test_narrow_uint_overflow_rejected(self):
        with pytest.raises(AbiError):
            decode(["uint8"], Word.from_int(256).data)

    def test_truncated_data_rejected(self):
        with pytest.raises(AbiError):
            decode(["uint256"], b"")

    def test_bytes_length_past_end_rejected(self):
        data = Word.from_int(32).data + Word.from_int(1000).data
        with pytest.raises(AbiError):
            decode(["bytes"], data)

    def test_array_length_past_end_rejected(self):
        data = Word.from_int(32).data + Word.from_int(2 ** 64).data
        with pytest.raises(AbiError):
            decode(["uint256[]"], data)

    def test_selector_mismatch_rejected(self):
        data = encode_call("ownerOf(uint256)", 1)
        with pytest.raises(AbiError):
            decode_call("balanceOf(address)", data)

    def test_abi_errors_are_reverts(self):
        assert issubclass(AbiError, Revert)


class TestWord:
    """256-bit word."""

    def test_word_size_enforced(self):
        with pytest.raises(ValueError):
            Word(b"\x00" * 31)

    def test_from_bytes_left_pads(self):
        assert Word.from_bytes(b"\x01").to_int() == 1

    def test_zero(self):
        assert Word.zero().to_hex() == "0x" + "00" * 32
