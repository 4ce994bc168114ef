"""
Tokenbound Call-Data Codec

Contract-ABI style encoding used for every message call on the ledger.
Call data is a four-byte function selector followed by head/tail encoded
arguments built from 32-byte words:

    selector(4) | head_0 | head_1 | ... | tail_0 | tail_1 | ...

Static types (uintN, address, bool, bytesN) are encoded in place; dynamic
types (bytes, string, T[]) are encoded as an offset in the head pointing at a
length-prefixed tail.

Supported types:

    uint8..uint256   unsigned integers
    address          0x-prefixed 20-byte address
    bool             0 / 1
    bytes1..bytes32  fixed-size byte strings (right padded)
    bytes, string    dynamic byte strings
    T[]              dynamic arrays of any supported T

Selectors are the first four bytes of SHA3-256 over the canonical signature,
e.g. ``safeTransferFrom(address,address,uint256)``.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, List, Sequence, Tuple

from tokenbound.hardening import (
    CryptoUtils,
    Revert,
    require_address,
    require_uint,
    Validators,
)


WORD_SIZE = 32

SIGNATURE_PATTERN = re.compile(r'^([A-Za-z_][A-Za-z0-9_]*)\((.*)\)$')


class AbiError(Revert):
    """Call data could not be encoded or decoded."""
    REASON = "ABI decoding failed"


# =============================================================================
# WORD TYPE
# =============================================================================

@dataclass(frozen=True)
class Word:
    """
    256-bit word - the fundamental unit of encoded call data.
    """
    data: bytes

    def __post_init__(self):
        if len(self.data) != WORD_SIZE:
            raise ValueError(f"Word must be exactly 32 bytes, got {len(self.data)}")

    @classmethod
    def from_int(cls, value: int) -> 'Word':
        """Create word from integer (big-endian)."""
        return cls(value.to_bytes(WORD_SIZE, 'big'))

    @classmethod
    def from_bytes(cls, data: bytes) -> 'Word':
        """Create word from up to 32 bytes (left padded)."""
        if len(data) > WORD_SIZE:
            raise ValueError(f"Cannot fit {len(data)} bytes in a word")
        return cls(data.rjust(WORD_SIZE, b'\x00'))

    @classmethod
    def zero(cls) -> 'Word':
        return cls(b'\x00' * WORD_SIZE)

    def to_int(self) -> int:
        return int.from_bytes(self.data, 'big')

    def to_hex(self) -> str:
        return '0x' + self.data.hex()


# =============================================================================
# SIGNATURES
# =============================================================================

def parse_signature(signature: str) -> Tuple[str, List[str]]:
    """Split ``name(type1,type2)`` into its name and argument types."""
    match = SIGNATURE_PATTERN.match(signature.replace(" ", ""))
    if not match:
        raise ValueError(f"Malformed function signature: {signature!r}")
    name, args = match.groups()
    types = [t for t in args.split(",") if t] if args else []
    for t in types:
        _check_type(t)
    return name, types


def function_selector(signature: str) -> bytes:
    """Four-byte selector for a canonical function signature."""
    name, types = parse_signature(signature)
    canonical = f"{name}({','.join(types)})"
    return CryptoUtils.hash(canonical)[:4]


def interface_id(signatures: Sequence[str]) -> bytes:
    """ERC-165 interface id: XOR of all selectors in the interface."""
    value = 0
    for signature in signatures:
        value ^= int.from_bytes(function_selector(signature), 'big')
    return value.to_bytes(4, 'big')


def _check_type(t: str) -> None:
    if t.endswith("[]"):
        _check_type(t[:-2])
        return
    if t in ("address", "bool", "bytes", "string"):
        return
    if t.startswith("uint"):
        bits = int(t[4:] or 256)
        if bits % 8 or not 8 <= bits <= 256:
            raise ValueError(f"Unsupported type: {t}")
        return
    if t.startswith("bytes"):
        size = int(t[5:])
        if not 1 <= size <= 32:
            raise ValueError(f"Unsupported type: {t}")
        return
    raise ValueError(f"Unsupported type: {t}")


def _is_dynamic(t: str) -> bool:
    return t in ("bytes", "string") or t.endswith("[]")


# =============================================================================
# ENCODING
# =============================================================================

def _pad_right(data: bytes) -> bytes:
    remainder = len(data) % WORD_SIZE
    if remainder:
        data += b'\x00' * (WORD_SIZE - remainder)
    return data


def _encode_static(t: str, value: Any) -> bytes:
    if t == "address":
        address = require_address(value)
        return Word.from_bytes(bytes.fromhex(address[2:])).data
    if t == "bool":
        if not isinstance(value, bool):
            raise ValueError(f"Expected bool, got {type(value).__name__}")
        return Word.from_int(int(value)).data
    if t.startswith("uint"):
        bits = int(t[4:] or 256)
        return Word.from_int(require_uint(value, t, bits)).data
    # bytesN
    size = int(t[5:])
    result = Validators.validate_bytes(value, t, max_length=size)
    result.raise_if_invalid()
    return result.sanitized_value.ljust(WORD_SIZE, b'\x00')


def _encode_dynamic(t: str, value: Any) -> bytes:
    if t == "string":
        raw = value.encode('utf-8')
        return Word.from_int(len(raw)).data + _pad_right(raw)
    if t == "bytes":
        result = Validators.validate_bytes(value, t)
        result.raise_if_invalid()
        raw = result.sanitized_value
        return Word.from_int(len(raw)).data + _pad_right(raw)
    items = list(value)
    inner = t[:-2]
    return Word.from_int(len(items)).data + encode([inner] * len(items), items)


def encode(types: Sequence[str], values: Sequence[Any]) -> bytes:
    """Head/tail encode ``values`` as ``types``."""
    if len(types) != len(values):
        raise ValueError(f"Expected {len(types)} values, got {len(values)}")

    heads: List[bytes] = []
    tails: List[bytes] = []
    head_size = WORD_SIZE * len(types)
    tail_size = 0

    for t, value in zip(types, values):
        if _is_dynamic(t):
            heads.append(Word.from_int(head_size + tail_size).data)
            tail = _encode_dynamic(t, value)
            tails.append(tail)
            tail_size += len(tail)
        else:
            heads.append(_encode_static(t, value))

    return b''.join(heads) + b''.join(tails)


def encode_call(signature: str, *args: Any) -> bytes:
    """Selector plus encoded arguments for ``signature``."""
    _, types = parse_signature(signature)
    return function_selector(signature) + encode(types, args)


# =============================================================================
# DECODING
# =============================================================================

def _read_word(data: bytes, position: int) -> Word:
    if position < 0 or position + WORD_SIZE > len(data):
        raise AbiError(f"ABI decoding failed: read past end at offset {position}")
    return Word(data[position:position + WORD_SIZE])


def _decode_static(t: str, word: Word) -> Any:
    if t == "address":
        if any(word.data[:12]):
            raise AbiError("ABI decoding failed: dirty address padding")
        return '0x' + word.data[12:].hex()
    if t == "bool":
        value = word.to_int()
        if value not in (0, 1):
            raise AbiError("ABI decoding failed: invalid bool")
        return bool(value)
    if t.startswith("uint"):
        bits = int(t[4:] or 256)
        value = word.to_int()
        if value >= (1 << bits):
            raise AbiError(f"ABI decoding failed: {t} overflow")
        return value
    size = int(t[5:])
    return word.data[:size]


def _decode_dynamic(t: str, data: bytes, position: int) -> Any:
    length = _read_word(data, position).to_int()
    start = position + WORD_SIZE
    if t in ("bytes", "string"):
        if start + length > len(data):
            raise AbiError("ABI decoding failed: byte string past end")
        raw = data[start:start + length]
        if t == "string":
            try:
                return raw.decode('utf-8')
            except UnicodeDecodeError as e:
                raise AbiError("ABI decoding failed: invalid utf-8") from e
        return raw
    if length > (len(data) - start) // WORD_SIZE:
        raise AbiError("ABI decoding failed: array length past end")
    return list(_decode_at([t[:-2]] * length, data, start))


def _decode_at(types: Sequence[str], data: bytes, base: int) -> Tuple[Any, ...]:
    values = []
    for i, t in enumerate(types):
        head = _read_word(data, base + WORD_SIZE * i)
        if _is_dynamic(t):
            values.append(_decode_dynamic(t, data, base + head.to_int()))
        else:
            values.append(_decode_static(t, head))
    return tuple(values)


def decode(types: Sequence[str], data: bytes) -> Tuple[Any, ...]:
    """Decode head/tail encoded ``data`` as ``types``."""
    return _decode_at(types, data, 0)


def decode_call(signature: str, data: bytes) -> Tuple[Any, ...]:
    """Decode call data produced by :func:`encode_call`, checking the selector."""
    _, types = parse_signature(signature)
    if data[:4] != function_selector(signature):
        raise AbiError(f"ABI decoding failed: selector mismatch for {signature}")
    return decode(types, data[4:])
