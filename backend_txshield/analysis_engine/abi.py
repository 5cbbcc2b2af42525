"""
Manual fixed-width ABI helpers.

Static ABI encoding only: each field is left-padded to one 32-byte word
and appended after the 4-byte selector. Decoding reads words at fixed
byte offsets of the argument area (calldata after the selector). Dynamic
address arrays are read through their head offset word.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from eth_utils import function_signature_to_4byte_selector, keccak

from backend_txshield.core.exceptions import EncodingFailure
from backend_txshield.txshield_logging import get_logger

logger = get_logger(__name__)

WORD_BYTES = 32
WORD_HEX = WORD_BYTES * 2
MAX_UINT256 = (1 << 256) - 1
# Bound on decoded array length; anything larger is treated as corrupt.
MAX_ARRAY_LENGTH = 256

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_HEX_BODY_RE = re.compile(r"^[0-9a-fA-F]*$")


def function_selector(signature: str) -> str:
    """0x-prefixed 4-byte selector of a canonical signature, e.g. approve(address,uint256)."""
    return "0x" + function_signature_to_4byte_selector(signature).hex()


def calldata_hash(data: str) -> str:
    """keccak256 of raw calldata as 0x-prefixed hex (registry signature lookups)."""
    body = data[2:] if data.startswith("0x") else data
    return "0x" + keccak(hexstr="0x" + body).hex()


def is_address(value: object) -> bool:
    return isinstance(value, str) and bool(_ADDRESS_RE.match(value))


@dataclass(frozen=True)
class AbiField:
    """One static argument: an int, or a 0x-prefixed hex string of at most width_bytes."""

    value: int | str
    width_bytes: int = WORD_BYTES


def address_field(address: str | None) -> AbiField:
    return AbiField(address if address is not None else "", 20)


def uint_field(value: int) -> AbiField:
    return AbiField(value, WORD_BYTES)


def encode_word(f: AbiField) -> str:
    """Right-align one field in a 32-byte word. Raises EncodingFailure."""
    if not 0 < f.width_bytes <= WORD_BYTES:
        raise EncodingFailure(f"Unsupported field width: {f.width_bytes}")
    if isinstance(f.value, bool):
        raise EncodingFailure("Booleans are not supported")
    if isinstance(f.value, int):
        if f.value < 0 or f.value >= 1 << (8 * f.width_bytes):
            raise EncodingFailure(f"Integer out of range for {f.width_bytes} bytes")
        return format(f.value, "x").rjust(WORD_HEX, "0")
    if not isinstance(f.value, str) or not f.value.startswith("0x"):
        raise EncodingFailure(f"Expected 0x-prefixed hex, got {f.value!r}")
    body = f.value[2:]
    if not _HEX_BODY_RE.match(body):
        raise EncodingFailure(f"Not hex: {f.value!r}")
    if f.width_bytes == 20 and len(body) != 40:
        raise EncodingFailure(f"Not an address: {f.value!r}")
    if len(body) > f.width_bytes * 2:
        raise EncodingFailure(f"Value wider than {f.width_bytes} bytes")
    return body.lower().rjust(WORD_HEX, "0")


def encode_call(selector: str, fields: Iterable[AbiField], tail: str | None = None) -> str:
    """
    selector || word(field_1) || ... || word(field_n) [|| tail].

    `tail` is appended verbatim (0x stripped), e.g. the original calldata
    forwarded by a wrapper. On any EncodingFailure the bare selector is
    returned so the caller always gets valid hex.
    """
    try:
        words = [encode_word(f) for f in fields]
        if tail:
            t = tail[2:] if tail.startswith("0x") else tail
            if not _HEX_BODY_RE.match(t):
                raise EncodingFailure("Tail is not hex")
            words.append(t.lower())
    except EncodingFailure as e:
        logger.warning("abi_encode_failed", selector=selector, error=str(e))
        return selector
    return selector + "".join(words)


# --- decoding -------------------------------------------------------------


def read_word(args_hex: str, byte_offset: int) -> str:
    """64 hex chars at byte_offset of the argument area. Raises ValueError when truncated."""
    start = byte_offset * 2
    word = args_hex[start:start + WORD_HEX]
    if byte_offset < 0 or len(word) != WORD_HEX:
        raise ValueError(f"calldata truncated at byte {byte_offset}")
    if not _HEX_BODY_RE.match(word):
        raise ValueError(f"non-hex word at byte {byte_offset}")
    return word


def decode_uint256(word: str) -> int:
    return int(word, 16)


def decode_address(word: str) -> str:
    """Lower 20 bytes as 0x-prefixed lower-case hex; upper 12 bytes must be zero."""
    if word[:24].strip("0"):
        raise ValueError("address word has non-zero high bytes")
    return "0x" + word[24:].lower()


def decode_address_array(args_hex: str, byte_offset: int) -> list[str]:
    """Follow the head offset word to the length word, then read each element."""
    offset = decode_uint256(read_word(args_hex, byte_offset))
    if offset % WORD_BYTES or offset * 2 >= len(args_hex):
        raise ValueError(f"bad array offset {offset}")
    length = decode_uint256(read_word(args_hex, offset))
    if length > MAX_ARRAY_LENGTH:
        raise ValueError(f"array length {length} exceeds {MAX_ARRAY_LENGTH}")
    return [
        decode_address(read_word(args_hex, offset + WORD_BYTES * (i + 1)))
        for i in range(length)
    ]
