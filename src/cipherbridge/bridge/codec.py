"""
Binary codec for instruction payloads.

Fixed-width little-endian unsigned integers, order-preserving frame
concatenation, and the two ciphertext framings the confidential programs
accept:

- fixed 16-byte handles (a u128 field)
- variable-length ciphertexts: u32 LE length, raw bytes, u8 kind tag
"""

from typing import Tuple, Union

from ..errors import RangeError, ValidationError

HANDLE_WIDTH = 16
LENGTH_PREFIX_WIDTH = 4
KIND_TAG_WIDTH = 1

BytesLike = Union[bytes, bytearray, memoryview]


def encode_uint(value: int, width: int) -> bytes:
    """Encode ``value`` as exactly ``width`` little-endian bytes.

    Raises:
        RangeError: if ``value`` is negative or needs more than ``width`` bytes.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise RangeError(
            f"Expected an integer, got {type(value).__name__}",
            width=width,
            field="value",
            value=value,
        )
    if width <= 0:
        raise RangeError(f"Width must be positive, got {width}", width=width)
    if value < 0 or value >= 1 << (8 * width):
        raise RangeError(
            f"Value {value} does not fit in {width} unsigned bytes",
            width=width,
            field="value",
            value=value,
            expected=f"0 <= value < 2**{8 * width}",
        )
    return value.to_bytes(width, "little")


def decode_uint(data: BytesLike, width: int) -> int:
    """Decode exactly ``width`` little-endian bytes."""
    if width <= 0:
        raise RangeError(f"Width must be positive, got {width}", width=width)
    if len(data) != width:
        raise RangeError(
            f"Expected {width} bytes, got {len(data)}",
            width=width,
            field="data",
            value=len(data),
            expected=width,
        )
    return int.from_bytes(bytes(data), "little")


def encode_u8(value: int) -> bytes:
    return encode_uint(value, 1)


def encode_u32(value: int) -> bytes:
    return encode_uint(value, 4)


def encode_u64(value: int) -> bytes:
    return encode_uint(value, 8)


def encode_u128(value: int) -> bytes:
    return encode_uint(value, 16)


def concat_frames(*frames: BytesLike) -> bytes:
    """Join frames in argument order with no padding or separators."""
    return b"".join(bytes(frame) for frame in frames)


def handle_bytes(ciphertext: BytesLike) -> bytes:
    """Fixed 16-byte handle field for a ciphertext.

    The first 16 bytes are taken as a little-endian u128; shorter
    ciphertexts are zero-extended.
    """
    raw = bytes(ciphertext)
    if not raw:
        raise ValidationError("Ciphertext is empty", field="ciphertext")
    return raw[:HANDLE_WIDTH].ljust(HANDLE_WIDTH, b"\x00")


def handle_value(ciphertext: BytesLike) -> int:
    """Integer value of the 16-byte handle field."""
    return decode_uint(handle_bytes(ciphertext), HANDLE_WIDTH)


def frame_ciphertext(ciphertext: BytesLike, kind: int = 0) -> bytes:
    """Frame a variable-length ciphertext as ``len:u32 | bytes | kind:u8``."""
    raw = bytes(ciphertext)
    if not raw:
        raise ValidationError("Ciphertext is empty", field="ciphertext")
    return concat_frames(encode_u32(len(raw)), raw, encode_u8(kind))


def unframe_ciphertext(data: BytesLike) -> Tuple[bytes, int]:
    """Inverse of :func:`frame_ciphertext`; returns ``(ciphertext, kind)``."""
    raw = bytes(data)
    if len(raw) < LENGTH_PREFIX_WIDTH + KIND_TAG_WIDTH:
        raise RangeError(f"Frame too short: {len(raw)} bytes")
    length = decode_uint(raw[:LENGTH_PREFIX_WIDTH], LENGTH_PREFIX_WIDTH)
    expected = LENGTH_PREFIX_WIDTH + length + KIND_TAG_WIDTH
    if len(raw) != expected:
        raise RangeError(
            f"Frame length mismatch: header says {expected} bytes, got {len(raw)}"
        )
    body = raw[LENGTH_PREFIX_WIDTH : LENGTH_PREFIX_WIDTH + length]
    return body, raw[-1]


def hex_to_bytes(value: str) -> bytes:
    """Decode a gateway ciphertext given as hex, with or without ``0x``."""
    text = value[2:] if value.startswith(("0x", "0X")) else value
    if len(text) % 2:
        text = "0" + text
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise ValidationError(
            f"Invalid hex ciphertext: {e}", field="ciphertext", value=value[:20]
        ) from e
