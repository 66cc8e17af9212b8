"""
Byte level helpers for fixed layout big-endian headers.

All functions work on a bytes-like window and an offset inside it. Text
helpers never raise: corrupted or partially overwritten string regions
degrade to a default string instead of aborting header decoding.
"""

import os
import struct

from csdio.core import CsdStructuralError

_int_formats = {1: "b", 2: "h", 4: "i", 8: "q"}

# printable 7-bit ascii
_ascii_printable = bytes(range(0x20, 0x7F))
_ascii_deletechars = bytes(b for b in range(256) if b not in _ascii_printable)


def _check_window(buffer, offset, width):
    if offset < 0 or offset + width > len(buffer):
        raise CsdStructuralError(f"Cannot read {width} bytes at offset {offset}, buffer has {len(buffer)} bytes")


def read_be_int(buffer, offset, width, signed=True):
    """
    Read a big-endian integer of `width` bytes (1, 2, 4 or 8).
    """
    if width not in _int_formats:
        raise ValueError(f"Unsupported integer width {width}")
    _check_window(buffer, offset, width)
    fmt = _int_formats[width]
    if not signed:
        fmt = fmt.upper()
    (value,) = struct.unpack_from(">" + fmt, buffer, offset)
    return value


def read_be_float64(buffer, offset):
    _check_window(buffer, offset, 8)
    (value,) = struct.unpack_from(">d", buffer, offset)
    return value


def safe_decode(raw, default=""):
    """
    Decode bytes to text with a three stage fallback.

    1. strict utf-8
    2. the printable 7-bit ascii subset of the bytes
    3. `default`

    Trailing/leading whitespace and NUL are trimmed. An empty result also
    gives `default`.

    Returns
    -------
    text: str
    failed: bool
        True when utf-8 decoding failed and a fallback was used
    """
    raw = bytes(raw)
    try:
        text = raw.decode("utf-8")
        failed = False
    except UnicodeDecodeError:
        text = raw.translate(None, _ascii_deletechars).decode("ascii")
        failed = True
    text = text.strip().strip("\x00").strip()
    if not text:
        text = default
    return text, failed


def read_fixed_text(buffer, offset, length, default=""):
    """
    Read a raw fixed width text field (no length prefix), trimmed.

    Returns the same ``(text, failed)`` pair as :func:`safe_decode`.
    """
    _check_window(buffer, offset, length)
    return safe_decode(buffer[offset : offset + length], default=default)


def read_length_prefixed_text(buffer, offset, capacity, default=""):
    """
    Read a text field stored as a 2 byte length followed by a `capacity`
    bytes region.

    The length is clamped to ``[0, capacity]`` so a garbage prefix never
    reads outside its own region.

    Returns the same ``(text, failed)`` pair as :func:`safe_decode`.
    """
    _check_window(buffer, offset, 2 + capacity)
    length = read_be_int(buffer, offset, 2)
    length = min(max(length, 0), capacity)
    start = offset + 2
    return safe_decode(buffer[start : start + length], default=default)


def get_file_size(filename):
    with open(filename, mode="rb") as f:
        f.seek(0, os.SEEK_END)
        return f.tell()
