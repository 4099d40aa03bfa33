"""Helpers for cleaning up raw byte strings."""

from __future__ import annotations

_ASCII_PRINTABLE_MIN = 32
_ASCII_DELETE = 127
_RUNE_SELF = 0x80


def _sequence_length(lead: int) -> int:
    """Expected length of a UTF-8 sequence starting with the given byte, 1 if invalid."""
    if 0xC2 <= lead <= 0xDF:
        return 2
    if 0xE0 <= lead <= 0xEF:
        return 3
    if 0xF0 <= lead <= 0xF4:
        return 4
    return 1


def _rune_width(src: bytes, pos: int) -> int:
    """Width of the valid multi-byte character at pos, or 1 if there is none."""
    length = _sequence_length(src[pos])
    if length == 1 or pos + length > len(src):
        return 1
    try:
        src[pos : pos + length].decode("utf-8")
    except UnicodeDecodeError:
        return 1
    return length


def bytes_to_valid_utf8(src: bytes, replacement: bytes) -> bytes:
    """Replace invalid UTF-8 and control characters in src.

    Every run of invalid bytes or control characters is replaced by a single
    copy of ``replacement``.
    """
    result = bytearray()
    invalid = False
    pos = 0
    size = len(src)
    while pos < size:
        byte = src[pos]
        if _ASCII_PRINTABLE_MIN <= byte < _RUNE_SELF and byte != _ASCII_DELETE:
            result.append(byte)
            pos += 1
            invalid = False
            continue
        width = 1 if byte < _RUNE_SELF else _rune_width(src, pos)
        if width == 1:
            pos += 1
            if not invalid:
                invalid = True
                result += replacement
            continue
        invalid = False
        result += src[pos : pos + width]
        pos += width
    return bytes(result)