"""C-style string and memory routines over byte strings.

A string ends at its first NUL byte or at the end of the data.
"""

from __future__ import annotations

from collections.abc import Iterator
from itertools import chain, islice, repeat, takewhile
from typing import BinaryIO, Union

BytesLike = Union[bytes, bytearray, memoryview, str]


def _as_bytes(s: BytesLike) -> bytes:
    if isinstance(s, str):
        return s.encode("latin-1")
    return bytes(s)


def _cstring(s: BytesLike) -> bytes:
    data = _as_bytes(s)
    end = data.find(b"\0")
    return data if end < 0 else data[:end]


def _padded(s: BytesLike) -> Iterator[int]:
    return chain(_cstring(s), repeat(0))


def _char(c: Union[int, BytesLike]) -> int:
    if isinstance(c, int):
        return c & 0xFF
    data = _as_bytes(c)
    if len(data) != 1:
        raise ValueError("expected a single character")
    return data[0]


def memcmp(a: BytesLike, b: BytesLike, n: int) -> int:
    """Difference of the first differing byte in the first n bytes, or 0."""
    left, right = _as_bytes(a), _as_bytes(b)
    if n > len(left) or n > len(right):
        raise ValueError("n exceeds the length of an operand")
    for x, y in zip(left[:n], right[:n]):
        if x != y:
            return x - y
    return 0


def strncmp(p: BytesLike, q: BytesLike, n: int) -> int:
    """Compare at most n characters of two strings."""
    for a, b in islice(zip(_padded(p), _padded(q)), max(n, 0)):
        if a == 0 or a != b:
            return a - b
    return 0


def strcmp(p: BytesLike, q: BytesLike) -> int:
    """Compare two strings."""
    for a, b in zip(_padded(p), _padded(q)):
        if a == 0 or a != b:
            return a - b
    return 0  # unreachable: the padding always ends the loop


def strncpy(src: BytesLike, n: int) -> bytes:
    """An n-byte buffer holding src, zero-padded, unterminated if src is long."""
    if n <= 0:
        return b""
    text = _cstring(src)[:n]
    return text + bytes(n - len(text))


def safestrcpy(src: BytesLike, n: int) -> bytes:
    """The part of src that fits a buffer of n bytes with its terminator."""
    if n <= 0:
        return b""
    return _cstring(src)[:n - 1]


def strlen(s: BytesLike) -> int:
    """Number of bytes before the terminator."""
    return len(_cstring(s))


def strchr(s: BytesLike, c: Union[int, BytesLike]) -> int | None:
    """Index of the first c in the string, or None; NUL is never found."""
    index = _cstring(s).find(bytes([_char(c)]))
    return None if index < 0 else index


def atoi(s: BytesLike) -> int:
    """Value of the leading decimal digits; no sign or spaces are accepted."""
    digits = bytes(takewhile(lambda ch: 0x30 <= ch <= 0x39, _as_bytes(s)))
    return int(digits) if digits else 0


def gets(stream: BinaryIO, max_len: int) -> bytes:
    """Read one line, keeping its newline or return, of at most max_len - 1 bytes."""
    line = bytearray()
    while len(line) + 1 < max_len:
        ch = stream.read(1)
        if not ch:
            break
        line += ch
        if ch in (b"\n", b"\r"):
            break
    return bytes(line)