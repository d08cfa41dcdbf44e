"""Count lines, words and bytes."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import BinaryIO, Optional, Sequence

_WHITESPACE = frozenset(b" \r\t\n\v")
_CHUNK = 512


@dataclass(frozen=True)
class WordCount:
    """Lines, words and bytes of one input."""

    lines: int = 0
    words: int = 0
    chars: int = 0

    def report(self, name: str) -> str:
        """The output line for an input called name."""
        return f"{self.lines} {self.words} {self.chars} {name}"


def count(stream: BinaryIO) -> WordCount:
    """Count a binary stream to its end."""
    lines = words = chars = 0
    inword = False
    while chunk := stream.read(_CHUNK):
        chars += len(chunk)
        lines += chunk.count(b"\n")
        for byte in chunk:
            if byte in _WHITESPACE:
                inword = False
            elif not inword:
                words += 1
                inword = True
    return WordCount(lines, words, chars)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Print counts for each named file, or for standard input."""
    names = list(sys.argv[1:] if argv is None else argv)
    out = sys.stdout
    if not names:
        try:
            result = count(sys.stdin.buffer)
        except OSError:
            out.write("wc: read error\n")
            return 1
        out.write(result.report("") + "\n")
        return 0
    for name in names:
        try:
            handle = open(name, "rb")
        except OSError:
            out.write(f"wc: cannot open {name}\n")
            return 1
        with handle:
            try:
                result = count(handle)
            except OSError:
                out.write("wc: read error\n")
                return 1
        out.write(result.report(name) + "\n")
    return 0