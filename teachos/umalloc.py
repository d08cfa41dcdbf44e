"""First-fit heap allocator over a circular free list sorted by address."""

from __future__ import annotations

from dataclasses import dataclass

HEADER_SIZE = 8
"""Bytes in a block header; every block is a whole number of headers."""

MIN_UNITS = 4096
"""Smallest number of header units requested when the heap grows."""

HEAP_BASE = 0x1000
"""Address of the first byte of the heap."""

_BASE = 0  # address of the zero-sized sentinel block that anchors the list


@dataclass
class _Header:
    ptr: int
    size: int


class Allocator:
    """A malloc/free heap that grows in large steps up to heap_limit bytes."""

    def __init__(self, heap_limit: int) -> None:
        if heap_limit < 0:
            raise ValueError("heap limit must not be negative")
        self._limit = heap_limit
        self._brk = 0
        self._headers: dict[int, _Header] = {}
        self._allocated: set[int] = set()
        self._freep: int | None = None

    def malloc(self, nbytes: int) -> int | None:
        """Address of a new block of at least nbytes, or None when the heap is full."""
        if nbytes < 0:
            raise ValueError("cannot allocate a negative number of bytes")
        nunits = (nbytes + HEADER_SIZE - 1) // HEADER_SIZE + 1
        if self._freep is None:
            self._headers[_BASE] = _Header(ptr=_BASE, size=0)
            self._freep = _BASE
        prevp = self._freep
        p = self._headers[prevp].ptr
        while True:
            header = self._headers[p]
            if header.size >= nunits:
                if header.size == nunits:
                    self._headers[prevp].ptr = header.ptr
                else:
                    header.size -= nunits
                    p += header.size * HEADER_SIZE
                    self._headers[p] = _Header(ptr=0, size=nunits)
                self._freep = prevp
                address = p + HEADER_SIZE
                self._allocated.add(address)
                return address
            if p == self._freep:
                grown = self._morecore(nunits)
                if grown is None:
                    return None
                p = grown
            prevp = p
            p = self._headers[p].ptr

    def free(self, address: int) -> None:
        """Return a block obtained from malloc to the free list."""
        if address not in self._allocated:
            raise ValueError(f"address {address:#x} was not allocated")
        self._allocated.remove(address)
        self._release(address - HEADER_SIZE)

    def free_blocks(self) -> list[tuple[int, int]]:
        """Free blocks as (header address, length in bytes), in address order."""
        if self._freep is None:
            return []
        blocks = []
        p = self._headers[_BASE].ptr
        while p != _BASE:
            header = self._headers[p]
            blocks.append((p, header.size * HEADER_SIZE))
            p = header.ptr
        return sorted(blocks)

    def _morecore(self, nunits: int) -> int | None:
        nunits = max(nunits, MIN_UNITS)
        nbytes = nunits * HEADER_SIZE
        if self._brk + nbytes > self._limit:
            return None
        block = HEAP_BASE + self._brk
        self._brk += nbytes
        self._headers[block] = _Header(ptr=0, size=nunits)
        self._release(block)
        return self._freep

    def _release(self, bp: int) -> None:
        block = self._headers[bp]
        p = self._freep
        while True:
            current = self._headers[p]
            if p < bp < current.ptr:
                break
            if p >= current.ptr and (bp > p or bp < current.ptr):
                break
            p = current.ptr
        current = self._headers[p]
        following = current.ptr
        if bp + block.size * HEADER_SIZE == following:
            absorbed = self._headers.pop(following)
            block.size += absorbed.size
            block.ptr = absorbed.ptr
        else:
            block.ptr = following
        if p + current.size * HEADER_SIZE == bp:
            current.size += block.size
            current.ptr = block.ptr
            del self._headers[bp]
        else:
            current.ptr = bp
        self._freep = p