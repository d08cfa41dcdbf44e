"""Simulated physical pages and two-level x86 page tables."""

from __future__ import annotations

import struct
from collections.abc import Callable

from .layout import (
    DEVSPACE,
    EXTMEM,
    KERNBASE,
    KERNLINK,
    NPDENTRIES,
    NPTENTRIES,
    PGSIZE,
    PHYSTOP,
    PTE_P,
    PTE_U,
    PTE_W,
    KernelPanic,
    p2v,
    pdx,
    pg_round_down,
    pg_round_up,
    pte_addr,
    pte_flags,
    ptx,
    v2p,
)

FIRST_PAGE = 0x400000
"""Physical address of the first page handed out by PhysicalMemory."""

_MASK32 = 0xFFFFFFFF
_ENTRY = struct.Struct("<I")


class PhysicalMemory:
    """A pool of page-sized frames with a last-freed-first-allocated free list."""

    def __init__(self, npages: int) -> None:
        if npages < 0 or FIRST_PAGE + npages * PGSIZE > PHYSTOP:
            raise ValueError(f"cannot provide {npages} pages below PHYSTOP")
        self._start = FIRST_PAGE
        self._end = FIRST_PAGE + npages * PGSIZE
        self._data = bytearray(npages * PGSIZE)
        self._free = list(range(self._start, self._end, PGSIZE))
        self._free_set = set(self._free)

    def alloc(self) -> int | None:
        """Physical address of a free page, or None when none is left."""
        if not self._free:
            return None
        pa = self._free.pop()
        self._free_set.discard(pa)
        return pa

    def free(self, pa: int) -> None:
        """Give a page back to the pool."""
        if pa % PGSIZE or not self._start <= pa < self._end or pa in self._free_set:
            raise KernelPanic("kfree")
        self._free.append(pa)
        self._free_set.add(pa)

    def read(self, pa: int, n: int) -> bytes:
        """The n bytes at physical address pa."""
        offset = self._offset(pa, n)
        return bytes(self._data[offset:offset + n])

    def write(self, pa: int, data: bytes) -> None:
        """Store data at physical address pa."""
        offset = self._offset(pa, len(data))
        self._data[offset:offset + len(data)] = data

    def free_pages(self) -> int:
        """Number of pages not in use."""
        return len(self._free)

    def _offset(self, pa: int, n: int) -> int:
        if n < 0 or pa < self._start or pa + n > self._end:
            raise ValueError(f"physical range {pa:#x}+{n} is outside memory")
        return pa - self._start

    def _load(self, pa: int) -> int:
        return _ENTRY.unpack_from(self._data, self._offset(pa, 4))[0]

    def _store(self, pa: int, value: int) -> None:
        _ENTRY.pack_into(self._data, self._offset(pa, 4), value & _MASK32)

    def _zero(self, pa: int) -> None:
        self.write(pa, bytes(PGSIZE))


class AddressSpace:
    """A page directory and its page tables held in physical memory."""

    def __init__(self, memory: PhysicalMemory) -> None:
        pgdir = memory.alloc()
        if pgdir is None:
            raise MemoryError("no page left for a page directory")
        memory._zero(pgdir)
        self.memory = memory
        self.pgdir: int | None = pgdir
        self.kernel_data: int | None = None

    @classmethod
    def setup_kernel(cls, memory: PhysicalMemory, kernel_data: int) -> AddressSpace:
        """An address space holding the kernel mappings; kernel_data starts writable data."""
        if kernel_data % PGSIZE or not KERNLINK < kernel_data < p2v(PHYSTOP):
            raise ValueError(f"kernel data address {kernel_data:#x} is not valid")
        if p2v(PHYSTOP) > DEVSPACE:
            raise KernelPanic("PHYSTOP too high")
        space = cls(memory)
        space.kernel_data = kernel_data
        kmap = (
            (KERNBASE, 0, EXTMEM, PTE_W),
            (KERNLINK, v2p(KERNLINK), v2p(kernel_data), 0),
            (kernel_data, v2p(kernel_data), PHYSTOP, PTE_W),
            (DEVSPACE, DEVSPACE, 0, PTE_W),
        )
        try:
            for virt, phys_start, phys_end, perm in kmap:
                space.map_pages(virt, (phys_end - phys_start) & _MASK32, phys_start, perm)
        except MemoryError:
            space.free()
            raise
        return space

    def _directory(self) -> int:
        if self.pgdir is None:
            raise KernelPanic("address space already freed")
        return self.pgdir

    def walk(self, va: int, alloc: bool = False) -> int | None:
        """Physical address of the page-table entry for va, or None if absent."""
        pde_slot = self._directory() + pdx(va) * 4
        pde = self.memory._load(pde_slot)
        if pde & PTE_P:
            pgtab = pte_addr(pde)
        else:
            if not alloc:
                return None
            pgtab = self.memory.alloc()
            if pgtab is None:
                return None
            self.memory._zero(pgtab)
            self.memory._store(pde_slot, pgtab | PTE_P | PTE_W | PTE_U)
        return pgtab + ptx(va) * 4

    def map_pages(self, va: int, size: int, pa: int, perm: int) -> None:
        """Map the pages covering va..va+size to consecutive pages from pa."""
        if size <= 0:
            raise ValueError("mapping size must be positive")
        a = pg_round_down(va)
        last = pg_round_down((va + size - 1) & _MASK32)
        while True:
            slot = self.walk(a, True)
            if slot is None:
                raise MemoryError("no page left for a page table")
            if self.memory._load(slot) & PTE_P:
                raise KernelPanic("remap")
            self.memory._store(slot, pa | perm | PTE_P)
            if a == last:
                break
            a = (a + PGSIZE) & _MASK32
            pa = (pa + PGSIZE) & _MASK32

    def init_user(self, init: bytes) -> None:
        """Load a program smaller than a page at user address 0."""
        if len(init) >= PGSIZE:
            raise KernelPanic("inituvm: more than a page")
        mem = self.memory.alloc()
        if mem is None:
            raise MemoryError("no page left for the initial program")
        self.memory._zero(mem)
        self.map_pages(0, PGSIZE, mem, PTE_W | PTE_U)
        self.memory.write(mem, bytes(init))

    def load(self, addr: int, reader: Callable[[int, int], bytes], offset: int, sz: int) -> None:
        """Fill already mapped pages from addr with sz bytes read at offset."""
        if addr % PGSIZE:
            raise KernelPanic("loaduvm: addr must be page aligned")
        for i in range(0, sz, PGSIZE):
            slot = self.walk(addr + i, False)
            if slot is None or not self.memory._load(slot) & PTE_P:
                raise KernelPanic("loaduvm: address should exist")
            pa = pte_addr(self.memory._load(slot))
            n = min(sz - i, PGSIZE)
            data = reader(offset + i, n)
            if len(data) != n:
                raise EOFError(f"short read at offset {offset + i}")
            self.memory.write(pa, data)

    def alloc_user(self, oldsz: int, newsz: int) -> int:
        """Grow user memory from oldsz to newsz with zeroed pages; return the new size."""
        if newsz >= KERNBASE:
            raise ValueError("user memory cannot reach the kernel")
        if newsz < oldsz:
            return oldsz
        for a in range(pg_round_up(oldsz), newsz, PGSIZE):
            mem = self.memory.alloc()
            if mem is None:
                self.dealloc_user(newsz, oldsz)
                raise MemoryError("allocuvm out of memory")
            self.memory._zero(mem)
            try:
                self.map_pages(a, PGSIZE, mem, PTE_W | PTE_U)
            except MemoryError:
                self.dealloc_user(newsz, oldsz)
                self.memory.free(mem)
                raise MemoryError("allocuvm out of memory (2)") from None
        return newsz

    def dealloc_user(self, oldsz: int, newsz: int) -> int:
        """Shrink user memory from oldsz to newsz, freeing pages; return the new size."""
        if newsz >= oldsz:
            return oldsz
        a = pg_round_up(newsz)
        while a < oldsz:
            slot = self.walk(a, False)
            if slot is None:
                a += (NPTENTRIES - 1) * PGSIZE
            else:
                pte = self.memory._load(slot)
                if pte & PTE_P:
                    pa = pte_addr(pte)
                    if pa == 0:
                        raise KernelPanic("kfree")
                    self.memory.free(pa)
                    self.memory._store(slot, 0)
            a += PGSIZE
        return newsz

    def free(self) -> None:
        """Release user pages, page tables and the directory itself."""
        if self.pgdir is None:
            raise KernelPanic("freevm: no pgdir")
        self.dealloc_user(KERNBASE, 0)
        for index in range(NPDENTRIES):
            pde = self.memory._load(self.pgdir + index * 4)
            if pde & PTE_P:
                self.memory.free(pte_addr(pde))
        self.memory.free(self.pgdir)
        self.pgdir = None

    def clear_user(self, uva: int) -> None:
        """Make the page at uva inaccessible to user code."""
        slot = self.walk(uva, False)
        if slot is None:
            raise KernelPanic("clearpteu")
        self.memory._store(slot, self.memory._load(slot) & ~PTE_U)

    def copy(self, sz: int) -> AddressSpace:
        """A new address space holding a copy of the first sz bytes of user memory."""
        if self.kernel_data is not None:
            child = AddressSpace.setup_kernel(self.memory, self.kernel_data)
        else:
            child = AddressSpace(self.memory)
        for i in range(0, sz, PGSIZE):
            slot = self.walk(i, False)
            if slot is None:
                child.free()
                raise KernelPanic("copyuvm: pte should exist")
            pte = self.memory._load(slot)
            if not pte & PTE_P:
                child.free()
                raise KernelPanic("copyuvm: page not present")
            mem = self.memory.alloc()
            if mem is None:
                child.free()
                raise MemoryError("copyuvm out of memory")
            self.memory.write(mem, self.memory.read(pte_addr(pte), PGSIZE))
            try:
                child.map_pages(i, PGSIZE, mem, pte_flags(pte))
            except MemoryError:
                self.memory.free(mem)
                child.free()
                raise
        return child

    def uva_to_ka(self, uva: int) -> int | None:
        """Kernel address of the user page at uva, or None if not user-accessible."""
        slot = self.walk(uva, False)
        if slot is None:
            return None
        pte = self.memory._load(slot)
        if not pte & PTE_P or not pte & PTE_U:
            return None
        return p2v(pte_addr(pte))

    def copy_out(self, va: int, data: bytes) -> None:
        """Copy data to user address va, across page boundaries."""
        view = memoryview(bytes(data))
        while view:
            va0 = pg_round_down(va)
            ka = self.uva_to_ka(va0)
            if ka is None:
                raise ValueError(f"user address {va0:#x} is not mapped")
            n = min(PGSIZE - (va - va0), len(view))
            self.memory.write(v2p(ka) + (va - va0), view[:n].tobytes())
            view = view[n:]
            va = va0 + PGSIZE