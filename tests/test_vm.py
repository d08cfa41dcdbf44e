import struct

import pytest

from teachos.layout import (
    DEVSPACE,
    KERNBASE,
    KERNLINK,
    PGSIZE,
    PTE_P,
    PTE_U,
    PTE_W,
    KernelPanic,
    pte_addr,
    pte_flags,
    v2p,
)
from teachos.vm import FIRST_PAGE, AddressSpace, PhysicalMemory

KERNEL_DATA = KERNLINK + 0x100000


def _pte(space, va):
    slot = space.walk(va, False)
    return struct.unpack("<I", space.memory.read(slot, 4))[0]


def _read_user(space, va, n):
    return space.memory.read(v2p(space.uva_to_ka(va)), n)


def test_memory_pages_are_distinct_and_aligned():
    memory = PhysicalMemory(4)
    pages = [memory.alloc() for _ in range(4)]
    assert len(set(pages)) == 4
    assert all(pa % PGSIZE == 0 and pa >= FIRST_PAGE for pa in pages)
    assert memory.alloc() is None
    assert memory.free_pages() == 0


def test_memory_free_makes_page_available_again():
    memory = PhysicalMemory(2)
    pa = memory.alloc()
    memory.free(pa)
    assert memory.free_pages() == 2
    assert memory.alloc() == pa


def test_memory_bad_free_panics():
    memory = PhysicalMemory(2)
    pa = memory.alloc()
    with pytest.raises(KernelPanic):
        memory.free(pa + 1)
    memory.free(pa)
    with pytest.raises(KernelPanic):
        memory.free(pa)


def test_memory_read_write_round_trip_and_bounds():
    memory = PhysicalMemory(1)
    pa = memory.alloc()
    memory.write(pa + 10, b"hello")
    assert memory.read(pa + 10, 5) == b"hello"
    with pytest.raises(ValueError):
        memory.read(pa + PGSIZE - 2, 4)


def test_memory_too_large_rejected():
    with pytest.raises(ValueError):
        PhysicalMemory(1 << 20)


def test_walk_without_alloc_leaves_memory_alone():
    memory = PhysicalMemory(8)
    space = AddressSpace(memory)
    before = memory.free_pages()
    assert space.walk(0x3000, False) is None
    assert memory.free_pages() == before


def test_walk_with_alloc_creates_page_table():
    memory = PhysicalMemory(8)
    space = AddressSpace(memory)
    before = memory.free_pages()
    slot = space.walk(0x3000, True)
    assert memory.free_pages() == before - 1
    assert space.walk(0x3000, False) == slot


def test_map_pages_writes_entry():
    memory = PhysicalMemory(8)
    space = AddressSpace(memory)
    pa = memory.alloc()
    space.map_pages(0x5000, PGSIZE, pa, PTE_W | PTE_U)
    assert _pte(space, 0x5000) == pa | PTE_W | PTE_U | PTE_P


def test_map_pages_unaligned_range_covers_two_pages():
    memory = PhysicalMemory(8)
    space = AddressSpace(memory)
    space.map_pages(0x1800, PGSIZE, FIRST_PAGE, PTE_W)
    assert pte_addr(_pte(space, 0x1000)) == FIRST_PAGE
    assert pte_addr(_pte(space, 0x2000)) == FIRST_PAGE + PGSIZE


def test_remap_panics():
    memory = PhysicalMemory(8)
    space = AddressSpace(memory)
    space.map_pages(0, PGSIZE, FIRST_PAGE, PTE_W)
    with pytest.raises(KernelPanic):
        space.map_pages(0, PGSIZE, FIRST_PAGE, PTE_W)


def test_init_user_places_program_at_zero():
    memory = PhysicalMemory(8)
    space = AddressSpace(memory)
    space.init_user(b"\x90\x90\xcc")
    assert _read_user(space, 0, 4) == b"\x90\x90\xcc\x00"
    with pytest.raises(KernelPanic):
        AddressSpace(memory).init_user(bytes(PGSIZE))


def test_alloc_and_dealloc_user_restore_pages():
    memory = PhysicalMemory(16)
    space = AddressSpace(memory)
    assert space.alloc_user(0, 3 * PGSIZE + 1) == 3 * PGSIZE + 1
    assert _read_user(space, 3 * PGSIZE, 8) == bytes(8)
    after_alloc = memory.free_pages()
    assert space.dealloc_user(3 * PGSIZE + 1, PGSIZE) == PGSIZE
    assert memory.free_pages() == after_alloc + 3
    assert space.uva_to_ka(PGSIZE) is None
    assert space.uva_to_ka(0) is not None


def test_alloc_user_edge_cases():
    memory = PhysicalMemory(8)
    space = AddressSpace(memory)
    assert space.alloc_user(2 * PGSIZE, PGSIZE) == 2 * PGSIZE
    assert space.dealloc_user(PGSIZE, 2 * PGSIZE) == PGSIZE
    with pytest.raises(ValueError):
        space.alloc_user(0, KERNBASE)


def test_alloc_user_out_of_memory_cleans_up():
    memory = PhysicalMemory(4)
    space = AddressSpace(memory)
    with pytest.raises(MemoryError):
        space.alloc_user(0, 10 * PGSIZE)
    assert space.uva_to_ka(0) is None
    space.free()
    assert memory.free_pages() == 4


def test_clear_user_hides_page():
    memory = PhysicalMemory(8)
    space = AddressSpace(memory)
    space.alloc_user(0, 2 * PGSIZE)
    space.clear_user(0)
    assert space.uva_to_ka(0) is None
    assert pte_flags(_pte(space, 0)) & PTE_U == 0
    with pytest.raises(KernelPanic):
        space.clear_user(0x800000)


def test_copy_of_unmapped_memory_panics_and_frees():
    memory = PhysicalMemory(8)
    space = AddressSpace(memory)
    before = memory.free_pages()
    with pytest.raises(KernelPanic):
        space.copy(PGSIZE)
    assert memory.free_pages() == before


def test_free_returns_every_page():
    memory = PhysicalMemory(16)
    space = AddressSpace(memory)
    space.alloc_user(0, 5 * PGSIZE)
    space.free()
    assert memory.free_pages() == 16
    with pytest.raises(KernelPanic):
        space.free()


def test_load_fills_pages_from_reader():
    memory = PhysicalMemory(8)
    space = AddressSpace(memory)
    space.alloc_user(0, 2 * PGSIZE)
    image = bytes(range(256)) * 40

    def reader(offset, n):
        return image[offset:offset + n]

    space.load(0, reader, 16, PGSIZE + 10)
    assert _read_user(space, 0, 32) == image[16:48]
    assert _read_user(space, PGSIZE, 10) == image[16 + PGSIZE:26 + PGSIZE]


def test_load_errors():
    memory = PhysicalMemory(8)
    space = AddressSpace(memory)
    space.alloc_user(0, PGSIZE)
    with pytest.raises(KernelPanic):
        space.load(8, lambda offset, n: bytes(n), 0, 8)
    with pytest.raises(EOFError):
        space.load(0, lambda offset, n: b"abc", 0, 8)
    with pytest.raises(KernelPanic):
        space.load(PGSIZE, lambda offset, n: bytes(n), 0, 8)


def test_setup_kernel_mappings():
    memory = PhysicalMemory(160)
    space = AddressSpace.setup_kernel(memory, KERNEL_DATA)
    io = _pte(space, KERNBASE + PGSIZE)
    assert pte_addr(io) == PGSIZE
    assert pte_flags(io) == PTE_W | PTE_P
    text = _pte(space, KERNLINK)
    assert pte_addr(text) == v2p(KERNLINK)
    assert pte_flags(text) == PTE_P
    data = _pte(space, KERNEL_DATA)
    assert pte_addr(data) == v2p(KERNEL_DATA)
    assert pte_addr(_pte(space, DEVSPACE)) == DEVSPACE
    assert space.uva_to_ka(KERNBASE) is None


def test_kernel_space_copy_and_free():
    memory = PhysicalMemory(160)
    parent = AddressSpace.setup_kernel(memory, KERNEL_DATA)
    parent.alloc_user(0, PGSIZE)
    parent.copy_out(0, b"init")
    child = parent.copy(PGSIZE)
    assert _read_user(child, 0, 4) == b"init"
    assert pte_addr(_pte(child, KERNEL_DATA)) == v2p(KERNEL_DATA)
    child.free()
    parent.free()
    assert memory.free_pages() == 160


def test_setup_kernel_rejects_bad_data_address():
    memory = PhysicalMemory(8)
    with pytest.raises(ValueError):
        AddressSpace.setup_kernel(memory, KERNLINK)
    with pytest.raises(ValueError):
        AddressSpace.setup_kernel(memory, KERNEL_DATA + 1)


def test_setup_kernel_out_of_memory_frees_pages():
    memory = PhysicalMemory(8)
    with pytest.raises(MemoryError):
        AddressSpace.setup_kernel(memory, KERNEL_DATA)
    assert memory.free_pages() == 8