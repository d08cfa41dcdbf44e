import pytest

from teachos.umalloc import HEADER_SIZE, HEAP_BASE, MIN_UNITS, Allocator

CHUNK = MIN_UNITS * HEADER_SIZE


def _free_total(heap):
    return sum(size for _, size in heap.free_blocks())


def test_addresses_are_header_aligned_and_in_heap():
    heap = Allocator(1 << 20)
    addresses = [heap.malloc(n) for n in (1, 10, 100, 1000)]
    for address in addresses:
        assert address % HEADER_SIZE == 0
        assert HEAP_BASE < address < HEAP_BASE + CHUNK


def test_blocks_do_not_overlap():
    heap = Allocator(1 << 20)
    sizes = [10, 50, 7, 300, 0]
    spans = sorted((heap.malloc(n), n) for n in sizes)
    for (a, na), (b, _) in zip(spans, spans[1:]):
        assert a + na <= b


def test_free_everything_coalesces_into_one_chunk():
    heap = Allocator(1 << 20)
    addresses = [heap.malloc(n) for n in (24, 100, 3, 512)]
    for address in addresses:
        heap.free(address)
    assert heap.free_blocks() == [(HEAP_BASE, CHUNK)]


def test_free_in_reverse_order_also_coalesces():
    heap = Allocator(1 << 20)
    addresses = [heap.malloc(n) for n in (24, 100, 3, 512)]
    for address in reversed(addresses):
        heap.free(address)
    assert heap.free_blocks() == [(HEAP_BASE, CHUNK)]


def test_free_space_accounts_for_allocations():
    heap = Allocator(1 << 20)
    heap.malloc(10)
    nunits = (10 + HEADER_SIZE - 1) // HEADER_SIZE + 1
    assert _free_total(heap) == CHUNK - nunits * HEADER_SIZE


def test_freed_block_is_reused():
    heap = Allocator(1 << 20)
    first = heap.malloc(64)
    heap.malloc(64)
    heap.free(first)
    assert heap.malloc(64) == first


def test_heap_limit_too_small_returns_none():
    heap = Allocator(CHUNK - 1)
    assert heap.malloc(1) is None
    assert heap.free_blocks() == []


def test_heap_grows_past_first_chunk():
    heap = Allocator(4 * CHUNK)
    first = heap.malloc(CHUNK - HEADER_SIZE)
    second = heap.malloc(100)
    assert first is not None and second is not None
    assert second >= HEAP_BASE + CHUNK or first >= HEAP_BASE + CHUNK


def test_large_request_beyond_limit_fails():
    heap = Allocator(2 * CHUNK)
    assert heap.malloc(2 * CHUNK) is None


def test_free_unknown_address_raises():
    heap = Allocator(1 << 20)
    heap.malloc(8)
    with pytest.raises(ValueError):
        heap.free(HEAP_BASE + 3)


def test_double_free_raises():
    heap = Allocator(1 << 20)
    address = heap.malloc(8)
    heap.free(address)
    with pytest.raises(ValueError):
        heap.free(address)


def test_negative_arguments_rejected():
    with pytest.raises(ValueError):
        Allocator(-1)
    heap = Allocator(1 << 20)
    with pytest.raises(ValueError):
        heap.malloc(-5)


def test_exhaust_free_all_then_allocate_again():
    heap = Allocator(256 * 1024)
    blocks = []
    while (address := heap.malloc(10001)) is not None:
        blocks.append(address)
    assert len(blocks) > 1
    for address in blocks:
        heap.free(address)
    assert heap.malloc(1024 * 20) is not None