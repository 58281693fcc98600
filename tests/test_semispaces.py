from tracegc.semispaces import SemispacesAllocator


def test_small_objects_use_32_byte_slots():
    allocator = SemispacesAllocator(4096)
    address = allocator.alloc(32)
    assert allocator.small_allocator32.contains(address)
    assert allocator.active_space.allocation_count == 0


def test_medium_objects_use_64_byte_slots():
    allocator = SemispacesAllocator(4096)
    address = allocator.alloc(40)
    assert allocator.small_allocator64.contains(address)
    assert not allocator.small_allocator32.contains(address)


def test_large_objects_use_active_space():
    allocator = SemispacesAllocator(4096)
    address = allocator.alloc(64)
    assert allocator.active_space.contains(address)
    assert allocator.small_allocator64.allocation_count() == 0


def test_exhausted_small_allocator_falls_back_to_active_space():
    allocator = SemispacesAllocator(4096)
    slots = allocator.small_allocator32.max_size // 32
    for _ in range(slots):
        allocator.alloc(8)
    address = allocator.alloc(8)
    assert allocator.active_space.contains(address)
    assert allocator.small_allocator32.allocation_count() == slots


def test_active_space_exhaustion_returns_none():
    allocator = SemispacesAllocator(128)
    assert allocator.alloc(100) is not None
    assert allocator.alloc(100) is None


def test_change_space_swaps_spaces():
    allocator = SemispacesAllocator(4096)
    active, free = allocator.active_space, allocator.free_space
    allocator.change_space()
    assert allocator.active_space is free
    assert allocator.free_space is active
    allocator.change_space()
    assert allocator.active_space is active


def test_describe_lists_all_spaces():
    text = SemispacesAllocator(4096).describe()
    headers = [
        "-- active space --",
        "-- free space --",
        "-- small space 32b --",
        "-- small space 64b --",
    ]
    positions = [text.index(header) for header in headers]
    assert positions == sorted(positions)