import pytest

from tracegc.collectors import BasicCollector, MarkAndCompactCollector, MarkAndSweepCollector
from tracegc.malloc_based import MallocBasedAllocator
from tracegc.memory import HEAP, Color, MarkWord
from tracegc.pointer import GarbageCollected, Handle, HandleMark, Oop
from tracegc.semispaces import SemispacesAllocator
from tracegc.stacks import ThreadsStacks

HEAP_SIZE = 4096 * 10


class Point(GarbageCollected):
    def __init__(self, x, y):
        self.x = x
        self.y = y

    def trace(self, operation):
        pass


class List(GarbageCollected):
    def __init__(self, data, next=None):
        self.data = data
        self.next = Oop(next)

    def trace(self, operation):
        operation.trace(self.next)


class _Context:
    def __init__(self):
        self.stacks = ThreadsStacks()


@pytest.fixture
def ctx():
    context = _Context()
    context.stacks.initialize_for_current_thread()
    with HandleMark():
        yield context
    context.stacks.destroy_for_current_thread()


def make_collector(kind):
    if kind == "markAndSweep":
        return MarkAndSweepCollector(HEAP_SIZE)
    return MarkAndCompactCollector(HEAP_SIZE)


def place(collector, obj, size=24):
    address = collector.allocator.alloc(size)
    HEAP.write(address, MarkWord(obj=obj))
    return Oop(address)


def test_basic_collector_is_abstract():
    with pytest.raises(TypeError):
        BasicCollector(MallocBasedAllocator(HEAP_SIZE))


def test_context_requires_attachment():
    collector = MarkAndSweepCollector(HEAP_SIZE)
    with pytest.raises(RuntimeError):
        collector.context()


def test_set_ctx_only_once():
    collector = MarkAndCompactCollector(HEAP_SIZE)
    first = _Context()
    collector.set_ctx(first)
    assert collector.context() is first
    with pytest.raises(RuntimeError):
        collector.set_ctx(_Context())
    assert collector.context() is first


def test_collectors_own_matching_allocators():
    sweep = MarkAndSweepCollector(HEAP_SIZE)
    compacting = MarkAndCompactCollector(HEAP_SIZE)
    assert isinstance(sweep.allocator, MallocBasedAllocator)
    assert sweep.allocator.max_size == HEAP_SIZE
    assert isinstance(compacting.allocator, SemispacesAllocator)
    assert compacting.allocator.active_space.max_size == HEAP_SIZE


def test_mark_and_sweep_collect_frees_garbage(ctx):
    collector = MarkAndSweepCollector(HEAP_SIZE)
    collector.set_ctx(ctx)
    tail = place(collector, List(22))
    head = place(collector, List(11, tail))
    garbage = [place(collector, Point(i, i)) for i in range(3)]
    h = Handle(head)

    collector.collect()

    assert collector.allocator.stat.allocation_count == 2
    assert all(HEAP.read(g.address) is None for g in garbage)
    assert h.data == 11
    assert h.next.data == 22
    assert collector.worklist == []


def test_mark_and_compact_collect_relocates_large_roots(ctx):
    collector = MarkAndCompactCollector(HEAP_SIZE)
    collector.set_ctx(ctx)
    root = place(collector, Point(2, 3), size=100)
    h = Handle(root)
    old_free = collector.allocator.free_space

    collector.collect()

    assert collector.allocator.active_space is old_free
    assert old_free.contains(h.oop().address)
    assert h.x == 2
    assert h.y == 3
    assert HEAP.read(h.oop().address).color is Color.WHITE


@pytest.mark.parametrize("kind", ["markAndSweep", "markAndCompact"])
def test_loop_references_survive_collections(ctx, kind):
    collector = make_collector(kind)
    collector.set_ctx(ctx)
    h = Handle(place(collector, List(11)))
    with HandleMark():
        last = place(collector, List(33))
        elem = place(collector, List(22, last))
        h.next = elem
        last.next = h

    for _ in range(2):
        collector.collect()
        assert h.data == 11
        assert h.next.data == 22
        assert h.next.next.data == 33
        assert h.next.next.next.data == 11
        assert h.next.next.next.next.data == 22


@pytest.mark.parametrize("kind", ["markAndSweep", "markAndCompact"])
def test_null_fields_stay_null(ctx, kind):
    collector = make_collector(kind)
    collector.set_ctx(ctx)
    h = Handle(place(collector, List(11)))

    collector.collect()

    assert h.next == None  # noqa: E711
    assert h.data == 11


@pytest.mark.parametrize("kind", ["markAndSweep", "markAndCompact"])
def test_many_collections_keep_root_data(ctx, kind):
    collector = make_collector(kind)
    collector.set_ctx(ctx)
    point = place(collector, Point(20, 30))
    h = Handle(point)

    for _ in range(5):
        collector.collect()
        assert (h.x, h.y) == (20, 30)
        assert HEAP.read(h.oop().address).color is Color.WHITE