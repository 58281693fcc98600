"""Collection phases: marking, sweeping and the steps of sliding compaction."""

from __future__ import annotations

import abc
from typing import Any, Iterator, Optional

from .fixed_size import FixedSizeAllocator, crossed
from .malloc_based import MallocBasedAllocator
from .memory import HEAP, Color, MarkWord
from .pointer import ObjectPointer
from .semispaces import SemispacesAllocator


def _mark_word(address: int) -> Optional[MarkWord]:
    cell = HEAP.read(address)
    return cell if isinstance(cell, MarkWord) else None


def _roots(gc: Any) -> Iterator[ObjectPointer]:
    """Yield every non-null root slot of every registered thread."""
    for _, stack in gc.context().stacks.visit():
        for root in stack:
            if root:
                yield root


def _semispaces(gc: Any) -> SemispacesAllocator:
    allocator = gc.allocator
    if not isinstance(allocator, SemispacesAllocator):
        raise TypeError(f"compaction needs a semispaces allocator, got {type(allocator).__name__}")
    return allocator


class GCOperation(abc.ABC):
    """One pass of a collector over the heap."""

    @abc.abstractmethod
    def trace(self, ptr: Any) -> None:
        """Receive a reference held by an object being traced."""

    @abc.abstractmethod
    def do_it(self, gc: Any) -> int:
        """Run the pass for collector ``gc``; return how many objects it handled."""


class Mark(GCOperation):
    """Colours black every object reachable from the roots."""

    def __init__(self, worklist: Optional[list] = None) -> None:
        self.worklist: list = [] if worklist is None else worklist
        self._marked = 0

    def trace(self, ptr: Any) -> None:
        if ptr:
            self.worklist.append(ptr)

    def do_it(self, gc: Any) -> int:
        self._marked = 0
        for root in _roots(gc):
            self._process(root)
        while self.worklist:
            self._process(self.worklist.pop())
        return self._marked

    def _process(self, ptr: ObjectPointer) -> None:
        mw = ptr.mw()
        if mw.color is Color.BLACK:
            return
        mw.color = Color.BLACK
        self._marked += 1
        ptr.trace(self)


class Sweep(GCOperation):
    """Frees white objects and whitens the survivors for the next cycle."""

    def trace(self, ptr: Any) -> None:
        pass

    def do_it(self, gc: Any) -> int:
        allocator = gc.allocator
        if not isinstance(allocator, MallocBasedAllocator):
            raise TypeError(f"sweeping needs a malloc-based allocator, got {type(allocator).__name__}")
        freed = 0

        def unreachable(address: int) -> bool:
            nonlocal freed
            mw = _mark_word(address)
            if mw is None or mw.color is Color.WHITE:
                freed += 1
                return True
            mw.color = Color.WHITE
            return False

        allocator.free_if(unreachable)
        return freed


def compact(allocator: FixedSizeAllocator) -> int:
    """Slide live slots into the free ones below them; return how many moved.

    Every moved slot keeps its black mark word with the forwarding address
    set, so references to it can be updated afterwards.
    """
    if allocator.allocation_count() == 0:
        return 0
    freed = allocator.left_finger()
    dirty = allocator.right_finger()
    if crossed(freed, dirty):
        return 0
    moved = 0
    while not crossed(freed, dirty):
        HEAP.move(freed.address, dirty.address)
        HEAP.read(dirty.address).forwarding_ptr = freed.address
        moved += 1
        freed = freed.next()
        # The slot just emptied is still black; look below it for the next live one.
        dirty.address -= dirty.size
        dirty = dirty.next()
    allocator.offset = dirty.address + dirty.size - allocator.start
    return moved


class Reallocate(GCOperation):
    """Assigns new addresses to live objects: to-space for large ones, compaction for small ones."""

    def __init__(self, worklist: Optional[list] = None) -> None:
        self.worklist: list = [] if worklist is None else worklist

    def trace(self, ptr: Any) -> None:
        if ptr:
            self.worklist.append(ptr)

    def do_it(self, gc: Any) -> int:
        allocator = _semispaces(gc)
        to_region = allocator.free_space
        forwarded = 0
        for chunk in allocator.active_space.visit():
            mw = _mark_word(chunk.mw_address())
            if mw is None or mw.color is not Color.BLACK:
                continue
            new_address = to_region.alloc(chunk.object_size())
            if new_address is None:
                raise MemoryError("to-space is exhausted")
            if mw.forwarding_ptr is not None:
                raise RuntimeError(f"object at {chunk.mw_address():#x} is already forwarded")
            mw.forwarding_ptr = new_address
            forwarded += 1
        forwarded += compact(allocator.small_allocator32)
        forwarded += compact(allocator.small_allocator64)
        return forwarded


class Relocate(GCOperation):
    """Copies forwarded objects into to-space and makes it the active space."""

    def trace(self, ptr: Any) -> None:
        pass

    def do_it(self, gc: Any) -> int:
        allocator = _semispaces(gc)
        copied = 0
        for chunk in allocator.active_space.visit():
            mw_address = chunk.mw_address()
            mw = _mark_word(mw_address)
            if mw is None or mw.color is not Color.BLACK:
                continue
            new_address = mw.forwarding_ptr
            if new_address is None:
                raise RuntimeError(f"live object at {mw_address:#x} has no forwarding address")
            HEAP.move(new_address, mw_address)
            HEAP.read(new_address).reset()
            copied += 1
        allocator.active_space.release()
        allocator.change_space()
        return copied


class UpdateReferences(GCOperation):
    """Redirects every reachable reference to its object's forwarding address."""

    def __init__(self, worklist: Optional[list] = None) -> None:
        self.worklist: list = [] if worklist is None else worklist
        self._traced: set[int] = set()
        self._updated = 0

    def trace(self, ptr: Any) -> None:
        if ptr:
            self.worklist.append(ptr)

    def do_it(self, gc: Any) -> int:
        self._traced.clear()
        self._updated = 0
        for root in _roots(gc):
            self._process(root)
        while self.worklist:
            ptr = self.worklist.pop()
            if ptr.mw().color is not Color.BLACK:
                continue
            self._process(ptr)
        return self._updated

    def _process(self, ptr: ObjectPointer) -> None:
        mw = ptr.mw()
        if ptr.address not in self._traced:
            self._traced.add(ptr.address)
            ptr.trace(self)
        forwarding = mw.forwarding_ptr
        if forwarding is None:
            mw.color = Color.WHITE
            return
        ptr.update(forwarding)
        self._updated += 1
        moved = _mark_word(forwarding)
        if moved is not None:
            moved.color = Color.WHITE