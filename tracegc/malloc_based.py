"""Allocator that takes each object from the system separately and keeps a list of them."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional

from .memory import Allocator, align8, map_pages, unmap_pages

CHUNK_HEADER_SIZE = 16


@dataclass
class AllocationStat:
    allocation_count: int = 0
    allocated_size: int = 0


@dataclass(eq=False)
class Chunk:
    """Bookkeeping node of one allocated block; ``address`` is the object's."""

    address: int = 0
    size: int = 0
    next: Optional["Chunk"] = field(default=None, repr=False)
    prev: Optional["Chunk"] = field(default=None, repr=False)

    @property
    def block(self) -> int:
        return self.address - CHUNK_HEADER_SIZE


@dataclass
class AllocInfo:
    """Doubly linked list of the live chunks."""

    first: Optional[Chunk] = None
    last: Optional[Chunk] = None

    def append(self, chunk: Chunk) -> None:
        if chunk is None:
            raise ValueError("cannot append a missing chunk")
        if self.first is None:
            self.first = chunk
            self.last = chunk
            return
        self.last.next = chunk
        chunk.prev = self.last
        chunk.next = None
        self.last = chunk

    def remove(self, chunk: Chunk) -> Optional[Chunk]:
        """Unlink ``chunk`` and return the chunk that followed it."""
        following = chunk.next
        if chunk.prev is not None:
            chunk.prev.next = chunk.next
        else:
            self.first = chunk.next
        if chunk.next is not None:
            chunk.next.prev = chunk.prev
        else:
            self.last = chunk.prev
        return following

    def __iter__(self) -> Iterator[Chunk]:
        chunk = self.first
        while chunk is not None:
            following = chunk.next
            yield chunk
            chunk = following


class MallocBasedAllocator(Allocator):
    """Allocates every object on its own, bounded by a total byte budget."""

    def __init__(self, max_size: int) -> None:
        self.max_size = max_size
        self.stat = AllocationStat()
        self.alloc_info = AllocInfo()
        self._lock = threading.Lock()

    def alloc(self, size: int) -> Optional[int]:
        if size < 0:
            raise ValueError(f"negative allocation size: {size}")
        with self._lock:
            actual_size = align8(size + CHUNK_HEADER_SIZE)
            if self.max_size < self.stat.allocated_size + actual_size:
                return None
            block = map_pages(actual_size)
            chunk = Chunk(block + CHUNK_HEADER_SIZE, actual_size)
            self.alloc_info.append(chunk)
            self.stat.allocation_count += 1
            self.stat.allocated_size += actual_size
            return chunk.address

    def free(self, chunk: Chunk) -> None:
        """Give back the block of ``chunk``; the caller unlinks it first."""
        if chunk is None:
            raise ValueError("cannot free a missing chunk")
        self.stat.allocation_count -= 1
        self.stat.allocated_size -= chunk.size
        unmap_pages(chunk.block, chunk.size)

    def describe(self) -> str:
        return (
            "Allocation stat:\n"
            f"Max size: {self.max_size} byte\n"
            f"Allocation count: {self.stat.allocation_count} byte\n"
            f"Total size: {self.stat.allocated_size} byte\n"
        )

    def free_if(self, predicate: Callable[[int], bool]) -> None:
        """Free every chunk whose object address satisfies ``predicate``."""
        chunk = self.alloc_info.first
        while chunk is not None:
            if predicate(chunk.address):
                following = self.alloc_info.remove(chunk)
                self.free(chunk)
                chunk = following
            else:
                chunk = chunk.next