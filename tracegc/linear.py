"""Bump-pointer allocator whose chunks carry a small header and can be walked."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Iterator, Optional

from .memory import HEAP, Allocator, align8, map_pages

CHUNK_SIZE = 8
MAGIC = 0xAA
_INT_MAX = 2**31 - 1


@dataclass
class Chunk:
    """Header written in front of every object of a :class:`LinearAllocator`."""

    address: int
    chunk_size: int
    magic: int = MAGIC

    def object_size(self) -> int:
        """Bytes available to the object behind this header."""
        size = self.chunk_size - CHUNK_SIZE
        if size <= 0:
            raise ValueError(f"chunk at {self.address:#x} holds no object")
        return size

    def mw_address(self) -> int:
        """Address of the mark word that follows the header."""
        return self.address + CHUNK_SIZE


class LinearAllocator(Allocator):
    """Allocates by bumping an offset inside one contiguous region."""

    MAGIC = MAGIC

    def __init__(self, max_size: int) -> None:
        self.max_size = align8(max_size)
        self.start = map_pages(self.max_size)
        self.offset = 0
        self.allocation_count = 0
        self._lock = threading.Lock()
        self.release()

    def alloc(self, size: int) -> Optional[int]:
        if size < 0:
            raise ValueError(f"negative allocation size: {size}")
        with self._lock:
            current = self.start + self.offset
            aligned_size = align8(size + CHUNK_SIZE)
            if aligned_size + self.offset > self.max_size:
                return None
            if aligned_size > _INT_MAX:
                raise OverflowError(f"chunk of {aligned_size} bytes is too large")
            HEAP.write(current, Chunk(current, aligned_size))
            self.offset += aligned_size
            self.allocation_count += 1
            return current + CHUNK_SIZE

    def describe(self) -> str:
        return (
            f"Start: {self.start:#x}\n"
            f"Max size: {self.max_size}\n"
            f"Offset: {self.offset}\n"
            f"Allocation count: {self.allocation_count}\n"
        )

    def release(self) -> None:
        """Forget every allocation and drop what the region held."""
        HEAP.discard(self.start, self.start + self.offset)
        self.offset = 0
        self.allocation_count = 0

    def contains(self, address: int) -> bool:
        return self.start <= address < self.start + self.offset

    def visit(self) -> Iterator[Chunk]:
        """Yield the chunk headers in allocation order."""
        if self.allocation_count == 0:
            return
        current = self.start
        while current < self.start + self.offset:
            chunk = HEAP.read(current)
            if not isinstance(chunk, Chunk) or chunk.magic != MAGIC:
                raise ValueError(f"corrupted chunk header at {current:#x}")
            yield chunk
            current += chunk.chunk_size

    @staticmethod
    def header(address: int) -> Chunk:
        """Return the header of the object at ``address``."""
        chunk = HEAP.read(address - CHUNK_SIZE)
        if not isinstance(chunk, Chunk) or chunk.magic != MAGIC:
            raise ValueError(f"no chunk header in front of {address:#x}")
        return chunk