"""Allocator of equally sized slots, with fingers used for sliding compaction."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Iterator, Optional

from .memory import HEAP, Color, MarkWord, align8, map_pages


def _is_black(address: int) -> bool:
    cell = HEAP.read(address)
    return isinstance(cell, MarkWord) and cell.color is Color.BLACK


@dataclass
class Finger:
    """A cursor over the slots of a :class:`FixedSizeAllocator`."""

    address: int
    end: int
    size: int


class RightFinger(Finger):
    """Moves downwards looking for live (black) slots."""

    def next(self) -> "RightFinger":
        if not self.has():
            raise ValueError("right finger is exhausted")
        while not _is_black(self.address):
            self.address -= self.size
            if not self.has():
                return RightFinger(self.end, self.end, self.size)
        return RightFinger(self.address, self.end, self.size)

    def has(self) -> bool:
        return self.address >= self.end


class LeftFinger(Finger):
    """Moves upwards looking for free (white) slots."""

    def next(self) -> "LeftFinger":
        if not self.has():
            raise ValueError("left finger is exhausted")
        while _is_black(self.address):
            self.address += self.size
            if not self.has():
                return LeftFinger(self.end, self.end, self.size)
        return LeftFinger(self.address, self.end, self.size)

    def has(self) -> bool:
        return self.address < self.end


def crossed(left: LeftFinger, right: RightFinger) -> bool:
    """True once the free-slot finger has reached the live-slot finger."""
    return left.address >= right.address


class FixedSizeAllocator:
    """Hands out slots of ``object_size`` bytes from one region."""

    def __init__(self, object_size: int, max_size: int) -> None:
        if object_size <= 0 or align8(object_size) != object_size:
            raise ValueError(f"slot size must be a positive multiple of 8: {object_size}")
        self.object_size = object_size
        self.max_size = align8(max_size)
        if self.max_size < object_size:
            raise ValueError(f"region of {self.max_size} bytes cannot hold one slot")
        self.start = map_pages(self.max_size)
        self.offset = 0
        self._lock = threading.Lock()

    def alloc(self) -> Optional[int]:
        with self._lock:
            current = self.start + self.offset
            if self.object_size + self.offset > self.max_size:
                return None
            self.offset += self.object_size
            return current

    def describe(self) -> str:
        return (
            f"Start: {self.start:#x}\n"
            f"Max size: {self.max_size}\n"
            f"Offset: {self.offset}\n"
            f"Object size: {self.object_size}\n"
            f"Allocation count: {self.allocation_count()}\n"
        )

    def allocation_count(self) -> int:
        return self.offset // self.object_size

    def visit(self) -> Iterator[int]:
        """Yield the address of every allocated slot in order."""
        if self.offset == 0:
            return
        current = self.start
        while True:
            yield current
            current += self.object_size
            if current >= self.start + self.offset:
                return

    def contains(self, address: int) -> bool:
        return self.start <= address < self.start + self.offset

    def refresh_offset(self, right: RightFinger) -> None:
        """Shrink the allocated area to end just before ``right``."""
        new_offset = right.address - self.start - self.object_size
        if not 0 <= new_offset <= self.offset:
            raise ValueError(f"offset {new_offset} is outside the allocated area")
        self.offset = new_offset

    def left_finger(self) -> LeftFinger:
        """Finger on the first free slot."""
        left = LeftFinger(self.start, self.start + self.offset, self.object_size)
        left.next()
        return left

    def right_finger(self) -> RightFinger:
        """Finger on the last live slot."""
        if self.offset < self.object_size:
            raise ValueError("no slot has been allocated")
        last = self.start + self.offset - self.object_size
        right = RightFinger(last, self.start, self.object_size)
        right.next()
        return right