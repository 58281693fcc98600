"""Two linear semispaces plus small-object slot allocators."""

from __future__ import annotations

from typing import Optional

from .fixed_size import FixedSizeAllocator
from .linear import LinearAllocator
from .memory import Allocator

_SMALL_REGION = 4096


class SemispacesAllocator(Allocator):
    """Serves small objects from slot allocators and the rest from the active space."""

    def __init__(self, max_size: int) -> None:
        self.active_space = LinearAllocator(max_size)
        self.free_space = LinearAllocator(max_size)
        self.small_allocator32 = FixedSizeAllocator(32, _SMALL_REGION)
        self.small_allocator64 = FixedSizeAllocator(64, _SMALL_REGION)

    def alloc(self, size: int) -> Optional[int]:
        if size <= 32:
            address = self.small_allocator32.alloc()
            if address is not None:
                return address
        elif size < 64:
            address = self.small_allocator64.alloc()
            if address is not None:
                return address
        return self.active_space.alloc(size)

    def describe(self) -> str:
        return (
            "-- active space --\n"
            + self.active_space.describe()
            + "-- free space --\n"
            + self.free_space.describe()
            + "-- small space 32b --\n"
            + self.small_allocator32.describe()
            + "-- small space 64b --\n"
            + self.small_allocator64.describe()
        )

    def change_space(self) -> None:
        """Swap the active and free spaces."""
        self.active_space, self.free_space = self.free_space, self.active_space