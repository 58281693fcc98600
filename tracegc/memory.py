"""Simulated address space: mark words, heap cells, page mappings and the allocator interface."""

from __future__ import annotations

import abc
import enum
import threading
from typing import Any, Iterator, Optional

PAGE_SIZE = 4096
MARK_WORD_SIZE = 8
FWD_MASK = 0xFFFF_0000_0000_0000
_FIRST_PAGE = 0x10000


def align8(value: int) -> int:
    """Round ``value`` up to the next multiple of eight."""
    return ((value + 7) // 8) * 8


class Color(enum.Enum):
    """Tri-colour marking reduced to the two colours the collectors use."""

    WHITE = 0
    BLACK = 1


class MarkWord:
    """Per-object header: mark colour, forwarding address and the object itself."""

    __slots__ = ("color", "_forwarding_ptr", "obj")

    def __init__(
        self,
        color: Color = Color.WHITE,
        forwarding_ptr: Optional[int] = None,
        obj: Any = None,
    ) -> None:
        self.color = color
        self._forwarding_ptr: Optional[int] = None
        self.forwarding_ptr = forwarding_ptr
        self.obj = obj

    @property
    def forwarding_ptr(self) -> Optional[int]:
        return self._forwarding_ptr

    @forwarding_ptr.setter
    def forwarding_ptr(self, address: Optional[int]) -> None:
        if address is not None and (address < 0 or address & FWD_MASK):
            raise ValueError(f"forwarding address {address:#x} does not fit in a mark word")
        self._forwarding_ptr = address

    def reset(self) -> None:
        """Clear the colour and forwarding address, as freshly zeroed memory would."""
        self.color = Color.WHITE
        self._forwarding_ptr = None

    def __copy__(self) -> "MarkWord":
        return MarkWord(self.color, self._forwarding_ptr, self.obj)

    def __repr__(self) -> str:
        fwd = "None" if self._forwarding_ptr is None else f"{self._forwarding_ptr:#x}"
        return f"MarkWord(color={self.color.name}, forwarding_ptr={fwd}, obj={self.obj!r})"


class Memory:
    """Sparse memory: each address holds at most one cell (header, mark word...)."""

    def __init__(self) -> None:
        self._cells: dict[int, Any] = {}
        self._lock = threading.Lock()

    def read(self, address: int) -> Any:
        """Return the cell stored at ``address`` or ``None`` for untouched memory."""
        return self._cells.get(address)

    def write(self, address: int, cell: Any) -> None:
        """Store ``cell`` at ``address``; writing ``None`` clears the address."""
        with self._lock:
            if cell is None:
                self._cells.pop(address, None)
            else:
                self._cells[address] = cell

    def move(self, dst: int, src: int) -> None:
        """Copy the cell at ``src`` to ``dst``; the source keeps its own cell."""
        cell = self.read(src)
        if cell is None:
            self.write(dst, None)
            return
        copier = getattr(cell, "__copy__", None)
        self.write(dst, copier() if copier is not None else _shallow_copy(cell))

    def discard(self, start: int, end: int) -> None:
        """Drop every cell whose address lies in ``[start, end)``."""
        with self._lock:
            for address in self._addresses_in(start, end):
                del self._cells[address]

    def _addresses_in(self, start: int, end: int) -> list[int]:
        if end - start <= len(self._cells):
            return [a for a in range(start, end) if a in self._cells]
        return [a for a in self._cells if start <= a < end]

    def _cells_in(self, start: int, end: int) -> Iterator[tuple[int, Any]]:
        with self._lock:
            found = [(a, self._cells[a]) for a in self._addresses_in(start, end)]
        yield from found


def _shallow_copy(cell: Any) -> Any:
    import copy

    return copy.copy(cell)


HEAP = Memory()

_pages_lock = threading.Lock()
_mapped: dict[int, int] = {}
_next_page = _FIRST_PAGE


def _round_to_pages(size: int) -> int:
    return -(-size // PAGE_SIZE) * PAGE_SIZE


def map_pages(size: int) -> int:
    """Reserve a fresh, zeroed region of ``size`` bytes and return its address."""
    global _next_page
    if size <= 0:
        raise MemoryError(f"mmap failed: size={size}")
    with _pages_lock:
        start = _next_page
        # A guard page keeps neighbouring regions apart.
        _next_page += _round_to_pages(size) + PAGE_SIZE
        _mapped[start] = size
    return start


def remap_pages(address: int, old_size: int, new_size: int) -> int:
    """Grow or shrink a mapped region, moving it (and its cells) when needed."""
    with _pages_lock:
        mapped = _mapped.get(address)
        if mapped is None or new_size <= 0:
            raise MemoryError(
                f"mremap failed: old_addr={address:#x}, old_size={old_size}, new_size={new_size}"
            )
        if new_size <= _round_to_pages(mapped):
            _mapped[address] = new_size
            return address
    new_address = map_pages(new_size)
    for cell_address, cell in HEAP._cells_in(address, address + min(old_size, new_size)):
        HEAP.write(new_address + cell_address - address, cell)
    unmap_pages(address, old_size)
    return new_address


def unmap_pages(address: int, size: int) -> None:
    """Release a region returned by :func:`map_pages`, dropping its cells."""
    with _pages_lock:
        if address not in _mapped:
            raise MemoryError(f"munmap failed: old_addr={address:#x}, old_size={size}")
        del _mapped[address]
    HEAP.discard(address, address + size)


class Allocator(abc.ABC):
    """Interface of heap allocators used by the collectors."""

    @abc.abstractmethod
    def alloc(self, size: int) -> Optional[int]:
        """Return the address of ``size`` fresh bytes, or ``None`` when full."""

    @abc.abstractmethod
    def describe(self) -> str:
        """Return a human-readable summary of the allocator's state."""