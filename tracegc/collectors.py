"""Collectors: the allocator they own and the sequence of passes each runs."""

from __future__ import annotations

import abc
from typing import Any, Optional

from .malloc_based import MallocBasedAllocator
from .memory import Allocator
from .operations import Mark, Reallocate, Relocate, Sweep, UpdateReferences
from .semispaces import SemispacesAllocator


class BasicCollector(abc.ABC):
    """Owns a heap allocator and collects it on behalf of one environment."""

    def __init__(self, allocator: Allocator) -> None:
        self.allocator = allocator
        self._ctx: Optional[Any] = None

    def context(self) -> Any:
        """Return the environment the collector is attached to."""
        if self._ctx is None:
            raise RuntimeError("collector is not attached to an environment")
        return self._ctx

    def set_ctx(self, ctx: Any) -> None:
        """Attach the collector to ``ctx``; allowed once."""
        if self._ctx is not None:
            raise RuntimeError("collector is already attached to an environment")
        self._ctx = ctx

    @abc.abstractmethod
    def collect(self) -> None:
        """Reclaim every object not reachable from the roots."""


class MarkAndSweepCollector(BasicCollector):
    """Marks live objects, then frees the rest in place."""

    def __init__(self, max_size: int) -> None:
        super().__init__(MallocBasedAllocator(max_size))
        self.worklist: list = []

    def collect(self) -> None:
        Mark(self.worklist).do_it(self)
        Sweep().do_it(self)


class MarkAndCompactCollector(BasicCollector):
    """Marks live objects, moves them together and updates every reference."""

    def __init__(self, heap_size: int) -> None:
        super().__init__(SemispacesAllocator(heap_size))
        self.worklist: list = []

    def collect(self) -> None:
        Mark(self.worklist).do_it(self)
        Reallocate(self.worklist).do_it(self)
        UpdateReferences(self.worklist).do_it(self)
        Relocate().do_it(self)