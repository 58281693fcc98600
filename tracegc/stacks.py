"""Shadow stacks of root pointers, one per mutator thread."""

from __future__ import annotations

import copy
import threading
from typing import Any, Iterator


class ShadowStack:
    """Stack of root pointer slots; handles point at slots the collector can update."""

    def __init__(self) -> None:
        self._slots: list[Any] = []

    def enter(self) -> int:
        """Return the current depth, to be restored later by :meth:`leave`."""
        return len(self._slots)

    def leave(self, saved_sp: int) -> None:
        """Drop every slot pushed since the depth ``saved_sp`` was taken."""
        if not 0 <= saved_sp <= len(self._slots):
            raise ValueError(f"cannot truncate stack of {len(self._slots)} slots to {saved_sp}")
        del self._slots[saved_sp:]

    def push(self, ptr: Any) -> Any:
        """Store a copy of ``ptr`` and return the stored slot."""
        slot = copy.copy(ptr)
        self._slots.append(slot)
        return slot

    def __len__(self) -> int:
        return len(self._slots)

    def at(self, idx: int) -> Any:
        """Return a copy of the pointer held in slot ``idx``."""
        return copy.copy(self._slots[idx])

    def __iter__(self) -> Iterator[Any]:
        """Yield the slots themselves, bottom first, so they can be updated in place."""
        return iter(list(self._slots))


class ThreadsStacks:
    """Registry of the shadow stacks of the threads attached to an environment."""

    _local = threading.local()

    def __init__(self) -> None:
        self._stacks: dict[int, ShadowStack] = {}
        self._lock = threading.Lock()

    @staticmethod
    def stack_of_current_thread() -> ShadowStack:
        stack = getattr(ThreadsStacks._local, "stack", None)
        if stack is None:
            stack = ShadowStack()
            ThreadsStacks._local.stack = stack
        return stack

    def initialize_for_current_thread(self) -> None:
        ident = threading.get_ident()
        with self._lock:
            if ident in self._stacks:
                raise RuntimeError(f"thread {ident} is already registered")
            self._stacks[ident] = self.stack_of_current_thread()

    def destroy_for_current_thread(self) -> None:
        ident = threading.get_ident()
        with self._lock:
            if self._stacks.pop(ident, None) is None:
                raise RuntimeError(f"thread {ident} is not registered")

    def visit(self) -> Iterator[tuple[int, ShadowStack]]:
        """Yield ``(thread id, stack)`` for every registered thread."""
        with self._lock:
            items = list(self._stacks.items())
        yield from items