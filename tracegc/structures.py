"""Managed containers living on the collected heap: arrays, vectors, pairs, strings, counters."""

from __future__ import annotations

import operator
from typing import Any, Callable

from .environment import Environment
from .pointer import GarbageCollected, Handle, HandleMark, Oop

POINTER_SIZE = 8


class Array(GarbageCollected):
    """Fixed-length array of managed pointers, all null at first."""

    def __init__(self, length: int) -> None:
        self._slots = [Oop() for _ in range(length)]

    def _index(self, idx: Any) -> int:
        idx = operator.index(idx)
        if not 0 <= idx < len(self._slots):
            raise IndexError(
                f"Array index out of bound: idx={idx}, length={len(self._slots)}"
            )
        return idx

    def __getitem__(self, idx: Any) -> Oop:
        return Oop(self._slots[self._index(idx)])

    def __setitem__(self, idx: Any, value: Any) -> None:
        self._slots[self._index(idx)] = Oop(value)

    def __len__(self) -> int:
        return len(self._slots)

    def trace(self, operation: Any) -> None:
        for slot in self._slots:
            operation.trace(slot)

    def copy_to(self, other: Any) -> bool:
        """Copy every element into the array ``other``; False if it is too short."""
        target = Oop(other).content()
        if not isinstance(target, Array):
            raise TypeError(f"cannot copy an array into {type(target).__name__}")
        if len(self._slots) > len(target._slots):
            return False
        target._slots[: len(self._slots)] = [Oop(slot) for slot in self._slots]
        return True

    @classmethod
    def make(cls, length: int) -> Oop:
        """Allocate an array of ``length`` null pointers."""
        if length < 0:
            raise ValueError(f"negative array length: {length}")
        array = Environment.context().raw_alloc(cls, length * POINTER_SIZE)
        return Environment.init_object(array, length)


class Pair(GarbageCollected):
    """Two managed pointers."""

    def __init__(self, first: Any, second: Any) -> None:
        self.first = Oop(first)
        self.second = Oop(second)

    def trace(self, operation: Any) -> None:
        operation.trace(self.first)
        operation.trace(self.second)

    @classmethod
    def make(cls, first: Any, second: Any) -> Oop:
        with HandleMark():
            h_first = Handle(first)
            h_second = Handle(second)
            return Environment.context().alloc(cls, h_first, h_second)


class SizeT(GarbageCollected):
    """Managed unsigned counter."""

    def __init__(self, data: int) -> None:
        self.value = self._checked(data)

    @staticmethod
    def _checked(data: int) -> int:
        data = operator.index(data)
        if data < 0:
            raise ValueError(f"SizeT holds unsigned values only: {data}")
        return data

    def store(self, new_value: int) -> None:
        self.value = self._checked(new_value)

    def trace(self, operation: Any) -> None:
        pass

    @classmethod
    def make(cls, data: int) -> Oop:
        return Environment.context().alloc(cls, data)


class String(GarbageCollected):
    """Immutable managed string; its hash is the sum of its character codes."""

    def __init__(self, text: str) -> None:
        self._text = text

    def peek(self, idx: int) -> str:
        idx = operator.index(idx)
        if not 0 <= idx < len(self._text):
            raise IndexError(f"String.peek(idx) error: idx={idx}, length={len(self._text)}")
        return self._text[idx]

    def __len__(self) -> int:
        return len(self._text)

    def __str__(self) -> str:
        return self._text

    def __eq__(self, other: object) -> bool:
        if isinstance(other, String):
            return self._text == other._text
        return NotImplemented

    def __hash__(self) -> int:
        return sum(map(ord, self._text))

    def trace(self, operation: Any) -> None:
        pass

    def __repr__(self) -> str:
        return f"String({self._text!r})"

    @classmethod
    def make(cls, text: Any) -> Oop:
        """Allocate a string holding ``text``, or ``text`` NUL characters if it is a length."""
        if isinstance(text, int) and not isinstance(text, bool):
            if text < 0:
                raise ValueError(f"negative string length: {text}")
            text = "\0" * text
        elif not isinstance(text, str):
            raise TypeError(f"cannot make a String from {type(text).__name__}")
        oop = Environment.context().raw_alloc(cls, len(text.encode("utf-8")) + 1)
        return Environment.init_object(oop, text)


class Vector(GarbageCollected):
    """Growable sequence of managed pointers backed by an :class:`Array`."""

    RESIZE_RATIO = 2
    INITIAL_SIZE = 16

    def __init__(self, data: Any) -> None:
        self.count = 0
        self.data = Oop(data)

    def _index(self, idx: Any) -> int:
        idx = operator.index(idx)
        if not 0 <= idx < self.count:
            raise IndexError(f"Vector index out of range: idx={idx}, length={self.count}")
        return idx

    def __getitem__(self, idx: Any) -> Oop:
        return self.data[self._index(idx)]

    def __setitem__(self, idx: Any, value: Any) -> None:
        self.data[self._index(idx)] = value

    def __len__(self) -> int:
        return self.count

    def append(self, elem: Any) -> None:
        with HandleMark():
            h_self = Handle(Oop.from_object(self))
            h_elem = Handle(elem)
            if h_self.count == len(h_self.data):
                self._resize(h_self)
            h_self.data[h_self.count] = h_elem
            h_self.count += 1

    @classmethod
    def _resize(cls, h_self: Handle) -> None:
        new_size = len(h_self.data) * cls.RESIZE_RATIO
        new_array = Array.make(new_size)
        if not h_self.data.copy_to(new_array):
            raise RuntimeError("array copy error")
        h_self.data = new_array

    def trace(self, operation: Any) -> None:
        operation.trace(self.data)

    @classmethod
    def make(cls) -> Oop:
        env = Environment.context()
        with HandleMark():
            array = Handle(Array.make(cls.INITIAL_SIZE))
            return env.alloc(cls, array)

    @staticmethod
    def sort(vec: Any, comp: Callable[[Oop, Oop], bool]) -> None:
        """Bubble sort in place: neighbours are swapped whenever ``comp(left, right)`` holds."""
        length = len(vec)
        for i in range(length - 1):
            for j in range(length - i - 1):
                if comp(vec[j], vec[j + 1]):
                    vec[j], vec[j + 1] = vec[j + 1], vec[j]