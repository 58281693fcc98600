"""Managed objects and the pointers to them: raw object pointers, oops and rooted handles."""

from __future__ import annotations

import abc
from typing import Any, Iterator, Optional

from .memory import HEAP, MarkWord
from .stacks import ThreadsStacks


def _address_of(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, Handle):
        return value._slot.address
    if isinstance(value, ObjectPointer):
        return value.address
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    raise TypeError(f"not a pointer: {value!r}")


class GarbageCollected(abc.ABC):
    """Base of objects living on the managed heap.

    Pointer values stored in attributes are copied, so every field owns the
    slot that a collector may update in place.
    """

    def __setattr__(self, name: str, value: Any) -> None:
        if isinstance(value, (ObjectPointer, Handle)):
            value = Oop(value)
        object.__setattr__(self, name, value)

    @abc.abstractmethod
    def trace(self, operation: Any) -> None:
        """Pass every managed reference held by this object to ``operation.trace``."""


class ObjectPointer:
    """Address of an object's mark word, or ``None`` for the null pointer."""

    __slots__ = ("address",)

    def __init__(self, address: Any = None) -> None:
        self.address = _address_of(address)

    def mw(self) -> MarkWord:
        """Return the mark word the pointer refers to."""
        address = self.address
        if address is None:
            raise ReferenceError("null pointer dereference")
        cell = HEAP.read(address)
        if not isinstance(cell, MarkWord):
            raise ReferenceError(f"no object at {address:#x}")
        return cell

    def update(self, address: Optional[int]) -> None:
        self.address = address

    def content(self) -> Any:
        """Return the object the pointer refers to."""
        address = self.address
        obj = self.mw().obj
        if obj is None:
            raise ReferenceError(f"object at {address:#x} is not initialised")
        if isinstance(obj, GarbageCollected):
            object.__setattr__(obj, "_gc_address", address)
        return obj

    def trace(self, operation: Any) -> None:
        self.content().trace(operation)

    def __eq__(self, other: object) -> bool:
        if other is None:
            return self.address is None
        if isinstance(other, (ObjectPointer, Handle)):
            return self.address == _address_of(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __bool__(self) -> bool:
        return self.address is not None

    def __copy__(self) -> "ObjectPointer":
        return type(self)(self.address)

    def __repr__(self) -> str:
        where = "null" if self.address is None else f"{self.address:#x}"
        return f"{type(self).__name__}({where})"


class Oop(ObjectPointer):
    """Object pointer that gives access to the fields of the object it refers to."""

    __slots__ = ()

    @classmethod
    def from_object(cls, obj: Any) -> "Oop":
        """Return a pointer to ``obj``, which must live on the managed heap."""
        address = getattr(obj, "_gc_address", None)
        cell = HEAP.read(address) if address is not None else None
        if not isinstance(cell, MarkWord) or cell.obj is not obj:
            raise ValueError(f"{obj!r} is not on the managed heap")
        return cls(address)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("__") or name == "address":
            raise AttributeError(name)
        return getattr(self.content(), name)

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "address":
            object.__setattr__(self, name, value)
        else:
            setattr(self.content(), name, value)

    def __getitem__(self, key: Any) -> Any:
        return self.content()[key]

    def __setitem__(self, key: Any, value: Any) -> None:
        self.content()[key] = value

    def __len__(self) -> int:
        return len(self.content())

    def __iter__(self) -> Iterator[Any]:
        return iter(self.content())


class Handle:
    """Root pointer kept on the current thread's shadow stack."""

    __slots__ = ("_slot",)

    def __init__(self, value: Any = None) -> None:
        slot = ThreadsStacks.stack_of_current_thread().push(ObjectPointer(value))
        object.__setattr__(self, "_slot", slot)

    def __bool__(self) -> bool:
        return self._slot.address is not None

    def oop(self) -> Oop:
        """Return a pointer holding the handle's current address."""
        return Oop(self._slot.address)

    def assign(self, value: Any) -> "Handle":
        """Make the handle refer to what ``value`` refers to."""
        self._slot.update(_address_of(value))
        return self

    def __getattr__(self, name: str) -> Any:
        if name.startswith("__") or name == "_slot":
            raise AttributeError(name)
        return getattr(self._slot.content(), name)

    def __setattr__(self, name: str, value: Any) -> None:
        setattr(self._slot.content(), name, value)

    def __getitem__(self, key: Any) -> Any:
        return self._slot.content()[key]

    def __setitem__(self, key: Any, value: Any) -> None:
        self._slot.content()[key] = value

    def __len__(self) -> int:
        return len(self._slot.content())

    def __iter__(self) -> Iterator[Any]:
        return iter(self._slot.content())

    def __eq__(self, other: object) -> bool:
        if other is None:
            return self._slot.address is None
        if isinstance(other, (ObjectPointer, Handle)):
            return self._slot.address == _address_of(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        address = self._slot.address
        where = "null" if address is None else f"{address:#x}"
        return f"Handle({where})"


class HandleMark:
    """Scope that drops every handle created inside it when it ends."""

    def __init__(self) -> None:
        self._saved_sp: Optional[int] = None

    def __enter__(self) -> "HandleMark":
        self._saved_sp = ThreadsStacks.stack_of_current_thread().enter()
        return self

    def __exit__(self, *args: object) -> None:
        if self._saved_sp is not None:
            ThreadsStacks.stack_of_current_thread().leave(self._saved_sp)
            self._saved_sp = None