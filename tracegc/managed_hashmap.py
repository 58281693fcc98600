"""Chained hash map whose table, nodes and iterators live on the collected heap."""

from __future__ import annotations

from typing import Any, Optional

from .environment import Environment
from .pointer import GarbageCollected, Handle, HandleMark, Oop
from .structures import Array


class Node(GarbageCollected):
    """One entry of a bucket chain."""

    def __init__(self, key: Any, value: Any, hash_value: int) -> None:
        self.key = Oop(key)
        self.value = Oop(value)
        self.hash = hash_value
        self.next = Oop()

    def trace(self, operation: Any) -> None:
        operation.trace(self.key)
        operation.trace(self.value)
        operation.trace(self.next)


class HashMap(GarbageCollected):
    """Map from managed keys to managed values; equal keys may be stored more than once."""

    ARRAY_SIZE = 1024

    def __init__(self, table: Any) -> None:
        self.table = Oop(table)
        self.size = 0

    def put(self, key: Any, value: Any) -> None:
        """Append an entry to the chain of the key's bucket."""
        with HandleMark():
            h_key = Handle(key)
            h_value = Handle(value)
            h_table = Handle(self.table)
            if not h_key or not h_value:
                raise ValueError("keys and values must not be null")
            self.size += 1

            hash_value = hash(h_key.oop().content())
            new_node = Environment.context().alloc(Node, h_key, h_value, hash_value)
            bucket = (len(h_table) - 1) & hash_value
            node = h_table[bucket]
            if not node:
                h_table[bucket] = new_node
                return
            current = node
            while node:
                current = node
                node = node.next
            current.next = new_node

    def get(self, key: Any) -> Optional[Oop]:
        """Return the value of the first entry equal to ``key``, or None."""
        if not key:
            return None
        wanted = Oop(key).content()
        hash_value = hash(wanted)
        node = self.table[(len(self.table) - 1) & hash_value]
        while node:
            if node.hash == hash_value and node.key.content() == wanted:
                return Oop(node.value)
            node = node.next
        return None

    def iterator(self) -> Oop:
        """Allocate an iterator over the entries, bucket by bucket."""
        with HandleMark():
            h_self = Handle(Oop.from_object(self))
            return Environment.context().alloc(HashMapIterator, h_self)

    def trace(self, operation: Any) -> None:
        operation.trace(self.table)

    @classmethod
    def make(cls) -> Oop:
        ctx = Environment.context()
        with HandleMark():
            table = Handle(Array.make(cls.ARRAY_SIZE))
            return ctx.alloc(cls, table)


class HashMapIterator(GarbageCollected):
    """Walks the nodes of a :class:`HashMap`."""

    def __init__(self, hash_map: Any) -> None:
        self.bucket_index = 0
        self.current = Oop()
        self.next = Oop()
        self.hash_map = Oop(hash_map)
        self._advance()

    def _advance(self) -> None:
        table = self.hash_map.table
        if not table or self.hash_map.size == 0:
            return
        while self.bucket_index < len(table):
            self.next = table[self.bucket_index]
            self.bucket_index += 1
            if self.next:
                return

    def has_next(self) -> bool:
        return bool(self.next)

    def next_node(self) -> Oop:
        """Return the next node; raises StopIteration once every node was returned."""
        if not self.next:
            raise StopIteration
        node = Oop(self.next)
        self.next = node.next
        if not self.next:
            self._advance()
        return node

    def trace(self, operation: Any) -> None:
        operation.trace(self.current)
        operation.trace(self.next)
        operation.trace(self.hash_map)