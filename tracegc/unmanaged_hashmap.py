"""Chained hash map of ordinary Python objects, with the same layout as the managed one."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, Optional


@dataclass(eq=False)
class Node:
    """One entry of a bucket chain."""

    key: Any
    value: Any
    hash: int
    next: Optional["Node"] = None


class HashMap:
    """Map with a fixed table of buckets; equal keys may be stored more than once."""

    ARRAY_SIZE = 1024

    def __init__(self, table: list[Optional[Node]]) -> None:
        self.table = table
        self.size = 0

    def _bucket(self, hash_value: int) -> int:
        return (len(self.table) - 1) & hash_value

    def put(self, key: Any, value: Any) -> None:
        """Append an entry to the chain of the key's bucket."""
        if key is None or value is None:
            raise ValueError("keys and values must not be None")
        self.size += 1

        hash_value = hash(key)
        new_node = Node(key, value, hash_value)
        bucket = self._bucket(hash_value)
        node = self.table[bucket]
        if node is None:
            self.table[bucket] = new_node
            return
        while node.next is not None:
            node = node.next
        node.next = new_node

    def get(self, key: Any) -> Any:
        """Return the value of the first entry equal to ``key``, or None."""
        if key is None:
            return None
        hash_value = hash(key)
        node = self.table[self._bucket(hash_value)]
        while node is not None:
            if node.hash == hash_value and not (node.key != key):
                return node.value
            node = node.next
        return None

    def iterator(self) -> "HashMapIterator":
        """Return an iterator over the entries, bucket by bucket."""
        return HashMapIterator(self)

    @classmethod
    def make(cls) -> "HashMap":
        """Create an empty map with ``ARRAY_SIZE`` buckets."""
        return cls([None] * cls.ARRAY_SIZE)


class HashMapIterator:
    """Walks the nodes of a :class:`HashMap`."""

    def __init__(self, hash_map: HashMap) -> None:
        self.bucket_index = 0
        self.next: Optional[Node] = None
        self.hash_map = hash_map
        self._advance()

    def _advance(self) -> None:
        table = self.hash_map.table
        if table is None or self.hash_map.size == 0:
            return
        while self.bucket_index < len(table):
            self.next = table[self.bucket_index]
            self.bucket_index += 1
            if self.next is not None:
                return

    def has_next(self) -> bool:
        return self.next is not None

    def next_node(self) -> Node:
        """Return the next node; raises StopIteration once every node was returned."""
        node = self.next
        if node is None:
            raise StopIteration
        self.next = node.next
        if self.next is None:
            self._advance()
        return node

    def __iter__(self) -> Iterator[Node]:
        return self

    def __next__(self) -> Node:
        return self.next_node()