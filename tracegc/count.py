"""Word counting over a text, with either the managed heap or plain Python objects."""

from __future__ import annotations

import re
import string
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Sequence, TypeVar

from .collectors import MarkAndCompactCollector
from .environment import Environment, ThreadEnv
from .managed_hashmap import HashMap as ManagedHashMap
from .pointer import Handle, HandleMark, Oop
from .structures import Pair, SizeT, String, Vector
from .unmanaged_hashmap import HashMap as UnmanagedHashMap

USAGE = "count [--nogc | --gc [--mc | --ms]] <filename>"
GC_HEAP_SIZE = 1024 * 32 * 1024

_ALNUM = string.ascii_letters + string.digits
_WORD = re.compile(f"[{_ALNUM}][{_ALNUM}{re.escape(string.punctuation)}]*")

T = TypeVar("T")


def words(buffer: str) -> Iterator[str]:
    """Yield the words of ``buffer``: an ASCII letter or digit followed by letters, digits or punctuation."""
    for match in _WORD.finditer(buffer):
        yield match.group()


def _managed_update_value(hash_map: Handle, word: Oop) -> None:
    value = hash_map.get(word)
    if value is None:
        with HandleMark():
            h_word = Handle(word)
            counter = SizeT.make(1)
            hash_map.put(h_word, counter)
    else:
        value.store(value.value + 1)


def managed_parse_file(buffer: str) -> Oop:
    """Count the words of ``buffer`` into a managed hash map; the thread must be attached."""
    with HandleMark():
        hash_map = Handle(ManagedHashMap.make())
        for word in words(buffer):
            _managed_update_value(hash_map, String.make(word))
        return hash_map.oop()


def managed_count(buffer: str) -> list[tuple[str, int]]:
    """Print the word counts of ``buffer`` using the global environment and return them."""
    env = Environment.context()
    entries: list[tuple[str, int]] = []
    with ThreadEnv(env), HandleMark():
        hash_map = Handle(managed_parse_file(buffer))
        it = Handle(hash_map.iterator())
        vector = Handle(Vector.make())

        words_count = 0
        while it.has_next():
            with HandleMark():
                curr = Handle(it.next_node())
                words_count += curr.value.value
                pair = Pair.make(curr.key, curr.value)
                vector.append(pair)

        env.unmanaged_context(lambda: print(f"Words: {words_count}"))

        for idx in range(len(vector)):
            elem = vector[idx]
            word = str(elem.first.content())
            number = elem.second.value
            print(f"{word} : {number}")
            entries.append((word, number))

        env.safepoint()
    return entries


@dataclass
class _Counter:
    value: int = 1


def unmanaged_parse_file(buffer: str) -> UnmanagedHashMap:
    """Count the words of ``buffer`` into a plain hash map of counters."""
    hash_map = UnmanagedHashMap.make()
    for word in words(buffer):
        counter = hash_map.get(word)
        if counter is None:
            hash_map.put(word, _Counter())
        else:
            counter.value += 1
    return hash_map


def unmanaged_count(buffer: str) -> list[tuple[str, int]]:
    """Print the word counts of ``buffer`` using plain objects and return them."""
    hash_map = unmanaged_parse_file(buffer)
    entries = [(node.key, node.value.value) for node in hash_map.iterator()]
    print(f"Words: {sum(number for _, number in entries)}")
    for word, number in entries:
        print(f"{word} : {number}")
    return entries


def measure(fn: Callable[[], T]) -> T:
    """Run ``fn``, print how long it took in microseconds and return its result."""
    start = time.perf_counter_ns()
    result = fn()
    elapsed = (time.perf_counter_ns() - start) // 1000
    print(f"Execution time: {elapsed} microseconds")
    return result


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) < 2:
        print(USAGE)
        return 1
    option, filename = args[0], args[1]
    try:
        buffer = Path(filename).read_bytes().decode("latin-1")
    except OSError:
        print(f"cannot open file: {filename}")
        return 2

    print(f"File size: {len(buffer)} symbols")

    if option == "--nogc":
        measure(lambda: unmanaged_count(buffer))
    elif option == "--gc":
        env: Any = Environment.init(MarkAndCompactCollector(GC_HEAP_SIZE))
        try:
            measure(lambda: managed_count(buffer))
        finally:
            env.shutdown()
    else:
        print(f"Unknown option: {option}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())