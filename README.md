# tracegc

`tracegc` is a small tracing garbage collector that runs over a simulated heap.
Addresses are plain integers, and objects live in memory handed out by
pluggable allocators. Roots are kept on a per-thread shadow stack, and a
background worker thread stops the world to collect.

Two collectors are provided in `tracegc.collectors`:

* `MarkAndSweepCollector` uses a `MallocBasedAllocator`. It marks reachable
  objects and frees everything else.
* `MarkAndCompactCollector` uses a `SemispacesAllocator`. It marks reachable
  objects, works out their new addresses, updates every reference, and then
  copies the survivors into the other semispace. Small objects, which live in
  fixed-size slot allocators, are compacted in place.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Using the collector

Create a collector, install it as the global environment, and attach the
current thread. Keep live objects reachable through `Handle`s that sit inside a
`HandleMark` scope:

```python
from tracegc.collectors import MarkAndSweepCollector
from tracegc.environment import Environment, ThreadEnv
from tracegc.pointer import Handle, HandleMark
from tracegc.structures import Vector, SizeT

env = Environment.init(MarkAndSweepCollector(4 * 1024 * 1024))
with ThreadEnv(env), HandleMark():
    numbers = Handle(Vector.make())
    for n in range(100):
        numbers.append(SizeT.make(n))
    env.force_gc()
    print(len(numbers), numbers[42].value)
env.shutdown()
```

Guidelines:

* Objects that can be collected subclass `GarbageCollected` (in
  `tracegc.pointer`) and implement `trace(operation)`. That method passes every
  `Oop` field the object holds to `operation.trace(...)`.
* Allocate with `env.alloc(cls, *args)`. Any allocation can trigger a
  collection, so anything you still need must be held by a `Handle`.
* Call `env.safepoint()` regularly in long-running code. Wrap blocking work in
  `env.unmanaged_context(closure)` so the collector does not wait on you.
* `env.force_gc()` runs a full collection and blocks until it finishes. If an
  allocation still fails after a collection, `OutOfMemory` is raised.
* `env.shutdown()` stops the collector thread. `Environment.init` shuts down
  any previous global environment before installing the new one.

The managed structures in `tracegc.structures` (`Array`, `Vector`, `Pair`,
`String`, `SizeT`) and the hash map in `tracegc.managed_hashmap` are built on
these primitives. `tracegc.unmanaged_hashmap` has a hash map of the same layout
that holds ordinary Python objects.

## Word counting example

The `tracegc-count` command reads a text file and counts word occurrences. It
prints the file size, the total number of words, each word with its count, and
the execution time in microseconds.

```
tracegc-count --gc words.txt
tracegc-count --nogc words.txt
```

With `--gc` the words are kept in a managed hash map on a 32 MiB
mark-and-compact heap. With `--nogc` the unmanaged hash map is used instead.
The same counting is available from Python through `tracegc.count.managed_count`
and `tracegc.count.unmanaged_count`, which also return the `(word, count)`
pairs.

Exit codes:

* `1` when arguments are missing or the option is not recognised.
* `2` when the file cannot be opened.

## Limitations

* The heap is simulated: the collectors manage objects in the package's own
  address space, not real process memory.
* The usage line mentions `--mc` and `--ms`, but `tracegc-count` does not read
  them; `--gc` always uses the mark-and-compact collector.
* Pause timing is recorded only when a `GCTimeRecorder` is created with
  `enabled=True`; the environment's own recorder is disabled.