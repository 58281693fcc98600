import contextlib

import pytest

from tracegc.collectors import MarkAndCompactCollector, MarkAndSweepCollector
from tracegc.environment import Environment, ThreadEnv
from tracegc.managed_hashmap import HashMap, Node
from tracegc.pointer import Handle, HandleMark
from tracegc.structures import SizeT, String

HEAP_SIZE = 1024 * 1024
COLLECTORS = {
    "mark_and_sweep": MarkAndSweepCollector,
    "mark_and_compact": MarkAndCompactCollector,
}


@contextlib.contextmanager
def _environment(kind):
    ctx = Environment.init(COLLECTORS[kind](HEAP_SIZE))
    try:
        with ThreadEnv(ctx), HandleMark():
            yield ctx
    finally:
        ctx.shutdown()


@pytest.fixture(params=sorted(COLLECTORS))
def env(request):
    with _environment(request.param) as ctx:
        yield ctx


class _Recorder:
    def __init__(self):
        self.seen = []

    def trace(self, ptr):
        self.seen.append(ptr)


def _put(hash_map, text, number):
    with HandleMark():
        key = Handle(String.make(text))
        value = Handle(SizeT.make(number))
        hash_map.put(key, value)


def _lookup(hash_map, text):
    with HandleMark():
        key = Handle(String.make(text))
        found = hash_map.get(key)
        return None if found is None else found.value


def _collect(hash_map):
    result = {}
    with HandleMark():
        iterator = Handle(hash_map.iterator())
        while iterator.has_next():
            node = iterator.next_node()
            result[str(node.key.content())] = node.value.value
    return result


def test_put_and_get(env):
    hash_map = Handle(HashMap.make())
    _put(hash_map, "alpha", 1)
    _put(hash_map, "beta", 2)
    assert _lookup(hash_map, "alpha") == 1
    assert _lookup(hash_map, "beta") == 2
    assert hash_map.size == 2


def test_missing_key(env):
    hash_map = Handle(HashMap.make())
    _put(hash_map, "alpha", 1)
    assert _lookup(hash_map, "gamma") is None
    assert hash_map.get(None) is None


def test_colliding_keys_share_a_chain(env):
    hash_map = Handle(HashMap.make())
    _put(hash_map, "ab", 1)
    _put(hash_map, "ba", 2)
    _put(hash_map, "ab" * 600, 3)
    assert _lookup(hash_map, "ab") == 1
    assert _lookup(hash_map, "ba") == 2
    assert _lookup(hash_map, "ab" * 600) == 3


def test_duplicate_key_keeps_first_value(env):
    hash_map = Handle(HashMap.make())
    _put(hash_map, "same", 1)
    _put(hash_map, "same", 2)
    assert _lookup(hash_map, "same") == 1
    assert hash_map.size == 2
    assert sorted(_collect_values(hash_map)) == [1, 2]


def _collect_values(hash_map):
    values = []
    with HandleMark():
        iterator = Handle(hash_map.iterator())
        while iterator.has_next():
            values.append(iterator.next_node().value.value)
    return values


def test_value_can_be_updated_in_place(env):
    hash_map = Handle(HashMap.make())
    _put(hash_map, "word", 1)
    with HandleMark():
        key = Handle(String.make("word"))
        value = hash_map.get(key)
        value.store(value.value + 1)
    assert _lookup(hash_map, "word") == 2


def test_null_key_is_rejected(env):
    hash_map = Handle(HashMap.make())
    with pytest.raises(ValueError):
        hash_map.put(None, SizeT.make(1))
    assert hash_map.size == 0


def test_iterator_visits_every_entry(env):
    hash_map = Handle(HashMap.make())
    expected = {"one": 1, "two": 2, "three": 3, "eno": 4}
    for text, number in expected.items():
        _put(hash_map, text, number)
    assert _collect(hash_map) == expected


def test_empty_iterator(env):
    hash_map = Handle(HashMap.make())
    iterator = Handle(hash_map.iterator())
    assert iterator.has_next() is False
    with pytest.raises(StopIteration):
        iterator.next_node()


def test_map_survives_collection(env):
    hash_map = Handle(HashMap.make())
    expected = {f"word{i}": i for i in range(30)}
    for text, number in expected.items():
        _put(hash_map, text, number)
    env.force_gc()
    assert _lookup(hash_map, "word7") == 7
    assert _collect(hash_map) == expected
    env.force_gc()
    assert _collect(hash_map) == expected


def test_node_trace_reports_its_pointers(env):
    hash_map = Handle(HashMap.make())
    _put(hash_map, "key", 9)
    with HandleMark():
        iterator = Handle(hash_map.iterator())
        node = Handle(iterator.next_node())
        recorder = _Recorder()
        content = node.oop().content()
        assert isinstance(content, Node)
        content.trace(recorder)
        assert len(recorder.seen) == 3
        assert recorder.seen[0] == node.key
        assert recorder.seen[1] == node.value
        assert not recorder.seen[2]


def test_hashmap_trace_reports_table(env):
    hash_map = Handle(HashMap.make())
    recorder = _Recorder()
    hash_map.oop().content().trace(recorder)
    assert len(recorder.seen) == 1
    assert len(recorder.seen[0]) == HashMap.ARRAY_SIZE