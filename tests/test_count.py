from collections import Counter

import pytest

from tracegc.collectors import MarkAndCompactCollector, MarkAndSweepCollector
from tracegc.count import (
    USAGE,
    main,
    managed_count,
    managed_parse_file,
    measure,
    unmanaged_count,
    unmanaged_parse_file,
    words,
)
from tracegc.environment import Environment, ThreadEnv
from tracegc.pointer import Handle, HandleMark
from tracegc.structures import String

TEXT = "the cat saw the dog and the dog saw the cat"


@pytest.fixture(params=["markAndSweep", "markAndCompact"])
def env(request):
    if request.param == "markAndSweep":
        gc = MarkAndSweepCollector(1024 * 1024)
    else:
        gc = MarkAndCompactCollector(1024 * 1024)
    ctx = Environment.init(gc)
    yield ctx
    ctx.shutdown()


def test_words_keep_punctuation_inside_word():
    assert list(words("hello, world!")) == ["hello,", "world!"]


def test_words_must_start_with_letter_or_digit():
    assert list(words("--abc ...")) == ["abc"]
    assert list(words("a-b c")) == ["a-b", "c"]


def test_words_of_blank_text():
    assert list(words("  \n\t ")) == []


def test_unmanaged_parse_file_counts():
    hm = unmanaged_parse_file(TEXT)
    expected = Counter(TEXT.split())
    for word, number in expected.items():
        assert hm.get(word).value == number
    assert hm.get("bird") is None


def test_unmanaged_count_prints_total_and_entries(capsys):
    entries = unmanaged_count(TEXT)
    expected = Counter(TEXT.split())
    assert dict(entries) == dict(expected)
    out = capsys.readouterr().out.splitlines()
    assert out[0] == f"Words: {len(TEXT.split())}"
    assert sorted(out[1:]) == sorted(f"{w} : {n}" for w, n in entries)


def test_managed_parse_file_counts(env):
    with ThreadEnv(env), HandleMark():
        hm = Handle(managed_parse_file(TEXT))
        for word, number in Counter(TEXT.split()).items():
            key = Handle(String.make(word))
            assert hm.get(key).value == number
        missing = Handle(String.make("bird"))
        assert hm.get(missing) is None


def test_managed_count_matches_unmanaged(env, capsys):
    entries = managed_count(TEXT)
    assert dict(entries) == dict(Counter(TEXT.split()))
    out = capsys.readouterr().out.splitlines()
    assert out[0] == f"Words: {len(TEXT.split())}"
    assert len(out) == 1 + len(entries)


def test_managed_count_survives_collections(capsys):
    ctx = Environment.init(MarkAndSweepCollector(12 * 1024))
    try:
        text = " ".join(["a", "b"] * 150)
        entries = managed_count(text)
    finally:
        ctx.shutdown()
    assert dict(entries) == {"a": 150, "b": 150}


def test_measure_returns_result_and_prints_time(capsys):
    assert measure(lambda: "done") == "done"
    out = capsys.readouterr().out.strip()
    assert out.startswith("Execution time: ")
    assert out.endswith(" microseconds")


def test_main_without_arguments_prints_usage(capsys):
    assert main([]) == 1
    assert capsys.readouterr().out.strip() == USAGE


def test_main_missing_file(tmp_path, capsys):
    missing = tmp_path / "absent.txt"
    assert main(["--nogc", str(missing)]) == 2
    assert capsys.readouterr().out.strip() == f"cannot open file: {missing}"


def test_main_unknown_option(tmp_path, capsys):
    path = tmp_path / "in.txt"
    path.write_text(TEXT)
    assert main(["--fast", str(path)]) == 1
    assert "Unknown option: --fast" in capsys.readouterr().err


@pytest.mark.parametrize("option", ["--nogc", "--gc"])
def test_main_counts_file(tmp_path, capsys, option):
    path = tmp_path / "in.txt"
    path.write_text(TEXT)
    assert main([option, str(path)]) == 0
    out = capsys.readouterr().out.splitlines()
    assert out[0] == f"File size: {len(TEXT)} symbols"
    assert out[1] == f"Words: {len(TEXT.split())}"
    assert out[-1].startswith("Execution time: ")
    counted = dict(line.split(" : ") for line in out[2:-1])
    assert {w: int(n) for w, n in counted.items()} == dict(Counter(TEXT.split()))