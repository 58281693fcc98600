"""Locks and signalling used to stop mutator threads while a collection runs."""

from __future__ import annotations

import enum
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional, TextIO


class SpinLock:
    """Non-reentrant lock that may be released by any thread, not only its holder."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def lock(self) -> None:
        self._lock.acquire()

    def unlock(self) -> None:
        try:
            self._lock.release()
        except RuntimeError:
            # Releasing a free lock leaves it free.
            pass

    def __enter__(self) -> "SpinLock":
        self.lock()
        return self

    def __exit__(self, *args: object) -> None:
        self.unlock()


class ThreadLock:
    """One lock per registered mutator thread; the collector takes them all to stop the world."""

    def __init__(self) -> None:
        self._local = threading.local()
        self._entries: list[tuple[int, SpinLock]] = []
        self._guard = threading.Lock()

    def _own(self) -> SpinLock:
        lock = getattr(self._local, "lock", None)
        if lock is None:
            lock = SpinLock()
            self._local.lock = lock
        return lock

    def initialize_for_current_thread(self) -> None:
        with self._guard:
            self._entries.append((threading.get_ident(), self._own()))

    def destroy_for_current_thread(self) -> None:
        ident = threading.get_ident()
        with self._guard:
            entry = next((e for e in self._entries if e[0] == ident), None)
            if entry is None:
                raise RuntimeError(f"thread {ident} is not registered")
            self._entries.remove(entry)

    def lock(self) -> None:
        """Take the current thread's own lock."""
        self._own().lock()

    def unlock(self) -> None:
        """Release the current thread's own lock."""
        self._own().unlock()

    def stw(self) -> bool:
        """Take the lock of every registered thread, waiting for each to reach a safepoint."""
        with self._guard:
            locks = [lock for _, lock in self._entries]
        for lock in locks:
            lock.lock()
        return True

    def run_world(self) -> None:
        """Release the lock of every registered thread."""
        with self._guard:
            locks = [lock for _, lock in self._entries]
        for lock in locks:
            lock.unlock()


class WaitBarrier:
    """Condition on which threads wait until a predicate holds."""

    def __init__(self) -> None:
        self._cond = threading.Condition()

    def wait(self, predicate: Callable[[], bool]) -> None:
        with self._cond:
            self._cond.wait_for(predicate)

    def notify(self) -> None:
        with self._cond:
            self._cond.notify_all()


class Mode(enum.Enum):
    NOT_STARTED = 0
    STARTED = 1
    COLLECTION = 2
    TERMINATE = 3


class WorkerState:
    """Shared state between mutators and the collector thread."""

    def __init__(self) -> None:
        self.mode = Mode.NOT_STARTED
        self._barrier = WaitBarrier()

    def wait_collect_command(self) -> None:
        self._barrier.wait(lambda: self.is_terminate() or self.is_collect())

    def wait_collect_ending(self) -> None:
        self._barrier.wait(lambda: self.mode is Mode.STARTED)

    def is_terminate(self) -> bool:
        return self.mode is Mode.TERMINATE

    def is_started(self) -> bool:
        return self.mode is Mode.STARTED

    def is_collect(self) -> bool:
        return self.mode is Mode.COLLECTION

    def _switch(self, mode: Mode) -> None:
        self.mode = mode
        self._barrier.notify()

    def collect(self) -> None:
        self._switch(Mode.COLLECTION)

    def start(self) -> None:
        self._switch(Mode.STARTED)

    def mutators_continue(self) -> None:
        self.start()

    def terminate(self) -> None:
        self._switch(Mode.TERMINATE)


@dataclass
class Record:
    """One collection: when it started and how long the pause lasted, in milliseconds."""

    timestamp: float = 0.0
    pause: float = 0.0


class Timer:
    """Wall-clock stopwatch for one collection pause."""

    def __init__(self) -> None:
        self._start_ns: Optional[int] = None
        self._end_ns: Optional[int] = None

    def start(self) -> None:
        self._start_ns = time.time_ns()

    def stop(self) -> None:
        self._end_ns = time.time_ns()

    def elapsed_milliseconds(self) -> float:
        if self._start_ns is None or self._end_ns is None:
            return 0.0
        return float((self._end_ns - self._start_ns) // 1_000_000)

    def report(self) -> Record:
        if self._start_ns is None:
            return Record()
        return Record(self._start_ns / 1_000_000, self.elapsed_milliseconds())


class GCTimeRecorder:
    """Collects pause records; does nothing unless profiling is enabled."""

    def __init__(self, enabled: bool = False) -> None:
        self.enabled = enabled
        self.records: deque[Record] = deque()

    def append(self, timer: Timer) -> None:
        if self.enabled:
            self.records.append(timer.report())

    def report(self, out: TextIO) -> None:
        if not self.enabled:
            return
        out.write(
            "".join(
                f"Started: {r.timestamp} ms.\n\tPause: {r.pause} ms.\n" for r in self.records
            )
        )