"""Runtime environment: allocation entry points, safepoints and the collector thread."""

from __future__ import annotations

import sys
import threading
from typing import Any, Callable, ClassVar, Optional

from .collectors import BasicCollector
from .locks import GCTimeRecorder, ThreadLock, Timer, WorkerState
from .memory import HEAP, MARK_WORD_SIZE, MarkWord
from .pointer import Oop
from .stacks import ThreadsStacks

DEFAULT_OBJECT_SIZE = 16
_STOP_POLL_SECONDS = 0.05


class OutOfMemory(MemoryError):
    """Raised when an allocation fails even after a full collection."""


class _Uninitialised:
    """Contents of an object that has been allocated but not constructed yet."""

    __slots__ = ("cls",)

    def __init__(self, cls: type) -> None:
        self.cls = cls

    def trace(self, operation: Any) -> None:
        pass

    def __repr__(self) -> str:
        return f"<uninitialised {self.cls.__name__}>"


def _object_size(cls: type) -> int:
    return getattr(cls, "gc_size", DEFAULT_OBJECT_SIZE)


class Worker:
    """Background thread that runs a collection whenever one is requested."""

    def __init__(self, ctx: "Environment") -> None:
        self._ctx = ctx
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._ctx.state.start()
        self._thread = threading.Thread(target=self._run, name="gc-worker", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        thread, self._thread = self._thread, None
        if thread is None:
            return
        while thread.is_alive():
            # A collection finishing right now may overwrite the request; repeat it.
            self._ctx.state.terminate()
            thread.join(_STOP_POLL_SECONDS)

    def _wait_job(self) -> bool:
        """Block until a collection is requested; True means the worker must exit."""
        self._ctx.state.wait_collect_command()
        return self._ctx.state.is_terminate()

    def _run(self) -> None:
        ctx = self._ctx
        while not ctx.state.is_terminate():
            if self._wait_job():
                return
            timer = Timer()
            timer.start()
            with ctx.env_lock:
                ctx.thread_lock.stw()
                try:
                    ctx.gc.collect()
                except BaseException as exc:  # handed over to the waiting mutator
                    ctx._collection_error = exc
                finally:
                    ctx.self_suspend = False
                    ctx.state.mutators_continue()
                    ctx.thread_lock.run_world()
            timer.stop()
            ctx.recorder.append(timer)


class Environment:
    """Managed heap of one collector, shared by every attached thread."""

    _global_ctx: ClassVar[Optional["Environment"]] = None

    def __init__(self, gc: BasicCollector) -> None:
        self.gc = gc
        self.state = WorkerState()
        self.self_suspend = False
        self.env_lock = threading.Lock()
        self.stacks = ThreadsStacks()
        self.thread_lock = ThreadLock()
        self.recorder = GCTimeRecorder()
        self.worker = Worker(self)
        self._collection_error: Optional[BaseException] = None
        self._closed = False

    @classmethod
    def init(cls, gc: BasicCollector) -> "Environment":
        """Replace the global environment with a new one driven by ``gc``."""
        previous, cls._global_ctx = cls._global_ctx, None
        if previous is not None:
            previous.shutdown()
        env = cls(gc)
        gc.set_ctx(env)
        cls._global_ctx = env
        env.worker.start()
        return env

    @classmethod
    def context(cls) -> "Environment":
        """Return the global environment."""
        if cls._global_ctx is None:
            raise RuntimeError("no environment has been initialised")
        return cls._global_ctx

    @classmethod
    def collector(cls) -> BasicCollector:
        """Return the collector of the global environment."""
        return cls.context().gc

    @staticmethod
    def init_object(oop: Oop, *args: Any, **kwargs: Any) -> Oop:
        """Construct the object at ``oop`` in place from the given arguments."""
        mw = oop.mw()
        current = mw.obj
        if current is None:
            raise ReferenceError(f"no allocation at {oop.address:#x}")
        cls = current.cls if isinstance(current, _Uninitialised) else type(current)
        mw.obj = cls(*args, **kwargs)
        return oop

    def force_gc(self) -> None:
        """Run a full collection and wait until it is over."""
        if self._closed:
            raise RuntimeError("environment has been shut down")
        self._start_collection()
        self._safepoint_slow()

    def safepoint(self) -> None:
        """Let a pending collection run before going on."""
        if not self.self_suspend:
            return
        self._safepoint_slow()

    def unmanaged_context(self, closure: Callable[[], Any]) -> Any:
        """Run ``closure`` while collections may proceed; it must not touch the heap."""
        self.thread_lock.unlock()
        try:
            return closure()
        finally:
            self.thread_lock.lock()

    def raw_alloc(self, cls: type, additional_bytes: int = 0) -> Oop:
        """Reserve room for a ``cls`` object plus ``additional_bytes``, unconstructed."""
        if additional_bytes < 0:
            raise ValueError(f"negative additional size: {additional_bytes}")
        size = MARK_WORD_SIZE + _object_size(cls) + additional_bytes
        address = self._raw_alloc_helper(size)
        HEAP.write(address, MarkWord(obj=_Uninitialised(cls)))
        return Oop(address)

    def alloc(self, cls: type, *args: Any, **kwargs: Any) -> Oop:
        """Allocate and construct a ``cls`` object on the managed heap."""
        oop = self.raw_alloc(cls, 0)
        return self.init_object(oop, *args, **kwargs)

    def shutdown(self) -> None:
        """Stop the collector thread and report recorded pauses."""
        if self._closed:
            return
        self._closed = True
        self.worker.stop()
        self.recorder.report(sys.stderr)
        if Environment._global_ctx is self:
            Environment._global_ctx = None

    def _raw_alloc_helper(self, size: int) -> int:
        allocator = self.gc.allocator
        address = allocator.alloc(size)
        if address is None:
            self.force_gc()
            address = allocator.alloc(size)
            if address is None:
                raise OutOfMemory("Out of memory:\n" + allocator.describe())
        return address

    def _start_collection(self) -> None:
        self.self_suspend = True
        self.state.collect()

    def _safepoint_slow(self) -> None:
        self.thread_lock.unlock()
        try:
            self.state.wait_collect_ending()
        finally:
            self.thread_lock.lock()
        error, self._collection_error = self._collection_error, None
        if error is not None:
            raise error

    def _initialize_for_current_thread(self) -> None:
        with self.env_lock:
            self.stacks.initialize_for_current_thread()
            self.thread_lock.initialize_for_current_thread()
            self.thread_lock.lock()
        self.safepoint()

    def _destroy_for_current_thread(self) -> None:
        # Released before waiting for the environment lock, so a collection
        # already stopping the world is not blocked by this thread.
        self.thread_lock.unlock()
        with self.env_lock:
            self.stacks.destroy_for_current_thread()
            self.thread_lock.destroy_for_current_thread()


class ThreadEnv:
    """Attaches the current thread to an environment for the duration of a block."""

    def __init__(self, ctx: Environment) -> None:
        self.ctx = ctx

    def __enter__(self) -> "ThreadEnv":
        self.ctx._initialize_for_current_thread()
        return self

    def __exit__(self, *args: object) -> None:
        self.ctx._destroy_for_current_thread()