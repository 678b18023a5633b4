"""Bounded-concurrency admission queue for compiler invocations."""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import time
import uuid
from collections import deque
from typing import Any, Callable

from ccbuild.models import CompileTask, TaskState

logger = logging.getLogger(__name__)

MAX_PARALLEL = 4


class AdmissionQueue:
    """
    Gate that limits how many task runners execute at once.

    The queue decides WHEN a runner is invoked. The runner decides WHAT
    happens. Up to ``max_parallel`` runners run concurrently; later
    submissions wait in arrival order and are admitted one at a time as
    running tasks settle, whether they succeed or fail.

    All bookkeeping happens on the event loop thread and never awaits, so
    releasing a slot and admitting the next task is atomic with respect to
    other submissions.

    Example:
        queue = AdmissionQueue(max_parallel=4)

        async def compile_one(request):
            ...

        futures = [queue.submit(compile_one, r) for r in requests]
        await asyncio.gather(*futures)
    """

    def __init__(self, max_parallel: int = MAX_PARALLEL) -> None:
        if max_parallel < 1:
            raise ValueError(f"max_parallel must be at least 1, got {max_parallel}")
        self._max_parallel = max_parallel

        self._pending: deque[CompileTask] = deque()  # Waiting, FIFO
        self._running: dict[str, CompileTask] = {}   # Admitted, not settled
        self._jobs: dict[str, asyncio.Future] = {}
        self._in_flight = 0

        self._drain_waiters: list[asyncio.Future] = []

        # Callbacks
        self._on_start_callback: Callable | None = None
        self._on_complete_callback: Callable | None = None
        self._on_failure_callback: Callable | None = None

    # --- Introspection ---

    @property
    def max_parallel(self) -> int:
        return self._max_parallel

    @property
    def in_flight(self) -> int:
        """Number of runners currently executing."""
        return self._in_flight

    @property
    def pending(self) -> tuple[CompileTask, ...]:
        """Tasks waiting for a slot, in admission order."""
        return tuple(self._pending)

    @property
    def running(self) -> tuple[CompileTask, ...]:
        return tuple(self._running.values())

    @property
    def idle(self) -> bool:
        return self._in_flight == 0 and not self._pending

    # --- Event Callbacks ---

    def on_start(self, func):
        """
        Decorator to register the start callback.

        Called with (task) when a task is admitted and its runner invoked.
        """
        self._on_start_callback = func
        return func

    def on_complete(self, func):
        """
        Decorator to register the completion callback.

        Called with (task, result, duration) after a runner succeeds.
        """
        self._on_complete_callback = func
        return func

    def on_failure(self, func):
        """
        Decorator to register the failure callback.

        Called with (task, error) after a runner raises.
        """
        self._on_failure_callback = func
        return func

    # --- Submission ---

    def submit(self, runner: Callable[[Any], Any], payload: Any = None) -> asyncio.Future:
        """
        Submit a runner for execution once a slot is free.

        Args:
            runner: Coroutine function or plain callable taking ``payload``.
                Plain callables run in a worker thread.
            payload: Opaque value handed to the runner.

        Returns:
            Future settling with the runner's own result or exception.
            Waiting for a slot never settles it.

        Must be called from inside a running event loop.
        """
        loop = asyncio.get_running_loop()
        task = CompileTask(
            id=uuid.uuid4().hex[:12],
            runner=runner,
            payload=payload,
            future=loop.create_future(),
            created_at=time.time(),
        )

        if self._in_flight < self._max_parallel and not self._pending:
            self._start(task)
        else:
            task.state = TaskState.PENDING
            self._pending.append(task)
            logger.debug(
                "Queued task %s (%d pending, %d in flight)",
                task.id, len(self._pending), self._in_flight,
            )
        return task.future

    async def drain(self) -> None:
        """Wait until nothing is pending or running."""
        if self.idle:
            return
        waiter = asyncio.get_running_loop().create_future()
        self._drain_waiters.append(waiter)
        await waiter

    def cancel(self) -> int:
        """
        Cancel every pending and running task.

        Pending tasks are dropped and their futures cancelled. Running jobs
        receive a cancellation and release their slots as they settle, so
        ``await drain()`` afterwards waits for them to unwind.

        Returns:
            Number of tasks cancelled.
        """
        count = 0
        while self._pending:
            task = self._pending.popleft()
            task.state = TaskState.CANCELLED
            task.completed_at = time.time()
            if task.future is not None and not task.future.done():
                task.future.cancel()
            count += 1

        for job in list(self._jobs.values()):
            if not job.done():
                job.cancel()
                count += 1

        if count:
            logger.info("Cancelled %d task(s)", count)
        if self.idle:
            self._wake_drain_waiters()
        return count

    # --- Admission / Release ---

    def _start(self, task: CompileTask) -> None:
        self._in_flight += 1
        task.state = TaskState.RUNNING
        task.started_at = time.time()
        self._running[task.id] = task
        logger.debug("Admitted task %s (%d in flight)", task.id, self._in_flight)

        self._emit(self._on_start_callback, task)

        job = asyncio.ensure_future(self._invoke(task))
        self._jobs[task.id] = job
        job.add_done_callback(functools.partial(self._on_settled, task))

    async def _invoke(self, task: CompileTask) -> Any:
        if inspect.iscoroutinefunction(task.runner):
            return await task.runner(task.payload)
        return await asyncio.to_thread(task.runner, task.payload)

    def _on_settled(self, task: CompileTask, job: asyncio.Future) -> None:
        """Release the slot, admit the next task, then settle the caller."""
        self._in_flight -= 1
        self._running.pop(task.id, None)
        self._jobs.pop(task.id, None)
        task.completed_at = time.time()
        duration = task.completed_at - (task.started_at or task.completed_at)

        error: BaseException | None = None
        result: Any = None
        if job.cancelled():
            task.state = TaskState.CANCELLED
        else:
            error = job.exception()
            if error is not None:
                task.state = TaskState.FAILED
                task.error = str(error)
                self._emit(self._on_failure_callback, task, error)
            else:
                result = job.result()
                task.state = TaskState.SUCCEEDED
                self._emit(self._on_complete_callback, task, result, duration)

        self._try_admit_next()

        future = task.future
        if future is not None and not future.done():
            if task.state is TaskState.CANCELLED:
                future.cancel()
            elif error is not None:
                future.set_exception(error)
            else:
                future.set_result(result)

        if self.idle:
            self._wake_drain_waiters()

    def _try_admit_next(self) -> None:
        while self._pending and self._in_flight < self._max_parallel:
            task = self._pending.popleft()
            if task.future is not None and task.future.done():
                # Caller cancelled while the task was still waiting
                task.state = TaskState.CANCELLED
                task.completed_at = time.time()
                continue
            self._start(task)

    def _wake_drain_waiters(self) -> None:
        waiters, self._drain_waiters = self._drain_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    def _emit(self, callback: Callable | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Queue callback %r raised", callback)
