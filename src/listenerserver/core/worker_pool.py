"""
=============================================================================
WORKER POOL
=============================================================================

The accept loop never handles a request itself. It submits each accepted
context here and goes straight back to accept().

=============================================================================
THREAD-PER-TASK SEMANTICS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   accept thread                                                      │
    │        │ submit(handle, ctx1), submit(handle, ctx2), ...            │
    │        ▼                                                             │
    │   ┌──────────────────────────────┐                                  │
    │   │ ctx1 │ ctx2 │ ctx3 │ ...     │   FIFO, unbounded queue.Queue    │
    │   └──────────────────────────────┘                                  │
    │        │          │          │                                       │
    │        ▼          ▼          ▼                                       │
    │   Worker-0    Worker-1    Worker-2   (one more whenever unfinished  │
    │                                       tasks outnumber workers)       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

- Tasks LEAVE the queue in submission order; they may FINISH in any order.
- max_workers=None means no cap: every queued task gets a thread.
- Idle workers above min_workers retire after idle_timeout seconds.
- Workers are daemon threads: an aborted server never blocks process exit.

=============================================================================
"""

import threading
import queue
import time
import logging
from typing import Callable, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """A deferred call: func(*args, **kwargs)."""
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """
    Worker thread that processes tasks from the pool's queue.

    Exits on a poison pill (None) or when the pool lets it retire after
    idle_timeout seconds without work.
    """

    def __init__(
        self,
        pool: "WorkerPool",
        task_queue: queue.Queue,
        worker_id: int,
        idle_timeout: float = 60.0
    ):
        super().__init__(name=f"Worker-{worker_id}", daemon=True)

        self.pool = pool
        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout

        self.state = WorkerState.IDLE
        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while True:
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                if self.pool._retire(self):
                    break
                continue

            try:
                if task is None:
                    break
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        """Run one task; a failing task never takes the worker down."""
        self.state = WorkerState.BUSY
        start_time = time.time()

        try:
            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1
            self.pool._record(succeeded=True)
            logger.debug(
                f"Worker {self.worker_id} completed task in {time.time() - start_time:.3f}s "
                f"(queued {start_time - task.submitted_at:.3f}s)"
            )
        except Exception as e:
            self.tasks_failed += 1
            self.pool._record(succeeded=False)
            logger.exception(
                f"Worker {self.worker_id} task failed after {time.time() - start_time:.3f}s: {e}"
            )
        finally:
            self.state = WorkerState.IDLE


class WorkerPool:
    """
    Pool of worker threads fed from one FIFO queue.

    Args:
        min_workers: Workers kept alive while idle.
        max_workers: Upper bound on threads; None for thread-per-task.
        idle_timeout: Seconds an idle worker waits before it may retire.
    """

    def __init__(
        self,
        min_workers: int = 0,
        max_workers: Optional[int] = None,
        idle_timeout: float = 60.0
    ):
        if max_workers is not None and max_workers < max(min_workers, 1):
            raise ValueError("max_workers must be >= max(min_workers, 1)")

        self.min_workers = min_workers
        self.max_workers = max_workers
        self.idle_timeout = idle_timeout

        self._task_queue: queue.Queue[Optional[Task]] = queue.Queue()
        self._workers: list[Worker] = []
        self._lock = threading.Lock()
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0
        self._completed = 0
        self._failed = 0

    @property
    def is_running(self) -> bool:
        return self._started and not self._shutdown

    def start(self):
        """Start the pool. A no-op if it is already running."""
        with self._lock:
            if self._started:
                return

            # A fresh queue: workers of a previous run keep draining the old one
            self._task_queue = queue.Queue()
            self._shutdown = False
            self._started = True

            for _ in range(self.min_workers):
                self._add_worker()

        logger.debug(f"Worker pool started (min={self.min_workers}, max={self.max_workers or 'unbounded'})")

    def _add_worker(self) -> Worker:
        """Spawn one worker. Caller holds _lock."""
        worker = Worker(
            pool=self,
            task_queue=self._task_queue,
            worker_id=self._next_worker_id,
            idle_timeout=self.idle_timeout,
        )
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def _retire(self, worker: Worker) -> bool:
        """Let an idle worker exit if the pool can spare it."""
        with self._lock:
            if worker not in self._workers:
                return True
            if len(self._workers) <= self.min_workers:
                return False
            # A task submitted since get() timed out may be counting on us
            if self._task_queue.unfinished_tasks >= len(self._workers):
                return False
            self._workers.remove(worker)
            return True

    def _record(self, succeeded: bool):
        with self._lock:
            if succeeded:
                self._completed += 1
            else:
                self._failed += 1

    def submit(self, func: Callable[..., Any], args: tuple = (), kwargs: Optional[dict] = None):
        """
        Queue func(*args, **kwargs) for execution.

        Raises:
            RuntimeError: If the pool is not running.
        """
        with self._lock:
            if not self._started or self._shutdown:
                raise RuntimeError("Worker pool is not running")

            self._task_queue.put(Task(func=func, args=args, kwargs=kwargs or {}))
            self._maybe_scale_up()

    def _maybe_scale_up(self):
        """
        Add a worker while unfinished tasks outnumber workers. Caller holds _lock.

        unfinished_tasks counts queued AND running tasks (put() minus
        task_done()), so it is exact even while a worker sits between
        get() and flipping its state to BUSY.
        """
        if self._task_queue.unfinished_tasks <= len(self._workers):
            return
        if self.max_workers is not None and len(self._workers) >= self.max_workers:
            return
        self._add_worker()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop the pool.

        Args:
            wait: Join the workers (queued tasks still run first).
                  With wait=False the workers drain in the background.
            timeout: Upper bound on the whole join when waiting.
        """
        with self._lock:
            if not self._started:
                return
            self._shutdown = True
            workers = list(self._workers)
            self._workers.clear()
            self._started = False

            # Poison pills go behind any queued tasks
            for _ in workers:
                self._task_queue.put(None)

        logger.debug(f"Worker pool shutting down ({len(workers)} workers, wait={wait})")

        if wait:
            deadline = None if timeout is None else time.time() + timeout
            for worker in workers:
                remaining = None if deadline is None else max(0.0, deadline - time.time())
                worker.join(timeout=remaining)
                if worker.is_alive():
                    logger.warning(f"Worker {worker.worker_id} still busy after shutdown timeout")

    @property
    def worker_count(self) -> int:
        return len(self._workers)

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def queue_size(self) -> int:
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        """Worker and task counts, for logging and tests."""
        with self._lock:
            workers = list(self._workers)
            completed = self._completed
            failed = self._failed
        return {
            "workers": {
                "total": len(workers),
                "busy": sum(1 for w in workers if w.state == WorkerState.BUSY),
            },
            "tasks": {
                "queued": self._task_queue.qsize(),
                "completed": completed,
                "failed": failed,
            },
        }
