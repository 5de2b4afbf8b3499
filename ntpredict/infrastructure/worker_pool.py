"""
Worker pool for per-sample work in the NTP prediction pipeline.

Chunks of work are mapped onto threads or processes. Results come back in
chunk order whatever the completion order, and a chunk that raises or misses
the deadline is reported as a WorkerFailure instead of aborting the batch.
A deadline is only enforced on the process backend, where workers still
running at the deadline are terminated.
"""

from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor, wait
from typing import Any, Callable, List, Optional, Sequence, Union

import numpy as np

from ntpredict.domain.exceptions import ConfigurationError, WorkerFailure
from ntpredict.domain.models import WORKER_BACKENDS
from ntpredict.infrastructure.logger import Logger


def split_indices(n_items: int, n_chunks: int) -> List[np.ndarray]:
    """Split range(n_items) into at most n_chunks contiguous, non-empty slices"""
    if n_items == 0:
        return []
    return list(np.array_split(np.arange(n_items), min(n_chunks, n_items)))


class WorkerPool:
    """Maps a task over chunks with failure isolation and an optional deadline"""

    def __init__(
        self,
        worker_count: int = 1,
        backend: str = "process",
        timeout: Optional[float] = None,
    ):
        if worker_count < 1:
            raise ConfigurationError(f"worker_count must be positive, got {worker_count}")
        if backend not in WORKER_BACKENDS:
            raise ConfigurationError(
                f"Unknown worker backend '{backend}', expected one of {WORKER_BACKENDS}"
            )
        if timeout is not None and backend != "process":
            raise ConfigurationError(
                "worker_timeout requires the 'process' backend; threads cannot be stopped"
            )
        self.worker_count = worker_count
        self.backend = backend
        self.timeout = timeout
        self.logger = Logger()

    def map(
        self, chunks: Sequence[Any], task: Callable[[Any], Any]
    ) -> List[Union[Any, WorkerFailure]]:
        """
        Run task on every chunk.

        Args:
            chunks: Independent units of work
            task: Callable applied to each chunk; must be picklable for the
                process backend

        Returns:
            List aligned with chunks holding either the task result or a
            WorkerFailure
        """
        if not chunks:
            return []

        if self.worker_count == 1 and self.timeout is None:
            self.logger.log_step("Worker pool", f"Running {len(chunks)} chunks inline")
            return [self._run_inline(i, chunk, task) for i, chunk in enumerate(chunks)]

        self.logger.log_step(
            "Worker pool",
            f"Dispatching {len(chunks)} chunks to {self.worker_count} "
            f"{self.backend} workers",
        )
        executor_class = (
            ProcessPoolExecutor if self.backend == "process" else ThreadPoolExecutor
        )
        executor = executor_class(max_workers=self.worker_count)
        results: List[Union[Any, WorkerFailure]] = [None] * len(chunks)
        not_done = set()
        try:
            futures = {executor.submit(task, chunk): i for i, chunk in enumerate(chunks)}
            done, not_done = wait(futures, timeout=self.timeout)

            for future in done:
                index = futures[future]
                try:
                    results[index] = future.result()
                except Exception as e:
                    results[index] = self._failure(index, f"{type(e).__name__}: {e}")

            for future in not_done:
                future.cancel()
                index = futures[future]
                results[index] = self._failure(
                    index, f"did not finish within {self.timeout} seconds"
                )
        finally:
            if not_done:
                self._terminate_workers(executor)
            executor.shutdown(wait=not not_done, cancel_futures=True)

        return results

    def _terminate_workers(self, executor: ProcessPoolExecutor) -> None:
        """Stop worker processes still busy after the deadline"""
        # Left alive they would be joined at interpreter exit
        processes = [
            process
            for process in (getattr(executor, "_processes", None) or {}).values()
            if process.is_alive()
        ]
        for process in processes:
            process.terminate()
        self.logger.log_warning(
            f"Terminated {len(processes)} worker processes after the "
            f"{self.timeout} second deadline"
        )

    def _run_inline(
        self, index: int, chunk: Any, task: Callable[[Any], Any]
    ) -> Union[Any, WorkerFailure]:
        try:
            return task(chunk)
        except Exception as e:
            return self._failure(index, f"{type(e).__name__}: {e}")

    def _failure(self, index: int, reason: str) -> WorkerFailure:
        failure = WorkerFailure(index, reason)
        self.logger.log_worker_failure(failure)
        return failure
