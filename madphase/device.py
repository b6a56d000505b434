"""Execution of batched element-wise work on the CPU."""

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Tuple

from madphase.tensor import DataType, Tensor

MIN_BATCH_SIZE = 64


def _default_thread_count() -> int:
    return os.cpu_count() or 1


def job_count_and_size(
    batch_size: int,
    thread_count: Optional[int] = None,
    single_job: bool = False,
    simd_vec_size: int = 1,
) -> Tuple[int, int]:
    """Split a batch into jobs for a pool of ``thread_count`` threads.

    Small batches get one job per ``MIN_BATCH_SIZE`` events; large batches get
    one job per thread. Job sizes are rounded up to a multiple of
    ``simd_vec_size``. Returns ``(job_count, job_size)``.
    """
    if batch_size < 0:
        raise ValueError("batch size must be non-negative")
    if simd_vec_size < 1:
        raise ValueError("vector size must be positive")
    if batch_size == 0:
        return 0, 0
    if single_job:
        return 1, batch_size
    if thread_count is None:
        thread_count = _default_thread_count()
    if thread_count < 1:
        raise ValueError("thread count must be positive")

    if batch_size < thread_count * MIN_BATCH_SIZE:
        job_count = -(-batch_size // MIN_BATCH_SIZE)
    else:
        job_count = thread_count
    job_size = -(-batch_size // job_count)
    job_size = -(-job_size // simd_vec_size) * simd_vec_size
    return job_count, job_size


def _job_ranges(batch_size: int, job_count: int, job_size: int) -> List[Tuple[int, int]]:
    """``(count, offset)`` pairs covering ``[0, batch_size)``."""
    ranges = []
    for offset in range(0, job_count * job_size, job_size) if job_size else ():
        if offset >= batch_size:
            break
        ranges.append((min(job_size, batch_size - offset), offset))
    return ranges


class CpuDevice:
    """CPU device for tensor operations and batch loops.

    By default a batch loop runs as a single call on the calling thread. With
    ``concurrent=True`` the batch is split into jobs that run on a thread pool
    and the call returns once all of them have finished.
    """

    def __init__(
        self,
        thread_count: Optional[int] = None,
        concurrent: bool = False,
        simd_vec_size: int = 1,
    ):
        self.thread_count = thread_count if thread_count is not None else _default_thread_count()
        if self.thread_count < 1:
            raise ValueError("thread count must be positive")
        self.concurrent = concurrent
        self.simd_vec_size = simd_vec_size

    def tensor_copy(self, source: Tensor, target: Tensor) -> None:
        """Copy ``source`` into ``target``; both must share an integer or float dtype."""
        if source.dtype is not target.dtype or source.dtype not in (
            DataType.dt_float,
            DataType.dt_int,
        ):
            raise TypeError("invalid dtype in copy")
        target.copy_from(source)

    def tensor_zero(self, tensor: Tensor) -> None:
        """Set every element of ``tensor`` to zero."""
        if tensor.dtype not in (DataType.dt_float, DataType.dt_int):
            raise TypeError("invalid dtype in zero")
        tensor.zero()

    def tensor_add(self, source: Tensor, target: Tensor) -> None:
        """Add the float tensor ``source`` to ``target`` in place."""
        if source.dtype is not DataType.dt_float or target.dtype is not DataType.dt_float:
            raise TypeError("invalid dtype in add")
        target.add(source)

    def foreach(
        self,
        batch_size: int,
        func: Callable[[int, int], None],
        single_job: bool = False,
    ) -> None:
        """Call ``func(count, offset)`` over chunks covering the whole batch."""
        if not self.concurrent:
            func(batch_size, 0)
            return
        job_count, job_size = job_count_and_size(
            batch_size, self.thread_count, single_job, self.simd_vec_size
        )
        ranges = _job_ranges(batch_size, job_count, job_size)
        if len(ranges) <= 1:
            for count, offset in ranges:
                func(count, offset)
            return
        with ThreadPoolExecutor(max_workers=self.thread_count) as pool:
            futures = [pool.submit(func, count, offset) for count, offset in ranges]
            for future in futures:
                future.result()