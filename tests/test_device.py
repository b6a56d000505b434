import threading

import numpy as np
import pytest

from madphase.device import CpuDevice, job_count_and_size
from madphase.tensor import DataType, Tensor


def test_job_split_empty_batch():
    assert job_count_and_size(0, 8) == (0, 0)


def test_job_split_single_job():
    assert job_count_and_size(1000, 8, single_job=True) == (1, 1000)


def test_job_split_large_batch_uses_all_threads():
    count, size = job_count_and_size(100000, 8)
    assert count == 8
    assert count * size >= 100000


@pytest.mark.parametrize("batch", [1, 63, 64, 65, 100, 511, 512, 5000])
@pytest.mark.parametrize("vec", [1, 2, 4])
def test_job_split_invariants(batch, vec):
    count, size = job_count_and_size(batch, 8, False, vec)
    assert 1 <= count <= 8
    assert size % vec == 0
    assert count * size >= batch
    assert (count - 1) * size < batch


def test_job_split_rejects_bad_threads():
    with pytest.raises(ValueError):
        job_count_and_size(10, 0)


def test_copy_float_and_int():
    device = CpuDevice()
    src = Tensor.from_array([[1.5, 2.5], [3.5, 4.5]])
    dst = Tensor(DataType.dt_float, (2, 2))
    device.tensor_copy(src, dst)
    np.testing.assert_array_equal(dst.numpy(), src.numpy())

    isrc = Tensor.from_array([3, 1, 2])
    idst = Tensor(DataType.dt_int, (3,))
    device.tensor_copy(isrc, idst)
    np.testing.assert_array_equal(idst.numpy(), [3, 1, 2])


def test_copy_broadcasts_batch_of_one():
    device = CpuDevice()
    src = Tensor.from_array([[1.0, 2.0]])
    dst = Tensor(DataType.dt_float, (3, 2))
    device.tensor_copy(src, dst)
    np.testing.assert_array_equal(dst.numpy(), np.tile([[1.0, 2.0]], (3, 1)))


def test_copy_mismatched_dtype_raises():
    device = CpuDevice()
    with pytest.raises(TypeError):
        device.tensor_copy(Tensor.from_array([1, 2]), Tensor(DataType.dt_float, (2,)))


def test_zero():
    device = CpuDevice()
    t = Tensor.from_array([[1.0, -2.0], [3.0, 4.0]])
    device.tensor_zero(t)
    assert not t.numpy().any()


def test_add():
    device = CpuDevice()
    src = Tensor.from_array([1.0, 2.0, 3.0])
    dst = Tensor.from_array([10.0, 20.0, 30.0])
    device.tensor_add(src, dst)
    np.testing.assert_array_equal(dst.numpy(), [11.0, 22.0, 33.0])
    np.testing.assert_array_equal(src.numpy(), [1.0, 2.0, 3.0])


def test_add_int_raises():
    device = CpuDevice()
    with pytest.raises(TypeError):
        device.tensor_add(Tensor.from_array([1]), Tensor.from_array([2]))


def test_foreach_sequential_single_call():
    calls = []
    CpuDevice().foreach(500, lambda count, offset: calls.append((count, offset)))
    assert calls == [(500, 0)]


@pytest.mark.parametrize("batch", [1, 70, 1000, 4097])
def test_foreach_concurrent_covers_batch_once(batch):
    device = CpuDevice(thread_count=4, concurrent=True)
    hits = np.zeros(batch, dtype=np.int64)
    lock = threading.Lock()

    def work(count, offset):
        with lock:
            hits[offset:offset + count] += 1

    device.foreach(batch, work)
    assert (hits == 1).all()


def test_foreach_concurrent_single_job():
    calls = []
    CpuDevice(thread_count=4, concurrent=True).foreach(
        1000, lambda c, o: calls.append((c, o)), single_job=True
    )
    assert calls == [(1000, 0)]


def test_foreach_concurrent_propagates_errors():
    def work(count, offset):
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        CpuDevice(thread_count=2, concurrent=True).foreach(1000, work)