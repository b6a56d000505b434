"""Batched tensors with an explicit data type, backed by numpy arrays."""

from __future__ import annotations

import enum
import math
from typing import Optional, Sequence

import numpy as np

MAX_DIMENSIONS = 4


class DataType(enum.Enum):
    """Element type of a tensor."""

    dt_int = "int"
    dt_float = "float"

    @property
    def numpy_dtype(self) -> np.dtype:
        return np.dtype(np.int64) if self is DataType.dt_int else np.dtype(np.float64)


def _check_shape(shape: Sequence[int]) -> tuple:
    shape = tuple(int(s) for s in shape)
    if len(shape) > MAX_DIMENSIONS:
        raise ValueError("maximum dimension exceeded")
    if any(s < 0 for s in shape):
        raise ValueError("tensor sizes must be non-negative")
    return shape


class Tensor:
    """A tensor whose first axis is the batch axis.

    Slices share memory with the tensor they were taken from; ``copy`` and
    ``contiguous`` (when a copy is needed) give independent storage.
    """

    __slots__ = ("_dtype", "_array")

    def __init__(self, dtype: DataType, shape: Sequence[int]):
        if not isinstance(dtype, DataType):
            raise TypeError(f"expected a DataType, got {dtype!r}")
        shape = _check_shape(shape)
        self._dtype = dtype
        self._array = np.zeros(shape, dtype=dtype.numpy_dtype)

    @classmethod
    def _wrap(cls, dtype: DataType, array: np.ndarray) -> "Tensor":
        tensor = cls.__new__(cls)
        tensor._dtype = dtype
        tensor._array = array
        return tensor

    @classmethod
    def from_array(cls, array) -> "Tensor":
        """Build a tensor holding a copy of ``array`` (integers or floats)."""
        arr = np.asarray(array)
        if arr.dtype.kind in "iub":
            dtype = DataType.dt_int
        elif arr.dtype.kind == "f":
            dtype = DataType.dt_float
        else:
            raise TypeError(f"unsupported array dtype {arr.dtype}")
        _check_shape(arr.shape)
        return cls._wrap(dtype, np.array(arr, dtype=dtype.numpy_dtype, copy=True))

    @property
    def dtype(self) -> DataType:
        return self._dtype

    @property
    def shape(self) -> tuple:
        return self._array.shape

    @property
    def ndim(self) -> int:
        return self._array.ndim

    def size(self, axis: int) -> int:
        """Length of the tensor along ``axis``."""
        if not 0 <= axis < self._array.ndim:
            raise IndexError(f"axis {axis} out of range for {self._array.ndim} dimensions")
        return self._array.shape[axis]

    def dtype_size(self) -> int:
        """Bytes per element."""
        return self._array.itemsize

    def byte_size(self) -> int:
        """Bytes needed for all elements of the tensor."""
        return self.dtype_size() * math.prod(self._array.shape)

    def is_contiguous(self) -> bool:
        return bool(self._array.flags.c_contiguous)

    def index_value(self) -> int:
        """The first element of an integer tensor, used as an index or count."""
        if self._dtype is not DataType.dt_int:
            raise TypeError("index value requires an integer tensor")
        if self._array.size == 0:
            raise ValueError("empty tensor")
        return int(self._array.reshape(-1)[0])

    def slice(self, axis: int, start: int, stop: int) -> "Tensor":
        """View of the range ``[start, stop)`` along ``axis``, sharing memory."""
        length = self.size(axis)
        if not 0 <= start <= stop <= length:
            raise IndexError(f"invalid slice [{start}, {stop}) for axis of size {length}")
        index = [slice(None)] * self._array.ndim
        index[axis] = slice(start, stop)
        return Tensor._wrap(self._dtype, self._array[tuple(index)])

    def copy(self) -> "Tensor":
        """Independent contiguous copy."""
        return Tensor._wrap(self._dtype, np.ascontiguousarray(self._array).copy())

    def contiguous(self, batch_size: Optional[int] = None) -> "Tensor":
        """Contiguous tensor with the given batch size.

        A tensor with batch size one is broadcast to ``batch_size``; any other
        mismatch is an error. Without ``batch_size`` only contiguity is ensured.
        """
        if batch_size is None or self.size(0) == batch_size:
            return self if self.is_contiguous() else self.copy()
        if self.size(0) == 1:
            target_shape = (batch_size,) + self._array.shape[1:]
            expanded = np.broadcast_to(self._array, target_shape)
            return Tensor._wrap(self._dtype, np.array(expanded, copy=True))
        raise ValueError("invalid batch size")

    def zero(self) -> None:
        """Set all elements to zero in place."""
        self._array[...] = 0

    def _check_same_dtype(self, source: "Tensor", operation: str) -> None:
        if source._dtype is not self._dtype:
            raise TypeError(f"invalid dtype in {operation}")

    def add(self, source: "Tensor") -> None:
        """Add ``source`` in place; a batch size of one is broadcast."""
        self._check_same_dtype(source, "add")
        self._array += source._array

    def copy_from(self, source: "Tensor") -> None:
        """Overwrite elements with those of ``source``; a batch size of one is broadcast."""
        self._check_same_dtype(source, "copy")
        self._array[...] = source._array

    def numpy(self) -> np.ndarray:
        """The underlying array; writing to it changes the tensor."""
        return self._array

    def __repr__(self) -> str:
        return f"Tensor(dtype={self._dtype.name}, shape={self.shape})"