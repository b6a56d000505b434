"""Batch operations that select, gather, scatter, sample and histogram events."""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from madphase.tensor import MAX_DIMENSIONS, DataType, Tensor


def _tensor(value) -> Tensor:
    return value if isinstance(value, Tensor) else Tensor.from_array(value)


def _float_array(value) -> np.ndarray:
    if isinstance(value, Tensor):
        value = value.numpy()
    return np.asarray(value, dtype=np.float64)


def _int_array(value) -> np.ndarray:
    if isinstance(value, Tensor):
        if value.dtype is not DataType.dt_int:
            raise TypeError("expected an integer tensor")
        value = value.numpy()
    arr = np.asarray(value)
    if arr.size and arr.dtype.kind not in "iub":
        raise TypeError("expected integer values")
    return arr.astype(np.int64)


def _rng(rng: Optional[np.random.Generator]) -> np.random.Generator:
    return rng if rng is not None else np.random.default_rng()


def _batch_weights(weights, batch_size: int) -> np.ndarray:
    w = _float_array(weights).reshape(-1)
    if w.shape[0] == 1 and batch_size != 1:
        return np.broadcast_to(w, (batch_size,))
    if w.shape[0] != batch_size:
        raise ValueError("invalid batch size")
    return w


def _check_indices(indices: np.ndarray, length: int) -> None:
    if indices.ndim != 1:
        raise ValueError("indices must be one-dimensional")
    if indices.size and (indices.min() < 0 or indices.max() >= length):
        raise IndexError("index out of range")


def _check_dimensions(tensor: Tensor) -> None:
    if not 1 <= tensor.ndim <= MAX_DIMENSIONS:
        raise ValueError("The number of dimensions must be between 1 and 4")


def nonzero(input) -> Tensor:
    """Indices of the events whose value is non-zero, in increasing order."""
    arr = _float_array(input)
    if arr.ndim != 1:
        raise ValueError("nonzero expects a one-dimensional tensor")
    return Tensor.from_array(np.flatnonzero(arr != 0.0).astype(np.int64))


def batch_gather(indices, values) -> Tensor:
    """Events of ``values`` picked by ``indices`` along the batch axis."""
    values = _tensor(values)
    _check_dimensions(values)
    idx = _int_array(indices)
    _check_indices(idx, values.size(0))
    return Tensor.from_array(values.numpy()[idx])


def batch_scatter(indices, target, source) -> Tensor:
    """Copy of ``target`` with the events at ``indices`` replaced by ``source``."""
    target = _tensor(target)
    source = _tensor(source)
    _check_dimensions(target)
    if source.dtype is not target.dtype:
        raise TypeError("invalid dtype in batch_scatter")
    idx = _int_array(indices)
    _check_indices(idx, target.size(0))
    if source.shape != (idx.shape[0],) + target.shape[1:]:
        raise ValueError("source shape does not match indices and target")
    output = target.copy()
    output.numpy()[idx] = source.numpy()
    return output


def random_uniform(batch_size: int, dim: int, rng: Optional[np.random.Generator] = None) -> Tensor:
    """Uniform random numbers in [0, 1) with shape (batch_size, dim)."""
    if batch_size < 0 or dim < 0:
        raise ValueError("sizes must be non-negative")
    return Tensor.from_array(_rng(rng).random((batch_size, dim)))


def unweight(
    weights, max_weight, rng: Optional[np.random.Generator] = None
) -> Tuple[Tensor, Tensor]:
    """Accept-reject unweighting.

    An event with non-zero weight ``w`` is kept when ``w > u * w_max`` for a
    uniform ``u``. Returns the indices of kept events and their weights after
    unweighting, ``max(w, w_max)``.
    """
    w = _float_array(weights).reshape(-1)
    batch_size = w.shape[0]
    w_max = _batch_weights(max_weight, batch_size)
    candidates = np.flatnonzero(w != 0.0)
    draws = _rng(rng).random(candidates.shape[0])
    accepted = candidates[w[candidates] > draws * w_max[candidates]]
    uw_weights = np.maximum(w[accepted], w_max[accepted])
    return (
        Tensor.from_array(accepted.astype(np.int64)),
        Tensor.from_array(uw_weights.astype(np.float64)),
    )


def vegas_histogram(input, weights, bin_count: int) -> Tuple[Tensor, Tensor]:
    """Per-dimension histograms of squared weights and event counts.

    ``input`` has shape (batch, dims) with values in [0, 1). Returns tensors of
    shape (1, dims, bin_count); values outside the bins are skipped.
    """
    if bin_count < 1:
        raise ValueError("bin count must be positive")
    x = _float_array(input)
    if x.ndim != 2:
        raise ValueError("input must have shape (batch, dims)")
    batch_size, n_dims = x.shape
    w = _batch_weights(weights, batch_size)

    values = np.zeros((1, n_dims, bin_count), dtype=np.float64)
    counts = np.zeros((1, n_dims, bin_count), dtype=np.int64)
    scaled = x * bin_count
    valid = np.isfinite(scaled)
    bins = np.where(valid, np.trunc(np.where(valid, scaled, -1.0)), -1.0).astype(np.int64)
    in_range = valid & (bins >= 0) & (bins < bin_count)
    w2 = w * w
    for i_dim, (dim_bins, dim_mask) in enumerate(zip(bins.T, in_range.T)):
        selected = dim_bins[dim_mask]
        np.add.at(values[0, i_dim], selected, w2[dim_mask])
        np.add.at(counts[0, i_dim], selected, 1)
    return Tensor.from_array(values), Tensor.from_array(counts)


def discrete_histogram(input, weights, option_count: int) -> Tuple[Tensor, Tensor]:
    """Histogram of squared weights and counts over discrete options.

    Returns tensors of shape (1, option_count).
    """
    if option_count < 1:
        raise ValueError("option count must be positive")
    idx = _int_array(input).reshape(-1)
    _check_indices(idx, option_count)
    w = _batch_weights(weights, idx.shape[0])
    values = np.zeros((1, option_count), dtype=np.float64)
    counts = np.zeros((1, option_count), dtype=np.int64)
    np.add.at(values[0], idx, w * w)
    np.add.at(counts[0], idx, 1)
    return Tensor.from_array(values), Tensor.from_array(counts)