"""Dense linear layers on batches, with the gradients needed for training."""

from __future__ import annotations

from typing import Tuple

import numpy as np

from madphase.tensor import DataType, Tensor


def _float_array(value, name: str) -> np.ndarray:
    if isinstance(value, Tensor):
        if value.dtype is not DataType.dt_float:
            raise TypeError(f"{name} must be a float tensor")
        value = value.numpy()
    arr = np.asarray(value)
    if arr.size and arr.dtype.kind not in "fiu":
        raise TypeError(f"{name} must hold numbers")
    return arr.astype(np.float64)


def _input_matrix(input) -> np.ndarray:
    x = _float_array(input, "input")
    if x.ndim != 2:
        raise ValueError("input must have shape (batch, dims_in)")
    return x


def _weight_matrix(weight) -> Tuple[np.ndarray, tuple]:
    """Weight as a (dims_out, dims_in) matrix, with the shape it was given in.

    The weight may carry a leading batch axis of size one.
    """
    w = _float_array(weight, "weight")
    if w.ndim == 3:
        if w.shape[0] != 1:
            raise ValueError("weight batch size must be one")
        return w[0], w.shape
    if w.ndim == 2:
        return w, w.shape
    raise ValueError("weight must have shape (dims_out, dims_in) or (1, dims_out, dims_in)")


def _bias_row(bias, dims_out: int) -> np.ndarray:
    b = _float_array(bias, "bias").reshape(-1)
    if b.shape[0] != dims_out:
        raise ValueError("bias size does not match weight output dimension")
    return b


def _output_grad_matrix(output_grad, batch_size: int, dims_out: int) -> np.ndarray:
    g = _float_array(output_grad, "output gradient")
    if g.shape != (batch_size, dims_out):
        raise ValueError("output gradient has the wrong shape")
    return g


def matmul(input, weight, bias) -> Tensor:
    """Affine layer: ``output[b, o] = sum_i input[b, i] * weight[o, i] + bias[o]``.

    ``input`` has shape (batch, dims_in), ``weight`` shape (dims_out, dims_in)
    optionally with a leading axis of size one, ``bias`` holds dims_out values.
    Returns a tensor of shape (batch, dims_out).
    """
    x = _input_matrix(input)
    w, _ = _weight_matrix(weight)
    dims_out, dims_in = w.shape
    if x.shape[1] != dims_in:
        raise ValueError("input dimension does not match weight")
    b = _bias_row(bias, dims_out)
    output = np.empty((x.shape[0], dims_out), dtype=np.float64)
    output[...] = b
    if x.shape[0]:
        output += x @ w.T
    return Tensor.from_array(output)


def matmul_backward(input, weight, output_grad) -> Tuple[Tensor, Tensor, Tensor]:
    """Gradients of :func:`matmul` with respect to input, weight and bias.

    Returns ``(input_grad, weight_grad, bias_grad)``; the weight gradient has the
    shape the weight was given in and the bias gradient has shape (1, dims_out).
    """
    x = _input_matrix(input)
    w, weight_shape = _weight_matrix(weight)
    dims_out, dims_in = w.shape
    batch_size = x.shape[0]
    if x.shape[1] != dims_in:
        raise ValueError("input dimension does not match weight")
    g = _output_grad_matrix(output_grad, batch_size, dims_out)

    if batch_size == 0:
        input_grad = np.zeros((0, dims_in), dtype=np.float64)
        weight_grad = np.zeros((dims_out, dims_in), dtype=np.float64)
        bias_grad = np.zeros((1, dims_out), dtype=np.float64)
    else:
        input_grad = g @ w
        weight_grad = g.T @ x
        bias_grad = g.sum(axis=0, keepdims=True)
    return (
        Tensor.from_array(input_grad),
        Tensor.from_array(weight_grad.reshape(weight_shape)),
        Tensor.from_array(bias_grad),
    )