"""Batched tensors, relativistic kinematics, scales, batch operations and a dataflow runtime."""

__version__ = "0.1.0"
__all__ = ["device", "kinematics", "linalg", "ops", "runtime", "scale", "tensor"]