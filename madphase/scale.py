"""Dynamical energy scales computed from event momenta.

Momenta have shape (..., particles, 4); the first two particles are incoming.
"""

from __future__ import annotations

import numpy as np

from madphase.tensor import Tensor


def _arr(value) -> np.ndarray:
    if isinstance(value, Tensor):
        value = value.numpy()
    return np.asarray(value, dtype=np.float64)


def transverse_mass(momenta) -> np.ndarray:
    """Square of the summed transverse masses of the outgoing particles."""
    p = _arr(momenta)[..., 2:, :]
    mt = np.sqrt(np.maximum(0.0, p[..., 0] ** 2 - p[..., 3] ** 2))
    mt_sum = mt.sum(axis=-1)
    return mt_sum * mt_sum


def scale_transverse_energy(momenta) -> np.ndarray:
    """Square of the summed transverse energies of the outgoing particles."""
    p = _arr(momenta)[..., 2:, :]
    pt2 = p[..., 1] ** 2 + p[..., 2] ** 2
    p2 = pt2 + p[..., 3] ** 2
    et_sum = (p[..., 0] * np.sqrt(pt2 / p2)).sum(axis=-1)
    return et_sum * et_sum


def scale_transverse_mass(momenta) -> np.ndarray:
    """Square of :func:`transverse_mass`."""
    mt = transverse_mass(momenta)
    return mt * mt


def scale_half_transverse_mass(momenta) -> np.ndarray:
    """Square of half of :func:`transverse_mass`."""
    hmt = 0.5 * transverse_mass(momenta)
    return hmt * hmt


def scale_partonic_energy(momenta) -> np.ndarray:
    """Squared partonic centre-of-mass energy from the two incoming momenta."""
    p = _arr(momenta)
    e_tot = p[..., 0, 0] + p[..., 1, 0]
    pz_tot = p[..., 0, 3] + p[..., 1, 3]
    epart = np.sqrt(e_tot * e_tot - pz_tot * pz_tot)
    return epart * epart