"""Relativistic kinematics on batches of four-momenta.

Four-momenta are arrays whose last axis holds ``(E, px, py, pz)``. All functions
accept numpy arrays, anything ``numpy.asarray`` understands, or :class:`Tensor`
objects, and broadcast over leading batch axes.
"""

from __future__ import annotations

import math
from typing import Tuple

import numpy as np

from madphase.tensor import Tensor

INV_GEV2_TO_PB = 0.38937937217186e9
PI = math.pi
EPS = 1e-12
EPS2 = EPS * EPS

_PT2_REGULATOR = 1e-6


def _arr(value) -> np.ndarray:
    if isinstance(value, Tensor):
        value = value.numpy()
    return np.asarray(value, dtype=np.float64)


def _int_arr(value) -> np.ndarray:
    if isinstance(value, Tensor):
        value = value.numpy()
    return np.asarray(value, dtype=np.int64)


def _mom(e, px, py, pz) -> np.ndarray:
    return np.stack(np.broadcast_arrays(e, px, py, pz), axis=-1)


def kaellen(x, y, z) -> np.ndarray:
    """Källén triangle function."""
    x, y, z = _arr(x), _arr(y), _arr(z)
    xyz = x - y - z
    return xyz * xyz - 4.0 * y * z


def lsquare(p) -> np.ndarray:
    """Minkowski square of four-momenta."""
    p = _arr(p)
    return p[..., 0] ** 2 - p[..., 1] ** 2 - p[..., 2] ** 2 - p[..., 3] ** 2


def rotate(p, q) -> np.ndarray:
    """Rotate ``p`` so that its z axis points along the spatial direction of ``q``."""
    p, q = _arr(p), _arr(q)
    qt2 = q[..., 1] ** 2 + q[..., 2] ** 2
    qq = np.sqrt(qt2 + q[..., 3] ** 2)
    qt = np.sqrt(qt2)
    return _mom(
        p[..., 0],
        q[..., 1] * q[..., 3] / qq / qt * p[..., 1]
        - q[..., 2] / qt * p[..., 2]
        + q[..., 1] / qq * p[..., 3],
        q[..., 2] * q[..., 3] / qq / qt * p[..., 1]
        + q[..., 1] / qt * p[..., 2]
        + q[..., 2] / qq * p[..., 3],
        -qt / qq * p[..., 1] + q[..., 3] / qq * p[..., 3],
    )


def boost(k, p_boost, sign) -> np.ndarray:
    """Boost ``k`` from the rest frame of ``p_boost`` (sign +1) or into it (sign -1)."""
    k, p_boost, sign = _arr(k), _arr(p_boost), _arr(sign)
    rsq = np.sqrt(np.maximum(EPS2, lsquare(p_boost)))
    k_dot_p = (
        k[..., 1] * p_boost[..., 1]
        + k[..., 2] * p_boost[..., 2]
        + k[..., 3] * p_boost[..., 3]
    )
    e = (k[..., 0] * p_boost[..., 0] + sign * k_dot_p) / rsq
    c1 = sign * (k[..., 0] + e) / (rsq + p_boost[..., 0])
    return _mom(
        e,
        k[..., 1] + c1 * p_boost[..., 1],
        k[..., 2] + c1 * p_boost[..., 2],
        k[..., 3] + c1 * p_boost[..., 3],
    )


def boost_beam(q, x1, x2, sign) -> np.ndarray:
    """Longitudinal boost of all momenta ``q`` (batch, particles, 4) by the rapidity of x1/x2."""
    q = _arr(q)
    exp_rap = np.sqrt(_arr(x1) / _arr(x2))[..., None]
    sign = _arr(sign)[..., None]
    cosh_rap = 0.5 * (exp_rap + 1.0 / exp_rap)
    sinh_rap = 0.5 * (exp_rap - 1.0 / exp_rap)
    return _mom(
        q[..., 0] * cosh_rap + sign * q[..., 3] * sinh_rap,
        q[..., 1],
        q[..., 2],
        q[..., 3] * cosh_rap + sign * q[..., 0] * sinh_rap,
    )


def _decay_momentum(m_tot, m1, m2, pp2_total):
    ed = (m1 - m2) * (m1 + m2) / m_tot
    pp2 = ed * ed - 2.0 * (m1 * m1 + m2 * m2) + pp2_total
    pp = 0.5 * np.where(
        m1 * m2 == 0.0, m_tot - np.abs(ed), np.sqrt(np.maximum(pp2, EPS))
    )
    return ed, pp


def two_particle_decay(r_phi, r_cos_theta, m0, m1, m2) -> Tuple[np.ndarray, np.ndarray]:
    """First daughter momentum in the rest frame of the parent and the phase-space factor."""
    r_phi, r_cos_theta = _arr(r_phi), _arr(r_cos_theta)
    m0, m1, m2 = _arr(m0), _arr(m1), _arr(m2)
    phi = PI * (2.0 * r_phi - 1.0)
    cos_theta = 2.0 * r_cos_theta - 1.0
    m0_clip = np.maximum(m0, EPS)

    ed = (m1 - m2) * (m1 + m2) / m0_clip
    pp2 = ed * ed - 2.0 * (m1 * m1 + m2 * m2) + m0 * m0
    pp = 0.5 * np.where(
        m1 * m2 == 0.0, m0 - np.abs(ed), np.sqrt(np.maximum(pp2, EPS))
    )
    sin_theta = np.sqrt((1.0 - cos_theta) * (1.0 + cos_theta))
    e1 = 0.5 * (m0 + ed)
    p1 = _mom(
        np.maximum(e1, 0.0),
        pp * sin_theta * np.cos(phi),
        pp * sin_theta * np.sin(phi),
        pp * cos_theta,
    )
    det = PI * pp / m0_clip
    return p1, det


def two_particle_scattering(
    r_phi, pa_com, s_tot, t, m1, m2, ma_2, mb_2
) -> Tuple[np.ndarray, np.ndarray]:
    """Outgoing momentum in the centre-of-mass frame, measured relative to ``pa_com``'s axis."""
    r_phi, pa_com, s_tot, t = _arr(r_phi), _arr(pa_com), _arr(s_tot), _arr(t)
    m1, m2, ma_2, mb_2 = _arr(m1), _arr(m2), _arr(ma_2), _arr(mb_2)
    m_tot = np.sqrt(s_tot)
    ed, pp = _decay_momentum(m_tot, m1, m2, s_tot)

    pa_com_mag = np.sqrt(
        pa_com[..., 1] ** 2 + pa_com[..., 2] ** 2 + pa_com[..., 3] ** 2
    )
    e1 = np.maximum(0.5 * (m_tot + ed), 0.0)
    pz = -(m1 * m1 + ma_2 + t - 2.0 * e1 * pa_com[..., 0]) / (2.0 * pa_com_mag)
    pt = np.sqrt(np.maximum(pp * pp - pz * pz, 0.0))
    phi = PI * (2.0 * r_phi - 1.0)
    p1_com = _mom(e1, pt * np.cos(phi), pt * np.sin(phi), pz)

    det = PI / (2.0 * np.sqrt(kaellen(s_tot, ma_2, mb_2)))
    return p1_com, det


def com_p_in(e_cm) -> Tuple[np.ndarray, np.ndarray]:
    """Massless incoming momenta along the z axis in the centre-of-mass frame."""
    p_com = _arr(e_cm) / 2.0
    zero = np.zeros_like(p_com)
    return _mom(p_com, zero, zero, p_com), _mom(p_com, zero, zero, -p_com)


def r_to_x1x2(r, s_hat, s_lab) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Momentum fractions from a random number at fixed partonic energy, with Jacobian."""
    r, s_hat, s_lab = _arr(r), _arr(s_hat), _arr(s_lab)
    tau = s_hat / s_lab
    x1 = np.power(tau, r)
    x2 = np.power(tau, 1.0 - r)
    det = np.abs(np.log(tau)) / s_lab
    return x1, x2, det


def x1x2_to_r(x1, x2, s_lab) -> Tuple[np.ndarray, np.ndarray]:
    """Inverse of :func:`r_to_x1x2`: the random number and the inverse Jacobian."""
    x1, x2, s_lab = _arr(x1), _arr(x2), _arr(s_lab)
    log_tau = np.log(x1 * x2)
    r = np.log(x1) / log_tau
    det = np.abs(1.0 / log_tau) * s_lab
    return r, det


def diff_cross_section(x1, x2, pdf1, pdf2, matrix_element, e_cm2) -> np.ndarray:
    """Differential cross section in picobarn."""
    x1, x2 = _arr(x1), _arr(x2)
    return (
        INV_GEV2_TO_PB
        * _arr(matrix_element)
        * _arr(pdf1)
        * _arr(pdf2)
        / (2.0 * _arr(e_cm2) * x1 * x1 * x2 * x2)
    )


def two_particle_decay_com(
    r_phi, r_cos_theta, m0, m1, m2
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Two-body decay in the parent rest frame: both daughters and the phase-space factor."""
    p1, det = two_particle_decay(r_phi, r_cos_theta, m0, m1, m2)
    p2 = _mom(
        np.maximum(_arr(m0) - p1[..., 0], 0.0), -p1[..., 1], -p1[..., 2], -p1[..., 3]
    )
    return p1, p2, det


def two_particle_decay_lab(
    r_phi, r_cos_theta, m0, m1, m2, p0
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Two-body decay of a parent with momentum ``p0``, daughters in the lab frame."""
    p0 = _arr(p0)
    p1_rest, det = two_particle_decay(r_phi, r_cos_theta, m0, m1, m2)
    p1 = boost(p1_rest, p0, 1.0)
    p2 = _mom(
        np.maximum(p0[..., 0] - p1[..., 0], 0.0),
        p0[..., 1] - p1[..., 1],
        p0[..., 2] - p1[..., 2],
        p0[..., 3] - p1[..., 3],
    )
    return p1, p2, det


def two_particle_scattering_com(
    r_phi, pa, pb, t, m1, m2
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """2 → 2 scattering for incoming momenta already in their centre-of-mass frame."""
    pa, pb = _arr(pa), _arr(pb)
    p_tot = pa + pb
    p1, det = two_particle_scattering(
        r_phi, pa, lsquare(p_tot), t, m1, m2, lsquare(pa), lsquare(pb)
    )
    return p1, p_tot - p1, det


def two_particle_scattering_lab(
    r_phi, pa, pb, t, m1, m2
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """2 → 2 scattering for incoming momenta in an arbitrary frame."""
    pa, pb = _arr(pa), _arr(pb)
    p_tot = pa + pb
    pa_com = boost(pa, p_tot, -1.0)
    p1_com, det = two_particle_scattering(
        r_phi, pa_com, lsquare(p_tot), t, m1, m2, lsquare(pa), lsquare(pb)
    )
    p1 = boost(rotate(p1_com, pa_com), p_tot, 1.0)
    return p1, p_tot - p1, det


def t_inv_min_max(pa, pb, m1, m2) -> Tuple[np.ndarray, np.ndarray]:
    """Kinematic limits of the (sign-flipped) momentum transfer ``t``."""
    pa, pb, m1, m2 = _arr(pa), _arr(pb), _arr(m1), _arr(m2)
    s = lsquare(pa + pb)
    ma_2 = lsquare(pa)
    mb_2 = lsquare(pb)
    m1_2 = m1 * m1
    m2_2 = m2 * m2

    ysqr = kaellen(s, ma_2, mb_2) * kaellen(s, m1_2, m2_2)
    yr = np.where(ysqr > EPS, np.sqrt(np.maximum(ysqr, EPS)), EPS)
    m_sum = ma_2 + m1_2
    prod = (s + ma_2 - mb_2) * (s + m1_2 - m2_2)
    s_eps = s + EPS
    y1 = m_sum - 0.5 * (prod - yr) / s_eps
    y2 = m_sum - 0.5 * (prod + yr) / s_eps
    t_min = np.maximum(-np.maximum(y2, y1), 0.0)
    t_max_tmp = -np.minimum(y1, y2)
    t_max = np.where(t_max_tmp > t_min, t_max_tmp, t_min + EPS)
    return t_min, t_max


def invariants_from_momenta(p_ext, factors) -> np.ndarray:
    """Minkowski squares of linear combinations of the external momenta.

    ``factors`` has shape (..., invariants, particles).
    """
    return lsquare(np.matmul(_arr(factors), _arr(p_ext)))


def sde2_channel_weights(invariants, masses, widths, indices) -> np.ndarray:
    """Normalised channel weights from products of propagator denominators.

    ``indices`` (..., channels, propagators) picks invariants; -1 marks padding.
    """
    inv = _arr(invariants)
    masses, widths = _arr(masses), _arr(widths)
    idx = _int_arr(indices)
    mask = idx == -1
    safe = np.where(mask, 0, idx)

    batch = np.broadcast_shapes(
        inv.shape[:-1], safe.shape[:-2], masses.shape[:-2], widths.shape[:-2]
    )
    channels, props = safe.shape[-2:]
    inv_b = np.broadcast_to(
        inv[..., None, :], batch + (channels, inv.shape[-1])
    )
    safe_b = np.broadcast_to(safe, batch + (channels, props))
    invar = np.take_along_axis(inv_b, safe_b, axis=-1)

    tmp = invar - masses * masses
    tmp2 = masses * widths
    prop_product = np.where(mask, 1.0, tmp * tmp + tmp2 * tmp2).prod(axis=-1)
    weights = 1.0 / prop_product
    return weights / weights.sum(axis=-1, keepdims=True)


def pt_eta_phi_x(p_ext, x1, x2) -> np.ndarray:
    """Features ``x1, x2`` followed by (log pT, phi, eta) of each outgoing particle."""
    p = _arr(p_ext)[..., 2:, :]
    px, py, pz = p[..., 1], p[..., 2], p[..., 3]
    pt2 = px * px + py * py + _PT2_REGULATOR
    per_particle = np.stack(
        [
            0.5 * np.log(pt2),
            np.arctan2(py, px),
            np.arctanh(pz / np.sqrt(pt2 + pz * pz)),
        ],
        axis=-1,
    )
    flat = per_particle.reshape(per_particle.shape[:-2] + (-1,))
    x1, x2 = np.broadcast_arrays(_arr(x1), _arr(x2))
    return np.concatenate([x1[..., None], x2[..., None], flat], axis=-1)


def mirror_momenta(p_ext, mirror) -> np.ndarray:
    """Flip the y and z components of all momenta in events where ``mirror`` is 1."""
    p = _arr(p_ext)
    sign = (1.0 - 2.0 * _int_arr(mirror).astype(np.float64))[..., None]
    out = p.copy()
    out[..., 2] = sign * p[..., 2]
    out[..., 3] = sign * p[..., 3]
    return out