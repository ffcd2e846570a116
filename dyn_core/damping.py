# dyn_core/damping.py
"""Rayleigh (mass + stiffness proportional) damping."""
from __future__ import annotations

from typing import NamedTuple

import numpy as np


class RayleighCoefficients(NamedTuple):
    """C = alpha * M + beta * K"""
    alpha: float
    beta: float

    def matrix(self, M, K):
        return self.alpha * M + self.beta * K

    def damping_ratio(self, omega):
        """Modal damping ratio zeta(w) = alpha / (2 w) + beta * w / 2."""
        omega = np.asarray(omega, dtype=float)
        return self.alpha / (2.0 * omega) + self.beta * omega / 2.0


def rayleigh_from_ratios(omega1: float, omega2: float,
                         zeta1: float, zeta2: float) -> RayleighCoefficients:
    """
    Fit alpha, beta so that the damping ratio equals zeta1 at omega1 and
    zeta2 at omega2 (both in rad/s):

        zeta_m = alpha / (2 w_m) + beta * w_m / 2,   m = 1, 2
    """
    if omega1 <= 0.0 or omega2 <= 0.0:
        raise ValueError("Reference frequencies must be positive")
    if np.isclose(omega1, omega2, rtol=1e-12, atol=0.0):
        raise ValueError("Reference frequencies must differ for a two-point fit")

    scale = 2.0 * omega1 * omega2 / (omega2 ** 2 - omega1 ** 2)
    alpha = scale * (omega2 * zeta1 - omega1 * zeta2)
    beta = scale * (-zeta1 / omega2 + zeta2 / omega1)
    return RayleighCoefficients(alpha=float(alpha), beta=float(beta))


def rayleigh_from_loss_tangent(loss_tangent: float, omega_f: float) -> RayleighCoefficients:
    """
    Estimate both coefficients from a loss tangent at one frequency,
    typically the fundamental one.
    """
    if omega_f <= 0.0:
        raise ValueError("Reference frequency must be positive")
    half = loss_tangent / 2.0
    return RayleighCoefficients(alpha=half * omega_f, beta=half / omega_f)


def mass_proportional_from_loss_tangent(loss_tangent: float, omega: float) -> RayleighCoefficients:
    """
    Mass-proportional damping C = alpha * M with alpha = 2 * loss_tangent * w
    for a reference frequency w [rad/s].
    """
    if omega <= 0.0:
        raise ValueError("Reference frequency must be positive")
    return RayleighCoefficients(alpha=2.0 * loss_tangent * omega, beta=0.0)
