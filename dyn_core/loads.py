# dyn_core/loads.py
"""
Load generators for the time integrator.

A load is any callable ``load(t) -> ndarray`` of length n. It must be a
pure function of time: the integrator may evaluate it at any step end.
"""
from typing import Callable

import numpy as np

from .linalg import matvec
from .matrices import G

Load = Callable[[float], np.ndarray]


def constant_load(F: np.ndarray) -> Load:
    F = np.asarray(F, dtype=float).ravel()

    def load(t: float) -> np.ndarray:
        return F

    return load


def scaled_load(F: np.ndarray, multiplier: Callable[[float], float]) -> Load:
    """Fixed spatial distribution F scaled by a time multiplier."""
    F = np.asarray(F, dtype=float).ravel()

    def load(t: float) -> np.ndarray:
        return multiplier(t) * F

    return load


def trapezoidal_pulse(ramp_end: float = 0.015,
                      hold_end: float = 0.385,
                      off_time: float = 0.4) -> Callable[[float], float]:
    """
    On/off multiplier: linear ramp from 0 to 1 until ramp_end, held at 1
    until hold_end, linear ramp back to 0 at off_time, zero afterwards.
    """
    if not 0.0 < ramp_end <= hold_end < off_time:
        raise ValueError("Require 0 < ramp_end <= hold_end < off_time")

    def multiplier(t: float) -> float:
        if t <= ramp_end:
            return max(t, 0.0) / ramp_end
        if t >= off_time:
            return 0.0
        if t <= hold_end:
            return 1.0
        return (t - off_time) / (hold_end - off_time)

    return multiplier


def harmonic(omega: float, phase: float = 0.0) -> Callable[[float], float]:
    """sin(w t + phase) multiplier, w in rad/s."""
    def multiplier(t: float) -> float:
        return float(np.sin(omega * t + phase))

    return multiplier


def el_centro_record():
    """
    Returns (times, accelerations_in_g) for El Centro 1940 (N-S component),
    reduced to its main peaks.
    """
    # [Time (s), Accel (g)]
    data = np.array([
        [0.00, 0.000], [0.50, 0.010], [1.00, 0.040], [1.40, -0.05],
        [1.80, -0.09], [2.00, 0.150], [2.14, 0.319], [2.40, -0.12],  # Peak ~0.32g
        [2.80, -0.25], [3.20, 0.180], [3.70, -0.15], [4.20, 0.120],
        [4.80, -0.10], [5.50, 0.060], [7.00, -0.04], [9.00, 0.020],
        [12.0, 0.000], [30.0, 0.000]
    ])
    return data[:, 0], data[:, 1]


def ground_acceleration_load(M, times, accel_g, scale: float = 1.0) -> Load:
    """
    Inertial load of a ground acceleration record acting on every dof:
    F(t) = -M {1} a_g(t)

    a_g is interpolated linearly in the record and zero outside it.
    """
    times = np.asarray(times, dtype=float)
    accel = np.asarray(accel_g, dtype=float) * G * scale
    if times.shape != accel.shape:
        raise ValueError("times and accelerations must have the same length")

    # When the ground moves one way, the structure feels the opposite force.
    inertia = -matvec(M, np.ones(M.shape[0]))

    def load(t: float) -> np.ndarray:
        if t < times[0] or t > times[-1]:
            return np.zeros_like(inertia)
        return inertia * np.interp(t, times, accel)

    return load
