# dyn_core/config.py
"""Run configuration dataclasses."""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

FREQUENCY_UNITS = ("hz", "rad/s")


@dataclass
class TimeHistoryConfig:
    """Configuration of one trapezoidal time-history run."""
    dt: float                      # nominal step [s]
    t_end: float                   # end time [s]
    progress_every: int = 100      # steps between progress log lines

    def __post_init__(self) -> None:
        if not np.isfinite(self.dt) or self.dt <= 0.0:
            raise ValueError(f"dt must be positive, got {self.dt}")
        if not np.isfinite(self.t_end) or self.t_end <= 0.0:
            raise ValueError(f"t_end must be positive, got {self.t_end}")
        if self.progress_every < 1:
            raise ValueError(f"progress_every must be at least 1, got {self.progress_every}")

    @property
    def nominal_steps(self) -> int:
        return int(np.ceil(self.t_end / self.dt - 1e-9))


@dataclass
class SweepConfig:
    """Configuration of a frequency sweep."""
    frequencies: np.ndarray
    unit: str = "hz"
    n_jobs: int = 1

    def __post_init__(self) -> None:
        self.frequencies = np.array(self.frequencies, dtype=float).ravel()
        if self.frequencies.size == 0:
            raise ValueError("Frequency list is empty")
        if np.unique(self.frequencies).size != self.frequencies.size:
            raise ValueError("Frequency list contains repeated frequencies")
        self.unit = self.unit.lower()
        if self.unit not in FREQUENCY_UNITS:
            raise ValueError(f"unit must be one of {FREQUENCY_UNITS}, got {self.unit!r}")
        if self.n_jobs == 0:
            raise ValueError("n_jobs must be nonzero (use -1 for all cores)")

    @property
    def omegas(self) -> np.ndarray:
        """Angular frequencies [rad/s]."""
        return to_angular(self.frequencies, self.unit)


def to_angular(frequencies, unit: str = "hz") -> np.ndarray:
    frequencies = np.asarray(frequencies, dtype=float)
    if unit == "hz":
        return 2.0 * np.pi * frequencies
    if unit == "rad/s":
        return frequencies
    raise ValueError(f"unit must be one of {FREQUENCY_UNITS}, got {unit!r}")
