# dyn_core/sweep.py
"""
Steady-state harmonic response over a list of excitation frequencies.

ModalFrequencySweep projects the model onto a truncated modal basis once,

    Mr = PHI^T M PHI,  Kr = PHI^T K PHI,  Cr = PHI^T C PHI,  Fr = PHI^T F

and then, for every angular frequency w, solves the small dense system

    (-w^2 Mr + i w Cr + Kr) Ur = Fr,     U = PHI Ur

DirectFrequencySweep solves the same balance in the full space.

Frequencies are independent of each other, so both sweeps can run on a
joblib thread pool. Results are stored by frequency index, never by
completion order. Singular systems (undamped resonance) raise
numpy.linalg.LinAlgError and are not masked.
"""
from __future__ import annotations
from dataclasses import dataclass
import logging
import time

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla
from joblib import Parallel, delayed
from scipy.linalg import solve
from threadpoolctl import threadpool_limits

from .config import SweepConfig
from .linalg import congruence
from .modal import ModalBasis
from .structures import StructureModel

logger = logging.getLogger(__name__)


@dataclass
class FrequencyResponseResult:
    frequencies: np.ndarray     # as requested, in `unit`
    omegas: np.ndarray          # [rad/s]
    displacements: np.ndarray   # (n_freq, n) complex
    unit: str = "hz"

    def __post_init__(self):
        for arr in (self.frequencies, self.omegas, self.displacements):
            arr.setflags(write=False)

    def table(self) -> dict:
        """Frequency -> complex displacement vector, in sweep order."""
        return {float(f): u for f, u in zip(self.frequencies, self.displacements)}

    def amplitude(self, dof: int) -> np.ndarray:
        return np.abs(self.displacements[:, dof])

    def phase(self, dof: int, degrees: bool = True) -> np.ndarray:
        u = self.displacements[:, dof]
        return np.angle(u, deg=degrees)

    def real(self, dof: int) -> np.ndarray:
        return self.displacements[:, dof].real

    def imag(self, dof: int) -> np.ndarray:
        return self.displacements[:, dof].imag

    def as_dict(self) -> dict:
        return {
            "frequencies": self.frequencies.tolist(),
            "unit": self.unit,
            "omegas": self.omegas.tolist(),
            "real": self.displacements.real.tolist(),
            "imag": self.displacements.imag.tolist(),
        }


@dataclass(frozen=True)
class ReducedSystem:
    """Model and load projected onto a modal basis (all dense, m x m / m)."""
    Mr: np.ndarray
    Kr: np.ndarray
    Cr: np.ndarray
    Fr: np.ndarray
    phi: np.ndarray

    @classmethod
    def from_basis(cls, model: StructureModel, F: np.ndarray, basis: ModalBasis) -> "ReducedSystem":
        F = np.asarray(F).ravel()
        if basis.dofs != model.dofs:
            raise ValueError(f"Mode shapes have {basis.dofs} entries, model has {model.dofs} dofs")
        if F.size != model.dofs:
            raise ValueError(f"Load has {F.size} entries, model has {model.dofs} dofs")

        phi = basis.eigenvectors
        return cls(Mr=congruence(phi, model.M),
                   Kr=congruence(phi, model.K),
                   Cr=congruence(phi, model.C),
                   Fr=phi.T @ F,
                   phi=phi)

    @property
    def n_modes(self) -> int:
        return self.Mr.shape[0]

    def solve(self, omega: float) -> np.ndarray:
        """Modal coordinates Ur(w)."""
        D = -omega ** 2 * self.Mr + 1j * omega * self.Cr + self.Kr
        return solve(D, self.Fr.astype(complex))

    def reconstruct(self, ur: np.ndarray) -> np.ndarray:
        return self.phi @ ur


def _run_parallel(func, omegas: np.ndarray, n: int, n_jobs: int) -> np.ndarray:
    """Evaluate func(w) -> complex (n,) for every w, stored by index."""
    out = np.zeros((omegas.size, n), dtype=complex)

    if n_jobs == 1:
        for k, omega in enumerate(omegas):
            out[k] = func(omega)
        return out

    # Keep BLAS single-threaded inside each worker to avoid oversubscription.
    with threadpool_limits(limits=1, user_api="blas"):
        results = Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(func)(omega) for omega in omegas
        )
    for k, u in enumerate(results):
        out[k] = u
    return out


class ModalFrequencySweep:
    def __init__(self, model: StructureModel, F: np.ndarray, basis: ModalBasis):
        self.model = model
        self.reduced = ReducedSystem.from_basis(model, F, basis)

    def _response(self, omega: float) -> np.ndarray:
        return self.reduced.reconstruct(self.reduced.solve(omega))

    def run(self, frequencies, unit: str = "hz", n_jobs: int = 1) -> FrequencyResponseResult:
        config = SweepConfig(frequencies=frequencies, unit=unit, n_jobs=n_jobs)
        omegas = config.omegas

        logger.info("Modal sweep: %d frequencies, %d modes, n_jobs=%d",
                    omegas.size, self.reduced.n_modes, config.n_jobs)
        t0 = time.perf_counter()
        U = _run_parallel(self._response, omegas, self.model.dofs, config.n_jobs)
        logger.info("Modal sweep done in %.3f s", time.perf_counter() - t0)

        return FrequencyResponseResult(frequencies=config.frequencies, omegas=omegas,
                                       displacements=U, unit=config.unit)


class DirectFrequencySweep:
    """Full-space harmonic solve (-w^2 M + i w C + K) U = F at every frequency."""

    def __init__(self, model: StructureModel, F: np.ndarray):
        F = np.asarray(F).ravel()
        if F.size != model.dofs:
            raise ValueError(f"Load has {F.size} entries, model has {model.dofs} dofs")
        self.model = model
        self.F = F.astype(complex)

    def _response(self, omega: float) -> np.ndarray:
        M, C, K = self.model.M, self.model.C, self.model.K
        D = -omega ** 2 * M + 1j * omega * C + K
        if sp.issparse(D):
            return spla.spsolve(sp.csc_matrix(D), self.F)
        return solve(D, self.F)

    def run(self, frequencies, unit: str = "hz", n_jobs: int = 1) -> FrequencyResponseResult:
        config = SweepConfig(frequencies=frequencies, unit=unit, n_jobs=n_jobs)
        omegas = config.omegas

        logger.info("Direct sweep: %d frequencies, %d dofs, n_jobs=%d",
                    omegas.size, self.model.dofs, config.n_jobs)
        U = _run_parallel(self._response, omegas, self.model.dofs, config.n_jobs)

        return FrequencyResponseResult(frequencies=config.frequencies, omegas=omegas,
                                       displacements=U, unit=config.unit)
