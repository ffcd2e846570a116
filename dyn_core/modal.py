# dyn_core/modal.py
from __future__ import annotations
from dataclasses import dataclass
import logging

import numpy as np
import scipy.sparse as sp
from scipy.linalg import eigh
from scipy.sparse.linalg import eigsh

from .structures import StructureModel

logger = logging.getLogger(__name__)


@dataclass
class ModalBasis:
    """
    Truncated set of eigenpairs (lambda_i = w_i^2, phi_i).

    eigenvectors holds one mode per column (n x m). Mode shapes may have any
    nonzero scaling; the modal reduction does not assume mass normalization.
    """
    eigenvalues: np.ndarray
    eigenvectors: np.ndarray

    def __post_init__(self):
        self.eigenvalues = np.asarray(self.eigenvalues, dtype=float).ravel()
        self.eigenvectors = np.asarray(self.eigenvectors, dtype=float)
        if self.eigenvectors.ndim == 1:
            self.eigenvectors = self.eigenvectors[:, None]
        if self.eigenvectors.ndim != 2:
            raise ValueError("eigenvectors must be an (n, m) array")
        if self.eigenvectors.shape[1] != self.eigenvalues.size:
            raise ValueError(
                f"{self.eigenvalues.size} eigenvalues but {self.eigenvectors.shape[1]} eigenvectors"
            )
        if self.eigenvalues.size == 0:
            raise ValueError("Modal basis must contain at least one mode")
        if np.any(np.diff(np.abs(self.eigenvalues)) < 0.0):
            raise ValueError("Eigenvalues must be sorted ascending by magnitude")

    @classmethod
    def from_pairs(cls, pairs) -> "ModalBasis":
        """Build from an ordered sequence of (eigenvalue, eigenvector) pairs."""
        pairs = list(pairs)
        if not pairs:
            raise ValueError("Modal basis must contain at least one mode")
        eigenvalues = np.array([lam for lam, _ in pairs], dtype=float)
        vectors = [np.asarray(phi, dtype=float).ravel() for _, phi in pairs]
        if len({v.size for v in vectors}) != 1:
            raise ValueError("All eigenvectors must have the same length")
        return cls(eigenvalues=eigenvalues, eigenvectors=np.column_stack(vectors))

    @property
    def n_modes(self) -> int:
        return self.eigenvalues.size

    @property
    def dofs(self) -> int:
        return self.eigenvectors.shape[0]

    def truncate(self, n_modes: int) -> "ModalBasis":
        return ModalBasis(self.eigenvalues[:n_modes], self.eigenvectors[:, :n_modes])


@dataclass
class ModalResult:
    frequencies: np.ndarray     # w_n [rad/s]
    periods: np.ndarray         # T_n [s]
    modes: np.ndarray           # PHI (columns = modes)

    @property
    def frequencies_hz(self) -> np.ndarray:
        return self.frequencies / (2.0 * np.pi)

    def basis(self) -> ModalBasis:
        return ModalBasis(eigenvalues=self.frequencies ** 2, eigenvectors=self.modes)

    def as_dict(self) -> dict:
        return {
            "frequencies": self.frequencies.tolist(),
            "periods": self.periods.tolist(),
            "modes": self.modes.tolist(),
        }


class ModalAnalyzer:
    """
    Lowest eigenpairs of K phi = w^2 M phi.

    Dense models go through scipy.linalg.eigh. Sparse models use shift-invert
    Lanczos (eigsh) on K + s M, which stays nonsingular when the structure
    has rigid-body modes; the shift s is removed from the eigenvalues after.
    """

    def __init__(self, model: StructureModel, shift: float = (0.01 * 2.0 * np.pi) ** 2):
        self.model = model
        self.shift = shift

    def run(self, n_modes: int | None = None) -> ModalResult:
        n = self.model.dofs
        if n_modes is None:
            n_modes = n
        if n_modes < 1:
            raise ValueError(f"n_modes must be at least 1, got {n_modes}")
        n_modes = min(n_modes, n)

        if self.model.sparse and n_modes < n - 1:
            eigvals, eigvecs = self._sparse_modes(n_modes)
        else:
            M = self.model.M.toarray() if sp.issparse(self.model.M) else self.model.M
            K = self.model.K.toarray() if sp.issparse(self.model.K) else self.model.K
            eigvals, eigvecs = eigh(K, M, subset_by_index=[0, n_modes - 1])

        idx = np.argsort(np.abs(eigvals))
        eigvals = eigvals[idx]
        PHI = eigvecs[:, idx]

        w_n = np.sqrt(np.clip(eigvals, 0.0, None))
        with np.errstate(divide="ignore"):
            T_n = 2.0 * np.pi / w_n

        logger.info("Modal analysis: %d modes, f1 = %.4g Hz", n_modes, w_n[0] / (2.0 * np.pi))
        return ModalResult(frequencies=w_n, periods=T_n, modes=PHI)

    def _sparse_modes(self, n_modes: int):
        M = sp.csc_matrix(self.model.M)
        K_shifted = sp.csc_matrix(self.model.K + self.shift * self.model.M)
        eigvals, eigvecs = eigsh(K_shifted, k=n_modes, M=M, sigma=0.0, which="LM")
        return eigvals - self.shift, eigvecs


def fundamental_frequency(model: StructureModel) -> float:
    """Lowest natural angular frequency [rad/s]."""
    return float(ModalAnalyzer(model).run(n_modes=1).frequencies[0])


def stable_time_step(model: StructureModel, fraction: float = 0.05) -> float:
    """
    Time step equal to a fraction of the fundamental period. The trapezoidal
    rule is unconditionally stable; this only controls accuracy in the
    fundamental mode.
    """
    if fraction <= 0.0:
        raise ValueError("fraction must be positive")
    w1 = fundamental_frequency(model)
    if w1 <= 0.0:
        raise ValueError("Fundamental frequency is zero (rigid-body mode present)")
    return fraction * 2.0 * np.pi / w1


def highest_eigenvalue(model: StructureModel) -> float:
    """Largest eigenvalue w_max^2 of K phi = w^2 M phi."""
    n = model.dofs
    if model.sparse and n > 2:
        eigvals = eigsh(sp.csc_matrix(model.K), k=1, M=sp.csc_matrix(model.M),
                        which="LM", return_eigenvectors=False)
        return float(np.max(eigvals))

    M = model.M.toarray() if sp.issparse(model.M) else model.M
    K = model.K.toarray() if sp.issparse(model.K) else model.K
    return float(eigh(K, M, eigvals_only=True, subset_by_index=[n - 1, n - 1])[0])


def time_step_from_highest_mode(model: StructureModel, multiple: float = 1.0) -> float:
    """
    multiple * 2 / w_max, i.e. a multiple of the central-difference stability
    limit of the stiffest mode. The trapezoidal rule tolerates multiples far
    above one when only the low modes are of interest.
    """
    if multiple <= 0.0:
        raise ValueError("multiple must be positive")
    lam_max = highest_eigenvalue(model)
    if lam_max <= 0.0:
        raise ValueError("Highest eigenvalue is not positive")
    step = multiple * 2.0 / np.sqrt(lam_max)
    logger.info("Highest mode: w_max = %.4g rad/s, dt = %.4g s", np.sqrt(lam_max), step)
    return float(step)
