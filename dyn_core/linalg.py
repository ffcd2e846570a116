# dyn_core/linalg.py
"""Linear-algebra helpers shared by the integrator and the frequency sweeps."""
from __future__ import annotations

import logging

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla
from scipy.linalg import LinAlgError, cho_factor, cho_solve

logger = logging.getLogger(__name__)

_SYMMETRY_RTOL = 1e-10


class FactorizationError(RuntimeError):
    """Raised when an effective matrix is not symmetric positive definite."""
    pass


def is_symmetric(A, rtol: float = _SYMMETRY_RTOL) -> bool:
    """Check A == A^T up to a tolerance relative to the largest entry."""
    if sp.issparse(A):
        diff = abs(A - A.T).max() if A.nnz else 0.0
        scale = abs(A).max() if A.nnz else 0.0
    else:
        A = np.asarray(A)
        diff = np.max(np.abs(A - A.T)) if A.size else 0.0
        scale = np.max(np.abs(A)) if A.size else 0.0
    return diff <= rtol * max(scale, 1.0e-300)


def dynamic_stiffness(M, C, K, dt: float):
    """Effective operator of the trapezoidal rule: M + (dt/2) C + (dt/2)^2 K."""
    h = 0.5 * dt
    return M + h * C + (h * h) * K


class SPDFactorization:
    """
    One-time factorization of a symmetric positive definite matrix.

    Dense matrices use a Cholesky factor (scipy.linalg.cho_factor).
    Sparse matrices use SuperLU in symmetric mode with diagonal pivoting,
    so the pivots equal those of an LDL^T factorization and must all be
    positive for the matrix to be SPD.
    """

    def __init__(self, A):
        n_rows, n_cols = A.shape
        if n_rows != n_cols:
            raise ValueError(f"Matrix must be square, got {A.shape}")
        if not is_symmetric(A):
            raise FactorizationError("Effective matrix is not symmetric")

        self.shape = A.shape
        self.sparse = sp.issparse(A)

        if self.sparse:
            try:
                self._lu = spla.splu(
                    sp.csc_matrix(A),
                    permc_spec="MMD_AT_PLUS_A",
                    diag_pivot_thresh=0.0,
                    options={"SymmetricMode": True},
                )
            except RuntimeError as e:
                # SuperLU reports an exactly singular factor this way
                raise FactorizationError(f"Effective matrix is singular: {e}") from e
            pivots = self._lu.U.diagonal()
            if not np.all(np.isfinite(pivots)) or np.any(pivots <= 0.0):
                raise FactorizationError(
                    "Effective matrix is not positive definite "
                    f"(min pivot {np.min(pivots):.3e})"
                )
            self._factor = None
        else:
            try:
                self._factor = cho_factor(np.asarray(A, dtype=float))
            except LinAlgError as e:
                raise FactorizationError(
                    f"Effective matrix is not positive definite: {e}"
                ) from e
            self._lu = None

    def solve(self, b: np.ndarray) -> np.ndarray:
        if self._lu is not None:
            return self._lu.solve(b)
        return cho_solve(self._factor, b)


def factor_dynamic_stiffness(M, C, K, dt: float) -> SPDFactorization:
    """Build and factor M + (dt/2) C + (dt/2)^2 K for the step size dt."""
    logger.debug("Factorizing dynamic stiffness for dt=%.6e", dt)
    return SPDFactorization(dynamic_stiffness(M, C, K, dt))


def matvec(A, x: np.ndarray) -> np.ndarray:
    """A @ x that returns a flat ndarray for dense and sparse A alike."""
    return np.asarray(A @ x).ravel()


def congruence(phi: np.ndarray, A) -> np.ndarray:
    """phi^T A phi as a dense array."""
    return np.asarray(phi.T @ (A @ phi))
