# dyn_core/structures.py
from __future__ import annotations
from dataclasses import dataclass, field, replace
import numpy as np
import scipy.sparse as sp

from .damping import RayleighCoefficients, rayleigh_from_ratios
from .linalg import is_symmetric, matvec
from .matrices import (chain_stiffness_matrix, column_story_stiffness,
                       floor_masses, lumped_mass_matrix)


@dataclass
class StructureModel:
    """
    Linear dynamic system on the free degrees of freedom:
    M x¨ + C x˙ + K x = f(t)

    M, K and C may be dense arrays or scipy.sparse matrices. They are not
    modified by any solver.
    """
    M: np.ndarray
    K: np.ndarray
    C: np.ndarray | None = None

    dofs: int = field(init=False)

    def __post_init__(self):
        if not sp.issparse(self.M):
            self.M = np.asarray(self.M, dtype=float)
        if not sp.issparse(self.K):
            self.K = np.asarray(self.K, dtype=float)
        if self.M.ndim != 2 or self.M.shape[0] != self.M.shape[1]:
            raise ValueError(f"M must be square, got shape {self.M.shape}")
        if self.M.shape != self.K.shape:
            raise ValueError("M and K must have the same shape")
        if not is_symmetric(self.M) or not is_symmetric(self.K):
            raise ValueError("M and K must be symmetric")

        self.dofs = self.M.shape[0]
        if self.C is None:
            self.C = 0.0 * self.M
        elif not sp.issparse(self.C):
            self.C = np.asarray(self.C, dtype=float)
        if self.C.shape != self.M.shape:
            raise ValueError("C must have the same shape as M")

    @property
    def sparse(self) -> bool:
        return sp.issparse(self.M) or sp.issparse(self.K)

    def with_rayleigh(self, alpha: float, beta: float) -> "StructureModel":
        """Copy of the model with C = alpha * M + beta * K."""
        C = RayleighCoefficients(alpha, beta).matrix(self.M, self.K)
        return replace(self, C=C)

    def energy(self, u: np.ndarray, v: np.ndarray) -> float:
        """Mechanical energy 1/2 v^T M v + 1/2 u^T K u."""
        return float(0.5 * v @ matvec(self.M, v) + 0.5 * u @ matvec(self.K, u))

    def as_dict(self) -> dict:
        def dense(A):
            return A.toarray().tolist() if sp.issparse(A) else A.tolist()

        return {
            "dofs": self.dofs,
            "M": dense(self.M),
            "K": dense(self.K),
            "C": dense(self.C),
        }


@dataclass
class ShearBuilding(StructureModel):
    """
    Multi-story shear building: one lateral dof per floor, lumped floor
    masses and a fixed-base chain of story springs.
    """
    k_story: np.ndarray = field(repr=False, default=None)
    masses: np.ndarray = field(repr=False, default=None)

    @classmethod
    def from_story_data(cls,
                        masses,
                        k_story,
                        damping_ratio: float = 0.0,
                        sparse: bool = False) -> "ShearBuilding":
        masses = np.asarray(masses, dtype=float).ravel()
        k_story = np.asarray(k_story, dtype=float).ravel()
        if masses.shape != k_story.shape:
            raise ValueError(
                f"Mismatch: {masses.size} floor masses but {k_story.size} story stiffnesses."
            )

        M = lumped_mass_matrix(masses, sparse=sparse)
        K = chain_stiffness_matrix(k_story, sparse=sparse)

        C = None
        if damping_ratio > 0.0:
            C = building_rayleigh(M, K, damping_ratio).matrix(M, K)

        return cls(M=M, K=K, C=C, k_story=k_story, masses=masses)

    @classmethod
    def from_floor_data(cls,
                        Hc: np.ndarray,
                        Ec: np.ndarray,
                        Ic: np.ndarray,
                        Lb: np.ndarray,
                        depth: float,
                        floor_load: float,
                        base_condition: int = 1,
                        damping_ratio: float = 0.0) -> "ShearBuilding":
        dofs = np.atleast_2d(Hc).shape[0]

        if np.atleast_2d(Lb).shape[0] != dofs:
            raise ValueError(f"Mismatch: Hc implies {dofs} floors, but Lb has data for "
                             f"{np.atleast_2d(Lb).shape[0]} floors.")
        if np.atleast_2d(Ec).shape[0] != dofs or np.atleast_2d(Ic).shape[0] != dofs:
            raise ValueError("Mismatch: Ec or Ic dimensions do not match number of floors (Hc).")

        return cls.from_story_data(
            masses=floor_masses(Lb, depth, floor_load),
            k_story=column_story_stiffness(Hc, Ec, Ic, base=base_condition),
            damping_ratio=damping_ratio,
        )


def building_rayleigh(M, K, damping_ratio: float) -> RayleighCoefficients:
    """
    Rayleigh coefficients giving the same damping ratio in the first two
    modes; mass-proportional only for a single mode or coincident modes.
    """
    M_d = M.toarray() if sp.issparse(M) else M
    K_d = K.toarray() if sp.issparse(K) else K
    eigvals = np.linalg.eigvals(np.linalg.solve(M_d, K_d))
    omega = np.sort(np.sqrt(np.clip(np.real(eigvals), 0.0, None)))

    w1 = omega[0]
    if omega.size >= 2 and abs(omega[1] - w1) / omega[1] > 1e-3:
        return rayleigh_from_ratios(w1, omega[1], damping_ratio, damping_ratio)
    return RayleighCoefficients(alpha=2.0 * damping_ratio * w1, beta=0.0)


@dataclass
class SingleDOF(StructureModel):
    """
    Mass-spring-damper (SDOF) system.
    """
    m: float = 0.0
    k: float = 0.0
    c: float = 0.0

    @classmethod
    def from_parameters(cls, m: float, k: float, c: float = 0.0) -> "SingleDOF":
        M = np.array([[m]], dtype=float)
        K = np.array([[k]], dtype=float)
        C = np.array([[c]], dtype=float)
        return cls(M=M, K=K, C=C, m=m, k=k, c=c)
