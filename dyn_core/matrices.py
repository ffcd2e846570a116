# dyn_core/matrices.py
"""
Small assembled models used by the demos and the tests.

Element assembly belongs to the finite-element layer; these builders only
produce the lumped chains the examples need (shear buildings, spring-mass
chains) in dense or CSR form.
"""
import numpy as np
import scipy.sparse as sp

G = 9.807  # m/s^2


def lumped_mass_matrix(masses, sparse: bool = False):
    """Diagonal mass matrix from nodal (or floor) masses."""
    masses = np.asarray(masses, dtype=float).ravel()
    if np.any(masses <= 0.0):
        raise ValueError("Lumped masses must be positive")
    if sparse:
        return sp.diags(masses, format="csr")
    return np.diag(masses)


def floor_masses(Lb: np.ndarray, depth: float, floor_load: float) -> np.ndarray:
    """
    Floor mass from the tributary area and a floor load:
    m_i = depth * sum(Lb[i, :]) * floor_load / g
    """
    area = depth * np.sum(np.atleast_2d(Lb), axis=1)
    return area * floor_load / G


def column_story_stiffness(Hc: np.ndarray,
                           Ec: np.ndarray,
                           Ic: np.ndarray,
                           base: int = 1) -> np.ndarray:
    """
    Lateral stiffness of each story as the sum over its columns of
    coeff * E * I / H^3, with coeff = 12 for clamped columns and 3 for the
    pinned first story (base == 0).
    """
    Hc = np.atleast_2d(np.asarray(Hc, dtype=float))
    coeff = np.full(Hc.shape[0], 12.0)
    if base != 1:
        coeff[0] = 3.0
    k_col = coeff[:, None] * np.asarray(Ec, dtype=float) * np.asarray(Ic, dtype=float) / Hc ** 3
    return np.sum(k_col, axis=1)


def chain_stiffness_matrix(k_story, sparse: bool = False):
    """
    Tridiagonal stiffness of a fixed-base chain of springs: spring i
    connects dof i-1 (the ground for i == 0) to dof i.

        K[i, i]   = k[i] + k[i+1]
        K[i, i+1] = K[i+1, i] = -k[i+1]
        K[n-1, n-1] = k[n-1]
    """
    k = np.asarray(k_story, dtype=float).ravel()
    if np.any(k <= 0.0):
        raise ValueError("Spring stiffnesses must be positive")

    main = k.copy()
    main[:-1] += k[1:]
    off = -k[1:]

    n = k.size
    K = sp.diags([off, main, off], offsets=[-1, 0, 1], shape=(n, n), format="csr")
    if sparse:
        return K
    return K.toarray()
