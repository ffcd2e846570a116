# dyn_core/response.py
"""
Direct time integration of M a + C v + K u = f(t) with the trapezoidal
(constant-average-acceleration) rule in velocity form:

    (M + dt/2 C + (dt/2)^2 K) V' = M V - C (dt/2 V) - K ((dt/2)^2 V + dt U)
                                   + dt/2 (F + F')
    U' = U + dt/2 (V + V')

The effective matrix is factorized once for the nominal step and reused for
every step; only a truncated final step gets its own factorization.
"""
from __future__ import annotations
from dataclasses import dataclass
import logging
from typing import Callable, Iterator, Sequence

import numpy as np

from .config import TimeHistoryConfig
from .linalg import SPDFactorization, factor_dynamic_stiffness, matvec
from .structures import StructureModel

logger = logging.getLogger(__name__)

# Relative to the nominal step: step ends closer than this to t_end snap onto it.
_END_SNAP_RTOL = 1e-9


@dataclass
class TimeHistoryResult:
    t: np.ndarray       # (n_samples,)
    x: np.ndarray       # (n_recorded_dofs, n_samples)
    v: np.ndarray       # (n_recorded_dofs, n_samples)

    def __post_init__(self):
        for arr in (self.t, self.x, self.v):
            arr.setflags(write=False)

    @property
    def n_steps(self) -> int:
        return self.t.size - 1

    def samples(self):
        """(t, x) pairs in time order."""
        return list(zip(self.t.tolist(), self.x.T))

    def energy(self, model: StructureModel) -> np.ndarray:
        """Mechanical energy at every sample (requires all dofs recorded)."""
        if self.x.shape[0] != model.dofs:
            raise ValueError("Energy needs the full displacement and velocity vectors")
        return np.array([model.energy(self.x[:, i], self.v[:, i]) for i in range(self.t.size)])

    def as_dict(self) -> dict:
        return {
            "t": self.t.tolist(),
            "x": self.x.tolist(),
            "v": self.v.tolist(),
        }


class _StepState:
    """
    Working set of one run: current/next displacement, velocity and load
    buffers, the factorization in use and the step counter. Created per call
    and dropped when the run ends.
    """

    def __init__(self, n: int, u0: np.ndarray, v0: np.ndarray, f0: np.ndarray,
                 factor: SPDFactorization, dt: float):
        self.U0 = np.array(u0, dtype=float)
        self.V0 = np.array(v0, dtype=float)
        self.F0 = np.array(f0, dtype=float)
        self.U1 = np.zeros(n)
        self.V1 = np.zeros(n)
        self.F1 = np.zeros(n)
        self.factor = factor
        self.factor_dt = dt
        self.t = 0.0
        self.step = 0

    def swap(self):
        self.U0, self.U1 = self.U1, self.U0
        self.V0, self.V1 = self.V1, self.V0
        self.F0, self.F1 = self.F1, self.F0


class TimeIntegrator:
    def __init__(self, model: StructureModel,
                 f_func: Callable[[float], np.ndarray],
                 progress_every: int = 100):
        """
        f_func(t) -> vector of size dofs (external forces at time t).
        """
        self.model = model
        self.f_func = f_func
        self.progress_every = progress_every

    def _load(self, t: float) -> np.ndarray:
        f = np.asarray(self.f_func(t), dtype=float).ravel()
        if f.size != self.model.dofs:
            raise ValueError(f"Load has {f.size} entries, model has {self.model.dofs} dofs")
        return f

    def _check_initial(self, x0, v0):
        x0 = np.asarray(x0, dtype=float).ravel()
        v0 = np.asarray(v0, dtype=float).ravel()
        n = self.model.dofs
        if x0.size != n or v0.size != n:
            raise ValueError(
                f"Initial conditions must have {n} entries, got {x0.size} and {v0.size}"
            )
        return x0, v0

    def iter_steps(self, x0: np.ndarray, v0: np.ndarray,
                   t_end: float, dt: float) -> Iterator[tuple[float, np.ndarray, np.ndarray]]:
        """
        Yield (t, u, v) at t = 0 and after every step until t == t_end.
        The yielded vectors are copies.
        """
        config = TimeHistoryConfig(dt=dt, t_end=t_end, progress_every=self.progress_every)
        x0, v0 = self._check_initial(x0, v0)
        M, C, K = self.model.M, self.model.C, self.model.K
        n = self.model.dofs

        factor = factor_dynamic_stiffness(M, C, K, config.dt)
        state = _StepState(n, x0, v0, self._load(0.0), factor, config.dt)
        logger.info("Trapezoidal integration: %d dofs, dt=%.4g, t_end=%.4g (~%d steps)",
                    n, config.dt, config.t_end, config.nominal_steps)

        yield state.t, state.U0.copy(), state.V0.copy()

        snap = _END_SNAP_RTOL * config.dt
        while state.t < config.t_end:
            t_next = (state.step + 1) * config.dt
            if t_next >= config.t_end - snap:
                if t_next <= config.t_end + snap:
                    t_next = config.t_end
                    h = config.dt
                else:
                    # Truncated final step: the nominal factorization no longer applies.
                    t_next = config.t_end
                    h = config.t_end - state.t
                    logger.debug("Final step truncated to dt=%.6e, refactorizing", h)
                    state.factor = factor_dynamic_stiffness(M, C, K, h)
                    state.factor_dt = h
            else:
                h = config.dt

            self._advance(state, h, t_next)

            if state.step % config.progress_every == 0:
                logger.debug("Step %d: t=%.6g", state.step, state.t)

            yield state.t, state.U0.copy(), state.V0.copy()

        logger.info("Integration finished after %d steps at t=%.6g", state.step, state.t)

    def _advance(self, state: _StepState, h: float, t_next: float):
        M, C, K = self.model.M, self.model.C, self.model.K
        half = 0.5 * h

        state.F1[:] = self._load(t_next)
        R = (matvec(M, state.V0)
             - matvec(C, half * state.V0)
             - matvec(K, half * half * state.V0 + h * state.U0)
             + half * (state.F0 + state.F1))
        state.V1[:] = state.factor.solve(R)
        np.add(state.V0, state.V1, out=state.U1)
        state.U1 *= half
        state.U1 += state.U0

        state.swap()
        state.t = t_next
        state.step += 1

    def run(self,
            x0: np.ndarray,
            v0: np.ndarray,
            t_end: float,
            dt: float,
            dofs: Sequence[int] | None = None) -> TimeHistoryResult:
        """
        Integrate from t = 0 to t_end with nominal step dt.

        dofs selects the recorded degrees of freedom (all by default).
        """
        idx = slice(None) if dofs is None else np.asarray(dofs, dtype=int)
        ts, xs, vs = [], [], []
        for t, u, v in self.iter_steps(x0, v0, t_end, dt):
            ts.append(t)
            xs.append(u[idx])
            vs.append(v[idx])

        return TimeHistoryResult(t=np.array(ts),
                                 x=np.column_stack(xs),
                                 v=np.column_stack(vs))
