from __future__ import annotations
import asyncio
import logging

import numpy as np

from dyn_core.damping import rayleigh_from_loss_tangent, rayleigh_from_ratios
from dyn_core.loads import (el_centro_record, ground_acceleration_load, harmonic, scaled_load,
                            trapezoidal_pulse)
from dyn_core.modal import ModalAnalyzer, fundamental_frequency
from dyn_core.response import TimeIntegrator
from dyn_core.structures import ShearBuilding, SingleDOF, StructureModel
from dyn_core.sweep import DirectFrequencySweep, ModalFrequencySweep

logger = logging.getLogger(__name__)

# Payload units are kN, ton, GPa; the core works in N, kg, Pa.
KILO = 1000.0
GIGA = 1.0e9


class StructureFactory:
    @staticmethod
    def create_single_dof(payload: dict) -> SingleDOF:
        return SingleDOF.from_parameters(
            m=float(payload["m"]) * KILO,
            k=float(payload["k"]) * KILO,
            c=float(payload.get("c", 0.0)) * KILO
        )

    @staticmethod
    def create_shear_building(payload: dict) -> ShearBuilding:
        return ShearBuilding.from_floor_data(
            Hc=np.array(payload["Hc"], dtype=float),
            Ec=np.array(payload["Ec"], dtype=float) * GIGA,
            Ic=np.array(payload["Ic"], dtype=float),
            Lb=np.array(payload["Lb"], dtype=float),
            depth=float(payload["depth"]),
            floor_load=float(payload["floor_load"]) * KILO,
            base_condition=int(payload.get("base_condition", 1)),
            damping_ratio=float(payload.get("damping_ratio", 0.0)),
        )

    @staticmethod
    def create_from_matrices(payload: dict) -> StructureModel:
        """
        Model from explicit (already consistent) M and K plus an optional
        damping block:
            {"rayleigh": {"alpha": .., "beta": ..}}
            {"rayleigh": {"zeta": [z1, z2], "omega": [w1, w2]}}
            {"rayleigh": {"loss_tangent": eta, "omega": wf}}
        """
        model = StructureModel(M=np.array(payload["M"], dtype=float),
                               K=np.array(payload["K"], dtype=float))
        damping = payload.get("rayleigh")
        if not damping:
            return model

        if "alpha" in damping or "beta" in damping:
            alpha, beta = float(damping.get("alpha", 0.0)), float(damping.get("beta", 0.0))
        elif "zeta" in damping:
            (z1, z2), (w1, w2) = damping["zeta"], damping["omega"]
            alpha, beta = rayleigh_from_ratios(float(w1), float(w2), float(z1), float(z2))
        elif "loss_tangent" in damping:
            omega = damping.get("omega") or fundamental_frequency(model)
            alpha, beta = rayleigh_from_loss_tangent(float(damping["loss_tangent"]), float(omega))
        else:
            raise ValueError(f"Unrecognised rayleigh block: {sorted(damping)}")
        return model.with_rayleigh(alpha, beta)

    @classmethod
    def create(cls, payload: dict) -> StructureModel:
        kind = payload.get("kind", "shear_building")
        if kind == "single_dof":
            return cls.create_single_dof(payload)
        if kind == "matrices":
            return cls.create_from_matrices(payload)
        if kind == "shear_building":
            return cls.create_shear_building(payload)
        raise ValueError(f"Unknown model kind: {kind!r}")


def _initial_vector(values, dofs: int) -> np.ndarray:
    if values is None:
        return np.zeros(dofs)
    vec = np.asarray(values, dtype=float)
    if vec.size != dofs:
        raise ValueError(f"Initial condition has {vec.size} entries, model has {dofs} dofs")
    return vec


def _force_pattern(cfg: dict, dofs: int) -> np.ndarray:
    """Spatial load pattern; defaults to a unit load on the last dof (the roof)."""
    if "pattern" in cfg:
        pattern = np.asarray(cfg["pattern"], dtype=float)
        if pattern.size != dofs:
            raise ValueError(f"Load pattern has {pattern.size} entries, model has {dofs} dofs")
        return pattern * float(cfg.get("amp", 1.0)) * KILO
    pattern = np.zeros(dofs)
    pattern[-1] = float(cfg.get("amp", 1.0)) * KILO
    return pattern


def _ground_motion(cfg: dict, model: StructureModel):
    """
    Support excitation from an acceleration record given in g:
        {"type": "ground_motion", "record": "el_centro", "scale": 1.0}
        {"type": "ground_motion", "times": [...], "accel_g": [...]}
    """
    if "times" in cfg or "accel_g" in cfg:
        times, accel_g = cfg["times"], cfg["accel_g"]
    else:
        record = cfg.get("record", "el_centro")
        if record != "el_centro":
            raise ValueError(f"Unknown ground motion record: {record!r}")
        times, accel_g = el_centro_record()
    return ground_acceleration_load(model.M, times, accel_g, scale=float(cfg.get("scale", 1.0)))


def _force_function(cfg: dict, model: StructureModel):
    f_type = cfg.get("type", "harmonic")
    if f_type == "ground_motion":
        return _ground_motion(cfg, model)

    pattern = _force_pattern(cfg, model.dofs)
    if f_type == "harmonic":
        return scaled_load(pattern, harmonic(float(cfg.get("freq", 1.0))))
    if f_type == "pulse":
        return scaled_load(pattern, trapezoidal_pulse(
            ramp_end=float(cfg.get("ramp", 0.015)),
            hold_end=float(cfg.get("hold", 0.385)),
            off_time=float(cfg.get("duration", 0.4)),
        ))
    raise ValueError(f"Unknown force type: {f_type!r}")


class ModalService:
    def run(self, model: StructureModel, n_modes: int | None = None) -> dict:
        modal = ModalAnalyzer(model).run(n_modes=n_modes)
        resp = modal.as_dict()
        matrices = model.as_dict()
        resp["M_matrix"] = matrices["M"]
        resp["K_matrix"] = matrices["K"]
        return resp


class TimeSimulationService:
    def _prepare(self, model: StructureModel, payload: dict):
        dofs = model.dofs
        init_cond = payload.get("initial_conditions", {})
        x0 = _initial_vector(init_cond.get("x0"), dofs)
        v0 = _initial_vector(init_cond.get("v0"), dofs)
        integrator = TimeIntegrator(model, _force_function(payload.get("force_function", {}), model))
        return integrator, x0, v0, float(payload.get("tf", 10.0)), float(payload.get("dt", 0.02))

    def run(self, model: StructureModel, payload: dict) -> dict:
        integrator, x0, v0, tf, dt = self._prepare(model, payload)
        logger.info("Time history request: %d dofs, dt=%g, tf=%g", model.dofs, dt, tf)
        result = integrator.run(x0, v0, t_end=tf, dt=dt)
        resp = result.as_dict()
        resp["max_displacement"] = float(np.max(np.abs(result.x)))
        return resp

    async def stream(self, model: StructureModel, payload: dict):
        """Yield INIT, one DATA message per step and DONE."""
        integrator, x0, v0, tf, dt = self._prepare(model, payload)
        yield {"type": "INIT", "dofs": model.dofs, "dt": dt, "tf": tf}

        step = 0
        for t, u, v in integrator.iter_steps(x0, v0, t_end=tf, dt=dt):
            yield {
                "type": "DATA",
                "t": t,
                "x": float(u[-1]),
                "v": float(v[-1]),
                "all_x": u.tolist(),
                "all_v": v.tolist(),
            }
            step += 1
            # Let the event loop send what is queued.
            await asyncio.sleep(0)

        yield {"type": "DONE", "samples": step}


class FrequencySweepService:
    def run(self, model: StructureModel, payload: dict) -> dict:
        F = _force_pattern(payload.get("force", {}), model.dofs)
        frequencies = payload.get("frequencies")
        if frequencies is None:
            rng = payload.get("range", {})
            frequencies = np.linspace(float(rng.get("start", 0.0)),
                                      float(rng.get("stop", 10.0)),
                                      int(rng.get("points", 101)))
        unit = payload.get("unit", "hz")
        n_jobs = int(payload.get("n_jobs", 1))

        method = payload.get("method", "modal")
        logger.info("Frequency sweep request: method=%s, unit=%s, n_jobs=%d", method, unit, n_jobs)
        if method == "modal":
            n_modes = payload.get("n_modes")
            n_modes = int(n_modes) if n_modes is not None else None
            basis = ModalAnalyzer(model).run(n_modes=n_modes).basis()
            sweep = ModalFrequencySweep(model, F, basis)
        elif method == "direct":
            sweep = DirectFrequencySweep(model, F)
        else:
            raise ValueError(f"Unknown sweep method: {method!r}")

        result = sweep.run(frequencies, unit=unit, n_jobs=n_jobs)
        resp = result.as_dict()
        probe = int(payload.get("probe_dof", model.dofs - 1))
        if not 0 <= probe < model.dofs:
            raise ValueError(f"probe_dof {probe} outside 0..{model.dofs - 1}")
        resp["probe_dof"] = probe
        resp["amplitude"] = result.amplitude(probe).tolist()
        resp["phase_deg"] = result.phase(probe).tolist()
        return resp
