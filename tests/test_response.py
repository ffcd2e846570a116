import os
import sys
import numpy as np
import pytest

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.dirname(CURRENT_DIR)
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import dyn_core.response as response
from dyn_core.linalg import FactorizationError
from dyn_core.loads import constant_load, harmonic, scaled_load
from dyn_core.response import TimeIntegrator
from dyn_core.structures import ShearBuilding, SingleDOF, StructureModel


def _zero_load(model):
    def f_func(t: float) -> np.ndarray:
        return np.zeros(model.dofs)
    return f_func


def _random_spd(rng, n):
    A = rng.normal(size=(n, n))
    return A @ A.T + n * np.eye(n)


def test_uncoupled_two_dof_oscillates_as_cosine():
    """
    M = I, K = diag(1, 4), C = 0, U0 = (1, 0): the first coordinate follows
    cos(t), the second one stays at rest.
    """
    model = StructureModel(M=np.eye(2), K=np.diag([1.0, 4.0]))
    result = TimeIntegrator(model, _zero_load(model)).run(
        np.array([1.0, 0.0]), np.zeros(2), t_end=1.0, dt=0.1)

    assert result.t.shape == (11,)
    assert result.t[0] == 0.0
    assert result.t[-1] == 1.0
    assert np.allclose(result.t, np.linspace(0.0, 1.0, 11), atol=1e-12)
    assert np.allclose(result.x[0], np.cos(result.t), atol=2e-3)
    assert np.all(result.x[1] == 0.0)
    assert np.all(result.v[1] == 0.0)


def test_time_history_single_dof_damped_decays():
    model = SingleDOF.from_parameters(m=1.0, k=4.0, c=0.5)
    integrator = TimeIntegrator(model, _zero_load(model))

    result = integrator.run(np.array([0.1]), np.array([0.0]), t_end=10.0, dt=0.01)

    assert np.isclose(result.x[0, 0], 0.1)
    # zeta = 0.125, envelope exp(-zeta * w * t) = exp(-2.5) at t = 10
    assert abs(result.x[0, -1]) < 0.01
    assert np.max(np.abs(result.x[0])) <= 0.1 + 1e-12


def test_damped_mdof_energy_never_increases():
    rng = np.random.default_rng(7)
    n = 6
    M = _random_spd(rng, n)
    K = 50.0 * _random_spd(rng, n)
    model = StructureModel(M=M, K=K).with_rayleigh(0.3, 0.002)

    u0 = rng.normal(size=n)
    result = TimeIntegrator(model, _zero_load(model)).run(u0, np.zeros(n), t_end=3.0, dt=0.02)
    energy = result.energy(model)

    assert np.all(np.diff(energy) <= 1e-12 * energy[0])
    assert energy[-1] < energy[0]


def test_single_dof_energy_conservation_without_damping():
    m, k = 1.0, 4.0
    model = SingleDOF.from_parameters(m=m, k=k, c=0.0)
    result = TimeIntegrator(model, _zero_load(model)).run(
        np.array([0.1]), np.array([0.0]), t_end=10.0, dt=0.005)

    x = result.x[0, :]
    v = result.v[0, :]
    E = 0.5 * k * x ** 2 + 0.5 * m * v ** 2

    assert np.max(np.abs(E - E[0])) / E[0] < 1e-9


def test_undamped_mdof_energy_is_conserved():
    rng = np.random.default_rng(11)
    n = 5
    model = StructureModel(M=_random_spd(rng, n), K=20.0 * _random_spd(rng, n))
    result = TimeIntegrator(model, _zero_load(model)).run(
        rng.normal(size=n), rng.normal(size=n), t_end=5.0, dt=0.05)
    energy = result.energy(model)

    assert np.max(np.abs(energy - energy[0])) / energy[0] < 1e-9


@pytest.mark.parametrize("t_end, dt", [(1.0, 0.1), (1.05, 0.1), (0.3, 0.1), (2.0, 0.3), (0.05, 0.1)])
def test_time_axis_and_step_count(t_end, dt):
    model = SingleDOF.from_parameters(m=1.0, k=4.0, c=0.1)
    result = TimeIntegrator(model, _zero_load(model)).run(
        np.array([0.1]), np.array([0.0]), t_end=t_end, dt=dt)

    n_nominal = int(np.ceil(t_end / dt - 1e-9))
    assert result.t[0] == 0.0
    assert result.t[-1] == t_end
    assert np.all(np.diff(result.t) > 0.0)
    assert n_nominal <= result.n_steps <= n_nominal + 1
    assert result.x.shape == (1, result.n_steps + 1)


def test_truncated_final_step_is_refactorized(monkeypatch):
    model = SingleDOF.from_parameters(m=1.0, k=4.0, c=0.2)
    calls = []
    real_factor = response.factor_dynamic_stiffness

    def counting(M, C, K, dt):
        calls.append(dt)
        return real_factor(M, C, K, dt)

    monkeypatch.setattr(response, "factor_dynamic_stiffness", counting)

    integrator = TimeIntegrator(model, _zero_load(model))
    result = integrator.run(np.array([0.1]), np.array([0.0]), t_end=1.05, dt=0.1)

    assert result.n_steps == 11
    assert len(calls) == 2
    assert calls[0] == 0.1
    assert np.isclose(calls[1], 0.05)

    # The last step must match a fresh half-size step from the state at t = 1.0
    first = integrator.run(np.array([0.1]), np.array([0.0]), t_end=1.0, dt=0.1)
    tail = integrator.run(first.x[:, -1], first.v[:, -1], t_end=0.05, dt=0.05)
    assert np.allclose(result.x[:, -1], tail.x[:, -1], rtol=1e-12, atol=1e-15)
    assert np.allclose(result.v[:, -1], tail.v[:, -1], rtol=1e-12, atol=1e-15)


def test_exact_multiple_does_not_refactorize(monkeypatch):
    model = SingleDOF.from_parameters(m=1.0, k=4.0)
    calls = []
    real_factor = response.factor_dynamic_stiffness

    def counting(M, C, K, dt):
        calls.append(dt)
        return real_factor(M, C, K, dt)

    monkeypatch.setattr(response, "factor_dynamic_stiffness", counting)
    TimeIntegrator(model, _zero_load(model)).run(np.array([0.1]), np.array([0.0]), t_end=0.3, dt=0.1)

    assert calls == [0.1]


def test_non_spd_dynamic_stiffness_is_fatal():
    model = StructureModel(M=np.eye(2), K=-10.0 * np.eye(2))
    integrator = TimeIntegrator(model, _zero_load(model))

    with pytest.raises(FactorizationError):
        integrator.run(np.ones(2), np.zeros(2), t_end=1.0, dt=1.0)


def test_non_spd_sparse_dynamic_stiffness_is_fatal():
    import scipy.sparse as sp

    model = StructureModel(M=sp.identity(3, format="csr"), K=sp.diags([-10.0, 1.0, 1.0], format="csr"))
    integrator = TimeIntegrator(model, _zero_load(model))

    with pytest.raises(FactorizationError):
        integrator.run(np.ones(3), np.zeros(3), t_end=1.0, dt=1.0)


def test_invalid_configuration_is_rejected():
    model = SingleDOF.from_parameters(m=1.0, k=4.0)
    integrator = TimeIntegrator(model, _zero_load(model))

    with pytest.raises(ValueError):
        integrator.run(np.array([0.1, 0.0]), np.array([0.0]), t_end=1.0, dt=0.1)
    with pytest.raises(ValueError):
        integrator.run(np.array([0.1]), np.array([0.0]), t_end=1.0, dt=0.0)
    with pytest.raises(ValueError):
        integrator.run(np.array([0.1]), np.array([0.0]), t_end=0.0, dt=0.1)
    with pytest.raises(ValueError):
        TimeIntegrator(model, lambda t: np.zeros(3)).run(
            np.array([0.1]), np.array([0.0]), t_end=1.0, dt=0.1)


def test_constant_load_settles_on_static_solution():
    model = SingleDOF.from_parameters(m=1.0, k=4.0, c=4.0)   # critically damped
    result = TimeIntegrator(model, constant_load(np.array([2.0]))).run(
        np.zeros(1), np.zeros(1), t_end=20.0, dt=0.01)

    assert np.isclose(result.x[0, -1], 0.5, atol=1e-6)


def test_sparse_and_dense_models_agree():
    masses = np.linspace(1.0, 2.0, 8)
    k_story = np.linspace(400.0, 200.0, 8)
    dense = ShearBuilding.from_story_data(masses, k_story).with_rayleigh(0.1, 0.001)
    sparse = ShearBuilding.from_story_data(masses, k_story, sparse=True).with_rayleigh(0.1, 0.001)

    F = np.zeros(8)
    F[-1] = 10.0
    load = scaled_load(F, harmonic(3.0))

    r_dense = TimeIntegrator(dense, load).run(np.zeros(8), np.zeros(8), t_end=2.0, dt=0.01)
    r_sparse = TimeIntegrator(sparse, load).run(np.zeros(8), np.zeros(8), t_end=2.0, dt=0.01)

    assert np.allclose(r_sparse.x, r_dense.x, rtol=1e-9, atol=1e-12)


def test_recorded_dofs_subset():
    model = ShearBuilding.from_story_data(np.ones(4), np.full(4, 100.0))
    result = TimeIntegrator(model, _zero_load(model)).run(
        np.arange(4.0), np.zeros(4), t_end=0.5, dt=0.1, dofs=[3])

    assert result.x.shape == (1, 6)
    assert result.x[0, 0] == 3.0
    with pytest.raises(ValueError):
        result.energy(model)


def test_results_are_read_only_and_iter_steps_yields_copies():
    model = SingleDOF.from_parameters(m=1.0, k=4.0)
    integrator = TimeIntegrator(model, _zero_load(model))

    steps = list(integrator.iter_steps(np.array([1.0]), np.array([0.0]), t_end=0.3, dt=0.1))
    assert [t for t, _, _ in steps] == pytest.approx([0.0, 0.1, 0.2, 0.3])
    assert steps[0][1][0] == 1.0
    assert steps[1][1][0] != steps[2][1][0]

    result = integrator.run(np.array([1.0]), np.array([0.0]), t_end=0.3, dt=0.1)
    with pytest.raises(ValueError):
        result.x[0, 0] = 5.0
    assert len(result.samples()) == 4


def test_damping_increase_reduces_response_amplitude():
    def run_with_c(c_value: float) -> float:
        model = SingleDOF.from_parameters(m=1.0, k=4.0, c=c_value)
        integrator = TimeIntegrator(model, scaled_load(np.array([1.0]), harmonic(2.0)))
        result = integrator.run(np.zeros(1), np.zeros(1), t_end=10.0, dt=0.01)
        return float(np.max(np.abs(result.x[0, :])))

    assert run_with_c(2.0) < run_with_c(0.1)


def test_random_single_dof_models_are_stable_enough():
    rng = np.random.default_rng(123)

    for _ in range(5):
        m = float(rng.uniform(0.5, 5.0))
        k = float(rng.uniform(1.0, 20.0))
        c = float(rng.uniform(0.0, 5.0))

        model = SingleDOF.from_parameters(m=m, k=k, c=c)
        result = TimeIntegrator(model, _zero_load(model)).run(
            np.array([0.1]), np.array([0.0]), t_end=5.0, dt=0.01)

        assert np.all(np.isfinite(result.x))
        assert np.all(np.isfinite(result.v))
        assert np.max(np.abs(result.x)) <= 0.1 * np.sqrt(1.0 + 1e-9)
