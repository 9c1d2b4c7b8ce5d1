"""Tests for the solver registry, configuration and built-in backends."""

import pytest
import torch

from neural_de.config import SolverConfig
from neural_de.errors import SolverNotFoundError
from neural_de.problems import dde_problem, ode_problem
from neural_de.sensitivity import DirectAutodiff
from neural_de.solvers import (
    get_solver,
    list_solvers,
    register_solver,
    solve,
    solver_key,
    time_grid,
)


class _RecordingLogger:
    def __init__(self):
        self.records = []

    def log_solve(self, traj):
        self.records.append(traj)


def _decay(u, p, t):
    return -p * u


class TestRegistry:
    def test_builtins_registered(self):
        names = list_solvers()
        assert "ode" in names
        assert "sde" in names

    def test_duplicate_registration_raises(self):
        with pytest.raises(ValueError):
            register_solver("ode")(lambda problem, sensealg, config: None)

    def test_unregistered_class_raises(self):
        with pytest.raises(SolverNotFoundError):
            get_solver("nonexistent")
        with pytest.raises(KeyError):
            get_solver("nonexistent")

    def test_solver_key(self):
        p = torch.ones(1)
        assert solver_key(ode_problem(_decay, torch.ones(2), (0, 1), p)) == "ode"
        assert solver_key(ode_problem(_decay, torch.ones(2), (0, 1), p, mass_matrix=torch.eye(2))) == "ode"
        singular = torch.diag(torch.tensor([1.0, 0.0]))
        assert solver_key(ode_problem(_decay, torch.ones(2), (0, 1), p, mass_matrix=singular)) == "ode_mass_matrix"
        prob = dde_problem(_decay, torch.ones(2), lambda p, t: torch.ones(2), (0, 1), p, constant_lags=[0.1])
        assert solver_key(prob) == "dde"

    def test_missing_dde_backend(self):
        prob = dde_problem(_decay, torch.ones(2), lambda p, t: torch.ones(2), (0, 1), torch.ones(1),
                           constant_lags=[0.1])
        with pytest.raises(SolverNotFoundError, match="register_solver"):
            solve(prob)

    def test_solve_dispatches_with_config(self, recording_solver):
        calls = recording_solver("dde")
        prob = dde_problem(_decay, torch.ones(2), lambda p, t: torch.ones(2), (0, 1), torch.ones(1),
                           constant_lags=[0.1])
        traj = solve(prob, "method_of_steps", dt=0.01, custom=True)
        assert len(calls) == 1
        problem, sensealg, cfg = calls[0]
        assert problem is prob
        assert sensealg == DirectAutodiff()
        assert cfg.method == "method_of_steps"
        assert cfg.dt == 0.01
        assert cfg.extra == {"custom": True}
        assert "wall_time" in traj.stats


class TestSolverConfig:
    def test_from_dict_collects_unknown_keys(self):
        cfg = SolverConfig.from_dict({"rtol": 1e-3, "max_steps": 10})
        assert cfg.rtol == 1e-3
        assert cfg.extra == {"max_steps": 10}
        assert SolverConfig.from_dict(cfg.to_dict()) == cfg

    def test_from_call(self):
        cfg = SolverConfig.from_call(("rk4",), {"dt": 0.1})
        assert cfg.method == "rk4"
        assert SolverConfig.from_call(("rk4",), {"method": "euler"}).method == "euler"
        with pytest.raises(TypeError):
            SolverConfig.from_call(("rk4", "extra"), {})


def test_time_grid():
    like = torch.zeros(1, dtype=torch.float64)
    assert time_grid((0.0, 2.0), None, like).tolist() == [0.0, 2.0]
    assert time_grid((0.0, 1.0), [0.0, 0.5, 1.0], like).dtype == torch.float64
    with pytest.raises(ValueError):
        time_grid((0.0, 1.0), [0.5, 1.0], like)


class TestODEBackend:
    def test_exponential_decay(self):
        p = torch.tensor([1.0], dtype=torch.float64)
        prob = ode_problem(_decay, torch.tensor([1.0], dtype=torch.float64), (0.0, 1.0), p)
        saveat = torch.linspace(0, 1, 5, dtype=torch.float64)
        traj = solve(prob, rtol=1e-8, atol=1e-10, saveat=saveat)
        assert traj.u.shape == (5, 1)
        assert torch.allclose(traj.u[:, 0], torch.exp(-saveat), atol=1e-6)
        assert traj.stats["nfe"] > 0
        assert torch.equal(traj.final, traj.u[-1])

    def test_adjoint_and_direct_gradients_agree(self):
        u0 = torch.tensor([1.0], dtype=torch.float64)
        grads = []
        for sensealg in ("interpolating", "direct"):
            p = torch.tensor([0.7], dtype=torch.float64, requires_grad=True)
            prob = ode_problem(_decay, u0, (0.0, 1.0), p)
            traj = solve(prob, sensealg=sensealg, rtol=1e-9, atol=1e-11)
            traj.u[-1].sum().backward()
            grads.append(p.grad.clone())
        # d/dp exp(-p) = -exp(-p)
        expected = -torch.exp(torch.tensor([-0.7], dtype=torch.float64))
        assert torch.allclose(grads[0], expected, atol=1e-5)
        assert torch.allclose(grads[1], expected, atol=1e-5)

    def test_fixed_grid_method(self):
        p = torch.ones(1)
        prob = ode_problem(_decay, torch.ones(1), (0.0, 1.0), p)
        traj = solve(prob, "euler", dt=0.5)
        # two Euler steps of size 0.5: (1 - 0.5)^2
        assert torch.allclose(traj.u[-1], torch.tensor([0.25]))

    def test_logger_receives_trajectory(self):
        logger = _RecordingLogger()
        prob = ode_problem(_decay, torch.ones(1), (0.0, 1.0), torch.ones(1))
        traj = solve(prob, logger=logger)
        assert len(logger.records) == 1
        assert logger.records[0] is traj
        assert logger.records[0].stats["nfe"] > 0

    def test_singular_mass_matrix_needs_backend(self):
        singular = torch.diag(torch.tensor([1.0, 0.0]))
        prob = ode_problem(_decay, torch.ones(2), (0.0, 1.0), torch.ones(1), mass_matrix=singular)
        with pytest.raises(SolverNotFoundError):
            solve(prob)


class TestGradientMode:
    def test_odeint_call_per_strategy(self, monkeypatch):
        import torchdiffeq

        calls = []
        real_adjoint, real_direct = torchdiffeq.odeint_adjoint, torchdiffeq.odeint

        def spy_adjoint(*args, **kwargs):
            calls.append(("odeint_adjoint", kwargs))
            return real_adjoint(*args, **kwargs)

        def spy_direct(*args, **kwargs):
            calls.append(("odeint", kwargs))
            return real_direct(*args, **kwargs)

        monkeypatch.setattr(torchdiffeq, "odeint_adjoint", spy_adjoint)
        monkeypatch.setattr(torchdiffeq, "odeint", spy_direct)

        p = torch.ones(1, requires_grad=True)
        prob = ode_problem(_decay, torch.ones(1), (0.0, 1.0), p)
        adjoint = solve(prob, sensealg="interpolating")
        direct = solve(prob, sensealg="direct")

        names = [name for name, _ in calls]
        assert names[0] == "odeint_adjoint"
        assert calls[0][1]["adjoint_params"][0] is p
        assert names[-1] == "odeint"
        assert "adjoint_params" not in calls[-1][1]
        assert adjoint.stats["gradient"] == "backsolve_adjoint"
        assert direct.stats["gradient"] == "direct"
