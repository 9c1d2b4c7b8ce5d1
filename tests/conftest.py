"""Shared fixtures."""

import pytest
import torch

from neural_de.solvers import Trajectory, register_solver, unregister_solver


@pytest.fixture
def recording_solver():
    """Register a backend that records each problem and returns ``u0`` twice.

    Usage: ``calls = recording_solver("dde")``.  Whatever was registered
    under the key before is restored afterwards.
    """
    previous = {}

    def install(key):
        calls = []
        previous[key] = unregister_solver(key)

        @register_solver(key)
        def record(problem, sensealg, config):
            calls.append((problem, sensealg, config))
            t = torch.as_tensor(problem.tspan, dtype=problem.u0.dtype)
            return Trajectory(t=t, u=torch.stack([problem.u0, problem.u0]))

        return calls

    yield install

    for key, backend in previous.items():
        unregister_solver(key)
        if backend is not None:
            register_solver(key)(backend)
