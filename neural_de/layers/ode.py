"""Neural ODE and mass-matrix neural ODE layers."""

from __future__ import annotations

import torch

from neural_de.closures import mass_matrix_dynamics, ode_dynamics
from neural_de.errors import ConfigurationError, ShapeMismatch
from neural_de.layers.base import NeuralDELayer
from neural_de.problems import ProblemClass, ode_problem


class NeuralODE(NeuralDELayer):
    """Continuous-time network ``du/dt = model(u)``.

    Gradients default to an interpolating adjoint.

    Parameters
    ----------
    model : nn.Module | ExplicitModel
        Network defining ``du/dt``.
    tspan : tuple
        ``(t0, t1)``.
    *args
        Positional solver arguments (the method name).
    p : Tensor, optional
        Default parameter vector.  Defaults to the flattened model.
    **kwargs
        Solver configuration (``saveat``, ``rtol``, ``sensealg``, ...).

    Calling a layer built on an ``nn.Module`` returns a
    :class:`~neural_de.solvers.Trajectory`; calling one built on an
    :class:`~neural_de.capability.ExplicitModel` returns
    ``(trajectory, state)``.
    """

    problem_class = ProblemClass.ODE
    config_fields = NeuralDELayer.config_fields + ("model", "re")

    def __init__(self, model, tspan, *args, p=None, **kwargs) -> None:
        super().__init__(tspan, args, kwargs)
        self._init_single(model, p)

    def forward(self, x, p=None, st=None):
        p = self._params(p)
        apply, cell = self._apply_for(self.model, self.re, st)
        problem = ode_problem(ode_dynamics(apply), x, self.tspan, p)
        sol = self._solve(problem)
        if cell is None:
            return sol
        return sol, cell.value


class NeuralODEMM(NeuralDELayer):
    """Neural ODE with a mass matrix, ``M du/dt = [model(u); constraints(u, p, t)]``.

    ``M`` is semi-explicit: singular rows encode the algebraic constraints.
    Model outputs fill the first rows, constraint outputs the rest.

    Parameters
    ----------
    model : nn.Module | ExplicitModel
        Network for the differential rows.
    constraints_model : callable
        ``constraints_model(u, p, t)`` for the algebraic rows.
    tspan : tuple
        ``(t0, t1)``.
    mass_matrix : array-like
        Square matrix matching the state size.  Non-identity matrices need a
        solver registered under ``"ode_mass_matrix"``.
    """

    problem_class = ProblemClass.ODE
    config_fields = NeuralDELayer.config_fields + ("model", "re", "constraints_model", "mass_matrix")

    def __init__(self, model, constraints_model, tspan, mass_matrix, *args, p=None, **kwargs) -> None:
        super().__init__(tspan, args, kwargs)
        if mass_matrix is None:
            raise ConfigurationError("NeuralODEMM needs a mass matrix")
        mass_matrix = torch.as_tensor(mass_matrix)
        if mass_matrix.dim() != 2 or mass_matrix.shape[0] != mass_matrix.shape[1]:
            raise ShapeMismatch(f"Mass matrix must be square, got shape {tuple(mass_matrix.shape)}")
        self._init_single(model, p)
        self._hold("constraints_model", constraints_model)
        self.register_buffer("mass_matrix", mass_matrix)

    def forward(self, x, p=None, st=None):
        p = self._params(p)
        apply, cell = self._apply_for(self.model, self.re, st)
        f = mass_matrix_dynamics(apply, self.constraints_model, size=self.mass_matrix.shape[0])
        problem = ode_problem(f, x, self.tspan, p, mass_matrix=self.mass_matrix)
        sol = self._solve(problem)
        if cell is None:
            return sol
        return sol, cell.value
