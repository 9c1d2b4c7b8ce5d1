"""Neural differential-algebraic equation with a differential-variable mask."""

from __future__ import annotations

import numpy as np
import torch

from neural_de.closures import dae_residual
from neural_de.errors import ConfigurationError
from neural_de.layers.base import NeuralDELayer
from neural_de.problems import ProblemClass, dae_problem


class NeuralDAE(NeuralDELayer):
    """Implicit neural DAE ``0 = F(du, u, p, t)``.

    ``F`` interleaves two sources according to ``differential_vars``:
    where the mask is true the next output of ``model([u; du])`` is used,
    elsewhere the next output of ``constraints_model(u, p, t)``.

    Parameters
    ----------
    model : nn.Module | ExplicitModel
        Network taking ``[u; du]`` and returning one residual per
        differential variable.
    constraints_model : callable
        ``constraints_model(u, p, t)`` returning one residual per
        algebraic variable.
    tspan : tuple
        ``(t0, t1)``.
    du0 : Tensor, optional
        Initial derivative guess.  Zeros when omitted.
    differential_vars : sequence of bool
        Mask marking differential (true) and algebraic (false) variables.

    Calling conventions:

    * ``nn.Module`` model: ``layer(x, du0=None, p=None) -> trajectory``
    * ``ExplicitModel``: ``layer(x, p=None, st=None, du0=None) -> (trajectory, state)``
    """

    problem_class = ProblemClass.DAE
    config_fields = NeuralDELayer.config_fields + (
        "model", "re", "constraints_model", "du0", "differential_vars",
    )

    def __init__(self, model, constraints_model, tspan, du0=None, *args, p=None,
                 differential_vars=None, **kwargs) -> None:
        if differential_vars is None:
            raise ConfigurationError("NeuralDAE needs a differential_vars mask")
        super().__init__(tspan, args, kwargs)
        self._init_single(model, p)
        self._hold("constraints_model", constraints_model)
        self.du0 = du0
        self.differential_vars = tuple(bool(b) for b in np.asarray(differential_vars, dtype=bool).reshape(-1))

    def forward(self, x, *args, **kwargs):
        if self.explicit:
            return self._forward_explicit(x, *args, **kwargs)
        return self._forward(x, *args, **kwargs)

    def _forward(self, x, du0=None, p=None):
        sol, _ = self._run(x, du0, p, None)
        return sol

    def _forward_explicit(self, x, p=None, st=None, du0=None):
        return self._run(x, du0, p, st)

    def _run(self, x, du0, p, st):
        p = self._params(p)
        if du0 is None:
            du0 = self.du0
        du0 = torch.zeros_like(x) if du0 is None else torch.as_tensor(du0, dtype=x.dtype, device=x.device)
        apply, cell = self._apply_for(self.model, self.re, st)
        f = dae_residual(apply, self.constraints_model, self.differential_vars)
        problem = dae_problem(f, du0, x, self.tspan, p, differential_vars=self.differential_vars)
        sol = self._solve(problem)
        return sol, (cell.value if cell is not None else None)
