"""Neural delay differential equation with constant lags."""

from __future__ import annotations

from neural_de.closures import delay_dynamics
from neural_de.errors import ConfigurationError
from neural_de.layers.base import NeuralDELayer
from neural_de.problems import ProblemClass, dde_problem


class NeuralCDDE(NeuralDELayer):
    """Neural DDE ``du/dt = model([u(t); u(t - lag_1); ...; u(t - lag_n)])``.

    Parameters
    ----------
    model : nn.Module | ExplicitModel
        Network taking the current state followed by one lagged state per
        lag, in the order of *lags*, and returning a tensor shaped like the
        state.
    tspan : tuple
        ``(t0, t1)``.
    hist : callable
        History function ``hist(p, t)`` giving the state for every
        ``t <= t0``, back to ``t0 - max(lags)``.
    lags : sequence of float
        Constant lags.
    """

    problem_class = ProblemClass.DDE
    config_fields = NeuralDELayer.config_fields + ("model", "re", "hist", "lags")

    def __init__(self, model, tspan, hist, lags, *args, p=None, **kwargs) -> None:
        if hist is None or lags is None:
            raise ConfigurationError("NeuralCDDE needs both a history function and lags")
        lags = tuple(float(lag) for lag in lags)
        if not lags:
            raise ConfigurationError("NeuralCDDE needs at least one lag")
        super().__init__(tspan, args, kwargs)
        self._init_single(model, p)
        self._hold("hist", hist)
        self.lags = lags

    def forward(self, x, p=None, st=None):
        p = self._params(p)
        apply, cell = self._apply_for(self.model, self.re, st)
        f = delay_dynamics(apply, self.lags)
        problem = dde_problem(f, x, self.hist, self.tspan, p, constant_lags=self.lags)
        sol = self._solve(problem)
        if cell is None:
            return sol
        return sol, cell.value
