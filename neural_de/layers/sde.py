"""Neural SDE layers with diagonal and general noise."""

from __future__ import annotations

from neural_de.closures import general_noise, sliced_dynamics
from neural_de.errors import ConfigurationError
from neural_de.layers.base import NeuralDELayer
from neural_de.problems import ProblemClass, sde_problem


class _NeuralSDEBase(NeuralDELayer):
    """Drift and diffusion networks sharing one packed vector ``[p1; p2]``.

    ``split_offset`` is ``len(p1)``: the drift sees ``p[:split_offset]``,
    the diffusion ``p[split_offset:]``.
    """

    problem_class = ProblemClass.SDE
    config_fields = NeuralDELayer.config_fields + ("drift", "diffusion", "re1", "re2", "split_offset")
    nbrown = None

    def __init__(self, drift, diffusion, tspan, args, kwargs, p=None) -> None:
        super().__init__(tspan, args, kwargs)
        self._init_pair(drift, diffusion, p)
        self._hold("drift", drift)
        self._hold("diffusion", diffusion)

    def _diffusion_closure(self, apply):
        return sliced_dynamics(apply, self.split_offset)

    def forward(self, x, p=None, st1=None, st2=None):
        p = self._params(p)
        drift_apply, cell1 = self._apply_for(self.drift, self.re1, st1)
        diffusion_apply, cell2 = self._apply_for(self.diffusion, self.re2, st2)

        f = sliced_dynamics(drift_apply, 0, self.split_offset)
        g = self._diffusion_closure(diffusion_apply)
        problem = sde_problem(f, g, x, self.tspan, p, nbrown=self.nbrown)
        sol = self._solve(problem)
        if cell1 is None:
            return sol
        return sol, cell1.value, cell2.value


class NeuralDSDE(_NeuralSDEBase):
    """Neural SDE with diagonal noise.

    Each state coordinate is driven by its own Brownian motion, so the
    diffusion network must output a tensor shaped like the state.
    Gradients default to autodiff through the solver.

    Parameters
    ----------
    drift, diffusion : nn.Module | ExplicitModel
        Networks for the drift and diffusion terms (same kind).
    tspan : tuple
        ``(t0, t1)``.
    """

    def __init__(self, drift, diffusion, tspan, *args, p=None, **kwargs) -> None:
        super().__init__(drift, diffusion, tspan, args, kwargs, p=p)


class NeuralSDE(_NeuralSDEBase):
    """Neural SDE with general (non-diagonal) noise.

    The diffusion network's output is reshaped to a
    ``(state_dim, nbrown)`` noise-rate matrix per sample.

    Parameters
    ----------
    drift, diffusion : nn.Module | ExplicitModel
        Networks for the drift and diffusion terms (same kind).
    tspan : tuple
        ``(t0, t1)``.
    nbrown : int
        Number of Brownian processes.
    """

    config_fields = _NeuralSDEBase.config_fields + ("nbrown",)

    def __init__(self, drift, diffusion, tspan, nbrown, *args, p=None, **kwargs) -> None:
        if nbrown is None or int(nbrown) < 1:
            raise ConfigurationError(f"nbrown must be a positive integer, got {nbrown!r}")
        super().__init__(drift, diffusion, tspan, args, kwargs, p=p)
        self.nbrown = int(nbrown)

    def _diffusion_closure(self, apply):
        return general_noise(apply, self.nbrown, self.split_offset)
