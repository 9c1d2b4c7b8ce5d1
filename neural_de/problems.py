"""Problem descriptors handed to the trajectory solvers.

A descriptor is built per call and consumed immediately.  Constructors
check the structural invariants of each equation class; everything
solver-specific is left to the backend.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, Tuple

import numpy as np
import torch

from neural_de.closures import basic_tgrad
from neural_de.errors import ConfigurationError, ShapeMismatch


class ProblemClass(enum.Enum):
    ODE = "ode"
    SDE = "sde"
    DDE = "dde"
    DAE = "dae"


TimeSpan = Tuple[float, float]


# ─────────────────────────────────────────────────────────────────────
# Function descriptors
# ─────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ODEFunction:
    """Right-hand side ``f(u, p, t)`` with optional mass matrix."""

    f: Callable
    tgrad: Callable = basic_tgrad
    mass_matrix: Optional[torch.Tensor] = None


@dataclass(frozen=True)
class SDEFunction:
    """Drift ``f(u, p, t)`` and diffusion ``g(u, p, t)``."""

    f: Callable
    g: Callable
    tgrad: Callable = basic_tgrad


@dataclass(frozen=True)
class DDEFunction:
    """Delay right-hand side ``f(u, h, p, t)``."""

    f: Callable
    tgrad: Callable = basic_tgrad


# ─────────────────────────────────────────────────────────────────────
# Problems
# ─────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ODEProblem:
    f: ODEFunction
    u0: torch.Tensor
    tspan: TimeSpan
    p: torch.Tensor

    problem_class = ProblemClass.ODE

    @property
    def has_mass_matrix(self) -> bool:
        return self.f.mass_matrix is not None


@dataclass(frozen=True)
class SDEProblem:
    """Stochastic problem.

    ``noise_rate_prototype`` is ``None`` for diagonal noise and a zero
    matrix of shape ``(state_dim, nbrown)`` for general noise.
    """

    f: SDEFunction
    u0: torch.Tensor
    tspan: TimeSpan
    p: torch.Tensor
    noise_rate_prototype: Optional[torch.Tensor] = None

    problem_class = ProblemClass.SDE

    @property
    def noise_type(self) -> str:
        return "diagonal" if self.noise_rate_prototype is None else "general"

    @property
    def nbrown(self) -> int:
        if self.noise_rate_prototype is None:
            return int(self.u0.shape[-1])
        return int(self.noise_rate_prototype.shape[-1])


@dataclass(frozen=True)
class DDEProblem:
    f: DDEFunction
    u0: torch.Tensor
    h: Callable
    tspan: TimeSpan
    p: torch.Tensor
    constant_lags: Tuple[float, ...]

    problem_class = ProblemClass.DDE


@dataclass(frozen=True)
class DAEProblem:
    """Implicit problem ``f(du, u, p, t) = 0``."""

    f: Callable
    du0: torch.Tensor
    u0: torch.Tensor
    tspan: TimeSpan
    p: torch.Tensor
    differential_vars: Tuple[bool, ...]

    problem_class = ProblemClass.DAE


# ─────────────────────────────────────────────────────────────────────
# Constructors
# ─────────────────────────────────────────────────────────────────────

def ode_problem(f, u0, tspan, p, *, mass_matrix=None, tgrad=basic_tgrad) -> ODEProblem:
    if mass_matrix is not None:
        mass_matrix = torch.as_tensor(mass_matrix)
        n = u0.shape[-1]
        if mass_matrix.dim() != 2 or tuple(mass_matrix.shape) != (n, n):
            raise ShapeMismatch(
                f"Mass matrix has shape {tuple(mass_matrix.shape)}, "
                f"expected ({n}, {n}) for a state of size {n}"
            )
    return ODEProblem(ODEFunction(f, tgrad, mass_matrix), u0, tuple(tspan), p)


def sde_problem(f, g, u0, tspan, p, *, nbrown=None, tgrad=basic_tgrad) -> SDEProblem:
    """Diagonal noise when *nbrown* is ``None``, general noise otherwise."""
    prototype = None
    if nbrown is not None:
        if int(nbrown) < 1:
            raise ConfigurationError(f"nbrown must be positive, got {nbrown}")
        prototype = torch.zeros(u0.shape[-1], int(nbrown), dtype=u0.dtype, device=u0.device)
    return SDEProblem(SDEFunction(f, g, tgrad), u0, tuple(tspan), p, prototype)


def dde_problem(f, u0, h, tspan, p, *, constant_lags: Sequence[float], tgrad=basic_tgrad) -> DDEProblem:
    if h is None or constant_lags is None:
        raise ConfigurationError("Delay problems need both a history function and lags")
    return DDEProblem(DDEFunction(f, tgrad), u0, h, tuple(tspan), p, tuple(float(lag) for lag in constant_lags))


def dae_problem(f, du0, u0, tspan, p, *, differential_vars: Sequence[bool]) -> DAEProblem:
    if differential_vars is None:
        raise ConfigurationError("DAE problems need a differential_vars mask")
    mask = np.asarray(differential_vars, dtype=bool).reshape(-1)
    n = int(u0.shape[-1])
    if mask.size != n:
        raise ShapeMismatch(f"differential_vars has length {mask.size}, state has size {n}")
    if du0.shape != u0.shape:
        raise ShapeMismatch(
            f"du0 has shape {tuple(du0.shape)}, u0 has shape {tuple(u0.shape)}"
        )
    return DAEProblem(f, du0, u0, tuple(tspan), p, tuple(bool(b) for b in mask))


def problem_kind(problem: Any) -> ProblemClass:
    try:
        return problem.problem_class
    except AttributeError:
        raise TypeError(f"{type(problem).__name__} is not a problem descriptor") from None
