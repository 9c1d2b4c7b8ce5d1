"""Trajectory solver registry with decorator-based registration.

Problem descriptors are dispatched to a backend by key:

* ``"ode"``            : plain ODE (or identity mass matrix), ``torchdiffeq``
* ``"ode_mass_matrix"``: ODE with a non-identity mass matrix
* ``"sde"``            : diagonal or general noise SDE, ``torchsde``
* ``"dde"``            : constant-lag delay equation
* ``"dae"``            : implicit, masked DAE

Only ``"ode"`` and ``"sde"`` ship with a backend.  The others are
registered by the caller::

    from neural_de.solvers import register_solver

    @register_solver("dde")
    def my_dde_solver(problem, sensealg, config):
        ...
        return Trajectory(t=ts, u=us)

A backend receives the problem, the resolved sensitivity strategy and a
:class:`~neural_de.config.SolverConfig`, and returns a
:class:`Trajectory`.  Exceptions raised by a backend propagate unchanged.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import torch
from torch import nn

from neural_de.config import SolverConfig
from neural_de.errors import SolverNotFoundError
from neural_de.problems import ProblemClass, problem_kind
from neural_de.sensitivity import as_sensealg, default_sensealg

# Registry: key → backend callable
_REGISTRY: Dict[str, Callable] = {}

_FIXED_GRID_METHODS = {"euler", "midpoint", "heun2", "heun3", "rk4", "explicit_adams", "implicit_adams"}


# ─────────────────────────────────────────────────────────────────────
# Result
# ─────────────────────────────────────────────────────────────────────

@dataclass
class Trajectory:
    """Solver output: ``u[i]`` is the state at ``t[i]``."""

    t: torch.Tensor
    u: torch.Tensor
    stats: Dict[str, Any] = field(default_factory=dict)

    def __len__(self) -> int:
        return int(self.t.shape[0])

    def __getitem__(self, i):
        return self.u[i]

    @property
    def final(self) -> torch.Tensor:
        return self.u[-1]


# ─────────────────────────────────────────────────────────────────────
# Registry
# ─────────────────────────────────────────────────────────────────────

def register_solver(key: str):
    """Function decorator registering a backend under *key*."""

    def decorator(fn):
        if key in _REGISTRY:
            raise ValueError(
                f"Duplicate solver registration: '{key}' already maps to "
                f"{_REGISTRY[key].__name__}, cannot register {fn.__name__}"
            )
        _REGISTRY[key] = fn
        return fn

    return decorator


def unregister_solver(key: str) -> Optional[Callable]:
    """Remove and return the backend registered under *key*."""
    return _REGISTRY.pop(key, None)


def get_solver(key: str) -> Callable:
    if key not in _REGISTRY:
        hint = ""
        if key in ("dde", "dae", "ode_mass_matrix"):
            hint = f" Register one with @register_solver({key!r})."
        raise SolverNotFoundError(
            f"No solver registered for '{key}'. Available: {', '.join(sorted(_REGISTRY))}.{hint}"
        )
    return _REGISTRY[key]


def list_solvers() -> List[str]:
    return sorted(_REGISTRY)


def _is_identity(m: torch.Tensor) -> bool:
    eye = torch.eye(m.shape[0], dtype=m.dtype, device=m.device)
    return bool(torch.equal(m, eye))


def solver_key(problem) -> str:
    """Registry key a problem dispatches to."""
    kind = problem_kind(problem)
    if kind is ProblemClass.ODE:
        mm = problem.f.mass_matrix
        if mm is not None and not _is_identity(mm):
            return "ode_mass_matrix"
        return "ode"
    return kind.value


def solve(problem, *args, sensealg=None, logger=None, **kwargs) -> Trajectory:
    """Integrate *problem* with the backend registered for its class.

    Parameters
    ----------
    problem
        A descriptor from :mod:`neural_de.problems`.
    *args
        Positional solver arguments; the first names the method.
    sensealg
        Gradient strategy.  Defaults to the per-class default.
    logger
        :class:`~neural_de.wandb_logger.WandbLogger` or *None*.
    **kwargs
        Solver configuration, see :class:`~neural_de.config.SolverConfig`.
    """
    backend = get_solver(solver_key(problem))
    cfg = SolverConfig.from_call(args, kwargs)
    if sensealg is None:
        sensealg = default_sensealg(problem.problem_class)
    sensealg = as_sensealg(sensealg)

    start = time.perf_counter()
    traj = backend(problem, sensealg, cfg)
    traj.stats.setdefault("wall_time", time.perf_counter() - start)

    if logger is not None:
        logger.log_solve(traj)
    return traj


# ─────────────────────────────────────────────────────────────────────
# Shared helpers
# ─────────────────────────────────────────────────────────────────────

class _Counted:
    """Counts evaluations of a right-hand side."""

    def __init__(self, fn: Callable) -> None:
        self.fn = fn
        self.nfe = 0

    def __call__(self, *args):
        self.nfe += 1
        return self.fn(*args)


def _gradient_mode(sensealg) -> str:
    """How a built-in backend differentiates the solve."""
    return "backsolve_adjoint" if sensealg.continuous else "direct"


def time_grid(tspan, saveat, like: torch.Tensor) -> torch.Tensor:
    """Output times: *saveat* when given, else the two ends of *tspan*."""
    if saveat is None:
        grid = torch.as_tensor(tspan, dtype=like.dtype, device=like.device)
    else:
        grid = torch.as_tensor(saveat, dtype=like.dtype, device=like.device).reshape(-1)
        if float(grid[0]) != float(tspan[0]):
            raise ValueError(
                f"saveat must start at the initial time {tspan[0]}, got {float(grid[0])}"
            )
    return grid


# ─────────────────────────────────────────────────────────────────────
# Built-in backends
# ─────────────────────────────────────────────────────────────────────

@register_solver("ode")
def solve_ode(problem, sensealg, cfg: SolverConfig) -> Trajectory:
    """``torchdiffeq`` backend.

    Continuous strategies run as ``odeint_adjoint``, which re-solves the
    state backwards (backsolve); :class:`DirectAutodiff` runs ``odeint``.
    """
    try:
        import torchdiffeq
    except ImportError as exc:
        raise ImportError("torchdiffeq required. Install with: pip install torchdiffeq") from exc

    f, p = problem.f.f, problem.p
    rhs = _Counted(lambda t, y: f(y, p, t))
    t = time_grid(problem.tspan, cfg.saveat, problem.u0)

    options = dict(cfg.options)
    if cfg.dt is not None and cfg.method in _FIXED_GRID_METHODS:
        options.setdefault("step_size", cfg.dt)
    kw: Dict[str, Any] = dict(rtol=cfg.rtol, atol=cfg.atol, method=cfg.method)
    if options:
        kw["options"] = options
    kw.update(cfg.extra)

    if sensealg.continuous:
        if cfg.adjoint_method is not None:
            kw["adjoint_method"] = cfg.adjoint_method
        if cfg.adjoint_options:
            kw["adjoint_options"] = dict(cfg.adjoint_options)
        u = torchdiffeq.odeint_adjoint(rhs, problem.u0, t, adjoint_params=(p,), **kw)
    else:
        u = torchdiffeq.odeint(rhs, problem.u0, t, **kw)
    return Trajectory(t=t, u=u, stats={"nfe": rhs.nfe, "gradient": _gradient_mode(sensealg)})


class _TorchSDE(nn.Module):
    """Adapts an :class:`~neural_de.problems.SDEProblem` to ``torchsde``'s ``f``/``g`` protocol."""

    def __init__(self, problem, sde_type: str) -> None:
        super().__init__()
        self.noise_type = problem.noise_type
        self.sde_type = sde_type
        self._drift = _Counted(problem.f.f)
        self._diffusion = problem.f.g
        self._p = problem.p

    @property
    def nfe(self) -> int:
        return self._drift.nfe

    def f(self, t, y):
        return self._drift(y, self._p, t)

    def g(self, t, y):
        return self._diffusion(y, self._p, t)


@register_solver("sde")
def solve_sde(problem, sensealg, cfg: SolverConfig) -> Trajectory:
    """``torchsde`` backend.

    Continuous strategies run as ``sdeint_adjoint`` (backsolve);
    :class:`DirectAutodiff` runs ``sdeint``.
    """
    try:
        import torchsde
    except ImportError as exc:
        raise ImportError("torchsde required. Install with: pip install torchsde") from exc

    u0 = problem.u0
    squeeze = u0.dim() == 1
    y0 = u0.unsqueeze(0) if squeeze else u0
    ts = time_grid(problem.tspan, cfg.saveat, y0)
    sde = _TorchSDE(problem, cfg.sde_type)

    kw: Dict[str, Any] = {"method": cfg.method, "dt": cfg.dt if cfg.dt is not None else 1e-3}
    if cfg.options:
        kw["options"] = dict(cfg.options)
    if cfg.extra.get("adaptive"):
        kw.update(rtol=cfg.rtol, atol=cfg.atol)
    kw.update(cfg.extra)
    if cfg.seed is not None and "bm" not in kw:
        kw["bm"] = torchsde.BrownianInterval(
            t0=float(ts[0]),
            t1=float(ts[-1]),
            size=(y0.shape[0], problem.nbrown),
            dtype=y0.dtype,
            device=y0.device,
            entropy=int(cfg.seed),
        )

    if sensealg.continuous:
        if cfg.adjoint_method is not None:
            kw["adjoint_method"] = cfg.adjoint_method
        if cfg.adjoint_options:
            kw["adjoint_options"] = dict(cfg.adjoint_options)
        u = torchsde.sdeint_adjoint(sde, y0, ts, adjoint_params=(problem.p,), **kw)
    else:
        u = torchsde.sdeint(sde, y0, ts, **kw)
    if squeeze:
        u = u.squeeze(1)
    return Trajectory(t=ts, u=u, stats={"nfe": sde.nfe, "gradient": _gradient_mode(sensealg)})
