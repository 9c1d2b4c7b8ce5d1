"""Dynamics closures built per call from a model and a parameter vector.

Every builder returns a pure function of ``(state, parameters, time)``
(plus the history function for delays and the derivative estimate for
implicit DAEs).  Self-contained models are rebuilt from the parameters
handed to the closure on *every* evaluation, never cached, so the closure
is a function of the current parameter vector and stays differentiable
with respect to it.

Explicit-state models write the state they return into a caller-owned
:class:`StateCell`.  The cell must not be read until the solve that uses
the closure has returned, and a cell must never be shared by two
concurrent solves.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

import numpy as np
import torch

from neural_de.capability import ModelKind
from neural_de.errors import ShapeMismatch
from neural_de.packing import Restructure


# ─────────────────────────────────────────────────────────────────────
# State container
# ─────────────────────────────────────────────────────────────────────

@dataclass
class StateCell:
    """Single mutable slot holding the latest state of an explicit model."""

    value: Any = None


def basic_tgrad(u: torch.Tensor, p: torch.Tensor, t: torch.Tensor) -> torch.Tensor:
    """Time gradient of an autonomous right-hand side."""
    return torch.zeros_like(u)


# ─────────────────────────────────────────────────────────────────────
# Model application
# ─────────────────────────────────────────────────────────────────────

def model_apply(
    model: Any,
    kind: ModelKind,
    rebuild: Optional[Restructure] = None,
    cell: Optional[StateCell] = None,
) -> Callable[[torch.Tensor, torch.Tensor], torch.Tensor]:
    """Return ``apply(x, p) -> y`` for either model kind."""
    if kind is ModelKind.SELF_CONTAINED:
        if rebuild is None:
            raise ValueError("Self-contained models need a rebuild function")

        def apply(x, p):
            return rebuild(p)(x)

        return apply

    if cell is None:
        raise ValueError("Explicit-state models need a StateCell")

    def apply(x, p):
        y, cell.value = model(x, p, cell.value)
        return y

    return apply


# ─────────────────────────────────────────────────────────────────────
# Builders
# ─────────────────────────────────────────────────────────────────────

def ode_dynamics(apply: Callable) -> Callable:
    """``f(u, p, t) = model(u)``."""

    def f(u, p, t):
        return apply(u, p)

    return f


def sliced_dynamics(apply: Callable, start: int, stop: Optional[int] = None) -> Callable:
    """Like :func:`ode_dynamics` but evaluated on ``p[start:stop]``.

    Used for the drift and diffusion halves of a packed SDE vector.
    """

    def f(u, p, t):
        return apply(u, p[start:stop])

    return f


def general_noise(apply: Callable, nbrown: int, start: int = 0) -> Callable:
    """Diffusion returning a ``(*u.shape, nbrown)`` noise-rate matrix."""

    def g(u, p, t):
        out = apply(u, p[start:])
        return out.reshape(*u.shape, nbrown)

    return g


def delay_dynamics(apply: Callable, lags: Sequence[float]) -> Callable:
    """``f(u, h, p, t) = model([u; h(p, t - lag_1); ...; h(p, t - lag_n)])``.

    Lagged states are appended in the order of *lags*.
    """
    lags = tuple(lags)

    def f(u, h, p, t):
        lagged = [h(p, t - lag) for lag in lags]
        return apply(torch.cat([u, *lagged], dim=-1), p)

    return f


def residual_index(mask: Sequence[bool]) -> torch.Tensor:
    """Gather index interleaving model and constraint outputs by *mask*.

    Walks the mask with two running counters: a ``True`` entry takes the
    next unused model output, a ``False`` entry the next unused constraint
    output.  Indices address ``cat([model_out, constraints_out])``.
    """
    mask = np.asarray(mask, dtype=bool).reshape(-1)
    n_diff = int(mask.sum())
    iter_nn = 0
    iter_consts = 0
    index: List[int] = []
    for isdiff in mask:
        if isdiff:
            index.append(iter_nn)
            iter_nn += 1
        else:
            index.append(n_diff + iter_consts)
            iter_consts += 1
    return torch.as_tensor(index, dtype=torch.long)


def assemble_residual(
    mask: Sequence[bool],
    nn_out: torch.Tensor,
    alg_out: torch.Tensor,
    index: Optional[torch.Tensor] = None,
) -> torch.Tensor:
    """Interleave *nn_out* and *alg_out* along the last axis according to *mask*."""
    mask = np.asarray(mask, dtype=bool).reshape(-1)
    n_diff = int(mask.sum())
    if nn_out.shape[-1] != n_diff or alg_out.shape[-1] != mask.size - n_diff:
        raise ShapeMismatch(
            f"Mask of length {mask.size} with {n_diff} differential entries cannot "
            f"hold {nn_out.shape[-1]} model outputs and {alg_out.shape[-1]} constraint outputs"
        )
    if index is None:
        index = residual_index(mask)
    stacked = torch.cat([nn_out, alg_out], dim=-1)
    return stacked.index_select(-1, index.to(stacked.device))


def dae_residual(apply: Callable, constraints: Callable, mask: Sequence[bool]) -> Callable:
    """``f(du, u, p, t)`` for the masked implicit DAE.

    The model sees ``[u; du]`` and produces the residuals of the
    differential variables; *constraints* produces those of the algebraic
    variables.
    """
    mask = np.asarray(mask, dtype=bool).reshape(-1)
    index = residual_index(mask)

    def f(du, u, p, t):
        nn_out = apply(torch.cat([u, du], dim=-1), p)
        alg_out = constraints(u, p, t)
        return assemble_residual(mask, nn_out, alg_out, index)

    return f


def mass_matrix_dynamics(apply: Callable, constraints: Callable, size: Optional[int] = None) -> Callable:
    """``f(u, p, t) = [model(u); constraints(u, p, t)]``.

    Model outputs always come first, matching the row order of the mass
    matrix.  When *size* is given the combined output is checked against
    it.
    """

    def f(u, p, t):
        out = torch.cat([apply(u, p), constraints(u, p, t)], dim=-1)
        if size is not None and out.shape[-1] != size:
            raise ShapeMismatch(
                f"Model and constraint outputs have combined size {out.shape[-1]}, "
                f"mass matrix is {size}x{size}"
            )
        return out

    return f
