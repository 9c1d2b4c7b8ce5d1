"""Shared plumbing for every differential layer."""

from __future__ import annotations

from typing import Any, ClassVar, Dict, Optional, Tuple

import torch
from torch import nn

from neural_de.capability import ModelKind, initial_vector, model_kind
from neural_de.closures import StateCell, model_apply
from neural_de.errors import ConfigurationError
from neural_de.packing import Restructure, check_length, pack
from neural_de.problems import ProblemClass
from neural_de.sensitivity import default_sensealg, resolve_sensealg
from neural_de.solvers import solve


def as_parameter(p: Optional[torch.Tensor], default: torch.Tensor) -> nn.Parameter:
    """Return the layer's default vector as an ``nn.Parameter``.

    A user-supplied *p* replaces *default* but must have the same length.
    """
    if p is None:
        p = default
    p = torch.as_tensor(p)
    check_length(p, int(default.numel()))
    if isinstance(p, nn.Parameter):
        return p
    return nn.Parameter(p.detach().clone())


class NeuralDELayer(nn.Module):
    """Base class of the differential layers.

    The flat parameter vector ``p`` is the only trainable parameter:
    sub-models are held as plain attributes, not registered as children,
    so ``layer.parameters()`` yields exactly ``p``.

    Subclass contract
    -----------------
    Set ``problem_class``, extend ``config_fields`` and implement
    ``forward``.  Use :meth:`_apply_for` to get a model evaluator for the
    current call and :meth:`_solve` to dispatch the problem.
    """

    problem_class: ClassVar[ProblemClass] = ProblemClass.ODE
    config_fields: ClassVar[Tuple[str, ...]] = ("tspan", "args", "kwargs", "p", "kind")

    def __init__(self, tspan, args: tuple, kwargs: Dict[str, Any]) -> None:
        super().__init__()
        if len(tspan) != 2:
            raise ConfigurationError(f"tspan must be (t0, t1), got {tspan!r}")
        self.tspan = (float(tspan[0]), float(tspan[1]))
        self.args = tuple(args)
        self.kwargs = dict(kwargs)

    # ── construction helpers ──────────────────────────────────────────

    def _hold(self, name: str, value: Any) -> None:
        """Store *value* without registering it as a submodule."""
        self.__dict__[name] = value

    def _init_single(self, model, p) -> None:
        self.kind = model_kind(model)
        self._hold("model", model)
        default, self.re = initial_vector(model, self.kind)
        self.p = as_parameter(p, default)

    def _init_pair(self, model1, model2, p) -> None:
        kind1, kind2 = model_kind(model1), model_kind(model2)
        if kind1 is not kind2:
            raise ConfigurationError(
                f"Both sub-models must be of the same kind, got {kind1.value} and {kind2.value}"
            )
        self.kind = kind1
        p1, self.re1 = initial_vector(model1, kind1)
        p2, self.re2 = initial_vector(model2, kind2)
        default, self.split_offset = pack(p1, p2)
        self.p = as_parameter(p, default)

    # ── per-call helpers ──────────────────────────────────────────────

    @property
    def explicit(self) -> bool:
        return self.kind is ModelKind.EXPLICIT_STATE

    def _params(self, p: Optional[torch.Tensor]) -> torch.Tensor:
        if p is None:
            return self.p
        return check_length(torch.as_tensor(p), int(self.p.numel()))

    def _apply_for(self, model, rebuild: Optional[Restructure], st=None):
        """Return ``(apply, cell)``; *cell* is ``None`` for self-contained models."""
        if not self.explicit:
            return model_apply(model, self.kind, rebuild=rebuild), None
        cell = StateCell(model.init_state() if st is None else st)
        return model_apply(model, self.kind, cell=cell), cell

    def default_sensealg(self):
        return default_sensealg(self.problem_class)

    def _solve(self, problem):
        sensealg, kwargs = resolve_sensealg(self.default_sensealg(), self.kwargs)
        return solve(problem, *self.args, sensealg=sensealg, **kwargs)

    # ── configuration lookup ──────────────────────────────────────────

    def get_config(self, name: str) -> Any:
        """Return configuration entry *name*."""
        if name not in self.config_fields:
            raise AttributeError(f"{type(self).__name__} has no configuration '{name}'")
        return getattr(self, name)

    def extra_repr(self) -> str:
        return f"kind={self.kind.value}, tspan={self.tspan}, numel={self.p.numel()}"
