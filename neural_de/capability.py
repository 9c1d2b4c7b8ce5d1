"""Model capabilities accepted by the differential layers.

Two shapes of model are supported:

* **self-contained**: any ``torch.nn.Module``.  Its parameters are
  flattened once at construction and re-injected from the current
  parameter vector on every evaluation (see :mod:`neural_de.packing`).
* **explicit-state**: an :class:`ExplicitModel`, called as
  ``model(x, params, state) -> (y, new_state)``.  State is threaded
  explicitly and never stored inside the model.

The kind is resolved once, at layer construction, by :func:`model_kind`.
"""

from __future__ import annotations

import abc
import enum
from typing import Any, Dict, Optional, Tuple

import torch
from torch import nn
from torch.func import functional_call

from neural_de.packing import Restructure, check_length, flatten


class ModelKind(enum.Enum):
    SELF_CONTAINED = "self_contained"
    EXPLICIT_STATE = "explicit_state"


class ExplicitModel(abc.ABC):
    """Interface of an explicit-state model.

    Subclasses own no trainable tensors.  Parameters arrive as a flat
    vector on every call and the returned state replaces the one passed
    in.
    """

    @property
    @abc.abstractmethod
    def parameter_count(self) -> int:
        """Length of the flat parameter vector this model consumes."""

    @abc.abstractmethod
    def init_params(self) -> torch.Tensor:
        """Return a fresh flat parameter vector."""

    def init_state(self) -> Any:
        """Return the initial state.  Stateless models return an empty dict."""
        return {}

    @abc.abstractmethod
    def __call__(self, x: torch.Tensor, params: torch.Tensor, state: Any) -> Tuple[torch.Tensor, Any]:
        ...


class ExplicitModule(ExplicitModel):
    """Explicit-state view of an ``nn.Module``.

    Parameters come from the flat vector; the module's buffers (running
    statistics and the like) form the state.  In-place buffer updates done
    by the module during a forward pass land in the copies returned as the
    new state, never in the wrapped module.

    Parameters
    ----------
    module : nn.Module
        Template network.  Its current parameters are the values returned
        by :meth:`init_params`.
    """

    def __init__(self, module: nn.Module) -> None:
        self.module = module
        self._init_vector, self._restructure = flatten(module)

    @property
    def parameter_count(self) -> int:
        return self._restructure.numel

    @property
    def restructure(self) -> Restructure:
        return self._restructure

    def init_params(self) -> torch.Tensor:
        return self._init_vector.clone()

    def init_state(self) -> Dict[str, torch.Tensor]:
        return {name: buf.detach().clone() for name, buf in self.module.named_buffers()}

    def __call__(self, x, params, state):
        check_length(params, self.parameter_count)
        new_state = {name: buf.clone() for name, buf in (state or {}).items()}
        tensors = dict(self._restructure.unflatten(params))
        tensors.update(new_state)
        y = functional_call(self.module, tensors, (x,))
        return y, new_state

    def __repr__(self) -> str:
        return f"ExplicitModule({type(self.module).__name__}, params={self.parameter_count})"


def model_kind(model: Any) -> ModelKind:
    """Classify *model* as self-contained or explicit-state."""
    if isinstance(model, ExplicitModel):
        return ModelKind.EXPLICIT_STATE
    if isinstance(model, nn.Module):
        return ModelKind.SELF_CONTAINED
    raise TypeError(
        f"Expected an nn.Module or ExplicitModel, got {type(model).__name__}"
    )


def initial_vector(model: Any, kind: Optional[ModelKind] = None) -> Tuple[torch.Tensor, Optional[Restructure]]:
    """Return ``(default_vector, rebuild)`` for a model of either kind.

    Explicit-state models have no rebuild step; ``None`` is returned in
    its place and the vector is sliced directly at call time.
    """
    kind = kind or model_kind(model)
    if kind is ModelKind.EXPLICIT_STATE:
        return model.init_params(), None
    return flatten(model)
