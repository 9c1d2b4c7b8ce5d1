"""Augmented neural differential equations.

Lifts the initial condition by appending zero-valued dimensions before
handing it to any inner layer, following Dupont, Doucet & Teh,
"Augmented Neural ODEs" (NeurIPS 2019).
"""

from __future__ import annotations

from typing import Optional

import torch
from torch import nn

from neural_de.layers.base import NeuralDELayer


def augment(x: torch.Tensor, augment_dim: int, axis: Optional[int] = None) -> torch.Tensor:
    """Append *augment_dim* zeros to *x* along its feature axis.

    A 1-D input is extended along its only axis.  For multi-axis input the
    block is inserted along *axis*, which defaults to the second-to-last
    axis (feature-major layout with a trailing batch axis).  Pass
    ``axis=-1`` for batch-first tensors.
    """
    if augment_dim < 0:
        raise ValueError(f"augment_dim must be non-negative, got {augment_dim}")
    if x.dim() == 0:
        raise ValueError("Cannot augment a 0-d tensor")
    if x.dim() == 1:
        axis = 0
    elif axis is None:
        axis = x.dim() - 2
    shape = list(x.shape)
    shape[axis] = augment_dim
    return torch.cat([x, x.new_zeros(shape)], dim=axis)


class AugmentedNDELayer(NeuralDELayer):
    """Wraps a differential layer and lifts its input by ``adim`` dimensions.

    ``layer(x, *args, **kwargs)`` is ``nde(augment(x, adim, axis), *args, **kwargs)``.
    Configuration lookups other than ``adim`` and ``axis`` are answered by
    the inner layer, so the wrapper can stand in for it wherever the
    configuration is inspected.

    Parameters
    ----------
    nde : NeuralDELayer
        Any differential layer, including another augmented one.
    adim : int
        Number of zero dimensions to append.
    axis : int, optional
        Feature axis for multi-axis inputs.  Defaults to the last axis,
        where every differential layer keeps its features; pass ``None``
        for the feature-major default of :func:`augment`.
    """

    def __init__(self, nde: NeuralDELayer, adim: int, axis: Optional[int] = -1) -> None:
        nn.Module.__init__(self)
        if not isinstance(nde, NeuralDELayer):
            raise TypeError(f"Expected a NeuralDELayer, got {type(nde).__name__}")
        self.nde = nde
        self.adim = int(adim)
        self.axis = axis

    def forward(self, x, *args, **kwargs):
        return self.nde(augment(x, self.adim, self.axis), *args, **kwargs)

    # ── delegated configuration ───────────────────────────────────────

    @property
    def p(self) -> torch.Tensor:
        return self.nde.p

    @property
    def tspan(self):
        return self.nde.tspan

    @property
    def args(self) -> tuple:
        return self.nde.args

    @property
    def kwargs(self) -> dict:
        return self.nde.kwargs

    @property
    def kind(self):
        return self.nde.kind

    @property
    def model(self):
        return self.nde.get_config("model")

    @property
    def problem_class(self):
        return self.nde.problem_class

    @property
    def config_fields(self):
        return ("adim", "axis") + tuple(self.nde.config_fields)

    def default_sensealg(self):
        return self.nde.default_sensealg()

    def get_config(self, name: str):
        if name in ("adim", "axis"):
            return getattr(self, name)
        return self.nde.get_config(name)

    def extra_repr(self) -> str:
        return f"adim={self.adim}"
