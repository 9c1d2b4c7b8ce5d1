"""Flatten a model's parameters into one vector and rebuild it from a slice."""

from __future__ import annotations

from typing import Callable, Dict, List, Tuple

import torch
from torch import nn
from torch.func import functional_call

from neural_de.errors import ShapeMismatch


class Restructure:
    """Inverse of :func:`flatten`.

    Holds the parameter names and shapes of *module* in registration
    order.  Calling it with a flat vector returns a callable evaluating
    *module* with its parameters replaced by views into that vector, so
    every call reflects exactly the vector it was given.

    Only parameters are swapped in.  Buffers are the module's own: a
    module that updates buffers in its forward pass (``BatchNorm`` in
    training mode) updates the stored module on every evaluation.  Such
    modules belong in :class:`~neural_de.capability.ExplicitModule`, which
    threads buffers as explicit state.
    """

    def __init__(self, module: nn.Module) -> None:
        self.module = module
        self.names: List[str] = []
        self.shapes: List[torch.Size] = []
        for name, param in module.named_parameters():
            self.names.append(name)
            self.shapes.append(param.shape)
        self.numel = sum(int(torch.Size(s).numel()) for s in self.shapes)

    def unflatten(self, vector: torch.Tensor) -> Dict[str, torch.Tensor]:
        check_length(vector, self.numel)
        params: Dict[str, torch.Tensor] = {}
        offset = 0
        for name, shape in zip(self.names, self.shapes):
            n = int(torch.Size(shape).numel())
            params[name] = vector[offset:offset + n].view(shape)
            offset += n
        return params

    def __call__(self, vector: torch.Tensor) -> Callable[..., torch.Tensor]:
        params = self.unflatten(vector)
        module = self.module

        def rebuilt(*inputs):
            return functional_call(module, params, inputs)

        return rebuilt

    def __repr__(self) -> str:
        return f"Restructure({type(self.module).__name__}, numel={self.numel})"


def flatten(module: nn.Module) -> Tuple[torch.Tensor, Restructure]:
    """Return ``(vector, rebuild)`` for *module*.

    ``vector`` is a detached copy of the parameters concatenated in
    registration order.
    """
    params = list(module.parameters())
    if params:
        vector = torch.cat([p.detach().reshape(-1) for p in params]).clone()
    else:
        vector = torch.zeros(0)
    return vector, Restructure(module)


def pack(*vectors: torch.Tensor) -> Tuple[torch.Tensor, int]:
    """Concatenate two parameter vectors and return the split offset."""
    if len(vectors) != 2:
        raise ValueError(f"pack expects two vectors, got {len(vectors)}")
    p1, p2 = vectors
    return torch.cat([p1.reshape(-1), p2.reshape(-1)]), int(p1.numel())


def split(p: torch.Tensor, offset: int) -> Tuple[torch.Tensor, torch.Tensor]:
    """Recover the two sub-vectors packed by :func:`pack`."""
    return p[:offset], p[offset:]


def check_length(p: torch.Tensor, expected: int) -> torch.Tensor:
    """Raise :class:`ShapeMismatch` unless *p* is a flat vector of *expected* entries."""
    if p.dim() != 1 or p.numel() != expected:
        raise ShapeMismatch(
            f"Parameter vector has shape {tuple(p.shape)}, expected ({expected},)"
        )
    return p
