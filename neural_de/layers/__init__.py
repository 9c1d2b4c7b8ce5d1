"""Differential layers."""

from .augmented import AugmentedNDELayer, augment
from .base import NeuralDELayer
from .dae import NeuralDAE
from .dde import NeuralCDDE
from .ode import NeuralODE, NeuralODEMM
from .sde import NeuralDSDE, NeuralSDE

__all__ = [
    "NeuralDELayer",
    "NeuralODE",
    "NeuralODEMM",
    "NeuralDSDE",
    "NeuralSDE",
    "NeuralCDDE",
    "NeuralDAE",
    "AugmentedNDELayer",
    "augment",
]
