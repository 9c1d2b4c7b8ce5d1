"""Neural differential equations: differentiable continuous-time layers
built around ordinary neural networks.

Public API
----------
::

    from neural_de import NeuralODE, NeuralDSDE, NeuralSDE, NeuralCDDE
    from neural_de import NeuralDAE, NeuralODEMM, AugmentedNDELayer
    from neural_de import flatten, ExplicitModule, register_solver, solve
"""

from neural_de.capability import ExplicitModel, ExplicitModule, ModelKind, model_kind
from neural_de.closures import StateCell
from neural_de.config import SolverConfig
from neural_de.errors import (
    ConfigurationError,
    NeuralDEError,
    ShapeMismatch,
    SolverNotFoundError,
)
from neural_de.layers import (
    AugmentedNDELayer,
    NeuralCDDE,
    NeuralDAE,
    NeuralDELayer,
    NeuralDSDE,
    NeuralODE,
    NeuralODEMM,
    NeuralSDE,
    augment,
)
from neural_de.packing import Restructure, flatten, pack, split
from neural_de.problems import ProblemClass
from neural_de.sensitivity import (
    DirectAutodiff,
    InterpolatingAdjoint,
    default_sensealg,
)
from neural_de.solvers import Trajectory, list_solvers, register_solver, solve, unregister_solver
from neural_de.wandb_logger import WandbLogger

__all__ = [
    "AugmentedNDELayer",
    "ConfigurationError",
    "DirectAutodiff",
    "ExplicitModel",
    "ExplicitModule",
    "InterpolatingAdjoint",
    "ModelKind",
    "NeuralCDDE",
    "NeuralDAE",
    "NeuralDELayer",
    "NeuralDEError",
    "NeuralDSDE",
    "NeuralODE",
    "NeuralODEMM",
    "NeuralSDE",
    "ProblemClass",
    "Restructure",
    "ShapeMismatch",
    "SolverConfig",
    "SolverNotFoundError",
    "StateCell",
    "Trajectory",
    "WandbLogger",
    "augment",
    "default_sensealg",
    "flatten",
    "list_solvers",
    "model_kind",
    "pack",
    "register_solver",
    "solve",
    "split",
    "unregister_solver",
]
