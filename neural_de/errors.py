"""Exception types raised while assembling differential layers."""

from __future__ import annotations


class NeuralDEError(Exception):
    """Base class for every error raised by :mod:`neural_de`."""


class ShapeMismatch(NeuralDEError, ValueError):
    """A vector, mask or matrix does not have the size the layer expects."""


class ConfigurationError(NeuralDEError, ValueError):
    """A layer was constructed without a required piece of configuration."""


class SolverNotFoundError(NeuralDEError, KeyError):
    """No trajectory solver is registered for a problem class."""

    def __str__(self) -> str:
        # KeyError quotes its message; keep it readable.
        return str(self.args[0]) if self.args else ""
