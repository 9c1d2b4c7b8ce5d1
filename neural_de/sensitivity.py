"""Gradient strategies for differentiating through a trajectory solve.

Each equation class has a fixed default:

* plain ODE and mass-matrix ODE → :class:`InterpolatingAdjoint`
  (continuous adjoint);
* SDE, delay and masked DAE → :class:`DirectAutodiff`
  (backpropagate through the solver's operations).

A ``sensealg=`` entry in the layer's keyword configuration overrides it.

The built-in ``torchdiffeq`` / ``torchsde`` backends only offer a backsolve
adjoint: the state is re-integrated backwards next to the adjoint instead
of being interpolated from the forward solve.  They run
:class:`InterpolatingAdjoint` that way.  A backend registered for a solver
with dense output is free to honour the interpolation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple, Union

from neural_de.errors import ConfigurationError
from neural_de.problems import ProblemClass


@dataclass(frozen=True)
class InterpolatingAdjoint:
    """Continuous adjoint of the forward trajectory.

    Built-in backends map it to ``odeint_adjoint`` / ``sdeint_adjoint``
    (backsolve); see the module docstring.
    """

    continuous: bool = True


@dataclass(frozen=True)
class DirectAutodiff:
    """Reverse-mode autodiff through every solver step."""

    continuous: bool = False


SensitivityAlgorithm = Union[InterpolatingAdjoint, DirectAutodiff]

_BY_NAME = {
    "interpolating": InterpolatingAdjoint,
    "interpolating_adjoint": InterpolatingAdjoint,
    "direct": DirectAutodiff,
    "autodiff": DirectAutodiff,
}


def default_sensealg(problem_class: ProblemClass) -> SensitivityAlgorithm:
    """Return the default strategy for *problem_class*.

    Mass-matrix problems are ODE problems and share the ODE default.
    """
    if problem_class is ProblemClass.ODE:
        return InterpolatingAdjoint()
    if problem_class in (ProblemClass.SDE, ProblemClass.DDE, ProblemClass.DAE):
        return DirectAutodiff()
    raise ConfigurationError(f"No default sensitivity for {problem_class!r}")


def as_sensealg(value: Any) -> SensitivityAlgorithm:
    """Coerce a strategy instance or name to an instance."""
    if isinstance(value, (InterpolatingAdjoint, DirectAutodiff)):
        return value
    if isinstance(value, str):
        try:
            return _BY_NAME[value.lower()]()
        except KeyError:
            raise ConfigurationError(
                f"Unknown sensitivity algorithm '{value}'. Choose from {sorted(_BY_NAME)}"
            ) from None
    raise ConfigurationError(f"Unsupported sensealg {value!r}")


def resolve_sensealg(
    default: SensitivityAlgorithm, kwargs: Dict[str, Any]
) -> Tuple[SensitivityAlgorithm, Dict[str, Any]]:
    """Split ``sensealg`` out of *kwargs*, falling back to *default*."""
    rest = dict(kwargs)
    override = rest.pop("sensealg", None)
    if override is None:
        return default, rest
    return as_sensealg(override), rest
