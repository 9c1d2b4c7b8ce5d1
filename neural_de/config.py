"""Solver configuration dataclass.

Layers store their keyword solver configuration verbatim.  Backends turn
it into a :class:`SolverConfig` right before dispatch, so unknown keys are
never rejected: they are collected in :attr:`SolverConfig.extra` and
forwarded to the underlying library call unchanged.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Optional


@dataclass
class SolverConfig:
    """Options understood by the built-in ``torchdiffeq`` / ``torchsde`` backends.

    Attributes:
        method: Integration method name (``"dopri5"``, ``"rk4"``, ``"euler"``,
            ``"srk"``, ...).  ``None`` lets the library pick its default.
        rtol: Relative tolerance for adaptive solvers.
        atol: Absolute tolerance for adaptive solvers.
        dt: Step size.  Required by ``torchsde``; for fixed-grid ODE methods
            it becomes ``options["step_size"]``.
        saveat: Times at which the trajectory is returned.  Defaults to the
            two end points of the layer's time span.
        options: Extra solver options forwarded to ``torchdiffeq``.
        adjoint_method: Method used for the backward solve of adjoint
            strategies.  Defaults to ``method``.
        adjoint_options: Options for the backward solve.
        sde_type: ``"ito"`` or ``"stratonovich"``.
        seed: Entropy for the Brownian motion of stochastic solves.
        extra: Keys not listed above, passed through to the library call.
    """

    method: Optional[str] = None
    rtol: float = 1e-7
    atol: float = 1e-9
    dt: Optional[float] = None
    saveat: Any = None
    options: Dict[str, Any] = field(default_factory=dict)
    adjoint_method: Optional[str] = None
    adjoint_options: Dict[str, Any] = field(default_factory=dict)
    sde_type: str = "ito"
    seed: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    # ── serialisation helpers ─────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        """Recursively convert config to a plain dict."""
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SolverConfig":
        """Create config from a dict; unknown keys land in ``extra``."""
        valid = {f.name for f in fields(cls)} - {"extra"}
        known = {k: v for k, v in d.items() if k in valid}
        extra = dict(d.get("extra") or {})
        extra.update({k: v for k, v in d.items() if k not in valid and k != "extra"})
        return cls(**known, extra=extra)

    @classmethod
    def from_call(cls, args: tuple, kwargs: Dict[str, Any]) -> "SolverConfig":
        """Build a config from a layer's positional args and keyword config.

        The first positional argument, when present, names the method.
        """
        if len(args) > 1:
            raise TypeError(
                f"Expected at most one positional solver argument (the method), got {len(args)}"
            )
        cfg = cls.from_dict(kwargs)
        if args and cfg.method is None:
            cfg.method = args[0]
        return cfg
