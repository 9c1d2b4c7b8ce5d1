"""W&B logging of trajectory solves."""

from __future__ import annotations

from typing import Any, Dict, Optional


class WandbLogger:
    """Reports every solve it is handed to a ``wandb`` run.

    Usage::

        logger = WandbLogger(project="neural-de", run_name="ode-solve")
        layer = NeuralODE(model, (0.0, 1.0), logger=logger)
        layer(x)            # logs solve/nfe, solve/wall_time, solve/n_times
        logger.finish()     # writes solve/count, solve/total_nfe, ... to the summary

    If ``wandb`` is not installed or *project* is ``None`` nothing is sent,
    but metrics and totals are still computed, so callers never need to
    guard with ``if logger:``.
    """

    def __init__(
        self,
        project: Optional[str] = None,
        run_name: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None,
        prefix: str = "solve",
    ):
        self.prefix = prefix
        self.count = 0
        self.total_nfe = 0
        self.total_wall_time = 0.0
        self._run = None
        if project is None:
            return
        try:
            import wandb

            self._run = wandb.init(
                project=project,
                name=run_name,
                config=config or {},
                reinit=True,
            )
        except Exception:
            # wandb import or init failure → log nothing
            self._run = None

    @property
    def active(self) -> bool:
        return self._run is not None

    def log_solve(self, traj) -> Dict[str, Any]:
        """Log one :class:`~neural_de.solvers.Trajectory` and return its metrics."""
        nfe = int(traj.stats.get("nfe", 0))
        wall_time = float(traj.stats.get("wall_time", 0.0))
        self.count += 1
        self.total_nfe += nfe
        self.total_wall_time += wall_time
        metrics = {
            f"{self.prefix}/nfe": nfe,
            f"{self.prefix}/wall_time": wall_time,
            f"{self.prefix}/n_times": len(traj),
        }
        self.log_metrics(metrics, step=self.count)
        return metrics

    def log_metrics(self, metrics: Dict[str, Any], step: Optional[int] = None) -> None:
        if self._run is None:
            return
        self._run.log(metrics, step=step)

    def totals(self) -> Dict[str, Any]:
        return {
            f"{self.prefix}/count": self.count,
            f"{self.prefix}/total_nfe": self.total_nfe,
            f"{self.prefix}/total_wall_time": self.total_wall_time,
        }

    def finish(self) -> None:
        """Write :meth:`totals` to the run summary and close the run."""
        if self._run is None:
            return
        for k, v in self.totals().items():
            self._run.summary[k] = v
        self._run.finish()
        self._run = None
