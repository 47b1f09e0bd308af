from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..problem import InputMap
from ..solution import Solution
from .base import SolverConfig, StochasticSolver

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RandomRestartConfig(SolverConfig):
    max_iterations: int = 10            # number of restarts
    clear_cache_on_restart: bool = True


class RandomRestartSolver(StochasticSolver):
    """Runs an inner solver from independent random starting points.

    Each restart optionally clears the evaluator cache, runs the inner solver
    to completion from a fresh random feasible point and adopts its best
    solution as the current one without comparing it to the previous restart.
    The outer oracle-call and replication totals are the sums over the inner
    runs.
    """

    name = "random_restart"

    def __init__(self, inner: StochasticSolver, config: Optional[RandomRestartConfig] = None, **kwargs):
        config = config if config is not None else RandomRestartConfig()
        super().__init__(inner.evaluator, inner.replication_schedule, config, **kwargs)
        if inner is self:
            raise ValueError("A solver cannot restart itself")
        self.inner = inner
        self.restart_results: List[Optional[Solution]] = []
        self._next_start: Optional[InputMap] = None

    def initialize_iterations(self, start: InputMap) -> None:
        # the first restart starts from here; nothing is evaluated by the outer solver
        self._next_start = start
        self.restart_results = []

    def main_iteration(self) -> None:
        if self.config.clear_cache_on_restart:
            self.evaluator.clear_cache()
        start = self._next_start if self._next_start is not None else self.problem.starting_point(self.rn_stream)
        self._next_start = None
        self.inner.starting_point = start
        _LOGGER.info("%s: restart %d from %s", self.name, self.iteration_counter, start)
        res = self.inner.solve()
        self.num_oracle_calls += self.inner.num_oracle_calls
        self.num_replications_requested += self.inner.num_replications_requested
        self.restart_results.append(res.best_solution)
        if res.best_solution is not None:
            self.current_solution = res.best_solution
            self._update_best(res.best_solution)
        elif self.current_solution is None:
            self.current_solution = self.inner.current_solution
        _LOGGER.info(
            "%s: restart %d ended at %s (%d inner oracle calls)",
            self.name, self.iteration_counter, res.best_solution, self.inner.num_oracle_calls,
        )

    def iteration_info(self) -> Dict[str, Any]:
        last = self.restart_results[-1] if self.restart_results else None
        return {"restart_best_y": last.penalized_objective_value if last is not None else float("inf")}
