from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from ..checker import DEFAULT_NO_IMPROVE_THRESHOLD, SolutionChecker, SolutionEquality
from ..evaluator import Evaluator
from ..schedules import ReplicationSchedule
from .base import SolverConfig, StochasticSolver

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class StochasticHillClimberConfig(SolverConfig):
    use_stability_stopping: bool = False
    no_improve_threshold: int = DEFAULT_NO_IMPROVE_THRESHOLD

    def __post_init__(self):
        super().__post_init__()
        if self.no_improve_threshold < 1:
            raise ValueError("no_improve_threshold must be >= 1")


class StochasticHillClimber(StochasticSolver):
    """Move to a random neighbor only when it compares better than the current solution."""

    name = "hill_climber"

    def __init__(
        self,
        evaluator: Evaluator,
        replication_schedule: Union[ReplicationSchedule, int, None] = None,
        config: Optional[StochasticHillClimberConfig] = None,
        *,
        solution_equality: Optional[SolutionEquality] = None,
        **kwargs,
    ):
        config = config if config is not None else StochasticHillClimberConfig()
        super().__init__(evaluator, replication_schedule, config, **kwargs)
        self.solution_checker = SolutionChecker(solution_equality, config.no_improve_threshold)
        self._accepted = False

    def initialize_iterations(self, start) -> None:
        super().initialize_iterations(start)
        self.solution_checker.clear()

    def main_iteration(self) -> None:
        self._accepted = False
        candidate = self.request_evaluation(self.next_point())
        if candidate is not None and self.compare(candidate, self.current_solution) < 0:
            self.current_solution = candidate
            self._accepted = True
            _LOGGER.debug("%s: iteration %d moved to %s", self.name, self.iteration_counter, candidate)
        self.solution_checker.capture_solution(self.current_solution)

    def default_stopping_criteria(self) -> bool:
        if self.config.use_stability_stopping:
            return self.solution_checker.check_solutions()
        return False

    def iteration_info(self) -> Dict[str, Any]:
        return {"accepted": self._accepted}
