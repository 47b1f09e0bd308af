from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from ..evaluator import Evaluator
from ..schedules import CoolingSchedule, ExponentialCoolingSchedule, ReplicationSchedule
from .base import SolverConfig, StochasticSolver

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimulatedAnnealingConfig(SolverConfig):
    initial_temperature: float = 1000.0
    final_temperature: float = 0.001

    def __post_init__(self):
        super().__post_init__()
        if self.initial_temperature <= 0.0:
            raise ValueError("The initial temperature must be positive")
        if self.final_temperature <= 0.0:
            raise ValueError("The final temperature must be positive")


def acceptance_probability(cost_difference: float, temperature: float) -> float:
    if temperature <= 0.0:
        raise ValueError("The temperature must be positive")
    if cost_difference <= 0.0:
        return 1.0
    return math.exp(-cost_difference / temperature)


class SimulatedAnnealing(StochasticSolver):
    """Simulated annealing over random neighbors with an injected cooling schedule.

    Notes:
    - A worse neighbor (delta >= 0) is accepted iff U(0,1) < exp(-delta / T).
    - T is updated from the schedule after every iteration, keyed on the iteration number.
    - Default stop: the temperature fell below ``final_temperature``.
    """

    name = "sa"

    def __init__(
        self,
        evaluator: Evaluator,
        replication_schedule: Union[ReplicationSchedule, int, None] = None,
        config: Optional[SimulatedAnnealingConfig] = None,
        *,
        cooling_schedule: Optional[CoolingSchedule] = None,
        **kwargs,
    ):
        config = config if config is not None else SimulatedAnnealingConfig()
        super().__init__(evaluator, replication_schedule, config, **kwargs)
        self.cooling_schedule = (
            cooling_schedule if cooling_schedule is not None
            else ExponentialCoolingSchedule(initial_temperature=config.initial_temperature)
        )
        self.current_temperature = config.initial_temperature
        self._last_accepted = False

    @property
    def initial_temperature(self) -> float:
        return self.config.initial_temperature

    @property
    def final_temperature(self) -> float:
        return self.config.final_temperature

    def initialize_iterations(self, start) -> None:
        super().initialize_iterations(start)
        self.current_temperature = self.config.initial_temperature

    def main_iteration(self) -> None:
        self._last_accepted = False
        candidate = self.request_evaluation(self.next_point())
        if candidate is None:
            _LOGGER.debug("%s: iteration %d: no evaluation returned", self.name, self.iteration_counter)
        else:
            delta = candidate.penalized_objective_value - self.current_solution.penalized_objective_value
            if delta < 0.0:
                self.current_solution = candidate
                self._last_accepted = True
                _LOGGER.debug("%s: improved to %s", self.name, candidate)
            else:
                u = self.rn_stream.rand_u01()
                if u < acceptance_probability(delta, self.current_temperature):
                    self.current_solution = candidate
                    self._last_accepted = True
                    _LOGGER.debug("%s: accepted worse solution %s (T=%.6g)", self.name, candidate, self.current_temperature)
                else:
                    _LOGGER.debug("%s: rejected %s", self.name, candidate)
        self.current_temperature = self.cooling_schedule.next_temperature(self.iteration_counter)

    def default_stopping_criteria(self) -> bool:
        return self.current_temperature < self.config.final_temperature

    def iteration_info(self) -> Dict[str, Any]:
        return {"temperature": self.current_temperature, "accepted": self._last_accepted}
