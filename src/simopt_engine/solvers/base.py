from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

import numpy as np

from ..evaluator import Evaluator
from ..problem import InputMap
from ..rng import RNStream, RNStreamProvider
from ..schedules import FixedReplicationsPerEvaluation, ReplicationSchedule
from ..solution import Solution, compare_solutions
from .starting_points import RandomStartingPointGenerator, StartingPointGenerator

_LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 1000
DEFAULT_REPLICATIONS_PER_EVALUATION = 50


@dataclass(frozen=True)
class SolverConfig:
    max_iterations: int = DEFAULT_MAX_ITERATIONS

    def __post_init__(self):
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")


@dataclass
class SolverResult:
    x_best: Optional[np.ndarray]          # input values of the best solution (None if none found)
    y_best: float                         # its penalized objective value
    best_solution: Optional[Solution]
    current_solution: Optional[Solution]
    info: Dict[str, float]
    history: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def found_solution(self) -> bool:
        return self.best_solution is not None


class SolutionQualityEvaluator:
    """Pluggable stopping test that overrides a solver's default one."""

    def is_stopping_criteria_reached(self, solver: "Solver") -> bool:
        raise NotImplementedError


def as_replication_schedule(reps: Union[ReplicationSchedule, int, None]) -> ReplicationSchedule:
    if reps is None:
        return FixedReplicationsPerEvaluation(DEFAULT_REPLICATIONS_PER_EVALUATION)
    if isinstance(reps, ReplicationSchedule):
        return reps
    return FixedReplicationsPerEvaluation(int(reps))


class Solver:
    """Bounded iteration loop around an algorithm-specific ``main_iteration``.

    Lifecycle: ``initialize`` picks and evaluates a starting point, then
    ``main_iteration`` runs until ``is_stopping_criteria_satisfied`` or the
    iteration cap. All oracle access goes through ``request_evaluation(s)``,
    which also keeps the cost counters and the best-ever feasible solution.
    """

    name: str = "base"

    def __init__(
        self,
        evaluator: Evaluator,
        replication_schedule: Union[ReplicationSchedule, int, None] = None,
        config: Optional[SolverConfig] = None,
        *,
        quality_evaluator: Optional[SolutionQualityEvaluator] = None,
        name: Optional[str] = None,
    ):
        self.evaluator = evaluator
        self.problem = evaluator.problem
        self.replication_schedule = as_replication_schedule(replication_schedule)
        self.config = config if config is not None else SolverConfig()
        self.quality_evaluator = quality_evaluator
        if name is not None:
            self.name = name
        self.starting_point: Optional[InputMap] = None
        self._reset_state()

    def _reset_state(self) -> None:
        self.iteration_counter = 0
        self.num_oracle_calls = 0
        self.num_replications_requested = 0
        self.current_solution: Optional[Solution] = None
        self.best_solution: Optional[Solution] = None
        self.history: List[Dict[str, Any]] = []
        self._initialized = False

    @property
    def max_iterations(self) -> int:
        return self.config.max_iterations

    @property
    def num_replications_per_evaluation(self) -> int:
        return self.replication_schedule.num_replications(self.iteration_counter)

    # ---- oracle access

    def request_evaluations(self, inputs: Iterable[InputMap], num_replications: Optional[int] = None) -> List[Solution]:
        """Evaluate a set of inputs; the result may be shorter than the request."""
        unique = list(dict.fromkeys(inputs))
        if not unique:
            return []
        n = int(num_replications) if num_replications is not None else self.num_replications_per_evaluation
        self.num_oracle_calls += len(unique)
        self.num_replications_requested += len(unique) * n
        results = self.evaluator.evaluate(unique, n)
        if len(results) < len(unique):
            _LOGGER.warning(
                "%s: %d of %d requested evaluations returned no result", self.name, len(unique) - len(results), len(unique)
            )
        for s in results:
            self._update_best(s)
        return results

    def request_evaluation(self, input_map: InputMap, num_replications: Optional[int] = None) -> Optional[Solution]:
        results = self.request_evaluations([input_map], num_replications)
        return results[0] if results else None

    def _update_best(self, solution: Solution) -> None:
        if not solution.is_input_feasible() or solution.penalized_objective_value == float("inf"):
            return
        if self.best_solution is None or compare_solutions(solution, self.best_solution) < 0:
            self.best_solution = solution

    @staticmethod
    def compare(a: Solution, b: Solution) -> int:
        return compare_solutions(a, b)

    # ---- lifecycle

    def generate_starting_point(self) -> InputMap:
        mid = self.problem.to_input_map(self.problem.input_mid_points)
        if not mid.is_input_feasible():
            raise RuntimeError(f"{self.name}: the mid point is infeasible; supply a starting point")
        return mid

    def initialize(self) -> None:
        self._reset_state()
        start = self.starting_point if self.starting_point is not None else self.generate_starting_point()
        if not start.is_input_feasible():
            raise ValueError(f"{self.name}: the starting point must be input feasible; got {start}")
        self.initialize_iterations(start)
        self._initialized = True

    def initialize_iterations(self, start: InputMap) -> None:
        sol = self.request_evaluation(start)
        self.current_solution = sol if sol is not None else self.problem.bad_solution(start)
        _LOGGER.info("%s: initialized at %s", self.name, self.current_solution)

    def main_iteration(self) -> None:
        raise NotImplementedError

    def is_stopping_criteria_satisfied(self) -> bool:
        if self.quality_evaluator is not None:
            return self.quality_evaluator.is_stopping_criteria_reached(self)
        return self.default_stopping_criteria()

    def default_stopping_criteria(self) -> bool:
        return False

    def run_iteration(self) -> None:
        if not self._initialized:
            raise RuntimeError(f"{self.name}: initialize() must be called before iterating")
        self.iteration_counter += 1
        self.main_iteration()
        self.history.append(self._history_row())

    def solve(self) -> SolverResult:
        self.initialize()
        while self.iteration_counter < self.max_iterations:
            self.run_iteration()
            if self.is_stopping_criteria_satisfied():
                _LOGGER.info("%s: stopping criteria satisfied at iteration %d", self.name, self.iteration_counter)
                break
        _LOGGER.info(
            "%s: finished after %d iterations, %d oracle calls, best=%s",
            self.name, self.iteration_counter, self.num_oracle_calls, self.best_solution,
        )
        return self.result()

    # ---- reporting

    def iteration_info(self) -> Dict[str, Any]:
        """Algorithm-specific fields added to each history row."""
        return {}

    def _history_row(self) -> Dict[str, Any]:
        cur = self.current_solution
        best = self.best_solution
        row: Dict[str, Any] = {
            "iteration": self.iteration_counter,
            "current_y": cur.penalized_objective_value if cur is not None else float("inf"),
            "best_y": best.penalized_objective_value if best is not None else float("inf"),
            "oracle_calls": self.num_oracle_calls,
            "replications": self.num_replications_requested,
        }
        row.update(self.iteration_info())
        return row

    def result(self) -> SolverResult:
        best = self.best_solution
        return SolverResult(
            x_best=best.input_values if best is not None else None,
            y_best=best.penalized_objective_value if best is not None else float("inf"),
            best_solution=best,
            current_solution=self.current_solution,
            info={
                "iterations": float(self.iteration_counter),
                "oracle_calls": float(self.num_oracle_calls),
                "replications": float(self.num_replications_requested),
            },
            history=list(self.history),
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, max_iterations={self.max_iterations})"


class StochasticSolver(Solver):
    """Solver that owns a random-number stream.

    Starting points and neighbors are drawn from ``rn_stream`` only, so a run
    is reproducible from the stream state.
    """

    def __init__(
        self,
        evaluator: Evaluator,
        replication_schedule: Union[ReplicationSchedule, int, None] = None,
        config: Optional[SolverConfig] = None,
        *,
        stream: Optional[RNStream] = None,
        stream_number: int = 0,
        stream_provider: Optional[RNStreamProvider] = None,
        starting_point_generator: Optional[StartingPointGenerator] = None,
        quality_evaluator: Optional[SolutionQualityEvaluator] = None,
        name: Optional[str] = None,
    ):
        super().__init__(evaluator, replication_schedule, config, quality_evaluator=quality_evaluator, name=name)
        if stream is None:
            provider = stream_provider if stream_provider is not None else RNStreamProvider()
            stream = provider.stream(stream_number)
        self.rn_stream = stream
        self.starting_point_generator = (
            starting_point_generator if starting_point_generator is not None else RandomStartingPointGenerator()
        )

    @property
    def stream_number(self) -> int:
        return self.rn_stream.stream_number

    @property
    def antithetic(self) -> bool:
        return self.rn_stream.antithetic

    @antithetic.setter
    def antithetic(self, value: bool) -> None:
        self.rn_stream.antithetic = bool(value)

    def reset_start_stream(self) -> None:
        self.rn_stream.reset_start_stream()

    def reset_start_substream(self) -> None:
        self.rn_stream.reset_start_substream()

    def advance_to_next_substream(self) -> None:
        self.rn_stream.advance_to_next_substream()

    def generate_starting_point(self) -> InputMap:
        return self.starting_point_generator.starting_point(self)

    def next_point(self) -> InputMap:
        if self.current_solution is None:
            raise RuntimeError(f"{self.name}: no current solution to move from")
        return self.problem.generate_neighbor(self.current_solution.input_map, self.rn_stream)
