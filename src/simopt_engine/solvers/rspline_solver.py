"""R-SPLINE: retrospective search with piecewise-linear interpolation and neighborhood enumeration.

Outer iteration k solves a sample-path problem at m_k replications with a
SPLINE call budget b_k. SPLINE alternates SPLI (gradient line search built on
the PLI simplex interpolation) with NE (lattice neighborhood enumeration)
until both agree on the same input or the budget is spent. Only
integer-ordered problems are supported.

Reference: Wang, Pasupathy & Schmeiser (2013), "Integer-Ordered Simulation
Optimization using R-SPLINE: Retrospective Search with Piecewise-Linear
Interpolation and Neighborhood Enumeration".
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np

from ..checker import DEFAULT_NO_IMPROVE_THRESHOLD, SolutionChecker, SolutionEquality
from ..evaluator import Evaluator
from ..neighborhoods import NeighborhoodFinder, VonNeumannNeighborhoodFinder
from ..problem import InputMap
from ..rng import RNStream
from ..schedules import FixedGrowthRateReplicationSchedule, ReplicationSchedule
from ..solution import Solution, minimum_solution, solution_sort_key
from ..utils import direction, sort_indices_descending
from .base import SolverConfig, StochasticSolver

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimplexData:
    """Lattice simplex around a continuous point.

    vertices[0] is floor(point); vertices[k] adds a unit step in each of the
    k dimensions with the largest fractional parts (order given by
    sorted_fraction_indices). weights are the convex weights of the vertices.
    """

    original_point: np.ndarray
    fractional_parts: np.ndarray
    sorted_fraction_indices: np.ndarray
    vertices: Tuple[np.ndarray, ...]
    weights: np.ndarray

    @property
    def simplex_points(self) -> List[Tuple[np.ndarray, float]]:
        return [(v, float(w)) for v, w in zip(self.vertices, self.weights)]

    def interpolate(self) -> np.ndarray:
        return np.sum([w * v for v, w in zip(self.vertices, self.weights)], axis=0)


def piecewise_linear_simplex(point) -> SimplexData:
    x = np.asarray(point, dtype=np.float64).reshape(-1)
    if x.size == 0:
        raise ValueError("The point must not be empty")
    x0 = np.floor(x)
    z = x - x0
    order = sort_indices_descending(z)
    vertices = [x0.copy()]
    cur = x0.copy()
    for i in order:
        cur = cur.copy()
        cur[i] += 1.0
        vertices.append(cur)
    zs = np.concatenate([[1.0], z[order], [0.0]])
    weights = zs[:-1] - zs[1:]
    return SimplexData(
        original_point=x,
        fractional_parts=z,
        sorted_fraction_indices=order,
        vertices=tuple(vertices),
        weights=weights,
    )


def add_random_perturbation(point, perturbation: float, stream: RNStream) -> np.ndarray:
    """point + U(-p, p) noise in each coordinate (returns a new array)."""
    if not (0.0 < perturbation < 1.0):
        raise ValueError("The perturbation factor must be in (0,1)")
    x = np.asarray(point, dtype=np.float64).reshape(-1)
    noise = stream.uniforms(np.full(x.size, -perturbation), np.full(x.size, perturbation))
    return x + noise


@dataclass(frozen=True)
class RSplineConfig(SolverConfig):
    perturbation: float = 0.15
    initial_step_size: float = 2.0
    step_size_multiplier: float = 2.0
    line_search_iter_max: int = 5
    initial_max_spline_call_limit: int = 10
    spline_call_growth_rate: float = 0.1
    max_spline_call_limit: int = 1000
    use_stability_stopping: bool = True
    no_improve_threshold: int = DEFAULT_NO_IMPROVE_THRESHOLD

    def __post_init__(self):
        super().__post_init__()
        if not (0.0 < self.perturbation < 1.0):
            raise ValueError("The perturbation factor must be in (0,1)")
        if self.initial_step_size <= 1.0:
            raise ValueError("The initial step size must be > 1.0")
        if self.step_size_multiplier < 1.0:
            raise ValueError("The step multiplier must be >= 1.0")
        if self.line_search_iter_max < 1:
            raise ValueError("The maximum number of line search iterations must be > 0")
        if self.initial_max_spline_call_limit < 1:
            raise ValueError("The initial SPLINE call limit must be > 0")
        if self.spline_call_growth_rate <= 0.0:
            raise ValueError("The SPLINE call growth rate must be > 0")
        if self.max_spline_call_limit < self.initial_max_spline_call_limit:
            raise ValueError("The SPLINE call ceiling must be >= the initial SPLINE call limit")
        if self.no_improve_threshold < 1:
            raise ValueError("no_improve_threshold must be >= 1")


@dataclass(frozen=True)
class PLIResult:
    num_oracle_calls: int
    solution: Solution
    gradient: Optional[np.ndarray] = None
    interpolated_value: Optional[float] = None


@dataclass(frozen=True)
class SPLIResult:
    num_oracle_calls: int
    solution: Solution


@dataclass(frozen=True)
class NEResult:
    num_oracle_calls: int
    solution: Solution


@dataclass(frozen=True)
class SPLINEResult:
    num_oracle_calls: int
    solution: Solution


class RSplineSolver(StochasticSolver):
    name = "rspline"

    def __init__(
        self,
        evaluator: Evaluator,
        replication_schedule: Union[ReplicationSchedule, int, None] = None,
        config: Optional[RSplineConfig] = None,
        *,
        neighborhood_finder: Optional[NeighborhoodFinder] = None,
        solution_equality: Optional[SolutionEquality] = None,
        **kwargs,
    ):
        if not evaluator.problem.is_integer_ordered:
            raise ValueError("R-SPLINE requires an integer-ordered problem definition")
        if replication_schedule is None:
            replication_schedule = FixedGrowthRateReplicationSchedule()
        config = config if config is not None else RSplineConfig()
        super().__init__(evaluator, replication_schedule, config, **kwargs)
        self.neighborhood_finder = (
            neighborhood_finder if neighborhood_finder is not None else VonNeumannNeighborhoodFinder()
        )
        self.solution_checker = SolutionChecker(solution_equality, config.no_improve_threshold)
        self.spline_oracle_calls = 0
        self._last_spline_calls = 0

    @property
    def rspline_sample_size(self) -> int:
        return self.num_replications_per_evaluation

    @property
    def spline_call_limit(self) -> int:
        cfg = self.config
        k = self.iteration_counter
        if k <= 1:
            return int(cfg.initial_max_spline_call_limit)
        m = cfg.initial_max_spline_call_limit * (1.0 + cfg.spline_call_growth_rate) ** k
        return int(min(cfg.max_spline_call_limit, math.ceil(m)))

    def initialize_iterations(self, start: InputMap) -> None:
        super().initialize_iterations(start)
        self.spline_oracle_calls = 0
        self._last_spline_calls = 0
        self.solution_checker.clear()

    def main_iteration(self) -> None:
        m = self.rspline_sample_size
        b = self.spline_call_limit
        _LOGGER.info("R-SPLINE iteration %d: sample size = %d, SPLINE call limit = %d", self.iteration_counter, m, b)
        res = self.spline(self.current_solution, m, b)
        self._last_spline_calls = res.num_oracle_calls
        self.spline_oracle_calls += res.num_oracle_calls
        # the sample-path solution of this iteration seeds the next one, better or not
        self.current_solution = res.solution
        self.solution_checker.capture_solution(res.solution)
        _LOGGER.info(
            "R-SPLINE iteration %d: current = %s, SPLINE oracle calls = %d",
            self.iteration_counter, res.solution, self.spline_oracle_calls,
        )

    def default_stopping_criteria(self) -> bool:
        if self.config.use_stability_stopping:
            return self.solution_checker.check_solutions()
        return False

    # ---- SPLINE

    def spline(self, init_solution: Solution, sample_size: int, call_limit: int) -> SPLINEResult:
        if not init_solution.is_input_feasible():
            raise ValueError("The initial solution given to SPLINE must be input feasible")
        starting = self.request_evaluation(init_solution.input_map, sample_size)
        calls = 1
        if starting is None:
            _LOGGER.info("SPLINE: starting point could not be re-evaluated; keeping the seed solution")
            return SPLINEResult(calls, init_solution)
        _LOGGER.debug("SPLINE: re-evaluated starting point at %d replications", sample_size)

        new = starting
        for i in range(1, call_limit + 1):
            spli = self.search_piecewise_linear_interpolation(new, sample_size, call_limit)
            ne = self.neighborhood_search(spli.solution, sample_size)
            calls += spli.num_oracle_calls + ne.num_oracle_calls
            new = ne.solution
            _LOGGER.debug("SPLINE: round %d: SPLI -> %s, NE -> %s, calls = %d", i, spli.solution, ne.solution, calls)
            if spli.solution.input_map == ne.solution.input_map:
                _LOGGER.debug("SPLINE: round %d: SPLI and NE agree; stopping", i)
                break

        if not new.is_input_feasible():
            _LOGGER.info("SPLINE: candidate was infeasible; returning the starting solution")
            return SPLINEResult(calls, starting)
        if self.compare(new, starting) < 0:
            _LOGGER.info("SPLINE: returning improved solution %s", new)
            return SPLINEResult(calls, new)
        _LOGGER.info("SPLINE: no improvement; returning the starting solution")
        return SPLINEResult(calls, starting)

    # ---- PLI

    def piecewise_linear_interpolation(self, solution: Solution, sample_size: int) -> PLIResult:
        if not solution.is_input_feasible():
            raise ValueError("The solution given to PLI must be input feasible")
        point = add_random_perturbation(solution.input_values, self.config.perturbation, self.rn_stream)
        simplex = piecewise_linear_simplex(point)

        vertex_inputs: List[Optional[InputMap]] = []
        weights: Dict[InputMap, float] = {}
        for v, w in simplex.simplex_points:
            if self.problem.is_input_feasible(v):
                im = self.problem.to_input_map(v)
                vertex_inputs.append(im)
                weights[im] = w
            else:
                vertex_inputs.append(None)
        if not weights:
            _LOGGER.debug("PLI: no feasible simplex vertices; no gradient")
            return PLIResult(0, self.problem.bad_solution(solution.input_map))

        results = self.request_evaluations(list(weights), sample_size)
        if not results:
            _LOGGER.debug("PLI: no evaluation results; no gradient")
            return PLIResult(0, self.problem.bad_solution(solution.input_map))

        by_input = {s.input_map: s for s in results}
        best = minimum_solution(min(results, key=solution_sort_key), solution)
        w_total = sum(weights[im] for im in by_input)
        interpolated = None
        if w_total > 0.0:
            interpolated = sum(weights[im] * s.penalized_objective_value for im, s in by_input.items()) / w_total

        if any(im is None or im not in by_input for im in vertex_inputs):
            _LOGGER.debug("PLI: %d of %d vertices evaluated; no gradient", len(by_input), len(vertex_inputs))
            return PLIResult(len(results), best, None, interpolated)

        f = [by_input[im].penalized_objective_value for im in vertex_inputs]
        gradient = np.zeros(self.problem.dimension, dtype=np.float64)
        for i, k in enumerate(simplex.sorted_fraction_indices):
            gradient[k] = f[i + 1] - f[i]
        _LOGGER.debug("PLI: gradient = %s", gradient)
        return PLIResult(len(results), best, gradient, interpolated)

    # ---- SPLI

    def search_piecewise_linear_interpolation(self, solution: Solution, sample_size: int, call_limit: int) -> SPLIResult:
        if not solution.is_input_feasible():
            raise ValueError("The solution given to SPLI must be input feasible")
        cfg = self.config
        best = solution
        calls = 0
        while calls < call_limit:
            pli = self.piecewise_linear_interpolation(best, sample_size)
            calls += pli.num_oracle_calls
            best = minimum_solution(best, pli.solution)
            if pli.gradient is None:
                _LOGGER.debug("SPLI: no gradient; returning best")
                return SPLIResult(calls, best)
            if calls >= call_limit:
                _LOGGER.debug("SPLI: call limit reached after PLI")
                return SPLIResult(calls, best)
            d = direction(pli.gradient)
            if not np.any(d):
                _LOGGER.debug("SPLI: zero gradient; returning best")
                return SPLIResult(calls, best)

            x0 = best.input_values
            for i in range(1, cfg.line_search_iter_max + 1):
                step = cfg.initial_step_size * cfg.step_size_multiplier ** (i - 1)
                im = self.problem.to_input_map(x0 - step * d)
                if not im.is_input_feasible():
                    _LOGGER.debug("SPLI: line search step %d (size %.3g) infeasible", i, step)
                    return SPLIResult(calls, best)
                cand = self.request_evaluation(im, sample_size)
                calls += 1
                if cand is None:
                    _LOGGER.debug("SPLI: line search step %d returned no evaluation", i)
                    return SPLIResult(calls, best)
                if calls > call_limit:
                    return SPLIResult(calls, minimum_solution(best, cand))
                if self.compare(cand, best) >= 0:
                    if i <= 2:
                        _LOGGER.debug("SPLI: line search step %d did not improve; leaving SPLI", i)
                        return SPLIResult(calls, best)
                    _LOGGER.debug("SPLI: line search step %d did not improve; new PLI", i)
                    break
                best = cand
                _LOGGER.debug("SPLI: line search step %d improved to %s", i, cand)
        return SPLIResult(calls, best)

    # ---- NE

    def neighborhood_search(self, solution: Solution, sample_size: int) -> NEResult:
        if not solution.is_input_feasible():
            raise ValueError("The solution given to NE must be input feasible")
        center = solution.input_map
        neighbors = [
            im for im in self.neighborhood_finder.neighborhood(center, self)
            if im != center and im.is_input_feasible()
        ]
        if not neighbors:
            _LOGGER.debug("NE: no feasible neighbors; returning the center")
            return NEResult(0, solution)
        neighbors.sort(key=lambda im: tuple(im.input_values))
        results = self.request_evaluations(neighbors, sample_size)
        if not results:
            _LOGGER.debug("NE: no evaluation results; returning the center")
            return NEResult(0, solution)
        candidate = min(results, key=solution_sort_key)
        if self.compare(candidate, solution) < 0:
            _LOGGER.debug("NE: moved to %s", candidate)
            return NEResult(len(results), candidate)
        return NEResult(len(results), solution)

    def iteration_info(self) -> Dict[str, Any]:
        return {
            "sample_size": self.rspline_sample_size,
            "spline_call_limit": self.spline_call_limit,
            "spline_calls": self._last_spline_calls,
        }
