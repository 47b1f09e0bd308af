from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import numpy as np
from scipy.stats import norm

from ..checker import DEFAULT_NO_IMPROVE_THRESHOLD, SolutionChecker, SolutionEquality
from ..evaluator import Evaluator
from ..problem import ProblemDefinition
from ..rng import RNStream
from ..schedules import ReplicationSchedule
from ..solution import Solution, solution_sort_key
from .base import SolverConfig, StochasticSolver

_LOGGER = logging.getLogger(__name__)


def recommend_ce_sample_size(
    elite_pct: float = 0.1,
    quantile_confidence_level: float = 0.95,
    max_proportion_half_width: float = 0.1,
) -> int:
    """Population size that estimates the elite quantile within the half-width bound.

    n = z^2 * p * (1 - p) / h^2 with z the two-sided normal quantile.
    """
    if not (0.0 < elite_pct < 1.0):
        raise ValueError("The elite percentage must be in (0,1)")
    if not (0.0 < quantile_confidence_level < 1.0):
        raise ValueError("The CE quantile confidence level must be in (0,1)")
    if max_proportion_half_width <= 0.0:
        raise ValueError("The proportion half-width bound must be > 0")
    upper = max(elite_pct, 1.0 - elite_pct)
    if max_proportion_half_width >= upper:
        raise ValueError(f"The proportion half-width bound must be < {upper}")
    z = float(norm.ppf(1.0 - (1.0 - quantile_confidence_level) / 2.0))
    n = z * z * elite_pct * (1.0 - elite_pct) / (max_proportion_half_width ** 2)
    return int(math.ceil(n))


@dataclass(frozen=True)
class CENormalSamplerConfig:
    mean_smoother: float = 0.85        # weight kept on the previous mean
    sd_smoother: float = 0.85          # weight kept on the previous std-dev
    sd_threshold: float = 0.001
    cv_threshold: float = 0.03
    variability_factor: float = 1.0

    def __post_init__(self):
        if not (0.0 < self.mean_smoother <= 1.0):
            raise ValueError("The mean smoother must be in (0,1]")
        if not (0.0 < self.sd_smoother <= 1.0):
            raise ValueError("The std-dev smoother must be in (0,1]")
        if self.sd_threshold <= 0.0:
            raise ValueError("The std-dev threshold must be > 0")
        if self.cv_threshold < 0.0:
            raise ValueError("The coefficient-of-variation threshold must be >= 0")
        if self.variability_factor <= 0.0:
            raise ValueError("The variability factor must be > 0")


class CENormalSampler:
    """Independent normal sampling distribution, one (mean, sd) pair per input."""

    def __init__(
        self,
        problem: ProblemDefinition,
        config: Optional[CENormalSamplerConfig] = None,
        initial_sds: Optional[Sequence[float]] = None,
    ):
        self.problem = problem
        self.config = config if config is not None else CENormalSamplerConfig()
        self.dimension = problem.dimension
        if initial_sds is not None:
            initial_sds = np.asarray(initial_sds, dtype=np.float64).reshape(-1)
            if initial_sds.size != self.dimension:
                raise ValueError(f"initial_sds must have length {self.dimension}")
        self.initial_sds = initial_sds
        self.means = np.ones(self.dimension, dtype=np.float64)
        self.sds = np.ones(self.dimension, dtype=np.float64)
        self.initialize_parameters(problem.input_mid_points)

    def initialize_parameters(self, values: Sequence[float]) -> None:
        values = np.asarray(values, dtype=np.float64).reshape(-1)
        if values.size != self.dimension:
            raise ValueError("The size of the parameter array must equal the dimension")
        if not np.all(np.isfinite(values)):
            raise ValueError("The mean vector must contain only finite values")
        if self.initial_sds is not None:
            sds = self.initial_sds.copy()
        else:
            sds = self.problem.input_ranges / 4.0 * self.config.variability_factor
        for i, sd in enumerate(sds):
            if not sd > self.config.sd_threshold:
                raise ValueError(
                    f"The initial std-dev of '{self.problem.input_names[i]}' ({sd}) is not above the "
                    f"stopping threshold ({self.config.sd_threshold})"
                )
        self.means = values.copy()
        self.sds = np.asarray(sds, dtype=np.float64)

    def sample(self, n: int, stream: RNStream) -> np.ndarray:
        if n < 1:
            raise ValueError("The sample size must be >= 1")
        return np.stack([stream.normals(self.means, self.sds) for _ in range(n)], axis=0)

    def update_parameters(self, elites: Sequence[Sequence[float]]) -> None:
        E = np.asarray(elites, dtype=np.float64)
        if E.ndim != 2 or E.shape[0] == 0:
            raise ValueError("The elite sample must be a non-empty (n, d) array")
        if E.shape[1] != self.dimension:
            raise ValueError("The elite points must have length equal to the dimension")
        a = self.config.mean_smoother
        b = self.config.sd_smoother
        self.means = a * self.means + (1.0 - a) * E.mean(axis=0)
        if E.shape[0] >= 2:
            self.sds = b * self.sds + (1.0 - b) * E.std(axis=0, ddof=1)

    def convergence_thresholds(self) -> np.ndarray:
        return np.maximum(self.config.sd_threshold, self.config.cv_threshold * np.abs(self.means))

    def has_converged(self) -> bool:
        return bool(np.all(self.sds <= self.convergence_thresholds()))

    def parameters(self) -> np.ndarray:
        return self.means.copy()


@dataclass(frozen=True)
class CrossEntropyConfig(SolverConfig):
    max_iterations: int = 100
    elite_pct: float = 0.1
    min_elite_size: int = 5
    min_sample_size: int = 10
    max_sample_size: int = 100
    sample_size: Optional[int] = None          # None: recommended size
    quantile_confidence_level: float = 0.95
    max_proportion_half_width: float = 0.1
    no_improve_threshold: int = DEFAULT_NO_IMPROVE_THRESHOLD

    def __post_init__(self):
        super().__post_init__()
        if not (0.0 < self.elite_pct < 1.0):
            raise ValueError("The elite percentage must be in (0,1)")
        if self.min_elite_size < 1:
            raise ValueError("The minimum elite size must be >= 1")
        if self.min_sample_size < 2:
            raise ValueError("The minimum sample size must be >= 2")
        if self.max_sample_size < self.min_sample_size:
            raise ValueError("The maximum sample size must be >= the minimum sample size")
        if self.sample_size is not None and self.sample_size < self.min_sample_size:
            raise ValueError(f"The CE sample size must be >= {self.min_sample_size}")
        if self.no_improve_threshold < 1:
            raise ValueError("no_improve_threshold must be >= 1")

    def resolved_sample_size(self) -> int:
        if self.sample_size is not None:
            return int(min(self.sample_size, self.max_sample_size))
        n = recommend_ce_sample_size(self.elite_pct, self.quantile_confidence_level, self.max_proportion_half_width)
        return int(min(max(n, self.min_sample_size), self.max_sample_size))


SizeFn = Callable[["CrossEntropySolver"], int]


def default_sample_size(solver: "CrossEntropySolver") -> int:
    return solver.config.resolved_sample_size()


def default_elite_size(solver: "CrossEntropySolver") -> int:
    cfg = solver.config
    return max(int(math.ceil(cfg.elite_pct * solver.sample_size())), cfg.min_elite_size)


class CrossEntropySolver(StochasticSolver):
    """Cross-Entropy method with a normal sampling distribution.

    Each iteration samples a population, evaluates it, keeps the elite
    fraction and smooths the sampler toward the elite mean and std-dev.
    Stops when the sampler has converged or the current (best elite)
    solution has been stable for ``no_improve_threshold`` iterations.
    """

    name = "cem"

    def __init__(
        self,
        evaluator: Evaluator,
        replication_schedule: Union[ReplicationSchedule, int, None] = None,
        config: Optional[CrossEntropyConfig] = None,
        *,
        sampler: Optional[CENormalSampler] = None,
        sample_size_fn: SizeFn = default_sample_size,
        elite_size_fn: SizeFn = default_elite_size,
        solution_equality: Optional[SolutionEquality] = None,
        **kwargs,
    ):
        config = config if config is not None else CrossEntropyConfig()
        super().__init__(evaluator, replication_schedule, config, **kwargs)
        self.sampler = sampler if sampler is not None else CENormalSampler(self.problem)
        if self.sampler.problem is not self.problem:
            raise ValueError("The sampler must be built on the evaluator's problem definition")
        self.sample_size_fn = sample_size_fn
        self.elite_size_fn = elite_size_fn
        self.solution_checker = SolutionChecker(solution_equality, config.no_improve_threshold)
        self.elites: List[Solution] = []
        self._last_population = 0

    def sample_size(self) -> int:
        return int(self.sample_size_fn(self))

    def elite_size(self) -> int:
        return int(self.elite_size_fn(self))

    def initialize_iterations(self, start) -> None:
        super().initialize_iterations(start)
        self.sampler.initialize_parameters(start.input_values)
        self.elites = []
        self.solution_checker.clear()
        _LOGGER.info("%s: sampler initialized with means=%s sds=%s", self.name, self.sampler.means, self.sampler.sds)

    def find_elite_solutions(self, results: Sequence[Solution]) -> List[Solution]:
        ranked = sorted(results, key=solution_sort_key)
        return ranked[: min(self.elite_size(), len(ranked))]

    def main_iteration(self) -> None:
        points = self.sampler.sample(self.sample_size(), self.rn_stream)
        inputs = self.problem.convert_points_to_inputs(points)
        results = self.request_evaluations(inputs)
        self._last_population = len(results)
        if not results:
            _LOGGER.warning("%s: iteration %d produced no evaluations; skipping update", self.name, self.iteration_counter)
            return
        self.elites = self.find_elite_solutions(results)
        self.sampler.update_parameters([s.input_values for s in self.elites])
        self.current_solution = self.elites[0]
        self.solution_checker.capture_solution(self.current_solution)
        _LOGGER.debug(
            "%s: iteration %d: %d evaluated, %d elites, means=%s sds=%s",
            self.name, self.iteration_counter, len(results), len(self.elites), self.sampler.means, self.sampler.sds,
        )

    def default_stopping_criteria(self) -> bool:
        return self.solution_checker.check_solutions() or self.sampler.has_converged()

    def iteration_info(self) -> Dict[str, Any]:
        return {
            "population": self._last_population,
            "elites": len(self.elites),
            "max_sd": float(np.max(self.sampler.sds)),
        }
