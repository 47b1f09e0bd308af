"""Bridge between solvers and the simulation oracle.

The Evaluator is the only place where replications are actually run. It
deduplicates a request, serves what it can from a ``MemorySolutionCache``,
simulates only the replications still missing, merges them with the cached
estimate and turns the result into ``Solution`` records.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Sequence

from .problem import InputMap, ProblemDefinition
from .solution import EstimatedResponse, Solution

_LOGGER = logging.getLogger(__name__)


class OracleEvaluationError(RuntimeError):
    """Raised by an oracle when a simulation run produced no usable result."""


class SimulationOracle:
    """Runs a stochastic simulation at one input setting.

    ``simulate`` returns, for every response name, the list of per-replication
    observations (one value per replication).
    """

    def simulate(self, input_map: InputMap, num_replications: int) -> Dict[str, Sequence[float]]:
        raise NotImplementedError


class MemorySolutionCache:
    """Bounded in-memory map InputMap -> Solution.

    When full, an input-infeasible (or infinite-valued) entry is evicted
    first, otherwise the entry with the worst penalized objective.
    """

    def __init__(self, capacity: int = 1000):
        if capacity < 2:
            raise ValueError("The cache capacity must be >= 2")
        self.capacity = int(capacity)
        self._map: "OrderedDict[InputMap, Solution]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._map)

    def __contains__(self, key: InputMap) -> bool:
        return key in self._map

    def get(self, key: InputMap) -> Optional[Solution]:
        return self._map.get(key)

    def put(self, key: InputMap, solution: Solution) -> None:
        if key not in self._map and len(self._map) >= self.capacity:
            self._evict()
        self._map[key] = solution

    def remove(self, key: InputMap) -> Optional[Solution]:
        return self._map.pop(key, None)

    def retrieve_solutions(self, keys: Iterable[InputMap]) -> Dict[InputMap, Solution]:
        return {k: self._map[k] for k in keys if k in self._map}

    def solutions(self) -> List[Solution]:
        return list(self._map.values())

    def clear(self) -> None:
        self._map.clear()

    def _evict(self) -> None:
        for k, s in self._map.items():
            if not s.is_input_feasible() or s.penalized_objective_value == float("inf"):
                del self._map[k]
                _LOGGER.debug("cache: evicted infeasible entry %s", k)
                return
        worst = max(self._map, key=lambda k: self._map[k].penalized_objective_value)
        del self._map[worst]
        _LOGGER.debug("cache: evicted worst entry %s", worst)


class Evaluator:
    """Evaluates sets of inputs at a requested number of replications."""

    def __init__(
        self,
        problem: ProblemDefinition,
        oracle: SimulationOracle,
        cache: Optional[MemorySolutionCache] = None,
        oracle_replication_budget: Optional[int] = None,
    ):
        if oracle_replication_budget is not None and oracle_replication_budget < 1:
            raise ValueError("The oracle replication budget must be >= 1")
        self.problem = problem
        self.oracle = oracle
        self.cache = cache
        self.oracle_replication_budget = oracle_replication_budget
        self.reset_evaluation_counts()

    def reset_evaluation_counts(self) -> None:
        self.total_evaluations = 0
        self.total_oracle_evaluations = 0
        self.total_cached_evaluations = 0
        self.total_requests = 0
        self.total_duplicate_requests = 0
        self.total_replications = 0
        self.total_oracle_replications = 0
        self.total_cached_replications = 0
        self.total_failed_evaluations = 0

    @property
    def remaining_oracle_replications(self) -> Optional[int]:
        if self.oracle_replication_budget is None:
            return None
        return max(0, self.oracle_replication_budget - self.total_oracle_replications)

    @property
    def has_remaining_oracle_replications(self) -> bool:
        r = self.remaining_oracle_replications
        return r is None or r > 0

    def clear_cache(self) -> None:
        if self.cache is not None:
            self.cache.clear()
            _LOGGER.debug("Evaluator: cache cleared")

    def evaluate(self, inputs: Iterable[InputMap], num_replications: int) -> List[Solution]:
        """Solutions for the requested inputs, in request order.

        Duplicated inputs yield the same Solution object more than once. Inputs
        whose simulation failed, or that would exceed the replication budget,
        are left out of the returned list.
        """
        if num_replications < 1:
            raise ValueError(f"num_replications must be >= 1; got {num_replications}")
        requests = list(inputs)
        self.total_evaluations += 1
        self.total_requests += len(requests)
        self.total_replications += len(requests) * int(num_replications)

        unique: List[InputMap] = list(dict.fromkeys(requests))
        self.total_duplicate_requests += len(requests) - len(unique)

        results: Dict[InputMap, Solution] = {}
        for im in unique:
            if not isinstance(im, InputMap):
                raise ValueError(f"Expected an InputMap; got {type(im).__name__}")
            if not im.is_input_feasible():
                raise ValueError(f"Cannot evaluate an input-infeasible point: {im}")
            sol = self._evaluate_one(im, int(num_replications))
            if sol is not None:
                results[im] = sol

        return [results[im] for im in requests if im in results]

    def _evaluate_one(self, im: InputMap, num_replications: int) -> Optional[Solution]:
        cached = self.cache.get(im) if self.cache is not None else None
        if cached is not None and cached.num_replications >= num_replications:
            self.total_cached_evaluations += 1
            self.total_cached_replications += num_replications
            return cached

        needed = num_replications - (cached.num_replications if cached is not None else 0)
        remaining = self.remaining_oracle_replications
        if remaining is not None and needed > remaining:
            _LOGGER.warning(
                "Evaluator: replication budget exhausted (%d needed, %d left); skipping %s", needed, remaining, im
            )
            return None

        try:
            observations = self.oracle.simulate(im, needed)
        except OracleEvaluationError as e:
            self.total_failed_evaluations += 1
            _LOGGER.warning("Evaluator: oracle failed at %s: %s", im, e)
            return None

        self.total_oracle_evaluations += 1
        self.total_oracle_replications += needed
        estimates = self._estimates_from_observations(observations, needed)
        if cached is not None:
            self.total_cached_replications += cached.num_replications
            estimates = self._merge_with_cached(cached, estimates)
        sol = self._create_solution(im, estimates)
        if self.cache is not None:
            self.cache.put(im, sol)
        return sol

    def _estimates_from_observations(
        self, observations: Dict[str, Sequence[float]], num_replications: int
    ) -> Dict[str, EstimatedResponse]:
        out: Dict[str, EstimatedResponse] = {}
        for name in self.problem.response_names:
            if name not in observations:
                raise ValueError(f"Oracle did not report response '{name}'")
            data = list(observations[name])
            if len(data) != num_replications:
                raise ValueError(
                    f"Oracle returned {len(data)} observations of '{name}'; expected {num_replications}"
                )
            out[name] = EstimatedResponse.from_observations(name, data)
        return out

    def _merge_with_cached(self, cached: Solution, fresh: Dict[str, EstimatedResponse]) -> Dict[str, EstimatedResponse]:
        merged: Dict[str, EstimatedResponse] = {}
        for name, est in fresh.items():
            old = cached.response(name)
            merged[name] = est if old is None else old.merge(est)
        return merged

    def _create_solution(self, im: InputMap, estimates: Dict[str, EstimatedResponse]) -> Solution:
        objective = estimates[self.problem.objective_response_name]
        others = tuple(r for n, r in estimates.items() if n != self.problem.objective_response_name)
        return Solution(
            input_map=im,
            num_replications=int(objective.count),
            estimated_objective=objective,
            penalized_objective_value=self.problem.penalized_objective(objective, estimates),
            responses=others,
            evaluation_number=self.total_evaluations,
        )

    def counts(self) -> Dict[str, int]:
        return {
            "evaluations": self.total_evaluations,
            "oracle_evaluations": self.total_oracle_evaluations,
            "cached_evaluations": self.total_cached_evaluations,
            "requests": self.total_requests,
            "duplicate_requests": self.total_duplicate_requests,
            "replications": self.total_replications,
            "oracle_replications": self.total_oracle_replications,
            "cached_replications": self.total_cached_replications,
            "failed_evaluations": self.total_failed_evaluations,
        }
