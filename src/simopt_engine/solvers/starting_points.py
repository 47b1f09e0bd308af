from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from ..problem import InputMap
from ..solution import Solution, compare_solutions

if TYPE_CHECKING:
    from .base import StochasticSolver

_LOGGER = logging.getLogger(__name__)


class StartingPointGenerator:
    def starting_point(self, solver: "StochasticSolver") -> InputMap:
        raise NotImplementedError


class RandomStartingPointGenerator(StartingPointGenerator):
    """Random input-feasible point drawn from the solver's own stream."""

    def starting_point(self, solver: "StochasticSolver") -> InputMap:
        return solver.problem.starting_point(solver.rn_stream)


@dataclass
class HillClimbingProbeStartingPointGenerator(StartingPointGenerator):
    """Best end point of several short random hill-climbing probes.

    Probe evaluations go through the solver, so they count toward its
    oracle-call and replication totals.
    """

    num_probes: int = 5
    probe_iterations: int = 10
    num_replications: Optional[int] = None

    def __post_init__(self):
        if self.num_probes < 1:
            raise ValueError("num_probes must be >= 1")
        if self.probe_iterations < 0:
            raise ValueError("probe_iterations must be >= 0")
        if self.num_replications is not None and self.num_replications < 1:
            raise ValueError("num_replications must be >= 1")

    def starting_point(self, solver: "StochasticSolver") -> InputMap:
        problem = solver.problem
        stream = solver.rn_stream
        best: Optional[Solution] = None
        fallback: Optional[InputMap] = None
        for p in range(self.num_probes):
            start = problem.starting_point(stream)
            fallback = fallback or start
            cur = solver.request_evaluation(start, self.num_replications)
            if cur is None:
                continue
            for _ in range(self.probe_iterations):
                cand = solver.request_evaluation(problem.generate_neighbor(cur.input_map, stream), self.num_replications)
                if cand is not None and compare_solutions(cand, cur) < 0:
                    cur = cand
            _LOGGER.debug("probe %d ended at %s", p, cur)
            if best is None or compare_solutions(cur, best) < 0:
                best = cur
        if best is None:
            _LOGGER.warning("all hill-climbing probes failed; using a random starting point")
            return fallback
        return best.input_map
