"""Shared fixtures: small problems and scripted oracles."""

from typing import Callable, Dict, Optional, Sequence

import numpy as np
import pytest

from simopt_engine.evaluator import Evaluator, OracleEvaluationError, SimulationOracle
from simopt_engine.problem import ProblemDefinition


class FunctionOracle(SimulationOracle):
    """Oracle built from a plain function, with optional noise, extra responses and failures."""

    def __init__(
        self,
        fn: Callable[[np.ndarray], float],
        noise_sd: float = 0.0,
        seed: int = 0,
        extra: Optional[Dict[str, Callable[[np.ndarray], float]]] = None,
        fail_at: Sequence[tuple] = (),
    ):
        self.fn = fn
        self.noise_sd = noise_sd
        self.rng = np.random.default_rng(seed)
        self.extra = extra or {}
        self.fail_at = {tuple(float(v) for v in p) for p in fail_at}
        self.fail_all = False
        self.calls = []

    def simulate(self, input_map, num_replications):
        x = input_map.input_values
        self.calls.append((tuple(x), num_replications))
        if self.fail_all or tuple(x) in self.fail_at:
            raise OracleEvaluationError(f"scripted failure at {tuple(x)}")
        out = {"objective": (self.fn(x) + self.noise_sd * self.rng.standard_normal(num_replications)).tolist()}
        for name, g in self.extra.items():
            out[name] = [g(x)] * num_replications
        return out


def sphere(center):
    c = np.asarray(center, dtype=np.float64)
    return lambda x: float(np.sum((np.asarray(x) - c) ** 2))


@pytest.fixture
def function_oracle():
    return FunctionOracle


@pytest.fixture
def grid_problem():
    """2-D integer problem on [0,10] x [0,10]."""
    return ProblemDefinition(["x", "y"], [0, 0], [10, 10], [1, 1])


@pytest.fixture
def grid_evaluator(grid_problem):
    """Noise-free evaluator for (x-3)^2 + (y-7)^2 on the grid problem."""
    return Evaluator(grid_problem, FunctionOracle(sphere([3, 7])))
