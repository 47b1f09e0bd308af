from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..constraints import LinearInequalityConstraint, ResponseConstraint
from ..evaluator import OracleEvaluationError
from ..problem import InputMap, ProblemDefinition
from .base import Benchmark


@dataclass
class QuadraticBenchmark(Benchmark):
    """Noisy separable quadratic on a box.

    objective = scale * sum_i (x_i - center_i)^2 + N(0, noise_sd^2) per replication.
    With ``total_limit`` set, an extra response ``total = sum_i x_i + N(0, noise_sd^2)``
    is constrained to ``E[total] <= total_limit`` through the penalty.
    ``linear_A``/``linear_b`` add a deterministic constraint A x <= b.
    ``failure_prob`` makes a simulation fail with that probability.
    """

    center: Sequence[float]
    lower: Sequence[float]
    upper: Sequence[float]
    integer: bool = True
    noise_sd: float = 1.0
    scale: float = 1.0
    seed: int = 0
    linear_A: Optional[Sequence[Sequence[float]]] = None
    linear_b: Optional[Sequence[float]] = None
    total_limit: Optional[float] = None
    penalty_coefficient: float = 1000.0
    failure_prob: float = 0.0
    calls: int = field(default=0, init=False)

    def __post_init__(self):
        self.center = np.asarray(self.center, dtype=np.float64).reshape(-1)
        self.lower = np.asarray(self.lower, dtype=np.float64).reshape(-1)
        self.upper = np.asarray(self.upper, dtype=np.float64).reshape(-1)
        d = self.center.size
        if self.lower.size != d or self.upper.size != d:
            raise ValueError(f"center, lower and upper must have the same length; got {d}, {self.lower.size}, {self.upper.size}")
        if self.noise_sd < 0:
            raise ValueError("noise_sd must be >= 0")
        if not (0.0 <= self.failure_prob < 1.0):
            raise ValueError("failure_prob must be in [0,1)")
        self.rng = np.random.default_rng(self.seed)
        self.name = f"quadratic_d{d}_{'int' if self.integer else 'cont'}_seed{self.seed}"
        self._problem = self._build_problem()

    def _build_problem(self) -> ProblemDefinition:
        d = self.center.size
        cons = None
        if self.linear_A is not None:
            if self.linear_b is None:
                raise ValueError("linear_b is required with linear_A")
            cons = LinearInequalityConstraint(A=np.asarray(self.linear_A), b=np.asarray(self.linear_b))
        rcs: List[ResponseConstraint] = []
        if self.total_limit is not None:
            rcs.append(ResponseConstraint(name="total", rhs=float(self.total_limit), less_than=True))
        return ProblemDefinition(
            input_names=[f"x{i}" for i in range(d)],
            lower_bounds=self.lower,
            upper_bounds=self.upper,
            granularity=np.ones(d) if self.integer else np.zeros(d),
            linear_constraint=cons,
            response_constraints=rcs,
            penalty_coefficient=self.penalty_coefficient,
            objective_response_name="objective",
            name=self.name,
        )

    def n_vars(self) -> int:
        return int(self.center.size)

    def problem(self) -> ProblemDefinition:
        return self._problem

    def true_objective(self, x: Sequence[float]) -> float:
        x = np.asarray(x, dtype=np.float64)
        return float(self.scale * np.sum((x - self.center) ** 2))

    def simulate(self, input_map: InputMap, num_replications: int) -> Dict[str, Sequence[float]]:
        self.calls += 1
        if self.failure_prob > 0.0 and self.rng.random() < self.failure_prob:
            raise OracleEvaluationError(f"simulated failure at {input_map}")
        x = input_map.input_values
        n = int(num_replications)
        out: Dict[str, Sequence[float]] = {
            "objective": (self.true_objective(x) + self.noise_sd * self.rng.standard_normal(n)).tolist(),
        }
        if self.total_limit is not None:
            out["total"] = (float(np.sum(x)) + self.noise_sd * self.rng.standard_normal(n)).tolist()
        return out

    def info(self) -> Dict:
        return {
            "name": self.name,
            "d": self.n_vars(),
            "seed": self.seed,
            "integer": self.integer,
            "noise_sd": self.noise_sd,
            "center": self.center.tolist(),
            "minimum": 0.0,
        }
