"""Estimated responses and the immutable Solution record built from them."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Optional, Sequence, Tuple

import numpy as np
from scipy.stats import t as student_t

if TYPE_CHECKING:
    from .problem import InputMap

DEFAULT_CONFIDENCE_LEVEL = 0.95


def _check_level(level: float) -> None:
    if not (0.0 < level < 1.0):
        raise ValueError(f"The confidence level must be in (0,1); got {level}")


@dataclass(frozen=True)
class EstimatedResponse:
    """Sample summary (average, variance, count) of one simulation response.

    count == 1 means the variance is undefined (NaN). count == 0 is reserved
    for the sentinel attached to a bad solution.
    """

    name: str
    average: float
    variance: float
    count: float

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("The name of the response cannot be blank")
        if math.isnan(self.count) or self.count < 0:
            raise ValueError(f"The count must be >= 0; got {self.count}")
        if self.count >= 2 and not (self.variance >= 0.0):
            raise ValueError(f"The variance must be >= 0 when count >= 2; got {self.variance}")

    @classmethod
    def from_observations(cls, name: str, data: Sequence[float]) -> "EstimatedResponse":
        x = np.asarray(data, dtype=np.float64).reshape(-1)
        if x.size == 0:
            raise ValueError(f"No observations supplied for response '{name}'")
        var = float(np.var(x, ddof=1)) if x.size >= 2 else float("nan")
        return cls(name=name, average=float(np.mean(x)), variance=var, count=float(x.size))

    @property
    def standard_deviation(self) -> float:
        return math.sqrt(self.variance) if self.variance >= 0.0 else float("nan")

    @property
    def standard_error(self) -> float:
        if self.count < 1.0:
            return float("nan")
        return self.standard_deviation / math.sqrt(self.count)

    def half_width(self, level: float = DEFAULT_CONFIDENCE_LEVEL) -> float:
        _check_level(level)
        if self.count <= 1.0:
            return float("nan")
        tq = float(student_t.ppf(1.0 - (1.0 - level) / 2.0, self.count - 1.0))
        return tq * self.standard_error

    def confidence_interval(self, level: float = DEFAULT_CONFIDENCE_LEVEL) -> Tuple[float, float]:
        if self.count <= 1.0:
            _check_level(level)
            return float("-inf"), float("inf")
        hw = self.half_width(level)
        return self.average - hw, self.average + hw

    def merge(self, other: "EstimatedResponse") -> "EstimatedResponse":
        """Pool two summaries of independent samples of the same response."""
        if other.name != self.name:
            raise ValueError(f"Cannot merge responses '{self.name}' and '{other.name}'")
        if self.count == 0:
            return other
        if other.count == 0:
            return self
        n1, n2 = self.count, other.count
        n = n1 + n2
        mean = (n1 * self.average + n2 * other.average) / n
        ss1 = (n1 - 1.0) * self.variance if n1 >= 2 else 0.0
        ss2 = (n2 - 1.0) * other.variance if n2 >= 2 else 0.0
        delta = other.average - self.average
        ss = ss1 + ss2 + delta * delta * n1 * n2 / n
        var = ss / (n - 1.0)
        return EstimatedResponse(name=self.name, average=mean, variance=var, count=n)


def difference_confidence_interval(
    a: EstimatedResponse,
    b: EstimatedResponse,
    level: float = DEFAULT_CONFIDENCE_LEVEL,
    *,
    shift: float = 0.0,
) -> Tuple[float, float]:
    """Welch confidence interval on (a.average + shift) - b.average."""
    _check_level(level)
    if a.count < 2 or b.count < 2:
        raise ValueError("Both estimates need at least 2 observations for a difference interval")
    d = a.average + shift - b.average
    v1 = a.variance / a.count
    v2 = b.variance / b.count
    v = v1 + v2
    if v == 0.0:
        return d, d
    dof = (v * v) / ((v1 * v1) / (a.count + 1.0) + (v2 * v2) / (b.count + 1.0)) - 2.0
    dof = max(dof, 1.0)
    tq = float(student_t.ppf(1.0 - (1.0 - level) / 2.0, dof))
    se = math.sqrt(v)
    return d - tq * se, d + tq * se


def compare_estimated_responses(
    a: EstimatedResponse,
    b: EstimatedResponse,
    level: float = DEFAULT_CONFIDENCE_LEVEL,
    indifference_zone: float = 0.0,
    *,
    shift: float = 0.0,
) -> int:
    """-1 if a is statistically smaller than b, 1 if larger, 0 if indistinguishable.

    ``shift`` is a deterministic offset added to a's average (used to compare
    penalized values built on the same estimate).
    """
    _check_level(level)
    if indifference_zone < 0.0:
        raise ValueError("The indifference zone parameter must be >= 0.0")
    d = a.average + shift - b.average
    if a.count < 2 and b.count < 2:
        lo, hi = d, d
    elif a.count < 2:
        hw = b.half_width(level)
        lo, hi = d - hw, d + hw
    elif b.count < 2:
        hw = a.half_width(level)
        lo, hi = d - hw, d + hw
    else:
        lo, hi = difference_confidence_interval(a, b, level, shift=shift)
    if hi + indifference_zone < 0.0:
        return -1
    if lo - indifference_zone > 0.0:
        return 1
    if a.count < 2 and b.count < 2 and d != 0.0:
        return -1 if d < 0.0 else 1
    return 0


@dataclass(frozen=True, eq=False)
class Solution:
    """Immutable result of evaluating one input map.

    Only the Evaluator (and ProblemDefinition.bad_solution) should build these.
    Ordering is by penalized objective value, ties going to the solution with
    more replications.
    """

    input_map: "InputMap"
    num_replications: int
    estimated_objective: EstimatedResponse
    penalized_objective_value: float
    responses: Tuple[EstimatedResponse, ...] = ()
    evaluation_number: int = 0
    meta: Dict[str, float] = field(default_factory=dict)

    @property
    def estimated_objective_value(self) -> float:
        return self.estimated_objective.average

    @property
    def input_values(self) -> np.ndarray:
        return self.input_map.input_values

    @property
    def penalty(self) -> float:
        if math.isinf(self.penalized_objective_value):
            return 0.0
        return self.penalized_objective_value - self.estimated_objective.average

    def is_input_feasible(self) -> bool:
        return self.input_map.is_input_feasible()

    def response(self, name: str) -> Optional[EstimatedResponse]:
        if name == self.estimated_objective.name:
            return self.estimated_objective
        for r in self.responses:
            if r.name == name:
                return r
        return None

    def __lt__(self, other: "Solution") -> bool:
        return compare_solutions(self, other) < 0

    def __repr__(self) -> str:
        return (
            f"Solution(inputs={dict(self.input_map)}, n={self.num_replications}, "
            f"penalized={self.penalized_objective_value:.6g})"
        )


def compare_solutions(a: Solution, b: Solution) -> int:
    """Total order on penalized objective value; more replications wins a tie."""
    fa = a.penalized_objective_value
    fb = b.penalized_objective_value
    if fa < fb:
        return -1
    if fa > fb:
        return 1
    if a.num_replications > b.num_replications:
        return -1
    if a.num_replications < b.num_replications:
        return 1
    return 0


def minimum_solution(a: Solution, b: Solution) -> Solution:
    """The better of two solutions; b wins only if it strictly compares better."""
    return b if compare_solutions(b, a) < 0 else a


def solution_sort_key(s: Solution) -> Tuple[float, int]:
    return s.penalized_objective_value, -s.num_replications
