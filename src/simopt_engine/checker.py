"""Solution comparators, equality tests and the sliding-window stability checker."""

from __future__ import annotations

import logging
import math
from collections import deque
from typing import Deque, List, Optional

from .solution import DEFAULT_CONFIDENCE_LEVEL, Solution, compare_estimated_responses

_LOGGER = logging.getLogger(__name__)

DEFAULT_NO_IMPROVE_THRESHOLD = 5
DEFAULT_NUMERICAL_PRECISION = 1e-9


class PenalizedObjectiveComparator:
    """Three-way comparison of penalized values, equal within a precision."""

    def __init__(self, precision: float = DEFAULT_NUMERICAL_PRECISION):
        if precision <= 0.0:
            raise ValueError("The solution precision must be > 0.0")
        self.precision = float(precision)

    def compare(self, a: Solution, b: Solution) -> int:
        fa, fb = a.penalized_objective_value, b.penalized_objective_value
        if fa == fb:
            return 0
        d = fa - fb
        if d < -self.precision:
            return -1
        if d > self.precision:
            return 1
        return 0


class ConfidenceIntervalComparator:
    """-1/0/1 from a confidence interval on the difference of penalized values."""

    def __init__(self, level: float = DEFAULT_CONFIDENCE_LEVEL, indifference_zone: float = 0.0):
        if not (0.0 < level < 1.0):
            raise ValueError("The confidence level must be in (0,1)")
        if indifference_zone < 0.0:
            raise ValueError("The indifference zone parameter must be >= 0.0")
        self.level = float(level)
        self.indifference_zone = float(indifference_zone)

    def compare(self, a: Solution, b: Solution) -> int:
        fa, fb = a.penalized_objective_value, b.penalized_objective_value
        if math.isinf(fa) or math.isinf(fb):
            return 0 if fa == fb else (-1 if fa < fb else 1)
        return compare_estimated_responses(
            a.estimated_objective,
            b.estimated_objective,
            self.level,
            self.indifference_zone,
            shift=a.penalty - b.penalty,
        )


class SolutionEquality:
    def equals(self, a: Solution, b: Solution) -> bool:
        raise NotImplementedError


class InputEquality(SolutionEquality):
    def equals(self, a: Solution, b: Solution) -> bool:
        return a.input_map == b.input_map


class PenalizedObjectiveEquality(SolutionEquality):
    def __init__(self, precision: float = DEFAULT_NUMERICAL_PRECISION):
        self.comparator = PenalizedObjectiveComparator(precision)

    def equals(self, a: Solution, b: Solution) -> bool:
        return self.comparator.compare(a, b) == 0


class ConfidenceIntervalEquality(SolutionEquality):
    def __init__(self, level: float = DEFAULT_CONFIDENCE_LEVEL, indifference_zone: float = 0.0):
        self.comparator = ConfidenceIntervalComparator(level, indifference_zone)

    def equals(self, a: Solution, b: Solution) -> bool:
        return self.comparator.compare(a, b) == 0


class InputsAndConfidenceIntervalEquality(SolutionEquality):
    """Same inputs and statistically indistinguishable penalized objective."""

    def __init__(self, level: float = DEFAULT_CONFIDENCE_LEVEL, indifference_zone: float = 0.0):
        self.inputs = InputEquality()
        self.interval = ConfidenceIntervalEquality(level, indifference_zone)

    def equals(self, a: Solution, b: Solution) -> bool:
        return self.inputs.equals(a, b) and self.interval.equals(a, b)


class SolutionChecker:
    """Keeps the last ``no_improve_threshold`` solutions and tests them for stagnation."""

    def __init__(
        self,
        equality: Optional[SolutionEquality] = None,
        no_improve_threshold: int = DEFAULT_NO_IMPROVE_THRESHOLD,
    ):
        if no_improve_threshold < 1:
            raise ValueError("The no improvement threshold must be greater than 0")
        self.equality = equality if equality is not None else InputsAndConfidenceIntervalEquality()
        self.no_improve_threshold = int(no_improve_threshold)
        self._last: Deque[Solution] = deque(maxlen=self.no_improve_threshold)

    def capture_solution(self, solution: Solution) -> None:
        self._last.append(solution)

    def clear(self) -> None:
        self._last.clear()

    @property
    def last_solutions(self) -> List[Solution]:
        return list(self._last)

    def check_solutions(self) -> bool:
        """True when the window is full and every entry equals the most recent one."""
        if len(self._last) < self.no_improve_threshold:
            return False
        last = self._last[-1]
        stable = all(self.equality.equals(last, s) for s in self._last)
        if stable:
            _LOGGER.debug("SolutionChecker: last %d solutions are equal", self.no_improve_threshold)
        return stable
