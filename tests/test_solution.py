"""Tests for EstimatedResponse statistics and Solution ordering."""

import math

import numpy as np
import pytest
from scipy.stats import t as student_t

from simopt_engine.solution import (
    EstimatedResponse,
    Solution,
    compare_estimated_responses,
    compare_solutions,
    difference_confidence_interval,
    minimum_solution,
)


def _solution(problem, x, data, penalty=0.0):
    obj = EstimatedResponse.from_observations("objective", data)
    return Solution(problem.to_input_map(x), int(obj.count), obj, obj.average + penalty)


class TestEstimatedResponse:
    """Tests for the sample summary."""

    def test_from_observations(self):
        """Verify mean, unbiased variance and count."""
        r = EstimatedResponse.from_observations("y", [1.0, 2.0, 3.0, 4.0])
        assert r.average == pytest.approx(2.5)
        assert r.variance == pytest.approx(np.var([1, 2, 3, 4], ddof=1))
        assert r.count == 4

    def test_single_observation_has_undefined_variance(self):
        """Verify n=1 gives NaN variance and an unbounded interval."""
        r = EstimatedResponse.from_observations("y", [3.0])
        assert math.isnan(r.variance)
        assert r.confidence_interval() == (float("-inf"), float("inf"))

    def test_half_width_uses_student_t(self):
        """Verify the half-width against scipy's t quantile."""
        data = [1.0, 2.0, 3.0, 4.0]
        r = EstimatedResponse.from_observations("y", data)
        expected = student_t.ppf(0.975, 3) * math.sqrt(np.var(data, ddof=1) / 4)
        assert r.half_width(0.95) == pytest.approx(expected)
        lo, hi = r.confidence_interval(0.95)
        assert lo == pytest.approx(2.5 - expected)
        assert hi == pytest.approx(2.5 + expected)

    def test_merge_matches_pooled_sample(self):
        """Verify merging two summaries equals summarising the concatenated data."""
        a = EstimatedResponse.from_observations("y", [1.0, 2.0, 3.0])
        b = EstimatedResponse.from_observations("y", [4.0, 5.0, 6.0, 7.0])
        m = a.merge(b)
        assert m.count == 7
        assert m.average == pytest.approx(4.0)
        assert m.variance == pytest.approx(np.var(np.arange(1, 8), ddof=1))

    def test_merge_with_single_observations(self):
        """Verify merging two single observations yields a defined variance."""
        a = EstimatedResponse.from_observations("y", [1.0])
        b = EstimatedResponse.from_observations("y", [3.0])
        m = a.merge(b)
        assert m.average == pytest.approx(2.0)
        assert m.variance == pytest.approx(2.0)

    def test_merge_rejects_other_names(self):
        """Verify only same-named responses merge."""
        with pytest.raises(ValueError):
            EstimatedResponse.from_observations("a", [1.0]).merge(EstimatedResponse.from_observations("b", [1.0]))

    def test_validation(self):
        """Verify blank names, negative counts and negative variances are rejected."""
        with pytest.raises(ValueError):
            EstimatedResponse(" ", 0.0, 1.0, 2)
        with pytest.raises(ValueError):
            EstimatedResponse("y", 0.0, 1.0, -1)
        with pytest.raises(ValueError):
            EstimatedResponse("y", 0.0, -1.0, 5)
        with pytest.raises(ValueError):
            EstimatedResponse.from_observations("y", [])


class TestCompareEstimatedResponses:
    """Tests for the confidence-interval comparison."""

    low = EstimatedResponse.from_observations("y", [0.0, 0.1, -0.1, 0.05])
    high = EstimatedResponse.from_observations("y", [10.0, 10.1, 9.9, 10.05])

    def test_clearly_different(self):
        """Verify clearly separated samples compare -1 and 1."""
        assert compare_estimated_responses(self.low, self.high) == -1
        assert compare_estimated_responses(self.high, self.low) == 1

    def test_identical_samples_are_indistinguishable(self):
        """Verify a sample compared with itself gives 0."""
        assert compare_estimated_responses(self.low, self.low) == 0

    def test_indifference_zone_widens_the_tie(self):
        """Verify a large indifference zone turns a difference into a tie."""
        assert compare_estimated_responses(self.low, self.high, indifference_zone=20.0) == 0

    def test_shift_moves_the_difference(self):
        """Verify a deterministic shift is added to the first average."""
        assert compare_estimated_responses(self.low, self.high, shift=20.0) == 1

    def test_single_observations_compare_by_value(self):
        """Verify two single-observation estimates are ordered by their values."""
        a = EstimatedResponse.from_observations("y", [1.0])
        b = EstimatedResponse.from_observations("y", [2.0])
        assert compare_estimated_responses(a, b) == -1
        assert compare_estimated_responses(a, a) == 0

    def test_difference_interval_requires_two_observations(self):
        """Verify the Welch interval needs n >= 2 on both sides."""
        with pytest.raises(ValueError):
            difference_confidence_interval(EstimatedResponse.from_observations("y", [1.0]), self.low)

    def test_difference_interval_contains_difference(self):
        """Verify the interval brackets the difference of the averages."""
        lo, hi = difference_confidence_interval(self.low, self.high)
        d = self.low.average - self.high.average
        assert lo < d < hi


class TestSolutionOrdering:
    """Tests for compare_solutions and minimum_solution."""

    def test_lower_penalized_value_wins(self, grid_problem):
        """Verify ordering by penalized value."""
        a = _solution(grid_problem, [1, 1], [1.0, 1.2])
        b = _solution(grid_problem, [2, 2], [2.0, 2.2])
        assert compare_solutions(a, b) == -1
        assert a < b
        assert sorted([b, a])[0] is a

    def test_more_replications_break_ties(self, grid_problem):
        """Verify equal values are ordered by replication count."""
        a = _solution(grid_problem, [1, 1], [1.0] * 10)
        b = _solution(grid_problem, [2, 2], [1.0] * 5)
        assert compare_solutions(a, b) == -1
        assert compare_solutions(b, a) == 1

    def test_minimum_prefers_first_on_tie(self, grid_problem):
        """Verify the second solution must be strictly better to be chosen."""
        a = _solution(grid_problem, [1, 1], [1.0, 1.0])
        b = _solution(grid_problem, [2, 2], [1.0, 1.0])
        assert minimum_solution(a, b) is a
        c = _solution(grid_problem, [3, 3], [0.0, 0.0])
        assert minimum_solution(a, c) is c

    def test_penalty_is_difference(self, grid_problem):
        """Verify the penalty is the penalized value minus the objective average."""
        s = _solution(grid_problem, [1, 1], [1.0, 3.0], penalty=5.0)
        assert s.estimated_objective_value == pytest.approx(2.0)
        assert s.penalty == pytest.approx(5.0)
        assert s.response("objective") is s.estimated_objective
        assert s.response("missing") is None
