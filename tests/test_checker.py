"""Tests for solution comparators, equality tests and the stability checker."""

import pytest

from simopt_engine.checker import (
    ConfidenceIntervalComparator,
    ConfidenceIntervalEquality,
    InputEquality,
    InputsAndConfidenceIntervalEquality,
    PenalizedObjectiveComparator,
    PenalizedObjectiveEquality,
    SolutionChecker,
)
from simopt_engine.solution import EstimatedResponse, Solution


def _solution(problem, x, data, penalty=0.0):
    obj = EstimatedResponse.from_observations("objective", data)
    return Solution(problem.to_input_map(x), int(obj.count), obj, obj.average + penalty)


class TestComparators:
    """Tests for the penalized-value and confidence-interval comparators."""

    def test_penalized_precision(self, grid_problem):
        """Verify values within the precision compare equal."""
        cmp = PenalizedObjectiveComparator(precision=1e-6)
        a = _solution(grid_problem, [1, 1], [1.0, 1.0])
        b = _solution(grid_problem, [1, 2], [1.0 + 1e-9, 1.0 + 1e-9])
        c = _solution(grid_problem, [1, 3], [2.0, 2.0])
        assert cmp.compare(a, b) == 0
        assert cmp.compare(a, c) == -1
        assert cmp.compare(c, a) == 1

    def test_interval_comparator_handles_bad_solutions(self, grid_problem):
        """Verify an infinite sentinel is worse than any finite solution."""
        cmp = ConfidenceIntervalComparator()
        good = _solution(grid_problem, [1, 1], [1.0, 2.0, 3.0])
        bad = grid_problem.bad_solution()
        assert cmp.compare(good, bad) == -1
        assert cmp.compare(bad, good) == 1
        assert cmp.compare(bad, grid_problem.bad_solution()) == 0

    def test_interval_comparator_uses_penalty(self, grid_problem):
        """Verify the penalty shifts the comparison of equal objectives."""
        cmp = ConfidenceIntervalComparator()
        a = _solution(grid_problem, [1, 1], [1.0, 1.1, 0.9, 1.0])
        b = _solution(grid_problem, [2, 2], [1.0, 1.1, 0.9, 1.0], penalty=50.0)
        assert cmp.compare(a, b) == -1

    def test_validation(self):
        """Verify invalid parameters raise ValueError."""
        with pytest.raises(ValueError):
            PenalizedObjectiveComparator(0.0)
        with pytest.raises(ValueError):
            ConfidenceIntervalComparator(level=1.0)
        with pytest.raises(ValueError):
            ConfidenceIntervalComparator(indifference_zone=-1.0)


class TestEqualities:
    """Tests for the SolutionEquality variants."""

    def test_input_equality(self, grid_problem):
        """Verify only the inputs matter."""
        a = _solution(grid_problem, [1, 1], [1.0, 2.0])
        b = _solution(grid_problem, [1, 1], [50.0, 60.0])
        c = _solution(grid_problem, [1, 2], [1.0, 2.0])
        assert InputEquality().equals(a, b)
        assert not InputEquality().equals(a, c)

    def test_penalized_objective_equality(self, grid_problem):
        """Verify equal penalized values at different inputs are equal."""
        a = _solution(grid_problem, [1, 1], [1.0, 3.0])
        b = _solution(grid_problem, [4, 4], [2.0, 2.0])
        assert PenalizedObjectiveEquality().equals(a, b)

    def test_confidence_interval_equality(self, grid_problem):
        """Verify overlapping noisy estimates are equal and separated ones are not."""
        a = _solution(grid_problem, [1, 1], [1.0, 2.0, 3.0])
        b = _solution(grid_problem, [2, 2], [1.5, 2.5, 2.0])
        c = _solution(grid_problem, [3, 3], [100.0, 101.0, 102.0])
        eq = ConfidenceIntervalEquality()
        assert eq.equals(a, b)
        assert not eq.equals(a, c)

    def test_inputs_and_interval_equality(self, grid_problem):
        """Verify both inputs and values must agree."""
        eq = InputsAndConfidenceIntervalEquality()
        a = _solution(grid_problem, [1, 1], [1.0, 2.0, 3.0])
        b = _solution(grid_problem, [1, 1], [1.5, 2.5, 2.0])
        c = _solution(grid_problem, [2, 2], [1.0, 2.0, 3.0])
        assert eq.equals(a, b)
        assert not eq.equals(a, c)


class TestSolutionChecker:
    """Tests for the sliding-window stability checker."""

    def test_window_must_be_full(self, grid_problem):
        """Verify fewer than the threshold solutions never count as stable."""
        checker = SolutionChecker(InputEquality(), no_improve_threshold=3)
        s = _solution(grid_problem, [1, 1], [1.0, 2.0])
        checker.capture_solution(s)
        checker.capture_solution(s)
        assert not checker.check_solutions()
        checker.capture_solution(s)
        assert checker.check_solutions()

    def test_one_different_entry_breaks_stability(self, grid_problem):
        """Verify a differing solution inside the window makes it unstable."""
        checker = SolutionChecker(InputEquality(), no_improve_threshold=3)
        same = _solution(grid_problem, [1, 1], [1.0, 2.0])
        other = _solution(grid_problem, [2, 2], [1.0, 2.0])
        for s in (other, same, same):
            checker.capture_solution(s)
        assert not checker.check_solutions()
        checker.capture_solution(same)
        assert checker.check_solutions()

    def test_window_keeps_only_latest(self, grid_problem):
        """Verify the window size is bounded by the threshold."""
        checker = SolutionChecker(InputEquality(), no_improve_threshold=2)
        for x in range(5):
            checker.capture_solution(_solution(grid_problem, [x, x], [1.0, 2.0]))
        assert [s.input_values[0] for s in checker.last_solutions] == [3.0, 4.0]

    def test_clear(self, grid_problem):
        """Verify clear empties the window."""
        checker = SolutionChecker(no_improve_threshold=1)
        checker.capture_solution(_solution(grid_problem, [1, 1], [1.0, 2.0]))
        assert checker.check_solutions()
        checker.clear()
        assert checker.last_solutions == []
        assert not checker.check_solutions()

    def test_default_equality_is_inputs_and_interval(self):
        """Verify the default equality test."""
        assert isinstance(SolutionChecker().equality, InputsAndConfidenceIntervalEquality)

    def test_invalid_threshold(self):
        """Verify a zero threshold raises ValueError."""
        with pytest.raises(ValueError):
            SolutionChecker(no_improve_threshold=0)
