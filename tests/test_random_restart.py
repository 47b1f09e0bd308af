"""Tests for the random-restart wrapper."""

import pytest

from simopt_engine.evaluator import Evaluator, MemorySolutionCache
from simopt_engine.rng import RNStreamProvider
from simopt_engine.solution import compare_solutions
from simopt_engine.solvers import (
    RandomRestartConfig,
    RandomRestartSolver,
    StochasticHillClimber,
    StochasticHillClimberConfig,
)

from conftest import FunctionOracle, sphere


class CountingCache(MemorySolutionCache):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.clears = 0

    def clear(self):
        self.clears += 1
        super().clear()


@pytest.fixture
def setup(grid_problem):
    cache = CountingCache()
    ev = Evaluator(grid_problem, FunctionOracle(sphere([3, 7]), noise_sd=0.5), cache=cache)
    provider = RNStreamProvider(5)
    inner = StochasticHillClimber(ev, 4, StochasticHillClimberConfig(max_iterations=15), stream_provider=provider)
    outer = RandomRestartSolver(inner, RandomRestartConfig(max_iterations=3), stream_provider=provider)
    return ev, cache, inner, outer


def _record_inner_runs(inner):
    runs = []
    original = inner.solve

    def recording_solve():
        start = inner.starting_point
        res = original()
        runs.append((start, inner.num_oracle_calls, inner.num_replications_requested, res))
        return res

    inner.solve = recording_solve
    return runs


class TestRandomRestartSolver:
    """Tests for restart bookkeeping."""

    def test_totals_are_sums_over_inner_runs(self, setup):
        """Verify outer oracle calls and replications add up the inner runs."""
        ev, _, inner, outer = setup
        runs = _record_inner_runs(inner)
        outer.solve()
        assert len(runs) == 3
        assert outer.num_oracle_calls == sum(r[1] for r in runs)
        assert outer.num_replications_requested == sum(r[2] for r in runs)
        assert outer.num_oracle_calls == ev.total_requests

    def test_cache_cleared_each_restart(self, setup):
        """Verify the evaluator cache is cleared before every restart."""
        _, cache, _, outer = setup
        outer.solve()
        assert cache.clears == 3

    def test_cache_kept_when_disabled(self, grid_problem):
        """Verify clear_cache_on_restart=False leaves the cache alone."""
        cache = CountingCache()
        ev = Evaluator(grid_problem, FunctionOracle(sphere([3, 7])), cache=cache)
        inner = StochasticHillClimber(ev, 2, StochasticHillClimberConfig(max_iterations=5), stream_provider=RNStreamProvider(1))
        outer = RandomRestartSolver(inner, RandomRestartConfig(max_iterations=2, clear_cache_on_restart=False))
        outer.solve()
        assert cache.clears == 0

    def test_first_restart_uses_outer_starting_point(self, setup, grid_problem):
        """Verify the outer starting point seeds the first inner run only."""
        _, _, inner, outer = setup
        runs = _record_inner_runs(inner)
        outer.starting_point = grid_problem.to_input_map([1, 1])
        outer.solve()
        assert runs[0][0] == grid_problem.to_input_map([1, 1])
        assert all(r[0].is_input_feasible() for r in runs)

    def test_best_is_best_over_restarts(self, setup):
        """Verify the outer best is no worse than any restart's best."""
        _, _, _, outer = setup
        result = outer.solve()
        assert len(outer.restart_results) == 3
        assert len(result.history) == 3
        for best in outer.restart_results:
            assert compare_solutions(result.best_solution, best) <= 0

    def test_current_is_last_restart_best(self, setup):
        """Verify the current solution is adopted from the latest restart."""
        _, _, _, outer = setup
        outer.solve()
        assert outer.current_solution is outer.restart_results[-1]
