"""Tests for simulated annealing."""

import math

import pytest

from simopt_engine.benchmarks import QuadraticBenchmark
from simopt_engine.evaluator import Evaluator
from simopt_engine.rng import RNStreamProvider
from simopt_engine.schedules import ExponentialCoolingSchedule
from simopt_engine.solvers import SimulatedAnnealing, SimulatedAnnealingConfig
from simopt_engine.solvers.sa_solver import acceptance_probability


class TestAcceptanceProbability:
    """Tests for the Metropolis acceptance rule."""

    def test_improvements_always_accepted(self):
        """Verify non-positive differences give probability 1."""
        assert acceptance_probability(-3.0, 1.0) == 1.0
        assert acceptance_probability(0.0, 1.0) == 1.0

    def test_worse_moves(self):
        """Verify exp(-delta / T)."""
        assert acceptance_probability(2.0, 4.0) == pytest.approx(math.exp(-0.5))

    def test_temperature_must_be_positive(self):
        """Verify T <= 0 raises ValueError."""
        with pytest.raises(ValueError):
            acceptance_probability(1.0, 0.0)


class TestSimulatedAnnealing:
    """End-to-end runs of the annealer."""

    def test_stops_when_temperature_falls_below_final(self, grid_evaluator):
        """Verify the default stop at T < final temperature."""
        solver = SimulatedAnnealing(
            grid_evaluator,
            2,
            SimulatedAnnealingConfig(initial_temperature=10.0, final_temperature=0.01),
            cooling_schedule=ExponentialCoolingSchedule(initial_temperature=10.0, cooling_rate=0.5),
            stream_provider=RNStreamProvider(1),
        )
        result = solver.solve()
        assert solver.iteration_counter == 10
        assert solver.current_temperature < 0.01
        temps = [row["temperature"] for row in result.history]
        assert temps == sorted(temps, reverse=True)

    def test_improves_on_start(self, grid_evaluator, grid_problem):
        """Verify the best solution found beats the starting point."""
        solver = SimulatedAnnealing(
            grid_evaluator,
            2,
            SimulatedAnnealingConfig(initial_temperature=1.0, final_temperature=0.001),
            cooling_schedule=ExponentialCoolingSchedule(initial_temperature=1.0, cooling_rate=0.95),
            stream_provider=RNStreamProvider(2),
        )
        solver.starting_point = grid_problem.to_input_map([0, 0])
        result = solver.solve()
        assert result.found_solution
        assert result.y_best < 58.0
        assert result.history[-1]["oracle_calls"] == solver.num_oracle_calls

    def test_survives_oracle_failures(self):
        """Verify failed evaluations are skipped and cooling continues."""
        bench = QuadraticBenchmark(center=[3, 7], lower=[0, 0], upper=[10, 10], noise_sd=0.5, seed=4, failure_prob=0.3)
        ev = Evaluator(bench.problem(), bench)
        solver = SimulatedAnnealing(
            ev,
            3,
            SimulatedAnnealingConfig(initial_temperature=10.0, final_temperature=0.01),
            cooling_schedule=ExponentialCoolingSchedule(initial_temperature=10.0, cooling_rate=0.9),
            stream_provider=RNStreamProvider(3),
        )
        result = solver.solve()
        assert ev.total_failed_evaluations > 0
        assert solver.current_temperature < 0.01
        assert solver.iteration_counter < solver.max_iterations
        assert result.found_solution

    def test_iterating_before_initialize_is_an_error(self, grid_evaluator):
        """Verify run_iteration requires initialize."""
        solver = SimulatedAnnealing(grid_evaluator, 2)
        with pytest.raises(RuntimeError):
            solver.run_iteration()
