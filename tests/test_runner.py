"""Tests for the config-driven experiment runner."""

import pandas as pd
import pytest
import yaml

from simopt_engine.evaluator import Evaluator
from simopt_engine.rng import RNStreamProvider
from simopt_engine.runner import (
    build_benchmark,
    build_replication_schedule,
    build_solver,
    run_experiment,
)
from simopt_engine.schedules import FixedGrowthRateReplicationSchedule, FixedReplicationsPerEvaluation
from simopt_engine.solvers import CrossEntropySolver, RandomRestartSolver, SimulatedAnnealing
from simopt_engine.utils import load_json


def _config(solver):
    return {
        "seed": 1,
        "benchmark": {
            "kind": "quadratic",
            "d": 2,
            "center": [3, 7],
            "lower": [0, 0],
            "upper": [10, 10],
            "integer": True,
            "noise_sd": 0.5,
            "seed": 1,
        },
        "evaluator": {"cache": True},
        "solver": solver,
    }


class TestBuilders:
    """Tests for the config section builders."""

    def test_replication_schedules(self):
        """Verify int, fixed and growth replication sections."""
        assert build_replication_schedule(None) is None
        assert build_replication_schedule(7) == FixedReplicationsPerEvaluation(7)
        growth = build_replication_schedule({"kind": "growth", "initial": 4, "rate": 0.2})
        assert isinstance(growth, FixedGrowthRateReplicationSchedule)
        assert growth.initial_replications == 4
        with pytest.raises(ValueError):
            build_replication_schedule({"kind": "adaptive"})

    def test_solver_kinds(self):
        """Verify the solver factory for several kinds."""
        cfg = _config({})
        bench = build_benchmark(cfg["benchmark"])
        ev = Evaluator(bench.problem(), bench)
        provider = RNStreamProvider(0)
        assert isinstance(build_solver({"kind": "sa", "cooling": {"kind": "linear"}}, ev, provider), SimulatedAnnealing)
        assert isinstance(build_solver({"kind": "cem", "sample_size": 20}, ev, provider), CrossEntropySolver)
        rr = build_solver({"kind": "random_restart", "inner": {"kind": "hill_climber"}}, ev, provider)
        assert isinstance(rr, RandomRestartSolver)
        assert rr.inner.stream_number != rr.stream_number
        with pytest.raises(ValueError):
            build_solver({"kind": "random_restart"}, ev, provider)
        with pytest.raises(ValueError):
            build_solver({"kind": "tabu"}, ev, provider)

    def test_unknown_benchmark(self):
        """Verify unknown benchmark kinds are rejected."""
        with pytest.raises(ValueError):
            build_benchmark({"kind": "rosenbrock"})


class TestRunExperiment:
    """Tests for run_experiment outputs."""

    def test_rspline_run_writes_outputs(self, tmp_path):
        """Verify history, best and config files are written."""
        cfg = _config(
            {"kind": "rspline", "max_iterations": 5, "replications": {"kind": "growth", "initial": 4}}
        )
        out = run_experiment(cfg, tmp_path / "run")

        hist = pd.read_csv(out / "history.csv")
        assert 1 <= len(hist) <= 5
        assert {"iteration", "current_y", "best_y", "oracle_calls", "spline_call_limit"} <= set(hist.columns)

        best = load_json(out / "best.json")
        assert best["found_solution"] is True
        assert best["oracle_calls"] == int(hist["oracle_calls"].iloc[-1])
        assert len(best["best_x"]) == 2

        assert yaml.safe_load((out / "config.yaml").read_text(encoding="utf-8")) == cfg
        assert load_json(out / "benchmark.json")["d"] == 2

    def test_random_restart_run(self, tmp_path):
        """Verify one history row per restart."""
        cfg = _config(
            {
                "kind": "random_restart",
                "max_iterations": 2,
                "inner": {"kind": "sa", "max_iterations": 20, "replications": 3, "initial_temperature": 5.0},
            }
        )
        out = run_experiment(cfg, tmp_path / "rr")
        hist = pd.read_csv(out / "history.csv")
        assert hist["iteration"].tolist() == [1, 2]
        assert "restart_best_y" in hist.columns
