from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional

import pandas as pd
import yaml

from .benchmarks import QuadraticBenchmark
from .evaluator import Evaluator, MemorySolutionCache
from .neighborhoods import make_neighborhood_finder
from .rng import RNStreamProvider
from .schedules import (
    ExponentialCoolingSchedule,
    FixedGrowthRateReplicationSchedule,
    FixedReplicationsPerEvaluation,
    LinearCoolingSchedule,
    LogarithmicCoolingSchedule,
    ReplicationSchedule,
)
from .solvers import (
    CENormalSampler,
    CENormalSamplerConfig,
    CrossEntropyConfig,
    CrossEntropySolver,
    HillClimbingProbeStartingPointGenerator,
    RandomRestartConfig,
    RandomRestartSolver,
    RSplineConfig,
    RSplineSolver,
    SimulatedAnnealing,
    SimulatedAnnealingConfig,
    StochasticHillClimber,
    StochasticHillClimberConfig,
    StochasticSolver,
)
from .utils import ensure_dir, save_json, set_global_seed

_LOGGER = logging.getLogger(__name__)


def build_benchmark(cfg: Dict[str, Any]):
    kind = cfg["kind"].lower()
    if kind == "quadratic":
        d = int(cfg.get("d", 2))
        return QuadraticBenchmark(
            center=cfg.get("center", [0.0] * d),
            lower=cfg.get("lower", [-10.0] * d),
            upper=cfg.get("upper", [10.0] * d),
            integer=bool(cfg.get("integer", True)),
            noise_sd=float(cfg.get("noise_sd", 1.0)),
            scale=float(cfg.get("scale", 1.0)),
            seed=int(cfg.get("seed", 0)),
            linear_A=cfg.get("linear_A"),
            linear_b=cfg.get("linear_b"),
            total_limit=float(cfg["total_limit"]) if cfg.get("total_limit") is not None else None,
            penalty_coefficient=float(cfg.get("penalty_coefficient", 1000.0)),
            failure_prob=float(cfg.get("failure_prob", 0.0)),
        )
    raise ValueError(f"Unknown benchmark kind: {kind}")


def build_evaluator(cfg: Dict[str, Any], bench) -> Evaluator:
    cache = None
    if bool(cfg.get("cache", True)):
        cache = MemorySolutionCache(capacity=int(cfg.get("cache_capacity", 1000)))
    budget = cfg.get("oracle_replication_budget")
    return Evaluator(
        bench.problem(),
        bench,
        cache=cache,
        oracle_replication_budget=int(budget) if budget is not None else None,
    )


def build_replication_schedule(cfg: Any) -> Optional[ReplicationSchedule]:
    if cfg is None:
        return None
    if isinstance(cfg, int):
        return FixedReplicationsPerEvaluation(cfg)
    kind = str(cfg.get("kind", "fixed")).lower()
    if kind == "fixed":
        return FixedReplicationsPerEvaluation(int(cfg.get("replications", 50)))
    if kind == "growth":
        return FixedGrowthRateReplicationSchedule(
            initial_replications=int(cfg.get("initial", 8)),
            growth_rate=float(cfg.get("rate", 0.1)),
            max_replications=int(cfg.get("max", 1000)),
        )
    raise ValueError(f"Unknown replication schedule kind: {kind}")


def build_cooling_schedule(cfg: Dict[str, Any], initial_temperature: float):
    kind = str(cfg.get("kind", "exponential")).lower()
    if kind == "exponential":
        return ExponentialCoolingSchedule(initial_temperature, cooling_rate=float(cfg.get("rate", 0.95)))
    if kind == "linear":
        return LinearCoolingSchedule(
            initial_temperature,
            stopping_temperature=float(cfg.get("stopping_temperature", 0.001)),
            max_iterations=int(cfg.get("max_iterations", 1000)),
        )
    if kind == "logarithmic":
        return LogarithmicCoolingSchedule(initial_temperature)
    raise ValueError(f"Unknown cooling schedule kind: {kind}")


def build_solver(cfg: Dict[str, Any], evaluator: Evaluator, provider: RNStreamProvider) -> StochasticSolver:
    kind = cfg["kind"].lower()
    reps = build_replication_schedule(cfg.get("replications"))
    common = dict(stream=provider.stream(int(cfg.get("stream", 0))))
    if cfg.get("probe_start"):
        probe = cfg["probe_start"]
        common["starting_point_generator"] = HillClimbingProbeStartingPointGenerator(
            num_probes=int(probe.get("num_probes", 5)),
            probe_iterations=int(probe.get("probe_iterations", 10)),
        )

    if kind == "hill_climber":
        return StochasticHillClimber(
            evaluator,
            reps,
            StochasticHillClimberConfig(
                max_iterations=int(cfg.get("max_iterations", 1000)),
                use_stability_stopping=bool(cfg.get("use_stability_stopping", False)),
                no_improve_threshold=int(cfg.get("no_improve_threshold", 5)),
            ),
            **common,
        )

    if kind == "sa":
        t0 = float(cfg.get("initial_temperature", 1000.0))
        return SimulatedAnnealing(
            evaluator,
            reps,
            SimulatedAnnealingConfig(
                max_iterations=int(cfg.get("max_iterations", 1000)),
                initial_temperature=t0,
                final_temperature=float(cfg.get("final_temperature", 0.001)),
            ),
            cooling_schedule=build_cooling_schedule(cfg.get("cooling", {}), t0),
            **common,
        )

    if kind == "cem":
        scfg = cfg.get("sampler", {})
        sampler = CENormalSampler(
            evaluator.problem,
            CENormalSamplerConfig(
                mean_smoother=float(scfg.get("mean_smoother", 0.85)),
                sd_smoother=float(scfg.get("sd_smoother", 0.85)),
                sd_threshold=float(scfg.get("sd_threshold", 0.001)),
                cv_threshold=float(scfg.get("cv_threshold", 0.03)),
                variability_factor=float(scfg.get("variability_factor", 1.0)),
            ),
            initial_sds=scfg.get("initial_sds"),
        )
        return CrossEntropySolver(
            evaluator,
            reps,
            CrossEntropyConfig(
                max_iterations=int(cfg.get("max_iterations", 100)),
                elite_pct=float(cfg.get("elite_pct", 0.1)),
                min_elite_size=int(cfg.get("min_elite_size", 5)),
                sample_size=int(cfg["sample_size"]) if cfg.get("sample_size") is not None else None,
                no_improve_threshold=int(cfg.get("no_improve_threshold", 5)),
            ),
            sampler=sampler,
            **common,
        )

    if kind == "rspline":
        return RSplineSolver(
            evaluator,
            reps,
            RSplineConfig(
                max_iterations=int(cfg.get("max_iterations", 1000)),
                perturbation=float(cfg.get("perturbation", 0.15)),
                initial_step_size=float(cfg.get("initial_step_size", 2.0)),
                step_size_multiplier=float(cfg.get("step_size_multiplier", 2.0)),
                line_search_iter_max=int(cfg.get("line_search_iter_max", 5)),
                initial_max_spline_call_limit=int(cfg.get("initial_max_spline_call_limit", 10)),
                spline_call_growth_rate=float(cfg.get("spline_call_growth_rate", 0.1)),
                max_spline_call_limit=int(cfg.get("max_spline_call_limit", 1000)),
                use_stability_stopping=bool(cfg.get("use_stability_stopping", True)),
            ),
            neighborhood_finder=make_neighborhood_finder(
                str(cfg.get("neighborhood", "von_neumann")),
                radius=int(cfg.get("radius", 1)),
                use_bfs=bool(cfg.get("use_bfs", False)),
            ),
            **common,
        )

    if kind == "random_restart":
        if "inner" not in cfg:
            raise ValueError("solver.kind=random_restart requires an 'inner' solver section")
        inner = build_solver(cfg["inner"], evaluator, provider)
        return RandomRestartSolver(
            inner,
            RandomRestartConfig(
                max_iterations=int(cfg.get("max_iterations", 10)),
                clear_cache_on_restart=bool(cfg.get("clear_cache_on_restart", True)),
            ),
            stream=provider.stream(int(cfg.get("stream", 0))),
        )

    raise ValueError(f"Unknown solver kind: {kind}")


def run_experiment(config: Dict[str, Any], out_dir: str | Path) -> Path:
    out_dir = ensure_dir(out_dir)

    seed = int(config.get("seed", 0))
    set_global_seed(seed)
    provider = RNStreamProvider(seed)

    bench = build_benchmark(config["benchmark"])
    save_json(out_dir / "benchmark.json", bench.info())

    evaluator = build_evaluator(config.get("evaluator", {}), bench)
    solver = build_solver(config["solver"], evaluator, provider)

    t0 = time.time()
    result = solver.solve()
    dt = time.time() - t0

    hist = pd.DataFrame(result.history)
    hist.to_csv(out_dir / "history.csv", index=False)

    best = {
        "best_y": result.y_best if result.found_solution else None,
        "best_x": result.x_best.tolist() if result.x_best is not None else None,
        "found_solution": result.found_solution,
        "oracle_calls": solver.num_oracle_calls,
        "replications": solver.num_replications_requested,
        "iterations": solver.iteration_counter,
        "time_sec": dt,
        "evaluator": evaluator.counts(),
    }
    if result.best_solution is not None:
        best["best_num_replications"] = result.best_solution.num_replications
        best["best_half_width"] = result.best_solution.estimated_objective.half_width()
    save_json(out_dir / "best.json", best)
    # save config copy as yaml
    (out_dir / "config.yaml").write_text(yaml.safe_dump(config, sort_keys=False), encoding="utf-8")

    _LOGGER.info(
        "run finished: solver=%s best_y=%s oracle_calls=%d iterations=%d (%.2fs)",
        solver.name, best["best_y"], solver.num_oracle_calls, solver.iteration_counter, dt,
    )
    return out_dir
