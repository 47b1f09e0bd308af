#!/usr/bin/env python
from __future__ import annotations

import argparse
import datetime as dt
import logging
from pathlib import Path

import yaml

# Allow running without installing package:
import sys
sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from simopt_engine.runner import run_experiment
from simopt_engine.utils import ensure_dir, load_json


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--config", required=True, help="Path to YAML config")
    ap.add_argument("--out", default=None, help="Output directory (default: results/<run_name>)")

    # quick overrides
    ap.add_argument("--solver_kind", default=None, help="Override solver.kind (e.g. rspline, cem, sa, hill_climber)")
    ap.add_argument("--max_iterations", type=int, default=None, help="Override solver.max_iterations")
    ap.add_argument("--seed", type=int, default=None, help="Override the experiment seed")
    ap.add_argument("--log_level", default="INFO", help="Logging level (DEBUG shows SPLINE/SPLI/PLI/NE traces)")

    args = ap.parse_args()

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    cfg_path = Path(args.config)
    cfg = yaml.safe_load(cfg_path.read_text(encoding="utf-8"))

    if args.solver_kind is not None:
        cfg.setdefault("solver", {})
        cfg["solver"]["kind"] = str(args.solver_kind).lower()

    if args.max_iterations is not None:
        cfg["solver"]["max_iterations"] = int(args.max_iterations)

    if args.seed is not None:
        cfg["seed"] = int(args.seed)

    run_name = cfg.get("run_name")
    if not run_name:
        stamp = dt.datetime.now().strftime("%Y%m%d_%H%M%S")
        run_name = f"{cfg['benchmark']['kind']}_{cfg['solver']['kind']}_{stamp}"

    out_dir = Path(args.out) if args.out else Path("results") / run_name
    ensure_dir(out_dir)

    print(f"[run] config={cfg_path} -> out={out_dir}")
    run_experiment(cfg, out_dir)

    best = load_json(out_dir / "best.json")
    print(
        f"[done] best_y={best['best_y']} best_x={best['best_x']} | "
        f"oracle_calls={best['oracle_calls']} | replications={best['replications']} | iterations={best['iterations']}"
    )


if __name__ == "__main__":
    main()
