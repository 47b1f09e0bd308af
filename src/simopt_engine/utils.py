from __future__ import annotations

import json
import random
from pathlib import Path
from typing import Any, Sequence

import numpy as np


def set_global_seed(seed: int) -> None:
    """Seed Python + NumPy global generators (solvers use their own streams)."""
    random.seed(seed)
    np.random.seed(seed)


def ensure_dir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def save_json(path: str | Path, obj: Any) -> None:
    Path(path).write_text(json.dumps(obj, indent=2, sort_keys=True), encoding="utf-8")


def load_json(path: str | Path) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def direction(x: Sequence[float]) -> np.ndarray:
    """Unit vector pointing along x. A zero vector stays zero."""
    x = np.asarray(x, dtype=np.float64)
    norm = float(np.linalg.norm(x))
    if norm == 0.0:
        return np.zeros_like(x)
    return x / norm


def sort_indices_descending(x: Sequence[float]) -> np.ndarray:
    """Indices that sort x from largest to smallest (stable for ties)."""
    x = np.asarray(x, dtype=np.float64)
    return np.argsort(-x, kind="mergesort")
