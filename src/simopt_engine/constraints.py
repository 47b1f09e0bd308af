"""Deterministic constraints on inputs and penalised constraints on responses."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


class Constraint:
    """Base class for deterministic constraints on the input vector."""

    def is_feasible(self, x: np.ndarray) -> bool:
        raise NotImplementedError


@dataclass
class LinearInequalityConstraint(Constraint):
    """Enforce A x <= b (componentwise)."""

    A: np.ndarray  # (m, d)
    b: np.ndarray  # (m,)
    tol: float = 1e-12

    def __post_init__(self):
        self.A = np.atleast_2d(np.asarray(self.A, dtype=np.float64))
        self.b = np.asarray(self.b, dtype=np.float64).reshape(-1)
        if self.b.size != self.A.shape[0]:
            raise ValueError(f"b must have shape (m,); got {self.b.shape} for m={self.A.shape[0]}")

    def is_feasible(self, x: np.ndarray) -> bool:
        Ax = self.A @ np.asarray(x, dtype=np.float64)
        return bool(np.all(Ax <= self.b + self.tol))

@dataclass(frozen=True)
class ResponseConstraint:
    """Stochastic constraint on the mean of a named simulation response.

    less_than=True means E[response] <= rhs, otherwise E[response] >= rhs.
    Violations are only ever penalised, never used to reject an input.
    """

    name: str
    rhs: float
    less_than: bool = True

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("The response constraint name cannot be blank")

    def violation(self, average: float) -> float:
        gap = average - self.rhs if self.less_than else self.rhs - average
        return float(max(0.0, gap))
