from __future__ import annotations

import math
from dataclasses import dataclass


class ReplicationSchedule:
    """Iteration number -> replications requested per evaluated input."""

    def num_replications(self, iteration: int) -> int:
        raise NotImplementedError


@dataclass(frozen=True)
class FixedReplicationsPerEvaluation(ReplicationSchedule):
    replications: int = 50

    def __post_init__(self):
        if self.replications < 1:
            raise ValueError("The number of replications per evaluation must be >= 1")

    def num_replications(self, iteration: int) -> int:
        return int(self.replications)


@dataclass(frozen=True)
class FixedGrowthRateReplicationSchedule(ReplicationSchedule):
    """reps(k) = min(ceiling, ceil(initial * (1 + rate)**(k - 1))) for k >= 1."""

    initial_replications: int = 8
    growth_rate: float = 0.1
    max_replications: int = 1000

    def __post_init__(self):
        if self.initial_replications < 1:
            raise ValueError("The initial number of replications must be >= 1")
        if self.growth_rate <= 0.0:
            raise ValueError("The growth rate must be > 0")
        if self.max_replications < self.initial_replications:
            raise ValueError("The maximum number of replications must be >= the initial number")

    def num_replications(self, iteration: int) -> int:
        if iteration < 0:
            raise ValueError("The iteration number must be >= 0")
        if iteration <= 1:
            return int(self.initial_replications)
        n = self.initial_replications * (1.0 + self.growth_rate) ** (iteration - 1)
        # avoid ceil(8.000000000000002) == 9
        return int(min(self.max_replications, math.ceil(n - 1e-9)))


class CoolingSchedule:
    """Iteration number (>= 1) -> temperature for simulated annealing."""

    initial_temperature: float

    def next_temperature(self, iteration: int) -> float:
        raise NotImplementedError

    def _check(self, iteration: int) -> None:
        if iteration < 1:
            raise ValueError(f"The iteration must be >= 1; got {iteration}")


@dataclass(frozen=True)
class LinearCoolingSchedule(CoolingSchedule):
    """Straight line from T0 down to the stopping temperature at max_iterations, then flat."""

    initial_temperature: float = 1000.0
    stopping_temperature: float = 0.001
    max_iterations: int = 1000

    def __post_init__(self):
        if self.initial_temperature <= 0.0:
            raise ValueError("The initial temperature must be positive")
        if self.stopping_temperature <= 0.0:
            raise ValueError("The stopping temperature must be positive")
        if self.stopping_temperature >= self.initial_temperature:
            raise ValueError("The stopping temperature must be less than the initial temperature")
        if self.max_iterations < 1:
            raise ValueError("The maximum number of iterations must be positive")

    @property
    def temperature_decrease_per_iteration(self) -> float:
        return (self.initial_temperature - self.stopping_temperature) / self.max_iterations

    def next_temperature(self, iteration: int) -> float:
        self._check(iteration)
        if iteration >= self.max_iterations:
            return float(self.stopping_temperature)
        return float(self.initial_temperature - self.temperature_decrease_per_iteration * iteration)


@dataclass(frozen=True)
class ExponentialCoolingSchedule(CoolingSchedule):
    initial_temperature: float = 1000.0
    cooling_rate: float = 0.95

    def __post_init__(self):
        if self.initial_temperature <= 0.0:
            raise ValueError("The initial temperature must be positive")
        if not (0.0 < self.cooling_rate < 1.0):
            raise ValueError("The cooling rate must be in (0,1)")

    def next_temperature(self, iteration: int) -> float:
        self._check(iteration)
        return float(self.initial_temperature * self.cooling_rate ** iteration)


@dataclass(frozen=True)
class LogarithmicCoolingSchedule(CoolingSchedule):
    """T0 * ln(2) / ln(n + 1); equals T0 at n = 1."""

    initial_temperature: float = 1000.0

    def __post_init__(self):
        if self.initial_temperature <= 0.0:
            raise ValueError("The initial temperature must be positive")

    def next_temperature(self, iteration: int) -> float:
        self._check(iteration)
        return float(self.initial_temperature * math.log(2.0) / math.log(iteration + 1.0))


def make_cooling_schedule(kind: str, initial_temperature: float, **kwargs) -> CoolingSchedule:
    kind = kind.lower()
    if kind == "linear":
        return LinearCoolingSchedule(initial_temperature=initial_temperature, **kwargs)
    if kind == "exponential":
        return ExponentialCoolingSchedule(initial_temperature=initial_temperature, **kwargs)
    if kind == "logarithmic":
        return LogarithmicCoolingSchedule(initial_temperature=initial_temperature)
    raise ValueError(f"Unknown cooling schedule: {kind}")
