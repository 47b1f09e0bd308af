from __future__ import annotations

from typing import Dict, Sequence

from ..evaluator import SimulationOracle
from ..problem import InputMap, ProblemDefinition


class Benchmark(SimulationOracle):
    """A noisy black-box simulation together with the problem it is defined on."""

    name: str

    def n_vars(self) -> int:
        raise NotImplementedError

    def problem(self) -> ProblemDefinition:
        raise NotImplementedError

    def simulate(self, input_map: InputMap, num_replications: int) -> Dict[str, Sequence[float]]:
        """Per-replication observations of every response, keyed by response name."""
        raise NotImplementedError

    def info(self) -> Dict:
        return {"name": getattr(self, "name", self.__class__.__name__), "d": self.n_vars()}
