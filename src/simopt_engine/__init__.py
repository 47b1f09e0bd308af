"""Simulation-optimization solvers over noisy, replication-priced oracles."""

from .evaluator import Evaluator, MemorySolutionCache, OracleEvaluationError, SimulationOracle
from .problem import InputMap, ProblemDefinition
from .rng import RNStream, RNStreamProvider
from .solution import EstimatedResponse, Solution

__version__ = "0.1.0"
