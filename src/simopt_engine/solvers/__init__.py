from .base import SolutionQualityEvaluator, Solver, SolverConfig, SolverResult, StochasticSolver
from .starting_points import HillClimbingProbeStartingPointGenerator, RandomStartingPointGenerator
from .hill_climber import StochasticHillClimber, StochasticHillClimberConfig
from .sa_solver import SimulatedAnnealing, SimulatedAnnealingConfig
from .cem_solver import CENormalSampler, CENormalSamplerConfig, CrossEntropyConfig, CrossEntropySolver, recommend_ce_sample_size
from .rspline_solver import RSplineConfig, RSplineSolver, piecewise_linear_simplex
from .random_restart import RandomRestartConfig, RandomRestartSolver
