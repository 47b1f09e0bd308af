"""Input space of a simulation-optimization problem.

A ``ProblemDefinition`` knows the named inputs, their bounds and lattice
granularity, the deterministic linear constraints, and how to turn the
estimated responses of a simulation into a penalized objective value.
``InputMap`` is the immutable, hashable view of one point of that space.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .constraints import Constraint, LinearInequalityConstraint, ResponseConstraint
from .rng import RNStream
from .solution import EstimatedResponse, Solution

_LOGGER = logging.getLogger(__name__)


class InputMap(Mapping):
    """Immutable mapping input name -> value.

    Equality and hashing use the (name, value) pairs only, so two maps built
    from the same vector by the same problem are interchangeable as dict keys.
    """

    __slots__ = ("_items", "_problem")

    def __init__(self, problem: "ProblemDefinition", values: Sequence[float]):
        vals = np.asarray(values, dtype=np.float64).reshape(-1)
        if vals.size != problem.dimension:
            raise ValueError(f"Expected {problem.dimension} input values; got {vals.size}")
        # +0.0 folds -0.0 into 0.0 so rounding never yields two distinct keys
        self._items: Tuple[Tuple[str, float], ...] = tuple(
            (name, float(v) + 0.0) for name, v in zip(problem.input_names, vals)
        )
        self._problem = problem

    @property
    def problem(self) -> "ProblemDefinition":
        return self._problem

    @property
    def input_values(self) -> np.ndarray:
        return np.array([v for _, v in self._items], dtype=np.float64)

    def is_input_feasible(self) -> bool:
        return self._problem.is_input_feasible(self.input_values)

    def __getitem__(self, key: str) -> float:
        for name, v in self._items:
            if name == key:
                return v
        raise KeyError(key)

    def __iter__(self) -> Iterator[str]:
        return (name for name, _ in self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other) -> bool:
        if isinstance(other, InputMap):
            return self._items == other._items
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._items)

    def __repr__(self) -> str:
        body = ", ".join(f"{k}={v:g}" for k, v in self._items)
        return f"InputMap({body})"


class ProblemDefinition:
    """Bounds, granularity and constraints of the inputs, plus the penalty rule.

    granularity[i] == 0 means input i is continuous, otherwise input i lives
    on the lattice lower[i] + k * granularity[i]. The problem is integer
    ordered when every granularity equals 1 and every bound is an integer.
    """

    def __init__(
        self,
        input_names: Sequence[str],
        lower_bounds: Sequence[float],
        upper_bounds: Sequence[float],
        granularity: Optional[Sequence[float]] = None,
        *,
        linear_constraint: Optional[Constraint] = None,
        response_constraints: Sequence[ResponseConstraint] = (),
        penalty_coefficient: float = 1000.0,
        objective_response_name: str = "objective",
        max_starting_point_tries: int = 1000,
        name: str = "problem",
    ):
        names = [str(n) for n in input_names]
        if len(names) == 0:
            raise ValueError("A problem needs at least one input")
        if len(set(names)) != len(names):
            raise ValueError(f"Input names must be unique; got {names}")
        if any(not n.strip() for n in names):
            raise ValueError("Input names cannot be blank")
        lb = np.asarray(lower_bounds, dtype=np.float64).reshape(-1)
        ub = np.asarray(upper_bounds, dtype=np.float64).reshape(-1)
        d = len(names)
        if lb.size != d or ub.size != d:
            raise ValueError(f"Bounds must have length {d}; got {lb.size} and {ub.size}")
        if not (np.all(np.isfinite(lb)) and np.all(np.isfinite(ub))):
            raise ValueError("Bounds must be finite")
        if np.any(lb >= ub):
            raise ValueError("Every lower bound must be strictly less than its upper bound")
        g = np.zeros(d) if granularity is None else np.asarray(granularity, dtype=np.float64).reshape(-1)
        if g.size != d:
            raise ValueError(f"granularity must have length {d}; got {g.size}")
        if np.any(g < 0):
            raise ValueError("granularity must be >= 0")
        if penalty_coefficient < 0:
            raise ValueError("The penalty coefficient must be >= 0")
        if max_starting_point_tries < 1:
            raise ValueError("max_starting_point_tries must be >= 1")
        if isinstance(linear_constraint, LinearInequalityConstraint) and linear_constraint.A.shape[1] != d:
            raise ValueError(f"Linear constraint has {linear_constraint.A.shape[1]} columns; expected {d}")
        rc_names = [rc.name for rc in response_constraints]
        if objective_response_name in rc_names:
            raise ValueError("The objective response cannot also be a response constraint")

        self.name = name
        self.input_names: Tuple[str, ...] = tuple(names)
        self.lower_bounds = lb
        self.upper_bounds = ub
        self.granularity = g
        self.linear_constraint = linear_constraint
        self.response_constraints: Tuple[ResponseConstraint, ...] = tuple(response_constraints)
        self.penalty_coefficient = float(penalty_coefficient)
        self.objective_response_name = str(objective_response_name)
        self.max_starting_point_tries = int(max_starting_point_tries)

    # ---- basic geometry

    @property
    def dimension(self) -> int:
        return len(self.input_names)

    @property
    def response_names(self) -> List[str]:
        return [self.objective_response_name] + [rc.name for rc in self.response_constraints]

    @property
    def is_integer_ordered(self) -> bool:
        return bool(
            np.all(self.granularity == 1.0)
            and np.all(self.lower_bounds == np.floor(self.lower_bounds))
            and np.all(self.upper_bounds == np.floor(self.upper_bounds))
        )

    @property
    def input_ranges(self) -> np.ndarray:
        return self.upper_bounds - self.lower_bounds

    @property
    def input_mid_points(self) -> np.ndarray:
        return self.round_to_granularity((self.lower_bounds + self.upper_bounds) / 2.0)

    def round_to_granularity(self, x: Sequence[float]) -> np.ndarray:
        x = np.asarray(x, dtype=np.float64).reshape(-1)
        g = self.granularity
        out = x.copy()
        lattice = g > 0
        if np.any(lattice):
            steps = np.round((x[lattice] - self.lower_bounds[lattice]) / g[lattice])
            out[lattice] = self.lower_bounds[lattice] + steps * g[lattice]
        return out

    def clip_to_bounds(self, x: Sequence[float]) -> np.ndarray:
        return np.clip(np.asarray(x, dtype=np.float64).reshape(-1), self.lower_bounds, self.upper_bounds)

    # ---- feasibility

    def is_within_bounds(self, x: Sequence[float]) -> bool:
        x = np.asarray(x, dtype=np.float64).reshape(-1)
        if x.size != self.dimension:
            raise ValueError(f"Expected a point of dimension {self.dimension}; got {x.size}")
        return bool(np.all(x >= self.lower_bounds) and np.all(x <= self.upper_bounds))

    def satisfies_linear_constraints(self, x: Sequence[float]) -> bool:
        if self.linear_constraint is None:
            return True
        return self.linear_constraint.is_feasible(np.asarray(x, dtype=np.float64).reshape(-1))

    def is_input_feasible(self, x: Sequence[float]) -> bool:
        """Within bounds and satisfying the deterministic constraints."""
        return self.is_within_bounds(x) and self.satisfies_linear_constraints(x)

    # ---- conversion

    def to_input_map(self, x: Sequence[float]) -> InputMap:
        """Round x to the input lattice and name it. No clipping is applied."""
        return InputMap(self, self.round_to_granularity(x))

    def convert_points_to_inputs(self, points: Sequence[Sequence[float]]) -> List[InputMap]:
        """Clip, round and drop infeasible points; duplicates are removed keeping first order."""
        out: List[InputMap] = []
        seen = set()
        for p in points:
            im = self.to_input_map(self.clip_to_bounds(p))
            if im in seen or not im.is_input_feasible():
                continue
            seen.add(im)
            out.append(im)
        return out

    # ---- random points

    def random_point(self, stream: RNStream) -> np.ndarray:
        """Uniform point inside the bounds, drawn on the lattice for discrete inputs."""
        x = np.empty(self.dimension, dtype=np.float64)
        for i in range(self.dimension):
            g = self.granularity[i]
            if g > 0:
                n_steps = int(np.floor(self.input_ranges[i] / g + 1e-9))
                x[i] = self.lower_bounds[i] + g * stream.randint(0, n_steps)
            else:
                x[i] = stream.uniform(self.lower_bounds[i], self.upper_bounds[i])
        return x

    def starting_point(self, stream: RNStream) -> InputMap:
        """Random input-feasible point by acceptance-rejection."""
        for _ in range(self.max_starting_point_tries):
            x = self.random_point(stream)
            if self.is_input_feasible(x):
                return self.to_input_map(x)
        raise RuntimeError(
            f"Could not generate an input-feasible starting point in {self.max_starting_point_tries} tries"
        )

    def generate_neighbor(self, input_map: InputMap, stream: RNStream) -> InputMap:
        """Random feasible neighbor that differs from input_map in one coordinate.

        Lattice inputs move one step up or down; continuous inputs move by a
        uniform amount of up to 10% of their range. Falls back to the input
        itself when no feasible move is found.
        """
        x0 = input_map.input_values
        for _ in range(self.max_starting_point_tries):
            i = stream.randint(0, self.dimension - 1)
            x = x0.copy()
            g = self.granularity[i]
            if g > 0:
                x[i] += g if stream.rand_u01() < 0.5 else -g
            else:
                delta = 0.1 * self.input_ranges[i]
                x[i] = x[i] + stream.uniform(-delta, delta)
            x = self.round_to_granularity(self.clip_to_bounds(x))
            if np.array_equal(x, x0):
                continue
            if self.is_input_feasible(x):
                return self.to_input_map(x)
        _LOGGER.debug("generate_neighbor: no feasible neighbor found for %s", input_map)
        return input_map

    # ---- penalties and sentinels

    def response_violation(self, responses: Dict[str, EstimatedResponse]) -> float:
        total = 0.0
        for rc in self.response_constraints:
            r = responses.get(rc.name)
            if r is None:
                raise ValueError(f"Missing estimate for constrained response '{rc.name}'")
            total += rc.violation(r.average)
        return total

    def penalized_objective(self, objective: EstimatedResponse, responses: Dict[str, EstimatedResponse]) -> float:
        return float(objective.average + self.penalty_coefficient * self.response_violation(responses))

    def bad_solution(self, input_map: Optional[InputMap] = None) -> Solution:
        """Sentinel solution with an infinite penalized objective and zero replications."""
        im = input_map if input_map is not None else self.to_input_map(self.input_mid_points)
        obj = EstimatedResponse(self.objective_response_name, float("inf"), float("nan"), 0.0)
        return Solution(
            input_map=im,
            num_replications=0,
            estimated_objective=obj,
            penalized_objective_value=float("inf"),
        )

    def info(self) -> Dict:
        return {
            "name": self.name,
            "d": self.dimension,
            "input_names": list(self.input_names),
            "lower_bounds": self.lower_bounds.tolist(),
            "upper_bounds": self.upper_bounds.tolist(),
            "granularity": self.granularity.tolist(),
            "integer_ordered": self.is_integer_ordered,
            "response_constraints": [rc.name for rc in self.response_constraints],
            "penalty_coefficient": self.penalty_coefficient,
        }

    def __repr__(self) -> str:
        return f"ProblemDefinition(name={self.name!r}, d={self.dimension}, integer_ordered={self.is_integer_ordered})"
