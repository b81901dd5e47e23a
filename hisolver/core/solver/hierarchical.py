"""Hierarchical iterative solver for prioritized implicit constraints.

Constraints are stacked in priority levels, level 0 being the most
important. Each iteration evaluates every level, clamps Jacobian columns
that would push saturated variables further into their bounds, and computes a
descent direction by solving each level in the kernel of the levels above:

    dQ_0 = J_0^+ (-e_0),                 P_0 = ker(J_0)
    dQ_i = dQ_{i-1} + P_{i-1} (J_i P_{i-1})^+ (-e_i - J_i dQ_{i-1})
    P_i  = P_{i-1} ker(J_i P_{i-1})

The direction is scaled by a line search policy and integrated on the
configuration space.
"""

import copy
import logging
import time
import numpy as np
from enum import Enum
from typing import Dict, List, Optional, Tuple

from ..math.liegroup import LiegroupSpace
from ..math.segments import SegmentSet
from ..models.constraints import ComparisonType, Implicit
from ..models.functions import DifferentiableFunction
from ..models.settings import SolverSettings, SolveResult
from ..optimization.priority import PriorityLevel
from .diagnostics import SolveDiagnostics
from .line_search import Constant, LineSearch
from .saturation import SaturationBase


logger = logging.getLogger(__name__)

SVD_THRESHOLD = 1e-8


class Status(Enum):
    """Outcome of a solve."""
    SUCCESS = "success"
    MAX_ITERATION_REACHED = "max_iteration_reached"
    INFEASIBLE = "infeasible"


class DuplicateConstraintError(ValueError):
    """Raised when a constraint whose function is already registered is added."""
    pass


class HierarchicalIterative:
    """Newton-like solver of a stack of prioritized implicit constraints."""

    def __init__(self, config_space: LiegroupSpace, svd_threshold: float = SVD_THRESHOLD):
        """Initialize an empty solver.

        Args:
            config_space: Space of the configurations being solved for
            svd_threshold: Relative threshold defining the numerical rank
        """
        self.config_space = config_space
        self.svd_threshold = svd_threshold

        defaults = SolverSettings()
        self._squared_error_threshold = defaults.error_threshold ** 2
        self._inequality_threshold = defaults.inequality_threshold
        self._max_iterations = defaults.max_iterations
        self.last_is_optional = False
        self.solve_level_by_level = False

        self._free_variables = SegmentSet.range(0, config_space.nv)
        self._saturation_policy: SaturationBase = SaturationBase()

        self.levels: List[PriorityLevel] = []
        self._constraints: List[Implicit] = []
        # Handle of a function -> (priority, index in level)
        self._handles: Dict[DifferentiableFunction, int] = {}
        self._locations: List[Tuple[int, int]] = []

        self.dimension = 0
        self.reduced_dimension = 0
        self.sigma = np.inf
        self._squared_norm = 0.0

        self.dq = np.zeros(config_space.nv)
        self.reduced_direction = np.zeros(config_space.nv)
        self._saturation = np.zeros(config_space.nv, dtype=int)
        self._q_sat = np.zeros(config_space.nq)

        self.error_history: List[float] = []
        self.step_history: List[float] = []
        self.iterations = 0

    @classmethod
    def from_settings(cls, config_space: LiegroupSpace, settings: SolverSettings) -> "HierarchicalIterative":
        """Create a solver configured from settings."""
        solver = cls(config_space, svd_threshold=settings.svd_threshold)
        solver.error_threshold = settings.error_threshold
        solver.inequality_threshold = settings.inequality_threshold
        solver.max_iterations = settings.max_iterations
        solver.last_is_optional = settings.last_is_optional
        solver.solve_level_by_level = settings.solve_level_by_level
        return solver

    def settings(self) -> SolverSettings:
        return SolverSettings(
            error_threshold=self.error_threshold,
            inequality_threshold=self.inequality_threshold,
            max_iterations=self.max_iterations,
            last_is_optional=self.last_is_optional,
            solve_level_by_level=self.solve_level_by_level,
            svd_threshold=self.svd_threshold,
        )

    # Parameters

    @property
    def error_threshold(self) -> float:
        return float(np.sqrt(self._squared_error_threshold))

    @error_threshold.setter
    def error_threshold(self, threshold: float) -> None:
        if threshold <= 0:
            raise ValueError(f"Error threshold must be positive, got {threshold}")
        self._squared_error_threshold = threshold * threshold

    @property
    def squared_error_threshold(self) -> float:
        return self._squared_error_threshold

    @property
    def inequality_threshold(self) -> float:
        return self._inequality_threshold

    @inequality_threshold.setter
    def inequality_threshold(self, threshold: float) -> None:
        if threshold < 0:
            raise ValueError(f"Inequality threshold must be non-negative, got {threshold}")
        self._inequality_threshold = threshold

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    @max_iterations.setter
    def max_iterations(self, iterations: int) -> None:
        if iterations < 0:
            raise ValueError(f"Maximum iterations must be non-negative, got {iterations}")
        self._max_iterations = int(iterations)

    @property
    def saturation(self) -> SaturationBase:
        return self._saturation_policy

    @saturation.setter
    def saturation(self, policy: SaturationBase) -> None:
        self._saturation_policy = policy

    @property
    def free_variables(self) -> SegmentSet:
        return self._free_variables

    @free_variables.setter
    def free_variables(self, free_variables: SegmentSet) -> None:
        if free_variables.segments and free_variables.segments[-1].end > self.config_space.nv:
            raise ValueError(f"Free variables exceed tangent size {self.config_space.nv}")
        self._free_variables = free_variables
        self.update()

    @property
    def number_stacks(self) -> int:
        return len(self.levels)

    @property
    def constraints(self) -> List[Implicit]:
        return list(self._constraints)

    # Constraint registration

    def add(self, constraint: Implicit, priority: int = 0) -> bool:
        """Add a constraint at a priority level.

        Raises:
            DuplicateConstraintError: if a constraint with the same function is
                already in the solver
        """
        f = constraint.function
        if f in self._handles:
            raise DuplicateConstraintError(f'Constraint "{f.name}" already in solver')
        if f.input_space != self.config_space:
            raise ValueError(f"Constraint {f.name} is not defined on {self.config_space}")
        if priority < 0:
            raise ValueError(f"Priority must be non-negative, got {priority}")

        while len(self.levels) <= priority:
            self.levels.append(PriorityLevel(self.config_space, len(self.levels)))

        level = self.levels[priority]
        level.add(constraint)
        self._handles[f] = len(self._locations)
        self._locations.append((priority, len(level.constraints) - 1))
        self._constraints.append(constraint)
        logger.debug("Added constraint %s at priority %d", f.name, priority)

        self.update()
        return True

    def merge(self, other: "HierarchicalIterative") -> None:
        """Add the constraints of another solver that are not already here."""
        for constraint in other._constraints:
            if not self.contains(constraint):
                priority = other.priority(constraint)
                self.add(constraint, 0 if priority is None else priority)

    def contains(self, constraint: Implicit) -> bool:
        """Check whether an equal constraint is registered."""
        return any(c == constraint for c in self._constraints)

    def _locate(self, constraint: Implicit) -> Optional[Tuple[int, int]]:
        handle = self._handles.get(constraint.function)
        if handle is None:
            return None
        return self._locations[handle]

    def priority(self, constraint: Implicit) -> Optional[int]:
        """Priority of a registered constraint, None if not found."""
        location = self._locate(constraint)
        return None if location is None else location[0]

    def update(self) -> None:
        """Recompute per level active rows and buffer sizes."""
        reduced_size = self._free_variables.cardinal()
        self.dimension = 0
        self.reduced_dimension = 0
        for i, level in enumerate(self.levels):
            level.resize(self._free_variables, i == len(self.levels) - 1, self.svd_threshold)
            self.dimension += level.dimension
            self.reduced_dimension += level.reduced_dimension

        self.dq = np.zeros(self.config_space.nv)
        self.reduced_direction = np.zeros(reduced_size)

    def active_parameters(self) -> np.ndarray:
        """Configuration coordinates any level depends on."""
        ap = np.zeros(self.config_space.nq, dtype=bool)
        for level in self.levels:
            ap |= level.function.active_parameters
        return ap

    def active_derivative_parameters(self) -> np.ndarray:
        """Tangent coordinates any level depends on."""
        ap = np.zeros(self.config_space.nv, dtype=bool)
        for level in self.levels:
            ap |= level.function.active_derivative_parameters
        return ap

    def defines_submanifold_of(self, other: "HierarchicalIterative") -> bool:
        """True if every constraint function of ``other`` is also in this solver."""
        return all(c.function in self._handles for c in other._constraints)

    # Right hand side

    def right_hand_side_from_config(self, q: np.ndarray,
                                    constraint: Optional[Implicit] = None):
        """Set right hand sides so that q satisfies the constraints.

        Without ``constraint`` all levels are updated and the full right hand
        side is returned. With ``constraint`` only that constraint is updated
        and whether it was found is returned.
        """
        q = self._check_config(q)
        if constraint is None:
            for level in self.levels:
                level.right_hand_side_from_config(q)
            return self.right_hand_side()

        location = self._locate(constraint)
        if location is None:
            return False
        level = self.levels[location[0]]
        iq = level.iq[location[1]]
        nq = constraint.function.output_size
        level.right_hand_side[iq:iq + nq] = constraint.right_hand_side_from_config(q)
        return True

    def set_right_hand_side(self, constraint: Implicit, rhs: np.ndarray) -> bool:
        """Set the right hand side of one constraint; False if not found."""
        location = self._locate(constraint)
        if location is None:
            return False
        rhs = np.asarray(rhs, dtype=float)
        nq = constraint.function.output_size
        if rhs.shape != (nq,):
            raise ValueError(f"Right hand side of {constraint.name} must have size {nq}")
        assert constraint.check_right_hand_side(rhs)
        level = self.levels[location[0]]
        iq = level.iq[location[1]]
        level.right_hand_side[iq:iq + nq] = rhs
        return True

    def get_right_hand_side(self, constraint: Implicit) -> Optional[np.ndarray]:
        """Right hand side of one constraint, None if not found."""
        location = self._locate(constraint)
        if location is None:
            return None
        level = self.levels[location[0]]
        iq = level.iq[location[1]]
        return level.right_hand_side[iq:iq + constraint.function.output_size].copy()

    def set_right_hand_sides(self, rhs: np.ndarray) -> None:
        """Set the concatenated right hand side of all levels.

        Rows that are not equalities are expected to be at the neutral
        element; this is only asserted.
        """
        rhs = np.asarray(rhs, dtype=float)
        assert rhs.shape == (self.right_hand_side_size(),)
        iq = 0
        for level in self.levels:
            space = level.output_space
            log = space.difference(rhs[iq:iq + space.nq], space.neutral())
            for k in range(space.nv):
                if level.comparison[k] != ComparisonType.EQUALITY:
                    assert log[k] == 0
            level.right_hand_side = space.integrate(space.neutral(), log)
            iq += space.nq

    def right_hand_side_at(self, s: float) -> None:
        """Evaluate time-parameterized right hand sides at parameter s."""
        for constraint in self._constraints:
            if constraint.parameter_size != 0 and constraint.right_hand_side_function is not None:
                self.set_right_hand_side(constraint, constraint.right_hand_side_at(s))

    def right_hand_side(self) -> np.ndarray:
        """Concatenated right hand side of all levels."""
        if not self.levels:
            return np.zeros(0)
        return np.concatenate([level.right_hand_side for level in self.levels])

    def right_hand_side_size(self) -> int:
        return sum(level.function.output_size for level in self.levels)

    def is_constraint_satisfied(self, constraint: Implicit, q: np.ndarray) -> Tuple[bool, np.ndarray, bool]:
        """Evaluate a single constraint at q.

        Returns:
            Tuple of (satisfied, error, found)
        """
        f = constraint.function
        location = self._locate(constraint)
        if location is None:
            return False, np.zeros(f.output_derivative_size), False
        level = self.levels[location[0]]
        iq = level.iq[location[1]]
        rhs = level.right_hand_side[iq:iq + f.output_size]
        error = f.output_space.difference(f.value(self._check_config(q)), rhs)
        constraint.set_inactive_rows_to_zero(error)
        return float(np.dot(error, error)) < self._squared_error_threshold, error, True

    # Iteration steps

    def _check_config(self, q: np.ndarray) -> np.ndarray:
        q = np.asarray(q, dtype=float)
        if q.shape != (self.config_space.nq,):
            raise ValueError(f"Configuration must have size {self.config_space.nq}, got {q.shape}")
        return q

    def compute_value(self, q: np.ndarray, compute_jacobian: bool = True) -> None:
        """Evaluate every level (value, error and optionally Jacobian) at q."""
        free_indices = self._free_variables.indices()
        for level in self.levels:
            level.compute_value(q, compute_jacobian, self._inequality_threshold, free_indices)

    def compute_saturation(self, q: np.ndarray) -> None:
        """Zero reduced Jacobian columns that would push saturated variables further."""
        _, saturation, applied = self._saturation_policy.saturate(
            q, self._q_sat, self._saturation, nv=self.config_space.nv
        )
        if not applied:
            return

        reduced_saturation = saturation[self._free_variables.indices()]
        assert np.all(np.isin(reduced_saturation, (-1, 0, 1)))

        for level in self.levels:
            gradient = level.reduced_jacobian.T @ level.reduced_error()
            blocked = reduced_saturation * gradient < 0
            level.reduced_jacobian[:, blocked] = 0.0

    def compute_error(self) -> None:
        """Worst squared error over the constraints of the mandatory levels."""
        end = len(self.levels) - 1 if self.last_is_optional else len(self.levels)
        self._squared_norm = 0.0
        for level in self.levels[:end]:
            norms = level.constraint_squared_norms()
            if norms:
                self._squared_norm = max(self._squared_norm, max(norms))

    def residual_error(self) -> float:
        """Squared error computed by the last call to compute_error."""
        return self._squared_norm

    def compute_descent_direction(self) -> None:
        """Cascade the levels to compute the descent direction dq."""
        self.sigma = np.inf

        if not self.levels:
            self.dq[:] = 0.0
            return

        dq_small = np.zeros(self._free_variables.cardinal())
        if len(self.levels) == 1:
            level = self.levels[0]
            svd = level.decomposition
            svd.compute(level.reduced_jacobian)
            dq_small = svd.solve(-level.reduced_error())
            self._track_rank(level)
        else:
            projector = None
            last_index = len(self.levels) - 1
            for i, level in enumerate(self.levels):
                if level.reduced_jacobian.shape[0] == 0:
                    continue
                svd = level.decomposition
                err = -level.reduced_error()
                if i > 0:
                    err -= level.reduced_jacobian @ dq_small
                if projector is None:
                    svd.compute(level.reduced_jacobian)
                    dq_small = dq_small + svd.solve(err)
                else:
                    svd.compute(level.reduced_jacobian @ projector)
                    dq_small = dq_small + projector @ svd.solve(err)
                self._track_rank(level)

                if self.solve_level_by_level and np.dot(err, err) > self._squared_error_threshold:
                    break
                if i == last_index:
                    break
                if svd.kernel_dimension() == 0:
                    break

                kernel = svd.kernel_projector()
                level.projector = kernel if projector is None else projector @ kernel
                projector = level.projector

        self.reduced_direction = dq_small
        self._expand_reduced_direction()

    def _track_rank(self, level: PriorityLevel) -> None:
        level.max_rank = max(level.max_rank, level.decomposition.rank)
        if level.max_rank > 0:
            values = level.decomposition.singular_values
            self.sigma = min(self.sigma, float(values[min(level.max_rank, len(values)) - 1]))

    def _expand_reduced_direction(self) -> None:
        self.dq = np.zeros(self.config_space.nv)
        self.dq[self._free_variables.indices()] = self.reduced_direction

    def integrate(self, q: np.ndarray, v: np.ndarray, result: np.ndarray) -> bool:
        """result = saturate(q (+) v); returns whether saturation occurred.

        ``result`` may be ``q`` itself.
        """
        result[:] = self.config_space.integrate(q, v)
        _, _, saturated = self._saturation_policy.saturate(
            result, result, self._saturation, nv=self.config_space.nv
        )
        return saturated

    # Accessors on the current state

    def get_value(self) -> np.ndarray:
        if not self.levels:
            return np.zeros(0)
        return np.concatenate([level.output for level in self.levels])

    def get_reduced_jacobian(self) -> np.ndarray:
        if not self.levels:
            return np.zeros((0, self._free_variables.cardinal()))
        return np.vstack([level.reduced_jacobian for level in self.levels])

    def residual_errors(self) -> np.ndarray:
        """Concatenated error of all levels."""
        if not self.levels:
            return np.zeros(0)
        return np.concatenate([level.error for level in self.levels])

    # Solve

    def solve(self, q: np.ndarray, line_search: Optional[LineSearch] = None) -> Status:
        """Project q onto the constraints, in place.

        Args:
            q: Initial configuration, overwritten with the result
            line_search: Step policy (full steps by default)

        Returns:
            Solve status
        """
        if not isinstance(q, np.ndarray) or q.dtype != np.float64:
            raise ValueError("Configuration must be a float64 array, it is updated in place")
        q = self._check_config(q)
        if np.any(np.isnan(q)):
            raise ValueError("Configuration contains NaN")
        if line_search is None:
            line_search = Constant()
        line_search.reset()
        self.iterations = 0

        self.error_history = []
        self.step_history = []
        threshold = self._squared_error_threshold

        self.compute_value(q, compute_jacobian=True)
        self.compute_error()
        self.error_history.append(self._squared_norm)

        iteration = 0
        max_iterations = self._max_iterations
        error_was_below = self._squared_norm < threshold
        if error_was_below:
            # Already satisfied: allow at most two refinement steps
            initial_q = q.copy()
            initial_norm = self._squared_norm
            iteration = max(max_iterations, 2) - 2

        if not error_was_below and self.reduced_dimension == 0:
            logger.warning("Solve infeasible: error %g and no active rows", self._squared_norm)
            return Status.INFEASIBLE

        while self._squared_norm > .25 * threshold and iteration < max_iterations:
            self.compute_saturation(q)
            self.compute_descent_direction()
            line_search(self, q, self.dq)
            self.step_history.append(float(np.linalg.norm(self.dq)))
            self.compute_value(q, compute_jacobian=True)
            self.compute_error()
            self.error_history.append(self._squared_norm)
            iteration += 1

        self.iterations = len(self.step_history)
        if error_was_below:
            if self._squared_norm > initial_norm:
                q[:] = initial_q
                self.compute_value(q, compute_jacobian=True)
                self.compute_error()
            logger.info("Solve succeeded from a satisfied configuration, error %g", self._squared_norm)
            return Status.SUCCESS

        if self._squared_norm > threshold:
            logger.warning(
                "Solve did not converge after %d iterations, error %g > %g",
                self.iterations, self._squared_norm, threshold,
            )
            return Status.MAX_ITERATION_REACHED

        logger.info("Solve succeeded in %d iterations, error %g", self.iterations, self._squared_norm)
        return Status.SUCCESS

    def solve_with_result(self, q: np.ndarray, line_search: Optional[LineSearch] = None) -> SolveResult:
        """Solve and summarize the outcome with diagnostics."""
        start_time = time.time()
        status = self.solve(q, line_search)
        diagnostics = SolveDiagnostics().compute_diagnostics(self)
        return SolveResult(
            status=status.value,
            iterations=self.iterations,
            squared_error=self._squared_norm,
            sigma=self.sigma,
            ranks=[level["max_rank"] for level in diagnostics["levels"]],
            residuals=diagnostics["residuals"],
            computation_time=time.time() - start_time,
        )

    # Copy and printing

    def copy(self) -> "HierarchicalIterative":
        """Deep copy sharing the configuration space.

        Constraints are copied so that the copy can be solved independently.
        """
        memo = {id(self.config_space): self.config_space}
        return copy.deepcopy(self, memo)

    def describe(self) -> str:
        """Human readable description of the levels."""
        lines = [
            f"HierarchicalIterative, {len(self.levels)} level(s).",
            f"  max iter: {self._max_iterations}, error threshold: {self.error_threshold:g}",
            f"  dimension {self.dimension}",
            f"  reduced dimension {self.reduced_dimension}",
            f"  free variables: {self._free_variables}",
        ]
        end = len(self.levels) - 1 if self.last_is_optional else len(self.levels)
        for i, level in enumerate(self.levels):
            optional = " (optional)" if self.last_is_optional and i == end else ""
            lines.append(f"  Level {i}{optional}: stack of {len(level.constraints)} functions")
            for j, constraint in enumerate(level.constraints):
                f = constraint.function
                iq = level.iq[j]
                rhs = level.right_hand_side[iq:iq + f.output_size]
                lines.append(f"    {j}: [{level.iv[j]}, {f.output_derivative_size}], {f!r}")
                lines.append(f"      rhs: {np.array2string(rhs, precision=4)}")
                lines.append(f"      active rows: {constraint.active_rows}")
            lines.append(f"    equality idx: {level.equality_indices}")
            lines.append(f"    active rows: {level.active_rows}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"HierarchicalIterative({len(self.levels)} levels, "
            f"{len(self._constraints)} constraints, dimension={self.dimension})"
        )
