"""Priority levels: constraints sharing a priority and their solve buffers."""

import numpy as np
from scipy.linalg import svd
from typing import List, Optional, Tuple

from ..math.liegroup import LiegroupSpace
from ..math.segments import SegmentSet
from ..models.constraints import ComparisonType, Implicit
from ..models.functions import DifferentiableFunctionSet


class RankRevealingDecomposition:
    """Singular value decomposition with a relative rank threshold.

    Singular values not greater than ``threshold * max singular value`` are
    treated as zero.
    """

    def __init__(self, threshold: float = 1e-8, full_v: bool = False):
        self.threshold = threshold
        self.full_v = full_v
        self.U = np.zeros((0, 0))
        self.singular_values = np.zeros(0)
        self.Vt = np.zeros((0, 0))
        self.rank = 0
        self.cols = 0

    def compute(self, M: np.ndarray) -> int:
        """Decompose M and return its numerical rank."""
        m, n = M.shape
        self.cols = n
        if m == 0 or n == 0:
            self.U = np.zeros((m, 0))
            self.singular_values = np.zeros(0)
            self.Vt = np.eye(n) if self.full_v else np.zeros((0, n))
            self.rank = 0
            return 0

        self.U, self.singular_values, self.Vt = svd(M, full_matrices=self.full_v, lapack_driver="gesvd")
        if self.singular_values[0] > 0:
            cutoff = self.threshold * self.singular_values[0]
            self.rank = int(np.sum(self.singular_values > cutoff))
        else:
            self.rank = 0
        return self.rank

    def solve(self, b: np.ndarray) -> np.ndarray:
        """Minimum norm least squares solution of M x = b."""
        r = self.rank
        if r == 0:
            return np.zeros(self.cols)
        coeffs = (self.U[:, :r].T @ b) / self.singular_values[:r]
        return self.Vt[:r].T @ coeffs

    def kernel_projector(self) -> np.ndarray:
        """Orthogonal projector onto the kernel of M (requires the full V)."""
        V2 = self.Vt[self.rank:].T
        return V2 @ V2.T

    def kernel_dimension(self) -> int:
        return self.Vt.shape[0] - self.rank


class PriorityLevel:
    """Constraints of one priority level and the buffers used to solve them.

    Constraint outputs are concatenated in insertion order. Offsets of each
    constraint in the value vector (iq) and in the derivative vector (iv) are
    recorded when the constraint is added.
    """

    def __init__(self, config_space: LiegroupSpace, index: int):
        self.config_space = config_space
        self.index = index
        self.constraints: List[Implicit] = []
        self.function = DifferentiableFunctionSet(config_space, name=f"level {index}")
        self.iq: List[int] = []
        self.iv: List[int] = []

        self.comparison: List[ComparisonType] = []
        self.equality_indices = SegmentSet()
        self.inequality_indices: List[int] = []

        self.active_rows = SegmentSet()
        self.output = np.zeros(0)
        self.right_hand_side = np.zeros(0)
        self.error = np.zeros(0)
        self.jacobian = np.zeros((0, config_space.nv))
        self.reduced_jacobian = np.zeros((0, config_space.nv))
        self.projector: Optional[np.ndarray] = None
        self.decomposition = RankRevealingDecomposition()
        self.max_rank = 0

    @property
    def output_space(self) -> LiegroupSpace:
        return self.function.output_space

    @property
    def dimension(self) -> int:
        return self.function.output_derivative_size

    @property
    def reduced_dimension(self) -> int:
        return self.active_rows.cardinal()

    def add(self, constraint: Implicit) -> Tuple[int, int]:
        """Append a constraint and sort its rows by comparison type.

        Returns:
            Offsets (iq, iv) of the constraint in the level value and derivative
        """
        iq = self.function.output_size
        iv = self.function.output_derivative_size
        self.function.add(constraint.function)
        self.constraints.append(constraint)
        self.iq.append(iq)
        self.iv.append(iv)

        for c in constraint.comparison:
            row = len(self.comparison)
            if c in (ComparisonType.SUPERIOR, ComparisonType.INFERIOR):
                self.inequality_indices.append(row)
            else:
                self.equality_indices.add(row, 1)
            self.comparison.append(c)
        return iq, iv

    def compute_active_rows(self, free_variables: SegmentSet) -> None:
        """Keep rows of constraints that depend on at least one free variable."""
        free = free_variables.indices()
        rows = []
        for constraint, iv in zip(self.constraints, self.iv):
            adp = constraint.function.active_derivative_parameters
            if adp[free].any():
                rows.extend((s.start + iv, s.length) for s in constraint.active_rows)
        self.active_rows = SegmentSet(rows)

    def resize(self, free_variables: SegmentSet, is_last: bool, svd_threshold: float) -> None:
        """Reallocate the buffers after constraints or free variables changed."""
        self.compute_active_rows(free_variables)
        reduced_size = free_variables.cardinal()
        space = self.output_space

        self.output = space.neutral()
        # Constraints are only appended, so previous right hand sides stay valid as a prefix
        rhs = space.neutral()
        kept = min(len(self.right_hand_side), len(rhs))
        rhs[:kept] = self.right_hand_side[:kept]
        self.right_hand_side = rhs
        self.error = np.zeros(space.nv)
        self.jacobian = np.zeros((space.nv, self.config_space.nv))
        self.reduced_jacobian = np.zeros((self.reduced_dimension, reduced_size))
        self.decomposition = RankRevealingDecomposition(svd_threshold, full_v=not is_last)
        self.projector = np.zeros((reduced_size, reduced_size))
        self.max_rank = 0

    def set_inactive_rows_to_zero(self, error: np.ndarray) -> None:
        for constraint, iv in zip(self.constraints, self.iv):
            n = constraint.function.output_derivative_size
            constraint.set_inactive_rows_to_zero(error[iv:iv + n])

    def right_hand_side_from_config(self, q: np.ndarray) -> None:
        for constraint, iq in zip(self.constraints, self.iq):
            n = constraint.function.output_size
            self.right_hand_side[iq:iq + n] = constraint.right_hand_side_from_config(q)

    def compute_value(self, q: np.ndarray, compute_jacobian: bool,
                      inequality_threshold: float, free_indices: np.ndarray) -> None:
        """Evaluate output, error and optionally the (reduced) Jacobian at q."""
        space = self.output_space
        self.output = self.function.value(q)
        self.error = space.difference(self.output, self.right_hand_side)
        self.set_inactive_rows_to_zero(self.error)
        if compute_jacobian:
            self.jacobian = space.d_difference_dq1(
                self.right_hand_side, self.output, self.function.jacobian(q)
            )
        self._apply_comparison(inequality_threshold, compute_jacobian)

        if compute_jacobian:
            self.reduced_jacobian = self.jacobian[np.ix_(self.active_rows.indices(), free_indices)]

    def _apply_comparison(self, threshold: float, compute_jacobian: bool) -> None:
        """Turn inequality rows into soft equalities when violated, else drop them."""
        for j in self.inequality_indices:
            val = self.error[j]
            if self.comparison[j] == ComparisonType.SUPERIOR:
                violated = val < threshold
                shifted = val - threshold
            else:
                violated = -threshold < val
                shifted = val + threshold
            if violated:
                self.error[j] = shifted
            else:
                self.error[j] = 0.0
                if compute_jacobian:
                    self.jacobian[j, :] = 0.0

    def reduced_error(self) -> np.ndarray:
        """Error restricted to the active rows."""
        return self.error[self.active_rows.indices()]

    def constraint_squared_norms(self) -> List[float]:
        """Squared error norm of each constraint of the level."""
        return [
            float(np.dot(self.error[iv:iv + c.function.output_derivative_size],
                         self.error[iv:iv + c.function.output_derivative_size]))
            for c, iv in zip(self.constraints, self.iv)
        ]
