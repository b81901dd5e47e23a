"""Solver diagnostics and analysis tools."""

import numpy as np
from typing import Any, Dict, List, Tuple

from ..optimization.priority import RankRevealingDecomposition


class SolveDiagnostics:
    """Diagnostics of the current state of a hierarchical solver."""

    def __init__(self, top_k: int = 10):
        """Initialize diagnostics.

        Args:
            top_k: Number of constraints reported in ``largest_residuals``
        """
        self.top_k = top_k

    def compute_diagnostics(self, solver) -> Dict[str, Any]:
        """Compute diagnostics from the last evaluation of the solver.

        Args:
            solver: HierarchicalIterative solver, after a solve or compute_value

        Returns:
            Dictionary with per level and per constraint information
        """
        diagnostics = {}

        diagnostics["levels"] = [self._level_summary(level) for level in solver.levels]
        diagnostics["residuals"] = self._compute_per_constraint_residuals(solver)
        diagnostics["largest_residuals"] = self._find_largest_residuals(diagnostics["residuals"])
        diagnostics["statistics"] = self._compute_statistics(solver.residual_errors())
        diagnostics["sigma"] = float(solver.sigma)

        return diagnostics

    def _level_summary(self, level) -> Dict[str, Any]:
        """Rank information of one priority level."""
        decomposition = level.decomposition
        values = decomposition.singular_values
        smallest = float(values[decomposition.rank - 1]) if decomposition.rank > 0 else 0.0
        # Conditioning of the level alone, before projection by higher levels
        alone = analyze_jacobian_rank(level.reduced_jacobian, decomposition.threshold)
        return {
            "index": level.index,
            "dimension": level.dimension,
            "reduced_dimension": level.reduced_dimension,
            "rank": int(decomposition.rank),
            "max_rank": int(level.max_rank),
            "smallest_singular_value": smallest,
            "own_rank": alone["rank"],
            "condition_number": alone["condition_number"],
        }

    def _compute_per_constraint_residuals(self, solver) -> Dict[str, float]:
        """Squared error norm of each constraint, keyed by ``priority/name``."""
        residuals = {}
        for level in solver.levels:
            for constraint, norm in zip(level.constraints, level.constraint_squared_norms()):
                residuals[f"{level.index}/{constraint.name}"] = norm
        return residuals

    def _find_largest_residuals(self, residuals: Dict[str, float]) -> List[Tuple[str, float]]:
        ranked = sorted(residuals.items(), key=lambda x: x[1], reverse=True)
        return ranked[:self.top_k]

    def _compute_statistics(self, errors: np.ndarray) -> Dict[str, float]:
        """Compute overall error statistics.

        Args:
            errors: Concatenated error vector

        Returns:
            Dictionary with statistics
        """
        if len(errors) == 0:
            return {
                "total_rows": 0,
                "rms_error": 0.0,
                "max_error": 0.0,
                "squared_norm": 0.0,
            }

        return {
            "total_rows": len(errors),
            "rms_error": float(np.sqrt(np.mean(errors**2))),
            "max_error": float(np.max(np.abs(errors))),
            "squared_norm": float(np.dot(errors, errors)),
        }


def analyze_jacobian_rank(jacobian: np.ndarray, tolerance: float = 1e-8) -> Dict[str, Any]:
    """Rank and conditioning of a matrix, with the solver's rank rule.

    Singular values not above ``tolerance`` times the largest one do not count
    in the rank, as in the descent direction computation.

    Args:
        jacobian: Matrix to analyze, possibly without rows
        tolerance: Relative rank threshold

    Returns:
        Dictionary with rank, kernel size and singular values
    """
    rows, cols = jacobian.shape
    decomposition = RankRevealingDecomposition(tolerance, full_v=True)
    rank = decomposition.compute(jacobian)
    values = decomposition.singular_values

    if len(values) == 0:
        condition_number = 1.0
    elif values[-1] > 0:
        condition_number = float(values[0] / values[-1])
    else:
        condition_number = np.inf

    return {
        "rank": rank,
        "full_rank": rank == min(rows, cols),
        "nullspace_dimension": decomposition.kernel_dimension(),
        "condition_number": condition_number,
        "singular_values": values.tolist(),
        "matrix_shape": (rows, cols),
    }
