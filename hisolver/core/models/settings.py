"""Solver settings and solve results."""

from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


class SolverSettings(BaseModel):
    """Solver configuration settings."""

    error_threshold: float = Field(default=1e-4, gt=0, description="Convergence threshold on the error norm")
    inequality_threshold: float = Field(default=0.0, ge=0, description="Margin applied to inequality rows")
    max_iterations: int = Field(default=20, ge=0, description="Maximum solver iterations")
    last_is_optional: bool = Field(default=False, description="Ignore the last level in the convergence test")
    solve_level_by_level: bool = Field(default=False, description="Stop the cascade at the first unsatisfied level")
    svd_threshold: float = Field(default=1e-8, gt=0, description="Singular values below are treated as zero")


class SolveResult(BaseModel):
    """Results from a hierarchical solve.

    ``sigma`` is infinite when no decomposition was computed, for instance
    when the start already satisfied the constraints.
    """

    model_config = ConfigDict(ser_json_inf_nan="constants")

    status: Literal["success", "max_iteration_reached", "infeasible"] = Field(
        description="Termination status"
    )
    iterations: int = Field(description="Number of iterations performed")
    squared_error: float = Field(description="Final worst squared constraint error")
    sigma: float = Field(description="Smallest retained singular value over all levels")
    ranks: List[int] = Field(default_factory=list, description="Maximal rank reached per level")
    residuals: Dict[str, float] = Field(
        default_factory=dict,
        description="Per-constraint squared residual norms"
    )
    computation_time: Optional[float] = Field(
        default=None,
        description="Solve time in seconds"
    )

    @property
    def success(self) -> bool:
        return self.status == "success"

