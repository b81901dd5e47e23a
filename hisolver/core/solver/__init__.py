"""Hierarchical solver, its policies and persistence."""

from .hierarchical import HierarchicalIterative, Status, DuplicateConstraintError
from .saturation import SaturationBase, Bounds, DeviceSaturation
from .line_search import LineSearch, Constant, Backtracking, FixedSequence, ErrorNormBased
from .diagnostics import SolveDiagnostics, analyze_jacobian_rank
from .serialization import save_solver, load_solver, dumps_solver, loads_solver

__all__ = [
    "HierarchicalIterative",
    "Status",
    "DuplicateConstraintError",
    "SaturationBase",
    "Bounds",
    "DeviceSaturation",
    "LineSearch",
    "Constant",
    "Backtracking",
    "FixedSequence",
    "ErrorNormBased",
    "SolveDiagnostics",
    "analyze_jacobian_rank",
    "save_solver",
    "load_solver",
    "dumps_solver",
    "loads_solver",
]
