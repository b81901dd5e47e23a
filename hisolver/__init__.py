"""hisolver - Hierarchical constraint solver

Prioritized Newton-like projection of configurations onto implicit
constraints, on Lie group configuration spaces.
"""

__version__ = "0.1.0"

# Math
from .core.math.segments import SegmentSet
from .core.math.liegroup import LiegroupSpace, VectorSpace, SO2Space, SO3Space, CartesianProduct

# Models
from .core.models.functions import (
    DifferentiableFunction,
    AffineFunction,
    ConfigurationProjection,
    NumericalFunction,
)
from .core.models.constraints import ComparisonType, Implicit
from .core.models.device import Device, Joint, ExtraConfigSpace
from .core.models.settings import SolverSettings, SolveResult

# Solver
from .core.solver.hierarchical import HierarchicalIterative, Status, DuplicateConstraintError
from .core.solver.saturation import SaturationBase, Bounds, DeviceSaturation
from .core.solver.line_search import Constant, Backtracking, FixedSequence, ErrorNormBased
from .core.solver.serialization import save_solver, load_solver, dumps_solver, loads_solver

__all__ = [
    # Version
    "__version__",
    # Math
    "SegmentSet",
    "LiegroupSpace",
    "VectorSpace",
    "SO2Space",
    "SO3Space",
    "CartesianProduct",
    # Models
    "DifferentiableFunction",
    "AffineFunction",
    "ConfigurationProjection",
    "NumericalFunction",
    "ComparisonType",
    "Implicit",
    "Device",
    "Joint",
    "ExtraConfigSpace",
    "SolverSettings",
    "SolveResult",
    # Solver
    "HierarchicalIterative",
    "Status",
    "DuplicateConstraintError",
    "SaturationBase",
    "Bounds",
    "DeviceSaturation",
    "Constant",
    "Backtracking",
    "FixedSequence",
    "ErrorNormBased",
    "save_solver",
    "load_solver",
    "dumps_solver",
    "loads_solver",
]
