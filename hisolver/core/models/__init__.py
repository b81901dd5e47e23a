"""Data models for hisolver."""

from .functions import (
    DifferentiableFunction,
    DifferentiableFunctionSet,
    AffineFunction,
    ConfigurationProjection,
    NumericalFunction,
)
from .constraints import ComparisonType, Implicit
from .device import Device, Joint, ExtraConfigSpace
from .settings import SolverSettings, SolveResult
from .records import SolverRecord, ConstraintRecord, FunctionRegistry

__all__ = [
    "DifferentiableFunction",
    "DifferentiableFunctionSet",
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
    "SolverRecord",
    "ConstraintRecord",
    "FunctionRegistry",
]
