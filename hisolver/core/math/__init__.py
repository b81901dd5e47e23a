"""Math primitives for hisolver."""

from .segments import (
    Segment,
    SegmentSet,
    normalize,
    overlap,
    cardinal,
    union,
    difference,
    subtract,
    subtract_all,
)
from .liegroup import LiegroupSpace, VectorSpace, SO2Space, SO3Space, CartesianProduct
from .so3 import so3_exp, so3_log, so3_jr_inv, skew_symmetric
from .quaternions import quat_normalize, quat_from_axis_angle, quat_to_matrix
from .jacobians import finite_difference_jacobian, check_jacobian

__all__ = [
    "Segment",
    "SegmentSet",
    "normalize",
    "overlap",
    "cardinal",
    "union",
    "difference",
    "subtract",
    "subtract_all",
    "LiegroupSpace",
    "VectorSpace",
    "SO2Space",
    "SO3Space",
    "CartesianProduct",
    "so3_exp",
    "so3_log",
    "so3_jr_inv",
    "skew_symmetric",
    "quat_normalize",
    "quat_from_axis_angle",
    "quat_to_matrix",
    "finite_difference_jacobian",
    "check_jacobian",
]
