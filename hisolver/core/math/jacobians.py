"""Jacobian computation utilities on configuration spaces."""

import numpy as np
from typing import Callable, Optional

from .liegroup import LiegroupSpace, VectorSpace


def finite_difference_jacobian(
    func: Callable[[np.ndarray], np.ndarray],
    x: np.ndarray,
    h: float = 1e-8,
    method: str = "central",
    input_space: Optional[LiegroupSpace] = None,
    output_space: Optional[LiegroupSpace] = None,
) -> np.ndarray:
    """Compute Jacobian using finite differences.

    Perturbations are applied in the tangent space of ``input_space`` and
    output variations are measured with the difference of ``output_space``,
    both defaulting to vector spaces of matching size.

    Args:
        func: Function that takes x and returns an output element
        x: Input configuration
        h: Step size for finite differences
        method: Finite difference method ("forward", "backward", "central")
        input_space: Space of x
        output_space: Space of func(x)

    Returns:
        Jacobian matrix J where J[i,j] = df_i/dv_j
    """
    x = np.atleast_1d(np.asarray(x, dtype=float))
    f0 = np.atleast_1d(func(x))
    if input_space is None:
        input_space = VectorSpace(len(x))
    if output_space is None:
        output_space = VectorSpace(len(f0))

    m, n = output_space.nv, input_space.nv
    J = np.zeros((m, n))

    def shifted(j: int, step: float) -> np.ndarray:
        dv = np.zeros(n)
        dv[j] = step
        return np.atleast_1d(func(input_space.integrate(x, dv)))

    if method == "forward":
        for j in range(n):
            J[:, j] = output_space.difference(shifted(j, h), f0) / h

    elif method == "backward":
        for j in range(n):
            J[:, j] = output_space.difference(f0, shifted(j, -h)) / h

    elif method == "central":
        for j in range(n):
            J[:, j] = output_space.difference(shifted(j, h), shifted(j, -h)) / (2 * h)

    else:
        raise ValueError(f"Unknown finite difference method: {method}")

    return J


def check_jacobian(
    func: Callable[[np.ndarray], np.ndarray],
    jacobian_func: Callable[[np.ndarray], np.ndarray],
    x: np.ndarray,
    h: float = 1e-6,
    atol: float = 1e-6,
    rtol: float = 1e-6,
    input_space: Optional[LiegroupSpace] = None,
    output_space: Optional[LiegroupSpace] = None,
) -> tuple[bool, float, np.ndarray]:
    """Check analytic Jacobian against finite differences.

    Returns:
        Tuple of (is_correct, max_error, error_matrix)
    """
    J_analytic = jacobian_func(x)
    J_numeric = finite_difference_jacobian(
        func, x, h, input_space=input_space, output_space=output_space
    )

    error = np.abs(J_analytic - J_numeric)
    max_error = float(np.max(error)) if error.size else 0.0

    is_correct = np.allclose(J_analytic, J_numeric, atol=atol, rtol=rtol)

    return is_correct, max_error, error
