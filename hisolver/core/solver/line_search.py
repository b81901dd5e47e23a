"""Line search policies scaling the descent direction before integration.

A policy is called as ``policy(solver, arg, darg)``: it scales ``darg`` in
place by a step in (0, 1], integrates ``arg`` in place along it and returns
whether the result was saturated.
"""

import logging
import math
import numpy as np


logger = logging.getLogger(__name__)


class LineSearch:
    """Base class of line search policies."""

    def reset(self) -> None:
        """Called by the solver at the start of each solve."""
        pass

    def step(self, solver, arg: np.ndarray, darg: np.ndarray) -> float:
        """Step scale applied to darg."""
        return 1.0

    def __call__(self, solver, arg: np.ndarray, darg: np.ndarray) -> bool:
        darg *= self.step(solver, arg, darg)
        return solver.integrate(arg, darg, arg)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class Constant(LineSearch):
    """Always take the full step."""
    pass


class Backtracking(LineSearch):
    """Armijo backtracking.

    The step alpha starts at 1 and is multiplied by ``tau`` until
    ``f(arg) - f(arg + alpha darg) >= -2 c alpha slope`` holds, where ``slope``
    is the local slope of the squared error along darg. Below ``small_alpha``
    the search stops and ``small_alpha`` is used.
    """

    def __init__(self, c: float = 0.001, tau: float = 0.7, small_alpha: float = 0.2):
        if not 0 < tau < 1:
            raise ValueError(f"tau must be in (0, 1), got {tau}")
        if not 0 < small_alpha <= 1:
            raise ValueError(f"small_alpha must be in (0, 1], got {small_alpha}")
        self.c = c
        self.tau = tau
        self.small_alpha = small_alpha

    @staticmethod
    def local_slope(solver) -> float:
        """Sum over levels of (J_i dq) . e_i with the current reduced direction."""
        slope = 0.0
        dq_small = solver.reduced_direction
        for level in solver.levels:
            slope += float(np.dot(level.reduced_jacobian @ dq_small, level.reduced_error()))
        return slope

    def __call__(self, solver, arg: np.ndarray, darg: np.ndarray) -> bool:
        slope = self.local_slope(solver)
        t = 2 * self.c * slope
        f_arg_norm2 = solver.residual_error()

        if t >= 0:
            logger.debug("Descent direction is not valid: slope %g", slope)
        else:
            alpha = 1.0
            u = darg.copy()
            arg_darg = np.empty_like(arg)
            while alpha > self.small_alpha:
                darg[:] = alpha * u
                solver.integrate(arg, darg, arg_darg)
                solver.compute_value(arg_darg, compute_jacobian=False)
                solver.compute_error()
                if f_arg_norm2 - solver.residual_error() >= -alpha * t:
                    return solver.integrate(arg, darg, arg)
                alpha *= self.tau
            darg[:] = u

        darg *= self.small_alpha
        return solver.integrate(arg, darg, arg)

    def __repr__(self) -> str:
        return f"Backtracking(c={self.c}, tau={self.tau}, small_alpha={self.small_alpha})"


class FixedSequence(LineSearch):
    """Step following alpha_{k+1} = alpha_max - K (alpha_max - alpha_k).

    The schedule does not depend on the error; it restarts at each solve.
    """

    def __init__(self, alpha: float = 0.2, alpha_max: float = 0.95, K: float = 0.8):
        if not 0 < alpha <= alpha_max <= 1:
            raise ValueError("Expected 0 < alpha <= alpha_max <= 1")
        self.alpha0 = alpha
        self.alpha = alpha
        self.alpha_max = alpha_max
        self.K = K

    def reset(self) -> None:
        self.alpha = self.alpha0

    def step(self, solver, arg, darg) -> float:
        alpha = self.alpha
        self.alpha = self.alpha_max - self.K * (self.alpha_max - self.alpha)
        return alpha

    def __repr__(self) -> str:
        return f"FixedSequence(alpha={self.alpha0}, alpha_max={self.alpha_max}, K={self.K})"


class ErrorNormBased(LineSearch):
    """Step alpha = C - K tanh(a r + b), with r = log(error / sigma^2).

    ``error`` is the current squared error and ``sigma`` the smallest retained
    singular value. The step is close to 1 for small errors and tends to
    ``alpha_min`` for large ones.
    """

    def __init__(self, alpha_min: float = 0.2, a: float = None, b: float = None):
        if not 0 <= alpha_min < 1:
            raise ValueError(f"alpha_min must be in [0, 1), got {alpha_min}")
        self.alpha_min = alpha_min
        self.C = 0.5 + alpha_min / 2
        self.K = (1 - alpha_min) / 2
        if (a is None) != (b is None):
            raise ValueError("Shape parameters a and b must be given together")
        if a is None:
            a, b = self._calibrate(delta=0.02, r_one=0.0, r_half=math.log(1e6))
        self.a = a
        self.b = b

    @classmethod
    def calibrated(cls, alpha_min: float, r_one: float, r_half: float, delta: float = 0.02) -> "ErrorNormBased":
        """Policy with step 1 - delta at r = r_one and (1 + alpha_min) / 2 at r = r_half."""
        policy = cls(alpha_min)
        policy.a, policy.b = policy._calibrate(delta, r_one, r_half)
        return policy

    def _calibrate(self, delta: float, r_one: float, r_half: float):
        if r_one == r_half:
            raise ValueError("Calibration points must differ")
        a = math.atanh((delta - 1 + self.C) / self.K) / (r_one - r_half)
        b = -r_half * a
        return a, b

    def step(self, solver, arg, darg) -> float:
        error = solver.residual_error()
        sigma = solver.sigma
        if error <= 0 or not np.isfinite(sigma):
            r = -math.inf
        elif sigma <= 0:
            r = math.inf
        else:
            r = math.log(error / sigma**2)
        return self.C - self.K * math.tanh(self.a * r + self.b)

    def __repr__(self) -> str:
        return f"ErrorNormBased(alpha_min={self.alpha_min}, a={self.a:.4g}, b={self.b:.4g})"
