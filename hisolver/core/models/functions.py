"""Differentiable functions from a configuration space to an output space."""

import numpy as np
from abc import ABC, abstractmethod
from typing import Callable, Optional, Sequence

from ..math.liegroup import CartesianProduct, LiegroupSpace, VectorSpace
from ..math.jacobians import finite_difference_jacobian


class DifferentiableFunction(ABC):
    """Abstract differentiable function f: input_space -> output_space.

    Two functions are equal when they describe the same logical function
    (same class, name, dimensions, masks and parameters), even if they are
    distinct objects.
    """

    def __init__(
        self,
        input_space: LiegroupSpace,
        output_space: LiegroupSpace,
        name: str,
        active_parameters: Optional[np.ndarray] = None,
        active_derivative_parameters: Optional[np.ndarray] = None,
    ):
        """Initialize function.

        Args:
            input_space: Configuration space the function is defined on
            output_space: Space of the function values
            name: Human readable name, used in error messages
            active_parameters: Configuration coordinates the value depends on
            active_derivative_parameters: Tangent coordinates the Jacobian depends on
        """
        self.input_space = input_space
        self.output_space = output_space
        self.name = name

        if active_parameters is None:
            active_parameters = np.ones(input_space.nq, dtype=bool)
        if active_derivative_parameters is None:
            active_derivative_parameters = np.ones(input_space.nv, dtype=bool)
        self._active_parameters = np.asarray(active_parameters, dtype=bool)
        self._active_derivative_parameters = np.asarray(active_derivative_parameters, dtype=bool)

        if self._active_parameters.shape != (input_space.nq,):
            raise ValueError(f"Function {name}: active parameters must have size {input_space.nq}")
        if self._active_derivative_parameters.shape != (input_space.nv,):
            raise ValueError(f"Function {name}: active derivative parameters must have size {input_space.nv}")

    @property
    def input_size(self) -> int:
        return self.input_space.nq

    @property
    def input_derivative_size(self) -> int:
        return self.input_space.nv

    @property
    def output_size(self) -> int:
        return self.output_space.nq

    @property
    def output_derivative_size(self) -> int:
        return self.output_space.nv

    @property
    def active_parameters(self) -> np.ndarray:
        return self._active_parameters.copy()

    @property
    def active_derivative_parameters(self) -> np.ndarray:
        return self._active_derivative_parameters.copy()

    @abstractmethod
    def _compute(self, q: np.ndarray) -> np.ndarray:
        pass

    @abstractmethod
    def _compute_jacobian(self, q: np.ndarray) -> np.ndarray:
        pass

    def value(self, q: np.ndarray) -> np.ndarray:
        """Evaluate the function at configuration q."""
        q = np.asarray(q, dtype=float)
        if q.shape != (self.input_size,):
            raise ValueError(f"Function {self.name}: expected input of size {self.input_size}, got {q.shape}")
        return np.asarray(self._compute(q), dtype=float)

    def jacobian(self, q: np.ndarray) -> np.ndarray:
        """Jacobian of the function at q, shape (output_derivative_size, input_derivative_size)."""
        q = np.asarray(q, dtype=float)
        if q.shape != (self.input_size,):
            raise ValueError(f"Function {self.name}: expected input of size {self.input_size}, got {q.shape}")
        return np.asarray(self._compute_jacobian(q), dtype=float).reshape(
            self.output_derivative_size, self.input_derivative_size
        )

    def _parameters(self) -> tuple:
        """Extra values taking part in equality; override in subclasses."""
        return ()

    def __eq__(self, other) -> bool:
        if self is other:
            return True
        if not isinstance(other, DifferentiableFunction) or type(self) is not type(other):
            return False
        if self.name != other.name:
            return False
        if self.input_space != other.input_space or self.output_space != other.output_space:
            return False
        if not np.array_equal(self._active_parameters, other._active_parameters):
            return False
        if not np.array_equal(self._active_derivative_parameters, other._active_derivative_parameters):
            return False
        return _parameters_equal(self._parameters(), other._parameters())

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.name, self.input_size, self.output_size))

    def to_record(self):
        """Serializable description; only some function types support it."""
        from .records import function_to_record
        return function_to_record(self)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}: {self.input_space} -> {self.output_space})"


def _parameters_equal(a: tuple, b: tuple) -> bool:
    if len(a) != len(b):
        return False
    for x, y in zip(a, b):
        if isinstance(x, np.ndarray) or isinstance(y, np.ndarray):
            if not np.array_equal(np.asarray(x), np.asarray(y)):
                return False
        elif x != y:
            return False
    return True


class AffineFunction(DifferentiableFunction):
    """f(q) = J q + b on a vector-space input."""

    def __init__(self, J: np.ndarray, b: Optional[np.ndarray] = None, name: str = "affine",
                 input_space: Optional[LiegroupSpace] = None):
        J = np.atleast_2d(np.asarray(J, dtype=float))
        if input_space is None:
            input_space = VectorSpace(J.shape[1])
        if not input_space.is_vector_space() or input_space.nq != J.shape[1]:
            raise ValueError(f"Affine function {name} requires a vector space input of size {J.shape[1]}")
        if b is None:
            b = np.zeros(J.shape[0])
        b = np.asarray(b, dtype=float)
        if b.shape != (J.shape[0],):
            raise ValueError(f"Affine function {name}: b must have size {J.shape[0]}")

        active = np.any(J != 0, axis=0)
        super().__init__(input_space, VectorSpace(J.shape[0]), name, active, active.copy())
        self.J = J
        self.b = b

    def _compute(self, q: np.ndarray) -> np.ndarray:
        return self.J @ q + self.b

    def _compute_jacobian(self, q: np.ndarray) -> np.ndarray:
        return self.J

    def _parameters(self) -> tuple:
        return (self.J, self.b)


class ConfigurationProjection(DifferentiableFunction):
    """Selects coordinates of a vector-space configuration: f(q) = q[indices]."""

    def __init__(self, input_space: LiegroupSpace, indices: Sequence[int], name: Optional[str] = None):
        if not input_space.is_vector_space():
            raise ValueError("ConfigurationProjection requires a vector space input")
        indices = np.asarray(indices, dtype=int)
        if indices.size and (indices.min() < 0 or indices.max() >= input_space.nq):
            raise ValueError(f"Indices out of range for {input_space}")
        mask = np.zeros(input_space.nq, dtype=bool)
        mask[indices] = True
        super().__init__(
            input_space, VectorSpace(len(indices)),
            name or f"projection{[int(i) for i in indices]}", mask, mask.copy(),
        )
        self.indices = indices

    def _compute(self, q: np.ndarray) -> np.ndarray:
        return q[self.indices]

    def _compute_jacobian(self, q: np.ndarray) -> np.ndarray:
        J = np.zeros((len(self.indices), self.input_derivative_size))
        J[np.arange(len(self.indices)), self.indices] = 1.0
        return J

    def _parameters(self) -> tuple:
        return (self.indices,)


class NumericalFunction(DifferentiableFunction):
    """Wraps a plain callable; the Jacobian is obtained by finite differences."""

    def __init__(
        self,
        fn: Callable[[np.ndarray], np.ndarray],
        input_space: LiegroupSpace,
        output_space: LiegroupSpace,
        name: str,
        step: float = 1e-6,
        active_parameters: Optional[np.ndarray] = None,
        active_derivative_parameters: Optional[np.ndarray] = None,
    ):
        super().__init__(input_space, output_space, name, active_parameters, active_derivative_parameters)
        self.fn = fn
        self.step = step

    def _compute(self, q: np.ndarray) -> np.ndarray:
        return self.fn(q)

    def _compute_jacobian(self, q: np.ndarray) -> np.ndarray:
        return finite_difference_jacobian(
            self.fn, q, h=self.step, method="central",
            input_space=self.input_space, output_space=self.output_space,
        )

    def _parameters(self) -> tuple:
        return (self.fn,)


class DifferentiableFunctionSet(DifferentiableFunction):
    """Concatenation of functions sharing the same input space."""

    def __init__(self, input_space: LiegroupSpace, name: str = "stack"):
        super().__init__(
            input_space, CartesianProduct(), name,
            np.zeros(input_space.nq, dtype=bool), np.zeros(input_space.nv, dtype=bool),
        )
        self.functions: list = []

    def add(self, function: DifferentiableFunction) -> None:
        if function.input_space != self.input_space:
            raise ValueError(
                f"Function {function.name} is defined on {function.input_space}, "
                f"expected {self.input_space}"
            )
        self.functions.append(function)
        self.output_space = CartesianProduct([f.output_space for f in self.functions])
        self._active_parameters = self._active_parameters | function.active_parameters
        self._active_derivative_parameters = (
            self._active_derivative_parameters | function.active_derivative_parameters
        )

    def _compute(self, q: np.ndarray) -> np.ndarray:
        if not self.functions:
            return np.zeros(0)
        return np.concatenate([f.value(q) for f in self.functions])

    def _compute_jacobian(self, q: np.ndarray) -> np.ndarray:
        if not self.functions:
            return np.zeros((0, self.input_derivative_size))
        return np.vstack([f.jacobian(q) for f in self.functions])

    def _parameters(self) -> tuple:
        return tuple(self.functions)

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.name, len(self.functions)))
