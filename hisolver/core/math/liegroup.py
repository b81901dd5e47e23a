"""Configuration spaces: Lie groups with integrate (oplus) and difference (ominus).

For every space, ``integrate(q0, difference(q1, q0)) == q1``.
"""

import numpy as np
from abc import ABC, abstractmethod
from typing import List, Sequence

from .quaternions import (
    quat_conjugate,
    quat_from_rotvec,
    quat_multiply,
    quat_normalize,
    quat_to_rotvec,
)
from .so3 import so3_jr_inv


class LiegroupSpace(ABC):
    """Abstract configuration space of embedding size nq and tangent size nv."""

    @property
    @abstractmethod
    def nq(self) -> int:
        """Size of the configuration vector."""
        pass

    @property
    @abstractmethod
    def nv(self) -> int:
        """Size of the tangent vector."""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    def neutral(self) -> np.ndarray:
        """Neutral element of the group."""
        pass

    @abstractmethod
    def integrate(self, q: np.ndarray, v: np.ndarray) -> np.ndarray:
        """Return q (+) v."""
        pass

    @abstractmethod
    def difference(self, q1: np.ndarray, q0: np.ndarray) -> np.ndarray:
        """Return q1 (-) q0, the tangent vector v such that q0 (+) v = q1."""
        pass

    def d_difference_dq1(self, q0: np.ndarray, q1: np.ndarray, J: np.ndarray) -> np.ndarray:
        """Left-multiply J by the derivative of (q1 (-) q0) with respect to q1.

        Args:
            q0: Reference element
            q1: Element being differentiated
            J: Matrix with nv rows expressed in the tangent space at q1

        Returns:
            Matrix with nv rows expressed in the tangent space of the difference
        """
        return J

    def is_normalized(self, q: np.ndarray, eps: float = 1e-8) -> bool:
        return True

    def normalize(self, q: np.ndarray) -> np.ndarray:
        return q

    def element(self, buffer: np.ndarray, offset: int = 0) -> np.ndarray:
        """View of ``buffer[offset:offset + nq]`` (no copy)."""
        if offset + self.nq > len(buffer):
            raise ValueError(f"Buffer of size {len(buffer)} too small for {self.name} at offset {offset}")
        return buffer[offset:offset + self.nq]

    @property
    def components(self) -> List["LiegroupSpace"]:
        return [self]

    def is_vector_space(self) -> bool:
        return all(isinstance(c, VectorSpace) for c in self.components)

    def to_record(self):
        """Serializable description of this space."""
        from ..models.records import space_to_record
        return space_to_record(self)

    def __mul__(self, other: "LiegroupSpace") -> "CartesianProduct":
        return CartesianProduct([self, other])

    def __eq__(self, other) -> bool:
        if not isinstance(other, LiegroupSpace):
            return NotImplemented
        return [c._key() for c in self.components] == [c._key() for c in other.components]

    def __hash__(self) -> int:
        return hash(tuple(c._key() for c in self.components))

    def _key(self):
        return (type(self).__name__, self.nq, self.nv)

    def __repr__(self) -> str:
        return self.name


class VectorSpace(LiegroupSpace):
    """Euclidean space R^n."""

    def __init__(self, size: int):
        if size < 0:
            raise ValueError(f"Vector space size must be non-negative, got {size}")
        self._size = int(size)

    @property
    def nq(self) -> int:
        return self._size

    @property
    def nv(self) -> int:
        return self._size

    @property
    def name(self) -> str:
        return f"R^{self._size}"

    def neutral(self) -> np.ndarray:
        return np.zeros(self._size)

    def integrate(self, q: np.ndarray, v: np.ndarray) -> np.ndarray:
        return q + v

    def difference(self, q1: np.ndarray, q0: np.ndarray) -> np.ndarray:
        return q1 - q0


class SO2Space(LiegroupSpace):
    """Planar rotations stored as (cos, sin)."""

    @property
    def nq(self) -> int:
        return 2

    @property
    def nv(self) -> int:
        return 1

    @property
    def name(self) -> str:
        return "SO(2)"

    def neutral(self) -> np.ndarray:
        return np.array([1.0, 0.0])

    def integrate(self, q: np.ndarray, v: np.ndarray) -> np.ndarray:
        angle = np.arctan2(q[1], q[0]) + v[0]
        return np.array([np.cos(angle), np.sin(angle)])

    def difference(self, q1: np.ndarray, q0: np.ndarray) -> np.ndarray:
        # angle of q0^-1 q1
        c = q0[0] * q1[0] + q0[1] * q1[1]
        s = q0[0] * q1[1] - q0[1] * q1[0]
        return np.array([np.arctan2(s, c)])

    def is_normalized(self, q: np.ndarray, eps: float = 1e-8) -> bool:
        return abs(np.dot(q, q) - 1.0) < eps

    def normalize(self, q: np.ndarray) -> np.ndarray:
        return q / np.linalg.norm(q)


class SO3Space(LiegroupSpace):
    """3D rotations stored as unit quaternions [w, x, y, z]."""

    @property
    def nq(self) -> int:
        return 4

    @property
    def nv(self) -> int:
        return 3

    @property
    def name(self) -> str:
        return "SO(3)"

    def neutral(self) -> np.ndarray:
        return np.array([1.0, 0.0, 0.0, 0.0])

    def integrate(self, q: np.ndarray, v: np.ndarray) -> np.ndarray:
        return quat_normalize(quat_multiply(q, quat_from_rotvec(np.asarray(v, dtype=float))))

    def difference(self, q1: np.ndarray, q0: np.ndarray) -> np.ndarray:
        return quat_to_rotvec(quat_multiply(quat_conjugate(q0), q1))

    def d_difference_dq1(self, q0: np.ndarray, q1: np.ndarray, J: np.ndarray) -> np.ndarray:
        return so3_jr_inv(self.difference(q1, q0)) @ J

    def is_normalized(self, q: np.ndarray, eps: float = 1e-8) -> bool:
        return abs(np.dot(q, q) - 1.0) < eps

    def normalize(self, q: np.ndarray) -> np.ndarray:
        return quat_normalize(q)


class CartesianProduct(LiegroupSpace):
    """Product of spaces; operations act block-wise.

    Nested products are flattened and adjacent vector spaces merged, so two
    products describing the same space compare equal.
    """

    def __init__(self, spaces: Sequence[LiegroupSpace] = ()):
        components: List[LiegroupSpace] = []
        for space in spaces:
            for c in space.components:
                if isinstance(c, VectorSpace) and components and isinstance(components[-1], VectorSpace):
                    components[-1] = VectorSpace(components[-1].nq + c.nq)
                elif isinstance(c, VectorSpace) and c.nq == 0:
                    continue
                else:
                    components.append(c)
        self._components = components
        self._iq = np.cumsum([0] + [c.nq for c in components])
        self._iv = np.cumsum([0] + [c.nv for c in components])

    @property
    def components(self) -> List[LiegroupSpace]:
        return list(self._components)

    @property
    def nq(self) -> int:
        return int(self._iq[-1])

    @property
    def nv(self) -> int:
        return int(self._iv[-1])

    @property
    def name(self) -> str:
        if not self._components:
            return "R^0"
        return " x ".join(c.name for c in self._components)

    def _blocks(self):
        for k, c in enumerate(self._components):
            yield c, slice(self._iq[k], self._iq[k + 1]), slice(self._iv[k], self._iv[k + 1])

    def neutral(self) -> np.ndarray:
        if not self._components:
            return np.zeros(0)
        return np.concatenate([c.neutral() for c in self._components])

    def integrate(self, q: np.ndarray, v: np.ndarray) -> np.ndarray:
        result = np.empty(self.nq)
        for c, sq, sv in self._blocks():
            result[sq] = c.integrate(q[sq], v[sv])
        return result

    def difference(self, q1: np.ndarray, q0: np.ndarray) -> np.ndarray:
        result = np.empty(self.nv)
        for c, sq, sv in self._blocks():
            result[sv] = c.difference(q1[sq], q0[sq])
        return result

    def d_difference_dq1(self, q0: np.ndarray, q1: np.ndarray, J: np.ndarray) -> np.ndarray:
        if self.is_vector_space():
            return J
        result = np.array(J, dtype=float, copy=True)
        for c, sq, sv in self._blocks():
            if not isinstance(c, VectorSpace):
                result[sv] = c.d_difference_dq1(q0[sq], q1[sq], J[sv])
        return result

    def is_normalized(self, q: np.ndarray, eps: float = 1e-8) -> bool:
        return all(c.is_normalized(q[sq], eps) for c, sq, _ in self._blocks())

    def normalize(self, q: np.ndarray) -> np.ndarray:
        result = np.array(q, dtype=float, copy=True)
        for c, sq, _ in self._blocks():
            result[sq] = c.normalize(q[sq])
        return result
