"""Implicit constraints: a function, comparison types and a right hand side."""

import copy
import numpy as np
from enum import Enum
from typing import Callable, List, Optional, Sequence

from ..math.segments import SegmentSet
from .functions import DifferentiableFunction


class ComparisonType(Enum):
    """How a row of f(q) (-) rhs is compared to zero."""
    EQUALITY = "equality"
    SUPERIOR = "superior"
    INFERIOR = "inferior"


class Implicit:
    """Constraint of the form f(q) (-) rhs = 0, or one-sided per row."""

    def __init__(
        self,
        function: DifferentiableFunction,
        comparison: Optional[Sequence[ComparisonType]] = None,
        active_rows: Optional[SegmentSet] = None,
    ):
        """Initialize constraint.

        Args:
            function: Constrained function
            comparison: One comparison type per output derivative row
                (all equality by default)
            active_rows: Rows taking part in the solve (all by default)
        """
        self.function = function
        n = function.output_derivative_size

        if comparison is None:
            comparison = [ComparisonType.EQUALITY] * n
        self.comparison: List[ComparisonType] = [ComparisonType(c) for c in comparison]
        if len(self.comparison) != n:
            raise ValueError(
                f"Constraint {function.name}: {len(self.comparison)} comparison types "
                f"for {n} rows"
            )

        if active_rows is None:
            active_rows = SegmentSet.range(0, n)
        if active_rows.segments and active_rows.segments[-1].end > n:
            raise ValueError(f"Constraint {function.name}: active rows exceed output size {n}")
        self.active_rows = active_rows

        self.right_hand_side_function: Optional[Callable[[float], np.ndarray]] = None

    @property
    def name(self) -> str:
        return self.function.name

    @property
    def parameter_size(self) -> int:
        """Number of rows whose right hand side can be set (equality rows)."""
        return sum(1 for c in self.comparison if c == ComparisonType.EQUALITY)

    def inactive_rows_mask(self) -> np.ndarray:
        return ~self.active_rows.mask(self.function.output_derivative_size)

    def set_inactive_rows_to_zero(self, error: np.ndarray) -> None:
        """Zero the entries of an error vector that belong to inactive rows."""
        error[self.inactive_rows_mask()] = 0.0

    def right_hand_side_from_config(self, q: np.ndarray) -> np.ndarray:
        """Right hand side making q satisfy the constraint.

        Equality rows take the value f(q); other rows keep the neutral element.
        """
        space = self.function.output_space
        neutral = space.neutral()
        log = space.difference(self.function.value(q), neutral)
        for i, c in enumerate(self.comparison):
            if c != ComparisonType.EQUALITY:
                log[i] = 0.0
        return space.integrate(neutral, log)

    def check_right_hand_side(self, rhs: np.ndarray) -> bool:
        """Check that non-equality rows of rhs are at the neutral element."""
        space = self.function.output_space
        log = space.difference(np.asarray(rhs, dtype=float), space.neutral())
        return all(
            log[i] == 0 for i, c in enumerate(self.comparison) if c != ComparisonType.EQUALITY
        )

    def right_hand_side_at(self, s: float) -> np.ndarray:
        """Evaluate the time-parameterized right hand side."""
        if self.right_hand_side_function is None:
            raise ValueError(f"Constraint {self.name} has no right hand side function")
        return np.asarray(self.right_hand_side_function(s), dtype=float)

    def copy(self) -> "Implicit":
        """Deep copy; the input space of the function is shared."""
        memo = {id(self.function.input_space): self.function.input_space}
        return copy.deepcopy(self, memo)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Implicit):
            return NotImplemented
        return self.function == other.function and self.comparison == other.comparison

    def __hash__(self) -> int:
        return hash(self.function)

    def __repr__(self) -> str:
        tags = "".join(c.name[0] for c in self.comparison)
        return f"Implicit({self.name!r}, comparison={tags}, active_rows={self.active_rows})"
