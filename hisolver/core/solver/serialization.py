"""Save and restore hierarchical solvers.

The record holds the thresholds, the configuration space, the saturation
policy and the constraints in registration order with their priority. Right
hand sides are not saved: a restored solver starts with neutral right hand
sides.
"""

import logging

from ..math.segments import SegmentSet
from ..models.constraints import Implicit
from ..models.records import (
    ConstraintRecord,
    FunctionRegistry,
    SolverRecord,
    create_saturation,
    space_from_record,
)
from .hierarchical import HierarchicalIterative


logger = logging.getLogger(__name__)


def save_solver(solver: HierarchicalIterative) -> SolverRecord:
    """Describe a solver as a record.

    Raises:
        ValueError: if a constraint function has no registered record type
    """
    constraints = []
    for constraint in solver.constraints:
        constraints.append(ConstraintRecord(
            function=constraint.function.to_record().model_dump(),
            comparison=constraint.comparison,
            active_rows=[(s.start, s.length) for s in constraint.active_rows],
            priority=solver.priority(constraint),
        ))

    return SolverRecord(
        squared_error_threshold=solver.squared_error_threshold,
        inequality_threshold=solver.inequality_threshold,
        max_iterations=solver.max_iterations,
        config_space=solver.config_space.to_record(),
        last_is_optional=solver.last_is_optional,
        saturation=solver.saturation.to_record(),
        constraints=constraints,
    )


def load_solver(record: SolverRecord) -> HierarchicalIterative:
    """Rebuild a solver from a record."""
    config_space = space_from_record(record.config_space)
    solver = HierarchicalIterative(config_space)
    solver.error_threshold = record.squared_error_threshold ** 0.5
    solver.inequality_threshold = record.inequality_threshold
    solver.max_iterations = record.max_iterations
    solver.last_is_optional = record.last_is_optional
    solver.saturation = create_saturation(record.saturation)

    for item in record.constraints:
        function = FunctionRegistry.create(item.function, config_space)
        constraint = Implicit(
            function,
            comparison=item.comparison,
            active_rows=SegmentSet(item.active_rows),
        )
        solver.add(constraint, item.priority)

    logger.debug("Loaded solver with %d constraints", len(record.constraints))
    return solver


def dumps_solver(solver: HierarchicalIterative, indent: int = 2) -> str:
    """Serialize a solver to JSON."""
    return save_solver(solver).model_dump_json(indent=indent)


def loads_solver(data: str) -> HierarchicalIterative:
    """Restore a solver from JSON produced by dumps_solver."""
    return load_solver(SolverRecord.model_validate_json(data))
