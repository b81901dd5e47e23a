"""Tests for the hierarchical iterative solver."""

import numpy as np
import pytest

from hisolver.core.math.liegroup import SO2Space, VectorSpace
from hisolver.core.math.segments import SegmentSet
from hisolver.core.models.constraints import ComparisonType, Implicit
from hisolver.core.models.functions import AffineFunction, ConfigurationProjection, NumericalFunction
from hisolver.core.models.settings import SolverSettings
from hisolver.core.solver.hierarchical import DuplicateConstraintError, HierarchicalIterative, Status


@pytest.fixture
def space():
    return VectorSpace(3)


@pytest.fixture
def solver(space):
    """Solver with x at priority 0 and (y, z) at priority 1."""
    solver = HierarchicalIterative(space)
    solver.add(Implicit(ConfigurationProjection(space, [0], name="x")), 0)
    solver.add(Implicit(ConfigurationProjection(space, [1, 2], name="yz")), 1)
    return solver


class TestRegistration:
    """Test adding and looking up constraints."""

    def test_levels_and_dimensions(self, solver):
        """Test level creation and dimensions."""
        assert solver.number_stacks == 2
        assert solver.dimension == 3
        assert solver.reduced_dimension == 3
        assert solver.right_hand_side_size() == 3

    def test_priority(self, solver, space):
        """Test priority lookup by logical identity."""
        assert solver.priority(Implicit(ConfigurationProjection(space, [1, 2], name="yz"))) == 1
        assert solver.priority(Implicit(ConfigurationProjection(space, [2], name="z"))) is None

    def test_duplicate(self, solver, space):
        """Test that an equal function cannot be added twice."""
        with pytest.raises(DuplicateConstraintError, match="x"):
            solver.add(Implicit(ConfigurationProjection(space, [0], name="x")), 1)

    def test_duplicate_is_value_error(self, solver, space):
        """Test that the duplicate error is a ValueError."""
        with pytest.raises(ValueError):
            solver.add(Implicit(ConfigurationProjection(space, [0], name="x")))

    def test_wrong_space(self, solver):
        """Test that constraints on another space are rejected."""
        with pytest.raises(ValueError):
            solver.add(Implicit(AffineFunction(np.eye(2), name="other")))

    def test_negative_priority(self, solver, space):
        """Test that priorities are non-negative."""
        with pytest.raises(ValueError):
            solver.add(Implicit(ConfigurationProjection(space, [2], name="z")), -1)

    def test_empty_levels_are_created(self, space):
        """Test that adding at priority 2 creates the levels above it."""
        solver = HierarchicalIterative(space)
        solver.add(Implicit(ConfigurationProjection(space, [0], name="x")), 2)
        assert solver.number_stacks == 3
        assert solver.levels[0].dimension == 0

    def test_contains(self, solver, space):
        """Test membership."""
        assert solver.contains(Implicit(ConfigurationProjection(space, [0], name="x")))
        assert not solver.contains(Implicit(ConfigurationProjection(space, [0], name="x0")))

    def test_merge(self, solver, space):
        """Test importing constraints from another solver."""
        other = HierarchicalIterative(space)
        other.add(Implicit(ConfigurationProjection(space, [0], name="x")), 0)
        other.add(Implicit(ConfigurationProjection(space, [2], name="z")), 1)
        solver.merge(other)
        assert len(solver.constraints) == 3
        assert solver.priority(Implicit(ConfigurationProjection(space, [2], name="z"))) == 1

    def test_defines_submanifold_of(self, solver, space):
        """Test containment of constraint functions."""
        smaller = HierarchicalIterative(space)
        smaller.add(Implicit(ConfigurationProjection(space, [0], name="x")))
        assert solver.defines_submanifold_of(smaller)
        assert not smaller.defines_submanifold_of(solver)

    def test_active_parameters(self, space):
        """Test union of the masks of every level."""
        solver = HierarchicalIterative(space)
        solver.add(Implicit(ConfigurationProjection(space, [2], name="z")))
        np.testing.assert_array_equal(solver.active_parameters(), [False, False, True])
        np.testing.assert_array_equal(solver.active_derivative_parameters(), [False, False, True])

    def test_update_is_idempotent(self, solver):
        """Test that update twice keeps every buffer shape."""
        shapes = [(level.reduced_jacobian.shape, level.projector.shape) for level in solver.levels]
        dimensions = (solver.dimension, solver.reduced_dimension)
        solver.update()
        solver.update()
        assert [(level.reduced_jacobian.shape, level.projector.shape) for level in solver.levels] == shapes
        assert (solver.dimension, solver.reduced_dimension) == dimensions


class TestParameters:
    """Test solver parameters."""

    def test_thresholds(self, solver):
        """Test the error threshold and its square."""
        solver.error_threshold = 1e-3
        assert solver.squared_error_threshold == pytest.approx(1e-6)
        assert solver.error_threshold == pytest.approx(1e-3)
        with pytest.raises(ValueError):
            solver.error_threshold = -1.0
        with pytest.raises(ValueError):
            solver.inequality_threshold = -1.0
        with pytest.raises(ValueError):
            solver.max_iterations = -1

    def test_accepted_parameters_are_valid_settings(self, solver):
        """Test that parameters accepted by the setters can be read back as settings."""
        with pytest.raises(ValueError):
            solver.error_threshold = 0.0
        solver.max_iterations = 0
        settings = solver.settings()
        assert settings.max_iterations == 0
        assert settings.error_threshold == pytest.approx(solver.error_threshold)

    def test_settings_round_trip(self, space):
        """Test construction from settings."""
        settings = SolverSettings(error_threshold=1e-5, max_iterations=7, last_is_optional=True)
        solver = HierarchicalIterative.from_settings(space, settings)
        assert solver.max_iterations == 7
        assert solver.last_is_optional
        assert solver.settings().error_threshold == pytest.approx(1e-5)

    def test_free_variables(self, solver):
        """Test that setting free variables updates the reduced system."""
        solver.free_variables = SegmentSet([(1, 2)])
        assert solver.reduced_dimension == 2
        assert solver.levels[0].reduced_dimension == 0
        with pytest.raises(ValueError):
            solver.free_variables = SegmentSet([(2, 4)])


class TestRightHandSide:
    """Test right hand side accessors."""

    def test_set_and_get(self, solver, space):
        """Test per constraint access."""
        yz = Implicit(ConfigurationProjection(space, [1, 2], name="yz"))
        assert solver.set_right_hand_side(yz, np.array([1.0, 2.0]))
        np.testing.assert_allclose(solver.get_right_hand_side(yz), [1.0, 2.0])
        np.testing.assert_allclose(solver.right_hand_side(), [0.0, 1.0, 2.0])

    def test_set_wrong_size(self, solver, space):
        """Test size validation."""
        yz = Implicit(ConfigurationProjection(space, [1, 2], name="yz"))
        with pytest.raises(ValueError):
            solver.set_right_hand_side(yz, np.array([1.0]))

    def test_unknown_constraint(self, solver, space):
        """Test that unknown constraints are reported, not raised."""
        z = Implicit(ConfigurationProjection(space, [2], name="z"))
        assert solver.set_right_hand_side(z, np.array([1.0])) is False
        assert solver.get_right_hand_side(z) is None
        assert solver.right_hand_side_from_config(np.zeros(3), z) is False
        satisfied, error, found = solver.is_constraint_satisfied(z, np.zeros(3))
        assert not found
        assert not satisfied

    def test_from_config(self, solver):
        """Test that right hand sides make q a solution."""
        q = np.array([1.0, 2.0, 3.0])
        np.testing.assert_allclose(solver.right_hand_side_from_config(q), q)
        assert solver.solve(q.copy()) == Status.SUCCESS

    def test_from_config_single(self, solver, space):
        """Test updating one constraint from a configuration."""
        x = Implicit(ConfigurationProjection(space, [0], name="x"))
        assert solver.right_hand_side_from_config(np.array([4.0, 5.0, 6.0]), x)
        np.testing.assert_allclose(solver.right_hand_side(), [4.0, 0.0, 0.0])

    def test_bulk_setter(self, solver):
        """Test setting the concatenated right hand side."""
        solver.set_right_hand_sides(np.array([1.0, 2.0, 3.0]))
        np.testing.assert_allclose(solver.right_hand_side(), [1.0, 2.0, 3.0])

    def test_right_hand_side_at(self, solver, space):
        """Test time parameterized right hand sides."""
        constraint = solver.constraints[1]
        constraint.right_hand_side_function = lambda s: np.array([s, 2 * s])
        solver.right_hand_side_at(0.25)
        np.testing.assert_allclose(solver.get_right_hand_side(constraint), [0.25, 0.5])

    def test_is_constraint_satisfied(self, solver, space):
        """Test evaluation of a single constraint."""
        yz = Implicit(ConfigurationProjection(space, [1, 2], name="yz"))
        solver.set_right_hand_side(yz, np.array([1.0, 2.0]))
        satisfied, error, found = solver.is_constraint_satisfied(yz, np.array([0.0, 1.0, 2.5]))
        assert found
        assert not satisfied
        np.testing.assert_allclose(error, [0.0, 0.5])
        satisfied, _, _ = solver.is_constraint_satisfied(yz, np.array([9.0, 1.0, 2.0]))
        assert satisfied


class TestSolve:
    """Test the solve loop."""

    def test_converges(self, solver):
        """Test a linear problem converges to the right hand side."""
        solver.set_right_hand_sides(np.array([1.0, 2.0, 3.0]))
        q = np.zeros(3)
        assert solver.solve(q) == Status.SUCCESS
        np.testing.assert_allclose(q, [1.0, 2.0, 3.0])
        assert solver.iterations == 1
        assert len(solver.error_history) == 2
        assert len(solver.step_history) == 1

    def test_already_satisfied(self, solver):
        """Test that a satisfied start is kept."""
        q = np.zeros(3)
        assert solver.solve(q) == Status.SUCCESS
        np.testing.assert_array_equal(q, np.zeros(3))
        assert solver.iterations == 0

    def test_unreachable_level(self, solver):
        """Test a violated constraint whose variables are frozen."""
        solver.set_right_hand_side(solver.constraints[0], np.array([1.0]))
        solver.free_variables = SegmentSet([(1, 2)])
        solver.max_iterations = 3
        assert solver.levels[0].reduced_dimension == 0
        assert solver.solve(np.zeros(3)) == Status.MAX_ITERATION_REACHED

    def test_infeasible_without_active_rows(self, space):
        """Test that no active row at all makes a violated problem infeasible."""
        solver = HierarchicalIterative(space)
        x = Implicit(ConfigurationProjection(space, [0], name="x"))
        solver.add(x)
        solver.set_right_hand_side(x, np.array([1.0]))
        solver.max_iterations = 5
        solver.free_variables = SegmentSet([(1, 2)])
        assert solver.solve(np.zeros(3)) == Status.INFEASIBLE

    def test_max_iterations(self, space):
        """Test exhaustion of the iteration budget."""
        solver = HierarchicalIterative(space)
        x = Implicit(ConfigurationProjection(space, [0], name="x"))
        solver.add(x)
        solver.set_right_hand_side(x, np.array([1.0]))
        solver.max_iterations = 0
        assert solver.solve(np.zeros(3)) == Status.MAX_ITERATION_REACHED

    def test_frozen_variables_do_not_move(self, space):
        """Test that frozen tangent indices get no displacement."""
        solver = HierarchicalIterative(space)
        c = Implicit(AffineFunction([[1.0, 1.0, 1.0]], name="sum"))
        solver.add(c)
        solver.set_right_hand_side(c, np.array([3.0]))
        solver.max_iterations = 5
        solver.free_variables = SegmentSet([(0, 2)])
        q = np.array([0.0, 0.0, 7.0])
        assert solver.solve(q) == Status.SUCCESS
        assert q[2] == 7.0
        np.testing.assert_allclose(q[:2], [-2.0, -2.0])

    def test_invalid_configuration(self, solver):
        """Test configuration validation."""
        with pytest.raises(ValueError):
            solver.solve(np.zeros(2))
        with pytest.raises(ValueError):
            solver.solve(np.array([np.nan, 0.0, 0.0]))

    def test_configuration_must_be_float_array(self, solver):
        """Test that configurations which cannot be updated in place are rejected."""
        solver.set_right_hand_sides(np.array([1.0, 2.0, 3.0]))
        q = np.array([3, 4, 5])
        with pytest.raises(ValueError):
            solver.solve(q)
        np.testing.assert_array_equal(q, [3, 4, 5])
        with pytest.raises(ValueError):
            solver.solve([3.0, 4.0, 5.0])

    def test_level_by_level(self, solver):
        """Test that a level waits until the levels above it are satisfied."""
        solver.set_right_hand_sides(np.array([1.0, 2.0, 3.0]))
        solver.solve_level_by_level = True

        for q, expected in (
            (np.zeros(3), [1.0, 0.0, 0.0]),
            (np.array([1.0, 0.0, 0.0]), [0.0, 2.0, 3.0]),
        ):
            solver.compute_value(q)
            solver.compute_error()
            solver.compute_descent_direction()
            np.testing.assert_allclose(solver.dq, expected, atol=1e-12)

        q = np.zeros(3)
        assert solver.solve(q) == Status.SUCCESS
        assert solver.iterations == 2
        np.testing.assert_allclose(q, [1.0, 2.0, 3.0])

    def test_all_levels_at_once(self, solver):
        """Test that without the level by level policy every level is corrected."""
        solver.set_right_hand_sides(np.array([1.0, 2.0, 3.0]))
        solver.compute_value(np.zeros(3))
        solver.compute_error()
        solver.compute_descent_direction()
        np.testing.assert_allclose(solver.dq, [1.0, 2.0, 3.0], atol=1e-12)

    def test_inequality(self, space):
        """Test a one sided constraint."""
        solver = HierarchicalIterative(space)
        c = Implicit(ConfigurationProjection(space, [0], name="x"), comparison=[ComparisonType.SUPERIOR])
        solver.add(c)
        solver.max_iterations = 5
        q = np.array([-1.0, 0.0, 0.0])
        assert solver.solve(q) == Status.SUCCESS
        np.testing.assert_allclose(q[0], 0.0, atol=1e-12)
        q = np.array([3.0, 0.0, 0.0])
        assert solver.solve(q) == Status.SUCCESS
        assert q[0] == 3.0

    def test_rotation_configuration(self):
        """Test solving on a non Euclidean configuration space."""
        space = SO2Space() * VectorSpace(1)

        angle = NumericalFunction(lambda q: np.array([np.arctan2(q[1], q[0])]), space, VectorSpace(1), "angle")
        solver = HierarchicalIterative(space)
        c = Implicit(angle)
        solver.add(c)
        solver.set_right_hand_side(c, np.array([0.5]))
        solver.max_iterations = 10
        q = space.neutral()
        assert solver.solve(q) == Status.SUCCESS
        np.testing.assert_allclose(q[:2], [np.cos(0.5), np.sin(0.5)], atol=1e-6)

    def test_solve_with_result(self, solver):
        """Test the result summary."""
        solver.set_right_hand_sides(np.array([1.0, 2.0, 3.0]))
        result = solver.solve_with_result(np.zeros(3))
        assert result.success
        assert result.iterations == 1
        assert result.ranks == [1, 2]
        assert set(result.residuals) == {"0/x", "1/yz"}

    def test_result_without_decomposition(self, solver):
        """Test that sigma stays infinite when nothing had to be decomposed."""
        result = solver.solve_with_result(np.zeros(3))
        assert result.success
        assert result.iterations == 0
        assert result.sigma == np.inf
        assert "Infinity" in result.model_dump_json()


class TestCopyAndDescribe:
    """Test copying and printing."""

    def test_copy_is_independent(self, solver):
        """Test that copies solve independently."""
        duplicate = solver.copy()
        assert duplicate.config_space is solver.config_space
        duplicate.set_right_hand_sides(np.array([1.0, 1.0, 1.0]))
        np.testing.assert_allclose(solver.right_hand_side(), np.zeros(3))
        assert duplicate.constraints[0] == solver.constraints[0]
        assert duplicate.constraints[0] is not solver.constraints[0]

    def test_describe(self, solver):
        """Test the text dump."""
        text = solver.describe()
        assert "Level 0" in text
        assert "Level 1" in text
        assert "yz" in text
        assert "HierarchicalIterative(2 levels" in repr(solver)
