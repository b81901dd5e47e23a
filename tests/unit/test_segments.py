"""Tests for the half-open interval algebra."""

import numpy as np
import pytest

from hisolver.core.math.segments import (
    Segment,
    SegmentSet,
    cardinal,
    difference,
    normalize,
    overlap,
    subtract,
    subtract_all,
    union,
)


class TestPairwiseOperations:
    """Test operations on single intervals."""

    def test_segment_end(self):
        """Test the exclusive end of a segment."""
        assert Segment(3, 4).end == 7

    def test_overlap_half_open(self):
        """Test that touching intervals do not overlap."""
        assert overlap((2, 3), (4, 1))
        assert not overlap((2, 3), (5, 1))
        assert not overlap((5, 1), (2, 3))

    def test_overlap_empty_interval(self):
        """Test that an empty interval overlaps nothing."""
        assert not overlap((2, 0), (0, 10))

    def test_difference_splits(self):
        """Test difference of an interval containing the other."""
        assert difference((0, 10), (3, 2)) == [Segment(0, 3), Segment(5, 5)]

    def test_difference_disjoint(self):
        """Test difference with a disjoint interval."""
        assert difference((0, 3), (5, 2)) == [Segment(0, 3)]

    def test_difference_covered(self):
        """Test difference when the second interval covers the first."""
        assert difference((3, 2), (0, 10)) == []

    def test_difference_prefix(self):
        """Test removing the beginning of an interval."""
        assert difference((0, 10), (0, 4)) == [Segment(4, 6)]

    def test_union_disjoint(self):
        """Test union of disjoint intervals keeps both in order."""
        assert union((5, 2), (0, 3)) == [Segment(0, 3), Segment(5, 2)]

    def test_union_overlapping(self):
        """Test union of overlapping intervals."""
        assert union((0, 3), (2, 5)) == [Segment(0, 7)]

    def test_union_touching(self):
        """Test union of touching intervals merges them."""
        assert union((0, 3), (3, 2)) == [Segment(0, 5)]

    def test_union_nested(self):
        """Test union of nested intervals."""
        assert union((0, 10), (2, 3)) == [Segment(0, 10)]


class TestNormalize:
    """Test normalization of interval lists."""

    def test_normalize_merges_overlaps(self):
        """Test normalization of overlapping intervals."""
        result = normalize([(0, 5), (3, 4), (10, 2)])
        assert result == [Segment(0, 7), Segment(10, 2)]
        assert cardinal(result) == 9

    def test_normalize_unsorted(self):
        """Test that input order does not matter."""
        assert normalize([(10, 2), (0, 1)]) == [Segment(0, 1), Segment(10, 2)]

    def test_normalize_touching(self):
        """Test that touching intervals are merged."""
        assert normalize([(2, 3), (0, 2)]) == [Segment(0, 5)]

    def test_normalize_drops_empty(self):
        """Test that empty intervals are removed."""
        assert normalize([(4, 0), (1, 1)]) == [Segment(1, 1)]

    def test_cardinal_counts_union(self):
        """Test that cardinal counts covered indices, not the raw sum."""
        raw = [(0, 4), (2, 4), (2, 4)]
        assert cardinal(normalize(raw)) == 6


class TestSubtract:
    """Test removal of intervals from sorted lists."""

    def test_subtract_middle(self):
        """Test removing an interval spanning several segments."""
        segments = normalize([(0, 2), (4, 2), (8, 2), (12, 2)])
        result = subtract(segments, (5, 4))
        assert result == [Segment(0, 2), Segment(4, 1), Segment(9, 1), Segment(12, 2)]

    def test_subtract_at_boundary(self):
        """Test that an interval starting at a segment end removes nothing."""
        segments = normalize([(0, 2)])
        assert subtract(segments, (2, 3)) == [Segment(0, 2)]

    def test_subtract_everything(self):
        """Test removing a covering interval."""
        segments = normalize([(1, 2), (5, 1)])
        assert subtract(segments, (0, 10)) == []

    def test_subtract_empty(self):
        """Test removing an empty interval."""
        segments = normalize([(1, 2)])
        assert subtract(segments, (1, 0)) == [Segment(1, 2)]

    def test_subtract_all(self):
        """Test folding the difference over several intervals."""
        segments = normalize([(0, 10)])
        result = subtract_all(segments, [(1, 1), (5, 2)])
        assert result == [Segment(0, 1), Segment(2, 3), Segment(7, 3)]


class TestSegmentSet:
    """Test the SegmentSet container."""

    def test_range(self):
        """Test a set holding a single range."""
        s = SegmentSet.range(2, 3)
        assert s.cardinal() == 3
        np.testing.assert_array_equal(s.indices(), [2, 3, 4])

    def test_empty(self):
        """Test an empty set."""
        s = SegmentSet()
        assert s.cardinal() == 0
        assert len(s) == 0
        assert s.indices().shape == (0,)

    def test_from_mask(self):
        """Test building a set from a boolean mask."""
        s = SegmentSet.from_mask([True, True, False, True])
        assert s.segments == [Segment(0, 2), Segment(3, 1)]

    def test_from_indices(self):
        """Test building a set from indices."""
        s = SegmentSet.from_indices([4, 1, 2])
        assert s.segments == [Segment(1, 2), Segment(4, 1)]

    def test_mask(self):
        """Test conversion to a boolean mask."""
        s = SegmentSet([(1, 2)])
        np.testing.assert_array_equal(s.mask(4), [False, True, True, False])

    def test_add_and_remove(self):
        """Test mutating operations keep the set normalized."""
        s = SegmentSet([(0, 2)])
        s.add(2, 3)
        assert s.segments == [Segment(0, 5)]
        s.remove(1, 1)
        assert s.segments == [Segment(0, 1), Segment(2, 3)]

    def test_contains(self):
        """Test index membership."""
        s = SegmentSet([(2, 2)])
        assert 2 in s
        assert 3 in s
        assert 4 not in s

    def test_shifted(self):
        """Test offsetting every interval."""
        assert SegmentSet([(0, 2)]).shifted(3) == SegmentSet([(3, 2)])

    def test_union_and_difference(self):
        """Test set level union and difference."""
        a = SegmentSet([(0, 3)])
        b = SegmentSet([(2, 3), (8, 1)])
        assert a.union(b) == SegmentSet([(0, 5), (8, 1)])
        assert a.difference(b) == SegmentSet([(0, 2)])
        assert b.difference((3, 10)) == SegmentSet([(2, 1)])

    def test_overlaps(self):
        """Test overlap with an interval."""
        s = SegmentSet([(0, 2), (5, 2)])
        assert s.overlaps((6, 3))
        assert not s.overlaps((2, 3))

    def test_rview(self):
        """Test row selection."""
        array = np.arange(12).reshape(6, 2)
        rows = SegmentSet([(1, 1), (4, 2)]).rview(array)
        np.testing.assert_array_equal(rows, array[[1, 4, 5]])

    def test_iteration_and_repr(self):
        """Test iteration and printing."""
        s = SegmentSet([(0, 1), (3, 2)])
        assert list(s) == [Segment(0, 1), Segment(3, 2)]
        assert repr(s) == "SegmentSet([0, 1), [3, 5))"

    def test_equality_with_other_types(self):
        """Test comparison with a non set."""
        assert SegmentSet() != [(0, 1)]
