"""Half-open integer interval algebra used to describe active rows and columns."""

import bisect
import numpy as np
from typing import Iterable, Iterator, List, NamedTuple, Sequence, Union


class Segment(NamedTuple):
    """Half-open index range [start, start + length)."""

    start: int
    length: int

    @property
    def end(self) -> int:
        return self.start + self.length


def normalize(segments: Iterable[Sequence[int]]) -> List[Segment]:
    """Sort segments by start and merge those that touch or overlap.

    Args:
        segments: Any iterable of (start, length) pairs

    Returns:
        Sorted list of pairwise non-overlapping segments
    """
    ordered = sorted(Segment(int(s[0]), int(s[1])) for s in segments)
    merged: List[Segment] = []
    for seg in ordered:
        if seg.length == 0:
            continue
        if merged and seg.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = Segment(last.start, max(last.end, seg.end) - last.start)
        else:
            merged.append(seg)
    return merged


def overlap(a: Sequence[int], b: Sequence[int]) -> bool:
    """Check whether two half-open intervals intersect."""
    a, b = Segment(*a), Segment(*b)
    if a.length == 0 or b.length == 0:
        return False
    return a.start < b.end and b.start < a.end


def cardinal(segments: Iterable[Sequence[int]]) -> int:
    """Total length of a normalized segment list."""
    return sum(int(s[1]) for s in segments)


def union(a: Sequence[int], b: Sequence[int]) -> List[Segment]:
    """Union of two intervals: one segment if they touch, else both in start order."""
    a, b = Segment(*a), Segment(*b)
    if a.start > b.start:
        a, b = b, a
    if a.end >= b.start:
        return [Segment(a.start, max(a.length, b.end - a.start))]
    return [a, b]


def difference(a: Sequence[int], b: Sequence[int]) -> List[Segment]:
    """Part of interval a not covered by interval b (zero, one or two segments)."""
    a, b = Segment(*a), Segment(*b)
    if a.length == 0:
        return []
    if b.length == 0:
        return [a]

    diffs = []
    if a.start < b.start:
        end = min(a.end, b.start)
        diffs.append(Segment(a.start, end - a.start))
    if b.end < a.end:
        start = max(a.start, b.end)
        diffs.append(Segment(start, a.end - start))
    return diffs


def subtract(segments: Sequence[Segment], b: Sequence[int]) -> List[Segment]:
    """Remove interval b from a sorted, normalized segment list.

    Only the segments that can intersect b are visited; they are located by
    binary search on the segment ends and starts.
    """
    b = Segment(*b)
    if b.length == 0:
        return list(segments)
    first = bisect.bisect_right(segments, b.start, key=lambda s: s.end)
    last = bisect.bisect_left(segments, b.end, lo=first, key=lambda s: s.start)

    result = list(segments[:first])
    for seg in segments[first:last]:
        result.extend(difference(seg, b))
    result.extend(segments[last:])
    return result


def subtract_all(segments: Sequence[Segment], others: Iterable[Sequence[int]]) -> List[Segment]:
    """Remove every interval of ``others`` from a normalized segment list."""
    result = list(segments)
    for other in others:
        result = subtract(result, other)
    return result


SegmentLike = Union[Segment, Sequence[int]]


class SegmentSet:
    """Normalized set of half-open integer intervals.

    The underlying list is kept sorted and non-overlapping after every
    mutating operation.
    """

    def __init__(self, segments: Iterable[SegmentLike] = ()):
        self._segments: List[Segment] = normalize(segments)

    @classmethod
    def range(cls, start: int, length: int) -> "SegmentSet":
        """Set holding the single interval [start, start + length)."""
        return cls([(start, length)])

    @classmethod
    def from_mask(cls, mask: np.ndarray) -> "SegmentSet":
        """Build the set of indices where a boolean mask is true."""
        mask = np.asarray(mask, dtype=bool)
        segments = []
        start = None
        for i, flag in enumerate(mask):
            if flag and start is None:
                start = i
            elif not flag and start is not None:
                segments.append((start, i - start))
                start = None
        if start is not None:
            segments.append((start, len(mask) - start))
        return cls(segments)

    @classmethod
    def from_indices(cls, indices: Iterable[int]) -> "SegmentSet":
        return cls((int(i), 1) for i in indices)

    @property
    def segments(self) -> List[Segment]:
        return list(self._segments)

    def add(self, start: int, length: int) -> None:
        """Add an interval and renormalize."""
        self._segments = normalize(self._segments + [Segment(start, length)])

    def remove(self, start: int, length: int) -> None:
        """Remove an interval from the set."""
        self._segments = subtract(self._segments, (start, length))

    def shifted(self, offset: int) -> "SegmentSet":
        return SegmentSet((s.start + offset, s.length) for s in self._segments)

    def cardinal(self) -> int:
        """Number of indices covered."""
        return cardinal(self._segments)

    def indices(self) -> np.ndarray:
        """Covered indices in increasing order."""
        if not self._segments:
            return np.zeros(0, dtype=int)
        return np.concatenate([np.arange(s.start, s.end) for s in self._segments])

    def mask(self, size: int) -> np.ndarray:
        """Boolean mask of length ``size`` true on covered indices."""
        m = np.zeros(size, dtype=bool)
        for s in self._segments:
            m[s.start:s.end] = True
        return m

    def overlaps(self, other: SegmentLike) -> bool:
        return any(overlap(s, other) for s in self._segments)

    def union(self, other: "SegmentSet") -> "SegmentSet":
        return SegmentSet(self._segments + other._segments)

    def difference(self, other: Union["SegmentSet", SegmentLike]) -> "SegmentSet":
        if isinstance(other, SegmentSet):
            return SegmentSet(subtract_all(self._segments, other._segments))
        return SegmentSet(subtract(self._segments, other))

    def rview(self, array: np.ndarray) -> np.ndarray:
        """Rows of ``array`` selected by this set (copy)."""
        return np.asarray(array)[self.indices()]

    def __contains__(self, index: int) -> bool:
        return any(s.start <= index < s.end for s in self._segments)

    def __iter__(self) -> Iterator[Segment]:
        return iter(self._segments)

    def __len__(self) -> int:
        return len(self._segments)

    def __eq__(self, other) -> bool:
        if isinstance(other, SegmentSet):
            return self._segments == other._segments
        return NotImplemented

    def __repr__(self) -> str:
        body = ", ".join(f"[{s.start}, {s.end})" for s in self._segments)
        return f"SegmentSet({body})"
