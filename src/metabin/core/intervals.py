"""
Interval tree over the query axis of a read.

Intervals are closed integer ranges [start, end] carrying a payload (a Match
or a plain marker). Two intervals with equal coordinates are distinct
entries: membership and removal go by identity, never by equality.

Storage and overlap queries go through the ``intervaltree`` package; iteration
is ordered by (start, end, insertion order) so results are deterministic.

Also provides the dominance pruning used to collapse near-identical
overlapping alignments to the same locus onto the best-scoring one.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from itertools import count
from typing import Generic, TypeVar

import intervaltree

from metabin.core.constants import DOMINANCE_OVERLAP_FRACTION

T = TypeVar("T")


class Interval(Generic[T]):
    """Closed integer interval [start, end] with an attached payload."""

    __slots__ = ("start", "end", "data")

    def __init__(self, start: int, end: int, data: T | None = None) -> None:
        if start > end:
            start, end = end, start
        self.start = start
        self.end = end
        self.data = data

    @property
    def length(self) -> int:
        """Number of positions covered (closed interval)."""
        return self.end - self.start + 1

    def overlap(self, other: Interval) -> int:
        """Number of positions shared with another interval."""
        return max(0, min(self.end, other.end) - max(self.start, other.start) + 1)

    def overlaps(self, other: Interval) -> bool:
        return self.start <= other.end and other.start <= self.end

    def __repr__(self) -> str:
        return f"Interval({self.start}, {self.end}, {self.data!r})"


class IntervalTree(Generic[T]):
    """
    Overlap index over closed intervals, backed by ``intervaltree``.

    Each stored Interval is kept as the payload of a half-open
    ``intervaltree.Interval(start, end + 1)``, so removal is by identity even
    when two payloads compare equal.

    Example:
        >>> tree = IntervalTree()
        >>> tree.add(10, 100, "a")
        >>> tree.add(50, 150, "b")
        >>> [iv.data for iv in tree.overlapping(Interval(120, 130))]
        ['b']
        >>> tree.covered_length()
        141
    """

    def __init__(self) -> None:
        self._tree = intervaltree.IntervalTree()
        self._entries: dict[int, tuple[intervaltree.Interval, int]] = {}
        self._counter = count()

    def add(self, start: int, end: int, data: T | None = None) -> Interval[T]:
        """Insert a new interval; start > end is normalized."""
        interval = Interval(start, end, data)
        self.add_interval(interval)
        return interval

    def add_interval(self, interval: Interval[T]) -> None:
        if id(interval) in self._entries:
            return
        span = intervaltree.Interval(interval.start, interval.end + 1, interval)
        self._tree.add(span)
        self._entries[id(interval)] = (span, next(self._counter))

    def add_all(self, intervals: Iterable[Interval[T]]) -> None:
        for interval in intervals:
            self.add_interval(interval)

    def overlapping(self, query: Interval) -> Iterator[Interval[T]]:
        """
        Iterate over stored intervals that share at least one position with query.

        The query itself is reported too if it is stored in the tree.
        """
        hits = [span.data for span in self._tree.overlap(query.start, query.end + 1)]
        return iter(sorted(hits, key=self._sort_key))

    def remove_all(self, intervals: Iterable[Interval[T]]) -> int:
        """
        Remove the given intervals (by identity) in one batch.

        Returns:
            Number of intervals removed
        """
        removed = 0
        for interval in intervals:
            entry = self._entries.pop(id(interval), None)
            if entry is not None:
                self._tree.remove(entry[0])
                removed += 1
        return removed

    def covered_length(self) -> int:
        """Length of the union of all stored intervals."""
        covered = 0
        current_begin: int | None = None
        current_end = 0
        for begin, end in sorted((span.begin, span.end) for span in self._tree):
            if current_begin is None:
                current_begin, current_end = begin, end
            elif begin <= current_end:
                current_end = max(current_end, end)
            else:
                covered += current_end - current_begin
                current_begin, current_end = begin, end
        if current_begin is not None:
            covered += current_end - current_begin
        return covered

    def uncovered_length(self, start: int, end: int) -> int:
        """Number of positions of [start, end] that no stored interval covers."""
        if start > end:
            start, end = end, start
        stop = end + 1
        covered = 0
        cursor = start
        for begin, span_end in sorted((span.begin, span.end) for span in self._tree.overlap(start, stop)):
            begin = max(begin, cursor)
            span_end = min(span_end, stop)
            if span_end > begin:
                covered += span_end - begin
                cursor = span_end
        return stop - start - covered

    def clusters(self) -> list[list[Interval[T]]]:
        """
        Group stored intervals into connected components.

        Two intervals end up in the same cluster when a chain of overlapping
        intervals links them. Clusters are returned in query order.
        """
        result: list[list[Interval[T]]] = []
        current_end = -1
        for interval in self:
            if not result or interval.start > current_end:
                result.append([interval])
                current_end = interval.end
            else:
                result[-1].append(interval)
                current_end = max(current_end, interval.end)
        return result

    def intervals(self) -> list[Interval[T]]:
        """Stored intervals ordered by start, end, then insertion."""
        return sorted((span.data for span in self._tree), key=self._sort_key)

    def clear(self) -> None:
        self._tree.clear()
        self._entries.clear()

    def _sort_key(self, interval: Interval[T]) -> tuple[int, int, int]:
        return interval.start, interval.end, self._entries[id(interval)][1]

    def __iter__(self) -> Iterator[Interval[T]]:
        return iter(self.intervals())

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)


def dominates(
    other: Interval,
    interval: Interval,
    score: Callable[[Interval], float],
    uid: Callable[[Interval], int],
) -> bool:
    """
    True if ``other`` dominates ``interval``.

    ``other`` must cover more than half of ``interval`` and score higher;
    equal scores are broken by the smaller uid, so dominance is a strict
    order and never cyclic.
    """
    if other is interval:
        return False
    if other.overlap(interval) <= DOMINANCE_OVERLAP_FRACTION * interval.length:
        return False
    other_score = score(other)
    own_score = score(interval)
    return other_score > own_score or (other_score == own_score and uid(other) < uid(interval))


def remove_dominated(
    tree: IntervalTree[T],
    score: Callable[[Interval[T]], float],
    uid: Callable[[Interval[T]], int],
) -> list[Interval[T]]:
    """
    Remove every interval of the tree that is dominated by another one.

    Dominated intervals are collected over the full set first and removed in
    a single batch, so the survivors do not depend on iteration order and a
    second pass removes nothing.

    Args:
        tree: Intervals of one orientation
        score: Score of an interval's payload
        uid: Unique id of an interval's payload (tie-break)

    Returns:
        The removed intervals
    """
    to_delete = [
        interval
        for interval in tree
        if any(dominates(other, interval, score, uid) for other in tree.overlapping(interval))
    ]
    tree.remove_all(to_delete)
    return to_delete
