"""
Per-read weight computation.

The read assignment mode decides how much a single read counts towards
the class it is binned into: once, by its length, by the number of its
bases covered by alignments, or by the copy number reported in the input.
"""

from __future__ import annotations

from metabin.core.intervals import IntervalTree
from metabin.models.alignments import Read
from metabin.models.config import ReadAssignmentMode


class ReadAssignmentCalculator:
    """
    Computes the weight of a read for a given ReadAssignmentMode.

    The calculator never modifies the read; the pipeline stores the result
    in ``read.weight`` exactly once per read.

    Example:
        >>> calc = ReadAssignmentCalculator(ReadAssignmentMode.READ_LENGTH)
        >>> calc.compute(Read(uid=1, length=150))
        150.0
    """

    def __init__(self, mode: ReadAssignmentMode = ReadAssignmentMode.READ_COUNT) -> None:
        self.mode = mode

    def compute(self, read: Read, intervals: IntervalTree | None = None) -> float:
        """
        Weight of the read.

        Args:
            read: Read to weigh
            intervals: Scratch tree reused for the aligned-bases mode; a
                fresh one is used when not given

        Returns:
            Read weight
        """
        if self.mode == ReadAssignmentMode.READ_MAGNITUDE:
            return float(read.magnitude)
        if self.mode == ReadAssignmentMode.READ_LENGTH:
            return float(max(1, read.length))
        if self.mode == ReadAssignmentMode.ALIGNED_BASES:
            return float(self.aligned_bases(read, intervals))
        return 1.0

    @staticmethod
    def aligned_bases(read: Read, intervals: IntervalTree | None = None) -> int:
        """Number of read positions covered by the union of all alignments."""
        if not read.matches:
            return 0
        if intervals is None:
            intervals = IntervalTree()
        else:
            intervals.clear()
        for match in read.matches:
            intervals.add(match.query_start, match.query_end)
        return intervals.covered_length()
