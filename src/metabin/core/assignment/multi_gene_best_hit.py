"""
Best-hit assignment for long reads spanning several genes.

Overlapping alignments to the same locus are collapsed onto the best one
(see intervals.remove_dominated), separately for each strand. Every
surviving alignment is taken as one gene call: the first along the read
gives the primary class id, the others are reported as additional ids.
"""

from __future__ import annotations

from metabin.core.active_matches import ActiveMatchSet
from metabin.core.assignment.base import AssignmentAlgorithm
from metabin.core.constants import DEFAULT_MIN_OVERLAP, UNASSIGNED_ID
from metabin.core.intervals import Interval, IntervalTree, remove_dominated
from metabin.models.alignments import Match, Read


def _score(interval: Interval[Match]) -> float:
    return interval.data.bit_score


def _uid(interval: Interval[Match]) -> int:
    return interval.data.uid


class MultiGeneBestHitAssignment(AssignmentAlgorithm):
    """
    Multi-gene best hit.

    Args:
        classification: Classification name
        min_overlap: Minimum overlap in bases; kept as algorithm state for
            callers that tune it, not used by the dominance rule
    """

    def __init__(self, classification: str, min_overlap: int = DEFAULT_MIN_OVERLAP) -> None:
        super().__init__(classification)
        self.min_overlap = min_overlap
        self._forward: IntervalTree[Match] = IntervalTree()
        self._reverse: IntervalTree[Match] = IntervalTree()
        self._additional: dict[int, None] = {}

    def clear(self) -> None:
        self._forward.clear()
        self._reverse.clear()
        self._additional.clear()

    def _compute(self, active: ActiveMatchSet, read: Read) -> int:
        result = UNASSIGNED_ID
        for interval in self.accepted_matches(active, read):
            class_id = interval.data.class_id(self.classification)
            if result == UNASSIGNED_ID and class_id > 0:
                result = class_id
            else:
                self._additional[class_id] = None
        return result

    def accepted_matches(self, active: ActiveMatchSet, read: Read) -> IntervalTree[Match]:
        """
        Active matches left after removing those dominated by stronger ones.

        Forward and reverse alignments are resolved independently and then
        merged into one tree ordered along the read.
        """
        self._forward.clear()
        self._reverse.clear()
        for index in active:
            match = read.matches[index]
            if match.class_id(self.classification) <= 0:
                continue
            tree = self._reverse if match.is_reverse else self._forward
            tree.add(match.query_start, match.query_end, match)

        remove_dominated(self._forward, _score, _uid)
        remove_dominated(self._reverse, _score, _uid)

        self._forward.add_all(self._reverse.intervals())
        self._reverse.clear()
        return self._forward

    @property
    def additional_class_ids(self) -> list[int]:
        return list(self._additional)

    def get_additional_class_ids(
        self,
        index: int,
        number_of_classifications: int,
        out: list[list[int]],
    ) -> int:
        for class_id in self._additional:
            row = [0] * number_of_classifications
            row[index] = class_id
            out.append(row)
        return len(self._additional)
