"""Score-weighted LCA assignment."""

from __future__ import annotations

from collections import defaultdict

from metabin.core.active_matches import ActiveMatchSet
from metabin.core.assignment.lca import LCAAssignment
from metabin.core.constants import UNASSIGNED_ID
from metabin.models.alignments import Read


class WeightedLCAAssignment(LCAAssignment):
    """
    LCA in which every active match votes with its bit score.

    The read is placed on the deepest node whose subtree collects at least
    ``coverage_percent`` of the total score of the active matches. A
    minority of weak, aberrant hits therefore does not pull the assignment
    towards the root the way it does for the naive LCA.

    Example:
        Hits on 1386 (score 200), 1386 (score 180) and 562 (score 40) with
        coverage_percent=80 give 1386: 380 of 420 (90%) lies below it.
    """

    def _compute(self, active: ActiveMatchSet, read: Read) -> int:
        votes: dict[int, float] = defaultdict(float)
        for index in active:
            match = read.matches[index]
            class_id = self._hit_id(match)
            if class_id > 0:
                votes[class_id] += match.bit_score
        if not votes:
            return UNASSIGNED_ID
        if len(votes) == 1:
            return next(iter(votes))
        result = self.tree.covering_node(votes, self.coverage_percent)
        return result if result > 0 else UNASSIGNED_ID
