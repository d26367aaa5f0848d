"""Best-hit assignment: the class of the single best active match."""

from __future__ import annotations

from metabin.core.active_matches import ActiveMatchSet
from metabin.core.assignment.base import AssignmentAlgorithm
from metabin.core.constants import UNASSIGNED_ID
from metabin.models.alignments import Read


class BestHitAssignment(AssignmentAlgorithm):
    """
    Assigns a read to the class of its highest-scoring active match.

    Equal scores are broken by the lowest match uid, so the result does not
    depend on the order of the match list. Used for functional
    classifications; cannot reconcile two ids.
    """

    def _compute(self, active: ActiveMatchSet, read: Read) -> int:
        best = None
        for index in active:
            match = read.matches[index]
            if match.class_id(self.classification) <= 0:
                continue
            if best is None or (match.bit_score, -match.uid) > (best.bit_score, -best.uid):
                best = match
        if best is None:
            return UNASSIGNED_ID
        return best.class_id(self.classification)
