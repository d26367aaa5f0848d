"""
Lowest-common-ancestor assignment.

The naive LCA places a read on the deepest node of the classification tree
that lies above the class ids of all of its active matches. A coverage
percentage below 100 relaxes this to the deepest node above that share of
the matches, so a few outlying hits do not pull the read towards the root.

With the identity filter switched on, each hit is first lifted to the
deepest rank its percent identity supports (e.g. a 96% hit cannot be placed
below family level), as is customary for 16S amplicon binning.
"""

from __future__ import annotations

import logging
from collections import Counter

from metabin.core.active_matches import ActiveMatchSet
from metabin.core.assignment.base import AssignmentAlgorithm
from metabin.core.constants import RANK_IDENTITY_THRESHOLDS, UNASSIGNED_ID
from metabin.core.exceptions import InvalidThresholdError
from metabin.core.taxonomy import ClassificationTree
from metabin.models.alignments import Match, Read

logger = logging.getLogger(__name__)


class LCAAssignment(AssignmentAlgorithm):
    """
    Naive LCA over the class ids of all active matches.

    Args:
        classification: Classification name
        tree: Tree of the classification
        use_identity_filter: Lift hits to the rank their identity supports
        coverage_percent: Share of active matches the result must lie above

    Raises:
        InvalidThresholdError: If coverage_percent is not in (0, 100]
    """

    supports_lca = True

    def __init__(
        self,
        classification: str,
        tree: ClassificationTree,
        use_identity_filter: bool = False,
        coverage_percent: float = 100.0,
    ) -> None:
        super().__init__(classification)
        if not 0 < coverage_percent <= 100:
            raise InvalidThresholdError("coverage_percent", coverage_percent, 0, 100)
        self.tree = tree
        self.use_identity_filter = use_identity_filter
        self.coverage_percent = coverage_percent

    def _compute(self, active: ActiveMatchSet, read: Read) -> int:
        ids = [class_id for class_id in self._hit_ids(active, read) if class_id > 0]
        if not ids:
            return UNASSIGNED_ID
        if len(set(ids)) == 1:
            return ids[0]
        if self.coverage_percent >= 100:
            return self.tree.get_lca_of(ids)
        return self.tree.covering_node(Counter(ids), self.coverage_percent)

    def _hit_ids(self, active: ActiveMatchSet, read: Read) -> list[int]:
        """Class ids of the active matches, lifted by the identity filter if enabled."""
        return [self._hit_id(read.matches[index]) for index in active]

    def _hit_id(self, match: Match) -> int:
        class_id = match.class_id(self.classification)
        if self.use_identity_filter and class_id > 0:
            return lift_to_supported_rank(self.tree, class_id, match.percent_identity)
        return class_id

    def get_lca(self, id1: int, id2: int) -> int:
        """Deepest common ancestor of two ids; a non-positive id yields the other."""
        if id1 <= 0:
            return id2
        if id2 <= 0:
            return id1
        return self.tree.get_lca(id1, id2)


def lift_to_supported_rank(tree: ClassificationTree, class_id: int, percent_identity: float) -> int:
    """
    Move a hit up to the deepest ranked ancestor its identity supports.

    Walks from the hit towards the root and stops at the first node with a
    rank in RANK_IDENTITY_THRESHOLDS whose threshold the identity meets. If
    that is the first ranked node on the path, the hit keeps its own id
    (e.g. a strain below a supported species).

    Returns:
        The (possibly lifted) id, or 0 if no rank is supported. An identity of
        0 means unknown and leaves the id unchanged, as does a path without
        any ranked node.
    """
    if percent_identity <= 0 or class_id not in tree:
        return class_id

    first_ranked = True
    for node in tree.path_to_root(class_id):
        threshold = RANK_IDENTITY_THRESHOLDS.get(tree.rank(node) or "")
        if threshold is None:
            continue
        if percent_identity >= threshold:
            return class_id if first_ranked else node
        first_ranked = False
    return class_id if first_ranked else 0
