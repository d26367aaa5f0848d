"""
LCA assignment for long reads.

A long read may carry several genes from (possibly) different organisms.
The active matches are grouped into clusters of overlapping alignments
along the read; each cluster gets its own LCA, weighted by the number of
aligned bases of its hits. The read is placed on the LCA of the cluster
ids, and cluster ids that differ from it are exposed as additional ids.
"""

from __future__ import annotations

from collections import defaultdict

from metabin.core.active_matches import ActiveMatchSet
from metabin.core.assignment.lca import LCAAssignment
from metabin.core.constants import UNASSIGNED_ID
from metabin.core.intervals import Interval, IntervalTree
from metabin.core.taxonomy import ClassificationTree
from metabin.models.alignments import Match, Read


class IntervalUnionLCAAssignment(LCAAssignment):
    """
    Per-segment LCA for long reads.

    Args:
        classification: Classification name
        tree: Tree of the classification
        top_percent: Top-percent band applied within each cluster (0 disables)
        coverage_percent: Share of a cluster's aligned bases its LCA must cover
    """

    def __init__(
        self,
        classification: str,
        tree: ClassificationTree,
        top_percent: float = 10.0,
        coverage_percent: float = 100.0,
    ) -> None:
        super().__init__(classification, tree, coverage_percent=coverage_percent)
        self.top_percent = top_percent
        self._intervals: IntervalTree[Match] = IntervalTree()
        self._additional: list[int] = []

    def clear(self) -> None:
        self._intervals.clear()
        self._additional.clear()

    def _compute(self, active: ActiveMatchSet, read: Read) -> int:
        for index in active:
            match = read.matches[index]
            if match.class_id(self.classification) > 0:
                self._intervals.add(match.query_start, match.query_end, match)

        cluster_ids = []
        for cluster in self._intervals.clusters():
            cluster_id = self._cluster_id(cluster)
            if cluster_id > 0:
                cluster_ids.append(cluster_id)
        if not cluster_ids:
            return UNASSIGNED_ID

        result = self.tree.get_lca_of(cluster_ids) or cluster_ids[0]
        for cluster_id in dict.fromkeys(cluster_ids):
            if cluster_id != result:
                self._additional.append(cluster_id)
        return result

    def _cluster_id(self, cluster: list[Interval[Match]]) -> int:
        matches = [interval.data for interval in cluster]
        if 0 < self.top_percent < 100:
            best = max(match.bit_score for match in matches)
            matches = [m for m in matches if m.bit_score >= (1.0 - self.top_percent / 100.0) * best]

        aligned_bases: dict[int, float] = defaultdict(float)
        for match in matches:
            aligned_bases[match.class_id(self.classification)] += match.aligned_length
        if len(aligned_bases) == 1:
            return next(iter(aligned_bases))
        return self.tree.covering_node(aligned_bases, self.coverage_percent)

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
