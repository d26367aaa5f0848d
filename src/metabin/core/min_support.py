"""
Minimum-support filter.

After all reads of a run are binned, classes that collected fewer reads
than the minimum support are considered unreliable. Their reads are moved
up the classification tree to the nearest ancestor that, together with
everything moved into it, reaches the threshold (the root if none does).
Disabled classes are always moved, regardless of their support.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping

from metabin.core.taxonomy import ClassificationTree

logger = logging.getLogger(__name__)


class MinSupportFilter:
    """
    Computes which classes to fold into which ancestors.

    Args:
        classification: Classification name (for logging)
        class_to_weight: Weighted number of reads per class id
        min_support: Minimum weight a class needs to be kept
        tree: Tree of the classification
        disabled_ids: Classes that never keep reads

    Example:
        >>> tree = ClassificationTree("Taxonomy", {1: 1, 2: 1, 1239: 2})
        >>> MinSupportFilter("Taxonomy", {1239: 2.0, 2: 5.0}, 5, tree).apply()
        {1239: 2}
    """

    def __init__(
        self,
        classification: str,
        class_to_weight: Mapping[int, float],
        min_support: int,
        tree: ClassificationTree,
        disabled_ids: Iterable[int] = (),
    ) -> None:
        self.classification = classification
        self.class_to_weight = class_to_weight
        self.min_support = min_support
        self.tree = tree
        self.disabled_ids = frozenset(disabled_ids) | tree.disabled_ids

    def apply(self) -> dict[int, int]:
        """
        Compute the reassignments.

        Only positive class ids present in the tree take part; sentinel and
        unknown ids are never moved, and the root never moves.

        Returns:
            Mapping of moved class id to the class id it is folded into
        """
        weights = {
            class_id: weight
            for class_id, weight in self.class_to_weight.items()
            if class_id > 0 and class_id in self.tree
        }
        if not weights or (self.min_support <= 0 and not self.disabled_ids):
            return {}

        changes: dict[int, int] = {}
        pending: dict[int, list[tuple[int, float]]] = defaultdict(list)

        for node in self.tree.post_order(weights):
            orphans = pending.pop(node, [])
            own = weights.get(node, 0.0)
            is_root = node == self.tree.root

            if node in self.disabled_ids and not is_root:
                if own > 0:
                    orphans.append((node, own))
            else:
                total = own + sum(weight for _, weight in orphans)
                if is_root or (total > 0 and total >= self.min_support):
                    for orphan, _ in orphans:
                        changes[orphan] = node
                    orphans = []
                elif own > 0:
                    orphans.append((node, own))

            if orphans and not is_root:
                pending[self.tree.parent(node)].extend(orphans)

        logger.debug(
            "Min support %d for %s: %d of %d classes folded",
            self.min_support,
            self.classification,
            len(changes),
            len(weights),
        )
        return changes
