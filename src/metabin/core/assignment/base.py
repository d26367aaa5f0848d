"""
Common interface of the read assignment algorithms.

One algorithm instance is created per classification and reused for every
read of a run. Instances own scratch state (interval trees, id sets) that
is reset at the start of every compute_id() call, so they must not be
shared between threads.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar

from metabin.core.active_matches import ActiveMatchSet
from metabin.core.constants import NOHITS_ID, UNASSIGNED_ID
from metabin.core.exceptions import UnsupportedOperationError
from metabin.models.alignments import Read
from metabin.models.assignment import AssignmentResult


class AssignmentAlgorithm(ABC):
    """
    Computes the class id of a read in one classification.

    Subclasses implement _compute(), which is only called for reads that
    have at least one active match. Reads without any matches resolve to
    NOHITS_ID and reads without active matches to UNASSIGNED_ID.

    Attributes:
        supports_lca: True if get_lca() can reconcile two class ids
        classification: Name of the classification ids are read from
    """

    supports_lca: ClassVar[bool] = False

    def __init__(self, classification: str) -> None:
        self.classification = classification

    def compute_id(self, active: ActiveMatchSet | None, read: Read) -> int:
        """
        Class id of the read given its active matches.

        Returns:
            Class id, 0 if the read cannot be placed, or a sentinel id
        """
        self.clear()
        if not read.matches:
            return NOHITS_ID
        if active is None or active.is_empty():
            return UNASSIGNED_ID
        return self._compute(active, read)

    @abstractmethod
    def _compute(self, active: ActiveMatchSet, read: Read) -> int:
        """Class id of a read with at least one active match."""

    def clear(self) -> None:
        """Reset per-read scratch state."""

    def get_lca(self, id1: int, id2: int) -> int:
        """
        Deepest common ancestor of two class ids.

        Raises:
            UnsupportedOperationError: If the algorithm cannot reconcile ids
        """
        raise UnsupportedOperationError(type(self).__name__, "get_lca")

    def try_get_lca(self, id1: int, id2: int) -> int | UnsupportedOperationError:
        """
        Like get_lca(), but returns the error instead of raising it.

        Callers reconciling mate pairs check the result type and decide
        how to proceed without relying on exception handling.
        """
        if not self.supports_lca:
            return UnsupportedOperationError(type(self).__name__, "get_lca")
        return self.get_lca(id1, id2)

    def get_additional_class_ids(
        self,
        index: int,
        number_of_classifications: int,
        out: list[list[int]],
    ) -> int:
        """
        Append one id row per additional class found by the last compute_id().

        Each row has one slot per classification; only ``index`` is set.

        Returns:
            Number of rows appended (0 for single-assignment algorithms)
        """
        return 0

    def assign(self, active: ActiveMatchSet | None, read: Read) -> AssignmentResult:
        """
        Compute the class id and any additional (id, weight) tuples of a read.

        Additional tuples share the read weight evenly between segments.
        """
        class_id = self.compute_id(active, read)
        rows: list[list[int]] = []
        segments = self.get_additional_class_ids(0, 1, rows)
        if class_id <= 0 or segments == 0:
            return AssignmentResult(class_id)
        share = read.weight / segments
        return AssignmentResult(class_id, tuple((row[0], share) for row in rows))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.classification!r})"
