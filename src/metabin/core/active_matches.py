"""
Selection of the matches of a read that take part in classification.

For every read and classification the pipeline computes the "active"
matches: those with a class id in the classification that pass the score,
expectation and identity thresholds and lie within the top-percent band
of the best such match. The selection is a boolean mask over the read's
match list, rebuilt for every read.

The optional ReferenceCoverFilter removes, after score filtering, matches
against reference sequences that the dataset as a whole covers too thinly.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterator
from contextlib import closing
from typing import TYPE_CHECKING

import numpy as np

from metabin.core.constants import SOURCE_MAX_EXPECTED, SOURCE_MIN_SCORE
from metabin.core.exceptions import InvalidThresholdError
from metabin.core.intervals import IntervalTree

if TYPE_CHECKING:
    from metabin.core.parsers import ReadSource
    from metabin.models.alignments import Match, Read

logger = logging.getLogger(__name__)


class ActiveMatchSet:
    """
    Boolean selection over the matches of one read.

    Iterating yields the indices of the selected matches in ascending order.
    """

    __slots__ = ("mask",)

    def __init__(self, mask: np.ndarray) -> None:
        self.mask = mask

    @classmethod
    def none(cls, size: int) -> ActiveMatchSet:
        return cls(np.zeros(size, dtype=bool))

    @classmethod
    def all(cls, size: int) -> ActiveMatchSet:
        return cls(np.ones(size, dtype=bool))

    @classmethod
    def of(cls, size: int, indices: list[int]) -> ActiveMatchSet:
        mask = np.zeros(size, dtype=bool)
        mask[indices] = True
        return cls(mask)

    @property
    def cardinality(self) -> int:
        """Number of selected matches."""
        return int(self.mask.sum())

    def is_empty(self) -> bool:
        return not self.mask.any()

    def indices(self) -> list[int]:
        return np.flatnonzero(self.mask).tolist()

    def matches(self, read: Read) -> list[Match]:
        """The selected matches of the read, in match-list order."""
        return [read.matches[i] for i in self.indices()]

    def clear(self, index: int) -> None:
        self.mask[index] = False

    def __contains__(self, index: int) -> bool:
        return bool(self.mask[index])

    def __iter__(self) -> Iterator[int]:
        return iter(self.indices())

    def __repr__(self) -> str:
        return f"ActiveMatchSet({self.indices()})"


def compute_active_matches(
    read: Read,
    classification: str | None,
    min_score: float,
    top_percent: float,
    max_expected: float,
    min_percent_identity: float,
) -> ActiveMatchSet:
    """
    Compute the matches of a read eligible for classification.

    A match is active if it has a positive class id in the classification,
    score >= min_score, e-value <= max_expected, and percent identity >=
    min_percent_identity (an identity of 0 means "unknown" and passes). If
    0 < top_percent < 100, only matches scoring at least
    (1 - top_percent/100) * best active score survive.

    Args:
        read: Read whose matches are filtered
        classification: Classification name, or None to ignore class ids
        min_score: Minimum bit score
        top_percent: Top-percent band (0 disables the relative filter)
        max_expected: Maximum e-value
        min_percent_identity: Minimum percent identity

    Returns:
        ActiveMatchSet over read.matches
    """
    n = len(read.matches)
    if n == 0:
        return ActiveMatchSet.none(0)

    scores = np.fromiter((m.bit_score for m in read.matches), dtype=float, count=n)
    expected = np.fromiter((m.expected for m in read.matches), dtype=float, count=n)
    identity = np.fromiter((m.percent_identity for m in read.matches), dtype=float, count=n)

    mask = (scores >= min_score) & (expected <= max_expected)
    if min_percent_identity > 0:
        mask &= (identity == 0) | (identity >= min_percent_identity)
    if classification is not None:
        ids = np.fromiter((m.class_id(classification) for m in read.matches), dtype=np.int64, count=n)
        mask &= ids > 0

    if 0 < top_percent < 100 and mask.any():
        best = scores[mask].max()
        mask &= scores >= (1.0 - top_percent / 100.0) * best

    return ActiveMatchSet(mask)


class ReferenceCoverFilter:
    """
    Drops matches against references that are too thinly covered.

    A first pass over the whole dataset collects, per reference sequence,
    the union of reference positions covered by active matches. References
    whose covered fraction stays below the threshold are considered
    spurious; their matches are removed from active sets afterwards.
    """

    def __init__(self, min_percent_reference_to_cover: float) -> None:
        if not 0 <= min_percent_reference_to_cover <= 100:
            raise InvalidThresholdError(
                "min_percent_reference_to_cover", min_percent_reference_to_cover, 0, 100
            )
        self.min_percent = min_percent_reference_to_cover
        self._insufficient: set[str] = set()
        self._computed = False

    @property
    def is_computed(self) -> bool:
        return self._computed

    @property
    def insufficient_references(self) -> frozenset[str]:
        return frozenset(self._insufficient)

    def compute(
        self,
        source: ReadSource,
        min_score: float,
        top_percent: float,
        max_expected: float,
        min_percent_identity: float,
    ) -> int:
        """
        Determine the references with insufficient coverage.

        Returns:
            Number of references marked as insufficiently covered
        """
        covered: dict[str, IntervalTree] = defaultdict(IntervalTree)
        ref_lengths: dict[str, int] = {}

        with closing(source.iter_reads(SOURCE_MIN_SCORE, SOURCE_MAX_EXPECTED, False, True)) as reads:
            for read in reads:
                active = compute_active_matches(
                    read, None, min_score, top_percent, max_expected, min_percent_identity
                )
                for match in active.matches(read):
                    if match.ref_length <= 0 or not match.ref_name:
                        continue
                    ref_lengths[match.ref_name] = match.ref_length
                    covered[match.ref_name].add(match.ref_start, match.ref_end)

        self._insufficient = {
            ref
            for ref, length in ref_lengths.items()
            if 100.0 * covered[ref].covered_length() / length < self.min_percent
        }
        self._computed = True
        logger.info(
            "Reference cover filter: %d of %d references below %.1f%% coverage",
            len(self._insufficient),
            len(ref_lengths),
            self.min_percent,
        )
        return len(self._insufficient)

    def apply(self, read: Read, active: ActiveMatchSet) -> int:
        """
        Remove matches to insufficiently covered references from the selection.

        Returns:
            Number of matches removed
        """
        if not self._insufficient:
            return 0
        removed = 0
        for index in active.indices():
            if read.matches[index].ref_name in self._insufficient:
                active.clear(index)
                removed += 1
        return removed
