"""
Binning pipeline.

Streams reads from a ReadSource and assigns each one a class id in every
active classification:

    1. Weigh the read (read assignment mode) and apply the length and
       complexity gates.
    2. For every taxonomic classification, select the active matches,
       check read coverage, run the LCA-style algorithm and reconcile the
       result with the mate read in paired mode. The Taxonomy result is
       checked against the contaminant profile.
    3. Resolve sentinels (contaminants > low complexity > too short) and
       run best hit on the functional classifications.
    4. Emit one accumulator item per read, plus one per additional
       multi-gene id in long-read mode.

After the stream, weakly supported classes of the taxonomic
classifications are folded into their ancestors, and the result is handed
to the sink.
"""

from __future__ import annotations

import logging
import threading
from contextlib import closing
from dataclasses import dataclass, field
from typing import Protocol

from metabin.core.accumulator import UpdateAccumulator
from metabin.core.active_matches import ActiveMatchSet, ReferenceCoverFilter, compute_active_matches
from metabin.core.assignment import AssignmentAlgorithm, create_assignment_algorithm
from metabin.core.constants import (
    COMPLEXITY_TOLERANCE,
    CONTAMINANTS_ID,
    LOW_COMPLEXITY_ID,
    NOHITS_ID,
    SOURCE_MAX_EXPECTED,
    SOURCE_MIN_SCORE,
    TAXONOMY,
    UNASSIGNED_ID,
)
from metabin.core.contaminants import ContaminantOracle
from metabin.core.exceptions import BinningCancelled, ReadDataError, UnsupportedOperationError
from metabin.core.intervals import IntervalTree
from metabin.core.io_utils import UpdateSink
from metabin.core.min_support import MinSupportFilter
from metabin.core.parsers import MateReader, ReadSource
from metabin.core.read_weight import ReadAssignmentCalculator
from metabin.core.taxonomy import ClassificationTreeService
from metabin.models.alignments import Read
from metabin.models.assignment import BinningStats
from metabin.models.config import BinningConfig, ReadAssignmentMode

logger = logging.getLogger(__name__)


class ProgressListener(Protocol):
    """Receives progress updates and may request cancellation."""

    def set_progress(self, reads_processed: int) -> None: ...

    def is_cancelled(self) -> bool: ...


@dataclass
class BinningResult:
    """Outcome of a binning run."""

    accumulator: UpdateAccumulator
    changes: dict[str, dict[int, int]] = field(default_factory=dict)
    stats: BinningStats = field(default_factory=BinningStats)


@dataclass
class _ReadOutcome:
    """Everything one read contributes; committed only if the read succeeds."""

    weight: float
    class_ids: list[int]
    additional: list[tuple[list[int], float]]
    hits_weight: float = 0.0
    too_short: bool = False
    low_complexity: bool = False
    low_covered: bool = False
    via_mate: bool = False


class ClassificationPipeline:
    """
    Assigns every read of a source to one class per classification.

    Args:
        config: Run configuration
        trees: Trees and known ids of the classifications
        contaminants: Contaminant profile; used if the contaminant filter is on
        reference_cover_filter: Precomputed reference cover filter; built
            and computed on the first run if the configuration asks for one
        progress: Optional progress listener

    Raises:
        ConfigurationError: If an algorithm cannot be set up for a classification
        UnknownClassificationError: If a classification has no tree or ids

    Example:
        >>> pipeline = ClassificationPipeline(BinningConfig(), registry)
        >>> result = pipeline.run(AlignmentTableSource(Path("alignments.tsv")))
        >>> result.accumulator.class_to_count("Taxonomy")
    """

    def __init__(
        self,
        config: BinningConfig,
        trees: ClassificationTreeService,
        contaminants: ContaminantOracle | None = None,
        reference_cover_filter: ReferenceCoverFilter | None = None,
        progress: ProgressListener | None = None,
    ) -> None:
        self.config = config
        self.trees = trees
        self.progress = progress
        self.classifications = list(config.classifications)
        self._cancel = threading.Event()

        if contaminants is not None and not config.use_contaminant_filter:
            logger.debug("Contaminant profile given but contaminant filter is off; ignoring it")
        self.contaminants = contaminants if config.use_contaminant_filter else None

        if reference_cover_filter is None and config.min_percent_reference_to_cover > 0:
            reference_cover_filter = ReferenceCoverFilter(config.min_percent_reference_to_cover)
        self.reference_cover_filter = reference_cover_filter

        self.taxonomic = [config.uses_lca(name) for name in self.classifications]
        self.algorithms: list[AssignmentAlgorithm] = [
            create_assignment_algorithm(
                name,
                config,
                trees.get_tree(name) if taxonomic else None,
                taxonomic,
            )
            for name, taxonomic in zip(self.classifications, self.taxonomic)
        ]
        self.known_ids = [trees.known_ids(name) for name in self.classifications]
        self.taxonomy_index = (
            self.classifications.index(TAXONOMY) if TAXONOMY in self.classifications else -1
        )

        self.calculator = ReadAssignmentCalculator(config.read_assignment_mode)
        self._intervals: IntervalTree | None = (
            IntervalTree()
            if (config.min_percent_read_to_cover > 0 and config.is_long_read_mode)
            or config.read_assignment_mode == ReadAssignmentMode.ALIGNED_BASES
            else None
        )

    # -------------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------------

    def cancel(self) -> None:
        """Request the running (or next) run to stop at the next read."""
        self._cancel.set()

    @property
    def is_cancelled(self) -> bool:
        if self._cancel.is_set():
            return True
        return self.progress is not None and self.progress.is_cancelled()

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    def run(self, source: ReadSource, sink: UpdateSink | None = None) -> BinningResult:
        """
        Bin all reads of the source.

        Args:
            source: Reads to bin
            sink: Receives the final assignments; not called if cancelled

        Returns:
            BinningResult with the accumulator, min-support changes and stats

        Raises:
            BinningCancelled: If cancel() was called or the listener cancelled
        """
        config = self.config
        stats = BinningStats()
        accumulator = UpdateAccumulator(self.classifications)

        logger.info("Binning reads: %s", config.parameter_string())
        if config.use_identity_filter:
            logger.info("Using rank-specific min percent-identity values for taxonomic assignment")
        if config.min_percent_read_to_cover > 0:
            logger.info(
                "Minimum percentage of read to be covered: %.1f%%", config.min_percent_read_to_cover
            )

        if self.reference_cover_filter is not None and not self.reference_cover_filter.is_computed:
            self.reference_cover_filter.compute(
                source,
                config.min_score,
                config.top_percent,
                config.max_expected,
                config.min_percent_identity,
            )

        mate_reader = self._open_mate_reader(source)
        try:
            with closing(source.iter_reads(SOURCE_MIN_SCORE, SOURCE_MAX_EXPECTED, False, True)) as reads:
                for read in reads:
                    if self.is_cancelled:
                        raise BinningCancelled(stats.total_reads + stats.failed_reads)
                    try:
                        outcome = self._classify(read, mate_reader)
                    except Exception as e:
                        stats.failed_reads += 1
                        logger.warning("Skipping read %s (uid %d): %s", read.name, read.uid, e)
                        logger.debug("Failure while binning read %d", read.uid, exc_info=True)
                    else:
                        self._commit(read, outcome, accumulator, stats)
                    if self.progress is not None:
                        self.progress.set_progress(stats.total_reads)
            if self.is_cancelled:
                raise BinningCancelled(stats.total_reads + stats.failed_reads)
        finally:
            if mate_reader is not None:
                mate_reader.close()

        changes = self._apply_min_support(accumulator, stats)
        self._log_summary(stats)

        if sink is not None:
            sink.update(self.classifications, accumulator, changes)
        return BinningResult(accumulator=accumulator, changes=changes, stats=stats)

    def _open_mate_reader(self, source: ReadSource) -> MateReader | None:
        if not self.config.paired_reads:
            return None
        open_mate_reader = getattr(source, "open_mate_reader", None)
        if open_mate_reader is None:
            logger.warning("Read source cannot look up mates, ignoring paired read information")
            return None
        logger.info("Using paired reads in taxonomic assignment")
        return open_mate_reader(self.config.min_score, self.config.max_expected)

    # -------------------------------------------------------------------------
    # Per-read processing
    # -------------------------------------------------------------------------

    def _active(self, read: Read, classification: str) -> ActiveMatchSet:
        active = compute_active_matches(
            read,
            classification,
            self.config.min_score,
            self.config.active_match_top_percent,
            self.config.max_expected,
            self.config.min_percent_identity,
        )
        if self.reference_cover_filter is not None:
            self.reference_cover_filter.apply(read, active)
        return active

    def _classify(self, read: Read, mate_reader: MateReader | None) -> _ReadOutcome:
        config = self.config
        n = len(self.classifications)

        hits_weight = read.weight if read.matches else 0.0
        read.weight = self.calculator.compute(read, self._intervals)

        outcome = _ReadOutcome(
            weight=read.weight,
            class_ids=[0] * n,
            additional=[],
            hits_weight=hits_weight,
            too_short=0 < read.length < config.min_read_length,
            low_complexity=(
                read.complexity > 0
                and read.complexity + COMPLEXITY_TOLERANCE < config.min_complexity
            ),
        )
        class_ids = outcome.class_ids
        tax_id = 0

        if not outcome.too_short and not outcome.low_complexity:
            for c, name in enumerate(self.classifications):
                if not self.taxonomic[c]:
                    continue
                active = self._active(read, name)
                if self._ensure_covered(read, active):
                    if mate_reader is not None and read.mate_uid > 0:
                        class_ids[c] = self._assign_with_mate(c, read, active, mate_reader, outcome)
                    else:
                        class_ids[c] = self.algorithms[c].compute_id(active, read)
                else:
                    outcome.low_covered = True

                if c == self.taxonomy_index:
                    if self._is_contaminant(read, active, class_ids[c]):
                        class_ids[c] = CONTAMINANTS_ID
                    tax_id = class_ids[c]

        for c, name in enumerate(self.classifications):
            more: list[tuple[list[int], float]] = []

            if tax_id == CONTAMINANTS_ID:
                class_id = CONTAMINANTS_ID
            elif outcome.low_complexity:
                class_id = LOW_COMPLEXITY_ID
            elif outcome.too_short:
                class_id = UNASSIGNED_ID
            else:
                if self.taxonomic[c]:
                    class_id = class_ids[c]
                else:
                    result = self.algorithms[c].assign(self._active(read, name), read)
                    class_id = result.class_id
                    for extra_id, share in result.additional:
                        row = [0] * n
                        row[c] = extra_id
                        more.append((row, share))

                if class_id <= 0 and not read.matches:
                    class_id = NOHITS_ID
                elif class_id not in self.known_ids[c] and not any(
                    row[c] in self.known_ids[c] for row, _ in more
                ):
                    class_id = UNASSIGNED_ID

            class_ids[c] = class_id
            outcome.additional.extend(more)

        return outcome

    def _assign_with_mate(
        self,
        c: int,
        read: Read,
        active: ActiveMatchSet,
        mate_reader: MateReader,
        outcome: _ReadOutcome,
    ) -> int:
        """
        Class id of a read reconciled with its mate.

        If only the mate can be placed, the read takes the mate's id. If both
        can, and one id lies above the other, the deeper one wins; otherwise
        the read moves to their LCA.
        """
        algorithm = self.algorithms[c]
        class_id = algorithm.compute_id(active, read)

        if read.mate_uid == read.uid:
            raise ReadDataError(read.uid, "read is listed as its own mate")
        mate_reader.seek(read.mate_uid)
        mate = mate_reader.read_one()
        if mate is None:
            logger.debug("Mate %d of read %d not found", read.mate_uid, read.uid)
            return class_id

        mate_id = algorithm.compute_id(self._active(mate, self.classifications[c]), mate)
        if mate_id <= 0:
            return class_id
        if class_id <= 0:
            if c == self.taxonomy_index:
                outcome.via_mate = True
            return mate_id

        both = algorithm.try_get_lca(class_id, mate_id)
        if isinstance(both, UnsupportedOperationError):
            logger.debug("Cannot reconcile read %d with its mate: %s", read.uid, both.message)
            return class_id
        if both == class_id:
            return mate_id
        if both != mate_id:
            return both
        # both == mate_id: the read's own id is the deeper one, keep it
        return class_id

    def _ensure_covered(self, read: Read, active: ActiveMatchSet) -> bool:
        """
        True if enough of the read is covered by active matches.

        Any single match spanning the required length suffices; with a
        scratch interval tree (long reads, aligned-bases mode) the union of
        the active matches counts too.
        """
        percent = self.config.min_percent_read_to_cover
        if percent == 0:
            return True
        length_to_cover = int(0.01 * percent * read.length)
        if length_to_cover == 0:
            return True

        intervals = self._intervals
        if intervals is not None:
            intervals.clear()
        covered = 0
        for index in active:
            match = read.matches[index]
            if abs(match.query_end - match.query_start) >= length_to_cover:
                return True
            if intervals is not None:
                covered += intervals.uncovered_length(match.query_start, match.query_end)
                intervals.add(match.query_start, match.query_end)
                if covered >= length_to_cover:
                    return True
        return False

    def _is_contaminant(self, read: Read, active: ActiveMatchSet, tax_id: int) -> bool:
        if self.contaminants is None:
            return False
        if self.config.is_long_read_mode:
            return self.contaminants.is_contaminant_long_read(tax_id)
        return self.contaminants.is_contaminant_short_read(read, active)

    def _commit(
        self,
        read: Read,
        outcome: _ReadOutcome,
        accumulator: UpdateAccumulator,
        stats: BinningStats,
    ) -> None:
        stats.total_reads += 1
        stats.total_weight += outcome.weight
        stats.total_matches += read.num_matches
        stats.reads_with_hits += outcome.hits_weight
        if outcome.too_short:
            stats.too_short += outcome.weight
        if outcome.low_complexity:
            stats.low_complexity += outcome.weight
        if outcome.low_covered:
            stats.low_covered += 1
        if outcome.via_mate:
            stats.assigned_via_mate += 1

        for name, class_id in zip(self.classifications, outcome.class_ids):
            if class_id == UNASSIGNED_ID:
                stats.unassigned[name] = stats.unassigned.get(name, 0) + 1
            elif class_id > 0:
                stats.assigned[name] = stats.assigned.get(name, 0) + 1

        accumulator.add_item(read.uid, outcome.weight, outcome.class_ids)
        for row, weight in outcome.additional:
            accumulator.add_item(read.uid, weight, row)

    # -------------------------------------------------------------------------
    # Post-processing
    # -------------------------------------------------------------------------

    def _apply_min_support(
        self,
        accumulator: UpdateAccumulator,
        stats: BinningStats,
    ) -> dict[str, dict[int, int]]:
        threshold = self.config.effective_min_support(stats.total_weight)
        stats.min_support = threshold
        if self.config.min_support_percent > 0:
            logger.info("MinSupport set to: %d", threshold)

        all_changes: dict[str, dict[int, int]] = {}
        for c, name in enumerate(self.classifications):
            if not self.taxonomic[c] or stats.assigned.get(name, 0) == 0:
                continue
            disabled = self.trees.disabled_ids(name)
            if threshold <= 0 and not disabled:
                continue

            changes = MinSupportFilter(
                name,
                accumulator.class_to_weight(c),
                threshold,
                self.trees.get_tree(name),
                disabled,
            ).apply()
            for src_id, tgt_id in changes.items():
                accumulator.append_class(c, src_id, tgt_id)
            all_changes[name] = changes
            stats.min_support_changes[name] = len(changes)
            logger.info("Min-supp. changes for %s: %d", name, len(changes))
        return all_changes

    def _log_summary(self, stats: BinningStats) -> None:
        logger.info("Total reads: %d", stats.total_reads)
        if stats.total_weight > stats.total_reads:
            logger.info("Total weight: %d", int(stats.total_weight))
        if stats.low_complexity > 0:
            logger.info("Low complexity: %d", int(stats.low_complexity))
        if stats.too_short > 0:
            logger.info("Reads too short: %d", int(stats.too_short))
        if stats.low_covered > 0:
            logger.info("Low covered: %d", stats.low_covered)
        logger.info("With hits: %d", int(stats.reads_with_hits))
        logger.info("Alignments: %d", stats.total_matches)
        for name in self.classifications:
            logger.info("Assig. %s: %d", name, stats.assigned.get(name, 0))
        if stats.assigned_via_mate > 0:
            logger.info("Tax. ass. by mate: %d", stats.assigned_via_mate)
        if stats.failed_reads > 0:
            logger.warning("Reads skipped because of errors: %d", stats.failed_reads)
