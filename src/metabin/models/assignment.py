"""
Models for per-read assignment results and run summaries.

AssignmentResult is produced in the hot path for every read and
classification, so it is a lightweight NamedTuple. BinningStats is the
pydantic summary of a whole run, written next to the binned tables.
"""

from __future__ import annotations

from pathlib import Path
from typing import NamedTuple

from pydantic import BaseModel, Field, computed_field

from metabin.core.constants import SENTINEL_IDS


class AssignmentResult(NamedTuple):
    """
    Outcome of assigning one read in one classification.

    Attributes:
        class_id: Primary class id (0 = unassigned, negative = sentinel)
        additional: Extra (class_id, weight) tuples for reads spanning
            several genes; never replaces the primary assignment
    """

    class_id: int
    additional: tuple[tuple[int, float], ...] = ()

    @property
    def is_sentinel(self) -> bool:
        """True if the primary id is one of the reserved sentinel ids."""
        return self.class_id in SENTINEL_IDS


class BinningStats(BaseModel):
    """
    Summary statistics of a binning run.

    Counts of reads are raw read numbers; counts flagged as weighted are
    sums of read weights.
    """

    total_reads: int = Field(default=0, description="Reads streamed from the source")
    total_weight: float = Field(default=0.0, description="Sum of read weights")
    total_matches: int = Field(default=0, description="Alignments seen")
    reads_with_hits: float = Field(default=0.0, description="Weighted reads with alignments")
    low_complexity: float = Field(default=0.0, description="Weighted low-complexity reads")
    too_short: float = Field(default=0.0, description="Weighted reads below min length")
    low_covered: int = Field(default=0, description="Reads failing the read-cover gate")
    assigned_via_mate: int = Field(default=0, description="Taxonomy ids taken from the mate")
    failed_reads: int = Field(default=0, description="Reads skipped because of data errors")
    assigned: dict[str, int] = Field(
        default_factory=dict,
        description="Reads with a real class id, per classification",
    )
    unassigned: dict[str, int] = Field(
        default_factory=dict,
        description="Reads binned as not assigned, per classification",
    )
    min_support: int = Field(default=0, description="Min support applied after the run")
    min_support_changes: dict[str, int] = Field(
        default_factory=dict,
        description="Classes folded into ancestors, per classification",
    )

    @computed_field
    @property
    def percent_with_hits(self) -> float:
        """Percentage of read weight that had at least one alignment."""
        if self.total_weight == 0:
            return 0.0
        return 100.0 * self.reads_with_hits / self.total_weight

    def to_json(self, path: Path) -> None:
        """Write summary to JSON file."""
        path.write_text(self.model_dump_json(indent=2))

    @classmethod
    def from_json(cls, path: Path) -> BinningStats:
        """Load summary from JSON file."""
        return cls.model_validate_json(path.read_text())
