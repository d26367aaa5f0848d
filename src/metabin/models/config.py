"""
Pydantic configuration models for metabin.

BinningConfig holds every parameter of a binning run: match filters,
the LCA algorithm and its coverage settings, read gates, mate-pair and
contaminant handling, and the set of active classifications.
Configuration can be loaded from YAML files or assembled from CLI arguments.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Self

from pydantic import BaseModel, Field, field_validator, model_validator

from metabin.core.constants import (
    DEFAULT_LCA_COVERAGE_PERCENT,
    DEFAULT_MAX_EXPECTED,
    DEFAULT_MIN_COMPLEXITY,
    DEFAULT_MIN_OVERLAP,
    DEFAULT_MIN_PERCENT_IDENTITY,
    DEFAULT_MIN_SCORE,
    DEFAULT_MIN_SUPPORT,
    DEFAULT_MIN_SUPPORT_PERCENT,
    DEFAULT_TAXONOMIC_CLASSIFICATIONS,
    DEFAULT_TOP_PERCENT,
    TAXONOMY,
)

logger = logging.getLogger(__name__)


class LCAAlgorithm(str, Enum):
    """
    Assignment algorithm used for taxonomic classifications.

    Categories:
        NAIVE: Classic LCA over all active matches
        WEIGHTED: Score-weighted LCA, robust to a minority of aberrant hits
        LONG_READS: Interval-union LCA for taxonomy plus multi-gene best hit
            for functional classifications
    """

    NAIVE = "naive"
    WEIGHTED = "weighted"
    LONG_READS = "longReads"

    @classmethod
    def from_string(cls, value: str) -> LCAAlgorithm:
        """Case-insensitive lookup by value or member name."""
        for member in cls:
            if value.lower() in (member.value.lower(), member.name.lower()):
                return member
        msg = f"Unknown LCA algorithm: {value}"
        raise ValueError(msg)


class ReadAssignmentMode(str, Enum):
    """
    How much a single read counts towards the class it is assigned to.

    Categories:
        READ_COUNT: Every read counts once
        READ_LENGTH: A read counts with its length in bases
        ALIGNED_BASES: A read counts with the number of its bases covered by alignments
        READ_MAGNITUDE: A read counts with the copy number given in the input
    """

    READ_COUNT = "readCount"
    READ_LENGTH = "readLength"
    ALIGNED_BASES = "alignedBases"
    READ_MAGNITUDE = "readMagnitude"

    @classmethod
    def from_string(cls, value: str) -> ReadAssignmentMode:
        """Case-insensitive lookup by value or member name."""
        for member in cls:
            if value.lower() in (member.value.lower(), member.name.lower()):
                return member
        msg = f"Unknown read assignment mode: {value}"
        raise ValueError(msg)


class BinningConfig(BaseModel):
    """
    Configuration for a binning run.

    Match filters decide which alignments of a read are "active" for a
    classification; read gates skip reads that are too short or of low
    complexity; the LCA settings choose and parametrize the assignment
    algorithm for taxonomic classifications; min-support settings control
    the post-pass that folds weakly supported classes into their ancestors.
    """

    # Match filters
    min_score: float = Field(
        default=DEFAULT_MIN_SCORE,
        ge=0,
        description="Minimum bit score of a match to be considered",
    )
    max_expected: float = Field(
        default=DEFAULT_MAX_EXPECTED,
        ge=0,
        description="Maximum e-value of a match to be considered",
    )
    min_percent_identity: float = Field(
        default=DEFAULT_MIN_PERCENT_IDENTITY,
        ge=0,
        le=100,
        description="Minimum percent identity of a match to be considered",
    )
    top_percent: float = Field(
        default=DEFAULT_TOP_PERCENT,
        ge=0,
        le=100,
        description=(
            "Only matches within this percentage of the best score are used. "
            "0 disables the filter; long-read mode always disables it."
        ),
    )

    # Min-support
    min_support_percent: float = Field(
        default=DEFAULT_MIN_SUPPORT_PERCENT,
        ge=0,
        le=100,
        description=(
            "Minimum support as percentage of total read weight. "
            "Takes precedence over min_support when > 0."
        ),
    )
    min_support: int = Field(
        default=DEFAULT_MIN_SUPPORT,
        ge=0,
        description="Minimum weighted number of reads a class needs to keep them",
    )

    # LCA
    lca_algorithm: LCAAlgorithm = Field(
        default=LCAAlgorithm.NAIVE,
        description="Assignment algorithm for taxonomic classifications",
    )
    lca_coverage_percent: float = Field(
        default=DEFAULT_LCA_COVERAGE_PERCENT,
        ge=1,
        le=100,
        description=(
            "Percentage of (weighted) matches the LCA node must cover. "
            "100 gives the classic LCA."
        ),
    )
    use_identity_filter: bool = Field(
        default=False,
        description="Apply rank-specific minimum percent identities (16S binning)",
    )

    # Coverage gates
    min_percent_read_to_cover: float = Field(
        default=0.0,
        ge=0,
        le=100,
        description="Minimum percentage of the read that must be covered by alignments",
    )
    min_percent_reference_to_cover: float = Field(
        default=0.0,
        ge=0,
        le=100,
        description=(
            "Minimum percentage of a reference that must be covered by the "
            "dataset's alignments for its matches to be used"
        ),
    )

    # Read gates
    min_complexity: float = Field(
        default=DEFAULT_MIN_COMPLEXITY,
        ge=-1.0,
        le=1.0,
        description="Reads with lower sequence complexity are binned as low complexity",
    )
    min_read_length: int = Field(
        default=0,
        ge=0,
        description="Reads shorter than this are not assigned",
    )

    # Read handling
    long_reads: bool = Field(default=False, description="Reads are long (multi-gene) reads")
    paired_reads: bool = Field(default=False, description="Use mate pairs for taxonomy")
    use_contaminant_filter: bool = Field(
        default=False,
        description="Bin reads assigned to contaminant taxa as contaminants",
    )
    read_assignment_mode: ReadAssignmentMode = Field(
        default=ReadAssignmentMode.READ_COUNT,
        description="How much each read counts",
    )

    # Classifications
    classifications: list[str] = Field(
        default_factory=lambda: [TAXONOMY],
        min_length=1,
        description="Classifications to bin reads into",
    )
    taxonomic_classifications: list[str] = Field(
        default_factory=lambda: list(DEFAULT_TAXONOMIC_CLASSIFICATIONS),
        description="Classifications that are binned with an LCA-style algorithm",
    )
    use_best_hit_for_taxonomy: bool = Field(
        default=False,
        description="Bin taxonomic classifications with best hit instead of LCA",
    )
    min_overlap: int = Field(
        default=DEFAULT_MIN_OVERLAP,
        ge=0,
        description="Minimum overlap carried by the multi-gene best-hit algorithm",
    )

    model_config = {"frozen": True}

    @field_validator("classifications")
    @classmethod
    def validate_unique_classifications(cls, v: list[str]) -> list[str]:
        """Classification names must be unique and non-empty."""
        if any(not name.strip() for name in v):
            msg = "Classification names must not be empty"
            raise ValueError(msg)
        if len(set(v)) != len(v):
            msg = f"Classification names must be unique, got {v}"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def warn_on_ignored_settings(self) -> Self:
        """Log settings that have no effect in the chosen mode."""
        if self.uses_long_read_algorithm and self.top_percent > 0:
            logger.debug(
                "top_percent=%s is ignored for active-match filtering in long-read mode",
                self.top_percent,
            )
        return self

    @property
    def uses_long_read_algorithm(self) -> bool:
        """True if the interval-based long-read algorithms are selected."""
        return self.lca_algorithm == LCAAlgorithm.LONG_READS

    @property
    def is_long_read_mode(self) -> bool:
        """True if reads are treated as long reads (flag or algorithm)."""
        return self.long_reads or self.uses_long_read_algorithm

    @property
    def active_match_top_percent(self) -> float:
        """Top-percent used for active-match filtering (0 in long-read mode)."""
        return 0.0 if self.uses_long_read_algorithm else self.top_percent

    def uses_lca(self, classification: str) -> bool:
        """True if the classification is binned with an LCA-style algorithm."""
        return (
            not self.use_best_hit_for_taxonomy
            and classification in self.taxonomic_classifications
        )

    def effective_min_support(self, total_weight: float) -> int:
        """
        Minimum support to apply after a run with the given total read weight.

        The percentage setting wins when it is positive; the result is then
        at least 1.
        """
        if self.min_support_percent > 0:
            return int(max(1.0, (self.min_support_percent / 100.0) * total_weight))
        return self.min_support

    def parameter_string(self) -> str:
        """Render the run parameters as a single key=value line."""
        parts = [
            f"minScore={self.min_score:g}",
            f"maxExpected={self.max_expected:g}",
            f"minPercentIdentity={self.min_percent_identity:g}",
            f"topPercent={self.top_percent:g}",
            f"minSupportPercent={self.min_support_percent:g}",
            f"minSupport={self.min_support}",
            f"lcaAlgorithm={self.lca_algorithm.value}",
            f"lcaCoveragePercent={self.lca_coverage_percent:g}",
            f"minPercentReadToCover={self.min_percent_read_to_cover:g}",
            f"minPercentReferenceToCover={self.min_percent_reference_to_cover:g}",
            f"minComplexity={self.min_complexity:g}",
            f"minReadLength={self.min_read_length}",
            f"longReads={str(self.long_reads).lower()}",
            f"pairedReads={str(self.paired_reads).lower()}",
            f"useIdentityFilter={str(self.use_identity_filter).lower()}",
            f"useContaminantFilter={str(self.use_contaminant_filter).lower()}",
            f"readAssignmentMode={self.read_assignment_mode.value}",
        ]
        return " ".join(parts)

    @classmethod
    def from_yaml(cls, path: Path) -> BinningConfig:
        """
        Load configuration from a YAML file.

        The file uses a nested layout (filters, min_support, lca, coverage,
        reads, classifications); missing keys keep their defaults.

        Args:
            path: Path to YAML configuration file

        Returns:
            BinningConfig instance
        """
        import yaml

        raw = yaml.safe_load(path.read_text()) or {}
        if not isinstance(raw, dict):
            msg = f"Configuration file must contain a mapping: {path}"
            raise ValueError(msg)
        return cls(**_flatten_yaml_config(raw))

    def to_yaml(self, path: Path) -> None:
        """Write configuration to a YAML file."""
        path.write_text(self.to_yaml_str())

    def to_yaml_str(self) -> str:
        """Render configuration as a nested YAML document."""
        import yaml

        return yaml.dump(_build_yaml_structure(self), default_flow_style=False, sort_keys=False)


def _flatten_yaml_config(raw: dict[str, Any]) -> dict[str, Any]:
    """
    Flatten nested YAML config structure into BinningConfig keyword arguments.

    Maps the documented nested YAML structure:
        filters.min_score -> min_score
        lca.algorithm -> lca_algorithm
        reads.min_length -> min_read_length
    """
    flat: dict[str, Any] = {}

    filters = raw.get("filters", {})
    _map_if_present(filters, "min_score", flat, "min_score")
    _map_if_present(filters, "max_expected", flat, "max_expected")
    _map_if_present(filters, "min_percent_identity", flat, "min_percent_identity")
    _map_if_present(filters, "top_percent", flat, "top_percent")

    support = raw.get("min_support", {})
    _map_if_present(support, "percent", flat, "min_support_percent")
    _map_if_present(support, "count", flat, "min_support")

    lca = raw.get("lca", {})
    if lca.get("algorithm") is not None:
        flat["lca_algorithm"] = LCAAlgorithm.from_string(str(lca["algorithm"]))
    _map_if_present(lca, "coverage_percent", flat, "lca_coverage_percent")
    _map_if_present(lca, "use_identity_filter", flat, "use_identity_filter")
    _map_if_present(lca, "min_overlap", flat, "min_overlap")

    coverage = raw.get("coverage", {})
    _map_if_present(coverage, "min_percent_read", flat, "min_percent_read_to_cover")
    _map_if_present(coverage, "min_percent_reference", flat, "min_percent_reference_to_cover")

    reads = raw.get("reads", {})
    _map_if_present(reads, "min_complexity", flat, "min_complexity")
    _map_if_present(reads, "min_length", flat, "min_read_length")
    _map_if_present(reads, "long_reads", flat, "long_reads")
    _map_if_present(reads, "paired_reads", flat, "paired_reads")
    _map_if_present(reads, "use_contaminant_filter", flat, "use_contaminant_filter")
    if reads.get("assignment_mode") is not None:
        flat["read_assignment_mode"] = ReadAssignmentMode.from_string(
            str(reads["assignment_mode"])
        )

    classifications = raw.get("classifications", {})
    _map_if_present(classifications, "active", flat, "classifications")
    _map_if_present(classifications, "taxonomic", flat, "taxonomic_classifications")
    _map_if_present(classifications, "best_hit_for_taxonomy", flat, "use_best_hit_for_taxonomy")

    return flat


def _map_if_present(
    source: dict[str, Any],
    source_key: str,
    target: dict[str, Any],
    target_key: str,
) -> None:
    """Copy value from source dict to target dict if key exists."""
    if source_key in source and source[source_key] is not None:
        target[target_key] = source[source_key]


def _build_yaml_structure(config: BinningConfig) -> dict[str, Any]:
    """Build nested YAML dict from a BinningConfig instance."""
    return {
        "filters": {
            "min_score": config.min_score,
            "max_expected": config.max_expected,
            "min_percent_identity": config.min_percent_identity,
            "top_percent": config.top_percent,
        },
        "min_support": {
            "percent": config.min_support_percent,
            "count": config.min_support,
        },
        "lca": {
            "algorithm": config.lca_algorithm.value,
            "coverage_percent": config.lca_coverage_percent,
            "use_identity_filter": config.use_identity_filter,
            "min_overlap": config.min_overlap,
        },
        "coverage": {
            "min_percent_read": config.min_percent_read_to_cover,
            "min_percent_reference": config.min_percent_reference_to_cover,
        },
        "reads": {
            "min_complexity": config.min_complexity,
            "min_length": config.min_read_length,
            "long_reads": config.long_reads,
            "paired_reads": config.paired_reads,
            "use_contaminant_filter": config.use_contaminant_filter,
            "assignment_mode": config.read_assignment_mode.value,
        },
        "classifications": {
            "active": list(config.classifications),
            "taxonomic": list(config.taxonomic_classifications),
            "best_hit_for_taxonomy": config.use_best_hit_for_taxonomy,
        },
    }
