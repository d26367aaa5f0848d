"""
Constants used throughout the metabin package.

Centralizes sentinel class ids, classification names, and default
parameter values so the pipeline, algorithms and CLI agree on them.
"""

from __future__ import annotations

# =============================================================================
# Sentinel Class Ids
#
# Reserved ids that never occur in a real classification tree. The numbering
# matches the one used by existing binned files so that results stay
# comparable.
# =============================================================================

# Read has no alignments at all
NOHITS_ID = -1

# Read has alignments but none could be used (or it was too short)
UNASSIGNED_ID = -2

# Read sequence is of low complexity
LOW_COMPLEXITY_ID = -3

# Read was flagged by the contaminant filter
CONTAMINANTS_ID = -6

SENTINEL_IDS: frozenset[int] = frozenset(
    {NOHITS_ID, UNASSIGNED_ID, LOW_COMPLEXITY_ID, CONTAMINANTS_ID}
)

SENTINEL_NAMES: dict[int, str] = {
    NOHITS_ID: "No hits",
    UNASSIGNED_ID: "Not assigned",
    LOW_COMPLEXITY_ID: "Low complexity",
    CONTAMINANTS_ID: "Contaminants",
}

# =============================================================================
# Classification Names
# =============================================================================

TAXONOMY = "Taxonomy"
GTDB = "GTDB"

# Classifications that are binned with an LCA-style algorithm by default
DEFAULT_TAXONOMIC_CLASSIFICATIONS: tuple[str, ...] = (TAXONOMY, GTDB)

# =============================================================================
# Default Parameters
# =============================================================================

DEFAULT_MIN_SCORE = 50.0
DEFAULT_MAX_EXPECTED = 0.01
DEFAULT_MIN_PERCENT_IDENTITY = 0.0
DEFAULT_TOP_PERCENT = 10.0
DEFAULT_MIN_SUPPORT_PERCENT = 0.05
DEFAULT_MIN_SUPPORT = 0
DEFAULT_LCA_COVERAGE_PERCENT = 100.0
DEFAULT_MIN_COMPLEXITY = 0.0
DEFAULT_MIN_OVERLAP = 18

# Score and expectation bounds used when streaming reads from a source,
# before any per-classification filtering happens
SOURCE_MIN_SCORE = 0.0
SOURCE_MAX_EXPECTED = 10.0

# Fraction of an interval that another interval must cover to dominate it
DOMINANCE_OVERLAP_FRACTION = 0.5

# Slack used when comparing read complexity against the configured minimum
COMPLEXITY_TOLERANCE = 0.01

# =============================================================================
# Rank-specific Identity Thresholds
#
# Minimum percent identity a match must have for its hit to be used at the
# given rank. Used for 16S-style taxonomic binning when the identity filter
# is switched on.
# =============================================================================

RANK_IDENTITY_THRESHOLDS: dict[str, float] = {
    "species": 99.0,
    "genus": 97.0,
    "family": 95.0,
    "order": 90.0,
    "class": 85.0,
    "phylum": 80.0,
}
