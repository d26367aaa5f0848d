"""
Pydantic data models for metabin.

Provides type-safe models for reads and alignments, assignment results
and run statistics, and the binning configuration.
"""

from metabin.models.alignments import Match, Read
from metabin.models.assignment import AssignmentResult, BinningStats
from metabin.models.config import BinningConfig, LCAAlgorithm, ReadAssignmentMode

__all__ = [
    "AssignmentResult",
    "BinningConfig",
    "BinningStats",
    "LCAAlgorithm",
    "Match",
    "Read",
    "ReadAssignmentMode",
]
