"""
Core algorithms for read binning.

This module contains the binning pipeline and its building blocks: active
match selection, the assignment algorithms, classification trees, the
min-support filter and the read sources.
"""

from metabin.core.accumulator import UpdateAccumulator
from metabin.core.parsers import AlignmentTableSource, InMemoryReadSource
from metabin.core.pipeline import BinningResult, ClassificationPipeline
from metabin.core.taxonomy import ClassificationRegistry, ClassificationTree

__all__ = [
    "AlignmentTableSource",
    "BinningResult",
    "ClassificationPipeline",
    "ClassificationRegistry",
    "ClassificationTree",
    "InMemoryReadSource",
    "UpdateAccumulator",
]
