"""
Metabin: alignment-based binning of sequencing reads.

Assigns every read to one class per classification (NCBI taxonomy, GTDB,
functional hierarchies) from precomputed alignments, using best-hit and
lowest-common-ancestor algorithms for short reads and interval-based
multi-gene algorithms for long reads.
"""

__version__ = "0.1.0"
__author__ = "Metabin Team"

from metabin.core.pipeline import BinningResult, ClassificationPipeline
from metabin.models.alignments import Match, Read
from metabin.models.config import BinningConfig

__all__ = [
    "BinningConfig",
    "BinningResult",
    "ClassificationPipeline",
    "Match",
    "Read",
    "__version__",
]
