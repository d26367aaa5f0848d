"""Selection of the assignment algorithm for a classification."""

from __future__ import annotations

from metabin.core.assignment.base import AssignmentAlgorithm
from metabin.core.assignment.best_hit import BestHitAssignment
from metabin.core.assignment.interval_union_lca import IntervalUnionLCAAssignment
from metabin.core.assignment.lca import LCAAssignment
from metabin.core.assignment.multi_gene_best_hit import MultiGeneBestHitAssignment
from metabin.core.assignment.weighted_lca import WeightedLCAAssignment
from metabin.core.exceptions import ConfigurationError
from metabin.core.taxonomy import ClassificationTree
from metabin.models.config import BinningConfig, LCAAlgorithm


def create_assignment_algorithm(
    classification: str,
    config: BinningConfig,
    tree: ClassificationTree | None,
    taxonomic: bool,
) -> AssignmentAlgorithm:
    """
    Create the assignment algorithm for one classification.

    Taxonomic classifications use the configured LCA algorithm; all others
    use best hit, or multi-gene best hit with the long-read algorithm.

    Args:
        classification: Classification name
        config: Run configuration
        tree: Tree of the classification (required if taxonomic)
        taxonomic: True if the classification is binned with an LCA algorithm

    Raises:
        ConfigurationError: If an LCA algorithm is requested without a tree
    """
    if not taxonomic:
        if config.uses_long_read_algorithm:
            return MultiGeneBestHitAssignment(classification, min_overlap=config.min_overlap)
        return BestHitAssignment(classification)

    if tree is None:
        raise ConfigurationError(
            f"Classification '{classification}' is binned with an LCA algorithm but has no tree",
            suggestion="Load a classification tree for it, or bin it with best hit.",
        )

    if config.lca_algorithm == LCAAlgorithm.WEIGHTED:
        return WeightedLCAAssignment(
            classification,
            tree,
            use_identity_filter=config.use_identity_filter,
            coverage_percent=config.lca_coverage_percent,
        )
    if config.lca_algorithm == LCAAlgorithm.LONG_READS:
        return IntervalUnionLCAAssignment(
            classification,
            tree,
            top_percent=config.top_percent,
            coverage_percent=config.lca_coverage_percent,
        )
    return LCAAssignment(
        classification,
        tree,
        use_identity_filter=config.use_identity_filter,
        coverage_percent=config.lca_coverage_percent,
    )
