"""
Read assignment algorithms.

This package provides the algorithms that turn the active matches of a
read into a class id: best hit and multi-gene best hit for functional
classifications, and naive, weighted and interval-union LCA for
taxonomic ones.
"""

from metabin.core.assignment.base import AssignmentAlgorithm
from metabin.core.assignment.best_hit import BestHitAssignment
from metabin.core.assignment.factory import create_assignment_algorithm
from metabin.core.assignment.interval_union_lca import IntervalUnionLCAAssignment
from metabin.core.assignment.lca import LCAAssignment, lift_to_supported_rank
from metabin.core.assignment.multi_gene_best_hit import MultiGeneBestHitAssignment
from metabin.core.assignment.weighted_lca import WeightedLCAAssignment

__all__ = [
    "AssignmentAlgorithm",
    "BestHitAssignment",
    "IntervalUnionLCAAssignment",
    "LCAAssignment",
    "MultiGeneBestHitAssignment",
    "WeightedLCAAssignment",
    "create_assignment_algorithm",
    "lift_to_supported_rank",
]
