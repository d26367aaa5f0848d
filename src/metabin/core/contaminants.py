"""
Contaminant taxa.

A contaminant profile is a list of taxa (e.g. host or reagent organisms).
Reads whose taxonomic assignment falls into one of these taxa, or any of
their descendants, are binned as contaminants in every classification.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

from metabin.core.active_matches import ActiveMatchSet
from metabin.core.constants import TAXONOMY
from metabin.core.exceptions import ConfigurationError
from metabin.core.taxonomy import ClassificationTree
from metabin.models.alignments import Read

logger = logging.getLogger(__name__)


class ContaminantOracle(Protocol):
    """Decides whether a read belongs to a contaminant taxon."""

    def is_contaminant_long_read(self, tax_id: int) -> bool: ...

    def is_contaminant_short_read(self, read: Read, active: ActiveMatchSet) -> bool: ...


class ContaminantManager:
    """
    Set of contaminant taxa, expanded to all of their descendants.

    Args:
        tree: Taxonomy used to expand taxa and resolve names
        classification: Name of the classification whose ids the matches carry
    """

    def __init__(self, tree: ClassificationTree, classification: str = TAXONOMY) -> None:
        self.tree = tree
        self.classification = classification
        self._input_ids: set[int] = set()
        self._all_ids: set[int] = set()

    def add(self, tax_ids: Iterable[int]) -> None:
        """Add taxa and all of their descendants to the profile."""
        for tax_id in tax_ids:
            if tax_id not in self.tree:
                logger.warning("Contaminant taxon %d is not in the taxonomy, ignored", tax_id)
                continue
            self._input_ids.add(tax_id)
            self._all_ids.update(self.tree.descendants(tax_id))

    def parse_taxa(self, text: str) -> None:
        """
        Add taxa given as whitespace- or comma-separated ids or names.

        Lines starting with '#' are comments. Names are looked up in the tree;
        a token that is neither a number nor a known name is an error.
        """
        ids: list[int] = []
        for line in text.splitlines():
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            tokens = [line] if not _is_id_list(line) else line.replace(",", " ").split()
            for token in tokens:
                token = token.strip()
                if token.isdigit():
                    ids.append(int(token))
                    continue
                tax_id = self.tree.id_of(token)
                if tax_id is None:
                    raise ConfigurationError(
                        f"Unknown contaminant taxon: {token}",
                        suggestion="Use NCBI taxon ids or scientific names present in the taxonomy",
                    )
                ids.append(tax_id)
        self.add(ids)

    def read(self, path: Path) -> None:
        """Add taxa listed in a file (one id or name per line)."""
        self.parse_taxa(path.read_text())
        logger.info(
            "Using contaminants profile: %d input, %d total", self.input_size, self.size
        )

    @property
    def input_size(self) -> int:
        return len(self._input_ids)

    @property
    def size(self) -> int:
        return len(self._all_ids)

    def __contains__(self, tax_id: int) -> bool:
        return tax_id in self._all_ids

    def is_contaminant_long_read(self, tax_id: int) -> bool:
        """True if the read-level taxon id lies within a contaminant taxon."""
        return tax_id > 0 and tax_id in self._all_ids

    def is_contaminant_short_read(self, read: Read, active: ActiveMatchSet) -> bool:
        """True if any active match of the read hits a contaminant taxon."""
        return any(
            read.matches[index].class_id(self.classification) in self._all_ids
            for index in active
        )


def _is_id_list(line: str) -> bool:
    """True if the line holds numeric ids only (a name may contain spaces)."""
    return all(token.isdigit() for token in line.replace(",", " ").split())
