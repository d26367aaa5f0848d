"""
Custom exceptions with actionable guidance.

Provides specific error types for common failure scenarios,
each with helpful suggestions for resolution.
"""

from __future__ import annotations

from collections.abc import Iterable


class MetabinError(Exception):
    """Base exception for metabin errors."""

    def __init__(self, message: str, suggestion: str | None = None):
        self.message = message
        self.suggestion = suggestion
        super().__init__(self.full_message)

    @property
    def full_message(self) -> str:
        if self.suggestion:
            return f"{self.message}\n\nSuggestion: {self.suggestion}"
        return self.message


class ConfigurationError(MetabinError):
    """Raised when configuration is invalid."""



class InvalidThresholdError(ConfigurationError):
    """Raised when a threshold parameter is out of valid range."""

    def __init__(self, param_name: str, value: float, min_val: float, max_val: float):
        super().__init__(
            message=f"{param_name} = {value} is out of valid range [{min_val}, {max_val}]",
            suggestion=f"Set {param_name} to a value between {min_val} and {max_val}.",
        )
        self.param_name = param_name
        self.value = value


class UnsupportedOperationError(MetabinError):
    """Raised when an assignment algorithm is asked for an operation it lacks."""

    def __init__(self, algorithm: str, operation: str):
        super().__init__(
            message=f"{operation}() is not supported by {algorithm}",
            suggestion=(
                "Only LCA-style algorithms can reconcile two class ids. "
                "Mate-pair reconciliation must be restricted to taxonomic "
                "classifications binned with an LCA algorithm."
            ),
        )
        self.algorithm = algorithm
        self.operation = operation


class ReadDataError(MetabinError):
    """Raised when a read or one of its matches carries unusable data."""

    def __init__(self, read_uid: int, reason: str):
        super().__init__(
            message=f"Read {read_uid}: {reason}",
            suggestion=(
                "The read is skipped. Check the alignment file for truncated "
                "or malformed records around this read."
            ),
        )
        self.read_uid = read_uid


class AlignmentFileError(MetabinError):
    """Base class for alignment table errors."""



class EmptyAlignmentFileError(AlignmentFileError):
    """Raised when an alignment table has no data rows."""

    def __init__(self, path: str):
        super().__init__(
            message=f"Alignment file is empty or contains no reads: {path}",
            suggestion=(
                "Check that the alignment export completed successfully and "
                "that the file has a header line followed by one row per match."
            ),
        )


class MalformedAlignmentFileError(AlignmentFileError):
    """Raised when an alignment table lacks required columns."""

    def __init__(self, path: str, missing_columns: Iterable[str]):
        missing = sorted(missing_columns)
        super().__init__(
            message=(
                f"Malformed alignment file '{path}': "
                f"missing column(s) {', '.join(missing)}"
            ),
            suggestion=(
                "The alignment table must be tab-separated with a header and "
                "at least the columns: read_id, bitscore, evalue, pident, qstart, qend. "
                "Add one integer column per classification (e.g. Taxonomy, KEGG)."
            ),
        )
        self.missing_columns = missing


class ClassificationTreeError(MetabinError):
    """Base class for classification tree errors."""



class UnknownClassificationError(ClassificationTreeError):
    """Raised when no tree is registered for a classification name."""

    def __init__(self, name: str, available: Iterable[str] = ()):
        available_str = ", ".join(sorted(available)) or "none"
        super().__init__(
            message=f"No classification tree registered for '{name}'",
            suggestion=(
                f"Available classifications: {available_str}. "
                "Load a tree for this classification or remove it from the run."
            ),
        )
        self.name = name


class MalformedTreeError(ClassificationTreeError):
    """Raised when a tree table cannot be turned into a rooted tree."""

    def __init__(self, path: str, reason: str):
        super().__init__(
            message=f"Malformed classification tree '{path}': {reason}",
            suggestion=(
                "Tree tables need the columns id, parent, rank, name with exactly "
                "one root (a node that is its own parent or has parent 0)."
            ),
        )


class BinningCancelled(Exception):
    """Raised when a binning run was cancelled by the user.

    Not a MetabinError, so callers can tell it apart from failures.
    """

    def __init__(self, reads_processed: int = 0):
        super().__init__(f"Binning cancelled after {reads_processed:,} reads")
        self.reads_processed = reads_processed
