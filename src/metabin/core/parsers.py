"""
Read sources: streaming access to reads and their alignments.

The pipeline consumes reads through the ReadSource protocol: a single-pass,
closeable iterator of Read objects plus, for paired reads, a mate reader
that can seek to a read by uid.

AlignmentTableSource streams a tab-separated alignment table with Polars
in bounded batches; InMemoryReadSource serves a list of reads (tests,
programmatic use).

Alignment table format (tab-separated, with header):

    read_id  bitscore  evalue  pident  qstart  qend  [Taxonomy]  [KEGG] ...

Optional columns: read_length, mate_id (name of the mate read), complexity,
magnitude, sseqid, sstart, send, slen. Every other integer column is taken
as a classification of the same name. All rows of a read must be adjacent;
a row with an empty bitscore stands for a read without alignments.
"""

from __future__ import annotations

import logging
from collections.abc import Generator, Iterable
from pathlib import Path
from typing import Any, ClassVar, Protocol

import polars as pl
from pydantic import ValidationError

from metabin.core.constants import SOURCE_MAX_EXPECTED, SOURCE_MIN_SCORE
from metabin.core.exceptions import EmptyAlignmentFileError, MalformedAlignmentFileError
from metabin.models.alignments import Match, Read

logger = logging.getLogger(__name__)

ReadIterator = Generator[Read, None, None]


class MateReader(Protocol):
    """Random access to single reads, used to look up mates."""

    def seek(self, uid: int) -> None: ...

    def read_one(self) -> Read | None: ...

    def close(self) -> None: ...


class ReadSource(Protocol):
    """Single-pass source of reads with their alignments."""

    def iter_reads(
        self,
        min_score: float,
        max_expected: float,
        want_sequence: bool,
        want_matches: bool,
    ) -> ReadIterator: ...


def _filter_matches(matches: Iterable[Match], min_score: float, max_expected: float) -> list[Match]:
    return [m for m in matches if m.bit_score >= min_score and m.expected <= max_expected]


class DictMateReader:
    """MateReader over reads held in a dict keyed by uid."""

    def __init__(self, reads: dict[int, Read]) -> None:
        self._reads = reads
        self._current: int | None = None
        self.closed = False

    def seek(self, uid: int) -> None:
        self._current = uid

    def read_one(self) -> Read | None:
        """The read at the current position, None if there is none."""
        if self._current is None:
            return None
        return self._reads.get(self._current)

    def close(self) -> None:
        self._reads = {}
        self.closed = True


class InMemoryReadSource:
    """
    ReadSource over reads held in memory.

    Reads are copied on iteration, so weights set by a run do not leak into
    the next one.

    Attributes:
        iterators_closed: Number of iterators that have been closed or exhausted
    """

    def __init__(self, reads: Iterable[Read]) -> None:
        self.reads = list(reads)
        self.iterators_closed = 0

    def iter_reads(
        self,
        min_score: float = SOURCE_MIN_SCORE,
        max_expected: float = SOURCE_MAX_EXPECTED,
        want_sequence: bool = False,
        want_matches: bool = True,
    ) -> ReadIterator:
        try:
            for read in self.reads:
                matches = _filter_matches(read.matches, min_score, max_expected) if want_matches else []
                yield read.model_copy(update={"matches": matches})
        finally:
            self.iterators_closed += 1

    def open_mate_reader(
        self,
        min_score: float = SOURCE_MIN_SCORE,
        max_expected: float = SOURCE_MAX_EXPECTED,
    ) -> DictMateReader:
        return DictMateReader(
            {
                read.uid: read.model_copy(
                    update={"matches": _filter_matches(read.matches, min_score, max_expected)}
                )
                for read in self.reads
            }
        )

    def __len__(self) -> int:
        return len(self.reads)


class AlignmentTableSource:
    """
    Memory-efficient streaming ReadSource over a tab-separated alignment table.

    Uses Polars with chunked batch reading; only the rows of the read
    currently being assembled are kept across batch boundaries.

    Read uids are assigned in order of first appearance starting at 1,
    match uids in row order starting at 1.

    Args:
        path: Path to the alignment table
        classifications: Classification columns to read; defaults to all
            integer columns that are not one of the known alignment columns
        chunk_size: Number of rows to read per batch
    """

    REQUIRED_COLUMNS: ClassVar[tuple[str, ...]] = (
        "read_id",
        "bitscore",
        "evalue",
        "pident",
        "qstart",
        "qend",
    )

    SCHEMA: ClassVar[dict[str, pl.DataType]] = {
        "read_id": pl.Utf8,
        "bitscore": pl.Float64,
        "evalue": pl.Float64,
        "pident": pl.Float64,
        "qstart": pl.Int64,
        "qend": pl.Int64,
        "read_length": pl.Int64,
        "mate_id": pl.Utf8,
        "complexity": pl.Float64,
        "magnitude": pl.Float64,
        "sseqid": pl.Utf8,
        "sstart": pl.Int64,
        "send": pl.Int64,
        "slen": pl.Int64,
    }

    MIN_CHUNK_SIZE = 1
    MAX_CHUNK_SIZE = 100_000_000

    def __init__(
        self,
        path: Path,
        classifications: list[str] | None = None,
        chunk_size: int = 500_000,
    ) -> None:
        if not self.MIN_CHUNK_SIZE <= chunk_size <= self.MAX_CHUNK_SIZE:
            msg = (
                f"chunk_size must be between {self.MIN_CHUNK_SIZE:,} and "
                f"{self.MAX_CHUNK_SIZE:,}, got {chunk_size:,}"
            )
            raise ValueError(msg)
        if not path.exists():
            msg = f"Alignment file not found: {path}"
            raise FileNotFoundError(msg)

        if path.stat().st_size == 0:
            raise EmptyAlignmentFileError(str(path))

        self.path = path
        self.chunk_size = chunk_size
        inferred = pl.scan_csv(path, separator="\t", comment_prefix="#").collect_schema()
        self.columns = inferred.names()

        missing = set(self.REQUIRED_COLUMNS) - set(self.columns)
        if missing:
            raise MalformedAlignmentFileError(str(path), missing)

        if classifications is None:
            classifications = [
                name
                for name, dtype in inferred.items()
                if name not in self.SCHEMA and dtype.is_integer()
            ]
        else:
            absent = [c for c in classifications if c not in self.columns]
            if absent:
                logger.warning(
                    "Classification column(s) %s not in %s; no matches will carry ids for them",
                    ", ".join(absent),
                    path,
                )
        self.classifications = classifications
        self._uids: dict[str, int] | None = None
        self.skipped_reads = 0

    def _scan(self) -> pl.LazyFrame:
        overrides = {name: dtype for name, dtype in self.SCHEMA.items() if name in self.columns}
        overrides.update({name: pl.Int64 for name in self.classifications if name in self.columns})
        return pl.scan_csv(
            self.path,
            separator="\t",
            comment_prefix="#",
            schema_overrides=overrides,
        )

    @property
    def has_mates(self) -> bool:
        return "mate_id" in self.columns

    def read_uids(self) -> dict[str, int]:
        """Mapping of read name to uid (computed once, in order of appearance)."""
        if self._uids is None:
            names = (
                self._scan()
                .select("read_id")
                .unique(maintain_order=True)
                .collect()["read_id"]
                .to_list()
            )
            self._uids = {name: uid for uid, name in enumerate(names, start=1)}
        return self._uids

    def iter_reads(
        self,
        min_score: float = SOURCE_MIN_SCORE,
        max_expected: float = SOURCE_MAX_EXPECTED,
        want_sequence: bool = False,
        want_matches: bool = True,
    ) -> ReadIterator:
        """
        Iterate over the reads of the table in file order.

        Matches below min_score or above max_expected are dropped; the read
        itself is always reported. Sequences are not stored in alignment
        tables, so want_sequence has no effect.

        Raises:
            EmptyAlignmentFileError: If the table has no data rows
        """
        mate_uids = self.read_uids() if self.has_mates else {}

        current_name: str | None = None
        current_rows: list[dict[str, Any]] = []
        read_uid = 0
        match_uid = 0

        batches = self._scan().collect_batches(chunk_size=self.chunk_size)
        for chunk_df in batches:
            if chunk_df.is_empty():
                continue
            for row in chunk_df.iter_rows(named=True):
                if row["bitscore"] is not None:
                    match_uid += 1
                    row["_uid"] = match_uid
                if row["read_id"] != current_name:
                    if current_name is not None:
                        read = self._build_read(
                            read_uid, current_rows, mate_uids, min_score, max_expected, want_matches
                        )
                        if read is not None:
                            yield read
                    read_uid += 1
                    current_name = row["read_id"]
                    current_rows = []
                current_rows.append(row)

        if current_name is None:
            raise EmptyAlignmentFileError(str(self.path))
        read = self._build_read(read_uid, current_rows, mate_uids, min_score, max_expected, want_matches)
        if read is not None:
            yield read

    def _build_read(
        self,
        uid: int,
        rows: list[dict[str, Any]],
        mate_uids: dict[str, int],
        min_score: float,
        max_expected: float,
        want_matches: bool,
    ) -> Read | None:
        """Assemble a Read from its rows; malformed reads are logged and skipped."""
        first = rows[0]
        try:
            matches = (
                [self._build_match(row) for row in rows if row["bitscore"] is not None]
                if want_matches
                else []
            )
            return Read(
                uid=uid,
                name=first["read_id"],
                mate_uid=mate_uids.get(first.get("mate_id") or "", 0),
                length=first.get("read_length") or 0,
                magnitude=first.get("magnitude") or 1.0,
                complexity=first.get("complexity") or 0.0,
                matches=_filter_matches(matches, min_score, max_expected),
            )
        except ValidationError as e:
            self.skipped_reads += 1
            logger.warning(
                "Skipping read %s (%d rows): %d invalid field(s)",
                first["read_id"],
                len(rows),
                e.error_count(),
            )
            logger.debug("Validation errors for read %s: %s", first["read_id"], e)
            return None

    def _build_match(self, row: dict[str, Any]) -> Match:
        return Match(
            uid=row["_uid"],
            bit_score=row["bitscore"],
            expected=row["evalue"] if row["evalue"] is not None else 0.0,
            percent_identity=row["pident"] if row["pident"] is not None else 0.0,
            query_start=row["qstart"],
            query_end=row["qend"],
            ref_name=row.get("sseqid") or "",
            ref_start=row.get("sstart") or 0,
            ref_end=row.get("send") or 0,
            ref_length=row.get("slen") or 0,
            class_ids={
                name: row[name]
                for name in self.classifications
                if row.get(name) is not None and row[name] != 0
            },
        )

    def open_mate_reader(
        self,
        min_score: float = SOURCE_MIN_SCORE,
        max_expected: float = SOURCE_MAX_EXPECTED,
    ) -> DictMateReader:
        """
        Open a mate reader over this table.

        The table is read once more and all reads are held in memory, keyed
        by uid.
        """
        return DictMateReader(
            {read.uid: read for read in self.iter_reads(min_score, max_expected, False, True)}
        )

    def distinct_class_ids(self, classification: str) -> set[int]:
        """All positive ids of a classification column (for trees without a file)."""
        values = (
            self._scan()
            .select(pl.col(classification).drop_nulls().unique())
            .collect()[classification]
            .to_list()
        )
        return {v for v in values if v > 0}
