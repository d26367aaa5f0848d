"""
Pydantic models for reads and their alignments.

A Read is one sequenced fragment together with all of its alignments
(Matches) against the reference database. Each Match carries one class id
per classification the reference sequence is mapped to (Taxonomy, KEGG,
SEED, ...). These are the units streamed through the binning pipeline.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class Match(BaseModel):
    """
    Single alignment of a read against a reference sequence.

    Attributes:
        uid: Unique match id, used as the deterministic tie-break key
        bit_score: Alignment bit score
        expected: Expectation value (e-value)
        percent_identity: Percent identity (0-100, 0 means unknown)
        query_start: Aligned query start (start > end encodes reverse strand)
        query_end: Aligned query end
        ref_name: Reference sequence accession
        ref_start: Aligned reference start
        ref_end: Aligned reference end
        ref_length: Reference sequence length (0 if unknown)
        class_ids: Class id of the reference per classification name
    """

    uid: int = Field(description="Unique match id (tie-break key)")
    bit_score: float = Field(ge=0, description="Bit score")
    expected: float = Field(default=0.0, ge=0, description="Expectation value")
    percent_identity: float = Field(
        default=0.0,
        ge=0,
        description="Percent identity (0-100, clamped; 0 = unknown)",
    )
    query_start: int = Field(ge=0, description="Aligned query start")
    query_end: int = Field(ge=0, description="Aligned query end")
    ref_name: str = Field(default="", description="Reference sequence accession")
    ref_start: int = Field(default=0, ge=0, description="Aligned reference start")
    ref_end: int = Field(default=0, ge=0, description="Aligned reference end")
    ref_length: int = Field(default=0, ge=0, description="Reference sequence length")
    class_ids: dict[str, int] = Field(
        default_factory=dict,
        description="Class id per classification name",
    )

    model_config = {"frozen": True}

    @field_validator("percent_identity", mode="before")
    @classmethod
    def clamp_percent_identity(cls, v: float) -> float:
        """
        Clamp percent identity to valid range [0, 100].

        Aligners occasionally report identities marginally above 100 due to
        rounding in their scoring.
        """
        if isinstance(v, (int, float)):
            return max(0.0, min(100.0, float(v)))
        return v

    def class_id(self, classification: str) -> int:
        """Class id for the named classification, 0 if the match has none."""
        return self.class_ids.get(classification, 0)

    @property
    def is_reverse(self) -> bool:
        """True if the alignment lies on the reverse strand of the read."""
        return self.query_start > self.query_end

    @property
    def aligned_length(self) -> int:
        """Number of read bases covered by the alignment."""
        return abs(self.query_end - self.query_start) + 1


class Read(BaseModel):
    """
    One sequenced fragment and its alignments.

    Reads are materialized one at a time from a read source and discarded
    once their classification has been copied into the accumulator. The
    weight is the only attribute the pipeline changes, exactly once, when
    the read assignment mode is applied.

    Attributes:
        uid: Unique 64-bit read id
        name: Read name as found in the input
        mate_uid: Uid of the mate read (0 if unpaired)
        length: Read length in bases (0 if unknown)
        weight: Effective copy count used for all counting
        magnitude: Copy count reported by the input (e.g. dereplicated reads)
        complexity: Sequence complexity score (0 if not computed)
        matches: Alignments of this read
    """

    uid: int = Field(ge=0, description="Unique read id")
    name: str = Field(default="", description="Read name")
    mate_uid: int = Field(default=0, ge=0, description="Uid of the mate read (0 = none)")
    length: int = Field(default=0, ge=0, description="Read length")
    weight: float = Field(default=1.0, ge=0, description="Effective read weight")
    magnitude: float = Field(default=1.0, ge=0, description="Input copy count")
    complexity: float = Field(default=0.0, description="Sequence complexity score")
    matches: list[Match] = Field(default_factory=list, description="Alignments")

    @property
    def num_matches(self) -> int:
        """Number of alignments available for this read."""
        return len(self.matches)

    @property
    def best_match(self) -> Match | None:
        """Highest-scoring match, ties broken by the lowest match uid."""
        if not self.matches:
            return None
        return min(self.matches, key=lambda m: (-m.bit_score, m.uid))
