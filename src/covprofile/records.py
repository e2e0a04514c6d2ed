"""Records shared by the binning and aggregation steps

All coordinates are BED-style 0-based half-open, e.g. for the first base of a
chromosome, start=0, end=1.
"""

from dataclasses import dataclass, field
from typing import List, Optional

@dataclass(frozen=True)
class CoverageInterval:
    chrom: str
    start: int
    end: int
    score: float

@dataclass(frozen=True)
class Bin:
    start: int
    end: int

@dataclass
class LocusBinSet:
    """Bins of one locus, stored in ascending genomic order regardless of strand

    `starts` and `ends` are parallel lists with one entry per bin.
    """
    chrom: str
    strand: str
    name: str
    starts: List[int]
    ends: List[int]

    def __post_init__(self):
        assert len(self.starts) == len(self.ends)

    def __len__(self) -> int:
        return len(self.starts)

    @property
    def bins(self) -> List[Bin]:
        return [Bin(s, e) for s, e in zip(self.starts, self.ends)]

    @property
    def first_start(self) -> int:
        return self.starts[0]

    @property
    def last_end(self) -> int:
        return self.ends[-1]

    @property
    def span(self) -> tuple:
        return self.first_start, self.last_end

@dataclass
class ProfileRow:
    """One output row: a locus name and one score per bin

    Scores are already oriented so that position 0 is the upstream-most bin
    relative to the locus strand. Coordinates are only written when the
    position columns are requested.
    """
    name: str
    scores: List[float] = field(default_factory=list)
    chrom: Optional[str] = None
    start: Optional[int] = None
    end: Optional[int] = None

    @classmethod
    def from_locus(cls, locus: LocusBinSet, scores: List[float]) -> 'ProfileRow':
        if locus.strand == '-':
            scores = scores[::-1]
        return cls(
            name=locus.name,
            scores=list(scores),
            chrom=locus.chrom,
            start=locus.first_start,
            end=locus.last_end,
        )
