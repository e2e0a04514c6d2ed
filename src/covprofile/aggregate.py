"""Average coverage over locus bins in a single pass over a sorted stream

Loci are grouped by chromosome and sorted by first bin start. The coverage
stream must be sorted by chromosome block and then by start, with
non-overlapping intervals within each chromosome. Neither condition is
checked here: unsorted input gives wrong averages, not an error.

Only intervals that can still overlap the current or a later locus are kept
in memory, so memory depends on the coverage density around each locus rather
than on the size of the stream.
"""

from collections import deque
from enum import Enum, auto
from typing import Iterable, Iterator, List, Optional
from .records import CoverageInterval, LocusBinSet, ProfileRow

class State(Enum):
    READ_CHROM_HEADER = auto()
    EVICT = auto()
    FILL = auto()
    SWEEP = auto()
    EMIT_ROW = auto()
    ADVANCE_CHROMOSOME = auto()
    DRAIN = auto()
    DONE = auto()

def sweep_bins(starts: List[int], ends: List[int], intervals: List[CoverageInterval]) -> List[float]:
    """Length-weighted mean score of each bin

    Two-pointer join of bins and intervals, both in ascending order. An
    interval extending past the end of a bin is kept and tested against the
    next bin. Bins without any overlapping interval, including empty bins,
    score 0.

    Args:
        starts: Bin starts in ascending order
        ends: Bin ends, parallel to starts
        intervals: Coverage intervals sorted by start, non-overlapping

    Returns:
        List of one score per bin, in genomic order
    """
    n_bins = len(starts)
    acc = [0.0] * n_bins
    b, i = 0, 0
    while b < n_bins and i < len(intervals):
        iv = intervals[i]
        if iv.start >= ends[b]:
            b += 1
        elif iv.end <= starts[b]:
            i += 1
        else:
            acc[b] += (min(ends[b], iv.end) - max(starts[b], iv.start)) * iv.score
            if iv.end > ends[b]:
                b += 1
            else:
                i += 1
    return [a / (e - s) if e > s else 0.0 for a, s, e in zip(acc, starts, ends)]

class StreamAggregator:
    def __init__(self, locus_sets: dict, stream: Iterable[CoverageInterval], total_bins: int):
        """Merge-join locus bins against a coverage stream

        Args:
            locus_sets: Dictionary mapping chromosome to a list of LocusBinSet.
              Each list is sorted here by first bin start. The lists are
              consumed by run().
            stream: Coverage intervals, sorted as described in the module
              docstring.
            total_bins: Number of bins per locus
        """
        self.total_bins = total_bins
        self.pending = {}
        for chrom, sets in locus_sets.items():
            for locus in sets:
                if len(locus) != total_bins:
                    raise ValueError(f'Locus {locus.name} has {len(locus)} bins, expected {total_bins}')
            self.pending[chrom] = sorted(sets, key=lambda b: (b.first_start, b.last_end))
        self.buffer = deque()
        self._stream = iter(stream)
        self._next: Optional[CoverageInterval] = None
        self._exhausted = False
        self.state = State.READ_CHROM_HEADER
        self.visited = []
        self.max_buffer_size = 0
        self.intervals_read = 0
        self.chromosomes_skipped = 0
        self.rows_emitted = 0
        self.rows_unseen = 0

    def _peek(self) -> Optional[CoverageInterval]:
        if self._next is None and not self._exhausted:
            try:
                self._next = next(self._stream)
            except StopIteration:
                self._exhausted = True
        return self._next

    def _take(self) -> Optional[CoverageInterval]:
        iv = self._peek()
        self._next = None
        if iv is not None:
            self.intervals_read += 1
        return iv

    def _evict(self, locus: LocusBinSet):
        while self.buffer and self.buffer[0].end <= locus.first_start:
            self.buffer.popleft()

    def _fill(self, chrom: str, locus: LocusBinSet):
        """Read until the buffer holds the first interval starting at or after the locus end"""
        while not self.buffer or self.buffer[-1].start < locus.last_end:
            iv = self._peek()
            if iv is None or iv.chrom != chrom:
                break
            self._take()
            if iv.end <= locus.first_start:
                # Ends before this locus, so also before every later one
                continue
            self.buffer.append(iv)
        self.max_buffer_size = max(self.max_buffer_size, len(self.buffer))

    def _skip_chromosome(self, chrom: str):
        while True:
            iv = self._peek()
            if iv is None or iv.chrom != chrom:
                break
            self._take()

    def zero_row(self, locus: LocusBinSet) -> ProfileRow:
        return ProfileRow.from_locus(locus, [0.0] * self.total_bins)

    def run(self) -> Iterator[ProfileRow]:
        """Yield one ProfileRow per locus

        Rows for chromosomes present in the stream come first, in stream
        order and by locus start within each chromosome. Loci on chromosomes
        never seen in the stream follow as all-zero rows, sorted by chromosome
        and start.
        """
        chrom, loci, locus, scores = None, [], None, None
        locus_idx = 0
        while self.state is not State.DONE:
            if self.state is State.READ_CHROM_HEADER:
                iv = self._peek()
                if iv is None:
                    self.state = State.DRAIN
                    continue
                chrom = iv.chrom
                if chrom in self.pending:
                    loci = self.pending.pop(chrom)
                    self.visited.append(chrom)
                    self.buffer.clear()
                    locus_idx = 0
                    self.state = State.EVICT if loci else State.ADVANCE_CHROMOSOME
                else:
                    self.chromosomes_skipped += 1
                    self.state = State.ADVANCE_CHROMOSOME
            elif self.state is State.EVICT:
                locus = loci[locus_idx]
                self._evict(locus)
                self.state = State.FILL
            elif self.state is State.FILL:
                self._fill(chrom, locus)
                self.state = State.SWEEP
            elif self.state is State.SWEEP:
                scores = sweep_bins(locus.starts, locus.ends, list(self.buffer))
                self.state = State.EMIT_ROW
            elif self.state is State.EMIT_ROW:
                yield ProfileRow.from_locus(locus, scores)
                self.rows_emitted += 1
                locus_idx += 1
                self.state = State.EVICT if locus_idx < len(loci) else State.ADVANCE_CHROMOSOME
            elif self.state is State.ADVANCE_CHROMOSOME:
                self._skip_chromosome(chrom)
                self.buffer.clear()
                self.state = State.READ_CHROM_HEADER
            elif self.state is State.DRAIN:
                for unseen_chrom in sorted(self.pending):
                    for locus in self.pending[unseen_chrom]:
                        yield self.zero_row(locus)
                        self.rows_emitted += 1
                        self.rows_unseen += 1
                self.pending = {}
                self.state = State.DONE

def aggregate(locus_sets: dict, stream: Iterable[CoverageInterval], total_bins: int) -> List[ProfileRow]:
    """Run a StreamAggregator to completion and collect the rows"""
    return list(StreamAggregator(locus_sets, stream, total_bins).run())
