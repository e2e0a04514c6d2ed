"""Read sorted coverage streams and chromosome sizes

Coverage is consumed as an iterator of CoverageInterval, sorted by
chromosome block and then by start, with non-overlapping intervals within a
chromosome (bedGraph convention).
"""

from pathlib import Path
from typing import Iterable, Iterator, Optional
import pandas as pd
import pyBigWig
from .annotation import open_text
from .records import CoverageInterval

def read_chrom_sizes(path: Path) -> dict:
    """Load a chromosome sizes table

    Args:
        path: Tab-delimited file with chromosome name and length columns. Any
          additional columns (e.g. from a FASTA index) are ignored.

    Returns:
        Dictionary mapping chromosome name to length
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f'Chromosome sizes file not found: {path}')
    sizes = pd.read_csv(path, sep='\t', header=None, usecols=[0, 1], names=['chrom', 'length'],
                        dtype={'chrom': str}, comment='#')
    sizes['length'] = sizes['length'].astype(int)
    return dict(zip(sizes['chrom'], sizes['length']))

def bigwig_chrom_sizes(bigwig_path: Path) -> dict:
    with pyBigWig.open(str(bigwig_path)) as bw:
        return dict(bw.chroms())

def validate_chromosomes(chrom_sizes: dict, required_chroms: set, source: str = 'chromosome sizes') -> None:
    """Validate that all required chromosomes have a known length

    One issue this checks for is mismatched chromosome formats between the
    annotations and the genome reference, e.g. 'chr1' versus '1'.

    Args:
        chrom_sizes: Dictionary of chromosome lengths
        required_chroms: Set of chromosome names that must be present
        source: Description of where the sizes came from, for the message

    Raises:
        KeyError: If any required chromosome is missing
    """
    missing_chroms = sorted(chr for chr in required_chroms if str(chr) not in chrom_sizes)
    if missing_chroms:
        available_chroms = list(chrom_sizes.keys())[:10]
        raise KeyError(
            f"Chromosomes {missing_chroms} not found in {source}.\n"
            f"Available chromosomes: {available_chroms}"
        )

def read_bedgraph(path: Path) -> Iterator[CoverageInterval]:
    """Lazily read intervals from a bedGraph file, optionally gzipped

    Header lines ('track', 'browser', '#') and blank lines are skipped.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f'Coverage file not found: {path}')
    with open_text(path) as f:
        yield from parse_bedgraph_lines(f, str(path))

def parse_bedgraph_lines(lines: Iterable[str], source: str = 'bedGraph') -> Iterator[CoverageInterval]:
    for i, line in enumerate(lines):
        if line.startswith(('#', 'track', 'browser')) or not line.strip():
            continue
        row = line.rstrip('\n').split('\t')
        try:
            yield CoverageInterval(row[0], int(row[1]), int(row[2]), float(row[3]))
        except (IndexError, ValueError):
            raise ValueError(f'Malformed coverage line {i + 1} in {source}: {line.rstrip()}') from None

class BigWigStream:
    """Iterate over the intervals of a bigWig file one chromosome at a time

    Intervals are fetched in windows of `chunk_size` bases so memory does not
    grow with chromosome length. Intervals spanning a window boundary are
    returned by both queries and only emitted once.
    """

    def __init__(self, bigwig_path: Path, chroms: Optional[list] = None, chunk_size: int = 1_000_000):
        self.bigwig_path = Path(bigwig_path)
        if not self.bigwig_path.exists():
            raise FileNotFoundError(f'bigWig file not found: {self.bigwig_path}')
        self.chroms = chroms
        self.chunk_size = chunk_size

    def __iter__(self) -> Iterator[CoverageInterval]:
        with pyBigWig.open(str(self.bigwig_path)) as bw:
            chrom_lengths = bw.chroms()
            chroms = self.chroms if self.chroms is not None else list(chrom_lengths)
            for chrom in chroms:
                if chrom not in chrom_lengths:
                    continue
                yield from self._chrom_intervals(bw, chrom, chrom_lengths[chrom])

    def _chrom_intervals(self, bw, chrom: str, length: int) -> Iterator[CoverageInterval]:
        last_end = 0
        for win_start in range(0, length, self.chunk_size):
            win_end = min(win_start + self.chunk_size, length)
            intervals = bw.intervals(chrom, win_start, win_end)
            if intervals is None:
                continue
            for start, end, value in intervals:
                if start < last_end:
                    continue
                last_end = end
                yield CoverageInterval(chrom, start, end, value)

def check_sorted(stream: Iterable[CoverageInterval]) -> Iterator[CoverageInterval]:
    """Pass intervals through, raising if the stream is not sorted

    Raises:
        ValueError: If a start decreases or intervals overlap within a
          chromosome, or if a chromosome block appears more than once.
    """
    seen = set()
    chrom, prev_end = None, None
    for n, iv in enumerate(stream):
        if iv.chrom != chrom:
            if iv.chrom in seen:
                raise ValueError(f"Coverage is not sorted: chromosome '{iv.chrom}' appears in more than one block (interval {n + 1})")
            seen.add(iv.chrom)
            chrom, prev_end = iv.chrom, None
        elif iv.start < prev_end:
            raise ValueError(f'Coverage is not sorted or has overlapping intervals at {iv.chrom}:{iv.start}-{iv.end} (interval {n + 1})')
        if iv.end < iv.start:
            raise ValueError(f'Coverage interval has end before start at {iv.chrom}:{iv.start}-{iv.end}')
        prev_end = iv.end
        yield iv

def detect_format(path: Path) -> str:
    """Guess the coverage format from the file extension"""
    name = str(path).lower()
    if name.endswith('.gz'):
        name = name[:-3]
    if name.endswith(('.bw', '.bigwig')):
        return 'bigwig'
    if name.endswith(('.bedgraph', '.bg')):
        return 'bedgraph'
    if name.endswith('.bed'):
        return 'bed'
    raise ValueError(f'Cannot determine coverage format of {path}. Set coverage_format to bedgraph, bigwig, or bed')
