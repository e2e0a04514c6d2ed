"""Split loci into a fixed number of bins

Three geometries are supported: a flat split of each region, a window around
each TSS, and a gene body with optional upstream and downstream flanks. Bins
are always stored in ascending genomic order; orientation by strand happens
only when profile rows are built.
"""

from collections import defaultdict
from pathlib import Path
from typing import Iterable, Optional
import numpy as np
import pandas as pd
from .annotation import GeneLocus
from .records import LocusBinSet

MODES = ('region', 'tss', 'genebody')

def split_region_n_bins(start: int, end: int, n_bins: int) -> tuple:
    """Split a region into a fixed number of equal-sized bins

    Boundary i is floor(start + i * (end - start) / n_bins), so bin widths can
    differ by one base. If the region is shorter than n_bins, some bins are
    empty.

    Args:
        start: Region start (0-based)
        end: Region end (exclusive)
        n_bins: Number of bins to split the region into

    Returns:
        Tuple of lists of bin starts and bin ends
    """
    if n_bins <= 0:
        raise ValueError(f'Number of bins must be positive, got {n_bins}')
    step = (end - start) / n_bins
    posns = np.floor(start + step * np.arange(n_bins + 1)).astype(int)
    return posns[:-1].tolist(), posns[1:].tolist()

class LocusBinner:
    def __init__(
        self,
        mode: str = 'genebody',
        chrom_sizes: Optional[dict] = None,
        region_bins: int = 100,
        tss_up: int = 1000,
        tss_down: int = 1000,
        tss_bins: int = 100,
        upstream: int = 0,
        up_bins: int = 10,
        downstream: int = 0,
        down_bins: int = 10,
        gene_bins: int = 100,
    ):
        """Compute bins for each locus using one of the supported geometries

        Args:
            mode: 'region', 'tss', or 'genebody'
            chrom_sizes: Chromosome lengths, required for 'tss' mode and for
              'genebody' mode with flanks, to clip windows at chromosome ends.
            region_bins: For 'region', number of bins per region.
            tss_up: For 'tss', window length upstream of the TSS.
            tss_down: For 'tss', window length downstream of the TSS.
            tss_bins: For 'tss', number of bins per window.
            upstream: For 'genebody', upstream flank length. 0 for no flank.
            up_bins: For 'genebody', number of bins in the upstream flank.
            downstream: For 'genebody', downstream flank length. 0 for no flank.
            down_bins: For 'genebody', number of bins in the downstream flank.
            gene_bins: For 'genebody', number of bins in the gene body.

        Raises:
            ValueError: If a bin count is not positive, a length is negative,
              or chromosome sizes are missing when clipping is needed.
        """
        if mode not in MODES:
            raise ValueError(f'Invalid binning mode: {mode}. Expected one of: {", ".join(MODES)}')
        self.mode = mode
        self.chrom_sizes = chrom_sizes
        self.region_bins = region_bins
        self.tss_up, self.tss_down, self.tss_bins = tss_up, tss_down, tss_bins
        self.upstream, self.up_bins = upstream, up_bins
        self.downstream, self.down_bins = downstream, down_bins
        self.gene_bins = gene_bins
        self._validate()

    def _validate(self):
        if self.mode == 'region':
            counts = {'region_bins': self.region_bins}
            lengths = {}
        elif self.mode == 'tss':
            counts = {'tss_bins': self.tss_bins}
            lengths = {'tss_up': self.tss_up, 'tss_down': self.tss_down}
        else:
            counts = {'gene_bins': self.gene_bins}
            if self.upstream != 0:
                counts['up_bins'] = self.up_bins
            if self.downstream != 0:
                counts['down_bins'] = self.down_bins
            lengths = {'upstream': self.upstream, 'downstream': self.downstream}
        for key, value in counts.items():
            if value is None or value <= 0:
                raise ValueError(f'{key} must be a positive number of bins, got {value}')
        for key, value in lengths.items():
            if value < 0:
                raise ValueError(f'{key} must not be negative, got {value}')
        if self.needs_chrom_sizes() and self.chrom_sizes is None:
            raise ValueError(f'Chromosome sizes are required to clip {"TSS windows" if self.mode == "tss" else "gene flanks"} at chromosome ends')

    def needs_chrom_sizes(self) -> bool:
        if self.mode == 'tss':
            return True
        return self.mode == 'genebody' and (self.upstream > 0 or self.downstream > 0)

    @property
    def total_bins(self) -> int:
        if self.mode == 'region':
            return self.region_bins
        if self.mode == 'tss':
            return self.tss_bins
        total = self.gene_bins
        if self.upstream > 0:
            total += self.up_bins
        if self.downstream > 0:
            total += self.down_bins
        return total

    def chrom_length(self, chrom: str) -> int:
        try:
            return self.chrom_sizes[chrom]
        except KeyError:
            raise KeyError(f"Chromosome '{chrom}' not found in chromosome sizes. Available chromosomes: {list(self.chrom_sizes)[:10]}") from None

    def blocks(self, locus: GeneLocus) -> list:
        """Get (start, end, n_bins) for each block of the locus in genomic order"""
        if self.mode == 'region':
            if locus.end <= locus.start:
                raise ValueError(f'Region {locus.name} at {locus.chrom}:{locus.start}-{locus.end} has zero length')
            return [(locus.start, locus.end, self.region_bins)]
        if self.mode == 'tss':
            if locus.strand == '+':
                start, end = locus.tss - self.tss_up, locus.tss + self.tss_down
            else:
                start, end = locus.tss - self.tss_down, locus.tss + self.tss_up
            chrom_len = self.chrom_length(locus.chrom)
            start, end = max(0, start), min(end, chrom_len)
            return [(start, max(start, end), self.tss_bins)]
        # Flanks swap sides on the minus strand
        if locus.strand == '+':
            left, left_bins = self.upstream, self.up_bins
            right, right_bins = self.downstream, self.down_bins
        else:
            left, left_bins = self.downstream, self.down_bins
            right, right_bins = self.upstream, self.up_bins
        blocks = []
        if left > 0:
            blocks.append((max(0, locus.start - left), locus.start, left_bins))
        blocks.append((locus.start, locus.end, self.gene_bins))
        if right > 0:
            chrom_len = self.chrom_length(locus.chrom)
            blocks.append((locus.end, max(locus.end, min(locus.end + right, chrom_len)), right_bins))
        return blocks

    def bin_locus(self, locus: GeneLocus) -> LocusBinSet:
        starts, ends = [], []
        for block_start, block_end, n_bins in self.blocks(locus):
            s, e = split_region_n_bins(block_start, block_end, n_bins)
            starts.extend(s)
            ends.extend(e)
        assert len(starts) == self.total_bins
        return LocusBinSet(locus.chrom, locus.strand, locus.name, starts, ends)

    def bin_loci(self, loci: Iterable[GeneLocus]) -> dict:
        """Bin all loci and group them by chromosome

        Returns:
            Dictionary mapping chromosome to a list of LocusBinSet sorted by
            first bin start
        """
        by_chrom = defaultdict(list)
        for locus in loci:
            by_chrom[locus.chrom].append(self.bin_locus(locus))
        for chrom in by_chrom:
            by_chrom[chrom].sort(key=lambda b: (b.first_start, b.last_end))
        return dict(by_chrom)

def save_bins_bed(locus_sets: dict, outfile: Path):
    """Save all bins in BED format

    Bins are named by locus name and bin number, numbered from the upstream
    end of the locus so they match the profile table columns.

    Args:
        locus_sets: Dictionary mapping chromosome to list of LocusBinSet
        outfile: Path to save the BED file
    """
    rows = []
    for chrom in sorted(locus_sets):
        for locus in locus_sets[chrom]:
            n = len(locus)
            for i, b in enumerate(locus.bins):
                number = i + 1 if locus.strand == '+' else n - i
                rows.append((chrom, b.start, b.end, f'{locus.name}_{number}', 0, locus.strand))
    bins = pd.DataFrame(rows, columns=['seqname', 'start', 'end', 'name', 'score', 'strand'])
    bins = bins.sort_values(by=['seqname', 'start'], kind='stable')
    bins.to_csv(outfile, sep='\t', index=False, header=False)
