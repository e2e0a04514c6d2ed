"""Run a complete profile: load loci, bin them, aggregate coverage, normalize"""

from pathlib import Path
from typing import Iterable, List, Optional, Tuple
from tqdm import tqdm
from .aggregate import StreamAggregator
from .annotation import AnnotationIndex, GeneLocus, read_bed_regions, read_gene_list, read_gtf_transcripts
from .binning import LocusBinner, save_bins_bed
from .config import Config
from .coverage import BigWigStream, check_sorted, read_bedgraph
from .external import BedtoolsGenomeCov, BigWigChromSizes, ChromSizesFile, UcscChromSizes, UnixSorter
from .normalize import normalize_file
from .records import CoverageInterval
from .table import write_profiles

def load_chrom_sizes(config: Config) -> Optional[dict]:
    """Get chromosome sizes if the run needs them

    Uses, in order of preference, the chrom_sizes table, the genome name, or
    the header of a bigWig coverage file.
    """
    if not (config.needs_chrom_sizes() or config.coverage_format() == 'bed'):
        return None
    if config.input.chrom_sizes is not None:
        return ChromSizesFile(config.input.chrom_sizes).lookup()
    if config.input.genome is not None:
        return UcscChromSizes().lookup(config.input.genome)
    if config.coverage_format() == 'bigwig':
        return BigWigChromSizes(config.input.coverage).lookup()
    raise ValueError('chrom_sizes or genome is required for this configuration')

def load_loci(config: Config) -> List[GeneLocus]:
    restrict_to = read_gene_list(config.input.gene_list) if config.input.gene_list is not None else None
    if config.input.region is not None:
        index = AnnotationIndex(read_bed_regions(config.input.region), restrict_to)
    else:
        index = AnnotationIndex(read_gtf_transcripts(config.input.gtf), restrict_to)
    print(f'Loaded {len(index)} records on {len(index.chromosomes())} chromosomes', flush=True)
    if config.input.region is not None:
        return index.transcript_loci()
    return index.loci(per_transcript=config.binning.transcript, tss=config.binning.tss)

def make_binner(config: Config, chrom_sizes: Optional[dict]) -> LocusBinner:
    b = config.binning
    return LocusBinner(
        mode=config.mode,
        chrom_sizes=chrom_sizes,
        region_bins=b.region_bins,
        tss_up=b.tss_up,
        tss_down=b.tss_down,
        tss_bins=b.tss_bins,
        upstream=b.upstream,
        up_bins=b.up_bins,
        downstream=b.downstream,
        down_bins=b.down_bins,
        gene_bins=b.gene_bins,
    )

def open_coverage(config: Config, chrom_sizes: Optional[dict]) -> Tuple[Iterable[CoverageInterval], Optional[Path]]:
    """Get the coverage stream for the configured input

    Returns:
        Tuple of the stream and the path of a temporary sorted copy of the
        input, if one was made, to be removed when the stream is finished.
    """
    fmt = config.coverage_format()
    path = config.input.coverage
    sorted_copy = None
    if fmt == 'bigwig':
        stream = BigWigStream(path)
    else:
        if config.input.sort_coverage:
            path = sorted_copy = UnixSorter().ensure_sorted(path)
        if fmt == 'bed':
            stream = BedtoolsGenomeCov().bed_to_bedgraph(path, chrom_sizes)
        else:
            stream = read_bedgraph(path)
    if config.input.check_sorted:
        stream = check_sorted(stream)
    return stream, sorted_copy

def prepare_bins(config: Config) -> Tuple[dict, LocusBinner, int]:
    """Load and bin all loci before any coverage is read

    Returns:
        Tuple of loci grouped by chromosome, the binner, and the number of loci
    """
    print('=== Loading annotations ===', flush=True)
    chrom_sizes = load_chrom_sizes(config)
    binner = make_binner(config, chrom_sizes)
    loci = load_loci(config)
    if len(loci) == 0:
        print('Warning: no loci to profile', flush=True)
    print(f'=== Binning {len(loci)} loci ({config.mode} mode, {binner.total_bins} bins per locus) ===', flush=True)
    locus_sets = binner.bin_loci(loci)
    return locus_sets, binner, len(loci)

def run_profiles(config: Config, outfile: Path) -> int:
    """Compute coverage profiles and write them to outfile

    Returns:
        Number of rows written
    """
    config.validate()
    locus_sets, binner, n_loci = prepare_bins(config)

    print('=== Aggregating coverage ===', flush=True)
    stream, sorted_copy = open_coverage(config, binner.chrom_sizes)
    aggregator = StreamAggregator(locus_sets, stream, binner.total_bins)
    try:
        rows = tqdm(aggregator.run(), total=n_loci, desc='Profiling loci')
        n_rows = write_profiles(rows, outfile, binner.total_bins, config.output.position)
    finally:
        if sorted_copy is not None:
            sorted_copy.unlink(missing_ok=True)
    assert n_rows == n_loci
    print(f'Read {aggregator.intervals_read} coverage intervals on {len(aggregator.visited)} chromosomes with loci, '
          f'skipped {aggregator.chromosomes_skipped} chromosomes without loci, '
          f'max {aggregator.max_buffer_size} intervals buffered', flush=True)
    if aggregator.rows_unseen > 0:
        print(f'Warning: {aggregator.rows_unseen} loci are on chromosomes absent from the coverage and were given zero scores', flush=True)
    print(f'Profiles saved to {outfile}', flush=True)

    if config.output.genome_norm is not None or config.output.gene_norm is not None:
        print('=== Normalizing profiles ===', flush=True)
        normalize_file(outfile, outfile, config.output.genome_norm, config.output.gene_norm)
    return n_rows

def save_bins(config: Config, outfile: Path):
    """Write the bins of every locus to a BED file without reading coverage"""
    config.validate(require_coverage=False)
    locus_sets, _, _ = prepare_bins(config)
    save_bins_bed(locus_sets, outfile)
    print(f'Bins saved to {outfile}', flush=True)
