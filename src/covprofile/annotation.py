"""Load annotations and merge transcripts into loci"""

import gzip
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

@dataclass
class TranscriptAnnotation:
    """One transcript as produced by an annotation reader

    Chromosome, strand and coordinates may be None if the source row was
    incomplete. Such records are dropped by AnnotationIndex.
    """
    id: str
    chrom: Optional[str]
    start: Optional[int]
    end: Optional[int]
    strand: Optional[str]
    gene_name: str
    tss_position: Optional[int] = None

    @property
    def tss(self) -> int:
        if self.tss_position is not None:
            return self.tss_position
        return self.start if self.strand == '+' else self.end

    def is_complete(self) -> bool:
        return (
            self.chrom is not None
            and self.strand in {'+', '-'}
            and self.start is not None
            and self.end is not None
            and self.start <= self.end
        )

@dataclass(frozen=True)
class GeneLocus:
    """A region to be binned. For TSS points, start == end == tss."""
    chrom: str
    strand: str
    name: str
    start: int
    end: int
    tss: int

def interval_union(intervals: list[list[int]]) -> list[list[int]]:
    """Get the union of a list of intervals

    Intervals that touch (start equal to the previous end) are merged.

    Args:
        intervals: List of 2-element lists

    Returns:
        List of 2-element lists
    """
    intervals = sorted(intervals)
    union = []
    for start, end in intervals:
        if not union or union[-1][1] < start:
            union.append([start, end])
        else:
            union[-1][1] = max(union[-1][1], end)
    return union

class AnnotationIndex:
    """Transcript records for one run, with optional merging into gene loci"""

    def __init__(self, transcripts: Iterable[TranscriptAnnotation], restrict_to: Optional[set] = None):
        """
        Args:
            transcripts: Parsed transcript records.
            restrict_to: If non-empty, only keep transcripts whose ID or gene
              name is in this set.
        """
        self.transcripts = []
        n_dropped = 0
        for tx in transcripts:
            if restrict_to and tx.id not in restrict_to and tx.gene_name not in restrict_to:
                continue
            if not tx.is_complete():
                print(f'Warning: dropping {tx.id} ({tx.gene_name}) with missing or invalid chromosome, strand, or coordinates', flush=True)
                n_dropped += 1
                continue
            self.transcripts.append(tx)
        if n_dropped > 0:
            print(f'Dropped {n_dropped} incomplete annotation record{"" if n_dropped == 1 else "s"}', flush=True)
        self.transcripts.sort(key=lambda tx: (tx.chrom, tx.start, tx.end, tx.id))

    def __len__(self) -> int:
        return len(self.transcripts)

    def chromosomes(self) -> list:
        return sorted({tx.chrom for tx in self.transcripts})

    def transcript_loci(self, tss: bool = False) -> List[GeneLocus]:
        """One locus per transcript, named by transcript ID"""
        loci = []
        for tx in self.transcripts:
            if tss:
                loci.append(GeneLocus(tx.chrom, tx.strand, tx.id, tx.tss, tx.tss, tx.tss))
            else:
                loci.append(GeneLocus(tx.chrom, tx.strand, tx.id, tx.start, tx.end, tx.tss))
        return _sort_loci(loci)

    def gene_loci(self, tss: bool = False) -> List[GeneLocus]:
        """Merge transcripts of the same gene, chromosome, and strand

        For gene bodies, the union of transcript spans is taken, so a gene can
        yield more than one locus if its transcripts do not overlap. For TSSs,
        each distinct TSS position becomes one locus.
        """
        groups = defaultdict(list)
        for tx in self.transcripts:
            groups[(tx.gene_name, tx.chrom, tx.strand)].append(tx)
        loci = []
        for (gene_name, chrom, strand), txs in groups.items():
            if tss:
                for pos in sorted({tx.tss for tx in txs}):
                    loci.append(GeneLocus(chrom, strand, gene_name, pos, pos, pos))
            else:
                for start, end in interval_union([[tx.start, tx.end] for tx in txs]):
                    tss_pos = start if strand == '+' else end
                    loci.append(GeneLocus(chrom, strand, gene_name, start, end, tss_pos))
        return _sort_loci(loci)

    def loci(self, per_transcript: bool = False, tss: bool = False) -> List[GeneLocus]:
        if per_transcript:
            return self.transcript_loci(tss)
        return self.gene_loci(tss)

def _sort_loci(loci: List[GeneLocus]) -> List[GeneLocus]:
    return sorted(loci, key=lambda l: (l.chrom, l.start, l.end, l.name))

def open_text(path: Path):
    """Open a plain or gzipped text file for reading"""
    if str(path).endswith('.gz'):
        return gzip.open(path, 'rt')
    return open(path, 'r')

def _gtf_attribute(attributes: str, key: str) -> Optional[str]:
    token = f'{key} "'
    if token not in attributes:
        return None
    return attributes.split(token)[1].split('"')[0]

def read_gtf_transcripts(gtf: Path) -> List[TranscriptAnnotation]:
    """Get transcript spans from a GTF file

    Uses 'transcript' rows where present. Transcripts that are only described
    by 'exon' rows, or whose 'transcript' row is incomplete, get the span from
    their first exon start to their last exon end. The gene name is taken from the 'gene_name' attribute, falling back to
    'gene_id'.

    Args:
        gtf: Path to GTF file, optionally gzipped

    Returns:
        List of transcript records, with 0-based half-open coordinates
    """
    transcripts = {}
    exon_spans = {}
    n_malformed = 0
    with open_text(gtf) as f:
        for row in f:
            if row.startswith('#') or not row.strip():
                continue
            row = row.rstrip('\n').split('\t')
            if len(row) < 9:
                n_malformed += 1
                continue
            feature, attributes = row[2], row[8]
            if feature not in {'transcript', 'exon'}:
                continue
            tx_id = _gtf_attribute(attributes, 'transcript_id')
            if tx_id is None:
                n_malformed += 1
                continue
            gene_name = _gtf_attribute(attributes, 'gene_name') or _gtf_attribute(attributes, 'gene_id') or tx_id
            try:
                # Convert to 0-based
                start, end = int(row[3]) - 1, int(row[4])
            except ValueError:
                start, end = None, None
            chrom = row[0] or None
            strand = row[6] if row[6] in {'+', '-'} else None
            if feature == 'transcript':
                transcripts[tx_id] = TranscriptAnnotation(tx_id, chrom, start, end, strand, gene_name)
            elif start is not None:
                if tx_id in exon_spans:
                    prev = exon_spans[tx_id]
                    start, end = min(prev.start, start), max(prev.end, end)
                exon_spans[tx_id] = TranscriptAnnotation(tx_id, chrom, start, end, strand, gene_name)
    # Exon spans stand in for missing or unusable transcript rows
    for tx_id, tx in exon_spans.items():
        if tx_id not in transcripts or not transcripts[tx_id].is_complete():
            transcripts[tx_id] = tx
    if n_malformed > 0:
        print(f'Warning: skipped {n_malformed} malformed GTF row{"" if n_malformed == 1 else "s"} in {gtf}', flush=True)
    return list(transcripts.values())

def read_bed_regions(bed: Path) -> List[TranscriptAnnotation]:
    """Get regions from a BED file

    Name and strand are taken from columns 4 and 6 if present. Otherwise the
    name is 'chrom:start-end' and the strand is '+'.

    Args:
        bed: Path to BED file, optionally gzipped

    Returns:
        List of region records
    """
    regions = []
    n_malformed = 0
    with open_text(bed) as f:
        for row in f:
            if row.startswith(('#', 'track', 'browser')) or not row.strip():
                continue
            row = row.rstrip('\n').split('\t')
            try:
                chrom, start, end = row[0], int(row[1]), int(row[2])
            except (IndexError, ValueError):
                n_malformed += 1
                continue
            name = row[3] if len(row) > 3 and row[3] else f'{chrom}:{start}-{end}'
            strand = row[5] if len(row) > 5 and row[5] in {'+', '-'} else '+'
            regions.append(TranscriptAnnotation(name, chrom, start, end, strand, name))
    if n_malformed > 0:
        print(f'Warning: skipped {n_malformed} malformed BED row{"" if n_malformed == 1 else "s"} in {bed}', flush=True)
    return regions

def read_gene_list(path: Path) -> set:
    """Read gene or transcript names, one per line"""
    with open(path) as f:
        return {l.strip() for l in f if l.strip()}
