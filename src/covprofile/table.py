"""Profile table format

Tab-delimited, one row per locus, with a header of bin numbers. With
positions enabled, chromosome, start, and end columns precede the name.
"""

from pathlib import Path
from typing import Iterable, TextIO
from .records import ProfileRow

POSITION_COLUMNS = ['chr', 'start', 'end']
NAME_COLUMN = 'gene_name'

def header(total_bins: int, position: bool = False) -> list:
    columns = POSITION_COLUMNS + [NAME_COLUMN] if position else [NAME_COLUMN]
    return columns + [str(i + 1) for i in range(total_bins)]

def format_row(row: ProfileRow, position: bool = False) -> str:
    fields = [row.name] + [f'{score:.2f}' for score in row.scores]
    if position:
        fields = [str(row.chrom), str(row.start), str(row.end)] + fields
    return '\t'.join(fields)

class ProfileWriter:
    """Write profile rows one at a time as they are produced"""

    def __init__(self, f: TextIO, total_bins: int, position: bool = False):
        self.f = f
        self.total_bins = total_bins
        self.position = position
        self.n_rows = 0
        f.write('\t'.join(header(total_bins, position)) + '\n')

    def write(self, row: ProfileRow):
        assert len(row.scores) == self.total_bins
        self.f.write(format_row(row, self.position) + '\n')
        self.n_rows += 1

def write_profiles(rows: Iterable[ProfileRow], outfile: Path, total_bins: int, position: bool = False) -> int:
    """Write all rows to a file and return the number written"""
    with open(outfile, 'w') as f:
        writer = ProfileWriter(f, total_bins, position)
        for row in rows:
            writer.write(row)
    return writer.n_rows
