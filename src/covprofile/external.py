"""External tools used to prepare inputs

The aggregation only depends on the interfaces defined here: a sorted file,
a sorted coverage stream, and a chromosome sizes mapping. The concrete classes
wrap command-line tools (coreutils sort, bedtools, UCSC fetchChromSizes).
"""

from abc import ABC, abstractmethod
import os
from pathlib import Path
import subprocess
import tempfile
from typing import Iterator
from .coverage import bigwig_chrom_sizes, parse_bedgraph_lines, read_chrom_sizes, validate_chromosomes
from .annotation import open_text
from .records import CoverageInterval

class Sorter(ABC):
    @abstractmethod
    def ensure_sorted(self, path: Path) -> Path:
        """Return a path to a copy of `path` sorted by chromosome then start"""

class CoverageConverter(ABC):
    @abstractmethod
    def bed_to_bedgraph(self, path: Path, chrom_sizes: dict) -> Iterator[CoverageInterval]:
        """Convert sorted reads in BED format to a sorted coverage stream"""

class ChromSizeProvider(ABC):
    @abstractmethod
    def lookup(self, genome: str) -> dict:
        """Get chromosome lengths for a genome"""

def run(cmd: list, out_path: Path = None, env: dict = None):
    """Run a command, raising CalledProcessError with its stderr on failure"""
    if out_path is not None:
        with open(out_path, 'w') as o:
            result = subprocess.run(cmd, check=False, text=True, stdout=o, stderr=subprocess.PIPE, env=env)
    else:
        result = subprocess.run(cmd, check=False, text=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, env=env)
    if result.returncode != 0:
        print(f"Command failed with exit code {result.returncode}: {' '.join(map(str, cmd))}\n{result.stderr}", flush=True)
        raise subprocess.CalledProcessError(result.returncode, cmd, stderr=result.stderr)
    return result

class UnixSorter(Sorter):
    def __init__(self, tmpdir: Path = None, buffer_size: str = '1G'):
        self.tmpdir = tmpdir
        self.buffer_size = buffer_size

    def ensure_sorted(self, path: Path) -> Path:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f'File to sort not found: {path}')
        fd, out = tempfile.mkstemp(suffix=path.suffix if path.suffix != '.gz' else '', dir=self.tmpdir)
        os.close(fd)
        env = dict(os.environ, LC_ALL='C')
        print(f'Sorting {path}', flush=True)
        if str(path).endswith('.gz'):
            # sort cannot read gzip, so decompress through a pipe
            with open(out, 'w') as o:
                with open_text(path) as f:
                    proc = subprocess.run(['sort', '-k1,1', '-k2,2n', '-S', self.buffer_size],
                                          stdin=f, stdout=o, stderr=subprocess.PIPE, text=True, env=env)
            if proc.returncode != 0:
                raise subprocess.CalledProcessError(proc.returncode, 'sort', stderr=proc.stderr)
        else:
            run(['sort', '-k1,1', '-k2,2n', '-S', self.buffer_size, str(path)], out_path=Path(out), env=env)
        return Path(out)

class BedtoolsGenomeCov(CoverageConverter):
    """Stream `bedtools genomecov -bg` output for a sorted BED file of reads"""

    def __init__(self, bedtools: str = 'bedtools', tmpdir: Path = None):
        self.bedtools = bedtools
        self.tmpdir = tmpdir

    def read_chroms(self, path: Path) -> set:
        with open_text(path) as f:
            return {l.split('\t', 1)[0] for l in f if l.strip() and not l.startswith(('#', 'track', 'browser'))}

    def bed_to_bedgraph(self, path: Path, chrom_sizes: dict) -> Iterator[CoverageInterval]:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f'Reads file not found: {path}')
        validate_chromosomes(chrom_sizes, self.read_chroms(path))
        with tempfile.TemporaryDirectory(dir=self.tmpdir) as tmp:
            genome_file = Path(tmp) / 'chrom.sizes'
            with open(genome_file, 'w') as f:
                for chrom, length in chrom_sizes.items():
                    f.write(f'{chrom}\t{length}\n')
            cmd = [self.bedtools, 'genomecov', '-bg', '-i', str(path), '-g', str(genome_file)]
            with open(Path(tmp) / 'stderr.txt', 'w+') as err:
                proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=err, text=True)
                try:
                    yield from parse_bedgraph_lines(proc.stdout, 'bedtools genomecov output')
                finally:
                    proc.stdout.close()
                    returncode = proc.wait()
                if returncode != 0:
                    err.seek(0)
                    raise subprocess.CalledProcessError(returncode, cmd, stderr=err.read())

class ChromSizesFile(ChromSizeProvider):
    """Chromosome sizes from a table, ignoring the genome name"""

    def __init__(self, path: Path):
        self.path = Path(path)

    def lookup(self, genome: str = None) -> dict:
        return read_chrom_sizes(self.path)

class BigWigChromSizes(ChromSizeProvider):
    """Chromosome sizes from a bigWig header, ignoring the genome name"""

    def __init__(self, bigwig_path: Path):
        self.bigwig_path = Path(bigwig_path)

    def lookup(self, genome: str = None) -> dict:
        return bigwig_chrom_sizes(self.bigwig_path)

class UcscChromSizes(ChromSizeProvider):
    """Chromosome sizes for a UCSC assembly name, e.g. 'hg38', via fetchChromSizes"""

    def __init__(self, executable: str = 'fetchChromSizes'):
        self.executable = executable

    def lookup(self, genome: str) -> dict:
        print(f'Fetching chromosome sizes for {genome}', flush=True)
        result = run([self.executable, genome])
        sizes = {}
        for line in result.stdout.splitlines():
            row = line.split('\t')
            if len(row) >= 2 and row[1].strip().isdigit():
                sizes[row[0]] = int(row[1])
        if not sizes:
            raise ValueError(f'No chromosome sizes returned for genome {genome}')
        return sizes
