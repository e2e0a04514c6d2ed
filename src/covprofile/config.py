"""Run configuration, loaded from YAML and overridden by CLI options"""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional
import yaml
from .coverage import detect_format

COVERAGE_FORMATS = ('auto', 'bedgraph', 'bigwig', 'bed')

@dataclass
class InputConfig:
    gtf: Optional[Path] = None
    region: Optional[Path] = None
    gene_list: Optional[Path] = None
    coverage: Optional[Path] = None
    coverage_format: str = 'auto'
    sort_coverage: bool = False
    check_sorted: bool = False
    chrom_sizes: Optional[Path] = None
    genome: Optional[str] = None

@dataclass
class BinningConfig:
    region_bins: int = 100
    tss: bool = False
    tss_up: int = 1000
    tss_down: int = 1000
    tss_bins: int = 100
    upstream: int = 0
    up_bins: int = 10
    downstream: int = 0
    down_bins: int = 10
    gene_bins: int = 100
    transcript: bool = False

    @property
    def mode(self) -> str:
        return 'tss' if self.tss else 'genebody'

@dataclass
class OutputConfig:
    position: bool = False
    genome_norm: Optional[float] = None
    gene_norm: Optional[float] = None

PATH_KEYS = {'gtf', 'region', 'gene_list', 'coverage', 'chrom_sizes'}

def _section(cls, data: Optional[dict]):
    data = data or {}
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f'Unknown {cls.__name__} keys: {sorted(unknown)}')
    values = {k: (Path(v) if k in PATH_KEYS and v is not None else v) for k, v in data.items()}
    return cls(**values)

@dataclass
class Config:
    input: InputConfig
    binning: BinningConfig
    output: OutputConfig

    @classmethod
    def default(cls) -> 'Config':
        return cls(input=InputConfig(), binning=BinningConfig(), output=OutputConfig())

    @classmethod
    def from_dict(cls, data: dict) -> 'Config':
        data = data or {}
        return cls(
            input=_section(InputConfig, data.get('input')),
            binning=_section(BinningConfig, data.get('binning')),
            output=_section(OutputConfig, data.get('output')),
        )

    @classmethod
    def from_yaml(cls, config_path: Path) -> 'Config':
        with open(config_path) as f:
            data = yaml.safe_load(f)
        config = cls.from_dict(data)
        # Relative input paths are relative to the config file
        for key in PATH_KEYS:
            path = getattr(config.input, key)
            if path is not None and not path.is_absolute():
                setattr(config.input, key, Path(config_path).parent / path)
        return config

    def override(self, **options) -> 'Config':
        """Set any options that are not None, looking them up by key in each section"""
        for key, value in options.items():
            if value is None:
                continue
            for section in (self.input, self.binning, self.output):
                if key in {f.name for f in fields(section)}:
                    setattr(section, key, Path(value) if key in PATH_KEYS else value)
                    break
            else:
                raise ValueError(f'Unknown config option: {key}')
        return self

    @property
    def mode(self) -> str:
        return 'region' if self.input.region is not None else self.binning.mode

    def needs_chrom_sizes(self) -> bool:
        b = self.binning
        if self.mode == 'tss':
            return True
        return self.mode == 'genebody' and (b.upstream > 0 or b.downstream > 0)

    def validate(self, require_coverage: bool = True):
        """Check that the configuration describes a runnable profile

        Raises:
            ValueError: For any invalid combination of options
        """
        i, b, o = self.input, self.binning, self.output
        if (i.gtf is None) == (i.region is None):
            raise ValueError('Exactly one of gtf or region must be set as the locus source')
        if require_coverage and i.coverage is None:
            raise ValueError('coverage must be set')
        if i.coverage_format not in COVERAGE_FORMATS:
            raise ValueError(f'Invalid coverage_format: {i.coverage_format}. Expected one of: {", ".join(COVERAGE_FORMATS)}')
        if b.tss and (b.upstream != 0 or b.downstream != 0):
            raise ValueError('tss cannot be combined with upstream or downstream gene flanks')
        if b.tss and i.region is not None:
            raise ValueError('tss requires a gtf locus source, not region')
        if self.mode == 'region':
            counts = {'region_bins': b.region_bins}
        elif self.mode == 'tss':
            counts = {'tss_bins': b.tss_bins}
        else:
            counts = {'gene_bins': b.gene_bins}
            if b.upstream != 0:
                counts['up_bins'] = b.up_bins
            if b.downstream != 0:
                counts['down_bins'] = b.down_bins
        for key, value in counts.items():
            if not isinstance(value, int) or value <= 0:
                raise ValueError(f'{key} must be a positive integer, got {value}')
        for key in ['tss_up', 'tss_down', 'upstream', 'downstream']:
            if getattr(b, key) < 0:
                raise ValueError(f'{key} must not be negative, got {getattr(b, key)}')
        for key in ['genome_norm', 'gene_norm']:
            value = getattr(o, key)
            if value is not None and value <= 0:
                raise ValueError(f'{key} must be positive, got {value}')
        if self.needs_chrom_sizes() and i.chrom_sizes is None and i.genome is None and self.coverage_format() != 'bigwig':
            raise ValueError('chrom_sizes or genome is required to clip TSS windows or gene flanks at chromosome ends')
        if self.coverage_format() == 'bed' and i.chrom_sizes is None and i.genome is None:
            raise ValueError('chrom_sizes or genome is required to compute coverage from BED reads')

    def coverage_format(self) -> str:
        if self.input.coverage_format != 'auto' or self.input.coverage is None:
            return self.input.coverage_format
        return detect_format(self.input.coverage)
