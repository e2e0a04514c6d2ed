"""Coverage profiles over binned genomic loci"""

import argparse
from pathlib import Path
from .config import COVERAGE_FORMATS, Config
from .init import init_project
from .normalize import normalize_file
from .pipeline import run_profiles, save_bins

def add_config_options(parser: argparse.ArgumentParser):
    """Options that override values in the config file"""
    parser.add_argument('-c', '--config', type=Path, metavar='FILE',
        help='Path to configuration file. Options given on the command line override it.')
    group = parser.add_argument_group('input')
    group.add_argument('--gtf', type=Path, metavar='FILE', help='GTF annotation of transcripts. Mutually exclusive with --region.')
    group.add_argument('--region', type=Path, metavar='FILE', help='BED file of regions. Mutually exclusive with --gtf.')
    group.add_argument('--gene-list', type=Path, metavar='FILE', help='Restrict loci to these gene or transcript names, one per line.')
    group.add_argument('--coverage', type=Path, metavar='FILE', help='Sorted bedGraph, bigWig, or BED file of reads.')
    group.add_argument('--coverage-format', choices=COVERAGE_FORMATS, help='Coverage format. "auto" uses the file extension.')
    group.add_argument('--sort-coverage', action='store_true', default=None, help='Sort bedGraph or BED coverage before use.')
    group.add_argument('--check-sorted', action='store_true', default=None, help='Raise an error if the coverage is not sorted.')
    group.add_argument('--chrom-sizes', type=Path, metavar='FILE', help='Tab-delimited chromosome names and lengths.')
    group.add_argument('--genome', type=str, metavar='NAME', help='UCSC assembly name to fetch chromosome sizes for, e.g. hg38.')
    group = parser.add_argument_group('binning')
    group.add_argument('--region-bins', type=int, metavar='N', help='Number of bins per region.')
    group.add_argument('--tss', action='store_true', default=None, help='Profile windows around TSSs instead of gene bodies.')
    group.add_argument('--tss-up', type=int, metavar='BP', help='Window length upstream of the TSS.')
    group.add_argument('--tss-down', type=int, metavar='BP', help='Window length downstream of the TSS.')
    group.add_argument('--tss-bins', type=int, metavar='N', help='Number of bins per TSS window.')
    group.add_argument('--upstream', type=int, metavar='BP', help='Upstream flank length added to gene bodies.')
    group.add_argument('--up-bins', type=int, metavar='N', help='Number of bins in the upstream flank.')
    group.add_argument('--downstream', type=int, metavar='BP', help='Downstream flank length added to gene bodies.')
    group.add_argument('--down-bins', type=int, metavar='N', help='Number of bins in the downstream flank.')
    group.add_argument('--gene-bins', type=int, metavar='N', help='Number of bins in the gene body.')
    group.add_argument('--transcript', action='store_true', default=None, help='One locus per transcript instead of merging transcripts per gene.')

OVERRIDE_KEYS = [
    'gtf', 'region', 'gene_list', 'coverage', 'coverage_format', 'sort_coverage', 'check_sorted',
    'chrom_sizes', 'genome', 'region_bins', 'tss', 'tss_up', 'tss_down', 'tss_bins', 'upstream',
    'up_bins', 'downstream', 'down_bins', 'gene_bins', 'transcript', 'position', 'genome_norm',
    'gene_norm',
]

def create_parser():
    """Create the CLI parser"""
    parser = argparse.ArgumentParser(description='Compute fixed-width coverage profiles over binned genomic loci')
    subparsers = parser.add_subparsers(title='subcommands', dest='subcommand', required=True, help='Choose a subcommand')

    parser_init = subparsers.add_parser('init', help='Initialize a new project directory with a default config')
    parser_init.add_argument('project_dir', type=Path, help='Directory to create and initialize project in.')

    parser_profile = subparsers.add_parser('profile', help='Compute one coverage profile row per locus')
    add_config_options(parser_profile)
    parser_profile.add_argument('-o', '--output', type=Path, required=True, metavar='FILE', help='Output profile table.')
    parser_profile.add_argument('--position', action='store_true', default=None, help='Write chr, start, and end columns.')
    parser_profile.add_argument('--genome-norm', type=float, metavar='SCALE', help='Rescale genome-wide so the 99th percentile maps to SCALE.')
    parser_profile.add_argument('--gene-norm', type=float, metavar='SCALE', help='Rescale each row so its maximum is SCALE.')

    parser_bins = subparsers.add_parser('bins', help='Write the bins of every locus to a BED file')
    add_config_options(parser_bins)
    parser_bins.add_argument('-o', '--output', type=Path, required=True, metavar='FILE', help='Output BED file.')

    parser_norm = subparsers.add_parser('normalize', help='Normalize an existing profile table')
    parser_norm.add_argument('table', type=Path, help='Profile table to normalize.')
    parser_norm.add_argument('-o', '--output', type=Path, metavar='FILE', help='Output table. Defaults to overwriting the input.')
    parser_norm.add_argument('--genome-norm', type=float, metavar='SCALE', help='Rescale genome-wide so the 99th percentile maps to SCALE.')
    parser_norm.add_argument('--gene-norm', type=float, metavar='SCALE', help='Rescale each row so its maximum is SCALE.')

    return parser

def load_config(args: argparse.Namespace) -> Config:
    """Load the config file, if any, and apply command-line overrides"""
    if args.config is not None:
        if not args.config.exists():
            raise FileNotFoundError(f"Config file not found at {args.config}")
        config = Config.from_yaml(args.config)
    else:
        config = Config.default()
    overrides = {key: getattr(args, key, None) for key in OVERRIDE_KEYS}
    # A locus source on the command line replaces the one in the config
    if overrides['gtf'] is not None:
        config.input.region = None
    elif overrides['region'] is not None:
        config.input.gtf = None
    return config.override(**overrides)

def cli_normalize(args: argparse.Namespace):
    if args.genome_norm is None and args.gene_norm is None:
        raise ValueError('At least one of --genome-norm or --gene-norm is required')
    for key in ['genome_norm', 'gene_norm']:
        value = getattr(args, key)
        if value is not None and value <= 0:
            raise ValueError(f'{key} must be positive, got {value}')
    outfile = args.output if args.output is not None else args.table
    normalize_file(args.table, outfile, args.genome_norm, args.gene_norm)

def cli():
    """covprofile CLI"""
    parser = create_parser()
    args = parser.parse_args()
    if args.subcommand == 'init':
        init_project(args.project_dir)
    elif args.subcommand == 'profile':
        run_profiles(load_config(args), args.output)
    elif args.subcommand == 'bins':
        save_bins(load_config(args), args.output)
    elif args.subcommand == 'normalize':
        cli_normalize(args)

if __name__ == '__main__':
    cli()
