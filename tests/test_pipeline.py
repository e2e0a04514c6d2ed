import sys

import pandas as pd
import pytest

from covprofile.cli import cli
from covprofile.config import Config
from covprofile.init import init_project
from covprofile.pipeline import run_profiles, save_bins

GTF_ROWS = [
    ('chr1', 101, 200, '+', 'T1', 'GeneA'),
    ('chr1', 151, 250, '+', 'T2', 'GeneA'),
    ('chr1', 401, 500, '-', 'T3', 'GeneB'),
    ('chr2', 11, 110, '+', 'T4', 'GeneC'),
]


@pytest.fixture
def project(tmp_path):
    gtf = tmp_path / 'anno.gtf'
    gtf.write_text(''.join(
        f'{chrom}\ttest\ttranscript\t{start}\t{end}\t.\t{strand}\t.\t'
        f'gene_id "{gene}"; transcript_id "{tx}"; gene_name "{gene}";\n'
        for chrom, start, end, strand, tx, gene in GTF_ROWS
    ))
    (tmp_path / 'covg.bedgraph').write_text('chr1\t0\t300\t1.0\nchr1\t300\t450\t2.0\nchr1\t450\t1000\t4.0\n')
    (tmp_path / 'chrom.sizes').write_text('chr1\t1000\nchr2\t500\n')
    (tmp_path / 'regions.bed').write_text('chr1\t0\t100\tr1\t0\t+\nchr1\t250\t350\tr2\t0\t-\n')
    return tmp_path


def make_config(project, **options):
    options.setdefault('coverage', project / 'covg.bedgraph')
    config = Config.default().override(**options)
    if config.input.region is None:
        config.override(gtf=project / 'anno.gtf')
    return config


def read_lines(path):
    return path.read_text().splitlines()


def test_gene_body_profiles(project):
    outfile = project / 'profiles.tsv'
    n_rows = run_profiles(make_config(project, gene_bins=2), outfile)
    assert n_rows == 3
    assert read_lines(outfile) == [
        'gene_name\t1\t2',
        'GeneA\t1.00\t1.00',
        'GeneB\t4.00\t2.00',
        'GeneC\t0.00\t0.00',
    ]


def test_profiles_with_positions(project, capsys):
    outfile = project / 'profiles.tsv'
    run_profiles(make_config(project, gene_bins=2, position=True), outfile)
    table = pd.read_csv(outfile, sep='\t')
    assert list(table.columns) == ['chr', 'start', 'end', 'gene_name', '1', '2']
    assert table.iloc[0][['chr', 'start', 'end', 'gene_name']].tolist() == ['chr1', 100, 250, 'GeneA']
    out = capsys.readouterr().out
    assert 'Loaded 4 records on 2 chromosomes' in out
    assert 'on 1 chromosomes with loci' in out
    assert 'absent from the coverage' in out


def test_tss_profiles(project):
    outfile = project / 'profiles.tsv'
    config = make_config(project, tss=True, tss_up=50, tss_down=50, tss_bins=2,
                         chrom_sizes=project / 'chrom.sizes')
    assert run_profiles(config, outfile) == 4
    assert read_lines(outfile)[1:] == [
        'GeneA\t1.00\t1.00',
        'GeneA\t1.00\t1.00',
        'GeneB\t4.00\t4.00',
        'GeneC\t0.00\t0.00',
    ]


def test_region_profiles(project):
    outfile = project / 'profiles.tsv'
    config = make_config(project, region=project / 'regions.bed', region_bins=2)
    run_profiles(config, outfile)
    assert read_lines(outfile) == ['gene_name\t1\t2', 'r1\t1.00\t1.00', 'r2\t2.00\t1.00']


def test_gene_list_restricts_loci(project):
    (project / 'genes.txt').write_text('GeneB\n')
    outfile = project / 'profiles.tsv'
    config = make_config(project, gene_bins=2, gene_list=project / 'genes.txt')
    assert run_profiles(config, outfile) == 1
    assert read_lines(outfile)[1:] == ['GeneB\t4.00\t2.00']


def test_gene_normalized_profiles(project):
    outfile = project / 'profiles.tsv'
    run_profiles(make_config(project, gene_bins=2, gene_norm=1), outfile)
    assert read_lines(outfile)[1:] == [
        'GeneA\t1.00\t1.00',
        'GeneB\t1.00\t0.50',
        'GeneC\t0.00\t0.00',
    ]


def test_unsorted_coverage_is_sorted_on_request(project):
    (project / 'unsorted.bedgraph').write_text('chr1\t450\t1000\t4.0\nchr1\t0\t300\t1.0\nchr1\t300\t450\t2.0\n')
    outfile = project / 'profiles.tsv'
    config = make_config(project, gene_bins=2, coverage=project / 'unsorted.bedgraph',
                         sort_coverage=True, check_sorted=True)
    run_profiles(config, outfile)
    assert read_lines(outfile)[2] == 'GeneB\t4.00\t2.00'


def test_check_sorted_rejects_unsorted_coverage(project):
    (project / 'unsorted.bedgraph').write_text('chr1\t450\t1000\t4.0\nchr1\t0\t300\t1.0\n')
    config = make_config(project, coverage=project / 'unsorted.bedgraph', check_sorted=True)
    with pytest.raises(ValueError, match='not sorted'):
        run_profiles(config, project / 'profiles.tsv')


def test_save_bins(project):
    outfile = project / 'bins.bed'
    save_bins(make_config(project, gene_bins=2), outfile)
    bed = pd.read_csv(outfile, sep='\t', header=None)
    assert bed.shape == (6, 6)
    assert list(bed[3]) == ['GeneA_1', 'GeneA_2', 'GeneB_2', 'GeneB_1', 'GeneC_1', 'GeneC_2']


def test_cli_profile_with_config_file(project, monkeypatch):
    (project / 'config.yaml').write_text(
        'input:\n'
        '  gtf: anno.gtf\n'
        '  coverage: covg.bedgraph\n'
        'binning:\n'
        '  gene_bins: 4\n'
    )
    outfile = project / 'profiles.tsv'
    monkeypatch.setattr(sys, 'argv', [
        'covprofile', 'profile', '-c', str(project / 'config.yaml'),
        '--gene-bins', '2', '--gene-norm', '1', '-o', str(outfile),
    ])
    cli()
    assert read_lines(outfile)[2] == 'GeneB\t1.00\t0.50'


def test_cli_region_replaces_config_gtf(project, monkeypatch):
    (project / 'config.yaml').write_text('input:\n  gtf: anno.gtf\n  coverage: covg.bedgraph\n')
    outfile = project / 'profiles.tsv'
    monkeypatch.setattr(sys, 'argv', [
        'covprofile', 'profile', '-c', str(project / 'config.yaml'),
        '--region', str(project / 'regions.bed'), '--region-bins', '2', '-o', str(outfile),
    ])
    cli()
    assert read_lines(outfile)[1:] == ['r1\t1.00\t1.00', 'r2\t2.00\t1.00']


def test_cli_normalize(project, monkeypatch):
    table = project / 'profiles.tsv'
    table.write_text('gene_name\t1\t2\na\t1.00\t4.00\n')
    monkeypatch.setattr(sys, 'argv', ['covprofile', 'normalize', str(table), '--gene-norm', '1'])
    cli()
    assert read_lines(table) == ['gene_name\t1\t2', 'a\t0.25\t1.00']
    monkeypatch.setattr(sys, 'argv', ['covprofile', 'normalize', str(table)])
    with pytest.raises(ValueError):
        cli()


def test_init_project(tmp_path):
    project_dir = tmp_path / 'proj'
    init_project(project_dir)
    config = Config.from_yaml(project_dir / 'config.yaml')
    assert config.input.gtf == project_dir / 'annotation.gtf.gz'
    assert config.binning.gene_bins == 100
    with pytest.raises(FileExistsError):
        init_project(project_dir)


def test_normalized_profiles_keep_region_names_that_look_missing(project):
    (project / 'na.bed').write_text('chr1\t0\t100\tNA\t0\t+\nchr1\t250\t350\tnull\t0\t-\n')
    outfile = project / 'profiles.tsv'
    config = make_config(project, region=project / 'na.bed', region_bins=2, position=True, gene_norm=1)
    run_profiles(config, outfile)
    assert read_lines(outfile) == [
        'chr\tstart\tend\tgene_name\t1\t2',
        'chr1\t0\t100\tNA\t1.00\t1.00',
        'chr1\t250\t350\tnull\t1.00\t0.50',
    ]
