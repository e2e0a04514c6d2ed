import numpy as np
import pandas as pd
import pytest

from covprofile.normalize import (
    gene_normalize,
    genome_normalize,
    normalize_file,
    normalize_table,
    percentile_cutoff,
    read_profile_table,
)


def example_scores():
    values = np.concatenate([np.zeros(100), np.arange(10, 1001, 10)])
    return values.reshape(20, 10)


def test_percentile_cutoff_top_one_percent():
    assert percentile_cutoff(example_scores()) == 990


def test_percentile_cutoff_truncates_to_integers():
    scores = np.array([[0.5, 1.9, 2.2, 2.7]])
    assert percentile_cutoff(scores, top_fraction=0.5) == 2


def test_genome_normalize_clips_and_scales_linearly():
    scores = example_scores()
    normalized = genome_normalize(scores, 100)
    assert normalized.max() <= 100
    assert normalized.shape == scores.shape
    below = scores < 990
    assert np.allclose(normalized[below], scores[below] * 100 / 990)
    assert np.allclose(normalized[scores >= 990], 100)


def test_genome_normalize_with_zero_cutoff_is_unchanged(capsys):
    scores = np.zeros((5, 4))
    scores[0, 0] = 0.5
    normalized = genome_normalize(scores, 100)
    assert np.array_equal(normalized, scores)
    assert 'Warning' in capsys.readouterr().out


def test_gene_normalize_divides_by_row_max():
    scores = np.array([[1.0, 2.0, 4.0], [0.0, 0.0, 0.0], [3.0, 6.0, 0.0]])
    normalized = gene_normalize(scores, 1)
    assert np.allclose(normalized, [[0.25, 0.5, 1.0], [0.0, 0.0, 0.0], [0.5, 1.0, 0.0]])
    assert np.allclose(gene_normalize(scores, 10).max(axis=1), [10, 0, 10])


def test_normalize_table_keeps_metadata_columns():
    table = pd.DataFrame({
        'chr': ['chr1', 'chr2'],
        'start': [0, 100],
        'end': [50, 150],
        'gene_name': ['a', 'b'],
        '1': [1.0, 0.0],
        '2': [2.0, 5.0],
    })
    normalized = normalize_table(table, gene_norm=1)
    assert list(normalized['start']) == [0, 100]
    assert list(normalized['gene_name']) == ['a', 'b']
    assert np.allclose(normalized[['1', '2']].to_numpy(), [[0.5, 1.0], [0.0, 1.0]])
    assert normalize_table(table).equals(table)


def test_normalize_file(tmp_path):
    path = tmp_path / 'profiles.tsv'
    path.write_text('gene_name\t1\t2\na\t1.00\t4.00\nb\t2.00\t2.00\n')
    outfile = tmp_path / 'normalized.tsv'
    normalize_file(path, outfile, gene_norm=2)
    lines = outfile.read_text().splitlines()
    assert lines == ['gene_name\t1\t2', 'a\t0.50\t2.00', 'b\t2.00\t2.00']


def test_read_profile_table_requires_name_column(tmp_path):
    path = tmp_path / 'bad.tsv'
    path.write_text('name\t1\nx\t1.0\n')
    with pytest.raises(ValueError):
        read_profile_table(path)


def test_normalize_file_keeps_names_that_look_missing(tmp_path):
    path = tmp_path / 'profiles.tsv'
    path.write_text(
        'chr\tstart\tend\tgene_name\t1\t2\n'
        'NA\t0\t10\tNA\t1.00\t2.00\n'
        'chr1\t10\t20\tNone\t3.00\t4.00\n'
        'chr1\t20\t30\tnull\t0.00\t0.00\n'
    )
    table = read_profile_table(path)
    assert list(table['gene_name']) == ['NA', 'None', 'null']
    normalize_file(path, path, gene_norm=10)
    assert path.read_text().splitlines() == [
        'chr\tstart\tend\tgene_name\t1\t2',
        'NA\t0\t10\tNA\t5.00\t10.00',
        'chr1\t10\t20\tNone\t7.50\t10.00',
        'chr1\t20\t30\tnull\t0.00\t0.00',
    ]
