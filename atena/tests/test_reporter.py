# -*- coding: utf-8 -*-

# This file is part of Atena.
# Original Telescope code by Matthew L. Bendall (https://github.com/mlbendall/telescope)
#
# New code and modifications by Duane Storey (https://github.com/duanestorey) and Claude (Anthropic).
# Licensed under MIT License.

"""Tests for count aggregation and report files."""

import pandas as pd
import pytest

from atena.core.reporter import QuantificationResult, aggregate_counts, merge_samples, output_report
from atena.core.squarem import FitInfo

from .helpers import gene, te


@pytest.fixture
def features():
    fs = [
        te('ROO_1', 0, 10, repName='ROO_LTR', repFamily='Pao'),
        te('ROO_2', 20, 30, repName='ROO_LTR', repFamily='Pao'),
        te('DM_1', 40, 50, repName='DM297', repFamily='Gypsy'),
        gene('FBgn1', 60, 70, repName='ROO_LTR'),
    ]
    return {f.id: f for f in fs}


class TestAggregateCounts:
    def test_by_feature(self, features):
        s = aggregate_counts({'ROO_1': 2, 'DM_1': 1}, features)
        assert s.to_dict() == {'DM_1': 1, 'ROO_1': 2}

    def test_by_attribute(self, features):
        s = aggregate_counts({'ROO_1': 2, 'ROO_2': 3, 'DM_1': 1}, features, ('repName',))
        assert s.to_dict() == {'DM297': 1, 'ROO_LTR': 5}

    def test_composite_key(self, features):
        s = aggregate_counts({'ROO_1': 2, 'DM_1': 1}, features, ('repName', 'repFamily'))
        assert set(s.index) == {'ROO_LTR:Pao', 'DM297:Gypsy'}

    def test_genes_keep_identifier(self, features):
        s = aggregate_counts({'ROO_1': 2, 'FBgn1': 4}, features, ('repName',))
        assert s.to_dict() == {'FBgn1': 4, 'ROO_LTR': 2}

    def test_idempotent(self, features):
        s = aggregate_counts({'ROO_1': 2, 'ROO_2': 3, 'DM_1': 1, 'FBgn1': 4}, features, ('repName',))
        again = s.groupby(level=0).sum()
        pd.testing.assert_series_equal(s, again)

    def test_empty(self, features):
        assert aggregate_counts({}, features).empty


class TestMergeSamples:
    def test_zero_fill_and_drop(self):
        df = merge_samples({
            's1': pd.Series({'a': 1.0, 'b': 0.0}),
            's2': pd.Series({'c': 2.0, 'b': 0.0}),
        })
        assert list(df.columns) == ['s1', 's2']
        assert list(df.index) == ['a', 'c']
        assert df.loc['c', 's1'] == 0

    def test_integer(self):
        df = merge_samples({'s1': pd.Series({'a': 2.0})}, integer=True)
        assert df['s1'].dtype == 'int64'

    def test_no_samples(self):
        assert merge_samples({}).empty


def test_output_report(tmp_path):
    result = QuantificationResult(
        counts=merge_samples({'s1': pd.Series({'a': 1.5})}),
        failures={'s2': 'OSError: missing'},
        fitinfo={'s1': FitInfo(converged=True, iterations=3, objective=-2.0)},
        run_info={'s1': {'total_fragments': 10}, 's2': {}},
    )
    counts_file = tmp_path / 'x-counts.tsv'
    stats_file = tmp_path / 'x-run_stats.tsv'
    output_report(result, counts_file, stats_file, run_header={'version': 'test'})

    counts = pd.read_csv(counts_file, sep='\t', index_col=0)
    assert counts.loc['a', 's1'] == 1.5

    with open(stats_file) as fh:
        assert fh.readline().startswith('## RunInfo\tversion:test')
        stats = pd.read_csv(fh, sep='\t', index_col=0)
    assert stats.loc['error', 's2'] == 'OSError: missing'
    assert float(stats.loc['final_lnl', 's1']) == 2.0
