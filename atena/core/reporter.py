# -*- coding: utf-8 -*-

# This file is part of Atena.
# Original Telescope code by Matthew L. Bendall (https://github.com/mlbendall/telescope)
#
# New code and modifications by Duane Storey (https://github.com/duanestorey) and Claude (Anthropic).
# Licensed under MIT License.

"""Aggregation of per-feature counts and report generation."""

from dataclasses import dataclass, field

import pandas as pd


@dataclass
class QuantificationResult:
    """Counts of all samples and what happened to each of them.

    Attributes:
        counts: DataFrame with one row per aggregation key and one column per
            successfully quantified sample.
        failures: Sample name to error message.
        fitinfo: Sample name to :class:`FitInfo` (EM strategies only).
        run_info: Sample name to a dict of alignment statistics.
    """
    counts: pd.DataFrame
    failures: dict = field(default_factory=dict)
    fitinfo: dict = field(default_factory=dict)
    run_info: dict = field(default_factory=dict)

    @property
    def samples(self):
        return list(self.counts.columns)


def feature_key(feature, aggregateby=()):
    """Row key of a feature: aggregated for TEs, the identifier for genes."""
    if feature.is_te:
        return feature.aggregation_key(aggregateby)
    return feature.id


def aggregate_counts(counts, features, aggregateby=()):
    """Sum per-feature counts by aggregation key.

    Args:
        counts: Mapping of feature id to count.
        features: Mapping of feature id to :class:`Feature`.
        aggregateby: Attribute names forming the TE key.

    Returns:
        pandas.Series indexed by key.
    """
    _s = pd.Series(dict(counts), dtype='float64')
    if _s.empty:
        return _s
    _keys = [feature_key(features[fid], aggregateby) for fid in _s.index]
    return _s.groupby(_keys, sort=True).sum()


def merge_samples(per_sample, integer=False):
    """Column-aligned table of per-sample aggregated counts.

    Keys missing from a sample are filled with zero; keys that are zero in
    every sample are dropped.
    """
    if not per_sample:
        return pd.DataFrame(dtype='float64')
    df = pd.concat(per_sample, axis=1, sort=True).fillna(0)
    df = df.loc[(df != 0).any(axis=1)]
    if integer:
        df = df.round().astype('int64')
    df.index.name = 'feature'
    return df


def output_report(result, counts_filename, stats_filename, run_header=None):
    """Write the counts table and per-sample statistics as TSV.

    Args:
        result: :class:`QuantificationResult`.
        counts_filename: Path for counts TSV output.
        stats_filename: Path for run statistics TSV output.
        run_header: Optional dict written as a ``## RunInfo`` comment line at
            the top of the statistics file.
    """
    with open(counts_filename, 'w') as outh:
        result.counts.to_csv(outh, sep='\t')

    _stats = {}
    for sample, info in result.run_info.items():
        _stats[sample] = dict(info)
    for sample, fit in result.fitinfo.items():
        _stats.setdefault(sample, {}).update({
            'converged': fit.converged,
            'iterations': fit.iterations,
            'fallbacks': fit.fallbacks,
            'final_lnl': -fit.objective,
        })
    for sample, msg in result.failures.items():
        _stats.setdefault(sample, {})['error'] = msg
    _stats_report = pd.DataFrame(_stats)
    _stats_report.index.name = 'stat'

    with open(stats_filename, 'w') as outh:
        if run_header:
            _comment = ['## RunInfo']
            _comment += ['{}:{}'.format(*tup) for tup in run_header.items()]
            outh.write('\t'.join(_comment) + '\n')
        _stats_report.to_csv(outh, sep='\t')
