# -*- coding: utf-8 -*-

# This file is part of Atena.
# Original Telescope code by Matthew L. Bendall (https://github.com/mlbendall/telescope)
#
# New code and modifications by Duane Storey (https://github.com/duanestorey) and Claude (Anthropic).
# Licensed under MIT License.

"""Per-sample quantification and the ``quantify`` entry point."""

import os
import logging as lg
import dataclasses
from collections import Counter, OrderedDict
from functools import partial
from multiprocessing import Pool

from .. import AtenaError, __version__
from ..alignment.fragments import CODES, inspect_alignments, iter_alignment_groups
from ..annotation.gtf_utils import check_features
from ..annotation.intervaltree import OverlapIndex
from .classifier import AlignmentClassifier
from .filters import FilterEngine, SuboptimalScorer, resolve_suboptimal_tag
from .likelihood import TelescopeLikelihood, TEtranscriptsLikelihood
from .matrix import ERVmapCounter, MatrixBuilder
from .params import Strategy, StrategyConfig
from .reporter import QuantificationResult, aggregate_counts, merge_samples


def _print_progress(nfrags, infolev=2500000):
    mfrags = nfrags / 1e6
    msg = f'...processed {mfrags:.1f}M fragments'
    if nfrags % infolev == 0:
        lg.info(msg)
    else:
        lg.debug(msg)


class SampleQuantifier:
    """Alignment loading, counting and EM for one alignment file."""

    def __init__(self, samfile, index, config, has_genes=False, name=None):
        self.samfile = samfile
        self.index = index
        self.config = config
        self.has_genes = has_genes
        self.name = name or sample_name(samfile)
        self.run_info = OrderedDict()  # Information about the run
        self.run_info['version'] = __version__
        self.run_info['strategy'] = config.strategy.value
        self.counts = Counter()  # {"feature id": count}
        self.model = None
        self.fitinfo = None

    def _scorer(self, info):
        _tag, _required = resolve_suboptimal_tag(
            self.config.suboptimal_alignment_tag, info.aligner, self.config.bwa_aligners
        )
        lg.debug(f'Suboptimal score from {"tag " + _tag if _tag else "secondary alignments"}')
        return SuboptimalScorer(_tag, _required)

    def run(self):
        info = inspect_alignments(self.samfile)
        self.run_info['aligner'] = info.aligner
        self.run_info['median_read_length'] = info.median_read_length

        _ervmap = self.config.strategy is Strategy.ERVMAP
        classifier = AlignmentClassifier(
            self.index, self.config, info,
            require_multiplicity=self.has_genes,
            scorer=self._scorer(info) if _ervmap else None,
        )
        if _ervmap:
            engine = FilterEngine(self.config.max_mismatch_rate, self.config.suboptimal_alignment_cutoff)
            acc = ERVmapCounter(classifier, engine, self.config)
        else:
            acc = MatrixBuilder(classifier, self.config)

        alninfo = Counter()
        for group in iter_alignment_groups(self.samfile):
            alninfo['total_fragments'] += 1
            if alninfo['total_fragments'] % 500000 == 0:
                _print_progress(alninfo['total_fragments'])
            _code = group.code
            alninfo[_code] += 1
            if _code in ('SU', 'PU'):
                continue
            cgroup = classifier.classify(group)
            alninfo['unique' if cgroup.is_unique else 'ambig'] += 1
            acc.add(cgroup)

        if _ervmap:
            self.counts = Counter(acc.counts)
        else:
            self._fit(acc)

        for cs, desc in CODES:
            alninfo[desc] = alninfo.pop(cs, 0)
        # Overlap statistics are only complete once the matrix is built
        alninfo.update(acc.stats)
        self.run_info.update(alninfo)
        return self.counts

    def _fit(self, builder):
        mat = builder.build()
        if mat.shape[0] == 0:
            lg.warning(f'{self.name}: no fragments overlap the annotation')
            return
        if self.config.strategy is Strategy.TELESCOPE:
            self.model = TelescopeLikelihood(mat, self.config)
        else:
            self.model = TEtranscriptsLikelihood(mat, self.config)
        self.model.em()
        self.fitinfo = self.model.fitinfo
        if self.config.strategy is Strategy.TELESCOPE:
            _values = self.model.counts(self.config.reassign_mode, self.config.conf_prob)
        else:
            _values = self.model.counts()
        self.counts = Counter(dict(zip(builder.feature_names, _values)))

    def print_summary(self, loglev=lg.WARNING):
        _d = Counter({k: v for k, v in self.run_info.items() if isinstance(v, int)})
        lg.log(loglev, f'Alignment Summary ({self.name}):')
        lg.log(loglev, '    {} total fragments.'.format(_d['total_fragments']))
        lg.log(loglev, '        {} mapped as pairs.'.format(_d['pair_mapped']))
        lg.log(loglev, '        {} mapped as mixed.'.format(_d['pair_mixed']))
        lg.log(loglev, '        {} mapped single.'.format(_d['single_mapped']))
        lg.log(loglev, '        {} failed to map.'.format(_d['pair_unmapped'] + _d['single_unmapped']))
        lg.log(loglev, '--')
        lg.log(loglev, '        {} had one unique alignment.'.format(_d['unique']))
        lg.log(loglev, '        {} had multiple alignments.'.format(_d['ambig']))
        if self.config.strategy is Strategy.ERVMAP:
            lg.log(loglev, '--')
            lg.log(loglev, '    {} alignments passed the filters.'.format(_d['filter_pass']))
            for k in ('clip', 'edit', 'suboptimal'):
                lg.log(loglev, '        {} failed the {} filter.'.format(_d[f'filtered_{k}'], k))
        else:
            lg.log(loglev, '--')
            lg.log(loglev, '    {} fragments overlapped annotation; of these'.format(
                _d['overlap_unique'] + _d['overlap_ambig']))
            lg.log(loglev, '        {} map to one locus.'.format(_d['overlap_unique']))
            lg.log(loglev, '        {} map to multiple loci.'.format(_d['overlap_ambig']))
        lg.log(loglev, '\n')

    def __str__(self):
        return f'<SampleQuantifier samfile={self.samfile}, strategy={self.config.strategy.value}>'


def sample_name(path):
    """Sample name from an alignment file path: basename without extension."""
    return os.path.splitext(os.path.basename(path))[0]


def _sample_paths(alignment_source):
    if isinstance(alignment_source, (str, os.PathLike)):
        alignment_source = [alignment_source]
    if isinstance(alignment_source, dict):
        ret = OrderedDict((str(k), os.fspath(v)) for k, v in alignment_source.items())
    else:
        ret = OrderedDict()
        for p in alignment_source:
            _name = sample_name(os.fspath(p))
            if _name in ret:
                raise ValueError(f'Duplicated sample name "{_name}"; pass a dict to name samples explicitly')
            ret[_name] = os.fspath(p)
    if not ret:
        raise ValueError('No alignment files given')
    return ret


def _quantify_sample(item, index, config, has_genes):
    """Worker: quantify one sample, capturing per-sample failures."""
    name, path = item
    lg.info(f'Quantifying sample {name} ({path})')
    sq = SampleQuantifier(path, index, config, has_genes, name=name)
    try:
        counts = sq.run()
    except (AtenaError, OSError, ValueError) as e:
        lg.error(f'Sample {name} failed: {e}')
        return name, None, dict(sq.run_info), None, f'{type(e).__name__}: {e}'
    sq.print_summary(lg.INFO)
    return name, counts, dict(sq.run_info), sq.fitinfo, None


def quantify(alignment_source, te_features, gene_features=None, config=None):
    """Quantify TE (and gene) expression in one or more alignment files.

    Args:
        alignment_source: Path, list of paths, or dict of sample name to path.
            Files must be collated by read name.
        te_features: Iterable of TE :class:`Feature` objects.
        gene_features: Optional iterable of gene :class:`Feature` objects.
        config: :class:`StrategyConfig`; Telescope defaults when None.

    Returns:
        :class:`QuantificationResult`
    """
    config = config if config is not None else StrategyConfig.for_strategy(Strategy.TELESCOPE)
    samples = _sample_paths(alignment_source)

    te_features = [f if f.is_te else dataclasses.replace(f, is_te=True) for f in te_features]
    check_features(te_features, config.aggregateby)
    gene_features = [f if not f.is_te else dataclasses.replace(f, is_te=False) for f in gene_features or ()]
    has_genes = bool(gene_features)
    index = OverlapIndex(te_features + gene_features)
    lg.info(f'Loaded {len(te_features)} TE and {len(gene_features)} gene features')

    worker = partial(_quantify_sample, index=index, config=config, has_genes=has_genes)
    _nproc = min(config.ncpu, len(samples))
    if _nproc > 1:
        with Pool(_nproc) as pool:
            results = pool.map(worker, list(samples.items()))
    else:
        results = list(map(worker, samples.items()))

    per_sample, failures, fitinfo, run_info = OrderedDict(), {}, {}, {}
    for name, counts, info, fit, err in results:
        run_info[name] = info
        if err is not None:
            failures[name] = err
            continue
        per_sample[name] = aggregate_counts(counts, index.features, config.aggregateby)
        if fit is not None:
            fitinfo[name] = fit

    _integer = config.strategy is Strategy.ERVMAP
    return QuantificationResult(
        counts=merge_samples(per_sample, integer=_integer),
        failures=failures,
        fitinfo=fitinfo,
        run_info=run_info,
    )
