# -*- coding: utf-8 -*-

# This file is part of Atena.
# Original Telescope code by Matthew L. Bendall (https://github.com/mlbendall/telescope)
#
# New code and modifications by Duane Storey (https://github.com/duanestorey) and Claude (Anthropic).
# Licensed under MIT License.

"""From classified alignment groups to counts or compatibility matrices.

``ERVmapCounter`` counts filtered alignments directly. ``MatrixBuilder``
collects (read, feature, score) mappings for the EM strategies and turns
them into a read-by-feature :class:`csr_matrix_plus`.
"""

import logging as lg
from collections import Counter

import numpy as np

from ..sparse.matrix import csr_matrix_plus
from .params import Strategy

BIG_INT = 2**31


def _resolve_duplicates_max(rows, cols, data, shape):
    """Build CSR matrix from COO arrays, resolving duplicate (i,j) by max.

    Args:
        rows, cols, data: COO-format arrays.
        shape: (n_rows, n_cols) tuple.

    Returns:
        csr_matrix_plus with max value for each (i,j).
    """
    rows = np.array(rows, dtype=np.intp)
    cols = np.array(cols, dtype=np.intp)
    data = np.array(data, dtype=np.float64)

    if len(rows) == 0:
        return csr_matrix_plus(shape, dtype=np.float64)

    # Sort by (row, col) for grouping
    order = np.lexsort((cols, rows))
    rows = rows[order]
    cols = cols[order]
    data = data[order]

    # Group boundaries: where (row, col) changes
    diff = np.diff(rows).astype(bool) | np.diff(cols).astype(bool)
    boundaries = np.concatenate(([0], np.where(diff)[0] + 1))

    out_rows = rows[boundaries]
    out_cols = cols[boundaries]
    out_data = np.maximum.reduceat(data, boundaries)

    return csr_matrix_plus((out_data, (out_rows, out_cols)), shape=shape, dtype=np.float64)


class ERVmapCounter:
    """Filter-based counting of one sample.

    Every primary alignment passing the filters adds one count to each
    allowed feature it overlaps. For paired-end data, ``fragments=True``
    counts each passing mate separately; ``fragments=False`` counts a pair
    once, only if both mates pass, and ignores mates without a partner.

    Gene overlaps are counted without filters when ``gene_count_mode`` is
    "all"; with "ervmap" they are filtered like TEs and the gene/TE
    precedence rule is not applied.
    """

    def __init__(self, classifier, engine, config):
        self.classifier = classifier
        self.engine = engine
        self.config = config
        self.counts = Counter()
        self.stats = Counter()

    def _is_free(self, fid):
        return self.config.gene_count_mode == 'all' and not self.classifier.index.is_te(fid)

    def _record(self, sig):
        _failed = self.engine.failed_filter(sig)
        self.stats[f'filtered_{_failed}' if _failed else 'filter_pass'] += 1
        return _failed is None

    def add(self, cgroup):
        _prec = self.config.gene_count_mode == 'all'
        allowed = self.classifier.allowed_features(cgroup, apply_precedence=_prec, primary_only=True)
        if not allowed:
            self.stats['nofeat'] += 1
            return
        self.stats['feat'] += 1
        _paired = not self.config.single_end

        for h in cgroup.primary_hits:
            _passes = [self._record(sig) for sig in h.mate_signals]
            if not (_paired and h.fragment.r1.is_paired) or self.config.fragments:
                # Each mate counted on its own
                for ok, movl in zip(_passes, h.mate_overlaps):
                    for fid in movl:
                        if fid in allowed and (ok or self._is_free(fid)):
                            self.counts[fid] += 1
            elif h.fragment.is_pair:
                ok = self.engine.fragment_passes(_passes, fragments=False)
                for fid in h.overlaps:
                    if fid in allowed and (ok or self._is_free(fid)):
                        self.counts[fid] += 1
            else:
                self.stats['unpaired_mate'] += 1


class MatrixBuilder:
    """Collects EM mappings and builds the compatibility matrix.

    A unique fragment maps to the allowed feature it overlaps most; every
    alignment of a multi-mapping fragment maps to each allowed feature it
    overlaps. The Telescope score of a mapping is the alignment score
    rescaled to start at one plus the aligned length; TEtranscripts uses a
    flat score, as does Telescope when no alignment carries an alignment
    score.
    """

    def __init__(self, classifier, config):
        self.classifier = classifier
        self.config = config
        self.read_index = {}
        self.feat_index = {}
        self.stats = Counter()
        self._mappings = []
        self._minAS, self._maxAS = BIG_INT, -BIG_INT
        self._has_score = False

    def _counted(self, hits):
        for h in hits:
            frag = h.fragment
            if self.config.single_end or not frag.r1.is_paired:
                yield h
            elif frag.is_pair:
                if self.config.fragments or frag.is_opposite_strand:
                    yield h
            elif self.config.fragments:
                yield h

    def add(self, cgroup):
        allowed = self.classifier.allowed_features(cgroup)
        _ustr = 'U' if cgroup.is_unique else 'A'
        if not allowed:
            self.stats[f'nofeat_{_ustr}'] += 1
            return
        _maps = []
        for h in self._counted(cgroup.hits):
            if cgroup.is_unique:
                _best = h.best_feature(allowed)
                _fids = [] if _best is None else [_best]
            else:
                _fids = [fid for fid in h.overlaps if fid in allowed]
            if _fids:
                self._has_score = self._has_score or any(a.alnscore is not None for a in h.fragment.mates)
            _maps.extend((cgroup.query_name, fid, int(h.fragment.alnscore), h.fragment.alnlen) for fid in _fids)
        if not _maps:
            self.stats[f'nofeat_{_ustr}'] += 1
            return
        self.stats[f'feat_{_ustr}'] += 1
        self._minAS = min(self._minAS, *(m[2] for m in _maps))
        self._maxAS = max(self._maxAS, *(m[2] for m in _maps))
        self._mappings.extend(_maps)

    def build(self):
        """Compatibility matrix with one row per read and one column per
        feature that received at least one mapping.

        Returns:
            csr_matrix_plus
        """
        minAS = self._minAS if self._maxAS >= self._minAS else 0
        lg.debug(f'min alignment score: {minAS}')
        _flat = self.config.strategy is Strategy.TETRANSCRIPTS or not self._has_score

        _rows, _cols, _data = [], [], []
        _ridx, _fidx = self.read_index, self.feat_index
        for rid, fid, ascr, alen in self._mappings:
            _rows.append(_ridx.setdefault(rid, len(_ridx)))
            _cols.append(_fidx.setdefault(fid, len(_fidx)))
            _data.append(1.0 if _flat else (ascr - minAS + 1) + alen)

        ret = _resolve_duplicates_max(_rows, _cols, _data, (len(_ridx), len(_fidx)))
        self.stats['overlap_unique'] = int(np.sum(ret.count(1) == 1))
        self.stats['overlap_ambig'] = ret.shape[0] - self.stats['overlap_unique']
        return ret

    @property
    def feature_names(self):
        return sorted(self.feat_index, key=self.feat_index.get)
