# -*- coding: utf-8 -*-

# This file is part of Atena.
# Original Telescope code by Matthew L. Bendall (https://github.com/mlbendall/telescope)
#
# New code and modifications by Duane Storey (https://github.com/duanestorey) and Claude (Anthropic).
# Licensed under MIT License.

"""Classification of alignment groups: uniqueness and overlapped features."""

import logging as lg
import math
from collections import Counter
from dataclasses import dataclass, field

from .. import MissingMultiplicityInfo
from .filters import alignment_signals


@dataclass
class FragmentHits:
    """Features overlapped by one fragment.

    ``overlaps`` maps feature id to overlapping bases for the whole
    fragment; ``mate_overlaps`` and ``mate_signals`` are parallel to
    ``fragment.mates``. Filter signals are only computed for primary
    fragments.
    """
    fragment: object
    overlaps: Counter
    mate_overlaps: list
    mate_signals: list = field(default_factory=list)

    @property
    def is_secondary(self):
        return self.fragment.is_secondary

    def best_feature(self, allowed):
        """Feature with the largest overlap among *allowed*, or None."""
        for fid, _olen in self.overlaps.most_common():
            if fid in allowed:
                return fid
        return None


@dataclass
class ClassifiedGroup:
    query_name: str
    code: str
    is_unique: bool
    multiplicity: int
    hits: list

    @property
    def candidates(self):
        ret = set()
        for h in self.hits:
            ret.update(h.overlaps)
        return ret

    @property
    def primary_hits(self):
        return [h for h in self.hits if not h.is_secondary]


def precedence(is_unique, te_hits, gene_hits):
    """Features a read may be assigned to when genes and TEs are quantified.

    A unique read overlapping both a gene and a TE goes to the gene, a
    multi-mapping read overlapping both goes to the TE. A read overlapping
    only one kind of feature goes there.
    """
    if te_hits and gene_hits:
        return set(gene_hits) if is_unique else set(te_hits)
    return set(te_hits) | set(gene_hits)


class AlignmentClassifier:
    """Turns :class:`AlignmentGroup` objects into :class:`ClassifiedGroup`.

    Args:
        index: :class:`OverlapIndex` over TE and gene features.
        config: :class:`StrategyConfig`.
        info: ``AlignmentInfo`` of the input file.
        require_multiplicity (bool): Raise :class:`MissingMultiplicityInfo`
            when the file carries neither NH tags nor secondary alignments.
        scorer: :class:`SuboptimalScorer`; when given, filter signals are
            computed for every mapped alignment.
    """

    def __init__(self, index, config, info, require_multiplicity=False, scorer=None):
        if require_multiplicity and not (info.has_nh or info.has_secondary):
            raise MissingMultiplicityInfo(
                'Alignments have neither secondary alignments nor an NH tag; '
                'unique and multi-mapping reads cannot be told apart for gene quantification'
            )
        self.index = index
        self.config = config
        self.scorer = scorer
        self.min_overlap = max(1, math.ceil(config.min_overlap_fraction * info.median_read_length))
        lg.debug(f'Minimum overlap: {self.min_overlap} bp')

    def _strand(self, frag):
        if self.config.single_end or not frag.r1.is_paired:
            return frag.r1.strand
        return frag.strand(self.config.strand_mode)

    def _overlaps(self, aln, strand):
        return self.index.intersect_blocks(aln.ref_name, aln.blocks, strand, not self.config.check_strand)

    def _keep(self, counter):
        return Counter({fid: olen for fid, olen in counter.items() if olen >= self.min_overlap})

    def classify(self, group):
        frags = group.fragments(self.config.single_end)
        hits = []
        for frag in frags:
            _strand = self._strand(frag)
            _mate_raw = [self._overlaps(a, _strand) for a in frag.mates]
            _total = Counter()
            for c in _mate_raw:
                _total.update(c)
            h = FragmentHits(frag, self._keep(_total), [self._keep(c) for c in _mate_raw])
            if self.scorer is not None and not frag.is_secondary:
                h.mate_signals = [alignment_signals(a, group, self.scorer) for a in frag.mates]
            hits.append(h)

        _nh = group.nh
        _multiplicity = _nh if _nh else 1 + sum(f.is_secondary for f in frags)
        return ClassifiedGroup(
            query_name=group.query_name,
            code=group.code,
            is_unique=_multiplicity <= 1,
            multiplicity=_multiplicity,
            hits=hits,
        )

    def split_by_type(self, fids):
        """Split feature ids into (TE ids, gene ids)."""
        te, genes = set(), set()
        for fid in fids:
            (te if self.index.is_te(fid) else genes).add(fid)
        return te, genes

    def allowed_features(self, cgroup, apply_precedence=True, primary_only=False):
        """Candidate features of *cgroup* after the gene/TE precedence rule.

        With *primary_only*, secondary alignments neither contribute
        candidates nor take part in the precedence decision.
        """
        if primary_only:
            _cands = set()
            for h in cgroup.primary_hits:
                _cands.update(h.overlaps)
        else:
            _cands = cgroup.candidates
        if not apply_precedence:
            return _cands
        te, genes = self.split_by_type(_cands)
        return precedence(cgroup.is_unique, te, genes)
