# This file is part of Atena.
# Original Telescope code by Matthew L. Bendall (https://github.com/mlbendall/telescope)
#
# New code and modifications by Duane Storey (https://github.com/duanestorey) and Claude (Anthropic).
# Licensed under MIT License.

import logging as lg
from collections import Counter, OrderedDict, defaultdict

from intervaltree import Interval, IntervalTree

from .. import MalformedFeatureAnnotation


def overlap_length(a, b):
    return max(0, min(a.end, b.end) - max(a.begin, b.begin))


class OverlapIndex:
    """Interval trees over TE and gene features, one tree per chromosome.

    Each interval stores the identifier of its feature, so a hit on any exon
    of a multi-interval feature is a hit on the whole feature.
    """

    def __init__(self, features):
        lg.debug('Using intervaltree for annotation.')
        self.features = OrderedDict()
        self.itree = defaultdict(IntervalTree)
        for f in features:
            if f.id in self.features:
                raise MalformedFeatureAnnotation(f'Duplicated feature identifier "{f.id}"')
            self.features[f.id] = f
            for chrom, start, end in f.intervals:
                self.itree[chrom].add(Interval(start, end, f.id))

    def __len__(self):
        return len(self.features)

    def feature_length(self):
        """Get feature lengths

        Returns:
            (dict of str: int): Feature names to feature lengths

        """
        return Counter({fid: f.length() for fid, f in self.features.items()})

    def _strand_ok(self, fid, strand):
        _fstrand = self.features[fid].strand
        return _fstrand not in ('+', '-') or _fstrand == strand

    def intersect_blocks(self, ref, blocks, strand=None, ignore_strand=True):
        """Number of bases of *blocks* covered by each feature.

        Args:
            ref (str): Reference (chromosome) name.
            blocks: Iterable of ``(start, end)`` half-open aligned blocks.
            strand (str): Strand of the read or fragment, '+' or '-'.
            ignore_strand (bool): When False, only features on *strand*
                (or unstranded features) are reported.

        Returns:
            Counter of feature id to overlap length.
        """
        _result = Counter()
        if ref not in self.itree:
            return _result
        _check_strand = not ignore_strand and strand in ('+', '-')
        for b_start, b_end in blocks:
            query = Interval(b_start, b_end)
            for iv in self.itree[ref].overlap(b_start, b_end):
                if _check_strand and not self._strand_ok(iv.data, strand):
                    continue
                _result[iv.data] += overlap_length(iv, query)
        return _result

    def query(self, ref, blocks, strand=None, ignore_strand=True, min_overlap=1):
        """Features overlapping *blocks* by at least *min_overlap* bases."""
        _min = max(1, min_overlap)
        return {fid for fid, olen in self.intersect_blocks(ref, blocks, strand, ignore_strand).items() if olen >= _min}

    def is_te(self, fid):
        return self.features[fid].is_te
