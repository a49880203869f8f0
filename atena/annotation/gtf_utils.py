# This file is part of Atena.
# Original Telescope code by Matthew L. Bendall (https://github.com/mlbendall/telescope)
#
# New code and modifications by Duane Storey (https://github.com/duanestorey) and Claude (Anthropic).
# Licensed under MIT License.

"""Feature records and GTF loading."""

import logging as lg
import os
import re
from collections import OrderedDict, namedtuple
from dataclasses import dataclass, field

from .. import MalformedFeatureAnnotation

GTFRow = namedtuple('GTFRow', ['chrom', 'source', 'feature', 'start', 'end', 'score', 'strand', 'frame', 'attribute'])

_ATTR_RE = re.compile(r'(\w+)\s+"(.+?)";')


@dataclass(frozen=True)
class Feature:
    """A TE or gene locus made of one or more intervals.

    Intervals are ``(chrom, start, end)`` tuples, 0-based and half-open.
    """
    id: str
    strand: str
    intervals: tuple
    is_te: bool = True
    type: str = 'exon'
    attributes: dict = field(default_factory=dict, compare=False, hash=False)

    @property
    def chroms(self):
        return {iv[0] for iv in self.intervals}

    def length(self):
        return sum(end - start for _chrom, start, end in merge_intervals(self.intervals))

    def aggregation_key(self, aggregateby=()):
        """Value(s) of the aggregation attributes joined with ':'.

        With no aggregation attributes the feature identifier is the key.
        """
        if not aggregateby:
            return self.id
        return ':'.join(str(self.attributes[a]) for a in aggregateby)


def merge_intervals(intervals):
    """Merge overlapping or touching ``(chrom, start, end)`` intervals."""
    merged = []
    for chrom, start, end in sorted(intervals):
        if merged and merged[-1][0] == chrom and start <= merged[-1][2]:
            merged[-1] = (chrom, merged[-1][1], max(end, merged[-1][2]))
        else:
            merged.append((chrom, start, end))
    return merged


def parse_attributes(attr_str):
    return dict(_ATTR_RE.findall(attr_str))


def load_features(gtf_file, attribute, is_te=True, feature_type='exon', aggregateby=()):
    """Load features from a GTF file.

    Rows sharing the same value for *attribute* are grouped into one feature
    (e.g. the exons of a gene). When *feature_type* is not None, only rows of
    that type are used.

    Args:
        gtf_file: Path or open file handle.
        attribute (str): GTF attribute holding the feature identifier.
        is_te (bool): Whether the features are transposable elements.
        feature_type (str): GTF feature type to keep, or None for all rows.
        aggregateby (tuple): Attributes that every feature must carry.

    Returns:
        list of :class:`Feature`
    """
    rows = OrderedDict()
    _opened = isinstance(gtf_file, (str, os.PathLike))
    fh = open(gtf_file) if _opened else gtf_file  # noqa: SIM115
    try:
        for rownum, line in enumerate(fh):
            if line.startswith('#') or not line.strip():
                continue
            f = GTFRow(*line.rstrip('\n').split('\t'))
            if feature_type is not None and f.feature != feature_type:
                continue
            attr = parse_attributes(f.attribute)
            if attribute not in attr:
                lg.warning(f'Skipping row {rownum}: missing attribute "{attribute}"')
                continue
            rows.setdefault(attr[attribute], []).append((f, attr))
    finally:
        if _opened:
            fh.close()

    features = []
    for fid, frows in rows.items():
        attrs = {}
        for _f, attr in frows:
            for k, v in attr.items():
                attrs.setdefault(k, v)
        strands = {f.strand for f, _attr in frows}
        features.append(
            Feature(
                id=fid,
                strand=strands.pop() if len(strands) == 1 else '.',
                intervals=tuple(merge_intervals((f.chrom, int(f.start) - 1, int(f.end)) for f, _attr in frows)),
                is_te=is_te,
                type=frows[0][0].feature,
                attributes=attrs,
            )
        )
    lg.debug(f'Loaded {len(features)} features from {getattr(gtf_file, "name", gtf_file)}')
    check_features(features, aggregateby)
    return features


def check_features(features, aggregateby=()):
    """Raise :class:`MalformedFeatureAnnotation` for an unusable feature set."""
    if not features:
        raise MalformedFeatureAnnotation('Feature annotation is empty')
    for a in aggregateby:
        missing = [f.id for f in features if a not in f.attributes]
        if missing:
            raise MalformedFeatureAnnotation(
                f'Aggregation attribute "{a}" missing from {len(missing)} feature(s), e.g. "{missing[0]}"'
            )
