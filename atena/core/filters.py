# -*- coding: utf-8 -*-

# This file is part of Atena.
# Original Telescope code by Matthew L. Bendall (https://github.com/mlbendall/telescope)
#
# New code and modifications by Duane Storey (https://github.com/duanestorey) and Claude (Anthropic).
# Licensed under MIT License.

"""ERVmap alignment filters.

Three filters are applied in order to each alignment, stopping at the first
one that rejects it (Tokuyama et al. 2018):

1. clipping: (hard + soft clipped bases) / read length >= max mismatch rate
2. edit distance: NM / read length >= max mismatch rate
3. suboptimal alignment: AS - suboptimal AS < cutoff

The suboptimal score comes from a tag (``XS`` for BWA) or, when the tag is
not usable, from the best score among the secondary alignments of the read.
"""

import logging as lg
from collections import namedtuple

from .. import MissingRequiredTag

AlignmentSignals = namedtuple('AlignmentSignals', ['clip_ratio', 'edit_ratio', 'alnscore', 'suboptimal'])

CLIP, EDIT, SUBOPTIMAL = 'clip', 'edit', 'suboptimal'


def resolve_suboptimal_tag(tag, aligner, bwa_aligners=('bwa',)):
    """Decide which tag holds the suboptimal alignment score.

    Args:
        tag (str): "auto", "none" or a tag name.
        aligner (str): Aligner name from the file header.
        bwa_aligners: Aligner names whose ``XS`` tag is a suboptimal score.

    Returns:
        (tag_name, required): *tag_name* is None when the score must be
        computed from secondary alignments; *required* is True when a missing
        tag is an error.
    """
    if tag == 'none':
        return None, False
    if tag == 'auto':
        _allowed = {a.lower() for a in bwa_aligners}
        if aligner is not None and aligner.lower() in _allowed:
            return 'XS', False
        lg.info(f'Aligner "{aligner}" is not BWA; suboptimal scores taken from secondary alignments')
        return None, False
    return tag, True


def secondary_best_score(aln, group):
    """Best alignment score among the secondary alignments of the same mate."""
    _scores = [
        s.alnscore for s in group.secondary
        if s is not aln and s.is_read2 == aln.is_read2 and s.alnscore is not None
    ]
    return max(_scores) if _scores else None


class SuboptimalScorer:
    def __init__(self, tag=None, required=False):
        self.tag = tag
        self.required = required

    def __call__(self, aln, group):
        if self.tag is not None:
            if aln.has_tag(self.tag):
                return aln.get_tag(self.tag)
            if self.required:
                raise MissingRequiredTag(self.tag, aln.query_name)
        return secondary_best_score(aln, group)


def alignment_signals(aln, group, scorer):
    _len = aln.read_length or aln.alnlen
    _nm = aln.edit_distance
    return AlignmentSignals(
        clip_ratio=aln.clip_length / _len if _len else 0.0,
        edit_ratio=_nm / _len if (_len and _nm is not None) else 0.0,
        alnscore=aln.alnscore,
        suboptimal=scorer(aln, group),
    )


class FilterEngine:
    """Ordered, short-circuiting filter chain."""

    def __init__(self, max_mismatch_rate=0.02, suboptimal_cutoff=5):
        self.max_mismatch_rate = max_mismatch_rate
        self.suboptimal_cutoff = suboptimal_cutoff

    def failed_filter(self, sig):
        """Name of the first filter rejecting the alignment, or None."""
        if sig.clip_ratio >= self.max_mismatch_rate:
            return CLIP
        if sig.edit_ratio >= self.max_mismatch_rate:
            return EDIT
        if self.suboptimal_cutoff is not None and sig.suboptimal is not None and sig.alnscore is not None:
            if sig.alnscore - sig.suboptimal < self.suboptimal_cutoff:
                return SUBOPTIMAL
        return None

    def passes(self, sig):
        return self.failed_filter(sig) is None

    @staticmethod
    def fragment_passes(mate_passes, fragments):
        """Whether a pair survives given the per-mate results.

        Both mates must pass under strict pairing (``fragments=False``);
        either mate is enough under the loose policy.
        """
        return any(mate_passes) if fragments else all(mate_passes)
