# -*- coding: utf-8 -*-

# This file is part of Atena.
# Original Telescope code by Matthew L. Bendall (https://github.com/mlbendall/telescope)
#
# New code and modifications by Duane Storey (https://github.com/duanestorey) and Claude (Anthropic).
# Licensed under MIT License.

"""Reading alignment groups from collated SAM/BAM files.

All records for one read (or read pair) must appear consecutively in the
file, as produced by ``samtools collate`` or name sorting. Each group is
returned as plain Python objects so downstream code never touches pysam.
"""

import logging as lg
from collections import namedtuple
from dataclasses import dataclass, field

import numpy as np
import pysam

# Fragment codes
CODES = [
    ('SU', 'single_unmapped'),
    ('SM', 'single_mapped'),
    ('PM', 'pair_mapped'),
    ('PX', 'pair_mixed'),
    ('PU', 'pair_unmapped'),
]
CODE_INT = {t[0]: i for i, t in enumerate(CODES)}

# CIGAR operations
BAM_CSOFT_CLIP = 4
BAM_CHARD_CLIP = 5

AlignmentInfo = namedtuple('AlignmentInfo', ['aligner', 'has_nh', 'has_secondary', 'median_read_length', 'nrecords'])


@dataclass
class Alignment:
    """One alignment record and the signals used for filtering."""
    query_name: str
    ref_name: str = None
    blocks: list = field(default_factory=list)
    reference_start: int = -1
    next_reference_start: int = -1
    is_unmapped: bool = False
    is_reverse: bool = False
    is_secondary: bool = False
    is_paired: bool = False
    is_read2: bool = False
    is_proper_pair: bool = False
    read_length: int = 0
    clip_length: int = 0
    tags: dict = field(default_factory=dict)

    @classmethod
    def from_pysam(cls, aln):
        _clip = 0
        for op, length in aln.cigartuples or ():
            if op == BAM_CSOFT_CLIP or op == BAM_CHARD_CLIP:
                _clip += length
        return cls(
            query_name=aln.query_name,
            ref_name=None if aln.is_unmapped else aln.reference_name,
            blocks=[] if aln.is_unmapped else aln.get_blocks(),
            reference_start=aln.reference_start,
            next_reference_start=aln.next_reference_start,
            is_unmapped=aln.is_unmapped,
            is_reverse=aln.is_reverse,
            is_secondary=aln.is_secondary,
            is_paired=aln.is_paired,
            is_read2=aln.is_read2,
            is_proper_pair=aln.is_proper_pair,
            read_length=aln.infer_read_length() or aln.query_length or 0,
            clip_length=_clip,
            tags=dict(aln.get_tags()),
        )

    def get_tag(self, name, default=None):
        return self.tags.get(name, default)

    def has_tag(self, name):
        return name in self.tags

    @property
    def alnscore(self):
        return self.tags.get('AS')

    @property
    def edit_distance(self):
        return self.tags.get('NM')

    @property
    def alnlen(self):
        return sum(end - start for start, end in self.blocks)

    @property
    def strand(self):
        return '-' if self.is_reverse else '+'


@dataclass
class Fragment:
    """A mapped read, or a pair of mates aligned together.

    ``r2`` is None for single-end reads and for mates whose partner is
    unmapped or could not be paired.
    """
    r1: Alignment
    r2: Alignment = None

    @property
    def mates(self):
        return [a for a in (self.r1, self.r2) if a is not None]

    @property
    def is_pair(self):
        return self.r2 is not None

    @property
    def is_secondary(self):
        return self.r1.is_secondary

    @property
    def is_opposite_strand(self):
        return self.is_pair and self.r1.is_reverse != self.r2.is_reverse

    @property
    def alnscore(self):
        return sum(a.alnscore or 0 for a in self.mates)

    @property
    def alnlen(self):
        return sum(a.alnlen for a in self.mates)

    def strand(self, strand_mode=1):
        """Strand of the fragment.

        With ``strand_mode=1`` the fragment strand is the strand of the first
        mate, with ``strand_mode=2`` that of the second mate, and with
        ``strand_mode=0`` it is undefined (None).
        """
        if strand_mode == 0:
            return None
        first = self.r1
        if not first.is_paired:
            return first.strand
        # Strand of the first mate, inferred from whichever mate we hold
        flip = first.is_read2
        if strand_mode == 2:
            flip = not flip
        if flip:
            return '+' if first.is_reverse else '-'
        return first.strand


@dataclass
class AlignmentGroup:
    """All alignments (primary and secondary) of one read or read pair."""
    query_name: str
    alignments: list

    @property
    def is_paired(self):
        return any(a.is_paired for a in self.alignments)

    @property
    def mapped(self):
        return [a for a in self.alignments if not a.is_unmapped]

    @property
    def primary(self):
        return [a for a in self.alignments if not a.is_secondary]

    @property
    def secondary(self):
        return [a for a in self.alignments if a.is_secondary and not a.is_unmapped]

    @property
    def code(self):
        _primary = self.primary
        if not self.is_paired:
            return 'SU' if all(a.is_unmapped for a in _primary) else 'SM'
        _nmapped = sum(not a.is_unmapped for a in _primary)
        if _nmapped == 0:
            return 'PU'
        if _nmapped == 2 and all(a.is_proper_pair for a in _primary):
            return 'PM'
        return 'PX'

    @property
    def nh(self):
        """Value of the NH tag on the primary alignment(s), if any."""
        for a in self.primary:
            if a.has_tag('NH'):
                return int(a.get_tag('NH'))
        return None

    def fragments(self, single_end=False):
        """Mapped alignments paired up into fragments."""
        _mapped = self.mapped
        if single_end or not self.is_paired:
            return [Fragment(a) for a in _mapped]
        return pair_bundle(_mapped)


def pair_bundle(alns):
    """Pair mates by matching mate coordinates.

    A read 1 alignment is paired with the read 2 alignment whose position is
    its mate position (and vice versa) and that has the same secondary
    status. Alignments left unpaired become singleton fragments.
    """
    r1s = [a for a in alns if not a.is_read2]
    r2s = [a for a in alns if a.is_read2]
    ret = []
    for a in r1s:
        mate = None
        for b in r2s:
            if (
                b.ref_name == a.ref_name
                and b.is_secondary == a.is_secondary
                and b.reference_start == a.next_reference_start
                and a.reference_start == b.next_reference_start
            ):
                mate = b
                break
        if mate is not None:
            r2s.remove(mate)
        ret.append(Fragment(a, mate))
    ret.extend(Fragment(b) for b in r2s)
    return ret


def fetch_groups(samfile):
    """Yield lists of consecutive pysam records sharing a query name."""
    _buffer = []
    for aln in samfile.fetch(until_eof=True):
        if aln.is_supplementary:
            continue
        if _buffer and aln.query_name != _buffer[0].query_name:
            yield _buffer
            _buffer = []
        _buffer.append(aln)
    if _buffer:
        yield _buffer


def iter_alignment_groups(path, threads=1):
    """Lazily read :class:`AlignmentGroup` objects from a collated file.

    One pass only; reopen the file to iterate again.
    """
    with pysam.AlignmentFile(path, check_sq=False, threads=threads) as sf:
        for alns in fetch_groups(sf):
            yield AlignmentGroup(alns[0].query_name, [Alignment.from_pysam(a) for a in alns])


def aligner_name(header):
    """Name of the program that produced the alignments, from @PG lines.

    The first @PG record is the aligner for files written by BWA, STAR,
    bowtie2 and friends; later records are usually post-processing tools.
    """
    _pg = header.get('PG', [])
    if not _pg:
        return None
    return _pg[0].get('PN', _pg[0].get('ID'))


def inspect_alignments(path, nsample=10000):
    """Collect file-level information from the header and first records.

    Returns:
        AlignmentInfo with the aligner name, whether NH tags or secondary
        alignments were seen, and the median read length.
    """
    has_nh = has_secondary = False
    lengths = []
    nrec = 0
    with pysam.AlignmentFile(path, check_sq=False) as sf:
        _aligner = aligner_name(sf.header.to_dict())
        for aln in sf.fetch(until_eof=True):
            nrec += 1
            has_nh = has_nh or aln.has_tag('NH')
            has_secondary = has_secondary or aln.is_secondary
            if not aln.is_unmapped and not aln.is_secondary:
                lengths.append(aln.infer_read_length() or aln.query_length or 0)
            if nrec >= nsample:
                break
    _median = float(np.median(lengths)) if lengths else 0
    lg.debug(f'{path}: aligner={_aligner}, NH={has_nh}, secondary={has_secondary}, median length={_median}')
    return AlignmentInfo(_aligner, has_nh, has_secondary, _median, nrec)
