# -*- coding: utf-8 -*-

# This file is part of Atena.
# Original Telescope code by Matthew L. Bendall (https://github.com/mlbendall/telescope)
#
# New code and modifications by Duane Storey (https://github.com/duanestorey) and Claude (Anthropic).
# Licensed under MIT License.

"""Helpers building small SAM files and features for the tests."""

import re

from atena.annotation import Feature

CHROM_LEN = 1000000

# SAM flags
PAIRED = 0x1
PROPER = 0x2
UNMAPPED = 0x4
MATE_UNMAPPED = 0x8
REVERSE = 0x10
MATE_REVERSE = 0x20
READ1 = 0x40
READ2 = 0x80
SECONDARY = 0x100


def _query_length(cigar):
    return sum(int(n) for n, op in re.findall(r'(\d+)([MIS=X])', cigar))


def sam_record(qname, flag, pos=1, cigar='50M', rname='chr1', mpos=0, mname=None, tags=()):
    """One SAM line. *pos* and *mpos* are 1-based, zero for unset."""
    if flag & UNMAPPED:
        rname, pos, cigar = ('*', 0, '*') if mname is None else (mname, mpos, '*')
    _rnext = '*' if not flag & PAIRED or rname == '*' else ('=' if mname is None or mname == rname else mname)
    _seq = 'A' * _query_length(cigar) if cigar != '*' else 'A' * 50
    return '\t'.join([
        qname, str(flag), rname, str(pos), '255', cigar, _rnext, str(mpos), '0',
        _seq, '*', *tags,
    ])


def single_read(qname, pos, cigar='50M', tags=(), secondary=False, reverse=False):
    flag = (SECONDARY if secondary else 0) | (REVERSE if reverse else 0)
    return sam_record(qname, flag, pos, cigar, tags=tags)


def read_pair(qname, pos1, pos2, cigar='50M', tags=(), secondary=False, tags2=None):
    """Properly paired mates, read 1 forward and read 2 reverse."""
    _sec = SECONDARY if secondary else 0
    f1 = PAIRED | PROPER | READ1 | MATE_REVERSE | _sec
    f2 = PAIRED | PROPER | READ2 | REVERSE | _sec
    return [
        sam_record(qname, f1, pos1, cigar, mpos=pos2, tags=tags),
        sam_record(qname, f2, pos2, cigar, mpos=pos1, tags=tags if tags2 is None else tags2),
    ]


def write_sam(path, records, aligner='STAR', chroms=('chr1',)):
    """Write a collated SAM file with an @PG line naming *aligner*."""
    lines = ['@HD\tVN:1.6\tSO:unsorted']
    lines += [f'@SQ\tSN:{c}\tLN:{CHROM_LEN}' for c in chroms]
    if aligner is not None:
        lines.append(f'@PG\tID:{aligner}\tPN:{aligner}\tVN:1.0')
    lines += records
    with open(path, 'w') as outh:
        outh.write('\n'.join(lines) + '\n')
    return str(path)


def te(fid, start, end, strand='+', chrom='chr1', **attrs):
    """TE feature on 0-based half-open coordinates."""
    return Feature(fid, strand, ((chrom, start, end),), is_te=True, attributes=attrs)


def gene(fid, start, end, strand='+', chrom='chr1', **attrs):
    return Feature(fid, strand, ((chrom, start, end),), is_te=False, type='exon', attributes=attrs)
