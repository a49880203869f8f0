# -*- coding: utf-8 -*-

# This file is part of Atena.
# Original Telescope code by Matthew L. Bendall (https://github.com/mlbendall/telescope)
#
# New code and modifications by Duane Storey (https://github.com/duanestorey) and Claude (Anthropic).
# Licensed under MIT License.

"""Tests for read classification and the gene/TE precedence rule."""

import pytest

from atena import MissingMultiplicityInfo
from atena.alignment.fragments import Alignment, AlignmentGroup, AlignmentInfo
from atena.annotation import OverlapIndex
from atena.core.classifier import AlignmentClassifier, precedence
from atena.core.params import StrategyConfig

from .helpers import gene, te

INFO = AlignmentInfo('STAR', True, True, 50, 100)


def aln(start, nh=None, secondary=False, reverse=False):
    tags = {'AS': 50}
    if nh is not None:
        tags['NH'] = nh
    return Alignment('q', 'chr1', [(start, start + 50)], read_length=50, is_secondary=secondary,
                     is_reverse=reverse, tags=tags)


@pytest.fixture
def index():
    return OverlapIndex([
        te('TE1', 100, 200),
        te('TE2', 1000, 1100),
        gene('G1', 0, 500),
        te('TE_minus', 5000, 5100, strand='-'),
    ])


@pytest.fixture
def config():
    return StrategyConfig.for_strategy('tetranscripts', single_end=True)


class TestPrecedence:
    def test_unique_goes_to_gene(self):
        assert precedence(True, {'TE1'}, {'G1'}) == {'G1'}

    def test_multi_goes_to_te(self):
        assert precedence(False, {'TE1'}, {'G1'}) == {'TE1'}

    def test_single_kind(self):
        assert precedence(True, {'TE1'}, set()) == {'TE1'}
        assert precedence(False, set(), {'G1'}) == {'G1'}
        assert precedence(True, set(), set()) == set()


class TestAlignmentClassifier:
    def test_missing_multiplicity(self, index, config):
        info = AlignmentInfo('STAR', False, False, 50, 100)
        with pytest.raises(MissingMultiplicityInfo):
            AlignmentClassifier(index, config, info, require_multiplicity=True)
        # Without gene features the information is not needed
        AlignmentClassifier(index, config, info, require_multiplicity=False)

    def test_multiplicity_from_nh(self, index, config):
        c = AlignmentClassifier(index, config, INFO)
        cg = c.classify(AlignmentGroup('q', [aln(120, nh=3)]))
        assert cg.multiplicity == 3
        assert not cg.is_unique

    def test_multiplicity_from_secondary(self, index, config):
        c = AlignmentClassifier(index, config, INFO)
        cg = c.classify(AlignmentGroup('q', [aln(120), aln(1020, secondary=True)]))
        assert cg.multiplicity == 2
        assert cg.candidates == {'TE1', 'G1', 'TE2'}

    def test_unique(self, index, config):
        c = AlignmentClassifier(index, config, INFO)
        cg = c.classify(AlignmentGroup('q', [aln(120, nh=1)]))
        assert cg.is_unique
        assert c.allowed_features(cg) == {'G1'}

    def test_multi_prefers_te(self, index, config):
        c = AlignmentClassifier(index, config, INFO)
        cg = c.classify(AlignmentGroup('q', [aln(120, nh=2), aln(1020, nh=2, secondary=True)]))
        assert c.allowed_features(cg) == {'TE1', 'TE2'}
        assert c.allowed_features(cg, apply_precedence=False) == {'TE1', 'TE2', 'G1'}
        assert c.allowed_features(cg, primary_only=True) == {'TE1'}

    def test_min_overlap(self, index):
        config = StrategyConfig.for_strategy('telescope')
        c = AlignmentClassifier(index, config, INFO)
        # 20% of the median read length
        assert c.min_overlap == 10
        cg = c.classify(AlignmentGroup('q', [aln(192, nh=1)]))
        assert 'TE1' not in cg.candidates
        cg = c.classify(AlignmentGroup('q', [aln(185, nh=1)]))
        assert 'TE1' in cg.candidates

    def test_strand(self, index, config):
        c = AlignmentClassifier(index, config, INFO)
        assert c.classify(AlignmentGroup('q', [aln(5020, nh=1)])).candidates == set()
        assert c.classify(AlignmentGroup('q', [aln(5020, nh=1, reverse=True)])).candidates == {'TE_minus'}

    def test_ignore_strand(self, index, config):
        c = AlignmentClassifier(index, config.replace(ignore_strand=True), INFO)
        assert c.classify(AlignmentGroup('q', [aln(5020, nh=1)])).candidates == {'TE_minus'}

    def test_strand_mode_zero_single_end(self, index, config):
        config = config.replace(strand_mode=0)
        assert config.check_strand
        assert not StrategyConfig.for_strategy('tetranscripts', strand_mode=0).check_strand
        c = AlignmentClassifier(index, config, INFO)
        assert c.classify(AlignmentGroup('q', [aln(5020, nh=1)])).candidates == set()
        assert c.classify(AlignmentGroup('q', [aln(5020, nh=1, reverse=True)])).candidates == {'TE_minus'}

    def test_best_feature(self, index, config):
        c = AlignmentClassifier(index, config, INFO)
        cg = c.classify(AlignmentGroup('q', [aln(120, nh=1)]))
        h = cg.hits[0]
        assert h.best_feature({'TE1', 'G1'}) in {'TE1', 'G1'}
        assert h.best_feature({'TE1'}) == 'TE1'
        assert h.best_feature({'TE2'}) is None

    def test_signals_with_scorer(self, index, config):
        from atena.core.filters import SuboptimalScorer
        c = AlignmentClassifier(index, config, INFO, scorer=SuboptimalScorer())
        cg = c.classify(AlignmentGroup('q', [aln(120, nh=1)]))
        assert len(cg.hits[0].mate_signals) == 1
        assert cg.hits[0].mate_signals[0].alnscore == 50

    def test_signals_primary_only(self, index, config):
        from atena.core.filters import SuboptimalScorer
        c = AlignmentClassifier(index, config, INFO, scorer=SuboptimalScorer('ZS', required=True))
        primary = aln(120, nh=2)
        primary.tags['ZS'] = 30
        cg = c.classify(AlignmentGroup('q', [primary, aln(1020, nh=2, secondary=True)]))
        assert cg.hits[0].mate_signals[0].suboptimal == 30
        assert cg.hits[1].mate_signals == []
