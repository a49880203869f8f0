# -*- coding: utf-8 -*-

# This file is part of Atena.
# Original Telescope code by Matthew L. Bendall (https://github.com/mlbendall/telescope)
#
# New code and modifications by Duane Storey (https://github.com/duanestorey) and Claude (Anthropic).
# Licensed under MIT License.

"""Quantification strategies and their immutable configuration."""

from dataclasses import dataclass, fields
from enum import Enum


class Strategy(str, Enum):
    ERVMAP = 'ervmap'
    TELESCOPE = 'telescope'
    TETRANSCRIPTS = 'tetranscripts'

    @property
    def uses_em(self):
        return self is not Strategy.ERVMAP


REASSIGN_MODES = ['exclude', 'choose', 'average', 'conf', 'unique', 'all']
GENE_COUNT_MODES = ['all', 'ervmap']


@dataclass(frozen=True)
class StrategyConfig:
    """Options recognised by :func:`atena.core.model.quantify`.

    Use :meth:`for_strategy` to get the defaults of a given strategy; the
    field defaults below are only the common baseline.
    """
    strategy: Strategy = Strategy.TELESCOPE
    single_end: bool = True
    strand_mode: int = 1
    ignore_strand: bool = False
    fragments: bool = False
    aggregateby: tuple = ()
    # ERVmap filters
    max_mismatch_rate: float = 0.02
    suboptimal_alignment_tag: str = 'auto'
    suboptimal_alignment_cutoff: float = 5
    gene_count_mode: str = 'all'
    bwa_aligners: tuple = ('bwa',)
    # Overlap
    min_overlap_fraction: float = 0.0
    # EM
    pi_prior: int = 0
    theta_prior: int = 0
    em_epsilon: float = 1e-7
    max_iter: int = 100
    tolerance: float = 1e-4
    accelerate: bool = True
    reassign_mode: str = 'exclude'
    conf_prob: float = 0.9
    seed: int = None
    # Execution
    ncpu: int = 1

    def __post_init__(self):
        object.__setattr__(self, 'strategy', Strategy(self.strategy))
        object.__setattr__(self, 'aggregateby', tuple(self.aggregateby or ()))
        object.__setattr__(self, 'bwa_aligners', tuple(self.bwa_aligners or ()))
        if self.strand_mode not in (0, 1, 2):
            raise ValueError(f'strand_mode must be 0, 1 or 2, got {self.strand_mode}')
        if not 0 <= self.max_mismatch_rate <= 1:
            raise ValueError(f'max_mismatch_rate must be in [0, 1], got {self.max_mismatch_rate}')
        if not 0 <= self.min_overlap_fraction <= 1:
            raise ValueError(f'min_overlap_fraction must be in [0, 1], got {self.min_overlap_fraction}')
        if self.gene_count_mode not in GENE_COUNT_MODES:
            raise ValueError(f'gene_count_mode must be one of {GENE_COUNT_MODES}')
        if self.reassign_mode not in REASSIGN_MODES:
            raise ValueError(f'reassign_mode must be one of {REASSIGN_MODES}')
        if self.reassign_mode == 'conf' and self.conf_prob <= 0.5:
            raise ValueError(f'Confidence threshold ({self.conf_prob}) must be > 0.5')
        if self.pi_prior < 0 or self.theta_prior < 0:
            raise ValueError('pi_prior and theta_prior must be non-negative')
        if self.max_iter < 1:
            raise ValueError('max_iter must be a positive integer')
        if self.ncpu < 1:
            raise ValueError('ncpu must be a positive integer')

    @property
    def convergence_tol(self):
        """Tolerance on the norm of the parameter change between iterations."""
        if self.strategy is Strategy.TETRANSCRIPTS:
            return self.tolerance
        return self.em_epsilon

    @property
    def check_strand(self):
        """Whether feature strand is enforced; strand_mode only applies to pairs."""
        return not self.ignore_strand and (self.single_end or self.strand_mode != 0)

    def replace(self, **kwargs):
        d = {f.name: getattr(self, f.name) for f in fields(self)}
        d.update(kwargs)
        return type(self)(**d)

    @classmethod
    def for_strategy(cls, strategy, **kwargs):
        """Configuration with the defaults of *strategy*, updated by *kwargs*."""
        strategy = Strategy(strategy)
        d = dict(STRATEGY_DEFAULTS[strategy])
        d.update(kwargs)
        if strategy is Strategy.ERVMAP and 'fragments' not in kwargs:
            d['fragments'] = not d['single_end']
        return cls(strategy=strategy, **d)


STRATEGY_DEFAULTS = {
    Strategy.ERVMAP: dict(
        single_end=False,
        ignore_strand=True,
        max_mismatch_rate=0.02,
        suboptimal_alignment_tag='auto',
        suboptimal_alignment_cutoff=5,
        gene_count_mode='all',
    ),
    Strategy.TELESCOPE: dict(
        single_end=True,
        ignore_strand=False,
        fragments=False,
        min_overlap_fraction=0.2,
        pi_prior=0,
        theta_prior=0,
        em_epsilon=1e-7,
        max_iter=100,
        reassign_mode='exclude',
    ),
    Strategy.TETRANSCRIPTS: dict(
        single_end=False,
        ignore_strand=False,
        fragments=True,
        tolerance=1e-4,
        max_iter=100,
    ),
}
