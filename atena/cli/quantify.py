# -*- coding: utf-8 -*-

# This file is part of Atena.
# Original Telescope code by Matthew L. Bendall (https://github.com/mlbendall/telescope)
#
# New code and modifications by Duane Storey (https://github.com/duanestorey) and Claude (Anthropic).
# Licensed under MIT License.

""" Atena quantification subcommands

"""
import os
import sys
import logging as lg
from dataclasses import fields
from time import time

from . import SubcommandOptions, configure_logging, format_minutes as fmtmins
from .console import Stopwatch
from .. import AtenaError, __version__
from ..annotation import load_features
from ..core.model import quantify
from ..core.params import Strategy, StrategyConfig
from ..core.reporter import output_report

_COMMON_INPUT = """
    - Input Options:
        - samfiles:
            positional: True
            nargs: "+"
            help: Alignment files (SAM or BAM), one per sample. Files must be
                  collated so that all alignments for a read pair appear
                  sequentially in the file.
        - te_gtf:
            required: True
            help: Annotation of transposable elements (GTF format).
        - gene_gtf:
            help: Optional gene annotation (GTF format). Genes are quantified
                  together with TEs.
        - te_attribute:
            default: locus
            help: GTF attribute that defines a TE locus. GTF rows that share
                  the same value are considered part of the same locus.
        - gene_attribute:
            default: gene_id
            help: GTF attribute that defines a gene.
        - feature_type:
            default: exon
            help: GTF feature type (third column) to load.
        - aggregateby:
            nargs: "*"
            default: []
            help: TE attributes whose values define the rows of the counts
                  table (e.g. repName). By default each locus is one row.
        - ncpu:
            default: 1
            type: int
            help: Number of samples processed in parallel.
    - Reporting Options:
        - quiet:
            action: store_true
            help: Silence (most) output.
        - verbose:
            action: store_true
            help: Show detailed progress including EM iterations.
        - debug:
            action: store_true
            help: Print debug messages.
        - logfile:
            type: argparse.FileType('w')
            help: Log output to this file.
        - outdir:
            default: .
            help: Output directory.
        - exp_tag:
            default: atena
            help: Experiment tag
    - Alignment Options:
        - single_end:
            action: BooleanOptionalAction
            help: Treat every alignment as a single read. Defaults depend on
                  the quantification strategy.
        - strand_mode:
            type: int
            default: 1
            choices:
                - 0
                - 1
                - 2
            help: Strand of a fragment. 1 - strand of the first mate, 2 -
                  strand of the second mate, 0 - unstranded.
        - ignore_strand:
            action: BooleanOptionalAction
            help: Count overlaps regardless of feature strand.
        - fragments:
            action: BooleanOptionalAction
            help: Count mates without a partner (and, for ERVmap, each mate
                  separately).
"""

_ERVMAP_OPTS = """
    - ERVmap Filters:
        - max_mismatch_rate:
            type: float
            default: 0.02
            help: Maximum fraction of clipped bases, and of mismatches, per
                  read length.
        - suboptimal_alignment_tag:
            default: auto
            help: Tag holding the suboptimal alignment score. "auto" uses XS
                  for BWA alignments and secondary alignments otherwise;
                  "none" always uses secondary alignments.
        - suboptimal_alignment_cutoff:
            type: float_or_none
            default: 5
            help: Minimum difference between the alignment score and the
                  suboptimal alignment score; "none" or "NA" disables the
                  suboptimal alignment filter.
        - gene_count_mode:
            default: all
            choices:
                - all
                - ervmap
            help: '"all" counts every primary alignment on a gene; "ervmap"
                  filters gene alignments like TE alignments.'
        - bwa_aligners:
            nargs: "+"
            default:
                - bwa
            help: Aligner names (from @PG) whose XS tag is a suboptimal score.
"""

_EM_OPTS = """
    - Model Parameters:
        - max_iter:
            type: int
            default: 100
            help: EM Algorithm maximum iterations
        - no_accelerate:
            action: store_true
            help: Plain EM iterations instead of SQUAREM.
"""

_TELESCOPE_OPTS = _EM_OPTS + """
        - min_overlap_fraction:
            type: float
            default: 0.2
            help: Minimum overlap with a feature, as a fraction of the median
                  read length.
        - pi_prior:
            type: int
            default: 0
            help: Prior on pi. Equivalent to adding n unique reads.
        - theta_prior:
            type: int
            default: 0
            help: Prior on theta. Equivalent to adding n non-unique reads.
        - em_epsilon:
            type: float
            default: 1e-7
            help: EM Algorithm Epsilon cutoff
        - reassign_mode:
            default: exclude
            choices:
                - exclude
                - choose
                - average
                - conf
                - unique
                - all
            help: >
                  Reassignment mode. "exclude" - fragments with multiple best
                  assignments are excluded from the final counts; "choose" -
                  the best assignment is randomly chosen; "average" - the
                  fragment is divided evenly among the best assignments;
                  "conf" - only assignments exceeding --conf_prob count;
                  "unique" - only uniquely aligned reads are included; "all" -
                  every alignment counts once.
        - conf_prob:
            type: float
            default: 0.9
            help: Minimum probability for high confidence assignment.
        - seed:
            type: int
            help: Random seed for the "choose" reassignment mode.
"""

_TETRANSCRIPTS_OPTS = _EM_OPTS + """
        - tolerance:
            type: float
            default: 1e-4
            help: EM convergence tolerance.
"""


class QuantifyOptions(SubcommandOptions):
    strategy = None

    def __init__(self, args):
        super().__init__(args)
        self.version = __version__

    def outfile_path(self, suffix):
        basename = '%s-%s' % (self.exp_tag, suffix)
        return os.path.join(self.outdir, basename)

    def strategy_config(self):
        """Immutable configuration from the parsed options."""
        _names = {f.name for f in fields(StrategyConfig)}
        _defaults = self.option_defaults()
        kw = {}
        for k in self.opt_names:
            v = getattr(self, k, None)
            # None is "unset" only for options without a default
            if k in _names and (v is not None or k in _defaults):
                kw[k] = v
        kw['aggregateby'] = tuple(kw.get('aggregateby', ()))
        if 'bwa_aligners' in kw:
            kw['bwa_aligners'] = tuple(kw['bwa_aligners'])
        if getattr(self, 'no_accelerate', False):
            kw['accelerate'] = False
        return StrategyConfig.for_strategy(self.strategy, **kw)


class ERVmapOptions(QuantifyOptions):
    strategy = Strategy.ERVMAP
    OPTS = _COMMON_INPUT + _ERVMAP_OPTS


class TelescopeOptions(QuantifyOptions):
    strategy = Strategy.TELESCOPE
    OPTS = _COMMON_INPUT + _TELESCOPE_OPTS


class TEtranscriptsOptions(QuantifyOptions):
    strategy = Strategy.TETRANSCRIPTS
    OPTS = _COMMON_INPUT + _TETRANSCRIPTS_OPTS


OPTION_CLASSES = {
    Strategy.ERVMAP: ERVmapOptions,
    Strategy.TELESCOPE: TelescopeOptions,
    Strategy.TETRANSCRIPTS: TEtranscriptsOptions,
}


def run(args, strategy):
    """Load annotations, quantify every sample and write the reports.

    Args:
        args: Parsed argparse namespace.
        strategy: :class:`Strategy` of the subcommand.
    """
    opts = OPTION_CLASSES[Strategy(strategy)](args)
    console = configure_logging(opts)
    lg.info('\n{}\n'.format(opts))
    total_time = time()
    sw = Stopwatch()

    try:
        config = opts.strategy_config()
    except ValueError as e:
        lg.error(str(e))
        sys.exit(2)

    console.banner(opts.version, config.strategy.value)
    console.section('Input')
    console.item('Samples', len(opts.samfiles))
    console.item('TE GTF', os.path.basename(opts.te_gtf))
    if opts.gene_gtf:
        console.item('Gene GTF', os.path.basename(opts.gene_gtf))
    console.blank()

    lg.info('Loading annotation...')
    try:
        with sw.stage('Annotation'):
            te_features = load_features(opts.te_gtf, opts.te_attribute, True, opts.feature_type, config.aggregateby)
            gene_features = None
            if opts.gene_gtf:
                gene_features = load_features(opts.gene_gtf, opts.gene_attribute, False, opts.feature_type)
    except (AtenaError, OSError) as e:
        lg.error(f'Unable to load annotation: {e}')
        sys.exit(1)
    console.verbose('Loaded {:,} TE and {:,} gene features'.format(len(te_features), len(gene_features or ())))

    lg.info('Quantifying samples...')
    with sw.stage('Quantification'):
        result = quantify(opts.samfiles, te_features, gene_features, config)
    console.samples(result)

    os.makedirs(opts.outdir, exist_ok=True)
    _counts_file = opts.outfile_path('counts.tsv')
    _stats_file = opts.outfile_path('run_stats.tsv')
    output_report(result, _counts_file, _stats_file,
                  run_header={'version': opts.version, 'strategy': config.strategy.value})
    console.outputs(_counts_file, _stats_file)
    console.timing_table(sw)

    lg.info("atena %s complete (%s)" % (config.strategy.value, fmtmins(time() - total_time)))
    if result.failures and not result.samples:
        sys.exit(1)
