# -*- coding: utf-8 -*-

# This file is part of Atena.
# Original Telescope code by Matthew L. Bendall (https://github.com/mlbendall/telescope)
#
# New code and modifications by Duane Storey (https://github.com/duanestorey) and Claude (Anthropic).
# Licensed under MIT License.

"""Tests for the command line interface."""

import argparse
import io
import sys

import pandas as pd
import pytest

from atena.__main__ import main
from atena.cli.console import Console, Stopwatch
from atena.cli.quantify import ERVmapOptions, TelescopeOptions, TEtranscriptsOptions
from atena.core.params import Strategy
from atena.core.reporter import QuantificationResult
from atena.core.squarem import FitInfo

from .helpers import read_pair

GTF = (
    'chr1\trmsk\texon\t101\t1000\t.\t+\t.\tlocus "TE1"; repName "ROO_LTR";\n'
    'chr1\trmsk\texon\t5001\t6000\t.\t+\t.\tlocus "TE2"; repName "ROO_LTR";\n'
)


def parse(option_class, argv):
    parser = argparse.ArgumentParser()
    option_class.add_arguments(parser)
    return option_class(parser.parse_args(argv))


class TestOptions:
    def test_strategy_defaults(self):
        opts = parse(TelescopeOptions, ['a.bam', '--te_gtf', 'te.gtf'])
        config = opts.strategy_config()
        assert config.strategy is Strategy.TELESCOPE
        assert config.single_end
        assert config.min_overlap_fraction == 0.2
        assert config.em_epsilon == 1e-7

    def test_boolean_override(self):
        opts = parse(ERVmapOptions, ['a.bam', '--te_gtf', 'te.gtf', '--single_end', '--no-ignore_strand'])
        config = opts.strategy_config()
        assert config.single_end
        assert not config.ignore_strand
        assert not config.fragments

    def test_ervmap_options(self):
        opts = parse(ERVmapOptions, ['a.bam', 'b.bam', '--te_gtf', 'te.gtf', '--bwa_aligners', 'bwa', 'bwa-mem2',
                                     '--aggregateby', 'repName'])
        config = opts.strategy_config()
        assert opts.samfiles == ['a.bam', 'b.bam']
        assert config.bwa_aligners == ('bwa', 'bwa-mem2')
        assert config.aggregateby == ('repName',)
        assert not config.single_end
        assert config.fragments

    def test_tetranscripts_options(self):
        opts = parse(TEtranscriptsOptions, ['a.bam', '--te_gtf', 'te.gtf', '--no_accelerate', '--tolerance', '1e-6'])
        config = opts.strategy_config()
        assert not config.accelerate
        assert config.tolerance == 1e-6
        assert config.convergence_tol == 1e-6

    def test_outfile_path(self):
        opts = parse(TelescopeOptions, ['a.bam', '--te_gtf', 'te.gtf', '--outdir', 'out', '--exp_tag', 'x'])
        assert opts.outfile_path('counts.tsv').endswith('x-counts.tsv')

    def test_suboptimal_cutoff_disabled(self):
        for value in ('none', 'NA'):
            opts = parse(ERVmapOptions, ['a.bam', '--te_gtf', 'te.gtf', '--suboptimal_alignment_cutoff', value])
            assert opts.strategy_config().suboptimal_alignment_cutoff is None
        opts = parse(ERVmapOptions, ['a.bam', '--te_gtf', 'te.gtf', '--suboptimal_alignment_cutoff', '3'])
        assert opts.strategy_config().suboptimal_alignment_cutoff == 3
        opts = parse(ERVmapOptions, ['a.bam', '--te_gtf', 'te.gtf'])
        assert opts.strategy_config().suboptimal_alignment_cutoff == 5

    def test_unset_options_keep_strategy_defaults(self):
        opts = parse(ERVmapOptions, ['a.bam', '--te_gtf', 'te.gtf'])
        assert 'single_end' not in opts.option_defaults()
        assert 'max_mismatch_rate' in opts.option_defaults()
        assert not opts.strategy_config().single_end


class TestConsole:
    @pytest.fixture
    def result(self):
        return QuantificationResult(
            counts=pd.DataFrame({'s1': [3.0]}, index=['TE1']),
            failures={'s2': 'OSError: missing'},
            fitinfo={'s1': FitInfo(converged=True, iterations=12)},
            run_info={'s1': {'total_fragments': 1500}, 's2': {}},
        )

    def test_samples(self, result):
        out = io.StringIO()
        Console(stream=out).samples(result)
        lines = out.getvalue().splitlines()
        assert 'converged after 12 iterations' in lines[1]
        assert '1,500 fragments' in lines[1]
        assert 'FAILED' in lines[2]

    def test_quiet(self, result):
        out = io.StringIO()
        console = Console(level=Console.QUIET, stream=out)
        console.banner('0', 'telescope')
        console.samples(result)
        console.verbose('hidden')
        assert out.getvalue() == ''

    def test_stopwatch(self):
        sw = Stopwatch()
        with sw.stage('a'):
            pass
        with pytest.raises(RuntimeError):
            with sw.stage('b'):
                raise RuntimeError
        assert [name for name, _ in sw.timings] == ['a', 'b']
        out = io.StringIO()
        Console(stream=out).timing_table(sw)
        assert 'Total' in out.getvalue()


def test_run_ervmap(samfile, tmp_path, monkeypatch):
    sam = samfile(read_pair('p1', 201, 351, tags=('NH:i:1', 'AS:i:50', 'NM:i:0')), aligner='bwa')
    gtf = tmp_path / 'te.gtf'
    gtf.write_text(GTF)
    outdir = tmp_path / 'out'
    monkeypatch.setattr(sys, 'argv', [
        'atena', 'ervmap', sam, '--te_gtf', str(gtf), '--outdir', str(outdir), '--exp_tag', 'run',
        '--aggregateby', 'repName', '--quiet',
    ])
    main()
    counts = pd.read_csv(outdir / 'run-counts.tsv', sep='\t', index_col=0)
    assert counts.loc['ROO_LTR', 'sample'] == 2
    with open(outdir / 'run-run_stats.tsv') as fh:
        assert fh.readline().startswith('## RunInfo')


def test_version(monkeypatch, capsys):
    monkeypatch.setattr(sys, 'argv', ['atena', '--version'])
    with pytest.raises(SystemExit):
        main()
    from atena import __version__
    assert __version__ in capsys.readouterr().out
