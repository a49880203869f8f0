#! /usr/bin/env python
# -*- coding: utf-8 -*-

# This file is part of Atena.
# Original Telescope code by Matthew L. Bendall (https://github.com/mlbendall/telescope)
#
# New code and modifications by Duane Storey (https://github.com/duanestorey) and Claude (Anthropic).
# Licensed under MIT License.

""" Main functionality of Atena

"""
import sys
import argparse

from atena import __version__
from .cli import quantify as cli_quantify
from .core.params import Strategy


USAGE = ''' %(prog)s <command> [<args>]

The quantification strategies are:
   ervmap         Count alignments passing the ERVmap filters
   telescope      Reassign multi-mapping fragments with the Telescope model
   tetranscripts  Distribute multi-mapping reads with the TEtranscripts EM

'''

DESCRIPTIONS = {
    Strategy.ERVMAP: 'Quantify TE expression by filtering alignments (ERVmap)',
    Strategy.TELESCOPE: 'Quantify TE expression by Bayesian reassignment (Telescope)',
    Strategy.TETRANSCRIPTS: 'Quantify TE expression by proportional EM (TEtranscripts)',
}


def main():
    if len(sys.argv) == 1:
        empty_parser = argparse.ArgumentParser(
            description='Quantification of transposable element expression',
            usage=USAGE,
        )
        empty_parser.print_help(sys.stderr)
        sys.exit(1)

    parser = argparse.ArgumentParser(
        description='Quantification of transposable element expression',
    )
    parser.add_argument('--version',
        action='version',
        version=__version__,
    )

    subparser = parser.add_subparsers(help='Sub-command help', dest='subcommand')

    for strategy in Strategy:
        _parser = subparser.add_parser(strategy.value,
            description=DESCRIPTIONS[strategy],
            formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        )
        cli_quantify.OPTION_CLASSES[strategy].add_arguments(_parser)
        _parser.set_defaults(func=lambda args, s=strategy: cli_quantify.run(args, s))

    args = parser.parse_args()
    if not hasattr(args, 'func'):
        parser.print_help(sys.stderr)
        sys.exit(1)
    args.func(args)

if __name__ == '__main__':
    main()
