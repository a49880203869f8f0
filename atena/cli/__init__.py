# -*- coding: utf-8 -*-

# This file is part of Atena.
# Original Telescope code by Matthew L. Bendall (https://github.com/mlbendall/telescope)
#
# New code and modifications by Duane Storey (https://github.com/duanestorey) and Claude (Anthropic).
# Licensed under MIT License.

"""Option handling shared by the quantification subcommands.

Options are declared as YAML blocks (group -> option -> argparse keywords)
so that the three strategies can share most of their definitions.
"""

import argparse
import logging
from collections import OrderedDict

import yaml

from .console import Console


def float_or_none(value):
    """Float, or None for "none" and "NA" (option disabled)."""
    if str(value).lower() in ('none', 'na'):
        return None
    return float(value)


# Only these names may appear as "type" and "action" in the YAML blocks
_SAFE_TYPES = {
    'int': int,
    'float': float,
    'float_or_none': float_or_none,
    'str': str,
    "argparse.FileType('w')": argparse.FileType('w'),
}

_SAFE_ACTIONS = {
    'store_true': 'store_true',
    'BooleanOptionalAction': argparse.BooleanOptionalAction,
}


def _parse_yaml_opts(opts_yaml):
    """OrderedDict of group name -> OrderedDict of option name -> keywords."""
    groups = OrderedDict()
    for grp in yaml.load(opts_yaml, Loader=yaml.SafeLoader):
        grp_name, args = list(grp.items())[0]
        groups[grp_name] = OrderedDict(list(arg.items())[0] for arg in args)
    return groups


def _argparse_kwargs(arg_name, arg_d):
    """Flag and keyword arguments for ``add_argument``."""
    _d = dict(arg_d)
    if _d.pop('positional', False):
        flag = arg_name
    else:
        flag = f'-{arg_name}' if len(arg_name) == 1 else f'--{arg_name}'
    if 'type' in _d:
        if _d['type'] not in _SAFE_TYPES:
            raise ValueError(
                f"Unsupported type '{_d['type']}' in CLI option '{arg_name}'. "
                f'Allowed: {list(_SAFE_TYPES)}'
            )
        _d['type'] = _SAFE_TYPES[_d['type']]
    if 'action' in _d:
        _d['action'] = _SAFE_ACTIONS[_d['action']]
    return flag, _d


class SubcommandOptions:
    """Parsed options of one subcommand, as attributes."""

    OPTS = """
    - Input Options:
        - infile:
            positional: True
            help: Input file.
    """

    def __init__(self, args):
        self.opt_groups = _parse_yaml_opts(self.OPTS)
        self.opt_names = [k for grp in self.opt_groups.values() for k in grp]
        for k, v in vars(args).items():
            setattr(self, k, v)

    @classmethod
    def add_arguments(cls, parser):
        for group_name, args in _parse_yaml_opts(cls.OPTS).items():
            argparse_grp = parser.add_argument_group(group_name, '')
            for arg_name, arg_d in args.items():
                flag, kwargs = _argparse_kwargs(arg_name, arg_d)
                argparse_grp.add_argument(flag, **kwargs)

    def option_defaults(self):
        """Names of the options declared with a default value."""
        return {k for grp in self.opt_groups.values() for k, d in grp.items() if 'default' in d}

    def __str__(self):
        ret = []
        if hasattr(self, 'version'):
            ret.append('{:34}{}'.format('Version:', self.version))
        for group_name, args in self.opt_groups.items():
            ret.append(group_name)
            for arg_name in args:
                v = getattr(self, arg_name, 'Not set')
                v = v.name if hasattr(v, 'name') else v
                ret.append('    {:30}{}'.format(arg_name + ':', v))
        return '\n'.join(ret)


def configure_logging(opts):
    """Set up logging from the reporting options and return the Console.

    ``--quiet`` silences the Console, ``--verbose`` and ``--debug`` raise
    both the Console and the logging level. Log records go to
    ``--logfile`` when given, stderr otherwise.
    """
    if getattr(opts, 'debug', False):
        console_level, loglev = Console.DEBUG, logging.DEBUG
        logfmt = '%(asctime)s %(levelname)-8s %(message)-60s (%(funcName)s in %(filename)s:%(lineno)d)'
    elif getattr(opts, 'verbose', False):
        console_level, loglev = Console.VERBOSE, logging.INFO
        logfmt = '%(asctime)s %(levelname)-8s %(message)s'
    else:
        console_level, loglev = Console.NORMAL, logging.WARNING
        logfmt = '%(asctime)s %(levelname)-8s %(message)s'
    if getattr(opts, 'quiet', False):
        console_level = Console.QUIET

    logging.basicConfig(
        level=loglev, format=logfmt, datefmt='%Y-%m-%d %H:%M:%S',
        stream=getattr(opts, 'logfile', None), force=True,
    )
    return Console(level=console_level)


def format_minutes(seconds):
    mins = seconds // 60
    secs = seconds - (mins * 60)
    return '{:g} minutes and {:.2f} secs'.format(mins, secs)
