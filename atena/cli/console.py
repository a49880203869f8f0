# -*- coding: utf-8 -*-

# This file is part of Atena.
# Original Telescope code by Matthew L. Bendall (https://github.com/mlbendall/telescope)
#
# New code and modifications by Duane Storey (https://github.com/duanestorey) and Claude (Anthropic).
# Licensed under MIT License.

"""Human-readable run report on stdout.

Logging goes to stderr (or ``--logfile``); the Console only prints the
banner, one line per sample and the output/timing summary.
"""

import sys
from contextlib import contextmanager
from functools import wraps
from time import perf_counter


class Stopwatch:
    """Elapsed time of the named stages of a run."""

    def __init__(self):
        self.timings = []  # [(name, seconds)]
        self._t0 = perf_counter()

    @contextmanager
    def stage(self, name):
        _start = perf_counter()
        try:
            yield
        finally:
            self.timings.append((name, perf_counter() - _start))

    @property
    def total(self):
        return perf_counter() - self._t0


def _at_level(level):
    """Skip the decorated method when the console is below *level*."""
    def deco(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            if self.level >= level:
                return func(self, *args, **kwargs)
        return wrapper
    return deco


class Console:
    QUIET = 0
    NORMAL = 1
    VERBOSE = 2
    DEBUG = 3

    def __init__(self, level=NORMAL, stream=None):
        self.level = level
        self.stream = stream or sys.stdout
        self._bold = getattr(self.stream, 'isatty', lambda: False)()

    def _write(self, text=''):
        print(text, file=self.stream)

    @_at_level(NORMAL)
    def banner(self, version, strategy):
        _title = f'Atena v{version} -- {strategy}'
        self._write()
        self._write(f'\033[1m{_title}\033[0m' if self._bold else _title)
        self._write()

    @_at_level(NORMAL)
    def section(self, title):
        self._write(f'  {title}')

    @_at_level(NORMAL)
    def item(self, label, value):
        self._write('    {:<14}{}'.format(label + ':', value))

    @_at_level(NORMAL)
    def blank(self):
        self._write()

    @_at_level(VERBOSE)
    def verbose(self, message):
        self._write(f'    {message}')

    @_at_level(NORMAL)
    def samples(self, result):
        """One line per sample: fragments seen and how the fit went."""
        self.section('Samples')
        for name, info in result.run_info.items():
            if name in result.failures:
                self._write(f'    {name:<18}FAILED  {result.failures[name]}')
                continue
            _line = '    {:<18}{:>12,} fragments'.format(name, info.get('total_fragments', 0))
            fit = result.fitinfo.get(name)
            if fit is not None:
                _state = 'converged' if fit.converged else 'NOT converged'
                _line += f', EM {_state} after {fit.iterations} iterations'
            self._write(_line)
        self._write()

    @_at_level(NORMAL)
    def outputs(self, *paths):
        self.section('Output')
        for p in paths:
            self._write(f'    {p}')
        self._write()

    @_at_level(NORMAL)
    def timing_table(self, stopwatch):
        total = stopwatch.total
        if not stopwatch.timings:
            return
        self.section('Timing')
        for name, elapsed in stopwatch.timings:
            pct = '{:>4.0f}%'.format(elapsed / total * 100) if total > 0 else ''
            self._write('    {:<18}{:>5.1f}s{:>8}'.format(name, elapsed, pct))
        self._write('    ' + '-' * 30)
        self._write('    {:<18}{:>5.1f}s'.format('Total', total))
