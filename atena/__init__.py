# -*- coding: utf-8 -*-

# This file is part of Atena.
# Original Telescope code by Matthew L. Bendall (https://github.com/mlbendall/telescope)
#
# New code and modifications by Duane Storey (https://github.com/duanestorey) and Claude (Anthropic).
# Licensed under MIT License.

__version__ = '0.4.0'


class AtenaError(Exception):
    """Base class for errors raised while quantifying a sample."""


class MissingMultiplicityInfo(AtenaError):
    """Alignments carry neither secondary alignments nor an NH tag.

    Raised only when gene features are quantified together with TEs, since
    the gene/TE precedence rule needs to know which reads are unique.
    """


class MissingRequiredTag(AtenaError):
    """A tag explicitly requested by name is absent from an alignment."""

    def __init__(self, tag, query_name=None):
        self.tag = tag
        self.query_name = query_name
        msg = f'Tag "{tag}" not found'
        if query_name is not None:
            msg += f' in alignment of read "{query_name}"'
        super().__init__(msg)

    def __reduce__(self):
        return (type(self), (self.tag, self.query_name))


class MalformedFeatureAnnotation(AtenaError):
    """Feature annotation is empty or lacks the aggregation attribute."""
