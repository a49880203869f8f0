# -*- coding: utf-8 -*-

# This file is part of Atena.
# Original Telescope code by Matthew L. Bendall (https://github.com/mlbendall/telescope)
#
# New code and modifications by Duane Storey (https://github.com/duanestorey) and Claude (Anthropic).
# Licensed under MIT License.

import pytest

from .helpers import write_sam


@pytest.fixture
def samfile(tmp_path):
    """Factory writing SAM records to a file in the test directory."""
    def _factory(records, name='sample', **kwargs):
        return write_sam(tmp_path / f'{name}.sam', records, **kwargs)
    return _factory
