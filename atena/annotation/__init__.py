# This file is part of Atena.
# Original Telescope code by Matthew L. Bendall (https://github.com/mlbendall/telescope)
#
# New code and modifications by Duane Storey (https://github.com/duanestorey) and Claude (Anthropic).
# Licensed under MIT License.

from .gtf_utils import Feature, check_features, load_features  # noqa: F401
from .intervaltree import OverlapIndex  # noqa: F401
