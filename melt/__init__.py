"""
melt
====

Balanced hierarchical decomposition of a guide tree into size-bounded,
contiguous taxon ranges, with a prefix-sum index of non-gap characters over
the matching alignment.

Main Classes
------------
Tree : Rooted phylogenetic tree with NEWICK parsing and traversals
TaxaHierarchy : Taxon permutation plus nested decomposition ranges
CrucibleCtxt : Per-range, per-column non-gap counts via prefix sums

Functions
---------
hierarchical_decomp : Decompose a tree into a TaxaHierarchy
subtree_sizes : Leaf counts under every node
oneshot_melt : Tree + alignment in, subset alignments + metadata out

Context Managers
----------------
quiet : Suppress logging during operations
suppress_logger : Suppress specific logger
use_backend : Force specific computational backend

Examples
--------
>>> from melt import Tree, hierarchical_decomp, CrucibleCtxt
>>> tree = Tree('(((A,B),(C,D)),((E,F),(G,H)));')
>>> h = hierarchical_decomp(tree, max_size=3)
>>> h.decomposition_ranges
[(0, 8), (4, 8), (0, 4), (6, 8), (4, 6), (2, 4), (0, 2)]

>>> ctxt = CrucibleCtxt.from_alignment(['AC-G', '--CG'], [(0, 2)])
>>> ctxt.retrieve_nchars(0).tolist()
[1, 1, 1, 2]
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Main classes
from ._tree import Tree
from ._decomp import TaxaHierarchy, hierarchical_decomp, subtree_sizes
from ._crucible import CrucibleCtxt
from ._melt import oneshot_melt

# Context managers (user-facing utilities)
from ._context import (
    suppress_logger,
    quiet,
    use_backend,
)

# Utilities
from ._utils import format_newick, invert_permutation

# Backend information
from ._backend import (
    get_available_backends,
    get_backend_info,
    check_numba_available,
)

# Public API
__all__ = [
    # Main classes
    "Tree",
    "TaxaHierarchy",
    "CrucibleCtxt",
    # Functions
    "hierarchical_decomp",
    "subtree_sizes",
    "oneshot_melt",
    # Context managers
    "suppress_logger",
    "quiet",
    "use_backend",
    # Utilities
    "format_newick",
    "invert_permutation",
    # Backend information
    "get_available_backends",
    "get_backend_info",
    "check_numba_available",
    # Version info
    "__version__",
]
