"""
_decomp.py
==========
Balanced hierarchical decomposition of a rooted tree into contiguous taxon
ranges bounded by a maximum size.

Public API
----------
  subtree_sizes(tree, backend='best') -> np.ndarray[int64, n_nodes]
      Leaf count under every node, from one post-order pass.

  hierarchical_decomp(tree, max_size, backend='best') -> TaxaHierarchy
      Repeatedly cut the largest pending unit at the edge that best balances
      its two pieces, regrouping taxa so that every unit is a contiguous
      slice of one permutation.

Algorithm
---------
Pending units live on a heap keyed by current size, largest first.  Among
equal sizes the unit with the larger ``lb`` (then ``ub``, then ``root``)
is taken first.  Each unit is ``(size, lb, ub, root)``: the taxa in
``reordered_taxa[lb:ub]`` are exactly the leaves below ``root`` that have
not been cut away into other units.

For a popped unit with ``size >= max_size`` the subtree of ``root`` is
walked in post-order, skipping previously cut subtrees, and every internal
node ``i`` (other than ``root``) with ``0 < sizes[i] < size`` is scored by

    imbalance(i) = |(size - sizes[i]) - sizes[i]|

The first strict minimiser wins.  Internal node IDs are assigned in
post-order, so this is the same as "smallest imbalance, then smallest
node ID".  Cutting ``i`` subtracts ``sizes[i]`` from every ancestor of
``i`` strictly below ``root``, marks ``i`` as cut, and stably moves the
taxa under ``i`` to the front of the unit's slice.  The two pieces are
pushed back on the heap.

A unit whose remaining members below ``root`` are only leaves has no
candidate and is left as is; the rest of the heap is still processed.

State
-----
The size table, cut mask, permutation and scratch label array are created
by and owned by a single ``hierarchical_decomp`` call.  Nothing is shared
between calls.
"""

import heapq
import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from melt._backend import check_numba_available, resolve_backend
from melt._kernels import (
    _apply_cut_nb,
    _best_cut_nb,
    _label_partition_nb,
    _subtree_sizes_nb,
)
from melt._logging import (
    log_backend_choice,
    log_cut,
    log_decomposition_statistics,
    log_optimization_status,
)
from melt._utils import invert_permutation

logger = logging.getLogger(__name__)

# Log system info on module import
log_optimization_status(check_numba_available())


class TaxaHierarchy:
    """
    Result of a hierarchical decomposition.

    Attributes (all read-only after construction)
    ----------------------------------------------
    reordered_taxa       : int64[ntaxa]
        Permutation of taxon IDs; every recorded range is a contiguous
        slice of it.
    decomposition_ranges : list[tuple[int, int]]
        Half-open ``(lb, ub)`` intervals into ``reordered_taxa`` in the
        order they were recorded (largest unit first).  Units with fewer
        than 2 taxa are never recorded.
    parents              : int64[n_ranges]
        Index of the recorded range each range was split from; -1 for the
        first range.
    roots                : int64[n_ranges]
        Tree node each range's unit was rooted at.
    split                : bool[n_ranges]
        True where the range's unit was cut, including cuts that only
        produced unrecorded single-taxon pieces.

    Notes
    -----
    Recorded ranges are nested or disjoint.  Every intermediate unit is
    recorded; the ranges whose unit was never cut (``final_ranges()``) are
    pairwise disjoint.
    """

    def __init__(
        self,
        reordered_taxa,
        decomposition_ranges: Sequence[Tuple[int, int]],
        parents: Optional[Sequence[int]] = None,
        roots: Optional[Sequence[int]] = None,
        split: Optional[Sequence[bool]] = None,
    ) -> None:
        self.reordered_taxa = np.array(reordered_taxa, dtype=np.int64)
        self.decomposition_ranges: List[Tuple[int, int]] = [
            (int(lb), int(ub)) for lb, ub in decomposition_ranges
        ]
        n_ranges = len(self.decomposition_ranges)
        if parents is None:
            parents = [-1] * n_ranges
        if roots is None:
            roots = [-1] * n_ranges
        self.parents = np.array(parents, dtype=np.int64).reshape(n_ranges)
        self.roots = np.array(roots, dtype=np.int64).reshape(n_ranges)
        if split is None:
            split = np.zeros(n_ranges, dtype=bool)
            split[self.parents[self.parents >= 0]] = True
        self.split = np.array(split, dtype=bool).reshape(n_ranges)

        for arr in (self.reordered_taxa, self.parents, self.roots, self.split):
            arr.flags.writeable = False

    # ================================================================== #
    # Public methods                                                       #
    # ================================================================== #

    @property
    def ntaxa(self) -> int:
        return int(self.reordered_taxa.shape[0])

    @property
    def num_ranges(self) -> int:
        return len(self.decomposition_ranges)

    def __len__(self) -> int:
        return self.num_ranges

    def range_size(self, i: int) -> int:
        lb, ub = self.decomposition_ranges[i]
        return ub - lb

    def range_taxa(self, i: int) -> np.ndarray:
        """Taxon IDs in recorded range *i*, in permutation order."""
        lb, ub = self.decomposition_ranges[i]
        return self.reordered_taxa[lb:ub]

    def children(self, i: int) -> List[int]:
        """Indices of the recorded ranges split directly from range *i*."""
        return [int(j) for j in np.flatnonzero(self.parents == i)]

    def final_ranges(self) -> List[int]:
        """
        Indices of recorded ranges whose unit was never cut.

        These ranges are pairwise disjoint.  Together with the unrecorded
        single-taxon units they cover ``[0, ntaxa)``.
        """
        return [int(i) for i in np.flatnonzero(~self.split)]

    def inverse(self) -> np.ndarray:
        """Position of every taxon ID within ``reordered_taxa``."""
        return invert_permutation(self.reordered_taxa)

    def __eq__(self, other) -> bool:
        if not isinstance(other, TaxaHierarchy):
            return NotImplemented
        return (
            np.array_equal(self.reordered_taxa, other.reordered_taxa)
            and self.decomposition_ranges == other.decomposition_ranges
            and np.array_equal(self.parents, other.parents)
            and np.array_equal(self.roots, other.roots)
            and np.array_equal(self.split, other.split)
        )

    def __repr__(self) -> str:
        return f"TaxaHierarchy(ntaxa={self.ntaxa}, num_ranges={self.num_ranges})"


# ======================================================================== #
# Subtree Size Table                                                       #
# ======================================================================== #


def subtree_sizes(tree, backend: str = "best") -> np.ndarray:
    """
    Return the number of leaves under every node of *tree*.

    Parameters
    ----------
    tree : Tree
    backend : str, default 'best'
        'python', 'numba' or 'best'.

    Returns
    -------
    np.ndarray
        int64 array of length ``tree.n_nodes``.  Leaves are 1; the root is
        ``tree.n_leaves``.
    """
    resolved = resolve_backend(backend)
    sizes = np.zeros(tree.n_nodes, dtype=np.int64)
    if resolved == "numba":
        _subtree_sizes_nb(tree.postorder_nodes, tree.child_offsets, tree.children, sizes)
        return sizes

    for v in tree.postorder():
        kids = tree.children_of(v)
        sizes[v] = 1 if kids.shape[0] == 0 else sizes[kids].sum()
    return sizes


# ======================================================================== #
# Balanced Decomposer                                                      #
# ======================================================================== #


def hierarchical_decomp(tree, max_size: int, backend: str = "best") -> TaxaHierarchy:
    """
    Decompose *tree* into a hierarchy of contiguous taxon ranges.

    Parameters
    ----------
    tree : Tree
        Rooted tree; read only.
    max_size : int
        Units with at least this many taxa are split further when they
        contain an internal cut.  Must be >= 1.
    backend : str, default 'best'
        'python', 'numba' or 'best'.  Both backends give identical results.

    Returns
    -------
    TaxaHierarchy

    Raises
    ------
    ValueError
        If *max_size* is not a positive integer.
    RuntimeError
        If a unit has cut candidates but none was selected.  This signals
        corrupted size or cut bookkeeping, never a user error.

    Examples
    --------
    >>> tree = Tree('(((A,B),(C,D)),((E,F),(G,H)));')
    >>> h = hierarchical_decomp(tree, 3)
    >>> h.decomposition_ranges
    [(0, 8), (4, 8), (0, 4), (6, 8), (4, 6), (2, 4), (0, 2)]
    """
    if isinstance(max_size, bool) or not isinstance(max_size, (int, np.integer)):
        raise ValueError(f"max_size must be an integer, got {max_size!r}.")
    if max_size < 1:
        raise ValueError(f"max_size must be >= 1, got {max_size}.")
    max_size = int(max_size)

    resolved = resolve_backend(backend)
    log_backend_choice("hierarchical_decomp", resolved)

    n = tree.n_leaves
    sizes = subtree_sizes(tree, backend=resolved)
    reordered = np.arange(n, dtype=np.int64)
    label = np.zeros(n, dtype=np.bool_)
    is_cut = np.zeros(tree.n_nodes, dtype=np.bool_)
    cuts = {tree.root}
    is_cut[tree.root] = True

    ranges: List[Tuple[int, int]] = []
    parents: List[int] = []
    roots: List[int] = []
    split: List[bool] = []

    # (-size, -lb, -ub, -root, parent range index); ties pop rightmost first
    heap = [(-n, 0, -n, -tree.root, -1)]
    while heap:
        neg_size, neg_lb, neg_ub, neg_root, parent_idx = heapq.heappop(heap)
        size, lb, ub, root = -neg_size, -neg_lb, -neg_ub, -neg_root

        own_idx = parent_idx
        if size >= 2:
            own_idx = len(ranges)
            ranges.append((lb, ub))
            parents.append(parent_idx)
            roots.append(root)
            split.append(False)
        if size < max_size:
            continue

        if resolved == "numba":
            best_cut, best_imbalance, n_candidates = _best_cut_nb(
                root, size, tree.child_offsets, tree.children, is_cut, sizes
            )
            best_cut = int(best_cut)
        else:
            best_cut, best_imbalance, n_candidates = _best_cut_py(
                tree, root, size, cuts, sizes
            )

        if best_cut < 0:
            if n_candidates > 0:
                raise RuntimeError(
                    f"No cut selected for unit [{lb}, {ub}) rooted at node {root} "
                    f"despite {n_candidates} candidate(s)."
                )
            logger.debug(
                "unit [%d, %d) rooted at %d has no internal cut; left unrefined",
                lb, ub, root,
            )
            continue

        cut_size = int(sizes[best_cut])
        cuts.add(best_cut)
        is_cut[best_cut] = True
        split[own_idx] = True

        if resolved == "numba":
            _apply_cut_nb(tree.parent, best_cut, root, sizes)
            _label_partition_nb(
                best_cut, tree.child_offsets, tree.children, is_cut, tree.taxa,
                label, reordered, lb, ub,
            )
        else:
            for a in tree.ancestors(best_cut):
                if a == root:
                    break
                sizes[a] -= cut_size
            _label_partition_py(tree, best_cut, cuts, label, reordered, lb, ub)

        log_cut(root, best_cut, size, cut_size, int(best_imbalance))

        heapq.heappush(
            heap, (-cut_size, -lb, -(lb + cut_size), -best_cut, own_idx)
        )
        heapq.heappush(
            heap, (cut_size - size, -(lb + cut_size), -ub, -root, own_idx)
        )

    hierarchy = TaxaHierarchy(reordered, ranges, parents, roots, split)
    log_decomposition_statistics(hierarchy, max_size)
    return hierarchy


# ======================================================================== #
# Pure-Python reference kernels                                            #
# ======================================================================== #


def _best_cut_py(tree, root: int, size: int, cuts, sizes):
    """
    Reference implementation of ``_kernels._best_cut_nb``.

    Returns ``(best_cut, best_imbalance, n_candidates)``; ``best_cut`` is -1
    when the unit has no internal candidate.
    """
    best_cut = -1
    best_imbalance = size + 1
    n_candidates = 0
    for v in tree.postorder_from(root, excluding=cuts):
        if v == root or tree.is_leaf(v):
            continue
        s = int(sizes[v])
        if s <= 0 or s >= size:
            continue
        n_candidates += 1
        imbalance = abs((size - s) - s)
        if imbalance < best_imbalance:
            best_imbalance = imbalance
            best_cut = v
    return best_cut, best_imbalance, n_candidates


def _label_partition_py(tree, best_cut: int, cuts, label, reordered, lb: int, ub: int) -> None:
    """Reference implementation of ``_kernels._label_partition_nb``."""
    members = [
        int(tree.taxa[v])
        for v in tree.postorder_from(best_cut, excluding=cuts)
        if tree.is_leaf(v)
    ]
    label[members] = True
    segment = reordered[lb:ub]
    mask = label[segment]
    reordered[lb:ub] = np.concatenate((segment[mask], segment[~mask]))
    label[members] = False
