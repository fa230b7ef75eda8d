"""
_kernels.py
===========
CPU kernels for the decomposer and the sequence count index, compiled with
Numba.

This module contains ONLY numba-accelerated code and should not import other
project modules to avoid import-time complications.  Every kernel takes plain
numpy arrays and integers; the callers in ``_decomp.py`` and ``_crucible.py``
extract the relevant arrays from ``Tree`` / alignment objects and forward
them.

Exported Functions
------------------
_subtree_sizes_nb : njit function
    Leaf counts per node from one post-order pass.

_best_cut_nb : njit function
    Post-order search, with exclusions, for the most balanced cut node.

_apply_cut_nb : njit function
    Remove a cut node's mass from its ancestor chain.

_label_partition_nb : njit function
    Stable in-place partition of a taxon slice by subtree membership.

_nchars_prefix_nb : njit function
    Column-wise prefix sums of non-gap characters.

Notes
-----
- cache=True persists compiled binary to disk for faster subsequent runs
- Traversal order matches ``Tree.postorder_from`` exactly (leftmost child
  first), so tie-breaking agrees with the pure-Python backend.
"""

import numpy as np
from numba import njit


# ======================================================================== #
# Subtree Size Table                                                       #
# ======================================================================== #


@njit(cache=True)
def _subtree_sizes_nb(postorder_nodes, child_offsets, children, sizes_out):
    """
    Fill *sizes_out* with the number of leaves under every node.

    Parameters
    ----------
    postorder_nodes : int32[n_nodes]
        Full post-order traversal (children before parents).
    child_offsets : int64[n_nodes + 1]
        CSR offsets into ``children``.
    children : int32[n_nodes - 1]
        CSR child IDs.
    sizes_out : int64[n_nodes]
        Output array.
    """
    for k in range(postorder_nodes.shape[0]):
        v = postorder_nodes[k]
        lo = child_offsets[v]
        hi = child_offsets[v + 1]
        if lo == hi:
            sizes_out[v] = 1
        else:
            total = 0
            for j in range(lo, hi):
                total += sizes_out[children[j]]
            sizes_out[v] = total


# ======================================================================== #
# Balanced Decomposer                                                      #
# ======================================================================== #


@njit(cache=True)
def _best_cut_nb(root, size, child_offsets, children, is_cut, sizes):
    """
    Find the internal node under *root* whose cut best balances the unit.

    Walks the subtree of *root* in post-order, skipping every node flagged
    in *is_cut* together with its descendants (*root* itself is always
    walked).  Candidates are internal nodes other than *root* whose
    remaining size is strictly between 0 and *size*.

    Parameters
    ----------
    root : int
        Root node of the unit.
    size : int
        Number of taxa in the unit.
    child_offsets, children : CSR arrays
    is_cut : bool[n_nodes]
        Permanent cut mask.
    sizes : int64[n_nodes]
        Current subtree size table.

    Returns
    -------
    (best_cut, best_imbalance, n_candidates)
        ``best_cut`` is -1 when no candidate exists.  The first strict
        minimiser in traversal order wins.
    """
    n_nodes = sizes.shape[0]
    stack_node = np.empty(2 * n_nodes, dtype=np.int64)
    stack_phase = np.empty(2 * n_nodes, dtype=np.uint8)
    top = 0
    stack_node[0] = root
    stack_phase[0] = 0

    best_cut = -1
    best_imbalance = size + 1  # above any achievable imbalance
    n_candidates = 0

    while top >= 0:
        v = stack_node[top]
        phase = stack_phase[top]
        top -= 1

        lo = child_offsets[v]
        hi = child_offsets[v + 1]

        if phase == 0:
            top += 1
            stack_node[top] = v
            stack_phase[top] = 1
            for j in range(hi - 1, lo - 1, -1):
                c = children[j]
                if is_cut[c]:
                    continue
                top += 1
                stack_node[top] = c
                stack_phase[top] = 0
            continue

        if v == root or lo == hi:
            continue
        s = sizes[v]
        if s <= 0 or s >= size:
            continue
        n_candidates += 1
        imbalance = abs((size - s) - s)
        if imbalance < best_imbalance:
            best_imbalance = imbalance
            best_cut = v

    return best_cut, best_imbalance, n_candidates


@njit(cache=True)
def _apply_cut_nb(parent, best_cut, root, sizes):
    """Subtract ``sizes[best_cut]`` from each ancestor strictly below *root*."""
    amount = sizes[best_cut]
    a = parent[best_cut]
    while a != -1 and a != root:
        sizes[a] -= amount
        a = parent[a]


@njit(cache=True)
def _label_partition_nb(best_cut, child_offsets, children, is_cut, taxa,
                        label, reordered, lb, ub):
    """
    Move the taxa under *best_cut* to the front of ``reordered[lb:ub]``.

    Leaves reachable from *best_cut* without crossing a cut are flagged in
    the scratch array *label*, the slice is stably partitioned (flagged
    first), and the flags are cleared again before returning.

    Returns
    -------
    int
        Number of taxa moved to the front.
    """
    n_nodes = taxa.shape[0]
    stack = np.empty(n_nodes, dtype=np.int64)
    top = 0
    stack[0] = best_cut
    while top >= 0:
        v = stack[top]
        top -= 1
        lo = child_offsets[v]
        hi = child_offsets[v + 1]
        if lo == hi:
            label[taxa[v]] = True
            continue
        for j in range(lo, hi):
            c = children[j]
            if not is_cut[c]:
                top += 1
                stack[top] = c

    buf = np.empty(ub - lb, dtype=np.int64)
    n_left = 0
    for i in range(lb, ub):
        if label[reordered[i]]:
            buf[n_left] = reordered[i]
            n_left += 1
    pos = n_left
    for i in range(lb, ub):
        t = reordered[i]
        if label[t]:
            label[t] = False
        else:
            buf[pos] = t
            pos += 1
    for i in range(ub - lb):
        reordered[lb + i] = buf[i]
    return n_left


# ======================================================================== #
# Sequence Count Index                                                     #
# ======================================================================== #


@njit(cache=True)
def _nchars_prefix_nb(seqs, gap, out):
    """
    Fill *out* (shape ``(n + 1, k)``) with column-wise prefix counts of
    symbols different from *gap* in the ``(n, k)`` uint8 matrix *seqs*.

    Row 0 is zero; row ``i`` holds counts over the first ``i`` sequences.
    """
    n = seqs.shape[0]
    k = seqs.shape[1]
    for j in range(k):
        out[0, j] = 0
    for i in range(1, n + 1):
        for j in range(k):
            if seqs[i - 1, j] == gap:
                out[i, j] = out[i - 1, j]
            else:
                out[i, j] = out[i - 1, j] + 1
