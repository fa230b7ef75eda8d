"""
tests/test_kernel_agreement.py
==============================

Cross-validation between the 'python' reference backend and the compiled
'numba' kernels.

Validation layers
-----------------
1. Subtree sizes  (TestSubtreeSizeAgreement)
   subtree_sizes() must return identical int64 tables on both backends.

2. Decomposition  (TestDecompositionAgreement)
   hierarchical_decomp() must produce the same permutation, ranges,
   parents and roots for every tree in the corpus and every max_size.
   Tie-breaking depends on traversal order, so any divergence in the
   post-order walk shows up here first.

3. Individual kernels  (TestKernelPrimitives)
   _best_cut_nb and _label_partition_nb are compared directly against
   their pure-Python references on a unit with prior cuts.

4. Sequence count index  (TestCrucibleAgreement)
   CrucibleCtxt.from_alignment() must build bit-identical prefix tables.

All classes are skipped when numba is not importable.
"""

import numpy as np
import pytest

from melt import _decomp
from melt._backend import get_available_backends
from melt._crucible import CrucibleCtxt
from melt._decomp import hierarchical_decomp, subtree_sizes
from melt._kernels import _best_cut_nb, _label_partition_nb
from melt._tree import Tree

from tree_corpus import ALL_TREES

# ---------------------------------------------------------------------------
# Pytest markers
# ---------------------------------------------------------------------------

_AVAILABLE = get_available_backends()

numba_skip = pytest.mark.skipif(
    "numba" not in _AVAILABLE,
    reason="numba backend not available",
)


# ---------------------------------------------------------------------------
# 1. Subtree sizes
# ---------------------------------------------------------------------------


@numba_skip
class TestSubtreeSizeAgreement:
    @pytest.mark.parametrize("newick", ALL_TREES)
    def test_sizes_identical(self, newick):
        tree = Tree(newick)
        np.testing.assert_array_equal(
            subtree_sizes(tree, backend="python"),
            subtree_sizes(tree, backend="numba"),
        )


# ---------------------------------------------------------------------------
# 2. Decomposition
# ---------------------------------------------------------------------------


@numba_skip
class TestDecompositionAgreement:
    @pytest.mark.parametrize("newick", ALL_TREES)
    @pytest.mark.parametrize("max_size", [1, 2, 3, 4, 7, 16])
    def test_hierarchy_identical(self, newick, max_size):
        tree = Tree(newick)
        py = hierarchical_decomp(tree, max_size, backend="python")
        nb = hierarchical_decomp(tree, max_size, backend="numba")
        assert py.decomposition_ranges == nb.decomposition_ranges
        np.testing.assert_array_equal(py.reordered_taxa, nb.reordered_taxa)
        np.testing.assert_array_equal(py.parents, nb.parents)
        np.testing.assert_array_equal(py.roots, nb.roots)
        np.testing.assert_array_equal(py.split, nb.split)


# ---------------------------------------------------------------------------
# 3. Individual kernels
# ---------------------------------------------------------------------------


@numba_skip
class TestKernelPrimitives:
    """
    Caterpillar (A,(B,(C,(D,E)))) after cutting DE (node 5).

    The remaining unit under the root holds A, B, C with sizes
    CDE=1, BCDE=2, so both score imbalance 1 and CDE (first in post-order)
    is chosen.
    """

    @pytest.fixture
    def state(self):
        tree = Tree("(A,(B,(C,(D,E))));")
        sizes = subtree_sizes(tree, backend="python")
        sizes[6] -= 2
        sizes[7] -= 2
        is_cut = np.zeros(tree.n_nodes, dtype=np.bool_)
        is_cut[[tree.root, 5]] = True
        return tree, sizes, is_cut

    def test_best_cut(self, state):
        tree, sizes, is_cut = state
        cuts = set(np.flatnonzero(is_cut).tolist())
        py = _decomp._best_cut_py(tree, tree.root, 3, cuts, sizes)
        nb = _best_cut_nb(
            tree.root, 3, tree.child_offsets, tree.children, is_cut, sizes
        )
        assert (int(nb[0]), int(nb[1]), int(nb[2])) == py
        assert py == (6, 1, 2)

    def test_best_cut_no_candidate(self):
        tree = Tree("(A,B,C,D);")
        sizes = subtree_sizes(tree, backend="python")
        is_cut = np.zeros(tree.n_nodes, dtype=np.bool_)
        is_cut[tree.root] = True
        best_cut, _, n_candidates = _best_cut_nb(
            tree.root, 4, tree.child_offsets, tree.children, is_cut, sizes
        )
        assert best_cut == -1
        assert n_candidates == 0

    def test_label_partition(self, state):
        tree, sizes, is_cut = state
        is_cut[6] = True
        cuts = set(np.flatnonzero(is_cut).tolist())

        reordered_py = np.array([3, 4, 0, 1, 2], dtype=np.int64)
        reordered_nb = reordered_py.copy()
        label_py = np.zeros(tree.n_leaves, dtype=np.bool_)
        label_nb = label_py.copy()

        _decomp._label_partition_py(tree, 6, cuts, label_py, reordered_py, 2, 5)
        moved = _label_partition_nb(
            6, tree.child_offsets, tree.children, is_cut, tree.taxa,
            label_nb, reordered_nb, 2, 5,
        )

        assert moved == 1
        assert reordered_py.tolist() == [3, 4, 2, 0, 1]
        np.testing.assert_array_equal(reordered_py, reordered_nb)
        assert not label_py.any()
        assert not label_nb.any()


# ---------------------------------------------------------------------------
# 4. Sequence count index
# ---------------------------------------------------------------------------


@numba_skip
class TestCrucibleAgreement:
    @pytest.mark.parametrize("seed", range(5))
    def test_tables_identical(self, seed):
        rng = np.random.default_rng(seed)
        n = int(rng.integers(1, 40))
        k = int(rng.integers(1, 60))
        alphabet = np.frombuffer(b"ACGTN-", dtype=np.uint8)
        seqs = rng.choice(alphabet, size=(n, k))
        ranges = [(0, n), (0, n // 2), (n // 2, n)]
        py = CrucibleCtxt.from_alignment(seqs, ranges, backend="python")
        nb = CrucibleCtxt.from_alignment(seqs, ranges, backend="numba")
        assert py == nb
