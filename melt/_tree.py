"""
_tree.py
========
A single rooted phylogenetic tree represented as a set of parallel numpy
arrays, with children packed in CSR layout so that nodes of any arity are
supported.

Public API
----------
  Tree(newick_string)
      Constructor.  Parses the NEWICK string and builds all data structures.

  Tree.from_file(path)
      Read the first tree of a NEWICK file.

  .is_leaf(node)
  .children_of(node)
  .ancestors(node)
  .postorder()
  .postorder_from(node, excluding=None)
  .taxon_id(name)
  .leaf_taxa(node)

Node-ID conventions
-------------------
  Leaves   : 0 … n_leaves-1       (left-to-right in NEWICK string)
  Internal : n_leaves … n_nodes-1 (post-order)
  Root     : n_nodes-1

A leaf's taxon ID equals its leaf ID, so ``taxa[node]`` is ``node`` for
leaves and ``-1`` for internal nodes.  Because internal IDs are handed out
when each ``)`` is closed, any post-order walk over a subset of the tree
visits internal nodes in increasing ID order.

Numba notes
-----------
Computational kernels (see ``_kernels.py``) accept only the flat arrays
``child_offsets``, ``children`` and ``parent`` plus plain integers; no
``self`` references.  The iterator methods here are the pure-Python
reference implementations of the same traversals.
"""

import logging
import os
from typing import Iterator

import numpy as np

from melt._utils import format_newick

logger = logging.getLogger(__name__)

_DELIMITERS = ",();:[ \t\r\n"


class Tree:
    """
    A rooted phylogenetic tree of arbitrary arity.

    Attributes (all read-only after construction)
    ----------------------------------------------
    n_nodes   : int     Total number of nodes.
    n_leaves  : int     Number of leaf (taxon) nodes.
    root      : int     Node ID of the root (always n_nodes - 1).
    names     : list[str]  Label of each node; '' for unlabeled internal nodes.

    Arrays: tree structure
    -----------------------
    parent        : int32  [n_nodes]     Parent ID; -1 for root.
    distance      : float64[n_nodes]     Branch length to parent; -1.0 if absent.
    support       : float64[n_nodes]     Numeric internal label; -1.0 sentinel.
    child_offsets : int64  [n_nodes + 1] CSR offsets into ``children``.
    children      : int32  [n_nodes - 1] Child IDs, left-to-right per node.
    taxa          : int32  [n_nodes]     Taxon ID of each leaf; -1 for internal.
    postorder_nodes : int32 [n_nodes]    Full post-order traversal.
    """

    # ================================================================== #
    # Construction                                                         #
    # ================================================================== #

    def __init__(self, newick_string: str) -> None:
        """
        Parse *newick_string* and build all tree data structures.

        Parameters
        ----------
        newick_string : str
            A valid NEWICK-formatted tree string (trailing ';' optional).

        Raises
        ------
        ValueError
            If the string is not a well-formed rooted tree, or if two leaves
            share a name.
        """
        self._parse_newick(newick_string)

        self.n_nodes: int = int(self.parent.shape[0])
        self.root: int = self.n_nodes - 1  # parse_newick invariant
        self.postorder_nodes = self._build_postorder()

        self._name_index: dict = None  # type: ignore[assignment]
        self._build_name_index()

    @classmethod
    def from_file(cls, path) -> "Tree":
        """
        Read the first tree from the NEWICK file at *path*.

        Raises
        ------
        FileNotFoundError
            If *path* does not exist.
        ValueError
            If the file holds no tree or the tree is malformed.
        """
        with open(path) as fh:
            text = fh.read()
        first = Tree._first_newick(text)
        if not first.strip(" \t\r\n;"):
            raise ValueError(f"No NEWICK tree found in '{os.fspath(path)}'.")
        logger.debug("Read NEWICK tree from %s (%d chars)", path, len(first))
        return cls(first)

    # ================================================================== #
    # Public methods                                                       #
    # ================================================================== #

    @property
    def ntaxa(self) -> int:
        """Number of taxa (same as ``n_leaves``)."""
        return self.n_leaves

    @property
    def taxon_index(self) -> dict:
        """Mapping of leaf name to taxon ID."""
        return self._name_index

    def is_leaf(self, node: int) -> bool:
        return bool(self.child_offsets[node + 1] == self.child_offsets[node])

    def children_of(self, node: int) -> np.ndarray:
        """Child IDs of *node* in left-to-right order (empty for leaves)."""
        return self.children[self.child_offsets[node]:self.child_offsets[node + 1]]

    def ancestors(self, node: int) -> Iterator[int]:
        """
        Iterate the parent chain of *node*, from its parent up to and
        including the root.  *node* itself is not yielded.
        """
        p = int(self.parent[node])
        while p != -1:
            yield p
            p = int(self.parent[p])

    def postorder(self) -> np.ndarray:
        """Full post-order node array (children before parents)."""
        return self.postorder_nodes

    def postorder_from(self, node: int, excluding=None) -> Iterator[int]:
        """
        Iterate the subtree rooted at *node* in post-order.

        Parameters
        ----------
        node : int
            Root of the traversal.  Always yielded (last), even when it is a
            member of *excluding*.
        excluding : container of int, optional
            Nodes to skip together with all of their descendants.

        Notes
        -----
        Iterative two-phase stack; no recursion, so arbitrarily deep
        (caterpillar) trees are safe.
        """
        offsets = self.child_offsets
        children = self.children
        stack = [(int(node), False)]
        while stack:
            v, expanded = stack.pop()
            if expanded:
                yield v
                continue
            stack.append((v, True))
            # Push in reverse so the leftmost child is visited first.
            for k in range(int(offsets[v + 1]) - 1, int(offsets[v]) - 1, -1):
                c = int(children[k])
                if excluding is not None and c in excluding:
                    continue
                stack.append((c, False))

    def taxon_id(self, name: str) -> int:
        """
        Return the taxon ID of the leaf called *name*.

        Raises
        ------
        KeyError   if *name* is not a leaf of this tree.
        """
        if name not in self._name_index:
            raise KeyError(f"No taxon with name '{name}' found in tree.")
        return self._name_index[name]

    def leaf_taxa(self, node: int) -> np.ndarray:
        """Taxon IDs of every leaf under *node*, in post-order."""
        return np.array(
            [self.taxa[v] for v in self.postorder_from(node) if self.is_leaf(v)],
            dtype=np.int64,
        )

    def count_multifurcations(self) -> int:
        """Number of internal nodes with more than two children."""
        counts = np.diff(self.child_offsets)
        return int(np.count_nonzero(counts > 2))

    def __repr__(self) -> str:
        return f"Tree(n_leaves={self.n_leaves}, n_nodes={self.n_nodes})"

    # ================================================================== #
    # Private instance methods                                             #
    # ================================================================== #

    def _parse_newick(self, newick_string: str) -> None:
        """
        **Private.**  Parse *newick_string* and populate the tree-structure
        arrays as instance attributes.

        Two-pass algorithm
        ------------------
        Pass 1  Count commas and open parens outside quotes and comments
                → derive exact array sizes (n_leaves, n_nodes).
        Pass 2  Iterative, stack-based character scan; no recursion.

        For any rooted tree, n_commas = Σ (k_i − 1) over internal nodes with
        k_i children, which gives n_leaves = n_commas + 1 regardless of
        arity, and every '(' opens exactly one internal node.

        Populates
        ---------
        self.names, self.parent, self.distance, self.support,
        self.child_offsets, self.children, self.taxa, self.n_leaves
        """
        s = format_newick(newick_string)
        n_chars = len(s) - 1  # drop the ';'
        if n_chars <= 0:
            raise ValueError("Empty NEWICK string.")

        # ---- Pass 1: count commas and open parens ------------------- #
        n_commas = 0
        n_parens = 0
        k = 0
        while k < n_chars:
            c = s[k]
            if c == "'":
                k = Tree._skip_quoted(s, k, n_chars)
                continue
            if c == "[":
                k = Tree._skip_comment(s, k, n_chars)
                continue
            if c == ",":
                n_commas += 1
            elif c == "(":
                n_parens += 1
            elif c == ";":
                raise ValueError("NEWICK string contains more than one tree.")
            k += 1

        n_leaves = n_commas + 1
        n_nodes = n_leaves + n_parens

        # ---- Allocate arrays ---------------------------------------- #
        parent = np.full(n_nodes, -1, dtype=np.int32)
        distance = np.full(n_nodes, -1.0, dtype=np.float64)
        support = np.full(n_nodes, -1.0, dtype=np.float64)
        names = [""] * n_nodes
        child_lists = [[] for _ in range(n_parens)]

        # ---- Pass 2: iterative stack-based parse -------------------- #
        OPEN_PAREN = -2
        stack = []
        depth = 0
        expect_node = True

        leaf_id = 0
        internal_id = n_leaves

        i = 0
        while i < n_chars:
            c = s[i]

            if c in " \t\r\n":
                i += 1
                continue

            if c == "[":
                i = Tree._skip_comment(s, i, n_chars)
                continue

            if c == "(":
                if not expect_node:
                    raise ValueError(f"Unexpected '(' at position {i}.")
                stack.append(OPEN_PAREN)
                depth += 1
                i += 1
                continue

            if c == ",":
                if expect_node or depth == 0:
                    raise ValueError(f"Unexpected ',' at position {i}.")
                expect_node = True
                i += 1
                continue

            if c == ")":
                if depth == 0:
                    raise ValueError(f"Unbalanced ')' at position {i}.")
                if expect_node:
                    raise ValueError(f"Empty node before ')' at position {i}.")
                i += 1
                kids = []
                while stack[-1] != OPEN_PAREN:
                    kids.append(stack.pop())
                stack.pop()  # discard OPEN_PAREN
                depth -= 1
                kids.reverse()

                node_id = internal_id
                internal_id += 1
                child_lists[node_id - n_leaves] = kids
                for kid in kids:
                    parent[kid] = node_id

                label, i = Tree._read_label(s, i, n_chars)
                if label:
                    try:
                        support[node_id] = float(label)
                    except ValueError:
                        names[node_id] = label
                distance[node_id], i = Tree._read_length(s, i, n_chars)

                stack.append(node_id)
                expect_node = False
                continue

            if c in ":;":
                raise ValueError(f"Unexpected '{c}' at position {i}.")

            # Leaf
            if not expect_node:
                raise ValueError(f"Unexpected label at position {i}.")
            label, i = Tree._read_label(s, i, n_chars)
            if not label:
                raise ValueError(f"Empty leaf label at position {i}.")
            node_id = leaf_id
            leaf_id += 1
            names[node_id] = label
            distance[node_id], i = Tree._read_length(s, i, n_chars)

            stack.append(node_id)
            expect_node = False

        if depth != 0:
            raise ValueError("Unbalanced '(' in NEWICK string.")
        if len(stack) != 1:
            raise ValueError(
                f"NEWICK string describes {len(stack)} disconnected subtrees; "
                "expected a single rooted tree."
            )

        # ---- Pack children into CSR ---------------------------------- #
        counts = np.zeros(n_nodes, dtype=np.int64)
        for j in range(n_parens):
            counts[n_leaves + j] = len(child_lists[j])
        child_offsets = np.zeros(n_nodes + 1, dtype=np.int64)
        np.cumsum(counts, out=child_offsets[1:])
        children = np.empty(int(child_offsets[-1]), dtype=np.int32)
        pos = 0
        for kids in child_lists:
            children[pos:pos + len(kids)] = kids
            pos += len(kids)

        taxa = np.full(n_nodes, -1, dtype=np.int32)
        taxa[:n_leaves] = np.arange(n_leaves, dtype=np.int32)

        self.n_leaves = n_leaves
        self.names = names
        self.parent = parent
        self.distance = distance
        self.support = support
        self.child_offsets = child_offsets
        self.children = children
        self.taxa = taxa

    def _build_postorder(self) -> np.ndarray:
        """**Private.**  Materialise the full post-order traversal."""
        order = np.fromiter(
            self.postorder_from(self.root), dtype=np.int32, count=self.n_nodes
        )
        return order

    def _build_name_index(self) -> None:
        """
        **Private.**  Build and cache ``self._name_index``: a dict mapping
        each leaf name to its taxon ID.

        Raises
        ------
        ValueError   if duplicate taxon names are found.
        """
        idx = {}
        for node_id in range(self.n_leaves):
            name = self.names[node_id]
            if name in idx:
                raise ValueError(
                    f"Duplicate taxon name '{name}' at IDs "
                    f"{idx[name]} and {node_id}."
                )
            idx[name] = int(self.taxa[node_id])
        self._name_index = idx

    # ================================================================== #
    # Private static methods (scanner helpers)                             #
    # ================================================================== #

    @staticmethod
    def _first_newick(text: str) -> str:
        """Return *text* up to and including the first ';' outside quotes."""
        n = len(text)
        k = 0
        while k < n:
            c = text[k]
            if c == "'":
                k = Tree._skip_quoted(text, k, n)
                continue
            if c == "[":
                k = Tree._skip_comment(text, k, n)
                continue
            if c == ";":
                return text[:k + 1]
            k += 1
        return text

    @staticmethod
    def _skip_quoted(s: str, i: int, n: int) -> int:
        """Index just past the single-quoted token starting at *i*."""
        j = i + 1
        while j < n:
            if s[j] == "'":
                if j + 1 < n and s[j + 1] == "'":  # escaped quote
                    j += 2
                    continue
                return j + 1
            j += 1
        raise ValueError(f"Unterminated quoted label starting at position {i}.")

    @staticmethod
    def _skip_comment(s: str, i: int, n: int) -> int:
        """Index just past the bracketed comment starting at *i*."""
        j = s.find("]", i + 1, n)
        if j == -1:
            raise ValueError(f"Unterminated comment starting at position {i}.")
        return j + 1

    @staticmethod
    def _read_label(s: str, i: int, n: int):
        """Read an optional (possibly quoted) label at *i*; return (label, next_i)."""
        while i < n and s[i] in " \t\r\n":
            i += 1
        if i < n and s[i] == "'":
            j = Tree._skip_quoted(s, i, n)
            return s[i + 1:j - 1].replace("''", "'"), j
        j = i
        while j < n and s[j] not in _DELIMITERS:
            j += 1
        return s[i:j], j

    @staticmethod
    def _read_length(s: str, i: int, n: int):
        """Read an optional ':length' at *i*; return (length or -1.0, next_i)."""
        while i < n and s[i] in " \t\r\n":
            i += 1
        while i < n and s[i] == "[":
            i = Tree._skip_comment(s, i, n)
        if i >= n or s[i] != ":":
            return -1.0, i
        i += 1
        while i < n and s[i] in " \t\r\n":
            i += 1
        j = i
        while j < n and s[j] not in _DELIMITERS:
            j += 1
        try:
            value = float(s[i:j])
        except ValueError as e:
            raise ValueError(
                f"Invalid branch length '{s[i:j]}' at position {i}."
            ) from e
        return value, j
