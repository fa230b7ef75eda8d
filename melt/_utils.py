"""
_utils.py
=========
General-purpose utility functions for melt.

These are standalone functions that don't depend on the main classes
and could be useful in multiple contexts.
"""

from typing import Sequence, Tuple

import numpy as np


def format_newick(newick: str) -> str:
    """
    Format a NEWICK string for consistent representation.

    Ensures the NEWICK string:
    - Ends with a semicolon
    - Has no leading/trailing whitespace

    Parameters
    ----------
    newick : str
        NEWICK string to format.

    Returns
    -------
    str
        Formatted NEWICK string.

    Examples
    --------
    >>> format_newick('((A:1,B:1):1,(C:1,D:1):1)')
    '((A:1,B:1):1,(C:1,D:1):1);'

    >>> format_newick('  ((A:1,B:1):1);  ')
    '((A:1,B:1):1);'
    """
    newick = newick.strip()
    if not newick.endswith(';'):
        newick += ';'
    return newick


def invert_permutation(perm) -> np.ndarray:
    """
    Return the inverse of a permutation of ``0 .. n-1``.

    ``inv[perm[i]] == i`` for every position *i*.

    Parameters
    ----------
    perm : array-like of int
        A permutation of ``0 .. n-1``.

    Returns
    -------
    np.ndarray
        int64 array of length n.

    Raises
    ------
    ValueError
        If *perm* is not a permutation.

    Examples
    --------
    >>> invert_permutation([2, 0, 1]).tolist()
    [1, 2, 0]
    """
    perm = np.asarray(perm, dtype=np.int64)
    n = perm.shape[0]
    if n and (perm.min() < 0 or perm.max() >= n or
              np.unique(perm).shape[0] != n):
        raise ValueError("Input is not a permutation of 0..n-1.")
    inv = np.empty(n, dtype=np.int64)
    inv[perm] = np.arange(n, dtype=np.int64)
    return inv


def validate_ranges(ranges: Sequence[Tuple[int, int]], n: int) -> None:
    """
    Check that every half-open range ``(start, end)`` lies inside ``[0, n]``.

    Raises
    ------
    ValueError
        On a malformed pair, ``start > end``, or a bound outside ``[0, n]``.

    Examples
    --------
    >>> validate_ranges([(0, 2), (2, 4)], 4)

    >>> validate_ranges([(3, 1)], 4)
    Traceback (most recent call last):
    ...
    ValueError: Range 0 (3, 1) is not a valid interval within [0, 4].
    """
    for i, pair in enumerate(ranges):
        if len(pair) != 2:
            raise ValueError(f"Range {i} must be a (start, end) pair, got {pair!r}.")
        start, end = int(pair[0]), int(pair[1])
        if not (0 <= start <= end <= n):
            raise ValueError(
                f"Range {i} ({start}, {end}) is not a valid interval within [0, {n}]."
            )
