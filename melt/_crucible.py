"""
_crucible.py
============
Prefix-sum index of non-gap character counts over a reordered alignment.

Public API
----------
  CrucibleCtxt(nchars_partial_sum, hmm_ranges)
      Wrap an existing prefix table and its ranges.

  CrucibleCtxt.from_alignment(sequences, ranges, gap='-', backend='best')
      Build the ``(n + 1, k)`` table in O(n·k).

  .retrieve_nchars(hmm_idx, column=None, out=None)
  .num_hmms()
  .to_dict() / CrucibleCtxt.from_dict(record)
  .save(path) / CrucibleCtxt.load(path)

Table layout
------------
``nchars_partial_sum[i, j]`` is the number of symbols other than the gap in
column ``j`` among the first ``i`` sequences.  Row 0 is all zero, so the
count for a range ``(start, end)`` in any column is a single subtraction:

    table[end, j] - table[start, j]

The table is stored as uint32 and never modified after construction.

Persistence
-----------
The index is stored as a JSON object with two fields:

    {"nchars_partial_sum": [[0, 0, ...], ...],
     "hmm_ranges": [[start, end], ...]}
"""

import json
import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from melt._backend import resolve_backend
from melt._kernels import _nchars_prefix_nb
from melt._logging import log_backend_choice, log_crucible_statistics
from melt._utils import validate_ranges

logger = logging.getLogger(__name__)

_FIELDS = ("nchars_partial_sum", "hmm_ranges")


class CrucibleCtxt:
    """
    Column-wise non-gap counts for every decomposition range.

    Attributes (all read-only after construction)
    ----------------------------------------------
    nchars_partial_sum : uint32[n + 1, k]
        Prefix table; row 0 all zero, non-decreasing down each column.
    hmm_ranges         : list[tuple[int, int]]
        Half-open sequence ranges, one per decomposition range.
    """

    def __init__(self, nchars_partial_sum, hmm_ranges: Sequence[Tuple[int, int]]) -> None:
        """
        Parameters
        ----------
        nchars_partial_sum : array-like, shape (n + 1, k)
            Prefix table.  Copied and stored as uint32.
        hmm_ranges : sequence of (start, end)
            Ranges with ``0 <= start <= end <= n``.

        Raises
        ------
        ValueError
            If the table is not 2-D with at least one row, holds negative
            values, or a range lies outside it.
        """
        table = np.asarray(nchars_partial_sum)
        if table.ndim != 2 or table.shape[0] < 1:
            raise ValueError(
                f"nchars_partial_sum must be a 2-D table with at least one row, "
                f"got shape {table.shape}."
            )
        if table.size and table.min() < 0:
            raise ValueError("nchars_partial_sum must not contain negative counts.")
        table = np.array(table, dtype=np.uint32)
        table.flags.writeable = False

        validate_ranges(hmm_ranges, table.shape[0] - 1)

        self.nchars_partial_sum = table
        self.hmm_ranges: List[Tuple[int, int]] = [
            (int(start), int(end)) for start, end in hmm_ranges
        ]

    # ================================================================== #
    # Construction                                                         #
    # ================================================================== #

    @classmethod
    def from_alignment(
        cls,
        sequences,
        ranges: Sequence[Tuple[int, int]],
        gap: str = "-",
        backend: str = "best",
    ) -> "CrucibleCtxt":
        """
        Build the prefix table from *sequences* ordered to match the
        decomposition permutation.

        Parameters
        ----------
        sequences : sequence of str | bytes | SeqRecord, or uint8 ndarray (n, k)
            Aligned sequences, all of the same width.
        ranges : sequence of (start, end)
            Decomposition ranges into *sequences*.
        gap : str, default '-'
            The single gap symbol.  Every other symbol is counted.
        backend : str, default 'best'
            'python', 'numba' or 'best'.

        Raises
        ------
        ValueError
            If sequences differ in width, *gap* is not a single ASCII
            character, or a range lies outside ``[0, n]``.

        Examples
        --------
        >>> ctxt = CrucibleCtxt.from_alignment(["AC-G", "--CG"], [(0, 2)])
        >>> ctxt.nchars_partial_sum[2].tolist()
        [1, 1, 1, 2]
        """
        if not isinstance(gap, str) or len(gap) != 1 or ord(gap) > 127:
            raise ValueError(f"gap must be a single ASCII character, got {gap!r}.")

        resolved = resolve_backend(backend)
        log_backend_choice("CrucibleCtxt.from_alignment", resolved)

        seqs = _as_byte_matrix(sequences)
        n, k = seqs.shape
        gap_byte = np.uint8(ord(gap))

        table = np.empty((n + 1, k), dtype=np.uint32)
        if resolved == "numba":
            _nchars_prefix_nb(seqs, gap_byte, table)
        else:
            table[0] = 0
            np.cumsum(seqs != gap_byte, axis=0, dtype=np.uint32, out=table[1:])

        ctxt = cls(table, ranges)
        log_crucible_statistics(ctxt)
        return ctxt

    @classmethod
    def from_dict(cls, record: dict) -> "CrucibleCtxt":
        """
        Rebuild an index from the record produced by ``to_dict``.

        Raises
        ------
        ValueError
            If a field is missing or the table is ragged or out of range.
        """
        missing = [f for f in _FIELDS if f not in record]
        if missing:
            raise ValueError(f"Metadata record is missing field(s): {', '.join(missing)}.")
        try:
            table = np.array(record["nchars_partial_sum"], dtype=np.int64)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Malformed nchars_partial_sum: {e}") from e
        if table.size and table.max() > np.iinfo(np.uint32).max:
            raise ValueError("nchars_partial_sum values exceed the uint32 range.")
        return cls(table, record["hmm_ranges"])

    @classmethod
    def load(cls, path) -> "CrucibleCtxt":
        """Read an index previously written by ``save``."""
        with open(path) as fh:
            record = json.load(fh)
        if not isinstance(record, dict):
            raise ValueError(f"Metadata file '{path}' does not hold a JSON object.")
        return cls.from_dict(record)

    # ================================================================== #
    # Public methods                                                       #
    # ================================================================== #

    @property
    def num_sequences(self) -> int:
        return int(self.nchars_partial_sum.shape[0]) - 1

    @property
    def num_columns(self) -> int:
        return int(self.nchars_partial_sum.shape[1])

    def num_hmms(self) -> int:
        """Number of ranges held by the index."""
        return len(self.hmm_ranges)

    def retrieve_nchars(self, hmm_idx: int, column: Optional[int] = None, out=None):
        """
        Non-gap counts of range *hmm_idx*.

        Parameters
        ----------
        hmm_idx : int
            Index into ``hmm_ranges``.
        column : int, optional
            If given, return the count for this column only, as an ``int``.
        out : np.ndarray, optional
            Buffer of length ``k`` to fill in place (whole-row query only).

        Returns
        -------
        int
            When *column* is given.
        np.ndarray
            Length-``k`` counts otherwise (*out* itself when provided).

        Raises
        ------
        ValueError
            If *column* is outside ``[0, k)``, *out* does not have shape
            ``(k,)``, or both *column* and *out* are given.

        Complexity
        ----------
        O(1) for a single column, O(k) for a whole row.
        """
        start, end = self.hmm_ranges[hmm_idx]
        table = self.nchars_partial_sum
        k = table.shape[1]

        if column is not None:
            if out is not None:
                raise ValueError("out cannot be combined with a single-column query.")
            if not 0 <= column < k:
                raise ValueError(f"column {column} is out of range for {k} column(s).")
            return int(table[end, column]) - int(table[start, column])

        if out is None:
            return table[end] - table[start]

        if out.shape != (k,):
            raise ValueError(f"out must have shape ({k},), got {out.shape}.")
        np.subtract(table[end], table[start], out=out)
        return out

    def to_dict(self) -> dict:
        """Serialisable record with the two persisted fields."""
        return {
            "nchars_partial_sum": self.nchars_partial_sum.tolist(),
            "hmm_ranges": [[start, end] for start, end in self.hmm_ranges],
        }

    def save(self, path) -> None:
        """Write the index to *path* as JSON."""
        with open(path, "w") as fh:
            json.dump(self.to_dict(), fh)
        logger.debug("Wrote sequence count index to %s", path)

    def __eq__(self, other) -> bool:
        if not isinstance(other, CrucibleCtxt):
            return NotImplemented
        return (
            self.hmm_ranges == other.hmm_ranges
            and np.array_equal(self.nchars_partial_sum, other.nchars_partial_sum)
        )

    def __repr__(self) -> str:
        return (
            f"CrucibleCtxt(num_sequences={self.num_sequences}, "
            f"num_columns={self.num_columns}, num_hmms={self.num_hmms()})"
        )


# ======================================================================== #
# Helper functions                                                         #
# ======================================================================== #


def _as_byte_matrix(sequences) -> np.ndarray:
    """
    Convert *sequences* to a C-contiguous ``(n, k)`` uint8 matrix.

    Accepts a 2-D uint8 array, or any sequence of ``str``, ``bytes`` or
    objects with a ``.seq`` attribute (Biopython ``SeqRecord``).

    Raises
    ------
    ValueError
        If rows differ in width, or an array input is not 2-D uint8.
    """
    if isinstance(sequences, np.ndarray):
        if sequences.ndim != 2 or sequences.dtype != np.uint8:
            raise ValueError(
                f"Sequence array must be 2-D uint8, got {sequences.ndim}-D "
                f"{sequences.dtype}."
            )
        return np.ascontiguousarray(sequences)

    rows = []
    for item in sequences:
        if hasattr(item, "seq"):
            item = str(item.seq)
        if isinstance(item, str):
            item = item.encode("ascii")
        rows.append(bytes(item))

    n = len(rows)
    if n == 0:
        return np.zeros((0, 0), dtype=np.uint8)

    k = len(rows[0])
    for i, row in enumerate(rows):
        if len(row) != k:
            raise ValueError(
                f"Sequence {i} has width {len(row)}; expected {k} "
                "(all aligned sequences must have the same width)."
            )
    if k == 0:
        return np.zeros((n, 0), dtype=np.uint8)
    return np.frombuffer(b"".join(rows), dtype=np.uint8).reshape(n, k)
