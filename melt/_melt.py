"""
_melt.py
========
End-to-end pipeline: decompose a guide tree, reorder the matching alignment,
write one sub-alignment per decomposition range and persist the sequence
count index.

Output layout
-------------
  <outdir>/subsets/<i>.afa   FASTA, sequences of range i, wrapped at 60 columns
  <outdir>/melt.json         CrucibleCtxt record (prefix table + ranges)
"""

import logging
from pathlib import Path
from typing import List, Sequence, Tuple

from Bio import SeqIO
from Bio.SeqIO.FastaIO import FastaWriter
from Bio.SeqRecord import SeqRecord

from melt._crucible import CrucibleCtxt
from melt._decomp import TaxaHierarchy, hierarchical_decomp
from melt._logging import log_tree_statistics
from melt._tree import Tree

logger = logging.getLogger(__name__)

SUBSETS_DIRNAME = "subsets"
METADATA_FILENAME = "melt.json"
SUBSET_SUFFIX = ".afa"


def read_alignment(path) -> List[SeqRecord]:
    """
    Load every record of the FASTA alignment at *path*.

    Parse errors from Biopython and I/O errors propagate unchanged.
    """
    records = list(SeqIO.parse(str(path), "fasta"))
    logger.info("Read %d sequence(s) from %s", len(records), path)
    return records


def record_name(record: SeqRecord) -> str:
    """The full FASTA header of *record*, without the leading '>'."""
    description = record.description
    if description and description.split(None, 1)[0] == record.id:
        return description
    return record.id


def order_records(
    records: Sequence[SeqRecord], tree: Tree, hierarchy: TaxaHierarchy
) -> List[SeqRecord]:
    """
    Sort *records* so that record ``i`` is the taxon at ``reordered_taxa[i]``.

    Records are matched to leaves by their full FASTA header, so a header
    such as ``A sample 1`` only matches a leaf labelled 'A sample 1'.

    Raises
    ------
    KeyError
        If a record's name is not a leaf of *tree*.
    ValueError
        If a taxon appears twice or a tree taxon has no record.
    """
    position = hierarchy.inverse()
    ordered: List[SeqRecord] = [None] * tree.n_leaves  # type: ignore[list-item]
    for record in records:
        name = record_name(record)
        tid = tree.taxon_id(name)
        pos = int(position[tid])
        if ordered[pos] is not None:
            raise ValueError(f"Duplicate sequence for taxon '{name}'.")
        ordered[pos] = record

    missing = [
        tree.names[int(hierarchy.reordered_taxa[i])]
        for i in range(tree.n_leaves)
        if ordered[i] is None
    ]
    if missing:
        shown = ", ".join(missing[:5]) + (", ..." if len(missing) > 5 else "")
        raise ValueError(
            f"{len(missing)} tree taxa have no sequence in the alignment: {shown}"
        )
    return ordered


def write_subsets(
    records: Sequence[SeqRecord],
    ranges: Sequence[Tuple[int, int]],
    outdir,
    wrap: int = 60,
) -> Path:
    """
    Write ``records[lb:ub]`` of each range to ``<outdir>/subsets/<i>.afa``.

    Returns
    -------
    Path
        The subsets directory.
    """
    subsets_root = Path(outdir) / SUBSETS_DIRNAME
    subsets_root.mkdir(parents=True, exist_ok=True)
    for i, (lb, ub) in enumerate(ranges):
        with open(subsets_root / f"{i}{SUBSET_SUFFIX}", "w") as handle:
            writer = FastaWriter(handle, wrap=wrap)
            writer.write_file(records[lb:ub])
    logger.info("Wrote %d subset alignment(s) to %s", len(ranges), subsets_root)
    return subsets_root


def oneshot_melt(
    input_path,
    tree_path,
    max_size: int,
    outdir,
    gap: str = "-",
    backend: str = "best",
    wrap: int = 60,
) -> CrucibleCtxt:
    """
    Run the full pipeline.

    Parameters
    ----------
    input_path : path-like
        FASTA alignment, one record per tree leaf, names matching leaf labels.
    tree_path : path-like
        NEWICK guide tree; the first tree in the file is used.
    max_size : int
        Decomposition size bound (>= 1).
    outdir : path-like
        Output directory; created if missing.
    gap : str, default '-'
        Gap symbol for the count index.
    backend : str, default 'best'
        Backend for decomposition and indexing.
    wrap : int, default 60
        FASTA line width of the subset files.

    Returns
    -------
    CrucibleCtxt
        The index that was written to ``<outdir>/melt.json``.
    """
    tree = Tree.from_file(tree_path)
    log_tree_statistics(tree)

    decomp = hierarchical_decomp(tree, max_size, backend=backend)
    logger.info("decomposed input tree into %d subsets", decomp.num_ranges)

    records = order_records(read_alignment(input_path), tree, decomp)

    ctxt = CrucibleCtxt.from_alignment(
        records, decomp.decomposition_ranges, gap=gap, backend=backend
    )

    outdir = Path(outdir)
    write_subsets(records, decomp.decomposition_ranges, outdir, wrap=wrap)

    metadata_path = outdir / METADATA_FILENAME
    ctxt.save(metadata_path)
    logger.info("Wrote metadata to %s", metadata_path)
    return ctxt
