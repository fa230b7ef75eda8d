"""
_logging.py
===========
Logging functions for melt.

All functions in this module have NO side effects except logging. They take
computed data as parameters and format/emit log messages.

This separation ensures:
- Logging can be easily disabled/mocked in tests
- Computation is separate from presentation
- Clear boundaries between analysis and reporting
"""

import logging
from typing import Any

import numpy as np
import psutil


logger = logging.getLogger(__name__)


# ============================================================================ #
# System and Backend Logging (called at module import time)
# ============================================================================ #


def log_optimization_status(numba_available: bool) -> None:
    """
    Log system capabilities and optimization library availability at INFO level.

    Called once at module import time. Reports CPU count, memory, numba version
    (if available), LLVM info, and threading configuration.

    Parameters
    ----------
    numba_available : bool
        Whether numba was successfully imported.
    """
    import os
    import platform

    cpu_count = os.cpu_count() or 1
    logger.info(
        "System: %s (%s), %d CPU cores, Python %s",
        platform.machine(),
        platform.system(),
        cpu_count,
        platform.python_version(),
    )

    mem = psutil.virtual_memory()
    logger.info(
        "Memory: %.1f GB total, %.1f GB available",
        mem.total / (1024**3),
        mem.available / (1024**3),
    )

    if numba_available:
        import llvmlite
        import numba

        logger.info("Numba %s loaded successfully", numba.__version__)
        logger.info("LLVM backend: llvmlite %s", llvmlite.__version__)
        logger.info("Numba threads available: %d", numba.get_num_threads())


def log_backend_choice(operation: str, backend: str) -> None:
    """Log which backend an operation resolved to, at DEBUG level."""
    logger.debug("%s: using backend=%r", operation, backend)


# ============================================================================ #
# Decomposition Logging
# ============================================================================ #


def log_tree_statistics(tree: Any) -> None:
    """
    Log basic shape information for a loaded tree.

    Parameters
    ----------
    tree : Tree
        The parsed tree.
    """
    logger.info(
        "Tree loaded: %d taxa, %d nodes", tree.n_leaves, tree.n_nodes
    )
    n_multi = tree.count_multifurcations()
    if n_multi > 0:
        logger.info(
            "  %d multifurcating node(s) kept as-is; their children are not "
            "separable by a single cut",
            n_multi,
        )


def log_decomposition_statistics(hierarchy: Any, max_size: int) -> None:
    """
    Log the outcome of a hierarchical decomposition.

    Emits one INFO summary and, when any final range is still at or above
    *max_size*, a WARNING naming how many such unsplittable clusters remain.

    Parameters
    ----------
    hierarchy : TaxaHierarchy
        Result of ``hierarchical_decomp``.
    max_size : int
        The size bound the decomposition was run with.
    """
    final = hierarchy.final_ranges()
    sizes = [hierarchy.range_size(i) for i in final]
    largest = max(sizes) if sizes else 0
    logger.info(
        "Decomposition: %d ranges over %d taxa (%d final, largest final range %d, "
        "max_size %d)",
        hierarchy.num_ranges,
        hierarchy.ntaxa,
        len(final),
        largest,
        max_size,
    )

    oversized = [s for s in sizes if s >= max_size]
    if oversized:
        logger.warning(
            "%d final range(s) could not be split below max_size=%d "
            "(largest %d taxa); their units contain no internal cut",
            len(oversized),
            max_size,
            max(oversized),
        )


def log_cut(root: int, best_cut: int, size: int, cut_size: int, imbalance: int) -> None:
    """Log a single applied cut at DEBUG level."""
    logger.debug(
        "cut node %d from unit rooted at %d: %d -> %d + %d (imbalance %d)",
        best_cut,
        root,
        size,
        cut_size,
        size - cut_size,
        imbalance,
    )


# ============================================================================ #
# Sequence Count Index Logging
# ============================================================================ #


def log_crucible_statistics(ctxt: Any) -> None:
    """
    Log the shape and memory footprint of a sequence count index.

    Parameters
    ----------
    ctxt : CrucibleCtxt
        The built index.
    """
    table = ctxt.nchars_partial_sum
    logger.info(
        "Sequence count index: %d sequences × %d columns, %d ranges",
        table.shape[0] - 1,
        table.shape[1],
        ctxt.num_hmms(),
    )

    mem_bytes = compute_memory_footprint(ctxt)
    mem_mb = mem_bytes / (1024**2)
    mem_gb = mem_bytes / (1024**3)
    if mem_gb >= 1.0:
        logger.info("  Prefix table footprint: %.2f GB", mem_gb)
    else:
        logger.info("  Prefix table footprint: %.1f MB", mem_mb)


# ============================================================================ #
# Helper Functions for Computing Data (not logging)
# ============================================================================ #


def compute_memory_footprint(ctxt: Any) -> int:
    """
    Compute the memory footprint of a sequence count index in bytes.

    Parameters
    ----------
    ctxt : CrucibleCtxt

    Returns
    -------
    int
        Total memory in bytes (table plus ranges stored as int64 pairs).
    """
    ranges_bytes = 2 * np.dtype(np.int64).itemsize * len(ctxt.hmm_ranges)
    return int(ctxt.nchars_partial_sum.nbytes) + ranges_bytes
