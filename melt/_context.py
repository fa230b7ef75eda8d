"""
_context.py
===========
Context managers for melt.

Provides clean, Pythonic context managers for temporarily changing state:
- Logging control (suppress/change levels)
- Backend selection (force specific backend)

All context managers properly restore state on exit, even if exceptions occur.
"""

import logging
from contextlib import contextmanager
from typing import Optional


# Module-level state for backend override
_backend_override = None


# ============================================================================ #
# Logging Context Managers
# ============================================================================ #


@contextmanager
def suppress_logger(logger_name: str, level: int = logging.CRITICAL):
    """
    Temporarily change a logger's level.

    Useful for suppressing verbose output from specific modules during
    bulk operations.

    Parameters
    ----------
    logger_name : str
        Name of the logger to suppress (e.g., 'melt._decomp')
    level : int, default logging.CRITICAL
        Temporary logging level.

    Yields
    ------
    None
        Control is yielded back to the with-block.

    Examples
    --------
    >>> # Silence per-cut debug output from the decomposer
    >>> with suppress_logger('melt._decomp', logging.INFO):
    ...     h = hierarchical_decomp(tree, 50)

    Notes
    -----
    - Exception-safe: Logger level restored even if exception raised
    - Nesting-safe: Can nest multiple suppress_logger contexts
    """
    logger = logging.getLogger(logger_name)
    original_level = logger.level

    try:
        logger.setLevel(level)
        yield
    finally:
        logger.setLevel(original_level)


@contextmanager
def quiet(level: int = logging.CRITICAL):
    """
    Temporarily suppress all melt logging.

    Convenience wrapper around ``suppress_logger('melt', level)``; every
    module logger in the package is a child of ``'melt'``.

    Examples
    --------
    >>> with quiet():
    ...     ctxt = oneshot_melt(aln, tree, 50, outdir)

    >>> # Show only warnings
    >>> with quiet(logging.WARNING):
    ...     h = hierarchical_decomp(tree, 50)
    """
    with suppress_logger("melt", level):
        yield


# ============================================================================ #
# Backend Context Managers
# ============================================================================ #


@contextmanager
def use_backend(backend: str):
    """
    Temporarily force a specific backend for decomposition and indexing.

    Parameters
    ----------
    backend : str
        Backend to use. Valid options:
        - 'python': Pure Python / numpy reference implementation
        - 'numba': Compiled kernels (requires numba)
        - 'best': Use best available (default behavior)

    Raises
    ------
    ValueError
        If requested backend is not available.

    Examples
    --------
    >>> with use_backend('python'):
    ...     h = hierarchical_decomp(tree, 50)

    Notes
    -----
    - **Not thread-safe**: Uses module-level state
    - Backend availability checked when context entered
    - Explicit ``backend=`` arguments other than 'best' take precedence

    Thread-safe alternative::

        h = hierarchical_decomp(tree, 50, backend='python')
    """
    global _backend_override

    from ._backend import get_available_backends

    available = get_available_backends()

    if backend != "best" and backend not in available:
        raise ValueError(
            f"Backend '{backend}' not available. "
            f"Available backends: {', '.join(available)}"
        )

    original_override = _backend_override

    try:
        _backend_override = backend
        yield
    finally:
        _backend_override = original_override


def get_backend_override() -> Optional[str]:
    """
    Get the current backend override, if any.

    Returns
    -------
    str or None
        Current backend override, or None if no override active.

    Examples
    --------
    >>> get_backend_override()
    None

    >>> with use_backend('python'):
    ...     print(get_backend_override())
    python
    """
    return _backend_override
