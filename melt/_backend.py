"""
_backend.py
===========
Backend detection and selection for melt.

Two execution backends implement the decomposer and the sequence count
index:

- 'python': pure Python / numpy reference implementation
- 'numba' : LLVM-compiled kernels from ``_kernels.py`` (numba.njit)

Both produce bit-identical results.

Functions in this module have NO side effects - they only query system state.
Logging is done by the calling code, not here.
"""

from typing import List


# Preference order: last is most optimized
BACKENDS = ("python", "numba")


# ============================================================================ #
# Backend Detection (No Side Effects)
# ============================================================================ #


def check_numba_available() -> bool:
    """
    Check if numba can be imported.

    Returns
    -------
    bool
        True if numba can be imported, False otherwise.
    """
    try:
        import numba  # noqa: F401

        return True
    except ImportError:
        return False


def get_available_backends() -> List[str]:
    """
    Get list of available execution backends.

    Returns
    -------
    list[str]
        List of available backends in preference order.
        Always includes 'python'.  Includes 'numba' if numba is importable.

    Examples
    --------
    >>> get_available_backends()
    ['python', 'numba']
    """
    backends = ["python"]
    if check_numba_available():
        backends.append("numba")
    return backends


def get_best_backend() -> str:
    """
    Get the most optimized available backend.

    Returns
    -------
    str
        'numba' if available, otherwise 'python'.
    """
    return get_available_backends()[-1]


def resolve_backend(backend: str = "best") -> str:
    """
    Resolve a backend name to an actual backend.

    An explicit backend name always wins.  ``'best'`` defers to an active
    ``use_backend()`` override, if any, and otherwise to the best available
    backend.

    Parameters
    ----------
    backend : str
        'best', 'python' or 'numba'.

    Returns
    -------
    str
        Resolved backend name.

    Raises
    ------
    ValueError
        If requested backend is unknown or not available.

    Examples
    --------
    >>> resolve_backend('python')
    'python'

    >>> with use_backend('python'):
    ...     resolve_backend('best')
    'python'
    """
    if backend == "best":
        from melt._context import get_backend_override

        override = get_backend_override()
        if override is None or override == "best":
            return get_best_backend()
        backend = override

    available = get_available_backends()
    if backend not in available:
        raise ValueError(
            f"Backend '{backend}' not available. "
            f"Available backends: {', '.join(available)}"
        )

    return backend


# ============================================================================ #
# Module-Level State Query (Read-Only)
# ============================================================================ #


def get_backend_info() -> dict:
    """
    Get comprehensive backend information.

    Returns
    -------
    dict
        Dictionary with keys:
        - 'numba_available': bool
        - 'numba_version': str or None
        - 'backends': list[str]
        - 'best_backend': str

    Examples
    --------
    >>> info = get_backend_info()
    >>> info['best_backend']
    'numba'
    """
    numba_available = check_numba_available()
    version = None
    if numba_available:
        import numba

        version = numba.__version__

    return {
        "numba_available": numba_available,
        "numba_version": version,
        "backends": get_available_backends(),
        "best_backend": get_best_backend(),
    }
