"""
tests/test_context.py
=====================
Tests for the logging and backend context managers and backend resolution.
"""

import logging

import pytest

from melt._backend import (
    BACKENDS,
    get_available_backends,
    get_backend_info,
    get_best_backend,
    resolve_backend,
)
from melt._context import get_backend_override, quiet, suppress_logger, use_backend
from melt._decomp import hierarchical_decomp
from melt._tree import Tree


# ======================================================================== #
# Logging                                                                  #
# ======================================================================== #


class TestSuppressLogger:
    def test_level_restored(self):
        logger = logging.getLogger("melt._decomp")
        before = logger.level
        with suppress_logger("melt._decomp", logging.ERROR):
            assert logger.level == logging.ERROR
        assert logger.level == before

    def test_level_restored_on_error(self):
        logger = logging.getLogger("melt._crucible")
        before = logger.level
        with pytest.raises(RuntimeError):
            with suppress_logger("melt._crucible"):
                raise RuntimeError("boom")
        assert logger.level == before

    def test_nested(self):
        logger = logging.getLogger("melt")
        before = logger.level
        with suppress_logger("melt", logging.WARNING):
            with suppress_logger("melt", logging.CRITICAL):
                assert logger.level == logging.CRITICAL
            assert logger.level == logging.WARNING
        assert logger.level == before


class TestQuiet:
    def test_silences_warning(self, caplog):
        star = Tree("(A,B,C,D,E);")
        caplog.set_level(logging.DEBUG)
        with quiet():
            hierarchical_decomp(star, 2)
        assert not [r for r in caplog.records if r.name.startswith("melt")]

    def test_threshold(self, caplog):
        star = Tree("(A,B,C,D,E);")
        caplog.set_level(logging.DEBUG)
        with quiet(logging.WARNING):
            hierarchical_decomp(star, 2)
        levels = {r.levelno for r in caplog.records if r.name.startswith("melt")}
        assert levels == {logging.WARNING}


# ======================================================================== #
# Backends                                                                 #
# ======================================================================== #


class TestBackendSelection:
    def test_python_always_available(self):
        assert get_available_backends()[0] == "python"
        assert set(get_available_backends()) <= set(BACKENDS)

    def test_best_is_last_available(self):
        assert get_best_backend() == get_available_backends()[-1]
        assert resolve_backend("best") == get_best_backend()

    def test_explicit_backend(self):
        assert resolve_backend("python") == "python"

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Backend 'gpu' not available"):
            resolve_backend("gpu")

    def test_info(self):
        info = get_backend_info()
        assert set(info) == {"numba_available", "numba_version", "backends", "best_backend"}
        assert info["backends"] == get_available_backends()
        assert (info["numba_version"] is None) == (not info["numba_available"])


class TestUseBackend:
    def test_override_applies_to_best(self):
        assert get_backend_override() is None
        with use_backend("python"):
            assert get_backend_override() == "python"
            assert resolve_backend("best") == "python"
        assert get_backend_override() is None

    def test_explicit_argument_wins(self):
        best = get_best_backend()
        with use_backend("python"):
            assert resolve_backend(best) == best

    def test_restored_on_error(self):
        with pytest.raises(KeyError):
            with use_backend("python"):
                raise KeyError("x")
        assert get_backend_override() is None

    def test_unavailable(self):
        with pytest.raises(ValueError, match="not available"):
            with use_backend("cuda"):
                pass

    def test_best_passthrough(self):
        with use_backend("best"):
            assert resolve_backend() == get_best_backend()
